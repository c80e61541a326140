import os
from datetime import time
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from booking_backend.database import Base  # noqa: E402
from booking_backend.models.appointment import Appointment  # noqa: E402, F401
from booking_backend.models.notification import Notification  # noqa: E402, F401
from booking_backend.models.professional import Professional, Service  # noqa: E402
from booking_backend.models.user import User  # noqa: E402
from booking_backend.models.working_hours import WorkingHours  # noqa: E402
from booking_backend.services.scheduling import SchedulingService  # noqa: E402
from booking_backend.services.store import AppointmentStore  # noqa: E402

MONDAY = 1


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def notify_booking_created(self, appointment):
        self.calls.append(('created', appointment.id))

    def notify_booking_status_changed(self, appointment, old_status, new_status):
        self.calls.append(('status', appointment.id, old_status, new_status))

    def notify_booking_rescheduled(self, appointment, previous_date, previous_start_time):
        self.calls.append(('rescheduled', appointment.id, previous_date, previous_start_time))


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield testing_session_local
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def marketplace(db):
    client = User(id=1, email='client@example.com', hashed_password='', role='client')
    other_client = User(id=2, email='other@example.com', hashed_password='', role='client')
    professional_user = User(id=3, email='stylist@example.com', hashed_password='', role='professional')
    admin = User(id=4, email='admin@example.com', hashed_password='', role='admin')
    other_professional_user = User(id=5, email='masseur@example.com', hashed_password='', role='professional')

    professional = Professional(id=1, user_id=3, display_name='Ana Stylist')
    other_professional = Professional(id=2, user_id=5, display_name='Bruno Massage')

    haircut = Service(id=1, professional_id=1, name='Haircut', duration=30, price=Decimal('80.00'))
    coloring = Service(id=2, professional_id=1, name='Coloring', duration=60, price=Decimal('150.00'))
    massage = Service(id=3, professional_id=2, name='Massage', duration=60, price=Decimal('120.00'))

    monday_hours = WorkingHours(professional_id=1, day_of_week=MONDAY, start_time=time(9, 0), end_time=time(12, 0))

    db.add_all([client, other_client, professional_user, admin, other_professional_user])
    db.add_all([professional, other_professional])
    db.add_all([haircut, coloring, massage, monday_hours])
    db.commit()

    return SimpleNamespace(
        client=client,
        other_client=other_client,
        professional_user=professional_user,
        admin=admin,
        professional=professional,
        other_professional=other_professional,
        haircut=haircut,
        coloring=coloring,
        massage=massage,
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def scheduling(db, notifier):
    return SchedulingService(AppointmentStore(db), notifier=notifier)
