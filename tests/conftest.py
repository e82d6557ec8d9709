import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["CANCELLATION_LEAD_HOURS"] = "2"

from datetime import date, datetime, time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from dental_booking.db.session import get_db
from dental_booking.deps import get_captcha_store, get_now
from dental_booking.main import app
from dental_booking.models import Base, Dentist, DentistSchedule, Role, ScheduleStatus, Shift
from dental_booking.routers import appointments as appointments_router
from dental_booking.routers import auth as auth_router
from dental_booking.services.booking import SlotRequest, book_as_patient
from dental_booking.services.captcha import CaptchaStore
from dental_booking.services.shifts import week_start
from dental_booking.services.users import create_user, resolve_actor

# Monday, inside the morning shift.
NOW = datetime(2026, 10, 19, 9, 30)
TUESDAY = date(2026, 10, 20)
WEDNESDAY = date(2026, 10, 21)
NEXT_MONDAY = date(2026, 10, 26)
PASSWORD = "Secret123!"


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_user(db: Session, *, role: Role, email: str, full_name: str = "", phone: str | None = None):
    return create_user(
        db,
        email=email,
        password=PASSWORD,
        full_name=full_name or email.split("@")[0].title(),
        role=role,
        phone=phone,
    )


def add_shift(
    db: Session,
    dentist_id: int,
    work_date: date,
    shift: Shift,
    *,
    status: ScheduleStatus = ScheduleStatus.approved,
    is_active: bool = True,
) -> DentistSchedule:
    schedule = DentistSchedule(
        dentist_id=dentist_id,
        work_date=work_date,
        shift=shift,
        week_start_date=week_start(work_date),
        is_active=is_active,
        status=status,
    )
    db.add(schedule)
    db.commit()
    return schedule


def book_for(db: Session, patient_user, dentist_id: int, day: date, at: time, *, now: datetime = NOW):
    actor = resolve_actor(db, patient_user)
    return book_as_patient(
        db,
        actor,
        SlotRequest(dentist_id=dentist_id, appointment_date=day, appointment_time=at, reason="Toothache"),
        now=now,
    )


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'booking.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return FrozenClock(NOW)


@pytest.fixture()
def captcha_store():
    return CaptchaStore(ttl_seconds=300)


@pytest.fixture()
def api_client(session_factory, clock, captcha_store):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = clock
    app.dependency_overrides[get_captcha_store] = lambda: captcha_store
    auth_router.LOGIN_LIMITER.reset()
    auth_router.LOGIN_IP_LIMITER.reset()
    appointments_router.CAPTCHA_LIMITER.reset()
    appointments_router.GUEST_BOOKING_LIMITER.reset()
    client = TestClient(app)
    try:
        yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(api_client):
    def _headers(user) -> dict[str, str]:
        response = api_client.post("/auth/login", json={"email": user.email, "password": PASSWORD})
        assert response.status_code == 200, response.text
        token = response.json().get("access_token")
        assert token, "Missing access_token in login response"
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def dentist_user(db):
    return make_user(db, role=Role.dentist, email="dentist@example.com", full_name="Dr Lan")


@pytest.fixture()
def dentist(db, dentist_user):
    return db.scalar(select(Dentist).where(Dentist.user_id == dentist_user.id))


@pytest.fixture()
def other_dentist(db):
    user = make_user(db, role=Role.dentist, email="dentist2@example.com", full_name="Dr Minh")
    return db.scalar(select(Dentist).where(Dentist.user_id == user.id))


@pytest.fixture()
def receptionist_user(db):
    return make_user(db, role=Role.receptionist, email="reception@example.com")


@pytest.fixture()
def owner_user(db):
    return make_user(db, role=Role.owner, email="owner@example.com")


@pytest.fixture()
def patient_user(db):
    return make_user(
        db, role=Role.patient, email="patient@example.com", full_name="Nguyen An", phone="0901234567"
    )


@pytest.fixture()
def second_patient_user(db):
    return make_user(
        db, role=Role.patient, email="patient2@example.com", full_name="Tran Binh", phone="0907654321"
    )
