"""
Test configuration and shared fixtures for the clinic assistant test suite.

Uses an in-memory SQLite database shared by every session of a test
(StaticPool), so background work running in worker threads sees the same data
as the test. Each test gets freshly created tables.
"""

import pytest
from typing import Generator
from unittest.mock import Mock

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base, get_db, get_session_factory
import models  # noqa: F401  (registers every table on Base.metadata)
from models import Clinician, Patient, Specialty
from services.llm_service import get_llm_service
from services.twilio_service import TwilioService

from llm_fakes import make_llm


TEST_DATABASE_URL = "sqlite://"

CLINICIAN_PHONE = "+584141234567"
OTHER_CLINICIAN_PHONE = "+584149876543"
CHANNEL_NUMBER = "whatsapp:+14155238886"
TWILIO_TEST_AUTH_TOKEN = "test-token"


@pytest.fixture(scope="function")
def db_engine():
    """
    Create a fresh database engine with all tables for one test.

    StaticPool keeps a single connection so the in-memory database survives
    across sessions and threads.
    """
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker:
    """Session factory configured like the application's SessionLocal."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=db_engine,
        expire_on_commit=False,
    )


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Provide a database session for a test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clinician(db_session) -> Clinician:
    """Registered clinician whose phone number matches CLINICIAN_PHONE."""
    doctor = Clinician(full_name="Dra. Ana Rivas", phone_number=CLINICIAN_PHONE, email="ana@example.com")
    db_session.add(doctor)
    db_session.commit()
    return doctor


@pytest.fixture
def other_clinician(db_session) -> Clinician:
    """A second clinician, used to check isolation."""
    doctor = Clinician(full_name="Dr. Luis Mora", phone_number=OTHER_CLINICIAN_PHONE)
    db_session.add(doctor)
    db_session.commit()
    return doctor


@pytest.fixture
def specialty(db_session) -> Specialty:
    cardiology = Specialty(name="Cardiología")
    db_session.add(cardiology)
    db_session.commit()
    return cardiology


@pytest.fixture
def patient(db_session, clinician) -> Patient:
    """Patient #1, registered by the clinician."""
    registered = Patient(
        patient_number=1,
        name="José",
        last_name="Pérez",
        email="jose@example.com",
        phone="+584241112233",
        allergies=[],
        medications=[],
        medical_history=[],
        family_history=[],
        registered_by_clinician_id=clinician.id,
    )
    db_session.add(registered)
    db_session.commit()
    return registered


@pytest.fixture
def mock_twilio_client() -> Mock:
    """Twilio REST client double; messages.create returns a message with a sid."""
    client = Mock()
    client.messages.create.return_value = Mock(sid="SM-outbound")
    return client


@pytest.fixture
def twilio_service(mock_twilio_client) -> TwilioService:
    return TwilioService(
        account_sid="ACtest",
        auth_token=TWILIO_TEST_AUTH_TOKEN,
        from_address=CHANNEL_NUMBER,
        client=mock_twilio_client,
    )


@pytest.fixture
def fake_llm() -> Mock:
    """LLM double answering every request with a plain greeting."""
    return make_llm("¡Hola! ¿En qué puedo ayudarte?")


@pytest.fixture
def client(db_session, session_factory, twilio_service, fake_llm) -> Generator[TestClient, None, None]:
    """
    Test client with the database, Twilio and LLM dependencies overridden.

    Background tasks run against the same database before the request returns.
    """
    from main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_llm_service] = lambda: fake_llm

    from api.twilio_webhook import get_twilio_service
    app.dependency_overrides[get_twilio_service] = lambda: twilio_service

    yield TestClient(app)

    app.dependency_overrides.clear()
