"""Shared test fixtures for the case desk test suite."""

import os
from pathlib import Path
from unittest.mock import Mock
from uuid import UUID

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

from auth.capability import CapabilityIssuer
from auth.config import AccessLinkConfig, LedgerConfig
from auth.security_logger import SecurityLogger
from core.audit import AuditLogger
from core.event_bus import EventBus
from core.models import Actor, Role
from core.notifications import Notifier
from tests.fakes import FakeLedgerDatabase, FakeLinkDatabase, FakeValkey, FixedClock, SIGNING_KEY
from utils.user_context import clear_current_actor


# =============================================================================
# ACTOR CONSTANTS
# =============================================================================

SUPER_ADMIN_ID = UUID("00000000-0000-0000-0000-000000000001")
ADVOCATE_ID = UUID("00000000-0000-0000-0000-000000000002")
OTHER_ADVOCATE_ID = UUID("00000000-0000-0000-0000-000000000003")


@pytest.fixture(autouse=True)
def reset_actor_context():
    """Ensure clean actor context before and after each test."""
    clear_current_actor()
    yield
    clear_current_actor()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def super_admin() -> Actor:
    return Actor(id=SUPER_ADMIN_ID, role=Role.SUPER_ADMIN, email="admin@example.com", name="Admin")


@pytest.fixture
def advocate() -> Actor:
    return Actor(id=ADVOCATE_ID, role=Role.ADVOCATE, email="meera@example.com", name="Adv. Meera Nair")


@pytest.fixture
def other_advocate() -> Actor:
    return Actor(id=OTHER_ADVOCATE_ID, role=Role.ADVOCATE, email="arjun@example.com", name="Adv. Arjun Rao")


# =============================================================================
# STORAGE FAKES
# =============================================================================


@pytest.fixture
def link_db() -> FakeLinkDatabase:
    return FakeLinkDatabase()


@pytest.fixture
def ledger_db() -> FakeLedgerDatabase:
    return FakeLedgerDatabase()


@pytest.fixture
def valkey() -> FakeValkey:
    return FakeValkey()


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

SCHEMA_PATH = Path(__file__).parent.parent / "schema.sql"

_ALL_TABLES = """admins, clients, cases, hearings, access_links,
                 case_comments, hearing_comments, case_comment_documents, hearing_comment_documents,
                 invoices, invoice_payments, audit_log, security_events"""


@pytest.fixture(scope="session")
def db():
    """Session-scoped PostgresClient on a scratch database, schema.sql applied."""
    database_url = os.getenv("TEST_DATABASE_URL")
    if not database_url:
        pytest.skip("TEST_DATABASE_URL not set")

    from clients.postgres_client import PostgresClient

    client = PostgresClient(database_url, statement_timeout_ms=5000)
    client.execute(SCHEMA_PATH.read_text())
    yield client
    client.close()


@pytest.fixture
def clean_db(db):
    """Empty every table before the test."""
    db.execute(f"TRUNCATE {_ALL_TABLES} CASCADE")
    return db


# =============================================================================
# COLLABORATOR MOCKS
# =============================================================================


@pytest.fixture
def audit():
    return Mock(spec=AuditLogger)


@pytest.fixture
def security_logger():
    return Mock(spec=SecurityLogger)


@pytest.fixture
def notifier():
    mock = Mock(spec=Notifier)
    mock.send_link_invitation.return_value = True
    mock.send_payment_received.return_value = True
    mock.send_invoice_reminder.return_value = True
    return mock


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def capabilities() -> CapabilityIssuer:
    return CapabilityIssuer(SIGNING_KEY)


@pytest.fixture
def link_config() -> AccessLinkConfig:
    return AccessLinkConfig(bcrypt_rounds=10, app_base_url="https://desk.example.com")


@pytest.fixture
def ledger_config() -> LedgerConfig:
    return LedgerConfig(reminder_pause_seconds=0)
