"""App-level fixtures: the real FastAPI app wired to in-memory storage."""

import pytest
from fastapi.testclient import TestClient

from auth.config import SessionConfig
from auth.rate_limiter import RateLimiter
from auth.session import SessionManager
from core.services.access_link_service import AccessLinkService
from core.services.invoice_ledger import InvoiceLedger
from core.services.invoice_service import InvoiceService
from main import create_app

from tests.fakes import LINK_SECRET


@pytest.fixture
def services(link_db, ledger_db, valkey, audit, security_logger, notifier, capabilities,
             link_config, ledger_config, event_bus, clock):
    return {
        "access_link": AccessLinkService(
            link_db,
            audit,
            security_logger,
            notifier,
            capabilities,
            link_config,
            clock=clock,
            rate_limiter=RateLimiter(valkey, link_config),
            secret_generator=lambda digits: LINK_SECRET,
        ),
        "invoice": InvoiceService(ledger_db, audit, ledger_config, clock=clock),
        "ledger": InvoiceLedger(ledger_db, audit, event_bus, clock=clock),
    }

@pytest.fixture
def session_manager(valkey):
    return SessionManager(valkey, SessionConfig())

@pytest.fixture
def app(services, session_manager):
    return create_app(services, session_manager)

def _client_for(app, session_manager, actor=None) -> TestClient:
    client = TestClient(app, raise_server_exceptions=False)
    if actor is not None:
        client.cookies.set("session_token", session_manager.create_session(actor).token)
    return client

@pytest.fixture
def anon_client(app):
    return _client_for(app, None)

@pytest.fixture
def client(app, session_manager, advocate):
    """Signed in as the advocate."""
    return _client_for(app, session_manager, advocate)

@pytest.fixture
def admin_client(app, session_manager, super_admin):
    return _client_for(app, session_manager, super_admin)

@pytest.fixture
def other_client(app, session_manager, other_advocate):
    return _client_for(app, session_manager, other_advocate)
