"""Application entry point.

Wires clients, services, routers and the background scheduler together.
Run with:

    uvicorn main:create_production_app --factory
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from functools import partial
from typing import Callable, Sequence

from fastapi import FastAPI

from api.actions import create_actions_router
from api.base import success_response
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from api.public_links import create_public_links_router
from auth.api import create_auth_router
from auth.capability import CapabilityIssuer
from auth.config import AppConfig
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.security_middleware import AuthMiddleware
from auth.session import SessionManager
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import (
    get_database_url,
    get_email_config,
    get_token_signing_key,
    get_valkey_url,
)
from core.audit import AuditLogger
from core.event_bus import EventBus
from core.handlers.payment_received_handler import handle_payment_received
from core.ledger_database import LedgerDatabase
from core.link_database import LinkDatabase
from core.notifications import Notifier
from core.services.access_link_service import AccessLinkService
from core.services.invoice_ledger import InvoiceLedger
from core.services.invoice_service import InvoiceService
from jobs.scheduler import ReminderScheduler

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    services: dict,
    session_manager: SessionManager,
    scheduler: ReminderScheduler | None = None,
    on_shutdown: Sequence[Callable[[], None]] = (),
) -> FastAPI:
    """
    Build the FastAPI app from already-constructed services.

    services must hold "access_link" (AccessLinkService), "invoice"
    (InvoiceService) and "ledger" (InvoiceLedger). When a scheduler is given
    it is started and stopped with the app. on_shutdown callables (pool and
    connection closers) run after it stops.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if scheduler is not None:
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown()
            for close in on_shutdown:
                close()

    app = FastAPI(title="Case Desk", lifespan=lifespan)
    app.add_middleware(AuthMiddleware, session_manager=session_manager)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    def health():
        return success_response({"status": "ok"}).model_dump(mode="json")

    app.include_router(create_auth_router(session_manager))
    app.include_router(create_public_links_router(services["access_link"]))
    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")

    return app


def build_services(
    config: AppConfig,
) -> tuple[dict, SessionManager, ReminderScheduler | None, list[Callable[[], None]]]:
    """Construct every client and service from Vault-held settings."""
    postgres = PostgresClient(get_database_url(), statement_timeout_ms=config.statement_timeout_ms)
    valkey = ValkeyClient(get_valkey_url())
    email_client = EmailGatewayClient(**get_email_config())

    audit = AuditLogger(postgres)
    security_logger = SecurityLogger(postgres)
    notifier = Notifier(email_client, app_name=config.access_links.app_name)
    link_db = LinkDatabase(postgres)
    ledger_db = LedgerDatabase(postgres)

    notification_executor = ThreadPoolExecutor(
        max_workers=config.notification_workers,
        thread_name_prefix="casedesk-notify",
    )
    event_bus = EventBus(notification_executor)
    event_bus.subscribe("PaymentReceived", handle_payment_received(notifier, ledger_db))

    link_service = AccessLinkService(
        link_db,
        audit,
        security_logger,
        notifier,
        CapabilityIssuer(get_token_signing_key()),
        config.access_links,
        rate_limiter=RateLimiter(valkey, config.access_links),
        executor=notification_executor,
    )
    invoice_service = InvoiceService(ledger_db, audit, config.ledger)
    ledger = InvoiceLedger(ledger_db, audit, event_bus)

    scheduler = None
    if config.scheduler.enabled:
        scheduler = ReminderScheduler(
            link_service,
            invoice_service,
            ledger_db,
            notifier,
            config.scheduler,
            config.ledger,
        )

    services = {
        "access_link": link_service,
        "invoice": invoice_service,
        "ledger": ledger,
    }
    # Drain pending emails before the pool they read from closes
    closers = [partial(notification_executor.shutdown, wait=True), postgres.close, valkey.close]
    return services, SessionManager(valkey, config.session), scheduler, closers


def create_production_app() -> FastAPI:
    configure_logging()
    config = AppConfig()
    services, session_manager, scheduler, closers = build_services(config)
    logger.info("Case Desk API configured")
    return create_app(services, session_manager, scheduler, on_shutdown=closers)
