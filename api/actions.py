"""POST /api/actions: unified mutation endpoint for staff."""

from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel

from api.base import success_response
from api.middleware import request_id_of
from core.models import (
    AccessLinkCreate,
    Actor,
    InvoiceCreate,
    PaymentCreate,
    PaymentUpdate,
)


class ActionRequest(BaseModel):
    domain: str
    action: str
    data: dict


def current_actor(request: Request) -> Actor:
    """Actor resolved by AuthMiddleware for this request."""
    actor = getattr(request.state, "actor", None)
    if actor is None:
        raise RuntimeError("No actor on request; AuthMiddleware is not installed")
    return actor


def create_actions_router(services: dict) -> APIRouter:
    router = APIRouter()

    handlers = {
        "access_link": AccessLinkHandler(services["access_link"]),
        "invoice": InvoiceHandler(services["invoice"]),
        "payment": PaymentHandler(services["ledger"]),
    }

    @router.post("/actions")
    def perform_action(request: Request, body: ActionRequest):
        handler = handlers.get(body.domain)
        if handler is None:
            raise ValueError(
                f"Unknown domain '{body.domain}'. "
                f"Valid domains: {', '.join(sorted(handlers.keys()))}"
            )

        if body.action not in handler.ALLOWED_ACTIONS:
            raise ValueError(
                f"Action '{body.action}' not allowed on '{body.domain}'. "
                f"Allowed: {', '.join(sorted(handler.ALLOWED_ACTIONS))}"
            )

        method = getattr(handler, f"_handle_{body.action}")
        result = method(dict(body.data), current_actor(request))
        return success_response(result, request_id_of(request)).model_dump(mode="json")

    return router


def _require_id(data: dict, key: str = "id") -> UUID:
    value = data.pop(key, None)
    if value is None:
        raise ValueError(f"'{key}' is required")
    return UUID(str(value))


# =============================================================================
# HANDLER CLASSES
# =============================================================================


class AccessLinkHandler:
    ALLOWED_ACTIONS = {"create"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict, actor: Actor):
        created = self.service.create(AccessLinkCreate(**data), actor)
        result = created.link.model_dump(mode="json")
        # Shown once so the owner can pass it on if the email never arrives
        result["secret"] = created.secret
        return result


class InvoiceHandler:
    ALLOWED_ACTIONS = {"create", "cancel", "delete"}

    def __init__(self, service):
        self.service = service

    def _handle_create(self, data: dict, actor: Actor):
        invoice = self.service.create(InvoiceCreate(**data), actor)
        return invoice.model_dump(mode="json")

    def _handle_cancel(self, data: dict, actor: Actor):
        invoice = self.service.cancel(_require_id(data), actor, reason=data.get("reason"))
        return invoice.model_dump(mode="json")

    def _handle_delete(self, data: dict, actor: Actor):
        self.service.delete(_require_id(data), actor, cascade=bool(data.get("cascade", False)))
        return {"deleted": True}


class PaymentHandler:
    ALLOWED_ACTIONS = {"add", "update", "delete"}

    def __init__(self, ledger):
        self.ledger = ledger

    def _handle_add(self, data: dict, actor: Actor):
        invoice_id = _require_id(data, "invoice_id")
        result = self.ledger.add_payment(invoice_id, PaymentCreate(**data), actor)
        return result.model_dump(mode="json")

    def _handle_update(self, data: dict, actor: Actor):
        invoice_id = _require_id(data, "invoice_id")
        payment_id = _require_id(data)
        result = self.ledger.update_payment(invoice_id, payment_id, PaymentUpdate(**data), actor)
        return result.model_dump(mode="json")

    def _handle_delete(self, data: dict, actor: Actor):
        invoice_id = _require_id(data, "invoice_id")
        summary = self.ledger.delete_payment(invoice_id, _require_id(data), actor)
        return {"deleted": True, "summary": summary.model_dump(mode="json")}
