"""GET /api/data: unified read endpoint for staff."""

from uuid import UUID

from fastapi import APIRouter, Query, Request

from api.actions import current_actor
from api.base import success_response
from api.middleware import request_id_of
from core.models import AccessLinkStatus, InvoiceStatus


VALID_TYPES = {"access_links", "invoices", "payments"}


def create_data_router(services: dict) -> APIRouter:
    router = APIRouter()

    link_svc = services["access_link"]
    invoice_svc = services["invoice"]
    ledger = services["ledger"]

    @router.get("/data")
    def get_data(
        request: Request,
        type: str | None = Query(None),
        id: str | None = Query(None),
        case_id: str | None = Query(None),
        invoice_id: str | None = Query(None),
        status: str | None = Query(None),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
    ):
        if type is None:
            raise ValueError("'type' query parameter is required")

        if type not in VALID_TYPES:
            raise ValueError(f"Unknown type '{type}'. Valid types: {', '.join(sorted(VALID_TYPES))}")

        actor = current_actor(request)

        if type == "access_links":
            data = _handle_access_links(link_svc, actor, status, case_id, limit, offset)
        elif type == "invoices":
            data = _handle_invoices(invoice_svc, actor, id, status, limit, offset)
        else:
            data = _handle_payments(ledger, actor, invoice_id or id)

        return success_response(data, request_id_of(request)).model_dump(mode="json")

    return router


def _page(items, total: int, limit: int, offset: int) -> dict:
    return {
        "items": [item.model_dump(mode="json") for item in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


def _handle_access_links(link_svc, actor, status, case_id, limit, offset):
    links, total = link_svc.list_links(
        actor,
        status=AccessLinkStatus(status) if status else None,
        case_id=UUID(case_id) if case_id else None,
        limit=limit,
        offset=offset,
    )
    return _page(links, total, limit, offset)


def _handle_invoices(invoice_svc, actor, id, status, limit, offset):
    if id:
        return invoice_svc.get(UUID(id), actor).model_dump(mode="json")

    invoices, total = invoice_svc.list_for_actor(
        actor,
        status=InvoiceStatus(status) if status else None,
        limit=limit,
        offset=offset,
    )
    return _page(invoices, total, limit, offset)


def _handle_payments(ledger, actor, invoice_id):
    if not invoice_id:
        raise ValueError("'payments' type requires 'invoice_id' parameter")
    return ledger.list_payments(UUID(invoice_id), actor).model_dump(mode="json")
