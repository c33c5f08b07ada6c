"""Public routes for access-link holders.

These run without a staff session. The link id in the path identifies the
link; the six digit secret is exchanged for a capability token, which must be
sent as a Bearer token with the submission.
"""

import ipaddress
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from api.base import success_response
from api.middleware import request_id_of
from core.errors import InvalidCapabilityError
from core.models import LinkSubmission


class VerifyRequest(BaseModel):
    secret: str = Field(..., min_length=1, max_length=32)


def get_client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidCapabilityError("Bearer token required")
    return token.strip()


def create_public_links_router(link_service) -> APIRouter:
    router = APIRouter(prefix="/public/links", tags=["public-links"])

    @router.get("/{link_id}")
    def describe_link(request: Request, link_id: UUID):
        view = link_service.describe(link_id)
        return success_response(view.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    @router.post("/{link_id}/verify")
    def verify_link(request: Request, link_id: UUID, body: VerifyRequest):
        grant = link_service.verify(link_id, body.secret, client_ip=get_client_ip(request))
        return success_response(grant.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    @router.post("/{link_id}/submit")
    def submit_through_link(request: Request, link_id: UUID, body: LinkSubmission):
        receipt = link_service.consume(
            _bearer_token(request),
            body,
            link_id=link_id,
            client_ip=get_client_ip(request),
        )
        return success_response(receipt.model_dump(mode="json"), request_id_of(request)).model_dump(mode="json")

    return router
