"""HTTP routes for the staff session."""

from fastapi import APIRouter, Request, Response

from api.base import success_response
from api.middleware import request_id_of
from auth.session import SessionManager

SESSION_COOKIE = "session_token"


def create_auth_router(session_manager: SessionManager) -> APIRouter:
    """Create auth router with injected session manager."""
    router = APIRouter(prefix="/auth", tags=["auth"])

    @router.post("/logout")
    def logout(request: Request, response: Response):
        """Logout - revoke session and clear cookie."""
        session_token = request.cookies.get(SESSION_COOKIE)
        if session_token:
            session_manager.revoke_session(session_token)

        response.delete_cookie(key=SESSION_COOKIE)
        return success_response({"message": "Logged out successfully"}, request_id_of(request))

    @router.get("/me")
    def get_current_actor(request: Request):
        """The signed-in actor. Requires authentication."""
        actor = request.state.actor
        return success_response(actor.model_dump(mode="json"), request_id_of(request))

    return router
