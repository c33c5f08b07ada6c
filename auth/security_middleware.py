"""Security middleware for FastAPI - session validation and actor context."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from auth.session import SessionManager
from auth.exceptions import SessionExpiredError
from api.base import error_response, ErrorCodes
from utils.user_context import set_current_actor, clear_current_actor


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that validates the staff session and sets actor context.

    For protected routes:
    1. Extracts session token from 'session_token' cookie
    2. Validates session via SessionManager
    3. Sets the actor in request.state and the actor context
    4. Clears context after request completes

    Public paths (link-holder routes, health, docs) bypass authentication.
    """

    PUBLIC_PATHS = [
        "/public/links/",
        "/auth/logout",
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, session_manager: SessionManager):
        super().__init__(app)
        self._session_manager = session_manager

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        path = request.url.path

        if self._is_public_path(path):
            return await call_next(request)

        session_token = request.cookies.get("session_token")

        if not session_token:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.NOT_AUTHENTICATED,
                    "Authentication required",
                ).model_dump(mode="json"),
            )

        try:
            session = self._session_manager.validate_session(session_token)
        except SessionExpiredError:
            return JSONResponse(
                status_code=401,
                content=error_response(
                    ErrorCodes.SESSION_EXPIRED,
                    "Session has expired",
                ).model_dump(mode="json"),
            )

        set_current_actor(session.actor)
        request.state.actor = session.actor
        request.state.session = session

        try:
            return await call_next(request)
        finally:
            clear_current_actor()
