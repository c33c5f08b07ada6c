"""Authentication and authorization modules."""

from auth.exceptions import (
    AuthError,
    RateLimitedError,
    SessionExpiredError,
)
from auth.types import Session
from auth.config import (
    AppConfig,
    AccessLinkConfig,
    LedgerConfig,
    SchedulerConfig,
    SessionConfig,
)
from auth.capability import CapabilityIssuer
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.session import SessionManager
from auth.security_middleware import AuthMiddleware
from auth.api import create_auth_router
