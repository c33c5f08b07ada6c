"""Utility modules for cross-cutting concerns."""

from utils.timezone import Clock, now_utc, to_utc, to_local, format_local_date, parse_iso
from utils.user_context import (
    peek_current_actor,
    set_current_actor,
    clear_current_actor,
)
