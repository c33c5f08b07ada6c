"""Propagate the authenticated actor through the call stack using contextvars."""

from contextvars import ContextVar

from core.models.actor import Actor

_current_actor: ContextVar[Actor | None] = ContextVar("current_actor", default=None)


def peek_current_actor() -> Actor | None:
    """Actor for this request, or None on public (link-holder) paths and in jobs."""
    return _current_actor.get()


def set_current_actor(actor: Actor) -> None:
    """Called by auth middleware after validating the session."""
    _current_actor.set(actor)


def clear_current_actor() -> None:
    """Must be called in a finally block to prevent context leakage."""
    _current_actor.set(None)
