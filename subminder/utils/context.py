from contextvars import ContextVar, Token
from typing import Optional

# Request id of the scheduled run (or manual replay) currently executing.
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current run's request ID from context."""
    return request_id_context.get()


def set_request_id(request_id: Optional[str]) -> Token:
    """Set the run's request ID in context and return the reset token."""
    return request_id_context.set(request_id)


def reset_request_id(token: Token) -> None:
    request_id_context.reset(token)
