"""Request context for log correlation.

Stores the platform user and chat of the update or request being handled in
ContextVars so that every log record emitted while handling it can carry them.
"""
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_user_id_var: ContextVar[Optional[int]] = ContextVar("user_id", default=None)
_chat_id_var: ContextVar[Optional[int]] = ContextVar("chat_id", default=None)


def get_request_id() -> Optional[str]:
    return _request_id_var.get()


def get_user_id() -> Optional[int]:
    return _user_id_var.get()


def get_chat_id() -> Optional[int]:
    return _chat_id_var.get()


@contextmanager
def request_context(
    user_id: Optional[int] = None,
    chat_id: Optional[int] = None,
    request_id: Optional[str] = None,
) -> Iterator[str]:
    """Bind request identifiers for the duration of the block.

    Args:
        user_id: Platform user id, if known
        chat_id: Platform chat id, if known
        request_id: Correlation id; a new one is generated when omitted

    Yields:
        The request id in effect
    """
    request_id = request_id or uuid.uuid4().hex
    tokens = (
        _request_id_var.set(request_id),
        _user_id_var.set(user_id),
        _chat_id_var.set(chat_id),
    )
    try:
        yield request_id
    finally:
        _chat_id_var.reset(tokens[2])
        _user_id_var.reset(tokens[1])
        _request_id_var.reset(tokens[0])
