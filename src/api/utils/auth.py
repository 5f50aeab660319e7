"""Telegram Mini App authentication.

Requests carry ``Authorization: tma <initData>``; the init data is signed by
Telegram with a key derived from the bot token.
"""

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Optional
from urllib.parse import parse_qsl

from fastapi import Depends, Header, HTTPException, status

from src.api.dependencies import get_app_settings
from src.config.settings import AppSettings

logger = logging.getLogger(__name__)

AUTH_SCHEME = "tma"


class InitDataError(ValueError):
    """Raised when init data is malformed, forged or expired."""


def sign_init_data(fields: dict[str, str], token: str) -> str:
    """Compute the init data hash for ``fields`` (everything except ``hash``)."""
    data_check_string = "\n".join(f"{key}={fields[key]}" for key in sorted(fields))
    secret_key = hmac.new(b"WebAppData", token.encode(), hashlib.sha256).digest()
    return hmac.new(secret_key, data_check_string.encode(), hashlib.sha256).hexdigest()


def validate_init_data(
    init_data: str,
    token: str,
    ttl_seconds: int,
    now: Optional[float] = None,
) -> dict[str, Any]:
    """Check the signature and age of init data and return the Telegram user.

    Raises:
        InitDataError: If the data is malformed, the hash does not match or it expired
    """
    fields = dict(parse_qsl(init_data, keep_blank_values=True))
    received_hash = fields.pop("hash", None)
    if not received_hash:
        raise InitDataError("hash is missing")

    if not hmac.compare_digest(sign_init_data(fields, token), received_hash):
        raise InitDataError("hash mismatch")

    try:
        auth_date = int(fields["auth_date"])
    except (KeyError, ValueError) as e:
        raise InitDataError("auth_date is missing or invalid") from e

    now = time.time() if now is None else now
    if ttl_seconds > 0 and now - auth_date > ttl_seconds:
        raise InitDataError("init data expired")

    try:
        user = json.loads(fields["user"])
        int(user["id"])
    except (KeyError, ValueError, TypeError) as e:
        raise InitDataError("user is missing or invalid") from e

    return user


def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    settings: AppSettings = Depends(get_app_settings),
) -> int:
    """Dependency returning the Telegram user id of the caller."""
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing authorization")

    scheme, _, init_data = authorization.partition(" ")
    if scheme.lower() != AUTH_SCHEME or not init_data:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authorization scheme")

    try:
        user = validate_init_data(
            init_data,
            settings.telegram_token,
            settings.telegram.init_data_ttl_hours * 3600,
        )
    except InitDataError as e:
        logger.info("Rejected init data", extra={"reason": str(e)})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid init data") from e

    return int(user["id"])


def require_admin(
    user_id: int = Depends(get_current_user_id),
    settings: AppSettings = Depends(get_app_settings),
) -> int:
    """Dependency allowing only users on the admin allow-list."""
    if not settings.is_admin(user_id):
        logger.warning("Non-admin access to admin endpoint", extra={"caller_id": user_id})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user_id
