"""Telegram webhook endpoint."""

import hmac
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from src.api.dependencies import get_app_settings, get_update_handler
from src.api.services.telegram_handler import TelegramUpdateHandler
from src.config.settings import AppSettings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/telegram", tags=["telegram"])


@router.post("/webhook")
def telegram_webhook(
    update: dict[str, Any],
    secret_token: Optional[str] = Header(default=None, alias="X-Telegram-Bot-Api-Secret-Token"),
    settings: AppSettings = Depends(get_app_settings),
    handler: TelegramUpdateHandler = Depends(get_update_handler),
):
    """Receive one update from Telegram.

    Always answers 200 once the secret matches, so Telegram does not retry
    updates that failed inside the bot.
    """
    expected = settings.telegram_webhook_secret
    if expected and not hmac.compare_digest(secret_token or "", expected):
        logger.warning("Webhook call with invalid secret token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid secret token")

    handler.handle_update(update)
    return {"ok": True}
