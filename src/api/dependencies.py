"""FastAPI dependency providers.

Tests replace these through ``app.dependency_overrides``.
"""

import logging
from functools import lru_cache

from src.api.services.telegram_handler import TelegramUpdateHandler
from src.config.settings import AppSettings, get_settings
from src.core.database import get_session_local
from src.database.repository import SqlRepository
from src.services.scoring import default_registry
from src.services.survey_service import SurveyService
from src.services.telegram_gateway import TelegramGateway

logger = logging.getLogger(__name__)


def get_app_settings() -> AppSettings:
    return get_settings()


@lru_cache(maxsize=1)
def get_telegram_gateway() -> TelegramGateway:
    settings = get_settings()
    return TelegramGateway(
        token=settings.telegram_token,
        api_url=settings.telegram.api_url,
        timeout=settings.telegram.request_timeout,
    )


@lru_cache(maxsize=1)
def get_survey_service() -> SurveyService:
    """Build the process-wide survey service."""
    settings = get_settings()
    logger.info("Initializing survey service")
    return SurveyService(
        repository=SqlRepository(get_session_local()),
        gateway=get_telegram_gateway(),
        scoring=default_registry(),
        batch_size=settings.export.chat_batch_size,
    )


def get_update_handler() -> TelegramUpdateHandler:
    settings = get_settings()
    return TelegramUpdateHandler(
        service=get_survey_service(),
        gateway=get_telegram_gateway(),
        admin_user_ids=settings.admin_user_ids,
    )
