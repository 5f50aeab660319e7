"""Fixtures for HTTP-level tests."""

import json
import time
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import get_app_settings, get_survey_service, get_update_handler
from src.api.main import app
from src.api.services.telegram_handler import TelegramUpdateHandler
from src.api.utils.auth import sign_init_data
from src.config.settings import AppSettings

BOT_TOKEN = "123456:integration-token"
WEBHOOK_SECRET = "webhook-secret"
ADMIN_ID = 900
USER_ID = 1001


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        _env_file=None,
        telegram_token=BOT_TOKEN,
        telegram_webhook_secret=WEBHOOK_SECRET,
        admin_user_ids=[ADMIN_ID],
    )


@pytest.fixture
def client(app_settings, service, gateway):
    """Test client wired to the in-memory service."""
    app.dependency_overrides[get_app_settings] = lambda: app_settings
    app.dependency_overrides[get_survey_service] = lambda: service
    app.dependency_overrides[get_update_handler] = lambda: TelegramUpdateHandler(
        service, gateway, app_settings.admin_user_ids
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_header(user_id: int) -> dict[str, str]:
    fields = {
        "auth_date": str(int(time.time())),
        "user": json.dumps({"id": user_id, "first_name": "Test"}),
    }
    fields["hash"] = sign_init_data(fields, BOT_TOKEN)
    return {"Authorization": f"tma {urlencode(fields)}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return auth_header(ADMIN_ID)


@pytest.fixture
def user_headers() -> dict[str, str]:
    return auth_header(USER_ID)
