"""Dispatches Telegram updates to the survey service.

This is the outermost guard for chat traffic: rejected commands are logged
and answered, and unexpected failures are logged without propagating so that
Telegram does not redeliver the update.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

from src.core.request_context import get_request_id, request_context
from src.domain.errors import (
    AnswerParseError,
    NoCurrentSurveyError,
    NotFoundError,
    SurveyAlreadyFinishedError,
    SurveyBotError,
)
from src.domain.survey import ResultsFilter
from src.services import responses
from src.services.survey_service import ChatContext, SurveyService
from src.services.telegram_gateway import (
    ANSWER_CALLBACK_PREFIX,
    MENU_CALLBACK,
    SURVEY_CALLBACK_PREFIX,
    TelegramGateway,
)

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"
_SURVEY_ID_RE = re.compile(r"^[0-9]+$")

# Rejections the service has already reported to the user.
EXPECTED_REJECTIONS = (
    AnswerParseError,
    NoCurrentSurveyError,
    SurveyAlreadyFinishedError,
)


class TelegramUpdateHandler:
    """Routes commands, callbacks and free text from one Telegram update."""

    def __init__(
        self,
        service: SurveyService,
        gateway: TelegramGateway,
        admin_user_ids: list[int],
    ):
        self.service = service
        self.gateway = gateway
        self.admin_user_ids = set(admin_user_ids)

    def handle_update(self, update: dict[str, Any]) -> None:
        """Handle one update; never raises."""
        if message := update.get("message"):
            sender = message.get("from") or {}
            chat = message.get("chat") or {}
            text = message.get("text")
            callback_id = None
        elif callback := update.get("callback_query"):
            sender = callback.get("from") or {}
            chat = (callback.get("message") or {}).get("chat") or {}
            text = callback.get("data")
            callback_id = callback.get("id")
        else:
            logger.debug("Ignoring unsupported update", extra={"update_id": update.get("update_id")})
            return

        if not sender.get("id") or text is None:
            logger.debug("Ignoring update without sender or text")
            return

        ctx = ChatContext(
            user_id=int(sender["id"]),
            chat_id=int(chat.get("id") or sender["id"]),
            nickname=sender.get("username") or "",
        )

        with request_context(user_id=ctx.user_id, chat_id=ctx.chat_id, request_id=get_request_id()):
            try:
                if callback_id is not None:
                    self._handle_callback(ctx, text)
                else:
                    self._handle_text(ctx, text)
            except EXPECTED_REJECTIONS as e:
                logger.info(f"Command rejected: {e}", extra={"error_type": type(e).__name__})
            except SurveyBotError as e:
                logger.warning(f"Command failed: {e}", extra={"error_type": type(e).__name__})
            except Exception as e:
                logger.error(f"Unexpected error handling update: {e}", exc_info=True)
            finally:
                if callback_id is not None:
                    self._answer_callback(callback_id)

    def _handle_text(self, ctx: ChatContext, text: str) -> None:
        command, *args = text.strip().split() or [""]
        # Commands may be addressed as /command@botname in groups.
        command = command.split("@", 1)[0]

        if command == "/start":
            logger.info("Handle /start command")
            self.service.handle_start(ctx)
        elif command == "/list":
            logger.info("Handle /list command")
            self.service.handle_list(ctx)
        elif command == "/survey":
            logger.info("Handle /survey command")
            self._handle_survey_command(ctx, args)
        elif command == "/results":
            logger.info("Handle /results command")
            self._handle_results_command(ctx, args)
        else:
            self.service.handle_answer(ctx, text)

    def _handle_callback(self, ctx: ChatContext, data: str) -> None:
        logger.info("Handle callback", extra={"callback_data": data})
        if data == MENU_CALLBACK:
            self.service.handle_list(ctx)
        elif data.startswith(SURVEY_CALLBACK_PREFIX):
            self._pick_survey(ctx, data[len(SURVEY_CALLBACK_PREFIX):])
        elif data.startswith(ANSWER_CALLBACK_PREFIX):
            self.service.handle_answer(ctx, data[len(ANSWER_CALLBACK_PREFIX):])
        else:
            logger.warning("Unknown callback", extra={"callback_data": data})

    def _handle_survey_command(self, ctx: ChatContext, args: list[str]) -> None:
        if len(args) != 1:
            self._reply(ctx, responses.INVALID_NUMBER_OF_ARGUMENTS)
            return
        self._pick_survey(ctx, args[0])

    def _pick_survey(self, ctx: ChatContext, raw_id: str) -> None:
        if not _SURVEY_ID_RE.match(raw_id):
            self._reply(ctx, responses.INVALID_SURVEY_ID)
            return
        try:
            self.service.handle_pick_survey(ctx, int(raw_id))
        except NotFoundError as e:
            logger.info(f"Survey not found: {e}")
            self._reply(ctx, responses.INVALID_SURVEY_ID)

    def _handle_results_command(self, ctx: ChatContext, args: list[str]) -> None:
        if ctx.user_id not in self.admin_user_ids:
            logger.warning("Non-admin user requested results")
            return

        if len(args) > 2:
            self._reply(ctx, responses.INVALID_NUMBER_OF_ARGUMENTS)
            return

        dates: list[Optional[datetime]] = [None, None]
        for i, arg in enumerate(args):
            try:
                dates[i] = datetime.strptime(arg, DATE_FORMAT)
            except ValueError:
                self._reply(ctx, responses.INVALID_DATE_FORMAT)
                return

        self.service.handle_results(ctx, ResultsFilter(from_=dates[0], to=dates[1]))

    def _reply(self, ctx: ChatContext, text: str) -> None:
        try:
            self.gateway.send_message(ctx.chat_id, text)
        except Exception:
            logger.error("Failed to send reply", exc_info=True)

    def _answer_callback(self, callback_id: str) -> None:
        try:
            self.gateway.answer_callback_query(callback_id)
        except Exception:
            logger.error("Failed to answer callback query", exc_info=True)
