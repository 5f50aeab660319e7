"""Telegram Bot API implementation of the messaging gateway."""

import logging
from pathlib import Path
from typing import Any, Optional

import httpx

from src.domain.survey import AnswerType, Question, State, UserSurveyState
from src.services import responses

logger = logging.getLogger(__name__)

RESULTS_FILE_NAME = "results.csv"
MENU_CALLBACK = "menu"
SURVEY_CALLBACK_PREFIX = "survey_id_"
ANSWER_CALLBACK_PREFIX = "answer_"


class MessagingError(Exception):
    """Raised when the Bot API rejects or fails a request."""


def _button(text: str, callback_data: str) -> list[dict[str, str]]:
    return [{"text": text, "callback_data": callback_data}]


def _menu_row() -> list[dict[str, str]]:
    return _button(responses.BACK_TO_LIST, MENU_CALLBACK)


def render_survey_list(states: list[UserSurveyState]) -> tuple[str, list[list[dict[str, str]]]]:
    """Build the survey list text and its inline keyboard.

    Finished surveys are listed without a button.
    """
    lines = [f"{responses.CHOOSE_SURVEY}:"]
    keyboard = []

    for state in states:
        survey = state.survey
        line = f"{survey.id} - {survey.name}"
        button = _button(survey.name, f"{SURVEY_CALLBACK_PREFIX}{survey.id}")

        if state.is_current:
            lines.append(f"{line} {responses.SUFFIX_CURRENT}")
            keyboard.append(button)
        elif state.state == State.FINISHED:
            lines.append(f"{line} {responses.SUFFIX_FINISHED}")
        elif state.state == State.ACTIVE:
            lines.append(f"{line} {responses.SUFFIX_ACTIVE}")
            keyboard.append(button)
        elif state.state == State.NOT_STARTED:
            lines.append(line)
            keyboard.append(button)
        else:
            raise MessagingError(f"unknown state: {state.state}")

    return "\n".join(lines) + "\n", keyboard


def render_question(question: Question) -> tuple[str, list[list[dict[str, str]]]]:
    """Build the question text and its inline keyboard."""
    lines = [f"{responses.QUESTION_PREFIX}: {question.text}"]
    keyboard = []

    if question.answer_type == AnswerType.SEGMENT:
        low, high = question.possible_answers
        lines.append(f"{responses.SEGMENT_PROMPT}: {low} - {high}")
    elif question.answer_type == AnswerType.SELECT:
        lines.append(responses.SELECT_PROMPT)
        for code, text in zip(question.possible_answers, question.answers_text):
            lines.append(f"{code} - {text}")
            keyboard.append(_button(str(code), f"{ANSWER_CALLBACK_PREFIX}{code}"))
    elif question.answer_type == AnswerType.MULTISELECT:
        lines.append(responses.MULTISELECT_PROMPT)
        for code, text in zip(question.possible_answers, question.answers_text):
            lines.append(f"{code} - {text}")
    else:
        raise MessagingError(f"unknown answer type: {question.answer_type}")

    keyboard.append(_menu_row())
    return "\n".join(lines) + "\n", keyboard


class TelegramGateway:
    """Sends survey output to Telegram chats.

    Args:
        token: Bot token
        api_url: Bot API base URL
        client: Optional preconfigured httpx client (used by tests)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.telegram.org",
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self._base_url = f"{api_url.rstrip('/')}/bot{token}"
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def _call(self, method: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = self._client.post(f"{self._base_url}/{method}", **kwargs)
        except httpx.HTTPError as e:
            raise MessagingError(f"{method} request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise MessagingError(
                f"{method} returned non-JSON response (status {response.status_code})"
            ) from e

        if response.status_code != 200 or not payload.get("ok"):
            raise MessagingError(
                f"{method} failed: {payload.get('description', response.status_code)}"
            )

        logger.debug("Telegram call succeeded", extra={"method": method})
        return payload.get("result") or {}

    def _send_text(self, chat_id: int, text: str, keyboard: list[list[dict[str, str]]]) -> None:
        self._call(
            "sendMessage",
            json={
                "chat_id": chat_id,
                "text": text,
                "reply_markup": {"inline_keyboard": keyboard},
            },
        )

    def send_survey_list(self, chat_id: int, states: list[UserSurveyState]) -> None:
        text, keyboard = render_survey_list(states)
        self._send_text(chat_id, text, keyboard)

    def send_survey_question(self, chat_id: int, question: Question) -> None:
        text, keyboard = render_question(question)
        self._send_text(chat_id, text, keyboard)

    def send_message(self, chat_id: int, text: str) -> None:
        self._send_text(chat_id, text, [_menu_row()])

    def send_file(self, chat_id: int, path: str) -> None:
        with open(Path(path), "rb") as f:
            self._call(
                "sendDocument",
                data={"chat_id": str(chat_id)},
                files={"document": (RESULTS_FILE_NAME, f, "text/csv")},
            )

    def answer_callback_query(self, callback_query_id: str) -> None:
        self._call("answerCallbackQuery", json={"callback_query_id": callback_query_id})
