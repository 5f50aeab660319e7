"""
Pytest configuration and shared fixtures.

This module provides fixtures that are available to all test modules.
"""

import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.core.database import init_db
from src.database.repository import SqlRepository
from src.domain.survey import Answer, AnswerType, Question, Results, Survey
from src.services.scoring import ScoringRegistry
from src.services.survey_service import ChatContext, SurveyService


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """
    Clear settings cache before each test.

    This ensures each test gets fresh settings.
    """
    from src.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeClock:
    """Deterministic clock; tests move it forward explicitly."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeGateway:
    """Records every outgoing message instead of talking to Telegram."""

    def __init__(self):
        self.calls: list[tuple[str, int, Any]] = []
        self.fail_on: set[str] = set()

    def _record(self, method: str, chat_id: int, payload: Any) -> None:
        if method in self.fail_on:
            raise RuntimeError(f"{method} failed")
        self.calls.append((method, chat_id, payload))

    def send_survey_list(self, chat_id, states):
        self._record("send_survey_list", chat_id, list(states))

    def send_survey_question(self, chat_id, question):
        self._record("send_survey_question", chat_id, question)

    def send_message(self, chat_id, text):
        self._record("send_message", chat_id, text)

    def send_file(self, chat_id, path):
        # The service removes the file after sending, so capture its content now.
        self._record("send_file", chat_id, Path(path).read_text(encoding="utf-8"))

    def answer_callback_query(self, callback_query_id):
        self._record("answer_callback_query", 0, callback_query_id)

    def sent(self, method: str) -> list[Any]:
        return [payload for name, _, payload in self.calls if name == method]

    def last(self) -> tuple[str, int, Any]:
        return self.calls[-1]


def sum_scoring(survey: Survey, answers: list[Answer]) -> Results:
    total = sum(sum(answer.data) for answer in answers)
    return Results(text=f"Сумма: {total}", metadata={"s": total})


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 1, 12, 0, 0))


@pytest.fixture
def repository(session_factory, clock) -> SqlRepository:
    return SqlRepository(session_factory, clock=clock)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def registry() -> ScoringRegistry:
    return ScoringRegistry({"sum": sum_scoring})


@pytest.fixture
def service(repository, gateway, registry) -> SurveyService:
    return SurveyService(repository=repository, gateway=gateway, scoring=registry, batch_size=2)


@pytest.fixture
def ctx() -> ChatContext:
    return ChatContext(user_id=1001, chat_id=2001, nickname="alice")


def make_survey(name: str = "Общий тест", calculations_type: str = "sum") -> Survey:
    """Three questions, one of each answer type."""
    return Survey(
        guid=uuid.uuid4(),
        name=name,
        description="Описание теста",
        calculations_type=calculations_type,
        questions=[
            Question(
                text="Оцените настроение?",
                answer_type=AnswerType.SEGMENT,
                possible_answers=[1, 5],
            ),
            Question(
                text="Как вы спите?",
                answer_type=AnswerType.SELECT,
                possible_answers=[1, 2, 3],
                answers_text=["Плохо", "Нормально", "Хорошо"],
            ),
            Question(
                text="Что вам нравится?",
                answer_type=AnswerType.MULTISELECT,
                possible_answers=[1, 2, 3],
                answers_text=["Спорт", "Книги", "Музыка"],
            ),
        ],
    )


@pytest.fixture
def sample_survey() -> Survey:
    return make_survey()


@pytest.fixture
def stored_survey(service, sample_survey) -> Survey:
    """The sample survey created through the service (ordinal id 1)."""
    return service.create_survey(sample_survey)


@pytest.fixture
def survey_definition() -> dict[str, Any]:
    """Survey file / request body form of the sample survey."""
    return {
        "name": "Общий тест",
        "description": "Описание теста",
        "calculations_type": "sum",
        "questions": [q.to_dict() for q in make_survey().questions],
    }


@pytest.fixture
def survey_factory():
    return make_survey
