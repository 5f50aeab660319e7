"""Survey, question, answer and progress entities.

Questions and answers are embedded in surveys and survey states and are
persisted as JSON; the ``to_dict``/``from_dict`` pairs define that form.
"""

import json
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from src.domain.errors import (
    AnswerNotANumberError,
    AnswerNotFoundError,
    AnswerOutOfRangeError,
    SurveyValidationError,
)

RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_INTEGER_RE = re.compile(r"^[+-]?[0-9]+$")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
# Sign plus the 19 digits of the widest int64.
_MAX_INTEGER_LENGTH = 20


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching the stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _parse_int(raw: str) -> int:
    token = raw.strip()
    # Length is checked first so int() never sees an oversized digit string.
    if len(token) > _MAX_INTEGER_LENGTH or not _INTEGER_RE.match(token):
        raise AnswerNotANumberError(f"can't parse answer {raw[:32]!r} as a number")
    value = int(token)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise AnswerNotANumberError(f"answer {token} does not fit a 64-bit integer")
    return value


class State(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    FINISHED = "finished"


class AnswerType(str, Enum):
    SEGMENT = "segment"
    SELECT = "select"
    MULTISELECT = "multiselect"


@dataclass
class Answer:
    """A typed response to one question."""

    type: AnswerType
    data: list[int]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "data": list(self.data)}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Answer":
        return cls(type=AnswerType(raw["type"]), data=[int(v) for v in raw["data"]])

    def render(self) -> str:
        """Render for export: scalar kinds as one code, multiselect space-joined."""
        if self.type == AnswerType.MULTISELECT:
            return " ".join(str(v) for v in self.data)
        return str(self.data[0])


@dataclass
class Question:
    """One survey question.

    For ``segment`` questions ``possible_answers`` holds the inclusive
    ``[min, max]`` bounds; for ``select`` and ``multiselect`` it holds the
    enumerated codes, parallel to ``answers_text``.
    """

    text: str
    answer_type: AnswerType
    possible_answers: list[int] = field(default_factory=list)
    answers_text: list[str] = field(default_factory=list)

    def validate(self) -> None:
        """Check the static shape of the question.

        Raises:
            SurveyValidationError: If the question is malformed
        """
        if not self.text:
            raise SurveyValidationError("empty question text")
        if not self.text[0].isupper():
            raise SurveyValidationError("question text should start with uppercase letter")
        if self.text[-1] not in ("?", "."):
            raise SurveyValidationError("question text should end with '?' or '.'")

        if any(not answer_text for answer_text in self.answers_text):
            raise SurveyValidationError("empty answer text")

        if self.answer_type == AnswerType.SEGMENT:
            if len(self.possible_answers) != 2:
                raise SurveyValidationError("possible answers length should be 2")
        elif self.answer_type in (AnswerType.SELECT, AnswerType.MULTISELECT):
            if not self.possible_answers:
                raise SurveyValidationError("empty possible answers")
            if len(self.possible_answers) != len(self.answers_text):
                raise SurveyValidationError("possible answers and answers text length mismatch")
            for code in self.possible_answers:
                if code < 0 or code > len(self.answers_text):
                    raise SurveyValidationError("possible answer is out of range")
        else:
            raise SurveyValidationError(f"unknown answer type: {self.answer_type}")

    def parse_answer(self, raw: str) -> Answer:
        """Convert user text into a typed answer for this question.

        Raises:
            AnswerNotANumberError: Text (or a multiselect token) is not an integer
            AnswerOutOfRangeError: Segment value outside the bounds
            AnswerNotFoundError: Code not among the enumerated answers
        """
        if self.answer_type == AnswerType.SEGMENT:
            value = _parse_int(raw)
            low, high = self.possible_answers
            if value < low or value > high:
                raise AnswerOutOfRangeError(f"answer {value} is out of range [{low}, {high}]")
            return Answer(type=self.answer_type, data=[value])

        if self.answer_type == AnswerType.SELECT:
            value = _parse_int(raw)
            if value not in self.possible_answers:
                raise AnswerNotFoundError(f"answer {value} not found")
            return Answer(type=self.answer_type, data=[value])

        if self.answer_type == AnswerType.MULTISELECT:
            values = [_parse_int(token) for token in raw.split(",")]
            for value in values:
                if value not in self.possible_answers:
                    raise AnswerNotFoundError(f"answer {value} not found")
            if len(set(values)) != len(values):
                raise AnswerNotFoundError("duplicate answers")
            return Answer(type=self.answer_type, data=values)

        raise SurveyValidationError(f"unknown answer type: {self.answer_type}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "answer_type": self.answer_type.value,
            "possible_answers": list(self.possible_answers),
            "answers_text": list(self.answers_text),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Question":
        try:
            answer_type = AnswerType(raw["answer_type"])
        except (KeyError, ValueError) as e:
            raise SurveyValidationError(f"unknown answer type: {raw.get('answer_type')}") from e
        return cls(
            text=raw.get("text", ""),
            answer_type=answer_type,
            possible_answers=[int(v) for v in raw.get("possible_answers") or []],
            answers_text=list(raw.get("answers_text") or []),
        )


@dataclass
class Survey:
    """A questionnaire definition."""

    name: str
    description: str
    calculations_type: str
    questions: list[Question]
    guid: uuid.UUID = field(default_factory=uuid.uuid4)
    id: int = 0
    deleted_at: Optional[datetime] = None

    def validate(self) -> None:
        """Check the survey and every question.

        Raises:
            SurveyValidationError: On the first defect found
        """
        if not self.name:
            raise SurveyValidationError("empty survey name")
        if not self.description:
            raise SurveyValidationError("empty survey description")
        if not self.calculations_type:
            raise SurveyValidationError("empty calculations type")
        if not self.questions:
            raise SurveyValidationError("empty questions")

        for index, question in enumerate(self.questions):
            try:
                question.validate()
            except SurveyValidationError as e:
                raise SurveyValidationError(str(e), question_index=index) from e

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Survey":
        """Build a survey from its file/request form (no identity fields)."""
        questions = raw.get("questions") or []
        if not isinstance(questions, list):
            raise SurveyValidationError("questions must be a list")
        return cls(
            name=raw.get("name", ""),
            description=raw.get("description", ""),
            calculations_type=raw.get("calculations_type", ""),
            questions=[Question.from_dict(q) for q in questions],
        )


@dataclass
class User:
    guid: uuid.UUID
    user_id: int
    chat_id: int
    nickname: str
    current_survey: Optional[uuid.UUID] = None
    last_activity: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class Results:
    """Scoring output: a summary text plus an open map of sub-scores.

    Metadata values are JSON scalars (str, int, float, bool) and survive
    a ``to_dict``/``from_dict`` round trip unchanged.
    """

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "metadata": dict(self.metadata)}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Results":
        return cls(text=raw.get("text", ""), metadata=dict(raw.get("metadata") or {}))


@dataclass
class SurveyState:
    """Progress of one user through one survey."""

    user_guid: uuid.UUID
    survey_guid: uuid.UUID
    state: State = State.ACTIVE
    answers: list[Answer] = field(default_factory=list)
    results: Optional[Results] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class UserSurveyState:
    """A survey as shown in a user's survey list."""

    user_guid: uuid.UUID
    survey: Survey
    state: State
    is_current: bool


@dataclass
class SurveyStateReport:
    """A finished survey state joined with its survey and user."""

    survey_guid: uuid.UUID
    survey_name: str
    description: str
    user_guid: uuid.UUID
    user_id: int
    answers: list[Answer]
    results: Optional[Results]
    started_at: datetime
    finished_at: datetime

    def to_csv_row(self) -> list[str]:
        text, metadata = "", ""
        if self.results is not None:
            text = self.results.text
            metadata = json.dumps(self.results.metadata, ensure_ascii=False, sort_keys=True)

        row = [
            str(self.survey_guid),
            self.survey_name,
            str(self.user_guid),
            str(self.user_id),
            text,
            metadata,
            self.started_at.strftime(RFC3339_FORMAT),
            self.finished_at.strftime(RFC3339_FORMAT),
        ]
        row.extend(answer.render() for answer in self.answers)
        return row


@dataclass
class ResultsFilter:
    """Half-open ``[from_, to)`` window on the update time of finished states."""

    from_: Optional[datetime] = None
    to: Optional[datetime] = None
    newest_first: bool = False


@dataclass
class UserReport:
    guid: uuid.UUID
    nickname: str
    completed_tests: int
    answered_questions: int
    registered_at: datetime
    last_activity: datetime


@dataclass
class UserListResponse:
    users: list[UserReport]
    total: int
