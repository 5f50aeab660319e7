"""Pydantic schemas for admin endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from src.domain.survey import AnswerType, Question, Survey


class UserItem(BaseModel):
    guid: str
    nick_name: str
    completed_tests: int
    answered_questions: int
    registered_at: datetime
    last_activity: datetime


class UsersListResponse(BaseModel):
    users: List[UserItem]
    total: int


class QuestionSchema(BaseModel):
    text: str
    answer_type: str
    possible_answers: List[int] = Field(default_factory=list)
    answers_text: List[str] = Field(default_factory=list)

    @field_validator("answer_type")
    @classmethod
    def validate_answer_type(cls, value: str) -> str:
        valid = [t.value for t in AnswerType]
        if value not in valid:
            raise ValueError(f"answer_type must be one of: {valid}")
        return value


class SurveyRequest(BaseModel):
    name: str
    description: str
    calculations_type: str
    questions: List[QuestionSchema] = Field(..., min_length=1)

    def to_domain(self) -> Survey:
        return Survey(
            name=self.name,
            description=self.description,
            calculations_type=self.calculations_type,
            questions=[Question.from_dict(q.model_dump()) for q in self.questions],
        )


class SurveyResponse(BaseModel):
    guid: str
    id: int
    name: str
    description: str
    calculations_type: str
    questions: List[QuestionSchema]
    deleted_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, survey: Survey) -> "SurveyResponse":
        return cls(
            guid=str(survey.guid),
            id=survey.id,
            name=survey.name,
            description=survey.description,
            calculations_type=survey.calculations_type,
            questions=[QuestionSchema(**q.to_dict()) for q in survey.questions],
            deleted_at=survey.deleted_at,
        )
