"""Domain entities for surveys, users and survey progress."""

from .survey import (
    Answer,
    AnswerType,
    Question,
    Results,
    ResultsFilter,
    State,
    Survey,
    SurveyState,
    SurveyStateReport,
    User,
    UserListResponse,
    UserReport,
    UserSurveyState,
)

__all__ = [
    "Answer",
    "AnswerType",
    "Question",
    "Results",
    "ResultsFilter",
    "State",
    "Survey",
    "SurveyState",
    "SurveyStateReport",
    "User",
    "UserListResponse",
    "UserReport",
    "UserSurveyState",
]
