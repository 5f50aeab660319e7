"""Database models."""

from src.database.models.survey import SurveyRecord, SurveyStateRecord, UserRecord

__all__ = [
    "SurveyRecord",
    "SurveyStateRecord",
    "UserRecord",
]
