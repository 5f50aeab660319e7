"""Business logic services."""

from src.services.scoring import ScoringRegistry, default_registry
from src.services.survey_service import ChatContext, SurveyService, read_survey_file

__all__ = [
    "ChatContext",
    "ScoringRegistry",
    "SurveyService",
    "default_registry",
    "read_survey_file",
]
