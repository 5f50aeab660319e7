"""Scoring engine: a registry of survey calculation types.

A registry is built explicitly and handed to the survey service, so the set
of supported calculation types is fixed when the service is constructed.
"""

import logging
from typing import Callable, Iterable, Optional

from src.domain.errors import UnknownScoringTypeError
from src.domain.survey import Answer, Results, Survey

logger = logging.getLogger(__name__)

ScoringFunction = Callable[[Survey, list[Answer]], Results]


class ScoringRegistry:
    """Maps a survey's ``calculations_type`` to its scoring function."""

    def __init__(self, functions: Optional[dict[str, ScoringFunction]] = None):
        self._functions: dict[str, ScoringFunction] = dict(functions or {})

    def register(self, calculations_type: str, function: ScoringFunction) -> None:
        if not calculations_type:
            raise ValueError("calculations type must not be empty")
        if calculations_type in self._functions:
            raise ValueError(f"calculations type already registered: {calculations_type}")
        self._functions[calculations_type] = function

    def is_registered(self, calculations_type: str) -> bool:
        return calculations_type in self._functions

    def tags(self) -> Iterable[str]:
        return sorted(self._functions)

    def compute(self, survey: Survey, answers: list[Answer]) -> Results:
        """Score a completed answer set.

        The caller guarantees one answer per question.

        Raises:
            UnknownScoringTypeError: If the survey's type is not registered
        """
        function = self._functions.get(survey.calculations_type)
        if function is None:
            raise UnknownScoringTypeError(survey.calculations_type)

        results = function(survey, answers)
        logger.debug(
            "Computed survey results",
            extra={"survey_guid": str(survey.guid), "calculations_type": survey.calculations_type},
        )
        return results

    def validate_survey(self, survey: Survey) -> None:
        """Validate the survey definition and check its type is computable.

        Raises:
            SurveyValidationError: If the survey is malformed or its type unknown
        """
        survey.validate()
        if not self.is_registered(survey.calculations_type):
            raise UnknownScoringTypeError(survey.calculations_type)


def default_registry() -> ScoringRegistry:
    """Registry holding the built-in psychometric questionnaires."""
    from src.services import scoring_formulas

    return ScoringRegistry(
        {
            "test_1": scoring_formulas.burnout_inventory,
            "test_2": scoring_formulas.quality_of_life_index,
            "test_3": scoring_formulas.anxiety_scale,
            "test_4": scoring_formulas.depression_scale,
            "test_5": scoring_formulas.personality_inventory,
            "test_6": scoring_formulas.vocational_types,
        }
    )
