"""Exception hierarchy for the survey bot."""

from typing import Optional


class SurveyBotError(Exception):
    """Base class for all survey bot errors."""


class NotFoundError(SurveyBotError):
    """Raised when a user, survey or survey state does not exist."""


class AlreadyExistsError(SurveyBotError):
    """Raised when creating an entity that collides with an existing one."""


class RepositoryError(SurveyBotError):
    """Raised when the persistence layer fails for any other reason."""


class SurveyValidationError(SurveyBotError):
    """Raised when a survey or question definition is malformed."""

    def __init__(self, message: str, question_index: Optional[int] = None):
        self.question_index = question_index
        if question_index is not None:
            message = f"question {question_index}: {message}"
        super().__init__(message)


class UnknownScoringTypeError(SurveyValidationError):
    """Raised when a survey references a scoring type that is not registered."""

    def __init__(self, scoring_type: str):
        self.scoring_type = scoring_type
        super().__init__(f"unknown calculations type: {scoring_type}")


class AnswerParseError(SurveyBotError):
    """Base class for rejected user answers."""


class AnswerNotANumberError(AnswerParseError):
    """The answer (or one of its tokens) is not an integer."""


class AnswerOutOfRangeError(AnswerParseError):
    """A segment answer lies outside the question's bounds."""


class AnswerNotFoundError(AnswerParseError):
    """A select/multiselect answer is not among the question's codes."""


class SurveyAlreadyFinishedError(SurveyBotError):
    """The user tried to pick a survey they have already completed."""


class NoCurrentSurveyError(SurveyBotError):
    """The user sent an answer without picking a survey first."""


class SurveyStateError(SurveyBotError):
    """A stored survey state violates its invariants."""


class SurveyStructureChangedError(SurveyBotError):
    """An update tried to change the number of questions of a survey."""


class SurveyStateConflictError(SurveyBotError):
    """A conditional state update matched no row."""
