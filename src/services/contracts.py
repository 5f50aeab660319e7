"""Collaborator interfaces consumed by the survey service.

The persistence gateway is split into small stores bound to a transaction
handle; the messaging gateway presents output to one chat.
"""

import uuid
from typing import Protocol, Sequence

from src.domain.survey import (
    Question,
    ResultsFilter,
    State,
    Survey,
    SurveyState,
    SurveyStateReport,
    User,
    UserListResponse,
    UserSurveyState,
)


class UserStore(Protocol):
    def get_user_by_id(self, user_id: int) -> User: ...

    def get_user_by_guid(self, guid: uuid.UUID) -> User: ...

    def create_user(self, user: User) -> None: ...

    def update_user_current_survey(self, user_guid: uuid.UUID, survey_guid: uuid.UUID) -> None: ...

    def set_user_current_survey_to_none(self, user_guid: uuid.UUID) -> None: ...

    def update_user_last_activity(self, user_guid: uuid.UUID) -> None: ...


class SurveyStore(Protocol):
    def get_surveys_list(self) -> list[Survey]: ...

    def get_survey(self, guid: uuid.UUID) -> Survey: ...

    def get_survey_by_id(self, survey_id: int) -> Survey: ...

    def get_max_survey_id(self) -> int: ...

    def get_max_questions_count(self) -> int: ...

    def create_survey(self, survey: Survey) -> None: ...

    def update_survey(self, survey: Survey) -> None: ...

    def delete_survey(self, guid: uuid.UUID) -> None: ...


class SurveyStateStore(Protocol):
    def get_user_survey_state(
        self, user_guid: uuid.UUID, survey_guid: uuid.UUID, states: Sequence[State]
    ) -> SurveyState: ...

    def get_user_survey_states(
        self, user_guid: uuid.UUID, states: Sequence[State]
    ) -> list[SurveyState]: ...

    def create_user_survey_state(self, state: SurveyState) -> None: ...

    def update_active_user_survey_state(self, state: SurveyState) -> None: ...

    def delete_user_survey_state(self, user_guid: uuid.UUID, survey_guid: uuid.UUID) -> None: ...

    def get_finished_surveys(
        self, results_filter: ResultsFilter, limit: int, offset: int
    ) -> list[SurveyStateReport]: ...

    def get_completed_surveys(self, user_guid: uuid.UUID) -> list[SurveyStateReport]: ...

    def get_users_list(self, limit: int, offset: int, search: str) -> UserListResponse: ...


class Transaction(UserStore, SurveyStore, SurveyStateStore, Protocol):
    """A unit of work exposing every store."""

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def close(self) -> None: ...


class Repository(Protocol):
    def begin_tx(self) -> Transaction: ...


class MessagingGateway(Protocol):
    def send_survey_list(self, chat_id: int, states: list[UserSurveyState]) -> None: ...

    def send_survey_question(self, chat_id: int, question: Question) -> None: ...

    def send_message(self, chat_id: int, text: str) -> None: ...

    def send_file(self, chat_id: int, path: str) -> None: ...
