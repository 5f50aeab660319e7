"""Survey progression service.

Every public operation runs as one unit of work: a transaction is opened,
reads and writes happen through it, output goes to the messaging gateway,
and the transaction is committed on success or rolled back on any error.
"""

import csv
import io
import json
import logging
import os
import tempfile
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, TextIO

from src.domain.errors import (
    AnswerNotANumberError,
    AnswerNotFoundError,
    AnswerOutOfRangeError,
    AnswerParseError,
    NoCurrentSurveyError,
    NotFoundError,
    SurveyAlreadyFinishedError,
    SurveyStateError,
    SurveyStructureChangedError,
    SurveyValidationError,
)
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
from src.services import responses
from src.services.contracts import MessagingGateway, Repository, Transaction
from src.services.scoring import ScoringRegistry

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100

EXPORT_HEADER = [
    "survey_guid",
    "survey_name",
    "user_guid",
    "user_id",
    "result_text",
    "result_metadata",
    "started_at",
    "finished_at",
]

PageReader = Callable[[ResultsFilter, int, int], list[SurveyStateReport]]


@dataclass(frozen=True)
class ChatContext:
    """Identity of the chat user issuing a command."""

    user_id: int
    chat_id: int
    nickname: str = ""


def read_survey_file(path: str) -> Survey:
    """Load a survey definition from a JSON file.

    Raises:
        SurveyValidationError: If the file is not valid JSON or not an object
        OSError: If the file cannot be read
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise SurveyValidationError(f"failed to parse survey file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise SurveyValidationError(f"survey file {path} must contain a JSON object")

    return Survey.from_dict(raw)


class SurveyService:
    """Coordinates users, surveys and survey states."""

    def __init__(
        self,
        repository: Repository,
        gateway: Optional[MessagingGateway],
        scoring: ScoringRegistry,
        batch_size: int = DEFAULT_BATCH_SIZE,
        uuid_provider: Callable[[], uuid.UUID] = uuid.uuid4,
    ):
        self.repository = repository
        self.gateway = gateway
        self.scoring = scoring
        self.batch_size = batch_size
        self._uuid_provider = uuid_provider

    @contextmanager
    def _transaction(self) -> Iterator[Transaction]:
        tx = self.repository.begin_tx()
        try:
            yield tx
        except Exception:
            try:
                tx.rollback()
            except Exception:
                logger.error("Failed to rollback transaction", exc_info=True)
            raise
        else:
            tx.commit()
        finally:
            tx.close()

    def _require_gateway(self) -> MessagingGateway:
        if self.gateway is None:
            raise RuntimeError("messaging gateway is not configured")
        return self.gateway

    def _notify(self, chat_id: int, text: str) -> None:
        """Send a message whose delivery failure must not abort the command."""
        try:
            self._require_gateway().send_message(chat_id, text)
        except Exception:
            logger.error("Failed to send message", exc_info=True, extra={"target_chat_id": chat_id})

    def _get_or_create_user(self, tx: Transaction, ctx: ChatContext) -> User:
        try:
            return tx.get_user_by_id(ctx.user_id)
        except NotFoundError:
            user = User(
                guid=self._uuid_provider(),
                user_id=ctx.user_id,
                chat_id=ctx.chat_id,
                nickname=ctx.nickname,
            )
            tx.create_user(user)
            logger.info("Created user", extra={"user_guid": str(user.guid)})
            return user

    def _send_survey_list(self, tx: Transaction, chat_id: int, user: User) -> None:
        surveys = sorted(tx.get_surveys_list(), key=lambda s: s.id)
        by_survey = {
            state.survey_guid: state.state
            for state in tx.get_user_survey_states(user.guid, [State.ACTIVE, State.FINISHED])
        }

        states = [
            UserSurveyState(
                user_guid=user.guid,
                survey=survey,
                state=by_survey.get(survey.guid, State.NOT_STARTED),
                is_current=user.current_survey is not None and survey.guid == user.current_survey,
            )
            for survey in surveys
        ]
        self._require_gateway().send_survey_list(chat_id, states)

    # Chat commands

    def handle_start(self, ctx: ChatContext) -> None:
        with self._transaction() as tx:
            user = self._get_or_create_user(tx, ctx)
            tx.update_user_last_activity(user.guid)
            self._send_survey_list(tx, ctx.chat_id, user)

        logger.info("Handled start command")

    def handle_list(self, ctx: ChatContext) -> None:
        with self._transaction() as tx:
            user = self._get_or_create_user(tx, ctx)
            tx.update_user_last_activity(user.guid)
            self._send_survey_list(tx, ctx.chat_id, user)

    def handle_pick_survey(self, ctx: ChatContext, survey_id: int) -> None:
        """Make a survey current and send its next unanswered question.

        Raises:
            NotFoundError: If no non-deleted survey has this ordinal id
            SurveyAlreadyFinishedError: If the user already completed it
            SurveyStateError: If the stored state has no unanswered question left
        """
        with self._transaction() as tx:
            user = self._get_or_create_user(tx, ctx)
            survey = tx.get_survey_by_id(survey_id)

            try:
                state = tx.get_user_survey_state(
                    user.guid, survey.guid, [State.ACTIVE, State.FINISHED]
                )
            except NotFoundError:
                state = SurveyState(user_guid=user.guid, survey_guid=survey.guid)
                tx.create_user_survey_state(state)

            if state.state == State.FINISHED:
                self._notify(ctx.chat_id, responses.SURVEY_ALREADY_FINISHED)
                raise SurveyAlreadyFinishedError(f"survey {survey.guid} already finished")

            tx.update_user_current_survey(user.guid, survey.guid)
            tx.update_user_last_activity(user.guid)

            question = self._next_question(survey, state)
            self._require_gateway().send_survey_question(ctx.chat_id, question)

        logger.info("Survey picked", extra={"survey_id": survey_id})

    def handle_answer(self, ctx: ChatContext, text: str) -> None:
        """Record an answer to the current survey's next question.

        Raises:
            NoCurrentSurveyError: If the user has not picked a survey
            AnswerParseError: If the text is not a valid answer
            SurveyStateConflictError: If the state changed concurrently
        """
        with self._transaction() as tx:
            user = self._get_or_create_user(tx, ctx)
            tx.update_user_last_activity(user.guid)

            if user.current_survey is None:
                self._notify(ctx.chat_id, responses.CHOOSE_SURVEY)
                raise NoCurrentSurveyError("user does not have current survey")

            state = tx.get_user_survey_state(user.guid, user.current_survey, [State.ACTIVE])
            survey = tx.get_survey(user.current_survey)

            index = len(state.answers)
            question = self._next_question(survey, state)

            try:
                answer = question.parse_answer(text)
            except AnswerParseError as e:
                self._notify(ctx.chat_id, _parse_error_message(e))
                self._resend_question(ctx.chat_id, question)
                raise

            state.answers.append(answer)

            if index == len(survey.questions) - 1:
                results = self.scoring.compute(survey, state.answers)
                tx.set_user_current_survey_to_none(user.guid)
                state.state = State.FINISHED
                state.results = results
                tx.update_active_user_survey_state(state)
                self._notify(ctx.chat_id, results.text)
                logger.info("Survey finished", extra={"survey_guid": str(survey.guid)})
            else:
                tx.update_active_user_survey_state(state)
                self._require_gateway().send_survey_question(
                    ctx.chat_id, survey.questions[index + 1]
                )

    def handle_results(self, ctx: ChatContext, results_filter: ResultsFilter) -> int:
        """Export finished surveys to a CSV file and send it to the chat.

        Returns:
            Number of exported rows
        """
        with self._transaction() as tx:
            tx.get_user_by_id(ctx.user_id)
            logger.info("User requested results export")

            fd, path = tempfile.mkstemp(prefix="results-", suffix=".csv")
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                    total = self._write_finished_surveys(
                        f,
                        results_filter,
                        self.batch_size,
                        tx.get_finished_surveys,
                        tx.get_max_questions_count(),
                    )

                if total == 0:
                    self._notify(ctx.chat_id, responses.NO_RESULTS)
                else:
                    self._require_gateway().send_file(ctx.chat_id, path)
            finally:
                os.remove(path)

        return total

    def _next_question(self, survey: Survey, state: SurveyState) -> Question:
        index = len(state.answers)
        if index >= len(survey.questions):
            raise SurveyStateError(
                f"survey state {state.user_guid}/{state.survey_guid} has {index} answers "
                f"for {len(survey.questions)} questions but is not finished"
            )
        return survey.questions[index]

    def _resend_question(self, chat_id: int, question: Question) -> None:
        try:
            self._require_gateway().send_survey_question(chat_id, question)
        except Exception:
            logger.error("Failed to re-send question", exc_info=True, extra={"target_chat_id": chat_id})

    # Export

    def save_finished_surveys(
        self,
        stream: TextIO,
        results_filter: ResultsFilter,
        batch_size: Optional[int] = None,
    ) -> int:
        """Write every finished survey state in the window to ``stream`` as CSV.

        Each page is read in its own transaction.

        Returns:
            Number of exported rows
        """
        return self._write_finished_surveys(
            stream,
            results_filter,
            batch_size or self.batch_size,
            self._read_page,
            self._answers_count(),
        )

    def iter_finished_surveys_csv(
        self,
        results_filter: ResultsFilter,
        batch_size: Optional[int] = None,
    ) -> Iterator[str]:
        """Yield the CSV export in chunks: the header, then one chunk per page.

        Each page is read in its own transaction when the consumer asks for it.
        """
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(_export_header(self._answers_count()))
        yield _drain(buffer)

        total = 0
        for reports in _pages(results_filter, batch_size or self.batch_size, self._read_page):
            for report in reports:
                writer.writerow(report.to_csv_row())
            total += len(reports)
            yield _drain(buffer)

        logger.info("Streamed finished surveys", extra={"total": total})

    def _read_page(self, results_filter: ResultsFilter, limit: int, offset: int) -> list[SurveyStateReport]:
        with self._transaction() as tx:
            return tx.get_finished_surveys(results_filter, limit, offset)

    def _answers_count(self) -> int:
        with self._transaction() as tx:
            return tx.get_max_questions_count()

    def _write_finished_surveys(
        self,
        stream: TextIO,
        results_filter: ResultsFilter,
        batch_size: int,
        read_page: PageReader,
        answers_count: int,
    ) -> int:
        writer = csv.writer(stream, lineterminator="\n")
        writer.writerow(_export_header(answers_count))

        total = 0
        for reports in _pages(results_filter, batch_size, read_page):
            for report in reports:
                writer.writerow(report.to_csv_row())
            total += len(reports)

        logger.info("Exported finished surveys", extra={"total": total})
        return total

    # Administration

    def create_survey(self, survey: Survey) -> Survey:
        """Validate and store a new survey with the next ordinal id."""
        self.scoring.validate_survey(survey)

        with self._transaction() as tx:
            survey.id = tx.get_max_survey_id() + 1
            survey.guid = self._uuid_provider()
            tx.create_survey(survey)

        logger.info("Survey created", extra={"survey_guid": str(survey.guid), "survey_id": survey.id})
        return survey

    def update_survey(self, survey: Survey) -> Survey:
        """Overlay name, description, questions and calculations type.

        Raises:
            SurveyStructureChangedError: If the number of questions differs
        """
        self.scoring.validate_survey(survey)

        with self._transaction() as tx:
            stored = tx.get_survey(survey.guid)
            if len(stored.questions) != len(survey.questions):
                raise SurveyStructureChangedError(
                    "cannot update survey with different number of questions"
                )

            stored.name = survey.name
            stored.description = survey.description
            stored.questions = survey.questions
            stored.calculations_type = survey.calculations_type
            tx.update_survey(stored)

        logger.info("Survey updated", extra={"survey_guid": str(stored.guid)})
        return stored

    def soft_delete_survey(self, guid: uuid.UUID) -> None:
        with self._transaction() as tx:
            tx.delete_survey(guid)
        logger.info("Survey deleted", extra={"survey_guid": str(guid)})

    def get_user_by_guid(self, guid: uuid.UUID) -> User:
        with self._transaction() as tx:
            return tx.get_user_by_guid(guid)

    def delete_user_survey_state(self, user_guid: uuid.UUID, survey_guid: uuid.UUID) -> None:
        """Remove a user's progress on a survey so it can be taken again."""
        with self._transaction() as tx:
            user = tx.get_user_by_guid(user_guid)
            if user.current_survey == survey_guid:
                tx.set_user_current_survey_to_none(user_guid)
            tx.delete_user_survey_state(user_guid, survey_guid)

        logger.info(
            "Survey state deleted",
            extra={"user_guid": str(user_guid), "survey_guid": str(survey_guid)},
        )

    def get_completed_surveys(self, user_id: int) -> list[SurveyStateReport]:
        with self._transaction() as tx:
            user = tx.get_user_by_id(user_id)
            tx.update_user_last_activity(user.guid)
            return tx.get_completed_surveys(user.guid)

    def get_users_list(self, limit: int, offset: int, search: str = "") -> UserListResponse:
        with self._transaction() as tx:
            return tx.get_users_list(limit, offset, search)


def _parse_error_message(error: AnswerParseError) -> str:
    if isinstance(error, AnswerNotANumberError):
        return responses.ANSWER_NOT_A_NUMBER
    if isinstance(error, AnswerOutOfRangeError):
        return responses.ANSWER_OUT_OF_RANGE
    if isinstance(error, AnswerNotFoundError):
        return responses.ANSWER_NOT_FOUND
    return str(error)


def _export_header(answers_count: int) -> list[str]:
    return EXPORT_HEADER + [f"answer_{i}" for i in range(1, answers_count + 1)]


def _drain(buffer: io.StringIO) -> str:
    chunk = buffer.getvalue()
    buffer.seek(0)
    buffer.truncate(0)
    return chunk


def _pages(
    results_filter: ResultsFilter, batch_size: int, read_page: PageReader
) -> Iterator[list[SurveyStateReport]]:
    """Read pages until an empty one comes back."""
    offset = 0
    while True:
        reports = read_page(results_filter, batch_size, offset)
        if not reports:
            return
        yield reports
        offset += batch_size
