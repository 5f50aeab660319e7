"""SQL implementation of the survey bot stores.

``SqlRepository.begin_tx()`` opens a session and wraps it in a
``SqlTransaction`` that implements every store for the duration of one
unit of work. The caller commits, rolls back and closes it.
"""

import functools
import logging
import uuid
from datetime import datetime
from typing import Callable, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.database.models import SurveyRecord, SurveyStateRecord, UserRecord
from src.domain.errors import (
    AlreadyExistsError,
    NotFoundError,
    RepositoryError,
    SurveyBotError,
    SurveyStateConflictError,
)
from src.domain.survey import (
    Answer,
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
    utc_now,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _translate_errors(method):
    """Surface driver failures as RepositoryError."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SurveyBotError:
            raise
        except SQLAlchemyError as e:
            raise RepositoryError(f"{method.__name__} failed: {e}") from e

    return wrapper


def _to_user(record: UserRecord) -> User:
    return User(
        guid=record.guid,
        user_id=record.user_id,
        chat_id=record.chat_id,
        nickname=record.nickname,
        current_survey=record.current_survey,
        last_activity=record.last_activity,
        created_at=record.created_at,
    )


def _to_survey(record: SurveyRecord) -> Survey:
    return Survey(
        guid=record.guid,
        id=record.id,
        name=record.name,
        description=record.description,
        calculations_type=record.calculations_type,
        questions=[Question.from_dict(q) for q in record.questions],
        deleted_at=record.deleted_at,
    )


def _to_state(record: SurveyStateRecord) -> SurveyState:
    return SurveyState(
        user_guid=record.user_guid,
        survey_guid=record.survey_guid,
        state=State(record.state),
        answers=[Answer.from_dict(a) for a in record.answers or []],
        results=Results.from_dict(record.results) if record.results is not None else None,
        version=record.version,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _to_report(state: SurveyStateRecord, survey: SurveyRecord, user: UserRecord) -> SurveyStateReport:
    return SurveyStateReport(
        survey_guid=state.survey_guid,
        survey_name=survey.name,
        description=survey.description,
        user_guid=state.user_guid,
        user_id=user.user_id,
        answers=[Answer.from_dict(a) for a in state.answers or []],
        results=Results.from_dict(state.results) if state.results is not None else None,
        started_at=state.created_at,
        finished_at=state.updated_at,
    )


def _contains_pattern(search: str) -> str:
    """LIKE pattern matching ``search`` literally anywhere; escape char is a backslash."""
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SqlTransaction:
    """One unit of work over a SQLAlchemy session."""

    def __init__(self, session: Session, clock: Clock = utc_now):
        self.session = session
        self._clock = clock

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def close(self) -> None:
        self.session.close()

    # Users

    @_translate_errors
    def get_user_by_id(self, user_id: int) -> User:
        record = self.session.scalars(
            select(UserRecord).where(UserRecord.user_id == user_id)
        ).first()
        if record is None:
            raise NotFoundError(f"user with id {user_id} not found")
        return _to_user(record)

    @_translate_errors
    def get_user_by_guid(self, guid: uuid.UUID) -> User:
        record = self.session.get(UserRecord, guid)
        if record is None:
            raise NotFoundError(f"user {guid} not found")
        return _to_user(record)

    @_translate_errors
    def create_user(self, user: User) -> None:
        now = self._clock()
        self.session.add(
            UserRecord(
                guid=user.guid,
                user_id=user.user_id,
                chat_id=user.chat_id,
                nickname=user.nickname,
                current_survey=user.current_survey,
                last_activity=now,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            self.session.flush()
        except IntegrityError as e:
            raise AlreadyExistsError(f"user {user.guid} ({user.user_id}) already exists") from e

    def _update_user(self, user_guid: uuid.UUID, **values) -> None:
        result = self.session.execute(
            update(UserRecord).where(UserRecord.guid == user_guid).values(**values)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"user {user_guid} not found")

    @_translate_errors
    def update_user_current_survey(self, user_guid: uuid.UUID, survey_guid: uuid.UUID) -> None:
        self._update_user(user_guid, current_survey=survey_guid, updated_at=self._clock())

    @_translate_errors
    def set_user_current_survey_to_none(self, user_guid: uuid.UUID) -> None:
        self._update_user(user_guid, current_survey=None, updated_at=self._clock())

    @_translate_errors
    def update_user_last_activity(self, user_guid: uuid.UUID) -> None:
        self._update_user(user_guid, last_activity=self._clock())

    # Surveys

    @_translate_errors
    def get_surveys_list(self) -> list[Survey]:
        records = self.session.scalars(
            select(SurveyRecord)
            .where(SurveyRecord.deleted_at.is_(None))
            .order_by(SurveyRecord.id)
        ).all()
        return [_to_survey(r) for r in records]

    @_translate_errors
    def get_survey(self, guid: uuid.UUID) -> Survey:
        record = self.session.scalars(
            select(SurveyRecord).where(
                SurveyRecord.guid == guid, SurveyRecord.deleted_at.is_(None)
            )
        ).first()
        if record is None:
            raise NotFoundError(f"survey {guid} not found")
        return _to_survey(record)

    @_translate_errors
    def get_survey_by_id(self, survey_id: int) -> Survey:
        record = self.session.scalars(
            select(SurveyRecord).where(
                SurveyRecord.id == survey_id, SurveyRecord.deleted_at.is_(None)
            )
        ).first()
        if record is None:
            raise NotFoundError(f"survey with id {survey_id} not found")
        return _to_survey(record)

    @_translate_errors
    def get_max_survey_id(self) -> int:
        return self.session.scalar(
            select(func.coalesce(func.max(SurveyRecord.id), 0)).where(
                SurveyRecord.deleted_at.is_(None)
            )
        )

    @_translate_errors
    def get_max_questions_count(self) -> int:
        """Largest question count over all surveys, deleted ones included."""
        counts = [len(questions) for questions in self.session.scalars(select(SurveyRecord.questions))]
        return max(counts, default=0)

    @_translate_errors
    def create_survey(self, survey: Survey) -> None:
        now = self._clock()
        self.session.add(
            SurveyRecord(
                guid=survey.guid,
                id=survey.id,
                name=survey.name,
                description=survey.description,
                calculations_type=survey.calculations_type,
                questions=[q.to_dict() for q in survey.questions],
                created_at=now,
                updated_at=now,
            )
        )
        try:
            self.session.flush()
        except IntegrityError as e:
            raise AlreadyExistsError(f"survey {survey.guid} with id {survey.id} already exists") from e

    @_translate_errors
    def update_survey(self, survey: Survey) -> None:
        result = self.session.execute(
            update(SurveyRecord)
            .where(SurveyRecord.guid == survey.guid, SurveyRecord.deleted_at.is_(None))
            .values(
                name=survey.name,
                description=survey.description,
                calculations_type=survey.calculations_type,
                questions=[q.to_dict() for q in survey.questions],
                updated_at=self._clock(),
            )
        )
        if result.rowcount == 0:
            raise NotFoundError(f"survey {survey.guid} not found")

    @_translate_errors
    def delete_survey(self, guid: uuid.UUID) -> None:
        now = self._clock()
        result = self.session.execute(
            update(SurveyRecord)
            .where(SurveyRecord.guid == guid, SurveyRecord.deleted_at.is_(None))
            .values(deleted_at=now, updated_at=now)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"survey {guid} not found")

    # Survey states

    @_translate_errors
    def get_user_survey_state(
        self, user_guid: uuid.UUID, survey_guid: uuid.UUID, states: Sequence[State]
    ) -> SurveyState:
        record = self.session.scalars(
            select(SurveyStateRecord).where(
                SurveyStateRecord.user_guid == user_guid,
                SurveyStateRecord.survey_guid == survey_guid,
                SurveyStateRecord.state.in_([s.value for s in states]),
            )
        ).first()
        if record is None:
            raise NotFoundError(f"survey state {user_guid}/{survey_guid} not found")
        return _to_state(record)

    @_translate_errors
    def get_user_survey_states(
        self, user_guid: uuid.UUID, states: Sequence[State]
    ) -> list[SurveyState]:
        records = self.session.scalars(
            select(SurveyStateRecord).where(
                SurveyStateRecord.user_guid == user_guid,
                SurveyStateRecord.state.in_([s.value for s in states]),
            )
        ).all()
        return [_to_state(r) for r in records]

    @_translate_errors
    def create_user_survey_state(self, state: SurveyState) -> None:
        now = self._clock()
        self.session.add(
            SurveyStateRecord(
                user_guid=state.user_guid,
                survey_guid=state.survey_guid,
                state=state.state.value,
                answers=[a.to_dict() for a in state.answers],
                results=state.results.to_dict() if state.results is not None else None,
                version=state.version,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            self.session.flush()
        except IntegrityError as e:
            raise AlreadyExistsError(
                f"survey state {state.user_guid}/{state.survey_guid} already exists"
            ) from e

    @_translate_errors
    def update_active_user_survey_state(self, state: SurveyState) -> None:
        """Compare-and-swap on (state = active, version = state.version).

        Raises:
            SurveyStateConflictError: If the row finished or moved on meanwhile
        """
        result = self.session.execute(
            update(SurveyStateRecord)
            .where(
                SurveyStateRecord.user_guid == state.user_guid,
                SurveyStateRecord.survey_guid == state.survey_guid,
                SurveyStateRecord.state == State.ACTIVE.value,
                SurveyStateRecord.version == state.version,
            )
            .values(
                state=state.state.value,
                answers=[a.to_dict() for a in state.answers],
                results=state.results.to_dict() if state.results is not None else None,
                version=SurveyStateRecord.version + 1,
                updated_at=self._clock(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise SurveyStateConflictError(
                f"survey state {state.user_guid}/{state.survey_guid} "
                f"is no longer active at version {state.version}"
            )
        state.version += 1

    @_translate_errors
    def delete_user_survey_state(self, user_guid: uuid.UUID, survey_guid: uuid.UUID) -> None:
        result = self.session.execute(
            delete(SurveyStateRecord).where(
                SurveyStateRecord.user_guid == user_guid,
                SurveyStateRecord.survey_guid == survey_guid,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError(f"survey state {user_guid}/{survey_guid} not found")

    # Aggregates

    @_translate_errors
    def get_finished_surveys(
        self, results_filter: ResultsFilter, limit: int, offset: int
    ) -> list[SurveyStateReport]:
        query = (
            select(SurveyStateRecord, SurveyRecord, UserRecord)
            .join(SurveyRecord, SurveyStateRecord.survey_guid == SurveyRecord.guid)
            .join(UserRecord, SurveyStateRecord.user_guid == UserRecord.guid)
            .where(SurveyStateRecord.state == State.FINISHED.value)
        )
        if results_filter.from_ is not None:
            query = query.where(SurveyStateRecord.updated_at >= results_filter.from_)
        if results_filter.to is not None:
            query = query.where(SurveyStateRecord.updated_at < results_filter.to)

        if results_filter.newest_first:
            ordering = (
                SurveyStateRecord.updated_at.desc(),
                SurveyStateRecord.user_guid.desc(),
                SurveyStateRecord.survey_guid.desc(),
            )
        else:
            ordering = (
                SurveyStateRecord.updated_at,
                SurveyStateRecord.user_guid,
                SurveyStateRecord.survey_guid,
            )

        rows = self.session.execute(query.order_by(*ordering).limit(limit).offset(offset)).all()
        return [_to_report(state, survey, user) for state, survey, user in rows]

    @_translate_errors
    def get_completed_surveys(self, user_guid: uuid.UUID) -> list[SurveyStateReport]:
        rows = self.session.execute(
            select(SurveyStateRecord, SurveyRecord, UserRecord)
            .join(SurveyRecord, SurveyStateRecord.survey_guid == SurveyRecord.guid)
            .join(UserRecord, SurveyStateRecord.user_guid == UserRecord.guid)
            .where(
                SurveyStateRecord.user_guid == user_guid,
                SurveyStateRecord.state == State.FINISHED.value,
            )
            .order_by(SurveyStateRecord.updated_at.desc())
        ).all()
        return [_to_report(state, survey, user) for state, survey, user in rows]

    @_translate_errors
    def get_users_list(self, limit: int, offset: int, search: str) -> UserListResponse:
        pattern = _contains_pattern(search)
        users = self.session.scalars(
            select(UserRecord)
            .where(UserRecord.nickname.ilike(pattern, escape="\\"))
            .order_by(UserRecord.last_activity.desc(), UserRecord.guid)
            .limit(limit)
            .offset(offset)
        ).all()
        total = self.session.scalar(
            select(func.count())
            .select_from(UserRecord)
            .where(UserRecord.nickname.ilike(pattern, escape="\\"))
        )

        completed = {u.guid: 0 for u in users}
        answered = {u.guid: 0 for u in users}
        if users:
            states = self.session.execute(
                select(
                    SurveyStateRecord.user_guid,
                    SurveyStateRecord.state,
                    SurveyStateRecord.answers,
                ).where(SurveyStateRecord.user_guid.in_(list(completed)))
            ).all()
            for user_guid, state, answers in states:
                if state == State.FINISHED.value:
                    completed[user_guid] += 1
                answered[user_guid] += len(answers or [])

        reports = [
            UserReport(
                guid=u.guid,
                nickname=u.nickname,
                completed_tests=completed[u.guid],
                answered_questions=answered[u.guid],
                registered_at=u.created_at,
                last_activity=u.last_activity,
            )
            for u in users
        ]
        return UserListResponse(users=reports, total=total)


class SqlRepository:
    """Opens SQL transactions from a session factory."""

    def __init__(self, session_factory: sessionmaker, clock: Clock = utc_now):
        self._session_factory = session_factory
        self._clock = clock

    def begin_tx(self) -> SqlTransaction:
        try:
            session = self._session_factory()
        except SQLAlchemyError as e:
            raise RepositoryError(f"failed to open transaction: {e}") from e
        return SqlTransaction(session, clock=self._clock)
