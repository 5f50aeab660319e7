"""Survey bot database models."""

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)

from src.core.database import Base
from src.domain.survey import utc_now


class UserRecord(Base):
    """A chat platform account known to the bot."""

    __tablename__ = "users"

    guid = Column(Uuid, primary_key=True)
    user_id = Column(BigInteger, nullable=False, unique=True)
    chat_id = Column(BigInteger, nullable=False)
    nickname = Column(String(255), nullable=False, default="")
    current_survey = Column(Uuid, ForeignKey("surveys.guid"), nullable=True)
    last_activity = Column(DateTime, default=utc_now, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    def __repr__(self):
        return f"<UserRecord(guid={self.guid}, user_id={self.user_id}, nickname='{self.nickname}')>"


class SurveyRecord(Base):
    """A questionnaire definition; questions are stored as JSON."""

    __tablename__ = "surveys"

    guid = Column(Uuid, primary_key=True)
    id = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    calculations_type = Column(String(64), nullable=False)
    questions = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    # Ordinal ids are unique among surveys that are not soft-deleted.
    __table_args__ = (
        Index(
            "ix_surveys_id",
            "id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    def __repr__(self):
        return f"<SurveyRecord(guid={self.guid}, id={self.id}, name='{self.name}')>"


class SurveyStateRecord(Base):
    """Progress of one user through one survey.

    The composite primary key allows a single row per (user, survey) pair;
    ``version`` is bumped on every update of an active row.
    """

    __tablename__ = "survey_states"

    user_guid = Column(Uuid, ForeignKey("users.guid", ondelete="CASCADE"), primary_key=True)
    survey_guid = Column(Uuid, ForeignKey("surveys.guid"), primary_key=True)
    state = Column(String(20), nullable=False)
    answers = Column(JSON, nullable=False, default=list)
    results = Column(JSON(none_as_null=True), nullable=True)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        CheckConstraint("state IN ('active', 'finished')", name="check_survey_state_value"),
        CheckConstraint(
            "(state = 'finished') = (results IS NOT NULL)",
            name="check_results_iff_finished",
        ),
        Index("ix_survey_states_state_updated_at", "state", "updated_at"),
    )

    def __repr__(self):
        return (
            f"<SurveyStateRecord(user_guid={self.user_guid}, survey_guid={self.survey_guid}, "
            f"state='{self.state}', version={self.version})>"
        )
