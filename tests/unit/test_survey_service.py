"""Unit tests for the survey service over an in-memory SQLite repository."""

import csv
import io
import uuid
from datetime import datetime
from unittest.mock import patch

import pytest

from src.domain.errors import (
    AnswerNotANumberError,
    AnswerOutOfRangeError,
    NoCurrentSurveyError,
    NotFoundError,
    RepositoryError,
    SurveyAlreadyFinishedError,
    SurveyStateError,
    SurveyStructureChangedError,
    UnknownScoringTypeError,
)
from src.domain.survey import (
    Answer,
    AnswerType,
    Results,
    ResultsFilter,
    State,
    SurveyState,
    User,
)
from src.services import responses
from src.services.survey_service import EXPORT_HEADER, ChatContext


def get_state(repository, user_id, survey_guid):
    tx = repository.begin_tx()
    try:
        user = tx.get_user_by_id(user_id)
        return tx.get_user_survey_state(user.guid, survey_guid, [State.ACTIVE, State.FINISHED])
    finally:
        tx.close()


def get_user(repository, user_id):
    tx = repository.begin_tx()
    try:
        return tx.get_user_by_id(user_id)
    finally:
        tx.close()


def complete_survey(service, ctx, survey):
    service.handle_pick_survey(ctx, survey.id)
    service.handle_answer(ctx, "3")
    service.handle_answer(ctx, "2")
    service.handle_answer(ctx, "1,3")


class TestSurveyList:
    def test_start_creates_user_and_lists_surveys(self, service, gateway, repository, ctx, stored_survey):
        service.handle_start(ctx)

        user = get_user(repository, ctx.user_id)
        assert user.chat_id == ctx.chat_id
        assert user.nickname == "alice"

        [states] = gateway.sent("send_survey_list")
        assert [(s.survey.id, s.state, s.is_current) for s in states] == [
            (1, State.NOT_STARTED, False)
        ]

    def test_start_twice_keeps_one_user(self, service, repository, ctx, stored_survey):
        service.handle_start(ctx)
        first = get_user(repository, ctx.user_id)
        service.handle_start(ctx)

        assert get_user(repository, ctx.user_id).guid == first.guid

    def test_list_marks_current_and_finished(self, service, gateway, ctx, survey_factory):
        first = service.create_survey(survey_factory(name="Первый"))
        second = service.create_survey(survey_factory(name="Второй"))
        service.create_survey(survey_factory(name="Третий"))

        complete_survey(service, ctx, first)
        service.handle_pick_survey(ctx, second.id)
        service.handle_list(ctx)

        states = gateway.sent("send_survey_list")[-1]
        assert [(s.survey.id, s.state, s.is_current) for s in states] == [
            (1, State.FINISHED, False),
            (2, State.ACTIVE, True),
            (3, State.NOT_STARTED, False),
        ]

    def test_deleted_surveys_are_hidden(self, service, gateway, ctx, stored_survey):
        service.soft_delete_survey(stored_survey.guid)
        service.handle_list(ctx)

        assert gateway.sent("send_survey_list")[-1] == []


class TestPickSurvey:
    def test_pick_sends_first_question_and_sets_current(self, service, gateway, repository, ctx, stored_survey):
        service.handle_pick_survey(ctx, stored_survey.id)

        assert gateway.last() == ("send_survey_question", ctx.chat_id, stored_survey.questions[0])
        assert get_user(repository, ctx.user_id).current_survey == stored_survey.guid

        state = get_state(repository, ctx.user_id, stored_survey.guid)
        assert state.state == State.ACTIVE
        assert state.answers == []

    def test_pick_resumes_at_next_unanswered_question(self, service, gateway, ctx, stored_survey):
        service.handle_pick_survey(ctx, stored_survey.id)
        service.handle_answer(ctx, "4")
        service.handle_list(ctx)

        service.handle_pick_survey(ctx, stored_survey.id)

        assert gateway.last() == ("send_survey_question", ctx.chat_id, stored_survey.questions[1])

    def test_pick_unknown_survey(self, service, ctx, stored_survey):
        with pytest.raises(NotFoundError):
            service.handle_pick_survey(ctx, 99)

    def test_pick_deleted_survey(self, service, ctx, stored_survey):
        service.soft_delete_survey(stored_survey.guid)
        with pytest.raises(NotFoundError):
            service.handle_pick_survey(ctx, stored_survey.id)

    def test_pick_finished_survey_is_rejected(self, service, gateway, repository, ctx, stored_survey):
        complete_survey(service, ctx, stored_survey)
        gateway.calls.clear()

        with pytest.raises(SurveyAlreadyFinishedError):
            service.handle_pick_survey(ctx, stored_survey.id)

        assert gateway.calls == [("send_message", ctx.chat_id, responses.SURVEY_ALREADY_FINISHED)]
        state = get_state(repository, ctx.user_id, stored_survey.guid)
        assert state.state == State.FINISHED
        assert get_user(repository, ctx.user_id).current_survey is None

    def test_gateway_failure_rolls_back(self, service, gateway, repository, ctx, stored_survey):
        gateway.fail_on.add("send_survey_question")

        with pytest.raises(RuntimeError):
            service.handle_pick_survey(ctx, stored_survey.id)

        with pytest.raises(NotFoundError):
            get_user(repository, ctx.user_id)

    def test_state_with_all_answers_but_active_fails_closed(
        self, service, repository, ctx, stored_survey
    ):
        user = User(guid=uuid.uuid4(), user_id=ctx.user_id, chat_id=ctx.chat_id, nickname="")
        tx = repository.begin_tx()
        tx.create_user(user)
        tx.create_user_survey_state(
            SurveyState(
                user_guid=user.guid,
                survey_guid=stored_survey.guid,
                answers=[
                    Answer(type=AnswerType.SEGMENT, data=[1]),
                    Answer(type=AnswerType.SELECT, data=[1]),
                    Answer(type=AnswerType.MULTISELECT, data=[1]),
                ],
            )
        )
        tx.update_user_current_survey(user.guid, stored_survey.guid)
        tx.commit()
        tx.close()

        with pytest.raises(SurveyStateError):
            service.handle_pick_survey(ctx, stored_survey.id)
        with pytest.raises(SurveyStateError):
            service.handle_answer(ctx, "1")


class TestAnswer:
    def test_full_walkthrough(self, service, gateway, repository, ctx, stored_survey):
        service.handle_pick_survey(ctx, stored_survey.id)

        service.handle_answer(ctx, "3")
        assert gateway.last() == ("send_survey_question", ctx.chat_id, stored_survey.questions[1])

        service.handle_answer(ctx, "2")
        assert gateway.last() == ("send_survey_question", ctx.chat_id, stored_survey.questions[2])

        service.handle_answer(ctx, "1,3")
        assert gateway.last() == ("send_message", ctx.chat_id, "Сумма: 9")

        state = get_state(repository, ctx.user_id, stored_survey.guid)
        assert state.state == State.FINISHED
        assert state.results == Results(text="Сумма: 9", metadata={"s": 9})
        assert [a.data for a in state.answers] == [[3], [2], [1, 3]]
        assert get_user(repository, ctx.user_id).current_survey is None

    def test_answer_without_current_survey(self, service, gateway, ctx, stored_survey):
        with pytest.raises(NoCurrentSurveyError):
            service.handle_answer(ctx, "1")

        assert gateway.calls == [("send_message", ctx.chat_id, responses.CHOOSE_SURVEY)]

    def test_answer_after_finish_has_no_current_survey(self, service, ctx, stored_survey):
        complete_survey(service, ctx, stored_survey)

        with pytest.raises(NoCurrentSurveyError):
            service.handle_answer(ctx, "1")

    @pytest.mark.parametrize(
        "text,error,message",
        [
            ("abc", AnswerNotANumberError, responses.ANSWER_NOT_A_NUMBER),
            ("9", AnswerOutOfRangeError, responses.ANSWER_OUT_OF_RANGE),
            ("9" * 5000, AnswerNotANumberError, responses.ANSWER_NOT_A_NUMBER),
        ],
    )
    def test_invalid_answer_keeps_state(
        self, service, gateway, repository, ctx, stored_survey, text, error, message
    ):
        service.handle_pick_survey(ctx, stored_survey.id)
        gateway.calls.clear()

        with pytest.raises(error):
            service.handle_answer(ctx, text)

        assert gateway.calls == [
            ("send_message", ctx.chat_id, message),
            ("send_survey_question", ctx.chat_id, stored_survey.questions[0]),
        ]
        state = get_state(repository, ctx.user_id, stored_survey.guid)
        assert state.answers == []
        assert state.version == 0

    def test_answer_bumps_version(self, service, repository, ctx, stored_survey):
        service.handle_pick_survey(ctx, stored_survey.id)
        service.handle_answer(ctx, "3")
        service.handle_answer(ctx, "2")

        assert get_state(repository, ctx.user_id, stored_survey.guid).version == 2

    def test_results_message_failure_still_finishes(self, service, gateway, repository, ctx, stored_survey):
        service.handle_pick_survey(ctx, stored_survey.id)
        service.handle_answer(ctx, "3")
        service.handle_answer(ctx, "2")
        gateway.fail_on.add("send_message")

        service.handle_answer(ctx, "2")

        assert get_state(repository, ctx.user_id, stored_survey.guid).state == State.FINISHED

    def test_users_do_not_share_progress(self, service, repository, ctx, stored_survey):
        other = ChatContext(user_id=1002, chat_id=2002, nickname="bob")
        service.handle_pick_survey(ctx, stored_survey.id)
        service.handle_pick_survey(other, stored_survey.id)
        service.handle_answer(ctx, "5")

        assert len(get_state(repository, ctx.user_id, stored_survey.guid).answers) == 1
        assert get_state(repository, other.user_id, stored_survey.guid).answers == []


class TestAdministration:
    def test_create_assigns_sequential_ids(self, service, survey_factory):
        first = service.create_survey(survey_factory())
        second = service.create_survey(survey_factory())

        assert (first.id, second.id) == (1, 2)
        assert first.guid != second.guid

    def test_create_rejects_unknown_calculations_type(self, service, survey_factory):
        with pytest.raises(UnknownScoringTypeError):
            service.create_survey(survey_factory(calculations_type="test_42"))

    def test_update_overlays_content(self, service, repository, stored_survey, survey_factory):
        changed = survey_factory(name="Новое имя")
        changed.guid = stored_survey.guid
        changed.questions[0].text = "Новый вопрос?"

        updated = service.update_survey(changed)

        assert updated.id == stored_survey.id
        tx = repository.begin_tx()
        stored = tx.get_survey(stored_survey.guid)
        tx.close()
        assert stored.name == "Новое имя"
        assert stored.questions[0].text == "Новый вопрос?"

    def test_update_rejects_different_question_count(self, service, stored_survey, survey_factory):
        changed = survey_factory()
        changed.guid = stored_survey.guid
        changed.questions.pop()

        with pytest.raises(SurveyStructureChangedError):
            service.update_survey(changed)

    def test_update_unknown_survey(self, service, survey_factory):
        with pytest.raises(NotFoundError):
            service.update_survey(survey_factory())

    def test_delete_twice(self, service, stored_survey):
        service.soft_delete_survey(stored_survey.guid)
        with pytest.raises(NotFoundError):
            service.soft_delete_survey(stored_survey.guid)

    def test_delete_state_allows_retake(self, service, gateway, repository, ctx, stored_survey):
        service.handle_pick_survey(ctx, stored_survey.id)
        service.handle_answer(ctx, "3")
        user = get_user(repository, ctx.user_id)

        service.delete_user_survey_state(user.guid, stored_survey.guid)

        assert get_user(repository, ctx.user_id).current_survey is None
        service.handle_pick_survey(ctx, stored_survey.id)
        assert gateway.last() == ("send_survey_question", ctx.chat_id, stored_survey.questions[0])

    def test_delete_missing_state(self, service, repository, ctx, stored_survey):
        service.handle_start(ctx)
        user = get_user(repository, ctx.user_id)

        with pytest.raises(NotFoundError):
            service.delete_user_survey_state(user.guid, stored_survey.guid)

    def test_users_list_aggregates(self, service, ctx, stored_survey, survey_factory):
        second = service.create_survey(survey_factory())
        complete_survey(service, ctx, stored_survey)
        service.handle_pick_survey(ctx, second.id)
        service.handle_answer(ctx, "1")
        service.handle_start(ChatContext(user_id=5, chat_id=5, nickname="bob"))

        result = service.get_users_list(limit=10, offset=0, search="ali")

        assert result.total == 1
        [report] = result.users
        assert report.nickname == "alice"
        assert report.completed_tests == 1
        assert report.answered_questions == 4

    def test_completed_surveys(self, service, ctx, stored_survey):
        complete_survey(service, ctx, stored_survey)

        [report] = service.get_completed_surveys(ctx.user_id)

        assert report.survey_guid == stored_survey.guid
        assert report.results.text == "Сумма: 9"

    def test_completed_surveys_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.get_completed_surveys(424242)


class TestExport:
    """CSV export of finished surveys."""

    def _finish_at(self, service, clock, ctx, survey, when):
        clock.now = when
        complete_survey(service, ctx, survey)

    def _rows(self, service, results_filter, batch_size=None):
        buffer = io.StringIO()
        total = service.save_finished_surveys(buffer, results_filter, batch_size)
        return total, list(csv.reader(io.StringIO(buffer.getvalue())))

    def test_header_only_when_empty(self, service, stored_survey):
        total, rows = self._rows(service, ResultsFilter())

        assert total == 0
        assert rows == [EXPORT_HEADER + ["answer_1", "answer_2", "answer_3"]]

    def test_window_is_half_open(self, service, clock, stored_survey):
        for day in (1, 2, 3):
            ctx = ChatContext(user_id=day, chat_id=day)
            self._finish_at(service, clock, ctx, stored_survey, datetime(2024, 3, day, 10, 0, 0))

        total, rows = self._rows(
            service,
            ResultsFilter(from_=datetime(2024, 3, 2, 10, 0, 0), to=datetime(2024, 3, 3, 10, 0, 0)),
        )

        assert total == 1
        assert rows[1][3] == "2"
        assert rows[1][6:8] == ["2024-03-02T10:00:00Z", "2024-03-02T10:00:00Z"]
        assert rows[1][8:] == ["3", "2", "1 3"]

    def test_pages_cover_every_row_in_order(self, service, clock, stored_survey):
        for user_id in range(1, 6):
            ctx = ChatContext(user_id=user_id, chat_id=user_id)
            self._finish_at(service, clock, ctx, stored_survey, datetime(2024, 3, 1, 10, user_id))

        total, rows = self._rows(service, ResultsFilter(), batch_size=2)

        assert total == 5
        assert [row[3] for row in rows[1:]] == ["1", "2", "3", "4", "5"]

    def test_newest_first(self, service, clock, stored_survey):
        for user_id in range(1, 4):
            ctx = ChatContext(user_id=user_id, chat_id=user_id)
            self._finish_at(service, clock, ctx, stored_survey, datetime(2024, 3, 1, 10, user_id))

        _, rows = self._rows(service, ResultsFilter(newest_first=True))

        assert [row[3] for row in rows[1:]] == ["3", "2", "1"]

    def test_ties_ordered_by_user_guid(self, service, clock, stored_survey):
        when = datetime(2024, 3, 1, 10, 0, 0)
        for user_id in range(1, 5):
            self._finish_at(service, clock, ChatContext(user_id=user_id, chat_id=user_id), stored_survey, when)

        _, rows = self._rows(service, ResultsFilter(), batch_size=3)

        user_guids = [row[2] for row in rows[1:]]
        assert len(user_guids) == 4
        assert user_guids == sorted(user_guids, key=uuid.UUID)

    def test_width_covers_deleted_surveys(self, service, stored_survey, survey_factory):
        longer = survey_factory()
        longer.questions.append(longer.questions[0])
        longer = service.create_survey(longer)
        service.soft_delete_survey(longer.guid)

        _, rows = self._rows(service, ResultsFilter())

        assert rows[0][-1] == "answer_4"

    def test_streamed_chunks_are_one_per_page(self, service, clock, stored_survey):
        for day in (1, 2, 3):
            ctx = ChatContext(user_id=day, chat_id=day)
            self._finish_at(service, clock, ctx, stored_survey, datetime(2024, 3, day, 10, 0, 0))

        chunks = list(service.iter_finished_surveys_csv(ResultsFilter(), batch_size=2))
        _, rows = self._rows(service, ResultsFilter(), batch_size=2)

        assert len(chunks) == 3
        assert chunks[0].count("\n") == 1
        assert list(csv.reader(io.StringIO("".join(chunks)))) == rows

    def test_streamed_pages_are_read_on_demand(self, service, repository, stored_survey):
        chunks = service.iter_finished_surveys_csv(ResultsFilter())
        header = next(chunks)

        with patch.object(repository, "begin_tx", side_effect=RepositoryError("db down")):
            with pytest.raises(RepositoryError):
                next(chunks)

        assert header.startswith("survey_guid,")

    def test_handle_results_sends_file(self, service, gateway, ctx, stored_survey):
        complete_survey(service, ctx, stored_survey)

        total = service.handle_results(ctx, ResultsFilter())

        assert total == 1
        method, chat_id, content = gateway.last()
        assert (method, chat_id) == ("send_file", ctx.chat_id)
        assert content.splitlines()[0].startswith("survey_guid,survey_name,user_guid")
        assert len(content.splitlines()) == 2

    def test_handle_results_without_rows(self, service, gateway, ctx, stored_survey):
        service.handle_start(ctx)

        assert service.handle_results(ctx, ResultsFilter()) == 0
        assert gateway.last() == ("send_message", ctx.chat_id, responses.NO_RESULTS)

    def test_handle_results_requires_known_user(self, service, ctx):
        with pytest.raises(NotFoundError):
            service.handle_results(ctx, ResultsFilter())
