"""
Tests for the eligibility gate: status derivation and can-vote/can-respond checks.
"""

from datetime import timedelta

import pytest

from conftest import FIXED_NOW, make_debate, make_survey
from core.exceptions import AlreadyRespondedError, AlreadyVotedError, NotEligibleError, SurveyClosedError
from models.cosmos_documents import DebateStatus, ParticipantRecord, SurveyStatus
from services.eligibility import (
    can_edit_survey,
    can_respond,
    can_vote,
    check_can_respond,
    check_can_vote,
    current_debate_status,
    current_survey_status,
)


@pytest.mark.unit
class TestDebateStatus:
    """Status is a pure function of the window and now."""

    def test_scheduled_then_active_without_writes(self) -> None:
        debate = make_debate(start_at=FIXED_NOW + timedelta(hours=1), end_at=FIXED_NOW + timedelta(hours=2))
        before = debate.model_dump()

        assert current_debate_status(debate, FIXED_NOW) == DebateStatus.SCHEDULED
        assert current_debate_status(debate, FIXED_NOW + timedelta(hours=1, minutes=1)) == DebateStatus.ACTIVE
        assert debate.model_dump() == before

    def test_status_is_repeatable_in_any_order(self) -> None:
        debate = make_debate(start_at=FIXED_NOW, end_at=FIXED_NOW + timedelta(hours=1))
        instants = [FIXED_NOW + timedelta(hours=2), FIXED_NOW - timedelta(hours=1), FIXED_NOW]
        first = [current_debate_status(debate, now) for now in instants]
        second = [current_debate_status(debate, now) for now in reversed(instants)]
        assert first == list(reversed(second))
        assert first == [DebateStatus.ENDED, DebateStatus.SCHEDULED, DebateStatus.ACTIVE]

    def test_window_bounds_are_inclusive(self) -> None:
        start = FIXED_NOW
        end = FIXED_NOW + timedelta(hours=1)
        debate = make_debate(start_at=start, end_at=end)
        assert current_debate_status(debate, start) == DebateStatus.ACTIVE
        assert current_debate_status(debate, end) == DebateStatus.ACTIVE
        assert current_debate_status(debate, end + timedelta(microseconds=1)) == DebateStatus.ENDED

    def test_zero_width_window(self) -> None:
        debate = make_debate(start_at=FIXED_NOW, end_at=FIXED_NOW)
        assert current_debate_status(debate, FIXED_NOW) == DebateStatus.ACTIVE
        assert can_vote(debate, "p", FIXED_NOW)
        assert not can_vote(debate, "p", FIXED_NOW + timedelta(seconds=1))

    def test_hidden_debate_keeps_stored_status(self) -> None:
        debate = make_debate(end_at=FIXED_NOW + timedelta(hours=1))
        debate.status = DebateStatus.ACTIVE
        debate.is_hidden = True
        assert current_debate_status(debate, FIXED_NOW + timedelta(days=30)) == DebateStatus.ACTIVE

    def test_naive_now_treated_as_utc(self) -> None:
        debate = make_debate()
        assert current_debate_status(debate, FIXED_NOW.replace(tzinfo=None)) == DebateStatus.ACTIVE


@pytest.mark.unit
class TestCanVote:
    def test_active_debate_accepts_new_participant(self) -> None:
        check_can_vote(make_debate(), "participant", FIXED_NOW)

    def test_scheduled_debate_rejects(self) -> None:
        debate = make_debate(start_at=FIXED_NOW + timedelta(hours=1), end_at=FIXED_NOW + timedelta(hours=2))
        with pytest.raises(NotEligibleError):
            check_can_vote(debate, "participant", FIXED_NOW)

    def test_ended_debate_rejects(self) -> None:
        debate = make_debate(start_at=FIXED_NOW - timedelta(hours=2), end_at=FIXED_NOW - timedelta(hours=1))
        assert not can_vote(debate, "participant", FIXED_NOW)

    @pytest.mark.parametrize("flag", ["is_hidden", "is_deleted"])
    def test_hidden_or_deleted_rejects(self, flag: str) -> None:
        debate = make_debate()
        setattr(debate, flag, True)
        with pytest.raises(NotEligibleError):
            check_can_vote(debate, "participant", FIXED_NOW)

    def test_limit_reached_raises_already_voted(self) -> None:
        debate = make_debate(max_votes_per_ip=2)
        debate.participants.append(ParticipantRecord(participant_hash="p", vote_count=2))
        with pytest.raises(AlreadyVotedError):
            check_can_vote(debate, "p", FIXED_NOW)
        assert can_vote(debate, "someone-else", FIXED_NOW)

    def test_below_limit_allowed(self) -> None:
        debate = make_debate(max_votes_per_ip=2)
        debate.participants.append(ParticipantRecord(participant_hash="p", vote_count=1))
        assert can_vote(debate, "p", FIXED_NOW)


@pytest.mark.unit
class TestCanRespond:
    def test_open_survey_accepts(self) -> None:
        check_can_respond(make_survey(), False, FIXED_NOW)

    @pytest.mark.parametrize("status", [SurveyStatus.DRAFT, SurveyStatus.CLOSED])
    def test_not_open_rejects_even_admin(self, status: SurveyStatus) -> None:
        survey = make_survey()
        survey.status = status
        with pytest.raises(SurveyClosedError):
            check_can_respond(survey, False, FIXED_NOW, is_admin=True)

    def test_close_at_passed(self) -> None:
        survey = make_survey(close_at=FIXED_NOW - timedelta(minutes=1))
        assert current_survey_status(survey, FIXED_NOW) == SurveyStatus.CLOSED
        assert not can_respond(survey, False, FIXED_NOW)

    def test_duplicate_rejected(self) -> None:
        with pytest.raises(AlreadyRespondedError):
            check_can_respond(make_survey(), True, FIXED_NOW)

    def test_admin_bypasses_duplicate_check(self) -> None:
        assert can_respond(make_survey(), True, FIXED_NOW, is_admin=True)

    def test_response_limit_is_not_eligible(self) -> None:
        survey = make_survey(response_limit=2)
        survey.stats.response_count = 2
        with pytest.raises(NotEligibleError):
            check_can_respond(survey, False, FIXED_NOW, is_admin=True)


@pytest.mark.unit
class TestCanEditSurvey:
    def test_editable_until_first_response(self) -> None:
        survey = make_survey()
        assert can_edit_survey(survey)
        survey.first_response_at = FIXED_NOW
        assert not can_edit_survey(survey)

    def test_frozen_flag(self) -> None:
        survey = make_survey()
        survey.is_editable = False
        assert not can_edit_survey(survey)
