"""
Eligibility gate.

Pure functions deciding a debate's or survey's effective status and whether a
participant may vote or respond. Nothing here reads the wall clock; callers
pass ``now``.
"""

from datetime import datetime

from core.clock import ensure_aware
from core.exceptions import (
    AlreadyRespondedError,
    AlreadyVotedError,
    NotEligibleError,
    SurveyClosedError,
)
from models.cosmos_documents import DebateDocument, DebateStatus, SurveyDocument, SurveyStatus


def current_debate_status(debate: DebateDocument, now: datetime) -> DebateStatus:
    """
    Status implied by the voting window.

    Both window ends are inclusive. Hidden or deleted debates keep whatever
    status was stored when they were hidden.
    """
    if debate.is_hidden or debate.is_deleted:
        return DebateStatus(debate.status)

    now = ensure_aware(now)
    if now < ensure_aware(debate.start_at):
        return DebateStatus.SCHEDULED
    if now <= ensure_aware(debate.end_at):
        return DebateStatus.ACTIVE
    return DebateStatus.ENDED


def current_survey_status(survey: SurveyDocument, now: datetime) -> SurveyStatus:
    """Stored status, except that an open survey past its close_at is closed."""
    status = SurveyStatus(survey.status)
    if survey.is_hidden or survey.is_deleted or status != SurveyStatus.OPEN:
        return status

    close_at = survey.settings.close_at
    if close_at is not None and ensure_aware(now) > ensure_aware(close_at):
        return SurveyStatus.CLOSED
    return status


def check_can_vote(debate: DebateDocument, participant_hash: str, now: datetime) -> None:
    """
    Raise unless the participant may cast another ballot.

    Raises:
        NotEligibleError: debate hidden, deleted or outside its window
        AlreadyVotedError: participant reached max_votes_per_ip
    """
    if debate.is_deleted or debate.is_hidden:
        raise NotEligibleError("This debate is not available")

    status = current_debate_status(debate, now)
    if status == DebateStatus.SCHEDULED:
        raise NotEligibleError("Voting has not started yet")
    if status == DebateStatus.ENDED:
        raise NotEligibleError("Voting has ended")

    # The cap counts ballots; a multiple-choice ballot is one vote towards it.
    record = debate.get_participant(participant_hash)
    if record is not None and record.vote_count >= debate.settings.max_votes_per_ip:
        raise AlreadyVotedError()


def can_vote(debate: DebateDocument, participant_hash: str, now: datetime) -> bool:
    try:
        check_can_vote(debate, participant_hash, now)
    except NotEligibleError:
        return False
    return True


def check_can_respond(
    survey: SurveyDocument,
    already_responded: bool,
    now: datetime,
    is_admin: bool = False,
) -> None:
    """
    Raise unless a response may be accepted.

    Administrators skip only the duplicate check; a closed survey or a reached
    response limit applies to them too.

    Raises:
        SurveyClosedError: not open, hidden, deleted, past close_at or full
        AlreadyRespondedError: participant already has a live response
    """
    if survey.is_deleted or survey.is_hidden:
        raise SurveyClosedError("This survey is not available")

    if current_survey_status(survey, now) != SurveyStatus.OPEN:
        raise SurveyClosedError()

    limit = survey.settings.response_limit
    if limit is not None and survey.stats.response_count >= limit:
        raise SurveyClosedError("This survey has reached its response limit")

    if already_responded and not is_admin:
        raise AlreadyRespondedError()


def can_respond(
    survey: SurveyDocument,
    already_responded: bool,
    now: datetime,
    is_admin: bool = False,
) -> bool:
    try:
        check_can_respond(survey, already_responded, now, is_admin=is_admin)
    except (NotEligibleError, AlreadyRespondedError):
        return False
    return True


def can_edit_survey(survey: SurveyDocument) -> bool:
    """Questions are frozen from the first response on."""
    return survey.is_editable and survey.first_response_at is None
