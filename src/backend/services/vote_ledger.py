"""
Vote ledger.

Pure mutations of a DebateDocument. Each function validates first and returns
an updated deep copy, so a rejected ballot never leaves a partial change and
the repository can re-run the mutation against a fresher read on conflict.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.exceptions import (
    InvalidChoiceCountError,
    InvalidOptionError,
    InvalidSubmissionError,
    NotEligibleError,
    NotFoundError,
)
from models.cosmos_documents import (
    CastVote,
    DebateDocument,
    DebateStatus,
    OpinionDocument,
    ParticipantRecord,
)
from services.eligibility import check_can_vote, current_debate_status
from services.rounding import percentage


@dataclass(frozen=True)
class Voter:
    """Optional self-declared identity attached to a ballot."""

    user_id: Optional[str] = None
    nickname: Optional[str] = None
    is_anonymous: bool = True


ANONYMOUS = Voter()


def recompute_debate_aggregates(debate: DebateDocument) -> DebateDocument:
    """
    Re-derive every cached figure from the authoritative lists, in place.

    Idempotent: applying it twice gives the same document.
    """
    for option in debate.vote_options:
        option.vote_count = len(option.votes)

    total = sum(option.vote_count for option in debate.vote_options)
    for option in debate.vote_options:
        option.percentage = percentage(option.vote_count, total)

    debate.stats.total_votes = total
    debate.stats.unique_voters = len(debate.participants)
    debate.stats.opinion_count = sum(1 for opinion in debate.opinions if not opinion.is_deleted)

    vote_times = [record.last_vote_at for record in debate.participants if record.last_vote_at]
    debate.stats.last_vote_at = max(vote_times) if vote_times else None
    return debate


def cast_vote(
    debate: DebateDocument,
    option_ids: list[str],
    participant_hash: str,
    now: datetime,
    voter: Voter = ANONYMOUS,
) -> DebateDocument:
    """
    Record one ballot for one or more options.

    Raises:
        NotEligibleError / AlreadyVotedError: gate rejected the participant
        InvalidChoiceCountError: empty ballot, or several options on a
            single-choice debate
        InvalidOptionError: unknown or repeated option id
    """
    check_can_vote(debate, participant_hash, now)

    if not option_ids:
        raise InvalidChoiceCountError("Select at least one option")
    if len(option_ids) > 1 and not debate.settings.allow_multiple_choice:
        raise InvalidChoiceCountError("Only one option may be selected")
    if len(set(option_ids)) != len(option_ids):
        raise InvalidOptionError("The same option was selected twice")
    for option_id in option_ids:
        if debate.get_option(option_id) is None:
            raise InvalidOptionError(f"Unknown option: {option_id}")

    if voter.is_anonymous and not debate.settings.allow_anonymous_vote:
        raise NotEligibleError("Anonymous votes are not allowed on this debate")

    updated = debate.model_copy(deep=True)
    for option_id in option_ids:
        option = updated.get_option(option_id)
        option.votes.append(
            CastVote(
                user_id=voter.user_id,
                user_nickname=None if voter.is_anonymous else voter.nickname,
                voter_hash=participant_hash,
                is_anonymous=voter.is_anonymous,
                voted_at=now,
            )
        )

    record = updated.get_participant(participant_hash)
    if record is None:
        record = ParticipantRecord(participant_hash=participant_hash)
        updated.participants.append(record)
    record.vote_count += 1
    record.last_vote_at = now

    updated.status = current_debate_status(updated, now)
    updated.updated_at = now
    return recompute_debate_aggregates(updated)


def add_opinion(
    debate: DebateDocument,
    content: str,
    participant_hash: str,
    now: datetime,
    nickname: Optional[str] = None,
    selected_option_id: Optional[str] = None,
) -> tuple[DebateDocument, OpinionDocument]:
    """
    Append a free-text opinion.

    Opinions are accepted while the debate is active and after it has ended,
    but not before it starts.
    """
    if debate.is_deleted or debate.is_hidden:
        raise NotEligibleError("This debate is not available")
    if not debate.settings.allow_opinion:
        raise NotEligibleError("Opinions are disabled for this debate")
    if current_debate_status(debate, now) == DebateStatus.SCHEDULED:
        raise NotEligibleError("This debate has not started yet")
    if selected_option_id is not None and debate.get_option(selected_option_id) is None:
        raise InvalidOptionError(f"Unknown option: {selected_option_id}")

    content = content.strip()
    if not content:
        raise InvalidSubmissionError("Opinion content is empty")

    opinion = OpinionDocument(
        author_nickname=nickname or "anonymous",
        author_hash=participant_hash,
        selected_option_id=selected_option_id,
        content=content,
        is_anonymous=not nickname,
        created_at=now,
    )
    updated = debate.model_copy(deep=True)
    updated.opinions.append(opinion)
    updated.updated_at = now
    return recompute_debate_aggregates(updated), opinion


def remove_opinion(debate: DebateDocument, opinion_id: str, now: datetime) -> DebateDocument:
    """Soft-delete an opinion."""
    updated = debate.model_copy(deep=True)
    for opinion in updated.opinions:
        if opinion.id == opinion_id and not opinion.is_deleted:
            opinion.is_deleted = True
            updated.updated_at = now
            return recompute_debate_aggregates(updated)
    raise NotFoundError("Opinion not found")
