"""
Debate endpoints.

Anyone can create a debate, vote and leave opinions. Owner operations need
the bearer token returned by the verify endpoint (or an operator token).
"""

from datetime import timedelta
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from api.deps import (
    Capability,
    Participant,
    get_capability,
    get_clock,
    get_debate_service,
    get_participant,
    require_debate_owner,
)
from core.clock import Clock
from core.config import settings
from core.security import DEBATE_ADMIN_TOKEN, create_owner_token
from models.cosmos_documents import DebateCategory, DebateDocument
from schemas.debate import (
    DebateCreate,
    DebateCreated,
    DebateDetail,
    DebateSettingsInput,
    DebateSummary,
    DebateUpdate,
    OpinionCreate,
    OwnerToken,
    PasswordVerify,
    VoteCreate,
    VoteOptionView,
    VoteResult,
)
from services.debate_service import DebateService
from services.eligibility import can_vote, current_debate_status
from services.result_projector import DebateResults, OpinionView, project_debate, visible_opinions
from services.vote_ledger import Voter

router = APIRouter()


def debate_to_detail(
    debate: DebateDocument,
    participant_hash: str,
    clock: Clock,
    viewer_is_owner_or_admin: bool = False,
) -> DebateDetail:
    """Convert a stored debate into its public view for one participant."""
    now = clock()
    return DebateDetail(
        id=debate.id,
        title=debate.title,
        description=debate.description,
        category=debate.category,
        tags=debate.tags,
        author_nickname=debate.author_nickname,
        vote_options=[VoteOptionView(id=o.id, label=o.label, order=o.order) for o in debate.sorted_options],
        settings=DebateSettingsInput(**debate.settings.model_dump()),
        start_at=debate.start_at,
        end_at=debate.end_at,
        status=current_debate_status(debate, now),
        is_hidden=debate.is_hidden,
        view_count=debate.stats.view_count,
        can_vote=can_vote(debate, participant_hash, now),
        results=project_debate(debate, now, viewer_is_owner_or_admin),
        opinions=visible_opinions(debate) if debate.settings.allow_opinion else [],
        created_at=debate.created_at,
    )


def debate_to_summary(debate: DebateDocument, clock: Clock) -> DebateSummary:
    return DebateSummary(
        id=debate.id,
        title=debate.title,
        category=debate.category,
        status=current_debate_status(debate, clock()),
        total_votes=debate.stats.total_votes,
        end_at=debate.end_at,
    )


@router.post("", response_model=DebateCreated, status_code=status.HTTP_201_CREATED)
async def create_debate(
    data: DebateCreate,
    participant: Annotated[Participant, Depends(get_participant)],
    service: Annotated[DebateService, Depends(get_debate_service)],
) -> DebateCreated:
    """
    Create a new debate.

    The response carries an owner token so the creator can manage the debate
    without re-entering the admin password.
    """
    debate = await service.create_debate(data, participant.hash)
    token = create_owner_token(
        DEBATE_ADMIN_TOKEN, debate.id, expires_delta=timedelta(hours=settings.ADMIN_TOKEN_EXPIRE_HOURS)
    )
    return DebateCreated(
        id=debate.id,
        public_url=debate.public_url or "",
        admin_url=debate.admin_url or "",
        admin_token=token,
    )


@router.get("", response_model=list[DebateSummary])
async def list_debates(
    service: Annotated[DebateService, Depends(get_debate_service)],
    clock: Annotated[Clock, Depends(get_clock)],
    limit: int = Query(20, ge=1, le=100),
    category: Optional[DebateCategory] = None,
) -> list[DebateSummary]:
    category_value = DebateCategory(category).value if category else None
    debates = await service.list_debates(limit=limit, category=category_value)
    return [debate_to_summary(debate, clock) for debate in debates]


@router.get("/{debate_id}", response_model=DebateDetail)
async def get_debate(
    debate_id: str,
    participant: Annotated[Participant, Depends(get_participant)],
    capability: Annotated[Capability, Depends(get_capability)],
    service: Annotated[DebateService, Depends(get_debate_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> DebateDetail:
    """Debate detail for the calling participant. Counts as a view."""
    debate = await service.get_debate(debate_id, count_view=True)
    return debate_to_detail(debate, participant.hash, clock, capability.can_manage_debate(debate_id))


@router.post("/{debate_id}/vote", response_model=VoteResult)
async def cast_vote(
    debate_id: str,
    ballot: VoteCreate,
    participant: Annotated[Participant, Depends(get_participant)],
    service: Annotated[DebateService, Depends(get_debate_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> VoteResult:
    """
    Cast a ballot.

    Returns the results as this participant may now see them, and whether the
    per-participant limit leaves room for another ballot.
    """
    voter = Voter(nickname=ballot.user_nickname, is_anonymous=ballot.is_anonymous)
    debate = await service.cast_vote(debate_id, ballot.option_ids, participant.hash, voter)
    now = clock()
    return VoteResult(
        results=project_debate(debate, now),
        can_vote_again=can_vote(debate, participant.hash, now),
    )


@router.post("/{debate_id}/opinions", response_model=OpinionView, status_code=status.HTTP_201_CREATED)
async def add_opinion(
    debate_id: str,
    data: OpinionCreate,
    participant: Annotated[Participant, Depends(get_participant)],
    service: Annotated[DebateService, Depends(get_debate_service)],
) -> OpinionView:
    opinion = await service.add_opinion(
        debate_id,
        data.content,
        participant.hash,
        nickname=data.author_nickname,
        selected_option_id=data.selected_option_id,
    )
    return OpinionView(
        author_nickname=opinion.author_nickname,
        content=opinion.content,
        selected_option_id=opinion.selected_option_id,
        created_at=opinion.created_at,
    )


@router.get("/{debate_id}/results", response_model=Optional[DebateResults])
async def get_results(
    debate_id: str,
    capability: Annotated[Capability, Depends(get_capability)],
    service: Annotated[DebateService, Depends(get_debate_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> Optional[DebateResults]:
    """Projected results. Null while hidden until the debate ends."""
    debate = await service.get_debate(debate_id)
    return project_debate(debate, clock(), capability.can_manage_debate(debate_id))


@router.post("/{debate_id}/verify", response_model=OwnerToken)
async def verify_owner(
    debate_id: str,
    data: PasswordVerify,
    service: Annotated[DebateService, Depends(get_debate_service)],
) -> OwnerToken:
    token = await service.verify_owner(debate_id, data.admin_password)
    return OwnerToken(token=token, expires_in=settings.ADMIN_TOKEN_EXPIRE_HOURS * 3600)


# =============================================================================
# Owner endpoints
# =============================================================================


@router.patch("/{debate_id}", response_model=DebateDetail)
async def update_debate(
    debate_id: str,
    changes: DebateUpdate,
    participant: Annotated[Participant, Depends(get_participant)],
    _owner: Annotated[Capability, Depends(require_debate_owner)],
    service: Annotated[DebateService, Depends(get_debate_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> DebateDetail:
    debate = await service.update_debate(debate_id, changes)
    return debate_to_detail(debate, participant.hash, clock, viewer_is_owner_or_admin=True)


@router.delete("/{debate_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_debate(
    debate_id: str,
    _owner: Annotated[Capability, Depends(require_debate_owner)],
    service: Annotated[DebateService, Depends(get_debate_service)],
) -> None:
    await service.delete_debate(debate_id)


@router.delete("/{debate_id}/opinions/{opinion_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_opinion(
    debate_id: str,
    opinion_id: str,
    _owner: Annotated[Capability, Depends(require_debate_owner)],
    service: Annotated[DebateService, Depends(get_debate_service)],
) -> None:
    await service.remove_opinion(debate_id, opinion_id)
