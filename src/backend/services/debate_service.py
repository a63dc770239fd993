"""
Debate use cases.

Coordinates the repository, the eligibility gate, the vote ledger and the
result projector. Participants are only ever identified by their hash here.
"""

from datetime import timedelta
from typing import Optional

import structlog

from core.clock import Clock, ensure_aware, utcnow
from core.config import settings
from core.exceptions import InvalidSubmissionError, NotEligibleError, NotFoundError, UnauthorizedError
from core.security import DEBATE_ADMIN_TOKEN, create_owner_token, hash_password, verify_password
from models.cosmos_documents import (
    DebateAdminResults,
    DebateDocument,
    DebateSettings,
    OpinionDocument,
    VoteOptionDocument,
)
from repositories.provider import DebateRepositoryProtocol
from schemas.debate import DebateCreate, DebateUpdate
from services import vote_ledger
from services.eligibility import current_debate_status
from services.vote_ledger import Voter

logger = structlog.get_logger(__name__)


def _short(participant_hash: str) -> str:
    return participant_hash[:12]


class DebateService:
    """Debate lifecycle, voting and opinions."""

    def __init__(self, debates: DebateRepositoryProtocol, clock: Clock = utcnow):
        self.debates = debates
        self.clock = clock

    # ========================================================================
    # Creation and lookup
    # ========================================================================

    async def create_debate(self, data: DebateCreate, participant_hash: str) -> DebateDocument:
        now = self.clock()
        start_at = ensure_aware(data.start_at) if data.start_at else now

        debate = DebateDocument(
            title=data.title.strip(),
            description=data.description,
            category=data.category,
            tags=[tag.strip() for tag in data.tags if tag.strip()],
            author_nickname=data.author_nickname or "anonymous",
            author_hash=participant_hash,
            admin_password_hash=hash_password(data.admin_password),
            vote_options=[
                VoteOptionDocument(label=label.strip(), order=index) for index, label in enumerate(data.vote_options)
            ],
            settings=DebateSettings(**data.settings.model_dump()),
            start_at=start_at,
            end_at=ensure_aware(data.end_at),
            created_at=now,
            updated_at=now,
        )
        debate.status = current_debate_status(debate, now)
        debate.public_url = f"{settings.frontend_base_url}/debates/{debate.id}"
        debate.admin_url = f"{settings.frontend_base_url}/debates/{debate.id}/admin"

        created = await self.debates.create(debate)
        logger.info("debate_created", debate_id=created.id, creator=_short(participant_hash))
        return created

    async def get_debate(self, debate_id: str, count_view: bool = False) -> DebateDocument:
        debate = await self.debates.get_by_id(debate_id)
        if debate is None:
            raise NotFoundError("Debate not found")
        if count_view:
            await self.debates.increment_view_count(debate_id)
        return debate

    async def list_debates(self, limit: int = 20, category: Optional[str] = None) -> list[DebateDocument]:
        return await self.debates.list_public(limit=limit, category=category)

    # ========================================================================
    # Participation
    # ========================================================================

    async def cast_vote(
        self,
        debate_id: str,
        option_ids: list[str],
        participant_hash: str,
        voter: Voter = vote_ledger.ANONYMOUS,
    ) -> DebateDocument:
        now = self.clock()
        try:
            debate = await self.debates.apply(
                debate_id,
                lambda current: vote_ledger.cast_vote(current, option_ids, participant_hash, now, voter),
            )
        except NotEligibleError as e:
            logger.info("vote_rejected", debate_id=debate_id, participant=_short(participant_hash), reason=e.code)
            raise

        logger.info(
            "vote_cast",
            debate_id=debate_id,
            participant=_short(participant_hash),
            options=len(option_ids),
            total_votes=debate.stats.total_votes,
        )
        return debate

    async def add_opinion(
        self,
        debate_id: str,
        content: str,
        participant_hash: str,
        nickname: Optional[str] = None,
        selected_option_id: Optional[str] = None,
    ) -> OpinionDocument:
        now = self.clock()
        added: list[OpinionDocument] = []

        def mutate(current: DebateDocument) -> DebateDocument:
            updated, opinion = vote_ledger.add_opinion(
                current, content, participant_hash, now, nickname=nickname, selected_option_id=selected_option_id
            )
            # Only the attempt that wins the write is kept
            added[:] = [opinion]
            return updated

        await self.debates.apply(debate_id, mutate)
        logger.info("opinion_added", debate_id=debate_id, participant=_short(participant_hash))
        return added[0]

    # ========================================================================
    # Owner operations
    # ========================================================================

    async def verify_owner(self, debate_id: str, password: str) -> str:
        """Exchange the admin password for an owner token."""
        debate = await self.get_debate(debate_id)
        if not verify_password(password, debate.admin_password_hash):
            logger.warning("owner_verification_failed", debate_id=debate_id)
            raise UnauthorizedError("Incorrect password")
        return create_owner_token(
            DEBATE_ADMIN_TOKEN, debate_id, expires_delta=timedelta(hours=settings.ADMIN_TOKEN_EXPIRE_HOURS)
        )

    async def update_debate(self, debate_id: str, changes: DebateUpdate) -> DebateDocument:
        now = self.clock()

        def mutate(current: DebateDocument) -> DebateDocument:
            updated = current.model_copy(deep=True)
            if changes.title is not None:
                updated.title = changes.title.strip()
            if changes.description is not None:
                updated.description = changes.description
            if changes.start_at is not None:
                updated.start_at = ensure_aware(changes.start_at)
            if changes.end_at is not None:
                updated.end_at = ensure_aware(changes.end_at)
            if ensure_aware(updated.end_at) < ensure_aware(updated.start_at):
                raise InvalidSubmissionError("end_at must not be before start_at")
            if changes.settings is not None:
                updated.settings = DebateSettings(**changes.settings.model_dump())

            if changes.is_hidden is not None and changes.is_hidden != updated.is_hidden:
                if changes.is_hidden:
                    # Freeze the status as of hiding
                    updated.status = current_debate_status(updated, now)
                updated.is_hidden = changes.is_hidden
            if not updated.is_hidden:
                updated.status = current_debate_status(updated, now)

            updated.updated_at = now
            return updated

        debate = await self.debates.apply(debate_id, mutate)
        logger.info("debate_updated", debate_id=debate_id, fields=sorted(changes.model_fields_set))
        return debate

    async def remove_opinion(self, debate_id: str, opinion_id: str) -> DebateDocument:
        now = self.clock()
        debate = await self.debates.apply(debate_id, lambda current: vote_ledger.remove_opinion(current, opinion_id, now))
        logger.info("opinion_removed", debate_id=debate_id, opinion_id=opinion_id)
        return debate

    async def delete_debate(self, debate_id: str) -> None:
        """Soft delete. Terminal: a deleted debate is never served again."""
        now = self.clock()

        def mutate(current: DebateDocument) -> DebateDocument:
            updated = current.model_copy(deep=True)
            updated.status = current_debate_status(updated, now)
            updated.is_deleted = True
            updated.updated_at = now
            return updated

        await self.debates.apply(debate_id, mutate)
        logger.info("debate_deleted", debate_id=debate_id)

    # ========================================================================
    # Operator overrides
    # ========================================================================

    async def set_admin_results(self, debate_id: str, results: Optional[DebateAdminResults]) -> DebateDocument:
        """Install (or with None, clear) the operator's public tallies."""
        now = self.clock()

        def mutate(current: DebateDocument) -> DebateDocument:
            updated = current.model_copy(deep=True)
            updated.admin_results = results.model_copy(deep=True) if results is not None else None
            updated.updated_at = now
            return updated

        debate = await self.debates.apply(debate_id, mutate)
        if results is None:
            logger.info("admin_results_cleared", debate_id=debate_id)
        else:
            logger.info(
                "admin_results_set",
                debate_id=debate_id,
                agree=results.agree_count,
                disagree=results.disagree_count,
                opinions=len(results.opinions),
            )
        return debate
