"""
Survey use cases.

Response submission is a two-document operation: the response is inserted
first (the unique key makes that the exactly-once step), then the survey's
cached stats are folded forward. If the second step cannot complete, the
stats are repaired later by ``reconcile_stats``.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog

from core.clock import Clock, ensure_aware, utcnow
from core.config import settings
from core.exceptions import (
    AlreadyRespondedError,
    ConcurrencyConflictError,
    InvalidSubmissionError,
    NotEligibleError,
    NotFoundError,
    SurveyLockedError,
    UnauthorizedError,
)
from core.security import SURVEY_ADMIN_TOKEN, create_owner_token, hash_password, verify_password
from models.cosmos_documents import (
    QuestionAdminResult,
    QuestionDocument,
    ResponseDocument,
    SurveyDocument,
    SurveyStatus,
)
from repositories.provider import ResponseRepositoryProtocol, SurveyRepositoryProtocol
from schemas.survey import SurveyCreate, SurveyUpdate
from services import response_ledger
from services.aggregates import has_survey_override, resolve_survey_aggregate
from services.eligibility import can_edit_survey, can_respond, check_can_respond
from services.result_projector import SurveyResults, project_survey
from services.statistics_service import SurveyStatistics, build_survey_statistics

logger = structlog.get_logger(__name__)


def _short(participant_hash: str) -> str:
    return participant_hash[:12]


class _StatsMoved(Exception):
    """Stats changed between snapshot and recount."""


class SurveyService:
    """Survey lifecycle, responses and results."""

    def __init__(
        self,
        surveys: SurveyRepositoryProtocol,
        responses: ResponseRepositoryProtocol,
        clock: Clock = utcnow,
    ):
        self.surveys = surveys
        self.responses = responses
        self.clock = clock

    # ========================================================================
    # Creation and lookup
    # ========================================================================

    async def create_survey(self, data: SurveyCreate, participant_hash: str) -> SurveyDocument:
        now = self.clock()
        survey = SurveyDocument(
            title=data.title.strip(),
            description=data.description,
            tags=[tag.strip() for tag in data.tags if tag.strip()],
            author_nickname=data.author_nickname or "anonymous",
            creator_hash=participant_hash,
            admin_password_hash=hash_password(data.admin_password),
            questions=[QuestionDocument(**q.model_dump()) for q in data.questions],
            welcome_screen=data.welcome_screen,
            thankyou_screen=data.thankyou_screen,
            settings=data.settings,
            status=data.status,
            created_at=now,
            updated_at=now,
        )
        survey.public_url = f"{settings.frontend_base_url}/surveys/{survey.id}"
        survey.admin_url = f"{settings.frontend_base_url}/surveys/{survey.id}/admin"

        created = await self.surveys.create(survey)
        logger.info("survey_created", survey_id=created.id, questions=len(created.questions))
        return created

    async def get_survey(self, survey_id: str, count_view: bool = False) -> SurveyDocument:
        survey = await self.surveys.get_by_id(survey_id)
        if survey is None:
            raise NotFoundError("Survey not found")
        if count_view:
            await self.surveys.increment_view_count(survey_id)
        return survey

    # ========================================================================
    # Responses
    # ========================================================================

    async def has_responded(self, survey_id: str, participant_hash: str) -> bool:
        return await self.responses.exists_for_participant(survey_id, participant_hash)

    async def check_response(self, survey_id: str, participant_hash: str) -> tuple[bool, bool]:
        """(has_responded, can_respond) for this participant."""
        survey = await self.get_survey(survey_id)
        responded = await self.has_responded(survey_id, participant_hash)
        return responded, can_respond(survey, responded, self.clock())

    async def submit_response(
        self,
        survey_id: str,
        raw_answers: Iterable[Any],
        participant_hash: str,
        started_at: Optional[datetime] = None,
        is_admin: bool = False,
        unknown_origin: bool = False,
    ) -> ResponseDocument:
        """
        Validate, record and count one response.

        Raises:
            NotFoundError: survey missing or deleted
            SurveyClosedError: survey not accepting responses
            AlreadyRespondedError: participant already responded
            InvalidAnswersError: answers failed validation
        """
        now = self.clock()
        survey = await self.get_survey(survey_id)

        already = False if is_admin else await self.has_responded(survey_id, participant_hash)
        try:
            check_can_respond(survey, already, now, is_admin=is_admin)
        except (NotEligibleError, AlreadyRespondedError) as e:
            logger.info("response_rejected", survey_id=survey_id, participant=_short(participant_hash), reason=e.code)
            raise

        answers = response_ledger.validate_answers(survey, raw_answers)
        response = response_ledger.build_response(
            survey,
            answers,
            participant_hash,
            now,
            started_at=ensure_aware(started_at) if started_at else None,
            submitted_by_admin=is_admin,
            unknown_origin=unknown_origin,
        )

        try:
            created = await self.responses.create(response)
        except AlreadyRespondedError:
            logger.info("duplicate_response", survey_id=survey_id, participant=_short(participant_hash))
            raise

        try:
            await self.surveys.apply(survey_id, lambda current: response_ledger.apply_response_to_survey(current, created))
        except ConcurrencyConflictError:
            logger.error("survey_stats_update_failed", survey_id=survey_id, response_id=created.id)

        logger.info(
            "response_submitted",
            survey_id=survey_id,
            participant=_short(participant_hash),
            quality_score=created.quality_score,
            flags=list(created.quality_flags),
            by_admin=is_admin,
        )
        return created

    async def delete_response(self, survey_id: str, response_id: str, deleted_by: str) -> SurveyDocument:
        """Soft-delete a response, release its participant and recount stats."""
        response = await self.responses.get_by_id(survey_id, response_id)
        if response is None or response.is_deleted:
            raise NotFoundError("Response not found")

        await self.responses.release(survey_id, response_id, deleted_by, self.clock())
        survey = await self._recount_stats(survey_id)
        logger.info("response_deleted", survey_id=survey_id, response_id=response_id, deleted_by=deleted_by)
        return survey

    async def reconcile_stats(self, survey_id: str) -> SurveyDocument:
        """Re-derive the cached stats from the stored responses."""
        survey = await self._recount_stats(survey_id)
        logger.info("survey_stats_reconciled", survey_id=survey_id, response_count=survey.stats.response_count)
        return survey

    async def _recount_stats(self, survey_id: str) -> SurveyDocument:
        """
        Replace the stats with a recount of the live responses.

        The recount is only written if no other writer changed the response
        count while the responses were being listed; otherwise it starts over.
        """
        for attempt in range(1, settings.COSMOS_MAX_WRITE_RETRIES + 1):
            snapshot = (await self.get_survey(survey_id)).stats.response_count
            responses = await self.responses.list_by_survey(survey_id)

            def mutate(current: SurveyDocument) -> SurveyDocument:
                if current.stats.response_count != snapshot:
                    raise _StatsMoved()
                return response_ledger.recompute_survey_stats(current, responses)

            try:
                return await self.surveys.apply(survey_id, mutate)
            except _StatsMoved:
                logger.info("survey_stats_moved_during_recount", survey_id=survey_id, attempt=attempt)

        raise ConcurrencyConflictError()

    # ========================================================================
    # Results
    # ========================================================================

    async def get_results(self, survey_id: str, viewer_is_owner_or_admin: bool = False) -> Optional[SurveyResults]:
        survey = await self.get_survey(survey_id)
        if not survey.settings.public_results and not viewer_is_owner_or_admin:
            return None

        responses = [] if has_survey_override(survey) else await self.responses.list_by_survey(survey_id)
        aggregate = resolve_survey_aggregate(survey, responses)
        return project_survey(survey, aggregate, viewer_is_owner_or_admin)

    async def get_statistics(self, survey_id: str) -> SurveyStatistics:
        survey = await self.get_survey(survey_id)
        responses = await self.responses.list_by_survey(survey_id)
        return build_survey_statistics(survey, responses)

    # ========================================================================
    # Owner operations
    # ========================================================================

    async def verify_owner(self, survey_id: str, password: str) -> str:
        survey = await self.get_survey(survey_id)
        if not verify_password(password, survey.admin_password_hash):
            logger.warning("owner_verification_failed", survey_id=survey_id)
            raise UnauthorizedError("Incorrect password")
        return create_owner_token(
            SURVEY_ADMIN_TOKEN, survey_id, expires_delta=timedelta(hours=settings.ADMIN_TOKEN_EXPIRE_HOURS)
        )

    async def update_survey(self, survey_id: str, changes: SurveyUpdate) -> SurveyDocument:
        now = self.clock()

        def mutate(current: SurveyDocument) -> SurveyDocument:
            if changes.questions is not None and not can_edit_survey(current):
                raise SurveyLockedError()

            updated = current.model_copy(deep=True)
            if changes.title is not None:
                updated.title = changes.title.strip()
            if changes.description is not None:
                updated.description = changes.description
            if changes.questions is not None:
                updated.questions = [QuestionDocument(**q.model_dump()) for q in changes.questions]
            if changes.welcome_screen is not None:
                updated.welcome_screen = changes.welcome_screen
            if changes.thankyou_screen is not None:
                updated.thankyou_screen = changes.thankyou_screen
            if changes.settings is not None:
                updated.settings = changes.settings
            if changes.is_hidden is not None:
                updated.is_hidden = changes.is_hidden
            updated.updated_at = now
            return updated

        survey = await self.surveys.apply(survey_id, mutate)
        logger.info("survey_updated", survey_id=survey_id, fields=sorted(changes.model_fields_set))
        return survey

    async def set_status(self, survey_id: str, status: SurveyStatus) -> SurveyDocument:
        now = self.clock()

        def mutate(current: SurveyDocument) -> SurveyDocument:
            updated = current.model_copy(deep=True)
            updated.status = status
            updated.updated_at = now
            return updated

        survey = await self.surveys.apply(survey_id, mutate)
        logger.info("survey_status_changed", survey_id=survey_id, status=SurveyStatus(status).value)
        return survey

    async def delete_survey(self, survey_id: str) -> None:
        now = self.clock()

        def mutate(current: SurveyDocument) -> SurveyDocument:
            updated = current.model_copy(deep=True)
            updated.is_deleted = True
            updated.status = SurveyStatus.CLOSED
            updated.updated_at = now
            return updated

        await self.surveys.apply(survey_id, mutate)
        logger.info("survey_deleted", survey_id=survey_id)

    # ========================================================================
    # Operator overrides
    # ========================================================================

    async def set_admin_results(
        self,
        survey_id: str,
        questions: Optional[dict[str, QuestionAdminResult]],
    ) -> SurveyDocument:
        """Install (or with None, clear) the operator's per-question tallies."""
        now = self.clock()

        def mutate(current: SurveyDocument) -> SurveyDocument:
            updated = current.model_copy(deep=True)
            if questions is None:
                updated.admin_results = None
            else:
                unknown = [qid for qid in questions if current.get_question(qid) is None]
                if unknown:
                    raise InvalidSubmissionError(f"Unknown question ids: {', '.join(sorted(unknown))}")
                updated.admin_results = {qid: result.model_copy(deep=True) for qid, result in questions.items()}
                response_ledger.freeze_survey(updated, now)
            updated.updated_at = now
            return updated

        survey = await self.surveys.apply(survey_id, mutate)
        if questions is None:
            logger.info("admin_results_cleared", survey_id=survey_id)
        else:
            logger.info("admin_results_set", survey_id=survey_id, questions=len(questions))
        return survey
