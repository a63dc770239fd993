"""
Survey endpoints.
"""

from datetime import timedelta
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status

from api.deps import (
    Capability,
    Participant,
    get_capability,
    get_clock,
    get_participant,
    get_survey_service,
    require_survey_owner,
)
from core.clock import Clock
from core.config import settings
from core.security import SURVEY_ADMIN_TOKEN, create_owner_token
from models.cosmos_documents import SurveyDocument
from schemas.debate import OwnerToken, PasswordVerify
from schemas.survey import (
    ResponseCheck,
    ResponseReceipt,
    ResponseSubmit,
    SurveyCreate,
    SurveyCreated,
    SurveyDetail,
    SurveyResultsResponse,
    SurveyStatusUpdate,
    SurveyUpdate,
)
from services.eligibility import can_respond, current_survey_status
from services.survey_service import SurveyService

router = APIRouter()


def survey_to_detail(survey: SurveyDocument, can_respond_now: bool, clock: Clock) -> SurveyDetail:
    """Convert a stored survey into the respondent-facing view."""
    return SurveyDetail(
        id=survey.id,
        title=survey.title,
        description=survey.description,
        tags=survey.tags,
        author_nickname=survey.author_nickname,
        questions=survey.sorted_questions,
        welcome_screen=survey.welcome_screen,
        thankyou_screen=survey.thankyou_screen,
        settings=survey.settings,
        status=current_survey_status(survey, clock()),
        is_editable=survey.is_editable,
        response_count=survey.stats.response_count,
        can_respond=can_respond_now,
        created_at=survey.created_at,
    )


def _deleted_by(capability: Capability) -> str:
    return "operator" if capability.is_operator else "owner"


@router.post("", response_model=SurveyCreated, status_code=status.HTTP_201_CREATED)
async def create_survey(
    data: SurveyCreate,
    participant: Annotated[Participant, Depends(get_participant)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
) -> SurveyCreated:
    survey = await service.create_survey(data, participant.hash)
    token = create_owner_token(
        SURVEY_ADMIN_TOKEN, survey.id, expires_delta=timedelta(hours=settings.ADMIN_TOKEN_EXPIRE_HOURS)
    )
    return SurveyCreated(
        id=survey.id,
        public_url=survey.public_url or "",
        admin_url=survey.admin_url or "",
        admin_token=token,
    )


@router.get("/{survey_id}", response_model=SurveyDetail)
async def get_survey(
    survey_id: str,
    participant: Annotated[Participant, Depends(get_participant)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> SurveyDetail:
    """Survey detail, including whether the caller may still respond. Counts as a view."""
    survey = await service.get_survey(survey_id, count_view=True)
    responded = await service.has_responded(survey_id, participant.hash)
    return survey_to_detail(survey, can_respond(survey, responded, clock()), clock)


@router.post("/{survey_id}/verify", response_model=OwnerToken)
async def verify_owner(
    survey_id: str,
    data: PasswordVerify,
    service: Annotated[SurveyService, Depends(get_survey_service)],
) -> OwnerToken:
    token = await service.verify_owner(survey_id, data.admin_password)
    return OwnerToken(token=token, expires_in=settings.ADMIN_TOKEN_EXPIRE_HOURS * 3600)


@router.post("/{survey_id}/respond", response_model=ResponseReceipt, status_code=status.HTTP_201_CREATED)
async def submit_response(
    survey_id: str,
    data: ResponseSubmit,
    participant: Annotated[Participant, Depends(get_participant)],
    capability: Annotated[Capability, Depends(get_capability)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
) -> ResponseReceipt:
    """
    Submit answers.

    Callers holding the survey's owner token (or an operator token) submit as
    admin and are not limited to one response.
    """
    response = await service.submit_response(
        survey_id,
        data.answers,
        participant.hash,
        started_at=data.started_at,
        is_admin=capability.can_manage_survey(survey_id),
        unknown_origin=participant.unknown_origin,
    )
    return ResponseReceipt(response_code=response.response_code)


@router.get("/{survey_id}/check-response", response_model=ResponseCheck)
async def check_response(
    survey_id: str,
    participant: Annotated[Participant, Depends(get_participant)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
) -> ResponseCheck:
    responded, allowed = await service.check_response(survey_id, participant.hash)
    return ResponseCheck(has_responded=responded, can_respond=allowed)


@router.get("/{survey_id}/results", response_model=SurveyResultsResponse)
async def get_results(
    survey_id: str,
    capability: Annotated[Capability, Depends(get_capability)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
) -> SurveyResultsResponse:
    results = await service.get_results(survey_id, capability.can_manage_survey(survey_id))
    return SurveyResultsResponse(survey_id=survey_id, results=results)


# =============================================================================
# Owner endpoints
# =============================================================================


@router.get("/{survey_id}/statistics")
async def get_statistics(
    survey_id: str,
    _owner: Annotated[Capability, Depends(require_survey_owner)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
) -> dict[str, Any]:
    """Detailed report: overview, per-question breakdown and timing."""
    statistics = await service.get_statistics(survey_id)
    return statistics.to_dict()


@router.put("/{survey_id}", response_model=SurveyDetail)
async def update_survey(
    survey_id: str,
    changes: SurveyUpdate,
    _owner: Annotated[Capability, Depends(require_survey_owner)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> SurveyDetail:
    survey = await service.update_survey(survey_id, changes)
    return survey_to_detail(survey, can_respond(survey, False, clock()), clock)


@router.patch("/{survey_id}/status", response_model=SurveyDetail)
async def set_status(
    survey_id: str,
    data: SurveyStatusUpdate,
    _owner: Annotated[Capability, Depends(require_survey_owner)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> SurveyDetail:
    survey = await service.set_status(survey_id, data.status)
    return survey_to_detail(survey, can_respond(survey, False, clock()), clock)


@router.delete("/{survey_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_survey(
    survey_id: str,
    _owner: Annotated[Capability, Depends(require_survey_owner)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
) -> None:
    await service.delete_survey(survey_id)


@router.delete("/{survey_id}/responses/{response_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_response(
    survey_id: str,
    response_id: str,
    owner: Annotated[Capability, Depends(require_survey_owner)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
) -> None:
    """Delete a response. The participant becomes free to respond again."""
    await service.delete_response(survey_id, response_id, _deleted_by(owner))


@router.post("/{survey_id}/reconcile", response_model=SurveyDetail)
async def reconcile_stats(
    survey_id: str,
    _owner: Annotated[Capability, Depends(require_survey_owner)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> SurveyDetail:
    survey = await service.reconcile_stats(survey_id)
    return survey_to_detail(survey, can_respond(survey, False, clock()), clock)
