"""
Operator endpoints.

These endpoints require an operator token and are used for:
- Operator login
- Installing or clearing result overrides on debates and surveys
"""

from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.deps import Capability, get_clock, get_debate_service, get_survey_service, require_operator
from core.clock import Clock
from core.config import settings
from core.exceptions import UnauthorizedError
from core.security import create_operator_token, verify_password
from models.cosmos_documents import DebateAdminResults
from schemas.debate import OwnerToken
from schemas.survey import AdminSurveyResults
from services.debate_service import DebateService
from services.result_projector import DebateResults, SurveyResults, project_debate
from services.survey_service import SurveyService

logger = structlog.get_logger(__name__)

router = APIRouter()


class OperatorLogin(BaseModel):
    password: str = Field(..., min_length=1)


@router.post("/auth", response_model=OwnerToken)
async def operator_login(data: OperatorLogin) -> OwnerToken:
    """Exchange the operator password for an operator token."""
    if not verify_password(data.password, settings.OPERATOR_PASSWORD_HASH):
        logger.warning("operator_login_failed")
        raise UnauthorizedError("Incorrect password")

    logger.info("operator_login")
    return OwnerToken(token=create_operator_token(), expires_in=settings.OPERATOR_TOKEN_EXPIRE_HOURS * 3600)


@router.put("/debates/{debate_id}/results", response_model=Optional[DebateResults])
async def set_debate_results(
    debate_id: str,
    results: DebateAdminResults,
    _operator: Annotated[Capability, Depends(require_operator)],
    service: Annotated[DebateService, Depends(get_debate_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> Optional[DebateResults]:
    """
    Replace the public tallies of a debate.

    An override with zero counts and no opinions is stored but inactive.
    """
    debate = await service.set_admin_results(debate_id, results)
    return project_debate(debate, clock(), viewer_is_owner_or_admin=True)


@router.delete("/debates/{debate_id}/results", response_model=Optional[DebateResults])
async def clear_debate_results(
    debate_id: str,
    _operator: Annotated[Capability, Depends(require_operator)],
    service: Annotated[DebateService, Depends(get_debate_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> Optional[DebateResults]:
    debate = await service.set_admin_results(debate_id, None)
    return project_debate(debate, clock(), viewer_is_owner_or_admin=True)


@router.put("/surveys/{survey_id}/results", response_model=Optional[SurveyResults])
async def set_survey_results(
    survey_id: str,
    data: AdminSurveyResults,
    _operator: Annotated[Capability, Depends(require_operator)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
) -> Optional[SurveyResults]:
    """Replace per-question tallies. Locks the survey's questions."""
    await service.set_admin_results(survey_id, data.questions)
    return await service.get_results(survey_id, viewer_is_owner_or_admin=True)


@router.delete("/surveys/{survey_id}/results", response_model=Optional[SurveyResults])
async def clear_survey_results(
    survey_id: str,
    _operator: Annotated[Capability, Depends(require_operator)],
    service: Annotated[SurveyService, Depends(get_survey_service)],
) -> Optional[SurveyResults]:
    await service.set_admin_results(survey_id, None)
    return await service.get_results(survey_id, viewer_is_owner_or_admin=True)
