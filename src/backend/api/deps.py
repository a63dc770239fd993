"""
Shared dependencies for API endpoints.

Includes:
- Participant identification (salted address hash)
- Owner and operator capabilities from bearer tokens
- Service construction with injectable repositories and clock
"""

from dataclasses import dataclass
from typing import Annotated, Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.clock import Clock, utcnow
from core.exceptions import UnauthorizedError
from core.identity import SaltedAddressIdentifier, get_client_address, get_participant_identifier
from core.security import DEBATE_ADMIN_TOKEN, OPERATOR_TOKEN, SURVEY_ADMIN_TOKEN, decode_token
from repositories.provider import (
    DebateRepositoryProtocol,
    ResponseRepositoryProtocol,
    SurveyRepositoryProtocol,
    get_debate_repository,
    get_response_repository,
    get_survey_repository,
)
from services.debate_service import DebateService
from services.survey_service import SurveyService

logger = structlog.get_logger(__name__)

security_optional = HTTPBearer(auto_error=False)


# =============================================================================
# Participant identity
# =============================================================================


@dataclass(frozen=True)
class Participant:
    """The caller as the engine sees them: an opaque hash."""

    hash: str
    unknown_origin: bool = False


def get_clock() -> Clock:
    return utcnow


def get_identifier() -> SaltedAddressIdentifier:
    return get_participant_identifier()


def get_participant(
    request: Request,
    identifier: Annotated[SaltedAddressIdentifier, Depends(get_identifier)],
) -> Participant:
    address = get_client_address(request)
    return Participant(hash=identifier.identify(address), unknown_origin=address is None)


# =============================================================================
# Capabilities
# =============================================================================


@dataclass(frozen=True)
class Capability:
    """What the bearer token (if any) allows."""

    is_operator: bool = False
    token_type: Optional[str] = None
    target_id: Optional[str] = None

    def owns(self, token_type: str, target_id: str) -> bool:
        return self.token_type == token_type and self.target_id == target_id

    def can_manage_debate(self, debate_id: str) -> bool:
        return self.is_operator or self.owns(DEBATE_ADMIN_TOKEN, debate_id)

    def can_manage_survey(self, survey_id: str) -> bool:
        return self.is_operator or self.owns(SURVEY_ADMIN_TOKEN, survey_id)


ANONYMOUS_CAPABILITY = Capability()


def get_capability(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_optional)],
) -> Capability:
    """Decode an optional bearer token. Missing or invalid tokens grant nothing."""
    if credentials is None:
        return ANONYMOUS_CAPABILITY

    payload = decode_token(credentials.credentials)
    if payload is None:
        return ANONYMOUS_CAPABILITY

    token_type = payload.get("type")
    if token_type == OPERATOR_TOKEN:
        return Capability(is_operator=True, token_type=token_type)
    if token_type in (DEBATE_ADMIN_TOKEN, SURVEY_ADMIN_TOKEN):
        return Capability(token_type=token_type, target_id=payload.get("sub"))
    return ANONYMOUS_CAPABILITY


def require_debate_owner(
    debate_id: str,
    capability: Annotated[Capability, Depends(get_capability)],
) -> Capability:
    if not capability.can_manage_debate(debate_id):
        logger.warning("debate_owner_check_failed", debate_id=debate_id)
        raise UnauthorizedError("Owner authentication required")
    return capability


def require_survey_owner(
    survey_id: str,
    capability: Annotated[Capability, Depends(get_capability)],
) -> Capability:
    if not capability.can_manage_survey(survey_id):
        logger.warning("survey_owner_check_failed", survey_id=survey_id)
        raise UnauthorizedError("Owner authentication required")
    return capability


def require_operator(capability: Annotated[Capability, Depends(get_capability)]) -> Capability:
    if not capability.is_operator:
        raise UnauthorizedError("Operator authentication required")
    return capability


# =============================================================================
# Services
# =============================================================================


def get_debate_service(
    debates: Annotated[DebateRepositoryProtocol, Depends(get_debate_repository)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> DebateService:
    return DebateService(debates, clock=clock)


def get_survey_service(
    surveys: Annotated[SurveyRepositoryProtocol, Depends(get_survey_repository)],
    responses: Annotated[ResponseRepositoryProtocol, Depends(get_response_repository)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> SurveyService:
    return SurveyService(surveys, responses, clock=clock)
