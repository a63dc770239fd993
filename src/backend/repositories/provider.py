"""
Repository provider for dependency injection.

Usage:
    from repositories.provider import get_debate_repository

    async def some_endpoint(
        debate_repo: DebateRepositoryProtocol = Depends(get_debate_repository),
    ):
        debate = await debate_repo.get_by_id(debate_id)

Tests swap in other implementations through ``app.dependency_overrides``.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Protocol, runtime_checkable

from core.config import settings
from core.exceptions import ServerError
from models.cosmos_documents import DebateDocument, ResponseDocument, SurveyDocument

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================


def is_cosmos_enabled() -> bool:
    """Check if Cosmos DB is configured."""
    # AZURE_COSMOS_ENDPOINT for Azure deployment with RBAC,
    # AZURE_COSMOS_CONNECTION_STRING for the local emulator
    return bool(settings.AZURE_COSMOS_ENDPOINT or settings.AZURE_COSMOS_CONNECTION_STRING)


def _require_cosmos() -> None:
    if not is_cosmos_enabled():
        logger.error("Repository requested but Cosmos DB is not configured")
        raise ServerError("Storage is not configured")


# =============================================================================
# Repository Protocols (Interfaces)
# =============================================================================


@runtime_checkable
class DebateRepositoryProtocol(Protocol):
    """Protocol defining debate repository operations."""

    async def get_by_id(self, debate_id: str, include_deleted: bool = False) -> Optional[DebateDocument]: ...
    async def list_public(self, limit: int = 20, category: Optional[str] = None) -> list[DebateDocument]: ...
    async def create(self, debate: DebateDocument) -> DebateDocument: ...
    async def apply(self, debate_id: str, mutate: Callable[[DebateDocument], DebateDocument]) -> DebateDocument: ...
    async def increment_view_count(self, debate_id: str) -> None: ...


@runtime_checkable
class SurveyRepositoryProtocol(Protocol):
    """Protocol defining survey repository operations."""

    async def get_by_id(self, survey_id: str, include_deleted: bool = False) -> Optional[SurveyDocument]: ...
    async def create(self, survey: SurveyDocument) -> SurveyDocument: ...
    async def apply(self, survey_id: str, mutate: Callable[[SurveyDocument], SurveyDocument]) -> SurveyDocument: ...
    async def increment_view_count(self, survey_id: str) -> None: ...


@runtime_checkable
class ResponseRepositoryProtocol(Protocol):
    """Protocol defining survey response repository operations."""

    async def get_by_id(self, survey_id: str, response_id: str) -> Optional[ResponseDocument]: ...
    async def exists_for_participant(self, survey_id: str, participant_hash: str) -> bool: ...
    async def list_by_survey(self, survey_id: str, include_deleted: bool = False) -> list[ResponseDocument]: ...
    async def create(self, response: ResponseDocument) -> ResponseDocument: ...
    async def release(
        self, survey_id: str, response_id: str, deleted_by: str, now: datetime
    ) -> ResponseDocument: ...


# =============================================================================
# Repository Factory Functions
# =============================================================================


async def get_debate_repository() -> DebateRepositoryProtocol:
    _require_cosmos()
    from repositories.cosmos_debate_repository import CosmosDebateRepository

    return CosmosDebateRepository()


async def get_survey_repository() -> SurveyRepositoryProtocol:
    _require_cosmos()
    from repositories.cosmos_survey_repository import CosmosSurveyRepository

    return CosmosSurveyRepository()


async def get_response_repository() -> ResponseRepositoryProtocol:
    _require_cosmos()
    from repositories.cosmos_response_repository import CosmosResponseRepository

    return CosmosResponseRepository()
