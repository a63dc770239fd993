"""
Cosmos DB Survey repository.

Surveys embed their questions and cached stats. Stats updates and owner edits
go through ``apply`` (ETag-conditioned replace with retry).
"""

import logging
from typing import Any, Callable, Optional

from azure.cosmos.exceptions import CosmosHttpResponseError

from core.exceptions import NotFoundError
from db.cosmos_session import (
    SURVEYS_CONTAINER,
    create_item,
    patch_item,
    read_item,
    update_item_with_etag,
)
from models.cosmos_documents import SurveyDocument

logger = logging.getLogger(__name__)

SurveyMutation = Callable[[SurveyDocument], SurveyDocument]


class CosmosSurveyRepository:
    """Repository for survey operations using Cosmos DB."""

    # ========================================================================
    # Read Operations
    # ========================================================================

    async def get_by_id(self, survey_id: str, include_deleted: bool = False) -> Optional[SurveyDocument]:
        """Get a survey by ID (direct point read)."""
        data = await read_item(SURVEYS_CONTAINER, survey_id, partition_key=survey_id)
        if data is None:
            return None
        survey = SurveyDocument(**data)
        if survey.is_deleted and not include_deleted:
            return None
        return survey

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def create(self, survey: SurveyDocument) -> SurveyDocument:
        """Insert a new survey."""
        data = await create_item(SURVEYS_CONTAINER, survey.to_cosmos())
        logger.info(f"Created survey {survey.id}")
        return SurveyDocument(**data)

    async def apply(self, survey_id: str, mutate: SurveyMutation) -> SurveyDocument:
        """
        Apply a pure mutation atomically.

        ``mutate`` may run more than once under contention and must not have
        side effects.
        """

        def _mutate(data: dict[str, Any]) -> dict[str, Any]:
            survey = SurveyDocument(**data)
            if survey.is_deleted:
                raise NotFoundError("Survey not found")
            return mutate(survey).to_cosmos()

        data = await update_item_with_etag(SURVEYS_CONTAINER, survey_id, survey_id, _mutate)
        return SurveyDocument(**data)

    async def increment_view_count(self, survey_id: str) -> None:
        """Best-effort server-side increment of the view counter."""
        try:
            await patch_item(
                SURVEYS_CONTAINER,
                survey_id,
                survey_id,
                [{"op": "incr", "path": "/stats/view_count", "value": 1}],
            )
        except CosmosHttpResponseError as e:
            logger.warning(f"Failed to increment view count for survey {survey_id}: {e}")
