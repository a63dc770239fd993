"""
Cosmos DB Response repository.

Responses are partitioned by survey. The container's unique key on
``/respondent_key`` guarantees at most one live response per participant per
survey even when two submissions race past the application-level check.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from azure.cosmos.exceptions import CosmosResourceExistsError

from core.exceptions import AlreadyRespondedError, NotFoundError
from db.cosmos_session import (
    RESPONSES_CONTAINER,
    create_item,
    query_count,
    query_items,
    read_item,
    update_item_with_etag,
)
from models.cosmos_documents import ResponseDocument
from services.response_ledger import release_response

logger = logging.getLogger(__name__)


class CosmosResponseRepository:
    """Repository for survey response operations using Cosmos DB."""

    # ========================================================================
    # Read Operations
    # ========================================================================

    async def get_by_id(self, survey_id: str, response_id: str) -> Optional[ResponseDocument]:
        data = await read_item(RESPONSES_CONTAINER, response_id, partition_key=survey_id)
        if data is None:
            return None
        return ResponseDocument(**data)

    async def exists_for_participant(self, survey_id: str, participant_hash: str) -> bool:
        """
        Check whether the participant holds a live response.

        Uses the respondent key, so released and admin responses are ignored.
        """
        query = """
            SELECT VALUE COUNT(1) FROM c
            WHERE c.respondent_key = @respondent_key
        """
        count = await query_count(
            RESPONSES_CONTAINER,
            query,
            parameters=[{"name": "@respondent_key", "value": participant_hash}],
            partition_key=survey_id,
        )
        return count > 0

    async def list_by_survey(self, survey_id: str, include_deleted: bool = False) -> list[ResponseDocument]:
        """All responses for a survey, oldest first."""
        conditions = ["c.survey_id = @survey_id"]
        if not include_deleted:
            conditions.append("c.is_deleted = false")

        query = f"""
            SELECT * FROM c
            WHERE {" AND ".join(conditions)}
            ORDER BY c.submitted_at ASC
        """
        results = await query_items(
            RESPONSES_CONTAINER,
            query,
            parameters=[{"name": "@survey_id", "value": survey_id}],
            partition_key=survey_id,
        )
        return [ResponseDocument(**r) for r in results]

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def create(self, response: ResponseDocument) -> ResponseDocument:
        """
        Insert a response, enforcing participant uniqueness.

        Raises:
            AlreadyRespondedError: the respondent key is already taken
        """
        try:
            data = await create_item(RESPONSES_CONTAINER, response.to_cosmos())
        except CosmosResourceExistsError as e:
            logger.info(f"Duplicate response rejected for survey {response.survey_id}")
            raise AlreadyRespondedError() from e
        return ResponseDocument(**data)

    async def release(
        self,
        survey_id: str,
        response_id: str,
        deleted_by: str,
        now: datetime,
    ) -> ResponseDocument:
        """Soft-delete a response and free its respondent key."""

        def _mutate(data: dict[str, Any]) -> dict[str, Any]:
            response = ResponseDocument(**data)
            if response.is_deleted:
                raise NotFoundError("Response not found")
            return release_response(response, deleted_by, now).to_cosmos()

        data = await update_item_with_etag(RESPONSES_CONTAINER, response_id, survey_id, _mutate)
        logger.info(f"Released response {response_id} of survey {survey_id}")
        return ResponseDocument(**data)
