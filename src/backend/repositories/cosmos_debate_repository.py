"""
Cosmos DB Debate repository.

Debates are single documents with embedded options, votes, participants and
opinions. Every state change goes through ``apply``, which commits the whole
document with an ETag-conditioned replace.
"""

import logging
from typing import Any, Callable, Optional

from azure.cosmos.exceptions import CosmosHttpResponseError

from core.exceptions import NotFoundError
from db.cosmos_session import (
    DEBATES_CONTAINER,
    create_item,
    patch_item,
    query_items,
    read_item,
    update_item_with_etag,
)
from models.cosmos_documents import DebateDocument

logger = logging.getLogger(__name__)

DebateMutation = Callable[[DebateDocument], DebateDocument]


class CosmosDebateRepository:
    """Repository for debate operations using Cosmos DB."""

    # ========================================================================
    # Read Operations
    # ========================================================================

    async def get_by_id(self, debate_id: str, include_deleted: bool = False) -> Optional[DebateDocument]:
        """Get a debate by ID (direct point read)."""
        data = await read_item(DEBATES_CONTAINER, debate_id, partition_key=debate_id)
        if data is None:
            return None
        debate = DebateDocument(**data)
        if debate.is_deleted and not include_deleted:
            return None
        return debate

    async def list_public(self, limit: int = 20, category: Optional[str] = None) -> list[DebateDocument]:
        """Newest visible debates, optionally filtered by category."""
        conditions = ["c.is_deleted = false", "c.is_hidden = false"]
        parameters: list[dict[str, Any]] = [{"name": "@limit", "value": limit}]

        if category:
            conditions.append("c.category = @category")
            parameters.append({"name": "@category", "value": category})

        query = f"""
            SELECT * FROM c
            WHERE {" AND ".join(conditions)}
            ORDER BY c.created_at DESC
            OFFSET 0 LIMIT @limit
        """
        results = await query_items(DEBATES_CONTAINER, query, parameters=parameters)
        return [DebateDocument(**r) for r in results]

    # ========================================================================
    # Write Operations
    # ========================================================================

    async def create(self, debate: DebateDocument) -> DebateDocument:
        """Insert a new debate."""
        data = await create_item(DEBATES_CONTAINER, debate.to_cosmos())
        logger.info(f"Created debate {debate.id}")
        return DebateDocument(**data)

    async def apply(self, debate_id: str, mutate: DebateMutation) -> DebateDocument:
        """
        Apply a pure mutation atomically.

        ``mutate`` may run more than once if concurrent writers collide, so it
        must not have side effects. Domain errors it raises abort the write.
        """

        def _mutate(data: dict[str, Any]) -> dict[str, Any]:
            debate = DebateDocument(**data)
            if debate.is_deleted:
                raise NotFoundError("Debate not found")
            return mutate(debate).to_cosmos()

        data = await update_item_with_etag(DEBATES_CONTAINER, debate_id, debate_id, _mutate)
        return DebateDocument(**data)

    async def increment_view_count(self, debate_id: str) -> None:
        """Best-effort server-side increment of the view counter."""
        try:
            await patch_item(
                DEBATES_CONTAINER,
                debate_id,
                debate_id,
                [{"op": "incr", "path": "/stats/view_count", "value": 1}],
            )
        except CosmosHttpResponseError as e:
            logger.warning(f"Failed to increment view count for debate {debate_id}: {e}")
