"""
Azure Cosmos DB session management for document storage.

Uses async Cosmos DB SDK with DefaultAzureCredential for RBAC authentication,
or an account key from a connection string when running against the emulator.
"""

import logging
from typing import Any, Callable

from azure.core import MatchConditions
from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient, DatabaseProxy
from azure.cosmos.exceptions import CosmosAccessConditionFailedError, CosmosResourceNotFoundError
from azure.identity.aio import DefaultAzureCredential

from core.config import settings
from core.exceptions import ConcurrencyConflictError, NotFoundError

logger = logging.getLogger(__name__)

# Container names
DEBATES_CONTAINER = "debates"
SURVEYS_CONTAINER = "surveys"
RESPONSES_CONTAINER = "responses"

# Partition keys and unique key policies, used when provisioning containers
CONTAINER_DEFINITIONS: list[dict[str, Any]] = [
    {"name": DEBATES_CONTAINER, "partition_key": "/id"},
    {"name": SURVEYS_CONTAINER, "partition_key": "/id"},
    {
        "name": RESPONSES_CONTAINER,
        "partition_key": "/survey_id",
        # One live response per participant per survey
        "unique_key_policy": {"uniqueKeys": [{"paths": ["/respondent_key"]}]},
    },
]

# Global client instances (lazy-initialized)
_cosmos_client: CosmosClient | None = None
_database: DatabaseProxy | None = None
_credential: DefaultAzureCredential | None = None


def parse_connection_string(connection_string: str) -> tuple[str, str]:
    """Split an ``AccountEndpoint=...;AccountKey=...;`` string into endpoint and key."""
    conn_parts = dict(part.split("=", 1) for part in connection_string.split(";") if "=" in part)
    endpoint = conn_parts.get("AccountEndpoint", "")
    key = conn_parts.get("AccountKey", "")
    if not endpoint or not key:
        raise ValueError("AZURE_COSMOS_CONNECTION_STRING must contain AccountEndpoint and AccountKey")
    return endpoint, key


async def get_cosmos_client() -> CosmosClient:
    """
    Get or create the Cosmos DB client.

    Supports two authentication modes:
    1. Connection string (for local development with Cosmos DB Emulator)
    2. DefaultAzureCredential/RBAC (for Azure deployment)

    Returns:
        CosmosClient: Async Cosmos DB client
    """
    global _cosmos_client, _credential

    if _cosmos_client is None:
        if settings.AZURE_COSMOS_CONNECTION_STRING:
            endpoint, key = parse_connection_string(settings.AZURE_COSMOS_CONNECTION_STRING)
            # Emulator uses a self-signed certificate
            _cosmos_client = CosmosClient(
                url=endpoint,
                credential=key,
                connection_verify=not settings.AZURE_COSMOS_DISABLE_SSL,
            )
            logger.info(
                f"Initialized Cosmos DB client for {endpoint} (connection string mode, "
                f"SSL verification: {not settings.AZURE_COSMOS_DISABLE_SSL})"
            )
        else:
            if not settings.AZURE_COSMOS_ENDPOINT:
                raise ValueError("Either AZURE_COSMOS_ENDPOINT or AZURE_COSMOS_CONNECTION_STRING must be set")

            _credential = DefaultAzureCredential()
            _cosmos_client = CosmosClient(
                url=settings.AZURE_COSMOS_ENDPOINT,
                credential=_credential,
            )
            logger.info(f"Initialized Cosmos DB client for {settings.AZURE_COSMOS_ENDPOINT} (RBAC mode)")

    return _cosmos_client


async def get_database() -> DatabaseProxy:
    """Get the Cosmos DB database proxy."""
    global _database

    if _database is None:
        client = await get_cosmos_client()
        _database = client.get_database_client(settings.AZURE_COSMOS_DATABASE)
        logger.info(f"Connected to database: {settings.AZURE_COSMOS_DATABASE}")

    return _database


async def get_container(container_name: str) -> ContainerProxy:
    """
    Get a container proxy for the specified container.

    Args:
        container_name: Name of the container (e.g., 'debates', 'responses')

    Returns:
        ContainerProxy: Container proxy for CRUD operations
    """
    database = await get_database()
    return database.get_container_client(container_name)


async def ensure_containers(database: DatabaseProxy) -> None:
    """Create any missing containers with their partition and unique keys."""
    for definition in CONTAINER_DEFINITIONS:
        kwargs: dict[str, Any] = {
            "id": definition["name"],
            "partition_key": PartitionKey(path=definition["partition_key"]),
        }
        if "unique_key_policy" in definition:
            kwargs["unique_key_policy"] = definition["unique_key_policy"]
        await database.create_container_if_not_exists(**kwargs)
        logger.info(f"Container ready: {definition['name']} (partition: {definition['partition_key']})")


async def close_cosmos() -> None:
    """
    Close Cosmos DB connections.

    Should be called during application shutdown.
    """
    global _cosmos_client, _database, _credential

    if _cosmos_client is not None:
        await _cosmos_client.close()
        _cosmos_client = None
        _database = None
        logger.info("Closed Cosmos DB client")

    if _credential is not None:
        await _credential.close()
        _credential = None


# ============================================================================
# Utility Functions for Common Operations
# ============================================================================


async def create_item(container_name: str, item: dict[str, Any]) -> dict[str, Any]:
    """
    Create a new item in the specified container.

    Raises CosmosResourceExistsError when the id or a unique key is taken.

    Args:
        container_name: Container to create item in
        item: Item data (must include 'id' and partition key field)

    Returns:
        Created item with system properties
    """
    container = await get_container(container_name)
    return await container.create_item(body=item)


async def read_item(
    container_name: str,
    item_id: str,
    partition_key: str,
) -> dict[str, Any] | None:
    """
    Read an item by ID and partition key.

    Returns:
        Item data (including ``_etag``) or None if not found
    """
    container = await get_container(container_name)
    try:
        return await container.read_item(item=item_id, partition_key=partition_key)
    except CosmosResourceNotFoundError:
        return None


async def replace_item(
    container_name: str,
    item: dict[str, Any],
    etag: str | None = None,
) -> dict[str, Any]:
    """
    Replace an existing item, optionally only if it is unchanged since read.

    With an ``etag`` the write is conditional and raises
    CosmosAccessConditionFailedError (HTTP 412) when another writer got there
    first.

    Args:
        container_name: Container holding the item
        item: Full replacement body (must include 'id' and partition key field)
        etag: ETag observed when the item was read

    Returns:
        Replaced item with fresh system properties
    """
    container = await get_container(container_name)
    kwargs: dict[str, Any] = {}
    if etag:
        kwargs["etag"] = etag
        kwargs["match_condition"] = MatchConditions.IfNotModified
    return await container.replace_item(item=item["id"], body=item, **kwargs)


async def patch_item(
    container_name: str,
    item_id: str,
    partition_key: str,
    operations: list[dict[str, Any]],
) -> dict[str, Any]:
    """
    Apply partial-document patch operations (e.g. ``incr``) server-side.

    Returns:
        Patched item
    """
    container = await get_container(container_name)
    return await container.patch_item(item=item_id, partition_key=partition_key, patch_operations=operations)


async def query_items(
    container_name: str,
    query: str,
    parameters: list[dict[str, Any]] | None = None,
    partition_key: str | None = None,
    max_items: int | None = None,
) -> list[dict[str, Any]]:
    """
    Query items using SQL-like syntax.

    Args:
        container_name: Container to query
        query: Cosmos DB SQL query string
        parameters: Query parameters for parameterized queries
        partition_key: Optional partition key for scoped queries
        max_items: Maximum number of items to return

    Returns:
        List of matching items

    Example:
        results = await query_items(
            'responses',
            'SELECT * FROM c WHERE c.respondent_key = @key',
            parameters=[{'name': '@key', 'value': participant_hash}],
            partition_key=survey_id,
        )
    """
    container = await get_container(container_name)

    query_kwargs: dict[str, Any] = {
        "query": query,
    }

    if parameters:
        query_kwargs["parameters"] = parameters

    if partition_key:
        query_kwargs["partition_key"] = partition_key

    if max_items:
        query_kwargs["max_item_count"] = max_items

    items: list[dict[str, Any]] = []
    async for item in container.query_items(**query_kwargs):
        items.append(item)
        if max_items and len(items) >= max_items:
            break

    return items


async def query_count(
    container_name: str,
    query: str,
    parameters: list[dict[str, Any]] | None = None,
    partition_key: str | None = None,
) -> int:
    """
    Execute a COUNT query and return the integer result.

    Args:
        container_name: Name of the container to query
        query: The SQL query (should use SELECT VALUE COUNT(1))
        parameters: Query parameters
        partition_key: Optional partition key

    Returns:
        The count as an integer
    """
    results = await query_items(container_name, query, parameters, partition_key)
    if results:
        result = results[0]
        if isinstance(result, (int, float)):
            return int(result)
    return 0


async def update_item_with_etag(
    container_name: str,
    item_id: str,
    partition_key: str,
    mutate: Callable[[dict[str, Any]], dict[str, Any]],
    max_attempts: int | None = None,
) -> dict[str, Any]:
    """
    Read-modify-write an item under optimistic concurrency.

    ``mutate`` receives the stored item and returns the full replacement. The
    replace only succeeds if nobody wrote the item in between; otherwise the
    item is re-read and ``mutate`` runs again. Exceptions raised by ``mutate``
    abort the update without writing.

    Raises:
        NotFoundError: item does not exist
        ConcurrencyConflictError: every attempt lost to a concurrent writer
    """
    attempts = max_attempts or settings.COSMOS_MAX_WRITE_RETRIES

    for attempt in range(1, attempts + 1):
        current = await read_item(container_name, item_id, partition_key)
        if current is None:
            raise NotFoundError()

        replacement = mutate(current)
        try:
            return await replace_item(container_name, replacement, etag=current.get("_etag"))
        except CosmosAccessConditionFailedError:
            logger.info(f"ETag conflict on {container_name}/{item_id} (attempt {attempt}/{attempts})")

    logger.warning(f"Giving up on {container_name}/{item_id} after {attempts} conflicting writes")
    raise ConcurrencyConflictError()
