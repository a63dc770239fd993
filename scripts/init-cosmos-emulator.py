#!/usr/bin/env python3
"""
Initialize Cosmos DB Emulator with the Tally database and containers.

Creates the database plus the debates, surveys and responses containers
(including the unique respondent key on responses) in the local emulator.

Prerequisites:
1. Install Cosmos DB Emulator: https://aka.ms/cosmosdb-emulator
2. Start the emulator (it runs on https://localhost:8081)
3. Run this script: python scripts/init-cosmos-emulator.py

The emulator uses a well-known key that is safe for local development only.
"""

import asyncio
import os
import sys
from pathlib import Path

# Add backend to path
backend_path = Path(__file__).parent.parent / "src" / "backend"
sys.path.insert(0, str(backend_path))

from azure.cosmos.aio import CosmosClient  # noqa: E402
from azure.cosmos.exceptions import CosmosHttpResponseError  # noqa: E402

from db.cosmos_session import CONTAINER_DEFINITIONS, ensure_containers  # noqa: E402

# Cosmos DB Emulator connection details (well-known credentials)
EMULATOR_ENDPOINT = "https://localhost:8081"
EMULATOR_KEY = "C2y6yDjf5/R+ob0N8A7Cgv30VRDJIWEHLM+4QDU5DE2nQ9nDuVTqobD4b8mGGyPMbIZnqyMsEcaGQy67XIw/Jw=="
DATABASE_NAME = os.environ.get("AZURE_COSMOS_DATABASE", "tally")


async def init_emulator() -> None:
    """Create the database and every container the API expects."""
    print(f"Connecting to Cosmos DB Emulator at {EMULATOR_ENDPOINT}...")

    # Emulator uses a self-signed certificate
    client = CosmosClient(
        url=EMULATOR_ENDPOINT,
        credential=EMULATOR_KEY,
        connection_verify=False,
    )

    try:
        database = await client.create_database_if_not_exists(id=DATABASE_NAME)
        print(f"Database '{DATABASE_NAME}' ready")

        await ensure_containers(database)
        for definition in CONTAINER_DEFINITIONS:
            unique = " unique key: /respondent_key" if "unique_key_policy" in definition else ""
            print(f"  Container '{definition['name']}' (partition: {definition['partition_key']}){unique}")

        print("\nNext steps:")
        print("   1. Set AZURE_COSMOS_CONNECTION_STRING to the emulator connection string")
        print("   2. Start the backend: cd src/backend && uvicorn main:app --reload")

    except CosmosHttpResponseError as e:
        print(f"\nError: {e.message}")
        print("Make sure the emulator is running: https://localhost:8081/_explorer/index.html")
        raise
    finally:
        await client.close()


if __name__ == "__main__":
    print("=" * 60)
    print("Tally - Cosmos DB Emulator Initialization")
    print("=" * 60)
    asyncio.run(init_emulator())
