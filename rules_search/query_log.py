"""
Anonymous usage log for rules queries in Azure Cosmos DB.

Each answered request writes one small record (query text, result count,
whether an answer was produced, scoping codes). Writes happen after the
response is sent and a failed write never affects the caller.

Authentication uses COSMOS_KEY when set, otherwise managed identity
(DefaultAzureCredential).
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from azure.core.exceptions import AzureError
from azure.cosmos import CosmosClient
from azure.identity import DefaultAzureCredential

from rules_search.config import Settings

logger = logging.getLogger(__name__)


def build_log_entry(
    query: str,
    results_count: int,
    answer_generated: bool,
    organization_code: Optional[str] = None,
    sport_code: Optional[str] = None,
    fallback: bool = False,
) -> Dict[str, Any]:
    """Build the Cosmos item for one query."""
    return {
        "id": str(uuid.uuid4()),
        "query": query,
        "results_count": results_count,
        "answer_generated": answer_generated,
        "organization_code": organization_code,
        "sport_code": sport_code,
        "fallback": fallback,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }


class QueryLogWriter:
    """
    Writes query records to a Cosmos DB container.

    Args:
        container: azure.cosmos ContainerProxy (or a fake with ``create_item``)
    """

    def __init__(self, container):
        self.container = container

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["QueryLogWriter"]:
        """
        Connect to the configured container.

        Returns:
            QueryLogWriter, or None when COSMOS_ENDPOINT is not set (logging disabled)
        """
        if not settings.cosmos_endpoint:
            logger.info("COSMOS_ENDPOINT not set; query logging disabled")
            return None

        init_start = time.time()
        credential = settings.cosmos_key or DefaultAzureCredential()
        client = CosmosClient(url=settings.cosmos_endpoint, credential=credential)
        database = client.get_database_client(settings.cosmos_database)
        container = database.get_container_client(settings.cosmos_container)
        logger.info("Cosmos DB query log client initialized in %.2fms", (time.time() - init_start) * 1000)
        return cls(container)

    def record(self, entry: Dict[str, Any]) -> bool:
        """
        Store one entry.

        Returns:
            True if written, False if the write failed (failure is logged).
        """
        start = time.time()
        try:
            self.container.create_item(body=entry)
        except AzureError as exc:
            logger.warning("Failed to log query %s: %s", entry.get("id"), exc)
            return False
        logger.debug("Query %s logged in %.2fms", entry.get("id"), (time.time() - start) * 1000)
        return True
