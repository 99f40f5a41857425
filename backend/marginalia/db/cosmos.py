"""
Cosmos DB client and connection management.

Authentication modes:
1. Azure Managed Identity / Azure CLI (DefaultAzureCredential) against COSMOS_ENDPOINT
2. Cosmos DB Emulator (COSMOS_EMULATOR=true) with its well-known key

Every container except `users` is partitioned by `/userId`; `users` is
partitioned by `/id`.
"""

import os
import logging
from functools import lru_cache
from azure.cosmos import CosmosClient, DatabaseProxy, ContainerProxy
from azure.cosmos.exceptions import CosmosHttpResponseError
from azure.core.exceptions import ServiceRequestError
from azure.identity import DefaultAzureCredential

logger = logging.getLogger(__name__)

# Cosmos DB Emulator well-known key (public, not a secret)
# https://learn.microsoft.com/en-us/azure/cosmos-db/emulator#authentication
EMULATOR_KEY = "C2y6yDjf5/R+ob0N8A7Cgv30VRDJIWEHLM+4QDU5DE2nQ9nDuVTqobD4b8mGGyPMbIZnqyMsEcaGQy67XIw/Jw=="
EMULATOR_ENDPOINT = "https://localhost:8081"


class CosmosDBSettings:
    """Settings for Cosmos DB connection."""

    def __init__(self):
        self.endpoint = os.getenv("COSMOS_ENDPOINT", "")
        self.database_name = os.getenv("COSMOS_DB_NAME", "marginalia")
        self.cards_container = os.getenv("COSMOS_CARDS_CONTAINER", "flashcards")
        self.decks_container = os.getenv("COSMOS_DECKS_CONTAINER", "decks")
        self.highlights_container = os.getenv("COSMOS_HIGHLIGHTS_CONTAINER", "highlights")
        self.users_container = os.getenv("COSMOS_USERS_CONTAINER", "users")
        self.jobs_container = os.getenv("COSMOS_JOBS_CONTAINER", "jobs")
        self.use_emulator = os.getenv("COSMOS_EMULATOR", "false").lower() == "true"

    def is_configured(self) -> bool:
        """Check if Cosmos DB is configured."""
        if self.use_emulator:
            return True
        return bool(self.endpoint)


@lru_cache()
def get_settings() -> CosmosDBSettings:
    """Get cached Cosmos DB settings."""
    return CosmosDBSettings()


_client: CosmosClient | None = None
_database: DatabaseProxy | None = None


def get_client() -> CosmosClient:
    """Get or create the Cosmos DB client."""
    global _client
    if _client is None:
        settings = get_settings()
        if not settings.is_configured():
            raise RuntimeError(
                "Cosmos DB is not configured. "
                "Set COSMOS_ENDPOINT environment variable, or COSMOS_EMULATOR=true for local emulator."
            )

        if settings.use_emulator:
            logger.info("Using Cosmos DB Emulator at %s", EMULATOR_ENDPOINT)
            _client = CosmosClient(
                EMULATOR_ENDPOINT,
                credential=EMULATOR_KEY,
                connection_verify=False,  # Emulator uses self-signed cert
            )
        else:
            logger.info("Using DefaultAzureCredential for Cosmos DB at %s", settings.endpoint)
            _client = CosmosClient(settings.endpoint, credential=DefaultAzureCredential())

    return _client


def get_database() -> DatabaseProxy:
    """Get or create the database proxy."""
    global _database
    if _database is None:
        _database = get_client().get_database_client(get_settings().database_name)
    return _database


def get_container(container_name: str) -> ContainerProxy:
    """Get a container proxy by name."""
    return get_database().get_container_client(container_name)


def get_cards_container() -> ContainerProxy:
    return get_container(get_settings().cards_container)


def get_decks_container() -> ContainerProxy:
    return get_container(get_settings().decks_container)


def get_highlights_container() -> ContainerProxy:
    return get_container(get_settings().highlights_container)


def get_users_container() -> ContainerProxy:
    return get_container(get_settings().users_container)


def get_jobs_container() -> ContainerProxy:
    return get_container(get_settings().jobs_container)


def is_unreachable_error(exc: BaseException) -> bool:
    """True for failures that mean the store itself is unavailable.

    Transport failures and 5xx/429 responses abort the current tick or request;
    anything else (bad document, 4xx) is specific to one user or item.
    """
    if isinstance(exc, ServiceRequestError):
        return True
    if isinstance(exc, CosmosHttpResponseError):
        return exc.status_code is not None and (exc.status_code >= 500 or exc.status_code == 429)
    return False


def verify_connection() -> bool:
    """Verify the Cosmos DB connection is working."""
    try:
        if not get_settings().is_configured():
            return False
        get_database().read()
        return True
    except (CosmosHttpResponseError, ServiceRequestError, RuntimeError) as exc:
        logger.warning("Cosmos DB connection check failed: %s", exc)
        return False


def close_client():
    """Drop client references; CosmosClient manages its own connections."""
    global _client, _database
    _client = None
    _database = None
