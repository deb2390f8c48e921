"""
Cosmos DB profile store.

Stores profile documents in an Azure Cosmos DB container partitioned by
``/id`` (the principal id). Partial updates and the login counter use
Cosmos patch operations, so ``increment`` is a single server-side write.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from azure.cosmos import PartitionKey
from azure.cosmos.aio import ContainerProxy, CosmosClient
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from ..config import CoordinatorConfig, CosmosAuthMethod
from ..exceptions import (
    ConfigurationError,
    ProfileExistsError,
    ProfileNotFoundError,
    ProfileStoreError,
    StorageConnectionError,
)
from .store import ProfileStore

logger = logging.getLogger(__name__)

PARTITION_KEY_PATH = "/id"

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0  # seconds


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _get_credential(config: CoordinatorConfig) -> Any:
    """Get the credential for the configured auth method.

    Raises:
        ConfigurationError: If the credential cannot be created
    """
    if config.cosmos_auth_method is CosmosAuthMethod.KEY:
        if not config.cosmos_key:
            raise ConfigurationError("cosmos_key", "required for KEY authentication")
        return config.cosmos_key

    try:
        from azure.identity.aio import DefaultAzureCredential
    except ImportError as e:
        raise ConfigurationError(
            "cosmos_auth_method",
            "azure-identity package required for Azure AD authentication",
        ) from e
    return DefaultAzureCredential()


class CosmosProfileStore(ProfileStore):
    """Profile store backed by an Azure Cosmos DB container.

    Usage:
        async with CosmosProfileStore.from_config(config) as store:
            document = await store.get(principal_id)
    """

    supports_atomic_increment = True

    def __init__(
        self,
        endpoint: str,
        credential: Any,
        database_name: str = "session-coordinator",
        container_name: str = "profiles",
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        container: ContainerProxy | None = None,
    ):
        """Initialize the store.

        Args:
            endpoint: Cosmos DB account endpoint URL
            credential: Account key or Azure credential object
            database_name: Database to use (created if missing)
            container_name: Container to use (created if missing)
            max_retries: Maximum attempts for transient failures
            retry_delay: Base delay between retries (seconds)
            container: Pre-built container proxy; skips connection setup
        """
        self.endpoint = endpoint
        self.database_name = database_name
        self.container_name = container_name
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._credential = credential
        self._client: CosmosClient | None = None
        self._container = container

    @classmethod
    def from_config(cls, config: CoordinatorConfig) -> CosmosProfileStore:
        if not config.cosmos_endpoint:
            raise ConfigurationError("cosmos_endpoint", "required for the cosmos backend")
        return cls(
            endpoint=config.cosmos_endpoint,
            credential=_get_credential(config),
            database_name=config.cosmos_database,
            container_name=config.cosmos_container,
        )

    async def initialize(self) -> None:
        """Connect and ensure the database and container exist."""
        await self._get_container()

    async def close(self) -> None:
        """Close the Cosmos DB connection."""
        if self._client:
            await self._client.close()
            self._client = None
            self._container = None

    async def __aenter__(self) -> CosmosProfileStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _get_container(self) -> ContainerProxy:
        if self._container is not None:
            return self._container

        try:
            client = CosmosClient(self.endpoint, credential=self._credential)
            self._client = client
            database = await client.create_database_if_not_exists(id=self.database_name)
            container = await database.create_container_if_not_exists(
                id=self.container_name,
                partition_key=PartitionKey(path=PARTITION_KEY_PATH),
            )
        except Exception as e:
            await self.close()
            raise StorageConnectionError(self.endpoint, e) from e

        self._container = container
        logger.info(
            "Connected to Cosmos DB profile container %s/%s",
            self.database_name,
            self.container_name,
        )
        return container

    # =========================================================================
    # ProfileStore
    # =========================================================================

    async def get(self, key: str) -> dict[str, Any] | None:
        container = await self._get_container()
        try:
            item = await self._with_retry(
                "get", key, lambda: container.read_item(item=key, partition_key=key)
            )
        except CosmosResourceNotFoundError:
            return None
        # Drop Cosmos system properties (_rid, _etag, _ts, ...)
        return {k: v for k, v in item.items() if not k.startswith("_")}

    async def create(self, key: str, document: dict[str, Any]) -> None:
        container = await self._get_container()
        body = {k: _encode(v) for k, v in self.resolve_server_values(document).items()}
        body["id"] = key
        try:
            await self._with_retry(
                "create", key, lambda: container.create_item(body=body)
            )
        except CosmosResourceExistsError as e:
            raise ProfileExistsError(key) from e

    async def update(self, key: str, fields: dict[str, Any]) -> None:
        await self._patch("update", key, self._set_operations(fields))

    async def increment(
        self,
        key: str,
        field: str,
        amount: int = 1,
        fields: dict[str, Any] | None = None,
    ) -> None:
        operations = self._set_operations(fields or {})
        operations.append({"op": "incr", "path": f"/{field}", "value": amount})
        await self._patch("increment", key, operations)

    def _set_operations(self, fields: dict[str, Any]) -> list[dict[str, Any]]:
        resolved = self.resolve_server_values(fields)
        return [
            {"op": "set", "path": f"/{name}", "value": _encode(value)}
            for name, value in resolved.items()
            if name != "id"
        ]

    async def _patch(self, operation: str, key: str, patch_operations: list[dict[str, Any]]) -> None:
        container = await self._get_container()
        try:
            await self._with_retry(
                operation,
                key,
                lambda: container.patch_item(
                    item=key, partition_key=key, patch_operations=patch_operations
                ),
            )
        except CosmosResourceNotFoundError as e:
            raise ProfileNotFoundError(key, operation=operation) from e

    async def _with_retry(
        self, operation: str, key: str, call: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Execute a call with retry logic for transient failures.

        Client errors (4xx other than 429) are not retried. Not-found and
        conflict errors are re-raised unchanged for the caller to map.
        """
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                return await call()
            except (CosmosResourceNotFoundError, CosmosResourceExistsError):
                raise
            except CosmosHttpResponseError as e:
                if e.status_code is not None and 400 <= e.status_code < 500 and e.status_code != 429:
                    raise ProfileStoreError(operation, key, cause=e) from e

                # Retry server errors (5xx) and rate limiting (429)
                last_error = e
                if attempt < self.max_retries - 1:
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        "Cosmos %s for %s failed (attempt %d/%d), retrying in %.1fs",
                        operation,
                        key,
                        attempt + 1,
                        self.max_retries,
                        delay,
                    )
                    await asyncio.sleep(delay)
            except Exception as e:
                raise ProfileStoreError(operation, key, cause=e) from e

        raise ProfileStoreError(operation, key, cause=last_error) from last_error
