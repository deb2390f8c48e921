"""Tests for profile store implementations."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from azure.cosmos.exceptions import (
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)

from session_coordinator.exceptions import (
    ProfileExistsError,
    ProfileNotFoundError,
    ProfileStoreError,
    StorageConnectionError,
)
from session_coordinator.profile import SERVER_TIMESTAMP, InMemoryProfileStore, LocalProfileStore
from session_coordinator.profile.cosmos import CosmosProfileStore

FIXED = datetime(2024, 3, 1, 9, 30, tzinfo=UTC)


class TestInMemoryProfileStore:
    """Tests for the dict-backed store."""

    async def test_create_resolves_timestamps_once(self) -> None:
        """Test all sentinels in one write share the same instant."""
        store = InMemoryProfileStore(clock=lambda: FIXED)

        await store.create("u1", {"id": "u1", "created_at": SERVER_TIMESTAMP, "last_login_at": SERVER_TIMESTAMP})

        document = await store.get("u1")
        assert document == {"id": "u1", "created_at": FIXED, "last_login_at": FIXED}
        assert "u1" in store
        assert len(store) == 1

    async def test_get_returns_copy(self) -> None:
        """Test callers cannot mutate stored documents."""
        store = InMemoryProfileStore()
        await store.create("u1", {"id": "u1", "login_count": 1})

        document = await store.get("u1")
        assert document is not None
        document["login_count"] = 99

        assert (await store.get("u1"))["login_count"] == 1

    async def test_create_existing(self) -> None:
        """Test creating twice fails."""
        store = InMemoryProfileStore()
        await store.create("u1", {"id": "u1"})

        with pytest.raises(ProfileExistsError):
            await store.create("u1", {"id": "u1"})

    async def test_update_missing(self) -> None:
        """Test updating a missing document fails."""
        with pytest.raises(ProfileNotFoundError):
            await InMemoryProfileStore().update("u1", {"email": "a@example.com"})

    async def test_increment(self) -> None:
        """Test increment adds to the field and applies extra fields."""
        store = InMemoryProfileStore(clock=lambda: FIXED)
        await store.create("u1", {"id": "u1"})

        await store.increment("u1", "login_count", 1, {"last_login_at": SERVER_TIMESTAMP})
        await store.increment("u1", "login_count", 2)

        document = await store.get("u1")
        assert document["login_count"] == 3
        assert document["last_login_at"] == FIXED


class TestLocalProfileStore:
    """Tests for the JSON file store."""

    async def test_create_and_get(self, tmp_path) -> None:
        """Test documents round-trip through disk with ISO timestamps."""
        store = LocalProfileStore(tmp_path / "profiles")
        store.now = lambda: FIXED

        await store.create("u1", {"id": "u1", "created_at": SERVER_TIMESTAMP, "login_count": 1})

        assert (tmp_path / "profiles" / "u1.json").exists()
        assert await store.get("u1") == {"id": "u1", "created_at": FIXED.isoformat(), "login_count": 1}

    async def test_get_missing(self, tmp_path) -> None:
        """Test a missing file reads as None."""
        assert await LocalProfileStore(tmp_path).get("nobody") is None

    async def test_update_merges(self, tmp_path) -> None:
        """Test updates keep fields not being written."""
        store = LocalProfileStore(tmp_path)
        await store.create("u1", {"id": "u1", "email": "a@example.com", "login_count": 1})

        await store.update("u1", {"login_count": 2})

        assert await store.get("u1") == {"id": "u1", "email": "a@example.com", "login_count": 2}
        assert not list(tmp_path.glob("*.tmp"))

    async def test_conflicts(self, tmp_path) -> None:
        """Test create and update enforce existence."""
        store = LocalProfileStore(tmp_path)
        await store.create("u1", {"id": "u1"})

        with pytest.raises(ProfileExistsError):
            await store.create("u1", {"id": "u1"})
        with pytest.raises(ProfileNotFoundError):
            await store.update("u2", {"login_count": 1})

    async def test_rejects_path_traversal(self, tmp_path) -> None:
        """Test keys cannot escape the base directory."""
        store = LocalProfileStore(tmp_path)

        with pytest.raises(ProfileStoreError):
            await store.get("../outside")

    async def test_corrupt_document(self, tmp_path) -> None:
        """Test unreadable JSON raises a store error."""
        (tmp_path / "u1.json").write_text("{not json")

        with pytest.raises(ProfileStoreError) as exc_info:
            await LocalProfileStore(tmp_path).get("u1")

        assert exc_info.value.operation == "get"

    def test_no_atomic_increment(self, tmp_path) -> None:
        assert LocalProfileStore(tmp_path).supports_atomic_increment is False


@pytest.fixture
def container() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def cosmos_store(container: AsyncMock) -> CosmosProfileStore:
    store = CosmosProfileStore(
        endpoint="https://example.documents.azure.com:443/",
        credential="key",
        retry_delay=0,
        container=container,
    )
    store.now = lambda: FIXED
    return store


class TestCosmosProfileStore:
    """Tests for the Cosmos DB store against a mocked container."""

    async def test_get_strips_system_properties(self, cosmos_store: CosmosProfileStore, container: AsyncMock) -> None:
        """Test Cosmos system fields are removed from documents."""
        container.read_item.return_value = {"id": "u1", "login_count": 2, "_etag": "x", "_ts": 1}

        document = await cosmos_store.get("u1")

        assert document == {"id": "u1", "login_count": 2}
        container.read_item.assert_awaited_once_with(item="u1", partition_key="u1")

    async def test_get_missing(self, cosmos_store: CosmosProfileStore, container: AsyncMock) -> None:
        """Test not found reads as None."""
        container.read_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="missing")

        assert await cosmos_store.get("u1") is None

    async def test_create_encodes_timestamps(self, cosmos_store: CosmosProfileStore, container: AsyncMock) -> None:
        """Test sentinels resolve to ISO strings in the created item."""
        await cosmos_store.create("u1", {"created_at": SERVER_TIMESTAMP, "login_count": 1})

        container.create_item.assert_awaited_once_with(
            body={"created_at": FIXED.isoformat(), "login_count": 1, "id": "u1"}
        )

    async def test_create_conflict(self, cosmos_store: CosmosProfileStore, container: AsyncMock) -> None:
        """Test Cosmos conflicts map to ProfileExistsError."""
        container.create_item.side_effect = CosmosResourceExistsError(status_code=409, message="conflict")

        with pytest.raises(ProfileExistsError):
            await cosmos_store.create("u1", {"id": "u1"})

    async def test_update_uses_patch(self, cosmos_store: CosmosProfileStore, container: AsyncMock) -> None:
        """Test partial updates become set operations."""
        await cosmos_store.update("u1", {"id": "u1", "last_login_at": SERVER_TIMESTAMP})

        container.patch_item.assert_awaited_once_with(
            item="u1",
            partition_key="u1",
            patch_operations=[{"op": "set", "path": "/last_login_at", "value": FIXED.isoformat()}],
        )

    async def test_increment_uses_incr(self, cosmos_store: CosmosProfileStore, container: AsyncMock) -> None:
        """Test increments are a single patch with an incr operation."""
        await cosmos_store.increment("u1", "login_count", 1, {"last_login_at": SERVER_TIMESTAMP})

        operations = container.patch_item.await_args.kwargs["patch_operations"]
        assert operations == [
            {"op": "set", "path": "/last_login_at", "value": FIXED.isoformat()},
            {"op": "incr", "path": "/login_count", "value": 1},
        ]

    async def test_update_missing(self, cosmos_store: CosmosProfileStore, container: AsyncMock) -> None:
        """Test patching a missing item maps to ProfileNotFoundError."""
        container.patch_item.side_effect = CosmosResourceNotFoundError(status_code=404, message="missing")

        with pytest.raises(ProfileNotFoundError):
            await cosmos_store.update("u1", {"login_count": 1})

    async def test_retries_server_errors(self, cosmos_store: CosmosProfileStore, container: AsyncMock) -> None:
        """Test 5xx responses are retried."""
        container.read_item.side_effect = [
            CosmosHttpResponseError(status_code=503, message="unavailable"),
            {"id": "u1"},
        ]

        assert await cosmos_store.get("u1") == {"id": "u1"}
        assert container.read_item.await_count == 2

    async def test_gives_up_after_max_retries(self, cosmos_store: CosmosProfileStore, container: AsyncMock) -> None:
        """Test persistent throttling raises once retries are exhausted."""
        container.read_item.side_effect = CosmosHttpResponseError(status_code=429, message="throttled")

        with pytest.raises(ProfileStoreError):
            await cosmos_store.get("u1")

        assert container.read_item.await_count == cosmos_store.max_retries

    async def test_client_errors_not_retried(self, cosmos_store: CosmosProfileStore, container: AsyncMock) -> None:
        """Test 4xx responses fail immediately."""
        container.patch_item.side_effect = CosmosHttpResponseError(status_code=400, message="bad request")

        with pytest.raises(ProfileStoreError) as exc_info:
            await cosmos_store.update("u1", {"login_count": 1})

        assert exc_info.value.operation == "update"
        assert container.patch_item.await_count == 1


class TestCosmosConnection:
    """Tests for lazy Cosmos DB connection setup."""

    @staticmethod
    def _client(client_cls: MagicMock) -> tuple[MagicMock, AsyncMock]:
        client = client_cls.return_value
        client.close = AsyncMock()
        database = AsyncMock()
        container = AsyncMock()
        database.create_container_if_not_exists = AsyncMock(return_value=container)
        client.create_database_if_not_exists = AsyncMock(return_value=database)
        return client, container

    async def test_connects_once_on_first_use(self) -> None:
        """Test the database and container are set up on first access only."""
        with patch("session_coordinator.profile.cosmos.CosmosClient") as client_cls:
            client, container = self._client(client_cls)
            container.read_item.return_value = {"id": "u1"}
            store = CosmosProfileStore(endpoint="https://example.documents.azure.com:443/", credential="key")

            assert await store.get("u1") == {"id": "u1"}
            assert await store.get("u1") == {"id": "u1"}

        client.create_database_if_not_exists.assert_awaited_once_with(id="session-coordinator")
        assert container.read_item.await_count == 2

    async def test_connection_failure(self) -> None:
        """Test setup errors raise StorageConnectionError and release the client."""
        with patch("session_coordinator.profile.cosmos.CosmosClient") as client_cls:
            client, _ = self._client(client_cls)
            client.create_database_if_not_exists = AsyncMock(side_effect=RuntimeError("dns failure"))
            store = CosmosProfileStore(endpoint="https://example.documents.azure.com:443/", credential="key")

            with pytest.raises(StorageConnectionError):
                await store.initialize()

        client.close.assert_awaited_once()
