"""
Local file-based profile store.

Stores each profile as a JSON file on disk:

    {base_path}/
      {principal_id}.json

Datetimes are written as ISO 8601 strings.
"""

from __future__ import annotations

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ..exceptions import ProfileExistsError, ProfileNotFoundError, ProfileStoreError
from .store import ProfileStore

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]+$")


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class LocalProfileStore(ProfileStore):
    """Profile store writing one JSON document per principal."""

    def __init__(self, base_path: str | Path | None = None) -> None:
        """Initialize local storage.

        Args:
            base_path: Directory for profile files. Defaults to ~/.session-coordinator/profiles
        """
        if base_path:
            self.base_path = Path(base_path)
        else:
            self.base_path = Path.home() / ".session-coordinator" / "profiles"

    def _document_file(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key) or key in (".", ".."):
            raise ProfileStoreError("resolve_path", key, message=f"Invalid profile key: {key!r}")
        return self.base_path / f"{key}.json"

    async def get(self, key: str) -> dict[str, Any] | None:
        path = self._document_file(key)
        if not path.exists():
            return None
        try:
            async with aiofiles.open(path) as f:
                content = await f.read()
            return json.loads(content)
        except (OSError, json.JSONDecodeError) as e:
            raise ProfileStoreError("get", key, cause=e) from e

    async def create(self, key: str, document: dict[str, Any]) -> None:
        path = self._document_file(key)
        if path.exists():
            raise ProfileExistsError(key)
        await self._write(key, path, self.resolve_server_values(document))

    async def update(self, key: str, fields: dict[str, Any]) -> None:
        path = self._document_file(key)
        document = await self.get(key)
        if document is None:
            raise ProfileNotFoundError(key)
        document.update(self.resolve_server_values(fields))
        await self._write(key, path, document)

    async def _write(self, key: str, path: Path, document: dict[str, Any]) -> None:
        """Write via a temporary file so readers never see a partial document."""
        payload = json.dumps({k: _encode(v) for k, v in document.items()}, indent=2)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            await aiofiles.os.makedirs(self.base_path, exist_ok=True)
            async with aiofiles.open(tmp_path, "w") as f:
                await f.write(payload)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            raise ProfileStoreError("write", key, cause=e) from e
