"""On-device chat storage: one JSON file per user."""

import json
import logging
import os
import re
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from app.core.config import Settings, settings as app_settings
from app.schemas.chat import Chat
from app.schemas.sync import SyncChat

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"

_chats_adapter = TypeAdapter(list[Chat])
_tombstones_adapter = TypeAdapter(list[SyncChat])


def _safe_name(key: str) -> str:
    return re.sub(r"[^a-zA-Z0-9._-]", "_", key)


class LocalStorage:
    """Persists a user's chats as an array of camelCase Chat objects.

    Files are named ``<namespace>-chats-<userId|anonymous>.json``. Writes go through
    a temporary file and ``os.replace`` so a crash never leaves half a file behind.
    An unreadable file loads as an empty list.
    """

    def __init__(self, directory: str | Path | None = None, namespace: str | None = None):
        self.directory = Path(directory or app_settings.local_storage_dir)
        self.namespace = namespace or app_settings.local_storage_namespace

    @classmethod
    def from_settings(cls, settings: Settings = app_settings) -> "LocalStorage":
        return cls(settings.local_storage_dir, settings.local_storage_namespace)

    def chats_key(self, user_id: str | None) -> str:
        return f"{self.namespace}-chats-{user_id or ANONYMOUS}"

    def tombstones_key(self, user_id: str | None) -> str:
        return f"{self.namespace}-tombstones-{user_id or ANONYMOUS}"

    def _path(self, key: str) -> Path:
        return self.directory / f"{_safe_name(key)}.json"

    def _read(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Failed to read {path}: {str(e)}")
            return None

    def _write(self, key: str, payload: list) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(payload, handle, ensure_ascii=False)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error(f"Failed to write {path}: {str(e)}")

    def load(self, user_id: str | None) -> list[Chat]:
        """Return the stored chats with timestamps re-hydrated."""
        raw = self._read(self.chats_key(user_id))
        if not raw:
            return []
        try:
            return _chats_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning(
                f"Ignoring corrupt local chats for {user_id or ANONYMOUS}: "
                f"{e.error_count()} errors"
            )
            return []

    def save(self, user_id: str | None, chats: list[Chat]) -> None:
        self._write(self.chats_key(user_id), [chat.to_wire() for chat in chats])

    def load_tombstones(self, user_id: str | None) -> list[SyncChat]:
        raw = self._read(self.tombstones_key(user_id))
        if not raw:
            return []
        try:
            return _tombstones_adapter.validate_json(raw)
        except ValidationError:
            logger.warning(f"Ignoring corrupt tombstones for {user_id or ANONYMOUS}")
            return []

    def save_tombstones(self, user_id: str | None, tombstones: list[SyncChat]) -> None:
        if not tombstones:
            self._path(self.tombstones_key(user_id)).unlink(missing_ok=True)
            return
        self._write(self.tombstones_key(user_id), [t.to_wire() for t in tombstones])

    def clear(self, user_id: str | None) -> None:
        for key in (self.chats_key(user_id), self.tombstones_key(user_id)):
            self._path(key).unlink(missing_ok=True)
