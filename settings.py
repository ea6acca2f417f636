"""
Persisted settings.

Settings live in a small key-value store. Nothing about the stored shape is
trusted: `decode_settings` turns whatever comes back into a well-typed
SyncSettings, falling back to empty defaults and `unknown` property types
instead of failing to load.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from mapping import normalize_mapping
from models import (
    Database,
    DatabaseProperty,
    DatabaseSchemaStatus,
    SyncSettings,
    classify_property,
)

logger = logging.getLogger(__name__)

SETTINGS_KEYS = [
    "available_accounts",
    "selected_accounts",
    "notion_api_key",
    "selected_database",
    "balance_database",
    "transactions_database",
    "transactions_field_mapping",
    "balance_database_link_draft",
    "transactions_database_link_draft",
]

# Older settings kept the balance database under this key.
LEGACY_DATABASE_KEY = "selected_database"


class SettingsStore(Protocol):
    """Key-value persistence for settings."""

    def get(self, keys: list[str]) -> dict[str, Any]: ...

    def set(self, values: dict[str, Any]) -> None: ...


class JsonFileSettingsStore:
    """Settings kept as one JSON object on disk."""

    def __init__(self, path: Path):
        self.path = path

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except ValueError as e:
            logger.warning(f"Ignoring unreadable settings file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, keys: list[str]) -> dict[str, Any]:
        data = self._read()
        return {key: data[key] for key in keys if key in data}

    def set(self, values: dict[str, Any]) -> None:
        data = self._read()
        data.update(values)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2))


class MemorySettingsStore:
    def __init__(self, data: dict[str, Any] | None = None):
        self.data = dict(data or {})

    def get(self, keys: list[str]) -> dict[str, Any]:
        return {key: self.data[key] for key in keys if key in self.data}

    def set(self, values: dict[str, Any]) -> None:
        self.data.update(values)


def default_settings_path() -> Path:
    configured = os.getenv("NOTION_SYNC_SETTINGS")
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".config" / "notion-sync" / "settings.json"


def decode_properties(properties: Any) -> list[DatabaseProperty]:
    """Decode stored properties, given either as a list or a name-keyed mapping."""
    if isinstance(properties, list):
        return [
            classify_property(f"property-{index}", raw, f"Property {index + 1}")
            for index, raw in enumerate(properties)
            if isinstance(raw, dict)
        ]

    if isinstance(properties, dict):
        return [
            classify_property(
                key or f"property-{index}", raw, key or f"Property {index + 1}"
            )
            for index, (key, raw) in enumerate(properties.items())
        ]

    return []


def decode_schema_status(raw: Any) -> DatabaseSchemaStatus | None:
    if not isinstance(raw, dict):
        return None
    try:
        return DatabaseSchemaStatus.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Dropping malformed schema status: {e.error_count()} errors")
        return None


def decode_database(raw: Any) -> Database | None:
    if not isinstance(raw, dict) or not isinstance(raw.get("id"), str):
        return None

    def text_or(key: str, default: str | None) -> str | None:
        value = raw.get(key)
        return value if isinstance(value, str) else default

    return Database(
        id=raw["id"],
        title=text_or("title", "Untitled database") or "Untitled database",
        icon=text_or("icon", None),
        emoji=text_or("emoji", None),
        properties=decode_properties(raw.get("properties")),
        link=text_or("link", "") or "",
        schema_status=decode_schema_status(raw.get("schema_status")),
    )


def decode_settings(stored: dict[str, Any]) -> SyncSettings:
    legacy_database = stored.get(LEGACY_DATABASE_KEY)
    balance_database = decode_database(
        stored.get("balance_database") or legacy_database
    )
    transactions_database = decode_database(stored.get("transactions_database"))

    raw_mapping = stored.get("transactions_field_mapping")
    available = stored.get("available_accounts")
    selected = stored.get("selected_accounts")

    def draft(key: str, database: Database | None) -> str:
        value = stored.get(key)
        if isinstance(value, str):
            return value
        return database.link if database else ""

    api_key = stored.get("notion_api_key")
    return SyncSettings(
        notion_api_key=api_key if isinstance(api_key, str) else "",
        balance_database=balance_database,
        transactions_database=transactions_database,
        transactions_field_mapping=normalize_mapping(raw_mapping)
        if isinstance(raw_mapping, dict)
        else None,
        balance_database_link_draft=draft(
            "balance_database_link_draft", balance_database
        ),
        transactions_database_link_draft=draft(
            "transactions_database_link_draft", transactions_database
        ),
        available_accounts={
            str(key): str(value) for key, value in available.items()
        }
        if isinstance(available, dict)
        else {},
        selected_accounts=[str(value) for value in selected]
        if isinstance(selected, list)
        else [],
    )


def load_settings(store: SettingsStore) -> SyncSettings:
    """Read and decode settings, migrating the legacy balance database key."""
    stored = store.get(SETTINGS_KEYS)
    legacy_database = stored.get(LEGACY_DATABASE_KEY)
    if legacy_database and not stored.get("balance_database"):
        logger.info("Migrating legacy balance database setting")
        store.set({"balance_database": legacy_database})
    return decode_settings(stored)


def encode_settings(values: dict[str, Any]) -> dict[str, Any]:
    payload = {}
    for key, value in values.items():
        if hasattr(value, "model_dump"):
            value = value.model_dump(mode="json")
        payload[key] = value
    if "balance_database" in payload:
        payload[LEGACY_DATABASE_KEY] = payload["balance_database"]
    return payload


def save_settings(store: SettingsStore, **values: Any) -> None:
    """Persist a partial settings update."""
    store.set(encode_settings(values))
