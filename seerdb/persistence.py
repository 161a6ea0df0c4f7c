"""Encrypted connection profiles and query history on disk.

Both stores keep a JSON array in the data directory.  Profiles never hold a
cleartext password on disk: the password is cut out of the connection string,
encrypted with the :class:`~seerdb.keystore.KeyStore` and replaced by a short
run of asterisks.  Writes are coalesced through :class:`DebouncedWriter` unless
the caller asks for an immediate write.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import AppConfig
from .credentials import extract_password, mask_password, restore_password
from .debounce import DEFAULT_DELAY, DebouncedWriter, flush_all
from .keystore import DecryptionError, EncryptedSecret, KeyStore
from .models import ConnectionProfile, DBType, QueryHistoryItem, utc_now_iso
from .storage import PersistenceError, ensure_directory, read_json, write_json

LOG = logging.getLogger(__name__)

CONNECTIONS_FILE = "connections.json"
HISTORY_FILE = "query-history.json"
DEFAULT_HISTORY_LIMIT = 100
LEGACY_NAME = "Legacy connection"

_DRIVER_ALIASES: dict[str, DBType] = {
    "postgres": DBType.POSTGRESQL,
    "postgresql": DBType.POSTGRESQL,
    "pg": DBType.POSTGRESQL,
    "mysql": DBType.MYSQL,
    "sqlite": DBType.SQLITE,
    "sqlite3": DBType.SQLITE,
}


class _SecretModel(BaseModel):
    encrypted: str
    iv: str
    tag: str


class _ProfileModel(BaseModel):
    """On-disk profile; camelCase keys, unknown keys ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    type: DBType
    connection_string: str = Field(alias="connectionString")
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")
    encrypted_password: _SecretModel | None = Field(default=None, alias="encryptedPassword")


class _HistoryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    connection_id: str = Field(alias="connectionId")
    query: str
    executed_at: str = Field(alias="executedAt")
    duration_ms: float = Field(alias="durationMs")
    row_count: float = Field(alias="rowCount")
    error: str | None = None


@dataclass(frozen=True, slots=True)
class ConnectionsLoadResult:
    records: tuple[ConnectionProfile, ...] = ()
    normalized_count: int = 0
    skipped_count: int = 0


def deterministic_id(name: str, connection_string: str) -> str:
    """Stable 12-character id for a legacy entry that never had one."""

    return hashlib.sha1(f"{name}:{connection_string}".encode("utf-8")).hexdigest()[:12]


def dedupe_key(profile: ConnectionProfile) -> tuple[DBType, str]:
    return profile.type, mask_password(profile.connection_string)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _legacy_string(entry: dict[str, Any], keys: Sequence[str]) -> str | None:
    for key in keys:
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize_legacy_entry(entry: object) -> ConnectionProfile | None:
    """Map an older on-disk shape onto a profile, or ``None`` when hopeless."""

    if not isinstance(entry, dict):
        return None
    name = entry.get("name") if isinstance(entry.get("name"), str) else LEGACY_NAME
    driver = _legacy_string(entry, ("driver", "type"))
    connection_string = _legacy_string(entry, ("connection_str", "connectionString"))
    if not driver or not connection_string:
        LOG.warning("Legacy connection missing driver or connection string")
        return None
    db_type = _DRIVER_ALIASES.get(driver.lower())
    if db_type is None:
        LOG.warning("Unsupported legacy driver", extra={"driver": driver})
        return None
    timestamp = utc_now_iso()
    return ConnectionProfile(
        id=deterministic_id(name, connection_string),
        name=name,
        type=db_type,
        connection_string=connection_string,
        created_at=timestamp,
        updated_at=timestamp,
    )


def deduplicate(profiles: Iterable[ConnectionProfile]) -> tuple[list[ConnectionProfile], int]:
    """Keep one profile per (dialect, masked string); the later ``updated_at`` wins.

    Returns the surviving profiles in first-seen order and the number dropped.
    """

    kept: list[ConnectionProfile] = []
    positions: dict[tuple[DBType, str], int] = {}
    dropped = 0
    for profile in profiles:
        key = dedupe_key(profile)
        index = positions.get(key)
        if index is None:
            positions[key] = len(kept)
            kept.append(profile)
            continue
        existing = kept[index]
        current_time = _parse_timestamp(profile.updated_at)
        existing_time = _parse_timestamp(existing.updated_at)
        replace = current_time is not None and (existing_time is None or current_time > existing_time)
        winner, loser = (profile, existing) if replace else (existing, profile)
        if replace:
            kept[index] = profile
        if extract_password(winner.connection_string) != extract_password(loser.connection_string):
            LOG.warning(
                "Dropped duplicate connection with a different password",
                extra={"kept": winner.id, "dropped": loser.id},
            )
        dropped += 1
    return kept, dropped


class ConnectionRecordStore:
    """Loads and saves :class:`ConnectionProfile` values."""

    def __init__(
        self,
        data_dir: Path,
        keystore: KeyStore | None = None,
        *,
        write_delay: float = DEFAULT_DELAY,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / CONNECTIONS_FILE
        self.keystore = keystore or KeyStore(self.data_dir)
        self.writer: DebouncedWriter[list[dict[str, Any]]] = DebouncedWriter(
            self._write, write_delay, name="connections"
        )

    async def load(self) -> ConnectionsLoadResult:
        await asyncio.to_thread(ensure_directory, self.data_dir)
        data = await asyncio.to_thread(read_json, self.path)
        if data is None:
            return ConnectionsLoadResult()
        if not isinstance(data, list):
            LOG.warning("Expected an array of connections; using an empty list", extra={"path": str(self.path)})
            return ConnectionsLoadResult(skipped_count=1)
        return await asyncio.to_thread(self._decode_all, data)

    async def save(self, profiles: Sequence[ConnectionProfile], *, flush: bool = False) -> None:
        """Persist ``profiles``; ``flush=True`` writes now and raises on failure."""

        payload = await asyncio.to_thread(self._encode_all, profiles)
        if flush:
            self.writer.cancel()
            await self.writer.wait_idle()
            await self._write(payload)
        else:
            self.writer.write(payload)

    async def flush(self) -> None:
        await self.writer.flush()

    def _decode_all(self, entries: list[Any]) -> ConnectionsLoadResult:
        profiles: list[ConnectionProfile] = []
        normalized = 0
        skipped = 0
        for index, entry in enumerate(entries):
            try:
                model = _ProfileModel.model_validate(entry)
            except ValidationError:
                profile = normalize_legacy_entry(entry)
                if profile is None:
                    LOG.warning("Skipping invalid connection entry", extra={"index": index})
                    skipped += 1
                    continue
                normalized += 1
                profiles.append(profile)
                continue
            try:
                profiles.append(self._decode(model))
            except DecryptionError:
                LOG.warning("Failed to decrypt password; skipping connection", extra={"connection": model.name})
                skipped += 1
        kept, dropped = deduplicate(profiles)
        if normalized or skipped or dropped:
            LOG.info(
                "Loaded connections",
                extra={"count": len(kept), "normalized": normalized, "skipped": skipped + dropped},
            )
        return ConnectionsLoadResult(
            records=tuple(kept),
            normalized_count=normalized,
            skipped_count=skipped + dropped,
        )

    def _decode(self, model: _ProfileModel) -> ConnectionProfile:
        connection_string = model.connection_string
        if model.encrypted_password is not None:
            secret = EncryptedSecret.from_json(model.encrypted_password.model_dump())
            connection_string = restore_password(connection_string, self.keystore.decrypt(secret))
        return ConnectionProfile(
            id=model.id,
            name=model.name,
            type=model.type,
            connection_string=connection_string,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _encode_all(self, profiles: Sequence[ConnectionProfile]) -> list[dict[str, Any]]:
        return [self._encode(profile) for profile in profiles]

    def _encode(self, profile: ConnectionProfile) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": profile.id,
            "name": profile.name,
            "type": profile.type.value,
            "connectionString": profile.connection_string,
            "createdAt": profile.created_at,
            "updatedAt": profile.updated_at,
        }
        password = extract_password(profile.connection_string)
        if password:
            record["connectionString"] = mask_password(profile.connection_string)
            record["encryptedPassword"] = self.keystore.encrypt(password).to_json()
        return record

    async def _write(self, payload: list[dict[str, Any]]) -> None:
        await asyncio.to_thread(write_json, self.path, payload)


class QueryHistoryStore:
    """Newest-first query history, capped at ``limit`` entries."""

    def __init__(
        self,
        data_dir: Path,
        *,
        write_delay: float = DEFAULT_DELAY,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / HISTORY_FILE
        self.limit = limit
        self.writer: DebouncedWriter[list[dict[str, Any]]] = DebouncedWriter(
            self._write, write_delay, name="query-history"
        )

    async def load(self) -> list[QueryHistoryItem]:
        await asyncio.to_thread(ensure_directory, self.data_dir)
        data = await asyncio.to_thread(read_json, self.path)
        if data is None:
            return []
        if not isinstance(data, list):
            LOG.warning("Expected an array of history items; using an empty list", extra={"path": str(self.path)})
            return []
        items: list[QueryHistoryItem] = []
        for index, entry in enumerate(data):
            try:
                model = _HistoryModel.model_validate(entry)
            except ValidationError:
                LOG.warning("Skipping invalid history entry", extra={"index": index})
                continue
            items.append(
                QueryHistoryItem(
                    id=model.id,
                    connection_id=model.connection_id,
                    query=model.query,
                    executed_at=model.executed_at,
                    duration_ms=int(model.duration_ms),
                    row_count=int(model.row_count),
                    error=model.error,
                )
            )
        return items

    async def save(self, items: Sequence[QueryHistoryItem], *, flush: bool = False) -> None:
        payload = [self._encode(item) for item in list(items)[: self.limit]]
        if flush:
            self.writer.cancel()
            await self.writer.wait_idle()
            await self._write(payload)
        else:
            self.writer.write(payload)

    async def flush(self) -> None:
        await self.writer.flush()

    @staticmethod
    def _encode(item: QueryHistoryItem) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": item.id,
            "connectionId": item.connection_id,
            "query": item.query,
            "executedAt": item.executed_at,
            "durationMs": item.duration_ms,
            "rowCount": item.row_count,
        }
        if item.error is not None:
            record["error"] = item.error
        return record

    async def _write(self, payload: list[dict[str, Any]]) -> None:
        await asyncio.to_thread(write_json, self.path, payload)


class Persistence:
    """Both stores sharing one data directory and key."""

    def __init__(
        self,
        data_dir: Path,
        *,
        write_delay: float = DEFAULT_DELAY,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.keystore = KeyStore(self.data_dir)
        self.connections = ConnectionRecordStore(self.data_dir, self.keystore, write_delay=write_delay)
        self.history = QueryHistoryStore(self.data_dir, write_delay=write_delay, limit=history_limit)

    @classmethod
    def from_config(cls, config: AppConfig) -> Persistence:
        return cls(config.data_dir, write_delay=config.write_delay, history_limit=config.history_limit)

    async def flush(self) -> None:
        """Best-effort flush of every pending write, used at shutdown."""

        await flush_all([self.connections.writer, self.history.writer])


__all__ = [
    "CONNECTIONS_FILE",
    "ConnectionRecordStore",
    "ConnectionsLoadResult",
    "HISTORY_FILE",
    "Persistence",
    "PersistenceError",
    "QueryHistoryStore",
    "deduplicate",
    "dedupe_key",
    "deterministic_id",
    "normalize_legacy_entry",
]
