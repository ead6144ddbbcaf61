"""Storage backends for quota state and client-side key-value data.

Two quota store variants share one interface:

- ``InMemoryQuotaStore`` - server side, keyed by client IP. A single
  process-wide table with no eviction and no cross-process sharing;
  restarting the process or running several instances resets or
  fragments everyone's quota.
- ``KeyValueQuotaStore`` - client side, JSON blobs in a fixed storage
  slot of a ``KeyValueStore`` (the browser ``localStorage`` analogue).

``SQLiteQuotaStore`` is the pluggable durable backend.

Stores never raise on bad persisted data: a corrupt value reads as
absent so the policy reinitializes it.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple

from shortseo.models import BonusGrantRecord, QuotaRecord, parse_timestamp


logger = logging.getLogger("shortseo.storage")

QuotaEntry = Tuple[QuotaRecord, BonusGrantRecord]


class PersistenceCorruptionError(ValueError):
    """Stored state could not be decoded."""
    pass


class QuotaStore(Protocol):
    """Quota storage interface."""

    def get(self, key: str) -> Optional[QuotaEntry]:
        ...

    def put(self, key: str, record: QuotaRecord, bonus: BonusGrantRecord) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryQuotaStore:
    """In-memory quota store (default, server side)."""

    def __init__(self):
        self._entries: Dict[str, QuotaEntry] = {}

    def get(self, key: str) -> Optional[QuotaEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        record, bonus = entry
        # hand out copies so callers can't mutate the table behind put()
        return (
            QuotaRecord(record.remaining, record.cycle_start),
            BonusGrantRecord(bonus.granted_cycle_start),
        )

    def put(self, key: str, record: QuotaRecord, bonus: BonusGrantRecord) -> None:
        self._entries[key] = (
            QuotaRecord(record.remaining, record.cycle_start),
            BonusGrantRecord(bonus.granted_cycle_start),
        )

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteQuotaStore:
    """SQLite-backed quota store."""

    def __init__(self, db_path: str = "shortseo.db"):
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS quotas (
                key TEXT PRIMARY KEY,
                remaining INTEGER,
                cycle_start TEXT,
                bonus_cycle_start TEXT
            )
            """
        )
        self._conn.commit()

    def get(self, key: str) -> Optional[QuotaEntry]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM quotas WHERE key = ?",
                (key,),
            ).fetchone()
        if not row:
            return None
        try:
            return self._row_to_entry(row)
        except PersistenceCorruptionError as exc:
            logger.warning(f"Discarding corrupt quota row for {key!r}: {exc}")
            return None

    def _row_to_entry(self, row: sqlite3.Row) -> QuotaEntry:
        try:
            record = QuotaRecord.from_dict(
                {"remaining": row["remaining"], "cycle_start": row["cycle_start"]}
            )
            bonus_start = row["bonus_cycle_start"]
            bonus = BonusGrantRecord(
                granted_cycle_start=parse_timestamp(bonus_start) if bonus_start else None
            )
        except (ValueError, TypeError) as exc:
            raise PersistenceCorruptionError(str(exc)) from exc
        return record, bonus

    def put(self, key: str, record: QuotaRecord, bonus: BonusGrantRecord) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO quotas (key, remaining, cycle_start, bonus_cycle_start)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    remaining=excluded.remaining,
                    cycle_start=excluded.cycle_start,
                    bonus_cycle_start=excluded.bonus_cycle_start
                """,
                (
                    key,
                    record.remaining,
                    record.cycle_start.isoformat(),
                    bonus.granted_cycle_start.isoformat() if bonus.granted_cycle_start else None,
                ),
            )
            self._conn.commit()

    def delete(self, key: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM quotas WHERE key = ?", (key,))
            self._conn.commit()

    def close(self) -> None:
        self._conn.close()


# =============================================================================
# Key-value persistence (client-side storage)
# =============================================================================


class KeyValueStore(Protocol):
    """String-to-string persistence, shaped like browser localStorage."""

    def get_item(self, name: str) -> Optional[str]:
        ...

    def set_item(self, name: str, value: str) -> None:
        ...

    def remove_item(self, name: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Key-value store that lives as long as the object."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, name: str) -> Optional[str]:
        return self._items.get(name)

    def set_item(self, name: str, value: str) -> None:
        self._items[name] = value

    def remove_item(self, name: str) -> None:
        self._items.pop(name, None)

    def __contains__(self, name: str) -> bool:
        return name in self._items


class JSONFileKeyValueStore:
    """
    Key-value store persisted as a single JSON object on disk.

    Survives process restarts; deleting the file is the equivalent of
    clearing browser storage. An unreadable file is treated as empty.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Ignoring unreadable state file {self.path}: {exc}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring state file {self.path}: top level is not an object")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self, items: Dict[str, str]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(items, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self.path)

    def get_item(self, name: str) -> Optional[str]:
        with self._lock:
            return self._load().get(name)

    def set_item(self, name: str, value: str) -> None:
        with self._lock:
            items = self._load()
            items[name] = value
            self._save(items)

    def remove_item(self, name: str) -> None:
        with self._lock:
            items = self._load()
            if name in items:
                del items[name]
                self._save(items)


class PrefixedKeyValueStore:
    """Namespaces every name of an underlying store, e.g. per client."""

    def __init__(self, inner: KeyValueStore, prefix: str):
        self.inner = inner
        self.prefix = prefix

    def _name(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    def get_item(self, name: str) -> Optional[str]:
        return self.inner.get_item(self._name(name))

    def set_item(self, name: str, value: str) -> None:
        self.inner.set_item(self._name(name), value)

    def remove_item(self, name: str) -> None:
        self.inner.remove_item(self._name(name))


class KeyValueQuotaStore:
    """
    Client-side quota store.

    Keeps two JSON blobs per key in a ``KeyValueStore``: the usage record
    and the bonus-grant record. A client normally uses one fixed key,
    which makes the state unique per device.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        usage_slot: str = "keywordGeneratorUsageData",
        bonus_slot: str = "keywordGeneratorEmailBonusData",
    ):
        self.kv = kv
        self.usage_slot = usage_slot
        self.bonus_slot = bonus_slot

    def _slots(self, key: str) -> Tuple[str, str]:
        return f"{self.usage_slot}:{key}", f"{self.bonus_slot}:{key}"

    def get(self, key: str) -> Optional[QuotaEntry]:
        usage_name, bonus_name = self._slots(key)
        raw_usage = self.kv.get_item(usage_name)
        if raw_usage is None:
            return None
        try:
            return self._decode(raw_usage, self.kv.get_item(bonus_name))
        except PersistenceCorruptionError as exc:
            logger.warning(f"Discarding corrupt client quota state for {key!r}: {exc}")
            return None

    def _decode(self, raw_usage: str, raw_bonus: Optional[str]) -> QuotaEntry:
        try:
            record = QuotaRecord.from_dict(json.loads(raw_usage))
            bonus = (
                BonusGrantRecord.from_dict(json.loads(raw_bonus))
                if raw_bonus is not None
                else BonusGrantRecord()
            )
        except (ValueError, TypeError) as exc:
            raise PersistenceCorruptionError(str(exc)) from exc
        return record, bonus

    def put(self, key: str, record: QuotaRecord, bonus: BonusGrantRecord) -> None:
        usage_name, bonus_name = self._slots(key)
        self.kv.set_item(usage_name, json.dumps(record.to_dict()))
        self.kv.set_item(bonus_name, json.dumps(bonus.to_dict()))

    def delete(self, key: str) -> None:
        usage_name, bonus_name = self._slots(key)
        self.kv.remove_item(usage_name)
        self.kv.remove_item(bonus_name)
