"""
Keyed record store consumed by the pipeline.

The pipeline treats persistence as an opaque collaborator: records are
plain dicts addressed by (entity_kind, key). Keys are project ids or tuples
such as (project_id, scene_index) / (project_id, name).
"""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Hashable, List, Optional, Protocol, Sequence, Tuple

from .errors import RecordNotFound

Record = Dict[str, Any]


class RecordStore(Protocol):
    def create(self, entity_kind: str, key: Optional[Hashable], data: Record) -> Record: ...

    def find_unique(self, entity_kind: str, key: Hashable) -> Optional[Record]: ...

    def find_many(self, entity_kind: str, where: Optional[Callable[[Record], bool]] = None) -> List[Record]: ...

    def update(self, entity_kind: str, key: Hashable, data: Record) -> Record: ...

    def upsert(self, entity_kind: str, key: Hashable, data: Record) -> Record: ...

    def upsert_many(self, writes: Sequence[Tuple[str, Hashable, Record]]) -> List[Record]: ...

    def delete(self, entity_kind: str, key: Hashable) -> None: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryRecordStore:
    """Thread-safe dict-backed RecordStore.

    Every call is atomic and returns a deep copy, so callers never alias
    the stored lists (e.g. a story's scenes).
    """

    def __init__(self):
        self._tables: Dict[str, Dict[Hashable, Record]] = {}
        self._lock = threading.RLock()

    def _table(self, entity_kind: str) -> Dict[Hashable, Record]:
        return self._tables.setdefault(entity_kind, {})

    def create(self, entity_kind: str, key: Optional[Hashable], data: Record) -> Record:
        with self._lock:
            table = self._table(entity_kind)
            if key is None:
                key = data.get("id") or uuid.uuid4().hex
            if key in table:
                raise ValueError(f"{entity_kind} already exists: {key}")
            record = copy.deepcopy(data)
            record.setdefault("id", key if isinstance(key, str) else uuid.uuid4().hex)
            record.setdefault("created_at", _now())
            record["updated_at"] = record["created_at"]
            table[key] = record
            return copy.deepcopy(record)

    def find_unique(self, entity_kind: str, key: Hashable) -> Optional[Record]:
        with self._lock:
            record = self._table(entity_kind).get(key)
            return copy.deepcopy(record) if record is not None else None

    def find_many(self, entity_kind: str, where: Optional[Callable[[Record], bool]] = None) -> List[Record]:
        with self._lock:
            rows = list(self._table(entity_kind).values())
        return [copy.deepcopy(r) for r in rows if where is None or where(r)]

    def update(self, entity_kind: str, key: Hashable, data: Record) -> Record:
        with self._lock:
            table = self._table(entity_kind)
            if key not in table:
                raise RecordNotFound(entity_kind, key)
            record = dict(table[key])
            record.update(copy.deepcopy(data))
            record["updated_at"] = _now()
            table[key] = record
            return copy.deepcopy(record)

    def upsert(self, entity_kind: str, key: Hashable, data: Record) -> Record:
        with self._lock:
            if key in self._table(entity_kind):
                return self.update(entity_kind, key, data)
            return self.create(entity_kind, key, data)

    def upsert_many(self, writes: Sequence[Tuple[str, Hashable, Record]]) -> List[Record]:
        """Upsert (entity_kind, key, data) triples as one write: all land or none do."""
        with self._lock:
            snapshot = {kind: dict(table) for kind, table in self._tables.items()}
            try:
                return [self.upsert(kind, key, data) for kind, key, data in writes]
            except Exception:
                self._tables = snapshot
                raise

    def delete(self, entity_kind: str, key: Hashable) -> None:
        with self._lock:
            if self._table(entity_kind).pop(key, None) is None:
                raise RecordNotFound(entity_kind, key)
