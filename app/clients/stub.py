from __future__ import annotations

from dataclasses import dataclass, field

from app.domain.contracts import DispatchBatch
from app.domain.errors import RecordNotFoundError, StoreUnavailableError
from app.domain.models import StagedRecord
from app.domain.paths import next_free_key


@dataclass
class InMemoryObjectStore:
    """Non-network object store with the same collision rules as S3 mode."""

    objects: dict[str, bytes] = field(default_factory=dict)
    writes: list[str] = field(default_factory=list)
    available: bool = True

    def write(self, *, key: str, payload: bytes) -> str:
        self._ensure_available()
        actual_key = next_free_key(key, self.objects.__contains__)
        self.objects[actual_key] = payload
        self.writes.append(actual_key)
        return actual_key

    def rewrite(self, *, key: str, payload: bytes) -> None:
        self._ensure_available()
        if key not in self.objects:
            raise RecordNotFoundError(key)
        self.objects[key] = payload

    def list_by_prefix(self, *, prefix: str) -> list[str]:
        self._ensure_available()
        return sorted(key for key in self.objects if key.startswith(prefix))

    def read(self, *, key: str) -> bytes:
        self._ensure_available()
        payload = self.objects.get(key)
        if payload is None:
            raise RecordNotFoundError(key)
        return payload

    def move(self, *, from_key: str, to_key: str) -> str:
        self._ensure_available()
        if from_key not in self.objects:
            raise RecordNotFoundError(from_key)
        if from_key == to_key:
            return from_key
        actual_key = next_free_key(to_key, self.objects.__contains__)
        self.objects[actual_key] = self.objects.pop(from_key)
        return actual_key

    def copy(self, *, from_key: str, to_key: str) -> str:
        self._ensure_available()
        payload = self.read(key=from_key)
        actual_key = next_free_key(to_key, self.objects.__contains__)
        self.objects[actual_key] = payload
        return actual_key

    def delete(self, *, key: str) -> None:
        self._ensure_available()
        self.objects.pop(key, None)

    def _ensure_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("in-memory object store is marked unavailable")


@dataclass
class StubRequestBuilder:
    query_batches: list[DispatchBatch] = field(default_factory=list)
    insert_update_batches: list[list[StagedRecord]] = field(default_factory=list)

    def build_queries(self, batch: DispatchBatch) -> None:
        self.query_batches.append(list(batch))

    def build_insert_update(self, records: list[StagedRecord]) -> None:
        self.insert_update_batches.append(list(records))
