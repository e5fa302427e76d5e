from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from app.domain.models import ObjectType, StagedRecord

# Record shape handed across the codec boundary.
Record = dict[str, Any]

# Ordered (object_type, payload) pairs consumed by request builders.
DispatchBatch = list[tuple[ObjectType, Record]]


@runtime_checkable
class ObjectStore(Protocol):
    """Key/blob store with prefix listing only.

    write/move/copy never overwrite: a taken key gets a collision suffix and
    the key actually used is returned. rewrite replaces the content of a key
    that already exists and never creates one. read raises
    RecordNotFoundError for a missing key; transport failures raise
    StoreUnavailableError. A move must either fully succeed or fail.
    """

    def write(self, *, key: str, payload: bytes) -> str: ...

    def rewrite(self, *, key: str, payload: bytes) -> None: ...

    def list_by_prefix(self, *, prefix: str) -> list[str]: ...

    def read(self, *, key: str) -> bytes: ...

    def move(self, *, from_key: str, to_key: str) -> str: ...

    def copy(self, *, from_key: str, to_key: str) -> str: ...

    def delete(self, *, key: str) -> None: ...


@runtime_checkable
class RecordCodec(Protocol):
    """Lossless encoding of one record or a batch of records."""

    def encode(self, records: Record | Sequence[Record]) -> bytes: ...

    def decode(self, payload: bytes) -> list[Record]: ...


@runtime_checkable
class RequestBuilder(Protocol):
    """Downstream consumer that turns staged records into destination requests."""

    def build_queries(self, batch: DispatchBatch) -> None: ...

    def build_insert_update(self, records: list[StagedRecord]) -> None: ...
