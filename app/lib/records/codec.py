from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Literal

from pydantic import ValidationError

from app.domain.contracts import Record, RecordCodec
from app.domain.errors import DomainValidationError
from app.lib.records.codecs import decode_batch, encode_batch
from app.lib.records.types import RecordBatch

CompatPolicy = Literal["strict", "compatible"]

SCHEMA_VERSION_BY_CONTRACT: dict[str, str] = {
    "v1": "records:v1",
}


@dataclass(frozen=True)
class VersionedRecordCodec(RecordCodec):
    active_contract_version: str = "v1"
    compat_policy: CompatPolicy = "strict"

    def __post_init__(self) -> None:
        if self.active_contract_version not in SCHEMA_VERSION_BY_CONTRACT:
            raise ValueError(f"unsupported record contract version: {self.active_contract_version}")
        if self.compat_policy not in ("strict", "compatible"):
            raise ValueError(f"unsupported record compat policy: {self.compat_policy}")

    @property
    def schema_version(self) -> str:
        return SCHEMA_VERSION_BY_CONTRACT[self.active_contract_version]

    def encode(self, records: Record | Sequence[Record]) -> bytes:
        items = [records] if isinstance(records, Mapping) else list(records)
        return encode_batch(RecordBatch(records=[dict(item) for item in items], schema_version=self.schema_version))

    def decode(self, payload: bytes) -> list[Record]:
        try:
            batch = decode_batch(payload)
        except ValidationError as exc:
            raise DomainValidationError(f"stored payload is not a record batch: {exc.error_count()} error(s)") from exc
        self._validate_schema(batch.schema_version)
        return batch.records

    def _validate_schema(self, actual_schema_version: str) -> None:
        expected_schema_version = self.schema_version
        if actual_schema_version == expected_schema_version:
            return

        if self.compat_policy == "compatible":
            expected_family = expected_schema_version.split(":", maxsplit=1)[0]
            actual_family = actual_schema_version.split(":", maxsplit=1)[0]
            if expected_family == actual_family:
                return

        raise DomainValidationError(
            f"record schema mismatch: expected {expected_schema_version}, got {actual_schema_version}"
        )
