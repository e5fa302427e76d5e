from __future__ import annotations

from app.lib.records.types import RecordBatch


def encode_batch(batch: RecordBatch) -> bytes:
    return batch.model_dump_json().encode("utf-8")


def decode_batch(payload: bytes) -> RecordBatch:
    return RecordBatch.model_validate_json(payload)
