from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# v1 storage envelope shared by every staged object (records, notifications,
# sessions, polled batches). Readers branch on schema_version.


class RecordBatch(BaseModel):
    # Arbitrary entity fields; nested maps and arrays round-trip unchanged.
    records: list[dict[str, Any]]
    schema_version: str = Field(default="records:v1")
