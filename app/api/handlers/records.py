from __future__ import annotations

from typing import Any

from app.api.handlers.deps import ApiDeps
from app.api.schemas import BatchReportResponse
from app.domain.models import ObjectType

COMPONENT_ID = "api.save_records"


async def save_records_handler(
    *,
    object_type: ObjectType,
    records: list[dict[str, Any]],
    api_deps: ApiDeps,
) -> BatchReportResponse:
    """Origin push: every record is staged or rejected on its own."""
    report = api_deps.engine.save(object_type, records)
    return BatchReportResponse.from_report(report)
