from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from app.api.handlers.deps import ApiDeps
from app.api.schemas import BatchReportResponse, DestinationIdUpdateItem, RecordRefItem
from app.domain.models import DestinationIdUpdate, NotificationStatus, ObjectType, RecordRef, parse_object_type

COMPONENT_ID_IDS = "api.update_destination_ids"
COMPONENT_ID_OUTCOMES = "api.finalize_outcomes"
COMPONENT_ID_ERRORS = "api.destination_errors"


async def update_destination_ids_handler(
    *,
    updates: Sequence[DestinationIdUpdateItem],
    api_deps: ApiDeps,
) -> BatchReportResponse:
    report = api_deps.engine.update_with_destination_ids(
        [
            DestinationIdUpdate(
                object_type=parse_object_type(item.object_type),
                natural_key=item.natural_key,
                list_id=item.list_id,
                edit_sequence=item.edit_sequence,
                extra_data=item.extra_data,
            )
            for item in updates
        ]
    )
    return BatchReportResponse.from_report(report)


async def finalize_outcomes_handler(
    *,
    processed: Sequence[RecordRefItem],
    failed: Sequence[RecordRefItem],
    api_deps: ApiDeps,
) -> BatchReportResponse:
    outcomes = {
        NotificationStatus.PROCESSED: [_to_ref(item) for item in processed],
        NotificationStatus.FAILED: [_to_ref(item) for item in failed],
    }
    report = api_deps.engine.finalize(outcomes)
    return BatchReportResponse.from_report(report)


async def destination_error_handler(
    *,
    object_type: ObjectType,
    session_id: str,
    error_context: dict[str, Any],
    api_deps: ApiDeps,
) -> BatchReportResponse:
    report = api_deps.engine.fail_from_session(object_type, session_id, error_context)
    return BatchReportResponse.from_report(report)


def _to_ref(item: RecordRefItem) -> RecordRef:
    return RecordRef(
        object_type=parse_object_type(item.object_type),
        natural_key=item.natural_key,
        list_id=item.list_id,
        edit_sequence=item.edit_sequence,
    )
