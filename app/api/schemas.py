from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from app.domain.models import BatchReport
from app.domain.paths import DESTINATION_ID_PATTERN, SESSION_TAG_MAX_LENGTH, SESSION_TAG_PATTERN


SESSION_ID_PATTERN = r"^sess_[0-9A-HJKMNP-TV-Z]{26}(_[A-Za-z0-9.-]+)?$"


class ErrorResponse(BaseModel):
    detail: str


class DispatchMetrics(BaseModel):
    started: bool
    stopped: bool
    ticks_total: int
    rounds_with_work_total: int
    idle_ticks_total: int
    errors_total: int


class HealthResponse(BaseModel):
    status: str
    role: str
    connection_id: str | None = None


class ReadyResponse(BaseModel):
    status: str
    role: str
    dispatch_loop_enabled: bool
    dispatch_loop_ready: bool
    dispatch_metrics: DispatchMetrics


class SaveRecordsRequest(BaseModel):
    records: list[dict[str, Any]] = Field(min_length=1)


class ItemFailureResponse(BaseModel):
    object_type: str
    natural_key: str | None
    error_code: str
    detail: str


class BatchReportResponse(BaseModel):
    ok: bool
    applied: list[str]
    failures: list[ItemFailureResponse]
    error_code: str | None = None

    @classmethod
    def from_report(cls, report: BatchReport) -> BatchReportResponse:
        return cls(
            ok=report.ok,
            applied=list(report.applied),
            failures=[
                ItemFailureResponse(
                    object_type=failure.object_type.value,
                    natural_key=failure.natural_key,
                    error_code=failure.error_code,
                    detail=failure.detail,
                )
                for failure in report.failures
            ],
            error_code=report.error_code,
        )


class DestinationIdUpdateItem(BaseModel):
    object_type: str
    natural_key: str = Field(min_length=1)
    list_id: str = Field(pattern=DESTINATION_ID_PATTERN)
    edit_sequence: str = Field(pattern=DESTINATION_ID_PATTERN)
    extra_data: dict[str, Any] | None = None


class DestinationIdsRequest(BaseModel):
    updates: list[DestinationIdUpdateItem] = Field(min_length=1)


class RecordRefItem(BaseModel):
    object_type: str
    natural_key: str = Field(min_length=1)
    list_id: str | None = Field(default=None, pattern=DESTINATION_ID_PATTERN)
    edit_sequence: str | None = Field(default=None, pattern=DESTINATION_ID_PATTERN)

    @model_validator(mode="after")
    def ids_come_in_pairs(self) -> RecordRefItem:
        if (self.list_id is None) != (self.edit_sequence is None):
            raise ValueError("list_id and edit_sequence must be given together")
        return self


class OutcomesRequest(BaseModel):
    processed: list[RecordRefItem] = Field(default_factory=list)
    failed: list[RecordRefItem] = Field(default_factory=list)


class DestinationErrorRequest(BaseModel):
    object_type: str
    session_id: str = Field(pattern=SESSION_ID_PATTERN)
    error_context: dict[str, Any] = Field(default_factory=dict)


class NotificationsResponse(BaseModel):
    object_type: str
    notifications: dict[str, dict[str, list[str]]]


class CreateSessionRequest(BaseModel):
    record: dict[str, Any]
    tag: str | None = Field(default=None, pattern=SESSION_TAG_PATTERN, max_length=SESSION_TAG_MAX_LENGTH)


class SessionResponse(BaseModel):
    session_id: str
    record: dict[str, Any] | None = None
