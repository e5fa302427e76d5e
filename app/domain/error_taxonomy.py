from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

# Canonical error vocabulary for staging operations.
ErrorCode = Literal[
    "validation_rejected",
    "not_found",
    "store_unavailable",
    "partial_batch_failure",
    "internal_error",
]

RetryClassification = Literal["recoverable", "terminal"]

CANONICAL_ERROR_CODES: tuple[ErrorCode, ...] = (
    "validation_rejected",
    "not_found",
    "store_unavailable",
    "partial_batch_failure",
    "internal_error",
)

# Retrying is the poller's call; the core only labels.
RECOVERABLE_ERROR_CODES: frozenset[ErrorCode] = frozenset(
    {
        "store_unavailable",
        "internal_error",
    }
)

# Operation-specific allowlist. Codes outside this map are normalized to
# internal_error by resolve_operation_error().
OPERATION_ERROR_MAP: Mapping[str, frozenset[ErrorCode]] = {
    "save": frozenset(
        {
            "validation_rejected",
            "store_unavailable",
            "partial_batch_failure",
            "internal_error",
        }
    ),
    "update_with_destination_ids": frozenset(
        {
            "validation_rejected",
            "not_found",
            "store_unavailable",
            "partial_batch_failure",
            "internal_error",
        }
    ),
    "finalize": frozenset(
        {
            "not_found",
            "store_unavailable",
            "partial_batch_failure",
            "internal_error",
        }
    ),
    "fail_from_session": frozenset(
        {
            "not_found",
            "store_unavailable",
            "internal_error",
        }
    ),
}


def is_canonical_error_code(code: str) -> bool:
    return code in CANONICAL_ERROR_CODES


def classify_error(code: ErrorCode) -> RetryClassification:
    if code in RECOVERABLE_ERROR_CODES:
        return "recoverable"
    return "terminal"


def resolve_operation_error(*, operation: str, code: str) -> ErrorCode:
    allowed = OPERATION_ERROR_MAP.get(operation, frozenset({"internal_error"}))
    if code in allowed and is_canonical_error_code(code):
        return code
    return "internal_error"
