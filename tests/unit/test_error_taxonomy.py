from __future__ import annotations

import pytest

from app.domain.error_taxonomy import (
    classify_error,
    is_canonical_error_code,
    resolve_operation_error,
)
from app.domain.models import BatchReport, ItemFailure, ObjectType


@pytest.mark.unit
def test_canonical_error_codes_are_enforced() -> None:
    assert is_canonical_error_code("validation_rejected") is True
    assert is_canonical_error_code("unknown_error") is False


@pytest.mark.unit
def test_operation_error_mapping_restricts_invalid_codes() -> None:
    assert resolve_operation_error(operation="save", code="validation_rejected") == "validation_rejected"
    assert resolve_operation_error(operation="save", code="not_found") == "internal_error"
    assert resolve_operation_error(operation="finalize", code="not_found") == "not_found"
    assert resolve_operation_error(operation="unknown", code="not_found") == "internal_error"


@pytest.mark.unit
def test_retry_classification_distinguishes_terminal_and_recoverable() -> None:
    assert classify_error("store_unavailable") == "recoverable"
    assert classify_error("validation_rejected") == "terminal"
    assert classify_error("not_found") == "terminal"


def _failure(code: str) -> ItemFailure:
    return ItemFailure(object_type=ObjectType.ORDER, natural_key="R1", error_code=code, detail="x")


@pytest.mark.unit
def test_batch_report_error_code() -> None:
    assert BatchReport().error_code is None
    assert BatchReport().ok is True
    assert BatchReport(failures=[_failure("not_found")]).error_code == "not_found"
    assert BatchReport(applied=["k"], failures=[_failure("not_found")]).error_code == "partial_batch_failure"
    assert (
        BatchReport(failures=[_failure("not_found"), _failure("validation_rejected")]).error_code
        == "partial_batch_failure"
    )
