from __future__ import annotations

import pytest

from app.domain.errors import DomainInvariantError
from app.domain.lifecycle import POLLED_BATCH_TRANSITION, ensure_transition, is_allowed_transition
from app.domain.models import Namespace, ObjectType, Stage, StagedRecord
from app.domain.precedence import select_with_precedence, tier_of

NS = Namespace(connection_id="c1")


def _staged(object_type: ObjectType, natural_key: str, *, notification: bool = False) -> StagedRecord:
    filename = f"{object_type.plural}_{natural_key}_.json"
    if notification:
        filename = f"notification_processed_{filename}"
    return StagedRecord(
        namespace=NS,
        object_type=object_type,
        natural_key=natural_key,
        stage=Stage.READY,
        payload={"id": natural_key},
        key=f"c1/primary_ready/{filename}",
    )


@pytest.mark.unit
@pytest.mark.parametrize(
    ("from_stage", "to_stage"),
    [
        (Stage.TWO_PHASE_PENDING, Stage.PENDING),
        (Stage.PENDING, Stage.READY),
        (Stage.READY, Stage.READY),
        (Stage.READY, Stage.PROCESSED),
        (Stage.READY, Stage.FAILED),
    ],
)
def test_forward_transitions_are_allowed(from_stage: Stage, to_stage: Stage) -> None:
    assert is_allowed_transition(from_stage, to_stage) is True
    ensure_transition(from_stage, to_stage)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("from_stage", "to_stage"),
    [
        (Stage.READY, Stage.PENDING),
        (Stage.PENDING, Stage.PROCESSED),
        (Stage.TWO_PHASE_PENDING, Stage.READY),
        (Stage.PROCESSED, Stage.READY),
        (Stage.FAILED, Stage.PROCESSED),
    ],
)
def test_backward_and_skipping_transitions_are_rejected(from_stage: Stage, to_stage: Stage) -> None:
    assert is_allowed_transition(from_stage, to_stage) is False
    with pytest.raises(DomainInvariantError, match="transition is not allowed"):
        ensure_transition(from_stage, to_stage)


@pytest.mark.unit
def test_polled_batches_are_consumed_from_pending() -> None:
    assert POLLED_BATCH_TRANSITION == (Stage.PENDING, Stage.PROCESSED)


@pytest.mark.unit
def test_tiers() -> None:
    assert tier_of(ObjectType.CUSTOMER) == 1
    assert tier_of(ObjectType.INVENTORY) == 1
    assert tier_of(ObjectType.ORDER) == 2
    assert tier_of(ObjectType.RETURN) == 2
    assert tier_of(ObjectType.SHIPMENT) is None


@pytest.mark.unit
def test_first_tier_wins_when_present() -> None:
    records = [
        _staged(ObjectType.ORDER, "R1"),
        _staged(ObjectType.CUSTOMER, "jane@example.com"),
        _staged(ObjectType.SHIPMENT, "R1"),
        _staged(ObjectType.PAYMENT, "R1-1"),
    ]

    selected = select_with_precedence(records)

    assert [record.object_type for record in selected] == [ObjectType.CUSTOMER, ObjectType.PAYMENT]


@pytest.mark.unit
def test_second_tier_then_everything_else() -> None:
    assert [r.object_type for r in select_with_precedence([_staged(ObjectType.SHIPMENT, "R1"), _staged(ObjectType.RETURN, "T1")])] == [
        ObjectType.RETURN
    ]
    assert [r.object_type for r in select_with_precedence([_staged(ObjectType.SHIPMENT, "R1")])] == [ObjectType.SHIPMENT]
    assert select_with_precedence([]) == []


@pytest.mark.unit
def test_notifications_are_never_selected() -> None:
    records = [
        _staged(ObjectType.CUSTOMER, "jane@example.com", notification=True),
        _staged(ObjectType.ORDER, "R1"),
    ]

    selected = select_with_precedence(records)

    assert [record.natural_key for record in selected] == ["R1"]
