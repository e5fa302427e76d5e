from __future__ import annotations

from app.domain.errors import DomainInvariantError
from app.domain.models import NotificationStatus, Stage

# Records only move forward. two_phase_pending -> pending is the single
# promotion; ready -> ready is the rename that attaches destination ids.
ALLOWED_TRANSITIONS: dict[Stage, frozenset[Stage]] = {
    Stage.TWO_PHASE_PENDING: frozenset({Stage.PENDING}),
    Stage.PENDING: frozenset({Stage.READY}),
    Stage.READY: frozenset({Stage.READY, Stage.PROCESSED, Stage.FAILED}),
    Stage.PROCESSED: frozenset(),
    Stage.FAILED: frozenset(),
}

# Polled inbound batches are consumed straight out of pending.
POLLED_BATCH_TRANSITION: tuple[Stage, Stage] = (Stage.PENDING, Stage.PROCESSED)

TERMINAL_STAGE_BY_STATUS: dict[NotificationStatus, Stage] = {
    NotificationStatus.PROCESSED: Stage.PROCESSED,
    NotificationStatus.FAILED: Stage.FAILED,
}


def is_allowed_transition(from_stage: Stage, to_stage: Stage) -> bool:
    return to_stage in ALLOWED_TRANSITIONS[from_stage]


def ensure_transition(from_stage: Stage, to_stage: Stage) -> None:
    if not is_allowed_transition(from_stage, to_stage):
        raise DomainInvariantError(f"transition is not allowed: {from_stage.value} -> {to_stage.value}")
