from __future__ import annotations

from collections.abc import Iterable

from app.domain.models import ObjectType, StagedRecord
from app.domain.paths import NOTIFICATION_MARKER

# Dependencies go out before the documents that reference them. Each
# dispatch round re-reads the ready set, so tier 2 is served once tier 1
# drains.
PRECEDENCE_TIERS: tuple[frozenset[ObjectType], ...] = (
    frozenset(
        {
            ObjectType.CUSTOMER,
            ObjectType.PRODUCT,
            ObjectType.ADJUSTMENT,
            ObjectType.INVENTORY,
            ObjectType.PAYMENT,
        }
    ),
    frozenset({ObjectType.ORDER, ObjectType.RETURN}),
)


def tier_of(object_type: ObjectType) -> int | None:
    for index, tier in enumerate(PRECEDENCE_TIERS, start=1):
        if object_type in tier:
            return index
    return None


def select_with_precedence(records: Iterable[StagedRecord]) -> list[StagedRecord]:
    candidates = [
        record
        for record in records
        if not record.key.rsplit("/", 1)[-1].startswith(f"{NOTIFICATION_MARKER}_")
    ]
    for tier in PRECEDENCE_TIERS:
        selected = [record for record in candidates if record.object_type in tier]
        if selected:
            return selected
    return candidates
