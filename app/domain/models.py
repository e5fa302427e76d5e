from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from app.domain.error_taxonomy import ErrorCode


class ObjectType(StrEnum):
    ORDER = "order"
    CUSTOMER = "customer"
    PRODUCT = "product"
    SHIPMENT = "shipment"
    PAYMENT = "payment"
    ADJUSTMENT = "adjustment"
    RETURN = "return"
    INVENTORY = "inventory"

    @property
    def plural(self) -> str:
        return OBJECT_TYPE_PLURALS[self]


OBJECT_TYPE_PLURALS: dict[ObjectType, str] = {
    ObjectType.ORDER: "orders",
    ObjectType.CUSTOMER: "customers",
    ObjectType.PRODUCT: "products",
    ObjectType.SHIPMENT: "shipments",
    ObjectType.PAYMENT: "payments",
    ObjectType.ADJUSTMENT: "adjustments",
    ObjectType.RETURN: "returns",
    ObjectType.INVENTORY: "inventories",
}

_OBJECT_TYPE_BY_PLURAL: dict[str, ObjectType] = {plural: kind for kind, plural in OBJECT_TYPE_PLURALS.items()}


def parse_object_type(value: str) -> ObjectType:
    """Accepts either the singular or the plural spelling of an object type."""
    normalized = value.strip().lower()
    plural_match = _OBJECT_TYPE_BY_PLURAL.get(normalized)
    if plural_match is not None:
        return plural_match
    try:
        return ObjectType(normalized)
    except ValueError:
        supported = ", ".join(kind.value for kind in ObjectType)
        raise ValueError(f"unsupported object type '{value}'. Supported types: {supported}") from None


class Stage(StrEnum):
    PENDING = "pending"
    TWO_PHASE_PENDING = "two_phase_pending"
    READY = "ready"
    PROCESSED = "processed"
    FAILED = "failed"


class NotificationStatus(StrEnum):
    PROCESSED = "processed"
    FAILED = "failed"


@dataclass(frozen=True)
class Namespace:
    connection_id: str
    origin: str = "primary"

    def __post_init__(self) -> None:
        if not self.connection_id or "/" in self.connection_id:
            raise ValueError(f"invalid connection id: {self.connection_id!r}")
        if not self.origin or "/" in self.origin:
            raise ValueError(f"invalid origin: {self.origin!r}")


@dataclass(frozen=True)
class ExternalIds:
    list_id: str
    edit_sequence: str


@dataclass
class StagedRecord:
    namespace: Namespace
    object_type: ObjectType
    natural_key: str
    stage: Stage
    payload: dict[str, Any]
    key: str
    external_ids: ExternalIds | None = None


@dataclass(frozen=True)
class RecordRef:
    object_type: ObjectType
    natural_key: str
    list_id: str | None = None
    edit_sequence: str | None = None


@dataclass(frozen=True)
class DestinationIdUpdate:
    object_type: ObjectType
    natural_key: str
    list_id: str
    edit_sequence: str
    extra_data: dict[str, Any] | None = None


@dataclass(frozen=True)
class Relocation:
    requested_key: str
    key: str

    @property
    def collided(self) -> bool:
        return self.key != self.requested_key


@dataclass(frozen=True)
class ItemFailure:
    object_type: ObjectType
    natural_key: str | None
    error_code: ErrorCode
    detail: str


@dataclass
class BatchReport:
    applied: list[str] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def error_code(self) -> ErrorCode | None:
        if not self.failures:
            return None
        if not self.applied and len(self.failures) == 1:
            return self.failures[0].error_code
        return "partial_batch_failure"


# status -> message -> natural keys
NotificationGroups = dict[str, dict[str, list[str]]]


def has_destination_ids(list_id: object) -> bool:
    """Single predicate for "the destination has assigned an identifier"."""
    if list_id is None:
        return False
    return bool(str(list_id).strip())
