from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from app.domain.errors import ValidationRejectedError
from app.domain.models import ObjectType

# The destination's native reference field holds at most 11 characters.
MAX_REF_NUMBER_LENGTH = 11
REF_NUMBER_LIMITED_TYPES: frozenset[ObjectType] = frozenset({ObjectType.ORDER, ObjectType.RETURN})

KeyExtractor = Callable[[Mapping[str, Any]], object]


def _field(name: str) -> KeyExtractor:
    def _extract(record: Mapping[str, Any]) -> object:
        return record.get(name)

    return _extract


def _inventory_key(record: Mapping[str, Any]) -> object:
    product_id = record.get("product_id")
    if product_id is not None and str(product_id).strip():
        return product_id
    return record.get("id")


KEY_EXTRACTORS: dict[ObjectType, KeyExtractor] = {
    ObjectType.ORDER: _field("id"),
    ObjectType.CUSTOMER: _field("email"),
    ObjectType.PRODUCT: _field("id"),
    ObjectType.SHIPMENT: _field("order_id"),
    ObjectType.PAYMENT: _field("id"),
    ObjectType.ADJUSTMENT: _field("id"),
    ObjectType.RETURN: _field("id"),
    ObjectType.INVENTORY: _inventory_key,
}


def natural_key_of(object_type: ObjectType, record: object) -> str:
    if not isinstance(record, Mapping):
        raise ValidationRejectedError(f"{object_type.value} record must be an object, got {type(record).__name__}")
    value = KEY_EXTRACTORS[object_type](record)
    key = "" if value is None else str(value).strip()
    if not key:
        raise ValidationRejectedError(f"{object_type.value} record has no natural key")
    if "/" in key:
        raise ValidationRejectedError(f"{object_type.value} natural key must not contain '/': {key}")
    return key


def validate_record(object_type: ObjectType, record: object) -> str:
    """Returns the natural key, or raises when the record can never be staged."""
    key = natural_key_of(object_type, record)
    if object_type in REF_NUMBER_LIMITED_TYPES and len(key) > MAX_REF_NUMBER_LENGTH:
        raise ValidationRejectedError(
            f"{object_type.value} id '{key}' is longer than {MAX_REF_NUMBER_LENGTH} characters"
        )
    return key
