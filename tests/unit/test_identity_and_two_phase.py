from __future__ import annotations

import pytest

from app.domain.errors import ValidationRejectedError
from app.domain.identity import MAX_REF_NUMBER_LENGTH, natural_key_of, validate_record
from app.domain.models import ObjectType
from app.domain.two_phase import (
    CANCEL_ORDER_FLOW,
    apply_flow,
    build_customer,
    expand_order,
    expand_shipment,
    expand_two_phase,
    inventory_companion_product,
    requires_two_phase,
)
from tests.staging_support import order_record


@pytest.mark.unit
@pytest.mark.parametrize(
    ("object_type", "record", "expected"),
    [
        (ObjectType.ORDER, {"id": "R1"}, "R1"),
        (ObjectType.CUSTOMER, {"id": 7, "email": "jane@example.com"}, "jane@example.com"),
        (ObjectType.SHIPMENT, {"id": "H1", "order_id": "R1"}, "R1"),
        (ObjectType.INVENTORY, {"id": "INV-1", "product_id": "SKU-1"}, "SKU-1"),
        (ObjectType.INVENTORY, {"id": "INV-1", "product_id": " "}, "INV-1"),
        (ObjectType.PAYMENT, {"id": 42}, "42"),
    ],
)
def test_natural_key_per_object_type(object_type: ObjectType, record: dict[str, object], expected: str) -> None:
    assert natural_key_of(object_type, record) == expected


@pytest.mark.unit
@pytest.mark.parametrize(
    "record",
    [
        {"name": "no key"},
        {"id": ""},
        {"id": "   "},
        {"id": "a/b"},
        ["not", "a", "mapping"],
    ],
)
def test_records_without_usable_key_are_rejected(record: object) -> None:
    with pytest.raises(ValidationRejectedError):
        natural_key_of(ObjectType.PRODUCT, record)


@pytest.mark.unit
@pytest.mark.parametrize("object_type", [ObjectType.ORDER, ObjectType.RETURN])
def test_reference_number_length_is_limited_for_orders_and_returns(object_type: ObjectType) -> None:
    assert validate_record(object_type, {"id": "X" * MAX_REF_NUMBER_LENGTH}) == "X" * MAX_REF_NUMBER_LENGTH

    with pytest.raises(ValidationRejectedError, match="longer than 11 characters"):
        validate_record(object_type, {"id": "X" * (MAX_REF_NUMBER_LENGTH + 1)})


@pytest.mark.unit
def test_other_types_accept_long_keys() -> None:
    assert validate_record(ObjectType.PRODUCT, {"id": "PRODUCT-WITH-A-LONG-SKU"}) == "PRODUCT-WITH-A-LONG-SKU"


@pytest.mark.unit
def test_only_orders_and_shipments_are_two_phase() -> None:
    assert {kind for kind in ObjectType if requires_two_phase(kind)} == {ObjectType.ORDER, ObjectType.SHIPMENT}
    assert expand_two_phase(ObjectType.PRODUCT, {"id": "P1"}) == []


@pytest.mark.unit
def test_order_expands_into_customer_products_and_payments() -> None:
    dependents = expand_order(order_record())

    kinds = [kind for kind, _ in dependents]
    assert kinds == [ObjectType.CUSTOMER, ObjectType.PRODUCT, ObjectType.PAYMENT]

    customer = dependents[0][1]
    assert customer["email"] == "jane@example.com"
    assert customer["id"] == "Jane Doe"

    product = dependents[1][1]
    assert product["id"] == "SKU-1"
    assert product["description"] == "Widget"

    payment = dependents[2][1]
    assert payment["id"] == "ORD-1-1"
    assert payment["order_id"] == "ORD-1"
    assert payment["amount"] == 10


@pytest.mark.unit
def test_order_expansion_skips_malformed_line_items_and_payments() -> None:
    dependents = expand_order(order_record(line_items=["junk", {"name": "no id"}], payments=[None]))

    assert [kind for kind, _ in dependents] == [ObjectType.CUSTOMER]


@pytest.mark.unit
def test_shipment_expands_into_order_and_payment_placeholder() -> None:
    shipment = {
        "id": "H1",
        "order_id": "R1",
        "email": "jane@example.com",
        "shipped_at": "2024-01-06",
        "billing_address": {"firstname": "Jane", "lastname": "Doe"},
        "items": [{"product_id": "SKU-2", "name": "Gadget", "price": 3}],
        "totals": {"order": 11, "discount": -1, "shipping": 2, "tax": 1, "payment": 11},
    }

    dependents = dict(expand_shipment(shipment))

    order = dependents[ObjectType.ORDER]
    assert order["id"] == "R1"
    assert order["shipment_id"] == "H1"
    assert order["placed_on"] == "2024-01-06"
    assert order["adjustments"] == [
        {"name": "discount", "value": -1},
        {"name": "shipping", "value": 2},
        {"name": "tax", "value": 1},
    ]
    payment = dependents[ObjectType.PAYMENT]
    assert payment["id"] == "R1"
    assert payment["amount"] == 11
    assert payment["placeholder"] is True
    assert dependents[ObjectType.PRODUCT]["id"] == "SKU-2"


@pytest.mark.unit
def test_build_customer_tolerates_missing_addresses() -> None:
    customer = build_customer({"email": "solo@example.com"})

    assert customer["id"] == ""
    assert customer["billing_address"] == {}
    assert customer["shipping_address"] == {}


@pytest.mark.unit
def test_cancel_flow_marks_orders_only() -> None:
    order = {"id": "R1", "status": "complete"}

    assert apply_flow(ObjectType.ORDER, order, CANCEL_ORDER_FLOW)["status"] == "cancelled"
    assert order["status"] == "complete"
    assert apply_flow(ObjectType.RETURN, {"id": "R1"}, CANCEL_ORDER_FLOW) == {"id": "R1"}
    assert apply_flow(ObjectType.ORDER, order, None) is order


@pytest.mark.unit
@pytest.mark.parametrize(
    ("inventory", "active"),
    [
        ({"quantity": 0}, False),
        ({"quantity": "3"}, True),
        ({}, True),
        ({"quantity": "n/a"}, True),
    ],
)
def test_inventory_companion_product_follows_quantity(inventory: dict[str, object], active: bool) -> None:
    assert inventory_companion_product(inventory, product_id="SKU-1") == {"id": "SKU-1", "active": active}
