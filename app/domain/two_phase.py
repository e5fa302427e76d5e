from __future__ import annotations

from copy import deepcopy
from typing import Any

from app.domain.models import ObjectType

TWO_PHASE_TYPES: frozenset[ObjectType] = frozenset({ObjectType.ORDER, ObjectType.SHIPMENT})

CANCEL_ORDER_FLOW = "cancel_order"
CANCELLED_STATUS = "cancelled"

# Order adjustments derived from shipment totals, in the order the
# destination expects them.
SHIPMENT_ADJUSTMENTS: tuple[str, ...] = ("discount", "shipping", "tax")

Dependent = tuple[ObjectType, dict[str, Any]]


def requires_two_phase(object_type: ObjectType) -> bool:
    return object_type in TWO_PHASE_TYPES


def apply_flow(object_type: ObjectType, record: dict[str, Any], flow: str | None) -> dict[str, Any]:
    if flow == CANCEL_ORDER_FLOW and object_type == ObjectType.ORDER:
        record = dict(record)
        record["status"] = CANCELLED_STATUS
    return record


def build_customer(record: dict[str, Any]) -> dict[str, Any]:
    billing_address = dict(record.get("billing_address") or {})
    firstname = billing_address.get("firstname", "")
    lastname = billing_address.get("lastname", "")
    return {
        "id": f"{firstname} {lastname}".strip(),
        "firstname": firstname,
        "lastname": lastname,
        "email": record.get("email"),
        "billing_address": billing_address,
        "shipping_address": deepcopy(record.get("shipping_address") or {}),
    }


def build_products(line_items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    products: dict[str, dict[str, Any]] = {}
    for item in line_items:
        if not isinstance(item, dict):
            continue
        product_id = item.get("product_id")
        if product_id is None or str(product_id) in products:
            continue
        products[str(product_id)] = {
            "id": product_id,
            "sku": product_id,
            "name": item.get("name"),
            "description": item.get("description") or item.get("name"),
            "price": item.get("price"),
        }
    return list(products.values())


def build_payments(order: dict[str, Any]) -> list[dict[str, Any]]:
    order_id = order.get("id")
    payments: list[dict[str, Any]] = []
    for position, payment in enumerate(order.get("payments") or [], start=1):
        if not isinstance(payment, dict):
            continue
        staged = deepcopy(payment)
        staged.setdefault("id", f"{order_id}-{position}")
        staged["order_id"] = order_id
        payments.append(staged)
    return payments


def build_order_from_shipment(shipment: dict[str, Any]) -> dict[str, Any]:
    totals = dict(shipment.get("totals") or {})
    return {
        "id": shipment.get("order_id"),
        "email": shipment.get("email"),
        "status": "complete",
        "placed_on": shipment.get("placed_on") or shipment.get("shipped_at"),
        "shipment_id": shipment.get("id"),
        "line_items": deepcopy(shipment.get("items") or []),
        "billing_address": deepcopy(shipment.get("billing_address") or {}),
        "shipping_address": deepcopy(shipment.get("shipping_address") or {}),
        "adjustments": [{"name": name, "value": totals.get(name, 0)} for name in SHIPMENT_ADJUSTMENTS],
        "totals": totals,
    }


def build_payment_placeholder(shipment: dict[str, Any]) -> dict[str, Any]:
    totals = dict(shipment.get("totals") or {})
    order_id = shipment.get("order_id")
    return {
        "id": order_id,
        "order_id": order_id,
        "amount": totals.get("payment", totals.get("order", 0)),
        "payment_method": shipment.get("payment_method", "None"),
        "status": "completed",
        "placeholder": True,
    }


def expand_order(order: dict[str, Any]) -> list[Dependent]:
    dependents: list[Dependent] = [(ObjectType.CUSTOMER, build_customer(order))]
    dependents.extend((ObjectType.PRODUCT, product) for product in build_products(order.get("line_items") or []))
    dependents.extend((ObjectType.PAYMENT, payment) for payment in build_payments(order))
    return dependents


def expand_shipment(shipment: dict[str, Any]) -> list[Dependent]:
    dependents: list[Dependent] = [(ObjectType.CUSTOMER, build_customer(shipment))]
    dependents.extend((ObjectType.PRODUCT, product) for product in build_products(shipment.get("items") or []))
    dependents.append((ObjectType.ORDER, build_order_from_shipment(shipment)))
    dependents.append((ObjectType.PAYMENT, build_payment_placeholder(shipment)))
    return dependents


def expand_two_phase(object_type: ObjectType, record: dict[str, Any]) -> list[Dependent]:
    if object_type == ObjectType.ORDER:
        return expand_order(record)
    if object_type == ObjectType.SHIPMENT:
        return expand_shipment(record)
    return []


def inventory_companion_product(inventory: dict[str, Any], *, product_id: str) -> dict[str, Any]:
    """Item availability does not follow inventory changes on the destination side."""
    quantity = inventory.get("quantity")
    try:
        active = float(quantity) > 0 if quantity is not None else True
    except (TypeError, ValueError):
        active = True
    return {"id": product_id, "active": active}
