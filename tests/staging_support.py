from __future__ import annotations

from collections.abc import Callable
from itertools import count

from app.clients.stub import InMemoryObjectStore
from app.domain.models import Namespace
from app.lib.records import build_record_codec
from app.services.notifications import NotificationReconciler
from app.services.sessions import SessionStore
from app.services.staging import StagingEngine

NAMESPACE = Namespace(connection_id="c1", origin="primary")


def sequential_session_ids(prefix: str = "sess_") -> Callable[[], str]:
    counter = count(1)

    def _next() -> str:
        return f"{prefix}{next(counter):026d}"

    return _next


def build_engine(
    *,
    store: InMemoryObjectStore | None = None,
    flow: str | None = None,
    namespace: Namespace = NAMESPACE,
    now: float = 1_700_000_000.0,
) -> StagingEngine:
    store = store if store is not None else InMemoryObjectStore()
    codec = build_record_codec(active_contract_version="v1", compat_policy="strict")
    sessions = SessionStore(namespace=namespace, store=store, codec=codec, id_factory=sequential_session_ids())
    return StagingEngine(
        namespace=namespace,
        store=store,
        codec=codec,
        sessions=sessions,
        notifications=NotificationReconciler(namespace=namespace, store=store, codec=codec),
        flow=flow,
        clock=lambda: now,
    )


def order_record(order_id: str = "ORD-1", **overrides: object) -> dict[str, object]:
    record: dict[str, object] = {
        "id": order_id,
        "email": "jane@example.com",
        "placed_on": "2024-01-05T10:00:00Z",
        "billing_address": {"firstname": "Jane", "lastname": "Doe", "city": "Austin"},
        "shipping_address": {"firstname": "Jane", "lastname": "Doe", "city": "Austin"},
        "line_items": [
            {"product_id": "SKU-1", "name": "Widget", "price": 5},
            {"product_id": "SKU-1", "name": "Widget", "price": 5},
        ],
        "payments": [{"amount": 10, "payment_method": "card"}],
    }
    record.update(overrides)
    return record
