from __future__ import annotations

from app.api.handlers.deps import ApiDeps
from app.api.schemas import NotificationsResponse
from app.domain.models import ObjectType

COMPONENT_ID = "api.collect_notifications"


async def collect_notifications_handler(*, object_type: ObjectType, api_deps: ApiDeps) -> NotificationsResponse:
    groups = api_deps.engine.collect_notifications(object_type)
    return NotificationsResponse(object_type=object_type.value, notifications=groups)
