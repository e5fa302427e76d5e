from __future__ import annotations

from typing import Any

from app.api.handlers.deps import ApiDeps
from app.api.schemas import SessionResponse

COMPONENT_ID_CREATE = "api.create_session"
COMPONENT_ID_GET = "api.get_session"


async def create_session_handler(
    *,
    record: dict[str, Any],
    tag: str | None,
    api_deps: ApiDeps,
) -> SessionResponse:
    session_id = api_deps.sessions.save(record, tag=tag)
    return SessionResponse(session_id=session_id)


async def get_session_handler(*, session_id: str, api_deps: ApiDeps) -> SessionResponse | None:
    record = api_deps.sessions.load(session_id)
    if record is None:
        return None
    return SessionResponse(session_id=session_id, record=record)
