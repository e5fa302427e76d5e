from __future__ import annotations

from dataclasses import dataclass
import logging

from app.domain.contracts import RequestBuilder
from app.services.staging import StagingEngine

logger = logging.getLogger("runtime")


@dataclass
class DispatchLoop:
    """One polling session worth of staging work for a single namespace.

    Pending records are parked in ready and sent as lookups first; the
    insert/update round then only sees the highest precedence tier that is
    still present in ready.
    """

    role: str
    engine: StagingEngine
    request_builder: RequestBuilder

    @property
    def connection_id(self) -> str:
        return self.engine.namespace.connection_id

    async def run_once(self) -> bool:
        promoted = self.engine.promote_two_phase_pending()

        pending = self.engine.list_pending_for_dispatch()
        if pending:
            self.request_builder.build_queries(pending)

        selected = self.engine.select_for_dispatch_with_precedence()
        if selected:
            self.request_builder.build_insert_update(selected)

        did_work = bool(promoted or pending or selected)
        if did_work:
            logger.info(
                "dispatch round finished",
                extra={
                    "role": self.role,
                    "connection_id": self.connection_id,
                    "origin": self.engine.namespace.origin,
                    "count": len(selected),
                },
            )
        return did_work
