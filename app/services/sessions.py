from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import logging
from typing import Any

from app.domain.contracts import ObjectStore, Record, RecordCodec
from app.domain.errors import DomainValidationError, RecordNotFoundError
from app.domain.ids import new_session_id
from app.domain.models import Namespace
from app.domain.paths import SESSION_TAG_PATTERN, is_session_tag, session_key

logger = logging.getLogger("sessions")

SESSION_TAG_FIELD = "extra"


@dataclass(frozen=True)
class SessionStore:
    """Correlation snapshots for replies that only carry a request id.

    Sessions are written once and never mutated. load() does not delete;
    callers that treat a session as single-use call consume() or delete().
    """

    namespace: Namespace
    store: ObjectStore
    codec: RecordCodec
    id_factory: Callable[[], str] = field(default=new_session_id)

    def save(self, record: Record, tag: str | None = None) -> str:
        if tag and not is_session_tag(tag):
            raise DomainValidationError(f"session tag must match {SESSION_TAG_PATTERN}: {tag!r}")
        session_id = self.id_factory()
        snapshot: dict[str, Any] = dict(record)
        if tag:
            session_id = f"{session_id}_{tag}"
            snapshot[SESSION_TAG_FIELD] = tag
        key = self.store.write(key=session_key(self.namespace, session_id), payload=self.codec.encode(snapshot))
        logger.info(
            "session saved",
            extra={
                "connection_id": self.namespace.connection_id,
                "origin": self.namespace.origin,
                "session_id": session_id,
                "key": key,
            },
        )
        return session_id

    def load(self, session_id: str) -> Record | None:
        try:
            payload = self.store.read(key=session_key(self.namespace, session_id))
        except RecordNotFoundError:
            logger.warning(
                "session not found",
                extra={"connection_id": self.namespace.connection_id, "session_id": session_id},
            )
            return None
        records = self.codec.decode(payload)
        return records[0] if records else None

    def delete(self, session_id: str) -> bool:
        key = session_key(self.namespace, session_id)
        if key not in self.store.list_by_prefix(prefix=key):
            return False
        self.store.delete(key=key)
        return True

    def consume(self, session_id: str) -> Record | None:
        record = self.load(session_id)
        if record is not None:
            self.delete(session_id)
        return record
