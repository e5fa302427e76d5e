from __future__ import annotations

from dataclasses import dataclass
import logging

from app.domain.contracts import ObjectStore, RecordCodec
from app.domain.errors import DomainValidationError, RecordNotFoundError
from app.domain.lifecycle import ensure_transition
from app.domain.models import Namespace, NotificationGroups, ObjectType, Stage
from app.domain.paths import StagingKey, notification_prefix, parse_key

logger = logging.getLogger("notifications")

SUCCESS_NOTIFICATION_MESSAGES: dict[ObjectType, str] = {
    kind: f"{kind.value.capitalize()} successfully sent to the accounting system" for kind in ObjectType
}

# Payments are a derived consequence of orders and report under them.
NOTIFICATION_TYPE_ALIASES: dict[ObjectType, frozenset[ObjectType]] = {
    ObjectType.ORDER: frozenset({ObjectType.ORDER, ObjectType.PAYMENT}),
}


def success_message_for(object_type: ObjectType) -> str:
    return SUCCESS_NOTIFICATION_MESSAGES[object_type]


def notification_types_for(object_type_filter: ObjectType) -> frozenset[ObjectType]:
    return NOTIFICATION_TYPE_ALIASES.get(object_type_filter, frozenset({object_type_filter}))


@dataclass(frozen=True)
class NotificationReconciler:
    namespace: Namespace
    store: ObjectStore
    codec: RecordCodec

    def collect(self, object_type_filter: ObjectType) -> NotificationGroups:
        """Destructive read: every notification is returned to exactly one caller."""
        wanted = notification_types_for(object_type_filter)
        groups: NotificationGroups = {}

        for raw_key in self.store.list_by_prefix(prefix=notification_prefix(self.namespace)):
            try:
                parsed = parse_key(raw_key)
            except ValueError:
                logger.warning(
                    "skipping unparseable notification key",
                    extra={"connection_id": self.namespace.connection_id, "key": raw_key},
                )
                continue
            if parsed.object_type not in wanted or parsed.notification_status is None:
                continue

            consumed_key = self._claim(parsed, raw_key)
            if consumed_key is None:
                continue

            message = self._message_of(consumed_key, parsed)
            status_group = groups.setdefault(parsed.notification_status.value, {})
            status_group.setdefault(message, []).append(parsed.natural_key)

        logger.info(
            "notifications collected",
            extra={
                "connection_id": self.namespace.connection_id,
                "origin": self.namespace.origin,
                "object_type": object_type_filter.value,
                "count": sum(len(refs) for group in groups.values() for refs in group.values()),
            },
        )
        return groups

    def _claim(self, parsed: StagingKey, raw_key: str) -> str | None:
        # Move before reading so a concurrent collector cannot report it too.
        ensure_transition(parsed.stage, Stage.PROCESSED)
        try:
            return self.store.move(from_key=raw_key, to_key=parsed.at_stage(Stage.PROCESSED).encode())
        except RecordNotFoundError:
            logger.info(
                "notification already consumed",
                extra={"connection_id": self.namespace.connection_id, "key": raw_key},
            )
            return None

    def _message_of(self, key: str, parsed: StagingKey) -> str:
        try:
            records = self.codec.decode(self.store.read(key=key))
        except (RecordNotFoundError, DomainValidationError):
            logger.warning(
                "notification content unreadable, using default message",
                extra={"connection_id": self.namespace.connection_id, "key": key},
            )
            records = []
        content = records[0] if records else {}
        message = content.get("message")
        if isinstance(message, str) and message.strip():
            return message
        return success_message_for(parsed.object_type)
