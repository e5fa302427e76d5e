"""Durable staging state machine between the origin and the destination.

Every record lives as one object in the store; its stage is the folder it
sits in. The engine is the only component that moves records between
stages and it holds no in-process lock: correctness comes from the store
never overwriting a key and from moves only going forward.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
import logging
import time
from typing import Any, cast

from app.domain.contracts import DispatchBatch, ObjectStore, Record, RecordCodec
from app.domain.errors import (
    DomainValidationError,
    RecordNotFoundError,
    StoreUnavailableError,
    ValidationRejectedError,
)
from app.domain.error_taxonomy import ErrorCode, resolve_operation_error
from app.domain.identity import natural_key_of, validate_record
from app.domain.lifecycle import POLLED_BATCH_TRANSITION, TERMINAL_STAGE_BY_STATUS, ensure_transition
from app.domain.models import (
    BatchReport,
    DestinationIdUpdate,
    ItemFailure,
    Namespace,
    NotificationGroups,
    NotificationStatus,
    ObjectType,
    RecordRef,
    Relocation,
    Stage,
    StagedRecord,
    has_destination_ids,
)
from app.domain.paths import (
    DEFAULT_RECORD_EXT,
    DESTINATION_ID_PATTERN,
    NamespacePaths,
    StagingKey,
    is_destination_id,
    parse_key,
    parse_polled_key,
    polled_batch_key,
    record_prefix,
    session_key,
)
from app.domain.precedence import select_with_precedence
from app.domain.two_phase import (
    apply_flow,
    expand_two_phase,
    inventory_companion_product,
    requires_two_phase,
)
from app.services.notifications import NotificationReconciler
from app.services.sessions import SessionStore

logger = logging.getLogger("staging")

Outcomes = Mapping[NotificationStatus | str, Iterable[RecordRef]]


@dataclass
class StagingEngine:
    namespace: Namespace
    store: ObjectStore
    codec: RecordCodec
    sessions: SessionStore
    notifications: NotificationReconciler
    flow: str | None = None
    ext: str = DEFAULT_RECORD_EXT
    clock: Callable[[], float] = field(default=time.time)

    @property
    def paths(self) -> NamespacePaths:
        return NamespacePaths.for_namespace(self.namespace)

    # -- origin side -------------------------------------------------------

    def save(self, object_type: ObjectType, records: Record | Sequence[Record]) -> BatchReport:
        """Stage records in pending. Each record succeeds or fails on its own."""
        report = BatchReport()
        items = [records] if isinstance(records, Mapping) else list(records)
        for record in items:
            try:
                report.applied.extend(self._stage_record(object_type, record, report))
            except ValidationRejectedError as exc:
                self._reject(object_type, record, str(exc), report)
            except StoreUnavailableError as exc:
                natural_key = _key_or_none(object_type, record)
                self._record_failure(report, "save", object_type, natural_key, "store_unavailable", exc)
        return report

    def reject_with_notification(self, object_type: ObjectType, record: object, reason: str) -> str | None:
        """Write a failed notification without ever occupying a pending slot."""
        try:
            natural_key = natural_key_of(object_type, record)
        except ValidationRejectedError:
            logger.warning(
                "rejected record has no natural key, no notification written",
                extra=self._context(object_type=object_type.value, error_code="validation_rejected"),
            )
            return None
        content: dict[str, Any] = {
            "message": reason,
            "object": dict(record) if isinstance(record, Mapping) else record,
        }
        key = self._notification_key(object_type, natural_key, NotificationStatus.FAILED)
        written = self.store.write(key=key, payload=self.codec.encode(content))
        logger.warning(
            "record rejected",
            extra=self._context(object_type=object_type.value, natural_key=natural_key, key=written),
        )
        return written

    # -- poller side -------------------------------------------------------

    def promote_two_phase_pending(self) -> int:
        promoted = 0
        for raw_key in self.store.list_by_prefix(prefix=f"{self.paths.two_phase_pending}/"):
            parsed = self._parse_or_skip(raw_key)
            if parsed is None:
                continue
            try:
                self._relocate(parsed, raw_key, parsed.at_stage(Stage.PENDING))
            except RecordNotFoundError:
                logger.info("two-phase record already promoted", extra=self._context(key=raw_key))
                continue
            promoted += 1
        return promoted

    def list_pending_for_dispatch(self) -> DispatchBatch:
        """Read every pending record and park it in ready before returning it.

        Relocation happens before the caller builds requests: a crash after
        this point leaves the record in ready, never picked up twice.
        """
        batch: DispatchBatch = []
        for raw_key in self.store.list_by_prefix(prefix=f"{self.paths.pending}/"):
            parsed = self._parse_or_skip(raw_key, quiet=True)
            if parsed is None:
                continue
            try:
                records = self.codec.decode(self.store.read(key=raw_key))
                self._relocate(parsed, raw_key, parsed.at_stage(Stage.READY))
            except RecordNotFoundError:
                logger.warning("pending record vanished before dispatch", extra=self._context(key=raw_key))
                continue
            except DomainValidationError:
                logger.error(
                    "pending record is undecodable, left in place",
                    extra=self._context(key=raw_key, error_code="validation_rejected"),
                )
                continue
            batch.extend((parsed.object_type, record) for record in records)
        if batch:
            logger.info("pending records dispatched", extra=self._context(count=len(batch)))
        return batch

    def list_ready(self) -> list[StagedRecord]:
        staged: list[StagedRecord] = []
        for raw_key in self.store.list_by_prefix(prefix=f"{self.paths.ready}/"):
            parsed = self._parse_or_skip(raw_key)
            if parsed is None or parsed.is_notification:
                continue
            try:
                records = self.codec.decode(self.store.read(key=raw_key))
            except RecordNotFoundError:
                continue
            except DomainValidationError:
                logger.error(
                    "ready record is undecodable",
                    extra=self._context(key=raw_key, error_code="validation_rejected"),
                )
                continue
            payload = dict(records[0]) if records else {}
            external_ids = parsed.external_ids
            if external_ids is not None:
                payload["list_id"] = external_ids.list_id
                payload["edit_sequence"] = external_ids.edit_sequence
            staged.append(
                StagedRecord(
                    namespace=self.namespace,
                    object_type=parsed.object_type,
                    natural_key=parsed.natural_key,
                    stage=parsed.stage,
                    payload=payload,
                    key=raw_key,
                    external_ids=external_ids,
                )
            )
        return staged

    def select_for_dispatch_with_precedence(
        self,
        ready_records: Iterable[StagedRecord] | None = None,
    ) -> list[StagedRecord]:
        if ready_records is None:
            ready_records = self.list_ready()
        return select_with_precedence(ready_records)

    # -- destination replies -----------------------------------------------

    def update_with_destination_ids(self, updates: Iterable[DestinationIdUpdate]) -> BatchReport:
        report = BatchReport()
        for update in updates:
            if not (is_destination_id(update.list_id) and is_destination_id(update.edit_sequence)):
                self._record_failure(
                    report,
                    "update_with_destination_ids",
                    update.object_type,
                    update.natural_key,
                    "validation_rejected",
                    ValueError(
                        f"list_id and edit_sequence must both match {DESTINATION_ID_PATTERN}: "
                        f"{update.list_id!r}, {update.edit_sequence!r}"
                    ),
                )
                continue
            try:
                raw_key, parsed = self._locate(Stage.READY, update.object_type, update.natural_key, prefer_unassigned=True)
                target = parsed.with_ids(list_id=update.list_id, edit_sequence=update.edit_sequence)
                if update.extra_data:
                    key = self._rewrite_with_extra(parsed, raw_key, target, update.extra_data)
                else:
                    key = self._relocate(parsed, raw_key, target).key
            except RecordNotFoundError as exc:
                self._record_failure(
                    report, "update_with_destination_ids", update.object_type, update.natural_key, "not_found", exc
                )
                continue
            except StoreUnavailableError as exc:
                self._record_failure(
                    report, "update_with_destination_ids", update.object_type, update.natural_key, "store_unavailable", exc
                )
                continue
            report.applied.append(key)
        return report

    def finalize(self, outcomes: Outcomes) -> BatchReport:
        """Move ready records to processed/failed. Only processed ones notify."""
        report = BatchReport()
        for status_value, refs in outcomes.items():
            status = NotificationStatus(status_value)
            terminal_stage = TERMINAL_STAGE_BY_STATUS[status]
            for ref in refs:
                try:
                    key = self._finalize_one(ref, status, terminal_stage)
                except RecordNotFoundError as exc:
                    self._record_failure(report, "finalize", ref.object_type, ref.natural_key, "not_found", exc)
                    continue
                except StoreUnavailableError as exc:
                    self._record_failure(report, "finalize", ref.object_type, ref.natural_key, "store_unavailable", exc)
                    continue
                report.applied.append(key)
        return report

    def fail_from_session(
        self,
        object_type: ObjectType,
        session_id: str,
        error_context: Mapping[str, Any],
    ) -> BatchReport:
        """Destination reported an error for a request known only by its session id."""
        session = self.sessions.load(session_id)
        if session is None:
            report = BatchReport()
            self._record_failure(
                report,
                "fail_from_session",
                object_type,
                None,
                "not_found",
                RecordNotFoundError(session_key(self.namespace, session_id, ext=self.ext)),
            )
            return report

        try:
            natural_key = natural_key_of(object_type, session)
        except ValidationRejectedError as exc:
            report = BatchReport()
            self._record_failure(report, "fail_from_session", object_type, None, "internal_error", exc)
            return report
        content = {**dict(error_context), "object": session}
        notification_key = self.store.write(
            key=self._notification_key(object_type, natural_key, NotificationStatus.FAILED),
            payload=self.codec.encode(content),
        )
        logger.warning(
            "destination reported failure",
            extra=self._context(
                object_type=object_type.value,
                natural_key=natural_key,
                session_id=session_id,
                key=notification_key,
            ),
        )
        report = self.finalize({NotificationStatus.FAILED: [RecordRef(object_type=object_type, natural_key=natural_key)]})
        report.applied.insert(0, notification_key)
        return report

    def collect_notifications(self, object_type_filter: ObjectType) -> NotificationGroups:
        return self.notifications.collect(object_type_filter)

    # -- polled inbound batches ----------------------------------------------

    def save_polled(self, object_type: ObjectType, records: Sequence[Record]) -> str:
        key = polled_batch_key(self.namespace, object_type, int(self.clock()), ext=self.ext)
        return self.store.write(key=key, payload=self.codec.encode(list(records)))

    def drain_polled(self, object_type: ObjectType) -> list[Record]:
        drained: list[Record] = []
        from_stage, to_stage = POLLED_BATCH_TRANSITION
        for raw_key in self.store.list_by_prefix(prefix=f"{self.paths.for_stage(from_stage)}/{object_type.plural}_"):
            polled = parse_polled_key(raw_key)
            if polled is None or polled[0] != object_type:
                continue
            filename = raw_key.rsplit("/", 1)[-1]
            try:
                records = self.codec.decode(self.store.read(key=raw_key))
                self.store.move(from_key=raw_key, to_key=f"{self.paths.for_stage(to_stage)}/{filename}")
            except RecordNotFoundError:
                logger.info("polled batch already drained", extra=self._context(key=raw_key))
                continue
            drained.extend(records)
        return drained

    # -- internals -------------------------------------------------------------

    def _stage_record(self, object_type: ObjectType, record: object, report: BatchReport) -> list[str]:
        natural_key = validate_record(object_type, record)
        payload = apply_flow(object_type, dict(cast(Mapping[str, Any], record)), self.flow)

        if requires_two_phase(object_type):
            try:
                dependents = expand_two_phase(object_type, payload)
            except (TypeError, ValueError, AttributeError) as exc:
                raise ValidationRejectedError(f"malformed {object_type.value} payload: {exc}") from exc
            # Dependents go straight to pending so the next sweep sees them
            # before the primary is promoted.
            keys = [key for key in (self._stage_dependent(kind, dependent, report) for kind, dependent in dependents) if key]
            keys.append(self._write(Stage.TWO_PHASE_PENDING, object_type, natural_key, payload))
            return keys

        keys = [self._write(Stage.PENDING, object_type, natural_key, payload)]
        if object_type == ObjectType.INVENTORY:
            companion = inventory_companion_product(payload, product_id=natural_key)
            keys.append(self._write(Stage.PENDING, ObjectType.PRODUCT, natural_key, companion))
        return keys

    def _stage_dependent(self, object_type: ObjectType, record: Record, report: BatchReport) -> str | None:
        try:
            natural_key = validate_record(object_type, record)
        except ValidationRejectedError as exc:
            self._record_failure(report, "save", object_type, None, "validation_rejected", exc)
            return None
        prefix = record_prefix(self.namespace, stage=Stage.PENDING, object_type=object_type, natural_key=natural_key)
        for existing in self.store.list_by_prefix(prefix=prefix):
            parsed = self._parse_or_skip(existing, quiet=True)
            if parsed is not None and parsed.natural_key == natural_key:
                logger.debug("dependent already pending", extra=self._context(key=existing))
                return None
        return self._write(Stage.PENDING, object_type, natural_key, record)

    def _write(self, stage: Stage, object_type: ObjectType, natural_key: str, record: Record) -> str:
        requested = StagingKey(
            namespace=self.namespace,
            stage=stage,
            object_type=object_type,
            natural_key=natural_key,
            ext=self.ext,
        ).encode()
        written = self.store.write(key=requested, payload=self.codec.encode(record))
        if written != requested:
            logger.warning(
                "storage disambiguated a colliding write",
                extra=self._context(object_type=object_type.value, natural_key=natural_key, key=written),
            )
        return written

    def _reject(self, object_type: ObjectType, record: object, reason: str, report: BatchReport) -> None:
        natural_key = _key_or_none(object_type, record)
        self._record_failure(report, "save", object_type, natural_key, "validation_rejected", ValueError(reason))
        try:
            self.reject_with_notification(object_type, record, reason)
        except StoreUnavailableError as exc:
            self._record_failure(report, "save", object_type, natural_key, "store_unavailable", exc)

    def _relocate(self, source: StagingKey, raw_key: str, target: StagingKey) -> Relocation:
        ensure_transition(source.stage, target.stage)
        requested = target.encode()
        relocation = Relocation(requested_key=requested, key=self.store.move(from_key=raw_key, to_key=requested))
        if relocation.collided:
            logger.warning(
                "relocation landed on a disambiguated key",
                extra=self._context(key=relocation.key, stage=target.stage.value),
            )
        return relocation

    def _rewrite_with_extra(
        self,
        source: StagingKey,
        raw_key: str,
        target: StagingKey,
        extra_data: Mapping[str, Any],
    ) -> str:
        # Relocate before rewriting so a failed rewrite still leaves one copy.
        key = self._relocate(source, raw_key, target).key
        records = self.codec.decode(self.store.read(key=key))
        head = {**(records[0] if records else {}), **dict(extra_data)}
        self.store.rewrite(key=key, payload=self.codec.encode([head, *records[1:]]))
        return key

    def _finalize_one(self, ref: RecordRef, status: NotificationStatus, terminal_stage: Stage) -> str:
        raw_key, parsed = self._locate(Stage.READY, ref.object_type, ref.natural_key, list_id=ref.list_id)
        target = parsed.at_stage(terminal_stage)
        # Partial ids in a reply never replace the ones already in the key.
        if is_destination_id(ref.list_id) and is_destination_id(ref.edit_sequence):
            target = target.with_ids(list_id=ref.list_id, edit_sequence=ref.edit_sequence)
        relocation = self._relocate(parsed, raw_key, target)
        if status == NotificationStatus.PROCESSED:
            self.store.copy(from_key=relocation.key, to_key=target.as_notification(status).encode())
        logger.info(
            "record finalized",
            extra=self._context(
                object_type=ref.object_type.value,
                natural_key=ref.natural_key,
                stage=terminal_stage.value,
                key=relocation.key,
            ),
        )
        return relocation.key

    def _locate(
        self,
        stage: Stage,
        object_type: ObjectType,
        natural_key: str,
        *,
        list_id: str | None = None,
        prefer_unassigned: bool = False,
    ) -> tuple[str, StagingKey]:
        """Find the stored record for a natural key, whatever suffix the store gave it."""
        prefix = record_prefix(self.namespace, stage=stage, object_type=object_type, natural_key=natural_key)
        matches: list[tuple[str, StagingKey]] = []
        for raw_key in self.store.list_by_prefix(prefix=prefix):
            parsed = self._parse_or_skip(raw_key, quiet=True)
            if parsed is None or parsed.is_notification or parsed.natural_key != natural_key:
                continue
            matches.append((raw_key, parsed))
        if not matches:
            raise RecordNotFoundError(prefix)

        def _rank(match: tuple[str, StagingKey]) -> tuple[int, int, int]:
            parsed = match[1]
            other_list_id = int(has_destination_ids(list_id) and parsed.list_id != list_id)
            assigned = int(prefer_unassigned and has_destination_ids(parsed.list_id))
            return other_list_id, assigned, parsed.collision or 0

        return min(matches, key=_rank)

    def _notification_key(self, object_type: ObjectType, natural_key: str, status: NotificationStatus) -> str:
        return StagingKey(
            namespace=self.namespace,
            stage=Stage.READY,
            object_type=object_type,
            natural_key=natural_key,
            notification_status=status,
            ext=self.ext,
        ).encode()

    def _parse_or_skip(self, raw_key: str, *, quiet: bool = False) -> StagingKey | None:
        try:
            return parse_key(raw_key)
        except ValueError:
            if not quiet:
                logger.warning("skipping unparseable staging key", extra=self._context(key=raw_key))
            return None

    def _record_failure(
        self,
        report: BatchReport,
        operation: str,
        object_type: ObjectType,
        natural_key: str | None,
        code: str,
        exc: Exception,
    ) -> None:
        error_code: ErrorCode = resolve_operation_error(operation=operation, code=code)
        report.failures.append(
            ItemFailure(object_type=object_type, natural_key=natural_key, error_code=error_code, detail=str(exc))
        )
        logger.warning(
            "batch item failed",
            extra=self._context(
                operation=operation,
                object_type=object_type.value,
                natural_key=natural_key,
                error_code=error_code,
            ),
        )

    def _context(self, **fields: object) -> dict[str, object]:
        return {"connection_id": self.namespace.connection_id, "origin": self.namespace.origin, **fields}


def _key_or_none(object_type: ObjectType, record: object) -> str | None:
    try:
        return natural_key_of(object_type, record)
    except ValidationRejectedError:
        return None
