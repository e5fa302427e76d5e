from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
import re

from app.domain.models import (
    ExternalIds,
    Namespace,
    NotificationStatus,
    ObjectType,
    Stage,
    has_destination_ids,
    parse_object_type,
)

DEFAULT_RECORD_EXT = "json"
NOTIFICATION_MARKER = "notification"
SESSIONS_FOLDER = "sessions"

# Appended by object stores when a key is already taken, e.g. orders_R1_(1).json
_COLLISION_SUFFIX = re.compile(r"\((\d+)\)$")
_POLLED_STEM = re.compile(r"^(?P<plural>[a-z]+)_(?P<stamp>\d+)$")

# Destination ids are embedded in filenames, so "_", "/" and "(" are not allowed.
DESTINATION_ID_PATTERN = r"^[A-Za-z0-9.:-]+$"
_DESTINATION_ID = re.compile(DESTINATION_ID_PATTERN)

# Session tags become part of the session filename.
SESSION_TAG_PATTERN = r"^[A-Za-z0-9.-]+$"
SESSION_TAG_MAX_LENGTH = 64
_SESSION_TAG = re.compile(SESSION_TAG_PATTERN)

# Longest stage names first so "two_phase_pending" wins over "pending".
_STAGES_BY_SUFFIX: tuple[Stage, ...] = tuple(sorted(Stage, key=lambda stage: len(stage.value), reverse=True))


@dataclass(frozen=True)
class NamespacePaths:
    pending: str
    two_phase_pending: str
    ready: str
    processed: str
    failed: str
    sessions: str

    @classmethod
    def for_namespace(cls, namespace: Namespace) -> NamespacePaths:
        base = f"{namespace.connection_id}/{namespace.origin}"
        return cls(
            pending=f"{base}_{Stage.PENDING.value}",
            two_phase_pending=f"{base}_{Stage.TWO_PHASE_PENDING.value}",
            ready=f"{base}_{Stage.READY.value}",
            processed=f"{base}_{Stage.PROCESSED.value}",
            failed=f"{base}_{Stage.FAILED.value}",
            sessions=f"{base}_{SESSIONS_FOLDER}",
        )

    def for_stage(self, stage: Stage) -> str:
        return {
            Stage.PENDING: self.pending,
            Stage.TWO_PHASE_PENDING: self.two_phase_pending,
            Stage.READY: self.ready,
            Stage.PROCESSED: self.processed,
            Stage.FAILED: self.failed,
        }[stage]


@dataclass(frozen=True)
class StagingKey:
    namespace: Namespace
    stage: Stage
    object_type: ObjectType
    natural_key: str
    list_id: str | None = None
    edit_sequence: str | None = None
    notification_status: NotificationStatus | None = None
    collision: int | None = None
    ext: str = DEFAULT_RECORD_EXT

    @property
    def is_notification(self) -> bool:
        return self.notification_status is not None

    @property
    def external_ids(self) -> ExternalIds | None:
        if not self.has_encodable_ids:
            return None
        return ExternalIds(list_id=str(self.list_id), edit_sequence=str(self.edit_sequence))

    @property
    def has_encodable_ids(self) -> bool:
        return has_destination_ids(self.list_id) and has_destination_ids(self.edit_sequence)

    @property
    def filename(self) -> str:
        name = f"{self.object_type.plural}_{self.natural_key}_"
        # A lone list id would parse back as part of the natural key.
        if self.has_encodable_ids:
            name += f"{self.list_id}_{self.edit_sequence}"
        if self.notification_status is not None:
            name = f"{NOTIFICATION_MARKER}_{self.notification_status.value}_{name}"
        return name

    def encode(self) -> str:
        folder = NamespacePaths.for_namespace(self.namespace).for_stage(self.stage)
        suffix = f"({self.collision})" if self.collision else ""
        return f"{folder}/{self.filename}{suffix}.{self.ext}"

    def canonical(self) -> StagingKey:
        return replace(self, collision=None)

    def at_stage(self, stage: Stage) -> StagingKey:
        return replace(self, stage=stage, collision=None)

    def with_ids(self, *, list_id: str | None, edit_sequence: str | None) -> StagingKey:
        return replace(self, list_id=list_id, edit_sequence=edit_sequence, collision=None)

    def as_notification(self, status: NotificationStatus) -> StagingKey:
        return replace(self, stage=Stage.READY, notification_status=status, collision=None)


def record_prefix(
    namespace: Namespace,
    *,
    stage: Stage,
    object_type: ObjectType,
    natural_key: str,
) -> str:
    folder = NamespacePaths.for_namespace(namespace).for_stage(stage)
    return f"{folder}/{object_type.plural}_{natural_key}_"


def notification_prefix(namespace: Namespace) -> str:
    return f"{NamespacePaths.for_namespace(namespace).ready}/{NOTIFICATION_MARKER}_"


def session_key(namespace: Namespace, session_id: str, *, ext: str = DEFAULT_RECORD_EXT) -> str:
    return f"{NamespacePaths.for_namespace(namespace).sessions}/{session_id}.{ext}"


def polled_batch_key(namespace: Namespace, object_type: ObjectType, stamp: int, *, ext: str = DEFAULT_RECORD_EXT) -> str:
    return f"{NamespacePaths.for_namespace(namespace).pending}/{object_type.plural}_{stamp}.{ext}"


def split_key(raw_key: str) -> tuple[str, str, str]:
    parts = raw_key.split("/")
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"malformed staging key: {raw_key}")
    return parts[0], parts[1], parts[2]


def _split_filename(filename: str) -> tuple[str, int | None, str]:
    stem, dot, ext = filename.rpartition(".")
    if not dot or not stem:
        raise ValueError(f"staging key has no extension: {filename}")
    collision: int | None = None
    match = _COLLISION_SUFFIX.search(stem)
    if match is not None:
        collision = int(match.group(1))
        stem = stem[: match.start()]
    return stem, collision, ext


def _parse_folder(folder: str) -> tuple[str, Stage]:
    for stage in _STAGES_BY_SUFFIX:
        suffix = f"_{stage.value}"
        if folder.endswith(suffix) and len(folder) > len(suffix):
            return folder[: -len(suffix)], stage
    raise ValueError(f"unknown stage folder: {folder}")


def parse_key(raw_key: str) -> StagingKey:
    """Inverse of StagingKey.encode().

    Natural keys may contain underscores; destination ids may not.
    """
    connection_id, folder, filename = split_key(raw_key)
    origin, stage = _parse_folder(folder)
    stem, collision, ext = _split_filename(filename)

    notification_status: NotificationStatus | None = None
    marker = f"{NOTIFICATION_MARKER}_"
    if stem.startswith(marker):
        status_token, _, stem = stem[len(marker) :].partition("_")
        try:
            notification_status = NotificationStatus(status_token)
        except ValueError:
            raise ValueError(f"unknown notification status in key: {raw_key}") from None

    plural, _, rest = stem.partition("_")
    try:
        object_type = parse_object_type(plural)
    except ValueError:
        raise ValueError(f"unknown object type in key: {raw_key}") from None

    list_id: str | None = None
    edit_sequence: str | None = None
    if rest.endswith("_"):
        natural_key = rest[:-1]
    else:
        tokens = rest.rsplit("_", 2)
        if len(tokens) != 3:
            raise ValueError(f"not a staged record key: {raw_key}")
        natural_key, list_id, edit_sequence = tokens
    if not natural_key:
        raise ValueError(f"staging key has an empty natural key: {raw_key}")

    return StagingKey(
        namespace=Namespace(connection_id=connection_id, origin=origin),
        stage=stage,
        object_type=object_type,
        natural_key=natural_key,
        list_id=list_id,
        edit_sequence=edit_sequence,
        notification_status=notification_status,
        collision=collision,
        ext=ext,
    )


def parse_polled_key(raw_key: str) -> tuple[ObjectType, int] | None:
    _, _, filename = split_key(raw_key)
    stem, _, _ = _split_filename(filename)
    match = _POLLED_STEM.match(stem)
    if match is None:
        return None
    try:
        return parse_object_type(match.group("plural")), int(match.group("stamp"))
    except ValueError:
        return None


def is_destination_id(value: object) -> bool:
    return isinstance(value, str) and _DESTINATION_ID.match(value) is not None


def is_session_tag(value: str) -> bool:
    return len(value) <= SESSION_TAG_MAX_LENGTH and _SESSION_TAG.match(value) is not None


def with_collision_suffix(key: str, attempt: int) -> str:
    folder, slash, filename = key.rpartition("/")
    stem, dot, ext = filename.rpartition(".")
    if not dot:
        stem, ext = filename, ""
    suffixed = f"{stem}({attempt})" + (f".{ext}" if dot else "")
    return f"{folder}{slash}{suffixed}"


def next_free_key(key: str, exists: Callable[[str], bool], *, max_attempts: int = 1000) -> str:
    if not exists(key):
        return key
    for attempt in range(1, max_attempts + 1):
        candidate = with_collision_suffix(key, attempt)
        if not exists(candidate):
            return candidate
    raise RuntimeError(f"no free key left for {key}")
