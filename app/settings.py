from __future__ import annotations

from dataclasses import dataclass
import os

from app.domain.models import Namespace

DEFAULT_ORIGIN = "primary"
SUPPORTED_STORES = ("memory", "local", "s3")


@dataclass(frozen=True)
class StagingSettings:
    connection_id: str
    origin: str = DEFAULT_ORIGIN
    # Flow flag set by the origin, e.g. "cancel_order".
    flow: str | None = None
    store: str = "memory"
    store_path: str = "./data/staging"
    s3_bucket: str | None = None
    s3_key_prefix: str = ""

    def __post_init__(self) -> None:
        if not self.connection_id:
            raise ValueError("connection_id is required")
        if self.store not in SUPPORTED_STORES:
            supported = ", ".join(SUPPORTED_STORES)
            raise ValueError(f"unsupported staging store '{self.store}'. Supported stores: {supported}")
        if self.store == "s3" and not self.s3_bucket:
            raise ValueError("STAGING_S3_BUCKET is required when STAGING_STORE=s3")

    @property
    def namespace(self) -> Namespace:
        return Namespace(connection_id=self.connection_id, origin=self.origin)


def staging_settings_from_env() -> StagingSettings:
    connection_id = os.getenv("STAGING_CONNECTION_ID", "").strip()
    if not connection_id:
        raise ValueError("STAGING_CONNECTION_ID must be set to the connection this process relays for")
    return StagingSettings(
        connection_id=connection_id,
        origin=os.getenv("STAGING_ORIGIN", DEFAULT_ORIGIN).strip() or DEFAULT_ORIGIN,
        flow=os.getenv("STAGING_FLOW") or None,
        store=os.getenv("STAGING_STORE", "memory"),
        store_path=os.getenv("STAGING_STORE_PATH", "./data/staging"),
        s3_bucket=os.getenv("STAGING_S3_BUCKET") or None,
        s3_key_prefix=os.getenv("STAGING_S3_KEY_PREFIX", ""),
    )


@dataclass(frozen=True)
class DispatchRuntimeSettings:
    poll_interval_ms: int = 1000
    idle_backoff_ms: int = 5000
    error_backoff_ms: int = 10000


def dispatch_runtime_settings_from_env() -> DispatchRuntimeSettings:
    return DispatchRuntimeSettings(
        poll_interval_ms=_env_int("DISPATCH_POLL_INTERVAL_MS", 1000),
        idle_backoff_ms=_env_int("DISPATCH_IDLE_BACKOFF_MS", 5000),
        error_backoff_ms=_env_int("DISPATCH_ERROR_BACKOFF_MS", 10000),
    )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default

    try:
        parsed = int(value)
    except ValueError:
        return default

    return parsed if parsed > 0 else default
