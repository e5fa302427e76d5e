from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging

from app.api.handlers.deps import ApiDeps
from app.clients.local_store import LocalObjectStore
from app.clients.s3_store import S3ObjectStore
from app.clients.stub import InMemoryObjectStore, StubRequestBuilder
from app.domain.contracts import ObjectStore, RecordCodec, RequestBuilder
from app.lib.records import build_record_codec
from app.roles import RuntimeRole
from app.services.notifications import NotificationReconciler
from app.services.sessions import SessionStore
from app.services.staging import StagingEngine
from app.settings import StagingSettings, staging_settings_from_env
from app.workers.loop import DispatchLoop

logger = logging.getLogger("runtime")


@dataclass
class RuntimeContainer:
    settings: StagingSettings
    store: ObjectStore
    codec: RecordCodec
    sessions: SessionStore
    engine: StagingEngine
    request_builder: RequestBuilder
    api_deps: ApiDeps
    dispatch_loop: DispatchLoop | None
    on_startup: Callable[[], Awaitable[None]] | None = None
    on_shutdown: Callable[[], Awaitable[None]] | None = None


def build_object_store(settings: StagingSettings) -> ObjectStore:
    if settings.store == "local":
        return LocalObjectStore(settings.store_path)
    if settings.store == "s3":
        assert settings.s3_bucket is not None
        return S3ObjectStore(bucket=settings.s3_bucket, key_prefix=settings.s3_key_prefix)
    return InMemoryObjectStore()


def build_runtime_container(
    role: RuntimeRole,
    settings: StagingSettings | None = None,
    *,
    store: ObjectStore | None = None,
    request_builder: RequestBuilder | None = None,
) -> RuntimeContainer:
    settings = settings or staging_settings_from_env()
    store = store or build_object_store(settings)
    codec = build_record_codec()
    namespace = settings.namespace

    sessions = SessionStore(namespace=namespace, store=store, codec=codec)
    engine = StagingEngine(
        namespace=namespace,
        store=store,
        codec=codec,
        sessions=sessions,
        notifications=NotificationReconciler(namespace=namespace, store=store, codec=codec),
        flow=settings.flow,
    )
    request_builder = request_builder or StubRequestBuilder()
    api_deps = ApiDeps(engine=engine, sessions=sessions)

    dispatch_loop: DispatchLoop | None = None
    if role.runs_dispatcher:
        dispatch_loop = DispatchLoop(role=role.name, engine=engine, request_builder=request_builder)

    logger.info(
        "runtime container built",
        extra={
            "role": role.name,
            "connection_id": namespace.connection_id,
            "origin": namespace.origin,
        },
    )
    return RuntimeContainer(
        settings=settings,
        store=store,
        codec=codec,
        sessions=sessions,
        engine=engine,
        request_builder=request_builder,
        api_deps=api_deps,
        dispatch_loop=dispatch_loop,
    )
