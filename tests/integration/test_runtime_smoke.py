from __future__ import annotations

import os
from pathlib import Path
import subprocess
import sys
import time

from fastapi.testclient import TestClient
import pytest

from app.api.http_app import build_app
from app.domain.models import ObjectType
from app.roles import SUPPORTED_ROLES, validate_role
from app.services.bootstrap import build_runtime_container
from app.settings import DispatchRuntimeSettings, StagingSettings
from tests.staging_support import order_record


@pytest.mark.integration
@pytest.mark.parametrize("role", SUPPORTED_ROLES)
def test_role_starts_via_dry_run(role: str) -> None:
    proc = subprocess.run(
        [sys.executable, "-m", "app.main", "--role", role, "--dry-run-startup"],
        capture_output=True,
        text=True,
        check=False,
        env={**os.environ, "STAGING_CONNECTION_ID": "c1", "STAGING_STORE": "memory"},
    )
    assert proc.returncode == 0, proc.stderr


@pytest.mark.integration
def test_container_wires_dispatcher_only_for_worker_role() -> None:
    settings = StagingSettings(connection_id="c1")

    assert build_runtime_container(validate_role("api"), settings).dispatch_loop is None
    worker = build_runtime_container(validate_role("worker-dispatch"), settings)
    assert worker.dispatch_loop is not None
    assert worker.dispatch_loop.engine is worker.engine


@pytest.mark.integration
def test_container_builds_local_store(tmp_path: Path) -> None:
    settings = StagingSettings(connection_id="c1", store="local", store_path=str(tmp_path / "staging"))
    container = build_runtime_container(validate_role("api"), settings)

    report = container.engine.save(ObjectType.PRODUCT, {"id": "P1"})

    assert report.applied == ["c1/primary_pending/products_P1_.json"]
    assert (tmp_path / "staging" / "c1" / "primary_pending" / "products_P1_.json").is_file()


@pytest.mark.integration
def test_worker_role_dispatches_in_the_background() -> None:
    role = validate_role("worker-dispatch")
    container = build_runtime_container(role, StagingSettings(connection_id="c1"))
    container.engine.save(ObjectType.ORDER, order_record())
    app = build_app(
        role=role.name,
        run_id="integration-worker",
        dispatch_loop=container.dispatch_loop,
        dispatch_runtime_settings=DispatchRuntimeSettings(poll_interval_ms=5, idle_backoff_ms=5, error_backoff_ms=5),
        api_deps=container.api_deps,
    )

    with TestClient(app) as client:
        deadline = time.monotonic() + 2
        ready = client.get("/ready").json()
        while not ready["dispatch_loop_ready"] or ready["dispatch_metrics"]["rounds_with_work_total"] == 0:
            assert time.monotonic() < deadline, ready
            time.sleep(0.01)
            ready = client.get("/ready").json()

    assert ready["dispatch_loop_enabled"] is True
    assert container.request_builder.query_batches
    assert container.request_builder.insert_update_batches
