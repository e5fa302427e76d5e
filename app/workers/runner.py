from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from app.settings import DispatchRuntimeSettings
from app.workers.loop import DispatchLoop


@dataclass
class DispatchRuntimeState:
    started: bool = False
    stopped: bool = False
    ticks_total: int = 0
    rounds_with_work_total: int = 0
    idle_ticks_total: int = 0
    errors_total: int = 0


async def run_dispatcher_until_stopped(
    *,
    dispatch_loop: DispatchLoop,
    role: str,
    run_id: str,
    stop_event: asyncio.Event,
    settings: DispatchRuntimeSettings,
    logger: logging.Logger,
    state: DispatchRuntimeState | None = None,
) -> None:
    if state is not None:
        state.started = True

    context = {"role": role, "service": role, "run_id": run_id, "connection_id": dispatch_loop.connection_id}
    logger.info("dispatch loop started", extra=context)

    while not stop_event.is_set():
        delay_ms = settings.idle_backoff_ms
        try:
            did_work = await dispatch_loop.run_once()
            if state is not None:
                state.ticks_total += 1
                if did_work:
                    state.rounds_with_work_total += 1
                else:
                    state.idle_ticks_total += 1
            delay_ms = settings.poll_interval_ms if did_work else settings.idle_backoff_ms
        except Exception:
            # Store outages surface here; retry policy is this loop's backoff.
            if state is not None:
                state.ticks_total += 1
                state.errors_total += 1
            delay_ms = settings.error_backoff_ms
            logger.exception("dispatch tick error", extra=context)

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay_ms / 1000)
        except TimeoutError:
            continue

    logger.info("dispatch loop stopped", extra=context)
    if state is not None:
        state.stopped = True
