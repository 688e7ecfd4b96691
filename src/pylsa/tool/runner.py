# SPDX-License-Identifier: Apache-2.0
# Copyright (c) 2025 Maurice Garcia

from __future__ import annotations

import logging
import threading
from typing import Any

from pylsa.config.system_config_settings import SystemConfigSettings
from pylsa.decoder.base import DecoderTask, ProgressMonitor
from pylsa.lib.errors import ErrorKind, Result, ToolError
from pylsa.lib.event_bus import EventBus, EventTopic
from pylsa.lib.types import StringEnum


class RunnerState(StringEnum):
    IDLE        = "IDLE"
    RUNNING     = "RUNNING"
    COMPLETED   = "COMPLETED"
    FAILED      = "FAILED"
    CANCELLED   = "CANCELLED"


class ToolRunner:
    """
    Runs one decoder task at a time on a background worker thread.

    Progress (integer percent, never decreasing within a run) and lifecycle
    changes are published on the event bus; by default that is the bus of the
    capture being decoded. ``join()`` hands back a Result holding either the
    task's data set or the ToolError that ended the run.
    """

    def __init__(self, bus: EventBus | None = None, yield_interval: int | None = None) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self._bus = bus
        self._yield_interval = yield_interval or SystemConfigSettings.yield_interval()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._monitor: ProgressMonitor | None = None
        self._result: Result[Any] | None = None
        self._state = RunnerState.IDLE
        self._run_bus: EventBus | None = None

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    @property
    def progress(self) -> int:
        return self._monitor.percent if self._monitor is not None else 0

    def start(self, task: DecoderTask[Any]) -> None:
        """Start ``task``; raises ToolError(ALREADY_RUNNING) while a run is active."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                raise ToolError(ErrorKind.ALREADY_RUNNING, f"Runner is busy, cannot start {task.name}")

            self._run_bus = self._bus if self._bus is not None else task.context.bus
            bus = self._run_bus
            self._monitor = ProgressMonitor(
                callback        =   lambda percent: bus.publish(EventTopic.PROGRESS, percent=percent),
                yield_interval  =   self._yield_interval,
            )
            task.bind(self._monitor)
            self._result = None
            self._thread = threading.Thread(target=self._run, args=(task,), name=f"pylsa-{task.name}", daemon=True)
            self._set_state(RunnerState.RUNNING)
            self._thread.start()

    def cancel(self) -> None:
        """Request cancellation; raises ToolError(NOT_RUNNING) when idle."""
        with self._lock:
            if self._thread is None or not self._thread.is_alive() or self._monitor is None:
                raise ToolError(ErrorKind.NOT_RUNNING, "No decoder is running")
            self._monitor.cancel()
        self.logger.info("Cancellation requested")

    def join(self, timeout: float | None = None) -> Result[Any]:
        """
        Wait for the current run and return its outcome.

        When ``timeout`` (seconds) expires the run is cancelled and the
        worker is awaited until it observes the flag.
        """
        thread = self._thread
        if thread is None:
            raise ToolError(ErrorKind.NOT_RUNNING, "Nothing has been started")

        thread.join(timeout)
        if thread.is_alive():
            self.logger.warning(f"Run exceeded {timeout}s, cancelling")
            if self._monitor is not None:
                self._monitor.cancel()
            thread.join()

        result = self._result
        if result is None:
            raise ToolError(ErrorKind.NOT_RUNNING, "Run ended without a result")
        return result

    def run(self, task: DecoderTask[Any], timeout: float | None = None) -> Result[Any]:
        """Start ``task`` and wait for it."""
        self.start(task)
        return self.join(timeout)

    def _run(self, task: DecoderTask[Any]) -> None:
        try:
            data = task.decode()
        except ToolError as err:
            self._result = Result.fail(err)
            if err.kind is ErrorKind.CANCELLED:
                self.logger.info(f"{task.name} cancelled")
                self._set_state(RunnerState.CANCELLED)
            else:
                self.logger.warning(f"{task.name} failed: {err.kind.value}: {err.message}")
                self._set_state(RunnerState.FAILED)
            return
        except Exception as exc:
            self.logger.error(f"{task.name} raised unexpectedly: {exc}", exc_info=True)
            self._result = Result.fail(ToolError(ErrorKind.INVALID_CONFIG, f"Unexpected failure: {exc}"))
            self._set_state(RunnerState.FAILED)
            return

        self._result = Result.ok(data)
        self.logger.debug(f"{task.name} completed")
        self._set_state(RunnerState.COMPLETED)

    def _set_state(self, state: RunnerState) -> None:
        self._state = state
        if self._run_bus is not None:
            self._run_bus.publish(EventTopic.RUN_STATE, state=state)
