"""Event-driven scheduler that runs the reconciler per desired-state object.

Keys move through ``IDLE -> QUEUED -> RECONCILING -> (IDLE | QUEUED_AGAIN | BACKOFF)``.
At most one reconcile per key is in flight; events arriving meanwhile are
coalesced into a single follow-up run that sees the latest desired spec.
Different keys reconcile concurrently, bounded by the worker limit.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from autosecret.config.controller import ControllerConfig
from autosecret.domain.model import WatchEventType
from autosecret.domain.reconciliation.errors import ReconcileError
from autosecret.domain.reconciliation.policy import FixedDelayPolicy

if TYPE_CHECKING:
    from autosecret.domain.model import DesiredSpec, ObjectKey
    from autosecret.domain.ports.watching import DesiredSpecSource, OwnedObjectSource
    from autosecret.domain.reconciliation.action import Action
    from autosecret.domain.reconciliation.policy import ErrorPolicy

    from .triggers import ResyncTrigger

log = getLogger(__name__)

ReconcileFn = Callable[["DesiredSpec"], Awaitable["Action"]]


class SourceFailedError(RuntimeError):
    """An event source broke down; the loop can no longer observe changes."""


class KeyState(StrEnum):
    IDLE = "idle"
    QUEUED = "queued"
    RECONCILING = "reconciling"
    QUEUED_AGAIN = "queued_again"
    BACKOFF = "backoff"


@dataclass(frozen=True, slots=True)
class ReconcileReport:
    key: ObjectKey
    action: Action
    error: Exception | None = None


def log_reconcile_result(report: ReconcileReport) -> None:
    if report.error is None:
        log.info("reconciled %s", report.key)
    elif isinstance(report.error, ReconcileError):
        log.warning("reconcile failed for %s: %s", report.key, report.error)
    else:
        log.warning(
            "reconcile failed for %s: %s", report.key, report.error, exc_info=report.error
        )


class ControlLoop:
    """Merge watch events, resync presses and shutdown into reconcile runs."""

    def __init__(
        self,
        reconcile: ReconcileFn,
        *,
        desired: DesiredSpecSource,
        owned: OwnedObjectSource | None = None,
        resync: ResyncTrigger | None = None,
        error_policy: ErrorPolicy | None = None,
        config: ControllerConfig | None = None,
        on_result: Callable[[ReconcileReport], None] = log_reconcile_result,
    ) -> None:
        self._config = config or ControllerConfig()
        self._reconcile = reconcile
        self._desired = desired
        self._owned = owned
        self._resync = resync
        self._error_policy = error_policy or FixedDelayPolicy(self._config.retry_delay_seconds)
        self._on_result = on_result

        self._objects: dict[ObjectKey, DesiredSpec] = {}
        self._queue: asyncio.Queue[ObjectKey | None] = asyncio.Queue()
        self._queued: set[ObjectKey] = set()
        self._in_flight: set[ObjectKey] = set()
        self._dirty: set[ObjectKey] = set()
        self._backoff: dict[ObjectKey, asyncio.TimerHandle] = {}
        self._stopping = asyncio.Event()
        self._closing = False
        self._failure: tuple[str, Exception] | None = None

    @property
    def known_keys(self) -> frozenset[ObjectKey]:
        return frozenset(self._objects)

    def state_of(self, key: ObjectKey) -> KeyState:
        if key in self._in_flight:
            return KeyState.QUEUED_AGAIN if key in self._dirty else KeyState.RECONCILING
        if key in self._queued:
            return KeyState.QUEUED
        if key in self._backoff:
            return KeyState.BACKOFF
        return KeyState.IDLE

    def schedule(self, key: ObjectKey) -> None:
        """Request a reconcile of ``key`` as soon as a worker is free."""

        if self._closing:
            return
        if key in self._in_flight:
            self._dirty.add(key)
            return
        self._cancel_backoff(key)
        if key in self._queued:
            return
        self._queued.add(key)
        self._queue.put_nowait(key)

    def request_resync(self) -> None:
        log.info("resync requested, reconciling %d object(s)", len(self._objects))
        for key in sorted(self._objects, key=str):
            self.schedule(key)

    def shutdown(self) -> None:
        """Stop admitting work; in-flight reconciles finish before ``run`` returns."""

        if not self._closing:
            log.info("shutdown requested")
        self._closing = True
        self._stopping.set()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.shutdown)
            except NotImplementedError:
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.shutdown))

    async def run(self) -> None:
        """Serve events until shutdown.

        Raises ``SourceFailedError`` when an event source stopped the loop.
        """

        workers = [
            asyncio.create_task(self._worker(), name=f"autosecret-worker-{index}")
            for index in range(self._config.worker_limit)
        ]
        feeders = [asyncio.create_task(self._consume_desired(), name="autosecret-desired")]
        if self._owned is not None:
            feeders.append(asyncio.create_task(self._consume_owned(), name="autosecret-owned"))
        if self._resync is not None:
            feeders.append(asyncio.create_task(self._consume_resync(), name="autosecret-resync"))

        try:
            await self._stopping.wait()
        finally:
            self._closing = True
            for task in feeders:
                task.cancel()
            await asyncio.gather(*feeders, return_exceptions=True)

            for handle in self._backoff.values():
                handle.cancel()
            self._backoff.clear()
            self._drain_queue()
            for _ in workers:
                self._queue.put_nowait(None)
            await asyncio.gather(*workers)

        if self._failure is not None:
            message, cause = self._failure
            raise SourceFailedError(message) from cause

    async def _consume_desired(self) -> None:
        try:
            async for event in self._desired.events():
                if event.type is WatchEventType.DELETED:
                    self._forget(event.key)
                elif event.spec is not None:
                    self._objects[event.key] = event.spec
                    self.schedule(event.key)
        except Exception as exc:
            self._source_failed("desired-state watch failed", exc)

    async def _consume_owned(self) -> None:
        assert self._owned is not None
        try:
            async for owner in self._owned.events():
                if owner in self._objects:
                    self.schedule(owner)
                else:
                    log.debug("ignoring change to record of unknown owner %s", owner)
        except Exception as exc:
            self._source_failed("owned-object watch failed", exc)

    def _source_failed(self, message: str, exc: Exception) -> None:
        log.error("%s: %s", message, exc)
        if self._failure is None:
            self._failure = (message, exc)
        self.shutdown()

    async def _consume_resync(self) -> None:
        assert self._resync is not None
        while True:
            await self._resync.wait()
            self.request_resync()

    async def _worker(self) -> None:
        while True:
            key = await self._queue.get()
            if key is None:
                return
            self._queued.discard(key)
            spec = self._objects.get(key)
            if spec is None:
                log.debug("skipping %s, object no longer exists", key)
                continue

            self._in_flight.add(key)
            try:
                report = await self._reconcile_one(key, spec)
            finally:
                self._in_flight.discard(key)
            self._after_reconcile(report)

    async def _reconcile_one(self, key: ObjectKey, spec: DesiredSpec) -> ReconcileReport:
        try:
            action = await self._reconcile(spec)
        except Exception as exc:  # noqa: BLE001
            report = ReconcileReport(key=key, action=self._error_policy(exc, key), error=exc)
        else:
            report = ReconcileReport(key=key, action=action)
        try:
            self._on_result(report)
        except Exception:
            log.exception("result callback failed for %s", key)
        return report

    def _after_reconcile(self, report: ReconcileReport) -> None:
        key = report.key
        if key in self._dirty:
            self._dirty.discard(key)
            self.schedule(key)
            return
        delay = report.action.requeue_after
        if delay is None or self._closing or key not in self._objects:
            return
        loop = asyncio.get_running_loop()
        self._backoff[key] = loop.call_later(delay, self._backoff_expired, key)

    def _backoff_expired(self, key: ObjectKey) -> None:
        self._backoff.pop(key, None)
        self.schedule(key)

    def _cancel_backoff(self, key: ObjectKey) -> None:
        handle = self._backoff.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _forget(self, key: ObjectKey) -> None:
        log.debug("object %s deleted", key)
        self._objects.pop(key, None)
        self._dirty.discard(key)
        self._cancel_backoff(key)

    def _drain_queue(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._queued.clear()
