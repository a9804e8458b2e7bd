from __future__ import annotations

import asyncio
from collections import Counter
from typing import TYPE_CHECKING

import pytest

from autosecret.config.controller import ControllerConfig
from autosecret.controller import (
    ControlLoop,
    KeyState,
    ReconcileReport,
    ResyncTrigger,
    SourceFailedError,
)
from autosecret.domain.model import DesiredSpecEvent, ObjectKey
from autosecret.domain.reconciliation import Action, FixedDelayPolicy, StateWriteError
from tests.support.sources import QueueSource, applied, deleted, make_spec, wait_until

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from autosecret.domain.model import DesiredSpec


class RecordingReconciler:
    """Stand-in reconcile function that can be held open and made to fail."""

    def __init__(self, *, failures: int = 0) -> None:
        self.calls: list[DesiredSpec] = []
        self.gate = asyncio.Event()
        self.gate.set()
        self.active: Counter[ObjectKey] = Counter()
        self.max_active: Counter[ObjectKey] = Counter()
        self.failures = failures

    @property
    def running(self) -> int:
        return sum(self.active.values())

    async def __call__(self, spec: DesiredSpec) -> Action:
        key = spec.key
        self.calls.append(spec)
        self.active[key] += 1
        self.max_active[key] = max(self.max_active[key], self.active[key])
        try:
            await self.gate.wait()
            if self.failures:
                self.failures -= 1
                raise StateWriteError(RuntimeError("apiserver unavailable"))
            return Action.await_change()
        finally:
            self.active[key] -= 1


class Harness:
    def __init__(
        self,
        reconciler: RecordingReconciler,
        *,
        config: ControllerConfig | None = None,
        retry_delay: float = 60.0,
        with_owned: bool = False,
        resync: ResyncTrigger | None = None,
    ) -> None:
        self.desired = QueueSource[DesiredSpecEvent]()
        self.owned = QueueSource[ObjectKey]() if with_owned else None
        self.reports: list[ReconcileReport] = []
        self.loop = ControlLoop(
            reconciler,
            desired=self.desired,
            owned=self.owned,
            resync=resync,
            error_policy=FixedDelayPolicy(retry_delay),
            config=config,
            on_result=self.reports.append,
        )
        self.task = asyncio.create_task(self.loop.run())

    async def stop(self) -> None:
        self.loop.shutdown()
        await asyncio.wait_for(self.task, 2.0)


def test_applied_event_is_reconciled_once() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler()
        harness = Harness(reconciler)
        spec = make_spec(a="uuid")

        harness.desired.push(applied(spec))
        await wait_until(lambda: len(harness.reports) == 1)
        await asyncio.sleep(0.01)

        assert len(reconciler.calls) == 1
        assert harness.reports[0].error is None
        assert harness.loop.state_of(spec.key) is KeyState.IDLE
        assert harness.loop.known_keys == {spec.key}
        await harness.stop()

    asyncio.run(scenario())


def test_events_during_reconcile_coalesce_into_one_run_with_latest_spec() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler()
        reconciler.gate.clear()
        harness = Harness(reconciler)
        key = make_spec().key

        harness.desired.push(applied(make_spec(a="uuid")))
        await wait_until(lambda: harness.loop.state_of(key) is KeyState.RECONCILING)
        harness.desired.push(applied(make_spec(a="ulid")))
        harness.desired.push(applied(make_spec(a="ulid", b="uuid")))
        await wait_until(lambda: harness.loop.state_of(key) is KeyState.QUEUED_AGAIN)

        reconciler.gate.set()
        await wait_until(lambda: len(harness.reports) == 2)
        await asyncio.sleep(0.01)

        assert len(reconciler.calls) == 2
        assert set(reconciler.calls[1].entries) == {"a", "b"}
        assert reconciler.max_active[key] == 1
        assert harness.loop.state_of(key) is KeyState.IDLE
        await harness.stop()

    asyncio.run(scenario())


def test_concurrency_is_bounded_by_worker_limit() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler()
        reconciler.gate.clear()
        harness = Harness(reconciler, config=ControllerConfig(worker_limit=2))
        specs = [make_spec(f"app-{index}", a="uuid") for index in range(5)]

        for spec in specs:
            harness.desired.push(applied(spec))
        await wait_until(lambda: reconciler.running == 2)
        await asyncio.sleep(0.01)

        states = Counter(harness.loop.state_of(spec.key) for spec in specs)
        assert reconciler.running == 2
        assert states == {KeyState.RECONCILING: 2, KeyState.QUEUED: 3}

        reconciler.gate.set()
        await wait_until(lambda: len(harness.reports) == 5)
        assert {report.key for report in harness.reports} == {spec.key for spec in specs}
        await harness.stop()

    asyncio.run(scenario())


def test_failure_backs_off_then_retries() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler(failures=1)
        harness = Harness(reconciler, retry_delay=0.05)
        spec = make_spec(a="uuid")

        harness.desired.push(applied(spec))
        await wait_until(lambda: harness.loop.state_of(spec.key) is KeyState.BACKOFF)

        assert isinstance(harness.reports[0].error, StateWriteError)
        assert harness.reports[0].action == Action.requeue(0.05)

        await wait_until(lambda: len(harness.reports) == 2)
        assert harness.reports[1].error is None
        await wait_until(lambda: harness.loop.state_of(spec.key) is KeyState.IDLE)
        await harness.stop()

    asyncio.run(scenario())


def test_event_during_backoff_retries_immediately() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler(failures=1)
        harness = Harness(reconciler, retry_delay=60.0)
        spec = make_spec(a="uuid")

        harness.desired.push(applied(spec))
        await wait_until(lambda: harness.loop.state_of(spec.key) is KeyState.BACKOFF)
        harness.desired.push(applied(spec))
        await wait_until(lambda: len(harness.reports) == 2)

        assert harness.reports[1].error is None
        await wait_until(lambda: harness.loop.state_of(spec.key) is KeyState.IDLE)
        await harness.stop()

    asyncio.run(scenario())


def test_failure_of_one_key_does_not_block_others() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler(failures=1)
        harness = Harness(reconciler, retry_delay=60.0)
        broken = make_spec("broken", a="uuid")
        healthy = make_spec("healthy", a="uuid")

        harness.desired.push(applied(broken))
        await wait_until(lambda: harness.loop.state_of(broken.key) is KeyState.BACKOFF)
        harness.desired.push(applied(healthy))
        await wait_until(lambda: len(harness.reports) == 2)

        assert harness.reports[1].key == healthy.key
        assert harness.reports[1].error is None
        assert harness.loop.state_of(broken.key) is KeyState.BACKOFF
        await harness.stop()

    asyncio.run(scenario())


def test_owned_record_change_requeues_its_owner() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler()
        harness = Harness(reconciler, with_owned=True)
        spec = make_spec(a="uuid")
        assert harness.owned is not None

        harness.desired.push(applied(spec))
        await wait_until(lambda: len(harness.reports) == 1)
        harness.owned.push(ObjectKey("default", "stranger"))
        harness.owned.push(spec.key)
        await wait_until(lambda: len(harness.reports) == 2)
        await asyncio.sleep(0.01)

        assert [report.key for report in harness.reports] == [spec.key, spec.key]
        await harness.stop()

    asyncio.run(scenario())


def test_resync_reconciles_every_known_object() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler()
        trigger = ResyncTrigger()
        harness = Harness(reconciler, resync=trigger)
        specs = [make_spec("one", a="uuid"), make_spec("two", namespace="other", a="ulid")]

        for spec in specs:
            harness.desired.push(applied(spec))
        await wait_until(lambda: len(harness.reports) == 2)
        assert trigger.offer()
        await wait_until(lambda: len(harness.reports) == 4)

        assert Counter(report.key for report in harness.reports) == {
            specs[0].key: 2,
            specs[1].key: 2,
        }
        await harness.stop()

    asyncio.run(scenario())


def test_deleted_object_is_forgotten_and_its_retry_cancelled() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler(failures=1)
        harness = Harness(reconciler, retry_delay=0.05)
        spec = make_spec(a="uuid")

        harness.desired.push(applied(spec))
        await wait_until(lambda: harness.loop.state_of(spec.key) is KeyState.BACKOFF)
        harness.desired.push(deleted(spec.key))
        await wait_until(lambda: not harness.loop.known_keys)
        await asyncio.sleep(0.1)

        assert len(reconciler.calls) == 1
        assert harness.loop.state_of(spec.key) is KeyState.IDLE
        await harness.stop()

    asyncio.run(scenario())


def test_deleted_while_queued_is_never_reconciled() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler()
        reconciler.gate.clear()
        harness = Harness(reconciler, config=ControllerConfig(worker_limit=1))
        first = make_spec("first", a="uuid")
        second = make_spec("second", a="uuid")

        harness.desired.push(applied(first))
        await wait_until(lambda: reconciler.running == 1)
        harness.desired.push(applied(second))
        await wait_until(lambda: harness.loop.state_of(second.key) is KeyState.QUEUED)
        harness.desired.push(deleted(second.key))
        await wait_until(lambda: second.key not in harness.loop.known_keys)
        reconciler.gate.set()
        await wait_until(lambda: len(harness.reports) == 1)
        await asyncio.sleep(0.01)

        assert [spec.key for spec in reconciler.calls] == [first.key]
        await harness.stop()

    asyncio.run(scenario())


def test_shutdown_waits_for_in_flight_reconcile_and_drops_queued_work() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler()
        reconciler.gate.clear()
        harness = Harness(reconciler, config=ControllerConfig(worker_limit=1))
        first = make_spec("first", a="uuid")
        second = make_spec("second", a="uuid")

        harness.desired.push(applied(first))
        await wait_until(lambda: reconciler.running == 1)
        harness.desired.push(applied(second))
        await wait_until(lambda: harness.loop.state_of(second.key) is KeyState.QUEUED)

        harness.loop.shutdown()
        await asyncio.sleep(0.01)
        assert not harness.task.done()

        reconciler.gate.set()
        await asyncio.wait_for(harness.task, 2.0)

        assert [report.key for report in harness.reports] == [first.key]
        assert [spec.key for spec in reconciler.calls] == [first.key]

    asyncio.run(scenario())


def test_schedule_after_shutdown_is_ignored() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler()
        harness = Harness(reconciler)
        await harness.stop()

        harness.loop.schedule(ObjectKey("default", "late"))

        assert harness.loop.state_of(ObjectKey("default", "late")) is KeyState.IDLE
        assert reconciler.calls == []

    asyncio.run(scenario())


def test_broken_desired_source_stops_the_loop_with_an_error() -> None:
    class BrokenSource:
        async def events(self) -> AsyncIterator[DesiredSpecEvent]:
            raise RuntimeError("watch stream closed")
            yield  # pragma: no cover

    async def scenario() -> None:
        loop = ControlLoop(RecordingReconciler(), desired=BrokenSource())
        await asyncio.wait_for(loop.run(), 2.0)

    with pytest.raises(SourceFailedError, match="desired-state watch failed") as excinfo:
        asyncio.run(scenario())

    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_failing_result_callback_does_not_stop_the_worker() -> None:
    async def scenario() -> None:
        reconciler = RecordingReconciler()
        desired = QueueSource[DesiredSpecEvent]()
        reports: list[ReconcileReport] = []

        def on_result(report: ReconcileReport) -> None:
            reports.append(report)
            if len(reports) == 1:
                raise RuntimeError("metrics sink unavailable")

        loop = ControlLoop(
            reconciler,
            desired=desired,
            config=ControllerConfig(worker_limit=1),
            on_result=on_result,
        )
        task = asyncio.create_task(loop.run())

        desired.push(applied(make_spec("first", a="uuid")))
        await wait_until(lambda: len(reports) == 1)
        desired.push(applied(make_spec("second", a="uuid")))
        await wait_until(lambda: len(reports) == 2)

        assert [report.key.name for report in reports] == ["first", "second"]
        loop.shutdown()
        await asyncio.wait_for(task, 2.0)

    asyncio.run(scenario())
