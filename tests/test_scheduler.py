# FILE: tests/test_scheduler.py
import threading

import pytest

from cbz2kindle.entrypoints.scheduler import RunScheduler
from cbz2kindle.shared.enums import RunOutcome, TriggerSource


class BlockingOrchestrator:
    def __init__(self) -> None:
        self.calls: list[TriggerSource] = []
        self.started = threading.Event()
        self.release = threading.Event()

    def start(self, trigger: TriggerSource = TriggerSource.MANUAL) -> RunOutcome:
        self.calls.append(trigger)
        self.started.set()
        self.release.wait(timeout=5)
        return RunOutcome.COMPLETED


@pytest.fixture
def orchestrator() -> BlockingOrchestrator:
    return BlockingOrchestrator()


def test_requests_are_coalesced_while_one_is_pending(orchestrator: BlockingOrchestrator):
    scheduler = RunScheduler(orchestrator, interval_seconds=3600, run_on_start=False)
    scheduler.start()
    try:
        assert scheduler.trigger() is True
        assert orchestrator.started.wait(timeout=5)

        # 実行中: 1件は待ち行列に入り、それ以上はまとめられる
        assert scheduler.trigger() is True
        assert scheduler.trigger() is False
        assert scheduler.request(TriggerSource.SCHEDULED) is False

        orchestrator.release.set()
        assert scheduler.wait_idle(timeout=5)
    finally:
        scheduler.stop(timeout=5)

    assert orchestrator.calls == [TriggerSource.MANUAL, TriggerSource.MANUAL]


def test_run_on_start_enqueues_a_scheduled_run(orchestrator: BlockingOrchestrator):
    orchestrator.release.set()
    scheduler = RunScheduler(orchestrator, interval_seconds=3600, run_on_start=True)
    scheduler.start()
    try:
        assert orchestrator.started.wait(timeout=5)
        assert scheduler.wait_idle(timeout=5)
    finally:
        scheduler.stop(timeout=5)

    assert orchestrator.calls == [TriggerSource.SCHEDULED]


def test_timer_requests_runs_periodically(orchestrator: BlockingOrchestrator):
    orchestrator.release.set()
    scheduler = RunScheduler(orchestrator, interval_seconds=0.05, run_on_start=False)
    scheduler.start()
    try:
        tick = threading.Event()
        for _ in range(100):
            if len(orchestrator.calls) >= 2:
                break
            tick.wait(0.05)
    finally:
        scheduler.stop(timeout=5)

    assert orchestrator.calls[:2] == [TriggerSource.SCHEDULED, TriggerSource.SCHEDULED]


def test_worker_survives_unexpected_errors():
    class ExplodingOrchestrator:
        def __init__(self) -> None:
            self.calls = 0

        def start(self, trigger: TriggerSource) -> RunOutcome:
            self.calls += 1
            raise RuntimeError('boom')

    orchestrator = ExplodingOrchestrator()
    scheduler = RunScheduler(orchestrator, interval_seconds=3600, run_on_start=False)
    scheduler.start()
    try:
        scheduler.trigger()
        assert scheduler.wait_idle(timeout=5)
        scheduler.trigger()
        assert scheduler.wait_idle(timeout=5)
    finally:
        scheduler.stop(timeout=5)

    assert orchestrator.calls == 2


def test_start_twice_is_an_error(orchestrator: BlockingOrchestrator):
    scheduler = RunScheduler(orchestrator, interval_seconds=3600, run_on_start=False)
    scheduler.start()
    try:
        with pytest.raises(RuntimeError):
            scheduler.start()
    finally:
        scheduler.stop(timeout=5)
