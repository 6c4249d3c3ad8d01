# FILE: src/cbz2kindle/entrypoints/scheduler.py
import queue
import threading

from loguru import logger

from ..domain.orchestrator import RunOrchestrator
from ..shared.enums import RunOutcome, TriggerSource

_POLL_SECONDS = 0.5


class RunScheduler:
    """
    定期実行と手動要求を、容量1の待ち行列を介して単一のワーカーに渡すスケジューラ。

    待ち行列に要求が1件残っている間に届いた要求はまとめられ(破棄され)ます。
    run の排他自体は RunOrchestrator が保証するため、ここでは実行の順序付けのみを行います。
    """

    def __init__(
        self,
        orchestrator: RunOrchestrator,
        interval_seconds: float,
        run_on_start: bool = True,
    ):
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self._queue: queue.Queue[TriggerSource] = queue.Queue(maxsize=1)
        self._stop_event = threading.Event()
        self._idle = threading.Condition()
        self._pending = 0
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            raise RuntimeError('スケジューラは既に開始されています。')
        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self._worker_loop, name='run-worker', daemon=True),
            threading.Thread(target=self._timer_loop, name='run-timer', daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        logger.bind(interval_seconds=self.interval_seconds).info(
            'スケジューラを開始しました。'
        )

    def trigger(self) -> bool:
        """手動実行を要求します。要求がまとめられた場合は False を返します。"""
        return self.request(TriggerSource.MANUAL)

    def request(self, trigger: TriggerSource) -> bool:
        with self._idle:
            try:
                self._queue.put_nowait(trigger)
            except queue.Full:
                logger.bind(trigger=trigger.value).debug(
                    '待機中の要求があるため、要求をまとめました。'
                )
                return False
            self._pending += 1
        return True

    def wait_idle(self, timeout: float | None = None) -> bool:
        """待機中・実行中の要求がなくなるまで待ちます。タイムアウトした場合は False。"""
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def stop(self, timeout: float | None = None) -> None:
        """スケジューラを停止します。実行中の run は完了まで待ちます。"""
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info('スケジューラを停止しました。')

    def _timer_loop(self) -> None:
        if self.run_on_start:
            self.request(TriggerSource.SCHEDULED)
        while not self._stop_event.wait(self.interval_seconds):
            self.request(TriggerSource.SCHEDULED)

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                trigger = self._queue.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue
            try:
                outcome = self.orchestrator.start(trigger)
                if outcome is RunOutcome.ALREADY_RUNNING:
                    logger.bind(trigger=trigger.value).info('実行中のためスキップしました。')
            except Exception:
                logger.exception('スケジュールされた処理が予期せず終了しました。')
            finally:
                self._queue.task_done()
                with self._idle:
                    self._pending -= 1
                    self._idle.notify_all()
