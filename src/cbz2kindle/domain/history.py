# FILE: src/cbz2kindle/domain/history.py
import threading
from collections import deque
from typing import NamedTuple

from loguru import logger

from ..models.domain import HistoryEntry
from ..shared.constants import PIPELINE_LIMITS
from ..shared.exceptions import HistoryStoreError
from .interfaces import IHistoryStore


class HistorySnapshot(NamedTuple):
    """ある時点の履歴内容と、その変更の通し番号。"""

    version: int
    entries: tuple[HistoryEntry, ...]


class HistoryLog:
    """
    新しい順に並ぶ、容量上限付きの処理履歴。

    先頭への追加はO(1)で、容量を超えた場合は最も古いエントリ(末尾)が破棄されます。
    メモリ上の操作はスレッドセーフではないため、呼び出し側(RunOrchestrator)が排他制御を行います。

    record() / reset() はメモリ上だけを更新してスナップショットを返し、
    persist() がそれをストアへ書き込みます。これにより呼び出し側はロックを
    解放してからディスクへ書き込めます。persist() は自前のロックで直列化され、
    古いスナップショットが新しい内容を上書きすることはありません。
    """

    def __init__(
        self,
        store: IHistoryStore | None = None,
        capacity: int = PIPELINE_LIMITS.HISTORY_CAPACITY,
    ):
        self._store = store
        self.capacity = capacity
        self._entries: deque[HistoryEntry] = deque(maxlen=capacity)
        self._version = 0
        self._saved_version = 0
        self._save_lock = threading.Lock()
        if store is not None:
            # 保存済みの履歴は新しい順。dequeの左端が最新になるよう先頭から詰める
            self._entries.extend(store.load()[:capacity])

    def add(self, entry: HistoryEntry) -> None:
        self.persist(self.record(entry))

    def all(self) -> list[HistoryEntry]:
        """履歴を新しい順に返します。"""
        return list(self._entries)

    def clear(self) -> None:
        self.persist(self.reset())

    def record(self, entry: HistoryEntry) -> HistorySnapshot:
        """エントリをメモリ上の履歴に追加します。永続化は行いません。"""
        self._entries.appendleft(entry)
        return self._snapshot()

    def reset(self) -> HistorySnapshot:
        """メモリ上の履歴を空にします。永続化は行いません。"""
        self._entries.clear()
        return self._snapshot()

    def persist(self, snapshot: HistorySnapshot) -> None:
        if self._store is None:
            return
        with self._save_lock:
            if snapshot.version <= self._saved_version:
                return
            try:
                self._store.save(list(snapshot.entries))
            except HistoryStoreError as e:
                logger.bind(error=str(e)).error('処理履歴の保存に失敗しました。')
                return
            self._saved_version = snapshot.version

    def __len__(self) -> int:
        return len(self._entries)

    def _snapshot(self) -> HistorySnapshot:
        self._version += 1
        return HistorySnapshot(self._version, tuple(self._entries))
