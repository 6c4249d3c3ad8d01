# FILE: src/cbz2kindle/infrastructure/repositories/history.py

import json
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from ...domain.interfaces import IHistoryStore
from ...models.domain import HistoryEntry
from ...shared.constants import PIPELINE_LIMITS
from ...shared.exceptions import HistoryStoreError
from ...shared.settings import HistorySettings

_ENTRIES_ADAPTER = TypeAdapter(list[HistoryEntry])
HISTORY_KEY = 'processedFiles'


class JsonHistoryStore(IHistoryStore):
    """処理履歴を {"processedFiles": [...]} 形式のJSONファイルに永続化するストア。"""

    def __init__(
        self,
        settings: HistorySettings,
        capacity: int = PIPELINE_LIMITS.HISTORY_CAPACITY,
    ):
        self.history_file: Path = settings.history_file
        self.capacity = capacity

    def load(self) -> list[HistoryEntry]:
        """
        履歴を読み込みます。起動時に一度だけ呼ばれる想定です。

        - ファイルが無い場合は空の履歴を返します。
        - 旧形式(トップレベルがリスト)は新形式へ移行して保存し直します。
        - 破損・スキーマ不一致の場合は空の履歴で上書きします。
        - 上限を超える件数は新しい順に切り詰めます。
        """
        if not self.history_file.exists():
            return []

        log = logger.bind(history_file=str(self.history_file))
        try:
            raw = json.loads(self.history_file.read_text(encoding='utf-8'))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            log.warning(f'履歴ファイルを読み込めないため空の履歴で上書きします: {e}')
            self._overwrite([])
            return []

        migrated = False
        if isinstance(raw, list):
            log.info('旧形式の履歴ファイルを移行します。')
            raw_entries: Any = raw
            migrated = True
        elif isinstance(raw, dict):
            raw_entries = raw.get(HISTORY_KEY, [])
        else:
            raw_entries = None

        try:
            entries = _ENTRIES_ADAPTER.validate_python(raw_entries)
        except ValidationError as e:
            log.warning(f'履歴ファイルの形式が不正なため空の履歴で上書きします: {e}')
            self._overwrite([])
            return []

        if len(entries) > self.capacity:
            log.info(f'履歴を{self.capacity}件に切り詰めます。')
            entries = entries[: self.capacity]
            migrated = True

        if migrated:
            self._overwrite(entries)
        return entries

    def save(self, entries: Sequence[HistoryEntry]) -> None:
        """
        Raises:
            HistoryStoreError: 書き込みに失敗した場合。
        """
        try:
            self._write(entries)
        except OSError as e:
            raise HistoryStoreError(
                f"履歴ファイル '{self.history_file}' の保存に失敗しました: {e}"
            ) from e

    def _overwrite(self, entries: Sequence[HistoryEntry]) -> None:
        try:
            self._write(entries)
        except OSError as e:
            logger.bind(error=str(e)).error('履歴ファイルの修復に失敗しました。')

    def _write(self, entries: Sequence[HistoryEntry]) -> None:
        payload = {HISTORY_KEY: [entry.to_storage_dict() for entry in entries]}
        self.history_file.parent.mkdir(parents=True, exist_ok=True)
        # 書き込み途中で中断されても既存ファイルが壊れないよう一時ファイル経由で置き換える
        tmp_path = self.history_file.with_name(f'{self.history_file.name}.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.history_file)
