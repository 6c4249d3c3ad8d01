# FILE: src/cbz2kindle/domain/orchestrator.py
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from ..models.domain import HistoryEntry, RunState, RunStatus, SourceFile
from ..shared.constants import PIPELINE_LIMITS, TEMP_PATHS
from ..shared.enums import EntryStatus, RunOutcome, RunStage, TriggerSource
from ..shared.exceptions import Cbz2KindleError, DeliverySizeError, ScanError
from ..shared.settings import Settings
from ..utils.filesystem_sanitizer import sanitize_filename
from .history import HistoryLog
from .interfaces import (
    IArchiveExtractor,
    IBookAssembler,
    IDeliveryDispatcher,
    IImageTransformer,
    IPresetResolver,
    ISourceScanner,
)

UNKNOWN_SERIES = 'Unknown Series'
MAX_OUTPUT_NAME_LENGTH = 100


class RunOrchestrator:
    """
    走査 → 変換 → 配信 → 後片付け の一連の処理(run)を統括するステートマシン。

    - 同時に実行される run は高々1つ(single-flight)。
    - ファイルは1つずつ順番に処理し、1ファイルの失敗は履歴に記録して次へ進む。
    - RunState と HistoryLog は単一のロックの下でのみ更新され、
      status() は実行中の run を待たずに不変スナップショットを返す。
      履歴ファイルへの書き込みはロックの外で行う。
    """

    def __init__(
        self,
        settings: Settings,
        scanner: ISourceScanner,
        extractor: IArchiveExtractor,
        transformer: IImageTransformer,
        assembler: IBookAssembler,
        dispatcher: IDeliveryDispatcher,
        preset_resolver: IPresetResolver,
        history: HistoryLog,
    ):
        self.settings = settings
        self.scanner = scanner
        self.extractor = extractor
        self.transformer = transformer
        self.assembler = assembler
        self.dispatcher = dispatcher
        self.preset_resolver = preset_resolver
        self._history = history
        self._lock = threading.Lock()
        self._state = RunState()
        self._book_dir = (
            settings.conversion.temp_directory / TEMP_PATHS.BOOK_DIR_NAME
        )

    # --- 公開API ---

    def start(self, trigger: TriggerSource = TriggerSource.MANUAL) -> RunOutcome:
        """
        run を1回実行し、完了まで戻りません。
        既に実行中の場合は何もせず ALREADY_RUNNING を返します。
        """
        with self._lock:
            if self._state.is_processing:
                logger.bind(trigger=trigger.value).info(
                    '処理は既に実行中のため、要求を無視します。'
                )
                return RunOutcome.ALREADY_RUNNING
            self._state = self._state.evolve(
                is_processing=True,
                stage=RunStage.FINDING_FILES,
                current_file=None,
                last_error=None,
            )

        logger.bind(trigger=trigger.value).info('処理を開始')
        try:
            self._run()
        finally:
            self._set_state(
                is_processing=False,
                stage=RunStage.COMPLETED,
                current_file=None,
                last_run=datetime.now(timezone.utc),
            )
        return RunOutcome.COMPLETED

    def status(self) -> RunStatus:
        """実行状態と履歴の不変スナップショットを返します。"""
        with self._lock:
            return RunStatus(state=self._state, history=tuple(self._history.all()))

    def clear_history(self) -> None:
        """処理履歴を空にします。実行状態には影響しません。"""
        with self._lock:
            snapshot = self._history.reset()
        self._history.persist(snapshot)
        logger.info('処理履歴をクリアしました。')

    # --- run 本体 ---

    def _run(self) -> None:
        try:
            sources = self.scanner.scan()
        except ScanError as e:
            logger.bind(error=str(e)).error('変換対象ファイルの列挙に失敗しました。')
            self._set_state(last_error=f'ファイルの列挙に失敗: {e}')
            return
        except Exception as e:
            logger.exception('ファイルの列挙中に予期せぬエラーが発生しました。')
            self._set_state(last_error=f'ファイルの列挙に失敗: {e}')
            return

        if not sources:
            logger.info('変換対象のファイルは見つかりませんでした。')
            return

        total = len(sources)
        logger.bind(total_files=total).info('変換対象のファイルが見つかりました。')

        success_count = 0
        for i, source in enumerate(sources, 1):
            with logger.contextualize(source_id=source.id):
                logger.bind(current_file=i, total_files=total).info(
                    '個別ファイルの処理を開始'
                )
                try:
                    self._process_source(source)
                except Cbz2KindleError as e:
                    logger.bind(error=str(e), error_type=type(e).__name__).error(
                        'ファイルの処理に失敗しました。'
                    )
                    self._record_failure(source, e)
                except Exception as e:
                    logger.exception('ファイル処理中に予期せぬエラーが発生しました。')
                    self._record_failure(source, e)
                else:
                    success_count += 1
                    self._record_success(source)
                    logger.success('ファイルの処理が完了しました。')

        logger.bind(success_count=success_count, total_files=total).success(
            '全ファイルの処理が完了しました。'
        )

    def _process_source(self, source: SourceFile) -> None:
        self._set_state(current_file=source.name, stage=RunStage.CONVERTING)
        book_path = self._book_path(source)
        extraction = self.extractor.extract(source.path)
        try:
            preset = self.preset_resolver.get_active_preset()
            logger.bind(
                preset=preset.name, page_count=len(extraction.image_paths)
            ).info('ページ画像の変換を開始')
            processed = self.transformer.transform_all(
                extraction.image_paths, extraction.extract_dir, preset
            )
            self.assembler.assemble(processed, source.path, book_path)

            self._set_state(stage=RunStage.SENDING_TO_KINDLE)
            self._deliver(book_path)

            self._set_state(stage=RunStage.CLEANING_UP)
            self.scanner.delete(source)
        finally:
            self._discard_temporary_files(extraction.extract_dir, book_path)

    def _deliver(self, book_path: Path) -> None:
        """サイズ上限を確認してから配信します。上限超過時は送信を試みません。"""
        size = book_path.stat().st_size
        limit = PIPELINE_LIMITS.DELIVERY_SIZE_LIMIT_BYTES
        if size > limit:
            raise DeliverySizeError(size, limit)
        logger.bind(file_path=str(book_path), size_bytes=size).info('配信を開始')
        self.dispatcher.send(book_path)

    # --- ヘルパー ---

    def _book_path(self, source: SourceFile) -> Path:
        self._book_dir.mkdir(parents=True, exist_ok=True)
        safe_name = sanitize_filename(
            f'{source.output_name}.epub',
            max_length=MAX_OUTPUT_NAME_LENGTH,
            fallback=Path(source.name).stem,
        )
        return self._book_dir / safe_name

    def _discard_temporary_files(self, extract_dir: Path, book_path: Path) -> None:
        """展開ディレクトリは成否に関わらず削除します。"""
        log = logger.bind(extract_dir=str(extract_dir))
        try:
            shutil.rmtree(extract_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            log.bind(error=str(e)).error('展開ディレクトリの削除に失敗しました。')

        if self.settings.conversion.keep_output_files:
            return
        try:
            book_path.unlink(missing_ok=True)
        except OSError as e:
            log.bind(file_path=str(book_path), error=str(e)).error(
                '生成したEPUBファイルの削除に失敗しました。'
            )

    def _record_success(self, source: SourceFile) -> None:
        entry = HistoryEntry(
            name=source.name,
            series_name=source.series_name or UNKNOWN_SERIES,
            processed_at=datetime.now(timezone.utc),
            status=EntryStatus.SUCCESS,
        )
        with self._lock:
            snapshot = self._history.record(entry)
        self._history.persist(snapshot)

    def _record_failure(self, source: SourceFile, error: Exception) -> None:
        message = str(error) or type(error).__name__
        entry = HistoryEntry(
            name=source.name,
            series_name=source.series_name or UNKNOWN_SERIES,
            processed_at=datetime.now(timezone.utc),
            status=EntryStatus.ERROR,
            error=message,
        )
        with self._lock:
            snapshot = self._history.record(entry)
            self._state = self._state.evolve(
                last_error=f'{source.name} の処理中にエラー: {message}'
            )
        self._history.persist(snapshot)

    def _set_state(self, **changes: Any) -> None:
        with self._lock:
            self._state = self._state.evolve(**changes)
