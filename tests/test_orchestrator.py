# FILE: tests/test_orchestrator.py
import threading
from pathlib import Path

import pytest

from cbz2kindle.domain.history import HistoryLog
from cbz2kindle.domain.orchestrator import RunOrchestrator
from cbz2kindle.shared.enums import EntryStatus, RunOutcome, RunStage, TriggerSource
from cbz2kindle.shared.exceptions import (
    DeliveryError,
    EmptyArchiveError,
    ScanError,
    TransformError,
)
from cbz2kindle.shared.settings import Settings

from .conftest import (
    FakeAssembler,
    FakeDispatcher,
    FakeExtractor,
    FakePresetResolver,
    FakeScanner,
    FakeTransformer,
    InMemoryHistoryStore,
    make_source,
)


class Harness:
    def __init__(self, settings: Settings, tmp_path: Path, sources=None, store=None):
        self.scanner = FakeScanner(sources)
        self.extractor = FakeExtractor(tmp_path / 'work')
        self.transformer = FakeTransformer()
        self.assembler = FakeAssembler()
        self.dispatcher = FakeDispatcher()
        self.store = InMemoryHistoryStore() if store is None else store
        self.orchestrator = RunOrchestrator(
            settings=settings,
            scanner=self.scanner,
            extractor=self.extractor,
            transformer=self.transformer,
            assembler=self.assembler,
            dispatcher=self.dispatcher,
            preset_resolver=FakePresetResolver(),
            history=HistoryLog(self.store),
        )


@pytest.fixture
def harness(settings: Settings, tmp_path: Path, sync_dir: Path) -> Harness:
    sources = [make_source(sync_dir, 'SeriesA - ch01/ch01.cbz')]
    return Harness(settings, tmp_path, sources)


def test_successful_run_delivers_and_cleans_up(harness: Harness, sync_dir: Path):
    outcome = harness.orchestrator.start()

    assert outcome is RunOutcome.COMPLETED
    assert len(harness.dispatcher.sent) == 1
    assert harness.dispatcher.sent[0].name == 'SeriesA01.epub'
    assert harness.scanner.deleted == ['SeriesA - ch01/ch01.cbz']
    assert not (sync_dir / 'SeriesA - ch01' / 'ch01.cbz').exists()

    # 一時ファイルは成功時も残らない
    assert not harness.extractor.extract_dirs[0].exists()
    assert not harness.assembler.outputs[0].exists()

    status = harness.orchestrator.status()
    assert status.state.stage is RunStage.COMPLETED
    assert status.state.is_processing is False
    assert status.state.current_file is None
    assert status.state.last_run is not None
    assert status.state.last_error is None
    assert [(e.name, e.series_name, e.status) for e in status.history] == [
        ('ch01.cbz', 'SeriesA', EntryStatus.SUCCESS)
    ]
    assert len(harness.store.entries) == 1


def test_keep_output_files_leaves_book(settings: Settings, tmp_path: Path, sync_dir: Path):
    settings.conversion.keep_output_files = True
    h = Harness(settings, tmp_path, [make_source(sync_dir, 'A/1.cbz')])

    h.orchestrator.start()

    assert h.assembler.outputs[0].exists()
    assert not h.extractor.extract_dirs[0].exists()


def test_one_failure_does_not_stop_the_run(settings: Settings, tmp_path: Path, sync_dir: Path):
    first = make_source(sync_dir, 'A/bad.cbz', series='A')
    second = make_source(sync_dir, 'B/good.cbz', series='B')
    h = Harness(settings, tmp_path, [first, second])
    h.extractor.failures['bad.cbz'] = EmptyArchiveError('画像がありません')

    h.orchestrator.start()

    status = h.orchestrator.status()
    assert [(e.name, e.status) for e in status.history] == [
        ('good.cbz', EntryStatus.SUCCESS),
        ('bad.cbz', EntryStatus.ERROR),
    ]
    assert status.history[1].error == '画像がありません'
    assert status.state.last_error is not None
    assert 'bad.cbz' in status.state.last_error
    assert h.scanner.deleted == ['B/good.cbz']
    assert first.path.exists()


def test_unexpected_exception_is_recorded_like_known_errors(harness: Harness):
    harness.transformer.error = RuntimeError('boom')

    harness.orchestrator.start()

    status = harness.orchestrator.status()
    assert status.history[0].status is EntryStatus.ERROR
    assert status.history[0].error == 'boom'
    assert harness.dispatcher.sent == []
    assert not harness.extractor.extract_dirs[0].exists()


def test_oversized_book_is_never_sent(harness: Harness):
    harness.assembler.size_bytes = 26 * 1024 * 1024

    harness.orchestrator.start()

    assert harness.dispatcher.sent == []
    assert harness.scanner.deleted == []
    entry = harness.orchestrator.status().history[0]
    assert entry.status is EntryStatus.ERROR
    assert entry.error is not None and '25MB' in entry.error
    assert not harness.assembler.outputs[0].exists()


def test_book_exactly_at_limit_is_sent(harness: Harness):
    harness.assembler.size_bytes = 25 * 1024 * 1024

    harness.orchestrator.start()

    assert len(harness.dispatcher.sent) == 1


def test_delivery_failure_keeps_source(harness: Harness, sync_dir: Path):
    harness.dispatcher.error = DeliveryError('SMTP down')

    harness.orchestrator.start()

    assert harness.scanner.deleted == []
    assert (sync_dir / 'SeriesA - ch01' / 'ch01.cbz').exists()
    assert harness.orchestrator.status().history[0].error == 'SMTP down'


def test_no_files_completes_without_history(settings: Settings, tmp_path: Path):
    h = Harness(settings, tmp_path, [])

    assert h.orchestrator.start() is RunOutcome.COMPLETED

    status = h.orchestrator.status()
    assert status.history == ()
    assert status.state.stage is RunStage.COMPLETED
    assert status.state.last_error is None
    assert status.state.last_run is not None


def test_scan_error_sets_last_error(settings: Settings, tmp_path: Path):
    h = Harness(settings, tmp_path)
    h.scanner.error = ScanError('監視ディレクトリが見つかりません')

    assert h.orchestrator.start() is RunOutcome.COMPLETED

    status = h.orchestrator.status()
    assert status.history == ()
    assert status.state.last_error is not None
    assert '監視ディレクトリが見つかりません' in status.state.last_error
    assert status.state.is_processing is False


def test_last_error_is_cleared_by_next_run(harness: Harness):
    harness.transformer.error = RuntimeError('boom')
    harness.orchestrator.start()
    assert harness.orchestrator.status().state.last_error is not None

    harness.transformer.error = None
    harness.scanner.sources = []
    harness.orchestrator.start()

    assert harness.orchestrator.status().state.last_error is None


def test_concurrent_start_is_rejected_and_status_is_live(harness: Harness):
    harness.transformer.release = threading.Event()
    outcomes = []
    worker = threading.Thread(
        target=lambda: outcomes.append(harness.orchestrator.start(TriggerSource.SCHEDULED))
    )
    worker.start()
    try:
        assert harness.transformer.entered.wait(timeout=5)

        during = harness.orchestrator.status()
        assert during.state.is_processing is True
        assert during.state.stage is RunStage.CONVERTING
        assert during.state.current_file == 'ch01.cbz'

        assert harness.orchestrator.start() is RunOutcome.ALREADY_RUNNING
    finally:
        harness.transformer.release.set()
        worker.join(timeout=5)

    assert outcomes == [RunOutcome.COMPLETED]
    assert len(harness.dispatcher.sent) == 1
    assert harness.orchestrator.status().state.is_processing is False


class BlockingHistoryStore(InMemoryHistoryStore):
    """save() が release されるまで戻らないストア。"""

    def __init__(self):
        super().__init__()
        self.saving = threading.Event()
        self.release = threading.Event()

    def save(self, entries):
        self.saving.set()
        assert self.release.wait(timeout=5)
        super().save(entries)


def test_status_does_not_wait_for_history_write(
    settings: Settings, tmp_path: Path, sync_dir: Path
):
    store = BlockingHistoryStore()
    h = Harness(settings, tmp_path, [make_source(sync_dir, 'SeriesA - ch01/ch01.cbz')], store)
    worker = threading.Thread(target=h.orchestrator.start)
    worker.start()
    try:
        assert store.saving.wait(timeout=5)

        statuses = []
        reader = threading.Thread(target=lambda: statuses.append(h.orchestrator.status()))
        reader.start()
        reader.join(timeout=2)

        assert not reader.is_alive()
        assert [e.name for e in statuses[0].history] == ['ch01.cbz']
        assert store.save_count == 0
    finally:
        store.release.set()
        worker.join(timeout=5)

    assert [e.name for e in store.entries] == ['ch01.cbz']


def test_clear_history(harness: Harness):
    harness.orchestrator.start()
    assert len(harness.orchestrator.status().history) == 1

    harness.orchestrator.clear_history()

    assert harness.orchestrator.status().history == ()
    assert harness.store.entries == []
    assert harness.orchestrator.status().state.last_run is not None


def test_status_to_dict_uses_camel_case(harness: Harness):
    harness.orchestrator.start()

    data = harness.orchestrator.status().to_dict()

    assert data['isProcessing'] is False
    assert data['stage'] == 'completed'
    assert data['processedFiles'][0]['seriesName'] == 'SeriesA'
    assert data['processedFiles'][0]['status'] == 'success'


def test_failed_transform_in_the_middle_of_three_files(
    settings: Settings, tmp_path: Path, sync_dir: Path
):
    sources = [make_source(sync_dir, f'S/{i}.cbz', series='S') for i in (1, 2, 3)]
    h = Harness(settings, tmp_path, sources)
    h.transformer.failing_calls[2] = TransformError('変換に失敗しました', source_image='2.jpg')

    assert h.orchestrator.start() is RunOutcome.COMPLETED

    status = h.orchestrator.status()
    assert [(e.name, e.status) for e in status.history] == [
        ('3.cbz', EntryStatus.SUCCESS),
        ('2.cbz', EntryStatus.ERROR),
        ('1.cbz', EntryStatus.SUCCESS),
    ]
    assert status.history[1].error == '変換に失敗しました: 2.jpg'
    assert status.state.stage is RunStage.COMPLETED
    assert len(h.dispatcher.sent) == 2
    assert all(not d.exists() for d in h.extractor.extract_dirs)
