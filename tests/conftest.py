# FILE: tests/conftest.py
import threading
from collections.abc import Sequence
from pathlib import Path

import pytest

from cbz2kindle.models.domain import ExtractionResult, HistoryEntry, SourceFile
from cbz2kindle.models.preset import STANDARD_PRESET, Preset
from cbz2kindle.shared.settings import Settings


def make_source(root: Path, relative: str, series: str = 'SeriesA') -> SourceFile:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b'PK')
    return SourceFile(
        id=relative,
        name=path.name,
        path=path,
        series_name=series,
        chapter_num='01',
        output_name=f'{series}01',
    )


class FakeScanner:
    def __init__(self, sources: list[SourceFile] | None = None, error: Exception | None = None):
        self.sources = sources or []
        self.error = error
        self.deleted: list[str] = []

    def scan(self) -> list[SourceFile]:
        if self.error:
            raise self.error
        return list(self.sources)

    def delete(self, source: SourceFile) -> None:
        source.path.unlink()
        self.deleted.append(source.id)


class FakeExtractor:
    """アーカイブ名ごとに失敗を注入できる展開器。"""

    def __init__(self, work_dir: Path, page_count: int = 3):
        self.work_dir = work_dir
        self.page_count = page_count
        self.failures: dict[str, Exception] = {}
        self.extract_dirs: list[Path] = []

    def extract(self, archive_path: Path) -> ExtractionResult:
        if archive_path.name in self.failures:
            raise self.failures[archive_path.name]
        extract_dir = self.work_dir / f'extract_{len(self.extract_dirs)}'
        extract_dir.mkdir(parents=True)
        self.extract_dirs.append(extract_dir)
        images = []
        for i in range(1, self.page_count + 1):
            image = extract_dir / f'{i}.jpg'
            image.write_bytes(b'\xff\xd8')
            images.append(image)
        return ExtractionResult(extract_dir=extract_dir, image_paths=images)


class FakeTransformer:
    def __init__(self) -> None:
        self.error: Exception | None = None
        self.failing_calls: dict[int, Exception] = {}
        self.calls = 0
        self.entered = threading.Event()
        self.release: threading.Event | None = None
        self.presets: list[Preset] = []

    def transform_all(
        self, image_paths: Sequence[Path], extract_dir: Path, preset: Preset
    ) -> list[Path]:
        self.calls += 1
        self.presets.append(preset)
        self.entered.set()
        if self.release is not None:
            self.release.wait(timeout=5)
        if self.error:
            raise self.error
        if self.calls in self.failing_calls:
            raise self.failing_calls[self.calls]
        return list(image_paths)


class FakeAssembler:
    def __init__(self, size_bytes: int = 1024):
        self.size_bytes = size_bytes
        self.outputs: list[Path] = []

    def assemble(
        self, image_paths: Sequence[Path], source_archive_path: Path, output_path: Path
    ) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'wb') as f:
            f.truncate(self.size_bytes)
        self.outputs.append(output_path)
        return output_path


class FakeDispatcher:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.sent: list[Path] = []

    def send(self, file_path: Path) -> None:
        if self.error:
            raise self.error
        assert file_path.exists()
        self.sent.append(file_path)


class FakePresetResolver:
    def __init__(self, preset: Preset = STANDARD_PRESET):
        self.preset = preset

    def get_active_preset(self) -> Preset:
        return self.preset


class InMemoryHistoryStore:
    def __init__(self, entries: list[HistoryEntry] | None = None):
        self.entries = list(entries or [])
        self.save_count = 0

    def load(self) -> list[HistoryEntry]:
        return list(self.entries)

    def save(self, entries: Sequence[HistoryEntry]) -> None:
        self.entries = list(entries)
        self.save_count += 1


@pytest.fixture
def sync_dir(tmp_path: Path) -> Path:
    path = tmp_path / 'sync'
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path: Path, sync_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    # カレントディレクトリの .env や pyproject.toml を読み込まないようにする
    monkeypatch.chdir(tmp_path)
    return Settings(
        watch={'sync_directory': sync_dir},
        conversion={'temp_directory': tmp_path / 'temp'},
        presets={'settings_file': tmp_path / 'data' / 'image-settings.json'},
        history={'history_file': tmp_path / 'data' / 'history.json'},
    )
