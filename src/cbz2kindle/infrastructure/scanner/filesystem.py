# FILE: src/cbz2kindle/infrastructure/scanner/filesystem.py
from collections.abc import Iterator
from pathlib import Path

from loguru import logger

from ...domain.interfaces import ISourceScanner
from ...models.domain import SourceFile
from ...shared.constants import FILE_RULES
from ...shared.exceptions import ScanError
from ...shared.settings import WatchSettings
from ...utils.common import first_number


class FileSystemSourceScanner(ISourceScanner):
    """同期フォルダを走査し、変換対象のアーカイブを見つけるスキャナー。"""

    def __init__(self, settings: WatchSettings):
        self.root = settings.sync_directory
        self.reserved_prefix = settings.reserved_prefix
        self.ignored_names = frozenset(settings.ignored_directory_names)
        self.extension = settings.archive_extension

    def scan(self) -> list[SourceFile]:
        """
        監視ルートを再帰的に走査します。
        サブディレクトリの読み込み失敗はログに記録してスキップし、走査は継続します。
        """
        log = logger.bind(sync_directory=str(self.root))
        if not self.root.is_dir():
            raise ScanError(f'監視ディレクトリが見つかりません: {self.root}')
        try:
            entries = self._list_dir(self.root)
        except OSError as e:
            raise ScanError(f'監視ディレクトリを読み込めません: {self.root}: {e}') from e

        log.debug('変換対象ファイルを再帰的に検索します...')
        sources = list(self._walk(entries))
        log.bind(found=len(sources)).debug(
            '検索完了: {}', [source.id for source in sources]
        )
        return sources

    def delete(self, source: SourceFile) -> None:
        file_path = self.root / source.id
        file_path.unlink()
        logger.bind(file_path=str(file_path)).info('元ファイルを削除しました。')
        self._prune_empty_parents(file_path.parent)

    def _walk(self, entries: list[Path]) -> Iterator[SourceFile]:
        for path in entries:
            if path.is_dir() and not path.is_symlink():
                if self._is_excluded_dir(path.name):
                    continue
                try:
                    children = self._list_dir(path)
                except OSError as e:
                    logger.bind(directory=str(path), error=str(e)).warning(
                        'ディレクトリの読み込みに失敗したためスキップします。'
                    )
                    continue
                yield from self._walk(children)
            elif path.is_file() and path.suffix.lower() == self.extension:
                yield self._to_source_file(path)

    def _list_dir(self, directory: Path) -> list[Path]:
        return sorted(directory.iterdir())

    def _is_excluded_dir(self, name: str) -> bool:
        return name.startswith(self.reserved_prefix) or name in self.ignored_names

    def _to_source_file(self, path: Path) -> SourceFile:
        series_name = FILE_RULES.SERIES_SPLIT.split(path.parent.name, maxsplit=1)[0]
        chapter_num = first_number(path.name) or ''
        return SourceFile(
            id=path.relative_to(self.root).as_posix(),
            name=path.name,
            path=path,
            series_name=series_name,
            chapter_num=chapter_num,
            output_name=f'{series_name}{chapter_num}',
        )

    def _prune_empty_parents(self, directory: Path) -> None:
        """空になったディレクトリを監視ルートの手前まで遡って削除します。"""
        root = self.root.resolve()
        current = directory
        while current.resolve() != root and root in current.resolve().parents:
            if any(current.iterdir()):
                break
            current.rmdir()
            logger.bind(directory=str(current)).info(
                '空になった親ディレクトリを削除しました。'
            )
            current = current.parent
