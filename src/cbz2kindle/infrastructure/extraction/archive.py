# FILE: src/cbz2kindle/infrastructure/extraction/archive.py
import shutil
import tempfile
import time
import zipfile
from pathlib import Path, PurePath

from loguru import logger

from ...domain.interfaces import IArchiveExtractor
from ...models.domain import ExtractionResult
from ...shared.constants import FILE_RULES, TEMP_PATHS
from ...shared.exceptions import ArchiveError, EmptyArchiveError
from ...shared.settings import ConversionSettings
from ...utils.common import first_number


def is_valid_image(relative_path: PurePath) -> bool:
    """画像拡張子を持ち、隠しファイル/隠しディレクトリ配下でないものを有効とします。"""
    if any(
        part.startswith('.') or part in FILE_RULES.IGNORED_ARCHIVE_DIRS
        for part in relative_path.parts
    ):
        return False
    return relative_path.suffix.lower() in FILE_RULES.IMAGE_EXTENSIONS


def page_sort_key(path: PurePath) -> tuple[tuple[str, ...], int, str]:
    """
    ページはディレクトリ単位でまとめ、ディレクトリ内ではファイル名に最初に現れる整数の昇順。
    整数が同じ(または無く0扱い)場合はファイル名の辞書順。
    """
    number = first_number(path.name)
    return path.parent.parts, int(number) if number else 0, path.name


def sort_image_paths(paths: list[Path]) -> list[Path]:
    return sorted(paths, key=page_sort_key)


class ZipArchiveExtractor(IArchiveExtractor):
    """CBZ(ZIP)アーカイブを一意な一時ディレクトリへ展開するクラス。"""

    def __init__(self, settings: ConversionSettings):
        self.extract_root = settings.temp_directory / TEMP_PATHS.EXTRACT_DIR_NAME

    def extract(self, archive_path: Path) -> ExtractionResult:
        """
        アーカイブを展開し、ページ順に並べた画像パスを返します。
        失敗時は作成した展開ディレクトリを削除してから例外を送出します。

        Raises:
            ArchiveError: アーカイブを読み込めない場合。
            EmptyArchiveError: 有効な画像が一枚も無い場合。
        """
        extract_dir = self._create_extract_dir(archive_path)
        log = logger.bind(archive=archive_path.name, extract_dir=str(extract_dir))
        try:
            image_paths = self._unpack_images(archive_path, extract_dir)
        except Exception:
            shutil.rmtree(extract_dir, ignore_errors=True)
            raise

        log.bind(image_count=len(image_paths)).debug('アーカイブを展開しました。')
        return ExtractionResult(extract_dir=extract_dir, image_paths=image_paths)

    def _create_extract_dir(self, archive_path: Path) -> Path:
        self.extract_root.mkdir(parents=True, exist_ok=True)
        prefix = f'{archive_path.stem}_{int(time.time() * 1000)}_'
        return Path(tempfile.mkdtemp(prefix=prefix, dir=self.extract_root))

    def _unpack_images(self, archive_path: Path, extract_dir: Path) -> list[Path]:
        try:
            with zipfile.ZipFile(archive_path) as zip_file:
                zip_file.extractall(extract_dir)
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveError(
                f'アーカイブの展開に失敗しました: {archive_path.name}: {e}'
            ) from e

        images = [
            path
            for path in extract_dir.rglob('*')
            if path.is_file() and is_valid_image(path.relative_to(extract_dir))
        ]
        if not images:
            raise EmptyArchiveError(
                f'アーカイブ内に有効な画像が見つかりません: {archive_path.name}'
            )
        return sort_image_paths(images)
