# FILE: src/cbz2kindle/infrastructure/builders/base.py
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from ...domain.interfaces import IBookAssembler
from ...models.domain import BookPage
from ...shared.exceptions import AssemblyError
from ...shared.settings import BuilderSettings


class BaseBookAssembler(IBookAssembler, ABC):
    """ブックファイル生成の抽象基底クラス。"""

    def __init__(self, settings: BuilderSettings):
        """
        Args:
            settings (BuilderSettings): ブック生成に関する設定。
        """
        self.settings = settings

    @classmethod
    @abstractmethod
    def get_format_name(cls) -> str:
        """このアセンブラが生成する形式の一意な名前を返します。"""
        raise NotImplementedError

    @abstractmethod
    def assemble(
        self,
        image_paths: Sequence[Path],
        source_archive_path: Path,
        output_path: Path,
    ) -> Path:
        """ページ画像からブックファイルを生成し、そのパスを返します。"""
        raise NotImplementedError

    @staticmethod
    def _build_spine(image_paths: Sequence[Path]) -> list[BookPage]:
        """章や目次を持たない、1画像1ページの直線的な読み順を作ります。"""
        if not image_paths:
            raise AssemblyError('ブックに含めるページがありません。')
        return [
            BookPage(index=i, image_path=path) for i, path in enumerate(image_paths, 1)
        ]

    @staticmethod
    def _cleanup_failed_build(path: Path) -> None:
        """ビルド失敗時に、不完全な出力ファイルを削除します。"""
        try:
            if path.exists():
                path.unlink()
                logger.bind(file_path=str(path)).info(
                    '不完全な出力ファイルを削除しました。'
                )
        except OSError as e:
            logger.bind(file_path=str(path), error=str(e)).error(
                '出力ファイルの削除に失敗しました。'
            )
