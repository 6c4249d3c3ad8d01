# FILE: src/cbz2kindle/domain/interfaces.py

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..models.domain import ExtractionResult, HistoryEntry, ImageInfo, SourceFile
from ..models.preset import Preset


@runtime_checkable
class ISourceScanner(Protocol):
    """監視ディレクトリから変換対象を探し、処理済みの元ファイルを片付けるインターフェース。"""

    def scan(self) -> list[SourceFile]:
        """
        監視ルートを再帰的に走査し、変換対象のアーカイブを返します。
        見つからない場合は空のリストを返します。

        Raises:
            ScanError: 監視ルート自体を列挙できない場合。
        """
        ...

    def delete(self, source: SourceFile) -> None:
        """元ファイルを削除し、空になった親ディレクトリを監視ルートの手前まで削除します。"""
        ...


class IArchiveExtractor(Protocol):
    """アーカイブを一時ディレクトリへ展開するインターフェース。"""

    def extract(self, archive_path: Path) -> ExtractionResult: ...


class IImageEngine(Protocol):
    """外部の画像変換エンジンを抽象化するインターフェース。"""

    def identify(self, image_path: Path) -> ImageInfo: ...

    def convert(self, input_path: Path, output_path: Path, arguments: list[str]) -> None:
        """
        変換を実行します。成否は呼び出し側が出力ファイルの有無で判定します。
        """
        ...


class IImageTransformer(Protocol):
    """ページ画像をプリセットに従って一括変換するインターフェース。"""

    def transform_all(
        self, image_paths: Sequence[Path], extract_dir: Path, preset: Preset
    ) -> list[Path]:
        """入力と同じ順序で変換後の画像パスを返します。"""
        ...


class IBookAssembler(Protocol):
    """変換済みページを1冊のブックファイルにまとめるインターフェース。"""

    def assemble(
        self,
        image_paths: Sequence[Path],
        source_archive_path: Path,
        output_path: Path,
    ) -> Path: ...


class IDeliveryDispatcher(Protocol):
    """完成したブックファイルを外部の受信者へ送るインターフェース。"""

    def send(self, file_path: Path) -> None:
        """
        Raises:
            DeliveryError: 送信に失敗した場合。
        """
        ...


class IPresetResolver(Protocol):
    """有効な画像プリセットを提供するインターフェース。"""

    def get_active_preset(self) -> Preset:
        """失敗時も例外を送出せず、組み込みのデフォルトプリセットを返します。"""
        ...


class IHistoryStore(Protocol):
    """処理履歴の永続化を抽象化するインターフェース。"""

    def load(self) -> list[HistoryEntry]: ...

    def save(self, entries: Sequence[HistoryEntry]) -> None: ...
