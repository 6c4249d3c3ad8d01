# FILE: src/cbz2kindle/models/domain.py
"""
アプリケーションのドメインにおける中心的なデータモデルを定義します。
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from ..shared.enums import EntryStatus, RunStage


# --- 走査・展開関連 ---
class SourceFile(BaseModel, frozen=True):
    """監視ディレクトリで見つかった変換対象のアーカイブ。走査のたびに新しく生成される。"""

    id: str  # 監視ルートからの相対パス
    name: str
    path: Path
    series_name: str
    chapter_num: str
    output_name: str


@dataclass(frozen=True)
class ExtractionResult:
    """アーカイブの展開結果。image_paths はページ順に並んでいる。"""

    extract_dir: Path
    image_paths: list[Path]


@dataclass(frozen=True)
class ImageInfo:
    """変換エンジンが報告する画像の寸法と色空間。"""

    width: int
    height: int
    colorspace: str

    @property
    def is_cmyk(self) -> bool:
        return self.colorspace.upper() == 'CMYK'


# --- EPUBビルド関連 ---
class BookPage(BaseModel, frozen=True):
    """スパイン上の1ページ。"""

    index: int
    image_path: Path


class BookMetadata(BaseModel, frozen=True):
    """content.opf に記録する書誌情報。"""

    identifier: str  # urn:uuid:...
    title: str
    author: str
    publisher: str
    language: str
    modified: datetime


class ImageAsset(BaseModel, frozen=True):
    """EPUBに含める画像アセットの情報を管理します。"""

    id: str
    href: str
    path: Path
    media_type: str
    properties: str
    filename: str


class PageAsset(BaseModel, frozen=True):
    """EPUBの各ページ（XHTML）の情報を管理します。"""

    id: str
    href: str
    content: bytes
    title: str


class EpubComponents(BaseModel):
    """EPUBファイルを生成するために必要な全ての構成要素をまとめます。"""

    model_config = ConfigDict(frozen=True)

    pages: list[PageAsset]
    images: list[ImageAsset]
    css_asset: PageAsset | None
    content_opf: bytes
    nav_xhtml: bytes


# --- 処理履歴・実行状態 ---
class HistoryEntry(BaseModel):
    """処理結果1件分の記録。history.json にはcamelCaseで保存される。"""

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    name: str
    series_name: str
    processed_at: datetime
    status: EntryStatus
    error: str | None = None

    def to_storage_dict(self) -> dict[str, Any]:
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class RunState(BaseModel):
    """
    プロセス全体で唯一の実行状態。
    不変オブジェクトとして扱い、更新は evolve() で新しいインスタンスに置き換える。
    """

    model_config = ConfigDict(frozen=True)

    is_processing: bool = False
    current_file: str | None = None
    stage: RunStage = RunStage.IDLE
    last_run: datetime | None = None
    last_error: str | None = None

    @model_validator(mode='after')
    def check_processing_flag(self) -> 'RunState':
        if self.is_processing and self.stage in (RunStage.IDLE, RunStage.COMPLETED):
            raise ValueError(
                f"段階 '{self.stage.value}' では is_processing を True にできません。"
            )
        return self

    def evolve(self, **changes: Any) -> 'RunState':
        """指定フィールドを置き換えた新しい RunState を検証付きで返します。"""
        return RunState.model_validate(self.model_dump() | changes)


class RunStatus(BaseModel):
    """Status() が返す実行状態と履歴の不変スナップショット。"""

    model_config = ConfigDict(frozen=True)

    state: RunState
    history: tuple[HistoryEntry, ...] = Field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        state = self.state
        return {
            'isProcessing': state.is_processing,
            'currentFile': state.current_file,
            'stage': state.stage.value,
            'lastRun': state.last_run.isoformat() if state.last_run else None,
            'lastError': state.last_error,
            'processedFiles': [entry.to_storage_dict() for entry in self.history],
        }
