# src/cbz2kindle/shared/constants.py
import re
from dataclasses import dataclass, field
from typing import Final


# --- 1. Pipeline Limits ---
@dataclass(frozen=True)
class PipelineLimits:
    """
    変換パイプラインの固定値。
    設定で変更できない値のみをここに置く。
    """

    TRANSFORM_BATCH_SIZE: int = 5
    HISTORY_CAPACITY: int = 10
    DELIVERY_SIZE_LIMIT_BYTES: int = 25 * 1024 * 1024


PIPELINE_LIMITS: Final = PipelineLimits()


# --- 2. File Rules ---
@dataclass(frozen=True)
class FileRules:
    """
    走査・展開時のファイル判定ルール。
    scanner と extraction がこれを参照する。
    """

    IMAGE_EXTENSIONS: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {'.jpg', '.jpeg', '.png', '.gif', '.webp', '.bmp', '.tiff'}
        )
    )
    # シリーズ名は親ディレクトリ名の最初の空白/ハイフン/アスタリスクまで
    SERIES_SPLIT: re.Pattern = re.compile(r'[\s\-*]')
    FIRST_NUMBER: re.Pattern = re.compile(r'\d+')
    IGNORED_ARCHIVE_DIRS: frozenset[str] = field(
        default_factory=lambda: frozenset({'__MACOSX'})
    )


FILE_RULES: Final = FileRules()


# --- 3. Workspace Structure ---
@dataclass(frozen=True)
class TempPaths:
    """一時ディレクトリ配下の構成"""

    EXTRACT_DIR_NAME: str = 'extract'
    BOOK_DIR_NAME: str = 'epub'
    PROCESSED_DIR_PREFIX: str = 'processed_'
    PROCESSED_IMAGE_TEMPLATE: str = 'processed_{index:04d}.jpg'


TEMP_PATHS: Final = TempPaths()


# --- 4. Mime Types ---
@dataclass(frozen=True)
class MimeTypes:
    """
    MIMEタイプの中央定義
    """

    JPEG: str = 'image/jpeg'
    PNG: str = 'image/png'
    GIF: str = 'image/gif'
    WEBP: str = 'image/webp'
    BMP: str = 'image/bmp'
    TIFF: str = 'image/tiff'
    XHTML: str = 'application/xhtml+xml'
    CSS: str = 'text/css'
    EPUB: str = 'application/epub+zip'
    OCTET_STREAM: str = 'application/octet-stream'


MIME_TYPES: Final = MimeTypes()


# --- 5. Environment Keys ---
@dataclass(frozen=True)
class EnvKeys:
    """
    Pydantic BaseSettings (settings.py) と連動する環境変数キー。
    """

    _PREFIX: str = 'CBZ2KINDLE_'
    _DELIMITER: str = '__'

    SMTP_USER: str = f'{_PREFIX}DELIVERY{_DELIMITER}SMTP_USER'
    SMTP_PASSWORD: str = f'{_PREFIX}DELIVERY{_DELIMITER}SMTP_PASSWORD'
    RECIPIENT: str = f'{_PREFIX}DELIVERY{_DELIMITER}RECIPIENT'


ENV_KEYS: Final = EnvKeys()
