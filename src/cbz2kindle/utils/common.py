# FILE: src/cbz2kindle/utils/common.py
"""
アプリケーション全体で共有される共通のユーティリティ関数。
"""

import re

from ..shared.constants import FILE_RULES, MIME_TYPES

_MEDIA_TYPES = {
    'jpg': MIME_TYPES.JPEG,
    'jpeg': MIME_TYPES.JPEG,
    'png': MIME_TYPES.PNG,
    'gif': MIME_TYPES.GIF,
    'webp': MIME_TYPES.WEBP,
    'bmp': MIME_TYPES.BMP,
    'tiff': MIME_TYPES.TIFF,
    'xhtml': MIME_TYPES.XHTML,
    'css': MIME_TYPES.CSS,
}


def get_media_type_from_filename(filename: str) -> str:
    """ファイル名の拡張子からMIMEタイプを返します。"""
    ext = filename.lower().split('.')[-1]
    return _MEDIA_TYPES.get(ext, MIME_TYPES.OCTET_STREAM)


def first_number(text: str) -> str | None:
    """文字列中で最初に現れる数字の並びを返します。"""
    match: re.Match[str] | None = FILE_RULES.FIRST_NUMBER.search(text)
    return match.group(0) if match else None


def human_readable_size(size_bytes: int | None) -> str:
    """バイト数を人間が読みやすい形式の文字列 (kB, MBなど) に変換します。"""
    if size_bytes is None:
        return 'N/A'
    n_float = float(size_bytes)
    units = ['B', 'kB', 'MB', 'GB', 'TB']
    i = 0
    while n_float >= 1024 and i < len(units) - 1:
        n_float /= 1024.0
        i += 1
    if units[i] == 'B':
        return f'{int(n_float)} {units[i]}'
    return f'{n_float:.2f} {units[i]}'
