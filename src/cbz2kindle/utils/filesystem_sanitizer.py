# FILE: src/cbz2kindle/utils/filesystem_sanitizer.py
import re

# Windows/FAT系の同期先でも扱えない文字
_INVALID_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')
_WHITESPACE_RUN = re.compile(r'\s+')


def sanitize_filename(name: str, max_length: int, fallback: str = 'book') -> str:
    """
    出力ファイル名として安全な文字列に変換します。

    連続する空白は1つにまとめ、使用できない文字は'_'に置換し、
    末尾のドットと空白を取り除きます。長さの上限を超える場合は拡張子を残して
    語幹を切り詰めます。結果が空になる場合は fallback を語幹として使います。
    """
    stem, dot, suffix = name.rpartition('.')
    if not dot:
        stem, suffix = name, ''
    extension = f'.{suffix}' if suffix else ''

    stem = _WHITESPACE_RUN.sub(' ', stem)
    stem = _INVALID_CHARS.sub('_', stem).strip().rstrip('. ')
    if not stem:
        stem = fallback

    budget = max(max_length - len(extension), 1)
    return f'{stem[:budget].rstrip(". ")}{extension}'
