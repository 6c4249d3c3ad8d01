# FILE: src/cbz2kindle/__main__.py
"""
パッケージを 'python -m cbz2kindle' コマンドで実行可能にするための
エントリーポイントです。
"""

from .entrypoints.cli import run_app

if __name__ == '__main__':
    run_app()
