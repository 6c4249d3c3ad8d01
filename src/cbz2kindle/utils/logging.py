# FILE: src/cbz2kindle/utils/logging.py
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger
from rich.logging import RichHandler

if TYPE_CHECKING:
    from loguru import Record

LOG_DIR = Path('logs')
LOG_FILE_NAME = 'cbz2kindle_{time}.log'


def _console_format(record: 'Record') -> str:
    # ファイル単位の処理中は、どのアーカイブのログかを先頭に表示する
    if record['extra'].get('source_id'):
        return '{extra[source_id]} | {message}'
    return '{message}'


def setup_logging(
    level: str = 'INFO',
    serialize_to_file: bool = False,
    log_dir: Path = LOG_DIR,
) -> None:
    """
    コンソール(Rich)と、任意でJSONファイルへのログ出力を設定します。
    再設定に備え、既存のハンドラはすべて削除してから追加します。
    """
    logger.remove()
    console_level = level.upper()

    logger.add(
        RichHandler(
            rich_tracebacks=True,
            show_path=False,
            markup=False,
            log_time_format='[%X]',
        ),
        level=console_level,
        format=_console_format,
        backtrace=False,
        diagnose=False,
    )

    if serialize_to_file:
        # 変換ワーカーのスレッドからも書き込むため enqueue で直列化する
        logger.add(
            log_dir / LOG_FILE_NAME,
            level='DEBUG',
            serialize=True,
            enqueue=True,
            rotation='10 MB',
            retention='7 days',
            backtrace=True,
            diagnose=False,
        )

    logger.bind(level=console_level, file_output=serialize_to_file).debug(
        'ロガーを設定しました。'
    )
