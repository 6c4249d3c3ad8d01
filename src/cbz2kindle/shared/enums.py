# src/cbz2kindle/shared/enums.py
from enum import Enum


class RunStage(str, Enum):
    """
    実行ステートマシンの段階。
    strを継承し、ステータスのJSON化や文字列比較をそのまま行えるようにする。
    """

    IDLE = 'idle'
    FINDING_FILES = 'finding_files'
    CONVERTING = 'converting'
    SENDING_TO_KINDLE = 'sending_to_kindle'
    CLEANING_UP = 'cleaning_up'
    COMPLETED = 'completed'


class EntryStatus(str, Enum):
    """処理履歴エントリの結果"""

    SUCCESS = 'success'
    ERROR = 'error'


class RunOutcome(str, Enum):
    """Start() 呼び出しの結果"""

    COMPLETED = 'completed'
    ALREADY_RUNNING = 'already_running'


class TriggerSource(str, Enum):
    """実行要求の発生元"""

    SCHEDULED = 'scheduled'
    MANUAL = 'manual'
