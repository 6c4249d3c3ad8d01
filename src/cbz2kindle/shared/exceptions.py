# FILE: src/cbz2kindle/shared/exceptions.py


class Cbz2KindleError(Exception):
    """アプリケーションの基底例外クラス。"""

    pass


class SettingsError(Cbz2KindleError):
    """設定関連のエラー。"""

    pass


class ScanError(Cbz2KindleError):
    """監視ディレクトリの走査に失敗した場合のエラー。"""

    pass


class PresetError(Cbz2KindleError):
    """画像プリセットの読み込み・検証に関するエラー。"""

    pass


class HistoryStoreError(Cbz2KindleError):
    """処理履歴の永続化に関するエラー。"""

    pass


class ConversionError(Cbz2KindleError):
    """CBZからEPUBへの変換処理中のエラーの基底クラス。"""

    pass


class ArchiveError(ConversionError):
    """アーカイブを展開できない場合のエラー。"""

    pass


class EmptyArchiveError(ArchiveError):
    """アーカイブ内に有効な画像が一枚も存在しないエラー。"""

    pass


class TransformError(ConversionError):
    """ページ画像の変換に失敗したエラー。"""

    def __init__(self, message: str, source_image: str | None = None):
        if source_image:
            super().__init__(f'{message}: {source_image}')
        else:
            super().__init__(message)
        self.source_image = source_image


class AssemblyError(ConversionError):
    """EPUBファイルの組み立てに失敗したエラー。"""

    pass


class DeliveryError(Cbz2KindleError):
    """配信(メール送信)に失敗したエラー。"""

    pass


class DeliverySizeError(DeliveryError):
    """ファイルサイズが配信上限を超えているエラー。"""

    def __init__(self, size_bytes: int, limit_bytes: int):
        super().__init__(
            f'ファイルサイズ ({size_bytes / 1024 / 1024:.2f}MB) が'
            f'上限 ({limit_bytes / 1024 / 1024:.0f}MB) を超えています。'
            '画質を下げるか、ファイルを分割してください。'
        )
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
