# FILE: src/cbz2kindle/shared/settings.py

import tomllib
from contextvars import ContextVar
from pathlib import Path
from typing import Any, cast

from pydantic import (
    BaseModel,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .exceptions import SettingsError

# --config で指定されたファイルを settings_customise_sources へ受け渡す
_CONFIG_FILE: ContextVar[Path | None] = ContextVar('_CONFIG_FILE', default=None)


# --- TOMLファイル読み込みロジック ---
def load_toml_config(toml_file: Path) -> dict[str, Any]:
    """指定されたTOMLファイルを読み込みます。"""
    if not toml_file.is_file():
        return {}
    try:
        with toml_file.open('rb') as f:
            return tomllib.load(f)
    except Exception as e:
        raise SettingsError(
            f"設定ファイル '{toml_file}' の解析に失敗しました: {e}"
        ) from e


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """ユーザー指定のTOML設定ファイルを読み込むためのカスタムソース。"""

    def __init__(self, settings_cls: type[BaseSettings], config_file: Path | None):
        super().__init__(settings_cls)
        self.config_file = config_file
        self._toml_config: dict[str, Any] = (
            load_toml_config(self.config_file) if self.config_file else {}
        )

    def get_field_value(self, field: object, field_name: str) -> tuple[Any, str, bool]:
        """このカスタムソースはフィールドごとの値取得をサポートしないため、__call__に処理を委ねます。"""
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """設定ファイル全体を辞書として一度に返します。"""
        return self._toml_config


class PyProjectTomlSource(PydanticBaseSettingsSource):
    """pyproject.tomlから[tool.cbz2kindle]セクションを読み込むソース。"""

    def __init__(self, settings_cls: type[BaseSettings]):
        super().__init__(settings_cls)
        self._config = self._load_pyproject_toml()

    def _load_pyproject_toml(self) -> dict[str, Any]:
        pyproject_path = Path.cwd() / 'pyproject.toml'
        config = load_toml_config(pyproject_path)
        return cast(dict[str, Any], config.get('tool', {}).get('cbz2kindle', {}))

    def get_field_value(self, field: object, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return self._config


# --- 設定モデル定義 ---


class WatchSettings(BaseModel):
    """監視ディレクトリの走査に関する設定。"""

    sync_directory: Path = Field(
        default=Path('/sync'),
        description='同期されたCBZファイルが置かれる監視ルートディレクトリ。',
    )
    reserved_prefix: str = Field(
        default='.',
        description='この接頭辞で始まるディレクトリは走査しません。',
    )
    ignored_directory_names: list[str] = Field(
        default_factory=lambda: ['index-v0.14.0.db'],
        description='同期ツールのインデックス等、走査から除外するディレクトリ名。',
    )
    archive_extension: str = Field(
        default='.cbz',
        description='変換対象とするアーカイブの拡張子(大文字小文字は区別しません)。',
    )

    @field_validator('archive_extension')
    @classmethod
    def normalize_extension(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError('アーカイブの拡張子が空です。')
        return value if value.startswith('.') else f'.{value}'


class ConversionSettings(BaseModel):
    """変換処理の作業領域に関する設定。"""

    temp_directory: Path = Field(
        default=Path('./.temp'),
        description='展開・変換・EPUB生成に使用する一時ディレクトリ。',
    )
    keep_output_files: bool = Field(
        default=False,
        description='配信後も生成したEPUBファイルを残すかどうか。',
    )


class EngineSettings(BaseModel):
    """画像変換エンジン(ImageMagick)の呼び出し設定。"""

    identify_binary: str = Field(
        default='identify', description='画像情報の取得に使うコマンド。'
    )
    convert_binary: str = Field(
        default='convert', description='画像変換に使うコマンド。'
    )
    timeout: float | None = Field(
        default=300.0,
        gt=0,
        description='1コマンドあたりのタイムアウト秒数。Noneで無制限。',
    )


class PresetSettings(BaseModel):
    """画像プリセットの保存先に関する設定。"""

    settings_file: Path = Field(
        default=Path('./data/image-settings.json'),
        description='画像プリセットを保存するJSONファイル。',
    )


class BuilderSettings(BaseModel):
    """EPUB生成処理に関する設定。"""

    author: str = Field(
        default='Converted by CBZ Converter', description='EPUBに記録する作者名。'
    )
    publisher: str = Field(
        default='CBZ Converter', description='EPUBに記録する出版社名。'
    )
    language: str = Field(default='en', description='EPUBの言語コード。')
    use_first_page_as_cover: bool = Field(
        default=True, description='最初のページを表紙画像として指定するかどうか。'
    )


class CircuitBreakerSettings(BaseModel):
    """サーキットブレーカーに関する設定。"""

    fail_max: int = Field(
        default=5,
        description='何回連続で失敗したらサーキットをOpen状態にするか。',
    )
    reset_timeout: int = Field(
        default=60,
        description='サーキットがOpenしてからHalf-Open状態に移行するまでの秒数。',
    )


class DeliverySettings(BaseModel):
    """メールによる配信に関する設定。"""

    smtp_host: str = Field(default='smtp.gmail.com', description='SMTPサーバー。')
    smtp_port: int = Field(default=587, description='SMTPポート。465の場合は暗黙TLS。')
    smtp_user: str | None = Field(default=None, description='SMTP認証ユーザー。')
    smtp_password: SecretStr | None = Field(
        default=None, description='SMTP認証パスワード(アプリパスワード)。'
    )
    recipient: str | None = Field(
        default=None, description='送信先(Kindleのメールアドレス)。'
    )
    sender: str | None = Field(
        default=None, description='送信元アドレス。未指定の場合はsmtp_user。'
    )
    subject: str = Field(default='Convert', description='メールの件名。')
    timeout: float = Field(default=60.0, gt=0, description='SMTP通信のタイムアウト秒数。')
    circuit_breaker: CircuitBreakerSettings = Field(
        default_factory=CircuitBreakerSettings
    )

    @field_validator('recipient')
    @classmethod
    def validate_recipient(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if '@' not in value:
            raise ValueError(f'無効な送信先メールアドレスです: {value}')
        return value

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password and self.recipient)


class SchedulerSettings(BaseModel):
    """定期実行に関する設定。"""

    check_interval: int = Field(
        default=30, ge=1, description='監視ディレクトリを確認する間隔(分)。'
    )
    run_on_start: bool = Field(
        default=True, description='起動直後に一度実行するかどうか。'
    )


class HistorySettings(BaseModel):
    """処理履歴の保存先に関する設定。"""

    history_file: Path = Field(
        default=Path('./data/history.json'),
        description='処理履歴を保存するJSONファイル。',
    )


class Settings(BaseSettings):
    """
    アプリケーションの階層的設定管理クラス。
    以下の優先順位で設定を読み込みます:
    1. Pythonコードからの直接初期化
    2. --config で指定されたカスタムTOMLファイル
    3. 環境変数 (例: CBZ2KINDLE_DELIVERY__SMTP_USER=...)
    4. .env ファイル
    5. pyproject.toml内の [tool.cbz2kindle] セクション
    6. モデルで定義されたデフォルト値
    """

    watch: WatchSettings = Field(default_factory=WatchSettings)
    conversion: ConversionSettings = Field(default_factory=ConversionSettings)
    engine: EngineSettings = Field(default_factory=EngineSettings)
    presets: PresetSettings = Field(default_factory=PresetSettings)
    builder: BuilderSettings = Field(default_factory=BuilderSettings)
    delivery: DeliverySettings = Field(default_factory=DeliverySettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    log_level: str = 'INFO'

    def __init__(self, **values: object):
        config_file_path = values.pop('_config_file', None)
        require_delivery = values.pop('require_delivery', False)
        config_file = (
            Path(cast(Path | str, config_file_path)) if config_file_path else None
        )

        token = _CONFIG_FILE.set(config_file)
        try:
            super().__init__(**values)  # type: ignore [arg-type]
        except (ValidationError, ValueError) as e:
            raise SettingsError(f'設定の検証に失敗しました:\n{e}') from e
        finally:
            _CONFIG_FILE.reset(token)

        if require_delivery and not self.delivery.is_configured:
            raise SettingsError(
                '配信用のメール設定が見つかりません。'
                ' smtp_user / smtp_password / recipient を'
                '設定ファイル、.env、または環境変数で設定してください。'
            )

    model_config = SettingsConfigDict(
        env_nested_delimiter='__',
        env_prefix='CBZ2KINDLE_',
        env_file='.env',
        env_file_encoding='utf-8',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            TomlConfigSettingsSource(settings_cls, _CONFIG_FILE.get()),
            env_settings,
            dotenv_settings,
            PyProjectTomlSource(settings_cls),
        )
