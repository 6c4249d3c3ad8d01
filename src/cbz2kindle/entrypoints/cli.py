# FILE: src/cbz2kindle/entrypoints/cli.py
import threading
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from pybreaker import CircuitBreaker
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..domain.history import HistoryLog
from ..domain.orchestrator import RunOrchestrator
from ..infrastructure.builders.epub.builder import EpubBookAssembler
from ..infrastructure.delivery.smtp import SmtpDeliveryDispatcher
from ..infrastructure.extraction.archive import ZipArchiveExtractor
from ..infrastructure.imaging.imagemagick import ImageMagickEngine
from ..infrastructure.imaging.transformer import BatchImageTransformer
from ..infrastructure.presets.json_resolver import JsonPresetResolver
from ..infrastructure.repositories.history import JsonHistoryStore
from ..infrastructure.scanner.filesystem import FileSystemSourceScanner
from ..models.domain import HistoryEntry, RunStatus
from ..shared.constants import ENV_KEYS
from ..shared.enums import EntryStatus, TriggerSource
from ..shared.exceptions import Cbz2KindleError, SettingsError
from ..shared.settings import Settings
from ..utils.logging import setup_logging
from .scheduler import RunScheduler

app = typer.Typer(
    help='同期フォルダに置かれたCBZをEPUBに変換し、Kindleへメールで送信するツールです。',
    rich_markup_mode='markdown',
)
console = Console()

# 配信設定が揃っていないと実行できないコマンド
DELIVERY_COMMANDS = frozenset({'run', 'watch', 'verify-delivery'})


def _initialize_settings(
    config_file: Path | None,
    log_level: str,
    require_delivery: bool = True,
) -> Settings:
    """設定オブジェクトを初期化するヘルパー関数。"""
    try:
        return Settings(
            _config_file=config_file,
            log_level=log_level,
            require_delivery=require_delivery,
        )
    except SettingsError as e:
        logger.bind(error=str(e)).error('❌ 設定エラーが発生しました。')
        if require_delivery:
            logger.info(
                f'配信設定は環境変数 {ENV_KEYS.SMTP_USER}, {ENV_KEYS.SMTP_PASSWORD},'
                f' {ENV_KEYS.RECIPIENT} でも指定できます。'
            )
        raise typer.Exit(code=1) from e


def _build_orchestrator(settings: Settings) -> RunOrchestrator:
    """設定から全ての依存関係を組み立て、RunOrchestrator を返します。"""
    breaker = CircuitBreaker(
        fail_max=settings.delivery.circuit_breaker.fail_max,
        reset_timeout=settings.delivery.circuit_breaker.reset_timeout,
    )
    engine = ImageMagickEngine(settings.engine)
    history = HistoryLog(JsonHistoryStore(settings.history))
    return RunOrchestrator(
        settings=settings,
        scanner=FileSystemSourceScanner(settings.watch),
        extractor=ZipArchiveExtractor(settings.conversion),
        transformer=BatchImageTransformer(engine),
        assembler=EpubBookAssembler(settings.builder),
        dispatcher=SmtpDeliveryDispatcher(settings.delivery, breaker=breaker),
        preset_resolver=JsonPresetResolver(settings.presets),
        history=history,
    )


def _history_table(entries: list[HistoryEntry]) -> Table:
    table = Table(title='処理履歴 (新しい順)')
    table.add_column('日時', style='dim', no_wrap=True)
    table.add_column('ファイル')
    table.add_column('シリーズ')
    table.add_column('結果')
    table.add_column('エラー', overflow='fold')
    for entry in entries:
        result = (
            '[green]成功[/]'
            if entry.status is EntryStatus.SUCCESS
            else '[red]失敗[/]'
        )
        table.add_row(
            entry.processed_at.astimezone().strftime('%Y-%m-%d %H:%M:%S'),
            entry.name,
            entry.series_name,
            result,
            entry.error or '',
        )
    return table


def _print_status(status: RunStatus) -> None:
    state = status.state
    last_run = (
        state.last_run.astimezone().strftime('%Y-%m-%d %H:%M:%S')
        if state.last_run
        else '-'
    )
    lines = [f'[bold]段階[/]: {state.stage.value}', f'[bold]最終実行[/]: {last_run}']
    if state.last_error:
        lines.append(f'[bold red]最後のエラー[/]: {state.last_error}')
    console.print(Panel('\n'.join(lines), title='実行状態', expand=False))
    if status.history:
        console.print(_history_table(list(status.history)))


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option(
            '-v',
            '--verbose',
            help='詳細なデバッグログを有効にします。',
            show_default=False,
        ),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option(
            '-c',
            '--config',
            help='カスタム設定TOMLファイルへのパス。',
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    log_file: Annotated[
        bool,
        typer.Option(
            '--log-file',
            help='ログをJSON形式でファイルに出力します。',
            show_default=False,
        ),
    ] = False,
) -> None:
    """
    CBZ to Kindle Converter
    """
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level, serialize_to_file=log_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        return

    require_delivery = ctx.invoked_subcommand in DELIVERY_COMMANDS
    ctx.obj = _initialize_settings(config, log_level, require_delivery=require_delivery)


@app.command()
def run(ctx: typer.Context) -> None:
    """監視フォルダを一度だけ処理し、結果を表示します。"""
    settings: Settings = ctx.obj
    orchestrator = _build_orchestrator(settings)
    orchestrator.start(TriggerSource.MANUAL)
    _print_status(orchestrator.status())


@app.command()
def watch(ctx: typer.Context) -> None:
    """設定された間隔で監視フォルダを定期的に処理します。Ctrl+Cで終了します。"""
    settings: Settings = ctx.obj
    orchestrator = _build_orchestrator(settings)
    scheduler = RunScheduler(
        orchestrator,
        interval_seconds=settings.scheduler.check_interval * 60,
        run_on_start=settings.scheduler.run_on_start,
    )
    scheduler.start()
    logger.bind(sync_directory=str(settings.watch.sync_directory)).info(
        f'{settings.scheduler.check_interval}分ごとに監視フォルダを確認します。Ctrl+Cで終了します。'
    )
    idle = threading.Event()
    try:
        # Ctrl+C を受け付けるため短い間隔で待機する
        while not idle.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info('終了要求を受け付けました。実行中の処理の完了を待っています...')
    finally:
        scheduler.stop()


@app.command()
def status(ctx: typer.Context) -> None:
    """保存されている処理履歴を表示します。"""
    settings: Settings = ctx.obj
    entries = JsonHistoryStore(settings.history).load()
    if not entries:
        console.print('処理履歴はありません。')
        return
    console.print(_history_table(entries))


@app.command('clear-history')
def clear_history(ctx: typer.Context) -> None:
    """処理履歴を削除します。"""
    settings: Settings = ctx.obj
    HistoryLog(JsonHistoryStore(settings.history)).clear()
    logger.success('処理履歴をクリアしました。')


@app.command()
def presets(ctx: typer.Context) -> None:
    """利用可能な画像プリセットを一覧表示します。"""
    settings: Settings = ctx.obj
    active_name, resolved = JsonPresetResolver(settings.presets).list_presets()

    table = Table(title=f'画像プリセット ({settings.presets.settings_file})')
    table.add_column('有効', justify='center')
    table.add_column('名前')
    table.add_column('リサイズ')
    table.add_column('品質', justify='right')
    table.add_column('有効なステージ')
    for name, preset in resolved.items():
        stages = [
            stage_name
            for stage_name in (
                'level',
                'contrast',
                'contrast_stretch',
                'brightness_contrast',
                'black_threshold',
                'sharpen',
            )
            if getattr(preset, stage_name).enabled
        ]
        resize = (
            f'{preset.resize.width}x{preset.resize.height}'
            if preset.resize.enabled
            else '-'
        )
        table.add_row(
            '[green]●[/]' if name == active_name else '',
            name,
            resize,
            str(preset.quality),
            ', '.join(stages) or '-',
        )
    console.print(table)


@app.command('verify-delivery')
def verify_delivery(ctx: typer.Context) -> None:
    """SMTPサーバーへの接続と認証のみを行い、配信設定を確認します。"""
    settings: Settings = ctx.obj
    SmtpDeliveryDispatcher(settings.delivery).verify()


@logger.catch(exclude=Cbz2KindleError)
def run_app() -> None:
    """
    アプリケーション全体を@logger.catchでラップし、
    制御下の例外は個別処理、それ以外をLoguruに記録させるためのラッパー関数。
    """
    try:
        app()
    except Cbz2KindleError as e:
        logger.bind(error=str(e)).error('❌ 処理中にエラーが発生しました。')
        raise SystemExit(1) from e
