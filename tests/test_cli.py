# FILE: tests/test_cli.py
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from cbz2kindle.entrypoints.cli import app

runner = CliRunner()


@pytest.fixture
def config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for key in (
        'CBZ2KINDLE_DELIVERY__SMTP_USER',
        'CBZ2KINDLE_DELIVERY__SMTP_PASSWORD',
        'CBZ2KINDLE_DELIVERY__RECIPIENT',
    ):
        monkeypatch.delenv(key, raising=False)
    path = tmp_path / 'config.toml'
    path.write_text(
        f'[presets]\nsettings_file = "{(tmp_path / "presets.json").as_posix()}"\n'
        f'[history]\nhistory_file = "{(tmp_path / "history.json").as_posix()}"\n',
        encoding='utf-8',
    )
    return path


def test_presets_lists_builtins(config: Path, tmp_path: Path):
    result = runner.invoke(app, ['--config', str(config), 'presets'])

    assert result.exit_code == 0, result.output
    assert 'standard' in result.output
    assert (tmp_path / 'presets.json').is_file()


def test_status_and_clear_history(config: Path, tmp_path: Path):
    history_file = tmp_path / 'history.json'
    history_file.write_text(
        json.dumps(
            {
                'processedFiles': [
                    {
                        'name': 'ch01.cbz',
                        'seriesName': 'SeriesA',
                        'processedAt': '2024-01-01T00:00:00Z',
                        'status': 'success',
                    }
                ]
            }
        ),
        encoding='utf-8',
    )

    result = runner.invoke(app, ['--config', str(config), 'status'])
    assert result.exit_code == 0, result.output
    assert 'SeriesA' in result.output

    result = runner.invoke(app, ['--config', str(config), 'clear-history'])
    assert result.exit_code == 0, result.output
    assert json.loads(history_file.read_text(encoding='utf-8')) == {'processedFiles': []}


def test_run_requires_delivery_settings(config: Path):
    result = runner.invoke(app, ['--config', str(config), 'run'])

    assert result.exit_code == 1
