# FILE: src/cbz2kindle/infrastructure/presets/json_resolver.py
"""
image-settings.json から有効な画像プリセットを解決します。

ファイルの形式:
    {"activePreset": "standard", "presets": {"standard": {...}}, "lastUpdated": "..."}
"""

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ...domain.interfaces import IPresetResolver
from ...models.preset import (
    BUILTIN_PRESETS,
    DEFAULT_PRESET_NAME,
    STANDARD_PRESET,
    Preset,
    overlay_preset,
)
from ...shared.exceptions import PresetError
from ...shared.settings import PresetSettings


class PresetDocument(BaseModel):
    """image-settings.json のトップレベル構造。"""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    active_preset: str = DEFAULT_PRESET_NAME
    presets: dict[str, dict[str, Any]] = Field(default_factory=dict)
    last_updated: datetime | None = None


def _default_document() -> PresetDocument:
    return PresetDocument(
        active_preset=DEFAULT_PRESET_NAME,
        presets={
            name: preset.to_storage_dict() for name, preset in BUILTIN_PRESETS.items()
        },
        last_updated=datetime.now(timezone.utc),
    )


class JsonPresetResolver(IPresetResolver):
    """JSONファイルに保存されたプリセットを解決するリゾルバ。"""

    def __init__(self, settings: PresetSettings):
        self.settings_file: Path = settings.settings_file

    def get_active_preset(self) -> Preset:
        """
        現在有効なプリセットを返します。
        読み込みに失敗した場合でも例外は送出せず、組み込みの standard を返します。
        """
        try:
            document = self._load_document()
            presets = self._resolve_presets(document.presets)
        except (PresetError, OSError) as e:
            logger.warning(
                f'プリセットの読み込みに失敗したため {DEFAULT_PRESET_NAME} を使用します: {e}'
            )
            return STANDARD_PRESET

        active = presets.get(document.active_preset)
        if active is None:
            logger.bind(active_preset=document.active_preset).warning(
                f'有効なプリセットが見つからないため {DEFAULT_PRESET_NAME} を使用します。'
            )
            return presets.get(DEFAULT_PRESET_NAME, STANDARD_PRESET)
        return active

    def list_presets(self) -> tuple[str, dict[str, Preset]]:
        """
        有効なプリセット名と、解決済みの全プリセットを返します(表示用)。

        Raises:
            PresetError: ファイルを読み込めない場合。
        """
        try:
            document = self._load_document()
        except OSError as e:
            raise PresetError(
                f"プリセットファイル '{self.settings_file}' を読み込めません: {e}"
            ) from e
        presets = self._resolve_presets(document.presets)
        active_name = (
            document.active_preset
            if document.active_preset in presets
            else DEFAULT_PRESET_NAME
        )
        return active_name, presets

    def _resolve_presets(
        self, stored: Mapping[str, Mapping[str, Any]]
    ) -> dict[str, Preset]:
        """
        保存されたプリセットを、同名の組み込みプリセット(なければ全ステージ無効の基底)に
        フィールド単位で重ねて解決します。
        """
        resolved: dict[str, Preset] = dict(BUILTIN_PRESETS)
        for name, overrides in stored.items():
            base = BUILTIN_PRESETS.get(name, Preset())
            try:
                resolved[name] = overlay_preset(base, overrides, name=name)
            except PresetError as e:
                logger.bind(preset_name=name).warning(
                    f'無効なプリセットをスキップしました: {e}'
                )
        return resolved

    def _load_document(self) -> PresetDocument:
        if not self.settings_file.exists():
            logger.info(
                f'プリセットファイルが存在しないため既定値で作成します: {self.settings_file}'
            )
            return self._write_default()

        try:
            raw_text = self.settings_file.read_text(encoding='utf-8')
            return PresetDocument.model_validate(json.loads(raw_text))
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
            logger.bind(error=str(e)).warning(
                f'プリセットファイルが破損しているため既定値で上書きします: {self.settings_file}'
            )
            return self._write_default()

    def _write_default(self) -> PresetDocument:
        document = _default_document()
        self.settings_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.settings_file, 'w', encoding='utf-8') as f:
            json.dump(
                document.model_dump(mode='json', by_alias=True),
                f,
                ensure_ascii=False,
                indent=2,
            )
        return document
