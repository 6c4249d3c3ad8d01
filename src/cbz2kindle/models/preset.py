# FILE: src/cbz2kindle/models/preset.py
"""
画像変換プリセットのデータモデル。
各ステージは独自の `enabled` フラグを持ち、無効なステージは変換引数に一切寄与しません。
保存形式(image-settings.json)に合わせ、JSON上のキーはcamelCaseで扱います。
"""

from collections.abc import Mapping
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..shared.exceptions import PresetError


class PresetBaseModel(BaseModel):
    # エイリアス名(camelCase)とフィールド名の両方で値を受け付ける
    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )


class StageSettings(PresetBaseModel):
    """変換ステージの共通基底。指定のないステージは無効として扱う。"""

    enabled: bool = False


class ResizeStage(StageSettings):
    width: int = Field(default=1600, ge=1)
    height: int = Field(default=2400, ge=1)


class LevelStage(StageSettings):
    black_point: float = Field(default=5, ge=0, le=100)
    white_point: float = Field(default=90, ge=0, le=100)
    gamma: float = Field(default=1.2, gt=0)


class ContrastStage(StageSettings):
    pass


class ContrastStretchStage(StageSettings):
    black: float = Field(default=0, ge=0, le=100)
    white: float = Field(default=1, ge=0, le=100)


class BrightnessContrastStage(StageSettings):
    brightness: float = Field(default=0, ge=-100, le=100)
    contrast: float = Field(default=0, ge=-100, le=100)


class BlackThresholdStage(StageSettings):
    threshold: float = Field(default=50, ge=0, le=100)


class SharpenStage(StageSettings):
    radius: float = Field(default=0, ge=0)
    sigma: float = Field(default=0.5, ge=0)


class Preset(PresetBaseModel):
    """名前付きの画像変換パラメータ一式。変換1回分の不変スナップショットとして扱う。"""

    name: str = 'custom'
    resize: ResizeStage = Field(default_factory=ResizeStage)
    colorspace_conversion: bool = False
    level: LevelStage = Field(default_factory=LevelStage)
    contrast: ContrastStage = Field(default_factory=ContrastStage)
    contrast_stretch: ContrastStretchStage = Field(
        default_factory=ContrastStretchStage
    )
    brightness_contrast: BrightnessContrastStage = Field(
        default_factory=BrightnessContrastStage
    )
    black_threshold: BlackThresholdStage = Field(default_factory=BlackThresholdStage)
    sharpen: SharpenStage = Field(default_factory=SharpenStage)
    quality: int = Field(default=100, ge=1, le=100)

    def to_storage_dict(self) -> dict[str, Any]:
        """image-settings.json に書き込む形式(camelCase、name除外)に変換します。"""
        return self.model_dump(mode='json', by_alias=True, exclude={'name'})


def _normalize_key(key: str) -> str:
    return to_camel(key) if '_' in key else key


def _deep_merge(base: dict[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for raw_key, value in overrides.items():
        key = _normalize_key(raw_key)
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def overlay_preset(
    base: Preset, overrides: Mapping[str, Any], name: str | None = None
) -> Preset:
    """
    baseの各フィールドにoverridesの値をフィールド単位で重ねた新しいPresetを返します。

    ステージ(ネストした辞書)はステージ内のフィールド単位でマージされ、
    overridesに現れないフィールドはbaseの値を保持します。

    Raises:
        PresetError: マージ結果が検証に失敗した場合。
    """
    merged = _deep_merge(base.model_dump(by_alias=True), overrides)
    if name is not None:
        merged['name'] = name
    try:
        return Preset.model_validate(merged)
    except ValidationError as e:
        raise PresetError(
            f"プリセット '{name or base.name}' の検証に失敗しました:\n{e}"
        ) from e


# --- 組み込みプリセット ---

STANDARD_PRESET: Final = Preset(
    name='standard',
    resize=ResizeStage(enabled=True, width=1600, height=2400),
    colorspace_conversion=True,
    level=LevelStage(enabled=True, black_point=5, white_point=90, gamma=1.2),
    contrast=ContrastStage(enabled=True),
    sharpen=SharpenStage(enabled=True, radius=0, sigma=0.5),
    quality=100,
)

HIGH_CONTRAST_PRESET: Final = Preset(
    name='highContrast',
    resize=ResizeStage(enabled=True, width=1200, height=1800),
    colorspace_conversion=True,
    level=LevelStage(enabled=True, black_point=10, white_point=90, gamma=1.6),
    contrast_stretch=ContrastStretchStage(enabled=True, black=5, white=1),
    brightness_contrast=BrightnessContrastStage(
        enabled=True, brightness=0, contrast=25
    ),
    black_threshold=BlackThresholdStage(enabled=True, threshold=25),
    sharpen=SharpenStage(enabled=True, radius=0, sigma=0.8),
    quality=90,
)

LOW_CONTRAST_PRESET: Final = Preset(
    name='lowContrast',
    resize=ResizeStage(enabled=True, width=1600, height=2400),
    colorspace_conversion=True,
    level=LevelStage(enabled=True, black_point=3, white_point=85, gamma=1.0),
    contrast=ContrastStage(enabled=False),
    sharpen=SharpenStage(enabled=True, radius=0, sigma=0.3),
    quality=100,
)

DEFAULT_PRESET_NAME: Final = STANDARD_PRESET.name

BUILTIN_PRESETS: Final[Mapping[str, Preset]] = {
    preset.name: preset
    for preset in (STANDARD_PRESET, HIGH_CONTRAST_PRESET, LOW_CONTRAST_PRESET)
}
