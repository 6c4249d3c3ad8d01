# FILE: src/cbz2kindle/infrastructure/imaging/arguments.py
"""
プリセットからImageMagick `convert` の引数列を組み立てます。
有効なステージのみが引数に寄与し、無効なステージは既定値での実行すら行いません。
"""

from ...models.domain import ImageInfo
from ...models.preset import Preset


def _num(value: float) -> str:
    # 5.0 -> "5", 1.2 -> "1.2"
    return f'{value:g}'


def build_convert_arguments(preset: Preset, info: ImageInfo) -> list[str]:
    """入力パスと出力パスを除いた変換オプションを、適用順に返します。"""
    args: list[str] = []

    if preset.resize.enabled:
        # '>' は元画像が指定サイズより大きい場合のみ縮小する
        args += ['-resize', f'{preset.resize.width}x{preset.resize.height}>']

    if preset.colorspace_conversion and info.is_cmyk:
        args += ['-colorspace', 'sRGB']

    level = preset.level
    if level.enabled:
        args += [
            '-level',
            f'{_num(level.black_point)}%,{_num(level.white_point)}%,{_num(level.gamma)}',
        ]

    stretch = preset.contrast_stretch
    if stretch.enabled:
        args += ['-contrast-stretch', f'{_num(stretch.black)}%x{_num(stretch.white)}%']

    bc = preset.brightness_contrast
    if bc.enabled:
        args += ['-brightness-contrast', f'{_num(bc.brightness)}x{_num(bc.contrast)}']

    if preset.black_threshold.enabled:
        args += ['-black-threshold', f'{_num(preset.black_threshold.threshold)}%']

    if preset.contrast.enabled:
        args.append('-contrast')

    sharpen = preset.sharpen
    if sharpen.enabled:
        args += ['-sharpen', f'{_num(sharpen.radius)}x{_num(sharpen.sigma)}']

    args += ['-quality', str(preset.quality)]
    return args
