# FILE: src/cbz2kindle/infrastructure/imaging/imagemagick.py
import shutil
import subprocess
from pathlib import Path

from loguru import logger

from ...domain.interfaces import IImageEngine
from ...models.domain import ImageInfo
from ...shared.exceptions import TransformError
from ...shared.settings import EngineSettings

IDENTIFY_FORMAT = '%w %h %[colorspace]'


class ImageMagickEngine(IImageEngine):
    """ImageMagick の identify / convert コマンドを呼び出す画像変換エンジン。"""

    def __init__(self, settings: EngineSettings):
        self.settings = settings
        self.tools_available: dict[str, bool] = {}
        for tool in (settings.identify_binary, settings.convert_binary):
            self.tools_available[tool] = shutil.which(tool) is not None
            if not self.tools_available[tool]:
                logger.warning(
                    f"コマンド '{tool}' が見つかりません。画像変換は失敗します。"
                )

    def identify(self, image_path: Path) -> ImageInfo:
        """画像の幅・高さ・色空間を取得します。"""
        cmd = [self.settings.identify_binary, '-format', IDENTIFY_FORMAT, str(image_path)]
        proc = self._run_command(cmd, image_path)
        if proc.returncode != 0:
            raise TransformError(
                f'画像情報の取得に失敗しました ({self._decode(proc.stderr)})',
                source_image=image_path.name,
            )
        return self.parse_identify_output(self._decode(proc.stdout), image_path)

    def convert(self, input_path: Path, output_path: Path, arguments: list[str]) -> None:
        """
        変換を実行します。成否は呼び出し側が出力ファイルの存在で判定するため、
        終了コードが0以外でも例外にはせず警告に留めます。
        """
        cmd = [self.settings.convert_binary, str(input_path), *arguments, str(output_path)]
        proc = self._run_command(cmd, input_path)
        if proc.returncode != 0:
            logger.bind(
                image=input_path.name,
                returncode=proc.returncode,
                stderr=self._decode(proc.stderr),
            ).warning('convert が0以外の終了コードを返しました。')

    @staticmethod
    def parse_identify_output(output: str, image_path: Path) -> ImageInfo:
        parts = output.strip().split()
        if len(parts) < 3:
            raise TransformError(
                f"identify の出力を解析できません: '{output.strip()}'",
                source_image=image_path.name,
            )
        try:
            width, height = int(parts[0]), int(parts[1])
        except ValueError as e:
            raise TransformError(
                f"identify の出力を解析できません: '{output.strip()}'",
                source_image=image_path.name,
            ) from e
        return ImageInfo(width=width, height=height, colorspace=parts[2])

    def _run_command(
        self, cmd: list[str], image_path: Path
    ) -> subprocess.CompletedProcess[bytes]:
        """外部コマンドを実行し、結果をキャプチャします。"""
        logger.debug(f"コマンド実行: {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                timeout=self.settings.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise TransformError(
                f'画像変換がタイムアウトしました ({self.settings.timeout}秒)',
                source_image=image_path.name,
            ) from e
        except OSError as e:
            raise TransformError(
                f"コマンド '{cmd[0]}' を実行できません: {e}",
                source_image=image_path.name,
            ) from e

    @staticmethod
    def _decode(data: bytes | None) -> str:
        return data.decode('utf-8', 'replace').strip() if data else ''
