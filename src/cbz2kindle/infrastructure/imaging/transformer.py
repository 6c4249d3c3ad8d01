# FILE: src/cbz2kindle/infrastructure/imaging/transformer.py
import concurrent.futures
import tempfile
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from ...domain.interfaces import IImageEngine, IImageTransformer
from ...models.preset import Preset
from ...shared.constants import PIPELINE_LIMITS, TEMP_PATHS
from ...shared.exceptions import TransformError
from .arguments import build_convert_arguments


class BatchImageTransformer(IImageTransformer):
    """
    ページ画像を固定サイズのバッチ単位で変換するクラス。

    バッチ内の画像は並列に変換し、バッチ同士は順番に実行します。
    結果は完了順ではなく入力位置で格納するため、出力の順序は常に入力と一致します。
    """

    def __init__(
        self,
        engine: IImageEngine,
        batch_size: int = PIPELINE_LIMITS.TRANSFORM_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError('batch_size は1以上である必要があります。')
        self.engine = engine
        self.batch_size = batch_size

    def transform_all(
        self, image_paths: Sequence[Path], extract_dir: Path, preset: Preset
    ) -> list[Path]:
        """
        全ページを変換し、入力と同じ順序で出力パスを返します。

        Raises:
            TransformError: いずれかのページの変換に失敗した場合。
                1ページでも欠けるとブックが不完全になるため、ファイル全体の変換を中止します。
        """
        results: list[Path | None] = [None] * len(image_paths)
        total = len(image_paths)
        # 展開済みのページと出力名が衝突しないよう、毎回空の出力先を作る
        output_dir = Path(
            tempfile.mkdtemp(prefix=TEMP_PATHS.PROCESSED_DIR_PREFIX, dir=extract_dir)
        )

        for start in range(0, total, self.batch_size):
            batch = list(enumerate(image_paths[start : start + self.batch_size], start))
            logger.bind(batch_start=start + 1, batch_end=start + len(batch), total=total).debug(
                'バッチ変換を開始'
            )
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=len(batch), thread_name_prefix='transform'
            ) as executor:
                futures = {
                    index: executor.submit(
                        self.transform_one, path, index, output_dir, preset
                    )
                    for index, path in batch
                }
                # 完了順ではなく元の位置に格納する。例外は with を抜ける前に残りの完了を待つ
                for index, future in futures.items():
                    results[index] = future.result()

        return [path for path in results if path is not None]

    def transform_one(
        self, image_path: Path, index: int, output_dir: Path, preset: Preset
    ) -> Path:
        output_path = output_dir / TEMP_PATHS.PROCESSED_IMAGE_TEMPLATE.format(
            index=index
        )
        info = self.engine.identify(image_path)
        arguments = build_convert_arguments(preset, info)
        self.engine.convert(image_path, output_path, arguments)

        if not output_path.is_file():
            raise TransformError('画像の変換に失敗しました', source_image=image_path.name)
        return output_path
