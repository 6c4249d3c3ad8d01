# FILE: src/cbz2kindle/infrastructure/builders/epub/builder.py
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, TemplateError
from loguru import logger

from ....models.domain import BookMetadata
from ....shared.exceptions import AssemblyError
from ....shared.settings import BuilderSettings
from ..base import BaseBookAssembler
from .component_generator import EpubComponentGenerator
from .constants import TEMPLATES_DIR
from .package_assembler import EpubPackageAssembler


class EpubBookAssembler(BaseBookAssembler):
    """変換済みページ画像から固定順のEPUBを生成するクラス。"""

    def __init__(
        self,
        settings: BuilderSettings,
        packager: EpubPackageAssembler | None = None,
    ):
        super().__init__(settings)
        self.packager = packager or EpubPackageAssembler()
        self.generator = EpubComponentGenerator(
            self._create_template_env(),
            use_first_page_as_cover=settings.use_first_page_as_cover,
        )

    @classmethod
    def get_format_name(cls) -> str:
        return 'epub'

    def assemble(
        self,
        image_paths: Sequence[Path],
        source_archive_path: Path,
        output_path: Path,
    ) -> Path:
        """
        EPUBファイルを生成するメインの実行メソッド。

        Raises:
            AssemblyError: テンプレートのレンダリングや梱包に失敗した場合。
        """
        spine = self._build_spine(image_paths)
        log = logger.bind(
            output_path=str(output_path),
            page_count=len(spine),
            book_format=self.get_format_name(),
        )
        log.info('ブックの作成処理を開始')

        if output_path.exists():
            log.warning('出力ファイルは既に存在するため上書きします。')

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            metadata = self._create_metadata(source_archive_path)
            components = self.generator.generate_components(spine, metadata)
            self.packager.archive(components, output_path)
            log.success('EPUBファイルの作成成功')
            return output_path
        except TemplateError as e:
            template_name = getattr(e, 'name', 'N/A')
            logger.bind(template_name=template_name).error(
                f"テンプレート '{template_name}' のレンダリングに失敗しました。"
            )
            self._cleanup_failed_build(output_path)
            raise AssemblyError(f'テンプレートエラー: {e}') from e
        except Exception as e:
            logger.exception('EPUBファイルの作成中に予期せぬエラーが発生しました。')
            self._cleanup_failed_build(output_path)
            raise AssemblyError(f'EPUBのビルドに失敗しました: {e}') from e

    def _create_metadata(self, source_archive_path: Path) -> BookMetadata:
        return BookMetadata(
            identifier=f'urn:uuid:{uuid.uuid4()}',
            title=source_archive_path.stem,
            author=self.settings.author,
            publisher=self.settings.publisher,
            language=self.settings.language,
            modified=datetime.now(timezone.utc),
        )

    def _create_template_env(self) -> Environment:
        if not TEMPLATES_DIR.is_dir():
            raise AssemblyError(
                f'テンプレートディレクトリが見つかりません: {TEMPLATES_DIR}'
            )
        return Environment(loader=FileSystemLoader(str(TEMPLATES_DIR)), autoescape=True)
