# FILE: src/cbz2kindle/infrastructure/builders/epub/package_assembler.py
import zipfile
from collections.abc import Iterator
from pathlib import Path

from loguru import logger

from ....models.domain import EpubComponents
from .constants import (
    ASSETS_DIR,
    CONTAINER_XML_PATH,
    MIMETYPE_FILE_NAME,
    NAV_XHTML_PATH,
    OEBPS_DIR,
    ROOT_FILE_PATH,
)


def _oebps(href: str) -> str:
    return f'{OEBPS_DIR}/{href}'


class EpubPackageAssembler:
    """
    生成済みのEPUB構成要素をOCFコンテナ(ZIP)に書き込むクラス。

    mimetype は先頭かつ無圧縮でなければならない。ページ画像は変換済みのJPEG等で
    再圧縮しても小さくならないため、そのまま格納する。
    """

    def archive(self, components: EpubComponents, output_path: Path) -> None:
        """
        Raises:
            OSError: リソースや画像の読み込み、出力ファイルの書き込みに失敗した場合。
        """
        mimetype = (ASSETS_DIR / MIMETYPE_FILE_NAME).read_bytes()
        container = (ASSETS_DIR / 'container.xml').read_bytes()

        with zipfile.ZipFile(output_path, 'w', zipfile.ZIP_DEFLATED) as epub:
            epub.writestr(MIMETYPE_FILE_NAME, mimetype, compress_type=zipfile.ZIP_STORED)
            epub.writestr(CONTAINER_XML_PATH, container)
            for arcname, content in self._documents(components):
                epub.writestr(arcname, content)
            for image in components.images:
                epub.write(
                    image.path,
                    arcname=_oebps(image.href),
                    compress_type=zipfile.ZIP_STORED,
                )

        logger.bind(
            output_path=str(output_path),
            page_count=len(components.pages),
            image_count=len(components.images),
        ).debug('EPUBコンテナを書き込みました。')

    @staticmethod
    def _documents(components: EpubComponents) -> Iterator[tuple[str, bytes]]:
        """パッケージ文書、ナビゲーション、スタイル、各ページをこの順に返します。"""
        yield ROOT_FILE_PATH, components.content_opf
        yield NAV_XHTML_PATH, components.nav_xhtml
        if components.css_asset:
            yield _oebps(components.css_asset.href), components.css_asset.content
        for page in components.pages:
            yield _oebps(page.href), page.content
