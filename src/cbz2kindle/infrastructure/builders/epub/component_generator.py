# FILE: src/cbz2kindle/infrastructure/builders/epub/component_generator.py
from typing import Any

from jinja2 import Environment
from loguru import logger

from ....models.domain import (
    BookMetadata,
    BookPage,
    EpubComponents,
    ImageAsset,
    PageAsset,
)
from ....shared.constants import MIME_TYPES
from ....utils.common import get_media_type_from_filename
from .constants import (
    CONTENT_OPF_TEMPLATE,
    CSS_TEMPLATE,
    NAV_TEMPLATE,
    PAGE_TEMPLATE,
)

IMAGES_DIR_NAME = 'images'
TEXT_DIR_NAME = 'text'


class EpubComponentGenerator:
    """スパイン(ページ順)からEPUBの構成要素を生成するクラス。"""

    def __init__(
        self,
        template_env: Environment,
        use_first_page_as_cover: bool = True,
    ):
        self.template_env = template_env
        self.use_first_page_as_cover = use_first_page_as_cover

    def generate_components(
        self, spine: list[BookPage], metadata: BookMetadata
    ) -> EpubComponents:
        """EPUBの全構成要素を生成し、EpubComponentsオブジェクトとして返します。"""
        css_asset = self._generate_css()
        css_rel_path = f'../{css_asset.href}' if css_asset else None

        images = self._collect_images(spine)
        pages = self._generate_pages(spine, images, css_rel_path, metadata)
        cover = images[0] if self.use_first_page_as_cover else None

        content_opf = self._generate_opf(pages, images, css_asset, cover, metadata)
        nav_xhtml = self._generate_nav(pages, metadata)

        return EpubComponents(
            pages=pages,
            images=images,
            css_asset=css_asset,
            content_opf=content_opf,
            nav_xhtml=nav_xhtml,
        )

    def _render_template(self, template_name: str, context: dict[str, Any]) -> bytes:
        template = self.template_env.get_template(template_name)
        return template.render(context).encode('utf-8')

    def _generate_css(self) -> PageAsset | None:
        try:
            content_bytes = self._render_template(CSS_TEMPLATE, {})
            return PageAsset(
                id='css_style',
                href='css/style.css',
                content=content_bytes,
                title='stylesheet',
            )
        except Exception as e:
            logger.warning(f'CSSテンプレートのレンダリングに失敗: {e}')
            return None

    def _collect_images(self, spine: list[BookPage]) -> list[ImageAsset]:
        images = []
        for page in spine:
            filename = f'page_{page.index:04d}{page.image_path.suffix.lower()}'
            images.append(
                ImageAsset(
                    id=f'img_{page.index}',
                    href=f'{IMAGES_DIR_NAME}/{filename}',
                    path=page.image_path,
                    media_type=get_media_type_from_filename(filename),
                    properties='cover-image'
                    if self.use_first_page_as_cover and page.index == 1
                    else '',
                    filename=filename,
                )
            )
        return images

    def _generate_pages(
        self,
        spine: list[BookPage],
        images: list[ImageAsset],
        css_path: str | None,
        metadata: BookMetadata,
    ) -> list[PageAsset]:
        """1画像につき1枚のXHTMLページを生成します。"""
        pages = []
        for page, image in zip(spine, images, strict=True):
            title = f'{metadata.title} - {page.index}'
            context = {
                'title': title,
                'index': page.index,
                'image_href': f'../{image.href}',
                'css_path': css_path,
                'language': metadata.language,
            }
            pages.append(
                PageAsset(
                    id=f'page_{page.index}',
                    href=f'{TEXT_DIR_NAME}/page-{page.index:04d}.xhtml',
                    content=self._render_template(PAGE_TEMPLATE, context),
                    title=title,
                )
            )
        return pages

    def _generate_opf(
        self,
        pages: list[PageAsset],
        images: list[ImageAsset],
        css_asset: PageAsset | None,
        cover: ImageAsset | None,
        metadata: BookMetadata,
    ) -> bytes:
        """content.opf ファイルの内容を生成します。"""
        manifest_items: list[dict[str, str]] = [
            {
                'id': 'nav',
                'href': 'nav.xhtml',
                'media_type': MIME_TYPES.XHTML,
                'properties': 'nav',
            }
        ]
        if css_asset:
            manifest_items.append(
                {'id': css_asset.id, 'href': css_asset.href, 'media_type': MIME_TYPES.CSS}
            )

        # ナビゲーション文書はスパインに含めず、読み順はページのみで構成する
        spine_itemrefs = []
        for page in pages:
            manifest_items.append(
                {'id': page.id, 'href': page.href, 'media_type': MIME_TYPES.XHTML}
            )
            spine_itemrefs.append({'idref': page.id})
        for image in images:
            manifest_items.append(
                {
                    'id': image.id,
                    'href': image.href,
                    'media_type': image.media_type,
                    'properties': image.properties,
                }
            )

        context = {
            'metadata': metadata,
            'modified': metadata.modified.strftime('%Y-%m-%dT%H:%M:%SZ'),
            'manifest_items': manifest_items,
            'spine_itemrefs': spine_itemrefs,
            'cover_image_id': cover.id if cover else None,
        }
        return self._render_template(CONTENT_OPF_TEMPLATE, context)

    def _generate_nav(self, pages: list[PageAsset], metadata: BookMetadata) -> bytes:
        """EPUB3で必須のナビゲーション文書を、開始ページへのリンクのみで生成します。"""
        context = {
            'title': metadata.title,
            'language': metadata.language,
            'start_href': pages[0].href,
        }
        return self._render_template(NAV_TEMPLATE, context)
