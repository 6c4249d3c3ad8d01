"""
EPUBファイル構造に関連する定数を集約します。
"""

from pathlib import Path

# EPUBコンテナの必須ファイルとディレクトリ
MIMETYPE_FILE_NAME = 'mimetype'
META_INF_DIR = 'META-INF'
OEBPS_DIR = 'OEBPS'

# EPUB内の主要なXMLファイルとパス
CONTAINER_XML_PATH = f'{META_INF_DIR}/container.xml'
ROOT_FILE_PATH = f'{OEBPS_DIR}/content.opf'
NAV_XHTML_PATH = f'{OEBPS_DIR}/nav.xhtml'

# パッケージ内リソース
RESOURCE_DIR = Path(__file__).parent
ASSETS_DIR = RESOURCE_DIR / 'assets'
TEMPLATES_DIR = RESOURCE_DIR / 'templates'

# テンプレート名
CSS_TEMPLATE = 'style.css.j2'
PAGE_TEMPLATE = 'page.xhtml.j2'
CONTENT_OPF_TEMPLATE = 'content.opf.j2'
NAV_TEMPLATE = 'nav.xhtml.j2'
