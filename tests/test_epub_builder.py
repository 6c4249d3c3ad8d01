# FILE: tests/test_epub_builder.py
import xml.etree.ElementTree as ET
import zipfile
from pathlib import Path

import pytest

from cbz2kindle.infrastructure.builders.epub.builder import EpubBookAssembler
from cbz2kindle.shared.exceptions import AssemblyError
from cbz2kindle.shared.settings import BuilderSettings

OPF_NS = {'opf': 'http://www.idpf.org/2007/opf', 'dc': 'http://purl.org/dc/elements/1.1/'}
XHTML_NS = {'x': 'http://www.w3.org/1999/xhtml'}


@pytest.fixture
def pages(tmp_path: Path) -> list[Path]:
    paths = []
    for i in range(3):
        path = tmp_path / f'processed_{i:04d}.jpg'
        path.write_bytes(f'image-{i}'.encode())
        paths.append(path)
    return paths


@pytest.fixture
def assembler() -> EpubBookAssembler:
    return EpubBookAssembler(BuilderSettings(author='Tester', language='ja'))


def _build(assembler: EpubBookAssembler, pages: list[Path], tmp_path: Path) -> zipfile.ZipFile:
    output = assembler.assemble(pages, tmp_path / 'ch01.cbz', tmp_path / 'out' / 'SeriesA01.epub')
    assert output.is_file()
    return zipfile.ZipFile(output)


def test_container_layout(assembler: EpubBookAssembler, pages: list[Path], tmp_path: Path):
    with _build(assembler, pages, tmp_path) as epub:
        first = epub.infolist()[0]
        assert first.filename == 'mimetype'
        assert first.compress_type == zipfile.ZIP_STORED
        assert epub.read('mimetype') == b'application/epub+zip'

        container = ET.fromstring(epub.read('META-INF/container.xml'))
        rootfile = container.find('.//{*}rootfile')
        assert rootfile is not None
        assert rootfile.get('full-path') == 'OEBPS/content.opf'

        names = set(epub.namelist())
        assert 'OEBPS/nav.xhtml' in names
        assert 'OEBPS/css/style.css' in names
        assert {f'OEBPS/images/page_{i:04d}.jpg' for i in range(1, 4)} <= names


def test_package_metadata_and_spine(assembler: EpubBookAssembler, pages: list[Path], tmp_path: Path):
    with _build(assembler, pages, tmp_path) as epub:
        opf = ET.fromstring(epub.read('OEBPS/content.opf'))

    assert opf.findtext('.//dc:title', namespaces=OPF_NS) == 'ch01'
    assert opf.findtext('.//dc:creator', namespaces=OPF_NS) == 'Tester'
    assert opf.findtext('.//dc:language', namespaces=OPF_NS) == 'ja'
    identifier = opf.findtext('.//dc:identifier', namespaces=OPF_NS)
    assert identifier is not None and identifier.startswith('urn:uuid:')

    spine = [ref.get('idref') for ref in opf.findall('.//opf:spine/opf:itemref', OPF_NS)]
    assert spine == ['page_1', 'page_2', 'page_3']

    items = {item.get('id'): item for item in opf.findall('.//opf:manifest/opf:item', OPF_NS)}
    assert items['nav'].get('properties') == 'nav'
    assert 'nav' not in spine
    assert items['img_1'].get('properties') == 'cover-image'
    assert items['img_2'].get('properties') is None
    assert items['img_1'].get('media-type') == 'image/jpeg'


def test_pages_reference_images_in_order(
    assembler: EpubBookAssembler, pages: list[Path], tmp_path: Path
):
    with _build(assembler, pages, tmp_path) as epub:
        for i in range(1, 4):
            page = ET.fromstring(epub.read(f'OEBPS/text/page-{i:04d}.xhtml'))
            img = page.find('.//x:img', XHTML_NS)
            assert img is not None
            assert img.get('src') == f'../images/page_{i:04d}.jpg'
            assert epub.read(f'OEBPS/images/page_{i:04d}.jpg') == f'image-{i - 1}'.encode()


def test_cover_flag_can_be_disabled(pages: list[Path], tmp_path: Path):
    assembler = EpubBookAssembler(BuilderSettings(use_first_page_as_cover=False))

    with _build(assembler, pages, tmp_path) as epub:
        opf = epub.read('OEBPS/content.opf').decode()

    assert 'cover-image' not in opf
    assert 'name="cover"' not in opf


def test_no_pages_is_an_error(assembler: EpubBookAssembler, tmp_path: Path):
    with pytest.raises(AssemblyError):
        assembler.assemble([], tmp_path / 'ch01.cbz', tmp_path / 'out.epub')


def test_failed_build_removes_partial_output(
    assembler: EpubBookAssembler, pages: list[Path], tmp_path: Path, monkeypatch: pytest.MonkeyPatch
):
    output = tmp_path / 'broken.epub'

    def failing_archive(components, output_path: Path) -> None:
        output_path.write_bytes(b'partial')
        raise OSError('disk full')

    monkeypatch.setattr(assembler.packager, 'archive', failing_archive)

    with pytest.raises(AssemblyError):
        assembler.assemble(pages, tmp_path / 'ch01.cbz', output)

    assert not output.exists()
