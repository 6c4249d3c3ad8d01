# FILE: tests/test_models.py
import pytest
from pydantic import ValidationError

from cbz2kindle.models.domain import RunState
from cbz2kindle.shared.enums import RunStage
from cbz2kindle.shared.exceptions import DeliverySizeError, TransformError
from cbz2kindle.utils.common import get_media_type_from_filename, human_readable_size
from cbz2kindle.utils.filesystem_sanitizer import sanitize_filename


def test_processing_flag_is_rejected_in_terminal_stages():
    state = RunState()

    with pytest.raises(ValidationError):
        state.evolve(is_processing=True)

    running = state.evolve(is_processing=True, stage=RunStage.CONVERTING)
    assert running.is_processing
    assert state.is_processing is False


def test_error_messages_carry_context():
    assert str(TransformError('変換失敗', source_image='3.jpg')) == '変換失敗: 3.jpg'
    error = DeliverySizeError(26 * 1024 * 1024, 25 * 1024 * 1024)
    assert '26.00MB' in str(error)
    assert '25MB' in str(error)


def test_sanitize_keeps_extension_when_truncating():
    name = sanitize_filename('a' * 120 + '.epub', max_length=100)

    assert len(name) == 100
    assert name.endswith('.epub')


@pytest.mark.parametrize(
    'raw, expected',
    [
        ('My:Series?01.epub', 'My_Series_01.epub'),
        ('Two   Spaces\t01.epub', 'Two Spaces 01.epub'),
        ('trailing. .epub', 'trailing.epub'),
        ('.epub', 'ch01.epub'),
    ],
)
def test_sanitize_filename(raw: str, expected: str):
    assert sanitize_filename(raw, max_length=100, fallback='ch01') == expected


@pytest.mark.parametrize(
    'filename, expected',
    [('a.JPG', 'image/jpeg'), ('b.webp', 'image/webp'), ('c.xyz', 'application/octet-stream')],
)
def test_media_types(filename: str, expected: str):
    assert get_media_type_from_filename(filename) == expected


def test_human_readable_size():
    assert human_readable_size(512) == '512 B'
    assert human_readable_size(25 * 1024 * 1024) == '25.00 MB'
