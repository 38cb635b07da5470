import pytest

from receipt_pipeline.input_handler import InputHandler
from receipt_pipeline.utils.exceptions import (
    EmptyImageError,
    ImageTooLargeError,
    InputError,
    UnsupportedImageTypeError,
)


@pytest.fixture
def handler():
    return InputHandler()


@pytest.mark.parametrize(
    "declared, canonical",
    [
        ("image/jpeg", "image/jpeg"),
        ("image/jpg", "image/jpeg"),
        ("IMAGE/PNG; charset=binary", "image/png"),
        ("image/x-png", "image/png"),
        ("image/webp", "image/webp"),
    ],
)
def test_accepted_types_are_canonicalized(handler, declared, canonical):
    raw = handler.load(b"\x89PNG data", declared)

    assert raw.content_type == canonical
    assert raw.size == 9


@pytest.mark.parametrize("declared", ["image/gif", "application/pdf", "", None])
def test_unsupported_types_are_rejected(handler, declared):
    with pytest.raises(UnsupportedImageTypeError) as exc_info:
        handler.load(b"data", declared)

    assert exc_info.value.kind == "input"
    assert exc_info.value.details["supported_types"] == ["image/jpeg", "image/png", "image/webp"]


def test_empty_buffer_is_rejected(handler):
    with pytest.raises(EmptyImageError):
        handler.load(b"", "image/png")


def test_size_ceiling():
    handler = InputHandler(max_file_size=10)

    assert handler.load(b"x" * 10, "image/png").size == 10
    with pytest.raises(ImageTooLargeError) as exc_info:
        handler.load(b"x" * 11, "image/png")
    assert exc_info.value.details == {"size": 11, "max_size": 10}


def test_type_is_checked_before_size():
    with pytest.raises(UnsupportedImageTypeError):
        InputHandler(max_file_size=1).load(b"xx", "image/gif")


def test_load_file_guesses_type(handler, tmp_path, sharp_png):
    path = tmp_path / "receipt.PNG"
    path.write_bytes(sharp_png)

    raw = handler.load_file(path)

    assert raw.content_type == "image/png"
    assert raw.data == sharp_png


def test_load_file_missing(handler, tmp_path):
    with pytest.raises(InputError, match="File not found"):
        handler.load_file(tmp_path / "missing.jpg")


def test_load_file_rejects_directories(handler, tmp_path):
    with pytest.raises(InputError, match="not a file"):
        handler.load_file(tmp_path)


def test_load_file_rejects_unknown_extension(handler, tmp_path):
    path = tmp_path / "receipt.gif"
    path.write_bytes(b"GIF89a")

    with pytest.raises(UnsupportedImageTypeError):
        handler.load_file(path)
