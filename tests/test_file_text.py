"""Tests for file classification and text extraction."""

import base64

import pytest

from app.core.file_text import (
    extract_text,
    format_attached_file,
    get_extension,
    is_code_file,
    is_image_file,
    is_pdf_file,
    is_text_file,
    limit_text,
    to_data_url,
)


def test_extract_text_utf8():
    """Test extracting text from UTF-8 bytes."""
    content = "Hello, world! こんにちは"

    result = extract_text(content.encode("utf-8"))

    assert result.text == content
    assert result.detected_encoding == "utf-8"
    assert not result.truncated


def test_extract_text_utf8_bom():
    """BOM is stripped and reported."""
    result = extract_text(b"\xef\xbb\xbfname,age\nAlice,30")

    assert result.text == "name,age\nAlice,30"
    assert result.detected_encoding == "utf-8-sig"


def test_extract_text_latin1_fallback():
    """Invalid UTF-8 falls back to Latin-1."""
    result = extract_text("café".encode("latin-1"))

    assert result.text == "café"
    assert result.detected_encoding == "latin-1"


def test_extract_text_truncates_middle():
    """Oversized text keeps the head and tail."""
    content = "A" * 500 + "B" * 500 + "C" * 500

    result = extract_text(content.encode("utf-8"), max_length=1000)

    assert result.truncated
    assert result.original_length == 1500
    assert result.text.startswith("A" * 500 + "B" * 300)
    assert result.text.endswith("C" * 150)
    assert "middle of the file omitted" in result.text


def test_limit_text_short_input_untouched():
    assert limit_text("short", max_length=100) == ("short", False)


@pytest.mark.parametrize(
    "filename, expected",
    [("main.py", "py"), ("Archive.TAR.GZ", "gz"), ("Makefile", ""), (".env", "env")],
)
def test_get_extension(filename, expected):
    assert get_extension(filename) == expected


def test_is_code_file():
    assert is_code_file("component.tsx")
    assert is_code_file("query.SQL")
    assert not is_code_file("notes.md")
    assert not is_code_file("Dockerfile")


def test_is_text_file():
    assert is_text_file("notes.md")
    assert is_text_file("Dockerfile")
    assert is_text_file("unknown.bin", content_type="text/plain")
    assert is_text_file("payload", content_type="application/json")
    assert not is_text_file("photo.png", content_type="image/png")


def test_image_and_pdf_detection():
    assert is_image_file("photo.JPG")
    assert is_image_file("blob", content_type="image/webp")
    assert is_pdf_file("paper.pdf")
    assert is_pdf_file("download", content_type="application/pdf")
    assert not is_pdf_file("paper.txt")


def test_format_attached_file():
    result = extract_text(b"print('hi')")

    formatted = format_attached_file("hello.py", 2048, result)

    assert formatted.startswith('<attached_file name="hello.py" size="2.0KB">')
    assert "print('hi')" in formatted
    assert formatted.endswith("</attached_file>")


def test_format_attached_file_notes_truncation():
    result = extract_text(b"x" * 2000, max_length=1000)
    formatted = format_attached_file("big.txt", 2000, result)
    assert 'note="original 2,000 chars, partially omitted"' in formatted


def test_to_data_url():
    url = to_data_url(b"\x89PNG", "image/png")
    assert url == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode("ascii")
