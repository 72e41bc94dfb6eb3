"""Unit tests for upload signature validation."""

import pytest

from paperlens.errors import UnsupportedFileError
from paperlens.extraction.signatures import (
    OLE2_MAGIC,
    ZIP_MAGIC,
    extension_for,
    is_legacy_office,
    validate_upload,
)

DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PPT = "application/vnd.ms-powerpoint"


@pytest.mark.parametrize(
    ("mime", "head", "expected"),
    [
        ("application/pdf", b"%PDF-1.7\n", "pdf"),
        (DOCX, ZIP_MAGIC + b"\x14\x00", "doc"),
        ("application/msword", OLE2_MAGIC, "doc"),
        (PPT, OLE2_MAGIC, "ppt"),
        (XLSX, ZIP_MAGIC + b"\x14\x00", "xls"),
        ("application/vnd.ms-excel", OLE2_MAGIC, "xls"),
    ],
)
def test_matching_signature_returns_file_type(mime: str, head: bytes, expected: str) -> None:
    """Test that each allowed type is accepted when its magic bytes match."""
    assert validate_upload(mime, head) == expected


def test_pdf_declared_with_zip_content_is_rejected() -> None:
    """Test that a file declared as PDF but starting with PK is rejected."""
    with pytest.raises(UnsupportedFileError, match="does not match"):
        validate_upload("application/pdf", ZIP_MAGIC + b"\x00\x00\x00\x00")


def test_docx_declared_with_pdf_content_is_rejected() -> None:
    """Test that a renamed PDF cannot pass as a Word document."""
    with pytest.raises(UnsupportedFileError):
        validate_upload(DOCX, b"%PDF-1.4")


def test_unknown_mime_type_is_rejected() -> None:
    """Test that types outside the allow-list are rejected regardless of content."""
    with pytest.raises(UnsupportedFileError, match="Unsupported file type"):
        validate_upload("text/plain", b"%PDF-1.4")


def test_empty_file_is_rejected() -> None:
    """Test that an empty upload cannot match any signature."""
    with pytest.raises(UnsupportedFileError):
        validate_upload("application/pdf", b"")


def test_extension_and_legacy_helpers() -> None:
    """Test the on-disk extension and legacy-binary classification."""
    assert extension_for("application/pdf") == ".pdf"
    assert extension_for(XLSX) == ".xlsx"
    assert is_legacy_office(PPT) is True
    assert is_legacy_office(DOCX) is False
    assert is_legacy_office("text/plain") is False
