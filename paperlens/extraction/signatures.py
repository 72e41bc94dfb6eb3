"""Upload type validation: declared MIME type must match the file's magic bytes."""

from paperlens.errors import UnsupportedFileError
from paperlens.models.docs import FileType

PDF_MAGIC = b"%PDF"
ZIP_MAGIC = b"PK\x03\x04"
OLE2_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

# declared MIME type -> (file type tag, required signature, extension)
ALLOWED_TYPES: dict[str, tuple[FileType, bytes, str]] = {
    "application/pdf": ("pdf", PDF_MAGIC, ".pdf"),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": (
        "doc",
        ZIP_MAGIC,
        ".docx",
    ),
    "application/msword": ("doc", OLE2_MAGIC, ".doc"),
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": (
        "ppt",
        ZIP_MAGIC,
        ".pptx",
    ),
    "application/vnd.ms-powerpoint": ("ppt", OLE2_MAGIC, ".ppt"),
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": (
        "xls",
        ZIP_MAGIC,
        ".xlsx",
    ),
    "application/vnd.ms-excel": ("xls", OLE2_MAGIC, ".xls"),
}

SIGNATURE_HEAD_BYTES = 8


def validate_upload(declared_mime: str, head: bytes) -> FileType:
    """Check the declared type is allowed and matches the leading bytes.

    Args:
        declared_mime: MIME type the client sent
        head: First bytes of the file (at least SIGNATURE_HEAD_BYTES)

    Returns:
        File type tag

    Raises:
        UnsupportedFileError: type not allowed, or signature mismatch
    """
    entry = ALLOWED_TYPES.get(declared_mime)
    if entry is None:
        raise UnsupportedFileError(
            "Unsupported file type. Please upload PDF, Word, PowerPoint, or Excel files."
        )

    file_type, signature, _ = entry
    if not head.startswith(signature):
        raise UnsupportedFileError(
            f"File content does not match declared type {declared_mime}."
        )

    return file_type


def extension_for(declared_mime: str) -> str:
    """File extension used when the upload is written to disk."""
    return ALLOWED_TYPES[declared_mime][2]


def is_legacy_office(declared_mime: str) -> bool:
    """Legacy OLE2 binaries need conversion before text extraction."""
    entry = ALLOWED_TYPES.get(declared_mime)
    return entry is not None and entry[1] == OLE2_MAGIC
