"""Exception types raised by the ingestion and retrieval pipeline."""


class UnsupportedFileError(Exception):
    """Upload rejected before extraction (disallowed type or signature mismatch)."""

    pass


class PathTraversalError(Exception):
    """Internally generated path resolved outside the upload root."""

    pass


class ToolTimeoutError(Exception):
    """External tool exceeded its hard timeout."""

    pass


class ToolExecutionError(Exception):
    """External tool exited unsuccessfully or could not be started."""

    pass


class IndexingError(Exception):
    """Chunk indexing failed and was rolled back."""

    pass
