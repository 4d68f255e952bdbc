"""Error kinds raised by the upload broker and the client session."""


class UploadError(Exception):
    """Base class for upload failures."""


class UnsupportedFileType(UploadError):
    """File type is refused outright (vector images)."""

    def __init__(self, mime_type: str, message: str | None = None) -> None:
        self.mime_type = mime_type
        super().__init__(
            message
            or "SVG files are not allowed for security reasons. "
            "See https://www.fortinet.com/blog/threat-research/scalable-vector-graphics-attack-surface-anatomy"
        )


class UploadValidationError(UploadError):
    """File does not satisfy the accept filter or the size limit."""


class StoreCommunicationError(UploadError):
    """Reading or writing the bucket policy, or signing a URL, failed."""


class UploadTransportError(UploadError):
    """The raw PUT to the presigned URL failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class KeyUnavailableError(UploadError):
    """Finalization ran without an issued key for the session."""
