"""Exceptions for uploads app.

Every per-request failure derives from :class:`UploadError` so the request
handler can turn it into the uniform failure response.
"""


class UploadError(Exception):
    """Base class for failures that reject a single upload."""


class AuthenticationMismatchError(UploadError):
    """Raised when the request 'key' header does not match the secret."""


class IneligibleContentTypeError(UploadError):
    """Raised when the declared content type is not accepted for storage."""

    def __init__(self, content_type: str) -> None:
        """Initialize IneligibleContentTypeError.

        Args:
            content_type: Content type declared in the part headers.
        """
        self.content_type = content_type
        super().__init__(f'Content type not accepted: {content_type!r}')


class BoundaryNotFoundError(UploadError):
    """Raised when the body ends before an expected boundary or header."""


class MalformedRequestError(UploadError):
    """Raised when the request cannot be parsed as a single-part upload."""


class StorageUnavailableError(UploadError):
    """Raised when the storage directory is missing at write time."""


class PayloadTooLargeError(UploadError):
    """Raised when an extracted payload grows past the configured limit."""

    def __init__(
        self,
        limit_bytes: int,
        received_bytes: int,
    ) -> None:
        """Initialize PayloadTooLargeError.

        Args:
            limit_bytes: Maximum accepted payload size in bytes.
            received_bytes: Bytes accumulated when the limit was hit.
        """
        self.limit_bytes = limit_bytes
        self.received_bytes = received_bytes
        super().__init__(
            f'Payload too large: received at least {received_bytes} bytes, '
            f'limit is {limit_bytes} bytes',
        )
