"""Content addressing utilities for uploaded payloads."""

import hashlib
import mimetypes
import zlib
from typing import Final

from server.apps.uploads.models import ExtractedPayload

DEFAULT_ALGORITHM: Final = 'sha256'
IMAGE_CONTENT_TYPES: Final = frozenset(('image/png', 'image/jpeg'))

_CRC32: Final = 'crc32'
# mimetypes may pick '.jpe' or '.jpeg' depending on the platform tables
_KNOWN_EXTENSIONS: Final = {
    'image/png': '.png',
    'image/jpeg': '.jpg',
}


def content_address(data: bytes, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Calculate the content address of a payload.

    Args:
        data: Payload bytes.
        algorithm: Any hashlib algorithm name, or 'crc32' for the 32-bit
            checksum names used by older deployments.

    Returns:
        Lowercase hex digest for hashlib algorithms; uppercase hex without
        padding for 'crc32'.
    """
    if algorithm == _CRC32:
        return format(zlib.crc32(data), 'X')
    return hashlib.new(algorithm, data).hexdigest()


def extension_for(content_type: str) -> str:
    """Derive a file extension from a declared content type.

    Args:
        content_type: MIME type, e.g. 'image/png'.

    Returns:
        Extension with leading dot (e.g. '.png'), or '' if unknown.
    """
    media_type = content_type.split(';', 1)[0].strip().lower()
    if media_type in _KNOWN_EXTENSIONS:
        return _KNOWN_EXTENSIONS[media_type]
    return mimetypes.guess_extension(media_type) or ''


def is_image(content_type: str) -> bool:
    """Check if a declared content type is an accepted image type.

    Args:
        content_type: MIME type from the part headers.

    Returns:
        True for image/png and image/jpeg.
    """
    return content_type in IMAGE_CONTENT_TYPES


def stored_name(
    payload: ExtractedPayload,
    algorithm: str = DEFAULT_ALGORITHM,
) -> str:
    """Build the storage file name for a payload.

    Example: PNG bytes -> '9f86d081...0f00a08.png'

    Args:
        payload: Extracted payload.
        algorithm: Hash algorithm passed to content_address().

    Returns:
        Content address followed by the extension.
    """
    address = content_address(payload.data, algorithm)
    return f'{address}{extension_for(payload.declared_content_type)}'
