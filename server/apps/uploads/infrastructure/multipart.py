"""Extraction of a single file part from a multipart/form-data body.

Only the first part is parsed. Its header block is expected to be exactly
the boundary line, Content-Disposition, Content-Type and a blank line,
which is what screenshot upload clients send.
"""

import io
import logging
from typing import Final

from django.utils.http import parse_header_parameters

from server.apps.uploads.exceptions import MalformedRequestError
from server.apps.uploads.infrastructure.scanner import (
    DEFAULT_CHUNK_SIZE,
    Readable,
    StreamScanner,
)
from server.apps.uploads.models import ExtractedPayload

logger = logging.getLogger(__name__)

_HEADER_LINES: Final = 4  # boundary, Content-Disposition, Content-Type, blank
_CONTENT_TYPE_LINE: Final = 2
_BOUNDARY_PREFIX: Final = '--'
_HEADER_ENCODING: Final = 'latin-1'


def boundary_marker(content_type: str, encoding: str = 'utf-8') -> bytes:
    """Build the boundary byte sequence from a request Content-Type.

    Args:
        content_type: Raw Content-Type header value, e.g.
            'multipart/form-data; boundary=XYZ'.
        encoding: Charset used to encode the boundary token.

    Returns:
        Boundary bytes as they appear in the body ('--' + token).

    Raises:
        MalformedRequestError: If there is no usable boundary parameter.
    """
    _, params = parse_header_parameters(content_type or '')
    token = params.get('boundary')
    if not token:
        raise MalformedRequestError(
            f'No boundary parameter in Content-Type: {content_type!r}',
        )

    try:
        return f'{_BOUNDARY_PREFIX}{token}'.encode(encoding)
    except (LookupError, UnicodeEncodeError) as error:
        raise MalformedRequestError(
            f'Cannot encode boundary with charset {encoding!r}',
        ) from error


def extract_payload(
    stream: Readable,
    boundary: bytes | str,
    *,
    encoding: str = 'utf-8',
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_size: int | None = None,
) -> ExtractedPayload:
    """Extract the first part's bytes and declared content type.

    Reads the stream in ``chunk_size`` chunks and never holds more than
    one chunk plus a boundary-sized tail of unscanned body in memory.

    Args:
        stream: Readable request body.
        boundary: Boundary marker including the leading '--'. A str is
            encoded with ``encoding``.
        encoding: Charset for a str boundary.
        chunk_size: Bytes requested per read from the stream.
        max_size: Optional payload size limit in bytes.

    Returns:
        ExtractedPayload with the part body (without its CRLF trailer).

    Raises:
        MalformedRequestError: If the boundary does not fit the scan window
            or a header line is too long.
        BoundaryNotFoundError: If the opening or closing boundary, or the
            end of the header block, is missing.
        PayloadTooLargeError: If the payload exceeds ``max_size``.
    """
    if isinstance(boundary, str):
        boundary = boundary.encode(encoding)
    if not boundary or len(boundary) >= chunk_size:
        raise MalformedRequestError(
            f'Boundary must be 1 to {chunk_size - 1} bytes, '
            f'got {len(boundary)}',
        )

    scanner = StreamScanner(stream, chunk_size)
    scanner.skip_to(boundary)

    declared_content_type = ''
    for line_number in range(_HEADER_LINES):
        line = scanner.read_line()
        if line_number == _CONTENT_TYPE_LINE:
            declared_content_type = _header_value(line)

    sink = io.BytesIO()
    size = scanner.copy_until(boundary, sink, limit=max_size)

    logger.debug(
        'Extracted %d byte payload (%s) from %d body bytes read',
        size,
        declared_content_type or 'no content type',
        scanner.bytes_read,
    )
    return ExtractedPayload(
        data=sink.getvalue(),
        declared_content_type=declared_content_type,
    )


def _header_value(line: bytes) -> str:
    """Return the trimmed value after the first ':' of a header line."""
    _, separator, value = line.decode(_HEADER_ENCODING).partition(':')
    if not separator:
        return ''
    return value.strip()
