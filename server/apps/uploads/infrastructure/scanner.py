"""Byte-pattern search over a bounded window of a binary stream.

:func:`find_pattern` is the pure search primitive. :class:`StreamScanner`
wraps a readable stream and keeps at most one chunk plus a short tail of
the previous chunk in memory, so a pattern split across two reads is
still found after the refill.
"""

import logging
from typing import Final, Protocol, final

from server.apps.uploads.exceptions import (
    BoundaryNotFoundError,
    MalformedRequestError,
    PayloadTooLargeError,
)

logger = logging.getLogger(__name__)

NOT_FOUND: Final = -1
DEFAULT_CHUNK_SIZE: Final = 1024
MAX_LINE_LENGTH: Final = 8192

_LINE_FEED: Final = b'\n'
# A part's payload is followed by CRLF before the next boundary
_PART_TRAILER_LENGTH: Final = 2


class Readable(Protocol):
    """Binary stream the scanner pulls chunks from."""

    def read(self, size: int = -1, /) -> bytes: ...  # noqa: D102


class Writable(Protocol):
    """Binary sink the scanner copies payload bytes into."""

    def write(self, data: bytes, /) -> object: ...  # noqa: D102


def find_pattern(
    buffer: bytes | bytearray,
    length: int,
    pattern: bytes,
    start: int = 0,
) -> int:
    """Find the first occurrence of pattern in buffer[start:length].

    Args:
        buffer: Buffer to search. Bytes past ``length`` are ignored.
        length: Number of valid bytes in the buffer.
        pattern: Non-empty byte pattern to look for.
        start: Offset to start searching from.

    Returns:
        Index of the first match, or NOT_FOUND (-1). A pattern longer than
        the available bytes is never found; the caller must refill and
        retry.

    Raises:
        ValueError: If pattern is empty.
    """
    if not pattern:
        raise ValueError('Search pattern must not be empty')

    if length - start < len(pattern):
        return NOT_FOUND
    return buffer.find(pattern, start, length)


@final
class StreamScanner:
    """Stateful scanner that refills its window from a stream on demand.

    The window is ``self._buffer[self._position:]``. Bytes before
    ``self._position`` have been consumed and are dropped on the next
    refill.
    """

    def __init__(
        self,
        stream: Readable,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize the scanner.

        Args:
            stream: Readable binary stream (e.g. a WSGI input stream).
            chunk_size: Number of bytes requested per read.
        """
        if chunk_size <= 0:
            raise ValueError(f'Chunk size must be positive, got {chunk_size}')

        self._stream = stream
        self._chunk_size = chunk_size
        self._buffer = bytearray()
        self._position = 0
        self._exhausted = False
        self.bytes_read = 0

    @property
    def chunk_size(self) -> int:
        """Number of bytes requested per read."""
        return self._chunk_size

    @property
    def window_size(self) -> int:
        """Number of unconsumed bytes currently held in memory."""
        return len(self._buffer) - self._position

    def skip_to(self, pattern: bytes) -> None:
        """Discard bytes up to the next occurrence of pattern.

        On return the window starts at the first byte of the match.

        Args:
            pattern: Byte pattern to find.

        Raises:
            BoundaryNotFoundError: If the stream ends without a match.
        """
        self._check_pattern(pattern)
        tail = len(pattern) - 1

        while True:
            index = find_pattern(
                self._buffer,
                len(self._buffer),
                pattern,
                self._position,
            )
            if index != NOT_FOUND:
                self._position = index
                return

            # Only the tail can still be the start of a split match
            self._position = max(self._position, len(self._buffer) - tail)
            if not self._refill():
                raise BoundaryNotFoundError(
                    f'Boundary {pattern!r} not found in request body',
                )

    def read_line(self, limit: int = MAX_LINE_LENGTH) -> bytes:
        """Consume and return bytes through the next line feed.

        Args:
            limit: Maximum accepted line length in bytes.

        Returns:
            Line bytes including the trailing line feed.

        Raises:
            MalformedRequestError: If the line is longer than ``limit``.
            BoundaryNotFoundError: If the stream ends inside the line.
        """
        scanned = 0
        while True:
            index = self._buffer.find(_LINE_FEED, self._position + scanned)
            if index != NOT_FOUND:
                line = bytes(self._buffer[self._position:index + 1])
                self._position = index + 1
                return line

            scanned = self.window_size
            if scanned > limit:
                raise MalformedRequestError(
                    f'Header line longer than {limit} bytes',
                )
            if not self._refill():
                raise BoundaryNotFoundError(
                    'Request body ended inside the part header block',
                )

    def copy_until(
        self,
        pattern: bytes,
        sink: Writable,
        limit: int | None = None,
    ) -> int:
        """Copy bytes into sink until the next occurrence of pattern.

        The two bytes right before the match (the part's CRLF trailer) are
        not copied. On return the window starts at the first byte of the
        match.

        Args:
            pattern: Byte pattern that ends the copied region.
            sink: Writable binary sink.
            limit: Optional maximum number of bytes to copy.

        Returns:
            Number of bytes written to sink.

        Raises:
            BoundaryNotFoundError: If the stream ends without a match.
            PayloadTooLargeError: If more than ``limit`` bytes would be copied.
        """
        self._check_pattern(pattern)
        # Keep enough tail to find a split match and still drop its CRLF
        hold = len(pattern) - 1 + _PART_TRAILER_LENGTH
        written = 0

        while True:
            index = find_pattern(
                self._buffer,
                len(self._buffer),
                pattern,
                self._position,
            )
            if index != NOT_FOUND:
                end = max(index - _PART_TRAILER_LENGTH, self._position)
                written += self._emit(sink, end, written, limit)
                self._position = index
                return written

            flush_end = len(self._buffer) - hold
            if flush_end > self._position:
                written += self._emit(sink, flush_end, written, limit)
            if not self._refill():
                raise BoundaryNotFoundError(
                    f'Closing boundary {pattern!r} not found in request body',
                )

    def _emit(
        self,
        sink: Writable,
        end: int,
        written: int,
        limit: int | None,
    ) -> int:
        size = end - self._position
        if limit is not None and written + size > limit:
            raise PayloadTooLargeError(
                limit_bytes=limit,
                received_bytes=written + size,
            )
        if size:
            sink.write(bytes(self._buffer[self._position:end]))
        self._position = end
        return size

    def _refill(self) -> bool:
        """Drop consumed bytes and append the next chunk from the stream.

        Returns:
            False once the stream is exhausted.
        """
        if self._exhausted:
            return False

        chunk = self._stream.read(self._chunk_size)
        if not chunk:
            self._exhausted = True
            logger.debug('Stream exhausted after %d bytes', self.bytes_read)
            return False

        del self._buffer[:self._position]
        self._position = 0
        self._buffer += chunk
        self.bytes_read += len(chunk)
        return True

    def _check_pattern(self, pattern: bytes) -> None:
        if not pattern:
            raise ValueError('Search pattern must not be empty')
        if len(pattern) >= self._chunk_size:
            raise ValueError(
                f'Pattern of {len(pattern)} bytes does not fit a '
                f'{self._chunk_size}-byte scan window',
            )
