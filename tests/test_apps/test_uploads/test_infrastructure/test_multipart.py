"""Tests for multipart payload extraction."""

from io import BytesIO

import pytest

from server.apps.uploads.exceptions import (
    BoundaryNotFoundError,
    MalformedRequestError,
    PayloadTooLargeError,
)
from server.apps.uploads.infrastructure.multipart import (
    boundary_marker,
    extract_payload,
)


class TestBoundaryMarker:
    """Tests for boundary_marker()."""

    def test_parses_boundary_parameter(self):
        """Test boundary token is prefixed with '--'."""
        marker = boundary_marker('multipart/form-data; boundary=XYZ')

        assert marker == b'--XYZ'

    def test_quoted_boundary(self):
        """Test quoted boundary values are unquoted."""
        marker = boundary_marker(
            'multipart/form-data; boundary="----Sharex123"',
        )

        assert marker == b'------Sharex123'

    def test_missing_boundary(self):
        """Test MalformedRequestError without a boundary parameter."""
        with pytest.raises(MalformedRequestError, match='No boundary'):
            boundary_marker('multipart/form-data')

    def test_empty_content_type(self):
        """Test MalformedRequestError for an empty Content-Type."""
        with pytest.raises(MalformedRequestError):
            boundary_marker('')

    def test_unknown_charset(self):
        """Test MalformedRequestError for an unusable charset."""
        with pytest.raises(MalformedRequestError, match='charset'):
            boundary_marker(
                'multipart/form-data; boundary=XYZ',
                encoding='no-such-charset',
            )


class TestExtractPayload:
    """Tests for extract_payload()."""

    def test_small_payload(self, multipart_body):
        """Test extracting a payload smaller than one chunk."""
        body = multipart_body(b'tiny image')

        payload = extract_payload(BytesIO(body), b'--XYZ')

        assert payload.data == b'tiny image'
        assert payload.declared_content_type == 'image/png'

    def test_payload_larger_than_chunk(self, multipart_body, png_bytes):
        """Test extracting a payload spanning many chunks."""
        body = multipart_body(png_bytes)

        payload = extract_payload(BytesIO(body), b'--XYZ', chunk_size=64)

        assert payload.data == png_bytes
        assert payload.size_bytes == len(png_bytes)

    @pytest.mark.parametrize('chunk_size', range(16, 48))
    def test_boundary_straddles_refill(self, multipart_body, chunk_size):
        """Test every split position of the closing boundary."""
        data = b'0123456789abcdef' * 5
        body = multipart_body(data)

        payload = extract_payload(
            BytesIO(body),
            b'--XYZ',
            chunk_size=chunk_size,
        )

        assert payload.data == data

    def test_payload_with_crlf_and_partial_boundary(self, multipart_body):
        """Test bytes resembling the boundary do not end the payload."""
        data = b'line one\r\n--XY\r\n-XYZ\r\n--xyz\r\nend'
        body = multipart_body(data)

        payload = extract_payload(BytesIO(body), b'--XYZ', chunk_size=16)

        assert payload.data == data

    def test_empty_payload(self, multipart_body):
        """Test an empty part yields empty bytes."""
        body = multipart_body(b'')

        payload = extract_payload(BytesIO(body), b'--XYZ')

        assert payload.data == b''

    def test_preamble_is_skipped(self, multipart_body):
        """Test bytes before the opening boundary are ignored."""
        body = multipart_body(
            b'payload',
            preamble=b'This is a preamble.\r\n' * 100,
        )

        payload = extract_payload(BytesIO(body), b'--XYZ', chunk_size=32)

        assert payload.data == b'payload'

    def test_str_boundary_is_encoded(self, multipart_body):
        """Test a str boundary is encoded with the given charset."""
        body = multipart_body(b'payload')

        payload = extract_payload(BytesIO(body), '--XYZ', encoding='ascii')

        assert payload.data == b'payload'

    def test_declared_content_type_is_trimmed(self, multipart_body):
        """Test content type value is taken after ':' and stripped."""
        body = multipart_body(b'jpeg', content_type='image/jpeg   ')

        payload = extract_payload(BytesIO(body), b'--XYZ')

        assert payload.declared_content_type == 'image/jpeg'

    def test_missing_opening_boundary(self):
        """Test BoundaryNotFoundError when no boundary is present."""
        with pytest.raises(BoundaryNotFoundError):
            extract_payload(BytesIO(b'not multipart at all'), b'--XYZ')

    def test_missing_closing_boundary(self, multipart_body):
        """Test BoundaryNotFoundError for a truncated body."""
        body = multipart_body(b'payload' * 50)
        truncated = body[:body.rindex(b'--XYZ')]

        with pytest.raises(BoundaryNotFoundError):
            extract_payload(BytesIO(truncated), b'--XYZ', chunk_size=32)

    def test_truncated_header_block(self):
        """Test BoundaryNotFoundError when the body ends in the headers."""
        body = b'--XYZ\r\nContent-Disposition: form-data\r\n'

        with pytest.raises(BoundaryNotFoundError, match='header block'):
            extract_payload(BytesIO(body), b'--XYZ')

    def test_boundary_too_long_for_window(self, multipart_body):
        """Test MalformedRequestError when the boundary fills a chunk."""
        boundary = 'B' * 40
        body = multipart_body(b'payload', boundary=boundary)

        with pytest.raises(MalformedRequestError, match='Boundary must be'):
            extract_payload(
                BytesIO(body),
                f'--{boundary}',
                chunk_size=32,
            )

    def test_max_size_exceeded(self, multipart_body, png_bytes):
        """Test PayloadTooLargeError when the payload exceeds max_size."""
        body = multipart_body(png_bytes)

        with pytest.raises(PayloadTooLargeError):
            extract_payload(BytesIO(body), b'--XYZ', max_size=100)
