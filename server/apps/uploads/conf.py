"""Validated upload server configuration.

Django settings are read once at startup and frozen into an
:class:`UploadSettings` instance, which is passed explicitly to the
store, the expiry tracker and the request handler.
"""

import hashlib
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Final, NamedTuple, final
from urllib.parse import urlsplit

from django.core.exceptions import ImproperlyConfigured

from server.apps.uploads.models import RetentionPolicy

_ANY_HOST: Final = frozenset(('+', '*'))
_DEFAULT_PORTS: Final = {'http': 80, 'https': 443}
_CRC32: Final = 'crc32'


class ListenerAddress(NamedTuple):
    """Bind address and upload path parsed from the listener prefix."""

    host: str
    port: int
    path: str


def parse_listener_prefix(prefix: str) -> ListenerAddress:
    """Parse a listener prefix such as 'http://+:80/upload/'.

    Args:
        prefix: URL-style prefix. Host '+' or '*' binds every interface.

    Returns:
        ListenerAddress with host, port and the normalized upload path
        (always starting and ending with '/').

    Raises:
        ImproperlyConfigured: If the prefix is not an http(s) URL.
    """
    parts = urlsplit(prefix)
    if parts.scheme not in _DEFAULT_PORTS or not parts.hostname:
        raise ImproperlyConfigured(
            f'UPLOAD_LISTENER_PREFIX must be an http(s) URL: {prefix!r}',
        )

    try:
        port = parts.port or _DEFAULT_PORTS[parts.scheme]
    except ValueError as error:
        raise ImproperlyConfigured(
            f'Invalid port in UPLOAD_LISTENER_PREFIX: {prefix!r}',
        ) from error

    # hostname drops IPv6 brackets, which the socket bind does not accept
    host = parts.hostname
    if host in _ANY_HOST:
        host = '0.0.0.0'  # noqa: S104

    path = '/{0}/'.format(parts.path.strip('/')).replace('//', '/')
    return ListenerAddress(host=host, port=port, path=path)


def _is_fixed_length_digest(algorithm: str) -> bool:
    """Check if an algorithm yields a hex digest without a length argument.

    SHAKE algorithms are listed by hashlib but have a zero digest size.
    """
    if algorithm == _CRC32:
        return True
    if algorithm not in hashlib.algorithms_available:
        return False
    try:
        return hashlib.new(algorithm).digest_size > 0
    except ValueError:
        # Listed but unusable, e.g. blocked by the OpenSSL policy
        return False


@final
@dataclass(frozen=True, slots=True)
class UploadSettings:
    """Process-wide upload configuration, read-only after startup."""

    listener: ListenerAddress
    secret_key: str
    storage_path: Path
    base_address: str
    failure_address: str
    retention: RetentionPolicy
    only_images: bool
    hash_algorithm: str
    chunk_size: int
    max_payload_bytes: int | None

    @classmethod
    def from_settings(cls, settings: Any) -> 'UploadSettings':
        """Build and validate upload settings from Django settings.

        Args:
            settings: Django settings object (or any object exposing the
                UPLOAD_* attributes).

        Returns:
            Validated UploadSettings.

        Raises:
            ImproperlyConfigured: If any value is missing or invalid.
        """
        retention_days = settings.UPLOAD_RETENTION_DAYS
        if retention_days <= 0:
            raise ImproperlyConfigured(
                'UPLOAD_RETENTION_DAYS must be positive, '
                f'got {retention_days}',
            )

        chunk_size = settings.UPLOAD_CHUNK_SIZE
        if chunk_size < 64:  # noqa: WPS432
            raise ImproperlyConfigured(
                f'UPLOAD_CHUNK_SIZE must be at least 64, got {chunk_size}',
            )

        algorithm = settings.UPLOAD_HASH_ALGORITHM.lower()
        if not _is_fixed_length_digest(algorithm):
            raise ImproperlyConfigured(
                f'Unknown UPLOAD_HASH_ALGORITHM: {algorithm!r} '
                '(expected crc32 or a fixed-length hashlib algorithm)',
            )

        if not settings.UPLOAD_FAILURE_ADDRESS:
            raise ImproperlyConfigured('UPLOAD_FAILURE_ADDRESS must be set')

        max_payload = settings.UPLOAD_MAX_PAYLOAD_BYTES
        return cls(
            listener=parse_listener_prefix(settings.UPLOAD_LISTENER_PREFIX),
            secret_key=settings.UPLOAD_SECRET_KEY,
            storage_path=Path(settings.UPLOAD_STORAGE_PATH),
            base_address=settings.UPLOAD_BASE_ADDRESS,
            failure_address=settings.UPLOAD_FAILURE_ADDRESS,
            retention=RetentionPolicy(
                duration=timedelta(days=retention_days),
                ignore_list=frozenset(
                    name.strip()
                    for name in settings.UPLOAD_IGNORE_LIST
                    if name.strip()
                ),
            ),
            only_images=settings.UPLOAD_ONLY_IMAGES,
            hash_algorithm=algorithm,
            chunk_size=chunk_size,
            max_payload_bytes=max_payload if max_payload > 0 else None,
        )
