"""Shared fixtures for uploads app tests."""

import os
import time
from datetime import timedelta

import pytest

from server.apps.uploads.conf import ListenerAddress, UploadSettings
from server.apps.uploads.infrastructure.storage import ContentStore
from server.apps.uploads.logic.expiry import ExpiryTracker
from server.apps.uploads.logic.upload_operations import UploadService
from server.apps.uploads.models import RetentionPolicy

RETENTION = timedelta(days=14)
IGNORE_LIST = frozenset(('index.html', 'style.css', 'failed.jpg'))
SECRET = 'sekrit'
BASE_ADDRESS = 'http://img.example.com'
FAILURE_ADDRESS = 'http://img.example.com/failed.jpg'

# Minimal PNG signature plus a fake IHDR chunk
PNG_BYTES = b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR' + bytes(range(256)) * 8


class FakeClock:
    """Manually advanced replacement for time.time()."""

    def __init__(self, now: float) -> None:
        """Initialize the clock at a fixed timestamp."""
        self.now = now

    def __call__(self) -> float:
        """Return the current fake time."""
        return self.now

    def advance(self, seconds: float) -> None:
        """Move the clock forward."""
        self.now += seconds


def build_multipart_body(
    payload: bytes,
    boundary: str = 'XYZ',
    content_type: str = 'image/png',
    filename: str = 'screenshot.png',
    preamble: bytes = b'',
) -> bytes:
    """Build a single-part multipart/form-data body like ShareX sends."""
    return b''.join((
        preamble,
        f'--{boundary}\r\n'.encode(),
        (
            'Content-Disposition: form-data; name="sharex"; '
            f'filename="{filename}"\r\n'
        ).encode(),
        f'Content-Type: {content_type}\r\n'.encode(),
        b'\r\n',
        payload,
        f'\r\n--{boundary}--\r\n'.encode(),
    ))


def set_age(path: os.PathLike[str], seconds: float) -> None:
    """Set a file's mtime to the given number of seconds in the past."""
    timestamp = time.time() - seconds
    os.utime(path, (timestamp, timestamp))


@pytest.fixture
def multipart_body():
    """Builder for synthetic multipart bodies.

    Returns:
        build_multipart_body function.
    """
    return build_multipart_body


@pytest.fixture
def png_bytes():
    """Sample PNG-looking payload larger than the default chunk size.

    Returns:
        Payload bytes.
    """
    return PNG_BYTES


@pytest.fixture
def store_dir(tmp_path):
    """Create an empty storage directory.

    Returns:
        Path of the directory.
    """
    directory = tmp_path / 'files'
    directory.mkdir()
    return directory


@pytest.fixture
def store(store_dir):
    """Create content store over the temporary directory.

    Returns:
        ContentStore instance.
    """
    return ContentStore(store_dir)


@pytest.fixture
def policy():
    """Retention policy matching the default configuration.

    Returns:
        RetentionPolicy with 14 days retention.
    """
    return RetentionPolicy(duration=RETENTION, ignore_list=IGNORE_LIST)


@pytest.fixture
def clock():
    """Fake clock starting at the current time.

    Returns:
        FakeClock instance.
    """
    return FakeClock(time.time())


@pytest.fixture
def tracker(store, policy, clock):
    """Create expiry tracker driven by the fake clock.

    Yields:
        ExpiryTracker instance (stopped on teardown).
    """
    expiry_tracker = ExpiryTracker(store, policy, clock)
    yield expiry_tracker
    expiry_tracker.stop()


@pytest.fixture
def upload_settings(store_dir, policy):
    """Upload settings pointing at the temporary store.

    Returns:
        UploadSettings instance.
    """
    return UploadSettings(
        listener=ListenerAddress(host='127.0.0.1', port=8080, path='/upload/'),
        secret_key=SECRET,
        storage_path=store_dir,
        base_address=BASE_ADDRESS,
        failure_address=FAILURE_ADDRESS,
        retention=policy,
        only_images=True,
        hash_algorithm='sha256',
        chunk_size=1024,
        max_payload_bytes=1024 * 1024,
    )


@pytest.fixture
def service(upload_settings, clock):
    """Create upload service over the temporary store.

    Returns:
        UploadService instance.
    """
    return UploadService.from_settings(upload_settings, clock=clock)


@pytest.fixture
def age_file():
    """Helper that backdates a file's modification time.

    Returns:
        set_age function taking (path, seconds).
    """
    return set_age


@pytest.fixture
def upload_django_settings(settings, store_dir):
    """Point Django upload settings at the temporary store.

    Returns:
        pytest-django settings wrapper.
    """
    settings.UPLOAD_LISTENER_PREFIX = 'http://127.0.0.1:8080/upload/'
    settings.UPLOAD_SECRET_KEY = SECRET
    settings.UPLOAD_STORAGE_PATH = str(store_dir)
    settings.UPLOAD_BASE_ADDRESS = BASE_ADDRESS
    settings.UPLOAD_FAILURE_ADDRESS = FAILURE_ADDRESS
    settings.UPLOAD_RETENTION_DAYS = RETENTION.days
    settings.UPLOAD_IGNORE_LIST = sorted(IGNORE_LIST)
    settings.UPLOAD_ONLY_IMAGES = True
    settings.UPLOAD_HASH_ALGORITHM = 'sha256'
    settings.UPLOAD_CHUNK_SIZE = 1024
    settings.UPLOAD_MAX_PAYLOAD_BYTES = 1024 * 1024
    return settings
