"""Filesystem storage backend for content-addressed uploads."""

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Final, final, override

from django.core.files.storage import FileSystemStorage

from server.apps.uploads.exceptions import StorageUnavailableError
from server.apps.uploads.models import StoredFile

logger = logging.getLogger(__name__)

_TEMP_PREFIX: Final = '.upload-'
_TEMP_SUFFIX: Final = '.part'


@final
class ContentStore(FileSystemStorage):
    """Flat directory of files named by their content address.

    Extends Django's FileSystemStorage with:
    - First-write-wins puts (an existing name is a dedup hit, not an error)
    - Atomic writes via a temporary file and rename
    - A lock shared with the expiry tracker, so every mutation of the
      directory is serialized
    """

    @override
    def __init__(self, location: str | os.PathLike[str], **kwargs: Any) -> None:
        """Initialize the store.

        Args:
            location: Storage directory.
            kwargs: Extra FileSystemStorage options (e.g. permissions).
        """
        super().__init__(location=location, **kwargs)
        self.lock = threading.RLock()

    def is_available(self) -> bool:
        """Check if the storage directory exists.

        Returns:
            True if the directory exists.
        """
        return os.path.isdir(self.location)

    def ensure_directory(self) -> None:
        """Create the storage directory if it does not exist."""
        os.makedirs(self.location, exist_ok=True)
        logger.info('Storage directory ready: %s', self.location)

    def put(self, name: str, data: bytes) -> bool:
        """Store bytes under name unless a file of that name already exists.

        Args:
            name: Stored file name (content address plus extension).
            data: Payload bytes.

        Returns:
            True if the file was written, False on a dedup hit (the
            existing file is left untouched).

        Raises:
            StorageUnavailableError: If the storage directory is missing.
        """
        with self.lock:
            if not self.is_available():
                raise StorageUnavailableError(
                    f'Storage directory does not exist: {self.location}',
                )

            if self.exists(name):
                logger.info('File already stored, keeping it: %s', name)
                return False

            try:
                logger.info(
                    'Writing file to storage: %s (%d bytes)',
                    name,
                    len(data),
                )
                self._write_atomic(name, data)
            except FileNotFoundError as error:
                # Directory removed between the check and the write
                raise StorageUnavailableError(
                    f'Storage directory disappeared: {self.location}',
                ) from error
            except Exception:
                logger.exception('Failed to write file to storage: %s', name)
                raise
            else:
                logger.info('Successfully stored file: %s', name)
                return True

    @override
    def delete(self, name: str) -> None:
        """Delete a file by name with logging.

        A missing file is not an error.

        Args:
            name: Stored file name.

        Raises:
            Exception: If the filesystem delete fails.
        """
        with self.lock:
            try:
                logger.info('Deleting file from storage: %s', name)
                super().delete(name)
            except Exception:
                logger.exception('Failed to delete file from storage: %s', name)
                raise

    def list_all(self) -> list[tuple[str, float]]:
        """List every stored file with its last write time.

        Returns:
            List of (name, mtime as Unix timestamp) tuples.

        Raises:
            StorageUnavailableError: If the storage directory is missing.
        """
        if not self.is_available():
            raise StorageUnavailableError(
                f'Storage directory does not exist: {self.location}',
            )

        _, file_names = self.listdir('')
        stored = []
        for name in file_names:
            try:
                stored.append((name, self._mtime(name)))
            except FileNotFoundError:
                logger.debug('File vanished while listing: %s', name)
        return stored

    def stored_file(self, name: str) -> StoredFile:
        """Describe a stored file.

        Args:
            name: Stored file name.

        Returns:
            StoredFile with its absolute path and last write time.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        return StoredFile(
            name=name,
            path=Path(self.path(name)),
            written_at=self._mtime(name),
        )

    def _mtime(self, name: str) -> float:
        return os.stat(self.path(name)).st_mtime

    def _write_atomic(self, name: str, data: bytes) -> None:
        """Write to a temporary file and rename it onto the final path.

        Readers never observe a partially written file.
        """
        target = self.path(name)
        descriptor, temp_path = tempfile.mkstemp(
            dir=self.location,
            prefix=_TEMP_PREFIX,
            suffix=_TEMP_SUFFIX,
        )
        try:
            with os.fdopen(descriptor, 'wb') as temp_file:
                temp_file.write(data)
                temp_file.flush()
                os.fsync(temp_file.fileno())
            if self.file_permissions_mode is not None:
                os.chmod(temp_path, self.file_permissions_mode)
            os.replace(temp_path, target)
        except BaseException:
            Path(temp_path).unlink(missing_ok=True)
            raise
