"""Business logic for ingesting uploads.

Pipeline: authenticate -> extract payload -> check eligibility ->
derive content address -> store (first write wins) -> schedule expiry.
"""

import hmac
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import final

from server.apps.uploads.conf import UploadSettings
from server.apps.uploads.exceptions import (
    AuthenticationMismatchError,
    IneligibleContentTypeError,
    MalformedRequestError,
    UploadError,
)
from server.apps.uploads.infrastructure.addressing import is_image, stored_name
from server.apps.uploads.infrastructure.multipart import (
    boundary_marker,
    extract_payload,
)
from server.apps.uploads.infrastructure.scanner import Readable
from server.apps.uploads.infrastructure.storage import ContentStore
from server.apps.uploads.logic.expiry import ExpiryTracker
from server.apps.uploads.models import StoredFile

logger = logging.getLogger(__name__)


@final
@dataclass(frozen=True, slots=True)
class UploadRequest:
    """Transport-independent view of an upload request."""

    key: str | None
    content_type: str
    body: Readable
    content_length: int
    encoding: str = 'utf-8'


@final
class UploadService:
    """Ingests uploads into the content store.

    Constructed once at startup and shared by every request thread and
    the expiry worker.
    """

    def __init__(
        self,
        upload_settings: UploadSettings,
        store: ContentStore,
        tracker: ExpiryTracker,
    ) -> None:
        """Initialize the service.

        Args:
            upload_settings: Validated upload configuration.
            store: Content store for payload files.
            tracker: Expiry tracker sharing the store's lock.
        """
        self.settings = upload_settings
        self.store = store
        self.tracker = tracker

    @classmethod
    def from_settings(
        cls,
        upload_settings: UploadSettings,
        clock: Callable[[], float] = time.time,
    ) -> 'UploadService':
        """Wire a store and tracker for the configured storage directory.

        Args:
            upload_settings: Validated upload configuration.
            clock: Returns the current Unix timestamp.

        Returns:
            Ready UploadService (tracker not started, store not scanned).
        """
        store = ContentStore(upload_settings.storage_path)
        tracker = ExpiryTracker(store, upload_settings.retention, clock)
        return cls(upload_settings, store, tracker)

    @property
    def failure_address(self) -> str:
        """Response body for any failed upload."""
        return self.settings.failure_address

    def public_url(self, name: str) -> str:
        """Build the address a stored file is served from.

        Args:
            name: Stored file name.

        Returns:
            '<base address>/<name>'.
        """
        return '{base}/{name}'.format(
            base=self.settings.base_address.rstrip('/'),
            name=name,
        )

    def authenticate(self, provided_key: str | None) -> None:
        """Compare the request key with the shared secret.

        Args:
            provided_key: Value of the 'key' header, None if absent.

        Raises:
            AuthenticationMismatchError: If the key is missing or differs.
        """
        if provided_key is None or not hmac.compare_digest(
            provided_key.encode(),
            self.settings.secret_key.encode(),
        ):
            raise AuthenticationMismatchError('Upload key mismatch')

    def ingest(self, request: UploadRequest) -> StoredFile:
        """Store the payload of an upload request.

        Storing identical bytes again is a dedup hit: the existing file,
        its modification time and its expiry deadline are kept.

        Args:
            request: Upload request.

        Returns:
            StoredFile for the (new or existing) stored payload.

        Raises:
            UploadError: If the request is rejected at any step.
        """
        self.authenticate(request.key)

        if request.content_length <= 0:
            raise MalformedRequestError('Request has no body')

        boundary = boundary_marker(request.content_type, request.encoding)
        payload = extract_payload(
            request.body,
            boundary,
            chunk_size=self.settings.chunk_size,
            max_size=self.settings.max_payload_bytes,
        )

        if self.settings.only_images and not is_image(
            payload.declared_content_type,
        ):
            raise IneligibleContentTypeError(payload.declared_content_type)

        name = stored_name(payload, self.settings.hash_algorithm)

        with self.store.lock:
            created = self.store.put(name, payload.data)
            stored = self.store.stored_file(name)
            # No-op for names already tracked, so a dedup hit keeps its deadline
            self.tracker.schedule(name, stored.written_at)

        logger.info(
            '%s upload %s (%d bytes, %s)',
            'Stored' if created else 'Deduplicated',
            name,
            payload.size_bytes,
            payload.declared_content_type,
        )
        return stored

    def respond(self, request: UploadRequest) -> str:
        """Process an upload and render the response body.

        Args:
            request: Upload request.

        Returns:
            Public URL of the stored file, or the failure address.
        """
        try:
            stored = self.ingest(request)
        except UploadError as error:
            logger.warning(
                'Upload rejected (%s): %s',
                type(error).__name__,
                error,
            )
            return self.failure_address
        return self.public_url(stored.name)
