"""WSGI application factory for the upload endpoint.

Requests are wrapped in Django's WSGIRequest for header and stream
access. The body is never parsed by Django: the multipart extractor
reads it directly in bounded chunks.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any, final

from django.conf import settings
from django.core.handlers.wsgi import WSGIRequest
from django.http import (
    HttpRequest,
    HttpResponse,
    HttpResponseBase,
    HttpResponseNotAllowed,
    HttpResponseNotFound,
)

from server.apps.uploads.logic.upload_operations import (
    UploadRequest,
    UploadService,
)

logger = logging.getLogger(__name__)

_KEY_HEADER = 'key'
_PLAIN_TEXT = 'text/plain; charset=utf-8'

StartResponse = Callable[..., Any]


@final
class UploadApplication:
    """WSGI callable that accepts uploads under a single path prefix.

    Every POST gets a 200 response whose body is either the stored file's
    URL or the failure address. Failures are never signalled through the
    status code.
    """

    def __init__(self, service: UploadService, upload_path: str) -> None:
        """Initialize the application.

        Args:
            service: Upload service shared by all requests.
            upload_path: Path prefix accepting uploads, e.g. '/upload/'.
        """
        self._service = service
        self._upload_path = upload_path

    def __call__(
        self,
        environ: dict[str, Any],
        start_response: StartResponse,
    ) -> Iterable[bytes]:
        """Handle one WSGI request.

        Args:
            environ: WSGI environ dictionary.
            start_response: WSGI start_response callable.

        Returns:
            Response body iterable.
        """
        request = WSGIRequest(environ)
        response = self.get_response(request)

        status = f'{response.status_code} {response.reason_phrase}'
        start_response(status, list(response.items()))
        return response

    def get_response(self, request: HttpRequest) -> HttpResponseBase:
        """Route a request and produce its response.

        Args:
            request: Django request wrapping the WSGI environ.

        Returns:
            Django response.
        """
        if not self._matches_path(request.path_info):
            return HttpResponseNotFound(
                'Not found',
                content_type=_PLAIN_TEXT,
            )

        if request.method != 'POST':
            return HttpResponseNotAllowed(['POST'])

        try:
            body = self._service.respond(_to_upload_request(request))
        except Exception:
            # Keep serving: one broken request must not stop the listener
            logger.exception('Unhandled error while processing upload')
            body = self._service.failure_address

        return HttpResponse(body, content_type=_PLAIN_TEXT)

    def _matches_path(self, path_info: str) -> bool:
        return path_info.startswith(self._upload_path) or (
            path_info == self._upload_path.rstrip('/')
        )


def _to_upload_request(request: HttpRequest) -> UploadRequest:
    try:
        content_length = int(request.META.get('CONTENT_LENGTH') or 0)
    except ValueError:
        content_length = 0

    return UploadRequest(
        key=request.headers.get(_KEY_HEADER),
        content_type=request.META.get('CONTENT_TYPE', ''),
        body=request,
        content_length=content_length,
        encoding=request.encoding or settings.DEFAULT_CHARSET,
    )


def create_upload_app(
    service: UploadService,
    upload_path: str | None = None,
) -> UploadApplication:
    """Create the upload WSGI application.

    Args:
        service: Upload service shared by all requests.
        upload_path: Path prefix accepting uploads. Defaults to the path
            of the configured listener prefix.

    Returns:
        Configured UploadApplication.
    """
    path = upload_path or service.settings.listener.path
    logger.info('Creating upload application for path %s', path)
    return UploadApplication(service, path)
