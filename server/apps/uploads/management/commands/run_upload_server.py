"""Django management command to run the upload server."""

import logging
from typing import Any, Final, final, override

from cheroot.wsgi import Server as WSGIServer
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.management.base import BaseCommand, CommandError

from server.apps.uploads.conf import UploadSettings
from server.apps.uploads.logic.upload_operations import UploadService
from server.apps.uploads.wsgi_app import create_upload_app

logger = logging.getLogger(__name__)

_DEFAULT_THREADS: Final = 10


@final
class Command(BaseCommand):
    """Run the upload server using cheroot WSGI server."""

    help = 'Run the content-addressed upload server'

    @override
    def add_arguments(self, parser: Any) -> None:
        """Add command arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--host',
            type=str,
            default=None,
            help='Host to bind to (default: from UPLOAD_LISTENER_PREFIX)',
        )
        parser.add_argument(
            '--port',
            type=int,
            default=None,
            help='Port to bind to (default: from UPLOAD_LISTENER_PREFIX)',
        )
        parser.add_argument(
            '--threads',
            type=int,
            default=_DEFAULT_THREADS,
            help=f'Request worker threads (default: {_DEFAULT_THREADS})',
        )

    @override
    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the command.

        Startup order: validate config, ensure the storage directory,
        reconcile expiry state from the filesystem, start the expiry
        worker, then serve.

        Args:
            args: Positional arguments.
            options: Keyword arguments from command line.

        Raises:
            CommandError: If the configuration is invalid.
        """
        try:
            upload_settings = UploadSettings.from_settings(settings)
        except ImproperlyConfigured as error:
            raise CommandError(f'Invalid configuration: {error}') from error

        service = UploadService.from_settings(upload_settings)
        service.store.ensure_directory()

        report = service.tracker.reconcile()
        self.stdout.write(
            f'Removed {len(report.removed)} expired files, '
            f'tracking {report.scheduled}',
        )
        service.tracker.start()

        host = options['host'] or upload_settings.listener.host
        port = options['port'] or upload_settings.listener.port

        server = WSGIServer(
            bind_addr=(host, port),
            wsgi_app=create_upload_app(service),
            numthreads=options['threads'],
        )
        server.server_name = 'sharexserv'

        self.stdout.write(
            self.style.SUCCESS(
                f'Starting upload server on {host}:{port}'
                f'{upload_settings.listener.path}',
            ),
        )

        try:
            logger.info('Upload server starting on %s:%d', host, port)
            server.start()
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('\nShutting down...'))
        finally:
            server.stop()
            service.tracker.stop()
            self.stdout.write(self.style.SUCCESS('Upload server stopped'))
