"""Management command to remove expired uploads from the store."""

import logging
from typing import Any

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.management.base import BaseCommand, CommandError

from server.apps.uploads.conf import UploadSettings
from server.apps.uploads.exceptions import StorageUnavailableError
from server.apps.uploads.logic.upload_operations import UploadService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Delete stored files older than the retention period."""

    help = 'Remove uploads older than UPLOAD_RETENTION_DAYS'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without deleting',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the cleanup command.

        Args:
            args: Positional arguments (unused).
            options: Command options.

        Raises:
            CommandError: If the configuration is invalid or the storage
                directory is missing.
        """
        dry_run = options['dry_run']

        try:
            upload_settings = UploadSettings.from_settings(settings)
        except ImproperlyConfigured as error:
            raise CommandError(f'Invalid configuration: {error}') from error

        service = UploadService.from_settings(upload_settings)
        retention_days = upload_settings.retention.duration.days

        self.stdout.write(
            f'Looking for files in {service.store.location} '
            f'older than {retention_days} days',
        )

        try:
            report = service.tracker.reconcile(dry_run=dry_run)
        except StorageUnavailableError as error:
            raise CommandError(str(error)) from error

        for name in report.removed:
            if dry_run:
                self.stdout.write(f'Would remove: {name}')
            else:
                self.stdout.write(f'Removed: {name}')

        if dry_run:
            self.stdout.write(
                self.style.SUCCESS(
                    f'Would remove {len(report.removed)} expired files',
                ),
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f'Removed {len(report.removed)} expired files, '
                    f'{report.scheduled} still within retention',
                ),
            )
