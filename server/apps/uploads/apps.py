"""Django app configuration for uploads app."""

from django.apps import AppConfig


class UploadsConfig(AppConfig):
    """Configuration for uploads app.

    Upload settings are validated by the management commands, so a bad
    value is reported as a command error instead of failing setup.
    """

    name = 'server.apps.uploads'
    verbose_name = 'Uploads'
