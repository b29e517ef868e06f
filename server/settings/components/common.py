"""Core Django settings."""

from server.settings.components import config

SECRET_KEY = config('DJANGO_SECRET_KEY', default='insecure-upload-server-key')

DEBUG = config('DJANGO_DEBUG', cast=bool, default=False)

ALLOWED_HOSTS = ['*']

INSTALLED_APPS = [
    'server.apps.uploads',
]

# No ORM models: stored files are tracked by the filesystem alone
DATABASES: dict[str, dict[str, str]] = {}

USE_TZ = True
TIME_ZONE = 'UTC'

DEFAULT_CHARSET = 'utf-8'
