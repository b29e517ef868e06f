"""Upload server settings.

Every value can be overridden in ``config/.env`` or the environment.
"""

from decouple import Csv
from django.core.exceptions import ImproperlyConfigured

from server.settings.components import config

try:
    # Where the HTTP listener binds; '+' and '*' mean every interface
    UPLOAD_LISTENER_PREFIX = config(
        'UPLOAD_LISTENER_PREFIX',
        default='http://+:8080/upload/',
    )

    # Shared secret compared against the 'key' request header
    UPLOAD_SECRET_KEY = config('UPLOAD_SECRET_KEY', default='')

    UPLOAD_STORAGE_PATH = config('UPLOAD_STORAGE_PATH', default='files')

    # Response bodies: '<base>/<stored name>' or the failure address
    UPLOAD_BASE_ADDRESS = config(
        'UPLOAD_BASE_ADDRESS',
        default='http://localhost',
    )
    UPLOAD_FAILURE_ADDRESS = config(
        'UPLOAD_FAILURE_ADDRESS',
        default='http://localhost/failed.jpg',
    )

    UPLOAD_RETENTION_DAYS = config(
        'UPLOAD_RETENTION_DAYS',
        cast=int,
        default=14,
    )
    UPLOAD_IGNORE_LIST = config(
        'UPLOAD_IGNORE_LIST',
        cast=Csv(),
        default='index.html,style.css,failed.jpg',
    )

    UPLOAD_ONLY_IMAGES = config('UPLOAD_ONLY_IMAGES', cast=bool, default=True)

    UPLOAD_HASH_ALGORITHM = config('UPLOAD_HASH_ALGORITHM', default='sha256')
    UPLOAD_CHUNK_SIZE = config('UPLOAD_CHUNK_SIZE', cast=int, default=1024)
    UPLOAD_MAX_PAYLOAD_BYTES = config(
        'UPLOAD_MAX_PAYLOAD_BYTES',
        cast=int,
        default=32 * 1024 * 1024,
    )
except ValueError as error:
    raise ImproperlyConfigured(
        f'Invalid upload configuration: {error}',
    ) from error
