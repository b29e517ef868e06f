"""Django settings for the upload server.

Settings are split into components and assembled with django-split-settings.
Values come from ``config/.env`` through python-decouple.
"""

from split_settings.tools import include

include(
    'components/common.py',
    'components/logging.py',
    'components/uploads.py',
)
