"""Shared helpers for settings components."""

import logging
import shutil
from pathlib import Path
from typing import Final

from decouple import AutoConfig

logger = logging.getLogger(__name__)

# Repository root: server/settings/components/__init__.py -> ../../../..
BASE_DIR: Final = Path(__file__).parent.parent.parent.parent

CONFIG_DIR: Final = BASE_DIR.joinpath('config')
_ENV_FILE: Final = CONFIG_DIR.joinpath('.env')
_ENV_TEMPLATE: Final = CONFIG_DIR.joinpath('.env.template')


def ensure_config_file(
    env_file: Path = _ENV_FILE,
    template: Path = _ENV_TEMPLATE,
) -> bool:
    """Generate the config file from its template when it is missing.

    Args:
        env_file: Path of the config file decouple reads.
        template: Path of the committed template with default values.

    Returns:
        True if a new config file was written, False if one already existed.
    """
    if env_file.exists():
        return False

    env_file.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(template, env_file)
    logger.warning(
        'Config file %s not found, generated defaults from %s',
        env_file,
        template,
    )
    return True


ensure_config_file()

config = AutoConfig(search_path=CONFIG_DIR)
