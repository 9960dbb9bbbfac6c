"""Configuration for the ledger server: layered settings plus default constants."""

from .settings import Settings, get_settings, configure_system
from .constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_USER_ID,
    DEFAULT_REPOSITORY_TYPE,
    VERSION,
)

__all__ = [
    'Settings',
    'get_settings',
    'configure_system',
    'DEFAULT_HOST',
    'DEFAULT_PORT',
    'DEFAULT_USER_ID',
    'DEFAULT_REPOSITORY_TYPE',
    'VERSION',
]
