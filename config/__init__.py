"""Configuration module for loading and managing application settings"""
from typing import Dict, Any
from .lib.load_settings_conf import load_settings_conf, validate_settings, SettingsError, DEFAULTS
import os

__all__ = ['settings_conf', 'default_settings', 'load_settings_conf', 'SettingsError']

SETTINGS_PATH_ENV = 'DATAMONKEY_SETTINGS_PATH'

def default_settings(**overrides: Any) -> Dict[str, Any]:
    """Return validated default settings with optional overrides applied."""
    settings = dict(DEFAULTS)
    settings.update({key: str(value) for key, value in overrides.items()})
    return validate_settings(settings)

try:
    settings_conf: Dict[str, Any] = load_settings_conf(os.environ.get(SETTINGS_PATH_ENV, '.'))

except SettingsError as e:
    # Re-raise the error but provide more context
    raise SettingsError(
        f"Configuration Error\n"
        "=================\n\n"
        f"{str(e)}\n\n"
        "Please ensure settings.conf is properly configured.\n"
        "See examples/settings.conf.example for the available settings."
    )
