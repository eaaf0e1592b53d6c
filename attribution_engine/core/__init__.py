"""
Core infrastructure package for the attribution engine.

Provides:
- Configuration management via pydantic-settings
- The ConfigurationError raised for invalid caller input

Components Re-exported:
    Settings: Pydantic settings class with every tunable constant
    get_settings: Function returning the cached Settings singleton
    ConfigurationError: ValueError subclass for caller errors

Usage:
    from attribution_engine.core import get_settings, ConfigurationError
"""

# =============================================================================
# Re-exports from attribution_engine.core.config
# =============================================================================
from attribution_engine.core.config import Settings, get_settings

# =============================================================================
# Re-exports from attribution_engine.core.exceptions
# =============================================================================
from attribution_engine.core.exceptions import ConfigurationError

__all__ = [
    'Settings',
    'get_settings',
    'ConfigurationError',
]
