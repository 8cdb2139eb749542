"""
Configuration package for deployment settings.

Provides the configuration interface with defaults and an implementation
that reads overrides from the environment (and a ``.env`` file).
"""
from .base import BaseConfiguration, ConfigurationError
from .environment import EnvironmentConfiguration

__all__ = [
    'BaseConfiguration',
    'ConfigurationError',
    'EnvironmentConfiguration'
]
