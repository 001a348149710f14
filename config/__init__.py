# Configuration module for the session store service
from .settings import Settings, Environment, ConfigurationError, get_settings, validate_startup

__all__ = ["Settings", "Environment", "ConfigurationError", "get_settings", "validate_startup"]
