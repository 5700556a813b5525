# src/landprep/config/exceptions.py
"""Errors raised while locating, merging or validating the YAML configuration."""


class ConfigurationError(Exception):
    """The configuration could not be turned into an AppConfig"""


class ConfigurationNotFoundError(ConfigurationError):
    """A file passed with --config does not exist"""


class ConfigurationValidationError(ConfigurationError):
    """A ${VAR} reference is unset or a value fails model validation"""
