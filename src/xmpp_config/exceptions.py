from __future__ import annotations

from typing import Dict


class ConfigError(Exception):
    """Base config exception."""


class ConfigValidationError(ConfigError):
    """Raised when a setter receives a value that violates the setting's contract."""

    def __init__(
        self, errors: Dict[str, str], key: str | None = None, value: object | None = None
    ) -> None:
        self.errors = errors
        self.key = key
        self.value = value
        msg = f"Validation errors: {errors}"
        if key is not None and value is not None:
            msg += f" (key: {key}, value: {value})"
        super().__init__(msg)


class ConfigAlreadyInitializedError(ConfigError):
    """Raised when the configuration source is changed after it has been loaded."""


class ConfigInitializationError(ConfigError):
    """Raised when loading the configuration aborts."""


class ConfigSourceError(ConfigInitializationError):
    """Raised when a configuration location cannot be opened."""


class ConfigDocumentError(ConfigInitializationError):
    """Raised when the configuration document is not well-formed."""


class ExtensionNotFoundError(ConfigInitializationError):
    """Raised when a mandatory startup extension cannot be resolved."""


class ExtensionLoadError(ConfigInitializationError):
    """Raised when a mandatory startup extension fails to instantiate or initialize."""


class ExtensionDuplicateError(ConfigError):
    """Raised when attempting to register a duplicate extension name."""
