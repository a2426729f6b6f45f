"""
xmpp_config: process-wide settings for an XMPP client library.

- Loads a configuration document lazily, exactly once, on first access.
- Sources in precedence order: explicit API call, XMPP_CONFIG_FILE, embedded default.
- Tolerates malformed element values; aborts only on structural or mandatory failures.
- Loads startup extensions named in the document, from a registry or by import path.
"""

from __future__ import annotations

from xmpp_config.config import VERSION, ClientConfiguration
from xmpp_config.exceptions import (
    ConfigAlreadyInitializedError,
    ConfigDocumentError,
    ConfigError,
    ConfigInitializationError,
    ConfigSourceError,
    ConfigValidationError,
    ExtensionDuplicateError,
    ExtensionLoadError,
    ExtensionNotFoundError,
)
from xmpp_config.extensions import EXTENSIONS, Initializer, extension, register_extension
from xmpp_config.handlers import (
    IgnoringHandler,
    LoggingHandler,
    ParsingFailureHandler,
    ThrowingHandler,
    UnparsableStanza,
)
from xmpp_config.report import LoadReport, Outcome, OutcomeKind
from xmpp_config.sources import resolve_stream

# Process-wide instance; nothing is loaded until its first accessor call
Configuration = ClientConfiguration()

__all__ = [
    "Configuration",
    "ClientConfiguration",
    "VERSION",
    "ConfigError",
    "ConfigValidationError",
    "ConfigAlreadyInitializedError",
    "ConfigInitializationError",
    "ConfigSourceError",
    "ConfigDocumentError",
    "ExtensionNotFoundError",
    "ExtensionLoadError",
    "ExtensionDuplicateError",
    "EXTENSIONS",
    "Initializer",
    "extension",
    "register_extension",
    "ParsingFailureHandler",
    "ThrowingHandler",
    "LoggingHandler",
    "IgnoringHandler",
    "UnparsableStanza",
    "LoadReport",
    "Outcome",
    "OutcomeKind",
    "resolve_stream",
]
