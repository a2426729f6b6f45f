from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from typing_extensions import runtime_checkable

logger = logging.getLogger("xmpp_config.handlers")
logger.addHandler(logging.NullHandler())


@dataclass(frozen=True)
class UnparsableStanza:
    """A stanza received from the server that could not be parsed."""

    content: str
    error: Exception


@runtime_checkable
class ParsingFailureHandler(Protocol):
    def handle_unparsable_stanza(self, stanza: UnparsableStanza) -> None: ...


class ThrowingHandler:
    """Re-raise the parsing failure, which terminates the active connection."""

    def handle_unparsable_stanza(self, stanza: UnparsableStanza) -> None:
        raise stanza.error

    def __repr__(self) -> str:
        return "ThrowingHandler()"


class LoggingHandler:
    """Log the parsing failure and keep the connection alive."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def handle_unparsable_stanza(self, stanza: UnparsableStanza) -> None:
        self._log.error("Failed to parse stanza %r: %s", stanza.content, stanza.error)

    def __repr__(self) -> str:
        return f"LoggingHandler(log={self._log.name!r})"


class IgnoringHandler:
    """Drop the unparsable stanza; only visible at debug level."""

    def handle_unparsable_stanza(self, stanza: UnparsableStanza) -> None:
        logger.debug("Ignoring unparsable stanza %r: %s", stanza.content, stanza.error)

    def __repr__(self) -> str:
        return "IgnoringHandler()"
