from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from functools import partial
from typing import IO, Any, Callable, Dict, Optional, Union

from xmpp_config.exceptions import ConfigDocumentError, ConfigSourceError
from xmpp_config.extensions import ExtensionLoader
from xmpp_config.report import LoadReport, Outcome, applied, fatal, recovered
from xmpp_config.settings import (
    AUTO_ENABLE_ENTITY_CAPS,
    PACKET_COLLECTOR_SIZE,
    REPLY_TIMEOUT,
    SOCKS5_PROXY_ENABLED,
    SOCKS5_PROXY_PORT,
    SettingsStore,
)
from xmpp_config.utils import _local_name, _parse_bool, _parse_int

logger = logging.getLogger("xmpp_config.parser")
logger.addHandler(logging.NullHandler())

__all__ = ["DocumentParser", "DEFAULT_CHUNK_SIZE"]

DEFAULT_CHUNK_SIZE = 8192

# Depth of the elements the parser acts on: direct children of the document root.
_TOP_LEVEL = 2

_CONTAINERS = {
    "startupClasses": False,
    "optionalStartupClasses": True,
}
_CLASS_NAME = "className"

Stream = IO[Any]
ElementHandler = Callable[[str, Optional[str]], Outcome]


@dataclass
class _Container:
    name: str
    depth: int
    optional: bool


class DocumentParser:
    """Stream a configuration document into a SettingsStore.

    The document is fed to an ElementTree pull parser in chunks, so only the
    element currently being handled is held in memory. Recognized top-level
    elements update the store; extension containers are handed to the
    ExtensionLoader one ``className`` at a time, in document order.

    Element-level problems (for example a timeout that is not a number) are
    recorded as recovered outcomes and the prior value is kept. A malformed
    document, an unreadable stream or a failing mandatory extension is
    recorded as a fatal outcome and ends the pass.
    """

    def __init__(
        self,
        store: SettingsStore,
        loader: ExtensionLoader,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._store = store
        self._loader = loader
        self._chunk_size = chunk_size
        self._handlers: Dict[str, ElementHandler] = {
            "defaultPacketReplyTimeout": partial(self._set_int, REPLY_TIMEOUT),
            "mechName": self._add_mechanism,
            "localSocks5ProxyEnabled": partial(self._set_bool, SOCKS5_PROXY_ENABLED),
            "localSocks5ProxyPort": partial(self._set_int, SOCKS5_PROXY_PORT),
            "packetCollectorSize": partial(self._set_int, PACKET_COLLECTOR_SIZE),
            "autoEnableEntityCaps": partial(self._set_bool, AUTO_ENABLE_ENTITY_CAPS),
        }

    def parse(self, stream: Stream, report: Optional[LoadReport] = None) -> LoadReport:
        """
        Consume `stream` to the end (or to the first fatal outcome) and close it.
        """
        if report is None:
            report = LoadReport()
        try:
            self._stream_events(stream, report)
        finally:
            self._close(stream)
        return report

    def _stream_events(self, stream: Stream, report: LoadReport) -> None:
        pull = ET.XMLPullParser(events=("start", "end"))
        state = _ParseState()
        try:
            while True:
                chunk = stream.read(self._chunk_size)
                if not chunk:
                    break
                pull.feed(_as_feedable(chunk))
                if not self._drain(pull, state, report):
                    return
            pull.close()
            self._drain(pull, state, report)
        except ET.ParseError as exc:
            logger.error("Configuration document is malformed: %s", exc)
            error = ConfigDocumentError(f"Malformed configuration document: {exc}")
            error.__cause__ = exc
            report.add(fatal("document", error))
        except OSError as exc:
            logger.error("Could not read configuration stream: %s", exc)
            error = ConfigSourceError(f"Could not read configuration stream: {exc}")
            error.__cause__ = exc
            report.add(fatal("document", error))

    def _drain(self, pull: ET.XMLPullParser, state: "_ParseState", report: LoadReport) -> bool:
        """Handle the pending events; False once a fatal outcome was recorded."""
        for event, elem in pull.read_events():
            if event == "start":
                state.depth += 1
                self._on_start(_local_name(elem.tag), state)
                continue

            outcome = self._on_end(_local_name(elem.tag), elem, state)
            state.depth -= 1
            if outcome is None:
                continue
            report.add(outcome)
            if outcome.is_fatal:
                return False
        return True

    def _on_start(self, name: str, state: "_ParseState") -> None:
        if state.container is None and state.depth == _TOP_LEVEL and name in _CONTAINERS:
            state.container = _Container(name, state.depth, _CONTAINERS[name])

    def _on_end(self, name: str, elem: ET.Element, state: "_ParseState") -> Optional[Outcome]:
        container = state.container
        if container is not None:
            # The container ends only at its own tag at its own depth.
            if state.depth == container.depth and name == container.name:
                state.container = None
                elem.clear()
                return None
            if name == _CLASS_NAME:
                return self._loader.load(elem.text or "", container.optional)
            return None

        if state.depth != _TOP_LEVEL:
            return None
        handler = self._handlers.get(name)
        text = elem.text
        elem.clear()
        if handler is None:
            logger.debug("Skipping unrecognized element <%s>", name)
            return None
        return handler(name, text)

    def _set_int(self, key: str, element: str, text: Optional[str]) -> Outcome:
        try:
            value = _parse_int(text)
        except ValueError as exc:
            logger.error(
                "Could not parse integer %r in <%s>; keeping %r",
                text,
                element,
                self._store.get(key),
            )
            return recovered(element, f"invalid integer {text!r}", exc)
        # Parsed values are stored without validation; accessors heal what they must.
        self._store.set(key, value, validate=False)
        return applied(element, str(value))

    def _set_bool(self, key: str, element: str, text: Optional[str]) -> Outcome:
        value = _parse_bool(text)
        self._store.set(key, value, validate=False)
        return applied(element, str(value))

    def _add_mechanism(self, element: str, text: Optional[str]) -> Outcome:
        mechanism = (text or "").strip()
        if not mechanism:
            logger.error("Ignoring empty <%s>", element)
            return recovered(element, "empty mechanism name")
        if not self._store.add_mechanism(mechanism):
            logger.debug("SASL mechanism %r already listed", mechanism)
        return applied(element, mechanism)

    @staticmethod
    def _close(stream: Stream) -> None:
        try:
            stream.close()
        except Exception as exc:
            logger.error("Error while closing configuration stream: %s", exc)


class _ParseState:
    def __init__(self) -> None:
        self.depth = 0
        self.container: Optional[_Container] = None


def _as_feedable(chunk: Union[bytes, bytearray, memoryview, str]) -> Union[bytes, str]:
    if isinstance(chunk, (bytearray, memoryview)):
        return bytes(chunk)
    return chunk
