from __future__ import annotations

import logging
import threading
from functools import wraps
from types import MappingProxyType
from typing import IO, Any, Callable, Iterable, Optional, Tuple, TypeVar, cast

from xmpp_config.exceptions import (
    ConfigAlreadyInitializedError,
    ConfigInitializationError,
    ConfigSourceError,
    ConfigValidationError,
)
from xmpp_config.extensions import ExtensionLoader, ExtensionRegistry
from xmpp_config.handlers import ParsingFailureHandler
from xmpp_config.locks import InitializationGate
from xmpp_config.parser import DEFAULT_CHUNK_SIZE, DocumentParser
from xmpp_config.report import LoadReport
from xmpp_config.settings import (
    AUTO_ENABLE_ENTITY_CAPS,
    PACKET_COLLECTOR_SIZE,
    PARSING_FAILURE_HANDLER,
    REPLY_TIMEOUT,
    SOCKS5_PROXY_ENABLED,
    SOCKS5_PROXY_PORT,
    SettingsStore,
)
from xmpp_config.sources import (
    DEFAULT_CONFIG_LOCATION,
    Loader,
    Resolver,
    SelectedSource,
    SourceSelector,
    resolve_stream,
)
from xmpp_config.utils import CONFIG_FILE_ENV, read_version

logger = logging.getLogger("xmpp_config.config")
logger.addHandler(logging.NullHandler())

VERSION = read_version()

F = TypeVar("F", bound=Callable[..., Any])


def initialized(func: F) -> F:
    """
    Decorator that loads the configuration, once, before the method runs.
    Raises the fatal ConfigInitializationError if loading aborts.
    """

    @wraps(func)
    def wrapper(self: "ClientConfiguration", *args: Any, **kwargs: Any) -> Any:
        self.ensure_initialized()
        return func(self, *args, **kwargs)

    return cast(F, wrapper)


class ClientConfiguration:
    """
    Process-wide settings of the XMPP client, loaded lazily from a configuration document.

    The document is chosen the first time any accessor runs, in this order:
    a source passed to set_config_stream()/set_config_source(), the location in
    the XMPP_CONFIG_FILE environment variable, then the embedded default
    document. It is streamed once; startup extensions it names are loaded and
    initialized in document order. After that the document is never read again
    and accessors read and write the settings directly.

    Direct attribute assignment is forbidden; use the set_* accessors.
    """

    def __init__(
        self,
        *,
        resolver: Resolver = resolve_stream,
        env_var: str = CONFIG_FILE_ENV,
        default_location: str = DEFAULT_CONFIG_LOCATION,
        registry: Optional[ExtensionRegistry] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        # internal lock for instance ops
        self.__lock = threading.RLock()

        # components
        self.__gate = InitializationGate()
        self.__selector = SourceSelector(
            resolver, env_var=env_var, default_location=default_location
        )
        self.__loader = ExtensionLoader(registry)
        self.__store = SettingsStore()
        self.__chunk_size = chunk_size

        # load state
        self.__explicit: Optional[SelectedSource] = None
        self.__staged: Optional[SettingsStore] = None
        self.__report: Optional[LoadReport] = None

    # forbid public attribute mutation
    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(self, "_ClientConfiguration__lock") and not name.startswith(
            "_ClientConfiguration__"
        ):
            raise AttributeError("Direct attribute assignment forbidden. Use the set_* accessors.")
        super().__setattr__(name, value)

    # loading
    def is_initialized(self) -> bool:
        return self.__gate.is_initialized()

    @property
    def load_report(self) -> Optional[LoadReport]:
        """Report of the completed load, or None before the configuration is loaded."""
        return self.__report

    def ensure_initialized(self) -> None:
        """
        Load the configuration if no load has completed yet.

        Safe to call from any thread; concurrent first callers wait for the one
        load. A fatal error is raised to the caller and the next call retries.
        """
        self.__gate.run_once(self._load)

    def set_config_source(self, location: str, loader: Loader = None) -> None:
        """
        Load the configuration from `location` instead of the environment or default.

        `loader` is the anchor package for ``resource:`` locations. Must be
        called before any other accessor.
        """
        self._ensure_not_loaded()
        try:
            stream = self.__selector.resolver(location, loader)
        except Exception as exc:
            raise ConfigSourceError(
                f"Failed to open configuration location [{location}]: {exc}"
            ) from exc
        if stream is None:
            raise ConfigSourceError(f"Configuration location [{location}] not found")
        self._use_explicit(SelectedSource(stream, location))

    def set_config_stream(self, stream: IO[Any], description: str = "<stream>") -> None:
        """
        Load the configuration from an open stream. Must be called before any other accessor.
        """
        source = SelectedSource(stream, description)
        try:
            self._ensure_not_loaded()
        except ConfigAlreadyInitializedError:
            self._discard(source)
            raise
        self._use_explicit(source)

    def _ensure_not_loaded(self) -> None:
        if self.__gate.is_initialized():
            raise ConfigAlreadyInitializedError(
                "Configuration already loaded; the source can no longer change"
            )

    def _use_explicit(self, source: SelectedSource) -> None:
        with self.__lock:
            self.__explicit = source
        self.ensure_initialized()
        with self.__lock:
            if self.__explicit is not source:
                return
            # Another load finished (or is running on this thread) without it
            self.__explicit = None
        logger.error("Configuration source %s ignored; already loaded", source.description)
        self._discard(source)
        raise ConfigAlreadyInitializedError(
            f"Configuration already loaded; source {source.description} ignored"
        )

    @staticmethod
    def _discard(source: SelectedSource) -> None:
        # A rejected source is never parsed, so its stream is closed here
        try:
            source.stream.close()
        except Exception as exc:
            logger.error(
                "Error while closing rejected configuration source %s: %s",
                source.description,
                exc,
            )

    def _load(self) -> None:
        with self.__lock:
            explicit, self.__explicit = self.__explicit, None

        selected = self.__selector.select(explicit)
        if selected is None:
            with self.__lock:
                self.__report = LoadReport("<built-in defaults>")
            return

        report = LoadReport(selected.description)
        with self.__lock:
            staged = self.__staged = self.__store.copy()
        try:
            DocumentParser(staged, self.__loader, chunk_size=self.__chunk_size).parse(
                selected.stream, report
            )
            failure = report.fatal
            if failure is not None:
                logger.error(
                    "Loading configuration from %s failed: %s", report.source, failure.message
                )
                if isinstance(failure.error, ConfigInitializationError):
                    raise failure.error
                raise ConfigInitializationError(failure.message) from failure.error
            with self.__lock:
                self.__store.restore(staged)
                self.__report = report
        finally:
            with self.__lock:
                self.__staged = None

        logger.info(
            "Configuration loaded from %s (%d recovered issues)",
            report.source,
            len(report.recovered()),
        )

    def _settings(self) -> SettingsStore:
        # Startup extensions running inside the load see the document as parsed so far
        staged = self.__staged
        if staged is not None and self.__gate.in_progress():
            return staged
        return self.__store

    # version
    @staticmethod
    def get_version() -> str:
        """Return the library version, e.g. "1.0.0", or "unknown"."""
        return VERSION

    # reply timeout
    @initialized
    def get_reply_timeout(self) -> int:
        """
        Return the milliseconds to wait for a reply from the server. Default 5000.
        """
        with self.__lock:
            store = self._settings()
            timeout = store.get(REPLY_TIMEOUT)
            # The timeout must be positive; anything else falls back to the default
            if timeout <= 0:
                logger.warning("Stored reply timeout %r is not positive; using default", timeout)
                store.reset(REPLY_TIMEOUT)
                timeout = store.get(REPLY_TIMEOUT)
            return cast(int, timeout)

    @initialized
    def set_reply_timeout(self, timeout: int) -> None:
        """
        Set the milliseconds to wait for a reply from the server. Must be positive.
        """
        with self.__lock:
            self._settings().set(REPLY_TIMEOUT, timeout)
            logger.debug("Reply timeout set to %d ms", timeout)

    # packet collector
    @initialized
    def get_packet_collector_size(self) -> int:
        with self.__lock:
            return cast(int, self._settings().get(PACKET_COLLECTOR_SIZE))

    @initialized
    def set_packet_collector_size(self, size: int) -> None:
        """Set how many stanzas a collector queues before dropping the oldest."""
        with self.__lock:
            self._settings().set(PACKET_COLLECTOR_SIZE, size)

    # SASL mechanisms
    @initialized
    def get_sasl_mechanisms(self) -> Tuple[str, ...]:
        """
        Return the SASL mechanisms to offer, most preferred first.

        A listed mechanism is not guaranteed to be used: the server may not
        support it.
        """
        with self.__lock:
            return self._settings().mechanisms()

    @initialized
    def add_sasl_mechanism(self, mechanism: str) -> None:
        with self.__lock:
            self._settings().add_mechanism(mechanism)

    @initialized
    def add_sasl_mechanisms(self, mechanisms: Iterable[str]) -> None:
        with self.__lock:
            self._settings().add_mechanisms(mechanisms)

    @initialized
    def remove_sasl_mechanism(self, mechanism: str) -> None:
        with self.__lock:
            self._settings().remove_mechanism(mechanism)

    @initialized
    def remove_sasl_mechanisms(self, mechanisms: Iterable[str]) -> None:
        with self.__lock:
            self._settings().remove_mechanisms(mechanisms)

    # SOCKS5 proxy
    @initialized
    def is_socks5_proxy_enabled(self) -> bool:
        """Return True if the local SOCKS5 proxy should be started. Default True."""
        with self.__lock:
            return cast(bool, self._settings().get(SOCKS5_PROXY_ENABLED))

    @initialized
    def set_socks5_proxy_enabled(self, enabled: bool) -> None:
        with self.__lock:
            self._settings().set(SOCKS5_PROXY_ENABLED, enabled)

    @initialized
    def get_socks5_proxy_port(self) -> int:
        """Return the local SOCKS5 proxy port. Default 7777."""
        with self.__lock:
            return cast(int, self._settings().get(SOCKS5_PROXY_PORT))

    @initialized
    def set_socks5_proxy_port(self, port: int) -> None:
        """
        Set the local SOCKS5 proxy port. A negative port makes the proxy try
        abs(port) and every following port until one is free.
        """
        with self.__lock:
            self._settings().set(SOCKS5_PROXY_PORT, port)

    # entity capabilities
    @initialized
    def auto_enable_entity_caps(self) -> bool:
        """Return True if entity capabilities are enabled for new connections."""
        with self.__lock:
            return cast(bool, self._settings().get(AUTO_ENABLE_ENTITY_CAPS))

    @initialized
    def set_auto_enable_entity_caps(self, enabled: bool) -> None:
        with self.__lock:
            self._settings().set(AUTO_ENABLE_ENTITY_CAPS, enabled)

    # parsing failure handler
    @initialized
    def get_parsing_failure_handler(self) -> ParsingFailureHandler:
        """Return the handler new connections use for stanzas they cannot parse."""
        with self.__lock:
            return cast(ParsingFailureHandler, self._settings().get(PARSING_FAILURE_HANDLER))

    @initialized
    def set_parsing_failure_handler(self, handler: ParsingFailureHandler) -> None:
        """
        Replace the parsing failure handler. Raises ConfigValidationError for None
        or an object without handle_unparsable_stanza().
        """
        with self.__lock:
            try:
                self._settings().set(PARSING_FAILURE_HANDLER, handler)
            except ConfigValidationError as exc:
                logger.error("Rejected parsing failure handler %r: %s", handler, exc.errors)
                raise
            logger.info("Parsing failure handler set to %r", handler)

    @initialized
    def reset_parsing_failure_handler(self) -> None:
        """Restore the default handler, which re-raises parsing failures."""
        with self.__lock:
            self._settings().reset(PARSING_FAILURE_HANDLER)

    # introspection
    @initialized
    def snapshot(self) -> MappingProxyType[str, Any]:
        """
        Return a read-only view of every setting.
        """
        with self.__lock:
            return self._settings().snapshot()

    def __repr__(self) -> str:
        with self.__lock:
            source = self.__report.source if self.__report is not None else None
            return f"<ClientConfiguration initialized={self.is_initialized()} source={source!r}>"
