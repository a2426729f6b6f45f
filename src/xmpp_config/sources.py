from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from types import ModuleType
from typing import IO, Any, Callable, Optional, Union
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import httpx

from xmpp_config.exceptions import ConfigSourceError
from xmpp_config.utils import CONFIG_FILE_ENV, _config_location_from_env

logger = logging.getLogger("xmpp_config.sources")
logger.addHandler(logging.NullHandler())

__all__ = [
    "DEFAULT_CONFIG_LOCATION",
    "DEFAULT_TIMEOUT",
    "Resolver",
    "SelectedSource",
    "SourceSelector",
    "resolve_stream",
]

DEFAULT_CONFIG_LOCATION = "resource:xmpp_config/resources/default-config.xml"
DEFAULT_TIMEOUT = 10.0

Loader = Optional[Union[str, ModuleType]]
Resolver = Callable[[str, Loader], Optional[IO[bytes]]]


def resolve_stream(
    location: str, loader: Loader = None, *, timeout: float = DEFAULT_TIMEOUT
) -> Optional[IO[bytes]]:
    """
    Open `location` as a binary stream.

    Supported forms:
    - ``resource:package/path/in/package`` (alias ``classpath:``): package data,
      read through importlib.resources. If `loader` is given it is used as the
      anchor package and the whole remainder is the path inside it.
    - ``file:///abs/path`` or a bare filesystem path.
    - ``http://`` and ``https://`` URLs, fetched with httpx within `timeout` seconds.

    Returns None when the target does not exist. Raises ConfigSourceError when
    it exists but cannot be read, or when the location form is not supported.
    """
    scheme, sep, rest = location.partition(":")
    scheme = scheme.lower()
    if sep and scheme in ("resource", "classpath"):
        return _open_resource(rest, loader)
    if sep and scheme in ("http", "https"):
        return _open_url(location, timeout)
    if sep and scheme == "file":
        return _open_file(url2pathname(unquote(urlparse(location).path)))
    # Single letter schemes are Windows drive letters
    if sep and len(scheme) > 1:
        raise ConfigSourceError(f"Unsupported configuration location {location!r}")
    return _open_file(location)


def _open_resource(rest: str, loader: Loader) -> Optional[IO[bytes]]:
    rest = rest.lstrip("/")
    if loader is not None:
        anchor, path = loader, rest
    else:
        anchor, _, path = rest.partition("/")
    if not anchor or not path:
        raise ConfigSourceError(f"Invalid resource location {rest!r}")
    try:
        target = resources.files(anchor).joinpath(path)
    except ModuleNotFoundError:
        logger.debug("Resource anchor %r not found", anchor)
        return None
    try:
        if not target.is_file():
            return None
        return target.open("rb")
    except OSError as exc:
        raise ConfigSourceError(f"Cannot read resource {path!r} in {anchor!r}: {exc}") from exc


def _open_file(path: str) -> Optional[IO[bytes]]:
    try:
        return open(Path(path).expanduser(), "rb")
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise ConfigSourceError(f"Cannot read configuration file {path!r}: {exc}") from exc


def _open_url(url: str, timeout: float) -> Optional[IO[bytes]]:
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
    except httpx.HTTPError as exc:
        raise ConfigSourceError(f"Cannot fetch configuration from {url!r}: {exc}") from exc
    if response.status_code == 404:
        return None
    if response.status_code >= 400:
        raise ConfigSourceError(
            f"Cannot fetch configuration from {url!r}: HTTP {response.status_code}"
        )
    return io.BytesIO(response.content)


@dataclass
class SelectedSource:
    stream: IO[Any]
    description: str


class SourceSelector:
    """Pick the configuration document for this process.

    Precedence: an explicitly supplied source, then the location named by the
    environment variable, then the embedded default document.
    """

    def __init__(
        self,
        resolver: Resolver = resolve_stream,
        *,
        env_var: str = CONFIG_FILE_ENV,
        default_location: str = DEFAULT_CONFIG_LOCATION,
    ) -> None:
        self._resolver = resolver
        self._env_var = env_var
        self._default_location = default_location

    @property
    def resolver(self) -> Resolver:
        return self._resolver

    def select(self, explicit: Optional[SelectedSource] = None) -> Optional[SelectedSource]:
        if explicit is not None:
            logger.debug("Using explicitly configured source %s", explicit.description)
            return explicit

        location = _config_location_from_env(self._env_var)
        if location is not None:
            stream = self._from_environment(location)
            if stream is not None:
                return SelectedSource(stream, f"{self._env_var}={location}")

        try:
            stream = self._resolver(self._default_location, None)
        except Exception as exc:
            logger.error("Cannot open default configuration %r: %s", self._default_location, exc)
            raise ConfigSourceError(
                f"Cannot open default configuration {self._default_location!r}: {exc}"
            ) from exc
        if stream is None:
            logger.info("No configuration file found; using built-in defaults")
            return None
        return SelectedSource(stream, self._default_location)

    def _from_environment(self, location: str) -> Optional[IO[Any]]:
        try:
            stream = self._resolver(location, None)
        except Exception as exc:
            logger.error(
                "Error opening config file [%s] from %s; falling back to default: %s",
                location,
                self._env_var,
                exc,
            )
            return None
        if stream is None:
            logger.warning(
                "Config file [%s] from %s not found; falling back to default",
                location,
                self._env_var,
            )
        return stream
