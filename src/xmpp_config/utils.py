from __future__ import annotations

import logging
import os
import re
from importlib import resources
from typing import Optional

__all__ = [
    "CONFIG_FILE_ENV",
    "UNKNOWN_VERSION",
    "_config_location_from_env",
    "_local_name",
    "_parse_bool",
    "_parse_int",
    "read_version",
]

logger = logging.getLogger("xmpp_config.utils")
logger.addHandler(logging.NullHandler())

CONFIG_FILE_ENV = "XMPP_CONFIG_FILE"
UNKNOWN_VERSION = "unknown"

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")


def _config_location_from_env(env_var: str = CONFIG_FILE_ENV) -> Optional[str]:
    location = os.getenv(env_var)
    if location is None or not location.strip():
        return None
    return location.strip()


def _local_name(tag: str) -> str:
    # ElementTree reports namespaced tags as "{uri}local"
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[1]
    return tag


def _parse_int(text: Optional[str]) -> int:
    """Parse a signed 32-bit decimal integer; surrounding whitespace is ignored."""
    if text is None:
        raise ValueError("Element has no text")
    text = text.strip()
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f"Not a decimal integer: {text!r}")
    value = int(text)
    if not INT32_MIN <= value <= INT32_MAX:
        raise ValueError(f"Integer {value} out of 32-bit range")
    return value


def _parse_bool(text: Optional[str]) -> bool:
    return (text or "").strip().lower() == "true"


def read_version(package: str = "xmpp_config", resource: str = "resources/version") -> str:
    """
    Read the library version from the packaged version resource.

    Any failure is logged and yields "unknown"; the version is informational only.
    """
    try:
        raw = resources.files(package).joinpath(resource).read_bytes()
        version = raw.decode("utf-8").strip()
    except Exception:
        logger.error("Could not determine library version", exc_info=True)
        return UNKNOWN_VERSION
    return version or UNKNOWN_VERSION
