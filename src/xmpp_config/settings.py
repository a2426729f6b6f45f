from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from xmpp_config.exceptions import ConfigValidationError
from xmpp_config.handlers import ParsingFailureHandler, ThrowingHandler

logger = logging.getLogger("xmpp_config.settings")
logger.addHandler(logging.NullHandler())

__all__ = [
    "SettingSpec",
    "SettingsStore",
    "SETTING_SPECS",
    "REPLY_TIMEOUT",
    "PACKET_COLLECTOR_SIZE",
    "SOCKS5_PROXY_ENABLED",
    "SOCKS5_PROXY_PORT",
    "AUTO_ENABLE_ENTITY_CAPS",
    "PARSING_FAILURE_HANDLER",
    "SASL_MECHANISMS",
]

REPLY_TIMEOUT = "reply_timeout"
PACKET_COLLECTOR_SIZE = "packet_collector_size"
SOCKS5_PROXY_ENABLED = "socks5_proxy_enabled"
SOCKS5_PROXY_PORT = "socks5_proxy_port"
AUTO_ENABLE_ENTITY_CAPS = "auto_enable_entity_caps"
PARSING_FAILURE_HANDLER = "parsing_failure_handler"
SASL_MECHANISMS = "sasl_mechanisms"


@dataclass(frozen=True)
class SettingSpec:
    name: str
    default: Any
    value_type: Union[Type, Tuple[Type, ...]]
    validator: Optional[Callable[[Any], bool]] = None
    description: Optional[str] = None

    def validate(self, value: Any) -> None:
        if value is None:
            raise ConfigValidationError({self.name: "None value not allowed."}, self.name)

        # bool is an int subclass; a flag is never a valid count or port
        if self.value_type is int and isinstance(value, bool):
            raise ConfigValidationError(
                {self.name: f"Expected value_type {self.value_type}, got {type(value)}."},
                self.name,
                value,
            )
        if not isinstance(value, self.value_type):
            raise ConfigValidationError(
                {self.name: f"Expected value_type {self.value_type}, got {type(value)}."},
                self.name,
                value,
            )

        if self.validator is not None and not self.validator(value):
            raise ConfigValidationError(
                {self.name: f"Value {value!r} rejected by validator."}, self.name, value
            )


def _specs(*specs: SettingSpec) -> Mapping[str, SettingSpec]:
    return MappingProxyType({spec.name: spec for spec in specs})


SETTING_SPECS: Mapping[str, SettingSpec] = _specs(
    SettingSpec(
        REPLY_TIMEOUT,
        default=5000,
        value_type=int,
        validator=lambda v: v > 0,
        description="Milliseconds to wait for a reply from the server",
    ),
    SettingSpec(
        PACKET_COLLECTOR_SIZE,
        default=5000,
        value_type=int,
        description="Stanzas a collector queues before dropping the oldest",
    ),
    SettingSpec(
        SOCKS5_PROXY_ENABLED,
        default=True,
        value_type=bool,
        description="Whether the local SOCKS5 proxy is started",
    ),
    SettingSpec(
        SOCKS5_PROXY_PORT,
        default=7777,
        value_type=int,
        description="Local SOCKS5 proxy port; negative means try abs(port) and upwards",
    ),
    SettingSpec(
        AUTO_ENABLE_ENTITY_CAPS,
        default=True,
        value_type=bool,
        description="Whether entity capabilities are advertised on new connections",
    ),
    SettingSpec(
        PARSING_FAILURE_HANDLER,
        default=ThrowingHandler(),
        value_type=ParsingFailureHandler,
        description="Handler consulted when an incoming stanza cannot be parsed",
    ),
)


class SettingsStore:
    """Typed key/value store behind the configuration accessors.

    Not thread-safe on its own; ClientConfiguration serializes access.
    """

    def __init__(self, specs: Mapping[str, SettingSpec] = SETTING_SPECS) -> None:
        self._specs = specs
        self._values: Dict[str, Any] = {name: spec.default for name, spec in specs.items()}
        self._mechanisms: List[str] = []
        logger.debug("SettingsStore init settings=%s", tuple(self._values))

    def spec(self, key: str) -> SettingSpec:
        try:
            return self._specs[key]
        except KeyError:
            logger.error("Unknown setting: %r", key)
            raise ConfigValidationError({key: "Unknown setting."}) from None

    def set(self, key: str, value: Any, *, validate: bool = True) -> None:
        spec = self.spec(key)
        if validate:
            spec.validate(value)
        self._values[key] = value
        logger.debug("Store.set key=%r value=%r validated=%s", key, value, validate)

    def get(self, key: str) -> Any:
        self.spec(key)
        return self._values[key]

    def reset(self, key: str) -> None:
        self._values[key] = self.spec(key).default

    def add_mechanism(self, mechanism: str) -> bool:
        if mechanism in self._mechanisms:
            return False
        self._mechanisms.append(mechanism)
        return True

    def add_mechanisms(self, mechanisms: Iterable[str]) -> None:
        for mechanism in mechanisms:
            self.add_mechanism(mechanism)

    def remove_mechanism(self, mechanism: str) -> bool:
        try:
            self._mechanisms.remove(mechanism)
        except ValueError:
            return False
        return True

    def remove_mechanisms(self, mechanisms: Iterable[str]) -> None:
        for mechanism in mechanisms:
            self.remove_mechanism(mechanism)

    def mechanisms(self) -> Tuple[str, ...]:
        return tuple(self._mechanisms)

    def copy(self) -> "SettingsStore":
        clone = SettingsStore(self._specs)
        clone._values = dict(self._values)
        clone._mechanisms = list(self._mechanisms)
        return clone

    def restore(self, other: "SettingsStore") -> None:
        self._values = dict(other._values)
        self._mechanisms = list(other._mechanisms)

    def snapshot(self) -> MappingProxyType[str, Any]:
        values: Dict[str, Any] = dict(self._values)
        values[SASL_MECHANISMS] = self.mechanisms()
        return MappingProxyType(values)
