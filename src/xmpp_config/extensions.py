from __future__ import annotations

import importlib
import inspect
import logging
import threading
from types import ModuleType
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, TypeVar, cast

from typing_extensions import runtime_checkable

from xmpp_config.exceptions import (
    ExtensionDuplicateError,
    ExtensionLoadError,
    ExtensionNotFoundError,
)
from xmpp_config.report import Outcome, applied, fatal, recovered

logger = logging.getLogger("xmpp_config.extensions")
logger.addHandler(logging.NullHandler())

__all__ = [
    "Initializer",
    "ExtensionRegistry",
    "ExtensionLoader",
    "EXTENSIONS",
    "register_extension",
    "extension",
]

Factory = Callable[[], Any]
T = TypeVar("T")


@runtime_checkable
class Initializer(Protocol):
    """Startup hook run once, in document order, while the configuration loads."""

    def initialize(self) -> None: ...


class ExtensionRegistry:
    """Maps extension names used in configuration documents to zero-argument factories."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._factories: Dict[str, Factory] = {}
        logger.debug("ExtensionRegistry initialized id=%s", hex(id(self)))

    @staticmethod
    def _canon(name: str) -> str:
        return name.strip()

    def register(self, name: str, factory: Factory, *, override: bool = False) -> None:
        if not callable(factory):
            raise TypeError("Extension factory must be callable")
        key = self._canon(name)
        with self._lock:
            if not override and key in self._factories:
                logger.error("Register failed: %r already registered", key)
                raise ExtensionDuplicateError(f"Extension {key!r} already registered")
            self._factories[key] = factory
        logger.debug("Registered extension %r -> %r override=%s", key, factory, override)

    def unregister(self, name: str) -> None:
        with self._lock:
            self._factories.pop(self._canon(name), None)

    def get(self, name: str) -> Optional[Factory]:
        with self._lock:
            return self._factories.get(self._canon(name))

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def all_names(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._factories))

    def clear(self) -> None:
        with self._lock:
            logger.debug("Clearing extension registry: %d entries", len(self._factories))
            self._factories.clear()


EXTENSIONS = ExtensionRegistry()


def register_extension(
    name: str,
    factory: Factory,
    *,
    override: bool = False,
    registry: Optional[ExtensionRegistry] = None,
) -> None:
    (registry or EXTENSIONS).register(name, factory, override=override)


def extension(
    name: str, *, override: bool = False, registry: Optional[ExtensionRegistry] = None
) -> Callable[[T], T]:
    """
    Class decorator registering a zero-argument class under `name`.

        @extension("example.caps")
        class CapsInitializer:
            def initialize(self) -> None: ...
    """

    def decorator(cls: T) -> T:
        register_extension(name, cls, override=override, registry=registry)  # type: ignore[arg-type]
        return cls

    return decorator


class _NotFound(Exception):
    pass


def _import_target(name: str) -> Any:
    """
    Resolve `name` to a module or an attribute of a module.

    Accepts "pkg.module:Attr", "pkg.module.Attr" and "pkg.module". Raises
    _NotFound when nothing by that name exists; errors raised while executing
    a module that does exist propagate unchanged.
    """
    if ":" in name:
        module_name, _, attr_path = name.partition(":")
        return _resolve_attrs(_import_module(module_name), attr_path, name)

    try:
        return _import_module(name)
    except _NotFound:
        if "." not in name:
            raise
    module_name, _, attr = name.rpartition(".")
    return _resolve_attrs(_import_module(module_name), attr, name)


def _import_module(module_name: str) -> ModuleType:
    if not module_name:
        raise _NotFound(module_name)
    try:
        return importlib.import_module(module_name)
    except ModuleNotFoundError as exc:
        # Only a miss on the requested module (or a parent package) counts as not found;
        # a missing import inside an existing module is a load failure.
        missing = exc.name
        if missing is not None and (
            module_name == missing or module_name.startswith(missing + ".")
        ):
            raise _NotFound(module_name) from exc
        raise


def _resolve_attrs(target: Any, attr_path: str, name: str) -> Any:
    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError as exc:
            raise _NotFound(name) from exc
    return target


class ExtensionLoader:
    """Resolve and start extensions named in the configuration document.

    Names are looked up in the extension registry first and then imported
    dynamically. Mandatory failures are returned as fatal outcomes, optional
    ones as recovered outcomes; nothing is raised to the caller.
    """

    def __init__(self, registry: Optional[ExtensionRegistry] = None) -> None:
        self._registry = registry if registry is not None else EXTENSIONS

    @property
    def registry(self) -> ExtensionRegistry:
        return self._registry

    def load(self, name: str, optional: bool) -> Outcome:
        name = name.strip()
        try:
            instance = self._resolve(name)
        except _NotFound as exc:
            return self._not_found(name, optional, exc)
        except Exception as exc:
            return self._failed(name, optional, "could not be loaded", exc)

        if instance is None:
            logger.debug("Extension %r loaded without an initializer", name)
            return applied(name, "loaded")

        try:
            instance.initialize()
        except Exception as exc:
            return self._failed(name, optional, "failed to initialize", exc)
        logger.debug("Extension %r initialized", name)
        return applied(name, "initialized")

    def _resolve(self, name: str) -> Optional[Initializer]:
        factory = self._registry.get(name)
        if factory is not None:
            created = factory()
            return created if isinstance(created, Initializer) else None

        target = _import_target(name)
        if inspect.isclass(target):
            if not _has_initialize(target):
                return None
            return target()
        if isinstance(target, ModuleType):
            # A module takes part through a top-level initialize() function
            return cast(Initializer, target) if _has_initialize(target) else None
        if isinstance(target, Initializer):
            return target
        if callable(target):
            return _CallableInitializer(target)
        return None

    @staticmethod
    def _not_found(name: str, optional: bool, exc: Exception) -> Outcome:
        if optional:
            logger.debug("Optional startup extension [%s] could not be found", name)
            return recovered(name, "optional extension not found", exc)
        logger.warning("Startup extension [%s] could not be found", name)
        error = ExtensionNotFoundError(f"Startup extension {name!r} could not be found")
        error.__cause__ = exc
        return fatal(name, error)

    @staticmethod
    def _failed(name: str, optional: bool, what: str, exc: Exception) -> Outcome:
        if optional:
            logger.error("Optional startup extension [%s] %s: %s", name, what, exc)
            return recovered(name, f"optional extension {what}", exc)
        logger.error("Startup extension [%s] %s: %s", name, what, exc)
        error = ExtensionLoadError(f"Startup extension {name!r} {what}: {exc}")
        error.__cause__ = exc
        return fatal(name, error)


def _has_initialize(target: Any) -> bool:
    return callable(getattr(target, "initialize", None))


class _CallableInitializer:
    """Runs a plain function named in the document as its initialize()."""

    def __init__(self, func: Callable[[], Any]) -> None:
        self._func = func

    def initialize(self) -> None:
        self._func()

    def __repr__(self) -> str:
        return f"<_CallableInitializer {self._func!r}>"
