import importlib
import logging

import pytest

from xmpp_config.exceptions import (
    ExtensionDuplicateError,
    ExtensionLoadError,
    ExtensionNotFoundError,
)
from xmpp_config.extensions import (
    ExtensionLoader,
    ExtensionRegistry,
    Initializer,
    extension,
    register_extension,
)
from xmpp_config.report import OutcomeKind

INITIALIZER_MODULE = """
CALLS = []

class StartupHook:
    def initialize(self):
        CALLS.append("initialized")

class PlainCodec:
    pass

class BrokenHook:
    def initialize(self):
        raise RuntimeError("cannot start")

class NeedsArgs:
    def __init__(self, required):
        self.required = required

    def initialize(self):
        CALLS.append("never")
"""


def test_registry_register_get_and_duplicates(registry):
    registry.register("caps", object)
    assert registry.has("caps")
    assert registry.get(" caps ") is object
    with pytest.raises(ExtensionDuplicateError):
        registry.register("caps", dict)
    registry.register("caps", dict, override=True)
    assert registry.get("caps") is dict
    assert registry.all_names() == ("caps",)

    registry.unregister("caps")
    assert registry.get("caps") is None
    registry.unregister("caps")


def test_registry_rejects_non_callable(registry):
    with pytest.raises(TypeError):
        registry.register("bad", 123)  # type: ignore[arg-type]


def test_extension_decorator_registers_class(registry):
    @extension("example.caps", registry=registry)
    class CapsInitializer:
        def initialize(self) -> None:
            pass

    assert registry.get("example.caps") is CapsInitializer
    assert isinstance(CapsInitializer(), Initializer)


def test_register_extension_helper(registry):
    register_extension("example.codec", dict, registry=registry)
    assert registry.has("example.codec")


def test_registered_initializer_is_invoked(registry):
    calls = []

    class Hook:
        def initialize(self):
            calls.append("hook")

    registry.register("hook", Hook)
    outcome = ExtensionLoader(registry).load("hook", optional=False)
    assert outcome.kind is OutcomeKind.APPLIED
    assert outcome.message == "initialized"
    assert calls == ["hook"]


def test_registered_non_initializer_is_only_created(registry):
    created = []
    registry.register("codec", lambda: created.append("codec"))
    outcome = ExtensionLoader(registry).load("codec", optional=False)
    assert outcome.kind is OutcomeKind.APPLIED
    assert outcome.message == "loaded"
    assert created == ["codec"]


def test_missing_optional_extension_is_recovered(registry, caplog):
    caplog.set_level(logging.DEBUG, logger="xmpp_config.extensions")
    outcome = ExtensionLoader(registry).load("no_such_pkg.Missing", optional=True)
    assert outcome.kind is OutcomeKind.RECOVERED
    assert all(r.levelno <= logging.DEBUG for r in caplog.records if "could not be found" in r.message)


def test_missing_mandatory_extension_is_fatal(registry, caplog):
    caplog.set_level(logging.WARNING, logger="xmpp_config.extensions")
    outcome = ExtensionLoader(registry).load("no_such_pkg.Missing", optional=False)
    assert outcome.is_fatal
    assert isinstance(outcome.error, ExtensionNotFoundError)
    assert any(r.levelno == logging.WARNING for r in caplog.records)


def test_missing_attribute_is_not_found(registry):
    outcome = ExtensionLoader(registry).load("collections.NoSuchThing", optional=False)
    assert isinstance(outcome.error, ExtensionNotFoundError)
    outcome = ExtensionLoader(registry).load("collections:NoSuchThing", optional=True)
    assert outcome.kind is OutcomeKind.RECOVERED


def test_module_and_plain_class_are_loaded_without_lifecycle(registry):
    loader = ExtensionLoader(registry)
    assert loader.load("json", optional=False).kind is OutcomeKind.APPLIED
    assert loader.load("collections.OrderedDict", optional=False).message == "loaded"
    assert loader.load("collections:OrderedDict", optional=False).message == "loaded"


MODULE_HOOK = """
CALLS = []

def initialize():
    CALLS.append("module")

def start_codecs():
    CALLS.append("function")
"""


def test_module_level_initialize_is_invoked(registry, ext_module):
    name = ext_module("xc_ext_module_hook", MODULE_HOOK)
    loader = ExtensionLoader(registry)

    assert loader.load(name, optional=False).message == "initialized"
    assert loader.load(f"{name}.initialize", optional=False).message == "initialized"
    assert importlib.import_module(name).CALLS == ["module", "module"]


def test_plain_function_is_invoked(registry, ext_module):
    name = ext_module("xc_ext_function_hook", MODULE_HOOK)
    outcome = ExtensionLoader(registry).load(f"{name}:start_codecs", optional=False)
    assert outcome.kind is OutcomeKind.APPLIED
    assert outcome.message == "initialized"
    assert importlib.import_module(name).CALLS == ["function"]


def test_module_level_initialize_failure_is_load_error(registry, ext_module):
    name = ext_module(
        "xc_ext_module_broken", "def initialize():\n    raise RuntimeError('no codecs')\n"
    )
    loader = ExtensionLoader(registry)

    mandatory = loader.load(name, optional=False)
    assert isinstance(mandatory.error, ExtensionLoadError)
    assert isinstance(mandatory.error.__cause__, RuntimeError)
    assert loader.load(name, optional=True).kind is OutcomeKind.RECOVERED


def test_dynamic_initializer_class_is_instantiated_and_invoked(registry, ext_module):
    name = ext_module("xc_ext_hooks", INITIALIZER_MODULE)
    loader = ExtensionLoader(registry)

    assert loader.load(f"{name}.StartupHook", optional=False).message == "initialized"
    assert loader.load(f"{name}:StartupHook", optional=False).message == "initialized"
    assert loader.load(f"{name}.PlainCodec", optional=False).message == "loaded"
    assert importlib.import_module(name).CALLS == ["initialized", "initialized"]


def test_initializer_failure_split_by_optional(registry, ext_module):
    name = ext_module("xc_ext_broken", INITIALIZER_MODULE)
    loader = ExtensionLoader(registry)

    mandatory = loader.load(f"{name}.BrokenHook", optional=False)
    assert mandatory.is_fatal
    assert isinstance(mandatory.error, ExtensionLoadError)
    assert isinstance(mandatory.error.__cause__, RuntimeError)

    optional = loader.load(f"{name}.BrokenHook", optional=True)
    assert optional.kind is OutcomeKind.RECOVERED


def test_instantiation_failure_is_load_error(registry, ext_module):
    name = ext_module("xc_ext_args", INITIALIZER_MODULE)
    outcome = ExtensionLoader(registry).load(f"{name}.NeedsArgs", optional=False)
    assert isinstance(outcome.error, ExtensionLoadError)
    assert "never" not in importlib.import_module(name).CALLS


def test_module_with_broken_import_is_load_error_not_missing(registry, ext_module):
    name = ext_module("xc_ext_bad_import", "import xc_definitely_not_installed\n")
    outcome = ExtensionLoader(registry).load(name, optional=False)
    assert isinstance(outcome.error, ExtensionLoadError)


def test_module_raising_at_import_is_load_error(registry, ext_module):
    name = ext_module("xc_ext_raises", "raise RuntimeError('side effect failed')\n")
    outcome = ExtensionLoader(registry).load(name, optional=True)
    assert outcome.kind is OutcomeKind.RECOVERED
    assert isinstance(outcome.error, RuntimeError)


def test_registry_takes_precedence_over_import(registry):
    calls = []

    class Override:
        def initialize(self):
            calls.append("override")

    registry.register("collections.OrderedDict", Override)
    assert ExtensionLoader(registry).load("collections.OrderedDict", optional=False).message == (
        "initialized"
    )
    assert calls == ["override"]


def test_default_loader_uses_global_registry():
    assert isinstance(ExtensionLoader().registry, ExtensionRegistry)
