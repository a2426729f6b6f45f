# python
import importlib
import io
import sys
import textwrap

import pytest

from xmpp_config import ClientConfiguration
from xmpp_config.extensions import ExtensionRegistry
from xmpp_config.utils import CONFIG_FILE_ENV


class CountingResolver:
    """Resolver double serving in-memory documents and counting every call."""

    def __init__(self, documents=None, failures=None):
        self.documents = dict(documents or {})
        self.failures = dict(failures or {})
        self.calls = []
        self.streams = []

    def __call__(self, location, loader=None):
        self.calls.append(location)
        if location in self.failures:
            raise self.failures[location]
        if location not in self.documents:
            return None
        stream = io.BytesIO(self.documents[location].encode("utf-8"))
        self.streams.append(stream)
        return stream

    def count(self, location):
        return self.calls.count(location)


def make_document(body: str, root: str = "xmppConfig") -> str:
    # root may carry attributes, e.g. 'xmppConfig xmlns="urn:example"'
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<{root}>{body}</{root.split()[0]}>'


DEFAULT = "resource:test/default.xml"


@pytest.fixture(autouse=True)
def no_config_env(monkeypatch):
    monkeypatch.delenv(CONFIG_FILE_ENV, raising=False)


@pytest.fixture
def document():
    return make_document


@pytest.fixture
def resolver():
    return CountingResolver()


@pytest.fixture
def registry():
    return ExtensionRegistry()


@pytest.fixture
def make_config(resolver, registry):
    def _make(**kwargs):
        kwargs.setdefault("resolver", resolver)
        kwargs.setdefault("registry", registry)
        kwargs.setdefault("default_location", DEFAULT)
        return ClientConfiguration(**kwargs)

    return _make


@pytest.fixture
def ext_module(tmp_path, monkeypatch):
    """Write importable extension modules into a temporary sys.path entry."""
    monkeypatch.syspath_prepend(str(tmp_path))
    written = []

    def _write(name, source):
        (tmp_path / f"{name}.py").write_text(textwrap.dedent(source), encoding="utf-8")
        importlib.invalidate_caches()
        written.append(name)
        return name

    yield _write
    for name in written:
        sys.modules.pop(name, None)


@pytest.fixture
def default_location():
    return DEFAULT
