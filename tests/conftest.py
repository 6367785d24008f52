import os
import sys

import pytest


def pytest_configure():
    # Ensure `src/` is importable without installing for `zfcrypt.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    from zfcrypt import config_manager, constants

    monkeypatch.delenv(constants.ENV_ENCRYPTION_CLI_SUPPORTED, raising=False)
    monkeypatch.setenv(constants.ENV_CONFIG_FILE, str(tmp_path / "config.json"))
    monkeypatch.setattr(config_manager, "_config_cache", None)
    yield


class FakeZfs:
    """Stands in for run_zfs: maps an action to output or an exception."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def __call__(self, ctx, action, *args):
        self.calls.append((action,) + args)
        response = self.responses.get(action, "")
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(ctx, action, *args)
        return response


class FakeQuery:
    """Stands in for get_properties: returns fixed values, records calls."""

    def __init__(self, values=None, error=None):
        self.values = dict(values or {})
        self.error = error
        self.calls = []

    def __call__(self, ctx, dataset, names, source):
        from zfcrypt.zfs_properties import ZfsProperties

        self.calls.append((dataset, list(names), source))
        if self.error is not None:
            raise self.error
        return ZfsProperties.from_values({n: self.values[n] for n in names if n in self.values})


@pytest.fixture
def fake_zfs():
    return FakeZfs


@pytest.fixture
def fake_query():
    return FakeQuery
