"""Shared pytest fixtures for vendabot tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from vendabot.bootstrap import set_services  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_services(monkeypatch):
    """Drop the process-wide services between tests.

    Routes build services lazily from the environment; a test that injects
    fakes with set_services() must not leak them into the next test.
    Deployments default to production, so tests opt into the test env.
    """
    monkeypatch.setenv("APP_ENV", "test")
    set_services(None)
    yield
    set_services(None)
