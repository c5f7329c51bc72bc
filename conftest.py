"""
Pytest configuration for boardmgr test suite.

This configuration enables the --full flag to run integration tests.
"""

import os

import pytest


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--full",
        action="store_true",
        default=False,
        help="Run full test suite including integration tests (slow)",
    )


def pytest_configure(config):
    """Configure pytest based on command-line options."""
    config.addinivalue_line("markers", "integration: tests that touch real serial ports or the network")
    if config.getoption("--full"):
        # Remove the default marker expression that excludes integration tests
        markexpr = config.getoption("-m", "")
        if markexpr == "not integration":
            config.option.markexpr = ""


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Keep BOARDMGR_* overrides from the developer environment out of tests."""
    for key in list(os.environ):
        if key.startswith("BOARDMGR_"):
            monkeypatch.delenv(key, raising=False)
