"""
pytest configuration for provisioning tests.

Adds src directory to Python path for imports and sets up test environment.
"""

import os
import sys
from pathlib import Path

import pytest

# Set test environment variables BEFORE any imports
os.environ.setdefault("TEST_MODE", "true")

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep developer shell settings out of config tests."""
    for name in (
        "KEYCLOAK_URL",
        "KEYCLOAK_REALM",
        "KEYCLOAK_CLIENT_ID",
        "KEYCLOAK_REDIRECT_URI",
        "APP_ENV",
        "PROVISIONING_LOG_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_log_context():
    from core.logging.context import clear_log_context

    clear_log_context()
    yield
    clear_log_context()
