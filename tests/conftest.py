"""
Root conftest.py: sys.path, env vars, shared fixtures.

Sets up the test environment so all production code can be imported
without a Grist server or network access.
"""

import os
import sys

import pytest

# Add project root to sys.path so 'geoagent' is importable without install
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


@pytest.fixture(autouse=True, scope="session")
def set_minimal_env_vars():
    """
    Set minimal environment variables so configuration loads.

    Endpoints point at hosts that only ever exist behind MockTransport.
    """
    defaults = {
        "GRIST_SERVER_URL": "http://grist.test",
        "GRIST_DOC_ID": "testdoc",
        "GEOAGENT_QUEUE_POLL_INTERVAL": "0.01",
    }
    for key, value in defaults.items():
        os.environ.setdefault(key, value)


@pytest.fixture(autouse=True)
def fresh_config():
    """Drop the cached configuration around every test."""
    from geoagent.config import reset_config
    reset_config()
    yield
    reset_config()
