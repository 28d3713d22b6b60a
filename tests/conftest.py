"""
Pytest configuration for CharmX tests.

Puts the project root on the Python path so ``charmx`` imports without
an install, and the tests directory so the shared transaction builders
in ``charm_builders`` are importable from every test package.
"""

import sys
import os

import pytest

tests_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(tests_dir)
for path in (project_root, tests_dir):
    if path not in sys.path:
        sys.path.insert(0, path)


@pytest.fixture(autouse=True)
def _clear_charmx_env(monkeypatch):
    """Run every test against the default configuration."""
    for var in ('NETWORK', 'MEMPOOL_API_URL', 'FETCH_TIMEOUT', 'VKEYS_FILE',
                'REST_HOST', 'REST_PORT', 'REST_API_KEY', 'LOG_LEVEL'):
        monkeypatch.delenv(var, raising=False)
