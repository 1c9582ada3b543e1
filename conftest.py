"""Top-level pytest configuration.

Keep test runs independent of any ``rpcquery.yml`` in the invoking
directory and of ``RPCQUERY_*`` variables exported by the developer shell.
"""

import pytest


@pytest.fixture(autouse=True)
def _isolate_rpcquery_env(monkeypatch):
    import os

    for name in list(os.environ):
        if name.startswith("RPCQUERY_"):
            monkeypatch.delenv(name, raising=False)
    yield
