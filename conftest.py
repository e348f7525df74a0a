"""Repository-wide pytest configuration.

Having the repository root in ``sys.path`` lets the suites import
``raffle_deploy`` without installing it. Environment variables that select a
network, a signer or a verification key are cleared before every test so a
developer's shell never leaks into a run; tests that need one set it through
``monkeypatch.setenv``.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent

# Make repository modules importable regardless of the invocation directory.
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("PYTHONPATH", str(ROOT))


@pytest.fixture(autouse=True)
def _clear_provisioning_env():
    for key in [
        "ETHERSCAN_API_KEY",
        "PRIVATE_KEY",
        "RAFFLE_DEPLOY_NETWORK",
        "RAFFLE_DEPLOY_CONFIG",
        "SEPOLIA_RPC_URL",
    ]:
        os.environ.pop(key, None)
    yield
