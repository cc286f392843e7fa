"""
Pytest configuration and shared fixtures for the unit tests.

Provides:
- A fake PDA deriver so pipeline tests do not depend on curve arithmetic
- The test program id and the common ``Vault`` layout
- Compile-cache isolation between tests

Helpers (``make_key``, ``make_handle``, ``FakeDeriver``) live in tests/helpers.py.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

# Add the package root to path for imports
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# NOTE: Tests never load a local env file.
os.environ.pop("ENV_FILE", None)
os.environ.setdefault("ACCOUNT_GUARD_APP_ENV", "test")

import pytest  # noqa: E402 (import after path setup)
from solders.pubkey import Pubkey  # noqa: E402 (import after path setup)

from account_guard.compiler.compiler import clear_compile_cache  # noqa: E402
from account_guard.domain.layout import RecordLayout  # noqa: E402
from tests.helpers import PROGRAM_ID, FakeDeriver  # noqa: E402


@pytest.fixture
def deriver() -> FakeDeriver:
    return FakeDeriver()


@pytest.fixture(autouse=True)
def _fresh_compile_cache():
    clear_compile_cache()
    yield
    clear_compile_cache()


@pytest.fixture
def program_id() -> Pubkey:
    return PROGRAM_ID


@pytest.fixture
def vault_layout() -> RecordLayout:
    """Vault record: authority, mint, amount, bump."""
    return RecordLayout.build(
        "Vault",
        [
            ("authority", "pubkey"),
            ("mint", "pubkey"),
            ("amount", "u64"),
            ("bump", "u8"),
        ],
    )
