"""
================================================================================
PYTEST CONFIGURATION
================================================================================

Pytest configuration and shared fixtures for the entire test suite.

Global Fixtures:
    - isolated_paths: Points every file constant (data, keys, logs, config)
      at a per-test temp directory
    - key_manager: KeyManager over an in-memory salt store with a low
      iteration count so derivation stays fast
    - session / db / tracker: A logged-in user with an in-memory ledger

Test Isolation Strategy:
    Nothing is written to the working tree. File-backed tests use tmp_path.

================================================================================
"""
import sys
import pytest
from datetime import date, timedelta
from pathlib import Path

# Ensure project root is on sys.path for cli imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from zkledger.core.database import DatabaseManager
from zkledger.core.keys import KeyManager, MemorySaltStore
from zkledger.core.session import SessionManager
from zkledger.models import Transaction
from zkledger.tracker import FinanceTracker
from zkledger.utils import constants

TEST_ITERATIONS = 1000
TEST_PASSWORD = 'correct horse battery staple'


@pytest.fixture(autouse=True)
def isolated_paths(tmp_path, monkeypatch):
    """Redirect all file locations into tmp_path."""
    monkeypatch.setattr(constants, 'BASE_DIR', tmp_path)
    monkeypatch.setattr(constants, 'DATA_DIR', tmp_path / 'data')
    monkeypatch.setattr(constants, 'OUTPUT_DIR', tmp_path / 'outputs')
    monkeypatch.setattr(constants, 'LOG_DIR', tmp_path / 'outputs' / 'logs')
    monkeypatch.setattr(constants, 'DB_FILE', tmp_path / 'data' / 'finance.db')
    monkeypatch.setattr(constants, 'KEYS_DIR', tmp_path / 'keys')
    monkeypatch.setattr(constants, 'SALT_FILE', tmp_path / 'keys' / 'salts.json')
    monkeypatch.setattr(constants, 'CONFIG_FILE', tmp_path / 'configs' / 'config.json')
    monkeypatch.delenv(constants.PASSWORD_ENV_VAR, raising=False)
    return tmp_path


@pytest.fixture
def key_manager():
    return KeyManager(MemorySaltStore(), iterations=TEST_ITERATIONS)


@pytest.fixture
def session_manager(key_manager):
    return SessionManager(key_manager)


@pytest.fixture
def session(session_manager):
    return session_manager.register(1, TEST_PASSWORD)


@pytest.fixture
def db():
    manager = DatabaseManager(':memory:')
    yield manager
    manager.close()


@pytest.fixture
def tracker(session, db):
    return FinanceTracker(session, db)


def make_tx(amount, category='Food', day=None, description='Purchase', merchant=None):
    """Build a valid Transaction with sensible defaults."""
    return Transaction.create(
        amount=amount,
        description=description,
        category=category,
        date=day or date(2026, 1, 15),
        merchant=merchant,
    )


def daily_series(amounts, category='Food', start=date(2026, 1, 1)):
    """One transaction per day starting at start, in the given order."""
    return [
        make_tx(amount, category=category, day=start + timedelta(days=i))
        for i, amount in enumerate(amounts)
    ]
