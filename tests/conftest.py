"""Shared test fixtures and configuration.

Sets up fake environment variables so eve.config doesn't sys.exit(),
and provides common fixtures like a temp DB.
"""

import os
import tempfile

# Patch env vars BEFORE any eve imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("OPENAI_API_KEY", "fake-openai-key-for-tests")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.gettempdir(), "eve-tests.db"))
os.environ.setdefault("DEFAULT_TRADE", "Plumber")

import pytest
from datetime import datetime, timedelta


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_eve.db")


@pytest.fixture
def stores(tmp_db_path):
    """Return a Stores bundle backed by a temp file."""
    from eve.data.db import Stores
    return Stores.open(tmp_db_path)


@pytest.fixture
def account(stores):
    """An account with no email, so send_invoice has to look elsewhere."""
    return stores.accounts.create(display_name="Dana", trade_type="Electrician")


@pytest.fixture
def other_account(stores):
    return stores.accounts.create(display_name="Mallory")


@pytest.fixture
def now():
    """A fixed 'now' well clear of midnight."""
    return datetime.now().replace(hour=12, minute=0, second=0, microsecond=0)


@pytest.fixture
def make_request(stores, account, now):
    """Build an ActionRequest for an intent against the test account."""
    from eve.actions.base import ActionRequest
    from eve.ports.accounting_port import AccountingSession

    def _make(intent, accounting=None, email=None, account_id=None):
        return ActionRequest(
            account_id=account_id or account.id,
            intent=intent,
            stores=stores,
            now=now,
            accounting=accounting or AccountingSession(),
            email=email,
        )

    return _make


@pytest.fixture
def future():
    """A date comfortably in the future, as the model would send it."""
    return (datetime.now() + timedelta(days=30)).strftime("%Y-%m-%d")
