"""
conftest.py - Shared pytest fixtures for betting engine tests

Provides common fixtures used across unit, functional and conformance tests:
- Token ledgers (empty, funded)
- Engines with the standard test configuration
- An open bet with a known deadline

Builders live in tests/helpers.py so test modules can import them directly.
"""

import pytest

from parimutuel import Ledger
from tests.helpers import TOKEN, make_engine, make_ledger


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", verbose=False, test_mode=True)


@pytest.fixture
def token_ledger():
    """Ledger with TOK and five wallets holding 1000 each."""
    return make_ledger()


@pytest.fixture
def total_supply(token_ledger):
    """TOK supply of token_ledger before anything happens."""
    return token_ledger.total_supply(TOKEN)


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine(token_ledger):
    """Engine with a 5% closing fee, min duration 10, max 4 options."""
    return make_engine(token_ledger)


@pytest.fixture
def fee_free_engine(token_ledger):
    """Engine with no closing fee."""
    return make_engine(token_ledger, fee_percent=0)


@pytest.fixture
def open_bet(engine):
    """
    Bet 1, proposed by carol at height 0 with options A/B and deadline 100.

    Returns:
        (engine, bet_id)
    """
    bet_id = engine.create_bet("carol", "Who wins the final?", ["A", "B"], requested_duration=100)
    return engine, bet_id
