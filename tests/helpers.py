"""
helpers.py - Ledger and engine builders shared by the test suites
"""

from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional, Tuple

from parimutuel import Ledger, token, AccessControlConfig, BettingEngine


TOKEN = "TOK"
INITIAL_BALANCE = Decimal("1000")
WALLETS = ("admin", "carol", "x", "y", "z")


def make_ledger(
    wallets: Iterable[str] = WALLETS,
    balance: Decimal = INITIAL_BALANCE,
    transfer_rule: Optional[Callable] = None,
) -> Ledger:
    """Test-mode ledger with TOK registered and every wallet funded."""
    ledger = Ledger("test", verbose=False, test_mode=True)
    ledger.register_unit(token(TOKEN, "Wager Token", transfer_rule=transfer_rule))
    for wallet in wallets:
        ledger.register_wallet(wallet)
        ledger.set_balance(wallet, TOKEN, balance)
    return ledger


def make_engine(ledger: Ledger, fee_percent: int = 5, **config) -> BettingEngine:
    """Engine administered by 'admin' with the standard test limits."""
    config.setdefault("min_deadline_duration", 10)
    config.setdefault("max_options", 4)
    return BettingEngine(
        ledger, TOKEN,
        AccessControlConfig("admin", fee_percent=fee_percent, **config),
        verbose=False,
    )


def balances(ledger: Ledger, unit: str = TOKEN) -> Dict[str, Decimal]:
    """Snapshot of every wallet's balance of unit."""
    return {w: ledger.get_balance(w, unit) for w in ledger.list_wallets()}


def verify_conservation(ledger: Ledger, expected_total: Decimal, unit: str = TOKEN) -> Tuple[bool, Decimal]:
    """
    Verify conservation law for a unit.

    Returns:
        (is_conserved, actual_total)
    """
    actual = ledger.total_supply(unit)
    return actual == expected_total, actual
