"""
parimutuel - Pari-mutuel Wagering Ledger

Bets on discrete outcomes, escrowed in a double-entry token ledger and paid
out in proportion to stake once the proposer declares the outcome.

Usage:
    from decimal import Decimal
    from parimutuel import Ledger, token, BettingEngine, AccessControlConfig

    ledger = Ledger("main", verbose=False, test_mode=True)
    ledger.register_unit(token("TOK", "Wager Token"))
    for wallet in ("carol", "x", "y"):
        ledger.register_wallet(wallet)
        ledger.set_balance(wallet, "TOK", Decimal("1000"))

    engine = BettingEngine(ledger, "TOK", AccessControlConfig("admin", fee_percent=5))
    bet_id = engine.create_bet("carol", "Who wins?", ["A", "B"], requested_duration=100)
    engine.place_bet(bet_id, "x", option=0, amount=50)
    engine.place_bet(bet_id, "y", option=1, amount=150)

    ledger.advance_height(100)
    plan = engine.close_bet(bet_id, winning_option=0, caller="carol")
    # plan.fee == 10, x receives 190
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    ExecuteResult,
    LedgerError,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    BettingError,
    NotHolder,
    DeadlineTooShort,
    TitleTooLong,
    InvalidOptionCount,
    NotFound,
    AlreadyPlaced,
    InvalidOption,
    InvalidAmount,
    InsufficientBalance,
    DeadlinePassed,
    NotProposer,
    DeadlineNotReached,
    AlreadyClosed,
    NotAdministrator,
    InvalidFee,
    TransferRejected,
    token,
    escrow_wallet,
    floor_div,
    SYSTEM_WALLET,
    UNIT_TYPE_TOKEN,
)

# Ledger
from .ledger import Ledger

# Configuration
from .config import (
    AccessControlConfig,
    DEFAULT_MIN_DEADLINE_DURATION,
    DEFAULT_MAX_OPTIONS,
    DEFAULT_FEE_PERCENT,
    MIN_OPTIONS,
    MAX_FEE_PERCENT,
    MAX_TITLE_LENGTH,
)

# Notifications
from .events import (
    BetCreated,
    BetPlaced,
    BetClosed,
    Notifier,
)

# Bets
from .registry import Bet, BetState, BetRegistry
from .pool import WagerPool
from .resolution import (
    PayoutPlan,
    compute_payouts,
    compute_bet_payouts,
    ResolutionEngine,
)

# Engine
from .engine import BettingEngine

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin', 'OriginType',
    'build_transaction', 'Unit', 'ExecuteResult',
    'LedgerError', 'TransferRuleViolation',
    'UnitNotRegistered', 'WalletNotRegistered',
    'token', 'escrow_wallet', 'floor_div', 'SYSTEM_WALLET', 'UNIT_TYPE_TOKEN',
    # Betting errors
    'BettingError', 'NotHolder', 'DeadlineTooShort', 'TitleTooLong', 'InvalidOptionCount',
    'NotFound', 'AlreadyPlaced', 'InvalidOption', 'InvalidAmount', 'InsufficientBalance',
    'DeadlinePassed', 'NotProposer', 'DeadlineNotReached', 'AlreadyClosed',
    'NotAdministrator', 'InvalidFee', 'TransferRejected',
    # Ledger
    'Ledger',
    # Configuration
    'AccessControlConfig', 'DEFAULT_MIN_DEADLINE_DURATION', 'DEFAULT_MAX_OPTIONS',
    'DEFAULT_FEE_PERCENT', 'MIN_OPTIONS', 'MAX_FEE_PERCENT', 'MAX_TITLE_LENGTH',
    # Notifications
    'BetCreated', 'BetPlaced', 'BetClosed', 'Notifier',
    # Bets
    'Bet', 'BetState', 'BetRegistry', 'WagerPool',
    'PayoutPlan', 'compute_payouts', 'compute_bet_payouts', 'ResolutionEngine',
    # Engine
    'BettingEngine',
]

__version__ = '1.0.0'
