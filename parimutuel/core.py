"""
core.py - Value types, exceptions and helpers shared by the ledger and the engine

This module provides:
1. LedgerView - the read-only face of the token ledger
2. Move / PendingTransaction / Transaction - a value transfer, an intent to
   apply some, and the logged record of having applied them
3. Unit and token() - fungible unit definitions with an optional transfer rule
4. LedgerError and BettingError - every exception the package raises
5. escrow_wallet() and floor_div() - the two helpers the payout math leans on

Nothing here holds or mutates ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from enum import Enum
from fractions import Fraction
import hashlib
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable
)


# ============================================================================
# DECIMAL CONTEXT
# ============================================================================
#
# Every amount is a Decimal. The context is fixed once, here, at import:
#
#   - prec=50: far beyond any stake * pool product the engine computes
#   - rounding=ROUND_HALF_EVEN: the default; payout math rounds explicitly
#
# Code that needs another precision should use decimal.localcontext().

DECIMAL_PRECISION = 50

_context = getcontext()
_context.prec = DECIMAL_PRECISION
_context.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Issuance wallet; the only wallet allowed below a unit's min_balance.
SYSTEM_WALLET = "system"

# Custodial wallets holding pooled stakes are named bet:<id>.
ESCROW_WALLET_PREFIX = "bet:"

UNIT_TYPE_TOKEN = "TOKEN"

# Smallest quantity a Move may carry.
QUANTITY_EPSILON = Decimal("1e-12")

# Rounding applied by Unit.round(), by unit type. Tokens never round up.
ROUNDING_BY_UNIT_TYPE = {
    UNIT_TYPE_TOKEN: ROUND_DOWN,
}


# wallet -> quantity, for one unit
Positions = Dict[str, Decimal]

# unit -> quantity, for one wallet
BalanceMap = Dict[str, Decimal]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    What the registry, the pool and transfer rules may see of a ledger.

    Ledger satisfies it structurally; so does the FakeView used in tests.
    """

    @property
    def current_height(self) -> int:
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Balance of unit_symbol held by wallet_id; zero when it holds none."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        ...

    def list_wallets(self) -> Set[str]:
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    What Ledger.execute() did with a PendingTransaction.

    APPLIED: every move was applied (or there were none).
    ALREADY_APPLIED: the same intent was applied before; nothing changed.
    REJECTED: validation failed; nothing changed.
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    USER_ACTION = "user_action"   # built by hand, e.g. in tests or scripts
    ENGINE = "engine"             # escrow and payout transfers


# ============================================================================
# LEDGER EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Root of every exception raised by this package."""
    pass


class TransferRuleViolation(LedgerError):
    """Raised by a unit's transfer rule to veto a move."""
    pass


class UnitNotRegistered(LedgerError):
    pass


class WalletNotRegistered(LedgerError):
    pass


# ============================================================================
# BETTING EXCEPTIONS
# ============================================================================

class BettingError(LedgerError):
    """Base exception for every rejected engine operation."""
    pass


class NotHolder(BettingError):
    """Caller holds no positive token balance."""
    pass


class DeadlineTooShort(BettingError):
    """Requested duration is below the configured minimum."""
    pass


class TitleTooLong(BettingError):
    pass


class InvalidOptionCount(BettingError):
    """Option list length is outside [2, max_options]."""
    pass


class NotFound(BettingError):
    """No bet with the given id was ever created."""
    pass


class AlreadyPlaced(BettingError):
    """Wallet already holds a stake in this bet."""
    pass


class InvalidOption(BettingError):
    pass


class InvalidAmount(BettingError):
    """Stake amount is not a positive whole number of tokens."""
    pass


class InsufficientBalance(BettingError):
    pass


class DeadlinePassed(BettingError):
    """Stake submitted after the bet's deadline height."""
    pass


class NotProposer(BettingError):
    pass


class DeadlineNotReached(BettingError):
    """Close attempted before the bet's deadline height."""
    pass


class AlreadyClosed(BettingError):
    """Bet has already been resolved."""
    pass


class NotAdministrator(BettingError):
    pass


class InvalidFee(BettingError):
    """Fee percent outside the allowed range."""
    pass


class TransferRejected(BettingError):
    """The token ledger rejected an escrow or payout transaction."""
    pass


# ============================================================================
# TRANSACTIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Who asked for a transaction, and on behalf of which bet.

    Attributes:
        origin_type: USER_ACTION or ENGINE
        source_id: Engine name or user id
        bet_id: Bet the transfer belongs to, if any
        event_type: Engine operation, e.g. "PLACE_BET" or "CLOSE_BET"
    """
    origin_type: OriginType
    source_id: str
    bet_id: Optional[int] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        text = f"{self.origin_type.value}:{self.source_id}"
        if self.bet_id is not None:
            text += f" bet={self.bet_id}"
        if self.event_type:
            text += f" {self.event_type}"
        return f"Origin({text})"


@dataclass(frozen=True, slots=True)
class Move:
    """
    quantity of unit_symbol from source to dest.

    contract_id names the operation the move belongs to, for example
    "stake:3:alice" or "payout:3:bob". metadata is carried but never read.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        for name in ("source", "dest", "unit_symbol", "contract_id"):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ValueError(f"Move {name} cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be a Decimal, got {type(self.quantity).__name__}")
        if not self.quantity.is_finite():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if abs(self.quantity) < QUANTITY_EPSILON:
            raise ValueError(f"Move quantity is effectively zero: {self.quantity}")
        if self.source == self.dest:
            raise ValueError(f"Move source and dest must differ, both are {self.source}")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol} {self.source}->{self.dest} [{self.contract_id}])"


def _canonical_amount(amount: Decimal) -> str:
    """Plain-notation string equal for equal amounts: 5, 5.0 and 5.00 all give '5'."""
    return format(amount.normalize(), "f")


def _intent_hash(moves: Tuple[Move, ...], origin: TransactionOrigin) -> str:
    """
    Content hash of a transaction's intent.

    Covers the origin and the moves, with moves taken in sorted order so
    that listing them differently does not change the hash. Heights are
    left out: the same intent built at two heights is the same intent.
    """
    fields = [origin.origin_type.value, origin.source_id, str(origin.bet_id), str(origin.event_type)]
    for key in sorted(
        (_canonical_amount(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
        for m in moves
    ):
        fields.append("|".join(key))
    return hashlib.sha256("\n".join(fields).encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    Moves to apply together, not yet applied.

    intent_id is derived from the content when not given; Ledger.execute()
    applies a given intent at most once.
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    height: int
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            object.__setattr__(self, 'intent_id', _intent_hash(self.moves, self.origin))

    def is_empty(self) -> bool:
        return not self.moves

    def __repr__(self) -> str:
        return f"PendingTransaction({self.intent_id}, {len(self.moves)} moves, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Wrap moves into a PendingTransaction stamped with the view's height.

    Example:
        pending = build_transaction(ledger, [
            Move(Decimal("50"), "TOK", "alice", "bet:1", "stake:1:alice")
        ])
        ledger.execute(pending)
    """
    if origin is None:
        origin = TransactionOrigin(OriginType.USER_ACTION, "user")
    return PendingTransaction(tuple(moves), origin, view.current_height)


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    A PendingTransaction as the ledger applied and logged it.

    Attributes:
        moves, origin, height, intent_id: Copied from the PendingTransaction
        exec_id: "exec:<ledger>:<sequence>:<height>", unique per ledger
        ledger_name: Ledger that applied it
        execution_height: Ledger height when it was applied
        sequence_number: Position in the ledger's transaction log
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    height: int
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_height: int
    sequence_number: int

    def __post_init__(self):
        if not self.moves:
            raise ValueError("Transaction must have moves")

    @property
    def contract_ids(self) -> FrozenSet[str]:
        return frozenset(m.contract_id for m in self.moves)

    def __repr__(self) -> str:
        return f"Transaction({self.exec_id}, {len(self.moves)} moves, {self.origin})"


# ============================================================================
# UNITS
# ============================================================================

# Called by the ledger for every move of the unit before anything is applied.
# Raise TransferRuleViolation to reject the whole transaction.
TransferRule = Callable[[LedgerView, Move], None]


@dataclass(frozen=True, slots=True)
class Unit:
    """
    A fungible unit the ledger can hold.

    Attributes:
        symbol: Ticker, e.g. "TOK"
        name: Display name
        unit_type: Selects the rounding mode (see ROUNDING_BY_UNIT_TYPE)
        min_balance, max_balance: Bounds every non-system wallet must stay within
        decimal_places: Precision amounts are rounded to; None leaves them alone
        transfer_rule: Optional veto over individual moves
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    transfer_rule: Optional[TransferRule] = None

    def round(self, value: Decimal) -> Decimal:
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        rounding = ROUNDING_BY_UNIT_TYPE.get(self.unit_type, ROUND_HALF_EVEN)
        return value.quantize(Decimal(1).scaleb(-self.decimal_places), rounding=rounding)


def token(
    symbol: str,
    name: str,
    decimal_places: int = 0,
    transfer_rule: Optional[TransferRule] = None,
) -> Unit:
    """
    Create a fungible token unit.

    Args:
        symbol: Token ticker (e.g., "TOK").
        name: Full name of the token.
        decimal_places: Number of decimal places for amounts (default: 0,
            i.e. whole base units).
        transfer_rule: Optional move validator, called by the ledger for
            every move of this token.

    Returns:
        A Unit with a zero minimum balance, so no wallet can overdraw.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_TOKEN,
        decimal_places=decimal_places,
        min_balance=Decimal("0"),
        transfer_rule=transfer_rule,
    )


# ============================================================================
# HELPERS
# ============================================================================

def escrow_wallet(bet_id: int) -> str:
    """Return the custodial wallet id that holds a bet's stakes."""
    return f"{ESCROW_WALLET_PREFIX}{bet_id}"


def floor_div(numerator: Decimal, denominator: Decimal) -> Decimal:
    """
    Exact integer floor division on Decimals, rounding toward negative infinity.

    Works on exact fractions, so the result does not depend on the Decimal
    context precision. Decimal's own ``//`` truncates toward zero, which
    over-pays when the numerator is negative.
    """
    if denominator == 0:
        raise ZeroDivisionError("floor_div by zero")
    return Decimal(Fraction(numerator) // Fraction(denominator))
