"""
ledger.py - The token ledger the betting engine moves stakes through

Ledger holds every wallet's token balances and is the only place balances
change outside test setup. A PendingTransaction is validated as a whole
(registration, transfer rules, balance bounds) and then either applied in
full and logged, or rejected with nothing touched.

Ledger satisfies LedgerView, so it can be handed to transfer rules and the
engine's read paths as-is.
"""

from __future__ import annotations
from typing import Dict, List, Set, Optional, Tuple, Any, Iterable
from decimal import Decimal

from .core import (
    Move, Transaction, Unit, PendingTransaction, ExecuteResult,
    Positions, BalanceMap,
    QUANTITY_EPSILON, SYSTEM_WALLET,
    LedgerError, TransferRuleViolation, UnitNotRegistered, WalletNotRegistered,
)


_ZERO = Decimal("0")


class Ledger:
    """
    Wallet balances, unit definitions, a height clock and an execution log.

    Not thread-safe. BettingEngine holds its own lock around every call it
    makes; anything else writing to the same ledger must serialize too.

    Example:
        ledger = Ledger("main", test_mode=True)
        ledger.register_unit(token("TOK", "Wager Token"))
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")
        ledger.set_balance("alice", "TOK", Decimal("100"))

        ledger.execute(build_transaction(ledger, [
            Move(Decimal("40"), "TOK", "alice", "bob", "gift")
        ]))
    """

    def __init__(
        self,
        name: str,
        initial_height: int = 0,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Args:
            name: Appears in every exec_id this ledger issues
            initial_height: Starting value of the height clock
            verbose: Print registrations and execution results
            test_mode: Allow set_balance()
        """
        if initial_height < 0:
            raise ValueError(f"initial_height must be non-negative, got {initial_height}")
        self.name = name
        self.verbose = verbose
        self.units: Dict[str, Unit] = {}
        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self._height = initial_height
        self._test_mode = test_mode
        # wallet -> unit -> quantity; a wallet is registered iff it has an entry
        self._holdings: Dict[str, Dict[str, Decimal]] = {SYSTEM_WALLET: {}}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def current_height(self) -> int:
        return self._height

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self._holdings

    def _require_wallet(self, wallet_id: str) -> Dict[str, Decimal]:
        try:
            return self._holdings[wallet_id]
        except KeyError:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered") from None

    def get_unit(self, symbol: str) -> Unit:
        try:
            return self.units[symbol]
        except KeyError:
            raise UnitNotRegistered(f"Unit {symbol} not registered") from None

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Raises:
            WalletNotRegistered, UnitNotRegistered
        """
        holdings = self._require_wallet(wallet_id)
        self.get_unit(unit_symbol)
        return holdings.get(unit_symbol, _ZERO)

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        return dict(self._require_wallet(wallet_id))

    def get_positions(self, unit_symbol: str) -> Positions:
        """Every wallet holding a non-zero amount of unit_symbol."""
        positions = {}
        for wallet, holdings in self._holdings.items():
            quantity = holdings.get(unit_symbol, _ZERO)
            if abs(quantity) > QUANTITY_EPSILON:
                positions[wallet] = quantity
        return positions

    def list_wallets(self) -> Set[str]:
        return set(self._holdings)

    def list_units(self) -> List[str]:
        return sorted(self.units)

    def total_supply(self, unit_symbol: str) -> Decimal:
        """Sum over every wallet, the system wallet included, in wallet-id order."""
        self.get_unit(unit_symbol)
        total = _ZERO
        for wallet in sorted(self._holdings):
            total += self._holdings[wallet].get(unit_symbol, _ZERO)
        return total

    def verify_double_entry(
        self,
        expected_supplies: Optional[Dict[str, Decimal]] = None,
    ) -> Dict[str, Any]:
        """
        Compare each unit's total supply with an expected figure.

        Returns a dict with 'valid', 'supplies' (unit -> current total) and
        'discrepancies', a list of {'unit', 'expected', 'actual',
        'difference'} dicts. A unit that is expected but not registered is
        reported with an extra 'error' key.
        """
        expected_supplies = expected_supplies or {}
        supplies = {symbol: self.total_supply(symbol) for symbol in self.units}
        discrepancies = []

        for symbol, expected in expected_supplies.items():
            if symbol not in supplies:
                discrepancies.append({
                    'unit': symbol,
                    'expected': expected,
                    'actual': _ZERO,
                    'difference': abs(expected),
                    'error': 'unit not registered',
                })
            elif supplies[symbol] != expected:
                discrepancies.append({
                    'unit': symbol,
                    'expected': expected,
                    'actual': supplies[symbol],
                    'difference': abs(supplies[symbol] - expected),
                })

        return {
            'valid': not discrepancies,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ------------------------------------------------------------------
    # Clock and registration
    # ------------------------------------------------------------------

    def advance_height(self, new_height: int) -> None:
        """Move the clock to new_height. Staying put is allowed; going back is not."""
        if new_height < self._height:
            raise ValueError(f"Height cannot go backwards: {new_height} < {self._height}")
        self._height = new_height

    def register_wallet(self, wallet_id: str) -> str:
        if wallet_id in self._holdings:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self._holdings[wallet_id] = {}
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            rule = unit.transfer_rule.__name__ if unit.transfer_rule else "none"
            print(f"[{self.name}] unit {unit.symbol} ({unit.name}) registered, transfer rule: {rule}")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Overwrite a balance directly, for funding wallets in tests.

        This skips validation and breaks conservation, so it only works on a
        ledger built with test_mode=True.
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() requires a ledger created with test_mode=True; "
                "move value with execute() instead"
            )
        holdings = self._require_wallet(wallet_id)
        self.get_unit(unit_symbol)
        holdings[unit_symbol] = quantity if isinstance(quantity, Decimal) else Decimal(str(quantity))

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Apply every move of pending, or none of them.

        An intent_id that was applied before yields ALREADY_APPLIED and no
        change. A rejected intent is not remembered and may be retried.

        Transfer rules run before anything is applied. A rule that calls
        back into the engine may execute other transactions; this one is
        then checked against the balances they leave behind.
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            self._log(f"already applied {pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        reason = self._rejection_reason(pending)
        if reason is not None:
            self._log(f"rejected {pending.intent_id}: {reason}")
            return ExecuteResult.REJECTED

        sequence = len(self.transaction_log)
        tx = Transaction(
            moves=pending.moves,
            origin=pending.origin,
            height=pending.height,
            intent_id=pending.intent_id,
            exec_id=f"exec:{self.name}:{sequence:012d}:{self._height}",
            ledger_name=self.name,
            execution_height=self._height,
            sequence_number=sequence,
        )
        for move in tx.moves:
            self._apply(move)
        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)

        self._log(f"applied {tx.exec_id}: " + "; ".join(repr(m) for m in tx.moves))
        return ExecuteResult.APPLIED

    def _log(self, message: str) -> None:
        if self.verbose:
            print(f"[{self.name}] {message}")

    def _rejection_reason(self, pending: PendingTransaction) -> Optional[str]:
        """None when pending may be applied, otherwise why not."""
        if pending.height > self._height:
            return f"height {pending.height} is ahead of ledger height {self._height}"
        for move in pending.moves:
            reason = self._check_move(move)
            if reason is not None:
                return reason
        return self._check_bounds(pending.moves)

    def _check_move(self, move: Move) -> Optional[str]:
        unit = self.units.get(move.unit_symbol)
        if unit is None:
            return f"unit not registered: {move.unit_symbol}"
        for wallet in (move.source, move.dest):
            if wallet not in self._holdings:
                return f"wallet not registered: {wallet}"
        if unit.transfer_rule is not None:
            try:
                unit.transfer_rule(self, move)
            except TransferRuleViolation as e:
                return f"transfer rule: {e}"
        return None

    def _check_bounds(self, moves: Iterable[Move]) -> Optional[str]:
        deltas: Dict[Tuple[str, str], Decimal] = {}
        for move in moves:
            unit = self.units[move.unit_symbol]
            for wallet, signed in ((move.source, -move.quantity), (move.dest, move.quantity)):
                key = (wallet, move.unit_symbol)
                deltas[key] = unit.round(deltas.get(key, _ZERO) + signed)

        for (wallet, symbol), delta in deltas.items():
            # The system wallet issues supply and may run negative.
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[symbol]
            after = unit.round(self._holdings[wallet].get(symbol, _ZERO) + delta)
            if not unit.min_balance <= after <= unit.max_balance:
                return (
                    f"{wallet} would hold {after} {symbol}, "
                    f"outside [{unit.min_balance}, {unit.max_balance}]"
                )
        return None

    def _apply(self, move: Move) -> None:
        unit = self.units[move.unit_symbol]
        source = self._holdings[move.source]
        dest = self._holdings[move.dest]
        source[move.unit_symbol] = unit.round(source.get(move.unit_symbol, _ZERO) - move.quantity)
        dest[move.unit_symbol] = unit.round(dest.get(move.unit_symbol, _ZERO) + move.quantity)

    # ------------------------------------------------------------------

    def clone(self) -> Ledger:
        """Independent copy: balances, registrations, log, intents and height."""
        copy = Ledger(self.name, initial_height=self._height,
                      verbose=self.verbose, test_mode=self._test_mode)
        copy.units = dict(self.units)
        copy.seen_intent_ids = set(self.seen_intent_ids)
        copy.transaction_log = list(self.transaction_log)
        copy._holdings = {wallet: dict(h) for wallet, h in self._holdings.items()}
        return copy
