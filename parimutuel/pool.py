"""
pool.py - Stake placement and per-option aggregation

WagerPool handles the per-bet participant side:
1. place_bet() - escrow one stake for one wallet on one option
2. balance_on_option() - total staked on an option
3. has_participant() - one-stake-per-wallet membership check

Bookkeeping is committed before the escrow move is sent to the ledger, so
any code the ledger calls back into (transfer rules) sees the wallet as a
participant already and a second stake fails AlreadyPlaced. If the ledger
rejects the move, or raises while executing it, the bookkeeping is rolled
back; a rejection surfaces as TransferRejected, an exception propagates.
"""

from __future__ import annotations
from decimal import Decimal, InvalidOperation

from .core import (
    ESCROW_WALLET_PREFIX, Move, TransactionOrigin, OriginType, ExecuteResult,
    AlreadyClosed, AlreadyPlaced, DeadlinePassed, InsufficientBalance,
    InvalidAmount, NotHolder, TransferRejected,
    build_transaction,
)
from .events import BetPlaced, Notifier
from .ledger import Ledger
from .registry import Bet, BetRegistry, holder_balance


EVENT_PLACE_BET = "PLACE_BET"


class WagerPool:
    """Stake placement against bets held in a BetRegistry."""

    def __init__(
        self,
        registry: BetRegistry,
        ledger: Ledger,
        notifier: Notifier,
        source_id: str = "parimutuel",
    ):
        self.registry = registry
        self.ledger = ledger
        self.notifier = notifier
        self.source_id = source_id

    @property
    def token_symbol(self) -> str:
        return self.registry.token_symbol

    def has_participant(self, bet_id: int, wallet: str) -> bool:
        bet = self.registry.get_bet(bet_id)
        return wallet in bet.chosen_option

    def balance_on_option(self, bet_id: int, option: int) -> Decimal:
        """
        Sum of stakes whose chosen option is option.

        A linear scan over participants, in participant order. Fine for the
        pool sizes this engine targets; large pools would want a running
        per-option total instead.
        """
        bet = self.registry.get_bet(bet_id)
        bet.check_option(option)
        return sum(
            (bet.stake[w] for w in bet.participants if bet.chosen_option[w] == option),
            Decimal("0"),
        )

    def place_bet(
        self,
        bet_id: int,
        wallet: str,
        option: int,
        amount,
        now: int,
    ) -> Bet:
        """
        Escrow amount from wallet into the bet's custodial wallet on option.

        Args:
            bet_id: Target bet
            wallet: Staking wallet
            option: Index into the bet's options
            amount: Positive whole number of tokens (int or Decimal)
            now: Current ledger height

        Returns:
            The updated Bet record

        Raises:
            NotFound: unknown bet_id
            AlreadyClosed: bet is closed
            DeadlinePassed: now is past the deadline height
            InvalidOption: option out of range
            InvalidAmount: amount not a positive whole token amount
            AlreadyPlaced: wallet already staked on this bet
            NotHolder: wallet holds no tokens, or is an escrow wallet
            InsufficientBalance: wallet holds less than amount
            TransferRejected: the ledger refused the escrow move
        """
        bet = self.registry.get_bet(bet_id)
        if not bet.is_open:
            raise AlreadyClosed(f"Bet {bet_id} is closed")
        if now > bet.deadline_height:
            raise DeadlinePassed(
                f"Bet {bet_id}: height {now} is past deadline {bet.deadline_height}"
            )
        bet.check_option(option)
        quantity = self._normalize_amount(amount)
        if wallet in bet.chosen_option:
            raise AlreadyPlaced(f"{wallet} already has a stake in bet {bet_id}")
        if wallet.startswith(ESCROW_WALLET_PREFIX):
            raise NotHolder(f"escrow wallet {wallet} cannot stake")
        balance = holder_balance(self.ledger, wallet, self.token_symbol)
        if balance <= 0:
            raise NotHolder(f"{wallet} holds no {self.token_symbol}")
        if balance < quantity:
            raise InsufficientBalance(
                f"{wallet} holds {balance} {self.token_symbol}, stake is {quantity}"
            )

        pending = build_transaction(
            self.ledger,
            [Move(quantity, self.token_symbol, wallet, bet.escrow_wallet, f"stake:{bet_id}:{wallet}")],
            origin=TransactionOrigin(OriginType.ENGINE, self.source_id, bet_id, EVENT_PLACE_BET),
        )

        bet.participants.append(wallet)
        bet.chosen_option[wallet] = option
        bet.stake[wallet] = quantity
        bet.pooled_balance += quantity
        try:
            result = self.ledger.execute(pending)
        except BaseException:
            self._rollback(bet, wallet, quantity)
            raise
        if result != ExecuteResult.APPLIED:
            self._rollback(bet, wallet, quantity)
            raise TransferRejected(
                f"Escrow of {quantity} {self.token_symbol} from {wallet} to bet {bet_id}: {result.value}"
            )

        self.notifier.emit(BetPlaced(bet_id, wallet, option, quantity))
        return bet

    def _normalize_amount(self, amount) -> Decimal:
        if isinstance(amount, bool):
            raise InvalidAmount(f"amount must be a number, got {amount!r}")
        try:
            quantity = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAmount(f"amount must be a number, got {amount!r}") from None
        if not quantity.is_finite() or quantity <= 0:
            raise InvalidAmount(f"amount must be positive, got {amount!r}")
        unit = self.ledger.get_unit(self.token_symbol)
        if unit.round(quantity) != quantity:
            raise InvalidAmount(
                f"amount {quantity} has more than {unit.decimal_places} decimal places"
            )
        return quantity

    @staticmethod
    def _rollback(bet: Bet, wallet: str, quantity: Decimal) -> None:
        bet.participants.remove(wallet)
        del bet.chosen_option[wallet]
        del bet.stake[wallet]
        bet.pooled_balance -= quantity

