"""
resolution.py - Deadline-gated closing and proportional payouts

This module provides:
1. PayoutPlan - immutable result of the payout calculation
2. compute_payouts() - pure function: stakes + winning option + fee -> plan
3. ResolutionEngine.close_bet() - validates, commits the close, pays out

Payout rules (all amounts whole tokens, all divisions floored):
    fee           = floor(pooled * fee_percent / 100)
    distributable = pooled - fee
    winners exist:  payout(w) = stake(w) + floor(stake(w) * (distributable - winning_pool) / winning_pool)
    no winners:     payout(w) = floor(stake(w) * distributable / pooled)   (refund less fee share)
    dust          = distributable - sum(payouts)

sum(payouts) + fee + dust == pooled always holds. Fee and dust both go to
the fee sink. Payouts are listed in participant order.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Mapping, Sequence, Tuple

from .config import AccessControlConfig
from .core import (
    Move, TransactionOrigin, OriginType, ExecuteResult,
    AlreadyClosed, DeadlineNotReached, LedgerError, NotProposer, TransferRejected,
    build_transaction, floor_div,
)
from .events import BetClosed, Notifier
from .ledger import Ledger
from .registry import Bet, BetRegistry, BetState


EVENT_CLOSE_BET = "CLOSE_BET"


@dataclass(frozen=True, slots=True)
class PayoutPlan:
    """
    Outcome of compute_payouts().

    Attributes:
        winning_option: Declared outcome index.
        pooled: Total staked.
        winning_pool: Total staked on the winning option.
        losing_pool: pooled - winning_pool.
        fee: Amount taken for the fee sink.
        distributable: pooled - fee.
        payouts: (wallet, amount) in participant order, zero amounts included.
        dust: Rounding remainder, also routed to the fee sink.
        refunded: True when nobody chose the winning option.
    """
    winning_option: int
    pooled: Decimal
    winning_pool: Decimal
    losing_pool: Decimal
    fee: Decimal
    distributable: Decimal
    payouts: Tuple[Tuple[str, Decimal], ...]
    dust: Decimal
    refunded: bool

    @property
    def total_paid(self) -> Decimal:
        return sum((amount for _, amount in self.payouts), Decimal("0"))

    def payout_for(self, wallet: str) -> Decimal:
        for w, amount in self.payouts:
            if w == wallet:
                return amount
        return Decimal("0")


def compute_payouts(
    participants: Sequence[str],
    chosen_option: Mapping[str, int],
    stake: Mapping[str, Decimal],
    winning_option: int,
    fee_percent: int,
) -> PayoutPlan:
    """
    Split a pool between the wallets that chose winning_option.

    Args:
        participants: Wallets in staking order
        chosen_option: wallet -> option index
        stake: wallet -> staked amount
        winning_option: Declared outcome
        fee_percent: Whole-number percent taken as fee

    Returns:
        PayoutPlan whose payouts follow participant order

    Example:
        plan = compute_payouts(
            ["x", "y"], {"x": 0, "y": 1},
            {"x": Decimal("50"), "y": Decimal("150")},
            winning_option=0, fee_percent=5,
        )
        # plan.fee == 10, plan.payout_for("x") == 190, plan.dust == 0
    """
    pooled = sum((stake[w] for w in participants), Decimal("0"))
    winning_pool = sum(
        (stake[w] for w in participants if chosen_option[w] == winning_option),
        Decimal("0"),
    )
    fee = floor_div(pooled * fee_percent, Decimal(100))
    distributable = pooled - fee

    payouts: List[Tuple[str, Decimal]] = []
    refunded = winning_pool == 0
    if refunded:
        for w in participants:
            payouts.append((w, floor_div(stake[w] * distributable, pooled)))
    else:
        for w in participants:
            if chosen_option[w] != winning_option:
                continue
            share = floor_div(stake[w] * (distributable - winning_pool), winning_pool)
            payouts.append((w, stake[w] + share))

    paid = sum((amount for _, amount in payouts), Decimal("0"))
    dust = distributable - paid
    if dust < 0 or paid + fee + dust != pooled:
        raise LedgerError(
            f"payout plan does not conserve value: paid={paid} fee={fee} dust={dust} pooled={pooled}"
        )

    return PayoutPlan(
        winning_option=winning_option,
        pooled=pooled,
        winning_pool=winning_pool,
        losing_pool=pooled - winning_pool,
        fee=fee,
        distributable=distributable,
        payouts=tuple(payouts),
        dust=dust,
        refunded=refunded,
    )


def compute_bet_payouts(bet: Bet, winning_option: int, fee_percent: int) -> PayoutPlan:
    """compute_payouts() for a Bet record."""
    return compute_payouts(bet.participants, bet.chosen_option, bet.stake, winning_option, fee_percent)


class ResolutionEngine:
    """Closes bets and pays out from their escrow wallets."""

    def __init__(
        self,
        registry: BetRegistry,
        ledger: Ledger,
        config: AccessControlConfig,
        notifier: Notifier,
        source_id: str = "parimutuel",
    ):
        self.registry = registry
        self.ledger = ledger
        self.config = config
        self.notifier = notifier
        self.source_id = source_id

    @property
    def token_symbol(self) -> str:
        return self.registry.token_symbol

    def close_bet(self, bet_id: int, winning_option: int, caller: str, now: int) -> PayoutPlan:
        """
        Declare winning_option and distribute the pool.

        The bet is marked CLOSED, with its winning option, payouts, fee and
        dust recorded, before the payout transaction reaches the ledger.
        Anything the ledger calls back into therefore sees a closed bet. If
        the ledger rejects the transaction, or raises while executing it, the
        bet is reopened exactly as it was; a rejection surfaces as
        TransferRejected.

        Raises:
            NotFound: unknown bet_id
            NotProposer: caller did not create the bet
            AlreadyClosed: bet was closed before
            DeadlineNotReached: now is below the deadline height
            InvalidOption: winning_option out of range
            TransferRejected: the ledger refused the payout transaction
        """
        bet = self.registry.get_bet(bet_id)
        if caller != bet.proposer:
            raise NotProposer(f"{caller} did not propose bet {bet_id}")
        if not bet.is_open:
            raise AlreadyClosed(f"Bet {bet_id} is already closed")
        if now < bet.deadline_height:
            raise DeadlineNotReached(
                f"Bet {bet_id}: height {now} is before deadline {bet.deadline_height}"
            )
        bet.check_option(winning_option)

        plan = compute_bet_payouts(bet, winning_option, self.config.fee_percent)
        sink = self.config.effective_fee_sink
        moves = self._payout_moves(bet, plan, sink)
        if plan.fee + plan.dust > 0 and not self.ledger.is_registered(sink):
            self.ledger.register_wallet(sink)

        bet.state = BetState.CLOSED
        bet.winning_option = winning_option
        bet.payouts = dict(plan.payouts)
        bet.fee = plan.fee
        bet.dust = plan.dust

        pending = build_transaction(
            self.ledger,
            moves,
            origin=TransactionOrigin(OriginType.ENGINE, self.source_id, bet_id, EVENT_CLOSE_BET),
        )
        try:
            result = self.ledger.execute(pending)
        except BaseException:
            self._reopen(bet)
            raise
        if result != ExecuteResult.APPLIED:
            self._reopen(bet)
            raise TransferRejected(f"Payout for bet {bet_id}: {result.value}")

        self.notifier.emit(BetClosed(bet_id, bet.proposer, winning_option))
        return plan

    def _payout_moves(self, bet: Bet, plan: PayoutPlan, sink: str) -> List[Move]:
        moves = [
            Move(amount, self.token_symbol, bet.escrow_wallet, wallet, f"payout:{bet.bet_id}:{wallet}")
            for wallet, amount in plan.payouts
            if amount > 0
        ]
        if plan.fee > 0:
            moves.append(Move(plan.fee, self.token_symbol, bet.escrow_wallet, sink, f"fee:{bet.bet_id}"))
        if plan.dust > 0:
            moves.append(Move(plan.dust, self.token_symbol, bet.escrow_wallet, sink, f"dust:{bet.bet_id}"))
        return moves

    @staticmethod
    def _reopen(bet: Bet) -> None:
        bet.state = BetState.OPEN
        bet.winning_option = None
        bet.payouts = {}
        bet.fee = Decimal("0")
        bet.dust = Decimal("0")
