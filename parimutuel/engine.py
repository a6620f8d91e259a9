"""
engine.py - Betting Engine

Wires the wagering components to one token ledger:

    BetRegistry        create_bet, get_bet
    WagerPool          place_bet, balance_on_option, has_participant
    ResolutionEngine   close_bet
    AccessControlConfig  administrative setters

Every call, reads included, runs under one re-entrant lock, so calls from
several threads are applied one after another and never see each other half
done.
The lock is re-entrant because the ledger may call back into the engine from
a transfer rule on the same thread; such calls proceed and are rejected by
the ordinary precondition checks.

The transaction log is the value audit trail; `events` is the notification
audit trail.
"""

from __future__ import annotations
from decimal import Decimal
from threading import RLock
from typing import List, Optional, Sequence, Tuple

from .config import AccessControlConfig
from .core import BettingError
from .events import BetCreated, Notification, Notifier, Observer
from .ledger import Ledger
from .pool import WagerPool
from .registry import Bet, BetRegistry, BetState
from .resolution import PayoutPlan, ResolutionEngine


class BettingEngine:
    """
    Pari-mutuel betting engine over a token ledger.

    Example:
        ledger = Ledger("main", verbose=False, test_mode=True)
        ledger.register_unit(token("TOK", "Wager Token"))
        for w in ("admin", "carol", "x", "y"):
            ledger.register_wallet(w)
            ledger.set_balance(w, "TOK", Decimal("1000"))

        engine = BettingEngine(ledger, "TOK", AccessControlConfig("admin", fee_percent=5))
        bet_id = engine.create_bet("carol", "Final score", ["A", "B"], 100)
        engine.place_bet(bet_id, "x", 0, 50)
        engine.place_bet(bet_id, "y", 1, 150)
        ledger.advance_height(100)
        engine.close_bet(bet_id, 0, "carol")
    """

    def __init__(
        self,
        ledger: Ledger,
        token_symbol: str,
        config: AccessControlConfig,
        name: str = "parimutuel",
        verbose: Optional[bool] = None,
    ):
        """
        Create an engine.

        Args:
            ledger: Token ledger holding balances and escrow wallets
            token_symbol: Registered unit that stakes are denominated in
            config: Administrator and limits; owned by this engine from now on
            name: Source id stamped on every ledger transaction origin
            verbose: Print one line per operation (default: ledger.verbose)
        """
        # Fail fast on an unregistered token
        ledger.get_unit(token_symbol)

        self.ledger = ledger
        self.token_symbol = token_symbol
        self.config = config
        self.name = name
        self.verbose = ledger.verbose if verbose is None else verbose

        self.notifier = Notifier()
        self.registry = BetRegistry(config, token_symbol)
        self.pool = WagerPool(self.registry, ledger, self.notifier, source_id=name)
        self.resolution = ResolutionEngine(self.registry, ledger, config, self.notifier, source_id=name)
        self._lock = RLock()

    # ========================================================================
    # OBSERVERS
    # ========================================================================

    def subscribe(self, observer: Observer) -> None:
        """Call observer with every notification from now on."""
        self.notifier.subscribe(observer)

    def unsubscribe(self, observer: Observer) -> None:
        self.notifier.unsubscribe(observer)

    @property
    def events(self) -> List[Notification]:
        """Every notification emitted so far, oldest first."""
        with self._lock:
            return list(self.notifier.history)

    # ========================================================================
    # OPERATIONS (Mutating)
    # ========================================================================

    def create_bet(
        self,
        proposer: str,
        title: str,
        options: Sequence[str],
        requested_duration: int,
        now: Optional[int] = None,
    ) -> int:
        """
        Open a new bet and return its id.

        Raises:
            NotHolder, DeadlineTooShort, TitleTooLong, InvalidOptionCount
        """
        with self._lock:
            now = self._now(now)
            try:
                bet = self.registry.create_bet(
                    self.ledger, proposer, title, options, requested_duration, now
                )
                self.ledger.register_wallet(bet.escrow_wallet)
            except BettingError as e:
                self._report_rejection("create_bet", e)
                raise
            if self.verbose:
                print(f"✓ BET {bet.bet_id} CREATED by {proposer}: {title!r} "
                      f"options={list(bet.options)} deadline={bet.deadline_height}")
            self.notifier.emit(BetCreated(
                bet.bet_id, bet.proposer, bet.title, bet.options, bet.deadline_height
            ))
            return bet.bet_id

    def place_bet(
        self,
        bet_id: int,
        wallet: str,
        option: int,
        amount,
        now: Optional[int] = None,
    ) -> None:
        """
        Stake amount from wallet on option, escrowing it in the bet's wallet.

        Raises:
            NotFound, AlreadyClosed, DeadlinePassed, InvalidOption, InvalidAmount,
            AlreadyPlaced, NotHolder, InsufficientBalance, TransferRejected
        """
        with self._lock:
            now = self._now(now)
            try:
                bet = self.pool.place_bet(bet_id, wallet, option, amount, now)
            except BettingError as e:
                self._report_rejection("place_bet", e)
                raise
            if self.verbose:
                print(f"✓ BET {bet_id} STAKE {bet.stake[wallet]} {self.token_symbol} "
                      f"by {wallet} on {bet.options[option]!r}")

    def close_bet(
        self,
        bet_id: int,
        winning_option: int,
        caller: str,
        now: Optional[int] = None,
    ) -> PayoutPlan:
        """
        Declare the winning option and pay out.

        Raises:
            NotFound, NotProposer, AlreadyClosed, DeadlineNotReached,
            InvalidOption, TransferRejected
        """
        with self._lock:
            now = self._now(now)
            try:
                plan = self.resolution.close_bet(bet_id, winning_option, caller, now)
            except BettingError as e:
                self._report_rejection("close_bet", e)
                raise
            if self.verbose:
                print(f"✓ BET {bet_id} CLOSED: winner={winning_option} pooled={plan.pooled} "
                      f"fee={plan.fee} dust={plan.dust} paid={plan.total_paid}")
            return plan

    # ========================================================================
    # ADMINISTRATION (Mutating)
    # ========================================================================

    def set_min_deadline_duration(self, caller: str, duration: int) -> None:
        with self._lock:
            self.config.set_min_deadline_duration(caller, duration)

    def set_max_options(self, caller: str, max_options: int) -> None:
        with self._lock:
            self.config.set_max_options(caller, max_options)

    def set_closing_fee(self, caller: str, percent: int) -> None:
        with self._lock:
            self.config.set_closing_fee(caller, percent)

    def set_administrator(self, caller: str, new_administrator: str) -> None:
        with self._lock:
            self.config.set_administrator(caller, new_administrator)

    def set_fee_sink(self, caller: str, wallet: Optional[str]) -> None:
        with self._lock:
            self.config.set_fee_sink(caller, wallet)

    # ========================================================================
    # READ API
    # ========================================================================

    def get_bet(self, bet_id: int) -> Bet:
        """Snapshot of the bet; changing it does not affect the engine."""
        with self._lock:
            return self.registry.get_bet(bet_id).snapshot()

    def get_proposer(self, bet_id: int) -> str:
        with self._lock:
            return self.registry.get_bet(bet_id).proposer

    def get_title(self, bet_id: int) -> str:
        with self._lock:
            return self.registry.get_bet(bet_id).title

    def get_deadline(self, bet_id: int) -> int:
        with self._lock:
            return self.registry.get_bet(bet_id).deadline_height

    def get_options(self, bet_id: int) -> Tuple[str, ...]:
        with self._lock:
            return self.registry.get_bet(bet_id).options

    def get_participants(self, bet_id: int) -> List[str]:
        with self._lock:
            return list(self.registry.get_bet(bet_id).participants)

    def get_chosen_option(self, bet_id: int, wallet: str) -> Optional[int]:
        """Option index wallet staked on, or None if wallet has no stake."""
        with self._lock:
            return self.registry.get_bet(bet_id).chosen_option.get(wallet)

    def get_stake(self, bet_id: int, wallet: str) -> Decimal:
        with self._lock:
            return self.registry.get_bet(bet_id).stake.get(wallet, Decimal("0"))

    def get_pooled_balance(self, bet_id: int) -> Decimal:
        with self._lock:
            return self.registry.get_bet(bet_id).pooled_balance

    def get_state(self, bet_id: int) -> BetState:
        with self._lock:
            return self.registry.get_bet(bet_id).state

    def get_winning_option(self, bet_id: int) -> Optional[int]:
        with self._lock:
            return self.registry.get_bet(bet_id).winning_option

    def get_payout(self, bet_id: int, wallet: str) -> Decimal:
        """Amount paid to wallet at close (zero while open or for losers)."""
        with self._lock:
            return self.registry.get_bet(bet_id).payouts.get(wallet, Decimal("0"))

    def balance_on_option(self, bet_id: int, option: int) -> Decimal:
        with self._lock:
            return self.pool.balance_on_option(bet_id, option)

    def has_participant(self, bet_id: int, wallet: str) -> bool:
        with self._lock:
            return self.pool.has_participant(bet_id, wallet)

    def bet_count(self) -> int:
        with self._lock:
            return len(self.registry)

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _now(self, now: Optional[int]) -> int:
        return self.ledger.current_height if now is None else now

    def _report_rejection(self, operation: str, error: BettingError) -> None:
        if self.verbose:
            print(f"✗ REJECTED {operation}: {type(error).__name__}: {error}")
