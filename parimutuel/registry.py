"""
registry.py - Bet records and the append-only bet table

This module provides:
1. BetState - OPEN -> CLOSED, one way
2. Bet - the mutable per-bet record (participants, stakes, pooled balance)
3. BetRegistry - id allocation, bet creation and lookup

Bets are never deleted. Ids start at 1, increase by one per bet and are
never reused; an id whose escrow wallet is already registered in the ledger
is passed over. Each record owns its participant list and the two per-wallet
maps, so no state is shared between bets.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .config import AccessControlConfig, MAX_TITLE_LENGTH, MIN_OPTIONS
from .core import (
    LedgerView, ESCROW_WALLET_PREFIX,
    DeadlineTooShort, InvalidOption, InvalidOptionCount, NotFound, NotHolder, TitleTooLong,
    escrow_wallet,
)


class BetState(Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class Bet:
    """
    One proposition and everything staked on it.

    Attributes:
        bet_id: Allocated by the registry; immutable.
        proposer: Creator, and the only identity allowed to close the bet.
        title: Description, at most MAX_TITLE_LENGTH characters.
        options: Outcome labels; option indices refer into this tuple.
        created_height: Ledger height at creation.
        deadline_height: Height after which stakes stop and closing may begin.
        escrow_wallet: Custodial ledger wallet holding the pooled stakes.
        participants: Wallets in the order they staked; no duplicates.
        chosen_option: wallet -> option index.
        stake: wallet -> staked amount (> 0).
        pooled_balance: Running sum of stake values.
        state: OPEN until closed, then CLOSED forever.
        winning_option: Set when, and only when, the bet is CLOSED.
        payouts: wallet -> amount paid at close (zero payouts included).
        fee: Fee taken at close.
        dust: Rounding remainder routed to the fee sink at close.
    """
    bet_id: int
    proposer: str
    title: str
    options: Tuple[str, ...]
    created_height: int
    deadline_height: int
    escrow_wallet: str
    participants: List[str] = field(default_factory=list)
    chosen_option: Dict[str, int] = field(default_factory=dict)
    stake: Dict[str, Decimal] = field(default_factory=dict)
    pooled_balance: Decimal = Decimal("0")
    state: BetState = BetState.OPEN
    winning_option: Optional[int] = None
    payouts: Dict[str, Decimal] = field(default_factory=dict)
    fee: Decimal = Decimal("0")
    dust: Decimal = Decimal("0")

    @property
    def is_open(self) -> bool:
        return self.state is BetState.OPEN

    def check_option(self, option: int) -> None:
        """Raise InvalidOption unless option indexes into this bet's options."""
        if isinstance(option, bool) or not isinstance(option, int):
            raise InvalidOption(f"Bet {self.bet_id}: option must be an index, got {option!r}")
        if option < 0 or option >= len(self.options):
            raise InvalidOption(
                f"Bet {self.bet_id}: option {option} outside [0, {len(self.options)})"
            )

    def snapshot(self) -> Bet:
        """Return an independent copy safe to hand to callers."""
        return Bet(
            bet_id=self.bet_id,
            proposer=self.proposer,
            title=self.title,
            options=self.options,
            created_height=self.created_height,
            deadline_height=self.deadline_height,
            escrow_wallet=self.escrow_wallet,
            participants=list(self.participants),
            chosen_option=dict(self.chosen_option),
            stake=dict(self.stake),
            pooled_balance=self.pooled_balance,
            state=self.state,
            winning_option=self.winning_option,
            payouts=dict(self.payouts),
            fee=self.fee,
            dust=self.dust,
        )


class BetRegistry:
    """
    Append-only table mapping bet id to Bet.

    The registry validates creation requests against the shared
    AccessControlConfig and the proposer's token balance, then allocates the
    next id. It never touches balances itself.
    """

    def __init__(self, config: AccessControlConfig, token_symbol: str):
        self.config = config
        self.token_symbol = token_symbol
        self._bets: Dict[int, Bet] = {}
        self._next_id: int = 1

    def __len__(self) -> int:
        return len(self._bets)

    def __contains__(self, bet_id: object) -> bool:
        return bet_id in self._bets

    @property
    def next_id(self) -> int:
        """Id the next created bet will receive."""
        return self._next_id

    def bets(self) -> Iterator[Bet]:
        """Iterate over bets in creation order."""
        return iter(self._bets.values())

    def get_bet(self, bet_id: int) -> Bet:
        """
        Return the live record for bet_id.

        Raises:
            NotFound: No bet with that id was ever created.
        """
        try:
            return self._bets[bet_id]
        except (KeyError, TypeError):
            raise NotFound(f"Bet {bet_id!r} not found") from None

    def create_bet(
        self,
        view: LedgerView,
        proposer: str,
        title: str,
        options: Sequence[str],
        requested_duration: int,
        now: int,
    ) -> Bet:
        """
        Validate a creation request and store a new OPEN bet.

        Checks run in order: proposer balance, duration, title length,
        option count.

        Args:
            view: Ledger view used for the proposer's balance
            proposer: Creating identity
            title: Bet description
            options: Outcome labels, in index order
            requested_duration: Heights between now and the deadline
            now: Current ledger height

        Returns:
            The stored Bet record

        Raises:
            NotHolder, DeadlineTooShort, TitleTooLong, InvalidOptionCount
        """
        if proposer.startswith(ESCROW_WALLET_PREFIX):
            raise NotHolder(f"escrow wallet {proposer} cannot propose a bet")
        if holder_balance(view, proposer, self.token_symbol) <= 0:
            raise NotHolder(f"{proposer} holds no {self.token_symbol}")
        if requested_duration < self.config.min_deadline_duration:
            raise DeadlineTooShort(
                f"duration {requested_duration} < minimum {self.config.min_deadline_duration}"
            )
        if len(title) > MAX_TITLE_LENGTH:
            raise TitleTooLong(f"title has {len(title)} characters, limit is {MAX_TITLE_LENGTH}")
        options = tuple(options)
        if not MIN_OPTIONS <= len(options) <= self.config.max_options:
            raise InvalidOptionCount(
                f"{len(options)} options, allowed [{MIN_OPTIONS}, {self.config.max_options}]"
            )

        taken = view.list_wallets()
        bet_id = self._next_id
        while escrow_wallet(bet_id) in taken:
            bet_id += 1
        bet = Bet(
            bet_id=bet_id,
            proposer=proposer,
            title=title,
            options=options,
            created_height=now,
            deadline_height=now + requested_duration,
            escrow_wallet=escrow_wallet(bet_id),
        )
        self._bets[bet_id] = bet
        self._next_id = bet_id + 1
        return bet


def holder_balance(view: LedgerView, wallet: str, unit_symbol: str) -> Decimal:
    """Balance of wallet, treating an unregistered wallet as empty."""
    if wallet not in view.list_wallets():
        return Decimal("0")
    return view.get_balance(wallet, unit_symbol)
