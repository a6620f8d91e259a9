"""
config.py - Administrator identity and tunable engine limits

AccessControlConfig holds the single administrator and the three limits the
engine enforces:
1. min_deadline_duration - shortest allowed gap between creation and deadline
2. max_options - upper bound on a bet's option count
3. fee_percent - share of every pool taken at close, in [0, MAX_FEE_PERCENT]

Every setter takes the calling identity and rejects anyone but the current
administrator. Replacing the administrator is a single step with no
acceptance handshake; a mistyped address locks the configuration for good.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from .core import ESCROW_WALLET_PREFIX, InvalidFee, InvalidOptionCount, NotAdministrator


# ============================================================================
# DEFAULTS AND BOUNDS
# ============================================================================

DEFAULT_MIN_DEADLINE_DURATION = 1
DEFAULT_MAX_OPTIONS = 10
DEFAULT_FEE_PERCENT = 0

MIN_OPTIONS = 2
MAX_FEE_PERCENT = 10
MAX_TITLE_LENGTH = 50


@dataclass
class AccessControlConfig:
    """
    Mutable engine configuration, owned by one engine instance.

    Attributes:
        administrator: Identity allowed to call the setters.
        min_deadline_duration: Minimum requested duration for a new bet.
        max_options: Maximum option count for a new bet (>= MIN_OPTIONS).
        fee_percent: Whole-number percent of each pool routed to the fee sink.
        fee_sink: Wallet receiving fees and rounding dust. None means the
            current administrator.
    """
    administrator: str
    min_deadline_duration: int = DEFAULT_MIN_DEADLINE_DURATION
    max_options: int = DEFAULT_MAX_OPTIONS
    fee_percent: int = DEFAULT_FEE_PERCENT
    fee_sink: Optional[str] = None

    def __post_init__(self):
        if not self.administrator or not self.administrator.strip():
            raise ValueError("administrator cannot be empty")
        _check_not_escrow("administrator", self.administrator)
        if self.fee_sink is not None:
            _check_not_escrow("fee sink", self.fee_sink)
        if self.min_deadline_duration < 0:
            raise ValueError(
                f"min_deadline_duration must be non-negative, got {self.min_deadline_duration}"
            )
        if self.max_options < MIN_OPTIONS:
            raise InvalidOptionCount(
                f"max_options must be at least {MIN_OPTIONS}, got {self.max_options}"
            )
        _check_fee(self.fee_percent)

    @property
    def effective_fee_sink(self) -> str:
        """Wallet that receives fees: the configured sink, else the administrator."""
        return self.fee_sink or self.administrator

    def require_administrator(self, caller: str) -> None:
        """Raise NotAdministrator unless caller is the current administrator."""
        if caller != self.administrator:
            raise NotAdministrator(f"{caller} is not the administrator")

    # ========================================================================
    # ADMINISTRATIVE SETTERS
    # ========================================================================

    def set_min_deadline_duration(self, caller: str, duration: int) -> None:
        self.require_administrator(caller)
        if duration < 0:
            raise ValueError(f"duration must be non-negative, got {duration}")
        self.min_deadline_duration = duration

    def set_max_options(self, caller: str, max_options: int) -> None:
        self.require_administrator(caller)
        if max_options < MIN_OPTIONS:
            raise InvalidOptionCount(
                f"max_options must be at least {MIN_OPTIONS}, got {max_options}"
            )
        self.max_options = max_options

    def set_closing_fee(self, caller: str, percent: int) -> None:
        """
        Set the fee percent applied when a bet closes.

        Raises:
            NotAdministrator: caller is not the administrator
            InvalidFee: percent outside [0, MAX_FEE_PERCENT]
        """
        self.require_administrator(caller)
        _check_fee(percent)
        self.fee_percent = percent

    def set_administrator(self, caller: str, new_administrator: str) -> None:
        """Hand the administrator role to new_administrator, effective immediately."""
        self.require_administrator(caller)
        if not new_administrator or not new_administrator.strip():
            raise ValueError("new administrator cannot be empty")
        _check_not_escrow("administrator", new_administrator)
        self.administrator = new_administrator

    def set_fee_sink(self, caller: str, wallet: Optional[str]) -> None:
        """Route fees to wallet; None routes them to the administrator."""
        self.require_administrator(caller)
        if wallet is not None:
            _check_not_escrow("fee sink", wallet)
        self.fee_sink = wallet


def _check_not_escrow(role: str, wallet: str) -> None:
    if wallet.startswith(ESCROW_WALLET_PREFIX):
        raise ValueError(f"{role} cannot be an escrow wallet: {wallet}")


def _check_fee(percent: int) -> None:
    if isinstance(percent, bool) or not isinstance(percent, int):
        raise InvalidFee(f"fee percent must be an integer, got {percent!r}")
    if percent < 0 or percent > MAX_FEE_PERCENT:
        raise InvalidFee(f"fee percent must be in [0, {MAX_FEE_PERCENT}], got {percent}")
