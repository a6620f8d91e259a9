"""
events.py - Engine notifications

Notifications are immutable records of committed engine operations:
1. BetCreated - a proposer opened a bet
2. BetPlaced - a wallet escrowed a stake against an option
3. BetClosed - the proposer declared the winning option and payouts went out

Observers are plain callables. The Notifier keeps every notification in
order (the in-memory audit list) and hands each one to every observer.
Delivery beyond the process is someone else's job.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Tuple, Union


@dataclass(frozen=True, slots=True)
class BetCreated:
    bet_id: int
    proposer: str
    title: str
    options: Tuple[str, ...]
    deadline_height: int


@dataclass(frozen=True, slots=True)
class BetPlaced:
    bet_id: int
    wallet: str
    option: int
    amount: Decimal


@dataclass(frozen=True, slots=True)
class BetClosed:
    bet_id: int
    proposer: str
    winning_option: int


Notification = Union[BetCreated, BetPlaced, BetClosed]

Observer = Callable[[Notification], None]


class Notifier:
    """
    Ordered notification log with observer fan-out.

    Observers run synchronously, in subscription order, after the operation
    that produced the notification has fully committed. An observer that
    raises propagates to the caller of that operation; the operation itself
    stays committed.
    """

    def __init__(self):
        self._observers: List[Observer] = []
        self.history: List[Notification] = []

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        self._observers.remove(observer)

    def emit(self, notification: Notification) -> None:
        self.history.append(notification)
        for observer in list(self._observers):
            observer(notification)
