"""Narrow interfaces of the ledger's external collaborators."""

from __future__ import annotations

from typing import Callable, Protocol

Clock = Callable[[], int]


class PriceOracle(Protocol):
    def get_price(self) -> int:
        """Current price, base-scaled and strictly positive."""
        ...


class FundingProvider(Protocol):
    def get_funding(self, time_delta: int) -> tuple[bool, int]:
        """``(is_positive, rate)`` accrued per unit of price over *time_delta* seconds."""
        ...


class TokenTransfer(Protocol):
    def transfer(self, sender: str, recipient: str, amount: int) -> None: ...

    def balance_of(self, owner: str) -> int: ...


class Authorizer(Protocol):
    def has_account_permissions(self, account: str, operator: str) -> bool: ...

    def is_global_operator(self, identity: str) -> bool: ...
