"""Data types for the perpetual ledger.

Value types are frozen dataclasses; updates go through ``dataclasses.replace()``
or the small helpers below, which re-check field widths.

Units/conventions:
- every amount is an int in base units (``BASE = 1e18``),
- ``position`` is signed (long > 0, short < 0),
- ``margin`` is signed (debt < 0),
- ``Index.value`` is the signed cumulative funding per unit of position.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntFlag, unique
from typing import Any, Mapping

from .math import (
    MAX_BALANCE,
    MAX_INDEX_VALUE,
    MAX_TIMESTAMP,
    checked_int,
    checked_uint,
    get_positive_and_negative_value,
    get_scaled_positive_and_negative_value,
)


@dataclass(frozen=True)
class Balance:
    """Per-account signed margin and position."""

    margin: int = 0
    position: int = 0

    def __post_init__(self) -> None:
        checked_int(self.margin, MAX_BALANCE, "margin")
        checked_int(self.position, MAX_BALANCE, "position")

    def add_margin(self, amount: int) -> Balance:
        return Balance(self.margin + amount, self.position)

    def add_position(self, amount: int) -> Balance:
        return Balance(self.margin, self.position + amount)

    def positive_and_negative_value(self, price: int) -> tuple[int, int]:
        return get_positive_and_negative_value(self.margin, self.position, price)

    def scaled_positive_and_negative_value(self, price: int) -> tuple[int, int]:
        return get_scaled_positive_and_negative_value(self.margin, self.position, price)

    @property
    def is_zero(self) -> bool:
        return self.margin == 0 and self.position == 0


@dataclass(frozen=True)
class Index:
    """Cumulative funding index at a point in time."""

    timestamp: int = 0
    value: int = 0

    def __post_init__(self) -> None:
        checked_uint(self.timestamp, MAX_TIMESTAMP, "index_timestamp")
        checked_int(self.value, MAX_INDEX_VALUE, "index_value")


@dataclass(frozen=True)
class Context:
    """Price and index snapshot shared by every step of one operation."""

    price: int
    min_collateral: int
    index: Index


class TraderFlags(IntFlag):
    """Bits accumulated across the trades of one batch."""

    NONE = 0
    ORDERS = 1
    LIQUIDATION = 2
    DELEVERAGING = 4


@dataclass(frozen=True)
class TradeArg:
    """One trade inside a batch.

    ``maker_index``/``taker_index`` point into the batch's account list and
    ``trader`` is the handle a strategy was registered under.
    """

    maker_index: int
    taker_index: int
    trader: str
    data: Any = None


@dataclass(frozen=True)
class TradeResult:
    """Transfer computed by a trader; ``is_buy`` is from the taker's side.

    When ``is_buy`` is true the taker gains ``position_amount`` and pays
    ``margin_amount``; the maker receives the exact negation.
    """

    margin_amount: int
    position_amount: int
    is_buy: bool
    trader_flags: TraderFlags = TraderFlags.NONE

    def __post_init__(self) -> None:
        checked_uint(self.margin_amount, MAX_BALANCE, "margin_amount")
        checked_uint(self.position_amount, MAX_BALANCE, "position_amount")

    def taker_deltas(self) -> tuple[int, int]:
        """``(margin_delta, position_delta)`` applied to the taker."""
        if self.is_buy:
            return -self.margin_amount, self.position_amount
        return self.margin_amount, -self.position_amount


@dataclass(frozen=True)
class ForcedTradeData:
    """Payload understood by the liquidation and deleveraging traders."""

    amount: int
    is_buy: bool
    all_or_nothing: bool = False

    def __post_init__(self) -> None:
        checked_uint(self.amount, MAX_BALANCE, "amount")


@unique
class Event(Enum):
    """Committed state changes."""
    INDEX_UPDATED = "IndexUpdated"
    ACCOUNT_SETTLED = "AccountSettled"
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    TRADE = "Trade"
    LIQUIDATED = "Liquidated"
    DELEVERAGED = "Deleveraged"
    MARKED_FOR_DELEVERAGING = "MarkedForDeleveraging"
    UNMARKED_FOR_DELEVERAGING = "UnmarkedForDeleveraging"
    DELEVERAGING_OPERATOR_SET = "DeleveragingOperatorSet"
    FINAL_SETTLEMENT_ENABLED = "FinalSettlementEnabled"
    FINAL_SETTLEMENT_WITHDRAW = "FinalSettlementWithdraw"
    ORACLE_SET = "OracleSet"
    FUNDER_SET = "FunderSet"
    MIN_COLLATERAL_SET = "MinCollateralSet"


@dataclass(frozen=True)
class LedgerEvent:
    """One recorded event. ``data`` holds the event-specific fields."""

    event: Event
    account: str | None = None
    data: Mapping[str, Any] = field(default_factory=dict)
