"""Trader strategy interface and shared forced-unwind checks.

A trader turns an opaque payload into a `TradeResult`. The engine dispatches to
traders by the handle they were registered under and applies the result; the
liquidation and deleveraging traders share the checks and the proportional
margin rule below.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Protocol

from .errors import LedgerGuardError
from .math import abs_val, get_fraction, get_fraction_round_up
from .types import Balance, ForcedTradeData, TradeResult, TraderFlags

if TYPE_CHECKING:
    from .engine import PerpetualEngine


class Trader(Protocol):
    def trade(
        self,
        sender: str,
        maker: str,
        taker: str,
        price: int,
        data: Any,
        trader_flags: TraderFlags,
    ) -> TradeResult: ...


def require(condition: bool, reason: str, message: str | None = None) -> None:
    if not condition:
        raise LedgerGuardError(reason, message)


def require_engine_dispatch(engine: PerpetualEngine) -> None:
    """Traders may only be invoked by the engine while it executes a batch."""
    require(engine.is_dispatching_trades, "caller_not_perpetual", "trader called outside trade execution")


def decode_forced_trade_data(data: Any) -> ForcedTradeData:
    if isinstance(data, ForcedTradeData):
        return data
    if isinstance(data, Mapping):
        try:
            return ForcedTradeData(
                amount=int(data["amount"]),
                is_buy=bool(data["is_buy"]),
                all_or_nothing=bool(data.get("all_or_nothing", False)),
            )
        except KeyError as exc:
            raise LedgerGuardError("bad_trade_data", f"missing trade data field {exc}") from exc
    raise LedgerGuardError("bad_trade_data", f"unsupported trade data {type(data).__name__}")


def check_reducing_trade(maker: Balance, trade: ForcedTradeData) -> None:
    """Checks shared by liquidation and deleveraging on the maker side."""
    require(
        not trade.all_or_nothing or abs_val(maker.position) >= trade.amount,
        "all_or_nothing_maker",
        "allOrNothing is set and maker position is less than amount",
    )
    require(
        trade.is_buy == (maker.position > 0),
        "would_increase_maker_position",
        "trade direction must reduce the maker's position",
    )
    require(
        not (maker.margin < 0 and maker.position < 0),
        "maker_margin_and_position_negative",
        "maker position and margin are both negative",
    )


def proportional_margin(maker: Balance, amount: int, is_buy: bool) -> int:
    """Share of the maker's margin that moves with *amount* of its position.

    Rounded so the maker's collateralization never decreases: up when the
    taker buys (the maker is long), down otherwise.
    """
    margin = abs_val(maker.margin)
    position = abs_val(maker.position)
    if amount == 0 or position == 0:
        return 0
    if is_buy:
        return get_fraction_round_up(margin, amount, position)
    return get_fraction(margin, amount, position)
