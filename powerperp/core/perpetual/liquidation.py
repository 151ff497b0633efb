"""Liquidation trader.

Lets a taker absorb part or all of an undercollateralized maker's position
together with the proportional share of its margin. Stateless: the result is a
pure function of the maker's settled balance and the batch price.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .math import abs_val, is_collateralized_value
from .traders import (
    check_reducing_trade,
    decode_forced_trade_data,
    proportional_margin,
    require,
    require_engine_dispatch,
)
from .types import Event, TradeResult, TraderFlags

if TYPE_CHECKING:
    from .engine import PerpetualEngine

logger = logging.getLogger(__name__)


class LiquidationTrader:
    def __init__(self, engine: PerpetualEngine) -> None:
        self._engine = engine

    def trade(
        self,
        sender: str,
        maker: str,
        taker: str,
        price: int,
        data: Any,
        trader_flags: TraderFlags,
    ) -> TradeResult:
        require_engine_dispatch(self._engine)
        require(
            self._engine.authorizer.is_global_operator(sender),
            "sender_not_global_operator",
            "liquidations must be submitted by a global operator",
        )

        trade = decode_forced_trade_data(data)
        balance = self._engine.get_account_balance(maker)
        positive, negative = balance.positive_and_negative_value(price)
        require(
            not is_collateralized_value(positive, negative, self._engine.get_min_collateral()),
            "maker_collateralized",
            "cannot liquidate since maker is not undercollateralized",
        )
        check_reducing_trade(balance, trade)

        amount = min(trade.amount, abs_val(balance.position))
        margin_amount = proportional_margin(balance, amount, trade.is_buy)

        self._engine.state.record(
            Event.LIQUIDATED,
            maker,
            taker=taker,
            amount=amount,
            is_buy=trade.is_buy,
            margin_amount=margin_amount,
            price=price,
        )
        logger.info(
            "liquidated %s: taker=%s amount=%d margin=%d is_buy=%s",
            maker, taker, amount, margin_amount, trade.is_buy,
        )
        return TradeResult(
            margin_amount=margin_amount,
            position_amount=amount,
            is_buy=trade.is_buy,
            trader_flags=TraderFlags.LIQUIDATION,
        )
