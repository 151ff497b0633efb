"""Deleveraging trader.

Closes an underwater account against a counterparty holding the opposite
position, at the maker's own margin-to-position ratio.

Per-account state machine:

    Unmarked --mark()--> Marked(t) --unmark() / position fully closed--> Unmarked

``mark`` needs the account to be underwater (net value < 0) and restarts the
timelock when repeated. While an account is marked for less than the timelock
only the deleveraging operator may deleverage it; afterwards anyone may. The
operator can deleverage any underwater account, marked or not.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .math import abs_val, is_underwater_value
from .settlement import is_underwater
from .traders import (
    check_reducing_trade,
    decode_forced_trade_data,
    proportional_margin,
    require,
    require_engine_dispatch,
)
from .types import Balance, Event, ForcedTradeData, TradeResult, TraderFlags

if TYPE_CHECKING:
    from .engine import PerpetualEngine

logger = logging.getLogger(__name__)


class DeleveragingTrader:
    def __init__(self, engine: PerpetualEngine, operator: str) -> None:
        self._engine = engine
        self._operator = operator
        self._marked: dict[str, int] = {}

    @property
    def operator(self) -> str:
        return self._operator

    @property
    def timelock(self) -> int:
        return self._engine.state.config.deleveraging_timelock

    def marked_timestamp(self, account: str) -> int:
        """Time the account was marked, 0 when unmarked."""
        return self._marked.get(account, 0)

    def is_marked(self, account: str) -> bool:
        return self.marked_timestamp(account) != 0

    # -- transaction support ---------------------------------------------

    def snapshot(self) -> tuple[str, dict[str, int]]:
        return self._operator, dict(self._marked)

    def restore(self, snap: tuple[str, dict[str, int]]) -> None:
        self._operator, self._marked = snap

    # -- state machine -----------------------------------------------------

    def mark(self, account: str) -> int:
        """Start the timelock on an underwater account. Returns the mark time."""
        with self._engine.transaction("mark") as (context, now):
            balance = self._engine.settle(context, account)
            require(
                is_underwater(context, balance),
                "account_not_underwater",
                "cannot mark since account is not underwater",
            )
            # Timestamp 0 is the unmarked sentinel.
            marked_at = max(now, 1)
            self._marked[account] = marked_at
            self._engine.state.record(Event.MARKED_FOR_DELEVERAGING, account, timestamp=marked_at)
        logger.info("marked %s for deleveraging at %d", account, marked_at)
        return marked_at

    def unmark(self, account: str) -> None:
        """Clear the mark of an account that is no longer underwater."""
        with self._engine.transaction("unmark") as (context, _now):
            balance = self._engine.settle(context, account)
            require(
                not is_underwater(context, balance),
                "account_underwater",
                "cannot unmark since account is underwater",
            )
            self._unmark(account)
        logger.info("unmarked %s", account)

    def set_operator(self, sender: str, new_operator: str) -> None:
        with self._engine.transaction("set_deleveraging_operator", load=False):
            self._engine.require_admin(sender)
            self._operator = new_operator
            self._engine.state.record(Event.DELEVERAGING_OPERATOR_SET, operator=new_operator)
        logger.info("deleveraging operator set to %s", new_operator)

    def _unmark(self, account: str) -> None:
        self._marked.pop(account, None)
        self._engine.state.record(Event.UNMARKED_FOR_DELEVERAGING, account)

    # -- trader ------------------------------------------------------------

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
        # Balances below are read from storage, so no earlier trade in the
        # batch may have changed them.
        require(
            trader_flags == TraderFlags.NONE,
            "deleveraging_not_first",
            "cannot deleverage after other trade operations in the same batch",
        )
        self._verify_permissions(sender, maker)

        trade = decode_forced_trade_data(data)
        maker_balance = self._engine.get_account_balance(maker)
        taker_balance = self._engine.get_account_balance(taker)
        self._verify_trade(trade, maker_balance, taker_balance, price)

        amount = min(trade.amount, abs_val(maker_balance.position), abs_val(taker_balance.position))
        margin_amount = proportional_margin(maker_balance, amount, trade.is_buy)

        if amount == abs_val(maker_balance.position) and self.is_marked(maker):
            self._unmark(maker)

        self._engine.state.record(
            Event.DELEVERAGED,
            maker,
            taker=taker,
            amount=amount,
            is_buy=trade.is_buy,
            margin_amount=margin_amount,
            price=price,
        )
        logger.info(
            "deleveraged %s: taker=%s amount=%d margin=%d is_buy=%s",
            maker, taker, amount, margin_amount, trade.is_buy,
        )
        return TradeResult(
            margin_amount=margin_amount,
            position_amount=amount,
            is_buy=trade.is_buy,
            trader_flags=TraderFlags.DELEVERAGING,
        )

    def _verify_permissions(self, sender: str, maker: str) -> None:
        if sender == self._operator:
            return
        marked_at = self.marked_timestamp(maker)
        require(marked_at != 0, "account_not_marked", "cannot deleverage since account is not marked")
        require(
            self._engine.now() - marked_at >= self.timelock,
            "timelock_not_elapsed",
            "cannot deleverage since account has not been marked for the timelock period",
        )

    def _verify_trade(
        self,
        trade: ForcedTradeData,
        maker: Balance,
        taker: Balance,
        price: int,
    ) -> None:
        require(
            is_underwater_value(*maker.positive_and_negative_value(price)),
            "maker_not_underwater",
            "cannot deleverage since maker is not underwater",
        )
        require(
            taker.position != 0 and (taker.position > 0) != (maker.position > 0),
            "taker_wrong_sign",
            "taker position has wrong sign to deleverage this maker",
        )
        require(
            not trade.all_or_nothing or abs_val(taker.position) >= trade.amount,
            "all_or_nothing_taker",
            "allOrNothing is set and taker position is less than amount",
        )
        check_reducing_trade(maker, trade)
