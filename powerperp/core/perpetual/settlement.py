"""Funding index and lazy per-account settlement.

The global index accumulates ``funding rate * price`` over time. Each account
remembers the index it was last settled against; settling charges (or pays)
the difference times the account's position, so funding flows from longs to
shorts while the index rises and the other way while it falls.

Rounding: credits round down, debits round up. Summed over all accounts the
ledger can only retain dust, never pay out more than it collects.
"""

from __future__ import annotations

import logging

from .errors import LedgerArithmeticError, LedgerGuardError
from .interfaces import FundingProvider, PriceOracle
from .math import (
    MAX_TIMESTAMP,
    MAX_UINT128,
    Signed,
    abs_val,
    base_mul,
    base_mul_round_up,
    checked_uint,
    from_signed,
    is_collateralized_value,
    is_underwater_value,
    signed_add,
    signed_sub,
    to_signed,
)
from .state import PerpetualState
from .types import Balance, Context, Event, Index

logger = logging.getLogger(__name__)


def load_context(
    state: PerpetualState,
    oracle: PriceOracle,
    funder: FundingProvider,
    now: int,
) -> Context:
    """Read the price and bring the global index up to *now*.

    Called exactly once per top-level operation; the returned context must be
    used for every balance touched by that operation. Repeated calls at the
    same timestamp leave the index unchanged. Once final settlement is enabled
    the price is frozen and the index no longer moves.
    """
    min_collateral = state.config.min_collateral
    if state.final_settlement_enabled:
        return Context(
            price=state.final_settlement_price,
            min_collateral=min_collateral,
            index=state.global_index,
        )

    price = checked_uint(oracle.get_price(), MAX_UINT128, "price")
    if price == 0:
        raise LedgerGuardError("oracle_price_zero", "oracle returned a zero price")

    checked_uint(now, MAX_TIMESTAMP, "timestamp")
    index = state.global_index
    if now < index.timestamp:
        raise LedgerArithmeticError(
            "timestamp_regressed", f"now={now} is before index timestamp {index.timestamp}",
        )

    time_delta = now - index.timestamp
    if time_delta > 0:
        is_positive, rate = funder.get_funding(time_delta)
        delta = Signed(base_mul(checked_uint(rate, MAX_UINT128, "funding_rate"), price), is_positive)
        value = from_signed(signed_add(to_signed(index.value), delta))
        index = Index(timestamp=now, value=value)
        state.global_index = index
        state.record(Event.INDEX_UPDATED, timestamp=now, value=value)
        logger.debug("index updated: timestamp=%d value=%d", now, value)

    return Context(price=price, min_collateral=min_collateral, index=index)


def settle_account(state: PerpetualState, context: Context, account: str) -> Balance:
    """Apply the funding accrued since the account's last settlement.

    Returns the settled balance (also stored). An account already settled at
    the context's timestamp is returned unchanged. A flat account only has its
    local index advanced, so a position opened later starts from the current
    baseline.
    """
    balance = state.balance_of(account)
    old_index = state.local_index_of(account)
    new_index = context.index
    if old_index.timestamp == new_index.timestamp:
        return balance

    state.set_local_index(account, new_index)
    if balance.position == 0:
        return balance

    delta = signed_sub(to_signed(new_index.value), to_signed(old_index.value))
    position_is_positive = balance.position > 0
    # Rising index: longs pay, shorts receive.
    settlement_is_positive = delta.is_positive != position_is_positive
    position = abs_val(balance.position)
    if settlement_is_positive:
        amount = base_mul(delta.magnitude, position)
        balance = balance.add_margin(amount)
    else:
        amount = base_mul_round_up(delta.magnitude, position)
        balance = balance.add_margin(-amount)

    state.set_balance(account, balance)
    state.record(
        Event.ACCOUNT_SETTLED,
        account,
        is_positive=settlement_is_positive,
        amount=amount,
        margin=balance.margin,
        position=balance.position,
    )
    logger.debug(
        "settled %s: %s%d margin=%d", account, "+" if settlement_is_positive else "-", amount, balance.margin,
    )
    return balance


def is_collateralized(context: Context, balance: Balance) -> bool:
    """``positive * BASE >= negative * min_collateral`` at the context price."""
    positive, negative = balance.positive_and_negative_value(context.price)
    return is_collateralized_value(positive, negative, context.min_collateral)


def is_underwater(context: Context, balance: Balance) -> bool:
    """Net value below zero (stricter than undercollateralized)."""
    positive, negative = balance.positive_and_negative_value(context.price)
    return is_underwater_value(positive, negative)
