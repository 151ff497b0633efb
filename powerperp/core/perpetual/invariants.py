"""Invariant checkers for the perpetual ledger.

Each `inv_*` function returns True when the invariant holds on a state, and
`check_all()` returns the list of violated invariant IDs (empty = all pass).
The engine runs `check_all()` before committing any operation.

`verify_trade_balances()` is the post-condition of a trade batch: it compares
each account's balance before and after the batch at the batch price.
"""

from __future__ import annotations

from typing import Callable, Mapping, Sequence

from .math import BASE, collateralization_not_decreased, is_collateralized_value
from .state import PerpetualState
from .types import Balance, Context


def inv_local_index_not_from_future(s: PerpetualState) -> bool:
    ts = s.global_index.timestamp
    return all(index.timestamp <= ts for index in s.local_indexes.values())


def inv_final_settlement_price(s: PerpetualState) -> bool:
    if s.final_settlement_enabled:
        return s.final_settlement_price > 0
    return s.final_settlement_price == 0


def inv_min_collateral_at_least_base(s: PerpetualState) -> bool:
    return s.config.min_collateral >= BASE


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

INVARIANT_REGISTRY: dict[str, Callable[[PerpetualState], bool]] = {
    "inv_local_index_not_from_future": inv_local_index_not_from_future,
    "inv_final_settlement_price": inv_final_settlement_price,
    "inv_min_collateral_at_least_base": inv_min_collateral_at_least_base,
}


def check_all(state: PerpetualState) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(state)
    ]


# ---------------------------------------------------------------------------
# Trade post-condition
# ---------------------------------------------------------------------------

def verify_trade_balances(
    context: Context,
    accounts: Sequence[str],
    initial: Mapping[str, Balance],
    current: Mapping[str, Balance],
) -> list[str]:
    """Return ``"<reason>:<account>"`` for every account left in a bad state.

    A collateralized account always passes. An undercollateralized one passes
    only if the batch neither grew nor flipped its position and did not lower
    its collateralization ratio, which is what a forced unwind does. The ratio
    is compared on unrounded values, so a proportional unwind keeps it exactly.
    """
    violations: list[str] = []
    for account in accounts:
        before = initial[account]
        after = current[account]
        if is_collateralized_value(*after.positive_and_negative_value(context.price), context.min_collateral):
            continue

        if after.position != 0 and (
            (after.position > 0) != (before.position > 0)
            or abs(after.position) > abs(before.position)
        ):
            violations.append(f"undercollateralized_position_increased:{account}")
            continue

        init_value = before.scaled_positive_and_negative_value(context.price)
        cur_value = after.scaled_positive_and_negative_value(context.price)
        if not collateralization_not_decreased(init_value, cur_value):
            violations.append(f"undercollateralized_collateralization_decreased:{account}")
    return violations
