"""`perpetual`: settlement, margin and forced-unwind ledger for one market.

- integer-only fixed-point arithmetic (``BASE = 1e18``) with explicit rounding,
- frozen value types, one explicit mutable `PerpetualState`,
- fail-closed operations: every failure rolls the whole operation back.

Public API:
- `PerpetualEngine` (deposit / withdraw / trade / final settlement / admin)
- `LiquidationTrader`, `DeleveragingTrader`
- `load_context`, `settle_account`, `is_collateralized`
"""

from .config import DELEVERAGING_TIMELOCK, PerpetualConfig, config_from_dict, load_config
from .deleveraging import DeleveragingTrader
from .engine import PerpetualEngine
from .errors import (
    LedgerArithmeticError,
    LedgerError,
    LedgerGuardError,
    LedgerInvariantError,
    LedgerOverflowError,
    ReentrancyError,
)
from .liquidation import LiquidationTrader
from .math import BASE
from .settlement import is_collateralized, is_underwater, load_context, settle_account
from .state import PerpetualState, initial_state, state_from_dict, state_to_dict
from .types import (
    Balance,
    Context,
    Event,
    ForcedTradeData,
    Index,
    LedgerEvent,
    TradeArg,
    TradeResult,
    TraderFlags,
)

__all__ = [
    "BASE",
    "DELEVERAGING_TIMELOCK",
    "PerpetualConfig",
    "config_from_dict",
    "load_config",
    "PerpetualEngine",
    "LiquidationTrader",
    "DeleveragingTrader",
    "load_context",
    "settle_account",
    "is_collateralized",
    "is_underwater",
    "PerpetualState",
    "initial_state",
    "state_from_dict",
    "state_to_dict",
    "Balance",
    "Context",
    "Event",
    "ForcedTradeData",
    "Index",
    "LedgerEvent",
    "TradeArg",
    "TradeResult",
    "TraderFlags",
    "LedgerError",
    "LedgerGuardError",
    "LedgerOverflowError",
    "LedgerArithmeticError",
    "LedgerInvariantError",
    "ReentrancyError",
]
