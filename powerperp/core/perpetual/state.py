"""Ledger state for one perpetual market.

`PerpetualState` is the single explicit state structure the engine operates
on: per-account balances and local indexes, the global index, scalar
configuration and the final-settlement switch. Balances and indexes are frozen
values, so `snapshot()` only needs to copy the containers.

Round-trip property (tested): `state_from_dict(state_to_dict(s)) == s` for all
valid states (the event log is not persisted).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .config import PerpetualConfig, config_from_dict, config_to_dict
from .types import Balance, Event, Index, LedgerEvent


@dataclass
class PerpetualState:
    config: PerpetualConfig
    global_index: Index
    balances: dict[str, Balance] = field(default_factory=dict)
    local_indexes: dict[str, Index] = field(default_factory=dict)
    final_settlement_enabled: bool = False
    final_settlement_price: int = 0
    events: list[LedgerEvent] = field(default_factory=list, compare=False)

    def balance_of(self, account: str) -> Balance:
        """Stored balance, zero for accounts never touched."""
        return self.balances.get(account, Balance())

    def local_index_of(self, account: str) -> Index:
        return self.local_indexes.get(account, Index())

    def set_balance(self, account: str, balance: Balance) -> None:
        self.balances[account] = balance

    def set_local_index(self, account: str, index: Index) -> None:
        self.local_indexes[account] = index

    def record(self, event: Event, account: str | None = None, **data: Any) -> None:
        self.events.append(LedgerEvent(event=event, account=account, data=data))

    def snapshot(self) -> PerpetualState:
        return PerpetualState(
            config=self.config,
            global_index=self.global_index,
            balances=dict(self.balances),
            local_indexes=dict(self.local_indexes),
            final_settlement_enabled=self.final_settlement_enabled,
            final_settlement_price=self.final_settlement_price,
            events=list(self.events),
        )

    def restore(self, snap: PerpetualState) -> None:
        self.config = snap.config
        self.global_index = snap.global_index
        self.balances = snap.balances
        self.local_indexes = snap.local_indexes
        self.final_settlement_enabled = snap.final_settlement_enabled
        self.final_settlement_price = snap.final_settlement_price
        self.events = snap.events


def initial_state(now: int, config: PerpetualConfig | None = None) -> PerpetualState:
    """Fresh ledger: no accounts, global index ``{now, 0}``."""
    return PerpetualState(config=config or PerpetualConfig(), global_index=Index(timestamp=now, value=0))


def _index_to_list(index: Index) -> list[int]:
    return [index.timestamp, index.value]


def _index_from_list(raw: Any) -> Index:
    timestamp, value = raw
    return Index(timestamp=_as_int(timestamp, "index"), value=_as_int(value, "index"))


def _as_int(val: Any, name: str) -> int:
    if isinstance(val, bool) or not isinstance(val, int):
        raise TypeError(f"state var {name!r} must be int, got {type(val).__name__}")
    return int(val)


def state_to_dict(state: PerpetualState) -> dict[str, Any]:
    """Serialize to plain JSON-compatible types, accounts sorted."""
    return {
        "config": config_to_dict(state.config),
        "global_index": _index_to_list(state.global_index),
        "balances": {
            account: [state.balances[account].margin, state.balances[account].position]
            for account in sorted(state.balances)
        },
        "local_indexes": {
            account: _index_to_list(state.local_indexes[account])
            for account in sorted(state.local_indexes)
        },
        "final_settlement_enabled": state.final_settlement_enabled,
        "final_settlement_price": state.final_settlement_price,
    }


def state_from_dict(d: Mapping[str, Any]) -> PerpetualState:
    """Deserialize a dict produced by `state_to_dict`. Raises KeyError on missing fields."""
    enabled = d["final_settlement_enabled"]
    if not isinstance(enabled, bool):
        raise TypeError("state var 'final_settlement_enabled' must be bool")
    balances: dict[str, Balance] = {}
    for account, raw in d["balances"].items():
        margin, position = raw
        balances[account] = Balance(
            margin=_as_int(margin, "balances"), position=_as_int(position, "balances"),
        )
    return PerpetualState(
        config=config_from_dict(d["config"]),
        global_index=_index_from_list(d["global_index"]),
        balances=balances,
        local_indexes={account: _index_from_list(raw) for account, raw in d["local_indexes"].items()},
        final_settlement_enabled=enabled,
        final_settlement_price=_as_int(d["final_settlement_price"], "final_settlement_price"),
    )
