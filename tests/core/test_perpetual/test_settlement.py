"""Tests for powerperp/core/perpetual/settlement.py — funding index and settlement."""

import pytest

from powerperp.core.perpetual import (
    BASE,
    Balance,
    Context,
    Event,
    Index,
    initial_state,
    is_collateralized,
    is_underwater,
    load_context,
    settle_account,
)
from powerperp.core.perpetual.errors import LedgerArithmeticError, LedgerGuardError

from tests.core.test_perpetual.harness import START, StaticOracle, StubFunder, make_harness, put_balance


def _state_with(account: str, margin: int, position: int, local: Index):
    state = initial_state(now=START)
    state.set_balance(account, Balance(margin=margin, position=position))
    state.set_local_index(account, local)
    return state


def _ctx(value: int, timestamp: int = START + 100, price: int = BASE) -> Context:
    return Context(price=price, min_collateral=BASE, index=Index(timestamp=timestamp, value=value))


# ---------------------------------------------------------------------------
# load_context
# ---------------------------------------------------------------------------

class TestLoadContext:
    def test_initial_index(self):
        state = initial_state(now=START)
        assert state.global_index == Index(timestamp=START, value=0)

    def test_same_timestamp_is_idempotent(self):
        state = initial_state(now=START)
        funder = StubFunder(True, BASE)
        ctx = load_context(state, StaticOracle(100 * BASE), funder, START)
        assert ctx.index == Index(START, 0)
        assert funder.calls == []
        assert state.events == []

    def test_funding_accrues_scaled_by_price(self):
        state = initial_state(now=START)
        funder = StubFunder(True, 5 * BASE // 100)
        ctx = load_context(state, StaticOracle(100 * BASE), funder, START + 3600)
        assert funder.calls == [3600]
        assert ctx.index == Index(START + 3600, 5 * BASE)
        assert ctx.price == 100 * BASE
        assert state.global_index == ctx.index
        assert state.events[-1].event == Event.INDEX_UPDATED

    def test_negative_funding_lowers_index(self):
        state = initial_state(now=START)
        funder = StubFunder(False, 2 * BASE // 100)
        load_context(state, StaticOracle(100 * BASE), funder, START + 10)
        ctx = load_context(state, StaticOracle(100 * BASE), StubFunder(True, BASE // 100), START + 20)
        assert ctx.index.value == -2 * BASE + BASE

    def test_second_call_same_instant_does_not_move(self):
        state = initial_state(now=START)
        funder = StubFunder(True, BASE // 100)
        first = load_context(state, StaticOracle(10 * BASE), funder, START + 5)
        second = load_context(state, StaticOracle(10 * BASE), funder, START + 5)
        assert first.index == second.index
        assert funder.calls == [5]

    def test_time_regression_rejected(self):
        state = initial_state(now=START)
        with pytest.raises(LedgerArithmeticError, match="timestamp_regressed"):
            load_context(state, StaticOracle(BASE), StubFunder(), START - 1)

    def test_zero_price_rejected(self):
        state = initial_state(now=START)
        with pytest.raises(LedgerGuardError, match="oracle_price_zero"):
            load_context(state, StaticOracle(0), StubFunder(), START)

    def test_final_settlement_freezes_price_and_index(self):
        state = initial_state(now=START)
        state.final_settlement_enabled = True
        state.final_settlement_price = 42 * BASE
        funder = StubFunder(True, BASE)
        ctx = load_context(state, StaticOracle(100 * BASE), funder, START + 1000)
        assert ctx.price == 42 * BASE
        assert ctx.index == Index(START, 0)
        assert funder.calls == []


# ---------------------------------------------------------------------------
# settle_account
# ---------------------------------------------------------------------------

class TestSettleAccount:
    def test_funding_accrual_walkthrough(self):
        h = make_harness(price=100 * BASE, funder=StubFunder(True, 5 * BASE // 100))
        put_balance(h, "alice", 1000 * BASE, 10 * BASE)
        put_balance(h, "bob", 1000 * BASE, -10 * BASE)
        h.clock.advance(3600)

        state = h.engine.state
        ctx = load_context(state, h.oracle, h.funder, h.clock())
        assert ctx.index.value == 5 * BASE

        # long pays when the index rises, short receives
        assert settle_account(state, ctx, "alice").margin == 950 * BASE
        assert settle_account(state, ctx, "bob").margin == 1050 * BASE
        assert state.local_index_of("alice") == ctx.index

    def test_same_timestamp_is_idempotent(self):
        state = _state_with("a", 0, 10 * BASE, Index(START, 0))
        ctx = _ctx(3 * BASE)
        first = settle_account(state, ctx, "a")
        events = len(state.events)
        second = settle_account(state, ctx, "a")
        assert first == second == Balance(-30 * BASE, 10 * BASE)
        assert len(state.events) == events

    def test_debit_rounds_up(self):
        state = _state_with("long", 0, 3 * BASE // 2, Index(START, 0))
        assert settle_account(state, _ctx(1), "long").margin == -2

    def test_credit_rounds_down(self):
        state = _state_with("short", 0, -3 * BASE // 2, Index(START, 0))
        assert settle_account(state, _ctx(1), "short").margin == 1

    def test_falling_index_charges_shorts(self):
        state = _state_with("short", 100, -3 * BASE // 2, Index(START, 5))
        assert settle_account(state, _ctx(4), "short").margin == 100 - 2

    def test_falling_index_pays_longs(self):
        state = _state_with("long", 100, 3 * BASE // 2, Index(START, 5))
        assert settle_account(state, _ctx(4), "long").margin == 100 + 1

    def test_flat_account_advances_index_only(self):
        state = _state_with("flat", 7, 0, Index(START, 0))
        ctx = _ctx(9 * BASE)
        assert settle_account(state, ctx, "flat") == Balance(7, 0)
        assert state.local_index_of("flat") == ctx.index
        assert state.events == []

    def test_reopened_position_starts_from_current_baseline(self):
        state = _state_with("a", 0, 0, Index(START, 0))
        settle_account(state, _ctx(9 * BASE, START + 1), "a")
        state.set_balance("a", Balance(0, BASE))
        # Only the move from 9 to 10 is charged.
        assert settle_account(state, _ctx(10 * BASE, START + 2), "a").margin == -BASE

    def test_untouched_account_starts_at_zero(self):
        state = initial_state(now=START)
        assert settle_account(state, _ctx(BASE), "new") == Balance()
        assert state.local_index_of("new").value == BASE

    def test_records_settlement_event(self):
        state = _state_with("a", 0, BASE, Index(START, 0))
        settle_account(state, _ctx(2), "a")
        event = state.events[-1]
        assert event.event == Event.ACCOUNT_SETTLED
        assert event.account == "a"
        assert event.data["amount"] == 2
        assert event.data["is_positive"] is False


# ---------------------------------------------------------------------------
# is_collateralized / is_underwater
# ---------------------------------------------------------------------------

class TestCollateralized:
    def test_uses_min_collateral(self):
        ctx = Context(price=50 * BASE, min_collateral=BASE * 3 // 2, index=Index())
        # positive 600, negative 400 -> ratio 1.5
        assert is_collateralized(ctx, Balance(600 * BASE, -8 * BASE))
        assert not is_collateralized(ctx, Balance(599 * BASE, -8 * BASE))

    def test_undercollateralized_is_not_necessarily_underwater(self):
        ctx = Context(price=50 * BASE, min_collateral=BASE, index=Index())
        balance = Balance(200 * BASE, -8 * BASE)
        assert not is_collateralized(ctx, balance)
        assert not is_underwater(ctx, Balance(400 * BASE, -8 * BASE))
        assert is_underwater(ctx, balance)
