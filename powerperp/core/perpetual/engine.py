"""Perpetual ledger engine.

`PerpetualEngine` owns one `PerpetualState` and exposes every top-level
operation: margin deposits and withdrawals, batched trade execution, admin
changes and final settlement.

Every mutating operation runs inside `transaction()`:

1. takes the engine lock and the re-entrancy guard,
2. snapshots the state (and the state of stateful traders),
3. loads one `Context` (price + funding index) for the whole operation,
4. runs the operation body,
5. checks the ledger invariants and commits, or restores the snapshot and
   re-raises on any failure.

Nothing is ever partially applied.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
import logging
import threading
import time
from typing import Iterator, Sequence

from .config import PerpetualConfig, validate_min_collateral
from .errors import LedgerGuardError, LedgerInvariantError, ReentrancyError
from .interfaces import Authorizer, Clock, FundingProvider, PriceOracle, TokenTransfer
from .invariants import check_all, verify_trade_balances
from .math import MAX_BALANCE, checked_uint
from .settlement import is_collateralized, load_context, settle_account
from .state import PerpetualState, initial_state
from .traders import Trader
from .types import Balance, Context, Event, Index, TradeArg, TraderFlags

logger = logging.getLogger(__name__)


def _wall_clock() -> int:
    return int(time.time())


class PerpetualEngine:
    def __init__(
        self,
        *,
        token: TokenTransfer,
        oracle: PriceOracle,
        funder: FundingProvider,
        authorizer: Authorizer,
        config: PerpetualConfig | None = None,
        clock: Clock | None = None,
        state: PerpetualState | None = None,
    ) -> None:
        self.token = token
        self.oracle = oracle
        self.funder = funder
        self.authorizer = authorizer
        self.clock = clock or _wall_clock
        self.state = state if state is not None else initial_state(self.clock(), config)
        self._traders: dict[str, Trader] = {}
        self._lock = threading.RLock()
        self._entered = False
        self._dispatching = False
        self._now: int | None = None

    # -- wiring ------------------------------------------------------------

    def register_trader(self, handle: str, trader: Trader) -> None:
        """Make *trader* reachable from trade batches under *handle*.

        The handle must additionally be a global operator for the batch to be
        accepted.
        """
        self._traders[handle] = trader

    def trader(self, handle: str) -> Trader:
        try:
            return self._traders[handle]
        except KeyError:
            raise LedgerGuardError("unknown_trader", f"no trader registered as {handle!r}") from None

    # -- transaction boundary -----------------------------------------------

    def now(self) -> int:
        """Operation timestamp inside a transaction, wall clock otherwise."""
        return self._now if self._now is not None else self.clock()

    @property
    def is_dispatching_trades(self) -> bool:
        return self._dispatching

    @contextmanager
    def transaction(self, name: str, *, load: bool = True) -> Iterator[tuple[Context | None, int]]:
        """Atomic operation scope yielding ``(context, now)``.

        ``context`` is None when ``load`` is False.
        """
        with self._lock:
            if self._entered:
                raise ReentrancyError()
            self._entered = True
            snap = self.state.snapshot()
            trader_snaps = [
                (trader, trader.snapshot())
                for trader in self._traders.values()
                if hasattr(trader, "snapshot")
            ]
            try:
                self._now = self.clock()
                context = (
                    load_context(self.state, self.oracle, self.funder, self._now) if load else None
                )
                yield context, self._now
                violations = check_all(self.state)
                if violations:
                    raise LedgerInvariantError(violations)
            except BaseException as exc:
                self.state.restore(snap)
                for trader, trader_snap in trader_snaps:
                    trader.restore(trader_snap)
                logger.warning("%s rejected: %s", name, getattr(exc, "reason", exc))
                raise
            finally:
                self._entered = False
                self._dispatching = False
                self._now = None

    def settle(self, context: Context, account: str) -> Balance:
        return settle_account(self.state, context, account)

    def require_admin(self, sender: str) -> None:
        if sender != self.state.config.admin:
            raise LedgerGuardError("sender_not_admin", f"{sender!r} is not the admin")

    def _require_no_final_settlement(self) -> None:
        if self.state.final_settlement_enabled:
            raise LedgerGuardError("final_settlement_enabled", "not permitted during final settlement")

    # -- margin --------------------------------------------------------------

    def deposit(self, sender: str, account: str, amount: int) -> Balance:
        """Pull *amount* of collateral from *sender* into *account*'s margin.

        Never checks collateralization: a deposit can only improve an account.
        """
        checked_uint(amount, MAX_BALANCE, "amount")
        with self.transaction("deposit") as (context, _now):
            self._require_no_final_settlement()
            balance = self.settle(context, account).add_margin(amount)
            self.state.set_balance(account, balance)
            self.token.transfer(sender, self.state.config.custody, amount)
            self.state.record(Event.DEPOSIT, account, sender=sender, amount=amount, margin=balance.margin)
        logger.info("deposit %s: amount=%d margin=%d", account, amount, balance.margin)
        return balance

    def withdraw(self, sender: str, account: str, destination: str, amount: int) -> Balance:
        """Send *amount* of *account*'s margin to *destination*.

        Succeeds iff the account is collateralized after the withdrawal.
        """
        checked_uint(amount, MAX_BALANCE, "amount")
        with self.transaction("withdraw") as (context, _now):
            self._require_no_final_settlement()
            if not self.authorizer.has_account_permissions(account, sender):
                raise LedgerGuardError(
                    "sender_lacks_permissions", f"{sender!r} cannot withdraw from {account!r}",
                )
            balance = self.settle(context, account)
            balance = balance.add_margin(-amount)
            self.state.set_balance(account, balance)
            if not is_collateralized(context, balance):
                raise LedgerInvariantError([f"account_undercollateralized:{account}"])
            self.token.transfer(self.state.config.custody, destination, amount)
            self.state.record(
                Event.WITHDRAW, account, destination=destination, amount=amount, margin=balance.margin,
            )
        logger.info("withdraw %s -> %s: amount=%d margin=%d", account, destination, amount, balance.margin)
        return balance

    # -- trading -------------------------------------------------------------

    def trade(self, sender: str, accounts: Sequence[str], trades: Sequence[TradeArg]) -> dict[str, Balance]:
        """Execute a batch of trades between *accounts* at one price.

        *accounts* must be strictly increasing. Returns the committed balance
        of every account in the batch.
        """
        _verify_accounts(accounts)
        for arg in trades:
            if not (0 <= arg.maker_index < len(accounts) and 0 <= arg.taker_index < len(accounts)):
                raise LedgerGuardError("trade_index_out_of_range", f"bad account index in {arg!r}")

        with self.transaction("trade") as (context, _now):
            self._require_no_final_settlement()
            initial = {account: self.settle(context, account) for account in accounts}
            current = dict(initial)

            trader_flags = TraderFlags.NONE
            for arg in trades:
                if not self.authorizer.is_global_operator(arg.trader):
                    raise LedgerGuardError(
                        "trader_not_global_operator", f"trader {arg.trader!r} is not a global operator",
                    )
                trader = self.trader(arg.trader)
                maker = accounts[arg.maker_index]
                taker = accounts[arg.taker_index]

                self._dispatching = True
                try:
                    result = trader.trade(sender, maker, taker, context.price, arg.data, trader_flags)
                finally:
                    self._dispatching = False
                trader_flags |= result.trader_flags

                if maker == taker:
                    continue

                margin_delta, position_delta = result.taker_deltas()
                current[taker] = _apply(current[taker], margin_delta, position_delta)
                current[maker] = _apply(current[maker], -margin_delta, -position_delta)
                self.state.record(
                    Event.TRADE,
                    taker,
                    maker=maker,
                    trader=arg.trader,
                    margin_amount=result.margin_amount,
                    position_amount=result.position_amount,
                    is_buy=result.is_buy,
                )

            violations = verify_trade_balances(context, accounts, initial, current)
            if violations:
                raise LedgerInvariantError(violations)
            for account in accounts:
                self.state.set_balance(account, current[account])

        logger.info("trade: %d trades across %d accounts, flags=%s", len(trades), len(accounts), trader_flags)
        return current

    # -- final settlement ----------------------------------------------------

    def enable_final_settlement(self, sender: str, price_lower_bound: int, price_upper_bound: int) -> int:
        """Freeze the price and index; only final-settlement withdrawals remain."""
        with self.transaction("enable_final_settlement") as (context, _now):
            self.require_admin(sender)
            self._require_no_final_settlement()
            if context.price < price_lower_bound:
                raise LedgerGuardError("oracle_price_below_bound", "oracle price is below lower bound")
            if context.price > price_upper_bound:
                raise LedgerGuardError("oracle_price_above_bound", "oracle price is above upper bound")
            self.state.final_settlement_enabled = True
            self.state.final_settlement_price = context.price
            self.state.record(Event.FINAL_SETTLEMENT_ENABLED, price=context.price)
        logger.info("final settlement enabled at price %d", context.price)
        return context.price

    def withdraw_final_settlement(self, sender: str) -> int:
        """Pay out *sender*'s net value at the final price and zero the account.

        The payout is capped by the collateral held in custody. Returns the
        amount paid.
        """
        with self.transaction("withdraw_final_settlement") as (context, _now):
            if not self.state.final_settlement_enabled:
                raise LedgerGuardError("final_settlement_not_enabled", "final settlement is not enabled")
            balance = self.settle(context, sender)
            positive, negative = balance.positive_and_negative_value(context.price)
            account_value = positive - negative if positive > negative else 0
            custody_balance = self.token.balance_of(self.state.config.custody)
            amount = min(account_value, custody_balance)
            if amount < account_value:
                logger.warning(
                    "final settlement shortfall for %s: value=%d paid=%d", sender, account_value, amount,
                )
            self.state.set_balance(sender, Balance())
            self.token.transfer(self.state.config.custody, sender, amount)
            self.state.record(Event.FINAL_SETTLEMENT_WITHDRAW, sender, amount=amount)
        logger.info("final settlement withdraw %s: amount=%d", sender, amount)
        return amount

    # -- admin -----------------------------------------------------------------

    def set_oracle(self, sender: str, oracle: PriceOracle) -> None:
        """Swap the price oracle after accruing funding under the old one."""
        with self.transaction("set_oracle"):
            self.require_admin(sender)
            if oracle.get_price() <= 0:
                raise LedgerGuardError("oracle_price_zero", "new oracle returned a zero price")
            self.oracle = oracle
            self.state.record(Event.ORACLE_SET, oracle=type(oracle).__name__)
        logger.info("oracle set to %s", type(oracle).__name__)

    def set_funder(self, sender: str, funder: FundingProvider) -> None:
        """Swap the funding provider after accruing funding under the old one."""
        with self.transaction("set_funder"):
            self.require_admin(sender)
            funder.get_funding(0)
            self.funder = funder
            self.state.record(Event.FUNDER_SET, funder=type(funder).__name__)
        logger.info("funder set to %s", type(funder).__name__)

    def set_min_collateral(self, sender: str, min_collateral: int) -> None:
        with self.transaction("set_min_collateral", load=False):
            self.require_admin(sender)
            validate_min_collateral(min_collateral)
            self.state.config = replace(self.state.config, min_collateral=min_collateral)
            self.state.record(Event.MIN_COLLATERAL_SET, min_collateral=min_collateral)
        logger.info("min collateral set to %d", min_collateral)

    # -- getters ---------------------------------------------------------------

    def get_account_balance(self, account: str) -> Balance:
        """Stored balance (not settled to the current index)."""
        return self.state.balance_of(account)

    def get_account_index(self, account: str) -> Index:
        return self.state.local_index_of(account)

    def get_global_index(self) -> Index:
        return self.state.global_index

    def get_min_collateral(self) -> int:
        return self.state.config.min_collateral

    def get_final_settlement_enabled(self) -> bool:
        return self.state.final_settlement_enabled

    def has_account_permissions(self, account: str, operator: str) -> bool:
        return self.authorizer.has_account_permissions(account, operator)


def _verify_accounts(accounts: Sequence[str]) -> None:
    if not accounts:
        raise LedgerGuardError("accounts_empty", "accounts must have non-zero length")
    for prev, cur in zip(accounts, accounts[1:]):
        if not prev < cur:
            raise LedgerGuardError("accounts_not_sorted", "accounts must be sorted and unique")


def _apply(balance: Balance, margin_delta: int, position_delta: int) -> Balance:
    return Balance(margin=balance.margin + margin_delta, position=balance.position + position_delta)
