"""Bandwidth meter: sliding-window accounting, pricing and personal bandwidth."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from decimal import Context as _DecimalContext, Decimal
from typing import Any

from ..chain import (
    DEC_PRECISION,
    AccAddress,
    AccountKeeper,
    AccountStakeProvider,
    Context,
    big_endian_to_uint64,
    format_dec,
    round_dec,
    uint64_to_big_endian,
)
from .types import (
    BLOCK_BANDWIDTH,
    DEFAULT_PARAMSPACE,
    LAST_BANDWIDTH_PRICE,
    STORE_KEY,
    TOTAL_BANDWIDTH,
    TSTORE_KEY,
    GenesisState,
    NeuronBandwidth,
    Params,
    account_store_key,
    block_store_key,
    new_genesis_neuron_bandwidth,
)

_CTX = _DecimalContext(prec=120)
_PARAMS_KEY = b"params"
_LINK_COST = 1000


def _quo_int(value: Decimal, divisor: int) -> Decimal:
    """Divide an 18-decimal number by an integer, truncating toward zero."""
    if divisor == 0:
        raise ZeroDivisionError("division by zero")
    scaled = int(value.scaleb(DEC_PRECISION, _CTX))
    quotient = abs(scaled) // abs(divisor)
    if (scaled < 0) != (divisor < 0):
        quotient = -quotient
    return Decimal(quotient).scaleb(-DEC_PRECISION, _CTX)


class BandwidthMeter:
    """Tracks network bandwidth usage, its price and each neuron's allowance."""

    def __init__(
        self,
        stake_provider: AccountStakeProvider,
        *,
        store_key: str = STORE_KEY,
        tstore_key: str = TSTORE_KEY,
        param_space: str = DEFAULT_PARAMSPACE,
    ) -> None:
        self._stake_provider = stake_provider
        self._store_key = store_key
        self._tstore_key = tstore_key
        self._param_space = param_space
        self._current_credit_price = Decimal(0)
        self._spent_by_block: dict[int, int] = {}
        self._window_spent = 0

    @property
    def current_credit_price(self) -> Decimal:
        return self._current_credit_price

    @property
    def window_spent(self) -> int:
        """Bandwidth spent over the current sliding window."""
        return self._window_spent

    # -- params -------------------------------------------------------------

    def _params_store(self, ctx: Context):
        return ctx.kv_store(f"params/{self._param_space}")

    def get_params(self, ctx: Context) -> Params:
        stored = self._params_store(ctx).get(_PARAMS_KEY)
        if stored is None:
            raise LookupError(f"parameters of {self._param_space} are not set")
        return replace(stored)

    def set_params(self, ctx: Context, params: Params) -> None:
        params.validate()
        self._params_store(ctx).set(_PARAMS_KEY, replace(params))

    # -- state --------------------------------------------------------------

    def load_state(self, ctx: Context) -> None:
        params = self.get_params(ctx)
        self._spent_by_block = self.get_values_for_period(ctx, params.recovery_period)
        self._window_spent = sum(self._spent_by_block.values())
        self._current_credit_price = self.get_bandwidth_price(ctx, params.base_price)

    def init_state(self) -> None:
        self._window_spent = 0
        self._spent_by_block = {1: 0}

    # -- price and totals ---------------------------------------------------

    def get_bandwidth_price(self, ctx: Context, base_price: Decimal) -> Decimal:
        price = ctx.kv_store(self._store_key).get(LAST_BANDWIDTH_PRICE)
        return base_price if price is None else price

    def store_bandwidth_price(self, ctx: Context, price: Decimal) -> None:
        ctx.kv_store(self._store_key).set(LAST_BANDWIDTH_PRICE, price)

    def get_desirable_bandwidth(self, ctx: Context) -> int:
        data = ctx.kv_store(self._store_key).get(TOTAL_BANDWIDTH)
        return 0 if data is None else big_endian_to_uint64(data)

    def add_to_desirable_bandwidth(self, ctx: Context, to_add: int) -> None:
        current = self.get_desirable_bandwidth(ctx)
        ctx.kv_store(self._store_key).set(TOTAL_BANDWIDTH, uint64_to_big_endian(current + to_add))

    def add_to_block_bandwidth(self, ctx: Context, value: int) -> None:
        store = ctx.transient_store(self._tstore_key)
        current = big_endian_to_uint64(store.get(BLOCK_BANDWIDTH))
        store.set(BLOCK_BANDWIDTH, uint64_to_big_endian(current + value))

    def commit_block_bandwidth(self, ctx: Context) -> None:
        """Move the window: drop its first block and append the current one."""
        params = self.get_params(ctx)
        tstore = ctx.transient_store(self._tstore_key)
        spent = big_endian_to_uint64(tstore.get(BLOCK_BANDWIDTH))
        try:
            self._window_spent += spent

            height = ctx.block_height
            window_start = max(height - params.recovery_period, 0)

            dropped = self._spent_by_block.pop(window_start, None)
            if dropped is not None:
                self._window_spent -= dropped

            store = ctx.kv_store(self._store_key)
            start_key = block_store_key(window_start)
            if store.has(start_key):
                store.delete(start_key)

            self.set_block_bandwidth(ctx, height, spent)
            self._spent_by_block[height] = spent
        finally:
            if spent > 0:
                ctx.logger.info("Block bandwidth=%d", spent)
                ctx.logger.info("Window bandwidth=%d", self._window_spent)
            tstore.set(BLOCK_BANDWIDTH, uint64_to_big_endian(0))

    def get_current_block_spent_bandwidth(self, ctx: Context) -> int:
        return big_endian_to_uint64(ctx.transient_store(self._tstore_key).get(BLOCK_BANDWIDTH))

    def get_current_network_load(self, ctx: Context) -> Decimal:
        return _quo_int(Decimal(self._window_spent), self.get_desirable_bandwidth(ctx))

    def get_max_block_bandwidth(self, ctx: Context) -> int:
        return self.get_params(ctx).max_block_bandwidth

    def adjust_price(self, ctx: Context) -> None:
        params = self.get_params(ctx)
        desirable = self.get_desirable_bandwidth(ctx)
        base_bandwidth = round_dec(_CTX.multiply(params.base_load, Decimal(desirable)))
        if base_bandwidth == 0:
            return
        new_price = _quo_int(Decimal(self._window_spent), base_bandwidth)
        ctx.logger.info("Load value=%s", format_dec(new_price))
        if new_price < params.base_price:
            new_price = params.base_price
        if new_price > 1:
            new_price = Decimal(1)
        ctx.logger.info("Price value=%s", format_dec(new_price))
        self._current_credit_price = new_price
        self.store_bandwidth_price(ctx, new_price)

    # -- costs --------------------------------------------------------------

    def get_total_cyberlinks_cost(self, ctx: Context, tx: Any) -> int:
        """Cost of a transaction whose messages are all cyberlink messages."""
        total = 0
        for msg in tx.msgs:
            links = getattr(msg, "links", None)
            if links is None:
                raise TypeError(f"not a cyberlink message: {type(msg).__name__}")
            total += len(links) * _LINK_COST
        return total

    def get_priced_total_cyberlinks_cost(self, ctx: Context, tx: Any) -> int:
        cost = Decimal(self.get_total_cyberlinks_cost(ctx, tx))
        return round_dec(_CTX.multiply(self._current_credit_price, cost))

    # -- accounts -----------------------------------------------------------

    def consume_account_bandwidth(
        self, ctx: Context, bw: NeuronBandwidth, amt: int
    ) -> NeuronBandwidth:
        updated = replace(bw)
        updated.consume(amt)
        self.set_account_bandwidth(ctx, updated)
        return updated

    def charge_account_bandwidth(
        self, ctx: Context, bw: NeuronBandwidth, amt: int
    ) -> NeuronBandwidth:
        updated = replace(bw)
        updated.apply_charge(amt)
        self.set_account_bandwidth(ctx, updated)
        return updated

    def get_current_account_bandwidth(self, ctx: Context, address: AccAddress) -> NeuronBandwidth:
        bw = self.get_account_bandwidth(ctx, address)
        max_bw = self.get_account_max_bandwidth(ctx, address)
        params = self.get_params(ctx)
        bw.update_max(max_bw, ctx.block_height, params.recovery_period)
        return bw

    def get_account_max_bandwidth(self, ctx: Context, addr: AccAddress) -> int:
        share = self._stake_provider.get_account_stake_percentage_volt(ctx, addr)
        return int(share * float(self.get_desirable_bandwidth(ctx)))

    def update_account_max_bandwidth(self, ctx: Context, address: AccAddress) -> None:
        self.set_account_bandwidth(ctx, self.get_current_account_bandwidth(ctx, address))

    def set_account_bandwidth(self, ctx: Context, ab: NeuronBandwidth) -> None:
        ctx.kv_store(self._store_key).set(account_store_key(ab.neuron), replace(ab))

    def get_account_bandwidth(self, ctx: Context, address: AccAddress) -> NeuronBandwidth:
        stored = ctx.kv_store(self._store_key).get(account_store_key(str(address)))
        if stored is None:
            return NeuronBandwidth(
                neuron=str(address),
                remained_value=0,
                last_updated_block=ctx.block_height,
                max_value=0,
            )
        return replace(stored)

    # -- blocks -------------------------------------------------------------

    def set_block_bandwidth(self, ctx: Context, block_number: int, value: int) -> None:
        ctx.kv_store(self._store_key).set(block_store_key(block_number), uint64_to_big_endian(value))

    def get_values_for_period(self, ctx: Context, period: int) -> dict[int, int]:
        store = ctx.kv_store(self._store_key)
        window_start = max(ctx.block_height - period + 1, 1)
        return {
            number: big_endian_to_uint64(store.get(block_store_key(number)))
            for number in range(window_start, ctx.block_height + 1)
        }


def init_genesis(
    ctx: Context, meter: BandwidthMeter, account_keeper: AccountKeeper, data: GenesisState
) -> None:
    meter.set_params(ctx, data.params)
    meter._current_credit_price = meter.get_bandwidth_price(ctx, data.params.base_price)
    for account in account_keeper.get_all_accounts(ctx):
        max_bw = meter.get_account_max_bandwidth(ctx, account.address)
        meter.set_account_bandwidth(ctx, new_genesis_neuron_bandwidth(account.address, max_bw))


def export_genesis(ctx: Context, meter: BandwidthMeter) -> GenesisState:
    return GenesisState(meter.get_params(ctx))


def _addresses(accounts: Iterable[Any]) -> list[AccAddress]:
    return [account.address for account in accounts]