"""Scheduler keeper: stores thoughts and runs the due ones at block start."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Iterable
from dataclasses import replace
from typing import Any, Protocol

from ..chain import (
    AccAddress,
    AccountKeeper,
    BankKeeper,
    Coin,
    Context,
    GasMeter,
    OutOfGasError,
)
from .types import (
    DEFAULT_PARAMSPACE,
    STORE_KEY,
    THOUGHT_KEY,
    THOUGHT_STATS_KEY,
    BadCallDataError,
    BadNameError,
    BadTriggerError,
    ConvertTriggerError,
    ExceededMaxThoughtsError,
    GenesisState,
    Load,
    Params,
    Thought,
    ThoughtNotExistError,
    ThoughtStats,
    Trigger,
    sort_thoughts,
    thought_key,
    thought_stats_key,
)

FEE_COLLECTOR_NAME = "fee_collector"

_PARAMS_KEY = b"params"


class WasmKeeper(Protocol):
    """Runs a contract's privileged entry point; raises on failure."""

    def sudo(self, ctx: Context, contract: AccAddress, msg: bytes) -> Any: ...


def _parse_address(text: str) -> AccAddress:
    try:
        return AccAddress.from_bech32(text)
    except ValueError:
        return AccAddress(b"", "")


def _decode_base64_prefix(text: str) -> bytes:
    """Decode as much of the text as forms valid base64 quanta."""
    decoded = bytearray()
    for start in range(0, len(text), 4):
        chunk = text[start : start + 4]
        try:
            decoded += base64.b64decode(chunk, validate=True)
        except (binascii.Error, ValueError):
            break
    return bytes(decoded)


def _decode_call_data(msg: str) -> bytes:
    try:
        return base64.b64decode(msg, validate=True)
    except (binascii.Error, ValueError):
        pass
    try:
        bytes.fromhex(msg)
    except ValueError:
        raise BadCallDataError() from None
    return _decode_base64_prefix(msg)


class Keeper:
    """Keeps scheduled contract calls ("thoughts") and their statistics."""

    def __init__(
        self,
        bank_keeper: BankKeeper,
        account_keeper: AccountKeeper,
        *,
        fee_denom: str,
        store_key: str = STORE_KEY,
        param_space: str = DEFAULT_PARAMSPACE,
    ) -> None:
        self._bank = bank_keeper
        self._accounts = account_keeper
        self._fee_denom = fee_denom
        self._store_key = store_key
        self._param_space = param_space
        self._wasm: WasmKeeper | None = None

    def set_wasm_keeper(self, wasm_keeper: WasmKeeper) -> None:
        self._wasm = wasm_keeper

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

    def max_thoughts(self, ctx: Context) -> int:
        return self.get_params(ctx).max_slots

    def max_gas(self, ctx: Context) -> int:
        return self.get_params(ctx).max_gas

    def fee_ttl(self, ctx: Context) -> int:
        return self.get_params(ctx).fee_ttl

    # -- thought lifecycle --------------------------------------------------

    def save_thought(
        self,
        ctx: Context,
        program: AccAddress,
        trigger: Trigger,
        load: Load,
        name: str,
        particle: str,
    ) -> None:
        if trigger.block != 0 and ctx.block_height > trigger.block:
            raise BadTriggerError()

        # With every slot taken, a higher gas price evicts the cheapest thought.
        thoughts = sort_thoughts(self.get_all_thoughts(ctx))
        if len(thoughts) == self.max_thoughts(ctx):
            cheapest = thoughts[-1]
            if cheapest.load.gas_price.is_lt(load.gas_price):
                owner = _parse_address(cheapest.program)
                self.delete_thought(ctx, owner, cheapest.name)
                self.delete_thought_stats(ctx, owner, name)
            else:
                raise ExceededMaxThoughtsError()

        self.set_thought(ctx, Thought(str(program), trigger, load, name, str(particle)))
        self.set_thought_stats(
            ctx, program, name, ThoughtStats(str(program), name, 0, 0, 0, ctx.block_height)
        )

    def _require_thought(self, ctx: Context, program: AccAddress, name: str) -> Thought:
        thought = self.get_thought(ctx, program, name)
        if thought is None:
            raise ThoughtNotExistError()
        return thought

    def remove_thought_full(self, ctx: Context, program: AccAddress, name: str) -> None:
        self._require_thought(ctx, program, name)
        self.delete_thought(ctx, program, name)
        self.delete_thought_stats(ctx, program, name)

    def update_thought_particle(
        self, ctx: Context, program: AccAddress, name: str, particle: str
    ) -> None:
        thought = self._require_thought(ctx, program, name)
        self.set_thought(ctx, replace(thought, particle=str(particle)))

    def update_thought_name(
        self, ctx: Context, program: AccAddress, name: str, new_name: str
    ) -> None:
        thought = self._require_thought(ctx, program, name)
        stats = self.get_thought_stats(ctx, program, name) or ThoughtStats("", "")
        if thought.name == new_name:
            raise BadNameError()

        self.delete_thought(ctx, program, name)
        self.delete_thought_stats(ctx, program, name)
        self.set_thought(ctx, replace(thought, name=new_name))
        self.set_thought_stats(
            ctx,
            program,
            new_name,
            ThoughtStats(
                str(program), new_name, stats.calls, stats.fees, stats.fees, stats.last_block
            ),
        )

    def update_thought_call_data(
        self, ctx: Context, program: AccAddress, name: str, calldata: str
    ) -> None:
        thought = self._require_thought(ctx, program, name)
        self.set_thought(ctx, replace(thought, load=Load(calldata, thought.load.gas_price)))

    def update_thought_gas_price(
        self, ctx: Context, program: AccAddress, name: str, gas_price: Coin
    ) -> None:
        thought = self._require_thought(ctx, program, name)
        self.set_thought(ctx, replace(thought, load=Load(thought.load.input, gas_price)))

    def update_thought_period(
        self, ctx: Context, program: AccAddress, name: str, period: int
    ) -> None:
        thought = self._require_thought(ctx, program, name)
        if thought.trigger.block > 0:
            raise ConvertTriggerError()
        self.set_thought(ctx, replace(thought, trigger=Trigger(period, thought.trigger.block)))

    def update_thought_block(
        self, ctx: Context, program: AccAddress, name: str, block: int
    ) -> None:
        thought = self._require_thought(ctx, program, name)
        if ctx.block_height >= block:
            raise BadTriggerError()
        if thought.trigger.period > 0:
            raise ConvertTriggerError()
        self.set_thought(ctx, replace(thought, trigger=Trigger(thought.trigger.period, block)))

    # -- storage ------------------------------------------------------------

    def set_thought(self, ctx: Context, thought: Thought) -> None:
        program = _parse_address(thought.program)
        ctx.kv_store(self._store_key).set(thought_key(program, thought.name), thought)

    def delete_thought(self, ctx: Context, program: AccAddress, name: str) -> None:
        ctx.kv_store(self._store_key).delete(thought_key(program, name))

    def set_thoughts(self, ctx: Context, thoughts: Iterable[Thought]) -> None:
        for thought in thoughts:
            self.set_thought(ctx, thought)

    def set_thought_stats(
        self, ctx: Context, program: AccAddress, name: str, stats: ThoughtStats
    ) -> None:
        ctx.kv_store(self._store_key).set(thought_stats_key(program, name), stats)

    def delete_thought_stats(self, ctx: Context, program: AccAddress, name: str) -> None:
        ctx.kv_store(self._store_key).delete(thought_stats_key(program, name))

    def get_thought(self, ctx: Context, program: AccAddress, name: str) -> Thought | None:
        return ctx.kv_store(self._store_key).get(thought_key(program, name))

    def get_all_thoughts(self, ctx: Context) -> list[Thought]:
        store = ctx.kv_store(self._store_key)
        return [value for _, value in store.iterate_prefix(THOUGHT_KEY)]

    def get_all_thoughts_stats(self, ctx: Context) -> list[ThoughtStats]:
        store = ctx.kv_store(self._store_key)
        return [value for _, value in store.iterate_prefix(THOUGHT_STATS_KEY)]

    def get_thought_stats(
        self, ctx: Context, program: AccAddress, name: str
    ) -> ThoughtStats | None:
        return ctx.kv_store(self._store_key).get(thought_stats_key(program, name))

    def get_lowest_fee(self, ctx: Context) -> Coin:
        thoughts = self.get_all_thoughts(ctx)
        if not thoughts:
            return Coin(self._fee_denom, 0)
        return sort_thoughts(thoughts)[-1].load.gas_price

    # -- execution ----------------------------------------------------------

    def execute_thoughts_queue(self, ctx: Context) -> None:
        """Run every thought due at this height, charging its program for gas and time."""
        try:
            self._execute_queue(ctx)
        except OutOfGasError as err:
            ctx.logger.error(
                "out of gas in location: %s; gasUsed: %d: out of gas",
                err.descriptor,
                ctx.gas_meter.consumed,
            )

    def _execute_queue(self, ctx: Context) -> None:
        thoughts = sort_thoughts(self.get_all_thoughts(ctx))

        max_gas = self.max_gas(ctx)
        gas_before = ctx.gas_meter.consumed
        gas_used_total = 0
        fee_ttl = self.fee_ttl(ctx)
        max_gas_per_thought = max_gas // self.max_thoughts(ctx)

        if thoughts:
            ctx.logger.info("Thoughts in queue size=%d", len(thoughts))

        height = ctx.block_height
        triggered = 0
        for i, thought in enumerate(thoughts):
            period, block = thought.trigger.period, thought.trigger.block
            due = (period != 0 and height % period == 0) or (period == 0 and height == block)
            if not due:
                continue

            price = thought.load.gas_price
            ctx.logger.info("Started thought number=%d gas price=%s", i, price)
            triggered += 1

            cached, write = ctx.cache_context()
            cached = cached.with_gas_meter(GasMeter(limit=max_gas_per_thought))

            remained = ctx.gas_meter.limit - ctx.gas_meter.gas_consumed_to_limit()
            if remained < max_gas_per_thought:
                ctx.logger.info("Thought break, not enough gas thought #%d", i)
                break

            program = _parse_address(thought.program)
            error = self._execute_thought_with_sudo(cached, program, thought.load.input)

            gas_used = cached.gas_meter.consumed
            ctx.gas_meter.consume_gas(gas_used, "thought execution")
            if gas_used_total + gas_used > max_gas:
                break
            gas_used_total += gas_used

            stats = self.get_thought_stats(ctx, program, thought.name) or ThoughtStats("", "")
            gas_fee = price.amount * gas_used // 10
            ttl_fee = (height - stats.last_block) * fee_ttl
            total_fee = gas_fee + ttl_fee
            ctx.logger.info(
                "Gas thought execution stats used=%d gas fee=%d ttl fee=%d total fee=%d",
                gas_used,
                gas_fee,
                ttl_fee,
                total_fee,
            )

            fee = Coin(self._fee_denom, total_fee)
            coins = [fee] if fee.amount > 0 else []
            try:
                self._bank.send_coins(
                    ctx, program, self._accounts.get_module_address(FEE_COLLECTOR_NAME), coins
                )
            except Exception:
                self.delete_thought(ctx, program, thought.name)
                self.delete_thought_stats(ctx, program, thought.name)
                ctx.logger.info(
                    "Not enough program balance, state not applied, thought forgotten #%d", i
                )
                continue

            if error is not None:
                ctx.logger.info("Thought failed, state not applied #%d", i)
                ctx.logger.info("Failed with error: %s", error)
            else:
                write()
                ctx.logger.info("Thought finished, state applied #%d", i)

            self.set_thought_stats(
                ctx,
                program,
                thought.name,
                ThoughtStats(
                    str(program),
                    thought.name,
                    stats.calls + 1,
                    stats.fees + total_fee,
                    stats.gas + gas_used,
                    height,
                ),
            )

            if height == block:
                self.delete_thought(ctx, program, thought.name)
                self.delete_thought_stats(ctx, program, thought.name)
                ctx.logger.info("Thought executed at given block, deleted from queue #%d", i)

        if triggered > 0:
            ctx.logger.info("Total dmn gas used=%d", ctx.gas_meter.consumed - gas_before)

    def _execute_thought_with_sudo(
        self, ctx: Context, program: AccAddress, msg: str
    ) -> Exception | None:
        """Run the thought; return the error it failed with, or None."""
        try:
            call_data = _decode_call_data(msg)
            if self._wasm is None:
                raise RuntimeError("wasm keeper is not set")
            self._wasm.sudo(ctx, program, call_data)
        except OutOfGasError as err:
            ctx.logger.error(
                "out of gas in location: %s; gasUsed: %d: out of gas",
                err.descriptor,
                ctx.gas_meter.consumed,
            )
        except Exception as err:
            return err
        return None


def init_genesis(ctx: Context, keeper: Keeper, data: GenesisState) -> None:
    keeper.set_params(ctx, data.params)


def export_genesis(ctx: Context, keeper: Keeper) -> GenesisState:
    return GenesisState(keeper.get_params(ctx))


def begin_block(ctx: Context, keeper: Keeper) -> None:
    keeper.execute_thoughts_queue(ctx)