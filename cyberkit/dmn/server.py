"""Handles scheduler transaction messages and emits their events."""

from __future__ import annotations

import json

from ..chain import AccAddress, Context, Event
from .keeper import Keeper
from .msgs import (
    MsgChangeThoughtBlock,
    MsgChangeThoughtGasPrice,
    MsgChangeThoughtInput,
    MsgChangeThoughtName,
    MsgChangeThoughtParticle,
    MsgChangeThoughtPeriod,
    MsgCreateThought,
    MsgForgetThought,
)
from .types import (
    ATTRIBUTE_KEY_THOUGHT_BLOCK,
    ATTRIBUTE_KEY_THOUGHT_GAS_PRICE,
    ATTRIBUTE_KEY_THOUGHT_INPUT,
    ATTRIBUTE_KEY_THOUGHT_LOAD,
    ATTRIBUTE_KEY_THOUGHT_NAME,
    ATTRIBUTE_KEY_THOUGHT_PARTICLE,
    ATTRIBUTE_KEY_THOUGHT_PERIOD,
    ATTRIBUTE_KEY_THOUGHT_PROGRAM,
    ATTRIBUTE_KEY_THOUGHT_TRIGGER,
    ATTRIBUTE_VALUE_CATEGORY,
    EVENT_TYPE_CHANGE_THOUGHT_BLOCK,
    EVENT_TYPE_CHANGE_THOUGHT_GAS_PRICE,
    EVENT_TYPE_CHANGE_THOUGHT_INPUT,
    EVENT_TYPE_CHANGE_THOUGHT_NAME,
    EVENT_TYPE_CHANGE_THOUGHT_PARTICLE,
    EVENT_TYPE_CHANGE_THOUGHT_PERIOD,
    EVENT_TYPE_CREATE_THOUGHT,
    EVENT_TYPE_FORGET_THOUGHT,
    Load,
    Trigger,
)

EVENT_TYPE_MESSAGE = "message"
ATTRIBUTE_KEY_MODULE = "module"
ATTRIBUTE_KEY_SENDER = "sender"


def _parse_address(text: str) -> AccAddress:
    try:
        return AccAddress.from_bech32(text)
    except ValueError:
        return AccAddress(b"", "")


def _rune_string(value: int) -> str:
    """Interpret an integer as a single code point; invalid ones become U+FFFD."""
    if 0 <= value <= 0x10FFFF and not 0xD800 <= value <= 0xDFFF:
        return chr(value)
    return "\ufffd"


def _trigger_text(trigger: Trigger) -> str:
    parts = [f"{key}:{value}" for key, value in (("period", trigger.period), ("block", trigger.block)) if value]
    return " ".join(parts)


def _load_text(load: Load) -> str:
    parts = []
    if load.input:
        parts.append(f"input:{json.dumps(load.input)}")
    coin = load.gas_price
    parts.append(f"gas_price:<denom:{json.dumps(coin.denom)} amount:\"{coin.amount}\" >")
    return " ".join(parts)


class MsgServer:
    """Applies scheduler messages through a keeper."""

    def __init__(self, keeper: Keeper) -> None:
        self._keeper = keeper

    @staticmethod
    def _emit(ctx: Context, program: str, event_type: str, *attributes: tuple[str, str]) -> None:
        ctx.emit_events(
            [
                Event(
                    EVENT_TYPE_MESSAGE,
                    (
                        (ATTRIBUTE_KEY_MODULE, ATTRIBUTE_VALUE_CATEGORY),
                        (ATTRIBUTE_KEY_SENDER, program),
                    ),
                ),
                Event(event_type, ((ATTRIBUTE_KEY_THOUGHT_PROGRAM, program), *attributes)),
            ]
        )

    def create_thought(self, ctx: Context, msg: MsgCreateThought) -> None:
        program = _parse_address(msg.program)
        self._keeper.save_thought(ctx, program, msg.trigger, msg.load, msg.name, msg.particle)
        self._emit(
            ctx,
            msg.program,
            EVENT_TYPE_CREATE_THOUGHT,
            (ATTRIBUTE_KEY_THOUGHT_TRIGGER, _trigger_text(msg.trigger)),
            (ATTRIBUTE_KEY_THOUGHT_LOAD, _load_text(msg.load)),
            (ATTRIBUTE_KEY_THOUGHT_NAME, msg.name),
            (ATTRIBUTE_KEY_THOUGHT_PARTICLE, msg.particle),
        )

    def forget_thought(self, ctx: Context, msg: MsgForgetThought) -> None:
        program = _parse_address(msg.program)
        self._keeper.remove_thought_full(ctx, program, msg.name)
        self._emit(ctx, msg.program, EVENT_TYPE_FORGET_THOUGHT)

    def change_thought_particle(self, ctx: Context, msg: MsgChangeThoughtParticle) -> None:
        program = _parse_address(msg.program)
        self._keeper.update_thought_particle(ctx, program, msg.name, msg.particle)
        self._emit(
            ctx,
            msg.program,
            EVENT_TYPE_CHANGE_THOUGHT_PARTICLE,
            (ATTRIBUTE_KEY_THOUGHT_PARTICLE, msg.particle),
        )

    def change_thought_name(self, ctx: Context, msg: MsgChangeThoughtName) -> None:
        program = _parse_address(msg.program)
        self._keeper.update_thought_name(ctx, program, msg.name, msg.new_name)
        self._emit(
            ctx,
            msg.program,
            EVENT_TYPE_CHANGE_THOUGHT_NAME,
            (ATTRIBUTE_KEY_THOUGHT_NAME, msg.name),
        )

    def change_thought_input(self, ctx: Context, msg: MsgChangeThoughtInput) -> None:
        program = _parse_address(msg.program)
        self._keeper.update_thought_call_data(ctx, program, msg.name, msg.input)
        self._emit(
            ctx,
            msg.program,
            EVENT_TYPE_CHANGE_THOUGHT_INPUT,
            (ATTRIBUTE_KEY_THOUGHT_INPUT, msg.input),
        )

    def change_thought_gas_price(self, ctx: Context, msg: MsgChangeThoughtGasPrice) -> None:
        program = _parse_address(msg.program)
        self._keeper.update_thought_gas_price(ctx, program, msg.name, msg.gas_price)
        self._emit(
            ctx,
            msg.program,
            EVENT_TYPE_CHANGE_THOUGHT_GAS_PRICE,
            (ATTRIBUTE_KEY_THOUGHT_GAS_PRICE, str(msg.gas_price)),
        )

    def change_thought_period(self, ctx: Context, msg: MsgChangeThoughtPeriod) -> None:
        program = _parse_address(msg.program)
        self._keeper.update_thought_period(ctx, program, msg.name, msg.period)
        self._emit(
            ctx,
            msg.program,
            EVENT_TYPE_CHANGE_THOUGHT_PERIOD,
            (ATTRIBUTE_KEY_THOUGHT_PERIOD, _rune_string(msg.period)),
        )

    def change_thought_block(self, ctx: Context, msg: MsgChangeThoughtBlock) -> None:
        program = _parse_address(msg.program)
        self._keeper.update_thought_block(ctx, program, msg.name, msg.block)
        self._emit(
            ctx,
            msg.program,
            EVENT_TYPE_CHANGE_THOUGHT_BLOCK,
            (ATTRIBUTE_KEY_THOUGHT_BLOCK, _rune_string(msg.block)),
        )