"""Scheduler queries: legacy path querier, query service and contract bindings."""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from typing import Any

from ..chain import AccAddress, ChainError, Coin, Context
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
    QUERY_PARAMS,
    QUERY_THOUGHT,
    QUERY_THOUGHT_STATS,
    QUERY_THOUGHTS,
    QUERY_THOUGHTS_STATS,
    Load,
    Params,
    Thought,
    ThoughtNotExistError,
    ThoughtStats,
    Trigger,
)

_MAX_UINT64 = 2**64 - 1


class UnknownRequestError(ChainError):
    """Raised for a query path the querier does not serve."""

    codespace = "sdk"
    code = 6
    message = "unknown request"

    def __init__(self, detail: str) -> None:
        super().__init__(f"{detail}: {self.message}")


class InvalidRequestError(ChainError):
    """Raised when a contract asks for something that does not exist."""

    codespace = "sdk"
    code = 18
    message = "invalid request"

    def __init__(self) -> None:
        super().__init__(self.message)


class UnsupportedRequestError(Exception):
    """Raised for a contract query of an unknown kind."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f"unsupported request: {kind}")


class _InvalidMsgError(ChainError):
    codespace = "wasm"
    code = 4
    message = "invalid CosmosMsg from the contract"

    def __init__(self, detail: str) -> None:
        super().__init__(f"{detail}: {self.message}")


# -- JSON rendering --------------------------------------------------------


def _indent(obj: Any) -> bytes:
    return json.dumps(obj, indent=2).encode()


def _compact(obj: Any) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode()


def _coin_json(coin: Coin) -> dict[str, str]:
    return {"denom": coin.denom, "amount": str(coin.amount)}


def _params_json(params: Params) -> dict[str, Any]:
    return {"max_slots": params.max_slots, "max_gas": params.max_gas, "fee_ttl": params.fee_ttl}


def _thought_json(thought: Thought) -> dict[str, Any]:
    return {
        "program": thought.program,
        "trigger": {"period": str(thought.trigger.period), "block": str(thought.trigger.block)},
        "load": {"input": thought.load.input, "gas_price": _coin_json(thought.load.gas_price)},
        "name": thought.name,
        "particle": thought.particle,
    }


def _stats_json(stats: ThoughtStats) -> dict[str, Any]:
    return {
        "program": stats.program,
        "name": stats.name,
        "calls": str(stats.calls),
        "fees": str(stats.fees),
        "gas": str(stats.gas),
        "last_block": str(stats.last_block),
    }


def _empty_address() -> AccAddress:
    return AccAddress(b"", "")


def _parse_address_or_empty(text: str) -> AccAddress:
    try:
        return AccAddress.from_bech32(text)
    except ValueError:
        return _empty_address()


def _parse_thought_params(data: bytes | str) -> tuple[AccAddress, str]:
    obj = json.loads(data)
    if not isinstance(obj, dict):
        raise ValueError("thought query parameters must be a JSON object")
    text = obj.get("Program") or ""
    name = obj.get("Name") or ""
    if not isinstance(text, str) or not isinstance(name, str):
        raise ValueError("program and name must be strings")
    address = AccAddress.from_bech32(text) if text else _empty_address()
    return address, name


# -- legacy querier --------------------------------------------------------


def make_querier(keeper: Keeper) -> Callable[..., bytes]:
    """Return a querier answering legacy path queries with indented JSON."""

    def querier(ctx: Context, path: Sequence[str], data: bytes | str = b"") -> bytes:
        route = path[0] if path else ""
        if route == QUERY_PARAMS:
            return _indent(_params_json(keeper.get_params(ctx)))
        if route == QUERY_THOUGHT:
            program, name = _parse_thought_params(data)
            thought = keeper.get_thought(ctx, program, name)
            if thought is None:
                raise ThoughtNotExistError()
            return _indent(_thought_json(thought))
        if route == QUERY_THOUGHT_STATS:
            program, name = _parse_thought_params(data)
            stats = keeper.get_thought_stats(ctx, program, name)
            if stats is None:
                raise ThoughtNotExistError()
            return _indent(_stats_json(stats))
        if route == QUERY_THOUGHTS:
            thoughts = [_thought_json(t) for t in keeper.get_all_thoughts(ctx)]
            return _indent(thoughts or None)
        if route == QUERY_THOUGHTS_STATS:
            stats = [_stats_json(s) for s in keeper.get_all_thoughts_stats(ctx)]
            return _indent(stats or None)
        raise UnknownRequestError("unknown dmn query endpoint")

    return querier


# -- query service ---------------------------------------------------------


class QueryServer:
    """Typed query service over a scheduler keeper."""

    def __init__(self, keeper: Keeper, *, hrp: str | None = None) -> None:
        self._keeper = keeper
        self._hrp = hrp

    def params(self, ctx: Context) -> Params:
        return self._keeper.get_params(ctx)

    def _request(self, program: str | None, name: str | None) -> AccAddress:
        if program is None or name is None:
            raise ValueError("empty request")
        if program == "":
            raise ValueError("program address cannot be empty")
        if name == "":
            raise ValueError("thought name cannot be empty")
        return AccAddress.from_bech32(program, self._hrp)

    def thought(self, ctx: Context, program: str | None, name: str | None) -> Thought:
        address = self._request(program, name)
        thought = self._keeper.get_thought(ctx, address, name)
        if thought is None:
            raise LookupError(f"thought with program {program} and name {name} not found")
        return thought

    def thought_stats(self, ctx: Context, program: str | None, name: str | None) -> ThoughtStats:
        address = self._request(program, name)
        stats = self._keeper.get_thought_stats(ctx, address, name)
        if stats is None:
            raise LookupError(f"thought stats with program {program} and name {name} not found")
        return stats

    def thoughts(self, ctx: Context) -> list[Thought]:
        return self._keeper.get_all_thoughts(ctx)

    def thoughts_stats(self, ctx: Context) -> list[ThoughtStats]:
        return self._keeper.get_all_thoughts_stats(ctx)


# -- contract message parsing ----------------------------------------------


def _field_obj(obj: dict[str, Any], key: str) -> dict[str, Any]:
    value = obj.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be a JSON object")
    return value


def _str(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _uint(obj: dict[str, Any], key: str) -> int:
    value = obj.get(key)
    if value is None:
        return 0
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= _MAX_UINT64:
        raise ValueError(f"{key} must be an unsigned 64-bit integer")
    return value


def _coin(obj: dict[str, Any], key: str) -> Coin:
    sub = _field_obj(obj, key)
    amount = sub.get("amount")
    if amount is None:
        value = 0
    elif isinstance(amount, str):
        try:
            value = int(amount)
        except ValueError:
            raise ValueError(f"invalid coin amount: {amount!r}") from None
    else:
        raise ValueError("coin amount must be a string")
    return Coin(_str(sub, "denom"), value)


def _create(obj: dict[str, Any]) -> MsgCreateThought:
    trigger = _field_obj(obj, "trigger")
    load = _field_obj(obj, "load")
    return MsgCreateThought(
        program=_str(obj, "program"),
        trigger=Trigger(_uint(trigger, "period"), _uint(trigger, "block")),
        load=Load(_str(load, "input"), _coin(load, "gas_price")),
        name=_str(obj, "name"),
        particle=_str(obj, "particle"),
    )


def _forget(obj: dict[str, Any]) -> MsgForgetThought:
    return MsgForgetThought(program=_str(obj, "program"), name=_str(obj, "name"))


def _input(obj: dict[str, Any]) -> MsgChangeThoughtInput:
    return MsgChangeThoughtInput(
        program=_str(obj, "program"), name=_str(obj, "name"), input=_str(obj, "input")
    )


def _period(obj: dict[str, Any]) -> MsgChangeThoughtPeriod:
    return MsgChangeThoughtPeriod(
        program=_str(obj, "program"), name=_str(obj, "name"), period=_uint(obj, "period")
    )


def _block(obj: dict[str, Any]) -> MsgChangeThoughtBlock:
    return MsgChangeThoughtBlock(
        program=_str(obj, "program"), name=_str(obj, "name"), block=_uint(obj, "block")
    )


def _gas_price(obj: dict[str, Any]) -> MsgChangeThoughtGasPrice:
    return MsgChangeThoughtGasPrice(
        program=_str(obj, "program"), name=_str(obj, "name"), gas_price=_coin(obj, "gas_price")
    )


def _particle(obj: dict[str, Any]) -> MsgChangeThoughtParticle:
    return MsgChangeThoughtParticle(
        program=_str(obj, "program"), name=_str(obj, "name"), particle=_str(obj, "particle")
    )


def _name(obj: dict[str, Any]) -> MsgChangeThoughtName:
    return MsgChangeThoughtName(
        program=_str(obj, "program"), name=_str(obj, "name"), new_name=_str(obj, "new_name")
    )


# Checked in this order; the first present variant wins.
_VARIANTS: tuple[tuple[str, Callable[[dict[str, Any]], Any], bool], ...] = (
    ("create_thought", _create, True),
    ("forget_thought", _forget, False),
    ("change_thought_input", _input, False),
    ("change_thought_period", _period, False),
    ("change_thought_block", _block, False),
    ("change_thought_gas_price", _gas_price, True),
    ("change_thought_particle", _particle, False),
    ("change_thought_name", _name, False),
)


class WasmMsgParser:
    """Turns custom contract messages into validated scheduler messages."""

    def __init__(self, fee_denom: str) -> None:
        self._fee_denom = fee_denom

    def parse_custom(self, contract_addr: AccAddress, data: bytes | str) -> list[Any]:
        try:
            raw = json.loads(data)
            if raw is None:
                raw = {}
            if not isinstance(raw, dict):
                raise ValueError("message must be a JSON object")
            parsed = [
                (key, build(_field_obj(raw, key)), needs_fee)
                for key, build, needs_fee in _VARIANTS
                if raw.get(key) is not None
            ]
        except ValueError as err:
            raise ValueError(f"failed to parse link custom msg: {err}") from None

        if not parsed:
            raise _InvalidMsgError("Unknown variant of DMN")
        _, msg, needs_fee = parsed[0]
        if needs_fee:
            msg.validate_basic(self._fee_denom)
        else:
            msg.validate_basic()
        return [msg]


# -- contract queries ------------------------------------------------------


class WasmQuerier:
    """Answers custom scheduler queries coming from contracts."""

    def __init__(self, keeper: Keeper) -> None:
        self._keeper = keeper

    @staticmethod
    def _params(query: dict[str, Any], key: str) -> tuple[AccAddress, str]:
        params = query[key]
        if not isinstance(params, dict):
            raise ValueError(f"{key} must be a JSON object")
        return _parse_address_or_empty(_str(params, "program")), _str(params, "name")

    def query_custom(self, ctx: Context, data: bytes | str) -> bytes:
        query = json.loads(data)
        if query is None:
            query = {}
        if not isinstance(query, dict):
            raise ValueError("dmn query must be a JSON object")

        if query.get("thought") is not None:
            program, name = self._params(query, "thought")
            thought = self._keeper.get_thought(ctx, program, name)
            if thought is None:
                raise InvalidRequestError()
            return _compact(
                {
                    "program": thought.program,
                    "trigger": {"period": thought.trigger.period, "block": thought.trigger.block},
                    "load": {
                        "input": thought.load.input,
                        "gas_price": _coin_json(thought.load.gas_price),
                    },
                    "name": thought.name,
                    "particle": thought.particle,
                }
            )
        if query.get("thought_stats") is not None:
            program, name = self._params(query, "thought_stats")
            stats = self._keeper.get_thought_stats(ctx, program, name)
            if stats is None:
                raise InvalidRequestError()
            return _compact(
                {
                    "program": stats.program,
                    "name": stats.name,
                    "calls": stats.calls,
                    "fees": stats.fees,
                    "gas": stats.gas,
                    "last_block": stats.last_block,
                }
            )
        if query.get("lowest_fee") is not None:
            return _compact({"fee": _coin_json(self._keeper.get_lowest_fee(ctx))})
        raise UnsupportedRequestError("unknown DMN variant")