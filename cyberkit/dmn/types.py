"""Scheduler module types: thoughts, stats, params, keys, events and errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import cmp_to_key
from collections.abc import Iterable

from ..chain import AccAddress, ChainError, Coin

MODULE_NAME = "dmn"
STORE_KEY = MODULE_NAME
ROUTER_KEY = MODULE_NAME
QUERIER_ROUTE = MODULE_NAME
DEFAULT_PARAMSPACE = MODULE_NAME

THOUGHT_KEY = b"\x00"
THOUGHT_STATS_KEY = b"\x01"

QUERY_PARAMS = "params"
QUERY_THOUGHT = "thought"
QUERY_THOUGHT_STATS = "thought_stats"
QUERY_THOUGHTS = "thoughts"
QUERY_THOUGHTS_STATS = "thoughts_stats"

EVENT_TYPE_CREATE_THOUGHT = "create_thought"
EVENT_TYPE_FORGET_THOUGHT = "forget_thought"
EVENT_TYPE_CHANGE_THOUGHT_PARTICLE = "change_thought_particle"
EVENT_TYPE_CHANGE_THOUGHT_NAME = "change_thought_name"
EVENT_TYPE_CHANGE_THOUGHT_INPUT = "change_thought_input"
EVENT_TYPE_CHANGE_THOUGHT_GAS_PRICE = "change_thought_gas_price"
EVENT_TYPE_CHANGE_THOUGHT_PERIOD = "change_thought_period"
EVENT_TYPE_CHANGE_THOUGHT_BLOCK = "change_thought_block"

ATTRIBUTE_KEY_THOUGHT_PROGRAM = "program"
ATTRIBUTE_KEY_THOUGHT_TRIGGER = "trigger"
ATTRIBUTE_KEY_THOUGHT_LOAD = "load"
ATTRIBUTE_KEY_THOUGHT_NAME = "name"
ATTRIBUTE_KEY_THOUGHT_PARTICLE = "particle"
ATTRIBUTE_KEY_THOUGHT_INPUT = "input"
ATTRIBUTE_KEY_THOUGHT_GAS_PRICE = "gas_price"
ATTRIBUTE_KEY_THOUGHT_PERIOD = "period"
ATTRIBUTE_KEY_THOUGHT_BLOCK = "block"
ATTRIBUTE_VALUE_CATEGORY = MODULE_NAME

DEFAULT_MAX_SLOTS = 4
DEFAULT_MAX_GAS = 2000000
DEFAULT_FEE_TTL = 50

KEY_MAX_SLOTS = b"MaxSlots"
KEY_MAX_GAS = b"MaxGas"
KEY_FEE_TTL = b"FeeTTL"


class DmnError(ChainError):
    """Base error of the scheduler module."""

    codespace = MODULE_NAME


class InvalidAddressError(DmnError):
    code = 2
    message = "invalid address"


class ExceededMaxThoughtsError(DmnError):
    code = 3
    message = "exceeded max thoughts"


class BadCallDataError(DmnError):
    code = 4
    message = "bad call data"


class BadGasPriceError(DmnError):
    code = 5
    message = "bad gas price"


class BadTriggerError(DmnError):
    code = 6
    message = "bad trigger"


class BadNameError(DmnError):
    code = 7
    message = "bad name"


class ThoughtNotExistError(DmnError):
    code = 8
    message = "thought does not exist"


class ConvertTriggerError(DmnError):
    code = 9
    message = "cannot convert trigger"


@dataclass(frozen=True)
class Trigger:
    """When a thought runs: every ``period`` blocks, or once at ``block``."""

    period: int = 0
    block: int = 0


@dataclass(frozen=True)
class Load:
    """Call data of a thought and the gas price it pays."""

    input: str
    gas_price: Coin


@dataclass(frozen=True)
class Thought:
    program: str
    trigger: Trigger
    load: Load
    name: str
    particle: str


@dataclass(frozen=True)
class ThoughtStats:
    program: str
    name: str
    calls: int = 0
    fees: int = 0
    gas: int = 0
    last_block: int = 0


def _by_gas_price_desc(a: Thought, b: Thought) -> int:
    if b.load.gas_price.is_lt(a.load.gas_price):
        return -1
    if a.load.gas_price.is_lt(b.load.gas_price):
        return 1
    return 0


def sort_thoughts(thoughts: Iterable[Thought]) -> list[Thought]:
    """Return the thoughts ordered from the highest gas price to the lowest."""
    return sorted(thoughts, key=cmp_to_key(_by_gas_price_desc))


def _require_uint(value: object) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"invalid parameter type: {type(value).__name__}")
    return value


def _validate_max_slots(value: object) -> None:
    v = _require_uint(value)
    if v < 4:
        raise ValueError(f"max slots must be equal or more than 4: {v}")


def _validate_max_gas(value: object) -> None:
    v = _require_uint(value)
    if v < 2000000:
        raise ValueError(f"max gas must be equal or more than 2000000: {v}")


def _validate_fee_ttl(value: object) -> None:
    v = _require_uint(value)
    if v == 0:
        raise ValueError(f"fee ttl must be positive: {v}")


@dataclass
class Params:
    """Scheduler parameters."""

    max_slots: int = DEFAULT_MAX_SLOTS
    max_gas: int = DEFAULT_MAX_GAS
    fee_ttl: int = DEFAULT_FEE_TTL

    def validate(self) -> None:
        _validate_max_slots(self.max_slots)
        _validate_max_gas(self.max_gas)
        _validate_fee_ttl(self.fee_ttl)


def default_params() -> Params:
    return Params()


@dataclass
class GenesisState:
    params: Params = field(default_factory=default_params)


def default_genesis_state() -> GenesisState:
    return GenesisState(default_params())


def validate_genesis(data: GenesisState) -> None:
    """Check that ``data`` is a genesis state; its params carry no further constraints."""
    if not isinstance(data, GenesisState):
        raise TypeError(f"invalid genesis state type: {type(data).__name__}")
    if not isinstance(data.params, Params):
        raise TypeError(f"invalid genesis params type: {type(data.params).__name__}")


def thought_key(program: AccAddress, name: str) -> bytes:
    return THOUGHT_KEY + bytes(program) + name.encode()


def thought_stats_key(program: AccAddress, name: str) -> bytes:
    return THOUGHT_STATS_KEY + bytes(program) + name.encode()


@dataclass(frozen=True)
class QueryThoughtParams:
    program: AccAddress
    name: str