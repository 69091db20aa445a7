"""Bandwidth module types: neuron bandwidth, params, genesis, keys and errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ..chain import AccAddress, ChainError, dec_with_prec, format_dec, uint64_to_big_endian

MODULE_NAME = "bandwidth"
STORE_KEY = MODULE_NAME
QUERIER_ROUTE = MODULE_NAME
TSTORE_KEY = "transient_bandwidth"
DEFAULT_PARAMSPACE = MODULE_NAME

GLOBAL_STORE_KEY_PREFIX = b"\x00"
ACCOUNT_STORE_KEY_PREFIX = b"\x01"
BLOCK_STORE_KEY_PREFIX = b"\x02"

LAST_BANDWIDTH_PRICE = GLOBAL_STORE_KEY_PREFIX + b"lastBandwidthPrice"
TOTAL_BANDWIDTH = GLOBAL_STORE_KEY_PREFIX + b"totalBandwidth"
BLOCK_BANDWIDTH = GLOBAL_STORE_KEY_PREFIX + b"blockBandwidth"

QUERY_PARAMETERS = "params"
QUERY_LOAD = "load"
QUERY_PRICE = "price"
QUERY_ACCOUNT = "account"
QUERY_DESIRABLE_BANDWIDTH = "desirable_bandwidth"

_U64_MASK = 2**64 - 1


class BandwidthError(ChainError):
    """Base error of the bandwidth module."""

    codespace = MODULE_NAME


class NotEnoughBandwidthError(BandwidthError):
    code = 2
    message = "not enough personal bandwidth"


class ExceededMaxBlockBandwidthError(BandwidthError):
    code = 3
    message = "exceeded max block bandwidth"


@dataclass
class NeuronBandwidth:
    """Personal bandwidth of one neuron."""

    neuron: str
    remained_value: int = 0
    last_updated_block: int = 0
    max_value: int = 0

    def update_max(self, new_value: int, current_block: int, recovery_period: int) -> None:
        self.recover(current_block, recovery_period)
        self.max_value = new_value
        self.last_updated_block = current_block
        if self.remained_value > self.max_value:
            self.remained_value = self.max_value

    def recover(self, current_block: int, recovery_period: int) -> None:
        """Restore bandwidth linearly over the recovery period, capped at the maximum."""
        if recovery_period == 0:
            raise ValueError("recovery period must be positive")
        recover_per_block = float(self.max_value) / float(recovery_period)
        full_recovery_amount = float((self.max_value - self.remained_value) & _U64_MASK)
        elapsed = (current_block - self.last_updated_block) & _U64_MASK
        recover_amount = float(elapsed) * recover_per_block
        if recover_amount > full_recovery_amount:
            recover_amount = full_recovery_amount
        self.remained_value = (self.remained_value + int(recover_amount)) & _U64_MASK
        self.last_updated_block = current_block

    def consume(self, amount: int) -> None:
        if amount > self.remained_value:
            raise NotEnoughBandwidthError()
        self.remained_value -= amount

    def apply_charge(self, amount: int) -> None:
        self.remained_value += amount

    def has_enough_remained(self, amount: int) -> bool:
        return self.remained_value >= amount


def new_genesis_neuron_bandwidth(address: AccAddress, bandwidth: int) -> NeuronBandwidth:
    return NeuronBandwidth(
        neuron=str(address),
        remained_value=bandwidth,
        max_value=bandwidth,
        last_updated_block=0,
    )


def _require_uint(value: object) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"invalid parameter type: {type(value).__name__}")
    return value


def _require_dec(value: object) -> Decimal:
    if not isinstance(value, Decimal):
        raise TypeError(f"invalid parameter type: {type(value).__name__}")
    return value


def _validate_recovery_period(value: object) -> None:
    v = _require_uint(value)
    if v <= 50:
        raise ValueError(f"recovery period is too low: {v}")


def _validate_adjust_price_period(value: object) -> None:
    v = _require_uint(value)
    if v < 5:
        raise ValueError(f"adjust price period is too low: {v}")


def _validate_base_price(value: object) -> None:
    v = _require_dec(value)
    if v <= 0:
        raise ValueError(f"base price is not positive: {format_dec(v)}")
    if v > 1:
        raise ValueError(f"base price is more than one: {format_dec(v)}")


def _validate_base_load(value: object) -> None:
    v = _require_dec(value)
    if v <= 0:
        raise ValueError(f"base load is not positive: {format_dec(v)}")
    if v > 1:
        raise ValueError(f"base load is more than one: {format_dec(v)}")
    if v < dec_with_prec(1, 1):
        raise ValueError(f"base price is less than one tenth: {format_dec(v)}")


def _validate_max_block_bandwidth(value: object) -> None:
    v = _require_uint(value)
    if v <= 1000:
        raise ValueError(f"max block bandwidth is too low: {v}")


@dataclass
class Params:
    """Bandwidth module parameters."""

    recovery_period: int = 100
    adjust_price_period: int = 5
    base_price: Decimal = field(default_factory=lambda: dec_with_prec(25, 2))
    base_load: Decimal = field(default_factory=lambda: dec_with_prec(10, 2))
    max_block_bandwidth: int = 10000

    def validate(self) -> None:
        _validate_recovery_period(self.recovery_period)
        _validate_adjust_price_period(self.adjust_price_period)
        _validate_base_price(self.base_price)
        _validate_base_load(self.base_load)
        _validate_max_block_bandwidth(self.max_block_bandwidth)


def default_params() -> Params:
    return Params()


@dataclass
class GenesisState:
    params: Params = field(default_factory=default_params)


def default_genesis_state() -> GenesisState:
    return GenesisState(default_params())


def validate_genesis(data: GenesisState) -> None:
    data.params.validate()


def account_store_key(addr: str) -> bytes:
    return ACCOUNT_STORE_KEY_PREFIX + addr.encode()


def block_store_key(block_number: int) -> bytes:
    return BLOCK_STORE_KEY_PREFIX + uint64_to_big_endian(block_number)


@dataclass(frozen=True)
class QueryAccountBandwidthParams:
    address: AccAddress