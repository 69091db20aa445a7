"""Core chain primitives: stores, gas, context, coins, addresses and decimals."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_EVEN, Context as _DecimalContext, Decimal
from typing import Any, Protocol

MAX_UINT64 = 2**64 - 1
DEC_PRECISION = 18

_DEC_CONTEXT = _DecimalContext(prec=120, rounding=ROUND_HALF_EVEN)
_DEC_QUANTUM = Decimal(1).scaleb(-DEC_PRECISION)

_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_GENERATOR = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)
_BECH32_MAX_LENGTH = 1023
_MAX_ADDRESS_LENGTH = 255


class ChainError(Exception):
    """Base error carrying a codespace and a numeric code."""

    codespace = "sdk"
    code = 1
    message = "internal"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message if message is not None else self.message)


class OutOfGasError(ChainError):
    """Raised when a gas meter runs past its limit."""

    code = 11
    message = "out of gas"

    def __init__(self, descriptor: str) -> None:
        self.descriptor = descriptor
        super().__init__(f"out of gas in location: {descriptor}")


class KVStore:
    """An ordered key-value store with byte keys."""

    def __init__(self) -> None:
        self._data: dict[bytes, Any] = {}

    def get(self, key: bytes) -> Any:
        return self._data.get(bytes(key))

    def set(self, key: bytes, value: Any) -> None:
        if value is None:
            raise ValueError("value is nil")
        self._data[bytes(key)] = value

    def has(self, key: bytes) -> bool:
        return self.get(key) is not None

    def delete(self, key: bytes) -> None:
        self._data.pop(bytes(key), None)

    def iterate_prefix(self, prefix: bytes) -> Iterator[tuple[bytes, Any]]:
        """Yield (key, value) pairs whose key starts with prefix, in key order."""
        items = sorted((k, v) for k, v in self._data.items() if k.startswith(prefix))
        yield from items


class _CacheKVStore(KVStore):
    """A store layered over a parent; changes reach the parent only on write()."""

    def __init__(self, parent: KVStore) -> None:
        super().__init__()
        self._parent = parent

    def get(self, key: bytes) -> Any:
        key = bytes(key)
        if key in self._data:
            return self._data[key]
        return self._parent.get(key)

    def set(self, key: bytes, value: Any) -> None:
        if value is None:
            raise ValueError("value is nil")
        self._data[bytes(key)] = value

    def delete(self, key: bytes) -> None:
        self._data[bytes(key)] = None

    def iterate_prefix(self, prefix: bytes) -> Iterator[tuple[bytes, Any]]:
        merged = dict(self._parent.iterate_prefix(prefix))
        for key, value in self._data.items():
            if not key.startswith(prefix):
                continue
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        yield from sorted(merged.items())

    def write(self) -> None:
        for key, value in self._data.items():
            if value is None:
                self._parent.delete(key)
            else:
                self._parent.set(key, value)
        self._data.clear()


@dataclass
class GasMeter:
    """Counts gas consumed against a limit."""

    limit: int = MAX_UINT64
    consumed: int = 0

    def consume_gas(self, amount: int, descriptor: str) -> None:
        self.consumed += amount
        if self.consumed > self.limit:
            raise OutOfGasError(descriptor)

    def gas_consumed_to_limit(self) -> int:
        return min(self.consumed, self.limit)


@dataclass(frozen=True)
class Event:
    """A typed event with ordered key/value attributes."""

    type: str
    attributes: tuple[tuple[str, str], ...] = ()


def _default_logger() -> logging.Logger:
    return logging.getLogger("cyberkit")


@dataclass
class Context:
    """Execution context of one block: height, stores, gas and events."""

    block_height: int = 0
    check_tx: bool = False
    gas_meter: GasMeter = field(default_factory=GasMeter)
    stores: dict[str, KVStore] = field(default_factory=dict)
    transient_stores: dict[str, KVStore] = field(default_factory=dict)
    events: list[Event] = field(default_factory=list)
    logger: logging.Logger = field(default_factory=_default_logger, repr=False)
    _parent: Context | None = field(default=None, repr=False, compare=False)

    def kv_store(self, name: str) -> KVStore:
        store = self.stores.get(name)
        if store is None:
            store = _CacheKVStore(self._parent.kv_store(name)) if self._parent else KVStore()
            self.stores[name] = store
        return store

    def transient_store(self, name: str) -> KVStore:
        store = self.transient_stores.get(name)
        if store is None:
            store = (
                _CacheKVStore(self._parent.transient_store(name))
                if self._parent
                else KVStore()
            )
            self.transient_stores[name] = store
        return store

    def with_gas_meter(self, meter: GasMeter) -> Context:
        return replace(self, gas_meter=meter)

    def with_block_height(self, height: int) -> Context:
        return replace(self, block_height=height)

    def cache_context(self) -> tuple[Context, Callable[[], None]]:
        """Return a branched context and a function that commits it into this one."""
        cached = replace(self, stores={}, transient_stores={}, _parent=self)

        def write() -> None:
            for store in (*cached.stores.values(), *cached.transient_stores.values()):
                if isinstance(store, _CacheKVStore):
                    store.write()

        return cached, write

    def emit_events(self, events: Iterable[Event]) -> None:
        self.events.extend(events)


@dataclass(frozen=True)
class Coin:
    """An amount of a single denomination."""

    denom: str
    amount: int

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"negative coin amount: {self.amount}")

    def is_lt(self, other: Coin) -> bool:
        if self.denom != other.denom:
            raise ValueError(f"invalid coin denominations; {self}, {other}")
        return self.amount < other.amount

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


def _bech32_polymod(values: Iterable[int]) -> int:
    chk = 1
    for value in values:
        top = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ value
        for i, gen in enumerate(_BECH32_GENERATOR):
            if (top >> i) & 1:
                chk ^= gen
    return chk


def _bech32_hrp_expand(hrp: str) -> list[int]:
    return [ord(c) >> 5 for c in hrp] + [0] + [ord(c) & 31 for c in hrp]


def _convert_bits(data: Iterable[int], from_bits: int, to_bits: int, pad: bool) -> list[int]:
    acc = 0
    bits = 0
    result = []
    maxv = (1 << to_bits) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise ValueError(f"invalid data range: {value}")
        acc = (acc << from_bits) | value
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            result.append((acc >> bits) & maxv)
    if pad:
        if bits:
            result.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & maxv):
        raise ValueError("invalid padding in bech32 data")
    return result


def bech32_encode(hrp: str, data: bytes) -> str:
    """Encode bytes as a bech32 string with the given human-readable part."""
    hrp = hrp.lower()
    five_bit = _convert_bits(data, 8, 5, True)
    polymod = _bech32_polymod(_bech32_hrp_expand(hrp) + five_bit + [0] * 6) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_BECH32_CHARSET[d] for d in five_bit + checksum)


def bech32_decode(text: str) -> tuple[str, bytes]:
    """Decode a bech32 string into its human-readable part and bytes."""
    if any(ord(c) < 33 or ord(c) > 126 for c in text):
        raise ValueError("invalid character in bech32 string")
    if text.lower() != text and text.upper() != text:
        raise ValueError("mixed case in bech32 string")
    text = text.lower()
    if len(text) > _BECH32_MAX_LENGTH:
        raise ValueError("bech32 string is too long")
    pos = text.rfind("1")
    if pos < 1 or pos + 7 > len(text):
        raise ValueError("invalid separator position in bech32 string")
    hrp = text[:pos]
    try:
        values = [_BECH32_CHARSET.index(c) for c in text[pos + 1 :]]
    except ValueError:
        raise ValueError("invalid data character in bech32 string") from None
    if _bech32_polymod(_bech32_hrp_expand(hrp) + values) != 1:
        raise ValueError("invalid bech32 checksum")
    return hrp, bytes(_convert_bits(values[:-6], 5, 8, False))


@dataclass(frozen=True)
class AccAddress:
    """An account address: raw bytes rendered in bech32 with a prefix."""

    data: bytes
    hrp: str = field(compare=False)

    @classmethod
    def from_bech32(cls, text: str, hrp: str | None = None) -> AccAddress:
        if not text.strip():
            raise ValueError("empty address string is not allowed")
        decoded_hrp, data = bech32_decode(text)
        if hrp is not None and decoded_hrp != hrp:
            raise ValueError(f"invalid Bech32 prefix; expected {hrp}, got {decoded_hrp}")
        if not data:
            raise ValueError("addresses cannot be empty")
        if len(data) > _MAX_ADDRESS_LENGTH:
            raise ValueError(
                f"address max length is {_MAX_ADDRESS_LENGTH}, got {len(data)}"
            )
        return cls(data, decoded_hrp)

    def __bytes__(self) -> bytes:
        return self.data

    def __str__(self) -> str:
        return bech32_encode(self.hrp, self.data) if self.data else ""


CoinsTransferHook = Callable[[Context, "AccAddress | None", "AccAddress | None"], None]


class AccountStakeProvider(Protocol):
    """Source of an account's share of the total volt stake."""

    def get_account_stake_percentage_volt(self, ctx: Context, address: AccAddress) -> float: ...


class EnergyKeeper(Protocol):
    """Source of coins routed to an account."""

    def get_routed_to_energy(self, ctx: Context, delegate: AccAddress) -> Iterable[Coin]: ...


class AccountKeeper(Protocol):
    """Account registry; accounts expose ``address`` and ``account_number``."""

    def iterate_accounts(self, ctx: Context, process: Callable[[Any], bool]) -> None: ...

    def get_account(self, ctx: Context, addr: AccAddress) -> Any: ...

    def get_all_accounts(self, ctx: Context) -> list[Any]: ...

    def get_module_address(self, name: str) -> AccAddress: ...


class BankKeeper(Protocol):
    """Coin transfers with transfer notification."""

    def on_coins_transfer(
        self, ctx: Context, from_addr: AccAddress | None, to_addr: AccAddress | None
    ) -> None: ...

    def send_coins(
        self, ctx: Context, from_addr: AccAddress, to_addr: AccAddress, amt: Iterable[Coin]
    ) -> None: ...


def uint64_to_big_endian(value: int) -> bytes:
    if not 0 <= value <= MAX_UINT64:
        raise ValueError(f"value out of uint64 range: {value}")
    return value.to_bytes(8, "big")


def big_endian_to_uint64(data: bytes | None) -> int:
    """Read a big-endian uint64; empty or missing data reads as zero."""
    if not data:
        return 0
    if len(data) < 8:
        raise ValueError(f"need 8 bytes for uint64, got {len(data)}")
    return int.from_bytes(data[:8], "big")


def dec_with_prec(value: int, prec: int) -> Decimal:
    """Return value * 10**-prec as an 18-decimal number."""
    if not 0 <= prec <= DEC_PRECISION:
        raise ValueError(f"too much precision, maximum {DEC_PRECISION}, provided {prec}")
    return Decimal(value).scaleb(-prec, _DEC_CONTEXT).quantize(_DEC_QUANTUM, context=_DEC_CONTEXT)


def format_dec(value: Decimal | int | str) -> str:
    """Render a decimal with exactly 18 fractional digits."""
    quantized = Decimal(value).quantize(_DEC_QUANTUM, context=_DEC_CONTEXT)
    return f"{quantized:f}"


def round_dec(value: Decimal | int | str) -> int:
    """Round a decimal to an integer, halves going to the even neighbour."""
    return int(Decimal(value).to_integral_value(rounding=ROUND_HALF_EVEN, context=_DEC_CONTEXT))