"""Scheduler transaction messages, their stateless checks and content identifiers."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, fields, is_dataclass
from typing import Any, ClassVar

from ..chain import AccAddress, ChainError, Coin
from .types import (
    ROUTER_KEY,
    BadCallDataError,
    BadGasPriceError,
    BadNameError,
    BadTriggerError,
    InvalidAddressError,
    Load,
    Trigger,
)

TYPE_MSG_CREATE_THOUGHT = "create_thought"
TYPE_MSG_FORGET_THOUGHT = "forget_thought"
TYPE_MSG_CHANGE_THOUGHT_NAME = "change_thought_name"
TYPE_MSG_CHANGE_THOUGHT_PARTICLE = "change_thought_particle"
TYPE_MSG_CHANGE_THOUGHT_INPUT = "change_thought_input"
TYPE_MSG_CHANGE_THOUGHT_GAS_PRICE = "change_thought_gas_price"
TYPE_MSG_CHANGE_THOUGHT_PERIOD = "change_thought_period"
TYPE_MSG_CHANGE_THOUGHT_BLOCK = "change_thought_block"

MAX_NAME_LENGTH = 32
MAX_INPUT_LENGTH = 2048

_SHA2_256 = 0x12
_SHA2_256_LENGTH = 32
_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


class InvalidParticleError(ChainError):
    """Raised when a particle is not a valid content identifier."""

    codespace = "graph"
    code = 2
    message = "invalid particle"


class CidVersionError(ChainError):
    """Raised when a particle is not a version 0 content identifier."""

    codespace = "graph"
    code = 3
    message = "unsupported cid version"


@dataclass(frozen=True)
class Cid:
    """A decoded content identifier."""

    version: int
    codec: int
    multihash: bytes


# -- multibase -------------------------------------------------------------


def _b58decode(text: str) -> bytes:
    number = 0
    for char in text:
        index = _B58_ALPHABET.find(char)
        if index < 0:
            raise ValueError(f"invalid base58 character: {char!r}")
        number = number * 58 + index
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    zeros = len(text) - len(text.lstrip("1"))
    return b"\x00" * zeros + body


def _b36decode(text: str) -> bytes:
    if not text:
        return b""
    number = int(text, 36)
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    zeros = len(text) - len(text.lstrip("0"))
    return b"\x00" * zeros + body


def _pad(text: str, block: int) -> str:
    return text + "=" * (-len(text) % block)


def _require_case(text: str, lower: bool) -> str:
    if (lower and text != text.lower()) or (not lower and text != text.upper()):
        raise ValueError("wrong letter case for multibase encoding")
    return text


def _b32(text: str, lower: bool, padded: bool, hexalpha: bool = False) -> bytes:
    _require_case(text, lower)
    if not padded and "=" in text:
        raise ValueError("unexpected padding")
    upper = _pad(text.upper(), 8)
    return base64.b32hexdecode(upper) if hexalpha else base64.b32decode(upper)


def _b64(text: str, url: bool, padded: bool) -> bytes:
    if not padded and "=" in text:
        raise ValueError("unexpected padding")
    value = _pad(text, 4)
    if url:
        if any(c in value for c in "+/"):
            raise ValueError("invalid base64url character")
        value = value.replace("-", "+").replace("_", "/")
    return base64.b64decode(value, validate=True)


_MULTIBASE = {
    "z": _b58decode,
    "f": lambda t: bytes.fromhex(_require_case(t, True)),
    "F": lambda t: bytes.fromhex(_require_case(t, False)),
    "b": lambda t: _b32(t, True, False),
    "B": lambda t: _b32(t, False, False),
    "c": lambda t: _b32(t, True, True),
    "C": lambda t: _b32(t, False, True),
    "v": lambda t: _b32(t, True, False, hexalpha=True),
    "V": lambda t: _b32(t, False, False, hexalpha=True),
    "m": lambda t: _b64(t, False, False),
    "M": lambda t: _b64(t, False, True),
    "u": lambda t: _b64(t, True, False),
    "U": lambda t: _b64(t, True, True),
    "k": lambda t: _b36decode(_require_case(t, True)),
    "K": lambda t: _b36decode(_require_case(t, False)),
}


def _multibase_decode(text: str) -> bytes:
    decoder = _MULTIBASE.get(text[0])
    if decoder is None:
        raise ValueError(f"unsupported multibase prefix: {text[0]!r}")
    try:
        return decoder(text[1:])
    except (binascii.Error, ValueError) as err:
        raise ValueError(f"invalid multibase data: {err}") from None


# -- binary layout ---------------------------------------------------------


def _read_uvarint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    for shift in range(0, 63, 7):
        if pos >= len(data):
            raise ValueError("varint truncated")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
    raise ValueError("varint too long")


def _multihash_length(data: bytes, pos: int) -> int:
    """Return the end offset of the multihash starting at pos."""
    _, pos = _read_uvarint(data, pos)
    length, pos = _read_uvarint(data, pos)
    if pos + length > len(data):
        raise ValueError("multihash digest too short")
    return pos + length


def _cast(data: bytes) -> Cid:
    if len(data) == 34 and data[0] == _SHA2_256 and data[1] == _SHA2_256_LENGTH:
        return Cid(0, 0x70, data)
    version, pos = _read_uvarint(data, 0)
    if version != 1:
        raise ValueError("expected 1 as the cid version number")
    codec, pos = _read_uvarint(data, pos)
    end = _multihash_length(data, pos)
    if end != len(data):
        raise ValueError("trailing bytes in data buffer passed to cid Cast")
    return Cid(1, codec, data[pos:])


def decode_cid(text: str) -> Cid:
    """Decode a content identifier from its string form; raise ValueError if invalid."""
    if len(text) < 2:
        raise ValueError("cid too short")
    if len(text) == 46 and text.startswith("Qm"):
        multihash = _b58decode(text)
        if _multihash_length(multihash, 0) != len(multihash):
            raise ValueError("inconsistent multihash length")
        if multihash[0] != _SHA2_256 or multihash[1] != _SHA2_256_LENGTH:
            raise ValueError("version 0 cid must use a 32-byte sha2-256 hash")
        return Cid(0, 0x70, multihash)
    return _cast(_multibase_decode(text))


# -- checks ----------------------------------------------------------------


def _check_program(program: str) -> AccAddress:
    try:
        return AccAddress.from_bech32(program)
    except ValueError as err:
        raise InvalidAddressError(f"Invalid program address ({err}): invalid address") from None


def _check_name(name: str) -> None:
    if not name or len(name.encode()) > MAX_NAME_LENGTH:
        raise BadNameError()


def _check_input(value: str) -> None:
    if not value or len(value.encode()) > MAX_INPUT_LENGTH:
        raise BadCallDataError()


def _check_gas_price(gas_price: Coin, fee_denom: str) -> None:
    if gas_price.denom != fee_denom or gas_price.amount <= 0:
        raise BadGasPriceError()


def _check_particle(particle: str) -> None:
    try:
        cid = decode_cid(particle)
    except ValueError:
        raise InvalidParticleError() from None
    if cid.version != 0:
        raise CidVersionError()


def _to_json(value: Any) -> Any:
    if is_dataclass(value):
        return {f.name: _to_json(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


def _sorted_json(obj: Any) -> bytes:
    text = json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    for char, escaped in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(char, escaped)
    return text.encode()


def _sign_bytes(msg: Any) -> bytes:
    """Canonical JSON with sorted keys, as signed by the program."""
    return _sorted_json(_to_json(msg))


def _signers(program: str) -> list[AccAddress]:
    return [AccAddress.from_bech32(program)]


@dataclass(frozen=True)
class MsgCreateThought:
    program: str
    trigger: Trigger
    load: Load
    name: str
    particle: str

    route: ClassVar[str] = ROUTER_KEY
    msg_type: ClassVar[str] = TYPE_MSG_CREATE_THOUGHT

    def validate_basic(self, fee_denom: str) -> None:
        _check_program(self.program)
        _check_input(self.load.input)
        _check_gas_price(self.load.gas_price, fee_denom)
        if self.trigger.period == 0 and self.trigger.block == 0:
            raise BadTriggerError()
        if self.trigger.period > 0 and self.trigger.block > 0:
            raise BadTriggerError()
        _check_name(self.name)
        _check_particle(self.particle)

    def get_sign_bytes(self) -> bytes:
        return _sign_bytes(self)

    def get_signers(self) -> list[AccAddress]:
        return _signers(self.program)


@dataclass(frozen=True)
class MsgForgetThought:
    program: str
    name: str

    route: ClassVar[str] = ROUTER_KEY
    msg_type: ClassVar[str] = TYPE_MSG_FORGET_THOUGHT

    def validate_basic(self) -> None:
        _check_program(self.program)
        _check_name(self.name)

    def get_sign_bytes(self) -> bytes:
        return _sign_bytes(self)

    def get_signers(self) -> list[AccAddress]:
        return _signers(self.program)


@dataclass(frozen=True)
class MsgChangeThoughtName:
    program: str
    name: str
    new_name: str

    route: ClassVar[str] = ROUTER_KEY
    msg_type: ClassVar[str] = TYPE_MSG_CHANGE_THOUGHT_NAME

    def validate_basic(self) -> None:
        _check_program(self.program)
        _check_name(self.name)
        _check_name(self.new_name)

    def get_sign_bytes(self) -> bytes:
        return _sign_bytes(self)

    def get_signers(self) -> list[AccAddress]:
        return _signers(self.program)


@dataclass(frozen=True)
class MsgChangeThoughtParticle:
    program: str
    name: str
    particle: str

    route: ClassVar[str] = ROUTER_KEY
    msg_type: ClassVar[str] = TYPE_MSG_CHANGE_THOUGHT_PARTICLE

    def validate_basic(self) -> None:
        _check_program(self.program)
        _check_particle(self.particle)
        _check_name(self.name)

    def get_sign_bytes(self) -> bytes:
        return _sign_bytes(self)

    def get_signers(self) -> list[AccAddress]:
        return _signers(self.program)


@dataclass(frozen=True)
class MsgChangeThoughtInput:
    program: str
    name: str
    input: str

    route: ClassVar[str] = ROUTER_KEY
    msg_type: ClassVar[str] = TYPE_MSG_CHANGE_THOUGHT_INPUT

    def validate_basic(self) -> None:
        _check_program(self.program)
        _check_name(self.name)
        _check_input(self.input)

    def get_sign_bytes(self) -> bytes:
        return _sign_bytes(self)

    def get_signers(self) -> list[AccAddress]:
        return _signers(self.program)


@dataclass(frozen=True)
class MsgChangeThoughtGasPrice:
    program: str
    name: str
    gas_price: Coin

    route: ClassVar[str] = ROUTER_KEY
    msg_type: ClassVar[str] = TYPE_MSG_CHANGE_THOUGHT_GAS_PRICE

    def validate_basic(self, fee_denom: str) -> None:
        _check_program(self.program)
        _check_name(self.name)
        _check_gas_price(self.gas_price, fee_denom)

    def get_sign_bytes(self) -> bytes:
        return _sign_bytes(self)

    def get_signers(self) -> list[AccAddress]:
        return _signers(self.program)


@dataclass(frozen=True)
class MsgChangeThoughtPeriod:
    program: str
    name: str
    period: int

    route: ClassVar[str] = ROUTER_KEY
    msg_type: ClassVar[str] = TYPE_MSG_CHANGE_THOUGHT_PERIOD

    def validate_basic(self) -> None:
        _check_program(self.program)
        _check_name(self.name)
        if self.period == 0:
            raise BadTriggerError()

    def get_sign_bytes(self) -> bytes:
        return _sign_bytes(self)

    def get_signers(self) -> list[AccAddress]:
        return _signers(self.program)


@dataclass(frozen=True)
class MsgChangeThoughtBlock:
    program: str
    name: str
    block: int

    route: ClassVar[str] = ROUTER_KEY
    msg_type: ClassVar[str] = TYPE_MSG_CHANGE_THOUGHT_BLOCK

    def validate_basic(self) -> None:
        _check_program(self.program)
        _check_name(self.name)
        if self.block == 0:
            raise BadTriggerError()

    def get_sign_bytes(self) -> bytes:
        return _sign_bytes(self)

    def get_signers(self) -> list[AccAddress]:
        return _signers(self.program)