"""Typed contract-call values and their canonical wire encoding.

A call's arguments are a closed set of tagged variants. Each variant encodes
to a two-element ``[tag, payload]`` list and is packed with msgpack using
recursively sorted maps, so the same logical call always yields the same
bytes no matter which party builds it. ``decode_value`` is total: anything
that is not a well-formed variant raises ``DecodeError``.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Union

import msgpack
from algosdk import encoding

from gauntlet.errors import DecodeError

U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1
I128_MIN = -(2**127)
I128_MAX = 2**127 - 1
_LO_MASK = 2**64 - 1


def _canonical(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _canonical(obj[k]) for k in sorted(obj)}
    if isinstance(obj, (list, tuple)):
        return [_canonical(x) for x in obj]
    return obj


def canonical_bytes(obj: Any) -> bytes:
    return msgpack.packb(_canonical(obj), use_bin_type=True)


def unpack(data: bytes) -> Any:
    try:
        return msgpack.unpackb(data, raw=False, strict_map_key=True)
    except (ValueError, TypeError, msgpack.UnpackException) as exc:
        raise DecodeError(f"not a valid msgpack document: {exc}") from exc


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    try:
        return base64.b64decode("".join(text.split()), validate=True)
    except (ValueError, TypeError) as exc:
        raise DecodeError(f"not valid base64: {exc}") from exc


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _check_range(name: str, value: Any, low: int, high: int) -> int:
    if not _is_int(value) or not low <= value <= high:
        raise DecodeError(f"{name} out of range: {value!r}")
    return value


@dataclass(frozen=True)
class U32:
    value: int

    def __post_init__(self):
        _check_range("u32", self.value, 0, U32_MAX)

    def to_wire(self):
        return ["u32", self.value]


@dataclass(frozen=True)
class U64:
    value: int

    def __post_init__(self):
        _check_range("u64", self.value, 0, U64_MAX)

    def to_wire(self):
        return ["u64", self.value]


@dataclass(frozen=True)
class I128:
    value: int

    def __post_init__(self):
        _check_range("i128", self.value, I128_MIN, I128_MAX)

    def to_wire(self):
        # hi is signed, lo unsigned; both fit msgpack's 64-bit ints
        return ["i128", [self.value >> 64, self.value & _LO_MASK]]


@dataclass(frozen=True)
class Address:
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not encoding.is_valid_address(self.value):
            raise DecodeError(f"not a valid account address: {self.value!r}")

    @property
    def public_key(self) -> bytes:
        return encoding.decode_address(self.value)

    def to_wire(self):
        return ["address", self.value]


@dataclass(frozen=True)
class Bytes:
    value: bytes

    def __post_init__(self):
        if not isinstance(self.value, (bytes, bytearray)):
            raise DecodeError(f"bytes expected, got {type(self.value).__name__}")
        object.__setattr__(self, "value", bytes(self.value))

    def to_wire(self):
        return ["bytes", self.value]


@dataclass(frozen=True)
class Bool:
    value: bool

    def __post_init__(self):
        if not isinstance(self.value, bool):
            raise DecodeError(f"bool expected, got {self.value!r}")

    def to_wire(self):
        return ["bool", self.value]


@dataclass(frozen=True)
class Void:
    value: None = None

    def to_wire(self):
        return ["void", None]


@dataclass(frozen=True)
class Vec:
    items: tuple

    def to_wire(self):
        return ["vec", [item.to_wire() for item in self.items]]


Value = Union[U32, U64, I128, Address, Bytes, Bool, Void, Vec]


def _decode_i128(payload: Any) -> I128:
    if not isinstance(payload, list) or len(payload) != 2:
        raise DecodeError(f"i128 payload must be [hi, lo], got {payload!r}")
    hi, lo = payload
    _check_range("i128.hi", hi, -(2**63), 2**63 - 1)
    _check_range("i128.lo", lo, 0, _LO_MASK)
    return I128((hi << 64) | lo)


def decode_value(wire: Any) -> Value:
    if not isinstance(wire, (list, tuple)) or len(wire) != 2 or not isinstance(wire[0], str):
        raise DecodeError(f"expected [tag, payload], got {wire!r}")
    tag, payload = wire
    if tag == "u32":
        return U32(payload)
    if tag == "u64":
        return U64(payload)
    if tag == "i128":
        return _decode_i128(payload)
    if tag == "address":
        return Address(payload)
    if tag == "bytes":
        return Bytes(payload)
    if tag == "bool":
        return Bool(payload)
    if tag == "void":
        if payload is not None:
            raise DecodeError(f"void carries no payload, got {payload!r}")
        return Void()
    if tag == "vec":
        if not isinstance(payload, list):
            raise DecodeError(f"vec payload must be a list, got {payload!r}")
        return Vec(tuple(decode_value(item) for item in payload))
    raise DecodeError(f"unknown value tag {tag!r}")


def i128_parts(value: int) -> list[int]:
    return I128(value).to_wire()[1]


def i128_from_parts(parts: Any) -> int:
    return _decode_i128(parts).value
