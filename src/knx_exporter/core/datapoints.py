"""
Typed datapoint values and their numeric normalisation.

Decoding yields one of a small set of value categories. Prometheus only
understands floats, so `to_float` folds every numeric category into a float and
rejects everything else. The registry at the bottom delegates the actual
bit-level decoding to xknx transcoders.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from xknx.dpt import DPTArray, DPTBase, DPTBinary
from xknx.exceptions import XKNXException

logger = logging.getLogger(__name__)


class DecodeError(ValueError):
    """Raised when a payload cannot be decoded for its datapoint type."""


class UnsupportedValueError(DecodeError):
    """Raised when a decoded value has no numeric representation."""


@dataclass(frozen=True)
class BoolValue:
    value: bool

    def __str__(self) -> str:
        return "true" if self.value else "false"


@dataclass(frozen=True)
class SignedIntValue:
    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class UnsignedIntValue:
    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class FloatValue:
    value: float

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class RawValue:
    """Decoded value outside the numeric categories (text, dates, tuples)."""

    value: Any

    def __str__(self) -> str:
        return str(self.value)


DatapointValue = BoolValue | SignedIntValue | UnsignedIntValue | FloatValue | RawValue


def to_float(value: DatapointValue) -> float:
    """Normalise a decoded value to a float or raise `UnsupportedValueError`."""
    if isinstance(value, BoolValue):
        return 1.0 if value.value else 0.0
    if isinstance(value, SignedIntValue | UnsignedIntValue):
        return float(value.value)
    if isinstance(value, FloatValue):
        return value.value
    raise UnsupportedValueError(
        f"can not find appropriate numeric type for {type(value.value).__name__} value {value}"
    )


class XknxDatapoint:
    """Adapter turning an xknx transcoder into a `Datapoint`."""

    def __init__(self, dpt_id: str, transcoder: type[DPTBase]) -> None:
        self.dpt_id = dpt_id
        self._transcoder = transcoder

    def unpack(self, data: bytes) -> DatapointValue:
        if not data:
            raise DecodeError(f"empty payload for DPT {self.dpt_id}")
        try:
            if getattr(self._transcoder, "payload_type", DPTArray) is DPTBinary:
                payload: DPTArray | DPTBinary = DPTBinary(data[-1])
            else:
                payload = DPTArray(data)
            decoded = self._transcoder.from_knx(payload)
        except XKNXException as exc:
            raise DecodeError(f"can not unpack {data.hex()} as DPT {self.dpt_id}: {exc}") from exc
        return self._categorise(decoded)

    def _categorise(self, decoded: Any) -> DatapointValue:
        # Enum-backed types (switch, up/down, hvac modes) report their underlying value.
        if isinstance(decoded, Enum):
            decoded = decoded.value
        if isinstance(decoded, bool):
            return BoolValue(decoded)
        if isinstance(decoded, int):
            if getattr(self._transcoder, "value_min", 0) < 0:
                return SignedIntValue(decoded)
            return UnsignedIntValue(decoded)
        if isinstance(decoded, float):
            return FloatValue(decoded)
        return RawValue(decoded)

    def __str__(self) -> str:
        return f"{self.dpt_id} ({self._transcoder.__name__})"


class XknxDatapointRegistry:
    """Resolve configured DPT identifiers through xknx's transcoder lookup."""

    def __init__(self) -> None:
        self._cache: dict[str, XknxDatapoint | None] = {}

    def produce(self, dpt_id: str) -> XknxDatapoint | None:
        if dpt_id not in self._cache:
            try:
                transcoder = DPTBase.parse_transcoder(dpt_id)
            except (ValueError, XKNXException):
                transcoder = None
            if transcoder is None:
                logger.debug("No xknx transcoder registered for DPT %s", dpt_id)
                self._cache[dpt_id] = None
            else:
                self._cache[dpt_id] = XknxDatapoint(dpt_id, transcoder)
        return self._cache[dpt_id]


__all__ = [
    "BoolValue",
    "DatapointValue",
    "DecodeError",
    "FloatValue",
    "RawValue",
    "SignedIntValue",
    "UnsignedIntValue",
    "UnsupportedValueError",
    "XknxDatapoint",
    "XknxDatapointRegistry",
    "to_float",
]
