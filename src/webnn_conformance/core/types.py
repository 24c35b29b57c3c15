from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from .errors import GraphError


# -----------------------------
# Enums
# -----------------------------
class DataType(str, Enum):
    FLOAT32 = "float32"
    FLOAT16 = "float16"
    INT8 = "int8"
    UINT8 = "uint8"
    INT32 = "int32"
    UINT32 = "uint32"
    INT64 = "int64"
    UINT64 = "uint64"
    INT4 = "int4"
    UINT4 = "uint4"

    @property
    def is_floating(self) -> bool:
        return self in (DataType.FLOAT32, DataType.FLOAT16)

    @property
    def is_64bit_integer(self) -> bool:
        return self in (DataType.INT64, DataType.UINT64)

    @classmethod
    def parse(cls, value: Any) -> "DataType":
        try:
            return cls(value)
        except ValueError as exc:
            raise GraphError(f"unsupported dataType: {value}") from exc


SUPPORTED_DATA_TYPES = frozenset(dt.value for dt in DataType)


class CaseStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


# -----------------------------
# Wire value codecs
# -----------------------------
# Non-finite floats cannot be represented in strict JSON; the backend
# accepts and emits these spellings instead.
_NON_FINITE_SPELLINGS = {
    "NaN": math.nan,
    "Infinity": math.inf,
    "-Infinity": -math.inf,
}


def encode_int64(value: Any) -> str:
    """Decimal-string form of a 64-bit integer element."""
    if isinstance(value, str):
        return str(int(value))
    if isinstance(value, (float, np.floating)):
        if not float(value).is_integer():
            raise GraphError(f"invalid 64-bit integer value: {value!r}")
    return str(int(value))


def decode_int64(value: Any) -> int:
    return int(value)


def encode_float(value: Any) -> Any:
    number = float(value) if not isinstance(value, str) else decode_float(value)
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "Infinity" if number > 0 else "-Infinity"
    if isinstance(value, (bool, np.bool_)):
        return int(value)
    if isinstance(value, (int, np.integer)):
        return int(value)
    return number


def decode_float(value: Any) -> float:
    if isinstance(value, str):
        if value in _NON_FINITE_SPELLINGS:
            return _NON_FINITE_SPELLINGS[value]
        return float(value)
    return float(value)


def encode_element(value: Any, data_type: DataType) -> Any:
    if data_type.is_64bit_integer:
        return encode_int64(value)
    return encode_float(value)


def decode_element(value: Any, data_type: DataType) -> Any:
    if data_type.is_64bit_integer:
        return decode_int64(value)
    return decode_float(value)


def flatten_data(data: Any) -> List[Any]:
    """Flatten scalars, nested lists and numpy arrays into a flat list."""
    if isinstance(data, np.ndarray):
        return data.ravel().tolist()
    if isinstance(data, (list, tuple)):
        flat: List[Any] = []
        for item in data:
            flat.extend(flatten_data(item))
        return flat
    if isinstance(data, np.generic):
        return [data.item()]
    return [data]


# -----------------------------
# Core Data Types
# -----------------------------
@dataclass(frozen=True)
class TensorDescriptor:
    data_type: DataType
    shape: Tuple[int, ...]

    def __post_init__(self):
        for dim in self.shape:
            if not isinstance(dim, (int, np.integer)) or dim < 0:
                raise GraphError(f"invalid dimension {dim!r} in shape {list(self.shape)}")

    @property
    def element_count(self) -> int:
        """Product of the shape; a 0-d tensor holds one element."""
        count = 1
        for dim in self.shape:
            count *= int(dim)
        return max(count, 1)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TensorDescriptor":
        if not isinstance(raw, Mapping):
            raise GraphError(f"invalid tensor descriptor: {raw!r}")
        # WPT fixtures predating the rename use "dimensions".
        shape = raw.get("shape", raw.get("dimensions", []))
        return cls(
            data_type=DataType.parse(raw.get("dataType")),
            shape=tuple(int(d) for d in shape),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"dataType": self.data_type.value, "shape": list(self.shape)}


@dataclass
class RuntimeTensor:
    """
    Descriptor plus flat data, as exchanged with the backend.

    ``data`` holds Python values; :meth:`to_wire` applies the string
    encodings for 64-bit integers and non-finite floats.
    """
    descriptor: TensorDescriptor
    data: List[Any] = field(default_factory=list)

    def validate_length(self, name: str = "") -> None:
        expected = self.descriptor.element_count
        actual = len(self.data)
        # A single value for a larger shape is a fill value.
        if actual == expected or (actual == 1 and expected > 1):
            return
        raise GraphError(
            f"data length mismatch for {name or 'tensor'}: expected {expected} "
            f"values for shape {list(self.descriptor.shape)}, got {actual}"
        )

    def to_wire(self) -> Dict[str, Any]:
        data_type = self.descriptor.data_type
        return {
            "descriptor": self.descriptor.to_dict(),
            "data": [encode_element(v, data_type) for v in self.data],
        }

    @classmethod
    def from_wire(cls, raw: Mapping[str, Any]) -> "RuntimeTensor":
        descriptor = TensorDescriptor.from_dict(raw.get("descriptor", {}))
        return cls(descriptor=descriptor, data=flatten_data(raw.get("data", [])))

    def decoded(self) -> List[Any]:
        data_type = self.descriptor.data_type
        return [decode_element(v, data_type) for v in self.data]


def raw_data_types(tensors: Iterable[Optional[Mapping[str, Any]]]) -> List[Any]:
    """Raw ``dataType`` values of fixture tensor entries, in order."""
    data_types = []
    for tensor in tensors:
        descriptor = (tensor or {}).get("descriptor") or {}
        data_types.append(descriptor.get("dataType"))
    return data_types
