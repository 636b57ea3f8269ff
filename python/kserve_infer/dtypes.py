"""
Tensor datatype registry.

Maps the v2 protocol datatype names onto little-endian numpy dtypes and
validates host values against them.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Optional, Sequence

import numpy as np

from .errors import ShapeMismatchError, TypeMismatchError


class DataType(str, Enum):
    """Wire datatypes understood by the inference protocol."""

    BOOL = "BOOL"
    UINT8 = "UINT8"
    UINT16 = "UINT16"
    UINT32 = "UINT32"
    UINT64 = "UINT64"
    INT8 = "INT8"
    INT16 = "INT16"
    INT32 = "INT32"
    INT64 = "INT64"
    FP16 = "FP16"
    FP32 = "FP32"
    FP64 = "FP64"
    BYTES = "BYTES"

    @classmethod
    def from_wire(cls, name: str) -> "DataType":
        """Look up a datatype by its wire name."""
        try:
            return cls(name)
        except ValueError:
            raise TypeMismatchError(f"Unsupported datatype: {name!r}") from None

    @classmethod
    def from_numpy(cls, dtype: Any) -> "DataType":
        """Convert a numpy dtype to the matching wire datatype."""
        dtype = np.dtype(dtype)
        if dtype.kind in ("O", "S", "U"):
            return cls.BYTES
        for datatype, np_dtype in _NUMPY_DTYPES.items():
            if np_dtype is not None and np_dtype == dtype.newbyteorder("<"):
                return datatype
        raise TypeMismatchError(f"Unsupported dtype: {dtype}")

    @property
    def numpy_dtype(self) -> np.dtype:
        """Host dtype used for this datatype (object for BYTES)."""
        np_dtype = _NUMPY_DTYPES[self]
        return np.dtype(object) if np_dtype is None else np_dtype

    @property
    def is_variable_width(self) -> bool:
        return _NUMPY_DTYPES[self] is None


_NUMPY_DTYPES = {
    DataType.BOOL: np.dtype("?"),
    DataType.UINT8: np.dtype("<u1"),
    DataType.UINT16: np.dtype("<u2"),
    DataType.UINT32: np.dtype("<u4"),
    DataType.UINT64: np.dtype("<u8"),
    DataType.INT8: np.dtype("<i1"),
    DataType.INT16: np.dtype("<i2"),
    DataType.INT32: np.dtype("<i4"),
    DataType.INT64: np.dtype("<i8"),
    DataType.FP16: np.dtype("<f2"),
    DataType.FP32: np.dtype("<f4"),
    DataType.FP64: np.dtype("<f8"),
    DataType.BYTES: None,
}

# Byte length of the prefix written before every BYTES element.
BYTES_LENGTH_PREFIX = 4


def width_of(datatype: DataType) -> Optional[int]:
    """
    Get the element byte width of a datatype.

    Returns:
        Width in bytes, or None for variable-width BYTES tensors
    """
    np_dtype = _NUMPY_DTYPES[DataType(datatype)]
    return None if np_dtype is None else np_dtype.itemsize


def element_count(shape: Sequence[int]) -> int:
    """Number of elements implied by a shape (1 for a scalar shape)."""
    return math.prod(shape)


def validate(datatype: DataType, shape: Sequence[int], values: Any) -> np.ndarray:
    """
    Validate host values against a datatype and shape.

    Args:
        datatype: Target wire datatype
        shape: Declared tensor shape
        values: Flat or nested sequence, or numpy array

    Returns:
        Flat (row-major) numpy array in the datatype's host dtype

    Raises:
        ShapeMismatchError: If the element count differs from the shape
        TypeMismatchError: If a value cannot be mapped losslessly
    """
    datatype = DataType(datatype)
    if datatype is DataType.BYTES:
        flat = _as_object_array(values)
        _check_count(shape, flat.size)
        return _coerce_bytes(flat)

    try:
        arr = np.asarray(values)
    except ValueError as e:
        raise ShapeMismatchError(f"Values do not form a regular array: {e}") from e
    flat = arr.reshape(-1)
    _check_count(shape, flat.size)

    np_dtype = _NUMPY_DTYPES[datatype]
    if flat.size == 0:
        return np.empty(0, dtype=np_dtype)
    if datatype is DataType.BOOL:
        return _coerce_bool(flat)
    if np_dtype.kind in ("i", "u"):
        return _coerce_int(flat, np_dtype, datatype)
    return _coerce_float(flat, np_dtype, datatype)


def _check_count(shape: Sequence[int], count: int) -> None:
    expected = element_count(shape)
    if count != expected:
        raise ShapeMismatchError(
            f"Got {count} values for shape {list(shape)} ({expected} elements)"
        )


def _as_object_array(values: Any) -> np.ndarray:
    if isinstance(values, np.ndarray):
        return values.reshape(-1)
    if isinstance(values, (str, bytes)):
        values = [values]
    return np.array(values, dtype=object).reshape(-1)


def _coerce_bytes(flat: np.ndarray) -> np.ndarray:
    if flat.dtype.kind not in ("O", "S", "U"):
        raise TypeMismatchError(f"BYTES tensor got {flat.dtype} values")
    out = np.empty(flat.size, dtype=object)
    for i, value in enumerate(flat):
        if isinstance(value, str):
            out[i] = value.encode("utf-8")
        elif isinstance(value, (bytes, bytearray, np.bytes_)):
            out[i] = bytes(value)
        else:
            raise TypeMismatchError(
                f"BYTES tensor element {i} is {type(value).__name__}, not str or bytes"
            )
    return out


def _coerce_bool(flat: np.ndarray) -> np.ndarray:
    if flat.dtype.kind == "b":
        return flat.astype(np.bool_)
    if flat.dtype.kind in ("i", "u") and np.all((flat == 0) | (flat == 1)):
        return flat.astype(np.bool_)
    raise TypeMismatchError("BOOL tensor values must be booleans or 0/1")


def _coerce_int(flat: np.ndarray, np_dtype: np.dtype, datatype: DataType) -> np.ndarray:
    info = np.iinfo(np_dtype)
    kind = flat.dtype.kind
    if kind in ("i", "u"):
        if flat.size and (int(flat.min()) < info.min or int(flat.max()) > info.max):
            raise TypeMismatchError(f"Value out of range for {datatype.value}")
    elif kind == "f":
        if not np.all(np.isfinite(flat)) or not np.all(np.mod(flat, 1) == 0):
            raise TypeMismatchError(f"Non-integral value for {datatype.value}")
        # Compare as Python ints; float64 rounds iinfo bounds of 64-bit types.
        if flat.size and (int(flat.min()) < info.min or int(flat.max()) > info.max):
            raise TypeMismatchError(f"Value out of range for {datatype.value}")
    elif kind == "O":
        # Python ints too large for any numpy integer land here.
        for value in flat:
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise TypeMismatchError(
                    f"{datatype.value} tensor got {type(value).__name__} value"
                )
            if not info.min <= int(value) <= info.max:
                raise TypeMismatchError(f"Value {value} out of range for {datatype.value}")
    else:
        raise TypeMismatchError(f"{datatype.value} tensor got {flat.dtype} values")
    return flat.astype(np_dtype)


def _coerce_float(flat: np.ndarray, np_dtype: np.dtype, datatype: DataType) -> np.ndarray:
    if flat.dtype.kind not in ("i", "u", "f"):
        raise TypeMismatchError(f"{datatype.value} tensor got {flat.dtype} values")
    # astype narrows with IEEE round-to-nearest-even, including to binary16.
    with np.errstate(over="ignore"):
        out = flat.astype(np_dtype)
    if np.any(np.isfinite(flat) & ~np.isfinite(out)):
        raise TypeMismatchError(f"Value out of range for {datatype.value}")
    return out
