"""
Input tensors and requested outputs for inference requests.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from . import dtypes
from .dtypes import DataType
from .errors import InputError, ShapeMismatchError, TypeMismatchError


@dataclass(frozen=True)
class HostValues:
    """Validated host values that have not been serialized yet."""
    array: np.ndarray


@dataclass(frozen=True)
class RawBytes:
    """Payload already serialized by the caller."""
    data: bytes


Payload = Union[HostValues, RawBytes]


def _normalize_shape(shape: Sequence[int]) -> Tuple[int, ...]:
    dims = []
    for dim in shape:
        if isinstance(dim, bool) or not isinstance(dim, (int, np.integer)):
            raise ShapeMismatchError(f"Shape entries must be integers, got {dim!r}")
        if dim < 0:
            raise ShapeMismatchError(f"Shape entries must be >= 0, got {list(shape)}")
        dims.append(int(dim))
    return tuple(dims)


def serialize_bytes(elements: Sequence[bytes]) -> bytes:
    """Encode BYTES elements as (4-byte little-endian length, bytes) pairs."""
    return b"".join(struct.pack("<I", len(e)) + e for e in elements)


def deserialize_bytes(data: bytes, count: int) -> List[bytes]:
    """
    Decode exactly ``count`` length-prefixed elements from ``data``.

    Raises:
        ValueError: If the data ends early or has bytes left over
    """
    elements = []
    offset = 0
    view = memoryview(data)
    for i in range(count):
        if offset + dtypes.BYTES_LENGTH_PREFIX > len(view):
            raise ValueError(f"Missing length prefix for element {i}")
        (length,) = struct.unpack_from("<I", view, offset)
        offset += dtypes.BYTES_LENGTH_PREFIX
        if offset + length > len(view):
            raise ValueError(
                f"Element {i} needs {length} bytes, {len(view) - offset} left"
            )
        elements.append(bytes(view[offset:offset + length]))
        offset += length
    if offset != len(view):
        raise ValueError(f"{len(view) - offset} trailing bytes after {count} elements")
    return elements


class InferInput:
    """
    A named, typed and shaped input tensor.

    Example:
        inp = InferInput("input_ids", "INT64", [1, 4])
        inp.set_data([101, 2023, 2003, 102])
    """

    def __init__(
        self,
        name: str,
        datatype: Union[DataType, str],
        shape: Sequence[int],
        parameters: Optional[Mapping[str, Any]] = None
    ):
        """
        Initialize the input.

        Args:
            name: Input name as declared by the model
            datatype: Wire datatype (e.g. "FP32" or DataType.FP32)
            shape: Tensor shape; a zero dimension means an empty tensor
            parameters: Extra per-input parameters sent with the request

        Raises:
            InputError: If the name is empty
            ShapeMismatchError: If a shape entry is negative
            TypeMismatchError: If the datatype is unknown
        """
        if not name:
            raise InputError("Input name must be non-empty")
        self._name = name
        self._datatype = (
            datatype if isinstance(datatype, DataType) else DataType.from_wire(datatype)
        )
        self._shape = _normalize_shape(shape)
        self._parameters: Dict[str, Any] = dict(parameters or {})
        self._payload: Optional[Payload] = None
        self._binary_data = True

    @property
    def name(self) -> str:
        return self._name

    @property
    def datatype(self) -> DataType:
        return self._datatype

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._shape

    @property
    def parameters(self) -> Dict[str, Any]:
        return dict(self._parameters)

    @property
    def binary_data(self) -> bool:
        """Whether the payload travels as raw bytes rather than JSON."""
        return self._binary_data

    @property
    def payload(self) -> Optional[Payload]:
        return self._payload

    def set_data(self, values: Any, binary_data: bool = True) -> "InferInput":
        """
        Replace the tensor payload with host values.

        Args:
            values: Flat or nested sequence, or numpy array, in row-major order
            binary_data: Send as raw bytes (HTTP); gRPC always sends raw bytes

        Returns:
            self, for chaining

        Raises:
            ShapeMismatchError: If the value count differs from the shape
            TypeMismatchError: If a value does not fit the datatype
        """
        array = dtypes.validate(self._datatype, self._shape, values)
        self._payload = HostValues(array)
        self._binary_data = binary_data
        return self

    def set_raw_data(self, data: bytes) -> "InferInput":
        """
        Replace the tensor payload with bytes serialized by the caller.

        Raises:
            ShapeMismatchError: If the byte length does not match the shape
        """
        data = bytes(data)
        count = dtypes.element_count(self._shape)
        width = dtypes.width_of(self._datatype)
        if width is None:
            try:
                deserialize_bytes(data, count)
            except ValueError as e:
                raise ShapeMismatchError(
                    f"Raw BYTES data for {self._name!r} does not hold {count} elements: {e}"
                ) from e
        elif len(data) != count * width:
            raise ShapeMismatchError(
                f"Raw data for {self._name!r} is {len(data)} bytes, "
                f"expected {count * width}"
            )
        self._payload = RawBytes(data)
        self._binary_data = True
        return self

    def _require_payload(self) -> Payload:
        if self._payload is None:
            raise InputError(f"Input {self._name!r} has no data; call set_data() first")
        return self._payload

    def to_raw_bytes(self) -> bytes:
        """Serialize the payload into the wire's raw byte encoding."""
        payload = self._require_payload()
        if isinstance(payload, RawBytes):
            return payload.data
        if self._datatype is DataType.BYTES:
            return serialize_bytes(payload.array)
        return payload.array.tobytes()

    def raw_byte_size(self) -> int:
        """Length of the raw encoding without building it for numeric tensors."""
        payload = self._require_payload()
        if isinstance(payload, RawBytes):
            return len(payload.data)
        if self._datatype is DataType.BYTES:
            return sum(len(e) for e in payload.array) + (
                dtypes.BYTES_LENGTH_PREFIX * payload.array.size
            )
        return payload.array.nbytes

    def to_json_data(self) -> List[Any]:
        """Flat list of JSON scalars for non-binary HTTP transport."""
        payload = self._require_payload()
        if isinstance(payload, RawBytes):
            raise InputError(f"Input {self._name!r} holds raw bytes and must be sent binary")
        if self._datatype is not DataType.BYTES:
            return payload.array.tolist()
        try:
            return [e.decode("utf-8") for e in payload.array]
        except UnicodeDecodeError as e:
            raise TypeMismatchError(
                f"Input {self._name!r} holds non UTF-8 bytes; use binary_data=True"
            ) from e

    def __repr__(self) -> str:
        return (
            f"InferInput(name={self._name!r}, datatype={self._datatype.value}, "
            f"shape={list(self._shape)})"
        )


class InferRequestedOutput:
    """
    An output the caller wants returned, and how it should be encoded.

    Parameters are passed to the server as-is; the server defines what
    they mean.
    """

    def __init__(
        self,
        name: str,
        binary_data: bool = True,
        class_count: int = 0,
        parameters: Optional[Mapping[str, Any]] = None
    ):
        """
        Initialize the requested output.

        Args:
            name: Output name as declared by the model
            binary_data: Ask the server to return raw bytes (HTTP only)
            class_count: If > 0, return the top-k classification results
            parameters: Extra per-output parameters sent with the request
        """
        if not name:
            raise InputError("Output name must be non-empty")
        params = dict(parameters or {})
        params["binary_data"] = binary_data
        if class_count:
            params["classification"] = class_count
        self._name = name
        self._binary_data = binary_data
        self._class_count = class_count
        self._parameters = MappingProxyType(params)

    @property
    def name(self) -> str:
        return self._name

    @property
    def binary_data(self) -> bool:
        return self._binary_data

    @property
    def class_count(self) -> int:
        return self._class_count

    @property
    def parameters(self) -> Mapping[str, Any]:
        return self._parameters

    def __repr__(self) -> str:
        return f"InferRequestedOutput(name={self._name!r}, parameters={dict(self._parameters)})"
