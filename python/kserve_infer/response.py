"""
Inference responses and typed access to their output tensors.

Protocol adapters split a server reply into an envelope and per-output raw
segments; this module turns those segments back into shaped numpy arrays.
Binary segments are validated byte-for-byte against the declared datatype
and shape, so a short or oversized segment is reported rather than
truncated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from . import dtypes
from .dtypes import DataType
from .errors import (
    MalformedResponseError,
    NotFoundError,
    ShapeMismatchError,
    TypeMismatchError,
)
from .pooling import mean_pool
from .tensors import deserialize_bytes


@dataclass(frozen=True)
class OutputTensor:
    """One output as declared by the server, with its undecoded payload."""
    name: str
    datatype: DataType
    shape: Tuple[int, ...]
    raw: Optional[bytes] = None
    data: Optional[Sequence[Any]] = None
    parameters: Mapping[str, Any] = field(default_factory=dict)

    @property
    def element_count(self) -> int:
        return dtypes.element_count(self.shape)


def parse_output(
    name: str,
    datatype: str,
    shape: Sequence[Any],
    raw: Optional[bytes] = None,
    data: Optional[Sequence[Any]] = None,
    parameters: Optional[Mapping[str, Any]] = None
) -> OutputTensor:
    """
    Build an OutputTensor from envelope fields, rejecting bad declarations.

    Raises:
        MalformedResponseError: If the datatype or shape is not valid
    """
    try:
        tag = DataType.from_wire(datatype)
    except TypeMismatchError as e:
        raise MalformedResponseError(f"Output {name!r}: {e}") from e
    try:
        dims = tuple(int(d) for d in shape)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Output {name!r} has invalid shape {shape!r}") from e
    if any(d < 0 for d in dims):
        raise MalformedResponseError(f"Output {name!r} has negative shape {list(dims)}")
    return OutputTensor(
        name=name,
        datatype=tag,
        shape=dims,
        raw=raw,
        data=None if data is None else _flatten(data),
        parameters=dict(parameters or {}),
    )


def _flatten(values: Any) -> List[Any]:
    # JSON outputs may be nested row-major lists.
    if not isinstance(values, (list, tuple)):
        return [values]
    flat = []
    for value in values:
        if isinstance(value, (list, tuple)):
            flat.extend(_flatten(value))
        else:
            flat.append(value)
    return flat


def _decode_fixed(output: OutputTensor) -> np.ndarray:
    width = dtypes.width_of(output.datatype)
    expected = output.element_count * width
    if len(output.raw) != expected:
        raise MalformedResponseError(
            f"Output {output.name!r} ({output.datatype.value} {list(output.shape)}) "
            f"needs {expected} bytes, got {len(output.raw)}"
        )
    return np.frombuffer(output.raw, dtype=output.datatype.numpy_dtype)


def _decode_variable(output: OutputTensor) -> np.ndarray:
    try:
        elements = deserialize_bytes(output.raw, output.element_count)
    except ValueError as e:
        raise MalformedResponseError(f"Output {output.name!r}: {e}") from e
    arr = np.empty(len(elements), dtype=object)
    arr[:] = elements
    return arr


def _decode_values(output: OutputTensor) -> np.ndarray:
    values = list(output.data)
    if len(values) != output.element_count:
        raise MalformedResponseError(
            f"Output {output.name!r} has {len(values)} values for shape "
            f"{list(output.shape)}"
        )
    if output.datatype is DataType.BYTES:
        arr = np.empty(len(values), dtype=object)
        for i, value in enumerate(values):
            if isinstance(value, str):
                arr[i] = value.encode("utf-8")
            elif isinstance(value, bytes):
                arr[i] = value
            else:
                raise MalformedResponseError(
                    f"Output {output.name!r} element {i} is not a string"
                )
        return arr
    try:
        return dtypes.validate(output.datatype, output.shape, values)
    except (TypeMismatchError, ShapeMismatchError) as e:
        raise MalformedResponseError(
            f"Output {output.name!r} values do not fit {output.datatype.value}: {e}"
        ) from e


def decode_output(output: OutputTensor) -> np.ndarray:
    """
    Decode an output into a flat array of its declared host dtype.

    Raises:
        MalformedResponseError: If the payload disagrees with the declaration
    """
    if output.raw is not None:
        if output.datatype.is_variable_width:
            return _decode_variable(output)
        return _decode_fixed(output)
    if output.data is not None:
        return _decode_values(output)
    raise MalformedResponseError(f"Output {output.name!r} carries no data")


class InferResult:
    """
    Result of an inference request.

    Example:
        result = client.infer("bert", inputs)
        hidden = result.as_numpy("last_hidden_state")
        pooled = result.mean_pool("last_hidden_state", attention_mask)
    """

    def __init__(
        self,
        outputs: Sequence[OutputTensor],
        model_name: str = "",
        model_version: str = "",
        request_id: str = "",
        parameters: Optional[Mapping[str, Any]] = None,
        response: Any = None
    ):
        self._outputs: Dict[str, OutputTensor] = {o.name: o for o in outputs}
        self._order = [o.name for o in outputs]
        self.model_name = model_name
        self.model_version = model_version
        self.request_id = request_id
        self.parameters = dict(parameters or {})
        self._response = response

    def _lookup(self, name: str) -> OutputTensor:
        try:
            return self._outputs[name]
        except KeyError:
            raise NotFoundError(f"Output {name!r} not found in response") from None

    def output_names(self) -> List[str]:
        return list(self._order)

    def get_output(self, name: str) -> OutputTensor:
        """Get the declared metadata and undecoded payload of an output."""
        return self._lookup(name)

    def get_shape(self, name: str) -> Tuple[int, ...]:
        return self._lookup(name).shape

    def get_datatype(self, name: str) -> DataType:
        return self._lookup(name).datatype

    def get_response(self) -> Any:
        """The parsed envelope: a dict for HTTP, a protobuf message for gRPC."""
        return self._response

    def as_numpy(self, name: str, dtype: Any = None) -> np.ndarray:
        """
        Decode an output into an array of its declared shape.

        Bytes are always read at the declared wire width; ``dtype`` then
        selects the host type, which must be a lossless widening of the
        declared one.

        Args:
            name: Output name
            dtype: Requested host dtype (default: the declared dtype)

        Returns:
            numpy array shaped as declared by the server

        Raises:
            NotFoundError: If the output is not in the response
            TypeMismatchError: If ``dtype`` cannot represent the output
            MalformedResponseError: If the payload disagrees with its header
        """
        output = self._lookup(name)
        target = None if dtype is None else self._check_view(output, np.dtype(dtype))
        flat = decode_output(output)
        if target is not None and target != flat.dtype:
            flat = flat.astype(target)
        return flat.reshape(output.shape)

    def as_list(self, name: str, dtype: Any = None) -> List[Any]:
        """Flat, row-major list of the output's values."""
        return self.as_numpy(name, dtype).reshape(-1).tolist()

    def as_strings(self, name: str, encoding: str = "utf-8") -> List[str]:
        """
        Decode a BYTES output into a flat list of strings.

        Raises:
            TypeMismatchError: If the output is not BYTES
        """
        output = self._lookup(name)
        if output.datatype is not DataType.BYTES:
            raise TypeMismatchError(
                f"Output {name!r} is {output.datatype.value}, not BYTES"
            )
        return [e.decode(encoding) for e in decode_output(output)]

    def mean_pool(self, name: str, attention_mask: Any, eps: float = 1e-9) -> np.ndarray:
        """Mean-pool a ``[batch, seq, hidden]`` output over its sequence axis."""
        output = self._lookup(name)
        if output.datatype is DataType.BYTES:
            raise TypeMismatchError(f"Output {name!r} is BYTES and cannot be pooled")
        return mean_pool(self.as_numpy(name), attention_mask, eps=eps)

    @staticmethod
    def _check_view(output: OutputTensor, target: np.dtype) -> np.dtype:
        declared = output.datatype.numpy_dtype
        wants_text = target.kind in ("O", "S", "U")
        if output.datatype is DataType.BYTES:
            if target.kind != "O":
                raise TypeMismatchError(
                    f"Output {output.name!r} is BYTES; use as_strings() or dtype=object"
                )
            return target
        if wants_text or not np.can_cast(declared, target, casting="safe"):
            raise TypeMismatchError(
                f"Cannot view {output.datatype.value} output {output.name!r} as {target}"
            )
        return target

    def __repr__(self) -> str:
        return f"InferResult(model={self.model_name!r}, outputs={self._order})"
