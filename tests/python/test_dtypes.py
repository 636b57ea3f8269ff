"""Tests for the tensor datatype registry."""

import numpy as np
import pytest

from kserve_infer import dtypes
from kserve_infer.dtypes import DataType
from kserve_infer.errors import ShapeMismatchError, TypeMismatchError


def _five_values(datatype):
    if datatype is DataType.BYTES:
        return ["x"] * 5
    if datatype is DataType.BOOL:
        return [True] * 5
    return [1] * 5


class TestDataType:
    """Test the datatype enum and width table."""

    @pytest.mark.parametrize("datatype,width", [
        (DataType.BOOL, 1),
        (DataType.UINT8, 1),
        (DataType.INT8, 1),
        (DataType.UINT16, 2),
        (DataType.INT16, 2),
        (DataType.FP16, 2),
        (DataType.UINT32, 4),
        (DataType.INT32, 4),
        (DataType.FP32, 4),
        (DataType.UINT64, 8),
        (DataType.INT64, 8),
        (DataType.FP64, 8),
    ])
    def test_fixed_widths(self, datatype, width):
        """Each fixed-width type has its documented byte width."""
        assert dtypes.width_of(datatype) == width
        assert datatype.numpy_dtype.itemsize == width
        assert not datatype.is_variable_width

    def test_bytes_is_variable_width(self):
        """BYTES has no fixed width and maps to object."""
        assert dtypes.width_of(DataType.BYTES) is None
        assert DataType.BYTES.is_variable_width
        assert DataType.BYTES.numpy_dtype == np.dtype(object)

    def test_from_wire(self):
        """Wire names map onto the enum."""
        assert DataType.from_wire("FP32") is DataType.FP32
        assert DataType.FP32 == "FP32"

    @pytest.mark.parametrize("name", ["fp32", "FLOAT", "BF16", ""])
    def test_from_wire_unknown(self, name):
        """Unknown or miscased names are rejected."""
        with pytest.raises(TypeMismatchError):
            DataType.from_wire(name)

    def test_from_numpy(self):
        """numpy dtypes map onto wire types regardless of byte order."""
        assert DataType.from_numpy(np.float32) is DataType.FP32
        assert DataType.from_numpy(np.dtype(">i8")) is DataType.INT64
        assert DataType.from_numpy(np.bool_) is DataType.BOOL
        assert DataType.from_numpy(object) is DataType.BYTES
        assert DataType.from_numpy("U5") is DataType.BYTES

    def test_from_numpy_unsupported(self):
        """Complex dtypes have no wire type."""
        with pytest.raises(TypeMismatchError):
            DataType.from_numpy(np.complex64)

    def test_element_count(self):
        """A scalar shape has one element."""
        assert dtypes.element_count([2, 3]) == 6
        assert dtypes.element_count([]) == 1
        assert dtypes.element_count([4, 0]) == 0


class TestValidate:
    """Test host value validation."""

    @pytest.mark.parametrize("datatype", list(DataType))
    def test_count_mismatch_for_every_datatype(self, datatype):
        """Five values never fit a [2, 3] tensor."""
        with pytest.raises(ShapeMismatchError):
            dtypes.validate(datatype, [2, 3], _five_values(datatype))

    def test_ragged_values(self):
        """Ragged nested lists are a shape error."""
        with pytest.raises(ShapeMismatchError):
            dtypes.validate(DataType.INT32, [2, 2], [[1, 2], [3]])

    def test_nested_values_flattened_row_major(self):
        """Nested lists flatten in row-major order."""
        flat = dtypes.validate(DataType.INT32, [2, 2], [[1, 2], [3, 4]])
        assert flat.dtype == np.dtype("<i4")
        assert flat.tolist() == [1, 2, 3, 4]

    def test_scalar_shape(self):
        """A bare value fits a scalar shape."""
        flat = dtypes.validate(DataType.FP64, [], 2.5)
        assert flat.tolist() == [2.5]

    @pytest.mark.parametrize("datatype", [DataType.BOOL, DataType.INT32, DataType.FP16])
    def test_empty_tensor(self, datatype):
        """Zero-element tensors keep the declared dtype."""
        flat = dtypes.validate(datatype, [0, 3], [])
        assert flat.size == 0
        assert flat.dtype == datatype.numpy_dtype

    @pytest.mark.parametrize("datatype,values", [
        (DataType.INT8, [300]),
        (DataType.UINT8, [-1]),
        (DataType.UINT16, [70000]),
        (DataType.INT32, [1.5]),
        (DataType.INT32, [float("nan")]),
        (DataType.INT64, [True]),
        (DataType.INT64, [2.0 ** 63]),
        (DataType.UINT64, [2.0 ** 64]),
        (DataType.UINT64, [-1.0]),
        (DataType.BOOL, [2]),
        (DataType.BOOL, [0.5]),
        (DataType.FP32, ["1.0"]),
        (DataType.FP32, [1e300]),
        (DataType.FP16, [70000.0]),
        (DataType.FP16, [-1e5]),
        (DataType.BYTES, [1]),
    ])
    def test_lossy_values_rejected(self, datatype, values):
        """Values that would change on conversion are rejected."""
        with pytest.raises(TypeMismatchError):
            dtypes.validate(datatype, [1], values)

    def test_integral_floats_accepted(self):
        """Floats with no fractional part fit integer types."""
        assert dtypes.validate(DataType.INT16, [2], [2.0, -3.0]).tolist() == [2, -3]

    def test_uint64_full_range(self):
        """UINT64 accepts values up to 2**64 - 1."""
        flat = dtypes.validate(DataType.UINT64, [2], [0, 2**64 - 1])
        assert flat.tolist() == [0, 2**64 - 1]

    def test_bool_from_ints(self):
        """0 and 1 are accepted as booleans."""
        assert dtypes.validate(DataType.BOOL, [3], [1, 0, 1]).tolist() == [True, False, True]

    def test_bytes_from_str_and_bytes(self):
        """str is UTF-8 encoded; bytes pass through."""
        flat = dtypes.validate(DataType.BYTES, [2], ["héllo", b"\xff\x00"])
        assert flat.tolist() == ["héllo".encode("utf-8"), b"\xff\x00"]


class TestHalfPrecision:
    """Test binary16 conversion."""

    def test_special_values_bit_patterns(self):
        """Zeros, one and the smallest subnormal encode exactly."""
        flat = dtypes.validate(DataType.FP16, [4], [1.0, 0.0, -0.0, 2.0 ** -24])
        assert flat.tobytes() == b"\x00\x3c\x00\x00\x00\x80\x01\x00"

    def test_special_values_widen_back(self):
        """Signed zero survives widening to float64."""
        flat = dtypes.validate(DataType.FP16, [4], [1.0, 0.0, -0.0, 2.0 ** -24])
        widened = flat.astype(np.float64)
        assert widened[0] == 1.0
        assert widened[1] == 0.0 and not np.signbit(widened[1])
        assert widened[2] == 0.0 and np.signbit(widened[2])
        assert widened[3] == 2.0 ** -24

    def test_round_to_nearest_even(self):
        """Halfway values round to the even neighbour."""
        # 1 + 2**-11 is halfway between 1.0 and the next binary16 value.
        flat = dtypes.validate(DataType.FP16, [1], [1.0 + 2.0 ** -11])
        assert flat.tobytes() == b"\x00\x3c"

    def test_largest_finite_kept(self):
        """65504 is the largest binary16 value and still fits."""
        assert dtypes.validate(DataType.FP16, [1], [65504.0]).tolist() == [65504.0]

    def test_infinity_passes_through(self):
        """Infinite inputs are not overflow."""
        flat = dtypes.validate(DataType.FP32, [2], [float("inf"), float("-inf")])
        assert np.isposinf(flat[0]) and np.isneginf(flat[1])
