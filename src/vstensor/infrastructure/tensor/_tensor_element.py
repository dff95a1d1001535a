"""
Logical tensor elements of a variable-shape tensor array.

An element is never stored on its own: it is derived on access from the
`i`-th entry of the `shape` child and the `i`-th slice of the `data` child.
`NullableTensor` wraps an element together with its validity bit.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

import numpy as np
import pyarrow as pa

from ...domain._errors import ValidationError


class VariableShapeTensor:
    """
    One tensor: a shape and its flattened, row-major values.

    Parameters
    ----------
    shape : Tuple[int, ...]
        Shape of the tensor.
    values : pa.Array
        Flattened values, last dimension varying fastest.
    """

    __slots__ = ("_shape", "_values")

    def __init__(self, shape: Tuple[int, ...], values: pa.Array) -> None:
        self._shape = tuple(int(d) for d in shape)
        self._values = values

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._shape

    @property
    def ndim(self) -> int:
        return len(self._shape)

    @property
    def values(self) -> pa.Array:
        return self._values

    @property
    def size(self) -> int:
        """Number of stored values."""
        return len(self._values)

    def to_numpy(self) -> np.ndarray:
        """
        Return the element as an ndarray of `shape`.

        Raises
        ------
        ValidationError
            If the number of stored values differs from the product of the
            shape.
        """
        expected = int(np.prod(self._shape, dtype=np.int64))
        if expected != len(self._values):
            raise ValidationError(
                f"Tensor of shape {self._shape} needs {expected} values, "
                f"got {len(self._values)}."
            )
        flat = self._values.to_numpy(zero_copy_only=False)
        return flat.reshape(self._shape, order="C")

    def to_list(self) -> Any:
        return self.to_numpy().tolist()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VariableShapeTensor):
            return NotImplemented
        return self._shape == other._shape and self._values.equals(other._values)

    def __repr__(self) -> str:
        return (
            f"VariableShapeTensor(shape={self._shape}, "
            f"values={self._values.to_pylist()})"
        )


class NullableTensor:
    """
    Presence wrapper for a tensor element.

    The wrapped element is kept even when the slot is null, mirroring the
    columnar layout where null slots still occupy child entries.

    Parameters
    ----------
    element : VariableShapeTensor
        The element at this slot.
    has_value : bool
        The validity bit of the slot.
    """

    __slots__ = ("_element", "_has_value")

    def __init__(self, element: VariableShapeTensor, has_value: bool) -> None:
        self._element = element
        self._has_value = bool(has_value)

    @property
    def has_value(self) -> bool:
        return self._has_value

    @property
    def value(self) -> VariableShapeTensor:
        """
        Return the element.

        Raises
        ------
        ValueError
            If the slot is null.
        """
        if not self._has_value:
            raise ValueError("Cannot access the value of a null tensor element.")
        return self._element

    def get(self, default: Optional[Any] = None) -> Any:
        return self._element if self._has_value else default

    def __bool__(self) -> bool:
        return self._has_value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NullableTensor):
            return NotImplemented
        if self._has_value != other._has_value:
            return False
        # null slots compare equal regardless of their placeholder contents
        return not self._has_value or self._element == other._element

    def __repr__(self) -> str:
        if not self._has_value:
            return "NullableTensor(null)"
        return f"NullableTensor({self._element!r})"
