"""
Tensor array interface definitions.

This module defines the domain-level interfaces for variable-shape tensor
arrays and their logical elements using structural typing. Concrete
implementations live in the infrastructure layer and are backed by a
columnar framework; domain code only relies on the read-only surface
captured here.
"""

from __future__ import annotations

from typing import Any, Iterator, Optional, Protocol, Tuple, runtime_checkable

from ._metadata import TensorMetadata


@runtime_checkable
class ITensorElement(Protocol):
    """
    A single logical tensor of a variable-shape tensor array.

    The element exposes its own shape and its flattened, row-major values.
    """

    @property
    def shape(self) -> Tuple[int, ...]:
        """
        Return the shape of this tensor element.
        """
        ...

    def to_numpy(self) -> Any:
        """
        Return the element as an ndarray of `shape`.
        """
        ...


@runtime_checkable
class INullableTensor(Protocol):
    """
    Presence wrapper around a logical tensor element.

    A null slot in the array yields a wrapper with `has_value == False`.
    """

    @property
    def has_value(self) -> bool: ...

    @property
    def value(self) -> ITensorElement: ...


@runtime_checkable
class IVariableShapeTensorArray(Protocol):
    """
    Read-only interface of a variable-shape tensor array.

    Notes
    -----
    - Every element shares the same number of dimensions, but the size of
      each dimension may differ between elements.
    - `ndim()` reports the dimensionality implied by the metadata and may be
      None even when the physical shape vectors have a known length.
    """

    def size(self) -> int:
        """
        Return the number of elements.
        """
        ...

    def empty(self) -> bool: ...

    def ndim(self) -> Optional[int]:
        """
        Return the dimensionality implied by the metadata, if any.
        """
        ...

    def get_metadata(self) -> TensorMetadata: ...

    def at(self, i: int) -> INullableTensor:
        """
        Return element `i`, bounds-checked.

        Raises
        ------
        OutOfRangeError
            If `i` is not in `[0, size())`.
        """
        ...

    def __len__(self) -> int: ...

    def __iter__(self) -> Iterator[INullableTensor]: ...
