"""
Variable-shape tensor array view.

`VariableShapeTensorArray` composes two pyarrow child arrays into a sequence
of logical tensors that share a number of dimensions but not their sizes:

- `data`: a (large) list array; entry `i` holds the flattened, row-major
  values of tensor `i`
- `shape`: a fixed-size list array of int32 with list size `ndim`; entry `i`
  holds the shape of tensor `i`

plus one `TensorMetadata`, an optional validity bitmap, an optional name and
optional key/value metadata.

Design notes
------------
- All validation is eager: every constructor either returns a fully
  consistent array or raises, never a partially built one.
- After construction the array is read-only. pyarrow arrays are immutable, so
  the accessors (`storage()`, `data_child()`, ...) hand out the underlying
  objects directly and nothing is re-validated.
- Elements are materialized on access; iteration is a plain generator over
  `range(size())`, so every `iter()` call restarts from the first element.
- `ndim()` reports the dimensionality implied by the metadata, which may be
  unknown even though the physical shape vectors have a fixed length
  (`physical_ndim`).
"""

from __future__ import annotations

import functools
import logging
import operator
from typing import (
    Any,
    Iterator,
    List,
    Optional,
    Sequence,
    Union,
)

import numpy as np
import pyarrow as pa

from ...domain._errors import OutOfRangeError, ValidationError
from ...domain._extension import (
    DATA_FIELD_NAME,
    EXTENSION_METADATA_KEY,
    EXTENSION_NAME,
    EXTENSION_NAME_KEY,
    RESERVED_METADATA_KEYS,
    SHAPE_FIELD_NAME,
)
from ...domain._metadata import TensorMetadata
from ...domain._tensor_array import IVariableShapeTensorArray
from ..encoding._metadata_json import metadata_from_json, metadata_to_json
from ..extension._proxy import ArrowProxy, MetadataLike, normalize_metadata_pairs
from ..extension._type import (
    SHAPE_VALUE_TYPE,
    VariableShapeTensorType,
    check_storage_type,
    data_list_type,
    shape_list_type,
)
from ._tensor_element import NullableTensor, VariableShapeTensor

logger = logging.getLogger(__name__)

ArrayLike = Union[pa.Array, pa.ChunkedArray]


def _as_array(arr: ArrayLike, role: str) -> pa.Array:
    if isinstance(arr, pa.ChunkedArray):
        return arr.combine_chunks()
    if not isinstance(arr, pa.Array):
        raise TypeError(
            f"'{role}' child must be a pyarrow Array or ChunkedArray, "
            f"got {type(arr).__name__}."
        )
    return arr


def _cast_to(arr: pa.Array, target: pa.DataType, role: str) -> pa.Array:
    if arr.type == target:
        return arr
    try:
        return arr.cast(target)
    except (pa.ArrowInvalid, pa.ArrowNotImplementedError) as e:
        raise ValidationError(
            f"Cannot normalize '{role}' child from {arr.type} to {target}: {e}"
        ) from e


class VariableShapeTensorArray(IVariableShapeTensorArray):
    """
    Array of tensors with a shared number of dimensions and varying shapes.

    Parameters
    ----------
    ndim : int
        Number of dimensions; must equal the list size of the `shape` child.
    data : Union[pa.Array, pa.ChunkedArray]
        List or large-list array of flattened, row-major tensor values.
    shape : Union[pa.Array, pa.ChunkedArray]
        Fixed-size list array of int32 shape vectors.
    metadata : Optional[TensorMetadata], optional
        Metadata shared by all elements. Defaults to metadata with every field
        absent.
    name : Optional[str], optional
        Name of the array. Defaults to None.
    arrow_metadata : Optional[MetadataLike], optional
        Extra key/value metadata, stored after the extension identity pairs.
        Keys reserved for the extension identity are dropped.
    validity : Optional[Sequence[bool]], optional
        Per-element presence flags. Defaults to None (every element present).

    Raises
    ------
    TypeError
        If a child is not a pyarrow array.
    ValidationError
        If the `shape` list size differs from `ndim`, the children have
        different lengths, the metadata is invalid or implies a
        dimensionality other than `ndim`, or the validity length differs
        from the element count.

    Examples
    --------
    >>> values = pa.array([1, 2, 3, 4, 5], pa.int32())
    >>> data = pa.ListArray.from_arrays(pa.array([0, 3, 5], pa.int32()), values)
    >>> shape = pa.FixedSizeListArray.from_arrays(pa.array([3, 2], pa.int32()), 1)
    >>> arr = VariableShapeTensorArray(1, data, shape, TensorMetadata())
    >>> arr.at(1).value.shape
    (2,)
    """

    def __init__(
        self,
        ndim: int,
        data: ArrayLike,
        shape: ArrayLike,
        metadata: Optional[TensorMetadata] = None,
        name: Optional[str] = None,
        arrow_metadata: Optional[MetadataLike] = None,
        validity: Optional[Sequence[bool]] = None,
    ) -> None:
        ndim = operator.index(ndim)
        if ndim < 0:
            raise ValidationError(f"ndim must be non-negative, got {ndim}.")
        if metadata is None:
            metadata = TensorMetadata()

        data = _as_array(data, DATA_FIELD_NAME)
        shape = _as_array(shape, SHAPE_FIELD_NAME)

        # ---- shape child ----
        if not pa.types.is_fixed_size_list(shape.type):
            raise ValidationError(
                f"'{SHAPE_FIELD_NAME}' child must be a fixed_size_list, "
                f"got {shape.type}."
            )
        if shape.type.list_size != ndim:
            raise ValidationError(
                f"'{SHAPE_FIELD_NAME}' child has {shape.type.list_size} entries per "
                f"element but ndim is {ndim}."
            )
        if shape.type.value_type != SHAPE_VALUE_TYPE:
            raise ValidationError(
                f"'{SHAPE_FIELD_NAME}' child values must be {SHAPE_VALUE_TYPE}, "
                f"got {shape.type.value_type}."
            )

        # ---- data child ----
        if pa.types.is_list(data.type):
            large_list = False
        elif pa.types.is_large_list(data.type):
            large_list = True
        else:
            raise ValidationError(
                f"'{DATA_FIELD_NAME}' child must be a list or large_list, "
                f"got {data.type}."
            )

        if len(data) != len(shape):
            raise ValidationError(
                f"'{DATA_FIELD_NAME}' child has {len(data)} elements but "
                f"'{SHAPE_FIELD_NAME}' child has {len(shape)}."
            )

        metadata.validate()

        n = len(data)
        mask = None
        if validity is not None:
            valid = np.asarray(validity, dtype=bool)
            if valid.ndim != 1 or len(valid) != n:
                raise ValidationError(
                    f"Validity bitmap has {valid.size} entries but the array has "
                    f"{n} elements."
                )
            if not valid.all():
                mask = pa.array(~valid, type=pa.bool_())

        value_type = data.type.value_type
        data = _cast_to(data, data_list_type(value_type, large_list), DATA_FIELD_NAME)
        shape = _cast_to(shape, shape_list_type(ndim), SHAPE_FIELD_NAME)

        ext_type = VariableShapeTensorType(value_type, ndim, metadata, large_list)
        storage = pa.StructArray.from_arrays(
            [data, shape],
            fields=list(ext_type.storage_type),
            mask=mask,
        )

        user_pairs = []
        for k, v in normalize_metadata_pairs(arrow_metadata):
            if k in RESERVED_METADATA_KEYS:
                logger.debug("Dropping reserved key %r from attached metadata", k)
                continue
            user_pairs.append((k, v))

        pairs = [
            (EXTENSION_NAME_KEY, EXTENSION_NAME),
            (EXTENSION_METADATA_KEY, metadata_to_json(metadata)),
        ] + user_pairs

        self._physical_ndim = ndim
        self._metadata = metadata
        self._type = ext_type
        self._proxy = ArrowProxy(storage, name, pairs)

    # ---------------------------------------------------------------------
    # Decode paths
    # ---------------------------------------------------------------------
    @classmethod
    def _from_storage(
        cls,
        storage: pa.Array,
        metadata: TensorMetadata,
        name: Optional[str],
        arrow_metadata: Optional[MetadataLike],
    ) -> "VariableShapeTensorArray":
        _, ndim, _ = check_storage_type(storage.type)
        validity = None
        if storage.null_count > 0:
            validity = storage.is_valid().to_numpy(zero_copy_only=False)
        return cls(
            ndim,
            storage.field(0),
            storage.field(1),
            metadata,
            name=name,
            arrow_metadata=arrow_metadata,
            validity=validity,
        )

    @classmethod
    def from_arrow_proxy(cls, proxy: ArrowProxy) -> "VariableShapeTensorArray":
        """
        Decode a raw extension-typed container.

        The proxy must carry `ARROW:extension:name` equal to
        `arrow.variable_shape_tensor`; its `ARROW:extension:metadata` (absent
        or empty means no declared structure) is parsed with the JSON codec.

        Raises
        ------
        ValidationError
            If the extension name, the storage layout or the metadata is
            invalid.
        ParseError
            If the extension metadata is not valid JSON.
        """
        if proxy.extension_name != EXTENSION_NAME:
            raise ValidationError(
                f"Expected extension '{EXTENSION_NAME}', "
                f"got {proxy.extension_name!r}."
            )
        check_storage_type(proxy.storage.type)

        text = proxy.extension_metadata
        metadata = metadata_from_json(text) if text else TensorMetadata()
        user_pairs = [
            (k, v) for k, v in proxy.metadata if k not in RESERVED_METADATA_KEYS
        ]
        return cls._from_storage(proxy.storage, metadata, proxy.name, user_pairs)

    @classmethod
    def from_extension_array(
        cls,
        arr: Union[pa.ExtensionArray, pa.ChunkedArray],
        name: Optional[str] = None,
        arrow_metadata: Optional[MetadataLike] = None,
    ) -> "VariableShapeTensorArray":
        """
        Decode a pyarrow extension array tagged `arrow.variable_shape_tensor`.

        Besides `VariableShapeTensorType` this accepts any other extension
        type registered under the same name (e.g. a canonical implementation
        shipped with pyarrow); its serialized metadata is decoded with the
        JSON codec.

        Raises
        ------
        ValidationError
            If `arr` is not an extension array of that name, or its storage or
            metadata is invalid.
        ParseError
            If the serialized metadata of a foreign type is not valid JSON.
        """
        if isinstance(arr, pa.ChunkedArray):
            arr = arr.combine_chunks()
        arr_type = arr.type
        if isinstance(arr_type, VariableShapeTensorType):
            return cls._from_storage(
                arr.storage, arr_type.tensor_metadata, name, arrow_metadata
            )
        if (
            not isinstance(arr_type, pa.BaseExtensionType)
            or arr_type.extension_name != EXTENSION_NAME
        ):
            raise ValidationError(
                f"Expected an array of {EXTENSION_NAME}, got {arr_type}."
            )

        serialize = getattr(arr_type, "__arrow_ext_serialize__", None)
        if serialize is None:
            raise ValidationError(
                f"Extension type {arr_type} does not expose its serialized "
                f"metadata."
            )
        serialized = serialize()
        check_storage_type(arr.storage.type)
        metadata = metadata_from_json(serialized) if serialized else TensorMetadata()
        return cls._from_storage(arr.storage, metadata, name, arrow_metadata)

    @classmethod
    def from_field(
        cls, field: pa.Field, storage: Union[pa.Array, pa.ChunkedArray]
    ) -> "VariableShapeTensorArray":
        """
        Decode an array read under `field`.

        Works both for registered readers (the column is already an
        extension array named `arrow.variable_shape_tensor`) and for
        unregistered ones (a plain struct column with the extension identity
        in the field metadata).
        """
        if isinstance(field.type, pa.BaseExtensionType):
            return cls.from_extension_array(
                storage, name=field.name or None, arrow_metadata=field.metadata
            )
        if isinstance(storage, pa.ChunkedArray):
            storage = storage.combine_chunks()
        return cls.from_arrow_proxy(ArrowProxy.from_field(field, storage))

    @classmethod
    def from_numpy(
        cls,
        tensors: Sequence[Optional[Any]],
        metadata: Optional[TensorMetadata] = None,
        ndim: Optional[int] = None,
        name: Optional[str] = None,
        arrow_metadata: Optional[MetadataLike] = None,
        large_list: bool = False,
    ) -> "VariableShapeTensorArray":
        """
        Build an array from a sequence of ndarrays.

        Parameters
        ----------
        tensors : Sequence[Optional[array-like]]
            One array per element; `None` marks a null element.
        metadata : Optional[TensorMetadata], optional
            Metadata shared by all elements.
        ndim : Optional[int], optional
            Number of dimensions. Inferred from the first non-null element
            when omitted; required when every element is null or the sequence
            is empty.
        name, arrow_metadata : optional
            Forwarded to the constructor.
        large_list : bool, optional
            Use 64-bit offsets for the `data` child. Defaults to False.

        Raises
        ------
        ValidationError
            If the elements disagree on the number of dimensions, or `ndim`
            cannot be determined or is less than 1.
        """
        arrays = [None if t is None else np.asarray(t) for t in tensors]
        present = [a for a in arrays if a is not None]

        if ndim is None:
            if not present:
                raise ValidationError(
                    "ndim must be given when no element is present."
                )
            ndim = present[0].ndim
        ndim = int(ndim)
        if ndim < 1:
            raise ValidationError(f"ndim must be at least 1, got {ndim}.")

        for i, a in enumerate(arrays):
            if a is not None and a.ndim != ndim:
                raise ValidationError(
                    f"All tensors must have {ndim} dimensions; element {i} has "
                    f"{a.ndim}."
                )

        if present:
            dtype = functools.reduce(np.promote_types, [a.dtype for a in present])
            flat = np.concatenate(
                [np.ravel(a, order="C").astype(dtype, copy=False) for a in present]
            )
        else:
            flat = np.empty(0, dtype=np.float32)

        sizes = np.array([0 if a is None else a.size for a in arrays], dtype=np.int64)
        offsets = np.zeros(len(arrays) + 1, dtype=np.int64)
        offsets[1:] = np.cumsum(sizes)

        if large_list:
            data = pa.LargeListArray.from_arrays(
                pa.array(offsets, type=pa.int64()), pa.array(flat)
            )
        else:
            if offsets[-1] > np.iinfo(np.int32).max:
                raise ValidationError(
                    "Too many values for 32-bit list offsets; pass large_list=True."
                )
            data = pa.ListArray.from_arrays(
                pa.array(offsets.astype(np.int32), type=pa.int32()), pa.array(flat)
            )

        flat_shapes = np.array(
            [a.shape if a is not None else (0,) * ndim for a in arrays],
            dtype=np.int32,
        ).reshape(-1)
        shape = pa.FixedSizeListArray.from_arrays(
            pa.array(flat_shapes, type=pa.int32()), ndim
        )

        validity = None
        if len(present) != len(arrays):
            validity = [a is not None for a in arrays]

        return cls(
            ndim,
            data,
            shape,
            metadata,
            name=name,
            arrow_metadata=arrow_metadata,
            validity=validity,
        )

    # ---------------------------------------------------------------------
    # Size and metadata
    # ---------------------------------------------------------------------
    def size(self) -> int:
        return len(self._proxy.storage)

    def __len__(self) -> int:
        return self.size()

    def empty(self) -> bool:
        return self.size() == 0

    def ndim(self) -> Optional[int]:
        """
        Return the dimensionality implied by the metadata.

        This is independent of the `ndim` given at construction, which only
        fixes the length of the shape vectors (see `physical_ndim`); an array
        with all-absent metadata reports None.
        """
        return self._metadata.get_ndim()

    @property
    def physical_ndim(self) -> int:
        return self._physical_ndim

    def get_metadata(self) -> TensorMetadata:
        return self._metadata

    @property
    def type(self) -> VariableShapeTensorType:
        return self._type

    @property
    def name(self) -> Optional[str]:
        return self._proxy.name

    @property
    def null_count(self) -> int:
        return self._proxy.storage.null_count

    def validity(self) -> np.ndarray:
        """
        Return per-element presence flags as a boolean ndarray.
        """
        storage = self._proxy.storage
        if storage.null_count == 0:
            return np.ones(len(storage), dtype=bool)
        return storage.is_valid().to_numpy(zero_copy_only=False)

    def is_valid(self) -> bool:
        """
        Re-check the structural invariants against the current storage.
        """
        try:
            _, ndim, _ = check_storage_type(self._proxy.storage.type)
        except ValidationError:
            return False
        return ndim == self._physical_ndim and self._metadata.is_valid()

    # ---------------------------------------------------------------------
    # Storage accessors
    # ---------------------------------------------------------------------
    @staticmethod
    def data_field_name() -> str:
        return DATA_FIELD_NAME

    @staticmethod
    def shape_field_name() -> str:
        return SHAPE_FIELD_NAME

    def storage(self) -> pa.StructArray:
        return self._proxy.storage

    def get_arrow_proxy(self) -> ArrowProxy:
        return self._proxy

    def data_child(self) -> pa.Array:
        return self._proxy.child(0)

    def shape_child(self) -> pa.FixedSizeListArray:
        return self._proxy.child(1)

    def to_extension_array(self) -> pa.ExtensionArray:
        return self._type.wrap_array(self._proxy.storage)

    # ---------------------------------------------------------------------
    # Element access
    # ---------------------------------------------------------------------
    def _element(self, i: int) -> VariableShapeTensor:
        raw_shape = self.shape_child()[i].as_py()
        if raw_shape is None:
            shape = (0,) * self._physical_ndim
        else:
            shape = tuple(0 if d is None else d for d in raw_shape)

        values = self.data_child()[i].values
        if values is None:
            values = pa.array([], type=self._type.value_type)
        return VariableShapeTensor(shape, values)

    def at(self, i: int) -> NullableTensor:
        """
        Return element `i` wrapped with its validity bit.

        Raises
        ------
        OutOfRangeError
            If `i` is negative or not less than `size()`.
        """
        i = operator.index(i)
        n = self.size()
        if i < 0 or i >= n:
            raise OutOfRangeError(i, n)
        return NullableTensor(self._element(i), self._proxy.storage[i].is_valid)

    def __getitem__(self, key: Union[int, slice]):
        """
        Index with Python sequence semantics.

        Integers may be negative. Slices return a new array over the selected
        elements, carrying the same metadata and name.
        """
        n = self.size()
        if isinstance(key, slice):
            start, stop, step = key.indices(n)
            storage = self._proxy.storage
            if step == 1:
                selected = storage.slice(start, max(stop - start, 0))
            else:
                indices = pa.array(list(range(start, stop, step)), type=pa.int64())
                selected = storage.take(indices)
            return self._from_storage(
                selected, self._metadata, self.name, self._user_metadata()
            )

        i = operator.index(key)
        if i < 0:
            i += n
        if i < 0 or i >= n:
            raise OutOfRangeError(operator.index(key), n)
        return self.at(i)

    def __iter__(self) -> Iterator[NullableTensor]:
        for i in range(self.size()):
            yield self.at(i)

    def to_numpy_list(self) -> List[Optional[np.ndarray]]:
        """
        Return one ndarray per element, or None for null elements.
        """
        return [t.value.to_numpy() if t.has_value else None for t in self]

    def _user_metadata(self) -> List[tuple]:
        return [
            (k, v)
            for k, v in self._proxy.metadata
            if k not in RESERVED_METADATA_KEYS
        ]

    def __repr__(self) -> str:
        return (
            f"VariableShapeTensorArray(size={self.size()}, "
            f"physical_ndim={self._physical_ndim}, "
            f"dtype={self._type.value_type}, "
            f"metadata={metadata_to_json(self._metadata)})"
        )
