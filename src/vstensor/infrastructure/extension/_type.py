"""
Arrow extension type for arrays of variable-shape tensors.

This module provides `VariableShapeTensorType`, the `pyarrow.ExtensionType`
registered under the name `arrow.variable_shape_tensor`, and
`VariableShapeTensorExtensionArray`, the `pyarrow.ExtensionArray` subclass
pyarrow instantiates for columns of that type.

Storage layout
--------------
    struct<
      data:  list<T>  (or large_list<T>)    flattened row-major values
      shape: fixed_size_list<int32>[ndim]   one shape vector per element
    >

The serialized extension metadata is the compact JSON produced by
`metadata_to_json`, so a reader that has not registered the type still sees
a plain struct column with the identity and metadata strings attached.

See Arrow extension type docs:
https://arrow.apache.org/docs/python/extending_types.html#defining-extension-types-user-defined-types
"""

from __future__ import annotations

from typing import Optional, Tuple, Union

import pyarrow as pa

from ...domain._errors import ValidationError
from ...domain._extension import (
    DATA_FIELD_NAME,
    EXTENSION_NAME,
    SHAPE_FIELD_NAME,
)
from ...domain._metadata import TensorMetadata
from ..encoding._metadata_json import metadata_from_json, metadata_to_json

SHAPE_VALUE_TYPE = pa.int32()


def data_list_type(value_type: pa.DataType, large_list: bool = False) -> pa.DataType:
    """
    Return the canonical list type of the `data` child.
    """
    return pa.large_list(value_type) if large_list else pa.list_(value_type)


def shape_list_type(ndim: int) -> pa.DataType:
    """
    Return the canonical fixed-size list type of the `shape` child.
    """
    return pa.list_(SHAPE_VALUE_TYPE, ndim)


def storage_type_for(
    value_type: pa.DataType, ndim: int, large_list: bool = False
) -> pa.StructType:
    """
    Return the canonical `struct<data, shape>` storage type.
    """
    return pa.struct(
        [
            pa.field(DATA_FIELD_NAME, data_list_type(value_type, large_list)),
            pa.field(SHAPE_FIELD_NAME, shape_list_type(ndim)),
        ]
    )


def check_storage_type(storage_type: pa.DataType) -> Tuple[pa.DataType, int, bool]:
    """
    Verify that a storage type has the variable-shape tensor layout.

    Parameters
    ----------
    storage_type : pa.DataType
        Candidate storage type.

    Returns
    -------
    tuple[pa.DataType, int, bool]
        `(value_type, ndim, large_list)` extracted from the layout.

    Raises
    ------
    ValidationError
        If the type is not a two-field struct named `data`, `shape` in that
        order, if `data` is not a (large) list, or if `shape` is not a
        fixed-size list of int32.
    """
    if not pa.types.is_struct(storage_type):
        raise ValidationError(
            f"Variable-shape tensor storage must be a struct, got {storage_type}."
        )
    if storage_type.num_fields != 2:
        raise ValidationError(
            "Variable-shape tensor storage must have exactly 2 fields, "
            f"got {storage_type.num_fields}."
        )

    data_field = storage_type.field(0)
    shape_field = storage_type.field(1)
    if (data_field.name, shape_field.name) != (DATA_FIELD_NAME, SHAPE_FIELD_NAME):
        raise ValidationError(
            f"Variable-shape tensor storage fields must be named "
            f"('{DATA_FIELD_NAME}', '{SHAPE_FIELD_NAME}'), "
            f"got ('{data_field.name}', '{shape_field.name}')."
        )

    data_type = data_field.type
    if pa.types.is_list(data_type):
        large_list = False
    elif pa.types.is_large_list(data_type):
        large_list = True
    else:
        raise ValidationError(
            f"'{DATA_FIELD_NAME}' child must be a list or large_list, got {data_type}."
        )

    shape_type = shape_field.type
    if not pa.types.is_fixed_size_list(shape_type):
        raise ValidationError(
            f"'{SHAPE_FIELD_NAME}' child must be a fixed_size_list, got {shape_type}."
        )
    if shape_type.value_type != SHAPE_VALUE_TYPE:
        raise ValidationError(
            f"'{SHAPE_FIELD_NAME}' child values must be {SHAPE_VALUE_TYPE}, "
            f"got {shape_type.value_type}."
        )

    return data_type.value_type, shape_type.list_size, large_list


class VariableShapeTensorType(pa.ExtensionType):
    """
    Arrow ExtensionType for an array of heterogeneous-shaped, homogeneous-typed
    tensors with a fixed number of dimensions.

    Parameters
    ----------
    value_type : pa.DataType
        Type of the tensor element values.
    ndim : int
        Number of dimensions; the length of every shape vector.
    metadata : Optional[TensorMetadata], optional
        Dimension names, permutation and uniform shape. Defaults to metadata
        with every field absent.
    large_list : bool, optional
        Store `data` as `large_list` (64-bit offsets). Defaults to False.

    Raises
    ------
    ValidationError
        If `ndim` is negative, `metadata` is invalid, or the metadata implies
        a dimensionality other than `ndim`.
    """

    def __init__(
        self,
        value_type: pa.DataType,
        ndim: int,
        metadata: Optional[TensorMetadata] = None,
        large_list: bool = False,
    ):
        ndim = int(ndim)
        if ndim < 0:
            raise ValidationError(f"ndim must be non-negative, got {ndim}.")
        if metadata is None:
            metadata = TensorMetadata()
        metadata.validate()
        meta_ndim = metadata.get_ndim()
        if meta_ndim is not None and meta_ndim != ndim:
            raise ValidationError(
                f"Tensor metadata implies {meta_ndim} dimensions but ndim is {ndim}."
            )

        self._ndim = ndim
        self._tensor_metadata = metadata
        self._large_list = bool(large_list)
        super().__init__(storage_type_for(value_type, ndim, large_list), EXTENSION_NAME)

    @property
    def ndim(self) -> int:
        """Return the number of dimensions in the tensor elements."""
        return self._ndim

    @property
    def value_type(self) -> pa.DataType:
        """Return the type of the underlying tensor values."""
        return self.storage_type.field(0).type.value_type

    @property
    def large_list(self) -> bool:
        return self._large_list

    @property
    def tensor_metadata(self) -> TensorMetadata:
        return self._tensor_metadata

    @property
    def extension_metadata_json(self) -> str:
        return metadata_to_json(self._tensor_metadata)

    def __arrow_ext_serialize__(self) -> bytes:
        return self.extension_metadata_json.encode("utf-8")

    @classmethod
    def __arrow_ext_deserialize__(
        cls, storage_type: pa.DataType, serialized: Union[bytes, str]
    ) -> "VariableShapeTensorType":
        """
        Rebuild the type from its storage type and serialized metadata.

        Raises
        ------
        ValidationError
            If the storage layout or the decoded metadata is invalid.
        ParseError
            If the serialized metadata is not valid JSON.
        """
        value_type, ndim, large_list = check_storage_type(storage_type)
        metadata = metadata_from_json(serialized) if serialized else TensorMetadata()
        return cls(value_type, ndim, metadata, large_list)

    def __reduce__(self):
        return self.__arrow_ext_deserialize__, (
            self.storage_type,
            self.__arrow_ext_serialize__(),
        )

    def __arrow_ext_class__(self):
        """
        ExtensionArray subclass with custom logic for this array of tensors
        type.
        """
        return VariableShapeTensorExtensionArray

    def __str__(self) -> str:
        return (
            f"VariableShapeTensorType(ndim={self.ndim}, dtype={self.value_type}, "
            f"metadata={self.extension_metadata_json})"
        )

    def __repr__(self) -> str:
        return str(self)


class VariableShapeTensorExtensionArray(pa.ExtensionArray):
    """
    pyarrow-level array of variable-shape tensors.

    Instances are created by pyarrow whenever a column has the registered
    `VariableShapeTensorType`; `to_tensor_array()` turns one into the
    validated, element-indexable view.
    """

    def to_tensor_array(self, name: Optional[str] = None):
        from ..tensor._variable_shape_tensor_array import VariableShapeTensorArray

        return VariableShapeTensorArray.from_extension_array(self, name=name)

    def to_numpy_list(self):
        """
        Return one ndarray per element, or None for null elements.
        """
        return self.to_tensor_array().to_numpy_list()
