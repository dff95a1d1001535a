"""
Raw extension-typed container.

`ArrowProxy` is the lowest-level representation of a variable-shape tensor
array: the two-child struct storage plus the field name and the ordered
key/value metadata that identify it as an extension array to readers that do
not know the type. It performs no validation on construction; the tensor array
view validates a proxy when decoding it.
"""

from __future__ import annotations

from typing import Iterable, List, Mapping, Optional, Tuple, Union

import pyarrow as pa

from ...domain._errors import ValidationError
from ...domain._extension import (
    EXTENSION_METADATA_KEY,
    EXTENSION_NAME,
    EXTENSION_NAME_KEY,
)
from ._type import VariableShapeTensorType

MetadataPairs = List[Tuple[str, str]]
MetadataLike = Union[Mapping, Iterable[Tuple[Union[str, bytes], Union[str, bytes]]]]


def _as_str(x: Union[str, bytes]) -> str:
    return x.decode("utf-8") if isinstance(x, (bytes, bytearray)) else str(x)


def normalize_metadata_pairs(metadata: Optional[MetadataLike]) -> MetadataPairs:
    """
    Convert a mapping or an iterable of pairs into a list of `(str, str)`.

    Bytes keys and values (as found in `pa.Field.metadata`) are decoded as
    UTF-8. Order is preserved.
    """
    if metadata is None:
        return []
    items = metadata.items() if isinstance(metadata, Mapping) else metadata
    return [(_as_str(k), _as_str(v)) for k, v in items]


class ArrowProxy:
    """
    Name, key/value metadata and struct storage of an extension array.

    Parameters
    ----------
    storage : pa.StructArray
        The `struct<data, shape>` storage.
    name : Optional[str], optional
        Field name of the array. Defaults to None.
    metadata : Optional[MetadataLike], optional
        Ordered key/value metadata, including the extension identity pairs.

    Notes
    -----
    `metadata` returns the internal list, so callers may edit it in place.
    Such edits are not re-validated.
    """

    __slots__ = ("_storage", "_name", "_metadata")

    def __init__(
        self,
        storage: pa.StructArray,
        name: Optional[str] = None,
        metadata: Optional[MetadataLike] = None,
    ) -> None:
        self._storage = storage
        self._name = name
        self._metadata = normalize_metadata_pairs(metadata)

    @classmethod
    def from_field(cls, field: pa.Field, storage: pa.Array) -> "ArrowProxy":
        """
        Build a proxy from a raw field and the array stored under it.
        """
        return cls(storage, field.name or None, field.metadata)

    @property
    def storage(self) -> pa.StructArray:
        return self._storage

    @property
    def name(self) -> Optional[str]:
        return self._name

    @property
    def metadata(self) -> MetadataPairs:
        return self._metadata

    def metadata_dict(self) -> dict:
        return dict(self._metadata)

    def _lookup(self, key: str) -> Optional[str]:
        for k, v in self._metadata:
            if k == key:
                return v
        return None

    @property
    def extension_name(self) -> Optional[str]:
        return self._lookup(EXTENSION_NAME_KEY)

    @property
    def extension_metadata(self) -> Optional[str]:
        return self._lookup(EXTENSION_METADATA_KEY)

    @property
    def length(self) -> int:
        return len(self._storage)

    def __len__(self) -> int:
        return len(self._storage)

    @property
    def n_children(self) -> int:
        return self._storage.type.num_fields

    def child(self, i: int) -> pa.Array:
        """
        Return the `i`-th storage child, adjusted to the storage offset.
        """
        return self._storage.field(i)

    @property
    def children(self) -> List[pa.Array]:
        return [self.child(i) for i in range(self.n_children)]

    def to_field(self) -> pa.Field:
        """
        Return the raw field describing this container.

        The field carries the storage type and every key/value pair, i.e. what
        a reader without the registered extension type sees.
        """
        return pa.field(
            self._name or "",
            self._storage.type,
            nullable=True,
            metadata=dict(self._metadata) or None,
        )

    def to_extension_array(self) -> pa.ExtensionArray:
        """
        Return the storage wrapped in `VariableShapeTensorType`.

        The type is rebuilt from the storage layout and the
        `ARROW:extension:metadata` string; the name and the remaining
        key/value pairs are not part of the result.

        Raises
        ------
        ValidationError
            If the proxy is not tagged `arrow.variable_shape_tensor` or its
            storage or metadata is invalid.
        ParseError
            If the extension metadata is not valid JSON.
        """
        if self.extension_name != EXTENSION_NAME:
            raise ValidationError(
                f"Expected extension '{EXTENSION_NAME}', "
                f"got {self.extension_name!r}."
            )
        ext_type = VariableShapeTensorType.__arrow_ext_deserialize__(
            self._storage.type, (self.extension_metadata or "").encode("utf-8")
        )
        return ext_type.wrap_array(self._storage)

    def __repr__(self) -> str:
        return (
            f"ArrowProxy(name={self._name!r}, length={self.length}, "
            f"metadata={self._metadata!r})"
        )
