from ._proxy import ArrowProxy, normalize_metadata_pairs
from ._registry import is_registered, register_extension_types
from ._type import (
    VariableShapeTensorExtensionArray,
    VariableShapeTensorType,
    check_storage_type,
)

__all__ = [
    "ArrowProxy",
    "VariableShapeTensorExtensionArray",
    "VariableShapeTensorType",
    "check_storage_type",
    "is_registered",
    "normalize_metadata_pairs",
    "register_extension_types",
]
