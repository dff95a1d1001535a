from .encoding import metadata_from_json, metadata_to_json
from .extension import (
    ArrowProxy,
    VariableShapeTensorExtensionArray,
    VariableShapeTensorType,
    register_extension_types,
)
from .tensor import NullableTensor, VariableShapeTensor, VariableShapeTensorArray

__all__ = [
    "ArrowProxy",
    "NullableTensor",
    "VariableShapeTensor",
    "VariableShapeTensorArray",
    "VariableShapeTensorExtensionArray",
    "VariableShapeTensorType",
    "metadata_from_json",
    "metadata_to_json",
    "register_extension_types",
]
