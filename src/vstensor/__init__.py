"""
vstensor: a variable-shape tensor extension type for Apache Arrow.

Arrays of tensors that share a number of dimensions but not their sizes,
stored as a `struct<data: list<T>, shape: fixed_size_list<int32>[ndim]>`
column tagged `arrow.variable_shape_tensor`.
"""

from .domain import (
    OutOfRangeError,
    ParseError,
    TensorMetadata,
    ValidationError,
    VariableShapeTensorError,
)
from .infrastructure import (
    ArrowProxy,
    NullableTensor,
    VariableShapeTensor,
    VariableShapeTensorArray,
    VariableShapeTensorExtensionArray,
    VariableShapeTensorType,
    metadata_from_json,
    metadata_to_json,
    register_extension_types,
)

__version__ = "0.1.0"

__all__ = [
    "ArrowProxy",
    "NullableTensor",
    "OutOfRangeError",
    "ParseError",
    "TensorMetadata",
    "ValidationError",
    "VariableShapeTensor",
    "VariableShapeTensorArray",
    "VariableShapeTensorError",
    "VariableShapeTensorExtensionArray",
    "VariableShapeTensorType",
    "metadata_from_json",
    "metadata_to_json",
    "register_extension_types",
]
