from ._errors import (
    OutOfRangeError,
    ParseError,
    ValidationError,
    VariableShapeTensorError,
)
from ._extension import DATA_FIELD_NAME, EXTENSION_NAME, SHAPE_FIELD_NAME
from ._metadata import TensorMetadata, as_metadata
from ._tensor_array import INullableTensor, ITensorElement, IVariableShapeTensorArray

__all__ = [
    "DATA_FIELD_NAME",
    "EXTENSION_NAME",
    "SHAPE_FIELD_NAME",
    "INullableTensor",
    "ITensorElement",
    "IVariableShapeTensorArray",
    "OutOfRangeError",
    "ParseError",
    "TensorMetadata",
    "ValidationError",
    "VariableShapeTensorError",
    "as_metadata",
]
