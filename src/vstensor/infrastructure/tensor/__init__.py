from ._tensor_element import NullableTensor, VariableShapeTensor
from ._variable_shape_tensor_array import VariableShapeTensorArray

__all__ = [
    NullableTensor.__name__,
    VariableShapeTensor.__name__,
    VariableShapeTensorArray.__name__,
]
