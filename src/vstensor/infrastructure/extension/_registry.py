"""
Process-wide registration of the variable-shape tensor extension type.

pyarrow maps an extension name to a type through a global registry.
Registration is needed before Arrow IPC data (or data imported through the C
data interface) carrying `arrow.variable_shape_tensor` is rebuilt as
`VariableShapeTensorType`. Without it such columns arrive either as plain
struct storage with the identity strings left in the field metadata, or, on
pyarrow builds that ship their own canonical implementation of the name, as a
generic `pa.BaseExtensionType`. The tensor array decode paths accept all three
forms.

Tensor array constructors never register the type themselves. Applications
call `register_extension_types()` once at startup; repeated calls are no-ops.
"""

from __future__ import annotations

import logging

import pyarrow as pa

from ...domain._extension import EXTENSION_NAME
from ._type import VariableShapeTensorType

logger = logging.getLogger(__name__)

_registered = False


def register_extension_types() -> bool:
    """
    Register `VariableShapeTensorType` with pyarrow (idempotent).

    If the extension name is already taken by another implementation, such
    as a canonical type built into pyarrow, that registration is replaced.

    Returns
    -------
    bool
        True if this call performed the registration, False if this module
        had already registered the type in this process.
    """
    global _registered
    if _registered:
        return False

    # Registration needs an extension type instance, but then works for any
    # instance of the same subclass regardless of parametrization.
    instance = VariableShapeTensorType(pa.int64(), 1)
    try:
        pa.register_extension_type(instance)
    except pa.ArrowKeyError:
        logger.debug(
            "Extension name %s is taken by another type; replacing it with %s",
            EXTENSION_NAME,
            VariableShapeTensorType,
        )
        pa.unregister_extension_type(EXTENSION_NAME)
        pa.register_extension_type(instance)

    logger.debug("Registered extension type %s", VariableShapeTensorType)
    _registered = True
    return True


def is_registered() -> bool:
    """
    Report whether `register_extension_types()` has registered the type in
    this process.
    """
    return _registered
