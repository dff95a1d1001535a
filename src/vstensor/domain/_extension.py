"""
Extension identity constants.

These names form the contract between the variable-shape tensor type and the
hosting columnar framework: the registered type name, the key/value metadata
keys carrying that identity on a raw field, and the names of the two storage
children.
"""

EXTENSION_NAME = "arrow.variable_shape_tensor"

EXTENSION_NAME_KEY = "ARROW:extension:name"
EXTENSION_METADATA_KEY = "ARROW:extension:metadata"

RESERVED_METADATA_KEYS = (EXTENSION_NAME_KEY, EXTENSION_METADATA_KEY)

DATA_FIELD_NAME = "data"
SHAPE_FIELD_NAME = "shape"
