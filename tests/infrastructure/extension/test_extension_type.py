import pickle
import unittest
from unittest import TestCase, mock

import numpy as np
import pyarrow as pa

from src.vstensor.domain._errors import ParseError, ValidationError
from src.vstensor.domain._extension import EXTENSION_NAME
from src.vstensor.domain._metadata import TensorMetadata
from src.vstensor.infrastructure.extension import _registry
from src.vstensor.infrastructure.extension._registry import (
    is_registered,
    register_extension_types,
)
from src.vstensor.infrastructure.extension._type import (
    VariableShapeTensorExtensionArray,
    VariableShapeTensorType,
    check_storage_type,
)
from src.vstensor.infrastructure.tensor._variable_shape_tensor_array import (
    VariableShapeTensorArray,
)


class _ForeignTensorType(pa.ExtensionType):
    """Another implementation registered under the same extension name."""

    def __init__(self, storage_type: pa.DataType, serialized: bytes = b"{}"):
        self._serialized = serialized
        super().__init__(storage_type, EXTENSION_NAME)

    def __arrow_ext_serialize__(self) -> bytes:
        return self._serialized

    @classmethod
    def __arrow_ext_deserialize__(cls, storage_type, serialized):
        return cls(storage_type, serialized)


def _ipc_round_trip(batch: pa.RecordBatch) -> pa.Table:
    sink = pa.BufferOutputStream()
    with pa.ipc.new_stream(sink, batch.schema) as writer:
        writer.write_batch(batch)
    return pa.ipc.open_stream(sink.getvalue()).read_all()


class TestVariableShapeTensorType(TestCase):
    def test_storage_layout(self):
        t = VariableShapeTensorType(pa.float32(), 3)
        self.assertEqual(t.extension_name, EXTENSION_NAME)
        self.assertEqual(
            t.storage_type,
            pa.struct(
                [
                    ("data", pa.list_(pa.float32())),
                    ("shape", pa.list_(pa.int32(), 3)),
                ]
            ),
        )
        self.assertEqual(t.ndim, 3)
        self.assertEqual(t.value_type, pa.float32())
        self.assertFalse(t.large_list)

    def test_large_list_storage(self):
        t = VariableShapeTensorType(pa.int8(), 2, large_list=True)
        self.assertTrue(pa.types.is_large_list(t.storage_type.field(0).type))
        self.assertTrue(t.large_list)

    def test_serializes_metadata_as_compact_json(self):
        meta = TensorMetadata(dim_names=["H", "W"], uniform_shape=[None, 3])
        t = VariableShapeTensorType(pa.float64(), 2, meta)
        self.assertEqual(
            t.__arrow_ext_serialize__(),
            b'{"dim_names":["H","W"],"uniform_shape":[null,3]}',
        )

    def test_default_metadata_serializes_to_empty_object(self):
        t = VariableShapeTensorType(pa.int32(), 1)
        self.assertEqual(t.__arrow_ext_serialize__(), b"{}")
        self.assertEqual(t.tensor_metadata, TensorMetadata())

    def test_rejects_invalid_metadata(self):
        with self.assertRaises(ValidationError):
            VariableShapeTensorType(pa.int32(), 2, TensorMetadata(permutation=[0, 0]))

    def test_rejects_negative_ndim(self):
        with self.assertRaises(ValidationError):
            VariableShapeTensorType(pa.int32(), -1)

    def test_rejects_metadata_with_other_ndim(self):
        meta = TensorMetadata(dim_names=["a", "b", "c"])
        with self.assertRaises(ValidationError):
            VariableShapeTensorType(pa.int32(), 2, meta)
        self.assertEqual(VariableShapeTensorType(pa.int32(), 3, meta).ndim, 3)

    def test_deserialize_round_trip(self):
        meta = TensorMetadata(permutation=[1, 0])
        t = VariableShapeTensorType(pa.int16(), 2, meta)
        back = VariableShapeTensorType.__arrow_ext_deserialize__(
            t.storage_type, t.__arrow_ext_serialize__()
        )
        self.assertEqual(back.ndim, 2)
        self.assertEqual(back.value_type, pa.int16())
        self.assertEqual(back.tensor_metadata, meta)

    def test_deserialize_empty_metadata(self):
        t = VariableShapeTensorType(pa.int16(), 2)
        back = VariableShapeTensorType.__arrow_ext_deserialize__(t.storage_type, b"")
        self.assertEqual(back.tensor_metadata, TensorMetadata())

    def test_deserialize_rejects_bad_storage(self):
        storage = pa.struct(
            [("values", pa.list_(pa.int32())), ("shape", pa.list_(pa.int32(), 2))]
        )
        with self.assertRaises(ValidationError):
            VariableShapeTensorType.__arrow_ext_deserialize__(storage, b"{}")

    def test_deserialize_rejects_invalid_metadata(self):
        t = VariableShapeTensorType(pa.int32(), 2)
        with self.assertRaises(ValidationError):
            VariableShapeTensorType.__arrow_ext_deserialize__(
                t.storage_type, b'{"dim_names":["a","b","c"]}'
            )

    def test_deserialize_rejects_malformed_metadata(self):
        t = VariableShapeTensorType(pa.int32(), 2)
        with self.assertRaises(ParseError):
            VariableShapeTensorType.__arrow_ext_deserialize__(t.storage_type, b"{")

    def test_pickle_round_trip(self):
        meta = TensorMetadata(dim_names=["a", "b"])
        t = VariableShapeTensorType(pa.float32(), 2, meta)
        back = pickle.loads(pickle.dumps(t))
        self.assertIsInstance(back, VariableShapeTensorType)
        self.assertEqual(back.tensor_metadata, meta)
        self.assertEqual(back.storage_type, t.storage_type)

    def test_str_mentions_ndim_and_dtype(self):
        s = str(VariableShapeTensorType(pa.float32(), 2))
        self.assertIn("ndim=2", s)
        self.assertIn("float", s)


class TestCheckStorageType(TestCase):
    def test_accepts_canonical_layout(self):
        storage = VariableShapeTensorType(pa.uint8(), 4).storage_type
        self.assertEqual(check_storage_type(storage), (pa.uint8(), 4, False))

    def test_rejects_non_struct(self):
        with self.assertRaises(ValidationError):
            check_storage_type(pa.list_(pa.int32()))

    def test_rejects_wrong_field_count(self):
        with self.assertRaises(ValidationError):
            check_storage_type(pa.struct([("data", pa.list_(pa.int32()))]))

    def test_rejects_swapped_fields(self):
        storage = pa.struct(
            [("shape", pa.list_(pa.int32(), 2)), ("data", pa.list_(pa.int32()))]
        )
        with self.assertRaises(ValidationError):
            check_storage_type(storage)

    def test_rejects_non_list_data(self):
        storage = pa.struct([("data", pa.int32()), ("shape", pa.list_(pa.int32(), 2))])
        with self.assertRaises(ValidationError):
            check_storage_type(storage)

    def test_rejects_variable_size_shape(self):
        storage = pa.struct(
            [("data", pa.list_(pa.int32())), ("shape", pa.list_(pa.int32()))]
        )
        with self.assertRaises(ValidationError):
            check_storage_type(storage)

    def test_rejects_int64_shape(self):
        storage = pa.struct(
            [("data", pa.list_(pa.int32())), ("shape", pa.list_(pa.int64(), 2))]
        )
        with self.assertRaises(ValidationError):
            check_storage_type(storage)


class TestRegistration(TestCase):
    def test_registration_is_idempotent(self):
        register_extension_types()
        self.assertTrue(is_registered())
        self.assertFalse(register_extension_types())
        self.assertTrue(is_registered())

    def test_ipc_round_trip_preserves_type_and_metadata(self):
        register_extension_types()
        meta = TensorMetadata(dim_names=["H", "W"], uniform_shape=[None, 2])
        arr = VariableShapeTensorArray.from_numpy(
            [np.arange(4, dtype=np.float32).reshape(2, 2), None, np.ones((3, 2))],
            metadata=meta,
        )
        batch = pa.RecordBatch.from_arrays([arr.to_extension_array()], names=["t"])
        table = _ipc_round_trip(batch)

        column = table.column("t")
        self.assertIsInstance(column.type, VariableShapeTensorType)
        self.assertEqual(column.type.tensor_metadata, meta)
        self.assertIsInstance(column.chunk(0), VariableShapeTensorExtensionArray)

        back = column.chunk(0).to_tensor_array(name="t")
        self.assertEqual(back.size(), 3)
        self.assertEqual(back.get_metadata(), meta)
        self.assertFalse(back.at(1).has_value)
        np.testing.assert_array_equal(
            back.at(0).value.to_numpy(), np.arange(4).reshape(2, 2)
        )

    def test_decode_from_field_after_ipc_read(self):
        register_extension_types()
        arr = VariableShapeTensorArray.from_numpy(
            [np.zeros((1, 2)), np.ones((2, 2))],
            metadata=TensorMetadata(dim_names=["row", "col"]),
        )
        batch = pa.RecordBatch.from_arrays([arr.to_extension_array()], names=["t"])
        table = _ipc_round_trip(batch)

        back = VariableShapeTensorArray.from_field(
            table.schema.field("t"), table.column("t")
        )
        self.assertEqual(back.name, "t")
        self.assertEqual(back.get_metadata().dim_names, ("row", "col"))
        self.assertEqual(list(back), list(arr))

    def test_replaces_other_type_registered_under_the_name(self):
        register_extension_types()
        storage_type = VariableShapeTensorType(pa.int64(), 1).storage_type
        pa.unregister_extension_type(EXTENSION_NAME)
        pa.register_extension_type(_ForeignTensorType(storage_type))
        try:
            with mock.patch.object(_registry, "_registered", False):
                self.assertTrue(register_extension_types())
                self.assertTrue(is_registered())

            arr = VariableShapeTensorArray.from_numpy([np.arange(3)])
            batch = pa.RecordBatch.from_arrays(
                [arr.to_extension_array()], names=["t"]
            )
            column = _ipc_round_trip(batch).column("t")
            self.assertIsInstance(column.type, VariableShapeTensorType)
        finally:
            pa.unregister_extension_type(EXTENSION_NAME)
            pa.register_extension_type(VariableShapeTensorType(pa.int64(), 1))


if __name__ == "__main__":
    unittest.main()
