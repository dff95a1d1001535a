import json
import os
import unittest
from unittest import TestCase, mock

from src.vstensor.domain._errors import ParseError
from src.vstensor.domain._metadata import TensorMetadata
from src.vstensor.infrastructure._config import STRICT_METADATA_KEYS_ENV
from src.vstensor.infrastructure.encoding._metadata_json import (
    metadata_from_json,
    metadata_from_payload,
    metadata_to_json,
    metadata_to_payload,
)


class TestMetadataToJson(TestCase):
    def test_empty_metadata(self):
        self.assertEqual(metadata_to_json(TensorMetadata()), "{}")

    def test_dim_names_only(self):
        meta = TensorMetadata(dim_names=["C", "H", "W"])
        self.assertEqual(metadata_to_json(meta), '{"dim_names":["C","H","W"]}')

    def test_permutation_only(self):
        meta = TensorMetadata(permutation=[2, 0, 1])
        self.assertEqual(metadata_to_json(meta), '{"permutation":[2,0,1]}')

    def test_uniform_shape_only(self):
        meta = TensorMetadata(uniform_shape=[400, None, 3])
        self.assertEqual(metadata_to_json(meta), '{"uniform_shape":[400,null,3]}')

    def test_dim_names_and_uniform_shape(self):
        meta = TensorMetadata(dim_names=["H", "W", "C"], uniform_shape=[400, None, 3])
        self.assertEqual(
            metadata_to_json(meta),
            '{"dim_names":["H","W","C"],"uniform_shape":[400,null,3]}',
        )

    def test_all_fields_in_fixed_order(self):
        meta = TensorMetadata(
            dim_names=["X", "Y", "Z"],
            permutation=[2, 0, 1],
            uniform_shape=[None, 10, None],
        )
        self.assertEqual(
            metadata_to_json(meta),
            '{"dim_names":["X","Y","Z"],"permutation":[2,0,1],'
            '"uniform_shape":[null,10,null]}',
        )

    def test_non_ascii_names_are_kept(self):
        meta = TensorMetadata(dim_names=["höhe"])
        self.assertEqual(metadata_to_json(meta), '{"dim_names":["höhe"]}')

    def test_quotes_are_escaped(self):
        meta = TensorMetadata(dim_names=['a"b'])
        text = metadata_to_json(meta)
        self.assertEqual(json.loads(text), {"dim_names": ['a"b']})

    def test_payload_preserves_key_order(self):
        meta = TensorMetadata(uniform_shape=[1], permutation=[0], dim_names=["a"])
        self.assertEqual(
            list(metadata_to_payload(meta)),
            ["dim_names", "permutation", "uniform_shape"],
        )


class TestMetadataFromJson(TestCase):
    def test_empty_object(self):
        meta = metadata_from_json("{}")
        self.assertTrue(meta.is_valid())
        self.assertIsNone(meta.dim_names)
        self.assertIsNone(meta.permutation)
        self.assertIsNone(meta.uniform_shape)

    def test_dim_names(self):
        meta = metadata_from_json('{"dim_names":["C","H","W"]}')
        self.assertEqual(meta.dim_names, ("C", "H", "W"))
        self.assertIsNone(meta.permutation)
        self.assertIsNone(meta.uniform_shape)

    def test_permutation(self):
        meta = metadata_from_json('{"permutation":[2,0,1]}')
        self.assertEqual(meta.permutation, (2, 0, 1))

    def test_uniform_shape_with_nulls(self):
        meta = metadata_from_json('{"uniform_shape":[400,null,3]}')
        self.assertEqual(meta.uniform_shape, (400, None, 3))

    def test_all_fields(self):
        meta = metadata_from_json(
            '{"dim_names":["H","W","C"],"permutation":[0,1,2],'
            '"uniform_shape":[400,null,3]}'
        )
        self.assertTrue(meta.is_valid())
        self.assertEqual(meta.get_ndim(), 3)

    def test_whitespace_is_tolerated(self):
        meta = metadata_from_json('  {  "dim_names"  : [ "X" , "Y" ]  }  ')
        self.assertEqual(meta.dim_names, ("X", "Y"))

    def test_interior_newlines_and_tabs(self):
        meta = metadata_from_json('{\n\t"uniform_shape" :\n[ null ,\t7 ]\n}')
        self.assertEqual(meta.uniform_shape, (None, 7))

    def test_bytes_input(self):
        meta = metadata_from_json(b'{"permutation":[1,0]}')
        self.assertEqual(meta.permutation, (1, 0))

    def test_key_order_does_not_matter(self):
        a = metadata_from_json('{"uniform_shape":[1,2],"dim_names":["a","b"]}')
        b = metadata_from_json('{"dim_names":["a","b"],"uniform_shape":[1,2]}')
        self.assertEqual(a, b)

    def test_decoding_does_not_validate(self):
        meta = metadata_from_json('{"permutation":[0,0]}')
        self.assertFalse(meta.is_valid())


class TestMetadataFromJsonErrors(TestCase):
    def test_unterminated_array(self):
        with self.assertRaises(ParseError):
            metadata_from_json('{"dim_names":["C","H","W"')

    def test_unterminated_object(self):
        with self.assertRaises(ParseError):
            metadata_from_json('{"dim_names":["C","H","W"]')

    def test_missing_delimiter(self):
        with self.assertRaises(ParseError):
            metadata_from_json('{"permutation":[0 1]}')

    def test_empty_text(self):
        with self.assertRaises(ParseError):
            metadata_from_json("")

    def test_trailing_garbage(self):
        with self.assertRaises(ParseError):
            metadata_from_json("{} x")

    def test_non_numeric_dimension(self):
        with self.assertRaises(ParseError):
            metadata_from_json('{"uniform_shape":[400,"x",3]}')

    def test_float_dimension(self):
        with self.assertRaises(ParseError):
            metadata_from_json('{"uniform_shape":[1.5]}')

    def test_boolean_permutation_entry(self):
        with self.assertRaises(ParseError):
            metadata_from_json('{"permutation":[true,false]}')

    def test_null_permutation_entry(self):
        with self.assertRaises(ParseError):
            metadata_from_json('{"permutation":[0,null]}')

    def test_non_string_dim_name(self):
        with self.assertRaises(ParseError):
            metadata_from_json('{"dim_names":[1,2]}')

    def test_field_not_an_array(self):
        with self.assertRaises(ParseError):
            metadata_from_json('{"dim_names":"HW"}')

    def test_top_level_not_an_object(self):
        with self.assertRaises(ParseError):
            metadata_from_json("[1,2,3]")

    def test_invalid_utf8(self):
        with self.assertRaises(ParseError):
            metadata_from_json(b"\xff\xfe{}")

    def test_non_text_input(self):
        for value in (None, 42, ["{}"]):
            with self.subTest(value=value):
                with self.assertRaises(ParseError):
                    metadata_from_json(value)

    def test_parse_error_keeps_text(self):
        text = '{"dim_names":['
        with self.assertRaises(ParseError) as cm:
            metadata_from_json(text)
        self.assertEqual(cm.exception.text, text)

    def test_parse_error_is_value_error(self):
        with self.assertRaises(ValueError):
            metadata_from_json("{")


class TestUnknownKeys(TestCase):
    TEXT = '{"dim_names":["a"],"extra":{"nested":[1]}}'

    def test_ignored_by_default(self):
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop(STRICT_METADATA_KEYS_ENV, None)
            meta = metadata_from_json(self.TEXT)
        self.assertEqual(meta, TensorMetadata(dim_names=["a"]))

    def test_rejected_in_strict_mode(self):
        with self.assertRaises(ParseError):
            metadata_from_json(self.TEXT, strict=True)

    def test_strict_mode_from_environment(self):
        with mock.patch.dict(os.environ, {STRICT_METADATA_KEYS_ENV: "1"}):
            with self.assertRaises(ParseError):
                metadata_from_json(self.TEXT)

    def test_explicit_argument_overrides_environment(self):
        with mock.patch.dict(os.environ, {STRICT_METADATA_KEYS_ENV: "true"}):
            meta = metadata_from_json(self.TEXT, strict=False)
        self.assertEqual(meta.dim_names, ("a",))

    def test_payload_entry_point(self):
        meta = metadata_from_payload({"permutation": [1, 0]})
        self.assertEqual(meta.permutation, (1, 0))


class TestRoundTrip(TestCase):
    def test_round_trip_preserves_metadata(self):
        cases = [
            TensorMetadata(),
            TensorMetadata(
                dim_names=["H", "W", "C"],
                permutation=[2, 0, 1],
                uniform_shape=[400, None, 3],
            ),
            TensorMetadata(uniform_shape=[None, None]),
            TensorMetadata(dim_names=[]),
            TensorMetadata(dim_names=['quote"d', "back\\slash", "tab\t"]),
        ]
        for meta in cases:
            with self.subTest(meta=meta):
                self.assertEqual(metadata_from_json(metadata_to_json(meta)), meta)

    def test_round_trip_of_invalid_metadata(self):
        meta = TensorMetadata(dim_names=["a"], permutation=[3, 3])
        self.assertEqual(metadata_from_json(metadata_to_json(meta)), meta)


if __name__ == "__main__":
    unittest.main()
