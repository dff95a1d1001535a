"""
Compact JSON codec for variable-shape tensor metadata.

Wire format
-----------
    {
      "dim_names": ["H", "W", "C"],
      "permutation": [0, 1, 2],
      "uniform_shape": [400, null, 3]
    }

Every key is optional. Encoding emits only present fields, always in the
order `dim_names`, `permutation`, `uniform_shape`, without whitespace, so the
output is deterministic and can be compared byte-for-byte. Metadata with no
present field encodes to `{}`.

Decoding accepts any JSON whitespace and `str`/`bytes` input. It checks the
shape of the document (an object of lists of the right scalar kinds) but not
the metadata invariants; callers that need those call
`TensorMetadata.validate()`.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Union

from ...domain._errors import ParseError
from ...domain._metadata import TensorMetadata
from .._config import strict_metadata_keys

logger = logging.getLogger(__name__)

DIM_NAMES_KEY = "dim_names"
PERMUTATION_KEY = "permutation"
UNIFORM_SHAPE_KEY = "uniform_shape"

KNOWN_KEYS = (DIM_NAMES_KEY, PERMUTATION_KEY, UNIFORM_SHAPE_KEY)


def metadata_to_payload(meta: TensorMetadata) -> Dict[str, List[Any]]:
    """
    Convert metadata into a JSON-safe dict holding only the present fields.

    The dict preserves the canonical key order.
    """
    payload: Dict[str, List[Any]] = {}
    if meta.dim_names is not None:
        payload[DIM_NAMES_KEY] = [str(n) for n in meta.dim_names]
    if meta.permutation is not None:
        payload[PERMUTATION_KEY] = [int(p) for p in meta.permutation]
    if meta.uniform_shape is not None:
        payload[UNIFORM_SHAPE_KEY] = [
            None if d is None else int(d) for d in meta.uniform_shape
        ]
    return payload


def metadata_to_json(meta: TensorMetadata) -> str:
    """
    Serialize metadata to its compact JSON text.

    Parameters
    ----------
    meta : TensorMetadata
        Metadata to encode. It does not need to be valid.

    Returns
    -------
    str
        e.g. `{"dim_names":["C","H","W"]}`, or `{}` when every field is absent.
    """
    return json.dumps(
        metadata_to_payload(meta), separators=(",", ":"), ensure_ascii=False
    )


def _is_int(x: Any) -> bool:
    # bool is a subclass of int but is not a dimension value
    return isinstance(x, int) and not isinstance(x, bool)


def _expect_list(key: str, value: Any, text: str) -> list:
    if not isinstance(value, list):
        raise ParseError(
            f"Expected a JSON array for '{key}', got {type(value).__name__}.", text
        )
    return value


def metadata_from_payload(
    payload: Any, text: Optional[str] = None, strict: Optional[bool] = None
) -> TensorMetadata:
    """
    Build metadata from an already-decoded JSON object.

    Parameters
    ----------
    payload : Any
        The decoded JSON document; must be a dict.
    text : Optional[str], optional
        Original text, attached to raised errors.
    strict : Optional[bool], optional
        Reject unknown keys. Defaults to the `VSTENSOR_STRICT_METADATA_KEYS`
        environment switch.

    Raises
    ------
    ParseError
        If the document is not an object of correctly-typed arrays.
    """
    if not isinstance(payload, dict):
        raise ParseError(
            f"Tensor metadata must be a JSON object, got {type(payload).__name__}.",
            text,
        )

    unknown = [k for k in payload if k not in KNOWN_KEYS]
    if unknown:
        if strict_metadata_keys(strict):
            raise ParseError(f"Unknown tensor metadata keys: {unknown}.", text)
        logger.debug("Ignoring unknown tensor metadata keys: %s", unknown)

    dim_names = None
    if DIM_NAMES_KEY in payload:
        raw = _expect_list(DIM_NAMES_KEY, payload[DIM_NAMES_KEY], text)
        for name in raw:
            if not isinstance(name, str):
                raise ParseError(
                    f"'{DIM_NAMES_KEY}' entries must be strings, got {name!r}.", text
                )
        dim_names = tuple(raw)

    permutation = None
    if PERMUTATION_KEY in payload:
        raw = _expect_list(PERMUTATION_KEY, payload[PERMUTATION_KEY], text)
        for p in raw:
            if not _is_int(p):
                raise ParseError(
                    f"'{PERMUTATION_KEY}' entries must be integers, got {p!r}.", text
                )
        permutation = tuple(raw)

    uniform_shape = None
    if UNIFORM_SHAPE_KEY in payload:
        raw = _expect_list(UNIFORM_SHAPE_KEY, payload[UNIFORM_SHAPE_KEY], text)
        for d in raw:
            if d is not None and not _is_int(d):
                raise ParseError(
                    f"'{UNIFORM_SHAPE_KEY}' entries must be integers or null, "
                    f"got {d!r}.",
                    text,
                )
        uniform_shape = tuple(raw)

    return TensorMetadata(
        dim_names=dim_names, permutation=permutation, uniform_shape=uniform_shape
    )


def metadata_from_json(
    text: Union[str, bytes, bytearray], strict: Optional[bool] = None
) -> TensorMetadata:
    """
    Parse metadata from its JSON text.

    Parameters
    ----------
    text : Union[str, bytes, bytearray]
        JSON text; bytes are decoded as UTF-8.
    strict : Optional[bool], optional
        Reject unknown keys instead of ignoring them. Defaults to the
        `VSTENSOR_STRICT_METADATA_KEYS` environment switch.

    Returns
    -------
    TensorMetadata
        The decoded metadata. It is not validated.

    Raises
    ------
    ParseError
        On malformed JSON (unterminated object or array, missing delimiter,
        trailing characters), on a document of the wrong shape, or on input
        that is neither text nor bytes.
    """
    if isinstance(text, (bytes, bytearray)):
        try:
            text = bytes(text).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"Tensor metadata is not valid UTF-8: {e}") from e
    elif not isinstance(text, str):
        raise ParseError(
            f"Tensor metadata must be str or bytes, got {type(text).__name__}."
        )

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(
            f"Malformed tensor metadata JSON: {e.msg} at pos {e.pos}.", text
        ) from e

    return metadata_from_payload(payload, text=text, strict=strict)
