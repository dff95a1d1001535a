from ._metadata_json import (
    metadata_from_json,
    metadata_from_payload,
    metadata_to_json,
    metadata_to_payload,
)

__all__ = [
    "metadata_from_json",
    "metadata_from_payload",
    "metadata_to_json",
    "metadata_to_payload",
]
