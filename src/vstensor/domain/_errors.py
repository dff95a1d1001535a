"""
Validation, parsing and indexing exceptions for vstensor.

This module defines the error kinds raised by the variable-shape tensor
extension type. All of them derive from `VariableShapeTensorError` so that
callers can catch the whole family at once, and each one also derives from
the closest built-in exception (`ValueError` or `IndexError`) so that code
written against plain Python containers keeps working.

Errors are raised eagerly and synchronously: a tensor array is never
partially constructed, and metadata text is never partially decoded.
"""

from __future__ import annotations

from typing import Optional


class VariableShapeTensorError(Exception):
    """
    Base class for all errors raised by vstensor.
    """


class ValidationError(VariableShapeTensorError, ValueError):
    """
    Raised when tensor metadata or tensor array structure is inconsistent.

    Typical causes are:
    - metadata fields that disagree on the number of dimensions,
    - an invalid permutation or a non-positive uniform dimension,
    - a shape child whose per-element length differs from `ndim`,
    - data and shape children with different element counts,
    - a validity bitmap whose length differs from the element count,
    - a storage layout that is not `struct<data, shape>`.
    """


class ParseError(VariableShapeTensorError, ValueError):
    """
    Raised when serialized tensor metadata cannot be decoded.

    Attributes
    ----------
    text : Optional[str]
        The offending input text, if available.
    """

    def __init__(self, message: str, text: Optional[str] = None) -> None:
        """
        Initialize the ParseError.

        Parameters
        ----------
        message : str
            Human-readable description of what went wrong.
        text : Optional[str], optional
            The input that failed to parse. Defaults to None.
        """
        super().__init__(message)
        self.text = text


class OutOfRangeError(VariableShapeTensorError, IndexError):
    """
    Raised when a tensor array is indexed at or beyond its size.

    Attributes
    ----------
    index : int
        The requested element index.
    size : int
        The number of elements in the array.
    """

    def __init__(self, index: int, size: int) -> None:
        """
        Initialize the OutOfRangeError.

        Parameters
        ----------
        index : int
            The requested element index.
        size : int
            The number of elements in the array.
        """
        super().__init__(f"Index {index} out of range for array of size {size}.")
        self.index = index
        self.size = size
