"""
Variable-shape tensor metadata model.

`TensorMetadata` holds the three optional descriptive fields attached to a
variable-shape tensor array:

- `dim_names`: one human-readable name per dimension (e.g. ("H", "W", "C"))
- `permutation`: the physical-to-logical dimension order, a bijection on
  `[0, ndim)`
- `uniform_shape`: one entry per dimension; an integer marks a dimension whose
  size is the same for every element, `None` marks a varying dimension

Every field may be absent (`None`). Whichever fields are present must agree on
a common length, which is the dimensionality implied by the metadata.

The model is a frozen dataclass: instances are immutable, hashable and compare
field by field. Input sequences are normalized to tuples, so metadata built
from lists equals metadata built from tuples.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from ._errors import ValidationError


def _is_integer(x: object) -> bool:
    return isinstance(x, numbers.Integral) and not isinstance(x, bool)


@dataclass(frozen=True)
class TensorMetadata:
    """
    Descriptive metadata shared by all elements of a variable-shape tensor array.

    Parameters
    ----------
    dim_names : Optional[Sequence[str]], optional
        Dimension names, one per dimension. Defaults to None (absent).
    permutation : Optional[Sequence[int]], optional
        Physical-to-logical dimension permutation. Defaults to None (absent).
    uniform_shape : Optional[Sequence[Optional[int]]], optional
        Per-dimension fixed sizes; `None` entries mark varying dimensions.
        Defaults to None (absent).

    Notes
    -----
    Construction never validates; use `is_valid()` or `validate()`. This allows
    decoding and inspecting metadata that violates the invariants.
    """

    dim_names: Optional[Tuple[str, ...]] = None
    permutation: Optional[Tuple[int, ...]] = None
    uniform_shape: Optional[Tuple[Optional[int], ...]] = None

    def __post_init__(self) -> None:
        for field_name in ("dim_names", "permutation", "uniform_shape"):
            value = getattr(self, field_name)
            if value is not None and not isinstance(value, tuple):
                object.__setattr__(self, field_name, tuple(value))

    # ---------------------------------------------------------------------
    # Dimensionality
    # ---------------------------------------------------------------------
    def _present_lengths(self) -> list[Tuple[str, int]]:
        out: list[Tuple[str, int]] = []
        if self.dim_names is not None:
            out.append(("dim_names", len(self.dim_names)))
        if self.permutation is not None:
            out.append(("permutation", len(self.permutation)))
        if self.uniform_shape is not None:
            out.append(("uniform_shape", len(self.uniform_shape)))
        return out

    def get_ndim(self) -> Optional[int]:
        """
        Return the dimensionality implied by the present fields.

        Returns
        -------
        Optional[int]
            The common length of the present fields, or None if all three
            fields are absent.

        Notes
        -----
        For valid metadata all present fields agree, so the result does not
        depend on which field is consulted. For invalid metadata the first
        present field in the order `dim_names`, `permutation`,
        `uniform_shape` wins.
        """
        lengths = self._present_lengths()
        if not lengths:
            return None
        return lengths[0][1]

    # ---------------------------------------------------------------------
    # Validation
    # ---------------------------------------------------------------------
    def _first_violation(self) -> Optional[str]:
        lengths = self._present_lengths()
        for (name_a, len_a), (name_b, len_b) in zip(lengths, lengths[1:]):
            if len_a != len_b:
                return (
                    f"{name_a} implies {len_a} dimensions but "
                    f"{name_b} implies {len_b}"
                )

        if self.dim_names is not None:
            for i, name in enumerate(self.dim_names):
                if not isinstance(name, str):
                    return f"dim_names[{i}] must be a string, got {name!r}"

        if self.permutation is not None:
            perm = self.permutation
            n = len(perm)
            if n == 0:
                return "permutation must not be empty"
            seen = set()
            for i, p in enumerate(perm):
                if not _is_integer(p):
                    return f"permutation[{i}] must be an integer, got {p!r}"
                if p < 0 or p >= n:
                    return f"permutation entry {p} is outside [0, {n})"
                if p in seen:
                    return f"permutation entry {p} is duplicated"
                seen.add(p)

        if self.uniform_shape is not None:
            for i, dim in enumerate(self.uniform_shape):
                if dim is None:
                    continue
                if not _is_integer(dim):
                    return (
                        f"uniform_shape[{i}] must be an integer or None, "
                        f"got {dim!r}"
                    )
                if dim <= 0:
                    return (
                        f"uniform_shape[{i}] must be a positive integer, got {dim}"
                    )

        return None

    def is_valid(self) -> bool:
        """
        Check the metadata invariants.

        Returns
        -------
        bool
            False if two present fields disagree in length, if an entry has
            the wrong type (non-string name, non-integer permutation or
            uniform_shape entry; `bool` does not count as an integer), if
            `permutation` is empty or holds a negative, out-of-range or
            duplicate entry, or if a present `uniform_shape` entry is not
            strictly positive.
            True otherwise, including when every field is absent.
        """
        return self._first_violation() is None

    def validate(self) -> None:
        """
        Raise if the metadata invariants do not hold.

        Raises
        ------
        ValidationError
            Describing the first violated rule.
        """
        reason = self._first_violation()
        if reason is not None:
            raise ValidationError(f"Invalid tensor metadata: {reason}.")

    # ---------------------------------------------------------------------
    # Uniform dimensions
    # ---------------------------------------------------------------------
    def uniform_dimensions(self) -> Tuple[int, ...]:
        """
        Return the indices of dimensions with a fixed size.
        """
        if self.uniform_shape is None:
            return ()
        return tuple(i for i, d in enumerate(self.uniform_shape) if d is not None)

    def variable_dimensions(self) -> Tuple[int, ...]:
        """
        Return the indices of dimensions whose size varies across elements.

        When `uniform_shape` is absent every dimension is considered varying;
        the result is then `range(get_ndim())`, or empty if the dimensionality
        is unknown.
        """
        if self.uniform_shape is None:
            ndim = self.get_ndim()
            return tuple(range(ndim)) if ndim is not None else ()
        return tuple(i for i, d in enumerate(self.uniform_shape) if d is None)

    @classmethod
    def empty(cls) -> "TensorMetadata":
        """
        Return metadata with every field absent.
        """
        return cls()


def as_metadata(
    dim_names: Optional[Sequence[str]] = None,
    permutation: Optional[Sequence[int]] = None,
    uniform_shape: Optional[Sequence[Optional[int]]] = None,
) -> TensorMetadata:
    """
    Build and validate a `TensorMetadata` in one step.

    Raises
    ------
    ValidationError
        If the resulting metadata is invalid.
    """
    meta = TensorMetadata(dim_names, permutation, uniform_shape)
    meta.validate()
    return meta
