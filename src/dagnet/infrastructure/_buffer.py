"""
Immutable orientation-aware buffer views.

A layer's activation and activation-gradient buffers are stored as
`BufferView` values: a physical NumPy array plus a flag recording whether the
array holds the logical ``(cases, features)`` matrix or its transpose.

Views are never mutated. Asking for a different orientation produces a new
view over a re-laid-out copy, so two consumers that disagree on orientation
can never observe each other's choice through shared state.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from typing_extensions import Self


@dataclass(frozen=True, eq=False)
class BufferView:
    """
    Physical storage plus explicit orientation.

    Attributes
    ----------
    base : np.ndarray
        Physical storage.
    transposed : bool
        True if ``base`` stores the transpose of the logical matrix
        (column-major from the consumer's point of view).
    """

    base: np.ndarray
    transposed: bool = False

    @classmethod
    def wrap(cls, matrix: np.ndarray, transposed: bool = False) -> Self:
        """
        Store a logical matrix in the requested physical orientation.

        Parameters
        ----------
        matrix : np.ndarray
            Logical ``(cases, features)`` matrix.
        transposed : bool, optional
            Physical orientation to store it in.

        Returns
        -------
        BufferView
            A view whose `matrix` equals ``matrix``.
        """
        m = np.asarray(matrix)
        if m.ndim != 2:
            raise ValueError(f"buffers must be 2-D, got shape {m.shape}")
        base = np.ascontiguousarray(m.T) if transposed else np.ascontiguousarray(m)
        return cls(base=base, transposed=bool(transposed))

    @classmethod
    def empty(cls) -> Self:
        """
        Return a released (truncated) buffer.
        """
        return cls(base=np.empty((0, 0)), transposed=False)

    @property
    def matrix(self) -> np.ndarray:
        """
        The logical ``(cases, features)`` matrix.

        Notes
        -----
        For a transposed view this is a NumPy transpose view of ``base``; the
        storage is not touched.
        """
        return self.base.T if self.transposed else self.base

    @property
    def shape(self) -> tuple[int, int]:
        """
        Logical shape ``(cases, features)``.
        """
        r, c = self.base.shape
        return (c, r) if self.transposed else (r, c)

    @property
    def is_empty(self) -> bool:
        """
        Return whether the buffer has been released.
        """
        return self.base.size == 0

    def oriented(self, transposed: bool) -> Self:
        """
        Return a view of the same logical matrix in the given orientation.

        Returns ``self`` when the orientation already matches.
        """
        if bool(transposed) == self.transposed or self.is_empty:
            return self
        return type(self).wrap(self.matrix, transposed)


EMPTY = BufferView.empty()
