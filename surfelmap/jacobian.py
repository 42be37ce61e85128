"""Sparse Jacobian rows filled in increasing column order."""

from __future__ import annotations

from collections.abc import Iterable

import numpy as np
from scipy import sparse


class OrderedJacobianRow:
    """One sparse row of a Jacobian whose entries are appended in column order."""

    def __init__(self, non_zeros: int) -> None:
        if non_zeros < 0:
            raise ValueError("a row cannot hold a negative number of entries")
        self.capacity = non_zeros
        self.indices: list[int] = []
        self.vals: list[float] = []
        self._slot_of: dict[int, int] = {}

    def append(self, index: int, value: float) -> None:
        """Add an entry; columns must strictly increase from one call to the next."""
        last_index = self.indices[-1] if self.indices else -1
        if index <= last_index:
            raise ValueError(
                f"column {index} does not follow column {last_index}"
            )
        if len(self.indices) >= self.capacity:
            raise IndexError(f"row is full ({self.capacity} entries)")
        self._slot_of[index] = len(self.indices)
        self.indices.append(index)
        self.vals.append(float(value))

    def add_to(self, index: int, value: float, weight: float) -> None:
        """Add an unweighted value to an entry that already carries ``weight``."""
        try:
            slot = self._slot_of[index]
        except KeyError:
            raise KeyError(f"column {index} has no entry in this row") from None
        self.vals[slot] = (self.vals[slot] / weight + value) * weight

    def non_zeros(self) -> int:
        """Number of entries stored so far."""
        return len(self.indices)


class Jacobian:
    """A list of ordered sparse rows with a fixed number of columns."""

    def __init__(self) -> None:
        self.rows: list[OrderedJacobianRow] = []
        self.columns = 0

    def assign(self, rows: Iterable[OrderedJacobianRow], columns: int) -> None:
        """Replace all rows and set the column count."""
        self.rows = list(rows)
        self.columns = columns

    def non_zero(self) -> int:
        """Total number of stored entries over all rows."""
        return sum(row.non_zeros() for row in self.rows)

    def to_csr(self) -> sparse.csr_matrix:
        """The Jacobian as a CSR matrix of shape (rows, columns)."""
        indptr = np.zeros(len(self.rows) + 1, dtype=np.int64)
        indptr[1:] = np.cumsum([row.non_zeros() for row in self.rows])
        indices = np.fromiter(
            (i for row in self.rows for i in row.indices), dtype=np.int64
        )
        data = np.fromiter(
            (v for row in self.rows for v in row.vals), dtype=np.float64
        )
        if indices.size and (indices.max() >= self.columns or indices.min() < 0):
            raise ValueError("an entry lies outside the Jacobian's columns")
        return sparse.csr_matrix(
            (data, indices, indptr), shape=(len(self.rows), self.columns)
        )