"""Least-squares steps through the normal equations of a sparse Jacobian."""

from __future__ import annotations

import numpy as np
from scipy.sparse.csgraph import reverse_cuthill_mckee
from scipy.sparse.linalg import splu

from .jacobian import Jacobian


class CholeskyDecomp:
    """Solves ``JᵀJ δ = Jᵀ r``, reusing the fill-reducing ordering between calls.

    The ordering is computed on the first run and kept until :meth:`free_factor`.
    """

    def __init__(self) -> None:
        self._ordering: np.ndarray | None = None

    def free_factor(self) -> None:
        """Drop the stored ordering."""
        if self._ordering is None:
            raise RuntimeError("there is no factor to free")
        self._ordering = None

    def solve(self, jacobian: Jacobian, residual, first_run: bool) -> np.ndarray:
        """Return the Gauss-Newton step for ``jacobian`` and ``residual``."""
        a = jacobian.to_csr()
        r = np.asarray(residual, dtype=np.float64).reshape(-1)
        if r.shape[0] != a.shape[0]:
            raise ValueError(
                f"residual has {r.shape[0]} entries, the Jacobian {a.shape[0]} rows"
            )

        normal = (a.T @ a).tocsr()

        if first_run:
            if self._ordering is not None:
                raise RuntimeError("a factor is already held; free it first")
            self._ordering = np.asarray(
                reverse_cuthill_mckee(normal, symmetric_mode=True), dtype=np.int64
            )
        elif self._ordering is None:
            raise RuntimeError("no factor has been analysed yet")

        order = self._ordering
        if order.shape[0] != normal.shape[0]:
            raise ValueError("the Jacobian's columns changed since the first run")

        permuted = normal[order][:, order].tocsc()
        rhs = np.asarray(a.T @ r).reshape(-1)[order]

        factor = splu(permuted, permc_spec="NATURAL", diag_pivot_thresh=0.0)
        step = factor.solve(rhs)

        delta = np.empty_like(step)
        delta[order] = step
        return delta