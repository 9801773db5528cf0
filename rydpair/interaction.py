#! /usr/bin/env python
"""Cache of interaction operators.

Operators are first built in the canonical basis (one coordinate per
registered state) and then transformed into the working basis of the
system.  They are stored under ``(family, key)``:

- ``EFIELD``, ``BFIELD``: key ``q``,
- ``DIAMAGNETISM``: key ``(k, q)``,
- ``MULTIPOLE``: key ``order`` (ion coupling, ``q = 0``),
- ``PAIR_MULTIPOLE``: key ``(kappa1, kappa2, q1, q2)``.

For a component ``q != 0`` the ``-q`` entry is derived as
``(-1)^q adjoint(M(q))``.
"""
from __future__ import annotations

import enum
import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Sequence

import numpy as np
from scipy import sparse

from .shared import settings
from .states import StateTwo

logger = logging.getLogger(__name__)


class Family(enum.Enum):
    """Kind of interaction operator."""

    EFIELD = "efield"
    BFIELD = "bfield"
    DIAMAGNETISM = "diamagnetism"
    MULTIPOLE = "multipole"
    PAIR_MULTIPOLE = "pair_multipole"


def component(family: Family, key) -> int:
    """Total projection ``q`` carried by a cache key.

    >>> component(Family.DIAMAGNETISM, (2, -1))
    -1
    >>> component(Family.PAIR_MULTIPOLE, (1, 1, 1, -1))
    0
    """
    if family in (Family.EFIELD, Family.BFIELD):
        return key
    if family is Family.DIAMAGNETISM:
        return key[1]
    if family is Family.MULTIPOLE:
        return 0
    return key[2] + key[3]


def negated(family: Family, key):
    """Key of the ``-q`` partner."""
    if family in (Family.EFIELD, Family.BFIELD):
        return -key
    if family is Family.DIAMAGNETISM:
        return (key[0], -key[1])
    if family is Family.MULTIPOLE:
        return key
    return (key[0], key[1], -key[2], -key[3])


def _is_artificial(state) -> bool:
    if isinstance(state, StateTwo):
        return any(state.is_artificial)
    return state.is_artificial


def _momentum(state) -> float:
    if isinstance(state, StateTwo):
        return state.M
    return state.m


def _chunks(indices: Sequence[int], size: int):
    size = max(1, int(size))
    for start in range(0, len(indices), size):
        yield indices[start : start + size]


def build_canonical(
    states: Sequence,
    element: Callable,
    shift: Optional[float] = None,
    hermitian: bool = False,
    dtype=float,
) -> sparse.csc_matrix:
    """Build an operator in the canonical basis.

    Args:
        states: Registered states in index order.
        element: ``element(row, col)`` returning the matrix element.
            Artificial states are never passed.
        shift: If given, only rows with ``m_row = m_col + shift`` are
            visited (``M`` for pair states).
        hermitian: Visit the lower triangle only and complete the matrix
            by its adjoint.
        dtype: Scalar type of the result.

    Returns:
        scipy.sparse.csc_matrix: (num_states x num_states) operator.
    """
    num = len(states)
    by_momentum = None
    if shift is not None:
        by_momentum = defaultdict(list)
        for idx, state in enumerate(states):
            if not _is_artificial(state):
                by_momentum[_momentum(state)].append(idx)
    candidates = [i for i, state in enumerate(states) if not _is_artificial(state)]

    def work(columns):
        rows, cols, values = [], [], []
        for c in columns:
            col = states[c]
            if by_momentum is None:
                row_indices = candidates
            else:
                row_indices = by_momentum.get(_momentum(col) + shift, ())
            for r in row_indices:
                if hermitian and r < c:
                    continue
                value = element(states[r], col)
                if value != 0:
                    rows.append(r)
                    cols.append(c)
                    values.append(value)
        return rows, cols, values

    chunks = list(_chunks(candidates, settings.chunk_size))
    if settings.num_workers > 1 and len(chunks) > 1:
        with ThreadPoolExecutor(max_workers=settings.num_workers) as executor:
            results = list(executor.map(work, chunks))
    else:
        results = [work(chunk) for chunk in chunks]

    rows = [r for result in results for r in result[0]]
    cols = [c for result in results for c in result[1]]
    values = [v for result in results for v in result[2]]
    matrix = sparse.csc_matrix(
        (np.asarray(values, dtype=dtype), (rows, cols)), shape=(num, num), dtype=dtype
    )
    if hermitian:
        diagonal = sparse.diags(matrix.diagonal())
        matrix = matrix + matrix.conj().T - diagonal
        matrix = sparse.csc_matrix(matrix, dtype=dtype)
    return matrix


class InteractionCache:
    """Interaction operators in the working basis.

    Args:
        dtype: Scalar type of the stored operators.

    >>> cache = InteractionCache()
    >>> cache.required_components({(Family.EFIELD, 0): 1.0, (Family.EFIELD, 1): 0.0})
    [(<Family.EFIELD: 'efield'>, 0)]
    """

    def __init__(self, dtype=float):
        self.dtype = np.dtype(dtype)
        self._entries: dict = {}

    def __repr__(self) -> str:
        lines = [f"{family.name} {key}: {matrix.shape}" for (family, key), matrix in self.items()]
        return "\n".join(lines) if lines else "InteractionCache(empty)"

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, item) -> bool:
        return item in self._entries

    def __getitem__(self, item) -> sparse.csc_matrix:
        return self._entries[item]

    def get(self, family: Family, key, default=None):
        return self._entries.get((family, key), default)

    def items(self):
        return sorted(self._entries.items(), key=lambda kv: (kv[0][0].value, str(kv[0][1])))

    def keys(self, family: Optional[Family] = None) -> list:
        return [k for k in self._entries if family is None or k[0] is family]

    def required_components(self, coefficients: dict) -> list:
        """Keys with a significant coefficient that are not cached yet."""
        tolerance = settings.interaction_tolerance
        return [
            item
            for item, coefficient in coefficients.items()
            if abs(coefficient) > tolerance and item not in self._entries
        ]

    def store(self, family: Family, key, canonical, basis):
        """Transform a canonical operator into the working basis and keep it.

        The ``-q`` partner is derived for ``q != 0``.
        """
        basis = sparse.csc_matrix(basis)
        matrix = sparse.csc_matrix(basis.conj().T @ canonical @ basis, dtype=self.dtype)
        self._entries[(family, key)] = matrix
        q = component(family, key)
        if q != 0:
            partner = negated(family, key)
            self._entries[(family, partner)] = sparse.csc_matrix(
                (-1) ** abs(q) * matrix.conj().T, dtype=self.dtype
            )
        logger.debug("Cached %s %s (%d non-zeros)", family.name, key, matrix.nnz)

    def transform(self, transformator):
        """Re-express every operator in a new basis."""
        transformator = sparse.csc_matrix(transformator)
        for item, matrix in self._entries.items():
            self._entries[item] = sparse.csc_matrix(
                transformator.conj().T @ matrix @ transformator, dtype=self.dtype
            )

    def clear(self):
        """Forget all operators."""
        self._entries.clear()
