#! /usr/bin/env python
"""Small helpers shared by the systems.

    Ranges
        - ``half_range(lo, hi)``: integer or half-integer range, both ends
          included.
        - ``restriction(first, last)``: a closed range or an explicit set,
          as accepted by the ``restrict_*`` mutators.

    Fields
        - ``spherical_components(vector)``: Cartesian vector to spherical
          components ``{+1, 0, -1}``.
        - ``diamagnetic_terms(spherical)``: products of magnetic field
          components entering the diamagnetic interaction.

    Sparse helpers
        - ``selector(num, indices)``: sparse matrix picking columns.
        - ``dominant_rows(matrix)``: row of the largest entry per column.
"""
from __future__ import annotations

from typing import Iterable, Optional, Union

import numpy as np
from scipy import sparse


def half_range(lo: float, hi: float) -> list:
    """Values ``lo, lo + 1, ..., hi``.

    >>> half_range(-1.5, 1.5)
    [-1.5, -0.5, 0.5, 1.5]
    >>> half_range(1, 0)
    []
    """
    count = int(round(hi - lo)) + 1
    return [lo + i for i in range(max(count, 0))]


def restriction(
    first: Union[float, Iterable[float], None], last: Optional[float] = None
) -> Optional[frozenset]:
    """Normalize a quantum number restriction.

    Args:
        first: Lower end of a closed range, an explicit collection of
            values, or `None` for no restriction.
        last: Upper end of the closed range.

    Returns:
        frozenset: Allowed values, or `None` for no restriction. An empty
        collection is no restriction either, the values are then derived
        from the other restrictions and the energy window.

    >>> sorted(restriction(1, 3))
    [1, 2, 3]
    >>> sorted(restriction([0.5, -0.5]))
    [-0.5, 0.5]
    >>> restriction([]) is None
    True
    """
    if first is None:
        return None
    if last is not None:
        return frozenset(half_range(first, last))
    if isinstance(first, (int, float, np.number)):
        return frozenset([first])
    return frozenset(first) or None


def spherical_components(vector) -> dict:
    """Spherical components of a Cartesian vector.

    >>> c = spherical_components([1.0, 0.0, 2.0])
    >>> round(c[1].real, 6), round(c[-1].real, 6), c[0]
    (-0.707107, 0.707107, (2+0j))
    """
    x, y, z = (float(v) for v in vector)
    return {
        1: complex(-x, -y) / np.sqrt(2),
        0: complex(z, 0),
        -1: complex(x, -y) / np.sqrt(2),
    }


def diamagnetic_terms(b: dict) -> dict:
    """Field products ``(k, q)`` of the diamagnetic interaction."""
    return {
        (0, 0): b[0] * b[0] - 2 * b[1] * b[-1],
        (2, 0): b[0] * b[0] + b[1] * b[-1],
        (2, 1): b[0] * b[-1],
        (2, -1): b[0] * b[1],
        (2, 2): b[-1] * b[-1],
        (2, -2): b[1] * b[1],
    }


def selector(num: int, indices: Iterable[int], dtype=float) -> sparse.csc_matrix:
    """(num x len(indices)) matrix with a one at ``(indices[k], k)``."""
    indices = np.asarray(list(indices), dtype=int)
    return sparse.csc_matrix(
        (np.ones(len(indices), dtype=dtype), (indices, np.arange(len(indices)))),
        shape=(num, len(indices)),
    )


def dominant_rows(matrix) -> np.ndarray:
    """Row index of the entry with the largest magnitude in each column."""
    matrix = abs(sparse.csc_matrix(matrix))
    return np.asarray(matrix.argmax(axis=0)).ravel()
