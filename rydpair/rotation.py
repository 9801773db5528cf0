#! /usr/bin/env python
"""Rotations of vectors and of angular momentum states.

Euler angles follow the zyz convention, ``R = Rz(alpha) Ry(beta) Rz(gamma)``.
Wigner D-matrices follow
``D^j_{m'm}(alpha, beta, gamma) = exp(-i m' alpha) d^j_{m'm}(beta) exp(-i m gamma)``.

>>> import numpy as np
>>> round(wigner_d_small(1, 0, 0, np.pi / 3), 12)
0.5
>>> R = rotation_matrix(0.3, 1.1, -0.7)
>>> np.allclose(euler_angles_from_rotation(R), (0.3, 1.1, -0.7))
True
"""
from __future__ import annotations

import logging
from math import factorial
from typing import Optional, Sequence

import numpy as np
from scipy import sparse

from .exceptions import ConfigurationError
from .states import StateOne, StateSpace, StateTwo

logger = logging.getLogger(__name__)


def _int(value: float) -> int:
    return int(round(value))


def wigner_d_small(j: float, m1: float, m2: float, beta: float) -> float:
    """Wigner small-d matrix element ``d^j_{m1 m2}(beta)``.

    Args:
        j (float): Angular momentum (integer or half-integer).
        m1 (float): Row projection.
        m2 (float): Column projection.
        beta (float): Rotation angle about the y-axis (rad).

    Returns:
        float: The matrix element.

    >>> import numpy as np
    >>> round(wigner_d_small(0.5, 0.5, -0.5, np.pi), 12)
    -1.0
    """
    if abs(m1) > j or abs(m2) > j:
        return 0.0
    jpm1, jmm1 = _int(j + m1), _int(j - m1)
    jpm2, jmm2 = _int(j + m2), _int(j - m2)
    dm = _int(m1 - m2)
    prefactor = np.sqrt(
        float(factorial(jpm1) * factorial(jmm1) * factorial(jpm2) * factorial(jmm2))
    )
    c, s = np.cos(beta / 2), np.sin(beta / 2)
    result = 0.0
    for k in range(max(0, -dm), min(jpm2, jmm1) + 1):
        denominator = (
            factorial(jpm2 - k) * factorial(k) * factorial(dm + k) * factorial(jmm1 - k)
        )
        result += (
            (-1) ** (dm + k)
            * c ** (jpm2 + jmm1 - 2 * k)
            * s ** (dm + 2 * k)
            / denominator
        )
    return float(prefactor * result)


def wigner_d(
    j: float, m1: float, m2: float, alpha: float, beta: float, gamma: float
) -> complex:
    """Wigner D-matrix element ``D^j_{m1 m2}(alpha, beta, gamma)``."""
    return (
        np.exp(-1j * m1 * alpha)
        * wigner_d_small(j, m1, m2, beta)
        * np.exp(-1j * m2 * gamma)
    )


def rotation_matrix(alpha: float, beta: float, gamma: float) -> np.ndarray:
    """Rotation matrix from zyz Euler angles.

    >>> import numpy as np
    >>> np.allclose(rotation_matrix(0, np.pi / 2, 0) @ [0, 0, 1], [1, 0, 0])
    True
    """

    def rz(angle):
        c, s = np.cos(angle), np.sin(angle)
        return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]])

    c, s = np.cos(beta), np.sin(beta)
    ry = np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]])
    return rz(alpha) @ ry @ rz(gamma)


def rotation_matrix_from_axes(
    to_z_axis: Sequence[float], to_y_axis: Sequence[float]
) -> np.ndarray:
    """Rotation whose columns are the new x-, y- and z-axes.

    Args:
        to_z_axis: Direction of the new z-axis.
        to_y_axis: Direction of the new y-axis, orthogonal to `to_z_axis`.

    Returns:
        np.ndarray: 3x3 rotation matrix.

    >>> rotation_matrix_from_axes([1, 0, 0], [0, 1, 0]).round(12) + 0.0
    array([[ 0.,  0.,  1.],
           [ 0.,  1.,  0.],
           [-1.,  0.,  0.]])
    """
    z = np.asarray(to_z_axis, dtype=float)
    y = np.asarray(to_y_axis, dtype=float)
    if np.linalg.norm(z) == 0 or np.linalg.norm(y) == 0:
        raise ValueError("The axes must not be zero vectors.")
    z = z / np.linalg.norm(z)
    y = y / np.linalg.norm(y)
    if abs(np.dot(z, y)) > 1e-12:
        raise ValueError("The z-axis and the y-axis are not orthogonal.")
    x = np.cross(y, z)
    return np.column_stack([x, y, z])


def euler_angles_from_rotation(R: np.ndarray) -> tuple[float, float, float]:
    """Extract zyz Euler angles from a rotation matrix.

    Handles the gimbal-lock cases ``|R[2, 2]| = 1`` by setting
    ``gamma = 0``.
    """
    R = np.asarray(R, dtype=float)
    beta = float(np.arccos(np.clip(R[2, 2], -1.0, 1.0)))
    if abs(np.sin(beta)) > 1e-12:
        alpha = float(np.arctan2(R[1, 2], R[0, 2]))
        gamma = float(np.arctan2(R[2, 1], -R[2, 0]))
    elif R[2, 2] > 0:
        alpha = float(np.arctan2(R[1, 0], R[0, 0]))
        gamma = 0.0
    else:
        alpha = float(np.arctan2(-R[1, 0], -R[0, 0]))
        gamma = 0.0
    return alpha, beta, gamma


def rotate_vector(
    vector: Sequence[float],
    to_z_axis: Optional[Sequence[float]] = None,
    to_y_axis: Optional[Sequence[float]] = None,
    angles: Optional[tuple[float, float, float]] = None,
) -> np.ndarray:
    """Express a lab-frame vector in a rotated frame.

    The frame is given either by its axes or by zyz Euler angles.

    >>> rotate_vector([0, 0, 1], to_z_axis=[1, 0, 0], to_y_axis=[0, 1, 0]).round(12) + 0.0
    array([-1.,  0.,  0.])
    """
    vector = np.asarray(vector, dtype=float)
    if angles is not None:
        R = rotation_matrix(*angles)
    elif to_z_axis is not None and to_y_axis is not None:
        R = rotation_matrix_from_axes(to_z_axis, to_y_axis)
    else:
        raise ValueError("Either both axes or the Euler angles are required.")
    if np.linalg.norm(vector) == 0:
        return vector
    return R.T @ vector


class Rotator:
    """Rotate states of a registry by Wigner D-matrices.

    Components of a rotated state that are not registered are dropped.

    Args:
        state_space (StateSpace): Registry of `StateOne` or `StateTwo`.
        dtype: Scalar type of the resulting operators.
    """

    def __init__(self, state_space: StateSpace, dtype=complex):
        self.state_space = state_space
        self.dtype = np.dtype(dtype)

    def _components(self, state, alpha, beta, gamma):
        if isinstance(state, StateTwo):
            for s1, v1 in self._components(state.first, alpha, beta, gamma):
                for s2, v2 in self._components(state.second, alpha, beta, gamma):
                    yield StateTwo(s1, s2), v1 * v2
            return
        if state.is_artificial:
            yield state, 1.0
            return
        m2 = state.m
        for m1 in np.arange(-state.j, state.j + 1):
            value = wigner_d(state.j, m1, m2, alpha, beta, gamma)
            if abs(value) > 1e-14:
                yield StateOne(
                    state.species, state.n, state.l, state.j, m1, state.s
                ), value

    def _column(self, state, alpha, beta, gamma):
        rows, values = [], []
        for rotated, value in self._components(state, alpha, beta, gamma):
            idx = self.state_space.get(rotated)
            if idx is None:
                continue
            rows.append(idx)
            values.append(value)
        return rows, values

    def _matrix(self, states, alpha, beta, gamma):
        rows, cols, values = [], [], []
        for col, state in enumerate(states):
            r, v = self._column(state, alpha, beta, gamma)
            rows += r
            cols += [col] * len(r)
            values += v
        values = np.asarray(values, dtype=complex)
        if self.dtype.kind != "c":
            if np.any(np.abs(values.imag) > 1e-14):
                raise ConfigurationError(
                    "The rotation requires complex coefficients, use dtype=complex."
                )
            values = values.real
        return sparse.csc_matrix(
            (values, (rows, cols)),
            shape=(len(self.state_space), len(states)),
            dtype=self.dtype,
        )

    def build_staterotator(
        self, alpha: float, beta: float, gamma: float
    ) -> sparse.csc_matrix:
        """Square operator rotating every registered state."""
        logger.debug("Build state rotator for %d states", len(self.state_space))
        return self._matrix(self.state_space.states, alpha, beta, gamma)

    def rotate_states(
        self, states: Sequence, alpha: float, beta: float, gamma: float
    ) -> sparse.csc_matrix:
        """Rotated copies of `states` (registered or not) as columns."""
        return self._matrix(list(states), alpha, beta, gamma)

    def rotate_indices(
        self, indices: Sequence[int], alpha: float, beta: float, gamma: float
    ) -> sparse.csc_matrix:
        """Rotated copies of the registered states at `indices`."""
        return self._matrix([self.state_space[i] for i in indices], alpha, beta, gamma)
