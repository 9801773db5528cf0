#! /usr/bin/env python
"""Matrix elements of single-atom operators.

The systems query matrix elements through the `MatrixElementSource`
protocol.  Any object providing these methods can be plugged in, e.g. a
wrapper around a database of numerically integrated radial wave
functions.

`AngularMatrixElementCache` is the reference implementation.  The
angular algebra is exact (Wigner 3j and 6j symbols from
`sympy.physics.wigner`); the radial integrals are closed-form estimates,
selected with `Method`:

- ``HYDROGENIC``: hydrogen expectation values of ``r^p`` evaluated at the
  mean principal quantum number,
- ``SEMICLASSICAL``: the same expressions evaluated at the geometric mean
  of the effective principal quantum numbers.

Both multiply off-diagonal integrals by the overlap factor
``sin(pi d) / (pi d)`` where ``d`` is the difference of the effective
principal quantum numbers, so that hydrogen manifolds decouple.

Units: energies in GHz, electric multipoles in e·µm^kappa, magnetic
dipoles in Bohr magnetons, diamagnetic elements in µm².

>>> from rydpair.states import StateOne
>>> cache = AngularMatrixElementCache()
>>> s = StateOne("H", 10, 0, 0.5, 0.5)
>>> p = StateOne("H", 10, 1, 0.5, 0.5)
>>> round(cache.get_radial(s, s, 1), 6)
150.0
>>> selection_rule_multipole(s, p, 1, 0)
True
"""
from __future__ import annotations

import enum
import functools
import logging
from pathlib import Path
from typing import Iterable, Optional, Protocol, runtime_checkable

import numpy as np
from sympy import Rational
from sympy.physics.wigner import wigner_3j, wigner_6j

from .data import Species
from .shared import constants
from .states import StateOne

logger = logging.getLogger(__name__)


class Method(enum.Enum):
    """Strategy for the radial integrals."""

    HYDROGENIC = "hydrogenic"
    SEMICLASSICAL = "semiclassical"


@runtime_checkable
class MatrixElementSource(Protocol):
    """Call contract of a matrix-element source."""

    def get_energy(self, state: StateOne) -> float: ...

    def get_nstar(self, state: StateOne) -> float: ...

    def get_electric_dipole(self, row: StateOne, col: StateOne) -> float: ...

    def get_magnetic_dipole(self, row: StateOne, col: StateOne) -> float: ...

    def get_diamagnetism(self, row: StateOne, col: StateOne, k: int) -> float: ...

    def get_electric_multipole(
        self, row: StateOne, col: StateOne, kappa: int
    ) -> float: ...

    def get_radial(self, row: StateOne, col: StateOne, power: int) -> float: ...

    def precalculate_electric_momentum(self, states: list, q: int): ...

    def precalculate_magnetic_momentum(self, states: list, q: int): ...

    def precalculate_diamagnetism(self, states: list, k: int, q: int): ...

    def precalculate_multipole(self, states: list, kappa: int): ...

    def set_method(self, method: Method): ...

    def set_defect_db(self, path: Path): ...


##################
# Selection rules


def selection_rule_momentum(row: StateOne, col: StateOne, q: int) -> bool:
    """Projection conservation ``m_row = m_col + q``."""
    return row.m == col.m + q


def selection_rule_multipole(
    row: StateOne, col: StateOne, kappa: int, q: Optional[int] = None
) -> bool:
    """Selection rule of the electric multipole ``r^kappa C^kappa_q``.

    >>> s = StateOne("Rb", 30, 0, 0.5, 0.5)
    >>> selection_rule_multipole(s, s, 1)
    False
    >>> selection_rule_multipole(s, s, 2, 0)
    False
    >>> d = StateOne("Rb", 30, 2, 1.5, 0.5)
    >>> selection_rule_multipole(s, d, 2, 0)
    True
    """
    if row.species != col.species:
        return False
    if abs(row.l - col.l) > kappa or (row.l + col.l + kappa) % 2 != 0:
        return False
    if abs(row.j - col.j) > kappa or row.j + col.j < kappa:
        return False
    if row.l + col.l < kappa:
        return False
    return q is None or selection_rule_momentum(row, col, q)


def selection_rule_magnetic(
    row: StateOne, col: StateOne, q: Optional[int] = None
) -> bool:
    """Selection rule of the magnetic dipole ``L + g_s S``."""
    if row.species != col.species or row.n != col.n or row.l != col.l:
        return False
    if abs(row.j - col.j) > 1:
        return False
    return q is None or selection_rule_momentum(row, col, q)


def selection_rule_diamagnetic(
    row: StateOne, col: StateOne, k: int, q: Optional[int] = None
) -> bool:
    """Selection rule of the diamagnetic term ``r^2 C^k_q`` (k = 0, 2)."""
    if k not in (0, 2):
        return False
    if row.species != col.species:
        return False
    if abs(row.l - col.l) > k or (row.l + col.l + k) % 2 != 0:
        return False
    if abs(row.j - col.j) > k:
        return False
    return q is None or selection_rule_momentum(row, col, q)


##################
# Angular algebra


def _half(value: float) -> Rational:
    return Rational(int(round(2 * value)), 2)


@functools.lru_cache(maxsize=None)
def _threej(j1, j2, j3, m1, m2, m3) -> float:
    return float(
        wigner_3j(_half(j1), _half(j2), _half(j3), _half(m1), _half(m2), _half(m3))
    )


@functools.lru_cache(maxsize=None)
def _sixj(j1, j2, j3, j4, j5, j6) -> float:
    return float(
        wigner_6j(_half(j1), _half(j2), _half(j3), _half(j4), _half(j5), _half(j6))
    )


def _phase(exponent: float) -> int:
    return -1 if int(round(exponent)) % 2 else 1


def wigner_eckart(j1: float, m1: float, k: int, q: int, j2: float, m2: float) -> float:
    """Geometric factor ``(-1)^(j1-m1) (j1 k j2; -m1 q m2)``."""
    return _phase(j1 - m1) * _threej(j1, k, j2, -m1, q, m2)


def reduced_spherical_harmonic(l1: int, k: int, l2: int) -> float:
    """Reduced matrix element ``<l1||C^k||l2>``.

    >>> round(reduced_spherical_harmonic(0, 1, 1), 12)
    -1.0
    """
    return float(
        _phase(l1) * np.sqrt((2 * l1 + 1) * (2 * l2 + 1)) * _threej(l1, k, l2, 0, 0, 0)
    )


def reduced_coupled_orbital(row: StateOne, col: StateOne, k: int) -> float:
    """Orbital reduced element ``<l s j||T^k(l)||l' s j'>`` without ``<l||T^k||l'>``."""
    return (
        _phase(row.l + row.s + col.j + k)
        * np.sqrt((2 * row.j + 1) * (2 * col.j + 1))
        * _sixj(row.l, row.j, row.s, col.j, col.l, k)
    )


def reduced_coupled_spin(row: StateOne, col: StateOne, k: int) -> float:
    """Spin reduced element ``<l s j||U^k(s)||l s j'>`` without ``<s||U^k||s>``."""
    return (
        _phase(row.l + row.s + row.j + k)
        * np.sqrt((2 * row.j + 1) * (2 * col.j + 1))
        * _sixj(row.s, row.j, row.l, col.j, col.s, k)
    )


def angular_multipole(row: StateOne, col: StateOne, k: int) -> float:
    """``<l s j m|C^k_q|l' s j' m'>`` with ``q = m - m'``."""
    q = int(round(row.m - col.m))
    if abs(q) > k:
        return 0.0
    return (
        wigner_eckart(row.j, row.m, k, q, col.j, col.m)
        * reduced_coupled_orbital(row, col, k)
        * reduced_spherical_harmonic(row.l, k, col.l)
    )


##################
# Radial estimates


def _leading_coefficient(power: int) -> float:
    # hydrogen <r^p> ~ c_p n^(2p) for large n
    return float(
        np.prod(np.arange(power + 2, 2 * power + 2))
        / (2**power * np.prod(np.arange(1, power + 1)))
    )


def hydrogenic_radial(n: float, l1: int, l2: int, power: int) -> float:
    """Hydrogen-like radial integral ``<n l1|r^power|n l2>`` in Bohr radii.

    Exact for hydrogen with ``power`` 1 and 2, leading order in ``n``
    otherwise.

    >>> hydrogenic_radial(10, 0, 0, 1)
    150.0
    >>> round(hydrogenic_radial(10, 0, 1, 1), 6)
    149.248116
    """
    if power == 0:
        return 1.0 if l1 == l2 else 0.0
    lmax = max(l1, l2)
    if power == 1:
        if l1 == l2:
            return float((3 * n**2 - l1 * (l1 + 1)) / 2)
        if abs(l1 - l2) == 1:
            return float(1.5 * n * np.sqrt(max(n**2 - lmax**2, 0.0)))
    if power == 2:
        if l1 == l2:
            return float(n**2 * (5 * n**2 + 1 - 3 * l1 * (l1 + 1)) / 2)
        if abs(l1 - l2) == 2:
            return float(
                2.5
                * n**2
                * np.sqrt(max((n**2 - lmax**2) * (n**2 - (lmax - 1) ** 2), 0.0))
            )
    return float(_leading_coefficient(power) * n ** (2 * power))


class AngularMatrixElementCache:
    """Reference matrix-element source.

    Args:
        method (Method): Strategy for the radial integrals.

    Examples:
        >>> cache = AngularMatrixElementCache(Method.SEMICLASSICAL)
        >>> s = StateOne("Rb", 30, 0, 0.5, 0.5)
        >>> round(cache.get_nstar(s), 4)
        26.8686
        >>> cache.get_energy(StateOne.artificial("G"))
        0.0
    """

    def __init__(self, method: Method = Method.HYDROGENIC):
        self.method = Method(method)
        self._species: dict = {}
        self._radial: dict = {}

    def __repr__(self) -> str:
        lines = [
            f"Method: {self.method.name}",
            f"Cached radial integrals: {len(self._radial)}",
        ]
        return "\n".join(lines)

    def set_method(self, method: Method):
        """Switch the radial strategy and forget cached integrals."""
        self.method = Method(method)
        self._radial.clear()

    def set_defect_db(self, path: Path):
        """Load a different quantum defect table (JSON)."""
        Species.load_database(path)
        self._species.clear()
        self._radial.clear()

    def _get_species(self, symbol: str) -> Species:
        species = self._species.get(symbol)
        if species is None:
            species = self._species[symbol] = Species(symbol)
        return species

    def get_nstar(self, state: StateOne) -> float:
        """Effective principal quantum number."""
        return self._get_species(state.species).nstar(state.n, state.l, state.j)

    def get_energy(self, state: StateOne) -> float:
        """Energy in GHz; artificial states have zero energy."""
        if state.is_artificial:
            return 0.0
        return self._get_species(state.species).energy(state.n, state.l, state.j)

    def _radial_key(self, row, col, power):
        a = (row.n, row.l, row.j)
        b = (col.n, col.l, col.j)
        return (row.species, power) + (a + b if a <= b else b + a)

    def get_radial(self, row: StateOne, col: StateOne, power: int) -> float:
        """Radial integral ``<row|r^power|col>`` in units of the Bohr radius."""
        key = self._radial_key(row, col, power)
        value = self._radial.get(key)
        if value is None:
            value = self._radial[key] = self._compute_radial(row, col, power)
        return value

    def _compute_radial(self, row, col, power) -> float:
        nstar_row, nstar_col = self.get_nstar(row), self.get_nstar(col)
        if self.method is Method.HYDROGENIC:
            n = (row.n + col.n) / 2
        else:
            n = np.sqrt(nstar_row * nstar_col)
        overlap = np.sinc(nstar_row - nstar_col)
        return float(hydrogenic_radial(n, row.l, col.l, power) * overlap)

    def get_electric_multipole(self, row: StateOne, col: StateOne, kappa: int) -> float:
        """Multipole ``-r^kappa C^kappa_q`` of the electron in e·µm^kappa."""
        if not selection_rule_multipole(row, col, kappa):
            return 0.0
        angular = angular_multipole(row, col, kappa)
        if angular == 0:
            return 0.0
        radial = self.get_radial(row, col, kappa) * constants.a_0**kappa
        return -radial * angular

    def get_electric_dipole(self, row: StateOne, col: StateOne) -> float:
        """Electric dipole ``-r C^1_q`` in e·µm."""
        return self.get_electric_multipole(row, col, 1)

    def get_magnetic_dipole(self, row: StateOne, col: StateOne) -> float:
        """Magnetic dipole ``-(L + g_s S)_q`` in Bohr magnetons."""
        if not selection_rule_magnetic(row, col):
            return 0.0
        q = int(round(row.m - col.m))
        if abs(q) > 1:
            return 0.0
        geometric = wigner_eckart(row.j, row.m, 1, q, col.j, col.m)
        orbital = reduced_coupled_orbital(row, col, 1) * np.sqrt(
            row.l * (row.l + 1) * (2 * row.l + 1)
        )
        spin = reduced_coupled_spin(row, col, 1) * np.sqrt(
            row.s * (row.s + 1) * (2 * row.s + 1)
        )
        return float(
            -geometric * (constants.g_l * orbital + constants.g_s * spin)
        )

    def get_diamagnetism(self, row: StateOne, col: StateOne, k: int) -> float:
        """Diamagnetic element ``(2/3) r^2 C^k_q`` in µm²."""
        if not selection_rule_diamagnetic(row, col, k):
            return 0.0
        angular = angular_multipole(row, col, k)
        if angular == 0:
            return 0.0
        radial = self.get_radial(row, col, 2) * constants.a_0**2
        return 2 / 3 * radial * angular

    def _channels(self, states: Iterable[StateOne]) -> list:
        seen = {}
        for state in states:
            if state.is_artificial:
                continue
            seen.setdefault((state.species, state.n, state.l, state.j), state)
        return list(seen.values())

    def _precalculate_radial(self, states, rule, power):
        channels = self._channels(states)
        before = len(self._radial)
        for i, row in enumerate(channels):
            for col in channels[i:]:
                if rule(row, col):
                    self.get_radial(row, col, power)
        logger.debug(
            "Precalculated %d radial integrals (power %d) for %d channels",
            len(self._radial) - before,
            power,
            len(channels),
        )

    def precalculate_electric_momentum(self, states: list, q: int):
        """Cache the radial integrals of the electric dipole."""
        self._precalculate_radial(
            states, lambda r, c: selection_rule_multipole(r, c, 1), 1
        )

    def precalculate_magnetic_momentum(self, states: list, q: int):
        """Nothing to cache: the magnetic dipole is purely angular."""

    def precalculate_diamagnetism(self, states: list, k: int, q: int):
        """Cache the radial integrals of the diamagnetic term."""
        self._precalculate_radial(
            states, lambda r, c: selection_rule_diamagnetic(r, c, k), 2
        )

    def precalculate_multipole(self, states: list, kappa: int):
        """Cache the radial integrals of the electric multipole."""
        self._precalculate_radial(
            states, lambda r, c: selection_rule_multipole(r, c, kappa), kappa
        )
