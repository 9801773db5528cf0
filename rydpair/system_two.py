#! /usr/bin/env python
"""Pairs of Rydberg atoms.

`SystemTwo` combines two one-atom systems.  Its basis is built from the
products of the one-atom eigenvectors whose summed energy lies in the
pair energy window.  The products are projected onto the requested
permutation, inversion and reflection eigenspaces, and linearly
dependent vectors are removed.  The atoms interact through the
multipole expansion of the Coulomb interaction; the interatomic axis
lies in the xz-plane, tilted by ``angle`` from the z-axis.

>>> from rydpair.system import SystemOne
>>> one = SystemOne("Rb")
>>> one.restrict_n(30)
>>> one.restrict_l(0)
>>> pair = SystemTwo(one, one)
>>> pair.restrict_energy(2 * one.get_energies().min() - 1, 2 * one.get_energies().max() + 1)
>>> pair.get_num_basisvectors()
4
"""
from __future__ import annotations

import logging
from math import factorial
from typing import Iterable, Optional

import numpy as np
from scipy import linalg, sparse

from .exceptions import ConfigurationError, IncompatibleSystemsError
from .interaction import Family, build_canonical
from .matrix_elements import MatrixElementSource, selection_rule_multipole
from .rotation import wigner_d_small
from .shared import conversion, settings
from .states import StateOne, StateSpace, StateTwo
from .symmetry import ARB, Parity, normalize_momenta
from .system import SystemBase, SystemOne
from .utils import selector

logger = logging.getLogger(__name__)


def multipole_coefficient(kappa1: int, kappa2: int, q: int) -> float:
    """Angular coefficient of ``Q1^kappa1_q Q2^kappa2_-q`` for an axis along z.

    >>> multipole_coefficient(1, 1, 0), multipole_coefficient(1, 1, 1)
    (-2.0, -1.0)
    """
    if abs(q) > min(kappa1, kappa2):
        return 0.0
    return float(
        (-1) ** kappa2
        * factorial(kappa1 + kappa2)
        / np.sqrt(
            float(
                factorial(kappa1 + q)
                * factorial(kappa1 - q)
                * factorial(kappa2 + q)
                * factorial(kappa2 - q)
            )
        )
    )


def rotated_multipole_coefficient(
    kappa1: int, kappa2: int, q1: int, q2: int, angle: float
) -> float:
    """Angular coefficient of ``Q1^kappa1_q1 Q2^kappa2_q2`` for a tilted axis.

    The interatomic axis is rotated by `angle` about the y-axis.

    >>> import numpy as np
    >>> round(rotated_multipole_coefficient(1, 1, 0, 0, np.pi / 2), 12)
    1.0
    """
    if angle == 0:
        return multipole_coefficient(kappa1, kappa2, q1) if q1 + q2 == 0 else 0.0
    return float(
        sum(
            multipole_coefficient(kappa1, kappa2, p)
            * wigner_d_small(kappa1, q1, p, angle)
            * wigner_d_small(kappa2, q2, -p, angle)
            for p in range(-min(kappa1, kappa2), min(kappa1, kappa2) + 1)
        )
    )


def _reflection_phase(state: StateOne) -> complex:
    if state.is_artificial:
        return 1.0
    return 1j * (-1) ** int(round(state.l + state.m - state.j))


def _columns(matrix: sparse.csc_matrix):
    for col in range(matrix.shape[1]):
        start, stop = matrix.indptr[col], matrix.indptr[col + 1]
        yield list(zip(matrix.indices[start:stop], matrix.data[start:stop]))


class SystemTwo(SystemBase):
    """Pair of atoms built from two one-atom systems.

    Both systems must share their fields and the diamagnetism flag.
    Building the pair basis diagonalizes both systems.

    Args:
        system1 (SystemOne): First atom.
        system2 (SystemOne): Second atom.
        source (MatrixElementSource): Defaults to the source of `system1`.
    """

    def __init__(
        self,
        system1: SystemOne,
        system2: SystemOne,
        source: Optional[MatrixElementSource] = None,
    ):
        if system1.dtype is not system2.dtype:
            raise IncompatibleSystemsError("Both systems must use the same scalar type.")
        if not np.array_equal(system1.efield, system2.efield):
            raise IncompatibleSystemsError(
                "The value of the variable 'efield' must be the same for both systems."
            )
        if not np.array_equal(system1.bfield, system2.bfield):
            raise IncompatibleSystemsError(
                "The value of the variable 'bfield' must be the same for both systems."
            )
        if system1.diamagnetism != system2.diamagnetism:
            raise IncompatibleSystemsError(
                "The value of the variable 'diamagnetism' must be the same for both systems."
            )
        super().__init__(system1.source if source is None else source, system1.dtype)
        self.system1 = system1
        self.system2 = system2
        self.species = (system1.species, system2.species)
        self.efield = system1.efield
        self.bfield = system1.bfield
        self.diamagnetism = system1.diamagnetism
        self.distance = np.inf
        self.angle = 0.0
        self.ordermax = 3
        self._single = None

    ##################
    # Parameters

    def set_distance(self, distance: float):
        """Interatomic distance in µm."""
        self._on_parameter_change()
        self.distance = float(distance)

    def set_angle(self, angle: float):
        """Angle (rad) between the interatomic axis and the z-axis."""
        if angle != 0 and not self.symmetry.arbitrary_momenta:
            raise ConfigurationError(
                "If the interatomic axis is tilted, the momentum is not conserved."
            )
        self._on_parameter_change()
        self.angle = float(angle)

    def set_order(self, order: int):
        """Highest order ``kappa1 + kappa2 + 1`` of the multipole expansion."""
        if order < 3:
            raise ConfigurationError("The order of the multipole expansion must be at least 3.")
        self._on_parameter_change()
        self.ordermax = int(order)

    def set_conserved_momenta_under_rotation(self, momenta: Iterable[float]):
        momenta = normalize_momenta(momenta)
        if self.angle != 0 and momenta != frozenset([ARB]):
            raise ConfigurationError(
                "If the interatomic axis is tilted, the momentum is not conserved."
            )
        super().set_conserved_momenta_under_rotation(momenta)

    def _check_homonuclear(self, parity: Parity):
        if Parity(parity) is not Parity.NA and self.species[0] != self.species[1]:
            raise ConfigurationError(
                "Permutation and inversion symmetry require atoms of the same species."
            )

    def set_conserved_parity_under_permutation(self, parity: Parity):
        """Parity under exchange of the atoms."""
        self._check_homonuclear(parity)
        self.symmetry.set_permutation(parity)
        self._on_symmetry_change()

    def set_conserved_parity_under_inversion(self, parity: Parity):
        """Parity under inversion through the centre of the pair."""
        self._check_homonuclear(parity)
        self.symmetry.set_inversion(parity)
        self._on_symmetry_change()

    ##################
    # Basis

    def _symmetry_operators(self):
        sym = self.symmetry
        operators = []
        if sym.permutation is not Parity.NA:
            operators.append((lambda s: (s.swapped(), 1.0), sym.permutation))
        if sym.inversion is not Parity.NA:
            operators.append(
                (lambda s: (s.swapped(), (-1.0) ** (s.first.l + s.second.l)), sym.inversion)
            )
        if sym.reflection is not Parity.NA:
            operators.append(
                (
                    lambda s: (
                        s.reflected(),
                        _reflection_phase(s.first) * _reflection_phase(s.second),
                    ),
                    sym.reflection,
                )
            )
        return operators

    def _project(self, vector: dict, operators) -> dict:
        tolerance = settings.basis_tolerance
        for operator, parity in operators:
            image = {}
            for state, value in vector.items():
                target, phase = operator(state)
                image[target] = image.get(target, 0) + phase * value
            vector = {
                state: vector.get(state, 0) + parity.sign * image.get(state, 0)
                for state in set(vector) | set(image)
            }
            vector = {s: v for s, v in vector.items() if abs(v) > tolerance}
            if not vector:
                return {}
        norm = np.sqrt(sum(abs(v) ** 2 for v in vector.values()))
        return {s: v / norm for s, v in vector.items()}

    def _initialize_basis(self):
        sym = self.symmetry
        if sym.permutation is not Parity.NA or sym.inversion is not Parity.NA:
            self._check_homonuclear(Parity.EVEN)
        if self.angle != 0 and not sym.arbitrary_momenta:
            raise ConfigurationError(
                "If the interatomic axis is tilted, the momentum is not conserved."
            )

        for system in (self.system1, self.system2):
            system.diagonalize()
        singles = []
        for system in (self.system1, self.system2):
            states = system.get_states()
            basis = sparse.csc_matrix(system.get_basisvectors())
            energies = system.get_energies()
            hamiltonian = basis @ sparse.diags(energies) @ basis.conj().T
            singles.append(
                {
                    "states": states,
                    "index": {s: i for i, s in enumerate(states)},
                    "raw": dict(zip(states, system.get_state_energies())),
                    "columns": list(_columns(basis)),
                    "energies": energies,
                    "hamiltonian": sparse.csc_matrix(hamiltonian),
                }
            )
        first, second = singles
        if (sym.permutation is not Parity.NA or sym.inversion is not Parity.NA) and set(
            first["states"]
        ) != set(second["states"]):
            raise ConfigurationError(
                "Permutation and inversion symmetry require both atoms to share their states."
            )
        self._single = singles

        operators = self._symmetry_operators()
        candidates = []
        for a, col1 in enumerate(first["columns"]):
            for b, col2 in enumerate(second["columns"]):
                energy = first["energies"][a] + second["energies"][b]
                if not self._is_energy_valid(energy):
                    continue
                vector = {}
                for i, x in col1:
                    for j, y in col2:
                        state = StateTwo(first["states"][i], second["states"][j])
                        if not sym.allows_momentum(state.M):
                            continue
                        vector[state] = vector.get(state, 0) + x * y
                vector = self._project(vector, operators)
                if vector:
                    candidates.append((energy, vector))

        candidates.sort(key=lambda c: c[0])
        groups, current = [], []
        for candidate in candidates:
            if current and candidate[0] - current[-1][0] > 1e-6:
                groups.append(current)
                current = []
            current.append(candidate)
        if current:
            groups.append(current)

        rows, cols, values, pair_energies = [], [], [], []
        for group in groups:
            group_states = sorted({s for _, vector in group for s in vector})
            position = {s: k for k, s in enumerate(group_states)}
            matrix = np.zeros((len(group_states), len(group)), dtype=complex)
            for col, (_, vector) in enumerate(group):
                for state, value in vector.items():
                    matrix[position[state], col] = value
            if not np.any(matrix.imag):
                matrix = matrix.real
            gram = matrix.conj().T @ matrix
            if np.allclose(gram, np.eye(len(group)), atol=1e-10):
                orthonormal = matrix
            else:
                orthonormal = linalg.orth(matrix)
            energy = float(np.mean([e for e, _ in group]))
            for k in range(orthonormal.shape[1]):
                column = orthonormal[:, k]
                # fix the global phase
                pivot = column[np.argmax(np.abs(column) > 1e-8)]
                column = column * abs(pivot) / pivot
                idx = len(pair_energies)
                pair_energies.append(energy)
                for pos in np.flatnonzero(np.abs(column) > settings.basis_tolerance):
                    state = group_states[pos]
                    rows.append(self.states.add(state))
                    cols.append(idx)
                    values.append(column[pos])

        values = np.asarray(values, dtype=complex)
        if self.dtype is np.float64:
            if np.any(np.abs(values.imag) > 1e-10):
                raise ConfigurationError(
                    "The pair basis requires complex arithmetic, use dtype=complex."
                )
            values = values.real
        self.basisvectors = sparse.csc_matrix(
            (values, (rows, cols)),
            shape=(len(self.states), len(pair_energies)),
            dtype=self.dtype,
        )
        self._state_energies = np.array(
            [first["raw"][s.first] + second["raw"][s.second] for s in self.states],
            dtype=float,
        )
        logger.debug(
            "Pair basis: %d candidates, %d basis vectors", len(candidates), len(pair_energies)
        )

    def _update_unperturbed(self):
        if not len(self.states):
            self.hamiltonian_unperturbed = sparse.csc_matrix((0, 0), dtype=self.dtype)
            return
        first, second = self._single
        i = [first["index"][s.first] for s in self.states]
        j = [second["index"][s.second] for s in self.states]
        s1 = selector(len(first["states"]), i)
        s2 = selector(len(second["states"]), j)
        same1 = s1.T @ s1
        same2 = s2.T @ s2
        h1 = first["hamiltonian"][i, :][:, i]
        h2 = second["hamiltonian"][j, :][:, j]
        canonical = h1.multiply(same2) + h2.multiply(same1)
        B = self.basisvectors
        self.hamiltonian_unperturbed = sparse.csc_matrix(
            B.conj().T @ canonical @ B, dtype=self.dtype
        )

    ##################
    # Interactions

    def _keys(self):
        for kappa1 in range(1, self.ordermax - 1):
            for kappa2 in range(1, self.ordermax - kappa1):
                for q1 in range(-kappa1, kappa1 + 1):
                    for q2 in range(-kappa2, kappa2 + 1):
                        yield kappa1, kappa2, q1, q2

    def _coefficients(self) -> dict:
        coefficients = {}
        if not np.isfinite(self.distance):
            return coefficients
        for key in self._keys():
            kappa1, kappa2, q1, q2 = key
            angular = rotated_multipole_coefficient(kappa1, kappa2, q1, q2, self.angle)
            coefficients[(Family.PAIR_MULTIPOLE, key)] = complex(
                conversion.coulomb * angular / self.distance ** (kappa1 + kappa2 + 1)
            )
        return coefficients

    def _single_states(self) -> list:
        states = StateSpace()
        for state in self.states:
            states.add(state.first)
            states.add(state.second)
        return states.states

    def _precalculate(self, required: list):
        kappas = sorted({kappa for _, key in required for kappa in key[:2]})
        states = self._single_states()
        for kappa in kappas:
            self.source.precalculate_multipole(states, kappa)

    def _build_interaction(self, family: Family, key) -> sparse.csc_matrix:
        if family is not Family.PAIR_MULTIPOLE:
            raise ValueError(f"{family} is not a pair interaction.")
        kappa1, kappa2, q1, q2 = key
        source = self.source

        def element(row: StateTwo, col: StateTwo):
            if not selection_rule_multipole(row.first, col.first, kappa1, q1):
                return 0
            if not selection_rule_multipole(row.second, col.second, kappa2, q2):
                return 0
            return source.get_electric_multipole(
                row.first, col.first, kappa1
            ) * source.get_electric_multipole(row.second, col.second, kappa2)

        logger.debug("Build PAIR_MULTIPOLE %s for %d states", key, len(self.states))
        return build_canonical(
            self.states.states,
            element,
            shift=q1 + q2,
            hermitian=(q1 == 0 and q2 == 0),
            dtype=self.dtype,
        )
