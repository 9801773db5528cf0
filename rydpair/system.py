#! /usr/bin/env python
"""One-atom systems and the machinery shared with pair systems.

A system owns

- the registry of states (`rydpair.states.StateSpace`),
- the basis vectors as columns over the registered states,
- the field-free Hamiltonian ``H0`` and the total Hamiltonian in that basis,
- a cache of interaction operators (`rydpair.interaction.InteractionCache`).

Changes are tracked by a small state machine (`BuildState`): changing a
field only requires a new linear combination of cached operators, while
changing a symmetry or a restriction forces a new basis.

>>> system = SystemOne("Rb")
>>> system.restrict_n(30)
>>> system.restrict_l(0)
>>> system.get_num_basisvectors()
2
>>> system.build_state
<BuildState.CLEAN: 0>
>>> system.set_efield([0, 0, 1])
>>> system.build_state
<BuildState.PARAMETERS_DIRTY: 1>
"""
from __future__ import annotations

import enum
import logging
from typing import Iterable, Optional, Protocol, Sequence, Union

import numpy as np
from scipy import linalg, sparse

from .data import Species
from .exceptions import ConfigurationError, IncompatibleSystemsError
from .hamiltonianmatrix import Hamiltonianmatrix, prune
from .interaction import Family, InteractionCache, build_canonical
from .matrix_elements import (
    AngularMatrixElementCache,
    MatrixElementSource,
    selection_rule_diamagnetic,
    selection_rule_magnetic,
    selection_rule_multipole,
)
from .rotation import (
    Rotator,
    euler_angles_from_rotation,
    rotate_vector,
    rotation_matrix_from_axes,
)
from .shared import conversion, scalar_dtype, settings
from .states import StateOne, StateSpace
from .symmetry import Parity, SymmetryPolicy
from .utils import (
    diamagnetic_terms,
    dominant_rows,
    half_range,
    restriction,
    selector,
    spherical_components,
)

logger = logging.getLogger(__name__)


def _is_generalized(state) -> bool:
    flags = state.is_generalized
    return any(flags) if isinstance(flags, tuple) else flags


class BuildState(enum.Enum):
    """What has to be recomputed before the Hamiltonian can be used."""

    CLEAN = 0
    PARAMETERS_DIRTY = 1
    SYMMETRY_DIRTY = 2


class CombinableSystem(Protocol):
    """Properties compared when two systems are combined."""

    species: str
    efield: np.ndarray
    bfield: np.ndarray
    diamagnetism: bool
    symmetry: SymmetryPolicy
    dtype: type
    states: StateSpace
    basisvectors: sparse.csc_matrix

    def build_hamiltonian(self): ...

    def get_state_energies(self) -> np.ndarray: ...


class SystemBase:
    """Basis, Hamiltonian and interaction cache of a system.

    Subclasses provide `_initialize_basis`, `_coefficients` and
    `_build_interaction`.

    Args:
        source (MatrixElementSource): Provider of energies and matrix
            elements.
        dtype: `float` or `complex`.
    """

    def __init__(self, source: Optional[MatrixElementSource] = None, dtype=float):
        self.dtype = scalar_dtype(dtype)
        self.source = AngularMatrixElementCache() if source is None else source
        self.symmetry = SymmetryPolicy()
        self.cache = InteractionCache(self.dtype)
        self.build_state = BuildState.SYMMETRY_DIRTY

        self.energy_min = -np.inf
        self.energy_max = np.inf
        self.minimal_norm = 0.0

        self.states = StateSpace()
        self.basisvectors = sparse.csc_matrix((0, 0), dtype=self.dtype)
        self.hamiltonian_unperturbed = sparse.csc_matrix((0, 0), dtype=self.dtype)
        self.hamiltonian = sparse.csc_matrix((0, 0), dtype=self.dtype)
        self._state_energies = np.zeros(0)

    def __repr__(self) -> str:
        lines = [
            f"{type(self).__name__}",
            f"Scalar type: {np.dtype(self.dtype).name}",
            f"Build state: {self.build_state.name}",
            f"States: {len(self.states)}",
            f"Basis vectors: {self.basisvectors.shape[1]}",
            f"Cached operators: {len(self.cache)}",
        ]
        return "\n".join(lines)

    ##################
    # State machine

    def _on_parameter_change(self):
        if self.build_state is BuildState.CLEAN:
            self.build_state = BuildState.PARAMETERS_DIRTY

    def _on_symmetry_change(self):
        self.build_state = BuildState.SYMMETRY_DIRTY

    ##################
    # Configuration

    def restrict_energy(self, energy_min: float, energy_max: float):
        """Keep states with an unperturbed energy in ``[energy_min, energy_max]`` (GHz)."""
        self._on_symmetry_change()
        self.energy_min = -np.inf if energy_min is None else float(energy_min)
        self.energy_max = np.inf if energy_max is None else float(energy_max)

    def _is_energy_valid(self, energy: float) -> bool:
        return self.energy_min <= energy <= self.energy_max

    def set_minimal_norm(self, threshold: float):
        """States whose squared norm over all basis vectors is below this are removed."""
        self._on_symmetry_change()
        self.minimal_norm = float(threshold)

    def set_conserved_parity_under_reflection(self, parity: Parity):
        """Parity under reflection through the xz-plane."""
        self.symmetry.set_reflection(parity)
        self._on_symmetry_change()

    def set_conserved_momenta_under_rotation(self, momenta: Iterable[float]):
        """Momenta conserved under rotation about the z-axis, or ``[ARB]``."""
        self.symmetry.set_momenta(momenta)
        self._on_symmetry_change()

    ##################
    # Hooks

    def _initialize_basis(self):
        raise NotImplementedError

    def _coefficients(self) -> dict:
        raise NotImplementedError

    def _build_interaction(self, family: Family, key) -> sparse.csc_matrix:
        raise NotImplementedError

    def _precalculate(self, required: list):
        """Warm up the matrix-element source before building `required`."""

    ##################
    # Building

    def _build_basis(self):
        logger.debug("Build basis of %s", type(self).__name__)
        self.states = StateSpace()
        self._initialize_basis()
        self._remove_unused_states(0.0)
        self.cache.clear()
        self._update_unperturbed()
        self.hamiltonian = self.hamiltonian_unperturbed.copy()
        logger.debug(
            "Basis has %d states and %d basis vectors",
            len(self.states),
            self.basisvectors.shape[1],
        )

    def _update_unperturbed(self):
        energies = sparse.diags(self._state_energies.astype(self.dtype))
        B = self.basisvectors
        self.hamiltonian_unperturbed = sparse.csc_matrix(
            B.conj().T @ energies @ B, dtype=self.dtype
        )

    def _remove_unused_states(self, threshold: float):
        sqnorm = np.asarray(abs(self.basisvectors).power(2).sum(axis=1)).ravel()
        keep = np.flatnonzero(sqnorm > threshold)
        if len(keep) == len(self.states):
            return
        logger.debug("Remove %d unused states", len(self.states) - len(keep))
        self.states = self.states.subset(keep)
        self.basisvectors = sparse.csc_matrix(self.basisvectors[keep, :])
        self._state_energies = self._state_energies[keep]

    def _update_interactions(self, coefficients: dict):
        required = self.cache.required_components(coefficients)
        if not required:
            return
        self._precalculate(required)
        for family, key in required:
            if (family, key) in self.cache:
                continue
            canonical = self._build_interaction(family, key)
            self.cache.store(family, key, canonical, self.basisvectors)

    def build_hamiltonian(self):
        """Bring the Hamiltonian up to date with the configuration."""
        if self.build_state is BuildState.SYMMETRY_DIRTY:
            self._build_basis()
            self.build_state = BuildState.PARAMETERS_DIRTY
        if self.build_state is BuildState.CLEAN:
            return
        coefficients = self._coefficients()
        self._update_interactions(coefficients)
        hamiltonian = self.hamiltonian_unperturbed.copy()
        tolerance = settings.interaction_tolerance
        for item, coefficient in coefficients.items():
            if abs(coefficient) <= tolerance:
                continue
            if self.dtype is np.float64:
                coefficient = coefficient.real
            hamiltonian = hamiltonian + coefficient * self.cache[item]
        self.hamiltonian = sparse.csc_matrix(hamiltonian, dtype=self.dtype)
        self.build_state = BuildState.CLEAN
        logger.debug("Hamiltonian has %d non-zeros", self.hamiltonian.nnz)

    def _apply_transformator(self, transformator):
        """Express everything in the basis given by the columns of `transformator`."""
        T = sparse.csc_matrix(transformator, dtype=self.dtype)
        self.basisvectors = prune(self.basisvectors @ T)
        self.hamiltonian = sparse.csc_matrix(T.conj().T @ self.hamiltonian @ T)
        self.hamiltonian_unperturbed = sparse.csc_matrix(
            T.conj().T @ self.hamiltonian_unperturbed @ T
        )
        self.cache.transform(T)

    def _rebase(self, basisvectors):
        """Replace the basis vectors; operators are rebuilt on demand."""
        self.basisvectors = sparse.csc_matrix(basisvectors, dtype=self.dtype)
        self._remove_unused_states(0.0)
        self.cache.clear()
        self._update_unperturbed()
        self.build_state = BuildState.PARAMETERS_DIRTY

    def diagonalize(
        self,
        energy_range: Optional[tuple[float, float]] = None,
        threshold: Optional[float] = None,
    ):
        """Diagonalize the Hamiltonian and adopt the eigenvectors as basis.

        Args:
            energy_range: Keep only eigenvectors with an energy in this
                closed interval (GHz).
            threshold: Drop basis vector coefficients smaller than this.
        """
        self.build_hamiltonian()
        if self.hamiltonian.shape[0] == 0:
            return
        energies, vectors = linalg.eigh(self.hamiltonian.toarray())
        if energy_range is not None:
            keep = (energies >= energy_range[0]) & (energies <= energy_range[1])
            energies, vectors = energies[keep], vectors[:, keep]
        self._apply_transformator(vectors)
        self.hamiltonian = sparse.csc_matrix(
            sparse.diags(energies.astype(self.dtype)), dtype=self.dtype
        )
        if threshold is not None:
            self.basisvectors = prune(self.basisvectors, threshold)
        self._remove_unused_states(self.minimal_norm)
        logger.debug("Diagonalized %d basis vectors", len(energies))

    def constrain_basisvectors(self, indices: Sequence[int]):
        """Keep only the basis vectors at `indices`."""
        self.build_hamiltonian()
        self._apply_transformator(
            selector(self.basisvectors.shape[1], indices, self.dtype)
        )
        self._remove_unused_states(self.minimal_norm)

    def apply_cutoff(self, threshold: float):
        """Drop off-diagonal Hamiltonian entries and basis coefficients below `threshold`."""
        self.build_hamiltonian()
        container = Hamiltonianmatrix(self.hamiltonian, self.basisvectors)
        container.apply_cutoff(threshold)
        self.hamiltonian = container.entries
        self.basisvectors = prune(self.basisvectors, threshold)
        self._remove_unused_states(self.minimal_norm)

    def forget_statemixing(self):
        """Replace every basis vector by its dominant state.

        The energies in the applied fields are discarded; the next build
        recomputes them in the new, unmixed basis.
        """
        self.build_hamiltonian()
        rows = list(dict.fromkeys(dominant_rows(self.basisvectors).tolist()))
        self._rebase(selector(len(self.states), rows, self.dtype))

    def unitarize(self):
        """Complete the basis by the states that no basis vector covers.

        Afterwards the basis vectors span every registered state.
        """
        self.build_hamiltonian()
        sqnorm = np.asarray(abs(self.basisvectors).power(2).sum(axis=1)).ravel()
        missing = np.flatnonzero(sqnorm <= settings.basis_tolerance)
        if len(missing) == 0:
            return
        extra = selector(len(self.states), missing, self.dtype)
        self._rebase(sparse.hstack([self.basisvectors, extra], format="csc"))

    ##################
    # Read-back

    def get_hamiltonian(self) -> sparse.csc_matrix:
        """Total Hamiltonian in the basis (GHz)."""
        self.build_hamiltonian()
        return self.hamiltonian

    def get_basisvectors(self) -> sparse.csc_matrix:
        """Basis vectors as columns over the registered states."""
        self.build_hamiltonian()
        return self.basisvectors

    def get_states(self) -> list:
        self.build_hamiltonian()
        return self.states.states

    def get_num_states(self) -> int:
        self.build_hamiltonian()
        return len(self.states)

    def get_num_basisvectors(self) -> int:
        self.build_hamiltonian()
        return self.basisvectors.shape[1]

    def get_energies(self) -> np.ndarray:
        """Diagonal of the Hamiltonian."""
        return self.get_hamiltonian().diagonal().real

    def get_state_energies(self) -> np.ndarray:
        """Unperturbed energies of the registered states (GHz)."""
        self.build_hamiltonian()
        return self._state_energies.copy()

    def get_main_states(self) -> list:
        """State with the largest weight in each basis vector."""
        self.build_hamiltonian()
        return [self.states[i] for i in dominant_rows(self.basisvectors)]

    def get_state_index(self, state) -> int:
        """Index of a registered state."""
        self.build_hamiltonian()
        return self.states.index(state)

    def as_hamiltonianmatrix(self) -> Hamiltonianmatrix:
        """Hamiltonian and basis as one container."""
        self.build_hamiltonian()
        return Hamiltonianmatrix(self.hamiltonian, self.basisvectors)

    def _target_columns(self, targets, to_z_axis, to_y_axis, angles):
        if not isinstance(targets, (list, tuple)):
            targets = [targets]
        if to_z_axis is not None or to_y_axis is not None:
            if to_z_axis is None or to_y_axis is None:
                raise ValueError("Both to_z_axis and to_y_axis are required.")
            angles = euler_angles_from_rotation(
                rotation_matrix_from_axes(to_z_axis, to_y_axis)
            )
        if angles is None:
            indices = []
            for target in targets:
                indices += self.states.find(target)
            return selector(len(self.states), sorted(set(indices)), self.dtype)
        expanded = []
        for target in targets:
            if _is_generalized(target):
                expanded += [self.states[i] for i in self.states.find(target)]
            else:
                expanded.append(target)
        return Rotator(self.states, self.dtype).rotate_states(expanded, *angles)

    def get_overlap(
        self,
        targets,
        to_z_axis: Optional[Sequence[float]] = None,
        to_y_axis: Optional[Sequence[float]] = None,
        angles: Optional[tuple[float, float, float]] = None,
    ) -> np.ndarray:
        """Summed squared overlap of each basis vector with the target states.

        Args:
            targets: A state or a list of states.  Generalized states
                match every registered state they cover.
            to_z_axis, to_y_axis: The targets are quantized along this
                rotated frame.
            angles: The same rotation given as zyz Euler angles.

        Returns:
            np.ndarray: One value per basis vector.
        """
        self.build_hamiltonian()
        columns = self._target_columns(targets, to_z_axis, to_y_axis, angles)
        amplitudes = columns.conj().T @ self.basisvectors
        return np.asarray(abs(amplitudes).power(2).sum(axis=0)).ravel()

    def get_basisvector_index(self, targets) -> Union[int, list]:
        """Index of the basis vector with the largest overlap per target."""
        if isinstance(targets, (list, tuple)):
            return [int(np.argmax(self.get_overlap(t))) for t in targets]
        return int(np.argmax(self.get_overlap(targets)))


class SystemOne(SystemBase):
    """Single Rydberg atom in static fields.

    Args:
        species (str): Species symbol, e.g. ``"Rb"``.
        source (MatrixElementSource): Provider of energies and matrix
            elements.
        dtype: `float` or `complex`.  Reflection symmetry and fields
            with a y-component require `complex`.

    Examples:
        >>> system = SystemOne("Rb")
        >>> system.restrict_n(30, 31)
        >>> system.restrict_l(0, 1)
        >>> system.set_conserved_momenta_under_rotation([0.5])
        >>> system.get_num_basisvectors()
        6
    """

    def __init__(
        self,
        species: str,
        source: Optional[MatrixElementSource] = None,
        dtype=float,
    ):
        super().__init__(source, dtype)
        self.species = species
        self.range_n = self.range_l = self.range_j = self.range_m = None
        self.states_to_add: list = []
        self.efield = np.zeros(3)
        self.bfield = np.zeros(3)
        self.efield_spherical = spherical_components(self.efield)
        self.bfield_spherical = spherical_components(self.bfield)
        self.diamagnetism_terms = diamagnetic_terms(self.bfield_spherical)
        self.diamagnetism = True
        self.charge = 0
        self.ordermax = 0
        self.distance = np.inf

    ##################
    # Restrictions

    def restrict_n(self, first, last=None):
        """Allowed principal quantum numbers: a closed range or a collection."""
        self._on_symmetry_change()
        self.range_n = restriction(first, last)

    def restrict_l(self, first, last=None):
        self._on_symmetry_change()
        self.range_l = restriction(first, last)

    def restrict_j(self, first, last=None):
        self._on_symmetry_change()
        self.range_j = restriction(first, last)

    def restrict_m(self, first, last=None):
        self._on_symmetry_change()
        self.range_m = restriction(first, last)

    def add_states(self, states: Union[StateOne, Iterable[StateOne]]):
        """Add states beyond the enumerated ones."""
        self._on_symmetry_change()
        if isinstance(states, StateOne):
            states = [states]
        for state in states:
            if state not in self.states_to_add:
                self.states_to_add.append(state)

    ##################
    # Parameters

    def _check_field(self, field) -> np.ndarray:
        field = np.asarray(field, dtype=float)
        if field.shape != (3,):
            raise ValueError("A field is given by three Cartesian components.")
        if self.dtype is np.float64 and field[1] != 0:
            raise ConfigurationError(
                "The field must not have a y-component if the scalar type is real."
            )
        return field

    def _oriented(self, field, to_z_axis, to_y_axis, angles):
        if angles is None and to_z_axis is None and to_y_axis is None:
            return field
        return rotate_vector(field, to_z_axis, to_y_axis, angles)

    def set_efield(self, field, to_z_axis=None, to_y_axis=None, angles=None):
        """Electric field in V/cm, optionally given in a rotated frame."""
        field = self._check_field(self._oriented(field, to_z_axis, to_y_axis, angles))
        self._on_parameter_change()
        self.efield = field
        self.efield_spherical = spherical_components(field)

    def set_bfield(self, field, to_z_axis=None, to_y_axis=None, angles=None):
        """Magnetic field in Gauss, optionally given in a rotated frame."""
        field = self._check_field(self._oriented(field, to_z_axis, to_y_axis, angles))
        self._on_parameter_change()
        self.bfield = field
        self.bfield_spherical = spherical_components(field)
        self.diamagnetism_terms = diamagnetic_terms(self.bfield_spherical)

    def enable_diamagnetism(self, enable: bool):
        self._on_parameter_change()
        self.diamagnetism = bool(enable)

    def set_ion_charge(self, charge: int):
        """Charge (in e) of an ion interacting with the atom."""
        self._on_parameter_change()
        self.charge = int(charge)

    def set_ion_order(self, order: int):
        """Highest multipole order of the atom-ion interaction."""
        if order < 0:
            raise ConfigurationError("The multipole order must be positive.")
        self._on_parameter_change()
        self.ordermax = int(order)

    def set_ion_distance(self, distance: float):
        """Atom-ion distance in µm; the ion sits on the z-axis."""
        self._on_parameter_change()
        self.distance = float(distance)

    ##################
    # Basis

    @property
    def spin(self) -> float:
        """Spin of the valence electron(s) of the species."""
        return Species(self.species).spin

    def _derived_n(self, range_l) -> list:
        if self.energy_max >= 0:
            raise ConfigurationError(
                "The number of basis elements is infinite. The basis has to be restricted."
            )
        spin = self.spin
        lmin = min(range_l) if range_l else 0
        result = []
        n = lmin + 1
        while True:
            energies = [
                self.source.get_energy(StateOne(self.species, n, l, j, j, spin))
                for l in range(lmin, n)
                if range_l is None or l in range_l
                for j in half_range(abs(l - spin), l + spin)
            ]
            if energies and min(energies) > self.energy_max:
                break
            if any(self._is_energy_valid(e) for e in energies):
                result.append(n)
            n += 1
        return result

    def _initialize_basis(self):
        if self.range_n is None and (
            np.isinf(self.energy_min) or np.isinf(self.energy_max)
        ):
            raise ConfigurationError(
                "The number of basis elements is infinite. The basis has to be restricted."
            )
        spin = self.spin
        range_n = sorted(self.range_n) if self.range_n is not None else self._derived_n(
            self.range_l
        )

        rows, cols, values, energies = [], [], [], []
        self._state_energy_map = {}

        for n in range_n:
            for l in range(0, n):
                if self.range_l is not None and l not in self.range_l:
                    continue
                for j in half_range(abs(l - spin), l + spin):
                    if self.range_j is not None and j not in self.range_j:
                        continue
                    energy = self.source.get_energy(
                        StateOne(self.species, n, l, j, j, spin)
                    )
                    if not self._is_energy_valid(energy):
                        continue
                    range_m = [
                        m
                        for m in half_range(-j, j)
                        if (self.range_m is None or m in self.range_m)
                        and self.symmetry.allows_momentum(m)
                    ]
                    for m in range_m:
                        state = StateOne(self.species, n, l, j, m, spin)
                        if (
                            self.symmetry.reflection is not Parity.NA
                            and m != 0
                            and -m not in range_m
                        ):
                            raise ConfigurationError(
                                f"The momentum {-m} required by symmetries cannot be found."
                            )
                        self._add_symmetrized(
                            state, energy, self.symmetry.reflection, rows, cols, values, energies
                        )

        self._add_user_states(rows, cols, values, energies)

        self._state_energies = np.array(
            [self._state_energy_map[state] for state in self.states], dtype=float
        )
        self.basisvectors = sparse.csc_matrix(
            (np.asarray(values, dtype=self.dtype), (rows, cols)),
            shape=(len(self.states), len(energies)),
            dtype=self.dtype,
        )

    def _add_user_states(self, rows, cols, values, energies):
        for state in self.states_to_add:
            if state in self.states:
                raise ConfigurationError(
                    f"The state {state} is already contained in the list of states."
                )
            if not state.is_artificial and state.species != self.species:
                raise ConfigurationError(f"The state {state} is of the wrong species.")

        for state in self.states_to_add:
            energy = 0.0 if state.is_artificial else self.source.get_energy(state)
            symmetry = self.symmetry
            if state.is_artificial:
                symmetry = self.symmetry.for_artificial_states()
            if not symmetry.allows_momentum(state.m):
                continue
            if symmetry.reflection is not Parity.NA and state.m != 0:
                if state.reflected() not in self.states_to_add:
                    raise ConfigurationError(
                        f"The state {state.reflected()} required by symmetries cannot be found."
                    )
            self._add_symmetrized(
                state, energy, symmetry.reflection, rows, cols, values, energies
            )

    def _register(self, state: StateOne, energy: float) -> int:
        self._state_energy_map[state] = energy
        return self.states.add(state)

    def _add_symmetrized(self, state, energy, reflection, rows, cols, values, energies):
        if reflection is not Parity.NA and state.m != 0:
            if state.m < 0:
                return
            if self.dtype is np.float64:
                raise ConfigurationError(
                    "Reflection symmetry requires complex arithmetic, use dtype=complex."
                )
        idx = len(energies)
        energies.append(energy)
        value = 1.0
        if reflection is not Parity.NA and state.m != 0:
            value /= np.sqrt(2)
        rows.append(self._register(state, energy))
        cols.append(idx)
        values.append(value)
        if reflection is not Parity.NA and state.m != 0:
            phase = (-1) ** int(round(state.l + state.m - state.j))
            mirror = value * phase * 1j * reflection.sign
            rows.append(self._register(state.reflected(), energy))
            cols.append(idx)
            values.append(mirror)

    ##################
    # Interactions

    def _coefficients(self) -> dict:
        coefficients = {}
        e, b = self.efield_spherical, self.bfield_spherical
        coefficients[(Family.EFIELD, 0)] = -conversion.efield * e[0]
        coefficients[(Family.EFIELD, 1)] = conversion.efield * e[-1]
        coefficients[(Family.EFIELD, -1)] = conversion.efield * e[1]
        coefficients[(Family.BFIELD, 0)] = -conversion.bfield * b[0]
        coefficients[(Family.BFIELD, 1)] = conversion.bfield * b[-1]
        coefficients[(Family.BFIELD, -1)] = conversion.bfield * b[1]
        if self.diamagnetism:
            d = self.diamagnetism_terms
            factors = {
                (0, 0): 1.0,
                (2, 0): -1.0,
                (2, 1): np.sqrt(3),
                (2, -1): np.sqrt(3),
                (2, 2): -np.sqrt(1.5),
                (2, -2): -np.sqrt(1.5),
            }
            for key, factor in factors.items():
                coefficients[(Family.DIAMAGNETISM, key)] = (
                    conversion.diamagnetism * factor * d[key]
                )
        if self.charge != 0 and np.isfinite(self.distance):
            for order in range(1, self.ordermax + 1):
                coefficients[(Family.MULTIPOLE, order)] = complex(
                    conversion.coulomb * self.charge / self.distance ** (order + 1)
                )
        return coefficients

    def _precalculate(self, required: list):
        # a component and its -q partner share one warm-up
        calls = {}
        for family, key in required:
            if family is Family.EFIELD:
                for q in sorted({key, -key}):
                    calls[("precalculate_electric_momentum", q)] = None
            elif family is Family.BFIELD:
                for q in sorted({key, -key}):
                    calls[("precalculate_magnetic_momentum", q)] = None
            elif family is Family.DIAMAGNETISM:
                k, q = key
                for p in sorted({q, -q}):
                    calls[("precalculate_diamagnetism", k, p)] = None
            elif family is Family.MULTIPOLE:
                calls[("precalculate_multipole", key)] = None
        states = self.states.states
        for name, *args in calls:
            getattr(self.source, name)(states, *args)

    def _build_interaction(self, family: Family, key) -> sparse.csc_matrix:
        source = self.source
        if family is Family.EFIELD:
            q = key

            def element(row, col):
                if not selection_rule_multipole(row, col, 1, q):
                    return 0
                return source.get_electric_dipole(row, col)

        elif family is Family.BFIELD:
            q = key

            def element(row, col):
                if not selection_rule_magnetic(row, col, q):
                    return 0
                return source.get_magnetic_dipole(row, col)

        elif family is Family.DIAMAGNETISM:
            k, q = key

            def element(row, col):
                if not selection_rule_diamagnetic(row, col, k, q):
                    return 0
                return source.get_diamagnetism(row, col, k)

        elif family is Family.MULTIPOLE:
            q, order = 0, key

            def element(row, col):
                if not selection_rule_multipole(row, col, order, 0):
                    return 0
                return source.get_electric_multipole(row, col, order)

        else:
            raise ValueError(f"{family} is not a one-atom interaction.")

        logger.debug("Build %s %s for %d states", family.name, key, len(self.states))
        return build_canonical(
            self.states.states, element, shift=q, hermitian=(q == 0), dtype=self.dtype
        )

    ##################
    # Combination

    def incorporate(self, other: CombinableSystem):
        """Merge the basis of another one-atom system into this one.

        Species, fields and the diamagnetism flag must agree.  Differing
        symmetries are loosened to what both systems share.
        """
        if self.species != other.species:
            raise IncompatibleSystemsError(
                "The value of the variable 'species' must be the same for both systems."
            )
        if not np.array_equal(self.efield, other.efield):
            raise IncompatibleSystemsError(
                "The value of the variable 'efield' must be the same for both systems."
            )
        if not np.array_equal(self.bfield, other.bfield):
            raise IncompatibleSystemsError(
                "The value of the variable 'bfield' must be the same for both systems."
            )
        if self.diamagnetism != other.diamagnetism:
            raise IncompatibleSystemsError(
                "The value of the variable 'diamagnetism' must be the same for both systems."
            )
        if self.dtype is not other.dtype:
            raise IncompatibleSystemsError("Both systems must use the same scalar type.")
        merged = self.symmetry.merged(other.symmetry)

        self.build_hamiltonian()
        other.build_hamiltonian()
        energies = dict(zip(self.states, self._state_energies))
        energies.update(zip(other.states, other.get_state_energies()))
        for state in other.states:
            self.states.add(state)
        num = len(self.states)
        mine = sparse.vstack(
            [
                self.basisvectors,
                sparse.csc_matrix((num - self.basisvectors.shape[0], self.basisvectors.shape[1])),
            ]
        )
        mapping = selector(num, [self.states.index(s) for s in other.states], self.dtype)
        theirs = mapping @ other.basisvectors
        self._state_energies = np.array([energies[s] for s in self.states], dtype=float)
        self.symmetry = merged
        self._rebase(sparse.hstack([mine, theirs], format="csc"))
