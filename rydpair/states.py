#! /usr/bin/env python
"""Quantum states of single atoms and atom pairs, and their registry.

`StateOne` describes a single-electron Rydberg state by its species and
the quantum numbers ``n, l, j, m, s``.  Any quantum number may be the
wildcard `ARB`, which turns the state into a *generalized* state used
only as an overlap target.  An *artificial* state carries only a label.

`StateTwo` is an ordered pair of `StateOne`.

`StateSpace` maps states to row indices and back.

>>> s = StateOne("Rb", 30, 1, 1.5, 0.5)
>>> s
|Rb, 30 P_3/2, mj=1/2>
>>> s.reflected()
|Rb, 30 P_3/2, mj=-1/2>
>>> pair = StateTwo(s, s.reflected())
>>> pair.m, pair.M
((0.5, -0.5), 0.0)
"""
from __future__ import annotations

import functools
from fractions import Fraction
from typing import Generic, Iterable, Iterator, Optional, TypeVar, Union

from .data import Species
from .symmetry import ARB

_L_LETTERS = "SPDFGHIKLMNOQRTUV"


@functools.lru_cache(maxsize=None)
def _species_spin(species: str) -> float:
    return Species(species).spin


def _halfint(value: float) -> str:
    if value == ARB:
        return "ARB"
    return str(Fraction(value).limit_denominator(2))


def _letter(l: int) -> str:
    if l == ARB:
        return "ARB"
    if l < len(_L_LETTERS):
        return _L_LETTERS[l]
    return str(l)


@functools.total_ordering
class StateOne:
    """Single-atom state.

    Args:
        species (str): Species symbol, see `rydpair.data.Species`.
        n (int): Principal quantum number.
        l (int): Orbital angular momentum.
        j (float): Total angular momentum.
        m (float): Projection of `j` onto the quantisation axis.
        s (float): Spin of the valence electron(s).  `None` reads it
            from the species database.

    Examples:
        >>> StateOne("Rb", 30, 0, 0.5, -0.5) < StateOne("Rb", 30, 0, 0.5, 0.5)
        True
        >>> StateOne("Rb", ARB, 0, 0.5, 0.5).is_generalized
        True
        >>> StateOne.artificial("G")
        |G>
    """

    __slots__ = ("species", "n", "l", "j", "m", "s", "label", "_key")

    def __init__(
        self,
        species: str,
        n: int,
        l: int,
        j: float,
        m: float,
        s: Optional[float] = None,
    ):
        if s is None:
            s = _species_spin(species)
        self.species = species
        self.n = n if n == ARB else int(n)
        self.l = l if l == ARB else int(l)
        self.j = j if j == ARB else float(j)
        self.m = m if m == ARB else float(m)
        self.s = float(s)
        self.label = None
        self._key = (1, species, self.n, self.l, self.j, self.m, self.s)

    @classmethod
    def artificial(cls, label: str) -> StateOne:
        """State given only by a label, without quantum numbers."""
        obj = cls.__new__(cls)
        obj.species = ""
        obj.n = obj.l = 0
        obj.j = obj.m = obj.s = 0.0
        obj.label = label
        obj._key = (0, label)
        return obj

    def __setattr__(self, name, value):
        if hasattr(self, "_key"):
            raise AttributeError("StateOne is immutable.")
        object.__setattr__(self, name, value)

    def __repr__(self) -> str:
        if self.is_artificial:
            return f"|{self.label}>"
        return (
            f"|{self.species}, {self.n if self.n != ARB else 'ARB'} "
            f"{_letter(self.l)}_{_halfint(self.j)}, mj={_halfint(self.m)}>"
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, StateOne):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other) -> bool:
        if not isinstance(other, StateOne):
            return NotImplemented
        return self._key < other._key

    def __hash__(self) -> int:
        return hash(self._key)

    @property
    def is_artificial(self) -> bool:
        """State given only by a label."""
        return self.label is not None

    @property
    def is_generalized(self) -> bool:
        """At least one quantum number is the wildcard `ARB`."""
        return not self.is_artificial and ARB in (self.n, self.l, self.j, self.m)

    def reflected(self) -> StateOne:
        """Mirror partner under reflection through the xz-plane (m -> -m)."""
        if self.is_artificial or self.m == ARB:
            return self
        return StateOne(self.species, self.n, self.l, self.j, -self.m, self.s)

    def matches(self, other: StateOne) -> bool:
        """Compare with a possibly generalized state.

        Quantum numbers set to `ARB` in `self` match anything.

        >>> StateOne("Rb", 30, 0, 0.5, ARB).matches(StateOne("Rb", 30, 0, 0.5, -0.5))
        True
        """
        if self.is_artificial or other.is_artificial:
            return self == other
        if self.species != other.species:
            return False
        return all(
            mine == ARB or mine == theirs
            for mine, theirs in zip(
                (self.n, self.l, self.j, self.m), (other.n, other.l, other.j, other.m)
            )
        )


@functools.total_ordering
class StateTwo:
    """Ordered pair of single-atom states.

    Args:
        first (StateOne): State of the first atom.
        second (StateOne): State of the second atom.
    """

    __slots__ = ("first", "second", "_key")

    def __init__(self, first: StateOne, second: StateOne):
        object.__setattr__(self, "first", first)
        object.__setattr__(self, "second", second)
        object.__setattr__(self, "_key", (first._key, second._key))

    def __setattr__(self, name, value):
        raise AttributeError("StateTwo is immutable.")

    def __repr__(self) -> str:
        return f"{self.first!r}{self.second!r}"

    def __eq__(self, other) -> bool:
        if not isinstance(other, StateTwo):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other) -> bool:
        if not isinstance(other, StateTwo):
            return NotImplemented
        return self._key < other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __iter__(self) -> Iterator[StateOne]:
        return iter((self.first, self.second))

    def __getitem__(self, idx: int) -> StateOne:
        return (self.first, self.second)[idx]

    @property
    def species(self) -> tuple:
        return self.first.species, self.second.species

    @property
    def n(self) -> tuple:
        return self.first.n, self.second.n

    @property
    def l(self) -> tuple:
        return self.first.l, self.second.l

    @property
    def j(self) -> tuple:
        return self.first.j, self.second.j

    @property
    def m(self) -> tuple:
        return self.first.m, self.second.m

    @property
    def s(self) -> tuple:
        return self.first.s, self.second.s

    @property
    def M(self) -> float:
        """Total magnetic quantum number."""
        return self.first.m + self.second.m

    @property
    def is_artificial(self) -> tuple:
        return self.first.is_artificial, self.second.is_artificial

    @property
    def is_generalized(self) -> tuple:
        return self.first.is_generalized, self.second.is_generalized

    def reflected(self) -> StateTwo:
        """Both atoms reflected through the xz-plane."""
        return StateTwo(self.first.reflected(), self.second.reflected())

    def swapped(self) -> StateTwo:
        """The atoms exchanged."""
        return StateTwo(self.second, self.first)

    def matches(self, other: StateTwo) -> bool:
        """Compare with a possibly generalized pair state."""
        return self.first.matches(other.first) and self.second.matches(other.second)


State = TypeVar("State", StateOne, StateTwo)


class StateSpace(Generic[State]):
    """Bidirectional registry between states and row indices.

    Indices are issued in insertion order and never change.

    >>> space = StateSpace()
    >>> space.add(StateOne("Rb", 30, 0, 0.5, 0.5))
    0
    >>> space.add(StateOne("Rb", 30, 0, 0.5, -0.5))
    1
    >>> space.add(StateOne("Rb", 30, 0, 0.5, 0.5))
    0
    >>> len(space)
    2
    """

    def __init__(self, states: Iterable[State] = ()):
        self._index: dict = {}
        self._states: list = []
        for state in states:
            self.add(state)

    def __repr__(self) -> str:
        return f"StateSpace({len(self)} states)"

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[State]:
        return iter(self._states)

    def __contains__(self, state) -> bool:
        return state in self._index

    def __getitem__(self, idx: int) -> State:
        return self._states[idx]

    def add(self, state: State) -> int:
        """Register `state` and return its index."""
        idx = self._index.get(state)
        if idx is not None:
            return idx
        idx = len(self._states)
        self._index[state] = idx
        self._states.append(state)
        self.check_invariant()
        return idx

    def index(self, state: State) -> int:
        """Index of a registered state (`KeyError` if unknown)."""
        return self._index[state]

    def get(self, state: State, default=None) -> Optional[int]:
        return self._index.get(state, default)

    @property
    def states(self) -> list:
        """Registered states in index order."""
        return list(self._states)

    def check_invariant(self):
        """The map and the list must describe the same bijection."""
        if len(self._index) != len(self._states):
            raise RuntimeError(
                "The state registry is corrupted: "
                f"{len(self._index)} keys vs. {len(self._states)} states."
            )

    def subset(self, indices: Iterable[int]) -> StateSpace:
        """New registry with the states at `indices`, re-indexed in that order."""
        return StateSpace(self._states[i] for i in indices)

    def find(self, target: Union[StateOne, StateTwo]) -> list:
        """Indices of the states matching a possibly generalized `target`."""
        if target in self._index:
            return [self._index[target]]
        return [i for i, state in enumerate(self._states) if target.matches(state)]
