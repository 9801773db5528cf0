#! /usr/bin/env python
"""Conserved quantities used to reduce the basis.

A `SymmetryPolicy` stores the parity under reflection through the
xz-plane, the set of momenta conserved under rotation about the z-axis
and, for pairs of particles, the parities under permutation and
inversion.  The policy validates every change immediately: an invalid
combination raises and leaves the previous value in place.

>>> policy = SymmetryPolicy()
>>> policy.set_momenta([1, -1])
>>> policy.set_reflection(Parity.EVEN)
>>> policy
Reflection: EVEN
Rotation: [-1.0, 1.0]
Permutation: NA
Inversion: NA
"""
from __future__ import annotations

import enum
import warnings
from typing import Iterable

from .exceptions import (
    ArbitraryMomentumMisuseError,
    ConfigurationError,
    SymmetryWarning,
)

ARB = 32767
"""Sentinel for "arbitrary": unrestricted momenta, or a wildcard quantum number."""


class Parity(enum.Enum):
    """Eigenvalue of a discrete symmetry operation."""

    NA = 0
    EVEN = 1
    ODD = -1

    @property
    def sign(self) -> int:
        """+1 for `EVEN`, -1 for `ODD`."""
        if self is Parity.NA:
            raise ValueError("Parity NA has no sign.")
        return self.value


def normalize_momenta(momenta: Iterable[float]) -> frozenset:
    """Validate a set of conserved momenta.

    >>> sorted(normalize_momenta([0.5, -0.5]))
    [-0.5, 0.5]
    >>> normalize_momenta([ARB]) == frozenset([ARB])
    True
    >>> normalize_momenta([ARB, 1])
    Traceback (most recent call last):
    ...
    rydpair.exceptions.ArbitraryMomentumMisuseError: If ARB (=arbitrary momentum) is specified, momenta must not be passed explicitly.
    """
    momenta = frozenset(float(m) if m != ARB else ARB for m in momenta)
    if ARB in momenta and len(momenta) > 1:
        raise ArbitraryMomentumMisuseError(
            "If ARB (=arbitrary momentum) is specified, momenta must not be passed explicitly."
        )
    if not momenta:
        raise ConfigurationError("At least one conserved momentum is required.")
    return momenta


class SymmetryPolicy:
    """Conserved quantities of a one- or two-particle system.

    Args:
        reflection (Parity): Parity under reflection through the xz-plane.
        momenta (Iterable[float]): Momenta conserved under rotation about
            the z-axis, or ``[ARB]``.
        permutation (Parity): Parity under exchange of the particles.
        inversion (Parity): Parity under inversion through the centre of
            the pair.
    """

    def __init__(
        self,
        reflection: Parity = Parity.NA,
        momenta: Iterable[float] = (ARB,),
        permutation: Parity = Parity.NA,
        inversion: Parity = Parity.NA,
    ):
        self.reflection = reflection
        self.momenta = normalize_momenta(momenta)
        self.permutation = permutation
        self.inversion = inversion
        if not self.is_compatible():
            raise ConfigurationError(
                "The conserved parity under reflection is not compatible to the "
                "conserved momenta."
            )

    def __repr__(self) -> str:
        rotation = "ARB" if self.arbitrary_momenta else sorted(self.momenta)
        lines = [
            f"Reflection: {self.reflection.name}",
            f"Rotation: {rotation}",
            f"Permutation: {self.permutation.name}",
            f"Inversion: {self.inversion.name}",
        ]
        return "\n".join(lines)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SymmetryPolicy):
            return NotImplemented
        return self.key() == other.key()

    def key(self) -> tuple:
        """Hashable summary of the policy."""
        return (
            self.reflection,
            tuple(sorted(self.momenta)),
            self.permutation,
            self.inversion,
        )

    def copy(self) -> SymmetryPolicy:
        """Independent copy of the policy."""
        return SymmetryPolicy(
            self.reflection, self.momenta, self.permutation, self.inversion
        )

    @property
    def arbitrary_momenta(self) -> bool:
        """No momentum restriction."""
        return ARB in self.momenta

    def allows_momentum(self, m: float) -> bool:
        """Check whether states with momentum `m` are kept."""
        return self.arbitrary_momenta or float(m) in self.momenta

    def is_compatible(self) -> bool:
        """Reflection symmetry requires the mirror of every kept momentum.

        >>> SymmetryPolicy(momenta=[1, -1], reflection=Parity.ODD).is_compatible()
        True
        """
        if self.arbitrary_momenta or self.reflection is Parity.NA:
            return True
        return all(-m in self.momenta for m in self.momenta)

    def set_reflection(self, parity: Parity):
        """Set the conserved parity under reflection.

        >>> policy = SymmetryPolicy(momenta=[1])
        >>> policy.set_reflection(Parity.EVEN)
        Traceback (most recent call last):
        ...
        rydpair.exceptions.ConfigurationError: The conserved parity under reflection is not compatible to the previously specified conserved momenta.
        >>> policy.reflection
        <Parity.NA: 0>
        """
        previous = self.reflection
        self.reflection = Parity(parity)
        if not self.is_compatible():
            self.reflection = previous
            raise ConfigurationError(
                "The conserved parity under reflection is not compatible to the "
                "previously specified conserved momenta."
            )

    def set_momenta(self, momenta: Iterable[float]):
        """Set the momenta conserved under rotation."""
        momenta = normalize_momenta(momenta)
        previous = self.momenta
        self.momenta = momenta
        if not self.is_compatible():
            self.momenta = previous
            raise ConfigurationError(
                "The conserved momenta are not compatible to the previously "
                "specified conserved parity under reflection."
            )

    def set_permutation(self, parity: Parity):
        """Set the conserved parity under permutation of the particles."""
        self.permutation = Parity(parity)

    def set_inversion(self, parity: Parity):
        """Set the conserved parity under inversion of the pair."""
        self.inversion = Parity(parity)

    def for_artificial_states(self) -> SymmetryPolicy:
        """Policy applied to artificial states.

        Reflection and rotation symmetries cannot be applied to states
        without quantum numbers; they are dropped with a warning.
        """
        if self.reflection is not Parity.NA or not self.arbitrary_momenta:
            warnings.warn(
                "Only permutation symmetry can be applied to artificial states.",
                SymmetryWarning,
                stacklevel=3,
            )
        return SymmetryPolicy(
            Parity.NA, (ARB,), self.permutation, self.inversion
        )

    def merged(self, other: SymmetryPolicy) -> SymmetryPolicy:
        """Loosest policy compatible with both `self` and `other`.

        Differing reflection parities become `NA`; differing momenta
        become their union, or `ARB` if either is unrestricted.  A
        `SymmetryWarning` is issued when more than one symmetry differs.
        """
        merged = self.copy()
        num_different = 0
        if self.reflection is not other.reflection:
            merged.reflection = Parity.NA
            num_different += 1
        if self.momenta != other.momenta:
            if self.arbitrary_momenta or other.arbitrary_momenta:
                merged.momenta = frozenset([ARB])
            else:
                merged.momenta = self.momenta | other.momenta
            num_different += 1
        if self.permutation is not other.permutation:
            merged.permutation = Parity.NA
            num_different += 1
        if self.inversion is not other.inversion:
            merged.inversion = Parity.NA
            num_different += 1
        if num_different > 1:
            warnings.warn(
                "The systems differ in more than one symmetry. For the combined "
                "system, the notion of symmetries might be meaningless.",
                SymmetryWarning,
                stacklevel=3,
            )
        return merged
