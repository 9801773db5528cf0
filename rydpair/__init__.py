"""Rydpair package root."""

from importlib.metadata import PackageNotFoundError, version

from . import (
    data,
    exceptions,
    hamiltonianmatrix,
    interaction,
    matrix_elements,
    rotation,
    shared,
    states,
    symmetry,
    system,
    system_two,
    utils,
)
from .hamiltonianmatrix import Hamiltonianmatrix
from .matrix_elements import AngularMatrixElementCache, Method
from .shared import Q_, ureg
from .states import StateOne, StateTwo
from .symmetry import ARB, Parity
from .system import SystemOne
from .system_two import SystemTwo

# pylint: disable=unused-import

try:
    __version__ = version("rydpair")
except PackageNotFoundError:
    # not installed
    __version__ = "unknown"
