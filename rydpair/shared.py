#! /usr/bin/env python
"""
Shared constants, unit conversions and settings.

- ``constants``: physical constants read from ``data_files/constants.json``.
  Each one is a ``Constant``, i.e. a ``float`` whose ``details`` namespace
  records units and source, e.g. ``constants.g_s.details.source``.

- ``ureg`` / ``Q_``: the `pint` unit registry used throughout the package.

- ``conversion``: factors turning matrix elements (in e·µm^κ, Bohr
  magnetons, µm²) times fields (V/cm, Gauss) or inverse distances (1/µm)
  into energies in GHz.

- ``settings``: numeric tolerances and parallelisation knobs.  They are
  read at call time, so tests can override them temporarily.

Units used by the package: energies in GHz, electric fields in V/cm,
magnetic fields in Gauss, distances in µm.
"""

import json
from pathlib import Path
from types import SimpleNamespace

import numpy as np
from pint import UnitRegistry

ureg = UnitRegistry()
Q_ = ureg.Quantity


class Constant(float):
    """Constant class.

    Extends float with the `Constant.details` member.
    """

    details: SimpleNamespace
    """Details (e.g. units) of the constant."""

    def __new__(cls, details: dict):  # noqa D102
        obj = super().__new__(cls, details.pop("value"))
        obj.details = SimpleNamespace(**details)
        return obj

    @staticmethod
    def fromjson(json_file: Path) -> SimpleNamespace:
        """Read all constants from the JSON file.

        Args:
            json_file (str)

        Returns:
            SimpleNamespace: A namespace containing all constants.
        """
        with open(json_file, encoding="utf-8") as f:
            data = json.load(f)
        return SimpleNamespace(**{k: Constant(v) for k, v in data.items()})


def _conversion_factors() -> SimpleNamespace:
    h = Q_(1, "planck_constant")
    e = Q_(1, "elementary_charge")
    um = ureg.micrometer
    # pint defines "gauss" in the Gaussian system, so spell it out in SI
    gauss = 1e-4 * ureg.tesla
    eps_0 = ureg.vacuum_permittivity
    efield = (e * um * ureg.volt / ureg.centimeter / h).to("GHz")
    bfield = (ureg.bohr_magneton * gauss / h).to("GHz")
    diamagnetism = (e**2 * um**2 * gauss**2 / (8 * ureg.electron_mass * h)).to(
        "GHz"
    )
    coulomb = (e**2 / (4 * np.pi * eps_0 * um * h)).to("GHz")
    rydberg = (ureg.electron_mass * e**4 / (8 * eps_0**2 * h**3)).to("GHz")
    mass_ratio = (Q_(1, "electron_mass") / ureg.atomic_mass_constant).to("")
    return SimpleNamespace(
        efield=float(efield.magnitude),
        bfield=float(bfield.magnitude),
        diamagnetism=float(diamagnetism.magnitude),
        coulomb=float(coulomb.magnitude),
        rydberg=float(rydberg.magnitude),
        electron_mass_amu=float(mass_ratio.magnitude),
    )


DATA_DIR = Path(__file__).parent / "data_files"
constants = Constant.fromjson(DATA_DIR / "constants.json")
conversion = _conversion_factors()
"""Conversion factors into GHz.

- ``efield``: (e·µm)·(V/cm) → GHz
- ``bfield``: (µ_B)·(G) → GHz
- ``diamagnetism``: e²/(8 m_e)·(µm²)·(G²) → GHz
- ``coulomb``: e²/(4π ε₀ µm) → GHz
- ``rydberg``: R∞ c in GHz
- ``electron_mass_amu``: m_e in atomic mass units

:meta hide-value:"""

settings = SimpleNamespace(
    interaction_tolerance=1e-24,
    basis_tolerance=1e-12,
    num_workers=1,
    chunk_size=64,
)
"""Numeric tolerances and parallelisation settings.

- ``interaction_tolerance``: coefficients with an absolute value below
  this are treated as zero (no operator is built or added).
- ``basis_tolerance``: coefficients of basis vectors below this are
  pruned after products of sparse matrices.
- ``num_workers``: number of threads used for the canonical operator
  build.
- ``chunk_size``: number of columns handled by one worker task.

:meta hide-value:"""


def scalar_dtype(dtype) -> type:
    """Validate the scalar strategy of a system.

    Args:
        dtype: `float` or `complex` (or the corresponding numpy types).

    Returns:
        type: `numpy.float64` or `numpy.complex128`.

    >>> scalar_dtype(float)
    <class 'numpy.float64'>
    >>> scalar_dtype(complex)
    <class 'numpy.complex128'>
    """
    if dtype in (float, np.float64):
        return np.float64
    if dtype in (complex, np.complex128):
        return np.complex128
    raise ValueError(f"Unsupported scalar type {dtype!r}, use float or complex.")


def is_complex(dtype) -> bool:
    """Check whether a scalar strategy uses complex arithmetic."""
    return scalar_dtype(dtype) is np.complex128
