#! /usr/bin/env python
"""Species database: spins, masses and quantum defects.

The bundled table ``data_files/quantum_defects.json`` lists, for every
species, its valence spin, its mass and the Rydberg-Ritz coefficients of
the quantum defects per ``(l, j)`` channel.  A different table with the
same layout can be loaded with `Species.load_database`.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from importlib_resources import files
from importlib_resources.abc import Traversable

from .shared import conversion


def spin_to_multiplicity(spin: float) -> int:
    """Spin quantum number to multiplicity.

    Args:
        spin (float): Spin quantum number.

    Returns:
        int: Spin multiplicity.

    """
    if int(2 * spin) != 2 * spin:
        raise ValueError("Spin needs to be half of an integer.")
    return int(2 * spin) + 1


def multiplicity_to_spin(multiplicity: int) -> float:
    """Spin multiplicity to spin quantum number.

    Args:
        multiplicity (int): Spin multiplicity.

    Returns:
        float: Spin quantum number.

    """
    return float(multiplicity - 1) / 2.0


def get_data(suffix: str = "") -> Traversable:
    """Get the directory containing data files."""
    return files(__package__) / "data_files" / suffix


class Species:
    """Class representing an atomic species.

    Args:
        symbol (str): The symbol of the species in the database.  A
            trailing digit denotes the spin multiplicity of the valence
            electrons (e.g. ``"Sr3"``); the digit is stripped for the
            database lookup.

    Examples:
        >>> rb = Species("Rb")
        >>> rb
        Symbol: Rb
        Spin: 0.5
        Mass (amu): 86.909180527
        Details: {'name': 'Rubidium 87', 'source': 'Li et al., PRA 67, 052502 (2003); Han et al., PRA 74, 054502 (2006)'}

        The quantum defect of the 30S state:

        >>> round(rb.quantum_defect(30, 0, 0.5), 6)
        3.131428

        Hydrogen has no core, hence no quantum defect:

        >>> Species("H").quantum_defect(10, 0, 0.5)
        0.0
    """

    _species_data: Optional[dict] = None

    def __repr__(self) -> str:  # noqa D105
        lines = [
            f"Symbol: {self.symbol}",
            f"Spin: {self.spin}",
            f"Mass (amu): {self.mass_amu}",
            f"Details: {self.details}",
        ]
        return "\n".join(lines)

    def __init__(self, symbol: str):  # noqa D105
        self._ensure_species_data()
        element = symbol.rstrip("0123456789")
        if element not in self._species_data:
            raise ValueError(
                f"Species {symbol} not in database. See `Species.available()`"
            )
        entry = dict(self._species_data[element])
        self.symbol = symbol
        self.element = element
        if element != symbol:
            self.spin = multiplicity_to_spin(int(symbol[len(element) :]))
        else:
            self.spin = float(entry["spin"])
        self.mass_amu = float(entry.pop("mass_amu"))
        self.defects = entry.pop("defects")
        entry.pop("spin")
        self.details = entry

    @classmethod
    def _ensure_species_data(cls):
        if cls._species_data is None:
            with open(get_data() / "quantum_defects.json", encoding="utf-8") as f:
                cls._species_data = json.load(f)

    @classmethod
    def load_database(cls, path: Optional[Path] = None):
        """Replace the quantum defect table.

        Args:
            path (Path): JSON file with the layout of the bundled
                table.  `None` restores the bundled table.
        """
        if path is None:
            cls._species_data = None
            cls._ensure_species_data()
            return
        with open(path, encoding="utf-8") as f:
            cls._species_data = json.load(f)

    @classmethod
    def available(cls) -> list[str]:
        """List species available in the database.

        >>> Species.available()
        ['Cs', 'H', 'Rb']
        """
        cls._ensure_species_data()
        return sorted(cls._species_data)

    @property
    def multiplicity(self) -> int:
        """Spin multiplicity ``2 s + 1`` of the valence electron(s)."""
        return spin_to_multiplicity(self.spin)

    @property
    def rydberg_constant(self) -> float:
        """Mass-corrected Rydberg constant in GHz."""
        return conversion.rydberg / (1 + conversion.electron_mass_amu / self.mass_amu)

    def _channel(self, l: int, j: float) -> Optional[dict]:
        candidates = [d for d in self.defects if d["l"] == l]
        if not candidates:
            return None
        return min(candidates, key=lambda d: abs(d["j"] - j))

    def quantum_defect(self, n: int, l: int, j: float) -> float:
        """Rydberg-Ritz quantum defect of a channel.

        Channels missing from the table (typically high l) have no
        defect.
        """
        channel = self._channel(l, j)
        if channel is None:
            return 0.0
        d0 = channel["d0"]
        x = 1 / (n - d0) ** 2
        return d0 + channel.get("d2", 0.0) * x + channel.get("d4", 0.0) * x**2

    def nstar(self, n: int, l: int, j: float) -> float:
        """Effective principal quantum number."""
        return n - self.quantum_defect(n, l, j)

    def energy(self, n: int, l: int, j: float) -> float:
        """Binding energy in GHz (negative)."""
        return -self.rydberg_constant / self.nstar(n, l, j) ** 2
