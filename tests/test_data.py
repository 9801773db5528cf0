#! /usr/bin/env python

import doctest
import json
import tempfile
import unittest
from pathlib import Path

from rydpair import data
from rydpair.shared import conversion


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(data))
    return tests


class SpeciesTestCase(unittest.TestCase):
    """Test case for the `Species` class."""

    def tearDown(self):
        data.Species.load_database(None)

    def test_number_of_species(self):
        """Changes when species are added or removed from the database."""
        self.assertEqual(data.Species.available(), ["Cs", "H", "Rb"])

    def test_all_species(self):
        """Load all species."""
        for symbol in data.Species.available():
            with self.subTest(symbol):
                species = data.Species(symbol)
                self.assertEqual(species.spin, 0.5)
                self.assertGreater(species.mass_amu, 1.0)

    def test_constructors(self):
        """Test construction of existing and non-existing species."""
        self.assertIsInstance(data.Species("Rb"), data.Species)
        self.assertRaises(ValueError, data.Species, "Kryp")

    def test_multiplicity_suffix(self):
        species = data.Species("Rb3")
        self.assertEqual(species.element, "Rb")
        self.assertEqual(species.spin, 1.0)
        self.assertEqual(species.multiplicity, 3)
        self.assertEqual(data.Species("Rb").multiplicity, 2)

    def test_rydberg_constant(self):
        """The reduced-mass correction lowers the Rydberg constant."""
        rb = data.Species("Rb")
        h = data.Species("H")
        self.assertLess(h.rydberg_constant, rb.rydberg_constant)
        self.assertLess(rb.rydberg_constant, conversion.rydberg)

    def test_energy(self):
        rb = data.Species("Rb")
        self.assertLess(rb.energy(30, 0, 0.5), rb.energy(31, 0, 0.5))
        self.assertLess(rb.energy(30, 0, 0.5), 0)
        # high l channels are hydrogenic
        self.assertEqual(rb.quantum_defect(30, 10, 9.5), 0.0)
        self.assertEqual(rb.nstar(30, 10, 9.5), 30)

    def test_fine_structure(self):
        rb = data.Species("Rb")
        self.assertNotEqual(rb.quantum_defect(30, 1, 0.5), rb.quantum_defect(30, 1, 1.5))

    def test_load_database(self):
        table = {
            "X": {
                "name": "Test",
                "spin": 0.5,
                "mass_amu": 10.0,
                "defects": [{"l": 0, "j": 0.5, "d0": 0.5}],
            }
        }
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "defects.json"
            path.write_text(json.dumps(table), encoding="utf-8")
            data.Species.load_database(path)
        self.assertEqual(data.Species.available(), ["X"])
        self.assertEqual(data.Species("X").quantum_defect(10, 0, 0.5), 0.5)
        data.Species.load_database(None)
        self.assertIn("Rb", data.Species.available())


class SpinTestCase(unittest.TestCase):
    def test_spin_to_multiplicity(self):
        self.assertEqual(data.spin_to_multiplicity(0.5), 2)
        self.assertEqual(data.spin_to_multiplicity(1), 3)
        self.assertRaises(ValueError, data.spin_to_multiplicity, 0.3)

    def test_multiplicity_to_spin(self):
        self.assertEqual(data.multiplicity_to_spin(2), 0.5)
        self.assertEqual(data.multiplicity_to_spin(1), 0.0)
