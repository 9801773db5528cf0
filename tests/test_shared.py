#! /usr/bin/env python

import doctest
import unittest

import numpy as np
from rydpair import shared


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(shared))
    return tests


class ConstantTestCase(unittest.TestCase):
    """Test case for the `Constant` class."""

    def test_number_of_constants(self):
        """Check the number of constants to the previous state."""
        previous_number_of_constants = 3
        current_number_of_constants = len(vars(shared.constants))
        self.assertEqual(current_number_of_constants, previous_number_of_constants)

    def test_constants(self):
        """Test the values of all the constants."""
        C = shared.constants
        self.assertEqual(C.g_s, 2.00231930436256)
        self.assertEqual(C.g_l, 1.0)
        self.assertEqual(C.a_0, 5.29177210903e-05)

    def test_details(self):
        """Constants carry their metadata."""
        self.assertEqual(shared.constants.a_0.details.units, "um")
        self.assertEqual(shared.constants.g_s.details.source, "CODATA 2018")


class ConversionTestCase(unittest.TestCase):
    """Conversion factors derived with pint."""

    def test_efield(self):
        # e * 1 µm * 1 V/cm / h
        self.assertAlmostEqual(shared.conversion.efield, 24.17989, places=4)

    def test_bfield(self):
        # mu_B * 1 G / h
        self.assertAlmostEqual(shared.conversion.bfield, 1.399625e-3, places=8)

    def test_coulomb(self):
        # e^2 / (4 pi eps_0 1 µm) / h
        self.assertAlmostEqual(shared.conversion.coulomb, 348.185, delta=0.01)

    def test_rydberg(self):
        self.assertAlmostEqual(shared.conversion.rydberg, 3289841.96, delta=1.0)

    def test_electron_mass(self):
        self.assertAlmostEqual(
            shared.conversion.electron_mass_amu, 5.48579909e-4, places=10
        )

    def test_factors_are_floats(self):
        factors = shared._conversion_factors()
        for name, value in vars(factors).items():
            with self.subTest(name=name):
                self.assertIs(type(value), float)
                self.assertGreater(value, 0)

    def test_units(self):
        field = shared.Q_(1, "V/cm").to("V/m")
        self.assertAlmostEqual(field.magnitude, 100)


class SettingsTestCase(unittest.TestCase):
    """Tolerances and the scalar strategy."""

    def test_defaults(self):
        self.assertEqual(shared.settings.interaction_tolerance, 1e-24)
        self.assertEqual(shared.settings.basis_tolerance, 1e-12)
        self.assertEqual(shared.settings.num_workers, 1)

    def test_scalar_dtype(self):
        self.assertIs(shared.scalar_dtype(np.float64), np.float64)
        self.assertTrue(shared.is_complex(complex))
        self.assertFalse(shared.is_complex(float))
        self.assertRaises(ValueError, shared.scalar_dtype, int)
