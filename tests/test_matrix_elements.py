#! /usr/bin/env python

import doctest
import unittest

import numpy as np
from rydpair import matrix_elements
from rydpair.matrix_elements import (
    AngularMatrixElementCache,
    MatrixElementSource,
    Method,
    angular_multipole,
    hydrogenic_radial,
    reduced_spherical_harmonic,
    selection_rule_diamagnetic,
    selection_rule_magnetic,
    selection_rule_multipole,
)
from rydpair.shared import constants
from rydpair.states import StateOne
from rydpair.utils import half_range


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(matrix_elements))
    return tests


def manifold(species, n, l):
    return [
        StateOne(species, n, l, j, m)
        for j in half_range(abs(l - 0.5), l + 0.5)
        for m in half_range(-j, j)
    ]


class SelectionRuleTestCase(unittest.TestCase):
    def setUp(self):
        self.s = StateOne("Rb", 30, 0, 0.5, 0.5)
        self.p = StateOne("Rb", 30, 1, 1.5, 1.5)
        self.d = StateOne("Rb", 30, 2, 2.5, 0.5)

    def test_dipole(self):
        self.assertTrue(selection_rule_multipole(self.p, self.s, 1))
        self.assertTrue(selection_rule_multipole(self.p, self.s, 1, 1))
        self.assertFalse(selection_rule_multipole(self.p, self.s, 1, 0))
        self.assertFalse(selection_rule_multipole(self.d, self.s, 1))

    def test_quadrupole(self):
        self.assertTrue(selection_rule_multipole(self.d, self.s, 2, 0))
        self.assertFalse(selection_rule_multipole(self.p, self.s, 2))

    def test_species(self):
        cs = StateOne("Cs", 30, 1, 1.5, 1.5)
        self.assertFalse(selection_rule_multipole(cs, self.s, 1))

    def test_magnetic(self):
        self.assertTrue(selection_rule_magnetic(self.s, self.s, 0))
        self.assertFalse(selection_rule_magnetic(self.p, self.s))
        self.assertFalse(selection_rule_magnetic(self.s, self.s, 1))

    def test_diamagnetic(self):
        self.assertTrue(selection_rule_diamagnetic(self.s, self.s, 0, 0))
        self.assertTrue(selection_rule_diamagnetic(self.d, self.s, 2, 0))
        self.assertFalse(selection_rule_diamagnetic(self.d, self.s, 0))
        self.assertFalse(selection_rule_diamagnetic(self.s, self.s, 1))


class AngularTestCase(unittest.TestCase):
    def test_hermitian_symmetry(self):
        """<a|C^k_q|b> = (-1)^q <b|C^k_-q|a>."""
        states = manifold("Rb", 30, 0) + manifold("Rb", 30, 1) + manifold("Rb", 30, 2)
        for k in (1, 2):
            for a in states:
                for b in states:
                    q = int(round(a.m - b.m))
                    with self.subTest(k=k, a=a, b=b):
                        self.assertAlmostEqual(
                            angular_multipole(a, b, k),
                            (-1) ** q * angular_multipole(b, a, k),
                        )

    def test_monopole(self):
        s = StateOne("Rb", 30, 1, 1.5, 0.5)
        self.assertAlmostEqual(angular_multipole(s, s, 0), 1.0)


class RadialTestCase(unittest.TestCase):
    def test_hydrogen_expectation(self):
        # <r> = (3 n^2 - l (l + 1)) / 2
        self.assertEqual(hydrogenic_radial(5, 2, 2, 1), (75 - 6) / 2)
        # <r^2> = n^2 (5 n^2 + 1 - 3 l (l + 1)) / 2
        self.assertEqual(hydrogenic_radial(5, 1, 1, 2), 25 * (125 + 1 - 6) / 2)

    def test_symmetric(self):
        self.assertEqual(hydrogenic_radial(20, 3, 4, 1), hydrogenic_radial(20, 4, 3, 1))

    def test_monopole(self):
        self.assertEqual(hydrogenic_radial(20, 3, 3, 0), 1.0)
        self.assertEqual(hydrogenic_radial(20, 3, 4, 0), 0.0)

    def test_plain_floats(self):
        cases = [(10, 0, 0, 1), (10, 0, 1, 1), (10, 1, 1, 2), (10, 0, 2, 2), (10, 0, 0, 3)]
        for args in cases:
            with self.subTest(args=args):
                self.assertIs(type(hydrogenic_radial(*args)), float)
        self.assertIs(type(reduced_spherical_harmonic(0, 1, 1)), float)


class CacheTestCase(unittest.TestCase):
    def setUp(self):
        self.cache = AngularMatrixElementCache()

    def test_protocol(self):
        self.assertIsInstance(self.cache, MatrixElementSource)

    def test_energy(self):
        s = StateOne("Rb", 30, 0, 0.5, 0.5)
        p = StateOne("Rb", 30, 1, 0.5, 0.5)
        self.assertLess(self.cache.get_energy(s), self.cache.get_energy(p))
        self.assertEqual(self.cache.get_energy(StateOne.artificial("G")), 0.0)

    def test_hydrogen_energy(self):
        h = StateOne("H", 10, 3, 2.5, 0.5)
        self.assertEqual(self.cache.get_nstar(h), 10)
        self.assertAlmostEqual(
            self.cache.get_energy(h), self.cache.get_energy(StateOne("H", 10, 0, 0.5, 0.5))
        )

    def test_magnetic_dipole_s_state(self):
        """-(L + g_s S)_z of an S state is -g_s m."""
        for m in (-0.5, 0.5):
            s = StateOne("Rb", 30, 0, 0.5, m)
            self.assertAlmostEqual(
                self.cache.get_magnetic_dipole(s, s), -constants.g_s * m
            )

    def test_electric_dipole(self):
        s = StateOne("H", 10, 0, 0.5, 0.5)
        p = StateOne("H", 10, 1, 0.5, 0.5)
        self.assertNotEqual(self.cache.get_electric_dipole(p, s), 0.0)
        self.assertEqual(self.cache.get_electric_dipole(s, s), 0.0)
        self.assertAlmostEqual(
            self.cache.get_electric_dipole(p, s), self.cache.get_electric_dipole(s, p)
        )

    def test_radial_cache(self):
        s = StateOne("Rb", 30, 0, 0.5, 0.5)
        p = StateOne("Rb", 31, 1, 0.5, -0.5)
        value = self.cache.get_radial(s, p, 1)
        self.assertEqual(self.cache.get_radial(p, s, 1), value)
        self.cache.set_method(Method.SEMICLASSICAL)
        self.assertNotEqual(self.cache.get_radial(s, p, 1), value)

    def test_precalculate(self):
        states = manifold("Rb", 30, 0) + manifold("Rb", 30, 1)
        self.cache.precalculate_electric_momentum(states, 0)
        # S-P1/2 and S-P3/2
        self.assertEqual(len(self.cache._radial), 2)
        self.cache.precalculate_multipole(states, 1)
        self.assertEqual(len(self.cache._radial), 2)

    def test_overlap_factor(self):
        """Manifolds with different n* decouple as the defects differ."""
        s = StateOne("Rb", 30, 0, 0.5, 0.5)
        p = StateOne("Rb", 30, 1, 0.5, 0.5)
        d = self.cache.get_nstar(s) - self.cache.get_nstar(p)
        self.assertAlmostEqual(
            self.cache.get_radial(s, p, 1),
            hydrogenic_radial(30, 0, 1, 1) * np.sinc(d),
        )
