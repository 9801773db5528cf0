#! /usr/bin/env python

import doctest
import unittest

import numpy as np
from rydpair import rotation
from rydpair.exceptions import ConfigurationError
from rydpair.rotation import (
    Rotator,
    euler_angles_from_rotation,
    rotate_vector,
    rotation_matrix,
    rotation_matrix_from_axes,
    wigner_d,
    wigner_d_small,
)
from rydpair.states import StateOne, StateSpace, StateTwo
from rydpair.utils import half_range


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(rotation))
    return tests


class WignerTestCase(unittest.TestCase):
    def small_d(self, j, beta):
        ms = half_range(-j, j)
        return np.array([[wigner_d_small(j, m1, m2, beta) for m2 in ms] for m1 in ms])

    def test_orthogonal(self):
        for j in (0.5, 1, 1.5, 2, 3.5):
            with self.subTest(j=j):
                d = self.small_d(j, 0.7)
                np.testing.assert_allclose(d @ d.T, np.eye(len(d)), atol=1e-12)

    def test_identity(self):
        np.testing.assert_allclose(self.small_d(1.5, 0.0), np.eye(4), atol=1e-15)

    def test_known_values(self):
        beta = 0.4
        self.assertAlmostEqual(wigner_d_small(1, 1, 1, beta), (1 + np.cos(beta)) / 2)
        self.assertAlmostEqual(wigner_d_small(1, 1, 0, beta), -np.sin(beta) / np.sqrt(2))
        self.assertAlmostEqual(wigner_d_small(1, 0, 1, beta), np.sin(beta) / np.sqrt(2))
        self.assertAlmostEqual(wigner_d_small(0.5, 0.5, 0.5, beta), np.cos(beta / 2))

    def test_outside(self):
        self.assertEqual(wigner_d_small(0.5, 1.5, 0.5, 0.3), 0.0)

    def test_phases(self):
        value = wigner_d(0.5, 0.5, 0.5, 0.2, 0.0, 0.4)
        self.assertAlmostEqual(value, np.exp(-0.5j * 0.6))


class RotationMatrixTestCase(unittest.TestCase):
    def test_orthogonal(self):
        R = rotation_matrix(0.1, 0.2, 0.3)
        np.testing.assert_allclose(R @ R.T, np.eye(3), atol=1e-12)
        self.assertAlmostEqual(np.linalg.det(R), 1.0)

    def test_roundtrip(self):
        for angles in [(0.3, 1.1, -0.7), (-2.0, 0.5, 2.5), (0.4, 0.0, 0.0)]:
            with self.subTest(angles=angles):
                R = rotation_matrix(*angles)
                np.testing.assert_allclose(
                    rotation_matrix(*euler_angles_from_rotation(R)), R, atol=1e-12
                )

    def test_gimbal_lock(self):
        R = rotation_matrix(0.2, np.pi, 0.0)
        np.testing.assert_allclose(
            rotation_matrix(*euler_angles_from_rotation(R)), R, atol=1e-12
        )

    def test_from_axes(self):
        R = rotation_matrix_from_axes([0, 0, 2], [0, 3, 0])
        np.testing.assert_allclose(R, np.eye(3), atol=1e-15)

    def test_not_orthogonal(self):
        self.assertRaises(ValueError, rotation_matrix_from_axes, [0, 0, 1], [0, 1, 1])
        self.assertRaises(ValueError, rotation_matrix_from_axes, [0, 0, 0], [0, 1, 0])

    def test_rotate_vector(self):
        field = [1.0, 0.0, 2.0]
        np.testing.assert_allclose(
            rotate_vector(field, angles=(0, 0, 0)), field, atol=1e-15
        )
        R = rotation_matrix(0.3, 0.8, 0.1)
        np.testing.assert_allclose(
            rotate_vector(R @ np.array(field), angles=(0.3, 0.8, 0.1)), field, atol=1e-12
        )
        self.assertRaises(ValueError, rotate_vector, field)


class RotatorTestCase(unittest.TestCase):
    def setUp(self):
        self.states = StateSpace(
            StateOne("Rb", 30, 1, 1.5, m) for m in half_range(-1.5, 1.5)
        )

    def test_unitary(self):
        rotator = Rotator(self.states)
        U = rotator.build_staterotator(0.3, 1.2, -0.4).toarray()
        np.testing.assert_allclose(U.conj().T @ U, np.eye(4), atol=1e-12)

    def test_inverse(self):
        rotator = Rotator(self.states)
        forward = rotator.build_staterotator(0.3, 1.2, -0.4)
        backward = rotator.build_staterotator(0.4, -1.2, -0.3)
        np.testing.assert_allclose(
            (backward @ forward).toarray(), np.eye(4), atol=1e-12
        )

    def test_flip(self):
        rotator = Rotator(self.states, dtype=float)
        column = rotator.rotate_indices([3], 0, np.pi, 0).toarray().ravel()
        self.assertAlmostEqual(abs(column[0]), 1.0)
        self.assertAlmostEqual(np.abs(column[1:]).sum(), 0.0)

    def test_real_dtype(self):
        rotator = Rotator(self.states, dtype=float)
        self.assertRaises(ConfigurationError, rotator.build_staterotator, 0.3, 0.2, 0.0)

    def test_unregistered_components_dropped(self):
        partial = StateSpace([StateOne("Rb", 30, 1, 1.5, 1.5)])
        column = Rotator(partial).rotate_states(
            [StateOne("Rb", 30, 1, 1.5, 0.5)], 0, 0.5, 0
        )
        self.assertEqual(column.shape, (1, 1))
        self.assertAlmostEqual(
            column[0, 0], wigner_d_small(1.5, 1.5, 0.5, 0.5)
        )

    def test_pairs(self):
        s = [StateOne("Rb", 30, 0, 0.5, m) for m in (-0.5, 0.5)]
        space = StateSpace(StateTwo(a, b) for a in s for b in s)
        U = Rotator(space).build_staterotator(0.0, 0.9, 0.0).toarray()
        np.testing.assert_allclose(U.conj().T @ U, np.eye(4), atol=1e-12)
