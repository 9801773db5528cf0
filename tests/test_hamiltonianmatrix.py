#! /usr/bin/env python

import doctest
import tempfile
import unittest
from pathlib import Path

import numpy as np
from rydpair import hamiltonianmatrix
from rydpair.exceptions import DecodeError
from rydpair.hamiltonianmatrix import Hamiltonianmatrix, combine, energycutoff, prune
from scipy import sparse


def load_tests(loader, tests, ignore):
    tests.addTests(doctest.DocTestSuite(hamiltonianmatrix))
    return tests


def random_hermitian(num, density=0.3, seed=42, complex_=False):
    rng = np.random.default_rng(seed)
    matrix = sparse.random(num, num, density=density, random_state=rng).toarray()
    if complex_:
        matrix = matrix + 1j * sparse.random(
            num, num, density=density, random_state=rng
        ).toarray()
    matrix = matrix + matrix.conj().T + np.diag(np.arange(num, dtype=float))
    return sparse.csc_matrix(matrix)


class SerializationTestCase(unittest.TestCase):
    def setUp(self):
        entries = random_hermitian(6)
        basis = sparse.random(9, 6, density=0.5, random_state=1, format="csc")
        self.matrix = Hamiltonianmatrix(entries, basis)

    def assertSameContainer(self, first, second):
        self.assertEqual(first.entries.shape, second.entries.shape)
        self.assertEqual(first.basis.shape, second.basis.shape)
        np.testing.assert_array_equal(first.entries.indptr, second.entries.indptr)
        np.testing.assert_array_equal(first.entries.indices, second.entries.indices)
        np.testing.assert_array_equal(first.entries.data, second.entries.data)
        np.testing.assert_array_equal(first.basis.indices, second.basis.indices)
        np.testing.assert_array_equal(first.basis.data, second.basis.data)
        self.assertEqual(first.hash_entries(), second.hash_entries())
        self.assertEqual(first.hash_basis(), second.hash_basis())

    def test_roundtrip(self):
        copy = Hamiltonianmatrix.deserialize(self.matrix.serialize())
        self.assertSameContainer(self.matrix, copy)

    def test_roundtrip_complex(self):
        matrix = Hamiltonianmatrix(random_hermitian(5, complex_=True))
        self.assertEqual(matrix.dtype, np.complex128)
        copy = Hamiltonianmatrix.deserialize(matrix.serialize())
        self.assertEqual(copy.dtype, np.complex128)
        self.assertSameContainer(matrix, copy)

    def test_roundtrip_empty(self):
        matrix = Hamiltonianmatrix()
        copy = Hamiltonianmatrix.deserialize(matrix.serialize())
        self.assertEqual(copy.num_basisvectors, 0)

    def test_save_load(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "hamiltonian.bin"
            self.matrix.save(path)
            copy = Hamiltonianmatrix.load(path)
        self.assertSameContainer(self.matrix, copy)

    def test_header(self):
        data = self.matrix.serialize()
        self.assertEqual(data[:4], b"RPHM")
        self.assertEqual(data[4], 1)
        self.assertEqual(data[5], 0)

    def test_bad_magic(self):
        data = bytearray(self.matrix.serialize())
        data[0:4] = b"XXXX"
        self.assertRaises(DecodeError, Hamiltonianmatrix.deserialize, bytes(data))

    def test_bad_version(self):
        data = bytearray(self.matrix.serialize())
        data[4] = 2
        self.assertRaises(DecodeError, Hamiltonianmatrix.deserialize, bytes(data))

    def test_truncated(self):
        data = self.matrix.serialize()
        for length in (3, 10, len(data) // 2, len(data) - 1):
            with self.subTest(length=length):
                self.assertRaises(
                    DecodeError, Hamiltonianmatrix.deserialize, data[:length]
                )

    def test_trailing_bytes(self):
        data = self.matrix.serialize() + b"\x00"
        self.assertRaises(DecodeError, Hamiltonianmatrix.deserialize, data)

    def test_corrupted_value(self):
        data = bytearray(self.matrix.serialize())
        # last byte of the last stored entry value, just before the hashes
        data[-17] ^= 0xFF
        self.assertRaises(DecodeError, Hamiltonianmatrix.deserialize, bytes(data))

    def test_corrupted_hash(self):
        data = bytearray(self.matrix.serialize())
        data[-1] ^= 0x01
        self.assertRaises(DecodeError, Hamiltonianmatrix.deserialize, bytes(data))

    def test_decode_error_is_value_error(self):
        with self.assertRaises(ValueError):
            Hamiltonianmatrix.deserialize(b"")


class CutoffTestCase(unittest.TestCase):
    def setUp(self):
        self.entries = random_hermitian(12, density=0.4, seed=3)

    def cutoff(self, threshold, matrix=None):
        matrix = Hamiltonianmatrix(self.entries) if matrix is None else matrix
        matrix.apply_cutoff(threshold)
        return matrix

    def test_no_small_offdiagonal(self):
        matrix = self.cutoff(0.5).entries.tocoo()
        offdiagonal = matrix.row != matrix.col
        self.assertTrue(np.all(np.abs(matrix.data[offdiagonal]) >= 0.5))

    def test_diagonal_kept(self):
        matrix = self.cutoff(100.0)
        np.testing.assert_array_equal(
            matrix.entries.diagonal(), self.entries.diagonal()
        )

    def test_include_diagonal(self):
        matrix = Hamiltonianmatrix(self.entries)
        matrix.apply_cutoff(100.0, include_diagonal=True)
        self.assertEqual(matrix.entries.nnz, 0)

    def test_monotone(self):
        previous = Hamiltonianmatrix(self.entries).entries.nnz
        for threshold in (0.1, 0.3, 0.6, 1.0):
            current = self.cutoff(threshold).entries.nnz
            self.assertLessEqual(current, previous)
            previous = current

    def test_composition(self):
        twice = self.cutoff(0.6, self.cutoff(0.3))
        once = self.cutoff(0.6)
        self.assertEqual((twice.entries != once.entries).nnz, 0)
        again = self.cutoff(0.6, once.copy())
        self.assertEqual((again.entries != once.entries).nnz, 0)

    def test_prune(self):
        matrix = prune(sparse.csc_matrix([[1.0, 1e-14], [0.0, 2.0]]))
        self.assertEqual(matrix.nnz, 2)


class BlockTestCase(unittest.TestCase):
    def setUp(self):
        entries = np.diag([1.0, 2.0, 3.0, 4.0, 5.0])
        entries[0, 3] = entries[3, 0] = 0.2
        entries[1, 4] = entries[4, 1] = 0.1
        self.matrix = Hamiltonianmatrix(sparse.csc_matrix(entries))

    def test_find_subs(self):
        subs = self.matrix.find_subs()
        self.assertEqual([s.num_basisvectors for s in subs], [2, 2, 1])
        np.testing.assert_array_equal(subs[0].entries.diagonal(), [1.0, 4.0])
        np.testing.assert_array_equal(subs[2].entries.diagonal(), [3.0])
        # the basis columns follow the block
        self.assertEqual(subs[1].basis[4, 1], 1.0)

    def test_find_subs_empty(self):
        self.assertEqual(Hamiltonianmatrix().find_subs(), [])

    def test_get_block(self):
        block = self.matrix.get_block([0, 3])
        np.testing.assert_array_equal(
            block.entries.toarray(), [[1.0, 0.2], [0.2, 4.0]]
        )
        self.assertEqual(block.num_coordinates, 5)

    def test_diagonalize(self):
        block = self.matrix.get_block([0, 3])
        eigenvalues = np.linalg.eigvalsh(block.entries.toarray())
        block.diagonalize()
        np.testing.assert_allclose(block.entries.diagonal(), eigenvalues)
        basis = block.basis.toarray()
        np.testing.assert_allclose(basis.T @ basis, np.eye(2), atol=1e-12)

    def test_change_basis(self):
        swap = sparse.csc_matrix([[0, 1], [1, 0]], dtype=float)
        block = self.matrix.get_block([0, 3])
        changed = block.change_basis(swap)
        np.testing.assert_array_equal(changed.entries.diagonal(), [4.0, 1.0])
        self.assertEqual(changed.basis[0, 1], 1.0)

    def test_remove_unnecessary(self):
        matrix = Hamiltonianmatrix(
            sparse.diags([1.0, 2.0, 3.0]),
            sparse.csc_matrix([[1.0, 0, 0], [0, 1.0, 0], [0, 0, 0.01]]),
        )
        necessary = matrix.find_unnecessary_states(threshold=0.05)
        np.testing.assert_array_equal(necessary, [True, True, False])
        matrix.remove_unnecessary_basisvectors()
        self.assertEqual(matrix.num_basisvectors, 2)
        matrix.remove_unnecessary_states(necessary)
        self.assertEqual(matrix.num_coordinates, 2)


class ArithmeticTestCase(unittest.TestCase):
    def setUp(self):
        self.first = Hamiltonianmatrix(sparse.diags([1.0, 2.0]))
        self.second = Hamiltonianmatrix(sparse.csc_matrix([[0.0, 1.0], [1.0, 0.0]]))

    def test_add_sub(self):
        total = self.first + self.second
        np.testing.assert_array_equal(total.entries.toarray(), [[1, 1], [1, 2]])
        difference = total - self.second
        np.testing.assert_array_equal(difference.entries.toarray(), [[1, 0], [0, 2]])

    def test_inplace(self):
        matrix = self.first.copy()
        matrix += self.second
        matrix -= self.first
        np.testing.assert_array_equal(matrix.entries.toarray(), [[0, 1], [1, 0]])
        np.testing.assert_array_equal(self.first.entries.toarray(), [[1, 0], [0, 2]])

    def test_scalar(self):
        np.testing.assert_array_equal((2 * self.first).entries.diagonal(), [2, 4])
        np.testing.assert_array_equal((self.first * 0.5).entries.diagonal(), [0.5, 1])
        np.testing.assert_array_equal((-self.first).entries.diagonal(), [-1, -2])

    def test_basis_mismatch(self):
        other = Hamiltonianmatrix(sparse.diags([1.0, 2.0]), 2 * sparse.identity(2))
        with self.assertRaises(ValueError):
            self.first + other
        with self.assertRaises(ValueError):
            self.first - Hamiltonianmatrix(sparse.diags([1.0]))

    def test_abs(self):
        matrix = Hamiltonianmatrix(sparse.diags([-1.0, 2.0]))
        np.testing.assert_array_equal(matrix.abs().entries.diagonal(), [1, 2])

    def test_triplets(self):
        matrix = Hamiltonianmatrix.empty(2, 3)
        matrix.add_entries(0, 0, 1.0)
        matrix.add_entries(1, 1, 2.0)
        matrix.add_basis(0, 0, 1.0)
        matrix.add_basis(2, 1, 1.0)
        matrix.compress(2, 3)
        self.assertEqual(matrix.num_basisvectors, 2)
        self.assertEqual(matrix.num_coordinates, 3)
        self.assertEqual(matrix.basis[2, 1], 1.0)

    def test_shape_checks(self):
        self.assertRaises(
            ValueError, Hamiltonianmatrix, sparse.csc_matrix((2, 3))
        )
        self.assertRaises(
            ValueError, Hamiltonianmatrix, sparse.diags([1.0, 2.0]), sparse.identity(3)
        )


class CombineTestCase(unittest.TestCase):
    def setUp(self):
        self.lhs = Hamiltonianmatrix(sparse.diags([0.0, 1.0, 5.0]))
        self.rhs = Hamiltonianmatrix(sparse.diags([0.0, 2.0]))

    def test_window(self):
        pair = combine(self.lhs, self.rhs, delta_e=0.6, target_energy=1.5)
        # only the sums 0 + 2 and 1 + 0 lie in the window
        np.testing.assert_array_equal(sorted(pair.entries.diagonal()), [1.0, 2.0])
        self.assertEqual(pair.num_coordinates, 6)

    def test_coordinates(self):
        pair = combine(self.lhs, self.rhs, delta_e=0.1, target_energy=3.0)
        # a = 1, b = 1 -> coordinate 1 * 2 + 1
        self.assertEqual(pair.num_basisvectors, 1)
        self.assertEqual(pair.basis[3, 0], 1.0)

    def test_energycutoff(self):
        mask = energycutoff(self.lhs, self.rhs, delta_e=0.1, target_energy=3.0)
        self.assertEqual(mask.shape, (6,))
        np.testing.assert_array_equal(np.flatnonzero(mask), [3])
