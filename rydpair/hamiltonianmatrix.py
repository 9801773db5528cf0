#! /usr/bin/env python
"""Sparse Hamiltonian together with the basis it is expressed in.

A `Hamiltonianmatrix` holds two CSC matrices:

- ``entries``: the operator in the basis (num_basisvectors x num_basisvectors),
- ``basis``: the basis vectors as columns over the coordinates, i.e. the
  registered states (num_coordinates x num_basisvectors).

Containers can be added, scaled, split into uncoupled blocks,
diagonalized, hashed and persisted in a compact binary record.

>>> import numpy as np
>>> from scipy import sparse
>>> H = Hamiltonianmatrix(sparse.diags([1.0, 2.0]), sparse.identity(2))
>>> H
Basis vectors: 2
Coordinates: 2
Non-zero entries: 2
Scalar type: float64
>>> H2 = Hamiltonianmatrix.deserialize(H.serialize())
>>> H2.hash_entries() == H.hash_entries()
True
"""
from __future__ import annotations

import hashlib
import logging
import struct
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
from scipy import linalg, sparse
from scipy.sparse.csgraph import connected_components

from .exceptions import DecodeError
from .shared import settings

logger = logging.getLogger(__name__)

MAGIC = b"RPHM"
VERSION = 1
CSR_NOT_CSC = 0x01
COMPLEX_NOT_REAL = 0x02

_HEADER = struct.Struct("<4sBB")
_SIZES = struct.Struct("<QQQ")
_HASHES = struct.Struct("<QQ")


def _canonical(matrix, dtype=None) -> sparse.csc_matrix:
    matrix = sparse.csc_matrix(matrix, dtype=dtype)
    matrix.sum_duplicates()
    matrix.sort_indices()
    return matrix


def prune(matrix, threshold: Optional[float] = None) -> sparse.csc_matrix:
    """Drop stored values with an absolute value below `threshold`.

    The default threshold is ``settings.basis_tolerance``.
    """
    if threshold is None:
        threshold = settings.basis_tolerance
    matrix = _canonical(matrix)
    matrix.data[np.abs(matrix.data) < threshold] = 0
    matrix.eliminate_zeros()
    return matrix


def _digest(matrix: sparse.csc_matrix) -> int:
    h = hashlib.blake2b(digest_size=8)
    h.update(np.asarray(matrix.shape, dtype="<u8").tobytes())
    h.update(np.asarray(matrix.indptr, dtype="<i8").tobytes())
    h.update(np.asarray(matrix.indices, dtype="<i8").tobytes())
    data = np.asarray(matrix.data)
    if np.iscomplexobj(data):
        h.update(np.ascontiguousarray(data.real, dtype="<f8").tobytes())
        h.update(np.ascontiguousarray(data.imag, dtype="<f8").tobytes())
    else:
        h.update(np.ascontiguousarray(data, dtype="<f8").tobytes())
    return int.from_bytes(h.digest(), "little")


class Hamiltonianmatrix:
    """Sparse operator and basis.

    Args:
        entries: Operator in the basis (square, num_basisvectors).
        basis: Basis vectors as columns (num_coordinates x num_basisvectors).
            Defaults to the identity.
    """

    def __init__(self, entries=None, basis=None):
        if entries is None:
            entries = sparse.csc_matrix((0, 0))
        if basis is None:
            basis = sparse.identity(entries.shape[0], format="csc")
        if entries.shape[0] != entries.shape[1]:
            raise ValueError("The entries must form a square matrix.")
        if basis.shape[1] != entries.shape[0]:
            raise ValueError(
                "The number of basis vectors does not match the size of the entries."
            )
        dtype = np.result_type(entries.dtype, basis.dtype, np.float64)
        self.entries = _canonical(entries, dtype)
        self.basis = _canonical(basis, dtype)
        self._triplets_entries: list = []
        self._triplets_basis: list = []

    @classmethod
    def empty(cls, num_basisvectors: int, num_coordinates: int, dtype=float):
        """Container to be filled with `add_entries`, `add_basis` and `compress`."""
        return cls(
            sparse.csc_matrix((num_basisvectors, num_basisvectors), dtype=dtype),
            sparse.csc_matrix((num_coordinates, num_basisvectors), dtype=dtype),
        )

    def __repr__(self) -> str:
        lines = [
            f"Basis vectors: {self.num_basisvectors}",
            f"Coordinates: {self.num_coordinates}",
            f"Non-zero entries: {self.entries.nnz}",
            f"Scalar type: {self.dtype}",
        ]
        return "\n".join(lines)

    @property
    def dtype(self) -> np.dtype:
        return self.entries.dtype

    @property
    def num_basisvectors(self) -> int:
        return self.basis.shape[1]

    @property
    def num_coordinates(self) -> int:
        return self.basis.shape[0]

    def copy(self) -> Hamiltonianmatrix:
        return Hamiltonianmatrix(self.entries.copy(), self.basis.copy())

    ##################
    # Triplet assembly

    def add_entries(self, row: int, col: int, value):
        """Queue an entry; applied by `compress`."""
        self._triplets_entries.append((row, col, value))

    def add_basis(self, row: int, col: int, value):
        """Queue a basis coefficient; applied by `compress`."""
        self._triplets_basis.append((row, col, value))

    def compress(self, num_basisvectors: int, num_coordinates: int):
        """Build the matrices from the queued triplets."""

        def build(triplets, shape):
            if not triplets:
                return sparse.csc_matrix(shape, dtype=self.dtype)
            rows, cols, values = zip(*triplets)
            return sparse.csc_matrix((values, (rows, cols)), shape=shape)

        entries = build(self._triplets_entries, (num_basisvectors, num_basisvectors))
        basis = build(self._triplets_basis, (num_coordinates, num_basisvectors))
        dtype = np.result_type(entries.dtype, basis.dtype, self.dtype)
        self.entries = _canonical(entries, dtype)
        self.basis = _canonical(basis, dtype)
        self._triplets_entries = []
        self._triplets_basis = []

    ##################
    # Basis changes

    def change_basis(self, new_basis) -> Hamiltonianmatrix:
        """Express the container in a new basis.

        Args:
            new_basis: New basis vectors as columns, in coordinates of the
                current basis vectors.

        Returns:
            Hamiltonianmatrix: ``entries' = new^H entries new`` and
            ``basis' = basis new``.
        """
        new_basis = sparse.csc_matrix(new_basis)
        entries = new_basis.conj().T @ self.entries @ new_basis
        basis = self.basis @ new_basis
        return Hamiltonianmatrix(entries, basis)

    def apply_cutoff(self, threshold: float, include_diagonal: bool = False):
        """Drop entries with an absolute value below `threshold`.

        Diagonal entries are kept unless `include_diagonal` is set.

        >>> from scipy import sparse
        >>> H = Hamiltonianmatrix(sparse.csc_matrix([[1.0, 1e-3], [1e-3, 0.5]]))
        >>> H.apply_cutoff(1e-2)
        >>> H.entries.nnz
        2
        """
        entries = self.entries.tocoo()
        keep = np.abs(entries.data) >= threshold
        if not include_diagonal:
            keep |= entries.row == entries.col
        self.entries = _canonical(
            sparse.coo_matrix(
                (entries.data[keep], (entries.row[keep], entries.col[keep])),
                shape=entries.shape,
            ),
            self.dtype,
        )

    def abs(self) -> Hamiltonianmatrix:
        """Element-wise absolute values of entries and basis."""
        return Hamiltonianmatrix(abs(self.entries), abs(self.basis))

    def get_block(self, indices: Sequence[int]) -> Hamiltonianmatrix:
        """Principal submatrix with the matching basis vectors."""
        indices = np.asarray(indices, dtype=int)
        entries = self.entries[indices, :][:, indices]
        return Hamiltonianmatrix(entries, self.basis[:, indices])

    def find_subs(self) -> list[Hamiltonianmatrix]:
        """Split into blocks that the entries do not couple.

        Blocks are ordered by their smallest basis vector index.

        >>> from scipy import sparse
        >>> H = Hamiltonianmatrix(sparse.csc_matrix(
        ...     [[1.0, 0, 0.1], [0, 2.0, 0], [0.1, 0, 3.0]]))
        >>> [sub.num_basisvectors for sub in H.find_subs()]
        [2, 1]
        """
        if self.num_basisvectors == 0:
            return []
        adjacency = abs(self.entries)
        adjacency = adjacency + adjacency.T
        num, labels = connected_components(adjacency, directed=False)
        groups = [np.flatnonzero(labels == label) for label in range(num)]
        groups.sort(key=lambda g: g[0])
        logger.debug("Found %d uncoupled subspaces", num)
        return [self.get_block(g) for g in groups]

    def find_unnecessary_states(self, threshold: float = 0.05) -> np.ndarray:
        """Mask of coordinates contributing to some basis vector."""
        basis = self.basis.tocoo()
        necessary = np.zeros(self.num_coordinates, dtype=bool)
        necessary[basis.row[np.abs(basis.data) > threshold]] = True
        return necessary

    def remove_unnecessary_basisvectors(
        self,
        necessary: Optional[np.ndarray] = None,
        threshold: float = 0.05,
    ):
        """Drop basis vectors with little weight on the necessary coordinates.

        Without a mask every coordinate is necessary.
        """
        basis = self.basis
        if necessary is not None:
            basis = sparse.diags(np.asarray(necessary, dtype=float)) @ basis
        weight = np.asarray(abs(basis).power(2).sum(axis=0)).ravel()
        keep = np.flatnonzero(weight > threshold)
        block = self.get_block(keep)
        self.entries, self.basis = block.entries, block.basis

    def remove_unnecessary_states(self, necessary: np.ndarray):
        """Drop the coordinates not flagged in `necessary`."""
        keep = np.flatnonzero(np.asarray(necessary, dtype=bool))
        self.basis = _canonical(self.basis[keep, :], self.dtype)

    def diagonalize(self):
        """Solve the Hermitian eigenproblem in place.

        The entries become diagonal and the basis vectors are replaced by
        the eigenvectors.
        """
        if self.num_basisvectors == 0:
            return
        energies, vectors = linalg.eigh(self.entries.toarray())
        self.entries = _canonical(sparse.diags(energies), self.dtype)
        self.basis = prune(self.basis @ sparse.csc_matrix(vectors))

    ##################
    # Arithmetic

    def _check_basis(self, other: Hamiltonianmatrix):
        if (
            self.basis.shape != other.basis.shape
            or (self.basis != other.basis).nnz != 0
        ):
            raise ValueError("Both matrices have to be expressed in the same basis.")

    def __add__(self, other: Hamiltonianmatrix) -> Hamiltonianmatrix:
        self._check_basis(other)
        return Hamiltonianmatrix(self.entries + other.entries, self.basis)

    def __sub__(self, other: Hamiltonianmatrix) -> Hamiltonianmatrix:
        self._check_basis(other)
        return Hamiltonianmatrix(self.entries - other.entries, self.basis)

    def __iadd__(self, other: Hamiltonianmatrix) -> Hamiltonianmatrix:
        self._check_basis(other)
        self.entries = _canonical(self.entries + other.entries)
        return self

    def __isub__(self, other: Hamiltonianmatrix) -> Hamiltonianmatrix:
        self._check_basis(other)
        self.entries = _canonical(self.entries - other.entries)
        return self

    def __mul__(self, scalar) -> Hamiltonianmatrix:
        if not np.isscalar(scalar):
            return NotImplemented
        return Hamiltonianmatrix(self.entries * scalar, self.basis)

    __rmul__ = __mul__

    def __neg__(self) -> Hamiltonianmatrix:
        return self * -1.0

    ##################
    # Hashing and persistence

    def hash_entries(self) -> int:
        """64-bit BLAKE2b digest of the entries."""
        return _digest(self.entries)

    def hash_basis(self) -> int:
        """64-bit BLAKE2b digest of the basis."""
        return _digest(self.basis)

    @staticmethod
    def _pack_matrix(matrix: sparse.csc_matrix, is_complex: bool) -> bytes:
        parts = [
            _SIZES.pack(matrix.shape[0], matrix.shape[1], matrix.nnz),
            np.asarray(matrix.indptr, dtype="<i8").tobytes(),
            np.asarray(matrix.indices, dtype="<i8").tobytes(),
        ]
        data = np.asarray(matrix.data)
        parts.append(np.ascontiguousarray(data.real, dtype="<f8").tobytes())
        if is_complex:
            parts.append(np.ascontiguousarray(data.imag, dtype="<f8").tobytes())
        return b"".join(parts)

    def serialize(self) -> bytes:
        """Binary record of the container (little-endian).

        Layout: magic ``RPHM``, version, flags, then basis and entries as
        ``rows, cols, nnz, indptr, indices, values`` and finally both
        hashes.
        """
        is_complex = np.iscomplexobj(self.entries.data) or np.iscomplexobj(
            self.basis.data
        )
        flags = COMPLEX_NOT_REAL if is_complex else 0
        return b"".join(
            [
                _HEADER.pack(MAGIC, VERSION, flags),
                self._pack_matrix(self.basis, is_complex),
                self._pack_matrix(self.entries, is_complex),
                _HASHES.pack(self.hash_entries(), self.hash_basis()),
            ]
        )

    @staticmethod
    def _unpack_matrix(data: bytes, offset: int, flags: int):
        def take(count, dtype):
            nonlocal offset
            size = count * 8
            if offset + size > len(data):
                raise DecodeError("Unexpected end of record.")
            array = np.frombuffer(data, dtype=dtype, count=count, offset=offset)
            offset += size
            return array

        if offset + _SIZES.size > len(data):
            raise DecodeError("Unexpected end of record.")
        rows, cols, nnz = _SIZES.unpack_from(data, offset)
        offset += _SIZES.size
        csr = bool(flags & CSR_NOT_CSC)
        outer = rows if csr else cols
        indptr = take(outer + 1, "<i8").astype(np.int64)
        indices = take(nnz, "<i8").astype(np.int64)
        values = take(nnz, "<f8").astype(np.float64)
        if flags & COMPLEX_NOT_REAL:
            values = values + 1j * take(nnz, "<f8")
        if indptr[0] != 0 or indptr[-1] != nnz or np.any(np.diff(indptr) < 0):
            raise DecodeError("Corrupted index pointer.")
        inner = cols if csr else rows
        if nnz and (indices.min() < 0 or indices.max() >= inner):
            raise DecodeError("Index out of range.")
        cls = sparse.csr_matrix if csr else sparse.csc_matrix
        return cls((values, indices, indptr), shape=(rows, cols)).tocsc(), offset

    @classmethod
    def deserialize(cls, data: bytes) -> Hamiltonianmatrix:
        """Rebuild a container from `serialize` output.

        Raises:
            DecodeError: Bad magic, version, sizes or hashes.
        """
        data = bytes(data)
        if len(data) < _HEADER.size:
            raise DecodeError("Record too short.")
        magic, version, flags = _HEADER.unpack_from(data, 0)
        if magic != MAGIC:
            raise DecodeError(f"Bad magic {magic!r}.")
        if version != VERSION:
            raise DecodeError(f"Unsupported version {version}.")
        offset = _HEADER.size
        basis, offset = cls._unpack_matrix(data, offset, flags)
        entries, offset = cls._unpack_matrix(data, offset, flags)
        if len(data) != offset + _HASHES.size:
            raise DecodeError("Unexpected record length.")
        hash_entries, hash_basis = _HASHES.unpack_from(data, offset)
        if entries.shape[0] != entries.shape[1] or basis.shape[1] != entries.shape[0]:
            raise DecodeError("Inconsistent matrix sizes.")
        matrix = cls(entries, basis)
        if matrix.hash_entries() != hash_entries or matrix.hash_basis() != hash_basis:
            raise DecodeError("Hash mismatch.")
        return matrix

    def save(self, path: Path):
        """Write the binary record to `path`."""
        Path(path).write_bytes(self.serialize())
        logger.debug("Saved %d basis vectors to %s", self.num_basisvectors, path)

    @classmethod
    def load(cls, path: Path) -> Hamiltonianmatrix:
        """Read a binary record from `path`."""
        return cls.deserialize(Path(path).read_bytes())


def energycutoff(
    lhs: Hamiltonianmatrix,
    rhs: Hamiltonianmatrix,
    delta_e: float,
    target_energy: float = 0.0,
) -> np.ndarray:
    """Mask of the product coordinates needed by `combine`.

    Args:
        lhs, rhs: Diagonal containers of the two subsystems.
        delta_e: Half-width of the pair energy window.
        target_energy: Centre of the pair energy window.

    Returns:
        np.ndarray: Boolean mask of length
        ``lhs.num_coordinates * rhs.num_coordinates``.
    """
    a, b = _pairs_within(lhs, rhs, delta_e, target_energy)
    used_lhs = lhs.basis[:, a] != 0
    used_rhs = rhs.basis[:, b] != 0
    necessary = np.zeros((lhs.num_coordinates, rhs.num_coordinates), dtype=bool)
    for k in range(len(a)):
        rows_lhs = used_lhs[:, k].nonzero()[0]
        rows_rhs = used_rhs[:, k].nonzero()[0]
        necessary[np.ix_(rows_lhs, rows_rhs)] = True
    return necessary.ravel()


def _pairs_within(lhs, rhs, delta_e, target_energy):
    e_lhs = lhs.entries.diagonal().real
    e_rhs = rhs.entries.diagonal().real
    total = e_lhs[:, None] + e_rhs[None, :]
    a, b = np.nonzero(np.abs(total - target_energy) <= delta_e)
    return a, b


def combine(
    lhs: Hamiltonianmatrix,
    rhs: Hamiltonianmatrix,
    delta_e: float,
    target_energy: float = 0.0,
) -> Hamiltonianmatrix:
    """Tensor product of two containers within an energy window.

    The pair entries are ``lhs (x) 1 + 1 (x) rhs`` restricted to the basis
    vector pairs ``(a, b)`` with ``|E_a + E_b - target_energy| <= delta_e``,
    where ``E`` are the diagonal entries.  The pair basis is the
    Kronecker product of the bases, so the coordinates are the pairs of
    coordinates ``(i, j)`` at ``i * rhs.num_coordinates + j``.

    >>> from scipy import sparse
    >>> one = Hamiltonianmatrix(sparse.diags([0.0, 1.0]))
    >>> combine(one, one, 0.5, 1.0).entries.diagonal()
    array([1., 1.])
    """
    a, b = _pairs_within(lhs, rhs, delta_e, target_energy)
    keep = a * rhs.num_basisvectors + b
    entries = sparse.kronsum(rhs.entries, lhs.entries, format="csc")
    entries = entries[keep, :][:, keep]
    basis = sparse.kron(lhs.basis, rhs.basis, format="csc")[:, keep]
    logger.debug(
        "Combined %d x %d basis vectors into %d",
        lhs.num_basisvectors,
        rhs.num_basisvectors,
        len(keep),
    )
    return Hamiltonianmatrix(entries, basis)
