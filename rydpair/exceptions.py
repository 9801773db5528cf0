#! /usr/bin/env python
"""Exceptions and warnings raised by rydpair.

All errors derive from `RydpairError`.  The configuration and
compatibility errors additionally derive from `ValueError` so that
callers treating bad arguments generically keep working.
"""


class RydpairError(Exception):
    """Base class of all rydpair errors."""


class ConfigurationError(RydpairError, ValueError):
    """Invalid restrictions, symmetries or user-defined states."""


class ArbitraryMomentumMisuseError(ConfigurationError):
    """`ARB` was combined with explicit momenta in one restriction."""


class IncompatibleSystemsError(RydpairError, ValueError):
    """Two systems cannot be combined into one."""


class DecodeError(RydpairError, ValueError):
    """A persisted record is malformed or its hashes do not match."""


class SymmetryWarning(UserWarning):
    """A requested symmetry had to be loosened."""
