# compositional_tools/errors.py
"""
Error kinds raised by the statistical core.

Every error message names the feature, sample or group that triggered it.
"""


class CompositionalError(Exception):
    """Base class for all compositional_tools errors."""


class InvalidInputError(CompositionalError, ValueError):
    """Malformed or empty vectors, non-numeric data, bad parameters."""


class TreeMismatchError(CompositionalError):
    """Phylogenetic tree tips do not match the feature identifiers."""


class InsufficientDataError(CompositionalError):
    """Too few samples in a group for the requested test."""


class DegenerateDistributionError(CompositionalError):
    """Zero-variance data that breaks a t-test, PERMANOVA or PCA."""
