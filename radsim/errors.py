"""Exception hierarchy for :mod:`radsim`."""
from __future__ import annotations


class RadsimError(Exception):
    """Base exception for simulation errors."""


class InvalidVolumeError(RadsimError, ValueError):
    """A volume with no physical radius (<= 0 or non-finite) was supplied."""


class DegenerateSampleError(RadsimError, RuntimeError):
    """The kappa sampler kept drawing zeros until its retry budget ran out."""


class ConfigurationError(RadsimError, ValueError):
    """Invalid configuration keys or values."""


class OutputExistsError(RadsimError, FileExistsError):
    """An output file already exists and the overwrite policy declined it."""


__all__ = [
    "RadsimError",
    "InvalidVolumeError",
    "DegenerateSampleError",
    "ConfigurationError",
    "OutputExistsError",
]
