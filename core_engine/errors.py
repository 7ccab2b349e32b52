"""Exception hierarchy for the tile generator.

Input errors are fatal preconditions raised before any output is written.
Resource errors abort the run as soon as they occur; there is no retry.
"""

from __future__ import annotations


class GeneratorError(Exception):
    """Base exception for all tile generator failures."""


class InputError(GeneratorError, ValueError):
    """Invalid or unreadable input raster, or an invalid configuration."""


class ResourceError(GeneratorError, OSError):
    """An output file/directory could not be created or a worker failed to start."""
