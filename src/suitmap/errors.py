#!/usr/bin/env python3
"""suitmap.errors

Exception taxonomy shared by every suitmap stage.

Each error also subclasses the closest builtin so callers that only know
about FileNotFoundError / ValueError still catch them. CLIs catch
SuitmapError and turn it into SystemExit with the message.
"""

from __future__ import annotations


class SuitmapError(Exception):
    """Base class for all suitmap failures."""


class NotFound(SuitmapError, FileNotFoundError):
    """Missing input file, directory, or empty pattern match."""


class ShapeMismatch(SuitmapError, ValueError):
    """Grids are not aligned (CRS, extent, resolution, or dimensions differ)."""


class InvalidRange(SuitmapError, ValueError):
    """Reclassification ranges overlap, leave gaps, or are malformed."""


class UnsupportedInterpolation(SuitmapError, ValueError):
    """Resampling method does not suit the data kind (categorical vs continuous)."""


class LossyResampleWarning(UserWarning):
    """Resampling to a coarser grid than the source (values get aggregated)."""
