#!/usr/bin/env python3
"""
Exceptions raised by CloneForge

All input problems are detected before any merge is attempted, so a raised
exception always means no partial result was produced.

Version: 0.1.0
Date: 2026-10-18
Author: CloneForge developers
License: CC BY-NC 4.0
"""


class CloneForgeError(Exception):
    """Base class for all CloneForge errors."""


class InvalidDimensions(CloneForgeError, ValueError):
    """Distance matrix is not square, or does not match the number of labels."""


class InvalidLabel(CloneForgeError, ValueError):
    """An initial cluster label is not an integer in [1, n]."""


class InvalidDistance(CloneForgeError, ValueError):
    """Distance matrix contains NaN, infinite or negative values."""


class AllocationFailure(CloneForgeError, MemoryError):
    """Memory for the partition bookkeeping could not be obtained."""
