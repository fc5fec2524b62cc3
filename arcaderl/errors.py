"""Exception taxonomy for the training core."""

from __future__ import annotations


class ArcadeRLError(Exception):
    """Base class for arcaderl errors."""


class EncodingError(ArcadeRLError, ValueError):
    """State vector length does not match the configured dimension."""

    def __init__(self, expected: int, actual: int, what: str = "state") -> None:
        super().__init__(f"{what} has length {actual}, expected {expected}")
        self.expected = int(expected)
        self.actual = int(actual)


class PersistenceError(ArcadeRLError, OSError):
    """Reading or writing an episode or model file failed."""


class CorruptRecordError(ArcadeRLError, ValueError):
    """A persisted record could not be parsed."""
