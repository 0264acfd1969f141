"""
Error types for torchsht.

Every failure of the transform engine is fatal to the call that raised it:
there is no partial result and no retry. Errors carry a kind, the component
or argument that triggered them and an optional comment.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Categories of engine failure."""

    ARG_INVALID = "Invalid argument"
    MEM_ALLOC_FAIL = "Memory allocation failed"
    SIZE_INVALID = "Invalid size"


class SHTError(RuntimeError):
    """Base class for all torchsht errors."""

    kind = ErrorKind.ARG_INVALID

    def __init__(self, where: str, comment: Optional[str] = None):
        self.where = where
        self.comment = comment
        msg = f"{self.kind.value} in {where}"
        if comment:
            msg += f": {comment}"
        super().__init__(msg)


class ArgumentInvalidError(SHTError, ValueError):
    """Invalid argument combination, e.g. spin != 0 with reality set."""

    kind = ErrorKind.ARG_INVALID


class AllocationError(SHTError, MemoryError):
    """Requested buffers exceed the memory available to the process."""

    kind = ErrorKind.MEM_ALLOC_FAIL


class PreconditionError(SHTError, ValueError):
    """Array size or harmonic index outside the contract of an operation."""

    kind = ErrorKind.SIZE_INVALID
