"""
Error taxonomy for the harvest / lookup engine.

Running out of horizon is not an error: harvest and lookup report it as a
normal terminal state (``HarvestOutcome.HORIZON_EXHAUSTED`` /
``LookupStatus.NOT_FOUND``).
"""

from typing import Optional


class WindServerError(Exception):
    """Base class for windserver errors."""
    pass


class TransportError(WindServerError):
    """Snapshot retrieval failed (network error or non-2xx response)."""

    def __init__(self, stamp, message: str, status: Optional[int] = None):
        super().__init__(f"{stamp}: {message}")
        self.stamp = stamp
        self.status = status


class ConversionError(WindServerError):
    """Raw GRIB2 to JSON conversion failed."""

    def __init__(self, stamp, message: str):
        super().__init__(f"{stamp}: {message}")
        self.stamp = stamp


class StoreError(WindServerError):
    """I/O failure reading, writing or deleting an artifact."""
    pass


class RejectedQuery(WindServerError):
    """Client query is invalid (bad target time or search limit)."""
    pass
