"""Custom exceptions for mm-sim.

All exceptions share the ``code`` / ``message`` / ``details`` structure
defined in :mod:`app.exceptions.base`.
"""

from app.exceptions.base import (
    AnchorUnchangedError,
    ChainQueryError,
    ChannelClosedError,
    ConfigurationError,
    MmSimError,
    ValidationError,
)

__all__ = [
    "MmSimError",
    "ValidationError",
    "ConfigurationError",
    "ChainQueryError",
    "ChannelClosedError",
    "AnchorUnchangedError",
]
