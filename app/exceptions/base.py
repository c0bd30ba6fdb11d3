"""Exception classes for mm-sim.

Every error carries a machine-readable ``code``, a human ``message`` and an
optional ``details`` dict so log lines and run reports can classify failures
without parsing strings.
"""

from __future__ import annotations

from typing import Any


class MmSimError(Exception):
    """Base exception for all mm-sim errors."""

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.code}: {self.message} ({self.details})"
        return f"{self.code}: {self.message}"


class ValidationError(MmSimError):
    """Raised when an argument or value is outside its accepted range."""

    pass


class ConfigurationError(MmSimError):
    """Raised when the universe file or run configuration is unusable.

    Root cause: missing/malformed keys in the universe file, or a participant
    lacking a resource the instruction builder needs for one of the markets.
    Remediation: re-run the configure step or fix the file by hand; the
    ``details`` dict names the offending participant/market/key.
    """

    pass


class ChainQueryError(MmSimError):
    """Raised by a chain-query capability when a query fails.

    Signature is message-first so call sites read naturally.
    """

    def __init__(
        self,
        message: str,
        code: str = "CHAIN_QUERY_FAILED",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, details=details)


class ChannelClosedError(MmSimError):
    """Raised when pushing onto a handoff channel that has been closed."""

    def __init__(self, message: str = "handoff channel is closed", details: dict[str, Any] | None = None):
        super().__init__(code="CHANNEL_CLOSED", message=message, details=details)


class AnchorUnchangedError(ValidationError):
    """Raised when publishing an anchor equal to the one currently published."""

    def __init__(self, anchor: str):
        super().__init__(
            code="ANCHOR_UNCHANGED",
            message="refusing to publish an anchor equal to the current one",
            details={"anchor": anchor},
        )
        self.anchor = anchor
