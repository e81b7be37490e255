"""
Engine error types.

Only total data unavailability and misconfiguration propagate to callers;
everything else is absorbed into diagnostics by the layer that sees it.
"""

from typing import Optional


class RegimeEngineError(Exception):
    """Base class for all engine errors"""


class ConfigurationError(RegimeEngineError):
    """Invalid engine configuration or storage wiring. Fatal at startup."""


class RegimeNotReadyError(RegimeEngineError):
    """No snapshot can be produced and there is no prior snapshot to fall back to."""

    code = "NOT_READY"

    def __init__(self, reason: str = "NOT_READY"):
        super().__init__(reason)
        self.reason = reason


class ReplayModeError(RegimeEngineError):
    """Computed path asked for a date at or before the cutover."""


class StorageError(RegimeEngineError):
    """Storage adapter read/write failure."""


class MarketDataError(RegimeEngineError):
    """A single provider failed for a single symbol."""

    def __init__(self, message: str, symbol: Optional[str] = None, provider: Optional[str] = None):
        super().__init__(message)
        self.symbol = symbol
        self.provider = provider
