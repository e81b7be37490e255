from regime_engine.domain.models.entities import (
    Available,
    AllocationOutput,
    Axis,
    FlipWatchStatus,
    Insufficient,
    MarketObservation,
    Regime,
    RegimeSnapshot,
    RiskRegime,
    SatelliteContribution,
    SatelliteObservation,
    SeedStatus,
    SignalVote,
    SnapshotSource,
    StorageMeta,
    SymbolDiagnostic,
    VamsState,
    WindowResult,
    infl_axis_label,
    risk_axis_label,
)

__all__ = [
    "Available",
    "AllocationOutput",
    "Axis",
    "FlipWatchStatus",
    "Insufficient",
    "MarketObservation",
    "Regime",
    "RegimeSnapshot",
    "RiskRegime",
    "SatelliteContribution",
    "SatelliteObservation",
    "SeedStatus",
    "SignalVote",
    "SnapshotSource",
    "StorageMeta",
    "SymbolDiagnostic",
    "VamsState",
    "WindowResult",
    "infl_axis_label",
    "risk_axis_label",
]
