"""
CONFIG ENGINE (ENGINE-0)
Load, validate, and expose engine configuration

RESPONSIBILITIES:
- Hold every threshold, window, tolerance and satellite definition
- Overlay YAML values on the built-in defaults
- Expose read-only typed objects

RULES:
❌ No module-level mutable state
❌ No partial configs (fail fast on invalid values)
✅ Immutable value passed into every engine
✅ Deterministic output
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
import copy

import yaml

from regime_engine.core.errors import ConfigurationError
from regime_engine.domain.models import Axis


@dataclass(frozen=True)
class WindowConfig:
    """Observation-count windows"""
    short: int = 21
    medium: int = 63
    long: int = 126
    year: int = 252
    volatility: int = 63
    annualization: int = 252


@dataclass(frozen=True)
class SignalConfig:
    """
    One Option-B voting signal.

    comparison "above": value >= on_threshold -> +1, value <= off_threshold -> -1
    comparison "below": value <= on_threshold -> +1, value >= off_threshold -> -1
    """
    key: str
    label: str
    axis: Axis
    symbol: str
    window: int
    on_threshold: float
    off_threshold: float
    denominator: Optional[str] = None
    comparison: str = "above"
    positive_direction: str = "Risk On"
    negative_direction: str = "Risk Off"

    @property
    def symbols(self) -> Tuple[str, ...]:
        if self.denominator:
            return (self.symbol, self.denominator)
        return (self.symbol,)

    def describe(self, vote: int) -> str:
        if vote == 0:
            return "none"
        if self.comparison == "above":
            op, threshold = (">=", self.on_threshold) if vote > 0 else ("<=", self.off_threshold)
        else:
            op, threshold = ("<=", self.on_threshold) if vote > 0 else (">=", self.off_threshold)
        direction = self.positive_direction if vote > 0 else self.negative_direction
        return f"{op} {threshold} ({direction})"

    def scaled(self, factor: float) -> "SignalConfig":
        return replace(
            self,
            on_threshold=self.on_threshold * factor,
            off_threshold=self.off_threshold * factor,
        )


@dataclass(frozen=True)
class TieBreakConfig:
    """Reference series used when an axis score is exactly zero"""
    risk_symbol: str = "SPY"
    inflation_symbol: str = "PDBC"
    window: int = 21


@dataclass(frozen=True)
class StressOverrideConfig:
    volatility_symbol: str = "VIX"
    volatility_limit: float = 30.0
    credit_signal: str = "hyg_ief"
    credit_limit: float = -0.02


@dataclass(frozen=True)
class VamsConfig:
    bullish_threshold: float = 0.5
    bearish_threshold: float = -0.5
    momentum_short_weight: float = 0.6
    momentum_long_weight: float = 0.4
    scale_map: Mapping[int, float] = field(
        default_factory=lambda: {2: 1.0, 0: 0.5, -2: 0.0}
    )
    stocks_symbol: str = "SPY"
    gold_symbol: str = "GLD"
    btc_symbol: str = "BTC-USD"


@dataclass(frozen=True)
class AllocationConfig:
    stocks_risk_on: float = 0.60
    stocks_risk_off: float = 0.30
    gold: float = 0.30
    btc_risk_on: float = 0.10
    btc_risk_off: float = 0.05
    tolerance: float = 1e-6
    small_gap: float = 0.01


@dataclass(frozen=True)
class FlipWatchConfig:
    confirmation_days: int = 2
    strong_flip_score: int = 2


@dataclass(frozen=True)
class SatelliteConfig:
    """One slower-cadence inflation satellite"""
    series: str
    cadence: str
    metric: str
    on_threshold: float
    off_threshold: float
    ttl_days: int
    half_life_days: float
    weight: float = 1.0
    fallbacks: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MarketDataConfig:
    """Provider chains per symbol"""
    default_providers: Tuple[str, ...] = ("stooq", "yfinance")
    symbol_providers: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    def providers_for(self, symbol: str) -> Tuple[str, ...]:
        return tuple(self.symbol_providers.get(symbol, self.default_providers))


@dataclass(frozen=True)
class EngineConfig:
    """Complete immutable engine configuration"""
    windows: WindowConfig
    signals: Tuple[SignalConfig, ...]
    tie_break: TieBreakConfig
    stress: StressOverrideConfig
    vams: VamsConfig
    allocation: AllocationConfig
    flip_watch: FlipWatchConfig
    satellites: Tuple[SatelliteConfig, ...]
    core_symbols: Tuple[str, ...]
    min_healthy_core_symbols: int
    market_data: MarketDataConfig

    @property
    def all_symbols(self) -> Tuple[str, ...]:
        extra = [self.vams.gold_symbol, self.vams.btc_symbol, self.vams.stocks_symbol]
        symbols = list(self.core_symbols)
        for symbol in extra:
            if symbol not in symbols:
                symbols.append(symbol)
        return tuple(symbols)

    def signals_for(self, axis: Axis) -> Tuple[SignalConfig, ...]:
        return tuple(s for s in self.signals if s.axis == axis)

    def get_signal(self, key: str) -> SignalConfig:
        for signal in self.signals:
            if signal.key == key:
                return signal
        raise ConfigurationError(f"Unknown signal: {key}")

    def get_satellite(self, series: str) -> Optional[SatelliteConfig]:
        for satellite in self.satellites:
            if satellite.series == series:
                return satellite
        return None

    def with_threshold_scale(self, factor: float) -> "EngineConfig":
        """Copy with every vote threshold multiplied by factor (sensitivity sweep)"""
        if factor <= 0:
            raise ConfigurationError("Threshold scale factor must be positive")
        return replace(self, signals=tuple(s.scaled(factor) for s in self.signals))


# ------------------------------------------------------------------
# DEFAULTS
# ------------------------------------------------------------------

DEFAULT_CONFIG: Dict[str, Any] = {
    "windows": {"short": 21, "medium": 63, "long": 126, "year": 252, "volatility": 63, "annualization": 252},
    "signals": [
        {"key": "spy", "label": "SPY trend", "axis": "risk", "symbol": "SPY", "window": 63,
         "on": 0.02, "off": -0.02},
        {"key": "hyg_ief", "label": "HYG/IEF credit ratio", "axis": "risk", "symbol": "HYG",
         "denominator": "IEF", "window": 63, "on": 0.01, "off": -0.01},
        {"key": "vix", "label": "VIX change", "axis": "risk", "symbol": "VIX", "window": 21,
         "on": -0.10, "off": 0.10, "comparison": "below"},
        {"key": "eem_spy", "label": "EEM/SPY ratio", "axis": "risk", "symbol": "EEM",
         "denominator": "SPY", "window": 63, "on": 0.01, "off": -0.01},
        {"key": "pdbc", "label": "PDBC commodities", "axis": "inflation", "symbol": "PDBC", "window": 63,
         "on": 0.02, "off": -0.02, "positive": "Inflation", "negative": "Disinflation"},
        {"key": "tip_ief", "label": "TIP/IEF breakeven ratio", "axis": "inflation", "symbol": "TIP",
         "denominator": "IEF", "window": 63, "on": 0.005, "off": -0.005,
         "positive": "Inflation", "negative": "Disinflation"},
        {"key": "tlt", "label": "TLT long bond", "axis": "inflation", "symbol": "TLT", "window": 63,
         "on": 0.01, "off": -0.01, "positive": "Disinflation", "negative": "Inflation"},
        {"key": "uup", "label": "UUP dollar", "axis": "inflation", "symbol": "UUP", "window": 63,
         "on": 0.01, "off": -0.01, "positive": "Disinflation", "negative": "Inflation"},
    ],
    "tie_break": {"risk_symbol": "SPY", "inflation_symbol": "PDBC", "window": 21},
    "stress_override": {"volatility_symbol": "VIX", "volatility_limit": 30.0,
                        "credit_signal": "hyg_ief", "credit_limit": -0.02},
    "vams": {
        "bullish_threshold": 0.5, "bearish_threshold": -0.5,
        "momentum_short_weight": 0.6, "momentum_long_weight": 0.4,
        "scale_map": {2: 1.0, 0: 0.5, -2: 0.0},
        "stocks_symbol": "SPY", "gold_symbol": "GLD", "btc_symbol": "BTC-USD",
    },
    "allocation": {
        "stocks_risk_on": 0.60, "stocks_risk_off": 0.30, "gold": 0.30,
        "btc_risk_on": 0.10, "btc_risk_off": 0.05,
        "tolerance": 1e-6, "small_gap": 0.01,
    },
    "flip_watch": {"confirmation_days": 2, "strong_flip_score": 2},
    "satellites": [
        {"series": "Cleveland Fed Nowcast", "cadence": "daily", "metric": "delta_7d_pp",
         "on": 0.05, "off": -0.05, "ttl_days": 7, "half_life_days": 3, "weight": 1.0,
         "fallbacks": ["Truflation"]},
        {"series": "Truflation", "cadence": "daily", "metric": "delta_7d_pp",
         "on": 0.05, "off": -0.05, "ttl_days": 7, "half_life_days": 3, "weight": 1.0,
         "fallbacks": ["Commodity Nowcast Basket (Energy+Metals)"]},
        {"series": "Commodity Nowcast Basket (Energy+Metals)", "cadence": "daily", "metric": "tr_21_basket",
         "on": 0.02, "off": -0.02, "ttl_days": 7, "half_life_days": 3, "weight": 1.0,
         "fallbacks": []},
        {"series": "ISM Manufacturing Prices Paid", "cadence": "monthly", "metric": "level",
         "on": 55, "off": 45, "ttl_days": 35, "half_life_days": 14, "weight": 1.0,
         "fallbacks": ["ISM Services Prices Paid"]},
        {"series": "ISM Services Prices Paid", "cadence": "monthly", "metric": "level",
         "on": 55, "off": 45, "ttl_days": 35, "half_life_days": 14, "weight": 1.0,
         "fallbacks": ["NFIB Price Plans"]},
        {"series": "NFIB Price Plans", "cadence": "monthly", "metric": "level",
         "on": 30, "off": 20, "ttl_days": 35, "half_life_days": 14, "weight": 1.0,
         "fallbacks": ["ISM Manufacturing Prices Paid"]},
        {"series": "Freight Pulse", "cadence": "weekly", "metric": "tr_63_series",
         "on": 0.10, "off": -0.10, "ttl_days": 21, "half_life_days": 10, "weight": 1.0,
         "fallbacks": ["Commodity Nowcast Basket (Energy+Metals)"]},
    ],
    "symbols": {
        "core": ["SPY", "HYG", "IEF", "TIP", "EEM", "PDBC", "TLT", "UUP", "VIX"],
        "min_healthy_core": 7,
    },
    "market_data": {
        "default_providers": ["stooq", "yfinance"],
        "symbol_providers": {
            "VIX": ["fred", "yfinance"],
            "BTC-USD": ["coingecko", "yfinance"],
        },
    },
}

_VALID_COMPARISONS = ("above", "below")


def _deep_merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge override into base (override wins, lists are replaced)."""
    merged = dict(base or {})
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigurationError(message)


def _parse_signals(items: List[Dict[str, Any]]) -> Tuple[SignalConfig, ...]:
    signals = []
    for item in items:
        try:
            axis = Axis(item["axis"])
            comparison = item.get("comparison", "above")
            default_pos, default_neg = (
                ("Risk On", "Risk Off") if axis == Axis.RISK else ("Inflation", "Disinflation")
            )
            signal = SignalConfig(
                key=item["key"],
                label=item.get("label", item["key"]),
                axis=axis,
                symbol=item["symbol"],
                denominator=item.get("denominator"),
                window=int(item["window"]),
                on_threshold=float(item["on"]),
                off_threshold=float(item["off"]),
                comparison=comparison,
                positive_direction=item.get("positive", default_pos),
                negative_direction=item.get("negative", default_neg),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid signal definition {item!r}: {exc}") from exc

        _require(signal.comparison in _VALID_COMPARISONS, f"Signal {signal.key}: bad comparison")
        _require(signal.window >= 2, f"Signal {signal.key}: window must be >= 2")
        if signal.comparison == "above":
            _require(signal.off_threshold <= signal.on_threshold, f"Signal {signal.key}: off > on")
        else:
            _require(signal.on_threshold <= signal.off_threshold, f"Signal {signal.key}: on > off")
        signals.append(signal)

    keys = [s.key for s in signals]
    _require(len(keys) == len(set(keys)), "Duplicate signal keys in configuration")
    return tuple(signals)


def _parse_satellites(items: List[Dict[str, Any]]) -> Tuple[SatelliteConfig, ...]:
    satellites = []
    for item in items:
        try:
            satellite = SatelliteConfig(
                series=item["series"],
                cadence=item.get("cadence", "daily"),
                metric=item.get("metric", "level"),
                on_threshold=float(item["on"]),
                off_threshold=float(item["off"]),
                ttl_days=int(item["ttl_days"]),
                half_life_days=float(item["half_life_days"]),
                weight=float(item.get("weight", 1.0)),
                fallbacks=tuple(item.get("fallbacks") or ()),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid satellite definition {item!r}: {exc}") from exc

        _require(satellite.ttl_days >= 0, f"Satellite {satellite.series}: negative ttl")
        _require(satellite.half_life_days > 0, f"Satellite {satellite.series}: half-life must be > 0")
        _require(satellite.off_threshold <= satellite.on_threshold, f"Satellite {satellite.series}: off > on")
        _require(satellite.series not in satellite.fallbacks, f"Satellite {satellite.series}: falls back to itself")
        satellites.append(satellite)
    return tuple(satellites)


def build_engine_config(data: Dict[str, Any]) -> EngineConfig:
    """Build and validate an EngineConfig from a fully merged dictionary."""
    try:
        windows = WindowConfig(**{k: int(v) for k, v in data["windows"].items()})

        tb = data["tie_break"]
        tie_break = TieBreakConfig(
            risk_symbol=tb["risk_symbol"],
            inflation_symbol=tb["inflation_symbol"],
            window=int(tb["window"]),
        )

        so = data["stress_override"]
        stress = StressOverrideConfig(
            volatility_symbol=so["volatility_symbol"],
            volatility_limit=float(so["volatility_limit"]),
            credit_signal=so["credit_signal"],
            credit_limit=float(so["credit_limit"]),
        )

        vm = data["vams"]
        vams = VamsConfig(
            bullish_threshold=float(vm["bullish_threshold"]),
            bearish_threshold=float(vm["bearish_threshold"]),
            momentum_short_weight=float(vm["momentum_short_weight"]),
            momentum_long_weight=float(vm["momentum_long_weight"]),
            scale_map={int(k): float(v) for k, v in vm["scale_map"].items()},
            stocks_symbol=vm["stocks_symbol"],
            gold_symbol=vm["gold_symbol"],
            btc_symbol=vm["btc_symbol"],
        )

        allocation = AllocationConfig(**{k: float(v) for k, v in data["allocation"].items()})
        flip_watch = FlipWatchConfig(**{k: int(v) for k, v in data["flip_watch"].items()})

        md = data["market_data"]
        market_data = MarketDataConfig(
            default_providers=tuple(p.lower() for p in md["default_providers"]),
            symbol_providers={
                symbol: tuple(p.lower() for p in chain)
                for symbol, chain in (md.get("symbol_providers") or {}).items()
            },
        )

        symbols = data["symbols"]
        core_symbols = tuple(symbols["core"])
        min_healthy = int(symbols["min_healthy_core"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid engine configuration: {exc}") from exc

    signals = _parse_signals(data["signals"])
    satellites = _parse_satellites(data.get("satellites") or [])

    # Validation
    _require(windows.short < windows.medium < windows.long <= windows.year, "Windows must be increasing")
    _require(vams.bearish_threshold < vams.bullish_threshold, "VAMS thresholds inverted")
    _require(set(vams.scale_map.keys()) == {-2, 0, 2}, "VAMS scale map must cover states -2, 0, 2")
    _require(
        all(0.0 <= v <= 1.0 for v in vams.scale_map.values()),
        "VAMS scales must be within [0, 1]",
    )
    _require(allocation.tolerance > 0, "Allocation tolerance must be positive")
    for name in ("stocks_risk_on", "stocks_risk_off", "gold", "btc_risk_on", "btc_risk_off"):
        _require(0.0 <= getattr(allocation, name) <= 1.0, f"Allocation target {name} out of [0, 1]")
    _require(flip_watch.confirmation_days >= 0, "Flip-watch confirmation days must be >= 0")
    _require(len(core_symbols) == len(set(core_symbols)), "Duplicate core symbols")
    _require(0 < min_healthy <= len(core_symbols), "min_healthy_core must be within core symbol count")
    for signal in signals:
        for symbol in signal.symbols:
            _require(symbol in core_symbols, f"Signal {signal.key} uses non-core symbol {symbol}")
    _require(
        any(s.key == stress.credit_signal for s in signals),
        f"Stress override references unknown signal {stress.credit_signal}",
    )
    known_series = {s.series for s in satellites}
    for satellite in satellites:
        for fallback in satellite.fallbacks:
            _require(fallback in known_series, f"Satellite {satellite.series}: unknown fallback {fallback}")
    _require(len(market_data.default_providers) > 0, "At least one market data provider is required")

    return EngineConfig(
        windows=windows,
        signals=signals,
        tie_break=tie_break,
        stress=stress,
        vams=vams,
        allocation=allocation,
        flip_watch=flip_watch,
        satellites=satellites,
        core_symbols=core_symbols,
        min_healthy_core_symbols=min_healthy,
        market_data=market_data,
    )


def default_engine_config() -> EngineConfig:
    return build_engine_config(copy.deepcopy(DEFAULT_CONFIG))


def load_engine_config(path: Optional[Path] = None) -> EngineConfig:
    """
    Load engine configuration, overlaying YAML values on the defaults.

    A missing path yields the defaults; an explicit path that does not
    exist is a configuration error.
    """
    if path is None:
        return default_engine_config()

    config_file = Path(path)
    if not config_file.exists():
        raise ConfigurationError(f"Engine config not found: {config_file}")

    with open(config_file, "r") as f:
        try:
            overlay = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Engine config is not valid YAML: {exc}") from exc

    if not isinstance(overlay, dict):
        raise ConfigurationError("Engine config root must be a mapping")

    merged = _deep_merge_dicts(copy.deepcopy(DEFAULT_CONFIG), overlay)
    return build_engine_config(merged)
