"""
Configuration management and loading.

Builds the single validated configuration context shared by the monitor,
scheduler, aggregator and snapshot builder.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from datetime import tzinfo
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from ai_usage_watch.core.burn_rate import BurnRateConfig
from ai_usage_watch.core.efficiency import (
    DEFAULT_EFFICIENCY,
    EfficiencyConfig,
    EfficiencyThresholds,
)
from ai_usage_watch.core.pricing import PRICING_TABLE, ModelPricing, PricingTable

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "AI_USAGE_WATCH_CONFIG"

DEFAULT_DATA_PATHS: Tuple[Path, ...] = (
    Path.home() / ".config" / "claude" / "projects",
    Path.home() / ".claude" / "projects",
)


@dataclass(frozen=True)
class WatchConfig:
    """Complete monitor configuration."""
    data_paths: Tuple[Path, ...] = DEFAULT_DATA_PATHS
    file_pattern: str = "*.jsonl"
    dedup_capacity: int = 10000
    retention_days: int = 30
    debounce_ms: int = 200
    ingest_interval_seconds: float = 5.0
    snapshot_interval_seconds: float = 10.0
    recent_events_capacity: int = 50
    timezone: Optional[str] = None
    burn_rate: BurnRateConfig = field(default_factory=BurnRateConfig)
    efficiency: EfficiencyConfig = DEFAULT_EFFICIENCY
    pricing: PricingTable = PRICING_TABLE

    def __post_init__(self):
        """Validate numeric settings."""
        if self.dedup_capacity < 2:
            raise ValueError("dedup_capacity must be >= 2")
        if self.retention_days <= 0:
            raise ValueError("retention_days must be > 0")
        if self.debounce_ms < 0:
            raise ValueError("debounce_ms cannot be negative")
        if self.ingest_interval_seconds <= 0:
            raise ValueError("ingest_interval_seconds must be > 0")
        if self.snapshot_interval_seconds <= 0:
            raise ValueError("snapshot_interval_seconds must be > 0")
        if self.recent_events_capacity <= 0:
            raise ValueError("recent_events_capacity must be > 0")
        if not self.file_pattern:
            raise ValueError("file_pattern cannot be empty")
        if self.timezone is not None:
            try:
                ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                raise ValueError(f"Unknown timezone: {self.timezone}")

    def get_efficiency_thresholds(self, model: str) -> EfficiencyThresholds:
        """Get efficiency thresholds for a model, using defaults if its family is not listed."""
        return self.efficiency.get_thresholds(model)

    def get_tz(self) -> Optional[tzinfo]:
        """Display timezone; None means the system local zone."""
        return ZoneInfo(self.timezone) if self.timezone else None


_TOP_LEVEL_KEYS = {
    'data_paths', 'file_pattern', 'dedup_capacity', 'retention_days',
    'debounce_ms', 'ingest_interval_seconds', 'snapshot_interval_seconds',
    'recent_events_capacity', 'timezone', 'burn_rate', 'efficiency', 'pricing',
}
_INT_KEYS = ('dedup_capacity', 'retention_days', 'debounce_ms', 'recent_events_capacity')
_FLOAT_KEYS = ('ingest_interval_seconds', 'snapshot_interval_seconds')


def load_watch_config(path: str) -> WatchConfig:
    """Load and validate monitor configuration from a YAML file.

    Every key is optional; omitted keys keep their defaults. Unknown keys
    are rejected so typos never silently fall back to defaults.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated WatchConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return WatchConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw_config.keys()) - _TOP_LEVEL_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    overrides: Dict[str, Any] = {}

    if 'data_paths' in raw_config:
        paths = raw_config['data_paths']
        if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
            raise ValueError("'data_paths' must be a list of strings")
        overrides['data_paths'] = tuple(Path(p).expanduser() for p in paths)

    if 'file_pattern' in raw_config:
        if not isinstance(raw_config['file_pattern'], str):
            raise ValueError("'file_pattern' must be a string")
        overrides['file_pattern'] = raw_config['file_pattern']

    if 'timezone' in raw_config:
        if raw_config['timezone'] is not None and not isinstance(raw_config['timezone'], str):
            raise ValueError("'timezone' must be a string")
        overrides['timezone'] = raw_config['timezone']

    for key in _INT_KEYS:
        if key in raw_config:
            value = raw_config[key]
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"'{key}' must be an integer")
            overrides[key] = value

    for key in _FLOAT_KEYS:
        if key in raw_config:
            overrides[key] = _parse_number(raw_config[key], key)

    if 'burn_rate' in raw_config:
        overrides['burn_rate'] = _parse_burn_rate(raw_config['burn_rate'])

    if 'efficiency' in raw_config:
        overrides['efficiency'] = _parse_efficiency(raw_config['efficiency'])

    if 'pricing' in raw_config:
        overrides['pricing'] = _parse_pricing(raw_config['pricing'])

    return replace(WatchConfig(), **overrides)


def resolve_watch_config(path: Optional[str] = None) -> WatchConfig:
    """Locate and load configuration.

    Search order: explicit ``path``, the ``AI_USAGE_WATCH_CONFIG``
    environment variable, ``./config/local.yaml``, ``./config/default.yaml``,
    then built-in defaults.

    Raises:
        FileNotFoundError: If an explicit or environment path does not exist
    """
    explicit = path or os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        logger.info("Loading configuration from %s", explicit)
        return load_watch_config(explicit)

    for candidate in (Path.cwd() / "config" / "local.yaml", Path.cwd() / "config" / "default.yaml"):
        if candidate.exists():
            logger.info("Loading configuration from %s", candidate)
            return load_watch_config(str(candidate))

    logger.debug("No configuration file found; using defaults")
    return WatchConfig()


def _parse_number(value: Any, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{path}' must be a number")
    return float(value)


def _check_keys(data: Any, allowed: set, path: str) -> Dict:
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")
    return data


def _parse_burn_rate(data: Any) -> BurnRateConfig:
    data = _check_keys(data, {'trend_threshold_percent'}, "burn_rate")
    if 'trend_threshold_percent' not in data:
        return BurnRateConfig()
    return BurnRateConfig(
        trend_threshold_percent=_parse_number(
            data['trend_threshold_percent'], "burn_rate.trend_threshold_percent"
        )
    )


def _parse_thresholds(data: Any, path: str) -> EfficiencyThresholds:
    """Parse and validate one pair of efficiency thresholds.

    Raises:
        ValueError: If thresholds are missing, non-numeric or out of order
    """
    data = _check_keys(data, {'high', 'medium'}, path)
    for key in ('high', 'medium'):
        if key not in data:
            raise ValueError(f"Missing required '{key}' in {path}")
    try:
        return EfficiencyThresholds(
            high=_parse_number(data['high'], f"{path}.high"),
            medium=_parse_number(data['medium'], f"{path}.medium"),
        )
    except ValueError as e:
        raise ValueError(f"Invalid thresholds in {path}: {e}")


def _parse_efficiency(data: Any) -> EfficiencyConfig:
    data = _check_keys(data, {'defaults', 'families'}, "efficiency")

    defaults = DEFAULT_EFFICIENCY.defaults
    if 'defaults' in data:
        defaults = _parse_thresholds(data['defaults'], "efficiency.defaults")

    families = dict(DEFAULT_EFFICIENCY.families)
    families_data = data.get('families', {})
    if not isinstance(families_data, dict):
        raise ValueError("'efficiency.families' must be a dictionary")
    for family_name, family_data in families_data.items():
        families[str(family_name)] = _parse_thresholds(
            family_data, f"efficiency.families.{family_name}"
        )

    return EfficiencyConfig(families=families, defaults=defaults)


def _parse_decimal(value: Any, path: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"'{path}' must be a number")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"'{path}' must be a number")


def _parse_pricing(data: Any) -> PricingTable:
    """Merge configured model prices over the built-in table."""
    data = _check_keys(data, {'batch_api_discount', 'models'}, "pricing")

    prices = dict(PRICING_TABLE.prices)
    models_data = data.get('models', {})
    if not isinstance(models_data, dict):
        raise ValueError("'pricing.models' must be a dictionary")
    for model_name, model_data in models_data.items():
        path = f"pricing.models.{model_name}"
        model_data = _check_keys(model_data, {'input', 'output', 'cached'}, path)
        for key in ('input', 'output', 'cached'):
            if key not in model_data:
                raise ValueError(f"Missing required '{key}' in {path}")
        prices[str(model_name)] = ModelPricing(
            input_per_1m=_parse_decimal(model_data['input'], f"{path}.input"),
            output_per_1m=_parse_decimal(model_data['output'], f"{path}.output"),
            cached_per_1m=_parse_decimal(model_data['cached'], f"{path}.cached"),
        )

    discount = PRICING_TABLE.batch_api_discount
    if 'batch_api_discount' in data:
        discount = _parse_decimal(data['batch_api_discount'], "pricing.batch_api_discount")

    return PricingTable(prices=prices, batch_api_discount=discount)
