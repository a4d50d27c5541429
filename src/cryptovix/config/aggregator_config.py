"""
Aggregator Configuration Loader

Loads and validates CryptoVIX aggregator configuration from a YAML file,
with environment-variable overrides.

Config location: config/cryptovix.yaml

Schema:
- base_asset: Base asset for the index (default: BTC)
- snapshot_interval: Seconds between aggregation cycles (default: 300 = 5 min)
- target_dte: Target tenor for the Bybit ATM signal in days (default: 30)
- deribit: Deribit API settings and index weight
- bybit: Bybit API settings, index weight and instruments cache TTL
- http: Request timeout and user agent
- storage: Delta Lake readings table
- logging: loguru sink settings
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger


@dataclass
class DeribitConfig:
    """Deribit venue configuration."""
    base_url: str = "https://www.deribit.com/api/v2"
    weight: float = 0.6


@dataclass
class BybitConfig:
    """Bybit venue configuration."""
    base_url: str = "https://api.bybit.com/v5/market"
    weight: float = 0.4
    instruments_ttl: int = 1800  # seconds
    page_limit: int = 1000
    max_pages: int = 10


@dataclass
class HttpConfig:
    """HTTP client settings."""
    timeout: float = 10.0
    user_agent: str = "cryptovix/0.1"


@dataclass
class StorageConfig:
    """Readings storage configuration."""
    enabled: bool = True
    table_path: str = "data/lake/vix_readings"


@dataclass
class LoggingConfig:
    """loguru sink configuration."""
    level: str = "INFO"
    file: Optional[str] = "logs/cryptovix.log"
    rotation: str = "10 MB"
    retention: str = "14 days"


@dataclass
class AggregatorConfig:
    """Complete aggregator configuration."""

    base_asset: str = "BTC"
    snapshot_interval: int = 300
    target_dte: float = 30.0
    deribit: DeribitConfig = field(default_factory=DeribitConfig)
    bybit: BybitConfig = field(default_factory=BybitConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def weights(self) -> Dict[str, float]:
        return {"deribit": self.deribit.weight, "bybit": self.bybit.weight}

    def get_log_config(self) -> Dict[str, Any]:
        """
        Get loguru file sink configuration.

        Returns:
            Dict with level, rotation, retention, compression and format
        """
        return {
            "level": self.logging.level,
            "rotation": self.logging.rotation,
            "retention": self.logging.retention,
            "compression": "zip",
            "format": "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AggregatorConfig":
        """Create config from dictionary."""
        deribit = data.get("deribit") or {}
        bybit = data.get("bybit") or {}
        http = data.get("http") or {}
        storage = data.get("storage") or {}
        log = data.get("logging") or {}

        return cls(
            base_asset=str(data.get("base_asset", "BTC")).upper(),
            snapshot_interval=int(data.get("snapshot_interval", 300)),
            target_dte=float(data.get("target_dte", 30.0)),
            deribit=DeribitConfig(
                base_url=deribit.get("base_url", DeribitConfig.base_url),
                weight=float(deribit.get("weight", 0.6)),
            ),
            bybit=BybitConfig(
                base_url=bybit.get("base_url", BybitConfig.base_url),
                weight=float(bybit.get("weight", 0.4)),
                instruments_ttl=int(bybit.get("instruments_ttl", 1800)),
                page_limit=int(bybit.get("page_limit", 1000)),
                max_pages=int(bybit.get("max_pages", 10)),
            ),
            http=HttpConfig(
                timeout=float(http.get("timeout", 10.0)),
                user_agent=http.get("user_agent", HttpConfig.user_agent),
            ),
            storage=StorageConfig(
                enabled=bool(storage.get("enabled", True)),
                table_path=storage.get("table_path", StorageConfig.table_path),
            ),
            logging=LoggingConfig(
                level=str(log.get("level", "INFO")).upper(),
                file=log.get("file", LoggingConfig.file),
                rotation=log.get("rotation", LoggingConfig.rotation),
                retention=log.get("retention", LoggingConfig.retention),
            ),
        )

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.base_asset != "BTC":
            errors.append(f"Unsupported base_asset: {self.base_asset}. Only BTC is supported")

        if self.snapshot_interval < 60:
            errors.append("snapshot_interval must be >= 60 seconds")
        if self.target_dte <= 0:
            errors.append("target_dte must be > 0")

        # Weights
        for name, weight in self.weights.items():
            if weight < 0 or weight > 1:
                errors.append(f"{name}.weight must be between 0 and 1, got {weight}")
        if abs(sum(self.weights.values()) - 1.0) > 1e-9:
            errors.append(f"Venue weights must sum to 1, got {sum(self.weights.values())}")

        if self.bybit.instruments_ttl < 60:
            errors.append("bybit.instruments_ttl must be >= 60 seconds")
        if not 1 <= self.bybit.page_limit <= 1000:
            errors.append("bybit.page_limit must be between 1 and 1000")
        if self.bybit.max_pages < 1:
            errors.append("bybit.max_pages must be >= 1")

        if self.http.timeout <= 0:
            errors.append("http.timeout must be > 0")

        valid_levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
        if self.logging.level not in valid_levels:
            errors.append(f"Invalid logging.level: {self.logging.level}. Must be one of {valid_levels}")

        return errors


# Environment variable -> (section, key); section None means top level
ENV_MAPPING = {
    "CRYPTOVIX_BASE_ASSET": (None, "base_asset"),
    "CRYPTOVIX_SNAPSHOT_INTERVAL": (None, "snapshot_interval"),
    "CRYPTOVIX_TARGET_DTE": (None, "target_dte"),
    "CRYPTOVIX_DERIBIT_URL": ("deribit", "base_url"),
    "CRYPTOVIX_BYBIT_URL": ("bybit", "base_url"),
    "CRYPTOVIX_HTTP_TIMEOUT": ("http", "timeout"),
    "CRYPTOVIX_TABLE_PATH": ("storage", "table_path"),
    "CRYPTOVIX_STORAGE_ENABLED": ("storage", "enabled"),
    "CRYPTOVIX_LOG_LEVEL": ("logging", "level"),
    "CRYPTOVIX_LOG_FILE": ("logging", "file"),
}


def merge_config_with_env(config_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge configuration with environment variables.

    Environment variables override config file settings.

    Examples:
        CRYPTOVIX_SNAPSHOT_INTERVAL=600
        CRYPTOVIX_LOG_LEVEL=DEBUG
        CRYPTOVIX_STORAGE_ENABLED=false

    Args:
        config_data: Configuration data from file

    Returns:
        Merged configuration with env vars applied
    """
    for env_var, (section, key) in ENV_MAPPING.items():
        env_value = os.environ.get(env_var)
        if env_value is None:
            continue

        value: Any = env_value
        if key == "enabled":
            value = env_value.lower() in ("true", "1", "yes", "on")

        if section is None:
            config_data[key] = value
        else:
            config_data.setdefault(section, {})
            config_data[section][key] = value

        logger.debug(f"Overriding {key} from env: {env_var}")

    return config_data


def load_aggregator_config(config_path: Optional[str] = None) -> AggregatorConfig:
    """
    Load aggregator configuration from YAML file.

    Args:
        config_path: Path to config file (default: config/cryptovix.yaml)

    Returns:
        AggregatorConfig object

    Raises:
        ValueError: If configuration is invalid
    """
    config_file = Path(config_path) if config_path else Path("config") / "cryptovix.yaml"

    data: Dict[str, Any] = {}
    if not config_file.exists():
        logger.warning(f"Aggregator config file not found: {config_file}, using defaults")
    else:
        try:
            with open(config_file, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing YAML config: {e}")

        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_file} must contain a mapping")

        logger.info(f"✓ Loaded aggregator config from {config_file}")

    try:
        config = AggregatorConfig.from_dict(merge_config_with_env(data))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid aggregator config value: {e}")

    errors = config.validate()
    if errors:
        error_msg = "Configuration validation errors:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ValueError(error_msg)

    logger.debug(f"  Base asset: {config.base_asset}")
    logger.debug(f"  Snapshot interval: {config.snapshot_interval}s")
    logger.debug(f"  Weights: {config.weights}")

    return config
