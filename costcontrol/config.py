"""
Configuration loader for the financial control core.

Loads settings from finance_config.yaml and provides typed access
to all configuration sections.
"""
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml


# Default config ships inside the package
DEFAULT_CONFIG_PATH = Path(__file__).parent / "finance_config.yaml"


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""
    pass


class FinanceConfig:
    """
    Configuration manager for the financial control core.

    Loads YAML configuration and provides typed access to all sections.
    Use get_config() to obtain the singleton instance.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self._config_path = config_path or DEFAULT_CONFIG_PATH
        self._config: dict = {}
        self._load()

    def _load(self) -> None:
        """Load configuration from YAML file."""
        if not self._config_path.exists():
            raise ConfigurationError(f"Config file not found: {self._config_path}")

        try:
            with open(self._config_path, 'r') as f:
                self._config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self._config, dict):
            raise ConfigurationError("Config file must contain a YAML mapping")

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load()
        get_config.cache_clear()

    @property
    def version(self) -> str:
        """Configuration file version."""
        return self._config.get("version", "unknown")

    # =========================================================================
    # Logging
    # =========================================================================

    @property
    def logging_settings(self) -> dict:
        return self._config.get("logging", {})

    @property
    def log_level(self) -> str:
        return str(self.logging_settings.get("level", "INFO")).upper()

    @property
    def log_format(self) -> str:
        return self.logging_settings.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # =========================================================================
    # Job Costing
    # =========================================================================

    @property
    def job_costing(self) -> dict:
        return self._config.get("job_costing", {})

    @property
    def variance_threshold_percent(self) -> float:
        return float(self.job_costing.get("variance_threshold_percent", 10.0))

    @property
    def allocation_tolerance_percent(self) -> float:
        return float(self.job_costing.get("allocation_tolerance_percent", 0.01))

    @property
    def posted_tag(self) -> str:
        return self.job_costing.get("posted_tag", "posted-to-budget")

    # =========================================================================
    # Billing
    # =========================================================================

    @property
    def billing(self) -> dict:
        return self._config.get("billing", {})

    @property
    def default_retainage_percent(self) -> float:
        return float(self.billing.get("default_retainage_percent", 10.0))

    @property
    def retainage_release_schedule(self) -> list:
        """Milestones as [{'milestone': str, 'percent': float}], percents summing to 100."""
        schedule = self.billing.get("retainage_release_schedule") or [
            {"milestone": "Substantial Completion", "percent": 50.0},
            {"milestone": "Final Completion", "percent": 50.0},
        ]
        total = sum(float(m.get("percent", 0)) for m in schedule)
        if abs(total - 100.0) > 0.01:
            raise ConfigurationError(f"Retainage release schedule must total 100%, got {total}")
        return schedule

    # =========================================================================
    # Cash Flow
    # =========================================================================

    @property
    def cash_flow(self) -> dict:
        return self._config.get("cash_flow", {})

    def get_scenario_multipliers(self, scenario: str) -> dict:
        """Inflow/outflow multipliers for a scenario (1.0 / 1.0 when not configured)."""
        multipliers = self.cash_flow.get("scenario_multipliers", {}).get(str(scenario), {})
        return {
            "inflows": float(multipliers.get("inflows", 1.0)),
            "outflows": float(multipliers.get("outflows", 1.0)),
        }

    @property
    def liquidity(self) -> dict:
        defaults = {
            "min_runway_months": 8,
            "runway_warning_months": 4,
            "max_low_balance_weeks": 3,
            "low_balance_ratio": 0.25,
        }
        defaults.update(self.cash_flow.get("liquidity", {}))
        return defaults

    # =========================================================================
    # Generic Access
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """Get a top-level config value by key."""
        return self._config.get(key, default)

    def __getitem__(self, key: str) -> Any:
        """Dictionary-style access to config."""
        return self._config[key]

    def __contains__(self, key: str) -> bool:
        """Check if key exists in config."""
        return key in self._config


@lru_cache(maxsize=1)
def get_config(config_path: Optional[str] = None) -> FinanceConfig:
    """
    Get the singleton configuration instance.

    Args:
        config_path: Optional path to config file. Only used on first call.

    Returns:
        FinanceConfig singleton instance
    """
    path = Path(config_path) if config_path else None
    return FinanceConfig(path)


def reload_config() -> FinanceConfig:
    """Reload configuration from disk and return new instance."""
    get_config.cache_clear()
    return get_config()


def configure_logging(config: Optional[FinanceConfig] = None) -> None:
    """Apply the configured log level and format to the root logger."""
    config = config or get_config()
    level = getattr(logging, config.log_level, None)
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level: {config.log_level}")
    logging.basicConfig(level=level, format=config.log_format)
