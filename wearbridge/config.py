"""Runtime configuration: YAML file plus ``WEARBRIDGE_*`` environment overrides."""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

import yaml

from wearbridge.errors import ConfigError
from wearbridge.gatt import CHARACTERISTICS

ENV_OVERRIDES = {
    "WEARBRIDGE_ADDRESS": "device_address",
    "WEARBRIDGE_NAME": "device_name",
    "WEARBRIDGE_ENDPOINT": "endpoint",
    "WEARBRIDGE_LOG_LEVEL": "log_level",
}

NUMBER_FIELDS = (
    "scan_timeout_s",
    "flush_interval_s",
    "stale_after_s",
    "reconnect_delay_s",
    "reconnect_max_delay_s",
    "http_timeout_s",
    "hr_min",
    "hr_max",
)
INT_FIELDS = ("batch_size", "buffer_size", "min_summary_samples", "retry_limit")
STR_FIELDS = ("device_address", "device_name", "endpoint", "log_level", "log_file")


@dataclass
class IngestConfig:
    device_address: Optional[str] = None
    device_name: Optional[str] = "Polar"
    characteristics: List[str] = field(default_factory=lambda: ["heart_rate", "battery"])
    endpoint: Optional[str] = None
    scan_timeout_s: float = 5.0
    flush_interval_s: float = 30.0
    batch_size: int = 500
    buffer_size: int = 5000
    min_summary_samples: int = 5
    stale_after_s: float = 15.0
    reconnect_delay_s: float = 5.0
    reconnect_max_delay_s: float = 60.0
    http_timeout_s: float = 5.0
    retry_limit: int = 20
    hr_min: float = 40
    hr_max: float = 220
    log_level: str = "INFO"
    log_file: Optional[str] = "wearbridge_error.log"

    def __post_init__(self):
        self._check_types()
        unknown = [c for c in self.characteristics if c not in CHARACTERISTICS]
        if unknown:
            raise ConfigError(f"Unknown characteristic(s): {', '.join(unknown)}")
        if not self.device_address and not self.device_name:
            raise ConfigError("Either device_address or device_name is required")
        if self.batch_size <= 0 or self.buffer_size < self.batch_size:
            raise ConfigError("batch_size must be positive and no larger than buffer_size")
        if self.hr_min >= self.hr_max:
            raise ConfigError("hr_min must be below hr_max")
        if self.reconnect_max_delay_s < self.reconnect_delay_s:
            raise ConfigError("reconnect_max_delay_s must be >= reconnect_delay_s")

    def _check_types(self):
        for name in NUMBER_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{name} must be a number, got {value!r}")
            if value < 0:
                raise ConfigError(f"{name} must not be negative, got {value!r}")
        for name in INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        for name in STR_FIELDS:
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise ConfigError(f"{name} must be a string, got {value!r}")
        if not isinstance(self.characteristics, list) or not all(
            isinstance(c, str) for c in self.characteristics
        ):
            raise ConfigError(f"characteristics must be a list of names, got {self.characteristics!r}")

    @property
    def characteristic_uuids(self):
        return [CHARACTERISTICS[name] for name in self.characteristics]

    @classmethod
    def from_mapping(cls, raw):
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ConfigError(f"Unknown config key(s): {', '.join(unknown)}")
        try:
            return cls(**raw)
        except TypeError as e:
            raise ConfigError(str(e)) from e


def load_config(path=None, environ=None):
    """Load ``IngestConfig`` from an optional YAML file, then apply env overrides."""

    raw = {}
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        with path.open("r", encoding="utf-8") as fh:
            try:
                raw = yaml.safe_load(fh) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"{path} must contain a mapping")

    environ = os.environ if environ is None else environ
    for var, key in ENV_OVERRIDES.items():
        if environ.get(var):
            raw[key] = environ[var]

    return IngestConfig.from_mapping(raw)
