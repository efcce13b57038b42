"""Load, validate, and hot-reload the vendor client configuration.

The config lives in ``vendors.yaml`` alongside this module.  It is loaded
once and cached.  Call ``reload_vendor_config()`` to re-read from disk after
an operator update; no restart required.

Usage::

    from wearsync.config_loader import get_vendor_config

    config = get_vendor_config()
    fitbit = config.vendor("fitbit")
    fitbit.base_url                       # "https://api.fitbit.com/1"
    fitbit.circuit_breaker.failure_threshold   # 3
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from wearsync.circuit_breaker import CircuitBreakerConfig
from wearsync.errors import ConfigValidationError

logger = logging.getLogger("wearsync.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "vendors.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class VendorClientConfig:
    """Fault-tolerance policy for one vendor's API client.

    Attributes:
        name:                  Vendor key (e.g. 'fitbit').
        base_url:              Vendor API base URL, no trailing slash.
        timeout_seconds:       Per-request timeout.
        retry_attempts:        Retries after the first attempt.
        retry_backoff_seconds: Initial backoff, doubled per retry.
        circuit_breaker:       Breaker thresholds.
    """

    name: str
    base_url: str
    timeout_seconds: float = 5.0
    retry_attempts: int = 3
    retry_backoff_seconds: float = 0.5
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)


@dataclass
class VendorConfig:
    """Complete, validated vendor configuration.

    Attributes:
        version: Config schema version string.
        vendors: Vendor key → client policy.
    """

    version: str
    vendors: dict[str, VendorClientConfig]

    def vendor(self, name: str) -> VendorClientConfig:
        """Return the policy for ``name``.

        Raises:
            KeyError: If the vendor is not configured.
        """
        if name not in self.vendors:
            raise KeyError(
                f"No client config for vendor '{name}'. Available: {list(self.vendors)}"
            )
        return self.vendors[name]

    def has_vendor(self, name: str) -> bool:
        return name in self.vendors


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Vendor config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _number(
    section: dict, key: str, default: float, where: str, errors: list[str], minimum: float = 0.0
) -> float:
    raw = section.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        errors.append(f"{where}.{key} must be a number, got {raw!r}")
        return default
    if value < minimum:
        errors.append(f"{where}.{key} = {value} is below minimum {minimum}")
    return value


def _validate_and_build(raw: dict) -> VendorConfig:
    """Validate the raw YAML dict and construct a VendorConfig.

    All problems are collected and reported together.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []
    version = str(raw.get("version", "1.0"))

    vendors_raw: Any = raw.get("vendors", {})
    if not vendors_raw or not isinstance(vendors_raw, dict):
        errors.append("'vendors' section is missing or empty")
        vendors_raw = {}

    vendors: dict[str, VendorClientConfig] = {}
    for name, section in vendors_raw.items():
        where = f"vendors.{name}"
        if not isinstance(section, dict):
            errors.append(f"{where} must be a mapping")
            continue

        base_url = section.get("base_url")
        if not base_url or not str(base_url).startswith(("http://", "https://")):
            errors.append(f"{where}.base_url must be an http(s) URL, got {base_url!r}")
            base_url = ""

        cb_raw = section.get("circuit_breaker", {}) or {}
        if not isinstance(cb_raw, dict):
            errors.append(f"{where}.circuit_breaker must be a mapping")
            cb_raw = {}
        cb_where = f"{where}.circuit_breaker"
        breaker = CircuitBreakerConfig(
            failure_threshold=int(_number(cb_raw, "failure_threshold", 5, cb_where, errors, 1)),
            recovery_timeout_seconds=_number(cb_raw, "recovery_timeout_seconds", 60, cb_where, errors),
            monitoring_period_seconds=_number(cb_raw, "monitoring_period_seconds", 120, cb_where, errors),
        )

        vendors[name] = VendorClientConfig(
            name=name,
            base_url=str(base_url).rstrip("/"),
            timeout_seconds=_number(section, "timeout_seconds", 5.0, where, errors, 0.001),
            retry_attempts=int(_number(section, "retry_attempts", 3, where, errors)),
            retry_backoff_seconds=_number(section, "retry_backoff_seconds", 0.5, where, errors),
            circuit_breaker=breaker,
        )

    if errors:
        raise ConfigValidationError(
            f"vendors.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return VendorConfig(version=version, vendors=vendors)


def load_vendor_config(path: Path | None = None) -> VendorConfig:
    """Load and validate the vendor config from disk.

    Args:
        path: Override path to YAML. Uses the bundled vendors.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded vendor config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: VendorConfig | None = None
_config_lock = threading.Lock()


def get_vendor_config(path: Path | None = None) -> VendorConfig:
    """Return the global VendorConfig singleton, loading it on first call.

    Thread-safe.  ``path`` is only honoured on the first load.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_vendor_config(path)
    return _config


def reload_vendor_config(path: Path | None = None) -> VendorConfig:
    """Reload the vendor config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_vendor_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded vendor config: %s → %s", old_version, new_config.version)
    return new_config
