"""qgate configuration with layered precedence.

Precedence (highest wins):
  1. Environment variables (QGATE_<SECTION>_<KEY>, e.g. QGATE_HISTORY_LIMIT=50)
  2. Project config  (<project>/.qgate/config.yaml)
  3. Pydantic defaults (hardcoded in this module)
"""

import logging
import os
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from .constants import HISTORY_LIMIT, MEASUREMENT_LIMIT, SUBPROCESS_TIMEOUT, TREND_RETENTION_DAYS

_log = logging.getLogger(__name__)

CONFIG_DIRNAME = ".qgate"
CONFIG_FILENAME = "config.yaml"
ENV_PREFIX = "QGATE_"


# ── Sections ─────────────────────────────────────────────────────────────────


class HistoryConfig(BaseModel):
    limit: int = HISTORY_LIMIT

    @field_validator("limit")
    @classmethod
    def _validate_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"history.limit must be >= 1, got {v}")
        return v


class MetricsConfig(BaseModel):
    retention_days: int = TREND_RETENTION_DAYS
    measurement_limit: int = MEASUREMENT_LIMIT

    @field_validator("retention_days")
    @classmethod
    def _validate_retention_days(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"metrics.retention_days must be >= 1, got {v}")
        return v

    @field_validator("measurement_limit")
    @classmethod
    def _validate_measurement_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"metrics.measurement_limit must be >= 1, got {v}")
        return v


class AuditConfig(BaseModel):
    """Dependency audit subprocess settings."""

    timeout: int = SUBPROCESS_TIMEOUT
    package_manager: str | None = None  # overrides the dependency-security rule when set

    @field_validator("timeout")
    @classmethod
    def _validate_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"audit.timeout must be > 0, got {v}")
        return v


class TestingConfig(BaseModel):
    coverage_env_var: str = "TEST_COVERAGE"


class GateConfig(BaseModel):
    """Top-level configuration for one engine instance.

    ``rules`` maps a rule id to a partial update applied on top of the
    built-in catalog, e.g. ``{"code-complexity": {"config": {"max_complexity": 15}}}``.
    """

    history: HistoryConfig = Field(default_factory=HistoryConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    testing: TestingConfig = Field(default_factory=TestingConfig)
    rules: dict[str, dict[str, Any]] = Field(default_factory=dict)


# ── Loading ──────────────────────────────────────────────────────────────────


def _apply_env_overrides(data: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Apply QGATE_<SECTION>_<KEY>=<value> environment variables.

    For example:
        QGATE_HISTORY_LIMIT=50          → data["history"]["limit"] = 50
        QGATE_AUDIT_PACKAGE_MANAGER=npm → data["audit"]["package_manager"] = "npm"
    """
    env = os.environ if environ is None else environ
    for env_key, env_val in env.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        parts = env_key[len(ENV_PREFIX) :].lower().split("_", 1)
        if len(parts) != 2:
            continue
        section, field = parts
        if section == "rules" or section not in GateConfig.model_fields:
            continue
        if section not in data:
            data[section] = {}
        if not isinstance(data[section], dict):
            continue
        # Coerce to the right type by trying int, then float, then string
        coerced: Any
        try:
            coerced = int(env_val)
        except ValueError:
            try:
                coerced = float(env_val)
            except ValueError:
                coerced = env_val
        data[section][field] = coerced
    return data


class ConfigManager:
    """Load ``<project>/.qgate/config.yaml`` and environment overrides into a ``GateConfig``."""

    def __init__(self, project_root: str = "."):
        self.project_root = project_root
        self.config_dir = os.path.join(project_root, CONFIG_DIRNAME)
        self.config_path = os.path.join(self.config_dir, CONFIG_FILENAME)
        self.config = GateConfig()

    def load_config(self, environ: dict[str, str] | None = None) -> GateConfig:
        data = self._unwrap(self._load_yaml(self.config_path), "qgate")
        data = _apply_env_overrides(data, environ)
        if not data:
            return self.config
        try:
            self.config = GateConfig(**data)
        except (ValueError, TypeError) as e:
            _log.warning("Invalid qgate config, using defaults: %s", e)
            self.config = GateConfig()
        return self.config

    @staticmethod
    def _unwrap(data: dict[str, Any], key: str) -> dict[str, Any]:
        if key in data and isinstance(data[key], dict):
            nested: dict[str, Any] = data[key]
            return nested
        return data

    def _load_yaml(self, path: str) -> dict[str, Any]:
        if not os.path.exists(path):
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                result = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            _log.warning("Failed to load config %s: %s", path, e)
            return {}
        if not isinstance(result, dict):
            _log.warning("Ignoring config %s: top level must be a mapping", path)
            return {}
        return result

    def get_config(self) -> GateConfig:
        return self.config
