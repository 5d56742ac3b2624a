# flowboard — configuration
# Override defaults via config/flowboard.yaml or --config.

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from .analyzer import DEFAULT_TIMESTAMP_FORMAT
from .classifier import Classifier, GeminiClassifier, RuleBasedClassifier
from .persistence import (
    DEFAULT_KEY_PREFIX,
    InMemoryAdapter,
    JsonFileAdapter,
    PersistenceAdapter,
    SQLiteAdapter,
)

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent.parent / "config" / "flowboard.yaml"
ENV_CONFIG_PATH = "FLOWBOARD_CONFIG"

CLASSIFIERS = ("gemini", "rules")
STORAGES = ("sqlite", "json", "memory")


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class FlowConfig:
    """Runtime configuration."""

    # Classification
    classifier: str = "gemini"
    gemini_model: str = "gemini-2.5-flash"
    api_key_env: str = "GEMINI_API_KEY"
    request_timeout: float = 30.0
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT

    # Storage
    storage: str = "sqlite"
    db_path: str = "~/.local/share/flowboard/flowboard.db"
    data_dir: str = "~/.local/share/flowboard/boards"
    key_prefix: str = DEFAULT_KEY_PREFIX

    # Server
    api_secret_env: str = "FLOWBOARD_API_SECRET"
    log_level: str = "INFO"

    def validate(self) -> None:
        if self.classifier not in CLASSIFIERS:
            raise ConfigError(f"classifier must be one of {CLASSIFIERS}, got {self.classifier!r}")
        if self.storage not in STORAGES:
            raise ConfigError(f"storage must be one of {STORAGES}, got {self.storage!r}")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")

    @property
    def api_key(self) -> Optional[str]:
        return os.environ.get(self.api_key_env)

    @property
    def api_secret(self) -> str:
        return os.environ.get(self.api_secret_env, "")

    @classmethod
    def load(cls, path: Optional[str] = None) -> "FlowConfig":
        """Load config from YAML, falling back to defaults when no file exists."""
        path = path or os.environ.get(ENV_CONFIG_PATH)
        cfg_path = Path(path) if path else CONFIG_PATH
        data = {}
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
        elif path:
            raise ConfigError(f"Config file not found: {cfg_path}")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        cfg = cls(**{k: v for k, v in data.items() if k in known})
        cfg.validate()
        return cfg


def build_classifier(cfg: FlowConfig) -> Classifier:
    if cfg.classifier == "rules":
        return RuleBasedClassifier()
    api_key = cfg.api_key
    if not api_key:
        raise ConfigError(
            f"Environment variable {cfg.api_key_env} is not set.\n"
            f"Set it:  export {cfg.api_key_env}=your_api_key\n"
            f"Or use the offline classifier:  classifier: rules"
        )
    return GeminiClassifier(api_key, model=cfg.gemini_model, timeout=cfg.request_timeout)


def build_adapter(cfg: FlowConfig) -> PersistenceAdapter:
    if cfg.storage == "memory":
        return InMemoryAdapter(key_prefix=cfg.key_prefix)
    if cfg.storage == "json":
        return JsonFileAdapter(cfg.data_dir, key_prefix=cfg.key_prefix)
    return SQLiteAdapter(cfg.db_path, key_prefix=cfg.key_prefix)
