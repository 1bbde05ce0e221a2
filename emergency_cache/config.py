from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict

import yaml

from .exceptions import ConfigError

DEFAULT_BYPASS_HEADER = "X-Emergency-Cache-Control"
DEFAULT_CACHEABLE_HEADER = "X-Emergency-Cacheable"


@dataclass(frozen=True)
class EmergencyCacheConfig:
    emergency_mode: bool = False
    path: str = ""
    bypass_header: str = DEFAULT_BYPASS_HEADER
    cacheable_header: str = DEFAULT_CACHEABLE_HEADER
    debug: bool = False
    store_timeout: float = 5.0
    write_workers: int = 2
    write_queue_size: int = 256
    dedupe_writes: bool = True
    log_dir: str = ""

    @property
    def decision_log_path(self) -> str:
        if not self.log_dir:
            return ""
        return f"{self.log_dir}/cache_decisions.jsonl"


def create_config(**overrides: Any) -> EmergencyCacheConfig:
    return replace(EmergencyCacheConfig(), **overrides)


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as err:
        raise ConfigError(f"Invalid configuration file {path}: {err}") from err
    if not isinstance(data, dict):
        return {}
    return data


def _as_bool(value: Any, fallback: bool) -> bool:
    if value is None:
        return fallback
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def load_config(path: str = "config.yaml") -> EmergencyCacheConfig:
    config_path = Path(path)
    raw = _load_yaml(config_path)
    section = raw.get("EmergencyCache", {}) if isinstance(raw, dict) else {}
    if not isinstance(section, dict):
        section = {}

    defaults = EmergencyCacheConfig()

    def safe_float(value: Any, fallback: float) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return fallback

    def safe_int(value: Any, fallback: int) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return fallback

    return EmergencyCacheConfig(
        emergency_mode=_as_bool(section.get("emergencyMode"), defaults.emergency_mode),
        path=str(section.get("path") or defaults.path),
        bypass_header=str(section.get("bypassHeader") or defaults.bypass_header),
        cacheable_header=str(section.get("cacheableHeader") or defaults.cacheable_header),
        debug=_as_bool(section.get("debug"), defaults.debug),
        store_timeout=safe_float(section.get("storeTimeout"), defaults.store_timeout),
        write_workers=max(1, safe_int(section.get("writeWorkers"), defaults.write_workers)),
        write_queue_size=max(1, safe_int(section.get("writeQueueSize"), defaults.write_queue_size)),
        dedupe_writes=_as_bool(section.get("dedupeWrites"), defaults.dedupe_writes),
        log_dir=str(section.get("logDir") or defaults.log_dir),
    )
