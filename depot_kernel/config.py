"""
Kernel settings (``depot_kernel.config``).

Responsibility
--------------
Loads runtime settings for the kernel from an optional YAML file and the
process environment into a frozen ``KernelSettings`` instance.

Resolution order (later wins):

1. Defaults declared on ``KernelSettings``.
2. The YAML file named by the ``path`` argument, or by the
   ``DEPOT_KERNEL_CONFIG`` environment variable.
3. ``DATABASE_URL`` and ``DEPOT_LOG_LEVEL`` environment variables.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or non-mapping document  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

CONFIG_PATH_ENV = "DEPOT_KERNEL_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"
LOG_LEVEL_ENV = "DEPOT_LOG_LEVEL"

DEFAULT_DATABASE_URL = "sqlite:///depot_ledger.db"


@dataclass(frozen=True)
class KernelSettings:
    """Settings consumed by the engine, numbering and selectors."""

    database_url: str = DEFAULT_DATABASE_URL
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    log_level: str = "INFO"
    request_number_prefix: str = "DEM"
    delivery_note_number_prefix: str = "BL"
    history_page_size: int = 50

    def __post_init__(self) -> None:
        if self.pool_size < 1:
            raise ValueError("pool_size must be >= 1")
        if self.history_page_size < 1:
            raise ValueError("history_page_size must be >= 1")
        if not self.request_number_prefix or not self.delivery_note_number_prefix:
            raise ValueError("number prefixes must be non-empty")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML settings file and return its mapping (empty if blank)."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping")
    return data


def _from_mapping(base: KernelSettings, data: dict[str, Any]) -> KernelSettings:
    known = {f.name for f in fields(KernelSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown settings key(s): {', '.join(unknown)}")
    return replace(base, **data)


def load_settings(
    path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> KernelSettings:
    """
    Build ``KernelSettings`` from defaults, an optional YAML file and env.

    Args:
        path: YAML file to read. Falls back to ``$DEPOT_KERNEL_CONFIG``.
        environ: Environment mapping (defaults to ``os.environ``).
    """
    env = os.environ if environ is None else environ
    settings = KernelSettings()

    config_path = path or env.get(CONFIG_PATH_ENV)
    if config_path:
        settings = _from_mapping(settings, load_yaml_file(Path(config_path)))

    overrides: dict[str, Any] = {}
    if env.get(DATABASE_URL_ENV):
        overrides["database_url"] = env[DATABASE_URL_ENV]
    if env.get(LOG_LEVEL_ENV):
        overrides["log_level"] = env[LOG_LEVEL_ENV].upper()
    if overrides:
        settings = replace(settings, **overrides)

    return settings
