"""Harness configuration: defaults, optional JSON file, env and CLI overrides."""

from __future__ import annotations

import argparse
import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .lifecycle import DEFAULT_BATCH_SIZE, DEFAULT_MAX_LEN, DEFAULT_MIN_LEN, WorkloadSettings

DEFAULT_ARTIFACTS_DIR = Path.cwd() / "artifacts"

ENV_PREFIX = "FANOUT_"


@dataclass
class HarnessConfig:
    instances: int = 10
    write_rows: int = 10_000
    readers: int = 10
    batch_size: int = DEFAULT_BATCH_SIZE
    min_len: int = DEFAULT_MIN_LEN
    max_len: int = DEFAULT_MAX_LEN
    storage_root: Optional[str] = None
    page_cache_bytes: Optional[int] = None
    artifacts_dir: str = str(DEFAULT_ARTIFACTS_DIR)
    plot: bool = True

    @property
    def workload(self) -> WorkloadSettings:
        return WorkloadSettings(batch_size=self.batch_size, min_len=self.min_len, max_len=self.max_len)

    def as_dict(self) -> Dict[str, object]:
        return asdict(self)


# config key -> (env suffix, cast)
_OVERRIDABLE: Dict[str, Tuple[str, Callable[[str], object]]] = {
    "instances": ("INSTANCES", int),
    "write_rows": ("WRITE_ROWS", int),
    "readers": ("READERS", int),
    "batch_size": ("BATCH_SIZE", int),
    "min_len": ("MIN_LEN", int),
    "max_len": ("MAX_LEN", int),
    "storage_root": ("STORAGE_ROOT", str),
    "page_cache_bytes": ("PAGE_CACHE_BYTES", int),
    "artifacts_dir": ("ARTIFACTS_DIR", str),
}


def load_json_config(path: Optional[str]) -> Dict[str, object]:
    if not path:
        return {}
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise SystemExit(f"Config file not found: {config_path}")
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SystemExit(f"Config {config_path} must contain a JSON object.")
    known = {f.name for f in fields(HarnessConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise SystemExit(f"Unknown config key(s) in {config_path}: {', '.join(unknown)}")
    return data


def resolve_config(
    args: argparse.Namespace, file_values: Dict[str, object]
) -> Tuple[HarnessConfig, List[str], List[str]]:
    """Merge CLI flags, env vars (when allowed) and file values over the defaults.

    Returns the config plus the env variables that were applied and the ones
    that were set but ignored because env overrides are off.
    """
    env_overrides: List[str] = []
    ignored_env: List[str] = []
    env_allowed = bool(getattr(args, "allow_env_overrides", False))
    config = HarnessConfig(**file_values)  # type: ignore[arg-type]

    for key, (suffix, cast) in _OVERRIDABLE.items():
        cli_value = getattr(args, key, None)
        if cli_value is not None:
            setattr(config, key, cli_value)
            continue
        env_name = ENV_PREFIX + suffix
        env_val = os.getenv(env_name)
        if env_val in (None, ""):
            continue
        if not env_allowed:
            ignored_env.append(env_name)
            continue
        try:
            setattr(config, key, cast(env_val))
        except ValueError as exc:
            raise SystemExit(f"Invalid value for {env_name}: {env_val!r}") from exc
        env_overrides.append(env_name)

    if getattr(args, "no_plot", False):
        config.plot = False
    return config, env_overrides, ignored_env


def validate_config(config: HarnessConfig) -> None:
    for name in ("instances", "write_rows", "readers"):
        value = getattr(config, name)
        if not isinstance(value, int) or value < 0:
            raise SystemExit(f"{name} must be an integer >= 0 (got {value!r})")
    if config.batch_size < 1:
        raise SystemExit(f"batch_size must be >= 1 (got {config.batch_size})")
    if config.min_len < 0:
        raise SystemExit(f"min_len must be >= 0 (got {config.min_len})")
    if config.max_len <= config.min_len:
        raise SystemExit(f"max_len must be > min_len (got [{config.min_len}, {config.max_len}))")
    if config.page_cache_bytes is not None and config.page_cache_bytes <= 0:
        raise SystemExit(f"page_cache_bytes must be > 0 (got {config.page_cache_bytes})")
    if config.storage_root and not Path(config.storage_root).is_dir():
        raise SystemExit(f"storage_root is not a directory: {config.storage_root}")
