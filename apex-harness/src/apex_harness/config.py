"""Lifecycle configuration.

Config files are YAML or JSON and are validated against
``schemas/lifecycle_config.schema.json``. Environment variables override file
values so the same config can be pointed at different devices:

  APEX_ANDROID_SERIAL, APEX_ADB_PATH, APEX_ADB_TIMEOUT_S,
  APEX_BOOT_TIMEOUT_S, APEX_TEST_DIRS (os.pathsep separated)
"""

from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from jsonschema import Draft202012Validator

from apex_harness.runtime.android.controller import BOOT_COMPLETE_TIMEOUT_S

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "lifecycle_config.schema.json"


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class LifecycleConfig:
    apex_file_names: list[str]
    test_dirs: list[Path] = field(default_factory=list)
    serial: Optional[str] = None
    adb_path: str = "adb"
    adb_timeout_s: float = 30.0
    boot_complete_timeout_s: float = BOOT_COMPLETE_TIMEOUT_S
    trace_path: Optional[Path] = None


def load_yaml_or_json(path: Path) -> Dict[str, Any]:
    """Load a YAML/JSON config file; the top-level must be an object."""

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    elif path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        raise ConfigError(f"Unsupported config file extension: {path}")
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level config must be an object: {path}")
    return data


def load_schema() -> Dict[str, Any]:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def validate_against_schema(
    instance: Mapping[str, Any], schema: Dict[str, Any], *, where: str
) -> None:
    errors = sorted(Draft202012Validator(schema).iter_errors(instance), key=lambda e: list(e.path))
    if errors:
        lines = [f"- {where}:{'/'.join(str(p) for p in e.path)}: {e.message}" for e in errors]
        raise ConfigError("\n".join(lines))


def config_from_dict(
    data: Mapping[str, Any],
    *,
    base_dir: Optional[Path] = None,
    where: str = "<config>",
) -> LifecycleConfig:
    validate_against_schema(data, load_schema(), where=where)

    names = data["apex_file_name"]
    if isinstance(names, str):
        names = [names]

    def _resolve(p: str) -> Path:
        path = Path(p)
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        return path

    kwargs: Dict[str, Any] = {
        "apex_file_names": [str(n) for n in names],
        "test_dirs": [_resolve(d) for d in data.get("test_dirs", [])],
    }
    for key in ("serial", "adb_path"):
        if data.get(key) is not None:
            kwargs[key] = str(data[key])
    for key in ("adb_timeout_s", "boot_complete_timeout_s"):
        if key in data:
            kwargs[key] = float(data[key])
    if data.get("trace_path"):
        kwargs["trace_path"] = _resolve(str(data["trace_path"]))
    return LifecycleConfig(**kwargs)


def apply_env_overrides(
    cfg: LifecycleConfig, environ: Optional[Mapping[str, str]] = None
) -> LifecycleConfig:
    env = os.environ if environ is None else environ
    changes: Dict[str, Any] = {}
    if env.get("APEX_ANDROID_SERIAL"):
        changes["serial"] = env["APEX_ANDROID_SERIAL"]
    if env.get("APEX_ADB_PATH"):
        changes["adb_path"] = env["APEX_ADB_PATH"]
    try:
        if env.get("APEX_ADB_TIMEOUT_S"):
            changes["adb_timeout_s"] = float(env["APEX_ADB_TIMEOUT_S"])
        if env.get("APEX_BOOT_TIMEOUT_S"):
            changes["boot_complete_timeout_s"] = float(env["APEX_BOOT_TIMEOUT_S"])
    except ValueError as e:
        raise ConfigError(f"invalid timeout in environment: {e}") from e
    if env.get("APEX_TEST_DIRS"):
        extra = [Path(p) for p in env["APEX_TEST_DIRS"].split(os.pathsep) if p]
        changes["test_dirs"] = list(cfg.test_dirs) + extra
    return dataclasses.replace(cfg, **changes) if changes else cfg


def load_config(path: Path, *, environ: Optional[Mapping[str, str]] = None) -> LifecycleConfig:
    data = load_yaml_or_json(path)
    cfg = config_from_dict(data, base_dir=path.resolve().parent, where=str(path))
    return apply_env_overrides(cfg, environ)
