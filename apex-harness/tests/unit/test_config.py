from __future__ import annotations

import json
import os
import textwrap
from pathlib import Path

import pytest

from apex_harness.config import (
    ConfigError,
    LifecycleConfig,
    apply_env_overrides,
    config_from_dict,
    load_config,
)


def test_load_yaml_config_resolves_relative_dirs(tmp_path: Path) -> None:
    path = tmp_path / "lifecycle.yaml"
    path.write_text(
        textwrap.dedent(
            """\
            apex_file_name: com.android.foo.apex
            test_dirs:
              - testcases
            adb_timeout_s: 10
            boot_complete_timeout_s: 90
            """
        ),
        encoding="utf-8",
    )
    cfg = load_config(path, environ={})
    assert cfg.apex_file_names == ["com.android.foo.apex"]
    assert cfg.test_dirs == [tmp_path.resolve() / "testcases"]
    assert cfg.adb_timeout_s == 10.0
    assert cfg.boot_complete_timeout_s == 90.0
    assert cfg.adb_path == "adb"


def test_load_json_config_with_file_list(tmp_path: Path) -> None:
    path = tmp_path / "lifecycle.json"
    path.write_text(json.dumps({"apex_file_name": ["a.apex", "b.apex"]}), encoding="utf-8")
    cfg = load_config(path, environ={})
    assert cfg.apex_file_names == ["a.apex", "b.apex"]
    assert cfg.boot_complete_timeout_s == 120.0


def test_missing_apex_file_name_is_rejected() -> None:
    with pytest.raises(ConfigError, match="apex_file_name"):
        config_from_dict({"serial": "emulator-5554"})


def test_unknown_keys_and_bad_types_are_all_reported() -> None:
    with pytest.raises(ConfigError) as excinfo:
        config_from_dict({"apex_file_name": [], "adb_timeout_s": -1, "bogus": True})
    msg = str(excinfo.value)
    assert "bogus" in msg
    assert "adb_timeout_s" in msg


def test_non_object_config_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="must be an object"):
        load_config(path, environ={})


def test_unsupported_config_extension_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "lifecycle.toml"
    path.write_text('apex_file_name = "foo.apex"\n', encoding="utf-8")
    with pytest.raises(ConfigError, match="Unsupported config file extension"):
        load_config(path, environ={})


def test_env_overrides() -> None:
    cfg = LifecycleConfig(apex_file_names=["foo.apex"], test_dirs=[Path("/a")])
    env = {
        "APEX_ANDROID_SERIAL": "emulator-5556",
        "APEX_ADB_PATH": "/opt/adb",
        "APEX_BOOT_TIMEOUT_S": "60",
        "APEX_TEST_DIRS": os.pathsep.join(["/b", "/c"]),
    }
    out = apply_env_overrides(cfg, env)
    assert out.serial == "emulator-5556"
    assert out.adb_path == "/opt/adb"
    assert out.boot_complete_timeout_s == 60.0
    assert out.test_dirs == [Path("/a"), Path("/b"), Path("/c")]
    assert apply_env_overrides(cfg, {}) is cfg


def test_env_override_with_bad_number() -> None:
    cfg = LifecycleConfig(apex_file_names=["foo.apex"])
    with pytest.raises(ConfigError):
        apply_env_overrides(cfg, {"APEX_ADB_TIMEOUT_S": "soon"})
