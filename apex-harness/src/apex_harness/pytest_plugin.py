"""pytest binding for the APEX lifecycle.

Enable from a top-level conftest::

    pytest_plugins = ["apex_harness.pytest_plugin"]

and write tests against the fixtures::

    @pytest.mark.apex_e2e
    def test_stage_activate_uninstall_apex_package(apex_lifecycle):
        apex_lifecycle.run()

``apex_baseline`` resets the device before and after every test that uses it
(also when the test fails) and turns an unsupported device into a skip.
Override the ``apex_additional_check`` fixture to add a post-activation check.
"""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Iterator

import pytest

from apex_harness.config import LifecycleConfig, apply_env_overrides, load_config
from apex_harness.evidence.trace import DeviceTrace
from apex_harness.lifecycle import (
    AdditionalCheck,
    ApexLifecycle,
    ApexTestContext,
    InapplicableEnvironment,
    ResetGuard,
    no_additional_check,
)
from apex_harness.runtime.android.controller import controller_from_args


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("apex", "APEX lifecycle tests")
    group.addoption(
        "--apex-file-name",
        dest="apex_file_name",
        action="append",
        default=[],
        help="The file name of the apex module (repeat for multi-package tests).",
    )
    group.addoption(
        "--apex-config",
        dest="apex_config",
        type=Path,
        default=None,
        help="YAML/JSON lifecycle config; --apex-file-name overrides its file list.",
    )
    group.addoption(
        "--apex-test-dir",
        dest="apex_test_dir",
        action="append",
        default=[],
        help="Directory searched for apex files (repeatable).",
    )
    group.addoption(
        "--apex-serial",
        dest="apex_serial",
        default=None,
        help="adb device serial (default: $APEX_ANDROID_SERIAL or the only device).",
    )
    group.addoption(
        "--apex-trace",
        dest="apex_trace",
        type=Path,
        default=None,
        help="Append device events to this JSONL file.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "apex_e2e: needs a device and --apex-file-name; skipped otherwise"
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("apex_file_name") or config.getoption("apex_config"):
        return
    skip = pytest.mark.skip(reason="no --apex-file-name/--apex-config given")
    for item in items:
        if "apex_e2e" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(scope="session")
def apex_config(pytestconfig: pytest.Config) -> LifecycleConfig:
    names = list(pytestconfig.getoption("apex_file_name"))
    config_path = pytestconfig.getoption("apex_config")
    if config_path is not None:
        cfg = load_config(Path(config_path))
        if names:
            cfg = dataclasses.replace(cfg, apex_file_names=names)
    elif names:
        cfg = apply_env_overrides(LifecycleConfig(apex_file_names=names))
    else:
        pytest.fail("--apex-file-name is mandatory for apex lifecycle tests", pytrace=False)

    changes: dict = {}
    test_dirs = [Path(d) for d in pytestconfig.getoption("apex_test_dir")]
    if test_dirs:
        changes["test_dirs"] = list(cfg.test_dirs) + test_dirs
    if pytestconfig.getoption("apex_serial"):
        changes["serial"] = pytestconfig.getoption("apex_serial")
    if pytestconfig.getoption("apex_trace") is not None:
        changes["trace_path"] = Path(pytestconfig.getoption("apex_trace"))
    return dataclasses.replace(cfg, **changes) if changes else cfg


@pytest.fixture(scope="session")
def android_controller(apex_config: LifecycleConfig):
    return controller_from_args(
        serial=apex_config.serial,
        adb_path=apex_config.adb_path,
        timeout_s=apex_config.adb_timeout_s,
        boot_complete_timeout_s=apex_config.boot_complete_timeout_s,
    )


@pytest.fixture
def apex_context(apex_config: LifecycleConfig, android_controller) -> ApexTestContext:
    return ApexTestContext(
        apex_file_names=list(apex_config.apex_file_names),
        controller=android_controller,
        test_dirs=list(apex_config.test_dirs),
        trace=DeviceTrace(apex_config.trace_path),
    )


@pytest.fixture
def apex_additional_check() -> AdditionalCheck:
    return no_additional_check


@pytest.fixture
def apex_baseline(apex_context: ApexTestContext) -> Iterator[ApexTestContext]:
    guard = ResetGuard(apex_context)
    try:
        with guard.guarded() as ctx:
            yield ctx
    except InapplicableEnvironment as e:
        pytest.skip(str(e))


@pytest.fixture
def apex_lifecycle(
    apex_baseline: ApexTestContext, apex_additional_check: AdditionalCheck
) -> ApexLifecycle:
    return ApexLifecycle(apex_baseline, additional_check=apex_additional_check)
