from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeDevice, make_apex

from apex_harness.lifecycle import (
    ActivationError,
    ApexLifecycle,
    ApexTestContext,
    ExtensionError,
    InstallError,
    LifecycleOutcome,
    ResetGuard,
)
from apex_harness.packages.apex_info import ApexInfo

FOO = ApexInfo("foo", 1)


def _ctx(tmp_path: Path, device: FakeDevice, *names: str) -> ApexTestContext:
    return ApexTestContext(
        apex_file_names=list(names or ["foo.apex"]),
        controller=device,
        test_dirs=[tmp_path],
    )


@pytest.fixture
def foo_file(tmp_path: Path) -> Path:
    return make_apex(tmp_path, "foo", 1, filename="foo.apex")


def test_scenario_a_stage_activate_uninstall(tmp_path: Path, foo_file: Path) -> None:
    device = FakeDevice(factory=[ApexInfo("com.android.tzdata", 1)])
    ctx = _ctx(tmp_path, device)
    seen_active: list[frozenset] = []

    def check(c: ApexTestContext) -> None:
        seen_active.append(c.controller.get_active_apexes())

    with ResetGuard(ctx).guarded():
        outcome = ApexLifecycle(ctx, additional_check=check).run()

    assert outcome is LifecycleOutcome.ACTIVATED
    assert FOO in seen_active[0]
    assert FOO not in device.get_active_apexes()
    assert ctx.activated == [FOO]
    # pre-reset no-op, install, activate, uninstall, reboot
    assert device.device_calls() == [
        "uninstall:foo",
        "install",
        "reboot",
        "uninstall:foo",
        "reboot",
    ]


def test_scenario_b_install_error_aborts_without_reboot(tmp_path: Path, foo_file: Path) -> None:
    device = FakeDevice(install_error="signature mismatch")
    ctx = _ctx(tmp_path, device)

    with pytest.raises(InstallError) as excinfo:
        with ResetGuard(ctx).guarded():
            ApexLifecycle(ctx).run()

    err = excinfo.value
    assert err.outcome is LifecycleOutcome.FAILED_TO_INSTALL
    assert "foo" in str(err)
    assert "signature mismatch" in str(err)
    assert "reboot" not in device.calls
    assert device.device_calls() == ["uninstall:foo", "install", "uninstall:foo"]


def test_scenario_c_activation_failure_reports_observed_set(tmp_path: Path, foo_file: Path) -> None:
    device = FakeDevice(factory=[ApexInfo("com.android.tzdata", 1)], activation_fails=True)
    ctx = _ctx(tmp_path, device)
    checked: list[bool] = []

    with pytest.raises(ActivationError) as excinfo:
        with ResetGuard(ctx).guarded():
            ApexLifecycle(ctx, additional_check=lambda c: checked.append(True)).run()

    err = excinfo.value
    assert err.outcome is LifecycleOutcome.FAILED_TO_ACTIVATE
    assert err.expected == FOO
    assert err.observed == frozenset({ApexInfo("com.android.tzdata", 1)})
    assert "foo:v1" in str(err) and "com.android.tzdata:v1" in str(err)
    assert checked == []
    # teardown still uninstalled foo and rebooted
    assert device.device_calls()[-2:] == ["uninstall:foo", "reboot"]
    assert "foo" not in device.installed


def test_reboot_only_after_clean_install_and_query_only_after_reboot(
    tmp_path: Path, foo_file: Path
) -> None:
    device = FakeDevice()
    ctx = _ctx(tmp_path, device)
    ApexLifecycle(ctx).run()

    body = [c for c in device.calls if c in {"install", "reboot", "get_active_apexes"}]
    assert body == ["install", "reboot", "get_active_apexes"]


def test_extension_assertion_propagates_and_teardown_runs(tmp_path: Path, foo_file: Path) -> None:
    device = FakeDevice()
    ctx = _ctx(tmp_path, device)

    def failing_check(c: ApexTestContext) -> None:
        assert False, "capability missing"

    with pytest.raises(AssertionError, match="capability missing"):
        with ResetGuard(ctx).guarded():
            ApexLifecycle(ctx, additional_check=failing_check).run()

    assert FOO not in device.get_active_apexes()
    assert device.device_calls()[-2:] == ["uninstall:foo", "reboot"]


def test_extension_unexpected_error_is_wrapped(tmp_path: Path, foo_file: Path) -> None:
    device = FakeDevice()
    ctx = _ctx(tmp_path, device)

    def broken_check(c: ApexTestContext) -> None:
        raise KeyError("boom")

    with pytest.raises(ExtensionError) as excinfo:
        with ResetGuard(ctx).guarded():
            ApexLifecycle(ctx, additional_check=broken_check).run()

    assert isinstance(excinfo.value.__cause__, KeyError)
    assert excinfo.value.apexes == (FOO,)
    assert FOO not in device.get_active_apexes()


def test_run_many_stages_all_then_reboots_once(tmp_path: Path) -> None:
    make_apex(tmp_path, "foo", 1, filename="foo.apex")
    make_apex(tmp_path, "bar", 3, filename="bar.apex")
    device = FakeDevice()
    ctx = _ctx(tmp_path, device, "foo.apex", "bar.apex")

    with ResetGuard(ctx).guarded():
        outcome = ApexLifecycle(ctx).run_many(ctx.apex_file_names)
        assert {FOO, ApexInfo("bar", 3)} <= device.get_active_apexes()

    assert outcome is LifecycleOutcome.ACTIVATED
    assert device.calls.count("install") == 1
    assert device.get_active_apexes() == frozenset()


def test_lifecycle_records_device_trace(tmp_path: Path, foo_file: Path) -> None:
    device = FakeDevice()
    ctx = _ctx(tmp_path, device)
    ApexLifecycle(ctx).run()
    assert ctx.trace.names() == ["install", "reboot", "active_apexes", "extension_check"]
    assert ctx.trace.events[2]["active"] == ["foo:v1"]
