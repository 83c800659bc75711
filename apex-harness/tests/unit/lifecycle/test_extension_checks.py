from __future__ import annotations

from pathlib import Path

import pytest
from fakes import FakeDevice, make_apex

from apex_harness.lifecycle import (
    AdbShellExpectRegexCheck,
    ApexLifecycle,
    ApexTestContext,
    ExpectApexActiveCheck,
    no_additional_check,
)
from apex_harness.packages.apex_info import ApexInfo


def _ctx(tmp_path: Path, device: FakeDevice) -> ApexTestContext:
    make_apex(tmp_path, "foo", 1, filename="foo.apex")
    return ApexTestContext(apex_file_names=["foo.apex"], controller=device, test_dirs=[tmp_path])


def test_no_additional_check_is_a_no_op(tmp_path: Path) -> None:
    device = FakeDevice()
    ctx = _ctx(tmp_path, device)
    calls_before = list(device.calls)
    assert no_additional_check(ctx) is None
    assert device.calls == calls_before


def test_adb_shell_expect_regex_check_passes_on_match(tmp_path: Path) -> None:
    device = FakeDevice(shell_stdout="libfoo.so => /apex/foo/lib64/libfoo.so\n")
    ctx = _ctx(tmp_path, device)
    check = AdbShellExpectRegexCheck(shell_cmd="ls /apex/foo/lib64", expect_regex=r"libfoo\.so")
    ApexLifecycle(ctx, additional_check=check).run()
    assert "shell:ls /apex/foo/lib64" in device.calls


def test_adb_shell_expect_regex_check_fails_on_mismatch(tmp_path: Path) -> None:
    device = FakeDevice(shell_stdout="nothing here\n")
    ctx = _ctx(tmp_path, device)
    check = AdbShellExpectRegexCheck(shell_cmd="ls /apex/foo/lib64", expect_regex=r"libfoo\.so")
    with pytest.raises(AssertionError, match="did not match"):
        ApexLifecycle(ctx, additional_check=check).run()


def test_expect_apex_active_check(tmp_path: Path) -> None:
    device = FakeDevice(factory=[ApexInfo("com.android.runtime", 1)])
    ctx = _ctx(tmp_path, device)
    ApexLifecycle(ctx, additional_check=ExpectApexActiveCheck(["com.android.runtime"])).run()

    with pytest.raises(AssertionError, match="com.android.art"):
        ExpectApexActiveCheck(["com.android.art"])(ctx)
