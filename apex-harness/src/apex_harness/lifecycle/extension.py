"""Post-activation checks.

An additional check is any callable taking the test context. It runs after
activation has been confirmed and before the post-test reset. Raising
``AssertionError`` fails the test; the reset still runs.
"""

from __future__ import annotations

import re
from typing import Iterable, Protocol

from apex_harness.lifecycle.context import ApexTestContext


class AdditionalCheck(Protocol):
    def __call__(self, ctx: ApexTestContext) -> None: ...


def no_additional_check(ctx: ApexTestContext) -> None:  # noqa: ARG001
    return None


class AdbShellExpectRegexCheck:
    """Run an adb shell command and require its stdout to match a regex."""

    def __init__(
        self,
        *,
        shell_cmd: str,
        expect_regex: str,
        flags: int = 0,
        timeout_s: float = 30.0,
    ) -> None:
        self._shell_cmd = shell_cmd
        self._expect = re.compile(expect_regex, flags)
        self._timeout_s = timeout_s

    def __call__(self, ctx: ApexTestContext) -> None:
        res = ctx.controller.adb_shell(self._shell_cmd, timeout_s=self._timeout_s, check=False)
        stdout = str(getattr(res, "stdout", "") or "")
        assert self._expect.search(stdout), (
            f"`{self._shell_cmd}` output did not match /{self._expect.pattern}/: "
            f"{stdout[:500]!r}"
        )


class ExpectApexActiveCheck:
    """Require additional APEX modules (by name) to be active."""

    def __init__(self, names: Iterable[str]) -> None:
        self._names = tuple(names)

    def __call__(self, ctx: ApexTestContext) -> None:
        active = {a.name for a in ctx.controller.get_active_apexes()}
        missing = [n for n in self._names if n not in active]
        assert not missing, f"expected apexes not active: {missing}"
