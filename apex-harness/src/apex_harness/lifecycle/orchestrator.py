"""Stage -> reboot -> verify -> additional check, for one or more APEX files.

Each step is a hard precondition for the next and is attempted exactly once:

  Idle -> Installing -> Installed -> Rebooting -> Activated | ActivationFailed
       -> (additional check, only from Activated) -> Verified

Teardown is not handled here; wrap the run in ``ResetGuard.guarded``.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from apex_harness.evidence.trace import apex_set_for_trace
from apex_harness.lifecycle.context import ApexTestContext
from apex_harness.lifecycle.extension import AdditionalCheck, no_additional_check
from apex_harness.lifecycle.outcome import (
    ActivationError,
    ExtensionError,
    InstallError,
    LifecycleOutcome,
)
from apex_harness.packages.apex_info import ApexInfo

logger = logging.getLogger(__name__)


class ApexLifecycle:
    def __init__(
        self,
        ctx: ApexTestContext,
        *,
        additional_check: Optional[AdditionalCheck] = None,
    ) -> None:
        self._ctx = ctx
        self._controller = ctx.controller
        self._trace = ctx.trace
        self._additional_check = additional_check or no_additional_check

    def install_apex(self, filename: str) -> ApexInfo:
        """Stage a single APEX; raises InstallError if the device rejects it."""

        return self.install_apexes([filename])[0]

    def install_apexes(self, filenames: Sequence[str]) -> list[ApexInfo]:
        files = [self._ctx.get_test_file(f) for f in filenames]
        apexes = [self._ctx.get_apex_info(f) for f in filenames]

        logger.info("staging %s", ", ".join(str(a) for a in apexes))
        error = self._controller.install_staged_package(*files)
        self._trace.record(
            "install",
            files=[str(f) for f in files],
            apexes=apex_set_for_trace(apexes),
            error=error,
        )
        if error is not None:
            raise InstallError(
                ", ".join(filenames), error, apex=apexes[0] if len(apexes) == 1 else None
            )
        return apexes

    def reboot(self) -> None:
        self._controller.reboot()
        self._trace.record("reboot", reason="activate")

    def verify_active(self, apexes: Sequence[ApexInfo]) -> None:
        active = self._controller.get_active_apexes()
        self._trace.record("active_apexes", active=apex_set_for_trace(active))
        for apex in apexes:
            if apex not in active:
                raise ActivationError(apex, active)
        logger.info("activated %s", ", ".join(str(a) for a in apexes))

    def additional_check(self) -> None:
        apexes = tuple(self._ctx.activated)
        try:
            self._additional_check(self._ctx)
        except AssertionError as e:
            self._trace.record("extension_check", ok=False, error=str(e))
            raise
        except Exception as e:
            self._trace.record("extension_check", ok=False, error=repr(e))
            raise ExtensionError(apexes, e) from e
        self._trace.record("extension_check", ok=True)

    def run(self, filename: Optional[str] = None) -> LifecycleOutcome:
        return self.run_many([filename or self._ctx.apex_file_name])

    def run_many(self, filenames: Sequence[str]) -> LifecycleOutcome:
        """Stage every file, reboot once, verify all are active, then run the check."""

        apexes = self.install_apexes(filenames)
        self.reboot()  # for install to take effect
        self.verify_active(apexes)
        self._ctx.activated = list(apexes)
        self.additional_check()
        return LifecycleOutcome.ACTIVATED
