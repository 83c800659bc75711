"""Baseline reset around a lifecycle run.

The baseline is "no package resolvable from the configured files is active as an
installed update". A factory copy with the same name and version is baseline.
Resets run before and after every test regardless of the test's outcome:

  gate -> abandon staged sessions -> reset -> [body] -> gate -> abandon -> reset

Uninstall results are classified explicitly instead of from the message text:

  * no error                               -> REMOVED (reboot for it to take effect)
  * error, identity not an active update   -> NOT_INSTALLED (no-op, no reboot)
  * error, identity still an active update -> FAILED (ResetError)
"""

from __future__ import annotations

import contextlib
import logging
from typing import Iterator, Optional, Sequence

from apex_harness.evidence.trace import apex_set_for_trace
from apex_harness.lifecycle.context import ApexTestContext
from apex_harness.lifecycle.outcome import (
    InapplicableEnvironment,
    ResetError,
    UninstallResult,
    UninstallStatus,
)
from apex_harness.packages.apex_info import ApexInfo

logger = logging.getLogger(__name__)


class ResetGuard:
    def __init__(self, ctx: ApexTestContext) -> None:
        self._ctx = ctx
        self._controller = ctx.controller
        self._trace = ctx.trace

    def check_applicable(self) -> None:
        if not self._controller.is_apex_update_supported():
            raise InapplicableEnvironment("Updating APEX is not supported")

    def abandon_sessions(self) -> list[int]:
        abandoned = list(self._controller.abandon_staged_sessions())
        self._trace.record("abandon_sessions", session_ids=abandoned)
        if abandoned:
            logger.info("abandoned staged sessions %s", abandoned)
        return abandoned

    def uninstall_apex(self, apex: ApexInfo) -> UninstallResult:
        message = self._controller.uninstall_package(apex.name)
        if message is None:
            self._trace.record("uninstall", apex=str(apex), status=UninstallStatus.REMOVED.value)
            self._controller.reboot()  # for the uninstall to take effect
            self._trace.record("reboot", reason="uninstall")
            return UninstallResult(apex, UninstallStatus.REMOVED)

        if apex in self._controller.get_updated_apexes():
            status = UninstallStatus.FAILED
            logger.error("Uninstall of %s failed while it is still active: %s", apex, message)
        else:
            status = UninstallStatus.NOT_INSTALLED
            logger.info(
                "Uninstall of %s failed: %s, likely already on factory version", apex.name, message
            )
        self._trace.record("uninstall", apex=str(apex), status=status.value, message=message)
        return UninstallResult(apex, status, message)

    def reset_to_baseline(self, filenames: Optional[Sequence[str]] = None) -> list[UninstallResult]:
        """Uninstall every configured package; reboot only after an effective uninstall."""

        filenames = list(filenames) if filenames is not None else self._ctx.apex_file_names
        results = [self.uninstall_apex(self._ctx.get_apex_info(f)) for f in filenames]

        failures = [r for r in results if r.status is UninstallStatus.FAILED]
        removed = [r.apex for r in results if r.status is UninstallStatus.REMOVED]
        if removed and not failures:
            updated = self._controller.get_updated_apexes()
            self._trace.record("updated_apexes", updated=apex_set_for_trace(updated))
            failures = [
                UninstallResult(a, UninstallStatus.FAILED, "still active after reboot")
                for a in removed
                if a in updated
            ]
        if failures:
            raise ResetError(failures)
        return results

    def setup(self, filenames: Optional[Sequence[str]] = None) -> list[UninstallResult]:
        self.check_applicable()
        self.abandon_sessions()
        return self.reset_to_baseline(filenames)

    def teardown(self, filenames: Optional[Sequence[str]] = None) -> list[UninstallResult]:
        self.check_applicable()
        self.abandon_sessions()
        return self.reset_to_baseline(filenames)

    @contextlib.contextmanager
    def guarded(self, filenames: Optional[Sequence[str]] = None) -> Iterator[ApexTestContext]:
        """Reset before the body and, on every exit path, after it.

        If the body fails and the post-test reset fails too, the body's error
        propagates and the reset error is logged.
        """

        self.setup(filenames)
        body_failed = False
        try:
            yield self._ctx
        except BaseException:
            body_failed = True
            raise
        finally:
            try:
                self.teardown(filenames)
            except Exception:
                if not body_failed:
                    raise
                logger.warning("post-test reset failed after an earlier failure", exc_info=True)
