"""Lifecycle outcomes and the error taxonomy."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import AbstractSet, Optional

from apex_harness.packages.apex_info import ApexInfo


class LifecycleOutcome(enum.Enum):
    ACTIVATED = "activated"
    FAILED_TO_INSTALL = "failed_to_install"
    FAILED_TO_ACTIVATE = "failed_to_activate"


class UninstallStatus(enum.Enum):
    REMOVED = "removed"
    NOT_INSTALLED = "not_installed"
    FAILED = "failed"


@dataclass(frozen=True)
class UninstallResult:
    apex: ApexInfo
    status: UninstallStatus
    message: Optional[str] = None

    @property
    def needs_reboot(self) -> bool:
        return self.status is UninstallStatus.REMOVED


class InapplicableEnvironment(Exception):
    """The device cannot update APEX modules; the test does not apply."""


class LifecycleError(RuntimeError):
    """Base for hard lifecycle failures."""

    outcome: Optional[LifecycleOutcome] = None


class InstallError(LifecycleError):
    outcome = LifecycleOutcome.FAILED_TO_INSTALL

    def __init__(self, filename: str, reason: str, apex: Optional[ApexInfo] = None) -> None:
        what = f"{apex} ({filename})" if apex is not None else filename
        super().__init__(f"failed to install test app {what}. Reason: {reason}")
        self.filename = filename
        self.reason = reason
        self.apex = apex


class ActivationError(LifecycleError):
    outcome = LifecycleOutcome.FAILED_TO_ACTIVATE

    def __init__(self, expected: ApexInfo, observed: AbstractSet[ApexInfo]) -> None:
        observed_txt = ", ".join(sorted(str(a) for a in observed)) or "<none>"
        super().__init__(f"Failed to activate {expected}; active apexes: [{observed_txt}]")
        self.expected = expected
        self.observed = frozenset(observed)


class ExtensionError(LifecycleError):
    def __init__(self, apexes: tuple[ApexInfo, ...], cause: BaseException) -> None:
        names = ", ".join(str(a) for a in apexes)
        super().__init__(f"additional check failed for {names}: {type(cause).__name__}: {cause}")
        self.apexes = apexes


class ResetError(LifecycleError):
    def __init__(self, failures: list[UninstallResult]) -> None:
        lines = [f"{r.apex}: {r.message or r.status.value}" for r in failures]
        super().__init__("failed to restore baseline:\n  " + "\n  ".join(lines))
        self.failures = failures
