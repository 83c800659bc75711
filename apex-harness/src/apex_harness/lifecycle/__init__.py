"""APEX lifecycle: stage, activate, verify, reset."""

from __future__ import annotations

from apex_harness.lifecycle.context import ApexTestContext
from apex_harness.lifecycle.extension import (
    AdbShellExpectRegexCheck,
    AdditionalCheck,
    ExpectApexActiveCheck,
    no_additional_check,
)
from apex_harness.lifecycle.orchestrator import ApexLifecycle
from apex_harness.lifecycle.outcome import (
    ActivationError,
    ExtensionError,
    InapplicableEnvironment,
    InstallError,
    LifecycleError,
    LifecycleOutcome,
    ResetError,
    UninstallResult,
    UninstallStatus,
)
from apex_harness.lifecycle.reset_guard import ResetGuard

__all__ = [
    "ActivationError",
    "AdbShellExpectRegexCheck",
    "AdditionalCheck",
    "ApexLifecycle",
    "ApexTestContext",
    "ExpectApexActiveCheck",
    "ExtensionError",
    "InapplicableEnvironment",
    "InstallError",
    "LifecycleError",
    "LifecycleOutcome",
    "ResetError",
    "ResetGuard",
    "UninstallResult",
    "UninstallStatus",
    "no_additional_check",
]
