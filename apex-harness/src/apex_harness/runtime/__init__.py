"""Device runtime helpers shared by the lifecycle and the CLI."""

from __future__ import annotations

from apex_harness.runtime.android.controller import (
    AdbResult,
    AndroidController,
    AndroidControllerError,
    detect_single_device_serial,
)

__all__ = [
    "AdbResult",
    "AndroidController",
    "AndroidControllerError",
    "detect_single_device_serial",
]
