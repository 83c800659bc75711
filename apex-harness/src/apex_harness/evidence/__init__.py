"""Device trace utilities."""

from __future__ import annotations

from apex_harness.evidence.trace import (
    DeviceTrace,
    apex_set_for_trace,
    load_trace,
    stable_file_sha256,
)

__all__ = [
    "DeviceTrace",
    "apex_set_for_trace",
    "load_trace",
    "stable_file_sha256",
]
