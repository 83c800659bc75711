"""APEX-Harness: stage, activate, verify and tear down APEX modules on a device."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = [
    "cli",
    "config",
    "evidence",
    "lifecycle",
    "packages",
    "pytest_plugin",
    "runtime",
]
