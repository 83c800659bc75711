"""Package file lookup and identity helpers."""

from __future__ import annotations

from apex_harness.packages.apex_info import (
    ApexInfo,
    PackageInspectionError,
    get_test_file,
    resolve_apex_info,
)

__all__ = [
    "ApexInfo",
    "PackageInspectionError",
    "get_test_file",
    "resolve_apex_info",
]
