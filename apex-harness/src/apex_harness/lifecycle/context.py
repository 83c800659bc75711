from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from apex_harness.evidence.trace import DeviceTrace
from apex_harness.packages.apex_info import ApexInfo, get_test_file, resolve_apex_info


@dataclass
class ApexTestContext:
    """Per-test state: which package files to operate on and the device handle.

    Built fresh for every test invocation and never shared between tests.
    """

    apex_file_names: list[str]
    controller: Any
    test_dirs: list[Path] = field(default_factory=list)
    trace: DeviceTrace = field(default_factory=DeviceTrace)
    activated: list[ApexInfo] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.apex_file_names:
            raise ValueError("at least one apex file name is required")

    @property
    def apex_file_name(self) -> str:
        return self.apex_file_names[0]

    @property
    def serial(self) -> Optional[str]:
        return getattr(self.controller, "serial", None)

    def get_test_file(self, filename: str) -> Path:
        return get_test_file(filename, self.test_dirs)

    def get_apex_info(self, filename: str) -> ApexInfo:
        return resolve_apex_info(self.get_test_file(filename))
