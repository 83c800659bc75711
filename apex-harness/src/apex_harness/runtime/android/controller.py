"""Android controller utilities.

A *minimal* adb wrapper covering what the APEX lifecycle needs:

  * staged install / uninstall of APEX packages
  * reboot with a bounded wait for boot completion
  * querying the set of active APEX modules
  * abandoning stray staged install sessions

Notes
-----
* Every call blocks the calling thread; there is no background polling.
* One controller drives exactly one device (``serial``).
"""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterator, Optional, Tuple

from apex_harness.packages.apex_info import ApexInfo

logger = logging.getLogger(__name__)

BOOT_COMPLETE_TIMEOUT_S = 120.0

_APEX_LINE_RE = re.compile(
    r"^package:(?:(?P<path>\S+)=)?(?P<name>[^\s=]+)\s+versionCode:(?P<version>-?\d+)\s*$"
)
_SESSION_ID_RE = re.compile(r"^\d+$")

# Updated APEX modules are activated from /data; factory copies live on the
# read-only partitions (/system/apex, /product/apex, /vendor/apex, ...).
UPDATED_APEX_DIR_PREFIX = "/data/"


class AndroidControllerError(RuntimeError):
    """Raised when an adb operation fails."""


@dataclass(frozen=True)
class AdbResult:
    args: list[str]
    stdout: str
    stderr: str
    returncode: int

    def ok(self) -> bool:
        return self.returncode == 0

    def combined_output(self) -> str:
        return "\n".join(s.strip() for s in (self.stdout, self.stderr) if s and s.strip())


def parse_active_apexes(txt: str) -> FrozenSet[ApexInfo]:
    """Parse ``pm list packages --apex-only --show-versioncode`` output."""

    return frozenset(apex for apex, _path in _iter_apex_lines(txt))


def parse_updated_apexes(txt: str) -> FrozenSet[ApexInfo]:
    """Parse ``pm list packages --apex-only --show-versioncode -f`` output,
    keeping only modules activated from an update under ``/data``."""

    return frozenset(
        apex
        for apex, path in _iter_apex_lines(txt)
        if path is not None and path.startswith(UPDATED_APEX_DIR_PREFIX)
    )


def _iter_apex_lines(txt: str) -> Iterator[Tuple[ApexInfo, Optional[str]]]:
    for raw_line in txt.splitlines():
        m = _APEX_LINE_RE.match(raw_line.strip())
        if not m:
            continue
        apex = ApexInfo(name=m.group("name"), version_code=int(m.group("version")))
        yield apex, m.group("path")


def _pm_error_message(res: AdbResult) -> Optional[str]:
    """Return None when a pm-style command reported ``Success``, else the reason."""

    if res.ok() and "Success" in res.stdout:
        return None
    message = res.combined_output()
    return message or f"adb exited with rc={res.returncode}"


class AndroidController:
    """Thin wrapper around adb for APEX staging, activation and teardown."""

    def __init__(
        self,
        *,
        adb_path: str = "adb",
        serial: Optional[str] = None,
        timeout_s: float = 30.0,
        install_timeout_s: float = 300.0,
        boot_complete_timeout_s: float = BOOT_COMPLETE_TIMEOUT_S,
        boot_poll_interval_s: float = 2.0,
    ) -> None:
        self._adb_path = adb_path
        self._serial = serial
        self._timeout_s = timeout_s
        self._install_timeout_s = install_timeout_s
        self._boot_complete_timeout_s = boot_complete_timeout_s
        self._boot_poll_interval_s = boot_poll_interval_s

    @property
    def serial(self) -> Optional[str]:
        return self._serial

    @property
    def boot_complete_timeout_s(self) -> float:
        return self._boot_complete_timeout_s

    def _base_cmd(self) -> list[str]:
        cmd = [self._adb_path]
        if self._serial:
            cmd += ["-s", self._serial]
        return cmd

    def adb(self, *args: str, timeout_s: float | None = None, check: bool = True) -> AdbResult:
        """Run an adb command and return stdout/stderr/returncode."""

        cmd = self._base_cmd() + list(args)
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self._timeout_s if timeout_s is None else float(timeout_s),
            )
        except subprocess.TimeoutExpired as e:
            raise AndroidControllerError(f"adb command timed out: {' '.join(cmd)}") from e
        except FileNotFoundError as e:
            raise AndroidControllerError(f"adb not found: {self._adb_path}") from e

        result = AdbResult(
            args=cmd,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            returncode=proc.returncode,
        )
        if check and not result.ok():
            raise AndroidControllerError(
                f"adb command failed (rc={result.returncode}): {' '.join(cmd)}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
        return result

    def adb_shell(
        self,
        command: str,
        *,
        timeout_s: float | None = None,
        check: bool = True,
    ) -> AdbResult:
        return self.adb("shell", command, timeout_s=timeout_s, check=check)

    def getprop(self, name: str, *, timeout_s: float | None = None) -> str:
        res = self.adb_shell(f"getprop {shlex.quote(name)}", timeout_s=timeout_s, check=False)
        return res.stdout.strip() if res.ok() else ""

    def get_build_fingerprint(self) -> str:
        return self.getprop("ro.build.fingerprint")

    # ------------------------------- APEX lifecycle -------------------------------

    def is_apex_update_supported(self) -> bool:
        return self.getprop("ro.apex.updatable").lower() == "true"

    def install_staged_package(self, *paths: str | Path) -> Optional[str]:
        """Stage one or more packages; return None on success, else the error message."""

        if not paths:
            raise ValueError("install_staged_package requires at least one file")
        files = [str(Path(p)) for p in paths]
        if len(files) == 1:
            args = ["install", "--staged", files[0]]
        else:
            args = ["install-multi-package", "--staged", *files]
        res = self.adb(*args, timeout_s=self._install_timeout_s, check=False)
        message = _pm_error_message(res)
        if message is None:
            logger.info("staged %s", ", ".join(files))
        return message

    def get_active_apexes(self) -> FrozenSet[ApexInfo]:
        res = self.adb_shell("pm list packages --apex-only --show-versioncode")
        return parse_active_apexes(res.stdout)

    def get_updated_apexes(self) -> FrozenSet[ApexInfo]:
        """Active modules served from an installed update rather than the factory image."""

        res = self.adb_shell("pm list packages --apex-only --show-versioncode -f")
        return parse_updated_apexes(res.stdout)

    def uninstall_package(self, package_name: str) -> Optional[str]:
        """Uninstall by name; return None on success, else the error message."""

        res = self.adb("uninstall", package_name, check=False)
        return _pm_error_message(res)

    def get_staged_session_ids(self) -> list[int]:
        res = self.adb_shell(
            "pm get-stagedsessions --only-ready --only-parent --only-sessionid", check=False
        )
        if not res.ok():
            return []
        ids = [line.strip() for line in res.stdout.splitlines()]
        return [int(i) for i in ids if _SESSION_ID_RE.match(i)]

    def abandon_staged_sessions(self) -> list[int]:
        """Abandon every ready staged session; return the abandoned session ids."""

        abandoned: list[int] = []
        for session_id in self.get_staged_session_ids():
            res = self.adb_shell(f"pm install-abandon {session_id}", check=False)
            if res.ok():
                abandoned.append(session_id)
            else:
                logger.warning(
                    "failed to abandon staged session %d: %s", session_id, res.combined_output()
                )
        return abandoned

    def reboot(self) -> None:
        """Reboot and block until ``sys.boot_completed`` is set.

        The device must drop off adb before boot completion is polled, otherwise
        ``sys.boot_completed`` would still be read from the previous boot.

        Raises AndroidControllerError when ``adb reboot`` fails or boot does not
        complete within ``boot_complete_timeout_s``.
        """

        deadline = time.monotonic() + self._boot_complete_timeout_s

        def remaining() -> float:
            return max(deadline - time.monotonic(), 1.0)

        logger.info("rebooting %s", self._serial or "device")
        self.adb("reboot")
        self.adb("wait-for-disconnect", timeout_s=remaining())
        self.adb("wait-for-device", timeout_s=remaining())
        while True:
            try:
                if self.getprop("sys.boot_completed", timeout_s=self._timeout_s) == "1":
                    logger.info("boot completed on %s", self._serial or "device")
                    return
            except AndroidControllerError as e:
                # adbd restarts during boot; keep polling until the deadline.
                logger.debug("boot poll failed: %s", e)
            if time.monotonic() >= deadline:
                raise AndroidControllerError(
                    f"boot did not complete within {self._boot_complete_timeout_s:.0f}s"
                )
            time.sleep(self._boot_poll_interval_s)


def detect_single_device_serial(*, adb_path: str = "adb") -> str:
    """Return the only connected adb device serial.

    If there are zero or multiple devices, raises SystemExit with guidance.
    """

    try:
        proc = subprocess.run(
            [adb_path, "devices"],
            capture_output=True,
            text=True,
            timeout=5.0,
        )
    except FileNotFoundError as e:
        raise SystemExit(f"adb not found: {adb_path}") from e
    except subprocess.TimeoutExpired as e:
        raise SystemExit(f"adb devices timed out: {adb_path}") from e

    out = (proc.stdout or "") + "\n" + (proc.stderr or "")
    devices: list[str] = []
    for raw in out.splitlines():
        line = raw.strip()
        if not line or line.startswith("*") or line.startswith("List of devices attached"):
            continue
        parts = line.split()
        if len(parts) < 2:
            continue
        serial, state = parts[0], parts[1]
        if state == "device":
            devices.append(serial)

    if len(devices) == 1:
        return devices[0]
    if not devices:
        raise SystemExit(
            "No adb devices in state=device; attach a device or pass "
            "--serial/$APEX_ANDROID_SERIAL."
        )
    raise SystemExit(
        "Multiple adb devices detected; pass --serial or set $APEX_ANDROID_SERIAL. "
        f"devices={devices}"
    )


def controller_from_args(
    *,
    serial: Optional[str],
    adb_path: str,
    timeout_s: float,
    boot_complete_timeout_s: float,
) -> AndroidController:
    return AndroidController(
        adb_path=adb_path,
        serial=serial or detect_single_device_serial(adb_path=adb_path),
        timeout_s=timeout_s,
        boot_complete_timeout_s=boot_complete_timeout_s,
    )

