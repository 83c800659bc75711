from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from apex_harness.config import LifecycleConfig, apply_env_overrides, load_config
from apex_harness.evidence.trace import DeviceTrace, stable_file_sha256
from apex_harness.lifecycle import (
    AdditionalCheck,
    ApexLifecycle,
    ApexTestContext,
    ExpectApexActiveCheck,
    InapplicableEnvironment,
    LifecycleError,
    ResetGuard,
    no_additional_check,
)
from apex_harness.runtime.android.controller import AndroidControllerError, controller_from_args

logger = logging.getLogger(__name__)


def _utc_ms() -> int:
    return int(time.time() * 1000)


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False)


def run_lifecycle(
    ctx: ApexTestContext,
    *,
    additional_check: AdditionalCheck = no_additional_check,
) -> Dict[str, Any]:
    """Run guard + lifecycle once and return a JSON-serializable summary."""

    summary: Dict[str, Any] = {
        "ts_ms": _utc_ms(),
        "serial": ctx.serial,
        "apex_file_names": list(ctx.apex_file_names),
    }
    try:
        summary["build_fingerprint"] = ctx.controller.get_build_fingerprint()
        summary["files"] = [
            {"name": f, "sha256": stable_file_sha256(ctx.get_test_file(f))}
            for f in ctx.apex_file_names
        ]
        guard = ResetGuard(ctx)
        with guard.guarded():
            outcome = ApexLifecycle(ctx, additional_check=additional_check).run_many(
                ctx.apex_file_names
            )
        summary["status"] = "pass"
        summary["outcome"] = outcome.value
        summary["activated"] = [str(a) for a in ctx.activated]
    except InapplicableEnvironment as e:
        summary["status"] = "skipped"
        summary["reason"] = str(e)
    except (
        LifecycleError,
        AssertionError,
        AndroidControllerError,
        FileNotFoundError,
        ValueError,
    ) as e:
        logger.error("apex lifecycle failed: %s", e)
        summary["status"] = "fail"
        summary["error_type"] = type(e).__name__
        summary["error"] = str(e)
        failed = getattr(e, "outcome", None)
        summary["outcome"] = failed.value if failed is not None else None
    summary["device_events"] = ctx.trace.names()
    return summary


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Stage, activate, verify and uninstall APEX package(s) on one device."
    )
    parser.add_argument(
        "--apex_file_name",
        action="append",
        default=[],
        help="The file name of the apex module (repeatable).",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML/JSON lifecycle config.")
    parser.add_argument(
        "--test_dir",
        action="append",
        type=Path,
        default=[],
        help="Directory searched for apex files (repeatable).",
    )
    parser.add_argument(
        "--serial",
        type=str,
        default=None,
        help="adb device serial (default: $APEX_ANDROID_SERIAL or the only device)",
    )
    parser.add_argument(
        "--expect_active",
        action="append",
        default=[],
        help="Additional APEX name that must be active after activation (repeatable).",
    )
    parser.add_argument(
        "--out_dir",
        type=Path,
        default=Path("runs/apex_lifecycle"),
        help="Output directory (default: runs/apex_lifecycle)",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.config is not None:
        cfg = load_config(args.config)
    elif args.apex_file_name:
        cfg = apply_env_overrides(LifecycleConfig(apex_file_names=list(args.apex_file_name)))
    else:
        parser.error("--apex_file_name or --config is required")
    if args.apex_file_name:
        cfg = dataclasses.replace(cfg, apex_file_names=list(args.apex_file_name))

    out_dir: Path = args.out_dir
    out_dir.mkdir(parents=True, exist_ok=True)
    controller = controller_from_args(
        serial=args.serial or cfg.serial,
        adb_path=cfg.adb_path,
        timeout_s=cfg.adb_timeout_s,
        boot_complete_timeout_s=cfg.boot_complete_timeout_s,
    )
    ctx = ApexTestContext(
        apex_file_names=list(cfg.apex_file_names),
        controller=controller,
        test_dirs=list(cfg.test_dirs) + list(args.test_dir),
        trace=DeviceTrace(cfg.trace_path or out_dir / "device_trace.jsonl"),
    )
    check: AdditionalCheck = (
        ExpectApexActiveCheck(args.expect_active) if args.expect_active else no_additional_check
    )

    summary = run_lifecycle(ctx, additional_check=check)
    (out_dir / "lifecycle_summary.json").write_text(_json_dumps(summary) + "\n", encoding="utf-8")
    print(_json_dumps(summary))
    return 1 if summary["status"] == "fail" else 0


if __name__ == "__main__":
    raise SystemExit(main())
