"""
Provision use cases — install and uninstall, end to end.

This is the top-level orchestrator: it resolves the platform, checks
the allow-list, runs the matching pipeline strategy, and persists the
install record and the audit ledger. The CLI only renders the result.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from nvsetup.adapters.registry import AdapterRegistry
from nvsetup.core.config.loader import Settings
from nvsetup.core.engine.context import StageContext
from nvsetup.core.engine.executor import (
    RunReport,
    generate_operation_id,
    run_best_effort,
    run_fail_fast,
    write_audit_entry,
)
from nvsetup.core.models.platform import PlatformDescriptor
from nvsetup.core.persistence.audit import AuditWriter
from nvsetup.core.persistence.install_record import InstallRecord
from nvsetup.core.privilege import Privilege
from nvsetup.core.services.apt import apt_clean
from nvsetup.core.services.platform_probe import (
    OS_RELEASE,
    UnsupportedPlatformError,
    check_platform,
    detect_platform,
)
from nvsetup.core.stages import build_install_stages, build_teardown_stages

logger = logging.getLogger(__name__)


@dataclass
class ProvisionResult:
    """Result of an install or uninstall run."""

    mode: str = ""
    report: RunReport | None = None
    platform: PlatformDescriptor | None = None
    forced: bool = False
    error: str | None = None
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict:
        result: dict = {"mode": self.mode, "exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
        if self.platform:
            result["platform"] = self.platform.model_dump() | {"version": self.platform.version}
        if self.forced:
            result["forced"] = True
        if self.report:
            result["report"] = self.report.to_dict()
        return result


def build_registry() -> AdapterRegistry:
    """Registry wired to the real host."""
    from nvsetup.adapters.shell.command import ShellCommandAdapter

    registry = AdapterRegistry()
    registry.register(ShellCommandAdapter())
    return registry


def _context(
    settings: Settings,
    registry: AdapterRegistry | None,
    privilege: Privilege | None,
    dry_run: bool,
    sleep: Callable[[float], None],
) -> StageContext:
    return StageContext(
        registry=registry or build_registry(),
        settings=settings,
        platform=PlatformDescriptor(),
        privilege=privilege if privilege is not None else Privilege.detect(),
        dry_run=dry_run,
        sleep=sleep,
    )


def install_host(
    settings: Settings,
    *,
    skip_cuda: bool = False,
    force: bool = False,
    dry_run: bool = False,
    registry: AdapterRegistry | None = None,
    privilege: Privilege | None = None,
    sleep: Callable[[float], None] = time.sleep,
    os_release: Path = OS_RELEASE,
) -> ProvisionResult:
    """Run the install pipeline.

    Args:
        settings: Pinned versions and paths.
        skip_cuda: Skip the CUDA toolkit stage (logged in its slot).
        force: Proceed on a platform outside the allow-list.
        dry_run: Probe the host but only log mutating commands.
        registry: Optional pre-configured adapter registry.
        privilege: Elevation capability (detected when None).
        sleep: Used for the --force pause and retry backoff.
        os_release: Fallback platform source when lsb_release fails.

    Returns:
        ProvisionResult; ``exit_code`` is the failing command's status.
    """
    result = ProvisionResult(mode="install")
    ctx = _context(settings, registry, privilege, dry_run, sleep)
    record = InstallRecord(settings.record_path)

    ctx.banner("Starting NVIDIA Environment Setup")

    # ── Platform precondition (no side effects before this) ─────
    ctx.stage_id = "platform"
    platform = detect_platform(ctx, os_release=os_release)
    ctx.stage_id = ""
    ctx.platform = platform
    result.platform = platform

    try:
        supported = check_platform(platform, settings.supported_versions, force=force)
    except UnsupportedPlatformError as e:
        result.error = str(e)
        result.exit_code = 1
        return result

    if not supported:
        result.forced = True
        sleep(settings.force_pause_seconds)

    # ── Pipeline ────────────────────────────────────────────────
    stages = build_install_stages(settings, skip_cuda=skip_cuda)
    operation_id = generate_operation_id()

    report = run_fail_fast(stages, ctx, record, operation_id=operation_id)
    result.report = report

    if report.failure is None:
        ctx.stage_id = "finalize"
        ctx.banner("Installation complete! Please reboot.")
        apt_clean(ctx)
        ctx.stage_id = ""
    else:
        failure = report.failure
        result.error = failure.error or f"{failure.failed_step} failed"
        result.exit_code = report.exit_code

    write_audit_entry(report, AuditWriter(settings.audit_path), platform=platform.label())
    return result


def uninstall_host(
    settings: Settings,
    *,
    dry_run: bool = False,
    registry: AdapterRegistry | None = None,
    privilege: Privilege | None = None,
) -> ProvisionResult:
    """Run the teardown pipeline. Always completes with exit code 0."""
    result = ProvisionResult(mode="uninstall")
    ctx = _context(settings, registry, privilege, dry_run, time.sleep)
    record = InstallRecord(settings.record_path)

    stages = build_teardown_stages(settings)
    report = run_best_effort(stages, ctx, operation_id=generate_operation_id())
    result.report = report

    ctx.banner("Removing install record")
    if dry_run:
        logger.info("[dry-run] Would remove %s", record.path)
    elif record.clear():
        logger.debug("Removed %s", record.path)

    write_audit_entry(report, AuditWriter(settings.audit_path))
    ctx.banner("Clean complete.")
    return result
