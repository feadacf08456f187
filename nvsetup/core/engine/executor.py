"""
Engine executor — the two pipeline strategies.

Install and uninstall walk an ordered list of stages, but treat
failure differently:

    fail-fast (install):      stop at the first failed stage; record
                              each stage only after it fully succeeds
    best-effort (uninstall):  run every stage; failures are logged and
                              the run always completes

Flow:
    stages → execute each → collect outcomes → record → audit
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from nvsetup.core.engine.context import StageContext
from nvsetup.core.persistence.audit import AuditEntry, AuditWriter
from nvsetup.core.persistence.install_record import InstallRecord
from nvsetup.core.stages.base import Stage, StageOutcome

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Result of running a pipeline."""

    operation_id: str = ""
    mode: str = ""
    dry_run: bool = False
    outcomes: list[StageOutcome] = field(default_factory=list)
    recorded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def failure(self) -> StageOutcome | None:
        """First failed stage in a fail-fast run."""
        if self.mode != "install":
            return None
        return next((o for o in self.outcomes if o.failed), None)

    @property
    def warnings(self) -> int:
        """Failed commands tolerated along the way."""
        return sum(1 for o in self.outcomes for r in o.receipts if r.failed)

    @property
    def status(self) -> str:
        return "failed" if self.failure else "ok"

    @property
    def exit_code(self) -> int:
        failure = self.failure
        return failure.exit_code if failure else 0

    def to_dict(self) -> dict:
        failure = self.failure
        return {
            "operation_id": self.operation_id,
            "mode": self.mode,
            "dry_run": self.dry_run,
            "status": self.status,
            "exit_code": self.exit_code,
            "failed_step": failure.failed_step if failure else None,
            "recorded": list(self.recorded),
            "skipped": list(self.skipped),
            "warnings": self.warnings,
            "stages": [o.to_dict() for o in self.outcomes],
        }


def run_fail_fast(
    stages: list[Stage],
    ctx: StageContext,
    record: InstallRecord | None = None,
    *,
    operation_id: str = "",
) -> RunReport:
    """Run install stages in order, stopping at the first failure.

    A stage's record identifier is appended only after ``execute``
    returns ok, i.e. after all of its commands succeeded. Dry runs
    never touch the record.
    """
    report = RunReport(operation_id=operation_id, mode="install", dry_run=ctx.dry_run)
    start = time.monotonic()
    ctx.strict = True

    for stage in stages:
        outcome = stage.execute(ctx, "install")
        report.outcomes.append(outcome)

        if outcome.failed:
            logger.debug("Stage %s failed at %s", stage.stage_id, outcome.failed_step)
            break

        if outcome.status == "skipped":
            report.skipped.append(stage.stage_id)
            continue

        if outcome.record_id and record is not None and not ctx.dry_run:
            record.append(outcome.record_id)
            report.recorded.append(outcome.record_id)

    report.duration_ms = int((time.monotonic() - start) * 1000)
    return report


def run_best_effort(
    stages: list[Stage],
    ctx: StageContext,
    *,
    operation_id: str = "",
) -> RunReport:
    """Run every removal stage; failed commands never stop the run."""
    report = RunReport(operation_id=operation_id, mode="uninstall", dry_run=ctx.dry_run)
    start = time.monotonic()
    ctx.strict = False

    for stage in stages:
        outcome = stage.execute(ctx, "remove")
        report.outcomes.append(outcome)

    report.duration_ms = int((time.monotonic() - start) * 1000)
    if report.warnings:
        logger.debug("%d removal command(s) failed and were ignored", report.warnings)
    return report


def write_audit_entry(
    report: RunReport,
    audit_writer: AuditWriter,
    platform: str = "",
) -> None:
    """Write one ledger line summarising the run."""
    failure = report.failure
    errors = [
        f"{o.failed_step}: {o.error}" if o.error else str(o.failed_step)
        for o in report.outcomes
        if o.failed
    ]
    entry = AuditEntry(
        operation_id=report.operation_id,
        mode=report.mode,
        platform=platform,
        stages_run=[o.stage_id for o in report.outcomes],
        stages_recorded=list(report.recorded),
        status=report.status,
        exit_code=report.exit_code,
        failed_step=failure.failed_step if failure else None,
        duration_ms=report.duration_ms,
        dry_run=report.dry_run,
        errors=errors,
        context={"skipped": list(report.skipped), "warnings": report.warnings},
    )
    audit_writer.write(entry)


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
