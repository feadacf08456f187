"""
Tests for the engine — stage context, pipeline strategies, and audit.
"""

from pathlib import Path

import pytest

from nvsetup.adapters.mock import MockAdapter
from nvsetup.core.engine.context import StageContext, StepFailed
from nvsetup.core.engine.executor import (
    RunReport,
    generate_operation_id,
    run_best_effort,
    run_fail_fast,
    write_audit_entry,
)
from nvsetup.core.models.action import Receipt
from nvsetup.core.persistence.audit import AuditWriter
from nvsetup.core.persistence.install_record import InstallRecord
from nvsetup.core.privilege import Privilege
from nvsetup.core.stages.base import SkippedStage, Stage

# ── Test stages ──────────────────────────────────────────────────────


class _Step(Stage):
    """Runs one command per install/remove, recorded under ``name``."""

    def __init__(self, name: str, record: bool = True):
        self.stage_id = name
        self.title = f"Installing {name}"
        self.removal_title = f"Removing {name}"
        self._record = record

    @property
    def record_id(self) -> str | None:
        return f"{self.stage_id}_done" if self._record else None

    def install(self, ctx: StageContext) -> None:
        ctx.run("go", ["echo", self.stage_id])

    def remove(self, ctx: StageContext) -> None:
        ctx.run("undo", ["echo", self.stage_id])
        ctx.run("cleanup", ["true"])


# ── StageContext ─────────────────────────────────────────────────────


class TestStageContext:
    def test_action_id_is_stage_and_step(self, ctx: StageContext, mock: MockAdapter):
        ctx.stage_id = "docker"
        ctx.run("fetch_key", ["curl", "x"])
        assert mock.action_ids == ["docker.fetch_key"]

    def test_no_stage_uses_bare_step(self, ctx: StageContext, mock: MockAdapter):
        ctx.run("apt_clean", ["apt-get", "clean"])
        assert mock.action_ids == ["apt_clean"]

    def test_strict_failure_raises(self, ctx: StageContext, mock: MockAdapter):
        ctx.stage_id = "driver"
        mock.set_failure("driver.install_driver", "E: broken", return_code=100)
        with pytest.raises(StepFailed) as exc:
            ctx.run("install_driver", ["apt-get", "install", "-y", "x"])
        assert exc.value.step_id == "driver.install_driver"
        assert exc.value.exit_code == 100

    def test_unchecked_failure_continues(self, ctx: StageContext, mock: MockAdapter):
        mock.set_failure("remove_ppa")
        receipt = ctx.run("remove_ppa", ["add-apt-repository"], check=False)
        assert receipt.failed

    def test_lenient_failure_continues(self, ctx: StageContext, mock: MockAdapter):
        ctx.strict = False
        mock.set_failure("purge")
        receipt = ctx.run("purge", ["apt-get", "purge", "-y", "x"])
        assert receipt.failed

    def test_exit_code_defaults_to_one(self):
        receipt = Receipt.failure(adapter="shell", action_id="a", error="timed out")
        assert StepFailed("a", receipt).exit_code == 1

    def test_probe_never_raises(self, ctx: StageContext, mock: MockAdapter):
        mock.set_failure("query")
        receipt = ctx.probe("query", ["dpkg-query", "-W", "x"])
        assert receipt.failed

    def test_require_raises_when_strict(self, ctx: StageContext):
        ctx.stage_id = "container_toolkit"
        bad = Receipt.failure(adapter="shell", action_id="x", error="gone")
        with pytest.raises(StepFailed) as exc:
            ctx.require("fetch_key", bad)
        assert exc.value.step_id == "container_toolkit.fetch_key"

    def test_require_logs_when_lenient(self, ctx: StageContext):
        ctx.strict = False
        ctx.require("fetch_key", Receipt.failure(adapter="shell", action_id="x", error="gone"))

    def test_privileged_commands_get_prefix(self, ctx: StageContext, mock: MockAdapter):
        ctx.privilege = Privilege(prefix=("sudo",))
        ctx.run("install", ["apt-get", "install", "-y", "x"])
        ctx.run("fetch", ["curl", "-fsSL", "u"], privileged=False)
        assert mock.commands[0][:3] == ["sudo", "env", "DEBIAN_FRONTEND=noninteractive"]
        assert mock.commands[0][-4:] == ["apt-get", "install", "-y", "x"]
        assert mock.commands[1] == ["curl", "-fsSL", "u"]

    def test_root_runs_without_prefix(self, ctx: StageContext, mock: MockAdapter):
        ctx.run("install", ["apt-get", "install", "-y", "x"])
        assert mock.commands[0] == ["apt-get", "install", "-y", "x"]

    def test_dry_run_skips_mutations_only(self, ctx: StageContext, mock: MockAdapter):
        ctx.dry_run = True
        mutated = ctx.run("install", ["apt-get", "install", "-y", "x"])
        probed = ctx.probe("release", ["lsb_release", "-rs"])
        assert mutated.status == "skipped"
        assert probed.ok
        assert mock.action_ids == ["release"]

    def test_receipts_are_kept(self, ctx: StageContext):
        ctx.run("a", ["true"])
        ctx.probe("b", ["true"])
        assert [r.action_id for r in ctx.receipts] == ["a", "b"]


# ── Stage.execute ────────────────────────────────────────────────────


class TestStageExecute:
    def test_success_outcome(self, ctx: StageContext):
        outcome = _Step("alpha").execute(ctx, "install")
        assert outcome.ok
        assert outcome.record_id == "alpha_done"
        assert outcome.title == "Installing alpha"
        assert len(outcome.receipts) == 1
        assert ctx.stage_id == ""

    def test_failure_becomes_outcome(self, ctx: StageContext, mock: MockAdapter):
        mock.set_failure("alpha.go", "boom", return_code=42)
        outcome = _Step("alpha").execute(ctx, "install")
        assert outcome.failed
        assert outcome.failed_step == "alpha.go"
        assert outcome.exit_code == 42
        assert outcome.error == "boom"

    def test_remove_uses_removal_title(self, ctx: StageContext):
        outcome = _Step("alpha").execute(ctx, "remove")
        assert outcome.title == "Removing alpha"

    def test_to_dict(self, ctx: StageContext):
        data = _Step("alpha").execute(ctx, "install").to_dict()
        assert data["stage"] == "alpha"
        assert data["status"] == "ok"
        assert data["commands"] == 1


# ── Fail-fast pipeline ───────────────────────────────────────────────


class TestRunFailFast:
    def test_records_in_order(self, ctx: StageContext, tmp_path: Path):
        record = InstallRecord(tmp_path / "installed.list")
        report = run_fail_fast([_Step("a"), _Step("b"), _Step("c")], ctx, record)
        assert report.status == "ok"
        assert report.exit_code == 0
        assert record.read() == ["a_done", "b_done", "c_done"]
        assert report.recorded == ["a_done", "b_done", "c_done"]

    def test_stops_at_first_failure(self, ctx: StageContext, mock: MockAdapter, tmp_path: Path):
        mock.set_failure("b.go", return_code=7)
        record = InstallRecord(tmp_path / "installed.list")
        report = run_fail_fast([_Step("a"), _Step("b"), _Step("c")], ctx, record)

        assert report.status == "failed"
        assert report.exit_code == 7
        assert report.failure is not None
        assert report.failure.failed_step == "b.go"
        assert [o.stage_id for o in report.outcomes] == ["a", "b"]
        assert "c.go" not in mock.action_ids
        assert record.read() == ["a_done"]

    def test_dry_run_writes_no_record(self, ctx: StageContext, tmp_path: Path):
        ctx.dry_run = True
        record = InstallRecord(tmp_path / "installed.list")
        report = run_fail_fast([_Step("a")], ctx, record)
        assert report.status == "ok"
        assert not record.exists()

    def test_stage_without_record_id(self, ctx: StageContext, tmp_path: Path):
        record = InstallRecord(tmp_path / "installed.list")
        run_fail_fast([_Step("a", record=False)], ctx, record)
        assert not record.exists()

    def test_forces_strict(self, ctx: StageContext, mock: MockAdapter):
        ctx.strict = False
        mock.set_failure("a.go")
        report = run_fail_fast([_Step("a")], ctx)
        assert report.failure is not None

    def test_skipped_stage_keeps_its_slot(self, ctx: StageContext, mock: MockAdapter, tmp_path: Path, caplog):
        record = InstallRecord(tmp_path / "installed.list")
        stages = [_Step("a"), SkippedStage("b", "Skipped b (--no-b flag detected)"), _Step("c")]
        with caplog.at_level("INFO"):
            report = run_fail_fast(stages, ctx, record)

        assert report.status == "ok"
        assert [o.status for o in report.outcomes] == ["ok", "skipped", "ok"]
        assert report.skipped == ["b"]
        assert record.read() == ["a_done", "c_done"]
        assert mock.action_ids == ["a.go", "c.go"]
        assert "Skipped b (--no-b flag detected)" in caplog.text

    def test_skip_not_reported_after_earlier_failure(self, ctx: StageContext, mock: MockAdapter, caplog):
        mock.set_failure("a.go")
        with caplog.at_level("INFO"):
            report = run_fail_fast([_Step("a"), SkippedStage("b", "Skipped b")], ctx)

        assert report.failure is not None
        assert report.skipped == []
        assert "Skipped b" not in caplog.text


# ── Best-effort pipeline ─────────────────────────────────────────────


class TestRunBestEffort:
    def test_runs_everything_despite_failures(self, ctx: StageContext, mock: MockAdapter):
        mock.set_failure("a.undo")
        mock.set_failure("b.cleanup")
        report = run_best_effort([_Step("a"), _Step("b")], ctx)

        assert report.status == "ok"
        assert report.exit_code == 0
        assert report.warnings == 2
        assert mock.action_ids == ["a.undo", "a.cleanup", "b.undo", "b.cleanup"]

    def test_forces_lenient(self, ctx: StageContext, mock: MockAdapter):
        mock.set_failure("a.undo")
        report = run_best_effort([_Step("a")], ctx)
        assert all(o.ok for o in report.outcomes)
        assert ctx.strict is False


# ── Reports and audit ────────────────────────────────────────────────


class TestRunReport:
    def test_uninstall_never_fails(self):
        report = RunReport(mode="uninstall")
        assert report.failure is None
        assert report.status == "ok"

    def test_to_dict(self, ctx: StageContext, mock: MockAdapter):
        mock.set_failure("a.go", return_code=3)
        data = run_fail_fast([_Step("a")], ctx, operation_id="op-x").to_dict()
        assert data["operation_id"] == "op-x"
        assert data["status"] == "failed"
        assert data["exit_code"] == 3
        assert data["failed_step"] == "a.go"
        assert data["stages"][0]["stage"] == "a"


class TestAudit:
    def test_write_audit_entry(self, ctx: StageContext, mock: MockAdapter, tmp_path: Path):
        mock.set_failure("b.go", "nope", return_code=2)
        record = InstallRecord(tmp_path / "installed.list")
        report = run_fail_fast([_Step("a"), _Step("b")], ctx, record, operation_id="op-1")

        writer = AuditWriter(tmp_path / "audit.ndjson")
        write_audit_entry(report, writer, platform="Ubuntu 22.04 (jammy)")

        entries = writer.read_all()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.operation_id == "op-1"
        assert entry.mode == "install"
        assert entry.status == "failed"
        assert entry.exit_code == 2
        assert entry.failed_step == "b.go"
        assert entry.stages_run == ["a", "b"]
        assert entry.stages_recorded == ["a_done"]
        assert entry.errors == ["b.go: nope"]

    def test_operation_id_format(self):
        op = generate_operation_id()
        assert op.startswith("op-")
        assert op != generate_operation_id()
