"""Package-manager housekeeping that brackets the teardown."""

from __future__ import annotations

from nvsetup.core.engine.context import StageContext
from nvsetup.core.services.apt import apt_autoremove, apt_fix_broken
from nvsetup.core.stages.base import Stage


class FixBrokenStage(Stage):
    stage_id = "fix_broken"
    removal_title = "Fixing broken dependencies (if any)..."

    def remove(self, ctx: StageContext) -> None:
        apt_fix_broken(ctx)


class AutoremoveStage(Stage):
    stage_id = "autoremove"
    removal_title = "autoremove cleanup"

    def remove(self, ctx: StageContext) -> None:
        apt_autoremove(ctx)
