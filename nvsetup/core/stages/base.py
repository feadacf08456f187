"""
Stage base — one component's install and removal.

A stage is order-dependent in effect but independent in code. Its
``install`` and ``remove`` bodies run commands through the context;
``execute`` wraps either body and always returns a StageOutcome.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

from nvsetup.core.engine.context import StageContext, StepFailed
from nvsetup.core.models.action import Receipt

logger = logging.getLogger(__name__)

Mode = Literal["install", "remove"]


@dataclass
class StageOutcome:
    """Result of running one stage."""

    stage_id: str
    title: str
    status: Literal["ok", "failed", "skipped"] = "ok"
    record_id: str | None = None
    failed_step: str | None = None
    error: str | None = None
    exit_code: int = 0
    receipts: list[Receipt] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    def to_dict(self) -> dict:
        return {
            "stage": self.stage_id,
            "title": self.title,
            "status": self.status,
            "record_id": self.record_id,
            "failed_step": self.failed_step,
            "error": self.error,
            "exit_code": self.exit_code,
            "commands": len(self.receipts),
        }


class Stage:
    """A provisioning stage.

    Subclasses set ``stage_id`` and the titles they use, and override
    ``install`` and/or ``remove``. Teardown-only stages keep the
    default ``record_id`` of None.
    """

    stage_id: str = ""
    title: str = ""
    removal_title: str = ""

    @property
    def record_id(self) -> str | None:
        """Identifier appended to the install record on success."""
        return None

    def install(self, ctx: StageContext) -> None:
        """Bring the component up; stages without an install side do nothing."""

    def remove(self, ctx: StageContext) -> None:
        """Best-effort removal; stages without artifacts do nothing."""

    def execute(self, ctx: StageContext, mode: Mode = "install") -> StageOutcome:
        title = self.title if mode == "install" else (self.removal_title or self.title)
        outcome = StageOutcome(stage_id=self.stage_id, title=title, record_id=self.record_id)

        ctx.stage_id = self.stage_id
        first_receipt = len(ctx.receipts)
        ctx.banner(title)

        try:
            if mode == "install":
                self.install(ctx)
            else:
                self.remove(ctx)
        except StepFailed as e:
            outcome.status = "failed"
            outcome.failed_step = e.step_id
            outcome.error = (e.receipt.error or "").strip() or None
            outcome.exit_code = e.exit_code
        finally:
            outcome.receipts = ctx.receipts[first_receipt:]
            ctx.stage_id = ""

        return outcome

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} id={self.stage_id!r}>"


class SkippedStage(Stage):
    """Stand-in for a stage switched off by a flag.

    It keeps the stage's slot in the pipeline so the skip is logged
    where the stage would have run, and only if the run gets that far.
    """

    def __init__(self, stage_id: str, reason: str):
        self.stage_id = stage_id
        self.title = reason

    def execute(self, ctx: StageContext, mode: Mode = "install") -> StageOutcome:
        logger.info("%s", self.title)
        return StageOutcome(stage_id=self.stage_id, title=self.title, status="skipped")
