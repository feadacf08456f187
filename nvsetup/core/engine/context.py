"""
Stage context — the handle stages use to run commands.

A stage never calls the registry directly. It asks its context to
``run`` a mutating command or ``probe`` a read-only one. The context
turns the request into an Action, dispatches it, keeps the receipt,
and applies the pipeline's failure policy:

    strict (install):     a failed checked step raises StepFailed
    lenient (uninstall):  a failed step is logged and the stage goes on

StepFailed never escapes a stage: ``Stage.execute`` converts it into
a failed StageOutcome for the pipeline driver.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from nvsetup.adapters.registry import AdapterRegistry
from nvsetup.core.config.loader import Settings
from nvsetup.core.models.action import Action, Receipt
from nvsetup.core.models.platform import PlatformDescriptor
from nvsetup.core.privilege import Privilege

logger = logging.getLogger(__name__)

BASE_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class StepFailed(Exception):
    """A checked step failed inside a strict stage."""

    def __init__(self, step_id: str, receipt: Receipt):
        self.step_id = step_id
        self.receipt = receipt
        super().__init__(f"{step_id}: {receipt.error or 'failed'}")

    @property
    def exit_code(self) -> int:
        code = self.receipt.return_code
        return code if code else 1


@dataclass
class StageContext:
    """Everything a stage needs to act on the host."""

    registry: AdapterRegistry
    settings: Settings
    platform: PlatformDescriptor
    privilege: Privilege = field(default_factory=Privilege)
    dry_run: bool = False
    strict: bool = True
    sleep: Callable[[float], None] = time.sleep
    env: dict[str, str] = field(default_factory=lambda: dict(BASE_ENV))
    stage_id: str = ""
    receipts: list[Receipt] = field(default_factory=list)

    def banner(self, title: str) -> None:
        logger.info("==== %s ====", title)

    def run(
        self,
        step: str,
        argv: list[str],
        *,
        privileged: bool = True,
        input_text: str | None = None,
        env: dict[str, str] | None = None,
        check: bool = True,
    ) -> Receipt:
        """Run a mutating command.

        ``check=False`` marks a step whose failure is always tolerated.
        """
        action = self._action(step, argv, privileged, input_text, env, mutates=True)
        receipt = self._dispatch(action)

        if receipt.failed:
            if check and self.strict:
                raise StepFailed(action.id, receipt)
            logger.warning(
                "%s failed (continuing): %s",
                action.id,
                (receipt.error or "").strip() or "exit " + str(receipt.return_code),
            )
        return receipt

    def probe(
        self,
        step: str,
        argv: list[str],
        *,
        privileged: bool = False,
    ) -> Receipt:
        """Run a read-only command. Executes even in dry-run; never raises."""
        action = self._action(step, argv, privileged, None, None, mutates=False)
        return self._dispatch(action)

    def require(self, step: str, receipt: Receipt) -> None:
        """Escalate a receipt the stage judged fatal (e.g. exhausted retry)."""
        if self.strict:
            raise StepFailed(f"{self.stage_id}.{step}", receipt)
        logger.warning("%s.%s failed (continuing): %s", self.stage_id, step, receipt.error)

    def _action(
        self,
        step: str,
        argv: list[str],
        privileged: bool,
        input_text: str | None,
        env: dict[str, str] | None,
        *,
        mutates: bool,
    ) -> Action:
        params: dict = {"argv": list(argv), "privileged": privileged}
        if input_text is not None:
            params["input"] = input_text
        if env:
            params["env"] = dict(env)
        return Action(
            id=f"{self.stage_id}.{step}" if self.stage_id else step,
            name=step,
            stage=self.stage_id,
            mutates=mutates,
            params=params,
        )

    def _dispatch(self, action: Action) -> Receipt:
        receipt = self.registry.execute_action(
            action,
            dry_run=self.dry_run,
            elevation=self.privilege.argv,
            env=self.env,
            timeout=self.settings.command_timeout,
        )
        self.receipts.append(receipt)
        return receipt
