"""
Adapter base — the protocol contract between stages and tools.

This defines the abstract interface that every adapter must implement.
Stages only talk to adapters through the registry, never directly to
external tools.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from nvsetup.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action.

    ``elevation`` is the command prefix granted by the privilege
    capability (empty when already root). It is applied only to
    actions that ask for it.
    """

    action: Action
    dry_run: bool = False
    elevation: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    timeout: int = 1800
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def command(self) -> list[str]:
        """Final argv, with the elevation prefix when requested.

        sudo resets the environment, so extra variables are passed
        through ``env`` behind the prefix.
        """
        argv = self.action.argv
        if not (self.action.params.get("privileged") and self.elevation):
            return argv
        extra = {**self.env, **(self.action.params.get("env") or {})}
        if not extra:
            return [*self.elevation, *argv]
        assignments = [f"{k}={v}" for k, v in sorted(extra.items())]
        return [*self.elevation, "env", *assignments, *argv]


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'shell')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is available.

        Should be fast and never raise.
        """

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.

        MUST never raise exceptions. All failures are captured
        in the Receipt with status='failed'.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
