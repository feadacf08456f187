"""
Mock adapter — universal test double for command execution.

Used in tests to simulate a host without touching it. Returns success for everything unless scripted otherwise per
action ID.
"""

from __future__ import annotations

from nvsetup.adapters.base import Adapter, ExecutionContext
from nvsetup.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns success for everything. Can be configured
    with custom responses per action ID, either a single receipt
    reused on every call or a sequence consumed one call at a time.
    """

    def __init__(
        self,
        adapter_name: str = "shell",
        available: bool = True,
        default_output: str = "",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._sequences: dict[str, list[Receipt]] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of times execute has been called."""
        return len(self._call_log)

    @property
    def commands(self) -> list[list[str]]:
        """Effective argv of every call, in order."""
        return [ctx.command for ctx in self._call_log]

    @property
    def action_ids(self) -> list[str]:
        return [ctx.action.id for ctx in self._call_log]

    def calls_for(self, action_id: str) -> list[ExecutionContext]:
        return [ctx for ctx in self._call_log if ctx.action.id == action_id]

    def ran(self, *fragment: str) -> bool:
        """Whether any call's argv contains ``fragment`` as a contiguous run."""
        n = len(fragment)
        for argv in self.commands:
            for i in range(len(argv) - n + 1):
                if tuple(argv[i:i + n]) == fragment:
                    return True
        return False

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        """Set a custom response for a specific action ID."""
        self._responses[action_id] = receipt

    def set_output(self, action_id: str, output: str) -> None:
        """Make a specific action succeed with the given stdout."""
        self._responses[action_id] = Receipt.success(
            adapter=self._name,
            action_id=action_id,
            output=output,
            metadata={"return_code": 0, "mock": True},
        )

    def set_failure(
        self,
        action_id: str,
        error: str = "Mock failure",
        return_code: int = 1,
    ) -> None:
        """Configure a specific action to fail."""
        self._responses[action_id] = Receipt.failure(
            adapter=self._name,
            action_id=action_id,
            error=error,
            metadata={"return_code": return_code, "mock": True},
        )

    def set_sequence(self, action_id: str, receipts: list[Receipt]) -> None:
        """Consume ``receipts`` in order; fall back to the default afterwards."""
        self._sequences[action_id] = list(receipts)

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action_id = context.action.id

        queued = self._sequences.get(action_id)
        if queued:
            return queued.pop(0)

        if action_id in self._responses:
            return self._responses[action_id]

        return Receipt.success(
            adapter=self._name,
            action_id=action_id,
            output=self._default_output,
            metadata={"return_code": 0, "mock": True},
        )

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
        self._sequences.clear()
