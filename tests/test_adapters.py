"""
Tests for adapter protocol, registry, mock, and shell adapters.
"""

import sys

from nvsetup.adapters.base import ExecutionContext
from nvsetup.adapters.mock import MockAdapter
from nvsetup.adapters.registry import AdapterRegistry
from nvsetup.adapters.shell.command import ShellCommandAdapter, format_argv
from nvsetup.core.models.action import Action, Receipt


def _action(action_id: str = "op", argv: list[str] | None = None, **params) -> Action:
    return Action(id=action_id, params={"argv": argv or ["true"], **params})


# ── Protocol Tests ───────────────────────────────────────────────────


class TestExecutionContext:
    def test_unprivileged_command(self):
        ctx = ExecutionContext(action=_action(argv=["curl", "-fsSL", "u"]), elevation=["sudo"])
        assert ctx.command == ["curl", "-fsSL", "u"]

    def test_privileged_command(self):
        ctx = ExecutionContext(action=_action(argv=["apt-get", "update"], privileged=True), elevation=["sudo"])
        assert ctx.command == ["sudo", "apt-get", "update"]

    def test_privileged_without_elevation(self):
        ctx = ExecutionContext(action=_action(argv=["apt-get", "update"], privileged=True))
        assert ctx.command == ["apt-get", "update"]

    def test_env_passed_through_sudo(self):
        ctx = ExecutionContext(
            action=_action(argv=["gpg", "--dearmor"], privileged=True, env={"LC_ALL": "C"}),
            elevation=["sudo"],
            env={"DEBIAN_FRONTEND": "noninteractive"},
        )
        assert ctx.command == [
            "sudo",
            "env",
            "DEBIAN_FRONTEND=noninteractive",
            "LC_ALL=C",
            "gpg",
            "--dearmor",
        ]


# ── Mock Adapter Tests ───────────────────────────────────────────────


class TestMockAdapter:
    def test_default_success(self):
        mock = MockAdapter()
        receipt = mock.execute(ExecutionContext(action=_action("op-1")))
        assert receipt.ok
        assert receipt.return_code == 0
        assert mock.call_count == 1

    def test_set_output(self):
        mock = MockAdapter()
        mock.set_output("op-1", "22.04\n")
        receipt = mock.execute(ExecutionContext(action=_action("op-1")))
        assert receipt.output == "22.04\n"

    def test_set_failure(self):
        mock = MockAdapter()
        mock.set_failure("op-fail", error="Intentional failure", return_code=100)
        receipt = mock.execute(ExecutionContext(action=_action("op-fail")))
        assert receipt.failed
        assert receipt.error == "Intentional failure"
        assert receipt.return_code == 100

    def test_sequence_then_default(self):
        mock = MockAdapter()
        mock.set_failure("op", "still failing")
        mock.set_sequence("op", [Receipt.failure(adapter="shell", action_id="op", error="first")])
        ctx = ExecutionContext(action=_action("op"))
        assert mock.execute(ctx).error == "first"
        assert mock.execute(ctx).error == "still failing"

    def test_ran_matches_contiguous_fragment(self):
        mock = MockAdapter()
        mock.execute(ExecutionContext(action=_action(argv=["apt-get", "install", "-y", "dkms"])))
        assert mock.ran("install", "-y")
        assert mock.ran("dkms")
        assert not mock.ran("install", "dkms")

    def test_calls_for_and_reset(self):
        mock = MockAdapter()
        mock.execute(ExecutionContext(action=_action("a")))
        mock.execute(ExecutionContext(action=_action("b")))
        assert len(mock.calls_for("a")) == 1
        assert mock.action_ids == ["a", "b"]
        mock.reset()
        assert mock.call_count == 0


# ── Registry Tests ───────────────────────────────────────────────────


class TestAdapterRegistry:
    def test_register_and_get(self):
        registry = AdapterRegistry()
        registry.register(MockAdapter(adapter_name="shell"))
        assert registry.get("shell") is not None
        assert registry.get("apt") is None

    def test_register_replaces_same_name(self):
        registry = AdapterRegistry()
        first = MockAdapter()
        second = MockAdapter()
        registry.register(first)
        registry.register(second)
        assert registry.get("shell") is second
        assert list(registry.adapter_status()) == ["shell"]

    def test_missing_adapter_fails(self):
        receipt = AdapterRegistry().execute_action(_action())
        assert receipt.failed
        assert "No adapter registered" in (receipt.error or "")

    def test_execute_passes_context(self):
        mock = MockAdapter()
        registry = AdapterRegistry()
        registry.register(mock)
        receipt = registry.execute_action(
            _action(argv=["apt-get", "update"], privileged=True),
            elevation=["sudo"],
            timeout=60,
        )
        assert receipt.ok
        assert mock.call_log[0].timeout == 60
        assert mock.commands == [["sudo", "apt-get", "update"]]

    def test_dry_run_skips_mutating(self):
        mock = MockAdapter()
        registry = AdapterRegistry()
        registry.register(mock)
        receipt = registry.execute_action(_action(), dry_run=True)
        assert receipt.status == "skipped"
        assert mock.call_count == 0

    def test_dry_run_runs_probes(self):
        mock = MockAdapter()
        registry = AdapterRegistry()
        registry.register(mock)
        probe = Action(id="release", mutates=False, params={"argv": ["lsb_release", "-rs"]})
        assert registry.execute_action(probe, dry_run=True).ok
        assert mock.call_count == 1

    def test_adapter_exception_becomes_failure(self):
        class Exploding(MockAdapter):
            def execute(self, context):
                raise RuntimeError("kaboom")

        registry = AdapterRegistry()
        registry.register(Exploding())
        receipt = registry.execute_action(_action())
        assert receipt.failed
        assert "kaboom" in (receipt.error or "")

    def test_adapter_status(self):
        registry = AdapterRegistry()
        registry.register(MockAdapter(available=False))
        status = registry.adapter_status()
        assert status["shell"]["available"] is False
        assert status["shell"]["type"] == "MockAdapter"


# ── Shell Adapter Tests ──────────────────────────────────────────────


class TestShellCommandAdapter:
    def _run(self, argv: list[str], **params) -> Receipt:
        return ShellCommandAdapter().execute(ExecutionContext(action=_action("t", argv, **params)))

    def test_format_argv(self):
        assert format_argv(["echo", "a b"]) == "echo 'a b'"

    def test_validate_requires_argv(self):
        adapter = ShellCommandAdapter()
        ok, error = adapter.validate(ExecutionContext(action=Action(id="x")))
        assert not ok
        assert "argv" in error

    def test_success_captures_stdout(self):
        receipt = self._run([sys.executable, "-c", "print('hello')"])
        assert receipt.ok
        assert receipt.output.strip() == "hello"
        assert receipt.return_code == 0

    def test_failure_carries_exit_code(self):
        receipt = self._run([sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"])
        assert receipt.failed
        assert receipt.return_code == 3
        assert receipt.error == "bad"

    def test_stdin_input(self):
        receipt = self._run(
            [sys.executable, "-c", "import sys; print(sys.stdin.read().upper())"],
            input="key",
        )
        assert receipt.output.strip() == "KEY"

    def test_env(self):
        receipt = self._run(
            [sys.executable, "-c", "import os; print(os.environ['LC_ALL'])"],
            env={"LC_ALL": "C"},
        )
        assert receipt.output.strip() == "C"

    def test_missing_binary(self):
        receipt = self._run(["definitely-not-a-real-binary-xyz"])
        assert receipt.failed
        assert receipt.return_code == 127

    def test_timeout(self):
        receipt = self._run([sys.executable, "-c", "import time; time.sleep(5)"], timeout=0.2)
        assert receipt.failed
        assert "timed out" in (receipt.error or "")
        assert receipt.return_code is None
