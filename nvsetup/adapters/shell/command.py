"""
Shell command adapter — execute one external command.

This is the only place where ``subprocess.run`` is called for
provisioning. Commands are run from an argv list (never through a
shell), their output is captured and mirrored into the log.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time

from nvsetup.adapters.base import Adapter, ExecutionContext
from nvsetup.core.models.action import Receipt

logger = logging.getLogger(__name__)


def format_argv(argv: list[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


class ShellCommandAdapter(Adapter):
    """Execute commands and capture output.

    Action params:
        argv (list[str]): The command to execute.
        privileged (bool): Prefix with the elevation command (default: False).
        input (str): Text piped to the command's stdin.
        env (dict): Extra environment variables.
        timeout (int): Timeout in seconds (default: context.timeout).
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        argv = context.action.params.get("argv")
        if not argv:
            return False, "Missing required param: 'argv'"
        if not isinstance(argv, list) or not all(isinstance(a, str) for a in argv):
            return False, "Param 'argv' must be a list of strings"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        argv = context.command
        params = context.action.params
        timeout = params.get("timeout", context.timeout)
        env = dict(os.environ)
        env.update(context.env)
        env.update(params.get("env") or {})

        rendered = format_argv(argv)
        logger.debug("CMD %s", rendered)
        start = time.monotonic()

        try:
            result = subprocess.run(
                argv,
                input=params.get("input"),
                capture_output=True,
                text=True,
                timeout=timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command timed out after {timeout}s",
                metadata={"command": rendered, "timeout": timeout},
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command not found: {argv[0]}",
                metadata={"command": rendered, "return_code": 127},
            )
        except OSError as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"Command execution error: {e}",
                metadata={"command": rendered},
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = result.stdout or ""
        stderr = (result.stderr or "").strip()

        if output.strip():
            logger.debug("STDOUT %s", output.strip())
        if stderr:
            logger.debug("STDERR %s", stderr)

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=output,
                duration_ms=elapsed_ms,
                metadata={
                    "command": rendered,
                    "return_code": result.returncode,
                    "stderr": stderr,
                },
            )

        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=stderr or f"Command exited with code {result.returncode}",
            output=output,
            duration_ms=elapsed_ms,
            metadata={
                "command": rendered,
                "return_code": result.returncode,
            },
        )
