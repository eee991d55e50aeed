"""
Shell command adapter — run a host tool and capture its output.

Every external collaborator (mokutil, sign-file, modinfo,
vmware-modconfig, systemctl, modprobe) goes through here. Commands are
run from an argv list, never through a shell, and always with a timeout.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time

from vmsecureboot.adapters.base import Adapter, ExecutionContext
from vmsecureboot.core.models.action import Receipt

logger = logging.getLogger(__name__)


class ShellCommandAdapter(Adapter):
    """Execute host commands and capture output.

    Interactive actions (``mokutil --import`` prompting for a one-time
    password) inherit the terminal; their receipt carries only the
    exit code.
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        # argv runs directly, but interactive mokutil needs a POSIX host
        return shutil.which("sh") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        argv = context.action.argv
        if not argv:
            return False, "Missing command line"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        action = context.action
        timeout = context.timeout
        command = action.command_line

        env = None
        if context.search_path is not None:
            env = {**os.environ, "PATH": context.search_path}

        logger.debug("Executing: %s (timeout=%ss)", command, timeout)
        start = time.monotonic()

        try:
            if action.interactive:
                result = subprocess.run(action.argv, timeout=timeout, env=env)
                stdout, stderr = "", ""
            else:
                result = subprocess.run(
                    action.argv,
                    capture_output=True,
                    text=True,
                    timeout=timeout,
                    env=env,
                )
                stdout, stderr = result.stdout.strip(), result.stderr.strip()

            elapsed_ms = int((time.monotonic() - start) * 1000)

            if result.returncode == 0:
                return Receipt.success(
                    adapter=self.name,
                    action_id=action.id,
                    output=stdout,
                    error=stderr or None,
                    return_code=result.returncode,
                    duration_ms=elapsed_ms,
                    metadata={"command": command},
                )
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                output=stdout,
                error=stderr or f"Command exited with code {result.returncode}",
                return_code=result.returncode,
                duration_ms=elapsed_ms,
                metadata={"command": command},
            )

        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Command timed out after {timeout}s",
                timed_out=True,
                metadata={"command": command, "timeout": timeout},
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Command not found: {action.argv[0]}",
                return_code=127,
                metadata={"command": command},
            )
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Command execution error: {e}",
                metadata={"command": command},
            )
