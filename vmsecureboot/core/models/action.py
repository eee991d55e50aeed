"""
Action and Receipt models — the command execution contract.

An Action is one host command the pipeline wants run (mokutil,
sign-file, modinfo, vmware-modconfig, systemctl, modprobe). A Receipt
is what came back. Adapters turn every failure mode (non-zero exit,
timeout, missing binary) into a failed Receipt instead of raising.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """A requested external command.

    The ``id`` is ``<kind>`` or ``<kind>:<target>`` (e.g. ``mok-test-key``,
    ``modinfo:vmmon``). Test doubles key their scripted responses on it.
    """

    id: str
    name: str = ""                  # shown in debug logs
    adapter: str = "shell"
    argv: list[str] = Field(default_factory=list)
    timeout: float | None = None    # seconds; None = registry default
    interactive: bool = False       # inherit the terminal instead of capturing

    @property
    def kind(self) -> str:
        """The command family, without the per-target suffix."""
        return self.id.split(":", 1)[0]

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)


class Receipt(BaseModel):
    """Outcome of one Action."""

    adapter: str
    action_id: str
    status: Literal["ok", "failed"] = "ok"
    started_at: str = Field(default_factory=_utc_now)
    duration_ms: int = 0

    return_code: int | None = None
    output: str = ""                 # stdout
    error: str | None = None         # stderr, or why the command didn't run
    timed_out: bool = False

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return not self.ok

    @property
    def combined_output(self) -> str:
        """stdout and stderr together, like ``2>&1``."""
        return "\n".join(part for part in (self.output, self.error or "") if part)

    @classmethod
    def success(cls, adapter: str, action_id: str, output: str = "", **kwargs: Any) -> Receipt:
        kwargs.setdefault("return_code", 0)
        return cls(adapter=adapter, action_id=action_id, output=output, **kwargs)

    @classmethod
    def failure(cls, adapter: str, action_id: str, error: str, **kwargs: Any) -> Receipt:
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)
