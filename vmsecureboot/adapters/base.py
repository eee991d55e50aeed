"""
Adapter base — the protocol contract between services and host tools.

Every adapter implements the four members below.
Services only talk to adapters through this protocol (via the registry),
never directly to mokutil, sign-file, modinfo, vmware-modconfig or
systemctl. That keeps every privileged side effect substitutable in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from vmsecureboot.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to run an action."""

    action: Action
    default_timeout: float = 600
    search_path: str | None = None

    @property
    def timeout(self) -> float:
        """Effective timeout: the action's own, else the default."""
        if self.action.timeout is not None:
            return self.action.timeout
        return self.default_timeout


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters run host commands and report what happened.
    Failures come back as failed Receipts, never as exceptions.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'shell', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying mechanism is usable.

        Cheap and side-effect free.
        """

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Reject actions this adapter cannot run at all.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Run the action.

        Must not raise: a non-zero exit, timeout or missing binary
        is a Receipt with status="failed".
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
