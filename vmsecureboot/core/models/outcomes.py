"""
Outcome models — typed results of each reconciliation step.

Most steps don't raise on expected conditions (Secure Boot off,
enrollment pending, a module missing); they return one of these
instead and let the pipeline decide what happens next.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field


class PreflightStatus(str, Enum):
    PROCEED = "proceed"
    NOT_NEEDED = "not_needed"
    BLOCKED = "blocked"


class PreflightOutcome(BaseModel):
    """Verdict of the host checks that gate the whole pipeline."""

    status: PreflightStatus
    reason: str = ""
    hint: str = ""
    kernel_version: str = ""

    @classmethod
    def proceed(cls, kernel_version: str) -> PreflightOutcome:
        return cls(status=PreflightStatus.PROCEED, kernel_version=kernel_version)

    @classmethod
    def not_needed(cls, reason: str, kernel_version: str = "") -> PreflightOutcome:
        return cls(
            status=PreflightStatus.NOT_NEEDED,
            reason=reason,
            kernel_version=kernel_version,
        )

    @classmethod
    def blocked(cls, reason: str, hint: str = "", kernel_version: str = "") -> PreflightOutcome:
        return cls(
            status=PreflightStatus.BLOCKED,
            reason=reason,
            hint=hint,
            kernel_version=kernel_version,
        )


class KeyPair(BaseModel):
    """Handle on the on-disk signing key pair."""

    private_key: Path
    certificate: Path
    created: bool = False   # generated during this run


class EnrollmentState(str, Enum):
    ALREADY_ENROLLED = "already_enrolled"
    NEWLY_REQUESTED = "newly_requested"
    PENDING = "pending"     # queued by an earlier run, awaiting reboot

    @property
    def confirmed(self) -> bool:
        """Whether firmware trusts the key right now."""
        return self is EnrollmentState.ALREADY_ENROLLED


class SignResult(str, Enum):
    ALREADY_SIGNED = "already_signed"
    SIGNED = "signed"
    MISSING_FILE = "missing_file"
    SKIPPED = "skipped"
    FAILED = "failed"


class BuildResult(BaseModel):
    """What ensure_built observed and did."""

    compiled: bool = False
    missing_before: list[str] = Field(default_factory=list)
    missing_after: list[str] = Field(default_factory=list)


class PatchState(str, Enum):
    ALREADY_PATCHED = "already_patched"
    PATCHED = "patched"


class StepResult(BaseModel):
    """One line of the pipeline report."""

    name: str
    status: Literal["ok", "skipped", "warning", "failed"] = "ok"
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
