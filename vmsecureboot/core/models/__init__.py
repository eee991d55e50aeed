"""
Domain models — Pydantic types for the Secure Boot setup tool.

All models are re-exported here for convenient access:

    from vmsecureboot.core.models import Action, Receipt, SetupConfig, SystemPaths
"""

from vmsecureboot.core.models.action import Action, Receipt
from vmsecureboot.core.models.outcomes import (
    BuildResult,
    EnrollmentState,
    KeyPair,
    PatchState,
    PreflightOutcome,
    PreflightStatus,
    SignResult,
    StepResult,
)
from vmsecureboot.core.models.system import SetupConfig, SystemPaths
from vmsecureboot.core.models.template import GeneratedFile

__all__ = [
    # action.py
    "Action",
    "BuildResult",
    "EnrollmentState",
    # template.py
    "GeneratedFile",
    # outcomes.py
    "KeyPair",
    "PatchState",
    "PreflightOutcome",
    "PreflightStatus",
    "Receipt",
    # system.py
    "SetupConfig",
    "SignResult",
    "StepResult",
    "SystemPaths",
]
