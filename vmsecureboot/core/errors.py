"""
Error taxonomy for the reconciliation pipeline.

Only conditions that stop a step (or the whole run) are exceptions.
Expected, non-fatal conditions — Secure Boot disabled, enrollment
pending, a module missing, a permission tweak refused — are returned
as outcomes instead (see ``core.models.outcomes``).
"""

from __future__ import annotations


class SetupError(Exception):
    """Base class for every fatal setup failure."""

    hint: str = ""

    def __init__(self, message: str, hint: str = ""):
        super().__init__(message)
        if hint:
            self.hint = hint


class PrivilegeError(SetupError):
    """Not running as root."""


class MissingDependency(SetupError):
    """A required host tool is absent (sign-file, vmware-modconfig, key pair)."""


class KeyStoreError(SetupError, OSError):
    """The key directory or key files cannot be created."""


class EnrollmentError(SetupError):
    """mokutil refused the enrollment request."""


class ModuleBuildError(SetupError):
    """vmware-modconfig exited non-zero or timed out."""


class BootUnitError(SetupError):
    """The autosign script or systemd unit could not be installed."""


class PatchAnchorNotFound(SetupError):
    """The vendor init script doesn't have the structure we patch against."""


class LockTimeout(SetupError):
    """Another invocation holds the module lock."""
