"""
Preflight — verify the host can (and needs to) be reconciled.

Read-only checks, in order:
    1. running as root
    2. Secure Boot actually enabled (otherwise nothing to do)
    3. sign-file present for the running kernel
    4. vmware-modconfig resolvable on the search path
"""

from __future__ import annotations

import logging
import os
import shutil

from vmsecureboot.adapters.registry import AdapterRegistry
from vmsecureboot.core.errors import MissingDependency, PrivilegeError
from vmsecureboot.core.models.outcomes import PreflightOutcome
from vmsecureboot.core.models.system import SetupConfig

logger = logging.getLogger(__name__)

SB_ENABLED_MARKER = "SecureBoot enabled"


def secure_boot_enabled(registry: AdapterRegistry) -> bool:
    """Ask mokutil whether Secure Boot is on.

    A failing mokutil (missing, EFI vars unreadable) counts as "off",
    matching ``mokutil --sb-state | grep -q``.
    """
    receipt = registry.run("sb-state", ["mokutil", "--sb-state"], name="Secure Boot state")
    return receipt.ok and SB_ENABLED_MARKER in receipt.combined_output


def sign_file_available(config: SetupConfig, kernel_version: str) -> bool:
    sign_file = config.paths.resolve("sign_file", kernel_version)
    return sign_file.is_file() and os.access(sign_file, os.X_OK)


def modconfig_available(config: SetupConfig) -> bool:
    return shutil.which(config.modconfig_command, path=config.paths.search_path) is not None


def require_root(euid: int | None = None) -> None:
    """Raises PrivilegeError unless running as root."""
    if euid is None:
        euid = os.geteuid()
    if euid != 0:
        raise PrivilegeError("must be run as root.", hint="Re-run with sudo.")


def require_tools(config: SetupConfig, kernel_version: str) -> None:
    """Raises MissingDependency if sign-file or vmware-modconfig is absent."""
    if not sign_file_available(config, kernel_version):
        sign_file = config.paths.resolve("sign_file", kernel_version)
        raise MissingDependency(
            f"sign-file not found for kernel {kernel_version} ({sign_file}).",
            hint=f"Install kernel-devel: dnf install kernel-devel-{kernel_version}",
        )
    if not modconfig_available(config):
        raise MissingDependency(
            f"{config.modconfig_command} not found — is VMware Workstation installed?",
        )


def check_preflight(
    config: SetupConfig,
    registry: AdapterRegistry,
    kernel_version: str,
    euid: int | None = None,
) -> PreflightOutcome:
    """Run every host check and return the verdict.

    A PrivilegeError or MissingDependency becomes a BLOCKED outcome
    carrying the error's message and hint.

    Args:
        config: Host configuration.
        registry: Adapter registry for the mokutil query.
        kernel_version: Running kernel release.
        euid: Effective uid override (tests); defaults to ``os.geteuid()``.
    """
    try:
        require_root(euid)

        if not secure_boot_enabled(registry):
            logger.info("Secure Boot is not enabled")
            return PreflightOutcome.not_needed(
                "Secure Boot is not enabled — this tool is not needed.",
                kernel_version=kernel_version,
            )

        require_tools(config, kernel_version)
    except (PrivilegeError, MissingDependency) as e:
        logger.debug("Preflight blocked: %s", e)
        return PreflightOutcome.blocked(str(e), hint=e.hint, kernel_version=kernel_version)

    logger.debug("Preflight passed for kernel %s", kernel_version)
    return PreflightOutcome.proceed(kernel_version)
