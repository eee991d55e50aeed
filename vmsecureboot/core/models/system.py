"""
System model — the well-known paths and tunables of a host.

The filesystem *is* this tool's state store: the key pair, the module
artifacts, the generated boot automation and the patched vendor script
all live at fixed absolute paths. ``SystemPaths`` names every one of
them so no service hard-codes a path, and ``under()`` re-roots the whole
set beneath a scratch directory for tests.

Paths that depend on the running kernel carry a ``{kver}`` placeholder.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

KVER_PLACEHOLDER = "{kver}"


def current_kernel_version() -> str:
    """The running kernel release, as ``uname -r`` prints it."""
    return os.uname().release


class SystemPaths(BaseModel):
    """Every absolute path the reconciliation pipeline reads or writes."""

    # ── Signing key pair ─────────────────────────────────────────
    key_dir: str = "/etc/pki/vmware"
    private_key: str = "/etc/pki/vmware/MOK.priv"
    certificate: str = "/etc/pki/vmware/MOK.der"

    # ── Kernel-version-scoped ────────────────────────────────────
    modules_root: str = "/lib/modules/{kver}"
    module_dir: str = "/lib/modules/{kver}/misc"
    sign_file: str = "/usr/src/kernels/{kver}/scripts/sign-file"

    # ── Vendor + generated artifacts ─────────────────────────────
    init_script: str = "/usr/lib/vmware/scripts/init/vmware"
    autosign_script: str = "/usr/local/bin/vmware-sign-modules"
    service_unit: str = "/etc/systemd/system/vmware-sign-modules.service"

    # ── Coordination ─────────────────────────────────────────────
    lock_file: str = "/run/vmware-secureboot.lock"

    # Command search path; None means $PATH
    search_path: str | None = None

    def resolve(self, field: str, kernel_version: str | None = None) -> Path:
        """Return a path field as a Path, substituting the kernel version."""
        raw: str = getattr(self, field)
        if KVER_PLACEHOLDER in raw:
            if kernel_version is None:
                raise ValueError(f"Path '{field}' needs a kernel version: {raw}")
            raw = raw.replace(KVER_PLACEHOLDER, kernel_version)
        return Path(raw)

    def shell_form(self, field: str, kver_var: str = "$kver") -> str:
        """Return a path field for embedding in a shell script.

        The kernel version placeholder becomes a shell variable so the
        script resolves it at run time, not at generation time.
        """
        raw: str = getattr(self, field)
        return raw.replace(KVER_PLACEHOLDER, kver_var)

    def module_path(self, name: str, kernel_version: str) -> Path:
        """Path of ``<name>.ko`` in the module directory."""
        return self.resolve("module_dir", kernel_version) / f"{name}.ko"

    def under(self, root: Path | str) -> SystemPaths:
        """Return a copy with every absolute path re-rooted beneath ``root``."""
        root_str = str(root).rstrip("/")
        updates: dict[str, str] = {}
        for name in _PATH_FIELDS:
            value: str = getattr(self, name)
            if value.startswith("/"):
                updates[name] = root_str + value
        return self.model_copy(update=updates)


_PATH_FIELDS = tuple(name for name in SystemPaths.model_fields if name != "search_path")


class SetupConfig(BaseModel):
    """Tunables for one host, loaded from the optional YAML config file."""

    paths: SystemPaths = Field(default_factory=SystemPaths)

    # ── Target modules ───────────────────────────────────────────
    module_names: list[str] = Field(default_factory=lambda: ["vmmon", "vmnet"])
    modconfig_command: str = "vmware-modconfig"
    load_modules: bool = True

    # ── Key material ─────────────────────────────────────────────
    digest: str = "sha256"
    key_common_name: str = "VMware Module Signing"
    key_validity_days: int = Field(default=36500, gt=0)
    key_size: int = Field(default=2048, ge=2048)

    # ── systemd ──────────────────────────────────────────────────
    service_name: str = "vmware-sign-modules.service"
    vendor_service: str = "vmware.service"

    # ── Timeouts (seconds) ───────────────────────────────────────
    command_timeout: float = 600
    lock_timeout: float = 60

    # Where this config came from; rendered into the boot script
    source_path: str | None = Field(default=None, exclude=True)
