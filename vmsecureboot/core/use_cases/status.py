"""
Status use case — a read-only snapshot of everything setup manages.

Runs the same queries the pipeline would (mokutil, modinfo) and reads
the same files, but never writes, enrolls, builds or signs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vmsecureboot.adapters.registry import AdapterRegistry
from vmsecureboot.core.config.loader import ConfigError
from vmsecureboot.core.models.outcomes import EnrollmentState
from vmsecureboot.core.models.system import SetupConfig, current_kernel_version
from vmsecureboot.core.services import init_patch, kernel_modules, keys
from vmsecureboot.core.services.preflight import secure_boot_enabled, sign_file_available
from vmsecureboot.core.use_cases.reconcile import prepare

logger = logging.getLogger(__name__)


@dataclass
class ModuleStatus:
    name: str
    path: str
    present: bool = False
    signed: bool = False


@dataclass
class StatusResult:
    """Observed state of the host."""

    kernel_version: str = ""
    secure_boot: bool = False
    sign_file: bool = False
    key_present: bool = False
    enrollment: EnrollmentState | None = None
    modules: list[ModuleStatus] = field(default_factory=list)
    boot_script: bool = False
    boot_unit: bool = False
    init_script: str = "missing"    # missing, unpatched, patched
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.error:
            return {"error": self.error}
        return {
            "kernel_version": self.kernel_version,
            "secure_boot": self.secure_boot,
            "sign_file": self.sign_file,
            "key_present": self.key_present,
            "enrollment": self.enrollment.value if self.enrollment else "not_enrolled",
            "modules": [vars(m) for m in self.modules],
            "boot_script": self.boot_script,
            "boot_unit": self.boot_unit,
            "init_script": self.init_script,
        }


def get_status(
    config_path: Path | None = None,
    registry: AdapterRegistry | None = None,
    kernel_version: str | None = None,
    config: SetupConfig | None = None,
) -> StatusResult:
    """Collect the host status without mutating anything."""
    result = StatusResult()
    try:
        config, registry = prepare(config_path, config, registry)
    except ConfigError as e:
        result.error = str(e)
        return result

    paths = config.paths
    kver = kernel_version or current_kernel_version()
    result.kernel_version = kver

    result.secure_boot = secure_boot_enabled(registry)
    result.sign_file = sign_file_available(config, kver)

    cert = paths.resolve("certificate")
    result.key_present = paths.resolve("private_key").is_file() and cert.is_file()
    if result.key_present:
        result.enrollment = keys.enrollment_state(registry, cert)

    for name in config.module_names:
        module_path = paths.module_path(name, kver)
        status = ModuleStatus(name=name, path=str(module_path), present=module_path.is_file())
        if status.present:
            status.signed = kernel_modules.is_signed(registry, module_path)
        result.modules.append(status)

    result.boot_script = paths.resolve("autosign_script").is_file()
    result.boot_unit = paths.resolve("service_unit").is_file()

    init_script = paths.resolve("init_script")
    if init_script.is_file():
        view = init_patch.parse_init_script(
            init_script.read_bytes().decode("utf-8", "surrogateescape")
        )
        result.init_script = "patched" if view.patched else "unpatched"

    return result
