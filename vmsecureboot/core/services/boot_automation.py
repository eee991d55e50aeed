"""
Boot automation installer — keep modules signed across kernel updates.

A new kernel boots with no vmmon/vmnet built for it. The installed
oneshot unit runs before vmware.service and rebuilds + signs them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from vmsecureboot.adapters.registry import AdapterRegistry
from vmsecureboot.core.errors import BootUnitError
from vmsecureboot.core.models.system import SetupConfig
from vmsecureboot.core.models.template import GeneratedFile
from vmsecureboot.core.persistence.files import atomic_write_text
from vmsecureboot.core.services.generators import boot_unit

logger = logging.getLogger(__name__)


def write_generated(files: list[GeneratedFile]) -> list[str]:
    """Write every generated file unconditionally.

    Raises:
        BootUnitError: On any filesystem error.
    """
    written: list[str] = []
    for gf in files:
        try:
            atomic_write_text(Path(gf.path), gf.content, mode=gf.mode)
        except OSError as e:
            raise BootUnitError(f"Cannot write {gf.path}: {e}") from e
        logger.debug("Wrote %s — %s", gf.path, gf.reason)
        written.append(gf.path)
    return written


def unit_enabled(registry: AdapterRegistry, service_name: str) -> bool:
    receipt = registry.run(
        "systemctl-is-enabled",
        ["systemctl", "is-enabled", service_name],
        name=f"Check {service_name}",
    )
    return receipt.ok and receipt.output.strip() == "enabled"


def install_autosign_unit(
    registry: AdapterRegistry,
    config: SetupConfig,
    python: str | None = None,
) -> dict[str, object]:
    """(Re)write the script and unit, reload systemd, enable the unit.

    Returns:
        Summary with the written paths and whether ``enable`` ran.

    Raises:
        BootUnitError: If a file can't be written or systemctl fails.
    """
    written = write_generated(boot_unit.generate(config, python=python))

    receipt = registry.run(
        "systemctl-daemon-reload",
        ["systemctl", "daemon-reload"],
        name="Reload systemd units",
    )
    if not receipt.ok:
        raise BootUnitError(f"systemctl daemon-reload failed: {receipt.error}")

    newly_enabled = False
    if not unit_enabled(registry, config.service_name):
        receipt = registry.run(
            "systemctl-enable",
            ["systemctl", "enable", config.service_name],
            name=f"Enable {config.service_name}",
        )
        if not receipt.ok:
            raise BootUnitError(f"systemctl enable {config.service_name} failed: {receipt.error}")
        newly_enabled = True

    logger.info("%s installed and enabled", config.service_name)
    return {"written": written, "newly_enabled": newly_enabled}
