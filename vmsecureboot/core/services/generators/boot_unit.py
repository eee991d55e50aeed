"""
Boot automation generators — the autosign script and its systemd unit.

Both files are fully owned by this tool and rendered from fixed
templates, so rendering the same config twice yields byte-identical
output.
"""

from __future__ import annotations

import shlex
import sys

from vmsecureboot.core.models.system import SetupConfig
from vmsecureboot.core.models.template import GeneratedFile

_SCRIPT_TEMPLATE = """\
#!/bin/sh
# Generated by vmware-secureboot-setup; rewritten on every run.
# Rebuilds, signs and exposes the VMware kernel modules for the running kernel.
exec {command} autosign
"""

_UNIT_TEMPLATE = """\
[Unit]
Description=Sign VMware kernel modules for Secure Boot
Before={vendor_service}
ConditionPathExists={private_key}
ConditionPathExists={certificate}

[Service]
Type=oneshot
ExecStart={script}
RemainAfterExit=yes

[Install]
WantedBy=multi-user.target
"""


def generate_autosign_script(config: SetupConfig, python: str | None = None) -> GeneratedFile:
    """Render the boot-time command script.

    The script re-enters this package with the same interpreter and the
    same config file, so boot-time signing shares the module lock and
    every setting with interactive runs.
    """
    argv = [python or sys.executable, "-m", "vmsecureboot.main"]
    if config.source_path:
        argv += ["--config", config.source_path]
    content = _SCRIPT_TEMPLATE.format(command=" ".join(shlex.quote(a) for a in argv))
    return GeneratedFile(
        path=str(config.paths.resolve("autosign_script")),
        content=content,
        mode=0o755,
        reason="Boot-time build + sign + permission fix",
    )


def generate_service_unit(config: SetupConfig) -> GeneratedFile:
    """Render the oneshot unit that runs the script before the vendor service."""
    paths = config.paths
    content = _UNIT_TEMPLATE.format(
        vendor_service=config.vendor_service,
        private_key=paths.resolve("private_key"),
        certificate=paths.resolve("certificate"),
        script=paths.resolve("autosign_script"),
    )
    return GeneratedFile(
        path=str(paths.resolve("service_unit")),
        content=content,
        mode=0o644,
        reason=f"Run autosign before {config.vendor_service}",
    )


def generate(config: SetupConfig, python: str | None = None) -> list[GeneratedFile]:
    """Both boot automation artifacts, script first."""
    return [
        generate_autosign_script(config, python=python),
        generate_service_unit(config),
    ]
