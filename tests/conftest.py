"""
Shared test fixtures and configuration.

``host`` builds a scratch filesystem laid out like a Fedora box with
VMware Workstation installed (every SystemPaths entry re-rooted under
tmp_path) and a MockAdapter scripted to behave like the real tools.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from vmsecureboot.adapters.base import ExecutionContext
from vmsecureboot.adapters.mock import MockAdapter
from vmsecureboot.adapters.registry import AdapterRegistry
from vmsecureboot.core.models.action import Receipt
from vmsecureboot.core.models.system import SetupConfig, SystemPaths

KVER = "6.11.4-301.fc41.x86_64"
SIGNATURE = b"~Module signature appended~\n"

VENDOR_INIT_SCRIPT = """\
#!/usr/bin/env bash
# VMware init script (trimmed)

vmwareLoadModule() {
   /sbin/modprobe "$1" || exit 1
   return 0
}

vmwareUnloadModule() {
   /sbin/modprobe -r "$1"
}

vmwareStartVmmon() {
   vmwareLoadModule vmmon
}
"""


def _executable(path: Path, body: str = "#!/bin/sh\nexit 0\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    path.chmod(0o755)
    return path


@dataclass
class FakeHost:
    """A re-rooted host plus the mock that stands in for its tools."""

    root: Path
    config: SetupConfig
    mock: MockAdapter
    registry: AdapterRegistry
    kver: str = KVER
    enabled_units: set[str] = field(default_factory=set)

    def path(self, field: str) -> Path:
        return self.config.paths.resolve(field, self.kver)

    def module(self, name: str) -> Path:
        return self.config.paths.module_path(name, self.kver)

    def write_module(self, name: str, signed: bool = False) -> Path:
        path = self.module(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x7fELF " + name.encode() + b"\n" + (SIGNATURE if signed else b""))
        return path

    def set_enrollment(self, text: str, return_code: int = 1) -> None:
        """Script ``mokutil --test-key`` (it exits 1 for most answers)."""
        if return_code == 0:
            self.mock.set_output("mok-test-key", text)
        else:
            self.mock.set_response(
                "mok-test-key",
                Receipt.failure(adapter="mock", action_id="mok-test-key",
                                error=text, return_code=return_code),
            )

    def snapshot(self) -> dict[str, tuple[bytes, int]]:
        """Content and mode of every file under the root."""
        result = {}
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for filename in filenames:
                p = Path(dirpath) / filename
                if p.suffix == ".lock":
                    continue
                result[str(p)] = (p.read_bytes(), p.stat().st_mode & 0o7777)
        return result


# ── Scripted tool behaviour ─────────────────────────────────────────


def _install_handlers(host: FakeHost) -> None:
    mock = host.mock

    mock.set_output("sb-state", "SecureBoot enabled")
    host.set_enrollment(f"{host.path('certificate')} is already enrolled")

    def modconfig(ctx: ExecutionContext) -> Receipt:
        for name in host.config.module_names:
            host.write_module(name)
        return Receipt.success(adapter="mock", action_id=ctx.action.id, output="Done")

    def sign_file(ctx: ExecutionContext) -> Receipt:
        target = Path(ctx.action.argv[-1])
        target.write_bytes(target.read_bytes() + SIGNATURE)
        return Receipt.success(adapter="mock", action_id=ctx.action.id)

    def modinfo(ctx: ExecutionContext) -> Receipt:
        target = Path(ctx.action.argv[-1])
        if not target.is_file():
            return Receipt.failure(adapter="mock", action_id=ctx.action.id,
                                   error=f"modinfo: ERROR: Module {target} not found.")
        lines = [f"filename:       {target}", "license:        GPL v2"]
        if SIGNATURE in target.read_bytes():
            lines.append("signer:         VMware Module Signing")
        return Receipt.success(adapter="mock", action_id=ctx.action.id, output="\n".join(lines))

    def enable(ctx: ExecutionContext) -> Receipt:
        host.enabled_units.add(ctx.action.argv[-1])
        return Receipt.success(adapter="mock", action_id=ctx.action.id)

    def is_enabled(ctx: ExecutionContext) -> Receipt:
        if ctx.action.argv[-1] in host.enabled_units:
            return Receipt.success(adapter="mock", action_id=ctx.action.id, output="enabled")
        return Receipt.failure(adapter="mock", action_id=ctx.action.id,
                               output="disabled", error="exit 1", return_code=1)

    mock.set_handler("modconfig", modconfig)
    mock.set_handler("sign-file", sign_file)
    mock.set_handler("modinfo", modinfo)
    mock.set_handler("systemctl-enable", enable)
    mock.set_handler("systemctl-is-enabled", is_enabled)


@pytest.fixture
def host(tmp_path: Path) -> FakeHost:
    """A fresh host: Secure Boot on, key enrolled, no modules built yet."""
    root = tmp_path / "root"
    bin_dir = tmp_path / "bin"
    paths = SystemPaths().under(root).model_copy(update={"search_path": str(bin_dir)})
    config = SetupConfig(paths=paths)

    mock = MockAdapter()
    registry = AdapterRegistry(search_path=str(bin_dir))
    registry.set_mock_mode(True, mock)

    fake = FakeHost(root=root, config=config, mock=mock, registry=registry)

    _executable(fake.path("sign_file"))
    _executable(bin_dir / "vmware-modconfig")

    modules_root = fake.path("modules_root")
    modules_root.mkdir(parents=True)
    for index in ("modules.dep", "modules.alias", "modules.dep.bin"):
        (modules_root / index).write_text("")
        (modules_root / index).chmod(0o600)

    init_script = fake.path("init_script")
    init_script.parent.mkdir(parents=True)
    init_script.write_text(VENDOR_INIT_SCRIPT)
    init_script.chmod(0o755)

    _install_handlers(fake)
    return fake
