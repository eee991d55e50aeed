"""
Kernel module services — build, sign, and expose vmmon/vmnet.

    ensure_built      compile via vmware-modconfig when a .ko is missing
    sign_if_needed    sign one module unless modinfo already shows a signer
    sign_modules      sign every target module, gated on enrollment
    fix_permissions   make the module dir and index world-readable
    load_modules      modprobe the modules once they're signed

Signing never writes the live module in place: sign-file works on a
temp copy in the same directory, which is then renamed over the
original.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import stat
from pathlib import Path

from vmsecureboot.adapters.registry import AdapterRegistry
from vmsecureboot.core.errors import ModuleBuildError
from vmsecureboot.core.models.outcomes import BuildResult, EnrollmentState, KeyPair, SignResult
from vmsecureboot.core.models.system import SetupConfig
from vmsecureboot.core.persistence.files import temp_sibling

logger = logging.getLogger(__name__)

_SIGNER_RE = re.compile(r"^signer:", re.MULTILINE)


# ── Build ───────────────────────────────────────────────────────


def missing_modules(config: SetupConfig, kernel_version: str) -> list[str]:
    """Names of target modules with no .ko for this kernel."""
    return [
        name
        for name in config.module_names
        if not config.paths.module_path(name, kernel_version).is_file()
    ]


def ensure_built(
    registry: AdapterRegistry,
    config: SetupConfig,
    kernel_version: str,
) -> BuildResult:
    """Compile the modules for ``kernel_version`` if any is missing.

    vmware-modconfig builds all modules together, so it's invoked at
    most once. Modules still missing after a clean exit are reported,
    not raised — the tool may have changed its output naming.

    Raises:
        ModuleBuildError: If vmware-modconfig fails or times out.
    """
    result = BuildResult(missing_before=missing_modules(config, kernel_version))
    if not result.missing_before:
        logger.info("Modules present for %s", kernel_version)
        return result

    logger.info(
        "Compiling modules for %s (missing: %s)",
        kernel_version,
        ", ".join(result.missing_before),
    )
    receipt = registry.run(
        "modconfig",
        [config.modconfig_command, "--console", "--install-all"],
        name="Compile VMware modules",
    )
    if not receipt.ok:
        detail = receipt.error or f"exit {receipt.return_code}"
        raise ModuleBuildError(
            f"{config.modconfig_command} failed for kernel {kernel_version}: {detail}",
            hint="Check that kernel-devel and gcc match the running kernel.",
        )
    result.compiled = True

    result.missing_after = missing_modules(config, kernel_version)
    for name in result.missing_after:
        logger.warning(
            "%s still missing after a successful build",
            config.paths.module_path(name, kernel_version),
        )
    return result


# ── Sign ────────────────────────────────────────────────────────


def is_signed(registry: AdapterRegistry, module_path: Path) -> bool:
    """Whether modinfo reports a ``signer:`` field for the module."""
    receipt = registry.run(
        f"modinfo:{module_path.stem}",
        ["modinfo", str(module_path)],
        name=f"Inspect {module_path.name}",
    )
    return receipt.ok and bool(_SIGNER_RE.search(receipt.output))


def sign_if_needed(
    registry: AdapterRegistry,
    config: SetupConfig,
    module_path: Path,
    key: KeyPair,
    kernel_version: str,
) -> SignResult:
    """Sign one module unless it's already signed."""
    if not module_path.is_file():
        logger.warning("%s not found, skipping", module_path)
        return SignResult.MISSING_FILE

    if is_signed(registry, module_path):
        logger.info("%s already signed", module_path.name)
        return SignResult.ALREADY_SIGNED

    sign_file = config.paths.resolve("sign_file", kernel_version)
    tmp = temp_sibling(module_path, suffix=".signing")
    try:
        shutil.copy2(module_path, tmp)
        receipt = registry.run(
            f"sign-file:{module_path.stem}",
            [
                str(sign_file),
                config.digest,
                str(key.private_key),
                str(key.certificate),
                str(tmp),
            ],
            name=f"Sign {module_path.name}",
        )
        if not receipt.ok:
            logger.error(
                "sign-file failed for %s: %s",
                module_path.name,
                receipt.error or receipt.return_code,
            )
            return SignResult.FAILED
        os.replace(tmp, module_path)
    finally:
        tmp.unlink(missing_ok=True)

    logger.info("%s signed", module_path.name)
    return SignResult.SIGNED


def sign_modules(
    registry: AdapterRegistry,
    config: SetupConfig,
    key: KeyPair,
    kernel_version: str,
    enrollment: EnrollmentState | None = None,
) -> dict[str, SignResult]:
    """Sign every target module.

    Args:
        enrollment: Result of the enrollment step. Anything other than
            confirmed enrollment skips signing entirely, without a
            single command or write. None means "not checked" (the
            boot-time path, where the systemd unit's conditions gate).
    """
    if enrollment is not None and not enrollment.confirmed:
        logger.info("Skipping signing — MOK key not yet enrolled (reboot first)")
        return {name: SignResult.SKIPPED for name in config.module_names}

    results: dict[str, SignResult] = {}
    for name in config.module_names:
        module_path = config.paths.module_path(name, kernel_version)
        try:
            results[name] = sign_if_needed(registry, config, module_path, key, kernel_version)
        except OSError as e:
            logger.error("Cannot sign %s: %s", module_path, e)
            results[name] = SignResult.FAILED
    return results


# ── Permissions ─────────────────────────────────────────────────


def _add_mode_bits(path: Path, bits: int) -> bool:
    """OR ``bits`` into the mode of ``path``; True if it changed."""
    current = stat.S_IMODE(path.stat().st_mode)
    if current & bits == bits:
        return False
    os.chmod(path, current | bits)
    return True


def fix_permissions(config: SetupConfig, kernel_version: str) -> list[str]:
    """Make the module dir o+rx and the module index files o+r.

    Non-root ``modprobe -n`` (VMware's launcher check) needs both.
    Best effort: every error is logged and ignored.

    Returns:
        Paths whose mode was changed.
    """
    changed: list[str] = []
    module_dir = config.paths.resolve("module_dir", kernel_version)
    modules_root = config.paths.resolve("modules_root", kernel_version)

    targets: list[tuple[Path, int]] = [(module_dir, stat.S_IROTH | stat.S_IXOTH)]
    try:
        targets.extend((p, stat.S_IROTH) for p in sorted(modules_root.glob("modules.*")))
    except OSError as e:
        logger.warning("Cannot list %s: %s", modules_root, e)

    for path, bits in targets:
        try:
            if _add_mode_bits(path, bits):
                changed.append(str(path))
        except OSError as e:
            logger.warning("Cannot fix permissions on %s: %s", path, e)

    if changed:
        logger.info("Permissions fixed on %d path(s)", len(changed))
    return changed


# ── Load ────────────────────────────────────────────────────────


def load_modules(registry: AdapterRegistry, config: SetupConfig) -> list[str]:
    """modprobe each target module in order, stopping at the first failure."""
    loaded: list[str] = []
    for name in config.module_names:
        receipt = registry.run(f"modprobe:{name}", ["modprobe", name], name=f"Load {name}")
        if not receipt.ok:
            logger.warning("modprobe %s failed: %s", name, receipt.error)
            break
        loaded.append(name)
    return loaded
