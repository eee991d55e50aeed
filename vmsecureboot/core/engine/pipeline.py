"""
Reconciliation pipeline — the ordered, idempotent setup sequence.

Every step re-examines the filesystem and host state instead of
tracking run history, so the pipeline can be re-run any number of
times from any partial-failure state.

Full setup:
    preflight → keys → [lock: build → sign → permissions]
              → boot unit → init script → load

Boot-time autosign:
    key/tool check → [lock: build → sign → permissions]

Propagation: preflight and key failures abort the run; build/sign/
permission problems degrade per module (a failed build is still fatal);
boot unit and init script failures are fatal but leave earlier
effects in place. Nothing is retried in-process.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from vmsecureboot.adapters.registry import AdapterRegistry
from vmsecureboot.core.errors import MissingDependency, SetupError
from vmsecureboot.core.models.outcomes import (
    EnrollmentState,
    KeyPair,
    PreflightOutcome,
    PreflightStatus,
    SignResult,
    StepResult,
)
from vmsecureboot.core.models.system import SetupConfig, current_kernel_version
from vmsecureboot.core.persistence.lock import exclusive_lock
from vmsecureboot.core.services import boot_automation, init_patch, kernel_modules, keys
from vmsecureboot.core.services.preflight import check_preflight, sign_file_available

logger = logging.getLogger(__name__)

_SIGN_PROBLEMS = {SignResult.MISSING_FILE, SignResult.FAILED}


@dataclass
class PipelineReport:
    """Result of one pipeline invocation."""

    operation_id: str = ""
    pipeline: str = ""
    kernel_version: str = ""
    preflight: PreflightOutcome | None = None
    enrollment: EnrollmentState | None = None
    steps: list[StepResult] = field(default_factory=list)
    error: str | None = None
    hint: str = ""

    @property
    def not_needed(self) -> bool:
        return self.preflight is not None and self.preflight.status is PreflightStatus.NOT_NEEDED

    @property
    def blocked(self) -> bool:
        return self.preflight is not None and self.preflight.status is PreflightStatus.BLOCKED

    @property
    def reboot_required(self) -> bool:
        return self.enrollment is not None and not self.enrollment.confirmed

    @property
    def warnings(self) -> int:
        return sum(1 for s in self.steps if s.status == "warning")

    @property
    def status(self) -> str:
        if self.not_needed:
            return "not_needed"
        if self.blocked:
            return "blocked"
        if self.error:
            return "failed"
        if self.warnings:
            return "warning"
        return "ok"

    @property
    def exit_code(self) -> int:
        return 1 if self.status in ("blocked", "failed") else 0

    def add(self, step: StepResult) -> StepResult:
        self.steps.append(step)
        marker = {"ok": "✓", "skipped": "⊘", "warning": "!", "failed": "✗"}[step.status]
        logger.info("%s %s — %s", marker, step.name, step.message)
        return step

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "pipeline": self.pipeline,
            "kernel_version": self.kernel_version,
            "status": self.status,
            "reboot_required": self.reboot_required,
            "enrollment": self.enrollment.value if self.enrollment else None,
            "preflight": self.preflight.model_dump(mode="json") if self.preflight else None,
            "steps": [s.model_dump(mode="json") for s in self.steps],
            "error": self.error,
            "hint": self.hint,
        }


# ── Steps 3–5 (shared by both pipelines) ────────────────────────


def _reconcile_modules(
    report: PipelineReport,
    registry: AdapterRegistry,
    config: SetupConfig,
    key: KeyPair,
    enrollment: EnrollmentState | None,
) -> None:
    kver = report.kernel_version
    paths = config.paths

    with exclusive_lock(paths.resolve("lock_file"), timeout=config.lock_timeout):
        build = kernel_modules.ensure_built(registry, config, kver)
        if build.missing_after:
            report.add(StepResult(
                name="build",
                status="warning",
                message=f"still missing after build: {', '.join(build.missing_after)}",
                details=build.model_dump(),
            ))
        else:
            report.add(StepResult(
                name="build",
                message=f"compiled for {kver}" if build.compiled else "modules present",
                details=build.model_dump(),
            ))

        results = kernel_modules.sign_modules(registry, config, key, kver, enrollment)
        details = {name: r.value for name, r in results.items()}
        if all(r is SignResult.SKIPPED for r in results.values()):
            report.add(StepResult(
                name="sign",
                status="skipped",
                message="MOK key not yet enrolled (reboot first)",
                details=details,
            ))
        else:
            problems = [n for n, r in results.items() if r in _SIGN_PROBLEMS]
            report.add(StepResult(
                name="sign",
                status="warning" if problems else "ok",
                message=", ".join(f"{n} {r.value.replace('_', ' ')}" for n, r in results.items()),
                details=details,
            ))

        changed = kernel_modules.fix_permissions(config, kver)
        report.add(StepResult(
            name="permissions",
            message=f"fixed {len(changed)} path(s)" if changed else "already world-readable",
            details={"changed": changed},
        ))


def _fail(report: PipelineReport, step: str, exc: BaseException) -> PipelineReport:
    report.error = str(exc)
    report.hint = getattr(exc, "hint", "")
    report.add(StepResult(name=step, status="failed", message=str(exc)))
    logger.error("%s failed: %s", step, exc)
    return report


# ── Full setup ──────────────────────────────────────────────────


def run_setup(
    config: SetupConfig,
    registry: AdapterRegistry,
    kernel_version: str | None = None,
    euid: int | None = None,
    python: str | None = None,
) -> PipelineReport:
    """Run the full interactive reconciliation.

    Never raises for setup failures: they end up in ``report.error``.
    """
    kver = kernel_version or current_kernel_version()
    report = PipelineReport(
        operation_id=generate_operation_id(),
        pipeline="setup",
        kernel_version=kver,
    )

    # ── 1. Preflight ─────────────────────────────────────────────
    report.preflight = check_preflight(config, registry, kver, euid=euid)
    if report.preflight.status is not PreflightStatus.PROCEED:
        report.hint = report.preflight.hint
        logger.info("Preflight: %s %s", report.preflight.status.value, report.preflight.reason)
        return report
    report.add(StepResult(name="preflight", message=f"kernel {kver}"))

    step = "keys"
    try:
        # ── 2. Key pair + enrollment ─────────────────────────────
        key = keys.ensure_keypair(config)
        report.enrollment = keys.ensure_enrolled(registry, key.certificate)
        report.add(StepResult(
            name="keys",
            message=f"{'created' if key.created else 'reused'} key, {report.enrollment.value.replace('_', ' ')}",
            details={"created": key.created, "enrollment": report.enrollment.value},
        ))

        # ── 3–5. Build, sign, permissions ────────────────────────
        step = "modules"
        _reconcile_modules(report, registry, config, key, report.enrollment)

        # ── 6. Boot automation ───────────────────────────────────
        step = "boot_unit"
        summary = boot_automation.install_autosign_unit(registry, config, python=python)
        report.add(StepResult(
            name="boot_unit",
            message=f"{config.service_name} installed and enabled",
            details=summary,
        ))

        # ── 7. Vendor init script ────────────────────────────────
        step = "init_script"
        state = init_patch.ensure_init_script_patched(config)
        report.add(StepResult(name="init_script", message=state.value.replace("_", " ")))

    except (SetupError, OSError) as e:
        return _fail(report, step, e)

    # ── 8. Load modules now ──────────────────────────────────────
    if report.reboot_required or not config.load_modules:
        report.add(StepResult(name="load", status="skipped", message="not loading modules"))
    else:
        loaded = kernel_modules.load_modules(registry, config)
        complete = len(loaded) == len(config.module_names)
        report.add(StepResult(
            name="load",
            status="ok" if complete else "warning",
            message=f"loaded {', '.join(loaded)}" if loaded else "modules not loaded",
            details={"loaded": loaded},
        ))

    return report


# ── Boot-time autosign ──────────────────────────────────────────


def run_autosign(
    config: SetupConfig,
    registry: AdapterRegistry,
    kernel_version: str | None = None,
) -> PipelineReport:
    """Reduced pipeline run by the systemd unit at boot.

    No enrollment query and no artifact writes: just make sure the
    modules for the running kernel exist, are signed and are readable.
    """
    kver = kernel_version or current_kernel_version()
    report = PipelineReport(
        operation_id=generate_operation_id(),
        pipeline="autosign",
        kernel_version=kver,
    )
    paths = config.paths

    step = "prerequisites"
    try:
        if not sign_file_available(config, kver):
            raise MissingDependency(
                f"sign-file not found for kernel {kver} — is kernel-devel installed?",
                hint=f"dnf install kernel-devel-{kver}",
            )
        key = KeyPair(
            private_key=paths.resolve("private_key"),
            certificate=paths.resolve("certificate"),
        )
        if not (key.private_key.is_file() and key.certificate.is_file()):
            raise MissingDependency(
                f"MOK key pair not found in {paths.resolve('key_dir')}",
                hint="Run vmware-secureboot-setup first.",
            )
        report.add(StepResult(name="prerequisites", message=f"kernel {kver}"))

        step = "modules"
        _reconcile_modules(report, registry, config, key, enrollment=None)
    except (SetupError, OSError) as e:
        return _fail(report, step, e)

    return report


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
