"""
Reconcile use cases — the setup and autosign vertical slices.

Each loads config, wires the adapter registry and runs one pipeline,
returning a result the CLI can print or dump as JSON.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from vmsecureboot.adapters.registry import AdapterRegistry, default_registry
from vmsecureboot.core.config.loader import ConfigError, load_config
from vmsecureboot.core.engine.pipeline import PipelineReport, run_autosign, run_setup
from vmsecureboot.core.models.system import SetupConfig

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Result of a setup or autosign invocation."""

    report: PipelineReport | None = None
    config: SetupConfig | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error or self.report is None:
            return 1
        return self.report.exit_code

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return self.report.to_dict() if self.report else {}


def prepare(
    config_path: Path | None,
    config: SetupConfig | None,
    registry: AdapterRegistry | None,
) -> tuple[SetupConfig, AdapterRegistry]:
    """Load config and wire the real shell registry, unless given."""
    if config is None:
        config = load_config(config_path)
    if registry is None:
        registry = default_registry(
            default_timeout=config.command_timeout,
            search_path=config.paths.search_path,
        )
    return config, registry


def setup_host(
    config_path: Path | None = None,
    config: SetupConfig | None = None,
    registry: AdapterRegistry | None = None,
    kernel_version: str | None = None,
    euid: int | None = None,
    python: str | None = None,
) -> ReconcileResult:
    """Run the full interactive setup pipeline.

    Args:
        config_path: Optional explicit YAML config.
        config: Pre-built config (tests); skips loading.
        registry: Pre-configured adapter registry (tests).
        kernel_version: Override for ``uname -r``.
        euid: Override for the effective uid.
        python: Interpreter written into the boot script.
    """
    result = ReconcileResult()
    try:
        config, registry = prepare(config_path, config, registry)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.config = config
    result.report = run_setup(
        config,
        registry,
        kernel_version=kernel_version,
        euid=euid,
        python=python,
    )
    return result


def autosign_host(
    config_path: Path | None = None,
    config: SetupConfig | None = None,
    registry: AdapterRegistry | None = None,
    kernel_version: str | None = None,
) -> ReconcileResult:
    """Run the reduced boot-time pipeline."""
    result = ReconcileResult()
    try:
        config, registry = prepare(config_path, config, registry)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.config = config
    result.report = run_autosign(config, registry, kernel_version=kernel_version)
    return result
