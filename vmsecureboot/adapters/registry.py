"""
Adapter registry — every host command goes through here.

Services call ``registry.run(action_id, argv)``; the registry builds the
Action, picks the adapter (or the test mock), applies the configured
timeout and PATH, and hands back a Receipt. Adapter bugs are folded
into failed receipts so a service only ever has one thing to inspect.
"""

from __future__ import annotations

import logging
import time

from vmsecureboot.adapters.base import Adapter, ExecutionContext
from vmsecureboot.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Named adapters plus the defaults every execution inherits.

    In mock mode the named lookup is bypassed and every action goes to
    one adapter, whatever its ``adapter`` field says.
    """

    def __init__(
        self,
        mock_mode: bool = False,
        default_timeout: float = 600,
        search_path: str | None = None,
    ):
        self._by_name: dict[str, Adapter] = {}
        self._mock: Adapter | None = None
        self._mock_mode = mock_mode
        self.default_timeout = default_timeout
        self.search_path = search_path

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def set_mock_mode(self, enabled: bool, mock_adapter: Adapter | None = None) -> None:
        """Route every action to ``mock_adapter`` (or back to named lookup)."""
        self._mock_mode = enabled
        self._mock = mock_adapter

    def register(self, adapter: Adapter) -> None:
        if adapter.name in self._by_name:
            logger.warning("Replacing adapter %r", adapter.name)
        self._by_name[adapter.name] = adapter

    def unregister(self, name: str) -> None:
        self._by_name.pop(name, None)

    def get(self, name: str) -> Adapter | None:
        return self._by_name.get(name)

    def list_adapters(self) -> list[str]:
        return list(self._by_name)

    # ── Dispatch ─────────────────────────────────────────────────

    def run(
        self,
        action_id: str,
        argv: list[str],
        timeout: float | None = None,
        interactive: bool = False,
        name: str = "",
    ) -> Receipt:
        """Run ``argv`` as action ``action_id`` and return its receipt."""
        return self.execute_action(Action(
            id=action_id,
            name=name,
            argv=argv,
            timeout=timeout,
            interactive=interactive,
        ))

    def _adapter_for(self, action: Action) -> Adapter | None:
        if self._mock_mode:
            return self._mock
        return self._by_name.get(action.adapter)

    def execute_action(self, action: Action) -> Receipt:
        """Validate and execute ``action``. Never raises."""
        started = time.monotonic()
        adapter = self._adapter_for(action)

        if adapter is None:
            if self._mock_mode:
                # Mock mode without a scripted mock: everything succeeds silently
                return Receipt.success(adapter="mock", action_id=action.id, metadata={"mock": True})
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )

        context = ExecutionContext(
            action=action,
            default_timeout=self.default_timeout,
            search_path=self.search_path,
        )

        try:
            valid, reason = adapter.validate(context)
        except Exception as e:
            valid, reason = False, str(e)
        if not valid:
            return Receipt.failure(
                adapter=adapter.name,
                action_id=action.id,
                error=f"Validation failed: {reason}",
            )

        try:
            receipt = adapter.execute(context)
        except Exception as e:
            logger.error("%s adapter crashed on %s: %s", adapter.name, action.id, e)
            receipt = Receipt.failure(
                adapter=adapter.name,
                action_id=action.id,
                error=f"Unexpected error: {e}",
            )

        receipt.duration_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            "%s [%s] → %s rc=%s (%dms)",
            action.id,
            action.command_line,
            receipt.status,
            receipt.return_code,
            receipt.duration_ms,
        )
        return receipt


def default_registry(
    default_timeout: float = 600,
    search_path: str | None = None,
) -> AdapterRegistry:
    """Registry wired to the real shell adapter."""
    from vmsecureboot.adapters.shell.command import ShellCommandAdapter

    registry = AdapterRegistry(default_timeout=default_timeout, search_path=search_path)
    registry.register(ShellCommandAdapter())
    return registry
