"""
Mock adapter — scripted test double for every host command.

Used by the test suite in place of the shell adapter so the pipeline can
run without root, firmware or a kernel tree. Responses are looked up by
exact action id first (``modinfo:vmmon``), then by command family
(``modinfo``). A handler can be installed instead of a fixed receipt
when the fake needs to touch the filesystem (e.g. sign-file appending a
signature).
"""

from __future__ import annotations

from collections.abc import Callable

from vmsecureboot.adapters.base import Adapter, ExecutionContext
from vmsecureboot.core.models.action import Receipt

Handler = Callable[[ExecutionContext], Receipt]


class MockAdapter(Adapter):
    """Scripted stand-in for the shell adapter.

    By default, returns success with empty output. Can be configured
    with custom responses or handlers per action id or command family.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt | Handler] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """Contexts received, in call order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """How many actions ran."""
        return len(self._call_log)

    def calls(self, key: str) -> list[ExecutionContext]:
        """Calls whose action id or command family equals ``key``."""
        return [c for c in self._call_log if key in (c.action.id, c.action.kind)]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, key: str, receipt: Receipt) -> None:
        """Set a fixed response for an action id or command family."""
        self._responses[key] = receipt

    def set_output(self, key: str, output: str, return_code: int = 0) -> None:
        """Shorthand for a response with the given stdout and exit code."""
        if return_code == 0:
            receipt = Receipt.success(adapter=self._name, action_id=key, output=output)
        else:
            receipt = Receipt.failure(
                adapter=self._name,
                action_id=key,
                error=output or f"exit {return_code}",
                return_code=return_code,
            )
        self._responses[key] = receipt

    def set_handler(self, key: str, handler: Handler) -> None:
        """Compute the response for ``key`` by calling ``handler(context)``."""
        self._responses[key] = handler

    def set_failure(self, key: str, error: str = "Mock failure", return_code: int = 1) -> None:
        """Configure an action id or command family to fail."""
        self._responses[key] = Receipt.failure(
            adapter=self._name,
            action_id=key,
            error=error,
            return_code=return_code,
        )

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action = context.action

        # Check for custom response: exact id, then family
        for key in (action.id, action.kind):
            if key in self._responses:
                response = self._responses[key]
                if callable(response):
                    return response(context)
                return response.model_copy(update={"action_id": action.id})

        # Default: success
        return Receipt.success(
            adapter=self._name,
            action_id=action.id,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Forget every call and every scripted response."""
        self._call_log.clear()
        self._responses.clear()
