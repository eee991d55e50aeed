"""
Tests for adapter protocol, registry, mock, and shell adapters.
"""

from vmsecureboot.adapters.base import ExecutionContext
from vmsecureboot.adapters.mock import MockAdapter
from vmsecureboot.adapters.registry import AdapterRegistry, default_registry
from vmsecureboot.adapters.shell.command import ShellCommandAdapter
from vmsecureboot.core.models.action import Action, Receipt

# ── Protocol Tests ───────────────────────────────────────────────────


class TestExecutionContext:
    def test_timeout_from_action(self):
        ctx = ExecutionContext(action=Action(id="x", timeout=5), default_timeout=600)
        assert ctx.timeout == 5

    def test_timeout_falls_back_to_default(self):
        ctx = ExecutionContext(action=Action(id="x"), default_timeout=42)
        assert ctx.timeout == 42


# ── Mock Adapter Tests ───────────────────────────────────────────────


class TestMockAdapter:
    def test_default_success(self):
        mock = MockAdapter(adapter_name="test-mock")
        ctx = ExecutionContext(action=Action(id="op-1", adapter="test-mock"))
        receipt = mock.execute(ctx)
        assert receipt.ok
        assert mock.call_count == 1

    def test_exact_id_beats_family(self):
        mock = MockAdapter()
        mock.set_output("modinfo", "family")
        mock.set_output("modinfo:vmmon", "exact")
        vmmon = mock.execute(ExecutionContext(action=Action(id="modinfo:vmmon")))
        vmnet = mock.execute(ExecutionContext(action=Action(id="modinfo:vmnet")))
        assert vmmon.output == "exact"
        assert vmnet.output == "family"
        assert vmnet.action_id == "modinfo:vmnet"

    def test_set_failure(self):
        mock = MockAdapter()
        mock.set_failure("op-fail", error="Intentional failure")
        receipt = mock.execute(ExecutionContext(action=Action(id="op-fail")))
        assert receipt.failed
        assert "Intentional failure" in receipt.error

    def test_handler_receives_context(self):
        mock = MockAdapter()
        mock.set_handler(
            "sign-file",
            lambda ctx: Receipt.success(adapter="mock", action_id=ctx.action.id,
                                        output=ctx.action.argv[-1]),
        )
        receipt = mock.execute(ExecutionContext(
            action=Action(id="sign-file:vmmon", argv=["sign-file", "sha256", "k", "c", "/m.ko"]),
        ))
        assert receipt.output == "/m.ko"

    def test_calls_by_family(self):
        mock = MockAdapter()
        for target in ("vmmon", "vmnet"):
            mock.execute(ExecutionContext(action=Action(id=f"modprobe:{target}")))
        mock.execute(ExecutionContext(action=Action(id="sb-state")))
        assert len(mock.calls("modprobe")) == 2
        assert len(mock.calls("modprobe:vmnet")) == 1
        assert mock.call_log[2].action.id == "sb-state"

    def test_reset(self):
        mock = MockAdapter()
        mock.set_failure("op-1")
        mock.execute(ExecutionContext(action=Action(id="op-1")))
        mock.reset()
        assert mock.call_count == 0
        assert mock.execute(ExecutionContext(action=Action(id="op-1"))).ok

    def test_is_available(self):
        assert MockAdapter(available=True).is_available()
        assert not MockAdapter(available=False).is_available()


# ── Registry Tests ───────────────────────────────────────────────────


class TestAdapterRegistry:
    def test_register_and_get(self):
        registry = AdapterRegistry()
        mock = MockAdapter(adapter_name="shell")
        registry.register(mock)
        assert registry.get("shell") is mock
        assert registry.list_adapters() == ["shell"]

    def test_unregister(self):
        registry = AdapterRegistry()
        registry.register(MockAdapter(adapter_name="shell"))
        registry.unregister("shell")
        assert registry.get("shell") is None

    def test_missing_adapter_fails(self):
        registry = AdapterRegistry()
        receipt = registry.run("sb-state", ["mokutil", "--sb-state"])
        assert receipt.failed
        assert "No adapter registered" in receipt.error

    def test_mock_mode_routes_everything(self):
        registry = AdapterRegistry()
        mock = MockAdapter()
        registry.set_mock_mode(True, mock)
        receipt = registry.run("modprobe:vmmon", ["modprobe", "vmmon"], name="Load vmmon")
        assert receipt.ok
        assert mock.calls("modprobe")[0].action.argv == ["modprobe", "vmmon"]

    def test_context_carries_defaults(self):
        registry = AdapterRegistry(default_timeout=7, search_path="/opt/bin")
        mock = MockAdapter()
        registry.set_mock_mode(True, mock)
        registry.run("modconfig", ["vmware-modconfig"])
        ctx = mock.call_log[0]
        assert ctx.timeout == 7
        assert ctx.search_path == "/opt/bin"

    def test_interactive_flag_passed(self):
        registry = AdapterRegistry()
        mock = MockAdapter()
        registry.set_mock_mode(True, mock)
        registry.run("mok-import", ["mokutil", "--import", "x.der"], interactive=True)
        assert mock.call_log[0].action.interactive

    def test_adapter_exception_becomes_failure(self):
        class Exploding(MockAdapter):
            def execute(self, context):
                raise RuntimeError("boom")

        registry = AdapterRegistry()
        registry.register(Exploding(adapter_name="shell"))
        receipt = registry.run("sb-state", ["mokutil"])
        assert receipt.failed
        assert "boom" in receipt.error

    def test_mock_mode_without_mock_succeeds(self):
        registry = AdapterRegistry(mock_mode=True)
        receipt = registry.run("systemctl-enable", ["systemctl", "enable", "x.service"])
        assert receipt.ok
        assert receipt.metadata == {"mock": True}

    def test_validator_exception_becomes_failure(self):
        class Picky(MockAdapter):
            def validate(self, context):
                raise ValueError("bad argv")

        registry = AdapterRegistry()
        registry.register(Picky(adapter_name="shell"))
        receipt = registry.run("sb-state", ["mokutil"])
        assert receipt.failed
        assert "bad argv" in receipt.error
        assert registry.get("shell").call_count == 0

    def test_default_registry_has_shell(self):
        registry = default_registry(default_timeout=30)
        assert isinstance(registry.get("shell"), ShellCommandAdapter)
        assert registry.default_timeout == 30


# ── Shell Adapter Tests ──────────────────────────────────────────────


class TestShellCommandAdapter:
    def _run(self, argv, **kwargs):
        registry = default_registry(**kwargs)
        return registry.run("test", argv)

    def test_success_captures_stdout(self):
        receipt = self._run(["sh", "-c", "echo hello"])
        assert receipt.ok
        assert receipt.output == "hello"
        assert receipt.return_code == 0

    def test_nonzero_exit(self):
        receipt = self._run(["sh", "-c", "echo oops >&2; exit 3"])
        assert receipt.failed
        assert receipt.return_code == 3
        assert receipt.error == "oops"

    def test_combined_output_includes_stderr(self):
        receipt = self._run(["sh", "-c", "echo out; echo 'is already enrolled' >&2; exit 1"])
        assert "is already enrolled" in receipt.combined_output
        assert "out" in receipt.combined_output

    def test_missing_command(self):
        receipt = self._run(["definitely-not-a-real-command-xyz"])
        assert receipt.failed
        assert receipt.return_code == 127

    def test_timeout(self):
        receipt = self._run(["sleep", "5"], default_timeout=0.2)
        assert receipt.failed
        assert receipt.timed_out

    def test_empty_argv_rejected(self):
        receipt = self._run([])
        assert receipt.failed
        assert "Validation failed" in receipt.error

    def test_search_path_override(self, tmp_path):
        tool = tmp_path / "vmware-modconfig"
        tool.write_text("#!/bin/sh\necho built\n")
        tool.chmod(0o755)
        receipt = self._run(["vmware-modconfig"], search_path=f"{tmp_path}:/usr/bin:/bin")
        assert receipt.ok
        assert receipt.output == "built"
