"""
Tests for persistence — atomic file writes and the module lock.
"""

import fcntl
import stat
from pathlib import Path

import pytest

from vmsecureboot.core.errors import LockTimeout
from vmsecureboot.core.persistence.files import atomic_write_bytes, atomic_write_text, temp_sibling
from vmsecureboot.core.persistence.lock import exclusive_lock


def _mode(path: Path) -> int:
    return stat.S_IMODE(path.stat().st_mode)


class TestAtomicWrite:
    def test_creates_file_and_parents(self, tmp_path: Path):
        path = tmp_path / "deep" / "nested" / "unit.service"
        atomic_write_text(path, "[Unit]\n")
        assert path.read_text() == "[Unit]\n"
        assert _mode(path) == 0o644

    def test_explicit_mode(self, tmp_path: Path):
        path = tmp_path / "MOK.priv"
        atomic_write_bytes(path, b"secret", mode=0o600)
        assert _mode(path) == 0o600

    def test_keeps_existing_mode(self, tmp_path: Path):
        path = tmp_path / "vmware"
        path.write_text("old")
        path.chmod(0o755)
        atomic_write_text(path, "new")
        assert path.read_text() == "new"
        assert _mode(path) == 0o755

    def test_no_temp_left_behind(self, tmp_path: Path):
        atomic_write_bytes(tmp_path / "f", b"data")
        assert [p.name for p in tmp_path.iterdir()] == ["f"]

    def test_failed_write_keeps_original(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "f"
        path.write_bytes(b"original")

        def boom(src, dst):
            raise OSError("rename failed")

        monkeypatch.setattr("vmsecureboot.core.persistence.files.os.replace", boom)
        with pytest.raises(OSError, match="rename failed"):
            atomic_write_bytes(path, b"new")
        assert path.read_bytes() == b"original"
        assert [p.name for p in tmp_path.iterdir()] == ["f"]

    def test_temp_sibling_same_directory(self, tmp_path: Path):
        tmp = temp_sibling(tmp_path / "vmmon.ko", suffix=".signing")
        assert tmp.parent == tmp_path
        assert tmp.name.startswith(".vmmon.ko.")
        assert tmp.name.endswith(".signing")


class TestExclusiveLock:
    def test_acquire_and_release(self, tmp_path: Path):
        lock = tmp_path / "run" / "vmsb.lock"
        with exclusive_lock(lock, timeout=1) as held:
            assert held == lock
            assert lock.exists()
        # Re-acquirable once released
        with exclusive_lock(lock, timeout=1):
            pass

    def test_times_out_when_held(self, tmp_path: Path):
        lock = tmp_path / "vmsb.lock"
        with lock.open("a+") as other:
            fcntl.flock(other.fileno(), fcntl.LOCK_EX)
            with pytest.raises(LockTimeout, match="holds"):
                with exclusive_lock(lock, timeout=0.2):
                    pass

    def test_released_on_exception(self, tmp_path: Path):
        lock = tmp_path / "vmsb.lock"
        with pytest.raises(RuntimeError):
            with exclusive_lock(lock, timeout=1):
                raise RuntimeError("inside")
        with exclusive_lock(lock, timeout=0):
            pass
