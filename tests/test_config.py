"""
Tests for configuration loading — vmware-secureboot.yml parsing and validation.
"""

import textwrap
from pathlib import Path

import pytest

from vmsecureboot.core.config import loader
from vmsecureboot.core.config.loader import ConfigError, find_config_file, load_config


@pytest.fixture(autouse=True)
def _no_host_config(monkeypatch, tmp_path: Path):
    """Never pick up a real /etc/vmware-secureboot.yml."""
    monkeypatch.delenv("VMSB_CONFIG", raising=False)
    monkeypatch.setattr(loader, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yml")


@pytest.fixture
def config_yml(tmp_path: Path) -> Path:
    content = textwrap.dedent("""\
        module_names: [vmmon]
        digest: sha512
        lock_timeout: 5
        paths:
          key_dir: /srv/keys
          private_key: /srv/keys/MOK.priv
          certificate: /srv/keys/MOK.der
    """)
    path = tmp_path / "vmware-secureboot.yml"
    path.write_text(content)
    return path


class TestLoadConfig:
    def test_defaults_without_file(self):
        config = load_config()
        assert config.module_names == ["vmmon", "vmnet"]
        assert config.source_path is None

    def test_explicit_file(self, config_yml: Path):
        config = load_config(config_yml)
        assert config.module_names == ["vmmon"]
        assert config.digest == "sha512"
        assert config.paths.certificate == "/srv/keys/MOK.der"
        # Unspecified paths keep their defaults
        assert config.paths.init_script == "/usr/lib/vmware/scripts/init/vmware"
        assert config.source_path == str(config_yml.resolve())

    def test_env_var(self, monkeypatch, config_yml: Path):
        monkeypatch.setenv("VMSB_CONFIG", str(config_yml))
        assert find_config_file() == (config_yml, True)
        assert load_config().digest == "sha512"

    def test_default_location(self, monkeypatch, config_yml: Path):
        monkeypatch.setattr(loader, "DEFAULT_CONFIG_PATH", config_yml)
        assert find_config_file() == (config_yml, False)
        assert load_config().module_names == ["vmmon"]

    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml")

    def test_missing_env_file(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("VMSB_CONFIG", str(tmp_path / "nope.yml"))
        with pytest.raises(ConfigError, match="not found"):
            load_config()

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert load_config(path).digest == "sha256"

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yml"
        path.write_text("paths: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "list.yml"
        path.write_text("- vmmon\n- vmnet\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_schema_violation(self, tmp_path: Path):
        path = tmp_path / "bad-type.yml"
        path.write_text("key_size: lots\n")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(path)

    @pytest.mark.parametrize("line", ["key_size: 512", "key_validity_days: 0", "key_validity_days: -1"])
    def test_key_parameters_bounded(self, tmp_path: Path, line: str):
        path = tmp_path / "weak-key.yml"
        path.write_text(line + "\n")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(path)

    def test_larger_key_accepted(self, tmp_path: Path):
        path = tmp_path / "strong-key.yml"
        path.write_text("key_size: 4096\nkey_validity_days: 3650\n")
        config = load_config(path)
        assert (config.key_size, config.key_validity_days) == (4096, 3650)
