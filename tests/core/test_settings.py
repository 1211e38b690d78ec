"""Tests for quant_spine.core.settings module.

Covers:
- Defaults
- QUANTSPINE_* environment overrides and the PYTHON_PATH, QLIB_SCRIPT_DIR
  and QLIB_WORKSPACE_DIR aliases
- Validation
- get_settings caching
"""

import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from quant_spine.core.settings import QuantSpineSettings, clear_settings_cache, get_settings


class TestDefaults:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("QUANTSPINE_WORKSPACE_ROOT", raising=False)
        s = QuantSpineSettings(_env_file=None)
        assert s.python_path == "python3"
        assert s.script_dir is None
        assert s.step_timeout_seconds == 3600
        assert s.workspace_root == Path(tempfile.gettempdir()) / "quantspine_workspace"
        assert s.validate_prerequisites is True
        assert s.continue_on_optional_failure is False
        assert s.artifact_dir is None
        assert s.template_dir is None
        assert s.log_level == "INFO"
        assert s.log_json is None


class TestEnvOverride:
    def test_prefixed_values(self, monkeypatch, tmp_path):
        monkeypatch.setenv("QUANTSPINE_STEP_TIMEOUT_SECONDS", "600")
        monkeypatch.setenv("QUANTSPINE_WORKSPACE_ROOT", str(tmp_path))
        monkeypatch.setenv("QUANTSPINE_VALIDATE_PREREQUISITES", "false")
        s = QuantSpineSettings(_env_file=None)
        assert s.step_timeout_seconds == 600
        assert s.workspace_root == tmp_path
        assert s.validate_prerequisites is False

    def test_python_path_alias(self, monkeypatch):
        monkeypatch.setenv("PYTHON_PATH", "/opt/qlib/bin/python")
        assert QuantSpineSettings(_env_file=None).python_path == "/opt/qlib/bin/python"

    def test_prefixed_python_path_wins(self, monkeypatch):
        monkeypatch.setenv("PYTHON_PATH", "/usr/bin/python3")
        monkeypatch.setenv("QUANTSPINE_PYTHON_PATH", "/opt/qlib/bin/python")
        assert QuantSpineSettings(_env_file=None).python_path == "/opt/qlib/bin/python"

    def test_legacy_directory_names(self, monkeypatch, tmp_path):
        monkeypatch.delenv("QUANTSPINE_WORKSPACE_ROOT")
        monkeypatch.setenv("QLIB_SCRIPT_DIR", str(tmp_path / "scripts"))
        monkeypatch.setenv("QLIB_WORKSPACE_DIR", str(tmp_path / "ws"))
        s = QuantSpineSettings(_env_file=None)
        assert s.script_dir == tmp_path / "scripts"
        assert s.workspace_root == tmp_path / "ws"

    def test_prefixed_directories_win(self, monkeypatch, tmp_path):
        monkeypatch.setenv("QLIB_SCRIPT_DIR", str(tmp_path / "legacy"))
        monkeypatch.setenv("QUANTSPINE_SCRIPT_DIR", str(tmp_path / "scripts"))
        monkeypatch.setenv("QLIB_WORKSPACE_DIR", str(tmp_path / "legacy_ws"))
        monkeypatch.setenv("QUANTSPINE_WORKSPACE_ROOT", str(tmp_path / "ws"))
        s = QuantSpineSettings(_env_file=None)
        assert s.script_dir == tmp_path / "scripts"
        assert s.workspace_root == tmp_path / "ws"

    def test_unrelated_env_ignored(self, monkeypatch):
        monkeypatch.setenv("QUANTSPINE_SOMETHING_ELSE", "x")
        QuantSpineSettings(_env_file=None)


class TestValidation:
    def test_log_level_is_uppercased(self):
        assert QuantSpineSettings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError):
            QuantSpineSettings(_env_file=None, log_level="chatty")

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            QuantSpineSettings(_env_file=None, step_timeout_seconds=0)

    def test_timeout_may_be_disabled(self):
        assert QuantSpineSettings(_env_file=None, step_timeout_seconds=None).step_timeout_seconds is None


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_clear_cache_reloads(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("QUANTSPINE_LOG_LEVEL", "WARNING")
        assert get_settings().log_level == first.log_level
        clear_settings_cache()
        assert get_settings().log_level == "WARNING"

    def test_force_reload(self):
        first = get_settings()
        assert get_settings(_force_reload=True) is not first
