"""Unit tests for promptqa.config - PromptQAConfig and environment selection."""

from __future__ import annotations

from pathlib import Path

import pytest

from promptqa.config import PromptQAConfig, PromptQAConfigError, current_environment
from promptqa.models import DEFAULT_VIEWPORT, ENVIRONMENT_VAR, ENVIRONMENTS


# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------

class TestPromptQAConfigDefaults:
    """PromptQAConfig should have sensible defaults for every field."""

    def test_default_environment_is_parabank(self):
        cfg = PromptQAConfig()
        assert cfg.environment == "parabank"
        assert cfg.base_url == ENVIRONMENTS["parabank"]["base_url"]
        assert cfg.api_base_url == ENVIRONMENTS["parabank"]["api_base_url"]

    def test_default_viewport_matches_models_constant(self):
        assert PromptQAConfig().viewport == DEFAULT_VIEWPORT

    def test_default_behaviour_flags(self):
        cfg = PromptQAConfig()
        assert cfg.headless is True
        assert cfg.self_healing is False
        assert cfg.screenshot_on_failure is True
        assert cfg.timeout_ms == 30_000
        assert cfg.api_timeout == 30


# ---------------------------------------------------------------------------
# 2. Environments
# ---------------------------------------------------------------------------

class TestEnvironments:
    def test_for_environment_contactlist(self):
        cfg = PromptQAConfig.for_environment("contactlist")
        assert cfg.environment == "contactlist"
        assert cfg.base_url == "https://thinking-tester-contact-list.herokuapp.com"
        assert cfg.api_base_url == cfg.base_url

    def test_unknown_environment_raises(self):
        with pytest.raises(PromptQAConfigError, match="Unknown environment: nowhere"):
            PromptQAConfig.for_environment("nowhere")

    def test_current_environment_reads_env_var(self, monkeypatch):
        monkeypatch.setenv(ENVIRONMENT_VAR, "contactlist")
        assert current_environment() == "contactlist"

    def test_current_environment_defaults_to_parabank(self, monkeypatch):
        monkeypatch.delenv(ENVIRONMENT_VAR, raising=False)
        assert current_environment() == "parabank"

    def test_blank_env_var_falls_back(self, monkeypatch):
        monkeypatch.setenv(ENVIRONMENT_VAR, "  ")
        assert current_environment() == "parabank"

    def test_custom_environment_without_api_url(self, tmp_path: Path):
        data = {"environment": "local", "environments": {"local": {"base_url": "http://localhost:8080"}}}
        cfg = PromptQAConfig._from_dict(data, tmp_path)
        assert cfg.base_url == "http://localhost:8080"
        assert cfg.api_base_url == "http://localhost:8080"


# ---------------------------------------------------------------------------
# 3. from_file()
# ---------------------------------------------------------------------------

class TestFromFile:
    """PromptQAConfig.from_file() should load and parse valid YAML."""

    def test_from_file_with_valid_yaml(self, tmp_path: Path, sample_config_yaml: str):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(sample_config_yaml, encoding="utf-8")

        cfg = PromptQAConfig.from_file(config_file)

        assert cfg.environment == "parabank"
        assert cfg.headless is False
        assert cfg.slow_mo == 50
        assert cfg.viewport == (1920, 1080)
        assert cfg.timeout_ms == 10000
        assert cfg.api_timeout == 5.0
        assert cfg.self_healing is True
        assert cfg.screenshot_on_failure is False
        assert cfg.prompts_dir == tmp_path / "my_prompts"
        assert cfg.evidence_dir == tmp_path / "my_evidence"
        assert cfg.project_dir == tmp_path

    def test_from_file_project_fixture(self, tmp_project_dir: Path):
        cfg = PromptQAConfig.from_file(tmp_project_dir / "config.yaml")
        assert cfg.environment == "contactlist"
        assert cfg.timeout_ms == 15000

    def test_from_file_missing_file_raises_config_error(self, tmp_path: Path):
        with pytest.raises(PromptQAConfigError, match="Config file not found"):
            PromptQAConfig.from_file(tmp_path / "nonexistent.yaml")

    def test_from_file_empty_yaml_returns_defaults(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv(ENVIRONMENT_VAR, raising=False)
        config_file = tmp_path / "config.yaml"
        config_file.write_text("", encoding="utf-8")

        cfg = PromptQAConfig.from_file(config_file)
        assert cfg.environment == "parabank"
        assert cfg.headless is True

    def test_from_file_non_mapping_raises(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(PromptQAConfigError, match="YAML mapping"):
            PromptQAConfig.from_file(config_file)


# ---------------------------------------------------------------------------
# 4. _from_dict() - key mapping
# ---------------------------------------------------------------------------

class TestFromDict:
    def test_default_dirs_when_keys_missing(self, tmp_path: Path):
        cfg = PromptQAConfig._from_dict({}, tmp_path)
        assert cfg.prompts_dir == tmp_path / "prompts"
        assert cfg.evidence_dir == tmp_path / "evidence"

    def test_explicit_urls_override_environment(self, tmp_path: Path):
        data = {"environment": "parabank", "base_url": "http://a", "api_base_url": "http://b"}
        cfg = PromptQAConfig._from_dict(data, tmp_path)
        assert cfg.base_url == "http://a"
        assert cfg.api_base_url == "http://b"

    def test_env_var_used_when_file_has_no_environment(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv(ENVIRONMENT_VAR, "contactlist")
        cfg = PromptQAConfig._from_dict({}, tmp_path)
        assert cfg.environment == "contactlist"

    def test_viewport_partial_keys_use_defaults(self, tmp_path: Path):
        cfg = PromptQAConfig._from_dict({"viewport": {"width": 1920}}, tmp_path)
        assert cfg.viewport == (1920, 720)

    def test_viewport_non_dict_is_ignored(self, tmp_path: Path):
        cfg = PromptQAConfig._from_dict({"viewport": "1280x720"}, tmp_path)
        assert cfg.viewport == DEFAULT_VIEWPORT

    def test_numbers_coerced(self, tmp_path: Path):
        cfg = PromptQAConfig._from_dict({"timeout_ms": "5000", "api_timeout": "2.5"}, tmp_path)
        assert cfg.timeout_ms == 5000
        assert cfg.api_timeout == 2.5
