"""Tests for configuration loading."""

import pytest

from config_manager import ConfigManager


class TestConfigManager:

    def test_missing_ini_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigManager(ini_file_path=str(tmp_path / "missing.ini"))

    def test_defaults_apply(self, config):
        assert config.agent_name == "TestAgent"
        assert config.max_retained_traces == 10
        assert config.article_floor == 0.4
        assert config.record_floor == 0.3
        assert config.max_articles == 2
        assert config.llm_enabled is False
        assert "mark * as" in config.action_cues

    def test_keyword_lists_are_parsed(self, tmp_path):
        ini_path = tmp_path / "config.ini"
        ini_path.write_text("[Intent]\nSearchKeywords = Similar,  like , ,policy\n")
        config = ConfigManager(ini_file_path=str(ini_path), env_file_path=str(tmp_path / ".env"))
        assert config.search_keywords == ["similar", "like", "policy"]

    def test_secrets_come_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
        ini_path = tmp_path / "config.ini"
        ini_path.write_text("[General]\n")
        config = ConfigManager(ini_file_path=str(ini_path), env_file_path=str(tmp_path / ".env"))
        assert config.supabase_url == "https://example.supabase.co"
