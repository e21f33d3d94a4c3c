"""Tests for configuration validation."""

from dataclasses import replace

import pytest

from config.settings import AppConfig, SearchConfig, browser_headers
from utils.exceptions import ConfigurationError


class TestAppConfig:

    def test_defaults_are_valid(self):
        AppConfig().validate()

    def test_default_thresholds(self):
        cfg = AppConfig()
        assert cfg.structural.white_threshold == 240
        assert cfg.structural.min_white_ratio == 0.95
        assert cfg.semantic.timeout == 15.0
        assert cfg.semantic.bypass_on_failure is False

    def test_unknown_source_rejected(self):
        cfg = AppConfig(search=SearchConfig(priority=["bing", "altavista"]))
        with pytest.raises(ConfigurationError, match="altavista"):
            cfg.validate()

    def test_empty_priority_rejected(self):
        with pytest.raises(ConfigurationError):
            AppConfig(search=SearchConfig(priority=[])).validate()

    def test_zero_workers_rejected(self):
        cfg = AppConfig()
        cfg = replace(cfg, pipeline=replace(cfg.pipeline, max_workers=0))
        with pytest.raises(ConfigurationError):
            cfg.validate()

    def test_zero_download_retries_rejected(self):
        cfg = AppConfig()
        cfg = replace(cfg, download=replace(cfg.download, max_retries=0))
        with pytest.raises(ConfigurationError):
            cfg.validate()

    def test_paths_ensure(self, test_config):
        assert test_config.paths.images_dir.is_dir()
        assert test_config.paths.log_file.parent.is_dir()


def test_browser_headers_carry_user_agent():
    headers = browser_headers("TestAgent/1.0")
    assert headers["User-Agent"] == "TestAgent/1.0"
    assert "image/" in headers["Accept"]
