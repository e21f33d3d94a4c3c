"""Smoke tests for the typer CLI (settings patched to a temp data dir)."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from cli.app import app
from cli.console import THEME
from imaging.cache import ImageCache
from imaging.verifier import Verdict, VerdictStatus

runner = CliRunner()


class TestCli:

    def test_config_table(self, test_config):
        with patch("config.settings.cfg", test_config):
            result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Configuration" in result.output

    def test_clean_removes_intermediates(self, test_config):
        cache = ImageCache(test_config.paths.images_dir, test_config.paths.index_file)
        published = cache.store("Xero HFS 2", Verdict(VerdictStatus.APPROVED, "Xero", "HFS II"), b"x")
        raw = cache.store_intermediate("Xero HFS 2", "raw-download", b"raw")

        with patch("config.settings.cfg", test_config):
            result = runner.invoke(app, ["clean"])

        assert result.exit_code == 0
        assert published.exists()
        assert not raw.exists()

    def test_cache_clear(self, test_config):
        cache = ImageCache(test_config.paths.images_dir, test_config.paths.index_file)
        published = cache.store("Xero HFS 2", Verdict(VerdictStatus.APPROVED, "Xero", "HFS II"), b"x")

        with patch("config.settings.cfg", test_config):
            result = runner.invoke(app, ["cache", "--clear", "--yes"])

        assert result.exit_code == 0
        assert not published.exists()

    def test_check_structural_only(self, test_config, shoe_bytes, tmp_dir):
        img = tmp_dir / "shoe.png"
        img.write_bytes(shoe_bytes)
        with patch("config.settings.cfg", test_config):
            result = runner.invoke(app, ["check", str(img)])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_fetch_rejects_blank_model(self):
        result = runner.invoke(app, ["fetch", "   "])
        assert result.exit_code == 2

    def test_check_reports_failed_border(self, test_config, black_bytes, tmp_dir):
        img = tmp_dir / "black.png"
        img.write_bytes(black_bytes)
        with patch("config.settings.cfg", test_config):
            result = runner.invoke(app, ["check", str(img)])
        assert result.exit_code == 0
        assert "0.00%" in result.output
        assert "FAIL" in result.output


class TestTheme:

    @pytest.mark.parametrize("name", [
        "table_header", "source", "number", "border_ok", "border_bad",
        "stat_key", "stat_val", "query", "muted",
    ])
    def test_display_styles_are_defined(self, name):
        assert name in THEME.styles

    @pytest.mark.parametrize("name", ["score", "progress", "header", "engine"])
    def test_no_leftover_styles(self, name):
        assert name not in THEME.styles
