"""
Unit tests for the command-line interface.

Run with: pytest tests/unit/test_cli.py -v
"""

import pytest
import yaml
from click.testing import CliRunner

from dirhound import __version__
from dirhound import cli as cli_module
from dirhound.cli import EXIT_ERROR, EXIT_OK, cli


@pytest.fixture
def captured(monkeypatch):
    """Replace the scan runner and logging setup; returns captured configs"""
    configs = []

    async def fake_run_scan(config, **kwargs):
        configs.append((config, kwargs))
        return EXIT_OK

    monkeypatch.setattr(cli_module, "run_scan", fake_run_scan)
    monkeypatch.setattr(cli_module, "configure_logging", lambda *args, **kwargs: None)
    return configs


class TestScanCommand:
    """Test suite for the scan command"""

    def test_options_build_config(self, captured, wordlist):
        """Test command-line options are mapped onto the scan config"""
        path = wordlist(["admin"])
        result = CliRunner().invoke(cli, [
            "scan", "-u", "https://example.com", "-w", str(path),
            "-t", "5", "--insecure", "--cookie-jar", "-H", "X-Api-Key: abc",
            "--filter-codes", "404,403", "--filter-codes", "500",
            "--filter-size", "10-2000", "--only-success",
            "--delay-min", "100", "--delay-max", "300",
            "--detect-wildcards", "--wildcard-tolerance", "10",
            "--save-state", "scan.state", "--no-progress",
        ])

        assert result.exit_code == EXIT_OK, result.output
        config, kwargs = captured[0]
        assert config.threads == 5
        assert config.verify_tls is False
        assert config.cookie_jar is True
        assert config.headers == {"X-Api-Key": "abc"}
        assert config.filters.exclude_codes == frozenset({403, 404, 500})
        assert config.filters.size_range == (10, 2000)
        assert config.filters.only_success is True
        assert config.evasion.delay_min == 100
        assert config.evasion.delay_max == 300
        assert config.wildcard.enabled is True
        assert config.wildcard.length_tolerance == pytest.approx(0.1)
        assert str(config.state_file) == "scan.state"
        assert kwargs["show_progress"] is False

    def test_yaml_config_with_overrides(self, captured, wordlist, tmp_path):
        """Test explicit options override the YAML file and defaults do not"""
        path = wordlist(["admin"])
        config_file = tmp_path / "scan.yaml"
        config_file.write_text(yaml.safe_dump({
            "target": "https://example.com",
            "wordlist": str(path),
            "threads": 40,
            "timeout": 9.0,
            "filters": {"exclude_codes": [404]},
        }))

        result = CliRunner().invoke(cli, ["scan", "--config", str(config_file), "-t", "8"])

        assert result.exit_code == EXIT_OK, result.output
        config, _ = captured[0]
        assert config.threads == 8
        assert config.timeout == 9.0
        assert config.filters.exclude_codes == frozenset({404})

    def test_missing_target(self, captured, wordlist):
        """Test a scan without a URL fails with a configuration error"""
        result = CliRunner().invoke(cli, ["scan", "-w", str(wordlist(["admin"]))])

        assert result.exit_code == EXIT_ERROR
        assert "Invalid configuration" in result.output
        assert captured == []

    def test_invalid_delay_range(self, captured, wordlist):
        """Test delay_min greater than delay_max is rejected"""
        result = CliRunner().invoke(cli, [
            "scan", "-u", "https://example.com", "-w", str(wordlist(["a"])),
            "--delay-min", "500", "--delay-max", "100",
        ])

        assert result.exit_code == EXIT_ERROR
        assert "delay_min" in result.output

    def test_bad_header(self, captured, wordlist):
        """Test malformed headers are reported as bad parameters"""
        result = CliRunner().invoke(cli, [
            "scan", "-u", "https://example.com", "-w", str(wordlist(["a"])),
            "-H", "NoColon",
        ])

        assert result.exit_code == 2
        assert "--header" in result.output

    def test_unwritable_save_state(self, monkeypatch, wordlist, tmp_path):
        """Test a checkpoint that cannot be written ends the scan with a message"""
        monkeypatch.setattr(cli_module, "configure_logging", lambda *args, **kwargs: None)
        blocker = tmp_path / "blocker"
        blocker.write_text("regular file")

        result = CliRunner().invoke(cli, [
            "scan", "-u", "https://example.com", "-w", str(wordlist(["a"])),
            "--save-state", str(blocker / "scan.state"), "--no-progress",
        ])

        assert result.exit_code == EXIT_ERROR
        assert "Cannot write checkpoint" in result.output
        assert not isinstance(result.exception, OSError)


class TestRunScan:
    """Test suite for run_scan() exit codes"""

    @pytest.mark.asyncio
    async def test_source_error_exit_code(self, tmp_path):
        """Test engine errors turn into exit code 1"""
        config = cli_module.ScanConfig.create(
            target="https://example.com",
            wordlist=tmp_path / "missing.txt",
        )

        code = await cli_module.run_scan(config, show_progress=False)

        assert code == EXIT_ERROR


def test_version_command():
    """Test the version command prints the version"""
    result = CliRunner().invoke(cli, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
