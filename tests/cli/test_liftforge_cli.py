"""Tests for the liftforge command line interface."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner
from rich.console import Console

from liftforge.cli.main import cli


@pytest.fixture
def runner(monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    """Create a Click CLI test runner with a console wide enough for whole table cells."""
    monkeypatch.setattr("liftforge.cli.main.console", Console(width=200))
    return CliRunner()


class TestSampleSizeCommand:
    """Tests for `liftforge sample-size`."""

    def test_table_output(self, runner: CliRunner) -> None:
        """The default output is a table."""
        result = runner.invoke(cli, ["sample-size", "--baseline", "5", "--mde", "20"])

        assert result.exit_code == 0
        assert "Sample Size Estimate" in result.output
        assert "Per variant" in result.output

    def test_json_output(self, runner: CliRunner) -> None:
        """JSON output uses camelCase keys."""
        result = runner.invoke(
            cli,
            ["sample-size", "--baseline", "5", "--mde", "20", "--variants", "3", "--format", "json"],
        )

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["variantCount"] == 3
        assert data["total"] == data["perVariant"] * 3

    def test_invalid_baseline(self, runner: CliRunner) -> None:
        """Degenerate input fails with a readable message."""
        result = runner.invoke(cli, ["sample-size", "--baseline", "0", "--mde", "20"])

        assert result.exit_code != 0
        assert "Invalid sample size parameters" in result.output


class TestValidateCommand:
    """Tests for `liftforge validate`."""

    def test_valid_definition(self, runner: CliRunner, tmp_path: Path, make_payload) -> None:
        """A valid definition exits 0."""
        path = tmp_path / "experiment.json"
        path.write_text(json.dumps(make_payload()))

        result = runner.invoke(cli, ["validate", str(path)])

        assert result.exit_code == 0
        assert "is valid" in result.output

    def test_rule_violations(self, runner: CliRunner, tmp_path: Path, make_payload) -> None:
        """Rule violations are listed and exit 1."""
        path = tmp_path / "experiment.json"
        path.write_text(json.dumps(make_payload(allocations=(60.0, 50.0))))

        result = runner.invoke(cli, ["validate", str(path)])

        assert result.exit_code == 1
        assert "allocation_sum_mismatch" in result.output

    def test_schema_errors(self, runner: CliRunner, tmp_path: Path) -> None:
        """Definitions that do not parse exit 1."""
        path = tmp_path / "experiment.json"
        path.write_text(json.dumps({"name": "incomplete"}))

        result = runner.invoke(cli, ["validate", str(path)])

        assert result.exit_code == 1
        assert "primaryGoal" in result.output

    def test_not_json(self, runner: CliRunner, tmp_path: Path) -> None:
        """Unparseable files are reported."""
        path = tmp_path / "experiment.json"
        path.write_text("{not json")

        result = runner.invoke(cli, ["validate", str(path)])

        assert result.exit_code != 0
        assert "not valid JSON" in result.output


class TestOpportunitiesCommand:
    """Tests for `liftforge opportunities`."""

    def test_ranks_signals(self, runner: CliRunner, tmp_path: Path) -> None:
        """Struggling elements are listed."""
        path = tmp_path / "signals.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "page": "/checkout",
                        "element": "button.cta-primary",
                        "visitors": 2000,
                        "conversionRate": 0.01,
                        "bounceRate": 0.7,
                        "timeOnPage": 20,
                        "clickThroughRate": 0.03,
                    }
                ]
            )
        )

        result = runner.invoke(cli, ["opportunities", str(path)])

        assert result.exit_code == 0
        assert "Optimization Opportunities" in result.output
        assert "critical" in result.output

    def test_no_opportunities(self, runner: CliRunner, tmp_path: Path) -> None:
        """Healthy signals produce an explicit message."""
        path = tmp_path / "signals.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "page": "/",
                        "element": "h1",
                        "visitors": 500,
                        "conversionRate": 0.1,
                        "bounceRate": 0.1,
                        "timeOnPage": 120,
                        "clickThroughRate": 0.4,
                    }
                ]
            )
        )

        result = runner.invoke(cli, ["opportunities", str(path)])

        assert result.exit_code == 0
        assert "No opportunities found." in result.output

    def test_version(self, runner: CliRunner) -> None:
        """The version option prints the program name."""
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "liftforge" in result.output
