"""
Tests for the countcov command-line interface.
"""

import json

import pytest
from typer.testing import CliRunner

from countcov.cli import app

runner = CliRunner()

SCRIPT = """\
def greet(name):
    return "hello " + name

def unused():
    return None

message = greet("world") if True else None
"""


@pytest.fixture
def script(tmp_path):
    """A small script with one function that never runs."""
    path = tmp_path / "script.py"
    path.write_text(SCRIPT)
    return path


class TestInstrumentCommand:
    """Test the instrument command."""

    def test_prints_instrumented_source(self, script) -> None:
        """Test that instrumented source goes to stdout."""
        result = runner.invoke(app, ["instrument", str(script)])

        assert result.exit_code == 0
        assert "__countcov__.hit(" in result.output
        assert "def greet(name):" in result.output

    def test_writes_metadata(self, script, tmp_path) -> None:
        """Test writing metadata JSON next to the output file."""
        output = tmp_path / "out.py"
        metadata = tmp_path / "meta.json"

        result = runner.invoke(
            app, ["instrument", str(script), "-o", str(output), "-m", str(metadata)]
        )

        assert result.exit_code == 0
        assert "__countcov__.hit(" in output.read_text()
        data = json.loads(metadata.read_text())
        assert data["filename"] == str(script)
        assert {entry["kind"] for entry in data["entries"]} == {"statement", "branch", "function"}

    def test_custom_global_name(self, script, tmp_path) -> None:
        """Test that a configuration file changes the injected name."""
        config = tmp_path / "countcov.yaml"
        config.write_text("global_name: _tally\n")

        result = runner.invoke(app, ["instrument", str(script), "-c", str(config)])

        assert result.exit_code == 0
        assert "_tally.hit(" in result.output

    def test_missing_file(self, tmp_path) -> None:
        """Test that a missing file exits with status 1."""
        result = runner.invoke(app, ["instrument", str(tmp_path / "absent.py")])

        assert result.exit_code == 1
        assert "File not found" in result.output

    def test_syntax_error(self, tmp_path) -> None:
        """Test that unparsable source exits with status 1."""
        path = tmp_path / "broken.py"
        path.write_text("def broken(:\n")

        result = runner.invoke(app, ["instrument", str(path)])

        assert result.exit_code == 1


class TestRunCommand:
    """Test the run command."""

    def test_console_report(self, script) -> None:
        """Test the human-readable report."""
        result = runner.invoke(app, ["run", str(script)])

        assert result.exit_code == 0
        assert "function unused" in result.output

    def test_json_report(self, script) -> None:
        """Test the JSON report."""
        result = runner.invoke(app, ["run", str(script), "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["has_gaps"] is True
        assert [f["count"] for f in data["functions"]] == [1, 0]
        assert [b["count"] for b in data["branches"]] == [1, 0]

    def test_json_output_file(self, script, tmp_path) -> None:
        """Test writing the JSON report to a file."""
        output = tmp_path / "report.json"

        result = runner.invoke(app, ["run", str(script), "-o", str(output)])

        assert result.exit_code == 0
        assert json.loads(output.read_text())["summary"]["function"]["total"] == 2

    def test_failing_script(self, tmp_path) -> None:
        """Test that a raising script still reports and exits with status 1."""
        path = tmp_path / "failing.py"
        path.write_text("x = 1\nraise RuntimeError('boom')\n")

        result = runner.invoke(app, ["run", str(path)])

        assert result.exit_code == 1
        assert "RuntimeError" in result.output

    def test_clean_exit(self, tmp_path) -> None:
        """Test that sys.exit(0) in the script is not a failure."""
        path = tmp_path / "exits.py"
        path.write_text("import sys\nsys.exit(0)\n")

        result = runner.invoke(app, ["run", str(path)])

        assert result.exit_code == 0


def test_version() -> None:
    """Test the version flag."""
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert "countcov" in result.output
