"""Tests for the gatedag command line."""

import json
import textwrap

import pytest
from typer.testing import CliRunner

from gatedag.cli.main import app
from gatedag.kernel.logging import configure_logging

runner = CliRunner()

PIPELINE = """
name: cli-test
stages:
  - name: lint
    run: "true"
  - name: build
    produces_artifact: true
    gate: {block: ERROR}
    run: "true"
  - name: scan
    needs: [build]
    gate: {block: "CRITICAL,HIGH"}
    run: >-
      echo '[{"severity": "SEVERITY", "description": "CVE-1"}]'
    findings_format: json
  - name: push
    needs: [scan]
    run: "true"
"""


@pytest.fixture(autouse=True)
def restore_logging():
    """CliRunner swaps the standard streams; point loguru back at the real ones."""
    yield
    configure_logging(force_reconfigure=True)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "gatedag.toml"
    path.write_text(
        textwrap.dedent(
            f"""
            [logging]
            level = "ERROR"
            format = "console"

            [tag_store]
            path = "{tmp_path / "state" / "tags.db"}"

            [environments.staging]
            image = "app"
            chart = "./charts/app"
            """
        )
    )
    return path


def write_pipeline(tmp_path, severity: str = "MEDIUM"):
    path = tmp_path / f"pipeline-{severity.lower()}.yaml"
    path.write_text(PIPELINE.replace("SEVERITY", severity))
    return path


def invoke(config_file, *args: str):
    return runner.invoke(app, ["--config", str(config_file), *args])


class TestValidate:
    """Test the validate command."""

    def test_valid_pipeline(self, tmp_path, config_file):
        result = invoke(config_file, "validate", str(write_pipeline(tmp_path)))

        assert result.exit_code == 0
        assert "Validation successful" in result.output

    def test_json_output(self, tmp_path, config_file):
        result = invoke(config_file, "--json", "validate", str(write_pipeline(tmp_path)))

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["waves"] == [["build", "lint"], ["scan"], ["push"]]
        assert data["artifact_stage"] == "build"

    def test_cyclic_pipeline(self, tmp_path, config_file):
        path = tmp_path / "cycle.yaml"
        path.write_text("name: c\nstages:\n  - {name: a, needs: [b]}\n  - {name: b, needs: [a]}\n")

        result = invoke(config_file, "validate", str(path))

        assert result.exit_code == 1
        assert "Cycle detected" in result.output


class TestRun:
    """Test the run command and its exit codes."""

    def test_successful_run_publishes_tag(self, tmp_path, config_file):
        result = invoke(
            config_file, "--json", "run", str(write_pipeline(tmp_path)), "--run-id", "ci42"
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["status"] == "succeeded"
        assert data["tag"] == "push.1-ci42"
        assert data["published"] is True
        assert data["stages"]["scan"]["state"] == "soft_failed"

        listed = invoke(config_file, "--json", "tags", "list")
        assert [r["tag"] for r in json.loads(listed.stdout)] == ["push.1-ci42"]

        fetched = invoke(config_file, "tags", "get", "ci42")
        assert fetched.exit_code == 0
        assert "push.1-ci42" in fetched.output

    def test_blocked_run_exits_2_and_publishes_nothing(self, tmp_path, config_file):
        pipeline = write_pipeline(tmp_path, severity="CRITICAL")

        result = invoke(config_file, "run", str(pipeline), "--run-id", "ci43")

        assert result.exit_code == 2
        assert "hard_failed" in result.output

        fetched = invoke(config_file, "tags", "get", "ci43")
        assert fetched.exit_code == 1
        assert "No tag recorded" in fetched.output

    def test_manual_run_requires_branch(self, tmp_path, config_file):
        result = invoke(config_file, "run", str(write_pipeline(tmp_path)), "--trigger", "manual")

        assert result.exit_code == 1
        assert "explicit branch" in result.output

    def test_unknown_environment(self, tmp_path, config_file):
        result = invoke(config_file, "run", str(write_pipeline(tmp_path)), "--env", "qa")

        assert result.exit_code == 1
        assert "not configured" in result.output

    def test_stage_without_command(self, tmp_path, config_file):
        path = tmp_path / "nocommand.yaml"
        path.write_text("name: p\nstages:\n  - name: lint\n")

        result = invoke(config_file, "run", str(path))

        assert result.exit_code == 1
        assert "no command" in result.output


class TestDeploy:
    """Test the deploy command."""

    def test_dry_run_of_published_tag(self, tmp_path, config_file):
        invoke(config_file, "run", str(write_pipeline(tmp_path)), "--run-id", "ci50")

        by_tag = invoke(config_file, "deploy", "staging", "--tag", "push.1-ci50", "--dry-run")
        by_run = invoke(config_file, "--json", "deploy", "staging", "--run-id", "ci50", "--dry-run")

        assert by_tag.exit_code == 0, by_tag.output
        assert "Deployment issued" in by_tag.output
        assert json.loads(by_run.stdout)["tag"] == "push.1-ci50"

    def test_unrecorded_tag_is_refused(self, config_file):
        result = invoke(config_file, "deploy", "staging", "--tag", "push.1-forged", "--dry-run")

        assert result.exit_code == 1
        assert "not recorded" in result.output

    @pytest.mark.parametrize(
        "selector", [[], ["--tag", "push.1-a", "--run-id", "a"]], ids=["none", "both"]
    )
    def test_exactly_one_selector(self, config_file, selector):
        result = invoke(config_file, "deploy", "staging", *selector)

        assert result.exit_code == 1
        assert "exactly one" in result.output

    def test_unconfigured_environment(self, config_file):
        result = invoke(config_file, "deploy", "production", "--tag", "push.1-a")

        assert result.exit_code == 1
        assert "not configured" in result.output


class TestGlobalOptions:
    """Test the root callback."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "gatedag" in result.output

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["--config", str(tmp_path / "absent.toml"), "tags", "list"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_malformed_environment_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GATEDAG_MAX_CONCURRENT_STAGES", "many")
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(app, ["tags", "list"])

        assert result.exit_code == 1
        assert "GATEDAG_MAX_CONCURRENT_STAGES" in result.output
