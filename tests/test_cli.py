from __future__ import annotations

import json
from typing import TYPE_CHECKING

import yaml
from typer.testing import CliRunner

from stresstester.cli import app

if TYPE_CHECKING:
    from conftest import SampleProject


def _config(project: SampleProject, *extra: str, run: str = "") -> None:
    command = json.dumps([*project.service_command, *extra])
    project.write_config(
        f"""
        service:
          command: {command}
          timeout_seconds: 30
        run:
          rewrite_mode: none
        {run}
        compiler_args: ["-DDEBUG"]
        """
    )


def test_init_config_writes_template_once(sample_project: SampleProject) -> None:
    runner = CliRunner()

    first = runner.invoke(app, ["init-config", "--service", "analysis-service --stdio"])
    second = runner.invoke(app, ["init-config"])

    assert first.exit_code == 0, first.output
    data = yaml.safe_load((sample_project.root / "stress-tester.yaml").read_text(encoding="utf-8"))
    assert data["service"]["command"] == "analysis-service --stdio"
    assert data["run"]["page"] == "1/1"
    assert second.exit_code == 1
    assert "already exists" in second.output

    forced = runner.invoke(app, ["init-config", "--force"])
    assert forced.exit_code == 0, forced.output


def test_run_passes_and_writes_report(sample_project: SampleProject) -> None:
    _config(sample_project)
    report = sample_project.root / "out" / "result.json"

    result = CliRunner().invoke(
        app,
        ["run", str(sample_project.source), "--rewrite-mode", "basic", "--page", "2/2", "--report", str(report)],
    )

    assert result.exit_code == 0, result.output
    assert "PASSED" in result.output
    assert "Service response time:" in result.output
    payload = json.loads(report.read_text(encoding="utf-8"))
    assert payload["status"] == "passed"
    assert payload["page"] == "2/2"
    assert payload["rewrite_mode"] == "basic"
    assert payload["action_count"] > 0
    assert payload["performance"]["response_time"]["replaceText"]["count"] > 0


def test_run_reports_service_crash(sample_project: SampleProject) -> None:
    _config(sample_project, "--crash-on", "source.request.cursorinfo")
    report = sample_project.root / "result.json"

    result = CliRunner().invoke(app, ["run", str(sample_project.source), "--report", str(report)])

    assert result.exit_code == 1
    assert "FAILED [crashed]" in result.output
    payload = json.loads(report.read_text(encoding="utf-8"))
    assert payload["status"] == "failed"
    assert payload["failure"]["kind"] == "crashed"
    assert "CursorInfoAction" in payload["failure"]["action"]


def test_run_rejects_error_types_unless_tolerated(sample_project: SampleProject) -> None:
    _config(sample_project, "--error-type-at", "4")
    runner = CliRunner()

    strict = runner.invoke(app, ["run", str(sample_project.source)])
    tolerant = runner.invoke(app, ["run", str(sample_project.source), "--tolerate-type-errors"])

    assert strict.exit_code == 1
    assert "errorTypeInResponse" in strict.output
    assert tolerant.exit_code == 0, tolerant.output


def test_run_with_request_filter_and_limit(sample_project: SampleProject) -> None:
    _config(sample_project, run="  ast_build_limit: 3")

    result = CliRunner().invoke(
        app,
        ["run", str(sample_project.source), "-m", "insideOut", "-r", "CursorInfo", "--", "-Onone"],
    )

    assert result.exit_code == 0, result.output
    assert "PASSED" in result.output


def test_run_without_service_command_fails(sample_project: SampleProject) -> None:
    result = CliRunner().invoke(app, ["run", str(sample_project.source)])

    assert result.exit_code == 1
    assert "No analysis service command configured" in result.output


def test_run_rejects_invalid_configuration(sample_project: SampleProject) -> None:
    _config(sample_project, run="  page: 5/2")

    result = CliRunner().invoke(app, ["run", str(sample_project.source)])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_run_rejects_non_mapping_configuration(sample_project: SampleProject) -> None:
    sample_project.write_config("- just\n- a list\n")

    result = CliRunner().invoke(app, ["run", str(sample_project.source)])

    assert result.exit_code == 1
    assert "mapping" in result.output


def test_run_reports_missing_service_executable(sample_project: SampleProject) -> None:
    result = CliRunner().invoke(
        app,
        ["run", str(sample_project.source), "--service", "definitely-not-an-analysis-service"],
    )

    assert result.exit_code == 1
    assert "Failed to start analysis service" in result.output


def test_syntactic_perf_prints_timings(sample_project: SampleProject) -> None:
    _config(sample_project)

    result = CliRunner().invoke(
        app,
        [
            "syntactic-perf",
            str(sample_project.source),
            "--edit-mode",
            "reinsertDeepest",
            "--walk-mode",
            "computeNodeLocations",
            "--repeat",
            "2",
            "--syntax-mode",
            "syntaxTreeByte",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Syntax tree deserialization time:" in result.output
    assert "Syntax tree walk time - avg:" in result.output


def test_run_reports_missing_config_file(sample_project: SampleProject) -> None:
    result = CliRunner().invoke(app, ["run", str(sample_project.source), "--config", "absent.yaml"])

    assert result.exit_code == 1
    assert "Config file not found" in result.output
