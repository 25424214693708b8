import json

import pytest
import yaml
from jsonschema import ValidationError as SchemaError
from pydantic import ValidationError
from rich.console import Console

from clustervalidate.modules.report import build_report, format_tally, print_summary, summary_table, write_report
from clustervalidate.modules.rke2.config import Budget, ValidationConfig
from clustervalidate.modules.rke2.poll import PollBudget
from clustervalidate.modules.validate import RunContext, ScenarioResult, ScenarioStatus


@pytest.fixture(autouse=True)
def no_env_overrides(monkeypatch):
    monkeypatch.delenv("RKE2_VALIDATE_LOG_LEVEL", raising=False)
    monkeypatch.delenv("RKE2_VALIDATE_LOG_FILE", raising=False)


def test_defaults():
    config = ValidationConfig()
    assert config.budget("node_ready") == PollBudget(420, 5)
    assert config.budget("nodeport_curl") == PollBudget(5, 1)
    assert config.external_interface == "eth1"
    assert config.logging.level == "INFO"


def test_load_overrides_from_yaml(tmp_path):
    path = tmp_path / "validate.yaml"
    path.write_text(yaml.safe_dump({
        "budgets": {"restart": {"timeout": 600, "interval": 10}},
        "logging": {"level": "debug"},
        "external_interface": "enp0s8",
    }))
    config = ValidationConfig.load(path)
    assert config.budget("restart") == PollBudget(600, 10)
    assert config.budget("node_ready") == PollBudget(420, 5)
    assert config.logging.level == "DEBUG"
    assert config.external_interface == "enp0s8"


def test_env_overrides_log_settings(tmp_path, monkeypatch):
    path = tmp_path / "validate.yaml"
    path.write_text("logging:\n  level: INFO\n")
    monkeypatch.setenv("RKE2_VALIDATE_LOG_LEVEL", "warning")
    monkeypatch.setenv("RKE2_VALIDATE_LOG_FILE", str(tmp_path / "run.log"))
    config = ValidationConfig.load(path)
    assert config.logging.level == "WARNING"
    assert config.logging.file == str(tmp_path / "run.log")


def test_missing_explicit_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ValidationConfig.load(tmp_path / "nope.yaml")


def test_non_mapping_file(tmp_path):
    path = tmp_path / "validate.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError, match="mapping"):
        ValidationConfig.load(path)


@pytest.mark.parametrize("data", [
    {"timeout": 10, "interval": 0},
    {"timeout": 10, "interval": 1, "retries": 3},
])
def test_invalid_budget(data):
    with pytest.raises(ValidationError):
        Budget(**data)


def test_unknown_log_level():
    with pytest.raises(ValidationError):
        ValidationConfig(logging={"level": "chatty"})


def run_ctx():
    ctx = RunContext(server_count=3, agent_count=1)
    ctx.record(ScenarioResult("Checks Node Status", ScenarioStatus.PASSED, duration=12.5))
    ctx.record(ScenarioResult("Verifies Ingress", ScenarioStatus.FAILED,
                              "ConvergenceTimeout: ingress did not converge", "$ kubectl get nodes", 240.0))
    ctx.record(ScenarioResult("Validates certificates", ScenarioStatus.SKIPPED, "no cluster available"))
    return ctx


def test_build_and_write_report(tmp_path):
    report = build_report(run_ctx())
    assert report["failed"] is True
    assert [r["status"] for r in report["results"]] == ["passed", "failed", "skipped"]

    path = write_report(report, str(tmp_path / "reports" / "run.json"))
    with open(path) as f:
        assert json.load(f)["results"][1]["diagnostics"] == "$ kubectl get nodes"


def test_report_schema_rejects_bad_counts():
    ctx = run_ctx()
    ctx.server_count = 0
    with pytest.raises(SchemaError):
        build_report(ctx)


def test_summary_table_and_tally():
    console = Console(record=True, width=200)
    results = run_ctx().results
    results.append(ScenarioResult("Validates certificates", ScenarioStatus.FAILED,
                                  "AssertionMismatch: missing=['server-ca.key'] unexpected=[]"))
    print_summary(results, console=console)
    text = console.export_text()

    assert "Checks Node Status" in text
    assert "ConvergenceTimeout: ingress did not converge" in text
    assert "missing=['server-ca.key'] unexpected=[]" in text
    assert text.rstrip().splitlines()[-1] == "1 passed, 2 failed, 1 skipped"


def test_summary_table_rows_follow_run_order():
    table = summary_table(run_ctx().results)
    assert table.row_count == 3
    assert format_tally([]) == "0 passed, 0 failed, 0 skipped"
