"""Run summaries: console output and JSON report files."""
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import validate
from rich.console import Console
from rich.table import Table
from rich.text import Text

from clustervalidate.modules.validate import RunContext, ScenarioResult, ScenarioStatus

REPORT_SCHEMA = {
    "type": "object",
    "properties": {
        "suite": {"type": "string"},
        "node_os": {"type": "string"},
        "server_count": {"type": "integer", "minimum": 1},
        "agent_count": {"type": "integer", "minimum": 0},
        "ci": {"type": "boolean"},
        "failed": {"type": "boolean"},
        "finished_at": {"type": "string"},
        "results": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "status": {"enum": [s.value for s in ScenarioStatus]},
                    "message": {"type": "string"},
                    "diagnostics": {"type": "string"},
                    "duration": {"type": "number"},
                },
                "required": ["name", "status"],
            },
        },
    },
    "required": ["suite", "failed", "results"],
}

_ICONS = {
    ScenarioStatus.PASSED: "✅",
    ScenarioStatus.FAILED: "❌",
    ScenarioStatus.SKIPPED: "⏭️ ",
}


def build_report(ctx: RunContext, suite: str = "Validate Cluster Test Suite") -> Dict[str, Any]:
    report = {
        "suite": suite,
        "node_os": ctx.node_os,
        "server_count": ctx.server_count,
        "agent_count": ctx.agent_count,
        "ci": ctx.ci,
        "failed": ctx.failed,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "results": [r.to_dict() for r in ctx.results],
    }
    validate(instance=report, schema=REPORT_SCHEMA)
    return report


def write_report(report: Dict[str, Any], path: str) -> Path:
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(report, f, indent=2)
    return path


def summary_table(results: List[ScenarioResult]) -> Table:
    """One row per scenario in run order."""
    table = Table(title="Validate Cluster Test Suite")
    table.add_column("", no_wrap=True)
    table.add_column("Scenario")
    table.add_column("Duration", justify="right", no_wrap=True)
    table.add_column("Message")
    for result in results:
        table.add_row(
            _ICONS[result.status],
            Text(result.name),
            f"{result.duration:.1f}s",
            Text(result.message),
        )
    return table


def format_tally(results: List[ScenarioResult]) -> str:
    counts = {status: sum(1 for r in results if r.status is status) for status in ScenarioStatus}
    return (
        f"{counts[ScenarioStatus.PASSED]} passed, {counts[ScenarioStatus.FAILED]} failed, "
        f"{counts[ScenarioStatus.SKIPPED]} skipped"
    )


def print_summary(results: List[ScenarioResult], console: Optional[Console] = None) -> None:
    """Render the per-scenario table followed by a pass/fail tally."""
    console = console or Console()
    console.print(summary_table(results))
    console.print(Text(format_tally(results)))
