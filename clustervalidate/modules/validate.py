"""Sequential scenario runner for cluster validation."""
import logging
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from clustervalidate.modules.rke2.config import ValidationConfig
from clustervalidate.modules.rke2.errors import ProvisioningError
from clustervalidate.modules.rke2.models import ScenarioTiming

logger = logging.getLogger("validate")


class ScenarioStatus(str, Enum):
    PASSED = 'passed'
    FAILED = 'failed'
    SKIPPED = 'skipped'


@dataclass
class ScenarioResult:
    """Outcome of one scenario, with whatever diagnostics were captured on failure."""
    name: str
    status: ScenarioStatus
    message: str = ""
    diagnostics: str = ""
    duration: float = 0.0

    @property
    def failed(self) -> bool:
        return self.status is ScenarioStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "diagnostics": self.diagnostics,
            "duration": round(self.duration, 3),
        }


@dataclass
class RunContext:
    """Everything a scenario may read or change during a run.

    ``failed`` is sticky: once a scenario fails it stays set for the rest of
    the run and decides whether the cluster is torn down.
    """
    config: ValidationConfig = field(default_factory=ValidationConfig)
    node_os: str = "bento/ubuntu-24.04"
    server_count: int = 3
    agent_count: int = 1
    ci: bool = False
    provisioner: Any = None
    cluster: Any = None
    results: List[ScenarioResult] = field(default_factory=list)
    failed: bool = False

    def record(self, result: ScenarioResult) -> ScenarioResult:
        self.results.append(result)
        self.failed = self.failed or result.failed
        return result


@dataclass
class Scenario:
    """A named validation step. ``run`` raises to signal failure."""
    name: str
    run: Callable[[RunContext], None]
    requires_cluster: bool = True


def _failure_message(error: BaseException) -> str:
    message = str(error) or error.__class__.__name__
    return f"{error.__class__.__name__}: {message}"


def run_scenario(ctx: RunContext, scenario: Scenario,
                 diagnose: Optional[Callable[[RunContext], str]] = None) -> ScenarioResult:
    """Run one scenario and record its result on ``ctx``.

    Raises:
        ProvisioningError: After recording it, since the run cannot continue
    """
    if scenario.requires_cluster and ctx.cluster is None:
        logger.warning(f"⏭️  Skipping '{scenario.name}': no cluster available")
        return ctx.record(ScenarioResult(scenario.name, ScenarioStatus.SKIPPED, "no cluster available"))

    logger.info(f"▶️  {scenario.name}")
    timing = ScenarioTiming()
    try:
        scenario.run(ctx)
    except ProvisioningError as e:
        ctx.record(ScenarioResult(
            scenario.name, ScenarioStatus.FAILED, _failure_message(e), e.log_tail, timing.finish()
        ))
        logger.error(f"❌ {scenario.name}: {e}")
        raise
    except Exception as e:
        duration = timing.finish()
        diagnostics = traceback.format_exc() if logger.isEnabledFor(logging.DEBUG) else ""
        if diagnose is not None:
            diagnostics = "\n".join(d for d in (diagnostics, diagnose(ctx)) if d)
        logger.error(f"❌ {scenario.name} ({duration:.1f}s): {e}")
        return ctx.record(ScenarioResult(
            scenario.name, ScenarioStatus.FAILED, _failure_message(e), diagnostics, duration
        ))

    duration = timing.finish()
    logger.info(f"✅ {scenario.name} ({duration:.1f}s)")
    return ctx.record(ScenarioResult(scenario.name, ScenarioStatus.PASSED, duration=duration))


def run_scenarios(ctx: RunContext, scenarios: List[Scenario],
                  diagnose: Optional[Callable[[RunContext], str]] = None) -> List[ScenarioResult]:
    """Run scenarios in order.

    A failing scenario does not stop the ones after it. A provisioning error
    does: every remaining scenario is recorded as skipped.
    """
    for index, scenario in enumerate(scenarios):
        try:
            run_scenario(ctx, scenario, diagnose)
        except ProvisioningError:
            for remaining in scenarios[index + 1:]:
                ctx.record(ScenarioResult(remaining.name, ScenarioStatus.SKIPPED, "provisioning failed"))
            break
    return ctx.results


def should_destroy(ctx: RunContext) -> bool:
    """Failed runs outside CI keep the cluster around for inspection."""
    return not ctx.failed or ctx.ci


def teardown(ctx: RunContext) -> bool:
    """Destroy the cluster unless the run failed outside CI.

    Returns:
        bool: True if the cluster was destroyed
    """
    if not should_destroy(ctx):
        logger.warning("FAILED! Cluster left running for inspection")
        return False
    if ctx.cluster is not None:
        ctx.cluster.destroy()
    elif ctx.provisioner is not None:
        # Creation failed part way; clean up whatever VMs exist
        ctx.provisioner.destroy()
    logger.info("🧹 Cluster destroyed")
    return True
