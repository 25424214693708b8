import logging
from typing import Optional

import typer

from clustervalidate.config import Config
from clustervalidate.logging import add_file_handler
from clustervalidate.modules.report import build_report, print_summary, write_report
from clustervalidate.modules.rke2.config import ValidationConfig
from clustervalidate.modules.rke2.scenarios import CLUSTER_VALIDATION_SCENARIOS, collect_diagnostics
from clustervalidate.modules.vagrant import VagrantProvisioner
from clustervalidate.modules.validate import RunContext, run_scenarios, teardown

app = typer.Typer()


@app.command("cluster")
def validate_cluster(
    node_os: str = typer.Option(Config.NODE_OS, "--node-os", help="VM operating system (Vagrant box)"),
    server_count: int = typer.Option(Config.SERVER_COUNT, "--server-count", help="Number of server nodes"),
    agent_count: int = typer.Option(Config.AGENT_COUNT, "--agent-count", help="Number of agent nodes"),
    ci: bool = typer.Option(Config.CI, "--ci", help="Running on CI: always destroy the cluster"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Validation config YAML"),
    vagrant_dir: str = typer.Option(Config.VAGRANT_DIR, "--vagrant-dir", help="Directory holding the Vagrantfile"),
    workload_dir: Optional[str] = typer.Option(None, "--workload-dir", help="Directory holding test manifests"),
    report_file: Optional[str] = typer.Option(None, "--report-file", help="Write a JSON report here"),
):
    """Provision a cluster, run the validation suite and tear it down."""
    if server_count < 1 or agent_count < 0:
        print("❌ --server-count must be at least 1 and --agent-count must not be negative")
        raise typer.Exit(code=2)

    try:
        config = ValidationConfig.load(config_file)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Invalid configuration: {e}")
        raise typer.Exit(code=2)
    if workload_dir:
        config.workload_dir = workload_dir
    if config.logging.file:
        add_file_handler(config.logging)

    print(f"🔍 Validating cluster: {node_os}, {server_count} server(s), {agent_count} agent(s)")
    ctx = RunContext(
        config=config,
        node_os=node_os,
        server_count=server_count,
        agent_count=agent_count,
        ci=ci,
        provisioner=VagrantProvisioner(vagrant_dir),
    )
    run_scenarios(ctx, CLUSTER_VALIDATION_SCENARIOS, diagnose=collect_diagnostics)

    print_summary(ctx.results)
    if report_file:
        path = write_report(build_report(ctx), report_file)
        print(f"📝 Report written to {path}")

    try:
        destroyed = teardown(ctx)
    except Exception as e:
        logging.error(f"Teardown failed: {e}")
        raise typer.Exit(code=1)
    if not destroyed:
        print("FAILED!")

    if ctx.failed:
        raise typer.Exit(code=1)
    print("✅ Cluster validation passed.")
