"""The RKE2 cluster validation suite.

Scenarios run in the order listed in ``CLUSTER_VALIDATION_SCENARIOS``. Later
scenarios rely on workloads deployed by earlier ones (the restart check
counts the daemonset pods, for example).
"""
import logging
from typing import Dict, List

from clustervalidate.modules.validate import RunContext, Scenario
from .certs import (
    find_rotated_dir,
    identical_files_cmd,
    list_tls_dirs_cmd,
    parse_identical_files,
    verify_identical_files,
)
from .cluster import ClusterHandle
from .errors import AssertionMismatch, CommandError, HostFailures, ValidationError
from .models import Node, Pod, PodStatus
from .parsers import count_pods_named
from .poll import eventually_contains, eventually_matches, expect_all, expect_contains, expect_equal, poll

logger = logging.getLogger("rke2.scenarios")

DAEMONSET_NAME = "test-daemonset"


def _describe_node(node: Node) -> str:
    return f"{node.name} ({node.status.value})"


def _describe_pod(pod: Pod) -> str:
    return f"{pod.namespace}/{pod.name} ({pod.status_detail})"


def pod_settled(pod: Pod) -> bool:
    """Helm install jobs finish as Completed; everything else must be Running."""
    if "helm-install" in pod.name:
        return pod.status is PodStatus.COMPLETED
    return pod.status is PodStatus.RUNNING


def expect_nodes_ready(nodes: List[Node]) -> List[Node]:
    if not nodes:
        raise AssertionMismatch("no nodes reported")
    return expect_all(nodes, lambda n: n.is_ready, _describe_node, "nodes")


def expect_pods_settled(pods: List[Pod]) -> List[Pod]:
    if not pods:
        raise AssertionMismatch("no pods reported")
    return expect_all(pods, pod_settled, _describe_pod, "pods")


def expect_daemonset_coverage(nodes: List[Node], pods: List[Pod], require_ready: bool = False) -> None:
    """One daemonset pod per node, optionally each Running with all containers ready."""
    expect_equal(count_pods_named(DAEMONSET_NAME, pods), len(nodes),
                 "Daemonset pod count does not match node count")
    if require_ready:
        running = [
            p for p in pods
            if DAEMONSET_NAME in p.name and p.status is PodStatus.RUNNING and p.is_ready
        ]
        expect_equal(len(running), len(nodes), "Daemonset pods are not running after the restart")


def _expect_output_on_each(results: Dict[str, str], substring: str, operation: str) -> None:
    mismatches = {}
    for host_name, output in results.items():
        try:
            expect_contains(output, substring, f"failed cmd: {operation}")
        except AssertionMismatch as e:
            mismatches[host_name] = e
    if mismatches:
        raise HostFailures(operation, mismatches)


def _running_pods_cmd(app_label: str) -> str:
    return f"get pods -o=name -l k8s-app={app_label} --field-selector=status.phase=Running"


def _cluster(ctx: RunContext) -> ClusterHandle:
    if ctx.cluster is None:
        raise ValidationError("no cluster available")
    return ctx.cluster


def create_cluster(ctx: RunContext) -> None:
    ctx.cluster = ClusterHandle.create(
        ctx.node_os, ctx.server_count, ctx.agent_count,
        provisioner=ctx.provisioner, config=ctx.config
    )
    logger.info(f"CLUSTER CONFIG | OS: {ctx.node_os} | {ctx.cluster.status()}")
    ctx.cluster.gen_kubeconfig()


def check_node_status(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    poll(lambda: expect_nodes_ready(cluster.nodes()), ctx.config.budget("node_ready"), "node readiness")
    cluster.nodes(print_output=True)


def check_pod_status(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    poll(lambda: expect_pods_settled(cluster.pods()), ctx.config.budget("pod_ready"), "pod readiness")
    cluster.pods(print_output=True)


def verify_clusterip_service(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    cluster.deploy_workload("clusterip.yaml")
    budget = ctx.config.budget("clusterip_pods")
    eventually_contains(lambda: cluster.kubectl(_running_pods_cmd("nginx-app-clusterip")),
                        "test-clusterip", budget.timeout, budget.interval, "clusterip pods running")

    clusterip = cluster.fetch_cluster_ip("nginx-clusterip-svc")
    cmd = f"curl -L --insecure http://{clusterip}/name.html"
    _expect_output_on_each(cluster.run_on_hosts(cluster.servers, cmd), "test-clusterip", cmd)


def verify_nodeport_service(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    cluster.deploy_workload("nodeport.yaml")
    pods_budget = ctx.config.budget("nodeport_pods")
    curl_budget = ctx.config.budget("nodeport_curl")
    for server in cluster.servers:
        node_ip = server.fetch_external_ip(ctx.config.external_interface)
        nodeport = cluster.fetch_service_port("nginx-nodeport-svc", "nodePort")
        eventually_contains(lambda: cluster.kubectl(_running_pods_cmd("nginx-app-nodeport")),
                            "test-nodeport", pods_budget.timeout, pods_budget.interval,
                            "nodeport pods running")
        cmd = f"curl -L --insecure http://{node_ip}:{nodeport}/name.html"
        eventually_contains(lambda: cluster.run_local(cmd), "test-nodeport",
                            curl_budget.timeout, curl_budget.interval, f"failed cmd: {cmd}")


def verify_loadbalancer_service(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    cluster.deploy_workload("loadbalancer.yaml")
    ip = cluster.servers[0].fetch_external_ip(ctx.config.external_interface)
    port = cluster.fetch_service_port("nginx-loadbalancer-svc", "port")

    budget = ctx.config.budget("loadbalancer_pods")
    eventually_contains(lambda: cluster.kubectl(_running_pods_cmd("nginx-app-loadbalancer")),
                        "test-loadbalancer", budget.timeout, budget.interval, "loadbalancer pods running")

    cmd = f"curl -L --insecure http://{ip}:{port}/name.html"
    budget = ctx.config.budget("loadbalancer_curl")
    eventually_contains(lambda: cluster.run_local(cmd), "test-loadbalancer",
                        budget.timeout, budget.interval, f"failed cmd: {cmd}")


def verify_ingress(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    cluster.deploy_workload("ingress.yaml")
    budget = ctx.config.budget("ingress")
    for server in cluster.servers:
        ip = server.fetch_external_ip(ctx.config.external_interface)
        cmd = f"curl --header host:foo1.bar.com http://{ip}/name.html"
        eventually_contains(lambda: cluster.run_local(cmd), "test-ingress",
                            budget.timeout, budget.interval, f"failed cmd: {cmd}")


def verify_daemonset(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    cluster.deploy_workload("daemonset.yaml")
    nodes = cluster.nodes()
    poll(lambda: expect_daemonset_coverage(nodes, cluster.pods()),
         ctx.config.budget("daemonset"), "daemonset coverage")


def verify_dns(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    cluster.deploy_workload("dnsutils.yaml")
    budget = ctx.config.budget("dns")
    eventually_contains(lambda: cluster.kubectl("exec -i dnsutils -- nslookup kubernetes.default"),
                        "kubernetes.default.svc.cluster.local",
                        budget.timeout, budget.interval, "dns lookup")


def verify_local_path_storage(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    cluster.deploy_workload("local-path-provisioner.yaml")

    budget = ctx.config.budget("pvc_bound")
    eventually_matches(lambda: cluster.kubectl("get pvc local-path-pvc"), r"local-path-pvc.+Bound",
                       budget.timeout, budget.interval, "pvc bound")
    budget = ctx.config.budget("volume_pod")
    eventually_matches(lambda: cluster.kubectl("get pod volume-test"), r"volume-test.+Running",
                       budget.timeout, budget.interval, "volume pod running")

    cluster.kubectl("exec volume-test -- sh -c 'echo local-path-test > /data/test'")
    cluster.kubectl("delete pod volume-test")
    # Re-applying recreates the pod against the same claim
    cluster.deploy_workload("local-path-provisioner.yaml")

    budget = ctx.config.budget("volume_read")
    eventually_contains(lambda: cluster.kubectl("exec volume-test -- cat /data/test"), "local-path-test",
                        budget.timeout, budget.interval, "volume data persisted")


def restart_cluster(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    cluster.restart(cluster.hosts)

    def converged():
        nodes = expect_nodes_ready(cluster.nodes())
        expect_daemonset_coverage(nodes, cluster.pods(), require_ready=True)

    poll(converged, ctx.config.budget("restart"), "cluster after restart")


def stop_and_rotate_certificates(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    # Every server must be down before rotation starts on any of them
    cluster.stop(cluster.servers)
    cluster.rotate_certificates(cluster.servers)


def start_after_rotation(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    cluster.start_servers_with_quorum()
    poll(lambda: expect_nodes_ready(cluster.nodes()), ctx.config.budget("rotation_nodes"),
         "node readiness after rotation")
    poll(lambda: expect_pods_settled(cluster.pods()), ctx.config.budget("rotation_pods"),
         "pod readiness after rotation")


def validate_certificates(ctx: RunContext) -> None:
    cluster = _cluster(ctx)
    server_dir = ctx.config.server_tls_dir
    mismatches = {}
    for server in cluster.servers:
        try:
            rotated = find_rotated_dir(server.run_cmd(list_tls_dirs_cmd(server_dir)))
            files = parse_identical_files(server.run_cmd(identical_files_cmd(server_dir, rotated)))
            verify_identical_files(files)
        except ValidationError as e:
            mismatches[server.name] = e

    # Agents are restarted even when a server failed its check
    try:
        cluster.restart(cluster.agents)
    except HostFailures as e:
        mismatches.update(e.failures)
    if mismatches:
        raise HostFailures("certificate validation", mismatches)


def collect_diagnostics(ctx: RunContext) -> str:
    """Dump raw node and pod state for a failed scenario."""
    cluster = ctx.cluster
    if cluster is None or not cluster.kubeconfig_file:
        return ""
    sections = []
    for args in ("get nodes -o wide", "get pods -A -o wide"):
        try:
            output = cluster.kubectl(args)
        except CommandError as e:
            output = str(e)
        sections.append(f"$ kubectl {args}\n{output.rstrip()}")
    return "\n".join(sections)


CLUSTER_VALIDATION_SCENARIOS = [
    Scenario("Starts up with no issues", create_cluster, requires_cluster=False),
    Scenario("Checks Node Status", check_node_status),
    Scenario("Checks Pod Status", check_pod_status),
    Scenario("Verifies ClusterIP Service", verify_clusterip_service),
    Scenario("Verifies NodePort Service", verify_nodeport_service),
    Scenario("Verifies LoadBalancer Service", verify_loadbalancer_service),
    Scenario("Verifies Ingress", verify_ingress),
    Scenario("Verifies Daemonset", verify_daemonset),
    Scenario("Verifies dns access", verify_dns),
    Scenario("Verifies Local Path Provisioner storage", verify_local_path_storage),
    Scenario("Restarts normally", restart_cluster),
    Scenario("Stops rke2 and rotates certificates", stop_and_rotate_certificates),
    Scenario("Starts normally after rotation", start_after_rotation),
    Scenario("Validates certificates", validate_certificates),
]
