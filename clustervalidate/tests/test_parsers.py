import pytest

from clustervalidate.modules.rke2.errors import ParseError
from clustervalidate.modules.rke2.models import NodeStatus, PodStatus
from clustervalidate.modules.rke2.parsers import (
    count_pods_named,
    parse_node_lines,
    parse_nodes,
    parse_pod_lines,
    parse_pods,
)

NODES = """\
server-0   Ready      control-plane,etcd,master   12m   v1.31.1+rke2r1   10.10.10.100   10.10.10.100   Ubuntu 24.04 LTS   6.8.0-31-generic   containerd://1.7.21-k3s2
server-1   Ready,SchedulingDisabled   control-plane,etcd,master   10m   v1.31.1+rke2r1   10.10.10.101   <none>   Ubuntu 24.04 LTS   6.8.0-31-generic   containerd://1.7.21-k3s2
agent-0    NotReady   <none>                      8m    v1.31.1+rke2r1   10.10.10.104   <none>   Ubuntu 24.04 LTS   6.8.0-31-generic   containerd://1.7.21-k3s2
"""

PODS = """\
kube-system   cloud-controller-manager-server-0   1/1   Running     2 (5m ago)   12m   10.10.10.100   server-0   <none>   <none>
kube-system   helm-install-rke2-canal-x7k2p       0/1   Completed   0            12m   10.42.0.4      server-0   <none>   <none>
default       test-daemonset-abcde                0/1   Init:0/1    0            1m    <none>         agent-0    <none>   <none>
default       volume-test                         0/1   Pending     0            5s    <none>         <none>     <none>   <none>
"""


def test_parse_nodes_keeps_row_order_and_fields():
    nodes = parse_node_lines(NODES)
    assert [n.name for n in nodes] == ["server-0", "server-1", "agent-0"]
    assert [n.status for n in nodes] == [NodeStatus.READY, NodeStatus.READY, NodeStatus.NOT_READY]
    assert nodes[0].internal_ip == "10.10.10.100"
    assert nodes[0].version == "v1.31.1+rke2r1"
    assert nodes[1].schedulable is False
    assert nodes[2].external_ip == "<none>"
    assert not nodes[2].is_ready


def test_parse_is_idempotent():
    assert parse_node_lines(NODES) == parse_node_lines(NODES)
    assert parse_pod_lines(PODS) == parse_pod_lines(PODS)


def test_parse_pods_folds_restart_suffix():
    pods = parse_pod_lines(PODS)
    assert [p.name for p in pods] == [
        "cloud-controller-manager-server-0",
        "helm-install-rke2-canal-x7k2p",
        "test-daemonset-abcde",
        "volume-test",
    ]
    first = pods[0]
    assert first.restarts == "2 (5m ago)"
    assert first.age == "12m"
    assert first.node == "server-0"
    assert first.status is PodStatus.RUNNING
    assert first.is_ready


def test_parse_pods_statuses():
    pods = parse_pod_lines(PODS)
    assert pods[1].status is PodStatus.COMPLETED
    assert pods[2].status is PodStatus.INIT
    assert pods[2].status_detail == "Init:0/1"
    assert pods[3].status is PodStatus.PENDING
    assert not pods[3].is_ready


@pytest.mark.parametrize("token,expected", [
    ("ContainerStatusUnknown", PodStatus.CONTAINER_STATUS_UNKNOWN),
    ("NotReady", PodStatus.NOT_READY),
    ("UnexpectedAdmissionError", PodStatus.UNEXPECTED_ADMISSION_ERROR),
    ("NodeAffinity", PodStatus.NODE_AFFINITY),
    ("Terminated", PodStatus.TERMINATED),
    ("Shutdown", PodStatus.SHUTDOWN),
    ("CreateContainerError", PodStatus.CREATE_CONTAINER_ERROR),
    ("RunContainerError", PodStatus.RUN_CONTAINER_ERROR),
    ("InvalidImageName", PodStatus.INVALID_IMAGE_NAME),
    ("ExitCode:137", PodStatus.EXIT_CODE),
    ("Signal:9", PodStatus.SIGNAL),
    ("Init:ExitCode:1", PodStatus.INIT),
    ("Init:CrashLoopBackOff", PodStatus.INIT),
])
def test_stale_pod_statuses(token, expected):
    line = f"kube-system   x-abc   0/1   {token}   0   5m   10.42.0.9   server-0   <none>   <none>"
    [pod] = parse_pod_lines(line)
    assert pod.status is expected
    assert pod.status_detail == token


def test_no_resources_found_is_empty():
    assert parse_pod_lines("No resources found\n") == []
    assert parse_node_lines("") == []


def test_unknown_node_status_is_parse_error():
    line = "server-0   Booting   control-plane   1m   v1.31.1   10.0.0.1   <none>   Ubuntu"
    with pytest.raises(ParseError, match="Booting"):
        parse_node_lines(line)


def test_short_node_row_is_parse_error():
    with pytest.raises(ParseError, match="at least 7"):
        parse_node_lines("server-0   Ready   control-plane   1m")


def test_pod_column_count_is_checked():
    with pytest.raises(ParseError, match="expected 10 pod columns"):
        parse_pod_lines("default   nginx   1/1   Running   0   1m   10.42.0.9   agent-0")


def test_pod_ready_ratio_is_checked():
    with pytest.raises(ParseError, match="READY"):
        parse_pod_lines("default   nginx   one   Running   0   1m   10.42.0.9   agent-0   <none>   <none>")


def test_unknown_pod_status_is_parse_error():
    with pytest.raises(ParseError, match="Exploded"):
        parse_pod_lines("default   nginx   1/1   Exploded   0   1m   10.42.0.9   agent-0   <none>   <none>")


def test_parse_nodes_runs_scoped_command():
    calls = []

    def runner(cmd):
        calls.append(cmd)
        return NODES

    nodes = parse_nodes("/tmp/kc.yaml", runner=runner)
    assert len(nodes) == 3
    assert calls == ["kubectl get nodes --no-headers -o wide -A --kubeconfig=/tmp/kc.yaml"]


def test_print_flag_is_a_side_channel(capsys):
    quiet = parse_pods("/tmp/kc.yaml", runner=lambda cmd: PODS)
    assert capsys.readouterr().out == ""

    loud = parse_pods("/tmp/kc.yaml", print_output=True, runner=lambda cmd: PODS)
    assert "cloud-controller-manager-server-0" in capsys.readouterr().out
    assert loud == quiet


def test_count_pods_named():
    pods = parse_pod_lines(PODS)
    assert count_pods_named("test-daemonset", pods) == 1
    assert count_pods_named("helm-install", pods) == 1
    assert count_pods_named("missing", pods) == 0
