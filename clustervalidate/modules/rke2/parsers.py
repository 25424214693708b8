"""Parsers for columnar ``kubectl get`` output."""
import logging
from typing import Callable, List, Optional

from .errors import ParseError
from .models import Node, NodeStatus, Pod, PodStatus

logger = logging.getLogger("rke2.parsers")

# NAME STATUS ROLES AGE VERSION INTERNAL-IP EXTERNAL-IP [OS-IMAGE KERNEL-VERSION CONTAINER-RUNTIME]
# OS-IMAGE may contain spaces ("Ubuntu 24.04 LTS"), so only the leading columns are fixed.
NODE_MIN_COLUMNS = 7

# NAMESPACE NAME READY STATUS RESTARTS AGE IP NODE NOMINATED-NODE READINESS-GATES
POD_COLUMNS = 10

_NODE_STATUSES = {s.value: s for s in NodeStatus}
_POD_STATUSES = {s.value: s for s in PodStatus}


def _data_lines(output: str) -> List[str]:
    lines = []
    for line in output.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("No resources found"):
            continue
        lines.append(stripped)
    return lines


def _parse_node_status(token: str, line: str):
    """Split ``Ready,SchedulingDisabled`` into a status and a schedulable flag."""
    parts = token.split(",")
    status = _NODE_STATUSES.get(parts[0])
    if status is None:
        raise ParseError(f"unrecognized node status {parts[0]!r}", line)
    return status, "SchedulingDisabled" not in parts[1:]


_POD_STATUS_PREFIXES = (
    ("Init:", PodStatus.INIT),
    ("ExitCode:", PodStatus.EXIT_CODE),
    ("Signal:", PodStatus.SIGNAL),
)


def _parse_pod_status(token: str, line: str) -> PodStatus:
    for prefix, status in _POD_STATUS_PREFIXES:
        if token.startswith(prefix):
            return status
    status = _POD_STATUSES.get(token)
    if status is None:
        raise ParseError(f"unrecognized pod status {token!r}", line)
    return status


def _check_ready_ratio(ready: str, line: str) -> None:
    head, sep, tail = ready.partition("/")
    if not sep or not head.isdigit() or not tail.isdigit():
        raise ParseError(f"malformed READY column {ready!r}", line)


def parse_node_lines(output: str) -> List[Node]:
    """Parse ``kubectl get nodes --no-headers -o wide`` output into nodes.

    Rows keep the order in which kubectl printed them.
    """
    nodes = []
    for line in _data_lines(output):
        fields = line.split()
        if len(fields) < NODE_MIN_COLUMNS:
            raise ParseError(
                f"expected at least {NODE_MIN_COLUMNS} node columns, got {len(fields)}", line
            )
        status, schedulable = _parse_node_status(fields[1], line)
        nodes.append(Node(
            name=fields[0],
            status=status,
            roles=fields[2],
            age=fields[3],
            version=fields[4],
            internal_ip=fields[5],
            external_ip=fields[6],
            schedulable=schedulable,
        ))
    return nodes


def _fold_restarts(fields: List[str]) -> List[str]:
    """Join a ``RESTARTS`` value like ``2 (5m ago)`` back into one column."""
    if len(fields) > 5 and fields[5].startswith("("):
        end = 5
        while end < len(fields) and not fields[end].endswith(")"):
            end += 1
        if end == len(fields):
            return fields
        restarts = " ".join(fields[4:end + 1])
        return fields[:4] + [restarts] + fields[end + 1:]
    return fields


def parse_pod_lines(output: str) -> List[Pod]:
    """Parse ``kubectl get pods -A --no-headers -o wide`` output into pods."""
    pods = []
    for line in _data_lines(output):
        fields = _fold_restarts(line.split())
        if len(fields) != POD_COLUMNS:
            raise ParseError(f"expected {POD_COLUMNS} pod columns, got {len(fields)}", line)
        _check_ready_ratio(fields[2], line)
        pods.append(Pod(
            namespace=fields[0],
            name=fields[1],
            ready=fields[2],
            status=_parse_pod_status(fields[3], line),
            status_detail=fields[3],
            restarts=fields[4],
            age=fields[5],
            ip=fields[6],
            node=fields[7],
        ))
    return pods


def _default_runner(cmd: str) -> str:
    from ..ssh import run_local
    return run_local(cmd)


def get_nodes_cmd(kubeconfig: str) -> str:
    return f"kubectl get nodes --no-headers -o wide -A --kubeconfig={kubeconfig}"


def get_pods_cmd(kubeconfig: str) -> str:
    return f"kubectl get pods --no-headers -o wide -A --kubeconfig={kubeconfig}"


def parse_nodes(kubeconfig: str, print_output: bool = False,
                runner: Optional[Callable[[str], str]] = None) -> List[Node]:
    """Fetch and parse the current node list.

    Args:
        kubeconfig: Path of the kubeconfig that scopes the query
        print_output: Also print the raw kubectl output (diagnostics only)
        runner: Command runner, defaults to local execution

    Raises:
        CommandError: If kubectl fails
        ParseError: If a row cannot be interpreted
    """
    output = (runner or _default_runner)(get_nodes_cmd(kubeconfig))
    if print_output:
        print(output)
    nodes = parse_node_lines(output)
    logger.debug("Parsed %d nodes", len(nodes))
    return nodes


def parse_pods(kubeconfig: str, print_output: bool = False,
               runner: Optional[Callable[[str], str]] = None) -> List[Pod]:
    """Fetch and parse the current pod list across all namespaces."""
    output = (runner or _default_runner)(get_pods_cmd(kubeconfig))
    if print_output:
        print(output)
    pods = parse_pod_lines(output)
    logger.debug("Parsed %d pods", len(pods))
    return pods


def count_pods_named(fragment: str, pods: List[Pod]) -> int:
    """Count pods whose name contains ``fragment`` (e.g. a daemonset name)."""
    return sum(1 for pod in pods if fragment in pod.name)
