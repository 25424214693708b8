"""
RKE2 cluster validation.

This package provides the building blocks for validating a freshly provisioned
RKE2 cluster end to end.

Key Features:
- Typed parsing of ``kubectl get nodes`` / ``kubectl get pods`` output
- Deadline-bound convergence polling with last-failure reporting
- Cluster lifecycle control (restart, stop, start, certificate rotation)
  fanned out across hosts with per-host failure attribution
- Configurable per-check timeouts loaded from YAML

The scenario suite lives in ``clustervalidate.modules.rke2.scenarios``.
"""

from .models import Node, Pod, Host, NodeStatus, PodStatus, HostRole, ClusterState
from .errors import (
    ValidationError,
    ProvisioningError,
    CommandError,
    ParseError,
    AssertionMismatch,
    ConvergenceTimeout,
    HostFailures,
)
from .parsers import parse_nodes, parse_pods, parse_node_lines, parse_pod_lines
from .poll import PollBudget, eventually, eventually_all, eventually_contains, eventually_matches, poll
from .cluster import ClusterHandle
from .config import ValidationConfig

__all__ = [
    # Records
    'Node',
    'Pod',
    'Host',
    'NodeStatus',
    'PodStatus',
    'HostRole',
    'ClusterState',

    # Errors
    'ValidationError',
    'ProvisioningError',
    'CommandError',
    'ParseError',
    'AssertionMismatch',
    'ConvergenceTimeout',
    'HostFailures',

    # Parsing and polling
    'parse_nodes',
    'parse_pods',
    'parse_node_lines',
    'parse_pod_lines',
    'PollBudget',
    'eventually',
    'eventually_all',
    'eventually_contains',
    'eventually_matches',
    'poll',

    # Cluster
    'ClusterHandle',
    'ValidationConfig',
]

__version__ = "0.1.0"
