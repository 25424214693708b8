"""
Data models for RKE2 cluster validation.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
import time


class NodeStatus(str, Enum):
    """Node readiness as reported in the STATUS column of ``kubectl get nodes``."""
    READY = 'Ready'
    NOT_READY = 'NotReady'
    UNKNOWN = 'Unknown'


class PodStatus(str, Enum):
    """Pod status tokens as reported in the STATUS column of ``kubectl get pods``.

    ``Init``, ``ExitCode`` and ``Signal`` stand for every token with that
    prefix (``Init:0/1``, ``Init:ExitCode:1``, ``ExitCode:137``, ``Signal:9``).
    """
    RUNNING = 'Running'
    COMPLETED = 'Completed'
    SUCCEEDED = 'Succeeded'
    PENDING = 'Pending'
    CONTAINER_CREATING = 'ContainerCreating'
    POD_INITIALIZING = 'PodInitializing'
    INIT = 'Init'
    TERMINATING = 'Terminating'
    TERMINATED = 'Terminated'
    CRASH_LOOP_BACK_OFF = 'CrashLoopBackOff'
    ERROR = 'Error'
    FAILED = 'Failed'
    EXIT_CODE = 'ExitCode'
    SIGNAL = 'Signal'
    IMAGE_PULL_BACK_OFF = 'ImagePullBackOff'
    ERR_IMAGE_PULL = 'ErrImagePull'
    INVALID_IMAGE_NAME = 'InvalidImageName'
    CREATE_CONTAINER_CONFIG_ERROR = 'CreateContainerConfigError'
    CREATE_CONTAINER_ERROR = 'CreateContainerError'
    RUN_CONTAINER_ERROR = 'RunContainerError'
    CONTAINER_STATUS_UNKNOWN = 'ContainerStatusUnknown'
    OOM_KILLED = 'OOMKilled'
    EVICTED = 'Evicted'
    NOT_READY = 'NotReady'
    NODE_AFFINITY = 'NodeAffinity'
    NODE_LOST = 'NodeLost'
    SHUTDOWN = 'Shutdown'
    UNEXPECTED_ADMISSION_ERROR = 'UnexpectedAdmissionError'
    UNKNOWN = 'Unknown'


class HostRole(str, Enum):
    """Role a provisioned host plays in the cluster."""
    SERVER = 'server'
    AGENT = 'agent'


class ClusterState(str, Enum):
    """Lifecycle of a cluster handle."""
    UNINITIALIZED = 'uninitialized'
    PROVISIONED = 'provisioned'
    RUNNING = 'running'
    RESTARTING = 'restarting'
    STOPPED = 'stopped'
    DESTROYED = 'destroyed'


@dataclass(frozen=True)
class Node:
    """One row of ``kubectl get nodes -o wide``."""
    name: str
    status: NodeStatus
    roles: str
    age: str
    version: str
    internal_ip: str
    external_ip: str
    schedulable: bool = True

    @property
    def is_ready(self) -> bool:
        return self.status is NodeStatus.READY


@dataclass(frozen=True)
class Pod:
    """One row of ``kubectl get pods -A -o wide``."""
    namespace: str
    name: str
    ready: str
    status: PodStatus
    status_detail: str
    restarts: str
    age: str
    ip: str
    node: str

    @property
    def ready_containers(self) -> int:
        return int(self.ready.split('/')[0])

    @property
    def total_containers(self) -> int:
        return int(self.ready.split('/')[1])

    @property
    def is_ready(self) -> bool:
        """True when every container in the pod reports ready."""
        return self.total_containers > 0 and self.ready_containers == self.total_containers


@dataclass
class Host:
    """A provisioned VM that is a member of the cluster.

    Hosts are addressed by their Vagrant machine name; commands run through
    ``vagrant ssh``.
    """
    name: str
    role: HostRole
    vagrant_dir: Optional[str] = None
    external_ip: Optional[str] = field(default=None, compare=False)

    @property
    def service_name(self) -> str:
        return f'rke2-{self.role.value}'

    def run_cmd(self, cmd: str, timeout: Optional[int] = None) -> str:
        """Run ``cmd`` on this host and return its combined output."""
        from ..ssh import run_on_host
        return run_on_host(self.name, cmd, timeout=timeout, cwd=self.vagrant_dir)

    def fetch_external_ip(self, interface: str = 'eth1') -> str:
        """Return the IPv4 address bound to ``interface`` on this host."""
        cmd = f"ip -f inet addr show {interface} | awk '/inet / {{print $2}}' | cut -d/ -f1"
        ip = self.run_cmd(cmd).strip()
        self.external_ip = ip
        return ip


@dataclass
class ScenarioTiming:
    """Tracks wall-clock timing for a scenario."""
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    def finish(self) -> float:
        self.end_time = time.time()
        return self.duration

    @property
    def duration(self) -> float:
        end = self.end_time if self.end_time is not None else time.time()
        return end - self.start_time
