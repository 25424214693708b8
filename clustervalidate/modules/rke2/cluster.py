"""In-memory handle on a provisioned RKE2 test cluster."""
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import yaml

from .config import ValidationConfig
from .errors import AssertionMismatch, CommandError, HostFailures, ParseError, ProvisioningError, ValidationError
from .models import ClusterState, Host
from .parsers import parse_nodes, parse_pods
from .poll import poll

logger = logging.getLogger("rke2.cluster")

RKE2_KUBECONFIG = "/etc/rancher/rke2/rke2.yaml"


def _default_local_runner(cmd: str) -> str:
    from ..ssh import run_local
    return run_local(cmd)


class ClusterHandle:
    """A provisioned cluster: its hosts, kubeconfig and workload manifests.

    Host membership is fixed at construction. Lifecycle operations change the
    running state of hosts, never the set of hosts.
    """

    def __init__(
        self,
        servers: Sequence[Host],
        agents: Sequence[Host] = (),
        provisioner=None,
        workload_dir: Optional[str] = None,
        config: Optional[ValidationConfig] = None,
        local_runner: Optional[Callable[[str], str]] = None,
        os_image: Optional[str] = None,
    ):
        self.servers = tuple(servers)
        self.agents = tuple(agents)
        self.provisioner = provisioner
        self.config = config or ValidationConfig()
        if workload_dir is None:
            from clustervalidate.config import Config
            workload_dir = self.config.workload_dir or Config.WORKLOAD_DIR
        self.workload_dir = workload_dir
        self.run_local = local_runner or _default_local_runner
        self.os_image = os_image
        self.kubeconfig_file: Optional[str] = None
        self.state = ClusterState.PROVISIONED if self.servers else ClusterState.UNINITIALIZED
        self._stopped: set = set()

    @classmethod
    def create(cls, os_image: str, server_count: int, agent_count: int, provisioner=None,
               **kwargs) -> 'ClusterHandle':
        """Provision a cluster and wait for the first server to answer.

        Raises:
            ProvisioningError: If the VMs cannot be created or the first server is unreachable
        """
        if provisioner is None:
            from ..vagrant import VagrantProvisioner
            provisioner = VagrantProvisioner()
        servers, agents = provisioner.create(os_image, server_count, agent_count)
        handle = cls(servers, agents, provisioner=provisioner, os_image=os_image, **kwargs)
        handle.state = ClusterState.PROVISIONED
        try:
            handle.servers[0].run_cmd("hostname")
        except CommandError as e:
            raise ProvisioningError(f"first server {handle.servers[0].name} is unreachable: {e}") from e
        handle.state = ClusterState.RUNNING
        logger.info(f"✅ Cluster running: {handle.status()}")
        return handle

    @property
    def hosts(self) -> List[Host]:
        return list(self.servers) + list(self.agents)

    def status(self) -> str:
        """Human-readable summary of the cluster shape."""
        servers = ", ".join(h.name for h in self.servers) or "none"
        agents = ", ".join(h.name for h in self.agents) or "none"
        return f"Servers: {servers} | Agents: {agents} | State: {self.state.value}"

    def _require_kubeconfig(self) -> str:
        if not self.kubeconfig_file:
            raise ValidationError("kubeconfig has not been generated for this cluster")
        return self.kubeconfig_file

    def kubectl(self, args: str) -> str:
        """Run ``kubectl <args>`` against this cluster from the harness host."""
        return self.run_local(f"kubectl {args} --kubeconfig={self._require_kubeconfig()}")

    def gen_kubeconfig(self, output_dir: Optional[str] = None) -> str:
        """Fetch the admin kubeconfig from the first server and point it at its external IP.

        Returns:
            Path of the written kubeconfig file
        """
        server = self.servers[0]
        ip = server.fetch_external_ip(self.config.external_interface)
        raw = server.run_cmd(f"sudo cat {RKE2_KUBECONFIG}")
        try:
            kubeconfig = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ParseError(f"kubeconfig from {server.name} is not valid YAML: {e}") from e
        if not isinstance(kubeconfig, dict) or not kubeconfig.get("clusters"):
            raise ParseError(f"kubeconfig from {server.name} has no clusters")
        for entry in kubeconfig["clusters"]:
            cluster = entry.get("cluster", {})
            if "server" in cluster:
                cluster["server"] = cluster["server"].replace("127.0.0.1", ip)

        path = Path(output_dir or os.getcwd()) / f"{server.name}-kubeconfig.yaml"
        with open(path, 'w') as f:
            yaml.safe_dump(kubeconfig, f, default_flow_style=False)
        self.kubeconfig_file = str(path)
        logger.info(f"Wrote kubeconfig for {server.name} ({ip}) to {path}")
        return self.kubeconfig_file

    def deploy_workload(self, manifest_name: str) -> str:
        """Apply a manifest from the workload directory.

        Re-applying an already deployed manifest is not an error.

        Returns:
            Raw ``kubectl apply`` output
        """
        manifest = Path(self.workload_dir) / manifest_name
        if not manifest.is_file():
            raise FileNotFoundError(f"Workload manifest not found: {manifest}")
        output = self.kubectl(f"apply -f {manifest}")
        logger.info(f"Deployed {manifest_name}: {output.strip()}")
        return output

    def nodes(self, print_output: bool = False):
        return parse_nodes(self._require_kubeconfig(), print_output, runner=self.run_local)

    def pods(self, print_output: bool = False):
        return parse_pods(self._require_kubeconfig(), print_output, runner=self.run_local)

    def fetch_cluster_ip(self, service: str) -> str:
        return self.kubectl(f"get svc {service} -o jsonpath='{{.spec.clusterIP}}'").strip()

    def fetch_service_port(self, service: str, field: str = "port") -> str:
        """Return ``.spec.ports[0].<field>`` of a service (``port`` or ``nodePort``)."""
        return self.kubectl(f"get service {service} --output jsonpath=\"{{.spec.ports[0].{field}}}\"").strip()

    def _fan_out(self, operation: str, hosts: Iterable[Host], action: Callable[[Host], Any]) -> Dict[str, Any]:
        """Run ``action`` on every host concurrently.

        Returns:
            Results keyed by host name

        Raises:
            HostFailures: Naming each host whose action raised
        """
        hosts = list(hosts)
        if not hosts:
            return {}
        start_time = time.time()
        results: Dict[str, Any] = {}
        failures: Dict[str, BaseException] = {}

        with ThreadPoolExecutor(max_workers=len(hosts), thread_name_prefix="fan_out") as executor:
            future_to_host = {executor.submit(action, host): host.name for host in hosts}
            for future in as_completed(future_to_host):
                host_name = future_to_host[future]
                try:
                    results[host_name] = future.result()
                    logger.info(f"✅ {operation} on {host_name} ({time.time() - start_time:.1f}s)")
                except Exception as e:
                    failures[host_name] = e
                    logger.error(f"❌ {operation} on {host_name} failed: {e}")

        if failures:
            raise HostFailures(operation, failures)
        return results

    def run_on_hosts(self, hosts: Iterable[Host], cmd: str) -> Dict[str, str]:
        """Run the same command on every host, keyed by host name."""
        return self._fan_out(cmd, hosts, lambda host: host.run_cmd(cmd))

    def _systemctl(self, action: str, hosts: Iterable[Host], block: bool = True) -> Dict[str, str]:
        flag = "" if block else "--no-block "
        return self._fan_out(
            f"{action} service",
            hosts,
            lambda host: host.run_cmd(f"sudo systemctl {flag}{action} {host.service_name}")
        )

    def _wait_for_service(self, host: Host) -> str:
        """Wait until systemd reports the host's RKE2 unit as active."""
        def probe():
            output = host.run_cmd(f"systemctl is-active {host.service_name}")
            states = [line.strip() for line in output.splitlines()]
            if "active" not in states:
                raise AssertionMismatch(f"{host.service_name} on {host.name} is {output.strip()!r}")
            return "active"

        return poll(probe, self.config.budget("service_active"), f"{host.service_name} on {host.name}")

    def restart(self, hosts: Iterable[Host]) -> None:
        """Restart the RKE2 service on each host and wait for the process to come back.

        This does not wait for the cluster to converge; callers poll node and
        pod state for that.
        """
        def restart_one(host: Host) -> str:
            host.run_cmd(f"sudo systemctl restart {host.service_name}")
            return self._wait_for_service(host)

        hosts = list(hosts)
        self.state = ClusterState.RESTARTING
        try:
            self._fan_out("restart", hosts, restart_one)
        finally:
            self._stopped.difference_update(h.name for h in hosts)
            self.state = ClusterState.RUNNING

    def stop(self, hosts: Iterable[Host]) -> None:
        hosts = list(hosts)
        self._systemctl("stop", hosts)
        self._stopped.update(h.name for h in hosts)
        if all(s.name in self._stopped for s in self.servers):
            self.state = ClusterState.STOPPED

    def start(self, hosts: Iterable[Host], block: bool = True) -> None:
        hosts = list(hosts)
        self._systemctl("start", hosts, block=block)
        self._stopped.difference_update(h.name for h in hosts)
        self.state = ClusterState.RUNNING

    def start_servers_with_quorum(self) -> None:
        """Start a fully stopped set of servers.

        The first server is started without blocking: it waits for etcd peers,
        so a blocking start would hang until another server is up.
        """
        first, rest = self.servers[0], self.servers[1:]
        logger.info(f"Starting {first.name} without blocking to seed quorum")
        try:
            first.run_cmd(f"sudo systemctl --no-block start {first.service_name}")
        except CommandError as e:
            raise HostFailures("start service", {first.name: e}) from e
        self._stopped.discard(first.name)
        if rest:
            self.start(rest)
        self.state = ClusterState.RUNNING

    def rotate_certificates(self, hosts: Iterable[Host]) -> Dict[str, str]:
        """Run ``rke2 certificate rotate`` on each host. Every server must be stopped first."""
        hosts = list(hosts)
        running = [s.name for s in self.servers if s.name not in self._stopped]
        if running:
            raise ValidationError(
                f"certificate rotation requires every server to be stopped; still running: {', '.join(running)}"
            )
        return self._fan_out("rotate certificates", hosts, lambda host: host.run_cmd("sudo rke2 certificate rotate"))

    def destroy(self) -> None:
        """Destroy the VMs and remove the generated kubeconfig."""
        if self.state is ClusterState.DESTROYED:
            logger.warning("Cluster already destroyed")
            return
        if self.provisioner is not None:
            self.provisioner.destroy()
        if self.kubeconfig_file and os.path.exists(self.kubeconfig_file):
            os.remove(self.kubeconfig_file)
            logger.info(f"🧹 Removed kubeconfig {self.kubeconfig_file}")
        self.state = ClusterState.DESTROYED
