"""Vagrant-backed provisioning of the VMs that make up a test cluster."""
import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from clustervalidate.config import Config
from clustervalidate.modules.rke2.errors import ProvisioningError
from clustervalidate.modules.rke2.models import Host, HostRole

logger = logging.getLogger("vagrant")


def node_names(server_count: int, agent_count: int) -> Tuple[List[str], List[str]]:
    """Return the machine names for the requested cluster shape."""
    servers = [f"server-{i}" for i in range(server_count)]
    agents = [f"agent-{i}" for i in range(agent_count)]
    return servers, agents


class VagrantProvisioner:
    """Creates and destroys cluster VMs with ``vagrant up`` / ``vagrant destroy``."""

    def __init__(self, vagrant_dir: Optional[str] = None, log_file: Optional[str] = None,
                 timeout: Optional[int] = None):
        self.vagrant_dir = vagrant_dir or Config.VAGRANT_DIR
        self.log_path = Path(self.vagrant_dir) / (log_file or Config.VAGRANT_LOG)
        self.timeout = timeout or Config.PROVISION_TIMEOUT

    def _vagrant(self, args: List[str], env: Optional[dict] = None) -> None:
        cmd = ['vagrant', *args]
        logger.info(f"Running {' '.join(cmd)} (log: {self.log_path})")
        try:
            with open(self.log_path, 'a') as log:
                subprocess.run(
                    cmd,
                    cwd=self.vagrant_dir,
                    env=env,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    check=True,
                    timeout=self.timeout
                )
        except subprocess.CalledProcessError as e:
            raise ProvisioningError(
                f"{' '.join(cmd)} exited with status {e.returncode}", self.log_tail()
            ) from e
        except (subprocess.TimeoutExpired, OSError) as e:
            raise ProvisioningError(f"{' '.join(cmd)} failed: {e}", self.log_tail()) from e

    def create(self, os_image: str, server_count: int, agent_count: int) -> Tuple[List[Host], List[Host]]:
        """Bring up ``server_count`` servers and ``agent_count`` agents.

        Returns:
            Tuple of (servers, agents) host descriptors

        Raises:
            ProvisioningError: If any VM fails to come up
        """
        if server_count < 1:
            raise ProvisioningError("at least one server is required")
        server_names, agent_names = node_names(server_count, agent_count)
        all_names = server_names + agent_names

        env = dict(os.environ)
        env.update(Config.passthrough_env())
        env["E2E_NODE_ROLES"] = " ".join(all_names)
        env["E2E_NODE_BOXES"] = " ".join([os_image] * len(all_names))

        logger.info(f"Provisioning {server_count} server(s) and {agent_count} agent(s) with {os_image}")
        # The first server must be up before the others can join it
        self._vagrant(['up', server_names[0]], env=env)
        if len(all_names) > 1:
            self._vagrant(['up', *all_names[1:]], env=env)

        servers = [Host(name, HostRole.SERVER, vagrant_dir=self.vagrant_dir) for name in server_names]
        agents = [Host(name, HostRole.AGENT, vagrant_dir=self.vagrant_dir) for name in agent_names]
        return servers, agents

    def destroy(self) -> None:
        """Destroy every VM defined in the Vagrant directory."""
        self._vagrant(['destroy', '-f'])

    def log_tail(self, lines: int = 50) -> str:
        """Return the last ``lines`` lines of the Vagrant log, if any."""
        try:
            with open(self.log_path, 'r') as f:
                return "".join(f.readlines()[-lines:])
        except OSError:
            return ""
