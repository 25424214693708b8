"""
Command execution on the harness host and on cluster members via ``vagrant ssh``.

Every call here is single shot. Retrying belongs to the polling engine.
"""
import logging
import shlex
import subprocess
from typing import Optional

from clustervalidate.config import Config
from clustervalidate.modules.rke2.errors import CommandError

logger = logging.getLogger("ssh")


def _run(argv, cmd: str, host: Optional[str], timeout: Optional[int], cwd: Optional[str],
         shell: bool = False) -> str:
    """Run ``argv`` and return combined stdout+stderr.

    ``cmd`` is the logical command string reported on failure.
    """
    if timeout is None:
        timeout = Config.COMMAND_TIMEOUT
    where = host or "local"
    logger.debug(f"[{where}] $ {cmd}")
    try:
        result = subprocess.run(
            argv,
            shell=shell,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout
        )
    except subprocess.TimeoutExpired as e:
        output = e.output if isinstance(e.output, str) else ""
        raise CommandError(cmd, f"{output}\ncommand timed out after {timeout} seconds".strip(),
                           returncode=None, host=host) from e
    except OSError as e:
        raise CommandError(cmd, str(e), returncode=None, host=host) from e

    output = result.stdout or ""
    if result.returncode != 0:
        logger.debug(f"[{where}] exit {result.returncode}: {output.strip()}")
        raise CommandError(cmd, output, returncode=result.returncode, host=host)
    return output


def run_local(cmd: str, timeout: Optional[int] = None, cwd: Optional[str] = None) -> str:
    """Run a shell command from the harness host.

    Args:
        cmd: Shell command line, e.g. ``kubectl get nodes --kubeconfig=...``
        timeout: Seconds before the command is abandoned
        cwd: Working directory for the command

    Returns:
        Combined stdout and stderr

    Raises:
        CommandError: If the command exits nonzero or times out
    """
    return _run(cmd, cmd, None, timeout, cwd, shell=True)


def vagrant_ssh_argv(host: str, cmd: str) -> list:
    """Build the argv that runs ``cmd`` on ``host`` through ``vagrant ssh``."""
    return ['vagrant', 'ssh', host, '-c', cmd]


def run_on_host(host: str, cmd: str, timeout: Optional[int] = None,
                cwd: Optional[str] = None) -> str:
    """Run a literal command string on a cluster member.

    Args:
        host: Vagrant machine name, e.g. ``server-0``
        cmd: Command executed verbatim on the remote shell
        timeout: Seconds before the command is abandoned
        cwd: Directory holding the Vagrantfile (defaults to ``Config.VAGRANT_DIR``)

    Returns:
        Combined stdout and stderr

    Raises:
        CommandError: If the remote command exits nonzero, carrying host and command
    """
    if cwd is None:
        cwd = Config.VAGRANT_DIR
    argv = vagrant_ssh_argv(host, cmd)
    logger.debug("Remote argv: %s", " ".join(shlex.quote(a) for a in argv))
    return _run(argv, cmd, host, timeout, cwd)
