"""Exception hierarchy for cluster validation runs."""
from typing import Dict, Optional


class ValidationError(Exception):
    """Base class for every error raised by the harness."""
    pass


class ProvisioningError(ValidationError):
    """Host creation or destruction failed. Fatal to the whole run."""

    def __init__(self, message: str, log_tail: str = ""):
        super().__init__(message)
        self.log_tail = log_tail


class CommandError(ValidationError):
    """A single command exited nonzero or could not be executed."""

    def __init__(self, cmd: str, output: str = "", returncode: Optional[int] = None,
                 host: Optional[str] = None):
        self.cmd = cmd
        self.output = output
        self.returncode = returncode
        self.host = host
        where = f" on {host}" if host else ""
        detail = output.strip()
        message = f"failed cmd{where}: {cmd} (exit {returncode})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ParseError(ValidationError):
    """Command output could not be interpreted."""

    def __init__(self, message: str, line: Optional[str] = None):
        if line is not None:
            message = f"{message}: {line!r}"
        super().__init__(message)
        self.line = line


class AssertionMismatch(ValidationError):
    """Observed cluster state differs from the expected state."""
    pass


class ConvergenceTimeout(ValidationError):
    """A polling loop exhausted its deadline.

    The last error observed by the probe is kept on ``last_error`` so the
    report shows why convergence never happened.
    """

    def __init__(self, description: str, timeout: float, attempts: int,
                 elapsed: float, last_error: Optional[BaseException] = None):
        self.description = description
        self.timeout = timeout
        self.attempts = attempts
        self.elapsed = elapsed
        self.last_error = last_error
        message = (
            f"{description} did not converge within {timeout:g}s "
            f"({attempts} attempts, {elapsed:.1f}s elapsed)"
        )
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)


class HostFailures(ValidationError):
    """One or more hosts failed a fanned-out operation."""

    def __init__(self, operation: str, failures: Dict[str, BaseException]):
        self.operation = operation
        self.failures = dict(failures)
        hosts = ", ".join(sorted(self.failures))
        details = "; ".join(f"{name}: {err}" for name, err in sorted(self.failures.items()))
        super().__init__(f"{operation} failed on {hosts} ({details})")

    @property
    def hosts(self):
        return sorted(self.failures)
