import threading

import pytest

from clustervalidate.modules.rke2.config import Budget, BudgetsConfig, ValidationConfig
from clustervalidate.modules.rke2.models import Host, HostRole


class FakeHost(Host):
    """Host double that answers commands from a table and records every call.

    ``responses`` maps a command substring to an output string, an exception
    to raise, or a callable returning either.
    """

    def __init__(self, name, role=HostRole.SERVER, responses=None, calls=None):
        super().__init__(name, role)
        self.responses = responses or {}
        self.calls = calls if calls is not None else []
        self._lock = threading.Lock()

    def run_cmd(self, cmd, timeout=None):
        with self._lock:
            self.calls.append((self.name, cmd))
        for key, value in self.responses.items():
            if key in cmd:
                if callable(value) and not isinstance(value, BaseException):
                    value = value()
                if isinstance(value, BaseException):
                    raise value
                return value
        return ""


class ScriptedRunner:
    """Local command runner double: each matching key yields its outputs in turn."""

    def __init__(self, script=None):
        self.script = {k: list(v) if isinstance(v, (list, tuple)) else [v] for k, v in (script or {}).items()}
        self.calls = []

    def __call__(self, cmd):
        self.calls.append(cmd)
        for key, outputs in self.script.items():
            if key in cmd:
                value = outputs.pop(0) if len(outputs) > 1 else outputs[0]
                if isinstance(value, BaseException):
                    raise value
                return value
        return ""


@pytest.fixture
def fake_host():
    return FakeHost


@pytest.fixture
def scripted_runner():
    return ScriptedRunner


@pytest.fixture
def fast_config():
    """Validation config whose every budget is short enough for unit tests."""
    fast = Budget(timeout=0.5, interval=0.01)
    budgets = BudgetsConfig(**{name: fast for name in BudgetsConfig.model_fields})
    return ValidationConfig(budgets=budgets)
