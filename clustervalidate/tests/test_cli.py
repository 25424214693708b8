import pytest
from typer.testing import CliRunner

from clustervalidate.cli import app
from clustervalidate.commands import validate as validate_cmd
from clustervalidate.modules.rke2.errors import ProvisioningError

runner = CliRunner()


class FailingProvisioner:
    instances = []

    def __init__(self, vagrant_dir=None):
        self.vagrant_dir = vagrant_dir
        self.destroyed = 0
        FailingProvisioner.instances.append(self)

    def create(self, os_image, server_count, agent_count):
        raise ProvisioningError("vagrant up exited with status 1", log_tail="==> server-0: boom")

    def destroy(self):
        self.destroyed += 1


@pytest.fixture
def failing_provisioner(monkeypatch):
    FailingProvisioner.instances = []
    monkeypatch.setattr(validate_cmd, "VagrantProvisioner", FailingProvisioner)
    monkeypatch.delenv("RKE2_VALIDATE_LOG_FILE", raising=False)
    return FailingProvisioner


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "validate" in result.stdout
    assert "delete" in result.stdout


def test_validate_cluster_help():
    result = runner.invoke(app, ["validate", "cluster", "--help"])
    assert result.exit_code == 0
    assert "--server-count" in result.stdout
    assert "--ci" in result.stdout


def test_rejects_zero_servers():
    result = runner.invoke(app, ["validate", "cluster", "--server-count", "0"])
    assert result.exit_code == 2


def test_rejects_missing_config(tmp_path):
    result = runner.invoke(app, ["validate", "cluster", "--config", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 2
    assert "Invalid configuration" in result.stdout


def test_failed_run_preserves_cluster_outside_ci(failing_provisioner, tmp_path):
    report = tmp_path / "report.json"
    result = runner.invoke(app, ["validate", "cluster", "--report-file", str(report)])
    assert result.exit_code == 1
    assert "FAILED!" in result.stdout
    assert "0 passed, 1 failed, 13 skipped" in result.stdout
    assert failing_provisioner.instances[0].destroyed == 0
    assert report.exists()


def test_failed_run_destroys_cluster_on_ci(failing_provisioner):
    result = runner.invoke(app, ["validate", "cluster", "--ci"])
    assert result.exit_code == 1
    assert "FAILED!" not in result.stdout
    assert failing_provisioner.instances[0].destroyed == 1


def test_delete_dry_run(tmp_path):
    result = runner.invoke(app, ["delete", "cluster", "--vagrant-dir", str(tmp_path), "--dry-run"])
    assert result.exit_code == 0
    assert "Would run 'vagrant destroy -f'" in result.stdout


def test_delete_cancelled(tmp_path):
    result = runner.invoke(app, ["delete", "cluster", "--vagrant-dir", str(tmp_path)], input="n\n")
    assert result.exit_code == 0
    assert "Deletion cancelled" in result.stdout
