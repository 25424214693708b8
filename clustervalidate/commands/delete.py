import os
import typer

from clustervalidate.config import Config
from clustervalidate.modules.rke2.errors import ProvisioningError
from clustervalidate.modules.vagrant import VagrantProvisioner

app = typer.Typer()


@app.command("cluster")
def delete_cluster_cmd(
    vagrant_dir: str = typer.Option(Config.VAGRANT_DIR, "--vagrant-dir", help="Directory holding the Vagrantfile"),
    kubeconfig: str = typer.Option("server-0-kubeconfig.yaml", help="Generated kubeconfig to remove"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    dry_run: bool = typer.Option(False, help="Show what would be deleted without removing")
):
    """Destroy a cluster that a failed run left behind for inspection."""
    if dry_run:
        print(f"🧪 Would run 'vagrant destroy -f' in {vagrant_dir}")
        print(f"🧪 Would delete: {kubeconfig}")
        return

    if not yes:
        confirm = typer.confirm(f"Are you sure you want to destroy the cluster in '{vagrant_dir}'?", default=False)
        if not confirm:
            print("❌ Deletion cancelled.")
            raise typer.Exit()

    try:
        VagrantProvisioner(vagrant_dir).destroy()
    except ProvisioningError as e:
        print(f"❌ {e}")
        raise typer.Exit(code=1)

    path = os.path.expanduser(kubeconfig)
    if os.path.exists(path):
        os.remove(path)
        print(f"🧹 Removed file: {path}")
    else:
        print(f"🔍 File not found (skipped): {path}")

    print("✅ Cluster deletion complete.")
