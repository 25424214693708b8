"""Configuration management for the clustervalidate application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration with sensible defaults."""

    # Cluster shape
    NODE_OS: str = os.getenv("NODE_OS", "bento/ubuntu-24.04")
    SERVER_COUNT: int = int(os.getenv("SERVER_COUNT", "3"))
    AGENT_COUNT: int = int(os.getenv("AGENT_COUNT", "1"))

    # Running on CI: clusters are always destroyed, even after a failed run
    CI: bool = _env_bool("E2E_CI")

    # Paths
    VAGRANT_DIR: str = os.getenv("VAGRANT_DIR", os.getcwd())
    WORKLOAD_DIR: str = os.getenv("WORKLOAD_DIR", os.path.join(os.getcwd(), "resource_files"))
    VAGRANT_LOG: str = os.getenv("VAGRANT_LOG_FILE", "vagrant.log")

    # Timeouts (in seconds)
    COMMAND_TIMEOUT: int = int(os.getenv("COMMAND_TIMEOUT", "300"))
    PROVISION_TIMEOUT: int = int(os.getenv("PROVISION_TIMEOUT", "3600"))

    # Variables handed through to the Vagrantfile
    PASSTHROUGH_ENV: tuple = (
        "E2E_CNI",
        "E2E_RELEASE_VERSION",
        "E2E_RELEASE_CHANNEL",
        "E2E_GOCOVER",
        "E2E_REGISTRY",
    )

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    @classmethod
    def passthrough_env(cls) -> dict:
        """Return the E2E_* variables that are set in the environment."""
        return {k: os.environ[k] for k in cls.PASSTHROUGH_ENV if os.environ.get(k)}
