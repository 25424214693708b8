"""Validation run configuration.

Configuration is loaded with the following precedence:
1. Explicitly passed config file
2. Environment variables (``RKE2_VALIDATE_LOG_LEVEL`` etc.)
3. Default configuration paths
4. Default values
"""
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List, Union
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .poll import PollBudget

logger = logging.getLogger("rke2.config")

# Default configuration paths
DEFAULT_CONFIG_PATHS = [
    Path("/etc/clustervalidate/config.yaml"),
    Path("~/.config/clustervalidate/config.yaml").expanduser(),
    Path("clustervalidate.yaml").absolute(),
]


class Budget(BaseModel):
    """Timeout and polling interval for one check, in seconds."""
    model_config = ConfigDict(extra="forbid")

    timeout: float
    interval: float

    @field_validator('interval')
    @classmethod
    def positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("interval must be positive")
        return v

    def to_poll_budget(self) -> PollBudget:
        return PollBudget(self.timeout, self.interval)


def _budget(timeout: float, interval: float):
    return Field(default_factory=lambda: Budget(timeout=timeout, interval=interval))


class BudgetsConfig(BaseModel):
    """Per-check convergence budgets."""
    model_config = ConfigDict(extra="ignore")

    node_ready: Budget = _budget(420, 5)
    pod_ready: Budget = _budget(420, 5)
    clusterip_pods: Budget = _budget(240, 5)
    nodeport_curl: Budget = _budget(5, 1)
    nodeport_pods: Budget = _budget(120, 5)
    loadbalancer_pods: Budget = _budget(240, 5)
    loadbalancer_curl: Budget = _budget(240, 5)
    ingress: Budget = _budget(240, 5)
    daemonset: Budget = _budget(240, 10)
    dns: Budget = _budget(120, 2)
    pvc_bound: Budget = _budget(120, 2)
    volume_pod: Budget = _budget(420, 2)
    volume_read: Budget = _budget(180, 2)
    restart: Budget = _budget(1120, 5)
    service_active: Budget = _budget(120, 5)
    rotation_nodes: Budget = _budget(1120, 5)
    rotation_pods: Budget = _budget(1120, 5)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    file: Optional[str] = Field(
        default=None,
        description="Path to log file (if None, logs to stderr)"
    )
    max_size_mb: int = Field(
        default=100,
        description="Maximum log file size in MB before rotation"
    )
    backup_count: int = Field(
        default=5,
        description="Number of backup log files to keep"
    )

    @field_validator('level')
    @classmethod
    def known_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {v}")
        return v


class ValidationConfig(BaseModel):
    """Cluster validation configuration."""
    model_config = ConfigDict(extra="ignore")

    budgets: BudgetsConfig = Field(default_factory=BudgetsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    workload_dir: Optional[str] = Field(
        default=None,
        description="Directory holding the test workload manifests"
    )
    external_interface: str = Field(
        default="eth1",
        description="Interface whose address is the node's external IP"
    )
    server_tls_dir: str = Field(
        default="/var/lib/rancher/rke2/server",
        description="Directory holding tls/ and rotated tls-<timestamp>/ directories"
    )
    config_paths: List[Path] = Field(
        default_factory=lambda: list(DEFAULT_CONFIG_PATHS),
        exclude=True  # Don't include in serialization
    )

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> 'ValidationConfig':
        """Load configuration from file and environment variables."""
        config_data: Dict[str, Any] = {}

        # Try to load from explicit path if provided
        if config_path:
            config_path = Path(config_path).expanduser().absolute()
            if not config_path.exists():
                raise FileNotFoundError(f"Config file not found: {config_path}")
            config_data = cls._load_config_file(config_path)
        else:
            # Try default paths
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        # Environment overrides
        env_level = os.getenv("RKE2_VALIDATE_LOG_LEVEL")
        if env_level:
            config_data.setdefault("logging", {})["level"] = env_level
        env_log_file = os.getenv("RKE2_VALIDATE_LOG_FILE")
        if env_log_file:
            config_data.setdefault("logging", {})["file"] = env_log_file

        return cls(**config_data)

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        logger.debug(f"Loaded validation config from {path}")
        return data

    def budget(self, name: str) -> PollBudget:
        """Return the poll budget for the named check."""
        return getattr(self.budgets, name).to_poll_budget()
