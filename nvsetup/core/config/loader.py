"""
Configuration loader — pinned versions, URLs and paths.

Every version string and filesystem location the stages use lives in
``Settings``. The defaults describe the supported target; an optional
``nvsetup.yml`` overrides any of them without touching stage code.

Resolution order for the file:
    --config flag  >  NVSETUP_CONFIG env var  >  nvsetup.yml found upward from cwd
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILE = "nvsetup.yml"
CONFIG_ENV = "NVSETUP_CONFIG"
LOG_DIR_ENV = "NVSETUP_LOG_DIR"


class ConfigError(Exception):
    """Raised when the configuration file is invalid or missing."""


class Settings(BaseModel):
    """Named constants for the provisioning pipeline."""

    # ── Platform ────────────────────────────────────────────────
    supported_versions: list[str] = Field(default_factory=lambda: ["2204", "2404"])
    repo_version_cap: str = "2404"
    force_pause_seconds: float = 3.0

    # ── Driver / vendor repository ──────────────────────────────
    driver_branch: str = "580"
    driver_flavor: str = "open"
    cuda_keyring_package: str = "cuda-keyring"
    cuda_keyring_deb: str = "cuda-keyring_1.1-1_all.deb"
    cuda_repo_url: str = "https://developer.download.nvidia.com/compute/cuda/repos/ubuntu{version}/x86_64"
    legacy_ppa: str = "ppa:graphics-drivers/ppa"
    apt_sources: list[str] = Field(
        default_factory=lambda: ["/etc/apt/sources.list", "/etc/apt/sources.list.d"]
    )

    # ── CUDA toolkit ────────────────────────────────────────────
    cuda_version: str = "13.0"
    cuda_home: str = "/usr/local/cuda"
    cuda_install_root: str = "/usr/local"
    cuda_profile_path: str = "/etc/profile.d/cuda.sh"

    # ── Docker ──────────────────────────────────────────────────
    docker_gpg_url: str = "https://download.docker.com/linux/ubuntu/gpg"
    docker_repo_url: str = "https://download.docker.com/linux/ubuntu"
    docker_keyring: str = "/etc/apt/keyrings/docker.gpg"
    docker_list: str = "/etc/apt/sources.list.d/docker.list"
    docker_packages: list[str] = Field(
        default_factory=lambda: [
            "docker-ce",
            "docker-ce-cli",
            "containerd.io",
            "docker-buildx-plugin",
            "docker-compose-plugin",
        ]
    )
    docker_state_dirs: list[str] = Field(
        default_factory=lambda: ["/var/lib/docker", "/var/lib/containerd", "/etc/docker"]
    )

    # ── NVIDIA Container Toolkit ────────────────────────────────
    toolkit_version: str = "1.17.8-1"
    toolkit_gpg_url: str = "https://nvidia.github.io/libnvidia-container/gpgkey"
    toolkit_list_url: str = (
        "https://nvidia.github.io/libnvidia-container/stable/deb/nvidia-container-toolkit.list"
    )
    toolkit_keyring: str = "/usr/share/keyrings/nvidia-container-toolkit-keyring.gpg"
    toolkit_list: str = "/etc/apt/sources.list.d/nvidia-container-toolkit.list"
    toolkit_config_dir: str = "/etc/nvidia-container-runtime"
    toolkit_packages: list[str] = Field(
        default_factory=lambda: [
            "nvidia-container-toolkit",
            "nvidia-container-toolkit-base",
            "libnvidia-container-tools",
            "libnvidia-container1",
        ]
    )
    key_fetch_attempts: int = 5
    key_fetch_delay: float = 5.0

    # ── Execution ───────────────────────────────────────────────
    log_dir: str = "./logs"
    command_timeout: int = 1800
    keepalive_interval: float = 60.0

    # ── Derived names ───────────────────────────────────────────

    @property
    def driver_package(self) -> str:
        suffix = f"-{self.driver_flavor}" if self.driver_flavor else ""
        return f"nvidia-driver-{self.driver_branch}{suffix}"

    @property
    def driver_stage_id(self) -> str:
        return f"driver_{self.driver_branch}"

    @property
    def cuda_package(self) -> str:
        return "cuda-toolkit-" + self.cuda_version.replace(".", "-")

    @property
    def cuda_stage_id(self) -> str:
        return "cuda" + self.cuda_version.split(".")[0]

    @property
    def toolkit_stage_id(self) -> str:
        base = self.toolkit_version.split("-")[0]
        return "toolkit_" + base.replace(".", "_")

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir) / "install.log"

    @property
    def record_path(self) -> Path:
        return Path(self.log_dir) / "installed.list"

    @property
    def audit_path(self) -> Path:
        return Path(self.log_dir) / "audit.ndjson"


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for nvsetup.yml starting from the given directory, walking up."""
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def load_settings(path: Path | None = None, log_dir: str | Path | None = None) -> Settings:
    """Load settings, applying file and environment overrides.

    Args:
        path: Explicit config file. If None, NVSETUP_CONFIG and then an
            upward search for nvsetup.yml are tried; no file means defaults.
        log_dir: Explicit log directory (highest precedence).

    Raises:
        ConfigError: If an explicit file is missing or any file is invalid.
    """
    if path is None and os.environ.get(CONFIG_ENV):
        path = Path(os.environ[CONFIG_ENV])
        if not path.is_file():
            raise ConfigError(f"{CONFIG_ENV} points to a missing file: {path}")
    elif path is None:
        path = find_config_file()
    elif not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    data: dict = {}
    if path is not None:
        logger.debug("Loading settings from %s", path)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e

        try:
            loaded = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Expected a YAML mapping in {path}, got {type(loaded).__name__}")
        data = loaded

    if os.environ.get(LOG_DIR_ENV):
        data["log_dir"] = os.environ[LOG_DIR_ENV]
    if log_dir:
        data["log_dir"] = str(log_dir)

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
