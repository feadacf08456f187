"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from nvsetup.adapters.mock import MockAdapter
from nvsetup.adapters.registry import AdapterRegistry
from nvsetup.core.config.loader import CONFIG_ENV, LOG_DIR_ENV, Settings
from nvsetup.core.engine.context import StageContext
from nvsetup.core.models.platform import PlatformDescriptor
from nvsetup.core.privilege import Privilege

JAMMY = PlatformDescriptor(
    distro_id="Ubuntu",
    release="22.04",
    codename="jammy",
    architecture="amd64",
)


def script_platform(mock: MockAdapter, release: str = "22.04", codename: str = "jammy") -> None:
    """Make the mock answer the platform probes like an Ubuntu host."""
    mock.set_output("platform.distro", "Ubuntu\n")
    mock.set_output("platform.release", f"{release}\n")
    mock.set_output("platform.codename", f"{codename}\n")
    mock.set_output("platform.arch", "amd64\n")


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host configuration out of every test."""
    monkeypatch.delenv(CONFIG_ENV, raising=False)
    monkeypatch.delenv(LOG_DIR_ENV, raising=False)
    monkeypatch.delenv("NVSETUP_LOG_LEVEL", raising=False)
    monkeypatch.setenv("SUDO_USER", "dev")
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in tmp_path, with no waiting anywhere."""
    return Settings(
        log_dir=str(tmp_path / "logs"),
        cuda_install_root=str(tmp_path / "usr-local"),
        key_fetch_delay=0,
        force_pause_seconds=0,
    )


@pytest.fixture
def mock() -> MockAdapter:
    m = MockAdapter(adapter_name="shell")
    script_platform(m)
    return m


@pytest.fixture
def registry(mock: MockAdapter) -> AdapterRegistry:
    r = AdapterRegistry()
    r.register(mock)
    return r


@pytest.fixture
def sleeps() -> list[float]:
    """Records every sleep request instead of sleeping."""
    return []


@pytest.fixture
def ctx(registry: AdapterRegistry, settings: Settings, sleeps: list[float]) -> StageContext:
    return StageContext(
        registry=registry,
        settings=settings,
        platform=JAMMY,
        privilege=Privilege(),
        sleep=sleeps.append,
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """nvsetup.yml that removes every pause."""
    path = tmp_path / "nvsetup.yml"
    path.write_text(
        "key_fetch_delay: 0\n"
        "force_pause_seconds: 0\n"
        f"cuda_install_root: {tmp_path / 'usr-local'}\n"
    )
    return path
