"""Provisioning stages and the two fixed stage lists."""

from nvsetup.core.config.loader import Settings
from nvsetup.core.stages.base import SkippedStage, Stage, StageOutcome
from nvsetup.core.stages.container_toolkit import ContainerToolkitStage
from nvsetup.core.stages.cuda import CudaStage
from nvsetup.core.stages.docker import DockerStage
from nvsetup.core.stages.driver import DriverStage
from nvsetup.core.stages.maintenance import AutoremoveStage, FixBrokenStage


def build_install_stages(settings: Settings, *, skip_cuda: bool = False) -> list[Stage]:
    """Install pipeline, in order. ``skip_cuda`` leaves the toolkit stage as a logged skip."""
    stages: list[Stage] = [
        DriverStage(settings.driver_branch, settings.driver_package, settings.driver_stage_id),
    ]
    if skip_cuda:
        stages.append(SkippedStage("cuda", "Skipped CUDA Toolkit installation (--no-cuda flag detected)"))
    else:
        stages.append(CudaStage(settings.cuda_version, settings.cuda_package, settings.cuda_stage_id))
    stages.append(DockerStage())
    stages.append(ContainerToolkitStage(settings.toolkit_version, settings.toolkit_stage_id))
    return stages


def build_teardown_stages(settings: Settings) -> list[Stage]:
    """Teardown pipeline: every artifact category, whatever was recorded."""
    return [
        FixBrokenStage(),
        *build_install_stages(settings),
        AutoremoveStage(),
    ]


__all__ = [
    "AutoremoveStage",
    "ContainerToolkitStage",
    "CudaStage",
    "DockerStage",
    "DriverStage",
    "FixBrokenStage",
    "SkippedStage",
    "Stage",
    "StageOutcome",
    "build_install_stages",
    "build_teardown_stages",
]
