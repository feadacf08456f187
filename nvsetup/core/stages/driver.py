"""Kernel driver stage."""

from __future__ import annotations

from nvsetup.core.engine.context import StageContext
from nvsetup.core.services.apt import apt_install, apt_purge
from nvsetup.core.stages.base import Stage
from nvsetup.core.stages.vendor_repo import setup_vendor_repo

BUILD_PREREQS = ["build-essential", "dkms", "software-properties-common"]
DRIVER_PURGE = ["nvidia-*", "libnvidia-*"]


class DriverStage(Stage):
    stage_id = "driver"
    removal_title = "Removing NVIDIA Drivers and Libraries"

    def __init__(self, branch: str, package: str, record_id: str):
        self.branch = branch
        self.package = package
        self._record_id = record_id
        self.title = f"Installing NVIDIA Driver {branch}"

    @property
    def record_id(self) -> str:
        return self._record_id

    def install(self, ctx: StageContext) -> None:
        ctx.banner("Installing dependencies")
        kernel = ctx.probe("kernel_release", ["uname", "-r"]).output.strip()
        headers = [f"linux-headers-{kernel}"] if kernel else []
        apt_install(ctx, [*headers, *BUILD_PREREQS], step="install_prereqs")

        setup_vendor_repo(ctx)

        ctx.banner(f"Installing {self.package} (from Official Repo)")
        apt_install(ctx, [self.package], step="install_driver")

    def remove(self, ctx: StageContext) -> None:
        apt_purge(ctx, DRIVER_PURGE, step="purge_driver")
