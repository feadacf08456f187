"""CUDA toolkit stage.

The stage is done only once the toolkit package is installed *and* the
profile script exporting its paths is written.
"""

from __future__ import annotations

import glob
import os

from nvsetup.core.engine.context import StageContext
from nvsetup.core.services.apt import apt_install, apt_purge, package_installed, remove_paths, write_root_file
from nvsetup.core.stages.base import Stage
from nvsetup.core.stages.vendor_repo import setup_vendor_repo

CUDA_PURGE = ["cuda*", "libcublas*", "libcusparse*", "libnccl*"]


def render_profile(cuda_home: str) -> str:
    """Shell profile exporting the toolkit paths for future login shells."""
    return (
        f"export CUDA_HOME={cuda_home}\n"
        f"export PATH={cuda_home}/bin:$PATH\n"
        f"export LD_LIBRARY_PATH={cuda_home}/lib64:$LD_LIBRARY_PATH\n"
    )


class CudaStage(Stage):
    stage_id = "cuda"
    removal_title = "Removing CUDA Toolkit"

    def __init__(self, version: str, package: str, record_id: str):
        self.version = version
        self.package = package
        self._record_id = record_id
        self.title = f"Installing CUDA Toolkit {version}"

    @property
    def record_id(self) -> str:
        return self._record_id

    def install(self, ctx: StageContext) -> None:
        settings = ctx.settings
        # The driver stage normally set the repository up already.
        if not package_installed(ctx, settings.cuda_keyring_package):
            setup_vendor_repo(ctx)

        apt_install(ctx, [self.package], step="install_toolkit")

        ctx.banner("Configuring CUDA environment variables")
        write_root_file(
            ctx,
            "write_profile",
            settings.cuda_profile_path,
            render_profile(settings.cuda_home),
        )

    def remove(self, ctx: StageContext) -> None:
        settings = ctx.settings
        apt_purge(ctx, CUDA_PURGE, step="purge_toolkit")
        trees = sorted(glob.glob(os.path.join(settings.cuda_install_root, "cuda*")))
        remove_paths(ctx, "remove_trees", trees)
        remove_paths(ctx, "remove_profile", [settings.cuda_profile_path])
