"""
NVIDIA vendor repository setup, shared by the driver and CUDA stages.

Safe to call more than once: the keyring package is reinstalled over
itself and the legacy PPA is only removed when present.
"""

from __future__ import annotations

import logging
import os
import tempfile

from nvsetup.core.engine.context import StageContext
from nvsetup.core.services.apt import apt_update, download

logger = logging.getLogger(__name__)


def legacy_ppa_present(ctx: StageContext) -> bool:
    """Whether any apt source still points at the graphics-drivers PPA."""
    needle = ctx.settings.legacy_ppa.removeprefix("ppa:")
    r = ctx.probe("find_ppa", ["grep", "-rqs", needle, *ctx.settings.apt_sources])
    return r.ok


def vendor_repo_url(ctx: StageContext) -> str:
    version = ctx.platform.capped_version(ctx.settings.repo_version_cap)
    base = ctx.settings.cuda_repo_url.format(version=version)
    return f"{base}/{ctx.settings.cuda_keyring_deb}"


def setup_vendor_repo(ctx: StageContext) -> None:
    """Install the cuda-keyring package and refresh the package index."""
    ctx.banner("Setting up NVIDIA Official Repository")
    settings = ctx.settings

    if legacy_ppa_present(ctx):
        ctx.banner("Removing graphics-drivers PPA...")
        ctx.run(
            "remove_ppa",
            ["add-apt-repository", "--remove", "-y", settings.legacy_ppa],
            check=False,
        )

    url = vendor_repo_url(ctx)
    with tempfile.TemporaryDirectory(prefix="nvsetup-") as tmp:
        deb = os.path.join(tmp, settings.cuda_keyring_deb)
        download(ctx, "download_keyring", url, deb)
        ctx.run("install_keyring", ["dpkg", "-i", deb])
        apt_update(ctx)
    logger.debug("Vendor repository ready (%s)", url)
