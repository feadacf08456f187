"""
Platform probe — resolve the host's distribution identity once.

``lsb_release`` is the primary source. When it is missing or fails,
``/etc/os-release`` is parsed instead.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from nvsetup.core.engine.context import StageContext
from nvsetup.core.models.platform import PlatformDescriptor

logger = logging.getLogger(__name__)

OS_RELEASE = Path("/etc/os-release")


class UnsupportedPlatformError(Exception):
    """Raised when the host is outside the supported allow-list."""


def parse_os_release(text: str) -> dict[str, str]:
    """Parse KEY=value lines (shell-quoted values) into a dict."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw = line.partition("=")
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = [raw.strip("\"'")]
        values[key.strip()] = parts[0] if parts else ""
    return values


def detect_platform(ctx: StageContext, os_release: Path = OS_RELEASE) -> PlatformDescriptor:
    """Probe distribution id, release, codename and package architecture."""
    distro = ctx.probe("distro", ["lsb_release", "-is"])
    release = ctx.probe("release", ["lsb_release", "-rs"])
    codename = ctx.probe("codename", ["lsb_release", "-cs"])
    arch = ctx.probe("arch", ["dpkg", "--print-architecture"])

    fields = {
        "distro_id": distro.output.strip() if distro.ok else "",
        "release": release.output.strip() if release.ok else "",
        "codename": codename.output.strip() if codename.ok else "",
        "architecture": arch.output.strip() if arch.ok else "",
    }

    if not fields["release"] and os_release.is_file():
        logger.debug("lsb_release unavailable; reading %s", os_release)
        info = parse_os_release(os_release.read_text(encoding="utf-8"))
        fields["distro_id"] = fields["distro_id"] or info.get("ID", "").capitalize()
        fields["release"] = info.get("VERSION_ID", "")
        fields["codename"] = fields["codename"] or info.get("VERSION_CODENAME", "")

    platform = PlatformDescriptor(**fields)
    logger.debug("Platform: %s arch=%s", platform.label(), platform.architecture)
    return platform


def check_platform(
    platform: PlatformDescriptor,
    supported: list[str],
    *,
    force: bool = False,
) -> bool:
    """Allow-list precondition for install.

    Returns True when the platform is supported, False when it is not
    but ``force`` overrides the check.

    Raises:
        UnsupportedPlatformError: unsupported and not forced.
    """
    if platform.is_supported(supported):
        return True

    detected = platform.release or "unknown"
    if force:
        logger.warning("WARNING: Unsupported Ubuntu version (%s) detected.", platform.version or detected)
        logger.warning("Continuing because --force was specified. Expect issues.")
        return False

    allowed = " and ".join(f"{v[:2]}.{v[2:]} LTS" for v in supported)
    raise UnsupportedPlatformError(
        f"This tool officially supports only Ubuntu {allowed}. "
        f"Detected version: {detected}. "
        "Use '--force' to override this check at your own risk."
    )
