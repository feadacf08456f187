"""
PlatformDescriptor — the host identity resolved once at startup.
"""

from __future__ import annotations

from pydantic import BaseModel


class PlatformDescriptor(BaseModel):
    """Distribution identity of the host.

    ``release`` is what ``lsb_release -rs`` prints (``"22.04"``);
    ``version`` is the numeric form used for allow-list checks and
    repository URLs (``"2204"``).
    """

    distro_id: str = ""
    release: str = ""
    codename: str = ""
    architecture: str = ""

    model_config = {"frozen": True}

    @property
    def version(self) -> str:
        return self.release.replace(".", "").replace("\r", "").strip()

    def is_supported(self, allowed: list[str]) -> bool:
        return self.version in allowed

    def capped_version(self, cap: str) -> str:
        """Numeric version, clamped to ``cap`` for vendor repo URLs."""
        if self.version.isdigit() and cap.isdigit() and int(self.version) > int(cap):
            return cap
        return self.version

    def label(self) -> str:
        name = self.distro_id or "unknown"
        return f"{name} {self.release or '?'} ({self.codename or '?'})"
