"""
Package-manager and host-file helpers shared by the stages.

Each helper is one external command run through the stage context,
so it is logged, elevated, dry-run aware and mockable like any other
step. Root-owned files are written with ``tee`` and removed with
``rm -rf`` for the same reason.
"""

from __future__ import annotations

import logging
from typing import Sequence

from nvsetup.core.engine.context import StageContext
from nvsetup.core.models.action import Receipt

logger = logging.getLogger(__name__)


def apt_update(ctx: StageContext, *, step: str = "apt_update", check: bool = True) -> Receipt:
    return ctx.run(step, ["apt-get", "update"], check=check)


def apt_install(
    ctx: StageContext,
    packages: Sequence[str],
    *,
    step: str = "apt_install",
) -> Receipt:
    return ctx.run(step, ["apt-get", "install", "-y", *packages])


def apt_purge(
    ctx: StageContext,
    patterns: Sequence[str],
    *,
    step: str = "apt_purge",
) -> Receipt:
    """Purge packages; apt expands the glob patterns itself."""
    return ctx.run(step, ["apt-get", "purge", "-y", *patterns])


def apt_fix_broken(ctx: StageContext) -> Receipt:
    return ctx.run("fix_broken", ["apt-get", "--fix-broken", "install", "-y"])


def apt_autoremove(ctx: StageContext, *, step: str = "autoremove") -> Receipt:
    return ctx.run(step, ["apt-get", "autoremove", "--purge", "-y"])


def apt_clean(ctx: StageContext) -> Receipt:
    return ctx.run("apt_clean", ["apt-get", "clean"], check=False)


def package_installed(ctx: StageContext, package: str) -> bool:
    """Whether dpkg reports ``package`` as installed."""
    r = ctx.probe(
        f"query_{package}",
        ["dpkg-query", "-W", "-f=${Status}", package],
    )
    return r.ok and "install ok installed" in r.output


def fetch(
    ctx: StageContext,
    step: str,
    url: str,
    *,
    ipv4: bool = False,
    env: dict[str, str] | None = None,
    check: bool = True,
) -> Receipt:
    """Fetch a remote text resource over HTTPS; the body is the receipt output."""
    argv = ["curl", "-fsSL"]
    if ipv4:
        argv.append("-4")
    argv.append(url)
    return ctx.run(step, argv, privileged=False, env=env, check=check)


def download(ctx: StageContext, step: str, url: str, dest: str) -> Receipt:
    return ctx.run(step, ["curl", "-fsSL", "-o", dest, url], privileged=False)


def dearmor(
    ctx: StageContext,
    step: str,
    armored: str,
    dest: str,
    *,
    env: dict[str, str] | None = None,
    check: bool = True,
) -> Receipt:
    """Import an ASCII-armored signing key into a binary keyring file."""
    return ctx.run(
        step,
        ["gpg", "--dearmor", "--yes", "-o", dest],
        input_text=armored,
        env=env,
        check=check,
    )


def write_root_file(ctx: StageContext, step: str, path: str, content: str) -> Receipt:
    """Write ``content`` to a root-owned file, replacing it."""
    return ctx.run(step, ["tee", path], input_text=content)


def make_dir(ctx: StageContext, step: str, path: str, mode: str = "0755") -> Receipt:
    return ctx.run(step, ["install", "-m", mode, "-d", path])


def remove_paths(
    ctx: StageContext,
    step: str,
    paths: Sequence[str],
    *,
    check: bool = True,
) -> Receipt | None:
    """``rm -rf`` the given paths. Nothing runs when the list is empty."""
    if not paths:
        logger.debug("%s: nothing to remove", step)
        return None
    return ctx.run(step, ["rm", "-rf", *paths], check=check)
