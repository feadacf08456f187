"""NVIDIA Container Toolkit stage.

Fetching the signing key is retried a fixed number of times; running
out of attempts fails the stage before any package is installed. The
stage is recorded only after the runtime is registered with Docker and
``nvidia-ctk`` answers a version probe.
"""

from __future__ import annotations

from nvsetup.core.engine.context import StageContext
from nvsetup.core.models.action import Receipt
from nvsetup.core.reliability.retry import RetryPolicy, retry_fixed
from nvsetup.core.services.apt import (
    apt_autoremove,
    apt_install,
    apt_purge,
    apt_update,
    dearmor,
    fetch,
    remove_paths,
    write_root_file,
)
from nvsetup.core.stages.base import Stage

# sed/curl misbehave under some locales
C_LOCALE = {"LC_ALL": "C"}


def sign_source_list(source_list: str, keyring: str) -> str:
    """Pin every ``deb https://`` line of a source list to ``keyring``."""
    return source_list.replace("deb https://", f"deb [signed-by={keyring}] https://")


class ContainerToolkitStage(Stage):
    stage_id = "container_toolkit"
    title = "Installing NVIDIA Container Toolkit"
    removal_title = "Removing NVIDIA Container Toolkit"

    def __init__(self, version: str, record_id: str):
        self.version = version
        self._record_id = record_id

    @property
    def record_id(self) -> str:
        return self._record_id

    def install(self, ctx: StageContext) -> None:
        settings = ctx.settings

        # Old list first so apt never sees duplicate entries
        remove_paths(ctx, "remove_old_source", [settings.toolkit_list])

        self._install_key(ctx)

        listing = fetch(ctx, "fetch_source", settings.toolkit_list_url, ipv4=True, env=C_LOCALE)
        write_root_file(
            ctx,
            "write_source",
            settings.toolkit_list,
            sign_source_list(listing.output, settings.toolkit_keyring),
        )
        apt_update(ctx)

        pinned = [f"{pkg}={self.version}" for pkg in settings.toolkit_packages]
        apt_install(ctx, pinned, step="install_toolkit")

        ctx.run("configure_runtime", ["nvidia-ctk", "runtime", "configure", "--runtime=docker"])
        ctx.run("restart_docker", ["systemctl", "restart", "docker"])

        ctx.banner("Verifying NVIDIA Container Toolkit installation")
        ctx.run("verify", ["nvidia-ctk", "--version"], privileged=False)

    def _install_key(self, ctx: StageContext) -> None:
        settings = ctx.settings
        policy = RetryPolicy(
            max_attempts=settings.key_fetch_attempts,
            delay=settings.key_fetch_delay,
        )

        def attempt(n: int) -> Receipt:
            key = fetch(ctx, "fetch_key", settings.toolkit_gpg_url, ipv4=True, env=C_LOCALE, check=False)
            if key.failed:
                return key
            return dearmor(ctx, "import_key", key.output, settings.toolkit_keyring, env=C_LOCALE, check=False)

        outcome = retry_fixed(
            "Download of the NVIDIA GPG key",
            attempt,
            lambda r: not r.failed,
            policy,
            sleep=ctx.sleep,
            describe=lambda r: r.error or "failed",
        )
        if outcome.succeeded:
            return

        last = outcome.result
        assert last is not None
        ctx.require(
            "fetch_key",
            Receipt.failure(
                adapter=last.adapter,
                action_id=last.action_id,
                error=f"Failed to download NVIDIA GPG key after {outcome.attempt} attempts.",
                metadata={"return_code": 1, "attempts": outcome.attempt},
            ),
        )

    def remove(self, ctx: StageContext) -> None:
        settings = ctx.settings
        apt_purge(ctx, settings.toolkit_packages, step="purge_toolkit")
        remove_paths(ctx, "remove_source", [settings.toolkit_list])
        remove_paths(ctx, "remove_keyring", [settings.toolkit_keyring])
        apt_autoremove(ctx, step="autoremove_toolkit")
        ctx.banner("NVIDIA Container Toolkit fully uninstalled.")
        remove_paths(ctx, "remove_config", [settings.toolkit_config_dir])
