"""Docker CE stage: repository, engine packages, docker group membership."""

from __future__ import annotations

import os

from nvsetup.core.engine.context import StageContext
from nvsetup.core.models.action import Receipt
from nvsetup.core.services.apt import (
    apt_install,
    apt_purge,
    apt_update,
    dearmor,
    fetch,
    make_dir,
    remove_paths,
    write_root_file,
)
from nvsetup.core.stages.base import Stage

REPO_PREREQS = ["ca-certificates", "curl", "gnupg", "lsb-release"]


def invoking_user() -> str:
    """The human behind sudo, or the current user."""
    return os.environ.get("SUDO_USER") or os.environ.get("USER") or ""


def render_source(arch: str, keyring: str, repo_url: str, codename: str) -> str:
    return f"deb [arch={arch} signed-by={keyring}] {repo_url} {codename} stable\n"


class DockerStage(Stage):
    stage_id = "docker"
    title = "Setting up Docker repo"
    removal_title = "Removing Docker"

    @property
    def record_id(self) -> str:
        return "docker"

    def install(self, ctx: StageContext) -> None:
        settings = ctx.settings
        apt_install(ctx, REPO_PREREQS, step="install_prereqs")
        make_dir(ctx, "keyring_dir", os.path.dirname(settings.docker_keyring))

        key = fetch(ctx, "fetch_key", settings.docker_gpg_url)
        dearmor(ctx, "import_key", key.output, settings.docker_keyring)

        arch = ctx.platform.architecture or "amd64"
        source = render_source(
            arch,
            settings.docker_keyring,
            settings.docker_repo_url,
            ctx.platform.codename,
        )
        write_root_file(ctx, "write_source", settings.docker_list, source)

        apt_update(ctx)
        apt_install(ctx, settings.docker_packages, step="install_engine")

        user = invoking_user()
        ctx.banner("Adding current user to docker group")
        if not user:
            ctx.require(
                "add_user_group",
                Receipt.failure(
                    adapter="shell",
                    action_id=f"{self.stage_id}.add_user_group",
                    error="No invoking user found (SUDO_USER and USER are unset); cannot join the docker group.",
                    metadata={"return_code": 1},
                ),
            )
            return
        ctx.run("add_user_group", ["usermod", "-aG", "docker", user])

    def remove(self, ctx: StageContext) -> None:
        settings = ctx.settings
        apt_purge(ctx, settings.docker_packages, step="purge_engine")
        remove_paths(ctx, "remove_state", settings.docker_state_dirs)
        remove_paths(ctx, "remove_keyring", [settings.docker_keyring])
        remove_paths(ctx, "remove_source", [settings.docker_list])
