"""Direct control of the supervised service and its host."""

import time
from typing import Optional

from podship.constants import SETTLE_DELAY_SECONDS
from podship.errors import DeployError
from podship.models import DeployEnvironment, ExecutionContext
from podship.services.command_builder import Literal, command, systemctl_user
from podship.services.ownership import chown_volumes


class ServiceControl:
    """Runs supervisor actions, log streaming and host maintenance for one service."""

    ACTIONS = ("start", "stop", "restart", "enable", "disable", "status")
    CHECKED_ACTIONS = ("start", "restart")
    RIGHTS_TARGETS = ("user", "container")

    def __init__(
        self,
        environment: DeployEnvironment,
        logger,
        console,
        executor,
        context: Optional[ExecutionContext] = None,
        settle_seconds: float = SETTLE_DELAY_SECONDS,
    ):
        self.environment = environment
        self.target = environment.target
        self.unit = environment.unit
        self.logger = logger
        self.console = console
        self.executor = executor
        self.context = context or ExecutionContext()
        self.settle_seconds = settle_seconds

    def run(self, action: str):
        if action not in self.ACTIONS:
            raise DeployError(f"Unknown service action '{action}'. Use one of: {', '.join(self.ACTIONS)}.")

        self.console.print(
            f"[blue]Executing '{action}' on service '{self.unit.service_name}' "
            f"({self.target.host})...[/blue]"
        )
        if action == "status":
            self.executor.stream(systemctl_user("status", self.unit.unit_name, "--no-pager"), read_only=True)
            return

        result = self.executor.execute(systemctl_user(action, self.unit.unit_name))
        if not result.success:
            raise DeployError(
                f"systemctl {action} {self.unit.unit_name} failed: {result.stderr or result.returncode}"
            )

        if action in self.CHECKED_ACTIONS:
            if self.settle_seconds and not self.context.dry_run:
                time.sleep(self.settle_seconds)
            self.logger.info("Checking status...")
            self.executor.stream(systemctl_user("is-active", self.unit.unit_name))
        self.console.print(f"[green]Service {action} complete.[/green]")

    def logs(self, use_podman: bool = False, follow: bool = True):
        if use_podman:
            args = ["podman", "logs"] + (["-f"] if follow else []) + [f"systemd-{self.unit.service_name}"]
        else:
            args = ["journalctl", "--user", "-u", self.unit.unit_name] + (["-f"] if follow else ["--no-pager"])
        self.logger.info("Streaming logs...")
        self.executor.stream(command(*args), read_only=True)

    def prune(self):
        """Removes dangling images and the build cache. Failures are only reported."""
        self.console.print(f"[blue]Pruning unused resources on {self.target.name} ({self.target.host})...[/blue]")
        for label, args in (
            ("dangling images", ("podman", "image", "prune", "-f")),
            ("build cache", ("podman", "builder", "prune", "-f")),
        ):
            self.logger.info("Pruning %s...", label)
            result = self.executor.execute(command(*args))
            if not result.success:
                self.logger.warning("Pruning %s failed: %s", label, result.stderr or result.returncode)
        self.console.print("[green]Prune complete.[/green]")

    def rights(self, owner: str):
        """Hands the configured volumes to the SSH user or back to the container user."""
        if owner not in self.RIGHTS_TARGETS:
            raise DeployError(f"Invalid rights target '{owner}'. Use 'user' or 'container'.")
        if not self.unit.chown_volumes:
            self.logger.warning("No 'chown_volumes' configured for this environment.")
            return

        if owner == "user":
            self.logger.info("Reclaiming ownership for the SSH user...")
            ids = Literal('"$(id -u):$(id -g)"')
        else:
            if self.unit.container_uid <= 0:
                raise DeployError("`quadlet.container_uid` is not set for this environment.")
            self.logger.info(
                "Setting ownership for the container (%s:%s)...", self.unit.container_uid, self.unit.container_gid
            )
            ids = f"{self.unit.container_uid}:{self.unit.container_gid}"

        result = self.executor.execute(chown_volumes(self.target, self.unit, ids))
        if not result.success:
            raise DeployError(f"Changing ownership failed: {result.stderr or result.returncode}")
        self.console.print("[green]Permissions updated.[/green]")
