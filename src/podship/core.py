import logging
import os
from typing import Optional

import requests
from rich.console import Console

from .constants import BUILD_DIR, EXIT_FAILED, EXIT_FATAL, EXIT_ROLLED_BACK, EXIT_SUCCESS, TRAEFIK_DIR
from .errors import DeployError, OperationCancelled, RollbackError
from .models import DeployEnvironment, ExecutionContext, Outcome, PipelineRun
from .services.build import BuildService
from .services.command_runner import CommandRunner
from .services.datasync import DatabasePullPlan, DatabasePushPlan
from .services.filesystem import FileSystemService
from .services.health import HealthVerifier
from .services.manifest import ManifestService
from .services.prompts import Prompter
from .services.protocol import MutationPlan, MutationProtocol
from .services.release import ReleasePlan
from .services.remote_executor import RemoteExecutor
from .services.rollback import RollbackController
from .services.service_control import ServiceControl
from .services.traefik import TraefikSetupPlan
from .services.unit_renderer import UnitRenderer
from .services.versioning import VersionResolver

console = Console()
logger = logging.getLogger("podship")

OUTCOME_EXIT_CODES = {
    Outcome.SUCCEEDED: EXIT_SUCCESS,
    Outcome.FAILED: EXIT_FAILED,
    Outcome.CANCELLED: EXIT_FAILED,
    Outcome.ROLLED_BACK: EXIT_ROLLED_BACK,
    Outcome.FATAL: EXIT_FATAL,
}


class Deployer:
    """Entry point for every operation against one resolved environment."""

    def __init__(
        self,
        environment: DeployEnvironment,
        context: Optional[ExecutionContext] = None,
        manifest_file: Optional[str] = None,
        prompter: Optional[Prompter] = None,
        executor=None,
        build_dir: str = BUILD_DIR,
    ):
        self.environment = environment
        self.context = context or ExecutionContext()
        self.build_dir = build_dir
        self.last_run: Optional[PipelineRun] = None

        self.command_runner = CommandRunner(logger=logger, context=self.context)
        self.executor = executor or RemoteExecutor(
            target=environment.target,
            command_runner=self.command_runner,
            logger=logger,
        )
        self.prompter = prompter or Prompter(self.context)
        self.manifest_service = ManifestService(manifest_file=manifest_file, logger=logger)
        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.build_service = BuildService(
            logger=logger, console=console, command_runner=self.command_runner
        )
        self.unit_renderer = UnitRenderer(logger=logger)
        self.health_verifier = HealthVerifier(
            logger=logger,
            console=console,
            executor=self.executor,
            context=self.context,
            requests_module=requests,
        )
        self.rollback_controller = RollbackController(
            logger=logger, console=console, executor=self.executor
        )
        self.version_resolver = VersionResolver(
            logger=logger,
            console=console,
            command_runner=self.command_runner,
            prompter=self.prompter,
        )
        self.protocol = MutationProtocol(
            logger=logger,
            console=console,
            context=self.context,
            manifest_service=self.manifest_service,
        )

    def _execute(self, plan: MutationPlan) -> int:
        try:
            run = self.protocol.execute(plan)
        except RollbackError as exc:
            console.print(f"[bold red]FATAL:[/bold red] {exc}")
            logger.critical(str(exc))
            return EXIT_FATAL
        self.last_run = run
        exit_code = OUTCOME_EXIT_CODES[run.outcome]
        if exit_code == EXIT_ROLLED_BACK:
            console.print(
                f"[bold red]{plan.operation} failed:[/bold red] {run.error} "
                "(rolled back to the previous state)"
            )
        return exit_code

    def release_plan(self, version: Optional[str]) -> ReleasePlan:
        return ReleasePlan(
            environment=self.environment,
            version=version,
            logger=logger,
            console=console,
            context=self.context,
            executor=self.executor,
            build_service=self.build_service,
            unit_renderer=self.unit_renderer,
            health_verifier=self.health_verifier,
            rollback_controller=self.rollback_controller,
            prompter=self.prompter,
            out_dir=self.build_dir,
        )

    def release(self, version: Optional[str] = None, versioned: bool = True) -> int:
        """Builds and activates a new release.

        ``versioned`` runs the git tag gate first; otherwise the version comes
        from ``git describe`` at build time.
        """
        try:
            if versioned:
                version = self.version_resolver.resolve(version)
            plan = self.release_plan(version)
        except OperationCancelled as exc:
            console.print(f"[yellow]{exc}[/yellow]")
            return EXIT_FAILED
        except DeployError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            return EXIT_FAILED
        return self._execute(plan)

    def db_push(self) -> int:
        plan = DatabasePushPlan(
            environment=self.environment,
            logger=logger,
            console=console,
            executor=self.executor,
            rollback_controller=self.rollback_controller,
            prompter=self.prompter,
        )
        return self._execute(plan)

    def db_pull(self) -> int:
        plan = DatabasePullPlan(
            environment=self.environment,
            logger=logger,
            console=console,
            context=self.context,
            executor=self.executor,
            filesystem_service=self.filesystem_service,
            prompter=self.prompter,
        )
        return self._execute(plan)

    def _control(self) -> ServiceControl:
        return ServiceControl(
            self.environment, logger=logger, console=console, executor=self.executor, context=self.context
        )

    def _run_control(self, action) -> int:
        try:
            action()
        except DeployError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            return EXIT_FAILED
        return EXIT_SUCCESS

    def service_action(self, action: str) -> int:
        control = self._control()
        return self._run_control(lambda: control.run(action))

    def prune(self) -> int:
        return self._run_control(self._control().prune)

    def rights(self, owner: str) -> int:
        control = self._control()
        return self._run_control(lambda: control.rights(owner))

    def traefik(self) -> int:
        plan = TraefikSetupPlan(
            environment=self.environment,
            logger=logger,
            console=console,
            context=self.context,
            executor=self.executor,
            health_verifier=self.health_verifier,
            rollback_controller=self.rollback_controller,
            requests_module=requests,
            out_dir=os.path.join(self.build_dir, TRAEFIK_DIR),
        )
        return self._execute(plan)

    def logs(self, use_podman: bool = False, follow: bool = True) -> int:
        control = self._control()
        try:
            control.logs(use_podman=use_podman, follow=follow)
        except DeployError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            return EXIT_FAILED
        except KeyboardInterrupt:
            return EXIT_SUCCESS
        return EXIT_SUCCESS
