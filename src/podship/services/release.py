"""Release orchestration: build, ship, activate and verify a new binary."""

import shutil
from typing import List, Optional

from podship.constants import (
    BACKUP_SUFFIX,
    BUILD_DIR,
    DEFAULT_ARTIFACTS,
    QUADLET_DIR,
    SYSTEMD_WANTS_DIR,
)
from podship.errors import ActivationError, DeployError, PreconditionError, TransferError
from podship.errors_catalog import actionable_error
from podship.models import BackupRecord, DeployEnvironment, PipelineRun
from podship.services.command_builder import (
    Literal,
    RemoteScript,
    command,
    home_path,
    if_exists,
    systemctl_user,
    tolerate,
)
from podship.services.ownership import chown_volumes
from podship.services.protocol import MutationPlan

REMOTE_TOOLS = ("rsync", "podman")


class ReleasePlan(MutationPlan):
    """Mutation plan that replaces the running service binary and image."""

    operation = "release"

    def __init__(
        self,
        environment: DeployEnvironment,
        version: Optional[str],
        logger,
        console,
        context,
        executor,
        build_service,
        unit_renderer,
        health_verifier,
        rollback_controller,
        prompter,
        out_dir: str = BUILD_DIR,
        which=shutil.which,
    ):
        if environment.release is None:
            raise DeployError("Release settings are missing (`binary_name` is required).")
        self.environment = environment
        self.target = environment.target
        self.unit = environment.unit
        self.release = environment.release
        self.version = version
        self.logger = logger
        self.console = console
        self.context = context
        self.executor = executor
        self.build_service = build_service
        self.unit_renderer = unit_renderer
        self.health_verifier = health_verifier
        self.rollback_controller = rollback_controller
        self.prompter = prompter
        self.out_dir = out_dir
        self.which = which

        self.binary_path: Optional[str] = None
        self.unit_path: Optional[str] = None
        self.compiled = None

    @property
    def remote_binary(self) -> str:
        return self.target.remote_path(self.release.binary_name)

    def metadata(self) -> dict:
        return {
            "environment": self.target.name,
            "host": self.target.host,
            "service": self.unit.service_name,
            "version": self.version,
        }

    # Validating

    def validate(self, run: PipelineRun):
        tools = ["rsync", "ssh"] + self.build_service.required_tools(self.release)
        for tool in tools:
            if self.which(tool) is None:
                raise PreconditionError(actionable_error("local_tool_missing", tool=tool))

        self.console.print(f"[blue]Verifying remote environment on {self.target.host}...[/blue]")
        check = RemoteScript()
        for tool in REMOTE_TOOLS:
            check.raw(f"{command('command', '-v', tool)} >/dev/null")
        result = self.executor.execute(check, read_only=True)
        if not result.success:
            raise PreconditionError(
                actionable_error(
                    "remote_tools_missing",
                    host=self.target.host,
                    tools=" and ".join(f"'{tool}'" for tool in REMOTE_TOOLS),
                )
            )

    # Preparing

    def prepare(self, run: PipelineRun):
        self.console.print(
            f"[blue]Deploying version {self.version or '<describe>'} of "
            f"{self.release.app_name} to {self.target.name}...[/blue]"
        )
        build_meta = self.build_service.collect_metadata(self.version)
        self.binary_path = self.build_service.build(self.release, build_meta, self.out_dir)

        self.console.print("[blue]Generating configuration...[/blue]")
        self.compiled = self.unit_renderer.compile(
            self.unit, self.target.target_dir, self.environment.default_cert_resolver
        )
        if self.context.dry_run:
            self.unit_path = f"{self.out_dir}/{self.compiled.filename}"
            self.logger.debug("Unit file (not written in dry run):\n%s", self.compiled.text)
        else:
            self.unit_path = self.unit_renderer.write(self.compiled, self.out_dir)

    def artifacts(self) -> List[str]:
        include = list(self.release.include) or list(DEFAULT_ARTIFACTS)
        return [self.binary_path] + include

    # Backing-Up

    def backup(self, run: PipelineRun) -> BackupRecord:
        self.console.print("[blue]Backing up current release...[/blue]")
        script = (
            RemoteScript()
            .run("mkdir", "-p", self.target.target_dir, home_path(QUADLET_DIR))
            .raw(
                if_exists(
                    self.remote_binary,
                    then=f"{command('cp', '-p', self.remote_binary, self.remote_binary + '.bak')}"
                    " && echo saved",
                    otherwise="echo none",
                )
            )
        )
        result = self.executor.execute(script)
        if not result.success:
            raise DeployError(f"Remote backup failed: {result.stderr or result.returncode}")

        existed = result.stdout.strip() != "none"
        if not existed:
            self.logger.info("No previous binary on %s; this is a first release.", self.target.host)
        return BackupRecord(resource=self.remote_binary, location="remote", existed=existed)

    # Mutating

    def mutate(self, run: PipelineRun):
        if self.unit.stop_on_deploy:
            self.console.print("[yellow]Stopping service before sync (stop_on_deploy)...[/yellow]")
            self.executor.execute(tolerate(systemctl_user("stop", self.unit.unit_name)))

        self.console.print("[blue]Syncing...[/blue]")
        self._sync(self.artifacts(), f"{self.target.target_dir.rstrip('/')}/", delete=True)

        if self.environment.env_file:
            if self.prompter.confirm(
                f"Sync/Overwrite remote .env with local '{self.environment.env_file}'?"
            ):
                self._sync([self.environment.env_file], self.target.remote_path(".env"))
            else:
                self.logger.info("Skipping .env sync.")

        self._sync([self.unit_path], f"~/{QUADLET_DIR}/")

        self.console.print("[blue]Activating...[/blue]")
        result = self.executor.execute(self.activation_script())
        if not result.success:
            raise ActivationError(
                f"Activation failed ({result.returncode}): {result.stderr or 'no output'}"
            )

    def protected_paths(self) -> List[str]:
        """Remote paths a deleting transfer must keep: the backup, .env and the database."""
        paths = [f"/{self.release.binary_name}{BACKUP_SUFFIX}", "/.env"]
        source = self.environment.database.source
        if source and not source.startswith("/"):
            if source.startswith("./"):
                source = source[2:]
            head, sep, _ = source.partition("/")
            paths.append(f"/{head}/" if sep else f"/{head}*")
        return paths

    def _sync(self, sources: List[str], destination: str, delete: bool = False):
        excludes = self.release.exclude if delete else ()
        protect = self.protected_paths() if delete else ()
        if not self.executor.sync(
            sources, destination, delete=delete, excludes=excludes, protect=protect
        ):
            raise TransferError(f"Transfer to {self.target.host}:{destination} failed.")

    def ownership_command(self) -> Optional[str]:
        if self.unit.container_uid <= 0:
            return None
        owner = f"{self.unit.container_uid}:{self.unit.container_gid}"
        return chown_volumes(self.target, self.unit, owner)

    def activation_script(self) -> RemoteScript:
        unit_name = self.unit.unit_name
        script = (
            RemoteScript()
            .run("cd", self.target.target_dir)
            .run("podman", "build", "-f", self.unit.dockerfile, "-t", self.unit.image, ".")
        )
        ownership = self.ownership_command()
        if ownership:
            script.raw(ownership)
        generated = Literal(f'"/run/user/$(id -u)/systemd/generator/{unit_name}"')
        return (
            script.run("systemctl", "--user", "daemon-reload")
            .run("mkdir", "-p", home_path(SYSTEMD_WANTS_DIR))
            .run("ln", "-sf", generated, home_path(f"{SYSTEMD_WANTS_DIR}/{unit_name}"))
            .run("systemctl", "--user", "daemon-reload")
            .raw(systemctl_user("restart", unit_name))
        )

    # Verifying

    def verify(self, run: PipelineRun):
        self.health_verifier.verify(self.unit)
        self.console.print("[green]Deployed successfully.[/green]")

    # Rolling back

    def rollback(self, run: PipelineRun, error: DeployError):
        self.rollback_controller.restore_release(self.target, self.unit, run.backup)
