"""Guarded transfer of the service database to and from the remote host."""

import os
from typing import Optional, Tuple

from podship.constants import PARTIAL_SUFFIX, SERVICE_STOPPED_RETURNCODES, SQLITE_SIDE_FILES
from podship.errors import (
    ActivationError,
    ConfigError,
    DeployError,
    OperationCancelled,
    PreconditionError,
    TransferError,
)
from podship.errors_catalog import actionable_error
from podship.models import BackupRecord, DeployEnvironment, PipelineRun
from podship.services.command_builder import (
    Literal,
    RemoteScript,
    command,
    if_exists,
    quote,
    systemctl_user,
    tolerate,
)
from podship.services.protocol import MutationPlan


def _database_paths(environment: DeployEnvironment) -> Tuple[str, str]:
    database = environment.database
    if database.driver != "sqlite":
        raise ConfigError(f"Only sqlite databases are supported (got '{database.driver}').")
    if not database.source:
        raise ConfigError("`database.source` is not configured for this environment.")
    local = os.path.normpath(database.source)
    remote = environment.target.remote_path(database.source)
    return local, remote


class DatabasePushPlan(MutationPlan):
    """Overwrites the remote database with the local copy.

    Refuses to run while the service is active. The service is left stopped
    afterwards; starting it again is a separate operator action.
    """

    operation = "db-push"

    def __init__(self, environment: DeployEnvironment, logger, console, executor, rollback_controller, prompter):
        self.environment = environment
        self.target = environment.target
        self.unit = environment.unit
        self.logger = logger
        self.console = console
        self.executor = executor
        self.rollback_controller = rollback_controller
        self.prompter = prompter
        self.local_path: Optional[str] = None
        self.remote_path: Optional[str] = None

    def metadata(self) -> dict:
        return {"environment": self.target.name, "host": self.target.host}

    @property
    def ownership(self) -> Optional[Tuple[int, int]]:
        if self.unit.container_uid > 0:
            return self.unit.container_uid, self.unit.container_gid
        return None

    def side_files(self):
        return [f"{self.remote_path}{suffix}" for suffix in SQLITE_SIDE_FILES]

    def validate(self, run: PipelineRun):
        self.local_path, self.remote_path = _database_paths(self.environment)
        if not os.path.isfile(self.local_path):
            raise PreconditionError(actionable_error("local_db_missing", path=self.local_path))

        result = self.executor.execute(systemctl_user("is-active", self.unit.unit_name), read_only=True)
        if result.success:
            raise PreconditionError(
                actionable_error(
                    "service_running",
                    service=self.unit.service_name,
                    host=self.target.host,
                    env=self.target.name,
                )
            )
        if result.returncode not in SERVICE_STOPPED_RETURNCODES:
            raise PreconditionError(
                actionable_error(
                    "service_state_unknown",
                    service=self.unit.unit_name,
                    host=self.target.host,
                    error=(result.stderr or result.stdout).strip() or f"exit code {result.returncode}",
                )
            )

        self.console.print(f"[bold yellow]OVERWRITING REMOTE DB on {self.target.name}.[/bold yellow]")
        if not self.prompter.confirm("Are you sure?"):
            raise OperationCancelled("Database push cancelled by operator.")

    def _reclaim_ownership(self):
        self.console.print("[blue]Reclaiming file permissions...[/blue]")
        owner = Literal('"$(id -u):$(id -g)"')
        self.executor.execute(
            tolerate(command("podman", "unshare", "chown", owner, self.remote_path, *self.side_files()))
        )

    def _restore_ownership(self) -> bool:
        uid, gid = self.ownership
        paths = [self.remote_path, f"{self.remote_path}.bak"]
        script = " ; ".join(
            if_exists(path, command("podman", "unshare", "chown", f"{uid}:{gid}", path))
            for path in paths
        )
        return self.executor.execute(script).success

    def backup(self, run: PipelineRun) -> BackupRecord:
        if self.ownership:
            self._reclaim_ownership()

        self.console.print("[blue]Creating remote backup...[/blue]")
        result = self.executor.execute(
            if_exists(
                self.remote_path,
                then=f"{command('cp', '-p', self.remote_path, self.remote_path + '.bak')} && echo saved",
                otherwise="echo none",
            )
        )
        if not result.success:
            if self.ownership:
                self._restore_ownership()
            raise DeployError(f"Remote backup failed: {result.stderr or result.returncode}")
        return BackupRecord(
            resource=self.remote_path,
            location="remote",
            existed=result.stdout.strip() != "none",
        )

    def mutate(self, run: PipelineRun):
        self.executor.execute(RemoteScript().run("rm", "-f", *self.side_files()))

        self.console.print("[blue]Uploading...[/blue]")
        if not self.executor.sync([self.local_path], self.remote_path):
            raise TransferError(f"Upload of {self.local_path} to {self.target.host} failed.")

        if self.ownership:
            self.console.print("[blue]Restoring container permissions...[/blue]")
            if not self._restore_ownership():
                raise ActivationError("Could not restore container ownership of the database.")

    def verify(self, run: PipelineRun):
        self.console.print("[green]Database pushed successfully.[/green]")
        self.console.print(
            f"Service remains STOPPED. Run 'podship start {self.target.name}' "
            f"or 'podship release {self.target.name}' when ready."
        )

    def rollback(self, run: PipelineRun, error: DeployError):
        self.rollback_controller.restore_remote_file(
            self.target, self.unit, run.backup, ownership=self.ownership
        )


class DatabasePullPlan(MutationPlan):
    """Downloads a consistent snapshot of the remote database.

    The snapshot is streamed into a side file and only moved over the local
    database once the transfer exited cleanly.
    """

    operation = "db-pull"

    def __init__(self, environment: DeployEnvironment, logger, console, context, executor, filesystem_service, prompter):
        self.environment = environment
        self.target = environment.target
        self.logger = logger
        self.console = console
        self.context = context
        self.executor = executor
        self.filesystem_service = filesystem_service
        self.prompter = prompter
        self.local_path: Optional[str] = None
        self.remote_path: Optional[str] = None

    def metadata(self) -> dict:
        return {"environment": self.target.name, "host": self.target.host}

    @property
    def partial_path(self) -> str:
        return f"{self.local_path}{PARTIAL_SUFFIX}"

    def validate(self, run: PipelineRun):
        self.local_path, self.remote_path = _database_paths(self.environment)

        if os.path.exists(self.local_path):
            question = f"Local file {self.local_path} exists. Backup and overwrite?"
        else:
            question = f"Download to {self.local_path}?"
        if not self.prompter.confirm(question):
            raise OperationCancelled("Database pull cancelled by operator.")

    def prepare(self, run: PipelineRun):
        self.console.print(f"[blue]Pulling DB from {self.target.host}...[/blue]")
        if not self.context.dry_run:
            self.filesystem_service.ensure_parent(self.local_path)

    def backup(self, run: PipelineRun) -> BackupRecord:
        existed = os.path.exists(self.local_path)
        if existed and not self.context.dry_run:
            backup = self.filesystem_service.backup_file(self.local_path)
            self.console.print(f"[blue]Backed up local DB to {backup}.[/blue]")
        return BackupRecord(resource=self.local_path, location="local", existed=existed)

    def snapshot_script(self) -> str:
        return "\n".join(
            [
                "set -e",
                "TEMP_DIR=$(mktemp -d)",
                "trap 'rm -rf \"$TEMP_DIR\"' EXIT",
                "command -v sqlite3 >/dev/null || { echo 'sqlite3 not found on remote' >&2; exit 1; }",
                f"sqlite3 {quote(self.remote_path)} \".backup '$TEMP_DIR/backup.db'\"",
                'cat "$TEMP_DIR/backup.db"',
            ]
        )

    def mutate(self, run: PipelineRun):
        if self.context.dry_run:
            self.executor.stream(self.snapshot_script())
            return

        with open(self.partial_path, "wb") as file_obj:
            ok = self.executor.stream(self.snapshot_script(), stdout=file_obj)
        if not ok:
            raise TransferError(f"Pull from {self.target.host} failed.")
        os.replace(self.partial_path, self.local_path)

    def verify(self, run: PipelineRun):
        self.console.print(f"[green]Synced to {self.local_path}[/green]")

    def rollback(self, run: PipelineRun, error: DeployError):
        self.filesystem_service.remove_quietly(self.partial_path)
        backup = run.backup
        if backup is not None and backup.existed and not os.path.exists(self.local_path):
            self.filesystem_service.restore_file(self.local_path)
        self.console.print(f"[yellow]Local database {self.local_path} left unchanged.[/yellow]")
