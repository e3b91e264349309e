"""Restores the last-known-good state after a failed mutation."""

from typing import Optional, Sequence, Tuple

from podship.constants import BACKUP_SUFFIX, DIAGNOSTIC_LOG_LINES
from podship.errors import RollbackError
from podship.errors_catalog import actionable_error
from podship.models import BackupRecord, Target, UnitDescriptor
from podship.services.command_builder import Literal, RemoteScript, command, if_exists, systemctl_user


class RollbackController:
    """Shared restore logic for releases and data pushes."""

    def __init__(self, logger, console, executor):
        self.logger = logger
        self.console = console
        self.executor = executor

    def capture_diagnostics(self, unit: UnitDescriptor, lines: int = DIAGNOSTIC_LOG_LINES):
        self.console.print(
            f"[yellow]Diagnosing with remote logs (last {lines} lines)...[/yellow]"
        )
        streamed = self.executor.stream(
            command(
                "journalctl", "--user", "-u", unit.unit_name, "-n", str(lines), "--no-pager"
            )
        )
        if not streamed:
            self.logger.warning("Could not read service logs for %s.", unit.unit_name)

    def _fail(self, target: Target, unit_name: str, backup: BackupRecord, error: str):
        raise RollbackError(
            actionable_error(
                "rollback_failed",
                service=unit_name,
                host=target.host,
                error=error,
                backup=backup.backup_path,
            )
        )

    def _run(self, target: Target, unit_name: str, backup: BackupRecord, script: RemoteScript):
        result = self.executor.execute(script)
        if not result.success:
            self._fail(target, unit_name, backup, result.stderr or f"exit {result.returncode}")

    def restore_release(self, target: Target, unit: UnitDescriptor, backup: BackupRecord):
        """Puts the previous binary back, rebuilds the image and restarts the unit."""
        self.capture_diagnostics(unit)
        self.console.print("[bold yellow]INITIATING AUTOMATIC ROLLBACK...[/bold yellow]")

        if not backup.existed:
            self.logger.warning("No previous release to restore; stopping %s.", unit.unit_name)
            self._run(
                target,
                unit.unit_name,
                backup,
                RemoteScript(systemctl_user("stop", unit.unit_name)),
            )
            return

        restore = (
            RemoteScript()
            .run("cd", target.target_dir)
            .run("mv", backup.backup_path, backup.resource)
            .run("podman", "build", "-f", unit.dockerfile, "-t", unit.image, ".")
        )
        self._run(target, unit.unit_name, backup, restore)
        self._run(
            target,
            unit.unit_name,
            backup,
            RemoteScript(systemctl_user("restart", unit.unit_name)),
        )
        self.console.print("[green]Previous release restored.[/green]")

    def restore_remote_file(
        self,
        target: Target,
        unit: UnitDescriptor,
        backup: BackupRecord,
        ownership: Optional[Tuple[int, int]] = None,
    ):
        """Moves a backed-up remote file back into place."""
        self.console.print(f"[yellow]Restoring {backup.resource} from backup...[/yellow]")
        script = RemoteScript()
        if backup.existed:
            script.run("mv", backup.backup_path, backup.resource)
        else:
            script.run("rm", "-f", backup.resource)
        if ownership is not None and backup.existed:
            uid, gid = ownership
            script.run("podman", "unshare", "chown", f"{uid}:{gid}", backup.resource)
        self._run(target, unit.unit_name, backup, script)
        self.console.print("[green]Backup restored.[/green]")

    def restore_unit_files(
        self,
        target: Target,
        unit: UnitDescriptor,
        backup: BackupRecord,
        files: Sequence[str],
    ):
        """Puts backed-up configuration files back and restarts the unit on them."""
        self.capture_diagnostics(unit)
        self.console.print("[bold yellow]INITIATING AUTOMATIC ROLLBACK...[/bold yellow]")

        if not backup.existed:
            self.logger.warning("No previous configuration to restore; stopping %s.", unit.unit_name)
            self._run(target, unit.unit_name, backup, RemoteScript(systemctl_user("stop", unit.unit_name)))
            return

        restore = RemoteScript()
        for path in files:
            saved = Literal(f"{path}{BACKUP_SUFFIX}") if isinstance(path, Literal) else f"{path}{BACKUP_SUFFIX}"
            restore.raw(if_exists(saved, then=command("mv", saved, path)))
        restore.run("systemctl", "--user", "daemon-reload").raw(systemctl_user("restart", unit.unit_name))
        self._run(target, unit.unit_name, backup, restore)
        self.console.print("[green]Previous configuration restored.[/green]")
