"""SSH and rsync transport to a single remote target."""

import os
import shlex
import tempfile
from dataclasses import dataclass
from typing import IO, List, Optional, Sequence, Union

from podship.constants import (
    SSH_CONTROL_PERSIST,
    TRANSFER_RETRY_BACKOFF_SECONDS,
    TRANSFER_RETRY_COUNT,
    TRANSFER_RETRY_RETURNCODES,
)
from podship.errors import DeployError, PreconditionError
from podship.models import Target
from podship.services.command_builder import RemoteScript


@dataclass(frozen=True)
class RemoteResult:
    success: bool
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0


class RemoteExecutor:
    """Runs commands on one target over a multiplexed, reusable SSH session."""

    def __init__(self, target: Target, command_runner, logger):
        self.target = target
        self.command_runner = command_runner
        self.logger = logger

    @property
    def control_path(self) -> str:
        return os.path.join(
            tempfile.gettempdir(), f"podship-{self.target.user}-{self.target.host}"
        )

    def _session_options(self) -> List[str]:
        return [
            "-o",
            "ControlMaster=auto",
            "-o",
            f"ControlPersist={SSH_CONTROL_PERSIST}",
            "-o",
            f"ControlPath={self.control_path}",
        ]

    def ssh_args(self) -> List[str]:
        args = self._session_options()
        if self.target.identity_file:
            args += ["-i", self.target.identity_file]
        args += ["-p", str(self.target.port), self.target.address]
        return args

    def rsync_shell(self) -> str:
        parts = ["ssh"] + self._session_options()
        if self.target.port and self.target.port != 22:
            parts += ["-p", str(self.target.port)]
        if self.target.identity_file:
            parts += ["-i", self.target.identity_file]
        return " ".join(shlex.quote(part) for part in parts)

    @staticmethod
    def _render(script: Union[str, RemoteScript]) -> str:
        return script.render() if isinstance(script, RemoteScript) else script

    def execute(self, script: Union[str, RemoteScript], read_only: bool = False) -> RemoteResult:
        """Runs a command and captures its output. Never raises on a non-zero exit."""
        remote_cmd = self._render(script)
        self.logger.debug("[ssh %s] %s", self.target.host, remote_cmd)
        result = self.command_runner.run(
            ["ssh"] + self.ssh_args() + [remote_cmd],
            check=False,
            capture_output=True,
            read_only=read_only,
            error_cls=PreconditionError,
        )
        return RemoteResult(
            success=result.returncode == 0,
            stdout=(result.stdout or "").strip(),
            stderr=(result.stderr or "").strip(),
            returncode=result.returncode,
        )

    def stream(
        self,
        script: Union[str, RemoteScript],
        stdout: Optional[IO] = None,
        read_only: bool = False,
    ) -> bool:
        """Runs a command forwarding live output to the terminal or to ``stdout``."""
        remote_cmd = self._render(script)
        self.logger.debug("[ssh-stream %s] %s", self.target.host, remote_cmd)
        result = self.command_runner.run(
            ["ssh"] + self.ssh_args() + [remote_cmd],
            check=False,
            stdout=stdout,
            read_only=read_only,
            error_cls=PreconditionError,
        )
        return result.returncode == 0

    def sync(
        self,
        sources: Sequence[str],
        destination: str,
        delete: bool = False,
        excludes: Sequence[str] = (),
        protect: Sequence[str] = (),
    ) -> bool:
        """Copies local ``sources`` to ``destination`` on the target with rsync.

        ``protect`` patterns are receiver-side rules: matching remote files are
        never removed by ``--delete``, even though they are not in ``sources``.
        """
        if not sources:
            raise DeployError("Nothing to transfer: no source paths given.")

        cmd = ["rsync", "-avz", "-e", self.rsync_shell()]
        if delete:
            cmd.append("--delete")
        for pattern in protect:
            cmd += ["--filter", f"P {pattern}"]
        for pattern in excludes:
            cmd += ["--exclude", pattern]
        cmd += list(sources)
        cmd.append(f"{self.target.address}:{destination}")

        result = self.command_runner.run(
            cmd,
            check=False,
            capture_output=not self.command_runner.context.verbose,
            retry_count=TRANSFER_RETRY_COUNT,
            retry_backoff_seconds=TRANSFER_RETRY_BACKOFF_SECONDS,
            retry_on_returncodes=TRANSFER_RETRY_RETURNCODES,
        )
        if result.returncode != 0:
            self.logger.error(
                "rsync failed (%s): %s", result.returncode, (result.stderr or "").strip()
            )
        return result.returncode == 0
