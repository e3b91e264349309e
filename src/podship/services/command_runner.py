"""Local subprocess execution service for podship."""

import os
import subprocess
import time
from typing import IO, Dict, Iterable, List, Optional

from podship.errors import DeployError
from podship.models import ExecutionContext


class CommandRunner:
    """Runs local commands with consistent error handling and dry-run support."""

    def __init__(self, logger, context: ExecutionContext, default_timeout: Optional[float] = None):
        self.logger = logger
        self.context = context
        self.default_timeout = default_timeout

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
        stdout: Optional[IO] = None,
        read_only: bool = False,
        retry_count: int = 0,
        retry_backoff_seconds: float = 0.0,
        retry_on_returncodes: Optional[Iterable[int]] = None,
        error_cls=DeployError,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        self.context.record(cmd_str)

        if self.context.dry_run and not read_only:
            self.logger.info("[dry-run] %s", cmd_str)
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        max_attempts = max(1, retry_count + 1)
        retry_codes = set(retry_on_returncodes or [])
        run_env = None
        if env:
            run_env = dict(os.environ)
            run_env.update(env)

        for attempt in range(1, max_attempts + 1):
            try:
                if stdout is not None:
                    result = subprocess.run(
                        cmd,
                        stdout=stdout,
                        text=True,
                        timeout=effective_timeout,
                        env=run_env,
                    )
                else:
                    result = subprocess.run(
                        cmd,
                        text=True,
                        capture_output=capture_output,
                        timeout=effective_timeout,
                        env=run_env,
                    )
            except FileNotFoundError as exc:
                raise error_cls(
                    f"Required command not found: {cmd[0]}. Please install it and try again."
                ) from exc
            except subprocess.TimeoutExpired as exc:
                if attempt < max_attempts:
                    self.logger.warning(
                        "Command timed out on attempt %s/%s. Retrying in %.1fs: %s",
                        attempt,
                        max_attempts,
                        retry_backoff_seconds,
                        cmd_str,
                    )
                    time.sleep(retry_backoff_seconds)
                    continue
                raise error_cls(f"Command timed out after {effective_timeout}s: {cmd_str}") from exc
            except OSError as exc:
                raise error_cls(f"Failed to execute command: {cmd_str}. {exc}") from exc

            if capture_output and result.stdout:
                self.logger.debug("Command output: %s", result.stdout.strip())

            if result.returncode == 0:
                return result

            stderr = (result.stderr or "").strip()
            message = f"Command failed ({result.returncode}): {cmd_str}"
            if stderr:
                message = f"{message}\n{stderr}"

            can_retry = attempt < max_attempts and (
                not retry_codes or result.returncode in retry_codes
            )
            if can_retry:
                self.logger.warning(
                    "Command failed on attempt %s/%s and will be retried in %.1fs.\n%s",
                    attempt,
                    max_attempts,
                    retry_backoff_seconds,
                    message,
                )
                time.sleep(retry_backoff_seconds)
                continue

            if check:
                raise error_cls(message)

            self.logger.debug(message)
            return result

        raise error_cls(f"Command failed after retries: {cmd_str}")

    def output(self, cmd: List[str]) -> str:
        """Runs a read-only query and returns its stripped stdout, or '' on failure."""
        try:
            result = self.run(cmd, check=False, capture_output=True, read_only=True)
        except DeployError as exc:
            self.logger.debug("Query failed: %s", exc)
            return ""
        if result.returncode != 0:
            return ""
        return (result.stdout or "").strip()
