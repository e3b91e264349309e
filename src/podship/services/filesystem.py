"""Local filesystem helpers for podship."""

import logging
import os
import shutil

from rich.console import Console

from podship.constants import BACKUP_SUFFIX
from podship.errors import DeployError


class FileSystemService:
    """Encapsulates local file side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def ensure_parent(self, path: str):
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)

    def backup_file(self, path: str) -> str:
        """Copies ``path`` to its single ``.bak`` slot, replacing any older backup."""
        backup = f"{path}{BACKUP_SUFFIX}"
        try:
            shutil.copy2(path, backup)
        except OSError as exc:
            raise DeployError(f"Failed to backup local file {path}: {exc}") from exc
        self.logger.debug("Backed up %s to %s", path, backup)
        return backup

    def restore_file(self, path: str):
        backup = f"{path}{BACKUP_SUFFIX}"
        try:
            shutil.copy2(backup, path)
        except OSError as exc:
            raise DeployError(f"Failed to restore {path} from {backup}: {exc}") from exc

    def remove_quietly(self, path: str):
        if os.path.exists(path):
            try:
                os.remove(path)
                self.logger.debug("Removed file: %s", path)
            except OSError as exc:
                message = f"Warning: Could not remove {path}: {exc}"
                self.console.print(f"[yellow]{message}[/yellow]")
                self.logger.warning(message)
