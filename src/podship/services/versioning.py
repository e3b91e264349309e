"""Release version resolution from git tags."""

import subprocess
from typing import Optional

from packaging.version import InvalidVersion, Version

from podship.constants import DRY_RUN_VERSION
from podship.errors import OperationCancelled, PreconditionError
from podship.errors_catalog import actionable_error


class VersionResolver:
    """Resolves the release tag, creating and pushing one when needed.

    An explicit version must already be a tag on HEAD. Without one, a tag on
    HEAD is reused, otherwise the operator is asked for a new one.
    """

    def __init__(self, logger, console, command_runner, prompter):
        self.logger = logger
        self.console = console
        self.command_runner = command_runner
        self.prompter = prompter

    def _git(self, *args: str) -> subprocess.CompletedProcess:
        return self.command_runner.run(
            ["git", *args],
            check=False,
            capture_output=True,
            read_only=True,
            error_cls=PreconditionError,
        )

    def _git_mutate(self, *args: str):
        self.command_runner.run(["git", *args], check=True, error_cls=PreconditionError)

    def resolve(self, explicit_version: Optional[str] = None) -> str:
        if self.command_runner.context.dry_run:
            return explicit_version or DRY_RUN_VERSION

        self.ensure_clean_worktree()
        has_remote = self._git("remote", "get-url", "origin").returncode == 0
        if not has_remote:
            self.logger.warning("No 'origin' remote found. Pushing tags will be skipped.")

        if explicit_version:
            return self._validate_explicit(explicit_version, has_remote)

        self.console.print("[blue]Checking for existing tag on HEAD...[/blue]")
        described = self._git("describe", "--tags", "--exact-match", "HEAD")
        if described.returncode == 0 and described.stdout.strip():
            tag = described.stdout.strip()
            self.console.print(f"[green]Found existing tag: {tag}[/green]")
            if has_remote:
                self.ensure_tag_pushed(tag)
            return tag

        return self._create_tag(has_remote)

    def ensure_clean_worktree(self):
        status = self._git("status", "--porcelain")
        if status.returncode != 0:
            raise PreconditionError("Failed to run git status. Is this a git repository?")
        if status.stdout.strip():
            raise PreconditionError(actionable_error("dirty_worktree"))

    def _validate_explicit(self, tag: str, has_remote: bool) -> str:
        self.console.print(f"[blue]Validating explicit version {tag}...[/blue]")
        if self._git("rev-parse", "--verify", tag).returncode != 0:
            raise PreconditionError(f"Tag '{tag}' not found locally.")

        head = self._git("rev-parse", "HEAD").stdout.strip()
        tag_commit = self._git("rev-parse", f"{tag}^{{commit}}").stdout.strip()
        if head != tag_commit:
            raise PreconditionError(
                actionable_error(
                    "tag_not_on_head", head=head[:7], tag=tag, tag_commit=tag_commit[:7]
                )
            )

        if has_remote:
            self.ensure_tag_pushed(tag)
        return tag

    def ensure_tag_pushed(self, tag: str):
        self.logger.info("Verifying tag presence on remote...")
        if self._git("ls-remote", "--exit-code", "--tags", "origin", tag).returncode == 0:
            return

        self.console.print(f"[yellow]Tag '{tag}' exists locally but NOT on origin.[/yellow]")
        if not self.prompter.confirm(f"Push '{tag}' to origin now?"):
            raise PreconditionError(actionable_error("tag_not_pushed", tag=tag))
        self._git_mutate("push", "origin", tag)
        self.console.print("[green]Tag pushed.[/green]")

    def _create_tag(self, has_remote: bool) -> str:
        self.console.print("[yellow]No version tag found for current commit.[/yellow]")
        recent = self._git("tag", "--sort=-v:refname", "--list").stdout.splitlines()[:5]
        self.console.print("--- Recent Tags ---")
        for tag in recent:
            self.console.print(tag)
        self.console.print("-------------------")

        new_version = self.prompter.ask("Enter new semantic version (e.g. v1.0.1)")
        if not new_version:
            raise PreconditionError("Version is required.")

        try:
            Version(new_version.lstrip("vV"))
        except InvalidVersion as exc:
            raise PreconditionError(f"'{new_version}' is not a valid version.") from exc

        if not new_version.startswith("v"):
            self.console.print(
                "[yellow]Convention suggestion: versions usually start with 'v' (e.g. v1.0.0)[/yellow]"
            )
            if not self.prompter.confirm(f"Use '{new_version}' anyway?"):
                raise OperationCancelled("Release cancelled by operator.")

        self.console.print(f"[blue]Creating tag {new_version}...[/blue]")
        self._git_mutate("tag", "-a", new_version, "-m", f"Release {new_version}")

        if has_remote:
            self.console.print("[blue]Pushing tag to origin...[/blue]")
            self._git_mutate("push", "origin", new_version)

        return new_version
