"""Operator confirmation prompts."""

import click

from podship.models import ExecutionContext


class Prompter:
    """Asks the operator; dry runs and ``--yes`` accept every confirmation."""

    def __init__(self, context: ExecutionContext, confirm_fn=click.confirm, prompt_fn=click.prompt):
        self.context = context
        self.confirm_fn = confirm_fn
        self.prompt_fn = prompt_fn

    def confirm(self, message: str) -> bool:
        if self.context.dry_run or self.context.assume_yes:
            return True
        return bool(self.confirm_fn(message, default=False))

    def ask(self, message: str) -> str:
        return str(self.prompt_fn(message, default="", show_default=False)).strip()
