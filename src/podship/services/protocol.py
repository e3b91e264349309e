"""Backup -> mutate -> verify -> restore-on-failure state machine."""

import uuid
from typing import Optional

from podship.errors import DeployError, OperationCancelled, RollbackError
from podship.models import BackupRecord, ExecutionContext, Outcome, PipelineRun, Stage


class MutationPlan:
    """Steps of one remote mutation. Subclasses fill in the stage hooks.

    Hooks signal failure by raising DeployError. ``validate`` and ``prepare``
    must not touch remote state; ``backup`` returns the BackupRecord that
    ``rollback`` restores.
    """

    operation = "mutation"

    def metadata(self) -> dict:
        return {}

    def validate(self, run: PipelineRun):
        return None

    def prepare(self, run: PipelineRun):
        return None

    def backup(self, run: PipelineRun) -> BackupRecord:
        raise NotImplementedError

    def mutate(self, run: PipelineRun):
        raise NotImplementedError

    def verify(self, run: PipelineRun):
        return None

    def rollback(self, run: PipelineRun, error: DeployError):
        raise NotImplementedError


class MutationProtocol:
    """Drives a MutationPlan through the stages exactly once.

    Failures before the backup exists end the run without remote changes.
    Failures after it trigger a single rollback attempt; a failed rollback
    is escalated as RollbackError.
    """

    def __init__(self, logger, console, context: ExecutionContext, manifest_service=None):
        self.logger = logger
        self.console = console
        self.context = context
        self.manifest_service = manifest_service

    def _enter(self, run: PipelineRun, stage: Stage):
        run.enter(stage)
        self.logger.info("[%s] stage: %s", run.operation, stage.value)
        if self.manifest_service is not None:
            self.manifest_service.record_stages(run)

    def _finish(
        self,
        run: PipelineRun,
        outcome: Outcome,
        error: Optional[Exception],
        journal_start: int,
    ) -> PipelineRun:
        run.outcome = outcome
        run.error = str(error) if error else None
        run.commands = list(self.context.commands[journal_start:])
        self._enter(run, Stage.TERMINAL)
        if self.manifest_service is not None:
            self.manifest_service.finalize(run)
        return run

    def execute(self, plan: MutationPlan) -> PipelineRun:
        run = PipelineRun(run_id=uuid.uuid4().hex[:10], operation=plan.operation)
        journal_start = len(self.context.commands)
        if self.manifest_service is not None:
            self.manifest_service.start_run(run, plan.metadata())

        try:
            self._enter(run, Stage.VALIDATING)
            plan.validate(run)
            self._enter(run, Stage.PREPARING)
            plan.prepare(run)
            self._enter(run, Stage.BACKING_UP)
            run.backup = plan.backup(run)
        except OperationCancelled as exc:
            self.console.print(f"[yellow]{exc}[/yellow]")
            return self._finish(run, Outcome.CANCELLED, exc, journal_start)
        except Exception as exc:
            failure = exc if isinstance(exc, DeployError) else DeployError(str(exc))
            self.console.print(f"[bold red]{run.stage.value} failed:[/bold red] {failure}")
            self.logger.error(str(failure))
            return self._finish(run, Outcome.FAILED, failure, journal_start)

        try:
            self._enter(run, Stage.MUTATING)
            plan.mutate(run)
            self._enter(run, Stage.VERIFYING)
            plan.verify(run)
        except Exception as exc:
            failure = exc if isinstance(exc, DeployError) else DeployError(str(exc))
            self.console.print(f"[bold red]{run.stage.value} failed:[/bold red] {failure}")
            self.logger.error(str(failure))
            self._enter(run, Stage.ROLLING_BACK)
            try:
                plan.rollback(run, failure)
            except DeployError as rollback_exc:
                fatal = (
                    rollback_exc
                    if isinstance(rollback_exc, RollbackError)
                    else RollbackError(str(rollback_exc))
                )
                self._finish(run, Outcome.FATAL, fatal, journal_start)
                raise fatal from failure
            self.console.print(
                f"[yellow]{plan.operation} failed but the previous state was restored.[/yellow]"
            )
            return self._finish(run, Outcome.ROLLED_BACK, failure, journal_start)

        self._enter(run, Stage.SUCCEEDED)
        return self._finish(run, Outcome.SUCCEEDED, None, journal_start)
