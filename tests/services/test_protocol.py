import json

import pytest

from podship.errors import DeployError, OperationCancelled, RollbackError, VerificationError
from podship.models import BackupRecord, ExecutionContext, Outcome, Stage
from podship.services.manifest import ManifestService
from podship.services.protocol import MutationPlan, MutationProtocol


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None

    def error(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class ScriptedPlan(MutationPlan):
    operation = "scripted"

    def __init__(self, context, fail_at=None, failure=None, rollback_fails=False):
        self.context = context
        self.fail_at = fail_at
        self.failure = failure or DeployError(f"{fail_at} broke")
        self.rollback_fails = rollback_fails
        self.events = []

    def _step(self, name):
        self.events.append(name)
        self.context.record(name)
        if self.fail_at == name:
            raise self.failure

    def validate(self, run):
        self._step("validate")

    def prepare(self, run):
        self._step("prepare")

    def backup(self, run):
        self._step("backup")
        return BackupRecord(resource="/srv/app/app", location="remote")

    def mutate(self, run):
        self._step("mutate")

    def verify(self, run):
        self._step("verify")

    def rollback(self, run, error):
        self.events.append("rollback")
        if self.rollback_fails:
            raise DeployError("restore failed")


def _protocol(context):
    return MutationProtocol(logger=DummyLogger(), console=DummyConsole(), context=context)


def test_successful_run_visits_every_stage_in_order():
    context = ExecutionContext()
    plan = ScriptedPlan(context)

    run = _protocol(context).execute(plan)

    assert run.outcome == Outcome.SUCCEEDED
    assert [entry["stage"] for entry in run.stages] == [
        "validating",
        "preparing",
        "backing-up",
        "mutating",
        "verifying",
        "succeeded",
        "terminal",
    ]
    assert run.backup.resource == "/srv/app/app"
    assert run.commands == ["validate", "prepare", "backup", "mutate", "verify"]


@pytest.mark.parametrize("stage", ["validate", "prepare", "backup"])
def test_failure_before_mutation_never_rolls_back(stage):
    context = ExecutionContext()
    plan = ScriptedPlan(context, fail_at=stage)

    run = _protocol(context).execute(plan)

    assert run.outcome == Outcome.FAILED
    assert "mutate" not in plan.events
    assert "rollback" not in plan.events
    assert not run.visited(Stage.MUTATING)


def test_cancellation_is_reported_separately():
    context = ExecutionContext()
    plan = ScriptedPlan(context, fail_at="validate", failure=OperationCancelled("Operation cancelled."))

    run = _protocol(context).execute(plan)

    assert run.outcome == Outcome.CANCELLED
    assert run.error == "Operation cancelled."


@pytest.mark.parametrize("stage", ["mutate", "verify"])
def test_failure_after_backup_rolls_back_once(stage):
    context = ExecutionContext()
    plan = ScriptedPlan(context, fail_at=stage, failure=VerificationError("not healthy"))

    run = _protocol(context).execute(plan)

    assert run.outcome == Outcome.ROLLED_BACK
    assert plan.events.count("rollback") == 1
    assert run.visited(Stage.ROLLING_BACK)
    assert not run.visited(Stage.SUCCEEDED)
    assert run.error == "not healthy"


def test_unexpected_exception_during_mutation_still_rolls_back():
    context = ExecutionContext()
    plan = ScriptedPlan(context, fail_at="mutate", failure=OSError("disk full"))

    run = _protocol(context).execute(plan)

    assert run.outcome == Outcome.ROLLED_BACK
    assert "disk full" in run.error


def test_failed_rollback_escalates_as_fatal():
    context = ExecutionContext()
    plan = ScriptedPlan(context, fail_at="verify", rollback_fails=True)

    with pytest.raises(RollbackError, match="restore failed") as excinfo:
        _protocol(context).execute(plan)

    assert isinstance(excinfo.value.__cause__, DeployError)
    assert plan.events.count("rollback") == 1


def test_unexpected_exception_before_backup_fails_and_finalizes_manifest(tmp_path):
    context = ExecutionContext()
    manifest_file = tmp_path / "run.json"
    plan = ScriptedPlan(context, fail_at="prepare", failure=OSError("Permission denied: build/app.container"))
    protocol = MutationProtocol(
        logger=DummyLogger(),
        console=DummyConsole(),
        context=context,
        manifest_service=ManifestService(str(manifest_file), DummyLogger()),
    )

    run = protocol.execute(plan)

    assert run.outcome == Outcome.FAILED
    assert "rollback" not in plan.events
    manifest = json.loads(manifest_file.read_text())
    assert manifest["status"] == "failed"
    assert "Permission denied" in manifest["error"]
