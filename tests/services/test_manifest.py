import json

from podship.models import BackupRecord, Outcome, PipelineRun, Stage
from podship.services.manifest import ManifestService


class DummyLogger:
    def warning(self, *_args, **_kwargs):
        return None


def test_manifest_service_writes_run_progress(tmp_path):
    manifest_file = tmp_path / "out" / "run-manifest.json"
    service = ManifestService(str(manifest_file), logger=DummyLogger())
    run = PipelineRun(run_id="run-123", operation="release")

    service.start_run(run, {"environment": "prod"})
    run.enter(Stage.VALIDATING)
    run.backup = BackupRecord(resource="/srv/app/app", location="remote")
    service.record_stages(run)
    run.commands = ["ssh deploy@vps true"]
    run.outcome = Outcome.ROLLED_BACK
    run.error = "Health check timed out"
    service.finalize(run)

    data = json.loads(manifest_file.read_text(encoding="utf-8"))

    assert data["run_id"] == "run-123"
    assert data["operation"] == "release"
    assert data["status"] == "rolled-back"
    assert data["metadata"]["environment"] == "prod"
    assert data["stages"][0]["stage"] == "validating"
    assert data["backup"]["backup_path"] == "/srv/app/app.bak"
    assert data["commands"] == ["ssh deploy@vps true"]
    assert data["error"] == "Health check timed out"
    assert data["duration_seconds"] is not None


def test_manifest_service_is_noop_without_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    service = ManifestService(None, logger=DummyLogger())
    run = PipelineRun(run_id="run-1", operation="db-pull")

    service.start_run(run)
    run.outcome = Outcome.CANCELLED
    service.finalize(run)

    assert list(tmp_path.iterdir()) == []
