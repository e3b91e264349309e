"""Run manifest generation service."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from podship.models import PipelineRun


class ManifestService:
    """Writes the progress of a PipelineRun to a JSON manifest."""

    def __init__(self, manifest_file: Optional[str], logger):
        self.manifest_file = manifest_file
        self.logger = logger
        self.manifest: Dict[str, Any] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.manifest_file)

    def start_run(self, run: PipelineRun, metadata: Optional[Dict[str, Any]] = None):
        self.manifest = {
            "run_id": run.run_id,
            "operation": run.operation,
            "status": "running",
            "started_at": self._now(),
            "finished_at": None,
            "duration_seconds": None,
            "metadata": metadata or {},
            "stages": [],
            "backup": None,
            "commands": [],
            "error": None,
        }
        self.write()

    def record_stages(self, run: PipelineRun):
        self.manifest["stages"] = list(run.stages)
        if run.backup is not None:
            self.manifest["backup"] = {
                "resource": run.backup.resource,
                "backup_path": run.backup.backup_path,
                "location": run.backup.location,
                "existed": run.backup.existed,
            }
        self.write()

    def finalize(self, run: PipelineRun):
        self.manifest["stages"] = list(run.stages)
        self.manifest["commands"] = list(run.commands)
        self.manifest["status"] = run.outcome.value if run.outcome else "unknown"
        self.manifest["error"] = run.error
        self.manifest["finished_at"] = self._now()
        if self.manifest.get("started_at"):
            started_at = datetime.fromisoformat(self.manifest["started_at"])
            finished_at = datetime.fromisoformat(self.manifest["finished_at"])
            self.manifest["duration_seconds"] = (finished_at - started_at).total_seconds()
        self.write()

    def write(self):
        if not self.enabled:
            return

        os.makedirs(os.path.dirname(self.manifest_file) or ".", exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            prefix="run-manifest-", suffix=".json", dir=os.path.dirname(self.manifest_file) or "."
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.manifest, file_obj, indent=2, sort_keys=True)
                file_obj.write("\n")
            os.replace(temp_path, self.manifest_file)
        except OSError as exc:
            self.logger.warning("Could not write manifest file '%s': %s", self.manifest_file, exc)
            try:
                os.remove(temp_path)
            except OSError:
                pass

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
