import pytest

from podship.models import (
    DatabaseDescriptor,
    DeployEnvironment,
    ReleaseDescriptor,
    RouteDescriptor,
    Target,
    UnitDescriptor,
)
from podship.services.remote_executor import RemoteResult


class RecordingExecutor:
    """Stands in for RemoteExecutor and records every remote call in order."""

    def __init__(self, fail_on=(), responses=None, payload=b"", returncodes=None):
        self.fail_on = tuple(fail_on)
        self.responses = dict(responses or {})
        self.returncodes = dict(returncodes or {})
        self.payload = payload
        self.calls = []
        self.syncs = []

    def _fails(self, text):
        return any(marker in text for marker in self.fail_on)

    def _response(self, text):
        return next((out for key, out in self.responses.items() if key in text), "")

    def execute(self, script, read_only=False):
        text = str(script)
        self.calls.append(("execute", text, read_only))
        returncode = next((code for key, code in self.returncodes.items() if key in text), None)
        if returncode is not None:
            return RemoteResult(success=False, stdout=self._response(text), stderr="", returncode=returncode)
        if self._fails(text):
            return RemoteResult(success=False, stdout="", stderr="boom", returncode=1)
        return RemoteResult(success=True, stdout=self._response(text))

    def stream(self, script, stdout=None, read_only=False):
        text = str(script)
        self.calls.append(("stream", text, read_only))
        if self._fails(text):
            return False
        if stdout is not None:
            stdout.write(self.payload)
        return True

    def sync(self, sources, destination, delete=False, excludes=(), protect=()):
        text = f"rsync {' '.join(sources)} -> {destination}"
        self.calls.append(("sync", text, False))
        self.syncs.append(
            {
                "sources": list(sources),
                "destination": destination,
                "delete": delete,
                "excludes": list(excludes),
                "protect": list(protect),
            }
        )
        return not self._fails(text)

    @property
    def commands(self):
        return [text for _, text, _ in self.calls]

    @property
    def writes(self):
        return [text for _, text, read_only in self.calls if not read_only]

    def index_of(self, marker):
        for index, text in enumerate(self.commands):
            if marker in text:
                return index
        raise AssertionError(f"No command containing {marker!r} in {self.commands}")


@pytest.fixture
def recording_executor():
    return RecordingExecutor


@pytest.fixture
def environment():
    def build(**unit_overrides):
        unit_values = {
            "service_name": "app",
            "image": "localhost/app:latest",
            "route": RouteDescriptor(host="app.example.com", internal_port=8080),
        }
        unit_values.update(unit_overrides)
        return DeployEnvironment(
            target=Target(name="prod", host="vps.example.com", user="deploy", target_dir="/srv/app"),
            unit=UnitDescriptor(**unit_values),
            release=ReleaseDescriptor(app_name="app", binary_name="app"),
            database=DatabaseDescriptor(driver="sqlite", source="data/app.db"),
        )

    return build
