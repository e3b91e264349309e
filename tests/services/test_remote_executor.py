import subprocess

import pytest

from podship.errors import DeployError
from podship.models import ExecutionContext, Target
from podship.services.command_builder import RemoteScript
from podship.services.remote_executor import RemoteExecutor


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def error(self, *_args, **_kwargs):
        return None


class FakeRunner:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.context = ExecutionContext()
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.calls = []

    def run(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=self.stdout, stderr=self.stderr)


def _executor(runner, **target_overrides):
    values = {"name": "prod", "host": "vps.example.com", "user": "deploy", "target_dir": "/srv/app"}
    values.update(target_overrides)
    return RemoteExecutor(target=Target(**values), command_runner=runner, logger=DummyLogger())


def test_ssh_args_reuse_a_persistent_control_connection():
    executor = _executor(FakeRunner(), identity_file="~/.ssh/deploy", port=2222)

    args = executor.ssh_args()

    assert "ControlMaster=auto" in args
    assert "ControlPersist=5m" in args
    assert f"ControlPath={executor.control_path}" in args
    assert executor.control_path.endswith("podship-deploy-vps.example.com")
    assert args[-3:] == ["-p", "2222", "deploy@vps.example.com"]
    assert args[args.index("-i") + 1] == "~/.ssh/deploy"


def test_execute_renders_script_and_reports_failure_without_raising():
    runner = FakeRunner(returncode=3, stdout=" inactive \n", stderr="err")
    executor = _executor(runner)

    result = executor.execute(RemoteScript().run("systemctl", "--user", "is-active", "app.service"), read_only=True)

    cmd, kwargs = runner.calls[0]
    assert cmd[0] == "ssh"
    assert cmd[-1] == "systemctl --user is-active app.service"
    assert kwargs["check"] is False
    assert kwargs["read_only"] is True
    assert result.success is False
    assert result.stdout == "inactive"
    assert result.returncode == 3


def test_stream_forwards_the_output_handle():
    runner = FakeRunner()
    executor = _executor(runner)
    sink = object()

    assert executor.stream("cat /srv/app/data.db", stdout=sink) is True
    assert runner.calls[0][1]["stdout"] is sink


def test_sync_builds_rsync_command_with_delete_and_excludes():
    runner = FakeRunner()
    executor = _executor(runner, port=2222)

    assert executor.sync(["build/app", "files/"], "/srv/app/", delete=True, excludes=["*.log"]) is True

    cmd = runner.calls[0][0]
    assert cmd[:3] == ["rsync", "-avz", "-e"]
    assert cmd[3].startswith("ssh -o ControlMaster=auto")
    assert "-p 2222" in cmd[3]
    assert cmd[4:] == ["--delete", "--exclude", "*.log", "build/app", "files/", "deploy@vps.example.com:/srv/app/"]
    assert 255 in runner.calls[0][1]["retry_on_returncodes"]


def test_sync_reports_failure_and_rejects_empty_sources():
    executor = _executor(FakeRunner(returncode=12, stderr="connection closed"))

    assert executor.sync(["build/app"], "/srv/app/") is False
    with pytest.raises(DeployError, match="Nothing to transfer"):
        executor.sync([], "/srv/app/")


def test_sync_protects_receiver_paths_from_delete():
    runner = FakeRunner()
    executor = _executor(runner)

    executor.sync(["build/app", "migrations/"], "/srv/app/", delete=True, protect=["/app.bak", "/.env"])

    cmd = runner.calls[0][0]
    assert cmd[4:9] == ["--delete", "--filter", "P /app.bak", "--filter", "P /.env"]
    assert runner.calls[0][1]["capture_output"] is True


def test_sync_streams_rsync_output_when_verbose():
    runner = FakeRunner()
    runner.context = ExecutionContext(verbose=True)

    _executor(runner).sync(["build/app"], "/srv/app/")

    assert runner.calls[0][1]["capture_output"] is False
