import pytest
import requests

from podship.errors import VerificationError
from podship.models import ExecutionContext
from podship.services.health import HealthVerifier


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code


class FakeRequests:
    RequestException = requests.RequestException

    def __init__(self, statuses):
        self.statuses = list(statuses)
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        status = self.statuses.pop(0)
        if status is None:
            raise requests.ConnectionError("refused")
        return FakeResponse(status)


def _verifier(executor, requests_module=None, dry_run=False, attempts=3):
    return HealthVerifier(
        logger=DummyLogger(),
        console=DummyConsole(),
        executor=executor,
        context=ExecutionContext(dry_run=dry_run),
        requests_module=requests_module or FakeRequests([]),
        settle_seconds=0,
        attempts=attempts,
        interval_seconds=0,
    )


def test_inactive_unit_fails_verification(recording_executor, environment):
    executor = recording_executor(fail_on=("is-active",))

    with pytest.raises(VerificationError, match="not active"):
        _verifier(executor).verify(environment().unit)


def test_active_unit_without_health_url_passes(recording_executor, environment):
    executor = recording_executor()

    _verifier(executor).verify(environment().unit)

    assert executor.commands == ["systemctl --user is-active app.service"]


def test_remote_check_curls_from_the_host(recording_executor, environment):
    executor = recording_executor()
    env = environment(health_url="http://localhost:8080/health")

    _verifier(executor).verify(env.unit)

    assert executor.commands[-1] == "curl -s -f -o /dev/null http://localhost:8080/health"


def test_remote_check_times_out_after_all_attempts(recording_executor, environment):
    executor = recording_executor(fail_on=("curl",))
    env = environment(health_url="http://localhost:8080/health")

    with pytest.raises(VerificationError, match="Health check timed out"):
        _verifier(executor, attempts=4).verify(env.unit)
    assert sum("curl" in text for text in executor.commands) == 4


def test_local_check_retries_until_success(recording_executor, environment):
    fake_requests = FakeRequests([None, 503, 200])
    env = environment(health_url="https://app.example.com/health", health_check_from="local")

    _verifier(recording_executor(), requests_module=fake_requests).verify(env.unit)

    assert fake_requests.urls == ["https://app.example.com/health"] * 3


def test_local_check_in_dry_run_only_records(recording_executor, environment):
    fake_requests = FakeRequests([])
    env = environment(health_url="https://app.example.com/health", health_check_from="local")
    verifier = _verifier(recording_executor(), requests_module=fake_requests, dry_run=True)

    verifier.verify(env.unit)

    assert fake_requests.urls == []
    assert verifier.context.commands == ["GET https://app.example.com/health"]


def test_activating_unit_is_polled_until_active(recording_executor, environment):
    class SettlingExecutor(recording_executor):
        def execute(self, script, read_only=False):
            result = super().execute(script, read_only)
            self.returncodes.clear()
            return result

    executor = SettlingExecutor(returncodes={"is-active": 3}, responses={"is-active": "activating"})

    _verifier(executor).verify(environment().unit)

    assert executor.commands == ["systemctl --user is-active app.service"] * 2


def test_unit_stuck_activating_fails_after_all_attempts(recording_executor, environment):
    executor = recording_executor(returncodes={"is-active": 3}, responses={"is-active": "activating"})

    with pytest.raises(VerificationError, match="did not become active after 3 checks"):
        _verifier(executor).verify(environment().unit)
    assert len(executor.commands) == 3


def test_failed_unit_is_not_polled(recording_executor, environment):
    executor = recording_executor(returncodes={"is-active": 3}, responses={"is-active": "failed"})

    with pytest.raises(VerificationError, match=r"not active after restart \(failed\)"):
        _verifier(executor, attempts=5).verify(environment().unit)
    assert len(executor.commands) == 1
