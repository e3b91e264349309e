"""Post-activation verification: supervisor status and HTTP health checks."""

import time

import requests

from podship.constants import (
    ACTIVE_PENDING_STATES,
    HEALTH_ATTEMPTS,
    HEALTH_INTERVAL_SECONDS,
    HEALTH_REQUEST_TIMEOUT,
    SETTLE_DELAY_SECONDS,
)
from podship.errors import VerificationError
from podship.models import UnitDescriptor
from podship.services.command_builder import command, systemctl_user


class HealthVerifier:
    """Verifies a freshly restarted unit is active and answering."""

    def __init__(
        self,
        logger,
        console,
        executor,
        context,
        requests_module=requests,
        settle_seconds: float = SETTLE_DELAY_SECONDS,
        attempts: int = HEALTH_ATTEMPTS,
        interval_seconds: float = HEALTH_INTERVAL_SECONDS,
    ):
        self.logger = logger
        self.console = console
        self.executor = executor
        self.context = context
        self.requests = requests_module
        self.settle_seconds = settle_seconds
        self.attempts = attempts
        self.interval_seconds = interval_seconds

    def _sleep(self, seconds: float):
        if not self.context.dry_run:
            time.sleep(seconds)

    def verify(self, unit: UnitDescriptor):
        self.check_active(unit)
        if unit.health_url:
            self.check_url(unit.health_url, mode=unit.health_check_from)

    def check_active(self, unit: UnitDescriptor):
        """Waits for the unit to settle, polling while systemd still reports it starting."""
        self._sleep(self.settle_seconds)
        state = "unknown"
        for attempt in range(1, self.attempts + 1):
            result = self.executor.execute(systemctl_user("is-active", unit.unit_name))
            if result.success:
                self.logger.info("Service %s is active.", unit.unit_name)
                return
            state = result.stdout or "unknown"
            if state not in ACTIVE_PENDING_STATES:
                raise VerificationError(f"Service {unit.unit_name} is not active after restart ({state}).")
            self.logger.debug("Service %s is %s (%s/%s).", unit.unit_name, state, attempt, self.attempts)
            if attempt < self.attempts:
                self._sleep(self.interval_seconds)

        raise VerificationError(
            f"Service {unit.unit_name} did not become active after {self.attempts} checks ({state})."
        )

    def check_url(self, url: str, mode: str = "remote"):
        self.console.print(f"[blue]Performing application health check ({url})...[/blue]")
        check = self._check_local if mode == "local" else self._check_remote

        for attempt in range(1, self.attempts + 1):
            if check(url):
                self.console.print("[green]Health check passed.[/green]")
                return
            self.logger.debug("Health check attempt %s/%s failed.", attempt, self.attempts)
            if attempt < self.attempts:
                self._sleep(self.interval_seconds)

        raise VerificationError(
            f"Health check timed out: {url} did not succeed after {self.attempts} attempts."
        )

    def _check_remote(self, url: str) -> bool:
        return self.executor.execute(command("curl", "-s", "-f", "-o", "/dev/null", url)).success

    def _check_local(self, url: str) -> bool:
        if self.context.dry_run:
            self.context.record(f"GET {url}")
            self.logger.info("[dry-run] GET %s", url)
            return True
        try:
            response = self.requests.get(url, timeout=HEALTH_REQUEST_TIMEOUT)
        except self.requests.RequestException as exc:
            self.logger.debug("Health check error: %s", exc)
            return False
        return 200 <= response.status_code < 300
