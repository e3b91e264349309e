"""Provisioning of the shared Traefik reverse proxy on a host."""

import os
from typing import Dict, List, Optional

import requests

from podship.constants import (
    BACKUP_SUFFIX,
    BUILD_DIR,
    DEFAULT_CERT_RESOLVER,
    DEFAULT_TRAEFIK_NETWORK,
    DEFAULT_TRAEFIK_VERSION,
    QUADLET_DIR,
    RELEASE_LOOKUP_TIMEOUT,
    TRAEFIK_DIR,
    TRAEFIK_IMAGE,
    TRAEFIK_RELEASES_URL,
    TRAEFIK_SERVICE,
)
from podship.errors import ActivationError, ConfigError, DeployError, PreconditionError, TransferError
from podship.models import BackupRecord, DeployEnvironment, PipelineRun, UnitDescriptor
from podship.services.command_builder import Literal, RemoteScript, command, home_path, if_exists
from podship.services.protocol import MutationPlan

CONTAINER_TEMPLATE = """[Unit]
Description=Traefik Reverse Proxy
After=network-online.target
Wants=network-online.target

[Container]
Image={image}:{version}
Network={network}.network
PublishPort=80:80
PublishPort=443:443
Volume=/run/user/{uid}/podman/podman.sock:/var/run/docker.sock:Z
Volume=%h/traefik/traefik.yml:/etc/traefik/traefik.yml:ro,Z
Volume=%h/traefik/dynamic_conf:/etc/traefik/dynamic_conf:ro,Z
Volume=%h/traefik/letsencrypt:/letsencrypt:Z
Exec=--configfile=/etc/traefik/traefik.yml

[Install]
WantedBy=default.target
"""

STATIC_CONFIG_TEMPLATE = """api:
  dashboard: {dashboard}

entryPoints:
  web:
    address: ":80"
    http:
      redirections:
        entryPoint:
          to: websecure
          scheme: https
  websecure:
    address: ":443"

certificatesResolvers:
  {resolver}:
    acme:
      email: "{email}"
      storage: "/letsencrypt/acme.json"
      httpChallenge:
        entryPoint: web

providers:
  docker:
    endpoint: "unix:///var/run/docker.sock"
    exposedByDefault: false
  file:
    directory: "/etc/traefik/dynamic_conf"
    watch: true
"""

DASHBOARD_TEMPLATE = """http:
  routers:
    dashboard:
      rule: Host("traefik.localhost") || (PathPrefix("/api") && Headers("Referer", "traefik"))
      service: api@internal
      middlewares:
        - auth
  middlewares:
    auth:
      basicAuth:
        users:
          - "{auth}"
"""

NETWORK_TEMPLATE = """[Network]
Driver=bridge
"""


def _backup_of(path: Literal) -> Literal:
    return Literal(f"{path}{BACKUP_SUFFIX}")


def latest_release(requests_module=requests, logger=None) -> str:
    """Tag of the newest Traefik release, or the pinned default if the lookup fails."""
    try:
        response = requests_module.get(TRAEFIK_RELEASES_URL, timeout=RELEASE_LOOKUP_TIMEOUT)
        response.raise_for_status()
        tag = response.json()["tag_name"]
    except (requests_module.RequestException, ValueError, KeyError, TypeError) as exc:
        if logger is not None:
            logger.warning("Release lookup failed (%s). Defaulting to %s.", exc, DEFAULT_TRAEFIK_VERSION)
        return DEFAULT_TRAEFIK_VERSION
    return str(tag)


class TraefikSetupPlan(MutationPlan):
    """Renders the proxy configuration, ships it and restarts ``traefik.service``.

    The previous ``traefik.yml`` and unit file are kept as ``.bak`` copies and put
    back if the proxy does not come up again.
    """

    operation = "traefik"

    def __init__(
        self,
        environment: DeployEnvironment,
        logger,
        console,
        context,
        executor,
        health_verifier,
        rollback_controller,
        requests_module=requests,
        out_dir: str = os.path.join(BUILD_DIR, TRAEFIK_DIR),
    ):
        self.environment = environment
        self.target = environment.target
        self.settings = environment.traefik
        self.logger = logger
        self.console = console
        self.context = context
        self.executor = executor
        self.health_verifier = health_verifier
        self.rollback_controller = rollback_controller
        self.requests = requests_module
        self.out_dir = out_dir

        self.version: Optional[str] = None
        self.remote_uid: Optional[str] = None
        self.files: Dict[str, str] = {}
        self.unit = UnitDescriptor(service_name=TRAEFIK_SERVICE, image=TRAEFIK_IMAGE)

    @property
    def network(self) -> str:
        return self.settings.network_name or DEFAULT_TRAEFIK_NETWORK

    @property
    def with_dashboard_auth(self) -> bool:
        return bool(self.settings.dashboard and self.settings.dashboard_auth)

    def metadata(self) -> dict:
        return {"environment": self.target.name, "host": self.target.host, "version": self.version}

    def remote_files(self) -> List[str]:
        return [
            home_path(f"{TRAEFIK_DIR}/traefik.yml"),
            home_path(f"{QUADLET_DIR}/{TRAEFIK_SERVICE}.container"),
        ]

    # Validating

    def validate(self, run: PipelineRun):
        if not self.settings.email:
            raise ConfigError(f"`environments.{self.target.name}.traefik.email` is required for Traefik setup.")

        version = self.settings.version
        if not version or version == "latest":
            self.console.print("[blue]Checking GitHub for the latest Traefik version...[/blue]")
            version = latest_release(self.requests, self.logger)
        self.version = version
        self.logger.info("Traefik version: %s", self.version)

        result = self.executor.execute("id -u", read_only=True)
        if not result.success or not result.stdout:
            raise PreconditionError(f"Cannot determine the remote user id on {self.target.host}.")
        self.remote_uid = result.stdout.strip()

    # Preparing

    def render(self) -> Dict[str, str]:
        files = {
            "traefik.yml": STATIC_CONFIG_TEMPLATE.format(
                dashboard=str(self.settings.dashboard).lower(),
                resolver=self.settings.cert_resolver or DEFAULT_CERT_RESOLVER,
                email=self.settings.email,
            ),
            f"{TRAEFIK_SERVICE}.container": CONTAINER_TEMPLATE.format(
                image=TRAEFIK_IMAGE, version=self.version, network=self.network, uid=self.remote_uid
            ),
            f"{self.network}.network": NETWORK_TEMPLATE,
        }
        if self.with_dashboard_auth:
            files[os.path.join("dynamic_conf", "dashboard.yml")] = DASHBOARD_TEMPLATE.format(
                auth=self.settings.dashboard_auth
            )
        return files

    def prepare(self, run: PipelineRun):
        self.console.print(f"[blue]Configuring Traefik on {self.target.host}...[/blue]")
        self.files = self.render()
        if self.context.dry_run:
            return
        for name, text in self.files.items():
            path = os.path.join(self.out_dir, name)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(text)
            self.logger.debug("Wrote %s", path)

    # Backing-Up

    def backup(self, run: PipelineRun) -> BackupRecord:
        self.console.print("[blue]Setting up remote directories and backing up the current proxy...[/blue]")
        static_config, unit_file = self.remote_files()
        acme = home_path(f"{TRAEFIK_DIR}/letsencrypt/acme.json")
        script = (
            RemoteScript()
            .run(
                "mkdir",
                "-p",
                home_path(f"{TRAEFIK_DIR}/dynamic_conf"),
                home_path(f"{TRAEFIK_DIR}/letsencrypt"),
                home_path(QUADLET_DIR),
            )
            .run("touch", acme)
            .run("chmod", "600", acme)
            .raw(if_exists(static_config, then=command("cp", "-p", static_config, _backup_of(static_config))))
            .raw(
                if_exists(
                    unit_file,
                    then=f"{command('cp', '-p', unit_file, _backup_of(unit_file))} && echo saved",
                    otherwise="echo none",
                )
            )
        )
        result = self.executor.execute(script)
        if not result.success:
            raise DeployError(f"Remote setup failed: {result.stderr or result.returncode}")
        return BackupRecord(
            resource=str(unit_file),
            location="remote",
            existed=result.stdout.strip() != "none",
        )

    # Mutating

    def _sync(self, names: List[str], destination: str):
        sources = [os.path.join(self.out_dir, name) for name in names]
        if not self.executor.sync(sources, destination):
            raise TransferError(f"Transfer to {self.target.host}:{destination} failed.")

    def mutate(self, run: PipelineRun):
        self.console.print("[blue]Syncing configs...[/blue]")
        self._sync(["traefik.yml"], f"~/{TRAEFIK_DIR}/")
        if self.with_dashboard_auth:
            self._sync(["dynamic_conf/"], f"~/{TRAEFIK_DIR}/dynamic_conf/")
        self._sync([f"{TRAEFIK_SERVICE}.container", f"{self.network}.network"], f"~/{QUADLET_DIR}/")

        self.console.print("[blue]Starting Traefik...[/blue]")
        script = (
            RemoteScript()
            .run("systemctl", "--user", "daemon-reload")
            .run("systemctl", "--user", "restart", self.unit.unit_name)
        )
        result = self.executor.execute(script)
        if not result.success:
            raise ActivationError(
                f"Traefik failed to start ({result.returncode}): {result.stderr or 'no output'}"
            )

    # Verifying

    def verify(self, run: PipelineRun):
        self.health_verifier.check_active(self.unit)
        self.console.print("[green]Traefik deployed successfully.[/green]")

    def rollback(self, run: PipelineRun, error: DeployError):
        self.rollback_controller.restore_unit_files(self.target, self.unit, run.backup, self.remote_files())
