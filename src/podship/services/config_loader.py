"""Configuration loader for podship."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from podship.constants import DEFAULT_ARCH, DEFAULT_DOCKERFILE, DEFAULT_SSH_PORT
from podship.errors import ConfigError
from podship.models import (
    DatabaseDescriptor,
    DeployEnvironment,
    RateLimit,
    ReleaseDescriptor,
    RouteDescriptor,
    Target,
    TraefikDescriptor,
    UnitDescriptor,
)


class ConfigLoader:
    """Loads deploy.yaml and resolves one environment into descriptors."""

    SUPPORTED_KEYS = {"app_name", "binary_name", "build", "artifacts", "environments"}
    BUILD_KEYS = {"arch", "ldflags", "dir", "cmd"}
    ARTIFACT_KEYS = {"include", "exclude"}
    ENVIRONMENT_KEYS = {
        "host",
        "user",
        "ssh_port",
        "ssh_key",
        "target_dir",
        "sync_env_file",
        "quadlet",
        "database",
        "traefik",
    }
    QUADLET_KEYS = {
        "service_name",
        "description",
        "image",
        "network",
        "labels",
        "router",
        "volumes",
        "env_vars",
        "ports",
        "stop_on_deploy",
        "timezone",
        "memory",
        "cpu",
        "read_only",
        "health_cmd",
        "health_url",
        "health_check_from",
        "podman_args",
        "exec",
        "dockerfile",
        "container_uid",
        "container_gid",
        "chown_volumes",
    }
    ROUTER_KEYS = {
        "host",
        "rule",
        "internal_port",
        "entrypoints",
        "cert_resolver",
        "path_prefix",
        "strip_prefix",
        "compress",
        "basic_auth_users",
        "basic_auth_file",
        "ip_allowlist",
        "rate_limit",
        "headers",
    }
    RATE_LIMIT_KEYS = {"average", "burst"}
    DATABASE_KEYS = {"driver", "source"}
    TRAEFIK_KEYS = {"version", "email", "cert_resolver", "network_name", "dashboard", "dashboard_auth"}

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            raise ConfigError("No configuration file given.")

        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ConfigError("Config file must contain a YAML mapping at the root.")

        self._check_keys(parsed, self.SUPPORTED_KEYS, "")
        return parsed

    @staticmethod
    def _check_keys(section: Any, allowed: set, where: str) -> Dict[str, Any]:
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise ConfigError(f"Configuration section '{where}' must be a mapping.")
        unknown = sorted(set(section.keys()) - allowed)
        if unknown:
            unknown_list = ", ".join(str(key) for key in unknown)
            prefix = f" in '{where}'" if where else ""
            raise ConfigError(f"Unknown configuration keys{prefix}: {unknown_list}")
        return section

    @staticmethod
    def _require(section: Dict[str, Any], key: str, where: str) -> Any:
        value = section.get(key)
        if value in (None, ""):
            raise ConfigError(f"Missing required configuration '{where}.{key}'.")
        return value

    @staticmethod
    def _int(section: Dict[str, Any], key: str, where: str, default: int = 0) -> int:
        value = section.get(key)
        if value in (None, ""):
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"'{where}.{key}' must be an integer (got {value!r}).") from None

    @staticmethod
    def _strings(value: Any) -> tuple:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return tuple(str(item) for item in value)

    def resolve(self, config: Dict[str, Any], env_name: str, require_release: bool = False) -> DeployEnvironment:
        environments = config.get("environments") or {}
        if env_name not in environments:
            available = ", ".join(sorted(environments)) or "<none>"
            raise ConfigError(f"Environment '{env_name}' not found. Available: {available}")

        where = f"environments.{env_name}"
        env = self._check_keys(environments[env_name], self.ENVIRONMENT_KEYS, where)

        target = Target(
            name=env_name,
            host=str(self._require(env, "host", where)),
            user=str(self._require(env, "user", where)),
            target_dir=str(self._require(env, "target_dir", where)),
            port=self._int(env, "ssh_port", where) or DEFAULT_SSH_PORT,
            identity_file=env.get("ssh_key") or None,
        )

        quadlet = self._check_keys(env.get("quadlet"), self.QUADLET_KEYS, f"{where}.quadlet")
        unit = self._build_unit(quadlet, f"{where}.quadlet", require_image=require_release)

        database = self._check_keys(env.get("database"), self.DATABASE_KEYS, f"{where}.database")
        traefik = self._check_keys(env.get("traefik"), self.TRAEFIK_KEYS, f"{where}.traefik")

        release = None
        if require_release or config.get("binary_name"):
            release = self._build_release(config)

        return DeployEnvironment(
            target=target,
            unit=unit,
            release=release,
            database=DatabaseDescriptor(
                driver=str(database.get("driver") or "sqlite"),
                source=database.get("source"),
            ),
            env_file=env.get("sync_env_file") or None,
            default_cert_resolver=traefik.get("cert_resolver") or None,
            traefik=TraefikDescriptor(
                version=str(traefik["version"]) if traefik.get("version") else None,
                email=traefik.get("email") or None,
                cert_resolver=traefik.get("cert_resolver") or None,
                network_name=traefik.get("network_name") or None,
                dashboard=bool(traefik.get("dashboard", False)),
                dashboard_auth=traefik.get("dashboard_auth") or None,
            ),
        )

    def _build_release(self, config: Dict[str, Any]) -> ReleaseDescriptor:
        build = self._check_keys(config.get("build"), self.BUILD_KEYS, "build")
        artifacts = self._check_keys(config.get("artifacts"), self.ARTIFACT_KEYS, "artifacts")
        binary_name = config.get("binary_name")
        if not binary_name:
            raise ConfigError("Missing required configuration 'binary_name'.")
        return ReleaseDescriptor(
            app_name=str(config.get("app_name") or binary_name),
            binary_name=str(binary_name),
            arch=str(build.get("arch") or DEFAULT_ARCH),
            ldflags=build.get("ldflags") or None,
            source_dir=build.get("dir") or None,
            build_cmd=build.get("cmd") or None,
            include=self._strings(artifacts.get("include")),
            exclude=self._strings(artifacts.get("exclude")),
        )

    def _build_unit(self, quadlet: Dict[str, Any], where: str, require_image: bool) -> UnitDescriptor:
        service_name = str(self._require(quadlet, "service_name", where))
        image = quadlet.get("image")
        if require_image and not image:
            raise ConfigError(f"Missing required configuration '{where}.image'.")

        health_check_from = str(quadlet.get("health_check_from") or "remote")
        if health_check_from not in ("remote", "local"):
            raise ConfigError(f"'{where}.health_check_from' must be 'remote' or 'local'.")

        return UnitDescriptor(
            service_name=service_name,
            image=str(image or ""),
            route=self._build_route(quadlet.get("router"), f"{where}.router"),
            description=quadlet.get("description") or None,
            network=quadlet.get("network") or None,
            extra_labels=self._strings(quadlet.get("labels")),
            volumes=self._strings(quadlet.get("volumes")),
            env_vars=self._strings(quadlet.get("env_vars")),
            ports=self._strings(quadlet.get("ports")),
            podman_args=self._strings(quadlet.get("podman_args")),
            exec_cmd=quadlet.get("exec") or None,
            timezone=quadlet.get("timezone") or None,
            memory=quadlet.get("memory") or None,
            cpu=quadlet.get("cpu") or None,
            read_only=bool(quadlet.get("read_only", False)),
            health_cmd=quadlet.get("health_cmd") or None,
            health_url=quadlet.get("health_url") or None,
            health_check_from=health_check_from,
            dockerfile=str(quadlet.get("dockerfile") or DEFAULT_DOCKERFILE),
            stop_on_deploy=bool(quadlet.get("stop_on_deploy", False)),
            container_uid=self._int(quadlet, "container_uid", where),
            container_gid=self._int(quadlet, "container_gid", where),
            chown_volumes=self._strings(quadlet.get("chown_volumes")),
        )

    def _build_route(self, router: Any, where: str) -> RouteDescriptor:
        router = self._check_keys(router, self.ROUTER_KEYS, where)
        rate_limit = None
        if router.get("rate_limit") is not None:
            limits = self._check_keys(router["rate_limit"], self.RATE_LIMIT_KEYS, f"{where}.rate_limit")
            rate_limit = RateLimit(
                average=self._int(limits, "average", f"{where}.rate_limit"),
                burst=self._int(limits, "burst", f"{where}.rate_limit"),
            )

        headers = router.get("headers") or {}
        if not isinstance(headers, dict):
            raise ConfigError(f"'{where}.headers' must be a mapping.")

        return RouteDescriptor(
            host=router.get("host") or None,
            rule=router.get("rule") or None,
            internal_port=self._int(router, "internal_port", where) or None,
            entrypoints=self._strings(router.get("entrypoints")),
            cert_resolver=router.get("cert_resolver") or None,
            path_prefix=router.get("path_prefix") or None,
            strip_prefix=bool(router.get("strip_prefix", False)),
            compress=bool(router.get("compress", False)),
            basic_auth_users=self._strings(router.get("basic_auth_users")),
            basic_auth_file=router.get("basic_auth_file") or None,
            ip_allowlist=self._strings(router.get("ip_allowlist")),
            rate_limit=rate_limit,
            headers=tuple((str(key), str(value)) for key, value in headers.items()),
        )
