"""Starter deploy.yaml for a new project."""

import getpass
import os
from string import Template
from typing import Optional

from podship.constants import DEFAULT_CONFIG_FILE
from podship.errors import ConfigError

DEFAULT_USER = "deploy_user"

STARTER_CONFIG = Template(
    """app_name: "$app_name"
binary_name: "$binary_name"

build:
  arch: "amd64"
  # Placeholders like {{.Version}} are filled in at release time.
  ldflags: "-s -w -X 'main.Version={{.Version}}' -X 'main.Commit={{.Commit}}'"
  # Build inside a Linux container instead (CGO/SQLite from macOS or Windows):
  # cmd: >-
  #   podman run --rm -v "$$(pwd):/app" -w /app docker.io/library/golang:1.24-alpine
  #   sh -c "apk add --no-cache gcc musl-dev git && go build -ldflags=\\"$$LDFLAGS\\" -o build/$binary_name ."

artifacts:
  # Files synced next to the binary. No trailing slash on directories unless
  # you want rsync to copy only their contents.
  include: ["migrations", "Dockerfile.vps"]
  exclude: ["data", "*.db", ".env", ".git", ".idea", ".vscode"]

environments:
  prod:
    host: "vps.example.com"
    user: "$user"
    ssh_port: 22
    # ssh_key: "~/.ssh/id_ed25519_vps"
    target_dir: "/home/$user/web/$app_name"
    sync_env_file: ".env"

    traefik:
      email: "admin@example.com"
      network_name: "traefik-net"

    database:
      driver: sqlite
      source: "data/$app_name.db"

    quadlet:
      service_name: "$app_name"
      image: "localhost/$app_name:latest"
      network: "traefik-net.network"
      timezone: "Europe/Vienna"
      exec: "/$binary_name"
      # stop_on_deploy: true

      container_uid: 65532
      container_gid: 65532
      chown_volumes: ["./data"]

      volumes:
        - "./data:/data:Z"
        - "./migrations:/migrations:ro,Z"

      router:
        host: "$app_name.example.com"
        internal_port: 8080

      env_vars:
        - "APP_ENV=production"
        - "DATASTORE_TYPE=sqlite"
"""
)


def project_name(directory: str) -> str:
    return os.path.basename(os.path.abspath(directory)).replace(" ", "-").lower()


def current_user() -> str:
    try:
        name = getpass.getuser()
    except (KeyError, OSError):
        return DEFAULT_USER
    # DOMAIN\user on Windows
    return name.split("\\")[-1] or DEFAULT_USER


def render_starter_config(app_name: str, user: str) -> str:
    return STARTER_CONFIG.substitute(app_name=app_name, binary_name=f"{app_name}-server", user=user)


def write_starter_config(directory: str, logger, console, user: Optional[str] = None) -> str:
    """Writes deploy.yaml into ``directory``. Refuses to overwrite an existing file."""
    path = os.path.join(directory, DEFAULT_CONFIG_FILE)
    if os.path.exists(path):
        raise ConfigError(f"{DEFAULT_CONFIG_FILE} already exists in {os.path.abspath(directory)}.")

    app_name = project_name(directory)
    user = user or current_user()
    console.print(f"[blue]Initializing {DEFAULT_CONFIG_FILE} for app '{app_name}' with user '{user}'...[/blue]")
    try:
        with open(path, "x", encoding="utf-8", newline="\n") as file_obj:
            file_obj.write(render_starter_config(app_name, user))
    except OSError as exc:
        raise ConfigError(f"Failed to write {path}: {exc}") from exc
    logger.info("Wrote %s", path)
    console.print(f"[green]Created {DEFAULT_CONFIG_FILE}. Please edit 'host' and 'ssh_key' details.[/green]")
    return path
