import logging
import os

import click
from rich.logging import RichHandler

from .constants import DEFAULT_CONFIG_FILE
from .core import Deployer, console
from .errors import ConfigError
from .models import ExecutionContext
from .services.config_loader import ConfigLoader
from .services.init_config import write_starter_config

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


def _configure_logging(verbose: bool, log_file):
    logger = logging.getLogger("podship")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)


def _build_deployer(ctx: click.Context, env_name: str, require_release: bool = False) -> Deployer:
    options = ctx.obj
    config_path = options["config"] or os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
    loader = ConfigLoader()
    try:
        config_values = loader.load(config_path)
        environment = loader.resolve(config_values, env_name, require_release=require_release)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    return Deployer(
        environment=environment,
        context=options["context"],
        manifest_file=options["manifest_file"],
    )


@click.group()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help="Path to the deploy configuration. Defaults to ./deploy.yaml.",
)
@click.option("--verbose", is_flag=True, default=False, help="Enable verbose logging")
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Print every command of the run without changing local or remote state.",
)
@click.option(
    "--yes",
    "-y",
    "assume_yes",
    is_flag=True,
    default=False,
    help="Answer yes to every confirmation prompt.",
)
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--manifest-file",
    type=click.Path(),
    help="Write a JSON manifest of the run (stages, commands, outcome) to this path.",
)
@click.pass_context
def main(ctx, config, verbose, dry_run, assume_yes, log_file, manifest_file):
    """Deploy a compiled service to a rootless Podman host behind Traefik."""
    _configure_logging(verbose, log_file)
    ctx.obj = {
        "config": config,
        "manifest_file": manifest_file,
        "context": ExecutionContext(dry_run=dry_run, verbose=verbose, assume_yes=assume_yes),
    }


@main.command()
@click.argument("env_name")
@click.option("--version", "version", required=False, help="Existing git tag to release.")
@click.pass_context
def release(ctx, env_name, version):
    """Release a tagged version to ENV_NAME."""
    deployer = _build_deployer(ctx, env_name, require_release=True)
    raise SystemExit(deployer.release(version=version, versioned=True))


@main.command(name="run")
@click.argument("env_name")
@click.pass_context
def run_release(ctx, env_name):
    """Deploy the current checkout to ENV_NAME without the tag gate."""
    deployer = _build_deployer(ctx, env_name, require_release=True)
    raise SystemExit(deployer.release(versioned=False))


@main.group()
def db():
    """Move the service database between this machine and the host."""


@db.command()
@click.argument("env_name")
@click.pass_context
def pull(ctx, env_name):
    """Download a consistent snapshot of the remote database."""
    raise SystemExit(_build_deployer(ctx, env_name).db_pull())


@db.command()
@click.argument("env_name")
@click.pass_context
def push(ctx, env_name):
    """Overwrite the remote database. The service must be stopped."""
    raise SystemExit(_build_deployer(ctx, env_name).db_push())


def _service_command(action: str, help_text: str):
    @click.argument("env_name")
    @click.pass_context
    def command(ctx, env_name):
        raise SystemExit(_build_deployer(ctx, env_name).service_action(action))

    command.__doc__ = help_text
    return main.command(name=action)(command)


start = _service_command("start", "Start the service on ENV_NAME.")
stop = _service_command("stop", "Stop the service on ENV_NAME.")
restart = _service_command("restart", "Restart the service on ENV_NAME.")
enable = _service_command("enable", "Enable the service on ENV_NAME at boot.")
disable = _service_command("disable", "Disable the service on ENV_NAME at boot.")
status = _service_command("status", "Show the service status on ENV_NAME.")


@main.command()
@click.argument("env_name")
@click.pass_context
def prune(ctx, env_name):
    """Remove dangling images and the build cache on ENV_NAME."""
    raise SystemExit(_build_deployer(ctx, env_name).prune())


@main.command()
@click.argument("env_name")
@click.argument("owner", type=click.Choice(["user", "container"]))
@click.pass_context
def rights(ctx, env_name, owner):
    """Hand the chown_volumes on ENV_NAME to the SSH user or to the container."""
    raise SystemExit(_build_deployer(ctx, env_name).rights(owner))


@main.command()
@click.argument("env_name")
@click.pass_context
def traefik(ctx, env_name):
    """Install or update the Traefik reverse proxy on ENV_NAME."""
    raise SystemExit(_build_deployer(ctx, env_name).traefik())


@main.command()
def init():
    """Write a starter deploy.yaml into the current directory."""
    try:
        write_starter_config(os.getcwd(), logger=logging.getLogger("podship"), console=console)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


@main.command()
@click.argument("env_name")
@click.option("--podman", "use_podman", is_flag=True, default=False, help="Read container logs via podman.")
@click.option("--no-follow", is_flag=True, default=False, help="Print current logs and exit.")
@click.pass_context
def logs(ctx, env_name, use_podman, no_follow):
    """Stream service logs from ENV_NAME."""
    raise SystemExit(_build_deployer(ctx, env_name).logs(use_podman=use_podman, follow=not no_follow))


if __name__ == "__main__":
    main()
