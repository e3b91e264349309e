"""Ownership of bind-mounted volumes inside the rootless user namespace."""

from typing import List, Optional

from podship.models import Target, UnitDescriptor
from podship.services.command_builder import Arg, command


def volume_paths(target: Target, unit: UnitDescriptor) -> List[str]:
    return [
        target.remote_path(path) if path.startswith("./") else path
        for path in unit.chown_volumes
    ]


def chown_volumes(target: Target, unit: UnitDescriptor, owner: Arg) -> Optional[str]:
    """``podman unshare chown -R`` over the configured volumes, or None if there are none."""
    paths = volume_paths(target, unit)
    if not paths:
        return None
    return command("podman", "unshare", "chown", "-R", owner, *paths)
