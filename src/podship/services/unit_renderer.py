"""Quadlet unit-file rendering for podship."""

import os
from typing import List, Optional

from podship.constants import BUILD_DIR
from podship.models import CompiledUnit, UnitDescriptor
from podship.services.labels import LabelCompiler


class UnitRenderer:
    """Renders a UnitDescriptor into a Quadlet ``.container`` file."""

    def __init__(self, logger, label_compiler: Optional[LabelCompiler] = None):
        self.logger = logger
        self.label_compiler = label_compiler or LabelCompiler()

    @staticmethod
    def absolute_volume(volume: str, target_dir: str) -> str:
        host_part, sep, rest = volume.partition(":")
        if host_part.startswith("./"):
            host_part = f"{target_dir.rstrip('/')}/{host_part[2:]}"
        return f"{host_part}{sep}{rest}"

    def compile(
        self,
        unit: UnitDescriptor,
        target_dir: str,
        default_resolver: Optional[str] = None,
    ) -> CompiledUnit:
        labels = self.label_compiler.compile(unit.service_name, unit.route, default_resolver)
        labels = labels + list(unit.extra_labels)
        text = self.render(unit, target_dir, labels)
        return CompiledUnit(service_name=unit.service_name, text=text, labels=tuple(labels))

    def render(self, unit: UnitDescriptor, target_dir: str, labels: List[str]) -> str:
        description = unit.description or f"{unit.service_name} Service"

        container: List[str] = [f"Image={unit.image}"]
        if unit.exec_cmd:
            container.append(f"Exec={unit.exec_cmd}")
        if unit.network:
            container.append(f"Network={unit.network}")
        if unit.timezone:
            container.append(f"Timezone={unit.timezone}")
        if unit.memory:
            container.append(f"Memory={unit.memory}")
        if unit.cpu:
            container.append(f"CPUQuota={unit.cpu}")
        if unit.read_only:
            container.append("ReadOnly=true")
        if unit.health_cmd:
            container += [
                f"HealthCmd={unit.health_cmd}",
                "HealthInterval=60s",
                "HealthRetries=3",
            ]
        container += [f"PublishPort={port}" for port in unit.ports]
        container += [
            f"Volume={self.absolute_volume(volume, target_dir)}" for volume in unit.volumes
        ]
        container += [f"Environment={env_var}" for env_var in unit.env_vars]
        container += [f"PodmanArgs={arg}" for arg in unit.podman_args]
        container.append(f"EnvironmentFile={target_dir.rstrip('/')}/.env")
        container += [f'Label="{label}"' for label in labels]

        container_section = "\n".join(container)
        return f"""[Unit]
Description={description}
Requires=traefik.service
After=network-online.target traefik.service
Wants=network-online.target

[Container]
{container_section}

[Install]
WantedBy=default.target
"""

    def write(self, compiled: CompiledUnit, out_dir: str = BUILD_DIR) -> str:
        os.makedirs(out_dir, exist_ok=True)
        path = os.path.join(out_dir, compiled.filename)
        with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
            file_obj.write(compiled.text)
        self.logger.debug("Wrote unit file %s", path)
        return path
