"""Local binary build service."""

import os
import re
from datetime import datetime, timezone
from typing import List, Optional

from packaging.version import InvalidVersion, Version

from podship.constants import BUILD_DIR, DEFAULT_ARCH, DEFAULT_LDFLAGS
from podship.errors import BuildError
from podship.models import BuildMetadata, ReleaseDescriptor

_PLACEHOLDER = re.compile(r"\{\{\s*\.(\w+)\s*\}\}")


def short_version(version_str: str) -> str:
    """``v1.4.2-rc.1`` -> ``1.4.2``. Unparseable versions are returned as-is."""
    try:
        return Version(version_str.lstrip("vV")).base_version
    except InvalidVersion:
        return version_str


def render_ldflags(template: Optional[str], metadata: BuildMetadata) -> str:
    values = metadata.template_values()

    def substitute(match):
        key = match.group(1)
        if key not in values:
            known = ", ".join(sorted(values))
            raise BuildError(f"Unknown ldflags variable '.{key}'. Available: {known}.")
        return values[key]

    return _PLACEHOLDER.sub(substitute, template or DEFAULT_LDFLAGS)


class BuildService:
    """Compiles the service binary for the target architecture."""

    def __init__(self, logger, console, command_runner):
        self.logger = logger
        self.console = console
        self.command_runner = command_runner

    def required_tools(self, release: ReleaseDescriptor) -> List[str]:
        return ["sh"] if release.build_cmd else ["go"]

    def collect_metadata(self, version: Optional[str]) -> BuildMetadata:
        if self.command_runner.context.dry_run:
            version = version or "dry"
            return BuildMetadata(
                version=version,
                commit="dry",
                date=self._now(),
                tag=version,
                short_version=short_version(version),
                toolchain="dry",
            )

        resolved = version or self.command_runner.output(
            ["git", "describe", "--tags", "--always", "--dirty"]
        )
        toolchain_out = self.command_runner.output(["go", "version"]).split()
        return BuildMetadata(
            version=resolved,
            commit=self.command_runner.output(["git", "rev-parse", "HEAD"]),
            date=self._now(),
            tag=resolved,
            short_version=short_version(resolved),
            toolchain=toolchain_out[2] if len(toolchain_out) > 2 else "",
        )

    def build(
        self,
        release: ReleaseDescriptor,
        metadata: BuildMetadata,
        out_dir: str = BUILD_DIR,
    ) -> str:
        arch = release.arch or DEFAULT_ARCH
        ldflags = render_ldflags(release.ldflags, metadata)
        output = os.path.join(out_dir, release.binary_name)

        self.console.print(f"[blue]Building binary ({arch})...[/blue]")
        context = self.command_runner.context
        if not context.dry_run:
            try:
                os.makedirs(out_dir, exist_ok=True)
            except OSError as exc:
                raise BuildError(f"Cannot create build directory {out_dir}: {exc}") from exc

        if release.build_cmd:
            self.logger.info("Using custom build command...")
            cmd = ["sh", "-c", release.build_cmd]
            env = {"LDFLAGS": ldflags}
        else:
            cmd = ["go", "build", "-ldflags", ldflags, "-o", output, release.source_dir or "."]
            env = {"CGO_ENABLED": "0", "GOOS": "linux", "GOARCH": arch}

        self.command_runner.run(
            cmd, check=True, capture_output=not context.verbose, env=env, error_cls=BuildError
        )
        return output

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
