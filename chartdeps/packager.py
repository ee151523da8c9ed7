"""Packagers turn a chart's source directory into a single archive."""
from __future__ import annotations

from pathlib import Path
from typing import List, Protocol, Sequence, runtime_checkable

from core.archive import ArchiveArtifact, ArchiveManager, archive_suffix
from core.command_runner import CommandError, CommandRunner

from .console import Console
from .errors import PackagingFailed
from .model import Artifact

DEFAULT_PACKAGE_COMMAND: tuple[str, ...] = ("helm", "package", "{source_dir}", "--destination", "{destination}")

_PLACEHOLDERS = ("source_dir", "destination", "name", "version", "unit")


@runtime_checkable
class Packager(Protocol):
    def package(self, artifact: Artifact) -> Path:
        ...

    def archive_path(self, artifact: Artifact) -> Path:
        ...


def unit_output_dir(output_dir: Path, unit: str) -> Path:
    """Per-unit folder below ``output_dir``; nested unit ids keep their nesting."""

    parts = [part for part in unit.replace(":", "/").split("/") if part and part not in (".", "..")]
    return output_dir.joinpath(*parts) if parts else output_dir / "_root"


class ArchivePackager:
    """Package a chart by archiving its source directory.

    The archive is written to ``<output_dir>/<unit>/<name>-<version><suffix>``
    with every file below a ``<name>/`` directory, mirroring the layout of
    charts packaged by the chart tool itself.
    """

    def __init__(self, archives: ArchiveManager, output_dir: Path, *, archive_format: str = "tgz") -> None:
        self._archives = archives
        self.output_dir = output_dir
        self.archive_format = archive_format
        self._suffix = archive_suffix(archive_format)

    def archive_path(self, artifact: Artifact) -> Path:
        return unit_output_dir(self.output_dir, artifact.unit) / f"{artifact.name}-{artifact.version}{self._suffix}"

    def package(self, artifact: Artifact) -> Path:
        target = self.archive_path(artifact)
        try:
            return self._archives.create_archive(
                artifact=ArchiveArtifact(source_dir=artifact.source_dir, label=artifact.label, root_name=artifact.name),
                target_path=target,
                format_hint=self.archive_format,
            )
        except (OSError, ValueError) as exc:
            raise PackagingFailed(artifact.label, str(exc)) from exc


class CommandPackager:
    """Package a chart by running an external command such as ``helm package``.

    Command arguments may use the placeholders ``{source_dir}``,
    ``{destination}``, ``{name}``, ``{version}`` and ``{unit}``. The command
    is expected to leave ``<name>-<version>.tgz`` in the destination.
    """

    def __init__(
        self,
        runner: CommandRunner,
        output_dir: Path,
        console: Console,
        *,
        command: Sequence[str] = DEFAULT_PACKAGE_COMMAND,
    ) -> None:
        if not command:
            raise ValueError("Package command cannot be empty")
        self._runner = runner
        self._console = console
        self.output_dir = output_dir
        self.command = list(command)

    def destination(self, artifact: Artifact) -> Path:
        return unit_output_dir(self.output_dir, artifact.unit)

    def archive_path(self, artifact: Artifact) -> Path:
        return self.destination(artifact) / f"{artifact.name}-{artifact.version}.tgz"

    def render_command(self, artifact: Artifact) -> List[str]:
        values = {
            "source_dir": str(artifact.source_dir),
            "destination": str(self.destination(artifact)),
            "name": artifact.name,
            "version": artifact.version,
            "unit": artifact.unit,
        }
        rendered: List[str] = []
        for part in self.command:
            try:
                rendered.append(part.format_map(values))
            except (KeyError, IndexError, ValueError) as exc:
                allowed = ", ".join("{" + name + "}" for name in _PLACEHOLDERS)
                raise PackagingFailed(
                    artifact.label, f"invalid placeholder in package command '{part}' (allowed: {allowed})"
                ) from exc
        return rendered

    def package(self, artifact: Artifact) -> Path:
        destination = self.destination(artifact)
        expected = self.archive_path(artifact)
        command = self.render_command(artifact)

        try:
            if not self._console.dry_run:
                destination.mkdir(parents=True, exist_ok=True)
            self._runner.run(command, cwd=artifact.source_dir, note=f"package {artifact.label}")
        except (CommandError, OSError) as exc:
            raise PackagingFailed(artifact.label, str(exc)) from exc

        if self._console.dry_run:
            return expected
        if not expected.is_file():
            raise PackagingFailed(artifact.label, f"package command did not produce {expected}")
        return expected


__all__ = [
    "ArchivePackager",
    "CommandPackager",
    "DEFAULT_PACKAGE_COMMAND",
    "Packager",
    "unit_output_dir",
]
