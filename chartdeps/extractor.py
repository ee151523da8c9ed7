"""Place dependency archives inside the working tree of the chart that needs them."""
from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Dict, Sequence
import re
import shutil
import tarfile
import tempfile
import zipfile

import zstandard as zstd

from core.archive import ArchiveManager

from .console import Console
from .errors import ConfigurationError, ExtractionFailed
from .model import Artifact, ResolvedEdge

DEFAULT_CHARTS_DIR = "charts"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _sanitize(value: str) -> str:
    return _UNSAFE_CHARS.sub("-", value).strip("-") or "unit"


def placement_names(edges: Sequence[ResolvedEdge]) -> Dict[ResolvedEdge, str]:
    """Map each edge into one target to the subdirectory its archive lands in.

    Subdirectories are named after the source chart. Sources sharing a name
    (the same chart name from two units, or a chart and an external module)
    are qualified as ``<unit>-<name>``.
    """

    counts = Counter(edge.source.name for edge in edges)
    names: Dict[ResolvedEdge, str] = {}
    for edge in edges:
        source = edge.source
        if counts[source.name] > 1:
            names[edge] = f"{_sanitize(source.unit)}-{source.name}"
        else:
            names[edge] = source.name

    taken: Dict[str, ResolvedEdge] = {}
    for edge, name in names.items():
        other = taken.setdefault(name, edge)
        if other is not edge:
            raise ConfigurationError(
                f"Dependencies '{other.source.label}' and '{edge.source.label}' of '{edge.target.label}' "
                f"would both be placed in '{name}'"
            )
    return names


class Extractor:
    """Unpack archives into ``<source_dir>/<charts_dir>/<subdir>`` of a target chart.

    A previous extraction at the same place is replaced as a whole, never
    merged, so files dropped by a newer dependency version do not linger.
    """

    def __init__(self, archives: ArchiveManager, console: Console, *, charts_dir: str = DEFAULT_CHARTS_DIR) -> None:
        self._archives = archives
        self._console = console
        self.charts_dir = charts_dir

    def destination(self, target: Artifact, subdir: str) -> Path:
        return target.source_dir / self.charts_dir / subdir

    def extract(self, archive: Path, target: Artifact, subdir: str) -> Path:
        destination = self.destination(target, subdir)
        if self._console.dry_run:
            self._console.dry(f"Would extract {archive} into {destination}")
            return destination

        staging: Path | None = None
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=f".{subdir}-", dir=destination.parent))
            unpacked = self._archives.extract_archive(archive_path=archive, destination_dir=staging / "unpacked")
            self._replace(self._content_root(unpacked), destination, staging / "previous")
        except (OSError, ValueError, tarfile.TarError, zipfile.BadZipFile, zstd.ZstdError) as exc:
            raise ExtractionFailed(target.label, f"{archive}: {exc}") from exc
        finally:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)

        self._console.info(f"Extracted {archive.name} into {destination}")
        return destination

    def remove(self, target: Artifact, subdir: str) -> bool:
        destination = self.destination(target, subdir)
        if not destination.exists() and not destination.is_symlink():
            return False
        if self._console.dry_run:
            self._console.dry(f"Would remove {destination}")
            return True
        self._remove(destination)
        return True

    @staticmethod
    def _replace(content: Path, destination: Path, previous: Path) -> None:
        # The old placement is parked inside staging until the new one is in place.
        parked = destination.exists() or destination.is_symlink()
        if parked:
            destination.rename(previous)
        try:
            content.rename(destination)
        except OSError:
            if parked:
                previous.rename(destination)
            raise

    @staticmethod
    def _content_root(staging: Path) -> Path:
        # Chart archives wrap everything in one "<chart>/" directory.
        entries = list(staging.iterdir())
        if len(entries) == 1 and entries[0].is_dir() and not entries[0].is_symlink():
            return entries[0]
        return staging

    @staticmethod
    def _remove(path: Path) -> None:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.exists():
            shutil.rmtree(path)


__all__ = ["DEFAULT_CHARTS_DIR", "Extractor", "placement_names"]
