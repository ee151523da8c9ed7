"""Archive creation and extraction shared by packaging and dependency placement."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Protocol, runtime_checkable
import bz2
import gzip
import lzma
import os
import shutil
import tarfile
import tempfile
import zipfile

import zstandard as zstd

_SUFFIX_FORMATS: list[tuple[str, str]] = [
    (".tar.zst", "zst"),
    (".tzst", "zst"),
    (".tar.gz", "gztar"),
    (".tgz", "gztar"),
    (".tar.bz2", "bztar"),
    (".tbz", "bztar"),
    (".tar.xz", "xztar"),
    (".txz", "xztar"),
    (".tar", "tar"),
    (".zip", "zip"),
]

_FORMAT_ALIASES: dict[str, str] = {
    "zst": "zst",
    "tar.zst": "zst",
    "tzst": "zst",
    "gztar": "gztar",
    "gz": "gztar",
    "tar.gz": "gztar",
    "tgz": "gztar",
    "bztar": "bztar",
    "bz2": "bztar",
    "tar.bz2": "bztar",
    "tbz": "bztar",
    "xztar": "xztar",
    "xz": "xztar",
    "tar.xz": "xztar",
    "txz": "xztar",
    "tar": "tar",
    "zip": "zip",
}

_PREFERRED_SUFFIX: dict[str, str] = {
    "zst": ".tar.zst",
    "gztar": ".tgz",
    "bztar": ".tar.bz2",
    "xztar": ".tar.xz",
    "tar": ".tar",
    "zip": ".zip",
}

_TAR_READ_MODES: dict[str, str] = {
    "gztar": "r:gz",
    "bztar": "r:bz2",
    "xztar": "r:xz",
    "tar": "r:",
}

# 1980-01-01, the earliest timestamp a zip entry can carry.
_FIXED_MTIME = 315532800


@runtime_checkable
class ArchiveConsole(Protocol):
    """Minimal console interface required by :class:`ArchiveManager`."""

    dry_run: bool

    def info(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

    def dry(self, message: str) -> None:
        ...


@dataclass(slots=True)
class ArchiveArtifact:
    """Description of filesystem content to package into an archive.

    ``root_name`` places every entry under a single top-level directory, the
    layout chart archives use (``<chart>/Chart.yaml``). When omitted the
    directory contents sit at the archive root.
    """

    source_dir: Path
    label: str | None = None
    root_name: str | None = None


def normalize_format(format_hint: str) -> str:
    """Return the canonical format name for ``format_hint``."""

    normalized = format_hint.strip().lower().lstrip(".")
    if normalized in _FORMAT_ALIASES:
        return _FORMAT_ALIASES[normalized]
    raise ValueError(f"Unsupported archive format hint '{format_hint}'")


def archive_suffix(format_hint: str) -> str:
    """Return the file suffix written for ``format_hint`` (``"tgz"`` -> ``".tgz"``)."""

    return _PREFERRED_SUFFIX[normalize_format(format_hint)]


def detect_format(path: Path | str) -> str | None:
    """Infer the archive format from a file name, or ``None`` when unknown."""

    filename = Path(path).name.lower()
    for suffix, fmt in sorted(_SUFFIX_FORMATS, key=lambda item: len(item[0]), reverse=True):
        if filename.endswith(suffix):
            return fmt
    return None


class ArchiveManager:
    """Create and unpack compressed archives of directories.

    Archives are written reproducibly: entries are sorted and ownership and
    timestamps are normalized, so packaging an unchanged directory twice
    yields byte-identical output.
    """

    def __init__(self, console: ArchiveConsole) -> None:
        self._console = console

    @property
    def dry_run(self) -> bool:
        return bool(getattr(self._console, "dry_run", False))

    @staticmethod
    def _zstd_thread_count(source_size: int) -> int:
        cpu_count = os.cpu_count() or 1
        size_mb = max(1, source_size) / (1024 * 1024)
        if cpu_count <= 1 or size_mb < 32:
            return 1
        if size_mb < 256:
            return min(2, cpu_count)
        return min(4, cpu_count)

    def create_archive(
        self,
        *,
        artifact: ArchiveArtifact,
        target_path: Path | str,
        format_hint: str | None = None,
        overwrite: bool = True,
    ) -> Path:
        """Create an archive for *artifact* at *target_path*.

        Parameters
        ----------
        artifact:
            Data describing the directory to archive.
        target_path:
            Exact path (including filename) for the archive that should be created.
        format_hint:
            Optional explicit archive format such as ``"tgz"`` or ``"zip"``. When
            omitted, the format is inferred from *target_path*'s suffix.
        overwrite:
            When ``False`` and the target already exists, a :class:`FileExistsError`
            is raised instead of replacing the file.
        """

        target = Path(target_path).expanduser()
        source_dir = Path(artifact.source_dir).expanduser()

        if not source_dir.is_dir():
            raise FileNotFoundError(f"Archive source directory '{source_dir}' does not exist")

        archive_format = self._resolve_archive_format(target=target, format_hint=format_hint)

        if self.dry_run:
            label = artifact.label or source_dir.name
            self._emit_dry(f"Would archive {label} to {target}")
            return target

        if target.exists() and not overwrite:
            raise FileExistsError(f"Archive target '{target}' already exists")

        target.parent.mkdir(parents=True, exist_ok=True)

        if archive_format == "zip":
            return self._make_zip_archive(target_path=target, source_dir=source_dir, root_name=artifact.root_name)

        temp_tar = self._create_pax_tar(
            root_dir=source_dir,
            temp_dir=target.parent,
            root_name=artifact.root_name,
        )
        try:
            self._compress_tar(temp_tar=temp_tar, target_path=target, archive_format=archive_format)
        finally:
            temp_tar.unlink(missing_ok=True)
        return target

    def _resolve_archive_format(self, *, target: Path, format_hint: str | None) -> str:
        if format_hint:
            return normalize_format(format_hint)

        detected = detect_format(target)
        if detected is None:
            raise ValueError(
                "Unable to determine archive format from target path. "
                "Provide an explicit format_hint or use a supported suffix."
            )
        return detected

    def _emit_dry(self, message: str) -> None:
        dry_method = getattr(self._console, "dry", None)
        if callable(dry_method):
            dry_method(message)
            return
        self._console.info(f"[dry-run] {message}")

    def _compress_tar(self, *, temp_tar: Path, target_path: Path, archive_format: str) -> None:
        if archive_format == "tar":
            shutil.copyfile(temp_tar, target_path)
            return

        with temp_tar.open("rb") as src:
            if archive_format == "zst":
                compressor = zstd.ZstdCompressor(
                    level=19,
                    write_checksum=True,
                    write_content_size=True,
                    threads=self._zstd_thread_count(temp_tar.stat().st_size),
                )
                with target_path.open("wb") as dst:
                    compressor.copy_stream(src, dst)
            elif archive_format == "gztar":
                with target_path.open("wb") as raw, gzip.GzipFile(
                    filename="", mode="wb", fileobj=raw, compresslevel=9, mtime=0
                ) as dst:
                    shutil.copyfileobj(src, dst)
            elif archive_format == "bztar":
                with bz2.open(target_path, "wb", compresslevel=9) as dst:
                    shutil.copyfileobj(src, dst)
            elif archive_format == "xztar":
                with lzma.open(target_path, "wb", format=lzma.FORMAT_XZ, check=lzma.CHECK_CRC64) as dst:
                    shutil.copyfileobj(src, dst)
            else:
                raise RuntimeError(f"Unsupported archive format '{archive_format}'")

    @staticmethod
    def _iter_tree(root_dir: Path) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(root_dir, topdown=True):
            dirnames.sort()
            current = Path(dirpath)
            for dirname in dirnames:
                yield current / dirname
            for filename in sorted(filenames):
                yield current / filename

    @staticmethod
    def _arcname(path: Path, root_dir: Path, root_name: str | None) -> str:
        relative = path.relative_to(root_dir)
        if root_name:
            relative = Path(root_name) / relative
        return relative.as_posix()

    @staticmethod
    def _normalize_tarinfo(info: tarfile.TarInfo) -> tarfile.TarInfo:
        info.uid = 0
        info.gid = 0
        info.uname = ""
        info.gname = ""
        info.mtime = _FIXED_MTIME
        info.pax_headers = {}
        return info

    def _create_pax_tar(self, *, root_dir: Path, temp_dir: Path, root_name: str | None) -> Path:
        with tempfile.NamedTemporaryFile(dir=temp_dir, suffix=".tar", delete=False) as temp_handle:
            temp_path = Path(temp_handle.name)

        try:
            with tarfile.open(temp_path, mode="w", format=tarfile.PAX_FORMAT) as tar:
                if root_name:
                    tar.add(root_dir, arcname=root_name, recursive=False, filter=self._normalize_tarinfo)
                # Sorted walk keeps entry order stable across filesystems.
                for item in self._iter_tree(root_dir):
                    tar.add(
                        item,
                        arcname=self._arcname(item, root_dir, root_name),
                        recursive=False,
                        filter=self._normalize_tarinfo,
                    )
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise

        return temp_path

    def _make_zip_archive(self, *, target_path: Path, source_dir: Path, root_name: str | None) -> Path:
        with zipfile.ZipFile(
            target_path,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=9,
            allowZip64=True,
        ) as archive:
            for item in self._iter_tree(source_dir):
                if not item.is_file():
                    continue
                entry = zipfile.ZipInfo(self._arcname(item, source_dir, root_name), date_time=(1980, 1, 1, 0, 0, 0))
                entry.compress_type = zipfile.ZIP_DEFLATED
                entry.external_attr = (item.stat().st_mode & 0o777) << 16
                archive.writestr(entry, item.read_bytes())

        return target_path

    def extract_archive(
        self,
        *,
        archive_path: Path | str,
        destination_dir: Path | str,
        format_hint: str | None = None,
    ) -> Path:
        """Extract an archive into a destination directory.

        Parameters
        ----------
        archive_path:
            Path to the archive file.
        destination_dir:
            Directory where contents should be extracted. Created when missing.
        format_hint:
            Optional explicit archive format.

        Member paths escaping *destination_dir* (absolute paths, ``..``
        components, links pointing outside) are rejected.
        """
        archive = Path(archive_path).expanduser()
        dest = Path(destination_dir).expanduser()

        if self.dry_run:
            self._emit_dry(f"Would extract {archive} to {dest}")
            return dest

        if not archive.exists():
            raise FileNotFoundError(f"Archive '{archive}' does not exist")

        archive_format = self._resolve_archive_format(target=archive, format_hint=format_hint)
        dest.mkdir(parents=True, exist_ok=True)

        if archive_format == "zst":
            self._extract_zst(archive, dest)
        elif archive_format == "zip":
            with zipfile.ZipFile(archive, "r") as zip_ref:
                zip_ref.extractall(dest)
        elif archive_format in _TAR_READ_MODES:
            with tarfile.open(archive, _TAR_READ_MODES[archive_format]) as tar:
                tar.extractall(path=dest, filter="data")
        else:
            raise ValueError(f"Unsupported archive format: {archive_format}")

        return dest

    def _extract_zst(self, archive: Path, dest: Path) -> None:
        dctx = zstd.ZstdDecompressor()
        with archive.open("rb") as ifh:
            with dctx.stream_reader(ifh) as reader:
                with tarfile.open(fileobj=reader, mode="r|") as tar:
                    tar.extractall(path=dest, filter="data")


__all__ = [
    "ArchiveArtifact",
    "ArchiveConsole",
    "ArchiveManager",
    "archive_suffix",
    "detect_format",
    "normalize_format",
]
