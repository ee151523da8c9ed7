"""Configuration loading for build units and their chart declarations."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from core.archive import normalize_format
from core.config_loader import (
    collect_config_files,
    load_config_file,
    merge_mappings,
    normalize_string_list,
    resolve_config_paths,
)

from .console import Console
from .model import (
    DEFAULT_ARTIFACT,
    DependencyReference,
    ExternalReference,
    NameReference,
    UnitReference,
    is_path_segment,
)
from .packager import DEFAULT_PACKAGE_COMMAND
from .registry import ArtifactRegistry, UnitDirectory

PACKAGERS = ("archive", "command")

_DEPENDENCY_KEYS = {"chart", "name", "unit", "external"}


@dataclass(slots=True)
class GlobalConfig:
    output_dir: str = "build/charts"
    charts_dir: str = "charts"
    archive_format: str = "tgz"
    jobs: int = 1
    log_level: str = "info"
    packager: str = "archive"
    package_command: List[str] = field(default_factory=lambda: list(DEFAULT_PACKAGE_COMMAND))
    repositories: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GlobalConfig":
        section = data.get("global", {}) if isinstance(data, Mapping) else {}
        if not isinstance(section, Mapping):
            raise TypeError("[global] must be a table")

        jobs = section.get("jobs", 1)
        if isinstance(jobs, bool) or not isinstance(jobs, int) or jobs < 1:
            raise ValueError("global.jobs must be a positive integer")

        packager = str(section.get("packager", "archive")).strip().lower()
        if packager not in PACKAGERS:
            raise ValueError(f"global.packager must be one of: {', '.join(PACKAGERS)}")

        log_level = str(section.get("log_level", "info")).strip().lower()
        if log_level not in Console.LEVELS:
            raise ValueError(f"global.log_level must be one of: {', '.join(Console.LEVELS)}")

        archive_format = str(section.get("archive_format", "tgz"))
        normalize_format(archive_format)

        charts_dir = str(section.get("charts_dir", "charts")).strip()
        if not charts_dir or Path(charts_dir).is_absolute():
            raise ValueError("global.charts_dir must be a non-empty relative path")

        package_command = normalize_string_list(
            section.get("package_command", list(DEFAULT_PACKAGE_COMMAND)),
            field_name="global.package_command",
        )
        if not package_command:
            raise ValueError("global.package_command cannot be empty")

        return cls(
            output_dir=str(section.get("output_dir", "build/charts")),
            charts_dir=charts_dir,
            archive_format=archive_format,
            jobs=jobs,
            log_level=log_level,
            packager=packager,
            package_command=package_command,
            repositories=normalize_string_list(section.get("repositories"), field_name="global.repositories"),
        )


def parse_dependency(value: Any) -> DependencyReference:
    """Decode one entry of a chart's ``dependencies`` array."""

    if isinstance(value, str):
        name = value.strip()
        if not name:
            raise ValueError("Dependency entries cannot be empty strings")
        return NameReference(name)

    if not isinstance(value, Mapping):
        raise TypeError("Dependencies must be specified as strings or tables")

    unknown = sorted(set(map(str, value)) - _DEPENDENCY_KEYS)
    if unknown:
        raise ValueError(f"Unknown dependency keys: {', '.join(unknown)}")

    chart = value.get("chart") or value.get("name")
    external = value.get("external")
    unit = value.get("unit")

    if external is not None:
        if unit is not None or chart is not None:
            raise ValueError("'external' dependencies cannot also name a unit or chart")
        return ExternalReference.parse(str(external))

    if unit is not None:
        unit_name = str(unit).strip()
        if not unit_name:
            raise ValueError("Dependency 'unit' cannot be empty")
        return UnitReference(unit_name, str(chart).strip() if chart else DEFAULT_ARTIFACT)

    if not chart or not str(chart).strip():
        raise ValueError("Dependency tables need 'chart', 'unit' or 'external'")
    return NameReference(str(chart).strip())


@dataclass(slots=True)
class ChartDefinition:
    name: str
    version: str
    source_dir: str
    dependencies: List[DependencyReference] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, unit_version: str | None) -> "ChartDefinition":
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValueError("charts entries require a non-empty 'name'")
        name = name.strip()
        if not is_path_segment(name):
            raise ValueError(f"Chart name '{name}' must be a single directory name (no '/', '\\', '.' or '..')")

        version = data.get("version", unit_version)
        if version is None or not str(version).strip():
            raise ValueError(f"Chart '{name}' needs a version (set charts.version or unit.version)")

        dependencies_section = data.get("dependencies", [])
        if isinstance(dependencies_section, (str, Mapping)) or not isinstance(dependencies_section, Sequence):
            raise TypeError(f"Chart '{name}': dependencies must be an array")

        return cls(
            name=name,
            version=str(version).strip(),
            source_dir=str(data.get("source_dir") or f"charts/{name}"),
            dependencies=[parse_dependency(entry) for entry in dependencies_section],
        )


@dataclass(slots=True)
class UnitDefinition:
    name: str
    root: str
    version: str | None
    charts: List[ChartDefinition] = field(default_factory=list)
    path: Path | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, path: Path | None = None) -> "UnitDefinition":
        unit_section = data.get("unit")
        if not isinstance(unit_section, Mapping):
            raise ValueError("[unit] section is required in unit configuration")
        name = unit_section.get("name") or (path.stem if path else None)
        if not name or not str(name).strip():
            raise ValueError("unit.name is required")
        version = unit_section.get("version")
        version_text = str(version).strip() if version is not None else None

        charts_section = data.get("charts", [])
        if not isinstance(charts_section, Sequence) or isinstance(charts_section, (str, bytes)):
            raise TypeError("[[charts]] must be an array of tables")
        charts: List[ChartDefinition] = []
        for entry in charts_section:
            if not isinstance(entry, Mapping):
                raise TypeError("[[charts]] entries must be tables")
            charts.append(ChartDefinition.from_mapping(entry, unit_version=version_text))

        return cls(
            name=str(name).strip(),
            root=str(unit_section.get("root", ".")),
            version=version_text,
            charts=charts,
            path=path,
        )


@dataclass(slots=True)
class ConfigurationStore:
    root: Path
    global_config: GlobalConfig
    units: Dict[str, UnitDefinition]
    config_dirs: tuple[Path, ...] = field(default_factory=tuple)

    @classmethod
    def from_directory(cls, root: Path) -> "ConfigurationStore":
        return cls.from_directories(root, [root / "config"])

    @classmethod
    def from_directories(cls, root: Path, directories: Iterable[Path]) -> "ConfigurationStore":
        resolved_dirs, missing_dirs = resolve_config_paths(root, directories)
        if not resolved_dirs:
            missing_display = ", ".join(str(path) for path in missing_dirs) or "<none>"
            raise FileNotFoundError(f"No configuration directories found. Missing: {missing_display}")

        global_data: Mapping[str, Any] = {}
        units: Dict[str, UnitDefinition] = {}

        for config_dir in resolved_dirs:
            top_level_files = collect_config_files(config_dir)
            global_path = top_level_files.get("config")
            if global_path is not None:
                global_data = merge_mappings(global_data, load_config_file(global_path))

            units_dir = config_dir / "units"
            if not units_dir.is_dir():
                continue

            for _, path in sorted(collect_config_files(units_dir).items()):
                try:
                    unit = UnitDefinition.from_mapping(load_config_file(path), path=path)
                except (TypeError, ValueError) as exc:
                    raise ValueError(f"Invalid unit configuration '{path}': {exc}") from exc
                units[unit.name] = unit

        if not units:
            raise FileNotFoundError("No unit configurations found in the provided directories")

        return cls(
            root=root,
            config_dirs=resolved_dirs,
            global_config=GlobalConfig.from_mapping(global_data),
            units=units,
        )

    def list_units(self) -> List[str]:
        return list(self.units)

    def get_unit(self, name: str) -> UnitDefinition:
        if name not in self.units:
            available = ", ".join(self.units) or "<none>"
            raise KeyError(f"Unit '{name}' not found. Available units: {available}")
        return self.units[name]

    def _resolve_path(self, value: str, base: Path) -> Path:
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = base / path
        return path.resolve()

    def unit_root(self, unit: UnitDefinition) -> Path:
        return self._resolve_path(unit.root, self.root)

    def output_dir(self) -> Path:
        return self._resolve_path(self.global_config.output_dir, self.root)

    def repositories(self) -> List[Path]:
        return [self._resolve_path(entry, self.root) for entry in self.global_config.repositories]

    def build_directory(self) -> UnitDirectory:
        """Register every unit's charts; absolute source paths, declaration order kept."""

        directory = UnitDirectory()
        for unit in self.units.values():
            registry = ArtifactRegistry(unit.name)
            unit_root = self.unit_root(unit)
            for chart in unit.charts:
                registry.declare(
                    chart.name,
                    version=chart.version,
                    source_dir=self._resolve_path(chart.source_dir, unit_root),
                    dependencies=chart.dependencies,
                )
            directory.register(registry)
        return directory


__all__ = [
    "ChartDefinition",
    "ConfigurationStore",
    "GlobalConfig",
    "PACKAGERS",
    "UnitDefinition",
    "parse_dependency",
]
