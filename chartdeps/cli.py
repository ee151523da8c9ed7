"""Command line interface for the chart dependency orchestrator."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable, List
import os
import sys

from core.archive import ArchiveManager
from core.command_runner import CommandRunner, RecordingCommandRunner, SubprocessCommandRunner
from core.config_loader import split_path_list

from .config_loader import PACKAGERS, ConfigurationStore
from .console import Console
from .errors import BuildFailed, ChartDepsError
from .external import RepositoryResolver
from .extractor import Extractor, placement_names
from .graph import DependencyGraph, GraphBuilder
from .model import Artifact, describe_reference
from .orchestrator import Orchestrator
from .packager import ArchivePackager, CommandPackager, Packager
from .resolver import DependencyResolver

CONFIG_DIR_ENV = "CHARTDEPS_CONFIG_DIR"


def _make_runner(dry_run: bool) -> SubprocessCommandRunner | RecordingCommandRunner:
    return RecordingCommandRunner() if dry_run else SubprocessCommandRunner()


def _resolve_config_directories(workspace: Path, cli_values: Iterable[str]) -> List[Path]:
    config_dirs: List[Path] = [workspace / "config"]
    for entry in [*split_path_list([os.environ.get(CONFIG_DIR_ENV)]), *split_path_list(cli_values)]:
        path = Path(entry).expanduser()
        config_dirs.append(path if path.is_absolute() else workspace / path)
    return config_dirs


def _load_configuration_store(args: Namespace, workspace: Path) -> ConfigurationStore:
    directories = _resolve_config_directories(workspace, getattr(args, "config_dirs", []))
    return ConfigurationStore.from_directories(workspace, directories)


def _make_console(args: Namespace, store: ConfigurationStore) -> Console:
    level = store.global_config.log_level
    if getattr(args, "verbose", False):
        level = "debug"
    elif getattr(args, "quiet", False):
        level = "error"
    return Console(level, dry_run=bool(getattr(args, "dry_run", False)))


def _prepare_graph(store: ConfigurationStore, units: Iterable[str]) -> DependencyGraph:
    directory = store.build_directory()
    edges = DependencyResolver(directory).resolve_all()
    graph = GraphBuilder().build(edges, artifacts=directory.artifacts())
    selected = list(units)
    return graph.for_units(selected) if selected else graph


def _make_packager(
    store: ConfigurationStore,
    console: Console,
    runner: CommandRunner,
    *,
    kind: str | None,
) -> Packager:
    settings = store.global_config
    kind = kind or settings.packager
    if kind == "command":
        return CommandPackager(runner, store.output_dir(), console, command=settings.package_command)
    return ArchivePackager(ArchiveManager(console), store.output_dir(), archive_format=settings.archive_format)


def _make_extractor(store: ConfigurationStore, console: Console) -> Extractor:
    return Extractor(ArchiveManager(console), console, charts_dir=store.global_config.charts_dir)


def _emit_dry_run_output(runner: CommandRunner, *, workspace: Path) -> None:
    if isinstance(runner, RecordingCommandRunner):
        for line in runner.iter_formatted(workspace=workspace):
            print(line)


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="chartdeps", description="Build-time dependency orchestrator for charts")
    parser.add_argument(
        "-C",
        "--config-dir",
        dest="config_dirs",
        action="append",
        default=[],
        metavar="PATH",
        help="Additional configuration directory (repeat or separate with PATH separator)",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Enable debug output")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only print errors")
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="Show the packaging order and operation schedule")
    plan_parser.add_argument("units", nargs="*", metavar="UNIT", help="Limit to these units and their dependencies")

    build_parser = subparsers.add_parser("build", help="Package charts and place their dependencies")
    build_parser.add_argument("units", nargs="*", metavar="UNIT", help="Limit to these units and their dependencies")
    build_parser.add_argument("-n", "--dry-run", action="store_true", help="Print operations without executing them")
    build_parser.add_argument("-j", "--jobs", type=int, help="Number of operations to run in parallel")
    build_parser.add_argument("--packager", choices=PACKAGERS, help="Override the configured packager")

    subparsers.add_parser("validate", help="Validate configuration, references and cycles")

    list_parser = subparsers.add_parser("list", help="List units and their charts")
    list_parser.add_argument("--dependencies", action="store_true", help="Include declared dependencies")

    clean_parser = subparsers.add_parser("clean", help="Remove extracted dependencies and packaged archives")
    clean_parser.add_argument("units", nargs="*", metavar="UNIT", help="Limit to these units and their dependencies")
    clean_parser.add_argument("-n", "--dry-run", action="store_true", help="Print what would be removed")
    clean_parser.add_argument("--packager", choices=PACKAGERS, help="Override the configured packager")

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    workspace = Path.cwd()

    try:
        store = _load_configuration_store(args, workspace)
    except (FileNotFoundError, TypeError, ValueError) as exc:
        print(f"Error: {exc}")
        return 2

    handlers = {
        "plan": _handle_plan,
        "build": _handle_build,
        "validate": _handle_validate,
        "list": _handle_list,
        "clean": _handle_clean,
    }
    handler = handlers.get(args.command)
    if handler is None:
        raise ValueError(f"Unknown command: {args.command}")
    return handler(args, store, workspace)


def _handle_plan(args: Namespace, store: ConfigurationStore, workspace: Path) -> int:
    console = _make_console(args, store)
    try:
        graph = _prepare_graph(store, args.units)
        orchestrator = Orchestrator(
            packager=_make_packager(store, console, RecordingCommandRunner(), kind=None),
            extractor=_make_extractor(store, console),
            console=console,
        )
        schedule = orchestrator.schedule(graph)
    except ChartDepsError as exc:
        print(f"Error: {exc}")
        return 2

    print("Packaging order:")
    for position, node in enumerate(graph.ordered_nodes(), 1):
        print(f"{position:>3}. {node.label}")
    print("Operations:")
    for line in schedule.describe():
        print(line)
    return 0


def _handle_build(args: Namespace, store: ConfigurationStore, workspace: Path) -> int:
    console = _make_console(args, store)
    jobs = args.jobs if args.jobs is not None else store.global_config.jobs
    if jobs < 1:
        print("Error: --jobs must be at least 1")
        return 2

    runner = _make_runner(args.dry_run)
    try:
        graph = _prepare_graph(store, args.units)
        orchestrator = Orchestrator(
            packager=_make_packager(store, console, runner, kind=args.packager),
            extractor=_make_extractor(store, console),
            external_resolver=RepositoryResolver(store.repositories()),
            console=console,
            jobs=jobs,
        )
        schedule = orchestrator.schedule(graph)
    except ChartDepsError as exc:
        print(f"Error: {exc}")
        return 2

    console.info(f"Running {len(schedule)} operations for {len(graph)} charts")
    report = orchestrator.execute(schedule)

    if args.dry_run:
        _emit_dry_run_output(runner, workspace=workspace)

    for line in report.summary_lines():
        print(line)
    try:
        report.raise_for_failures()
    except BuildFailed as exc:
        print(f"Error: {exc}")
        return 1
    return 0


def _handle_validate(args: Namespace, store: ConfigurationStore, workspace: Path) -> int:
    try:
        graph = _prepare_graph(store, [])
        for node in graph.ordered_nodes():
            placement_names(graph.incoming(node.key))
    except ChartDepsError as exc:
        print("Validation failed:")
        print(f"  {exc}")
        return 1

    edges = len(graph.edges)
    print(f"Validation successful ({len(store.units)} units, {len(graph)} nodes, {edges} edges)")
    return 0


def _handle_list(args: Namespace, store: ConfigurationStore, workspace: Path) -> int:
    headers: List[str] = ["Unit", "Chart", "Version", "Source"]
    if args.dependencies:
        headers.append("Dependencies")

    rows: List[dict[str, str]] = []
    for unit in store.units.values():
        unit_root = store.unit_root(unit)
        for chart in unit.charts:
            source = Path(chart.source_dir)
            if not source.is_absolute():
                source = unit_root / source
            try:
                source_display = str(source.resolve().relative_to(workspace.resolve()))
            except ValueError:
                source_display = str(source)
            row = {"Unit": unit.name, "Chart": chart.name, "Version": chart.version, "Source": source_display}
            if args.dependencies:
                row["Dependencies"] = ", ".join(describe_reference(ref) for ref in chart.dependencies) or "-"
            rows.append(row)

    if not rows:
        print("No charts found")
        return 0

    widths = {header: len(header) for header in headers}
    for row in rows:
        for header in headers:
            widths[header] = max(widths[header], len(row.get(header, "")))

    def _format(row: dict[str, str]) -> str:
        return "  ".join(row.get(header, "").ljust(widths[header]) for header in headers).rstrip()

    print(_format({header: header for header in headers}))
    print("  ".join("-" * widths[header] for header in headers))
    for row in rows:
        print(_format(row))
    return 0


def _handle_clean(args: Namespace, store: ConfigurationStore, workspace: Path) -> int:
    console = _make_console(args, store)
    try:
        graph = _prepare_graph(store, args.units)
    except ChartDepsError as exc:
        print(f"Error: {exc}")
        return 2

    extractor = _make_extractor(store, console)
    packager = _make_packager(store, console, RecordingCommandRunner(), kind=args.packager)
    removed_dirs = 0
    removed_archives = 0
    for node in graph.ordered_nodes():
        if not isinstance(node, Artifact):
            continue
        for edge, subdir in placement_names(graph.incoming(node.key)).items():
            if extractor.remove(edge.target, subdir):
                removed_dirs += 1
        archive = packager.archive_path(node)
        if archive.is_file():
            removed_archives += 1
            if args.dry_run:
                console.dry(f"Would remove {archive}")
            else:
                archive.unlink()

    print(f"Removed {removed_dirs} extracted dependencies and {removed_archives} archives")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
