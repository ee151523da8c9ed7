from __future__ import annotations

from pathlib import Path
import tarfile
import tempfile
import unittest
from unittest.mock import patch

from chartdeps.console import Console
from chartdeps.errors import PackagingFailed
from chartdeps.model import Artifact
from chartdeps.packager import ArchivePackager, CommandPackager, DEFAULT_PACKAGE_COMMAND, unit_output_dir

from core.archive import ArchiveManager
from core.command_runner import CommandError, CommandResult, RecordingCommandRunner, SubprocessCommandRunner


class UnitOutputDirTests(unittest.TestCase):
    def test_nested_units_keep_their_nesting(self) -> None:
        out = Path("/out")
        self.assertEqual(unit_output_dir(out, "platform"), Path("/out/platform"))
        self.assertEqual(unit_output_dir(out, "infra/base"), Path("/out/infra/base"))
        self.assertEqual(unit_output_dir(out, "infra:base"), Path("/out/infra/base"))
        self.assertEqual(unit_output_dir(out, "../.."), Path("/out/_root"))


class ArchivePackagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        source = self.root / "src" / "api"
        source.mkdir(parents=True)
        (source / "Chart.yaml").write_text("name: api\n")
        self.artifact = Artifact(unit="platform", name="api", version="1.2.0", source_dir=source)
        self.console = Console("none")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_archive_lands_in_the_unit_folder(self) -> None:
        packager = ArchivePackager(ArchiveManager(self.console), self.root / "out")
        archive = packager.package(self.artifact)

        self.assertEqual(archive, self.root / "out" / "platform" / "api-1.2.0.tgz")
        with tarfile.open(archive, "r:gz") as tar:
            self.assertEqual(tar.getnames(), ["api", "api/Chart.yaml"])

    def test_archive_format_controls_the_suffix(self) -> None:
        packager = ArchivePackager(ArchiveManager(self.console), self.root / "out", archive_format="zst")
        self.assertEqual(packager.archive_path(self.artifact).name, "api-1.2.0.tar.zst")

    def test_missing_source_directory_fails_packaging(self) -> None:
        missing = Artifact(unit="platform", name="gone", version="1", source_dir=self.root / "gone")
        packager = ArchivePackager(ArchiveManager(self.console), self.root / "out")
        with self.assertRaises(PackagingFailed) as ctx:
            packager.package(missing)
        self.assertEqual(ctx.exception.label, "platform:gone")


class CommandPackagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.artifact = Artifact(unit="platform", name="api", version="1.2.0", source_dir=self.root / "api")
        self.artifact.source_dir.mkdir()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_default_command_renders_placeholders(self) -> None:
        runner = RecordingCommandRunner()
        packager = CommandPackager(runner, self.root / "out", Console("none", dry_run=True))

        self.assertEqual(packager.command, list(DEFAULT_PACKAGE_COMMAND))
        archive = packager.package(self.artifact)

        self.assertEqual(archive, self.root / "out" / "platform" / "api-1.2.0.tgz")
        self.assertEqual(
            runner.commands[0].command,
            ["helm", "package", str(self.artifact.source_dir), "--destination", str(self.root / "out" / "platform")],
        )
        self.assertEqual(runner.commands[0].note, "package platform:api")
        self.assertFalse((self.root / "out").exists())

    def test_unknown_placeholder_fails_packaging(self) -> None:
        packager = CommandPackager(RecordingCommandRunner(), self.root / "out", Console("none"), command=["pkg", "{bogus}"])
        with self.assertRaises(PackagingFailed) as ctx:
            packager.render_command(self.artifact)
        self.assertIn("{source_dir}", str(ctx.exception))

    def test_command_failure_becomes_packaging_failure(self) -> None:
        result = CommandResult(command=["helm"], returncode=1, stdout="", stderr="Error: chart.yaml missing")
        packager = CommandPackager(SubprocessCommandRunner(), self.root / "out", Console("none"))
        with patch.object(SubprocessCommandRunner, "run", side_effect=CommandError(result)):
            with self.assertRaises(PackagingFailed) as ctx:
                packager.package(self.artifact)
        self.assertIn("chart.yaml missing", str(ctx.exception))

    def test_unusable_output_dir_becomes_packaging_failure(self) -> None:
        blocked_out = self.root / "out"
        blocked_out.write_text("not a directory\n")
        runner = RecordingCommandRunner()
        packager = CommandPackager(runner, blocked_out, Console("none"))
        with self.assertRaises(PackagingFailed) as ctx:
            packager.package(self.artifact)
        self.assertEqual(ctx.exception.label, "platform:api")
        self.assertEqual(runner.commands, [])

    def test_missing_output_is_reported(self) -> None:
        packager = CommandPackager(RecordingCommandRunner(), self.root / "out", Console("none"), command=["true"])
        with self.assertRaises(PackagingFailed) as ctx:
            packager.package(self.artifact)
        self.assertIn("did not produce", str(ctx.exception))

    def test_command_output_is_returned(self) -> None:
        class WritingRunner(RecordingCommandRunner):
            def run(self, command, **kwargs):
                Path(command[1]).joinpath("api-1.2.0.tgz").write_bytes(b"archive")
                return super().run(command, **kwargs)

        packager = CommandPackager(WritingRunner(), self.root / "out", Console("none"), command=["pkg", "{destination}"])
        self.assertEqual(packager.package(self.artifact).read_bytes(), b"archive")

    def test_empty_command_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            CommandPackager(RecordingCommandRunner(), self.root / "out", Console("none"), command=[])


class SubprocessCommandRunnerTests(unittest.TestCase):
    def test_missing_executable_reports_exit_127(self) -> None:
        runner = SubprocessCommandRunner()
        with self.assertRaises(CommandError) as ctx:
            runner.run(["chartdeps-test-no-such-binary"])
        self.assertEqual(ctx.exception.result.returncode, 127)

    def test_dry_run_lines_include_note_and_cwd(self) -> None:
        runner = RecordingCommandRunner()
        runner.run(["helm", "package", "my chart"], note="package u:a")
        lines = list(runner.iter_formatted(workspace=Path("/work")))
        self.assertEqual(lines, ["[dry-run] package u:a (cwd=/work) helm package 'my chart'"])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
