from __future__ import annotations

from pathlib import Path
import unittest

from chartdeps.model import (
    Artifact,
    ArtifactReference,
    ExternalArtifact,
    ExternalReference,
    ModuleCoordinates,
    NameReference,
    ResolvedEdge,
    UnitReference,
    as_reference,
    describe_reference,
)


class ModuleCoordinatesTests(unittest.TestCase):
    def test_parses_group_name_version(self) -> None:
        coords = ModuleCoordinates.parse("org.example:redis:17.0.1")
        self.assertEqual(coords.group, "org.example")
        self.assertEqual(coords.name, "redis")
        self.assertEqual(coords.version, "17.0.1")
        self.assertIsNone(coords.classifier)
        self.assertEqual(str(coords), "org.example:redis:17.0.1")

    def test_parses_classifier_and_extension(self) -> None:
        coords = ModuleCoordinates.parse("org.example:redis:17.0.1:chart@tgz")
        self.assertEqual(coords.classifier, "chart")
        self.assertEqual(coords.extension, "tgz")
        self.assertEqual(str(coords), "org.example:redis:17.0.1:chart@tgz")

    def test_rejects_malformed_coordinates(self) -> None:
        malformed = ("redis", "a:b", "a::c", "a:b:c:d:e", "a b:c:d")
        traversing = ("g:..:1", "g:.:1", "..:n:1", "g:n:..", "a..b:n:1", "g:n:1:..")
        for text in malformed + traversing:
            with self.subTest(text=text):
                with self.assertRaises(ValueError):
                    ModuleCoordinates.parse(text)


class ArtifactTests(unittest.TestCase):
    def test_identity_and_label(self) -> None:
        artifact = Artifact(unit="platform", name="main", version="1.0.0", source_dir=Path("/src"))
        self.assertEqual(artifact.key, ("platform", "main"))
        self.assertEqual(artifact.label, "platform:main")

    def test_depends_on_normalizes_references(self) -> None:
        lib = Artifact(unit="platform", name="lib", version="1.0.0", source_dir=Path("/lib"))
        app = Artifact(unit="platform", name="app", version="1.0.0", source_dir=Path("/app"))
        app.depends_on("common", lib, UnitReference("shared"), ExternalReference.parse("g:n:1"))

        self.assertEqual(app.dependencies[0], NameReference("common"))
        self.assertIsInstance(app.dependencies[1], ArtifactReference)
        self.assertIs(app.dependencies[1].artifact, lib)
        self.assertEqual(app.dependencies[2], UnitReference("shared", "main"))
        self.assertEqual(str(app.dependencies[3].coordinates), "g:n:1")

    def test_as_reference_rejects_blank_and_unknown_values(self) -> None:
        with self.assertRaises(ValueError):
            as_reference("  ")
        with self.assertRaises(TypeError):
            as_reference(42)  # type: ignore[arg-type]

    def test_describe_reference(self) -> None:
        lib = Artifact(unit="u", name="lib", version="1", source_dir=Path("/lib"))
        self.assertEqual(describe_reference(NameReference("x")), "x")
        self.assertEqual(describe_reference(ArtifactReference(lib)), "u:lib")
        self.assertEqual(describe_reference(UnitReference("shared")), "shared:main")
        self.assertEqual(describe_reference(ExternalReference.parse("g:n:1")), "g:n:1")


class ResolvedEdgeTests(unittest.TestCase):
    def test_external_edges_are_flagged(self) -> None:
        target = Artifact(unit="u", name="app", version="1", source_dir=Path("/app"))
        external = ExternalArtifact(ModuleCoordinates.parse("org.example:redis:1.0.0"))
        edge = ResolvedEdge(source=external, target=target)
        self.assertTrue(edge.is_external)
        self.assertEqual(external.name, "redis")
        self.assertEqual(external.unit, "org.example")
        self.assertEqual(str(edge), "org.example:redis:1.0.0 -> u:app")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
