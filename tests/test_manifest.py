# =============================================================================
# SHINYDEPLOY MANIFEST TESTS
# =============================================================================
# Tests for DESCRIPTION / renv.lock parsing and dependency classification.
# =============================================================================

from conftest import FakeRegistry

from shinydeploy.core.manifest import (
    ManifestInspector,
    load_lockfile,
    parse_dcf,
    read_declared_version,
    resolve_non_registry,
    split_package_list,
)


class TestParseDcf:
    """Test DESCRIPTION parsing."""

    def test_simple_fields(self):
        """key: value pairs are read."""
        fields = parse_dcf("Package: imputomics\nVersion: 1.2.0\n")
        assert fields == {"Package": "imputomics", "Version": "1.2.0"}

    def test_continuation_lines(self):
        """Indented lines belong to the previous field."""
        fields = parse_dcf("Imports:\n    shiny,\n    DT\nVersion: 1\n")

        assert split_package_list(fields["Imports"]) == ["shiny", "DT"]
        assert fields["Version"] == "1"

    def test_read_declared_version(self):
        """Version is extracted, empty when missing."""
        assert read_declared_version("Package: x\nVersion: 0.9.1\n") == "0.9.1"
        assert read_declared_version("Package: x\n") == ""


class TestSplitPackageList:
    """Test split_package_list."""

    def test_strips_version_constraints(self):
        """'(>= 1.7)' is removed."""
        assert split_package_list("shiny (>= 1.7.0), DT") == ["shiny", "DT"]

    def test_drops_r_itself(self):
        """The R dependency is not a package."""
        assert split_package_list("R (>= 4.1.0), methods") == ["methods"]

    def test_newlines_and_duplicates(self):
        """Newline separated lists are flattened without duplicates."""
        assert split_package_list("a,\nb,\na") == ["a", "b"]

    def test_empty(self):
        """Empty input gives an empty list."""
        assert split_package_list("") == []


class TestLoadLockfile:
    """Test renv.lock loading."""

    def test_reads_r_version_and_entries(self, locked_checkout):
        """R version and packages are read."""
        r_version, entries = load_lockfile(locked_checkout / "renv.lock")

        assert r_version == "4.2.1"
        assert set(entries) == {"shiny", "seqinr", "missMDA"}
        assert entries["seqinr"].is_complete
        assert not entries["shiny"].is_complete


class TestResolveNonRegistry:
    """Test resolve_non_registry."""

    def test_partitions_imports(self):
        """Imports missing from the registry are returned, base packages excluded."""
        registry = FakeRegistry({"shiny"})

        on_registry, missing = resolve_non_registry("imputomics", ["shiny", "missMDA", "stats"], registry)

        assert on_registry is False
        assert missing == ["missMDA"]

    def test_app_on_registry(self):
        """The app itself is looked up too."""
        registry = FakeRegistry({"imputomics"})
        on_registry, _ = resolve_non_registry("imputomics", [], registry)
        assert on_registry is True


class TestManifestInspector:
    """Test ManifestInspector.inspect."""

    def test_unlocked_checkout(self, unlocked_checkout, registry):
        """Without renv.lock the manifest is unlocked and resolved against the registry."""
        manifest = ManifestInspector(registry).inspect(unlocked_checkout, "imputomics")

        assert manifest.locked is False
        assert manifest.r_version is None
        assert manifest.version == "1.2.0"
        assert manifest.imports == ["shiny", "DT", "missMDA", "stats"]
        assert manifest.suggests == ["testthat"]
        assert manifest.non_registry == ["missMDA"]
        assert manifest.app_on_registry is False

    def test_locked_checkout(self, locked_checkout, registry):
        """With renv.lock the registry is not consulted."""
        manifest = ManifestInspector(registry).inspect(locked_checkout, "imputomics")

        assert manifest.locked is True
        assert manifest.r_version == "4.2.1"
        assert "seqinr" in manifest.lock_entries
        assert registry.queries == []

    def test_java_flag_from_lockfile(self, locked_checkout, registry):
        """rJava in renv.lock raises the Java flag."""
        lock = (locked_checkout / "renv.lock").read_text()
        (locked_checkout / "renv.lock").write_text(
            lock.replace('"Packages": {', '"Packages": {"rJava": {"Package": "rJava", "Version": "1.0-6"}, ', 1)
        )

        manifest = ManifestInspector(registry).inspect(locked_checkout, "imputomics")
        assert manifest.needs_java is True

    def test_java_flag_from_description(self, unlocked_checkout, registry):
        """XLConnect among declared packages raises the Java flag."""
        description = unlocked_checkout / "DESCRIPTION"
        description.write_text(description.read_text().replace("Suggests: testthat", "Suggests: testthat, XLConnect"))

        manifest = ManifestInspector(registry).inspect(unlocked_checkout, "imputomics")
        assert manifest.needs_java is True

    def test_seqr_flag(self, unlocked_checkout, registry):
        """seqR among declared packages raises the seqR flag."""
        description = unlocked_checkout / "DESCRIPTION"
        description.write_text(description.read_text().replace("    stats", "    stats,\n    seqR"))

        manifest = ManifestInspector(registry).inspect(unlocked_checkout, "imputomics")
        assert manifest.needs_seqr is True

    def test_hmmer_flag_from_readme(self, unlocked_checkout, registry):
        """A README.Rmd mentioning hmmer raises the hmmer flag."""
        (unlocked_checkout / "README.Rmd").write_text("Install hmmer before running the app.\n")

        manifest = ManifestInspector(registry).inspect(unlocked_checkout, "imputomics")
        assert manifest.needs_hmmer is True

    def test_no_flags_by_default(self, unlocked_checkout, registry):
        """The sample app needs none of the special cases."""
        manifest = ManifestInspector(registry).inspect(unlocked_checkout, "imputomics")
        assert not (manifest.needs_java or manifest.needs_hmmer or manifest.needs_seqr)
