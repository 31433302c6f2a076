"""Unit tests for project resolution in voyager/project/resolver.py."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from tests.conftest import write
from voyager.project.models import BuildTool
from voyager.project.resolver import ProjectResolver
from voyager.project.toolchain import detect_toolchain, parse_scarb_version_output
from voyager.utils import (
    AmbiguousPackageError,
    DependencyPathError,
    InvalidProjectTypeError,
    ManifestError,
    PackageNotFoundError,
    ToolchainError,
)


def _dojo_project(root, dependency: str = 'dojo = { git = "https://github.com/dojoengine/dojo", tag = "v1.0.0" }'):
    write(root, "Scarb.toml", f"""\
        [package]
        name = "game"
        version = "0.1.0"

        [dependencies]
        {dependency}
        """)
    write(root, "src/lib.cairo", "mod systems;\n")
    return root


# ---------------------------------------------------------------------------
# 1. Single package projects
# ---------------------------------------------------------------------------
class TestSinglePackage:

    def test_resolves_package(self, resolver, simple_project) -> None:
        descriptor = resolver.resolve(simple_project)
        assert descriptor.package_name == "p"
        assert descriptor.package_version == "0.1.0"
        assert descriptor.license == "MIT"
        assert descriptor.build_tool is BuildTool.scarb
        assert descriptor.dojo_version is None
        assert descriptor.scarb_version == "2.8.4"
        assert not descriptor.is_workspace
        assert descriptor.base_dir == simple_project.resolve()
        assert descriptor.members == ("p",)
        assert descriptor.manifest_path == simple_project.resolve() / "Scarb.toml"
        assert descriptor.workspace_root is None
        assert descriptor.workspace_manifest_path is None
        assert not descriptor.is_cairo_plugin

    def test_matching_package_name_accepted(self, resolver, simple_project) -> None:
        assert resolver.resolve(simple_project, package="p").package_name == "p"

    def test_other_package_name_rejected(self, resolver, simple_project) -> None:
        with pytest.raises(PackageNotFoundError) as exc:
            resolver.resolve(simple_project, package="q")
        assert exc.value.available == ["p"]

    def test_missing_version(self, resolver, tmp_path) -> None:
        write(tmp_path, "Scarb.toml", '[package]\nname = "x"\n')
        with pytest.raises(ManifestError, match="no version"):
            resolver.resolve(tmp_path)

    def test_not_a_project(self, resolver, tmp_path) -> None:
        with pytest.raises(ManifestError):
            resolver.resolve(tmp_path)


# ---------------------------------------------------------------------------
# 2. Workspaces
# ---------------------------------------------------------------------------
class TestWorkspace:

    def test_members_sorted(self, resolver, workspace_project) -> None:
        from voyager.project.manifest import parse_manifest

        members = resolver.workspace_members(parse_manifest(workspace_project))
        assert list(members) == ["nft", "token"]

    def test_ambiguous_without_selection(self, resolver, workspace_project) -> None:
        with pytest.raises(AmbiguousPackageError) as exc:
            resolver.resolve(workspace_project)
        assert exc.value.available == ["nft", "token"]
        assert "--package" in exc.value.suggestions[0]

    def test_explicit_package(self, resolver, workspace_project) -> None:
        descriptor = resolver.resolve(workspace_project, package="token")
        assert descriptor.package_name == "token"
        assert descriptor.is_workspace
        assert descriptor.package_version == "1.2.0"
        assert descriptor.license == "Apache-2.0"
        assert [d.name for d in descriptor.path_dependencies] == ["utils"]
        assert descriptor.workspace_root == workspace_project.resolve()
        assert descriptor.workspace_manifest_path == workspace_project.resolve() / "Scarb.toml"
        assert descriptor.base_dir == workspace_project.resolve()

    def test_default_package(self, resolver, workspace_project) -> None:
        descriptor = resolver.resolve(workspace_project, default_package="nft")
        assert descriptor.package_name == "nft"
        assert descriptor.package_version == "0.3.0"

    def test_explicit_beats_default(self, resolver, workspace_project) -> None:
        descriptor = resolver.resolve(workspace_project, package="token", default_package="nft")
        assert descriptor.package_name == "token"

    def test_unknown_package_suggests_closest(self, resolver, workspace_project) -> None:
        with pytest.raises(PackageNotFoundError) as exc:
            resolver.resolve(workspace_project, package="tokn")
        assert "Did you mean 'token'?" in exc.value.message
        assert exc.value.available == ["nft", "token"]

    def test_unrelated_name_has_no_suggestion(self, resolver, workspace_project) -> None:
        with pytest.raises(PackageNotFoundError) as exc:
            resolver.resolve(workspace_project, package="zzz")
        assert "Did you mean" not in exc.value.message

    def test_single_member_selected_automatically(self, resolver, tmp_path) -> None:
        write(tmp_path, "Scarb.toml", '[workspace]\nmembers = ["only"]\n')
        write(tmp_path, "only/Scarb.toml", '[package]\nname = "only"\nversion = "0.1.0"\n')
        assert resolver.resolve(tmp_path).package_name == "only"

    def test_member_directory_resolves_enclosing_workspace(self, resolver, workspace_project) -> None:
        descriptor = resolver.resolve(workspace_project / "packages" / "token")
        assert descriptor.package_name == "token"
        assert descriptor.package_version == "1.2.0"
        assert descriptor.license == "Apache-2.0"
        assert descriptor.is_workspace
        assert descriptor.root == workspace_project.resolve()
        assert descriptor.workspace_manifest_path == workspace_project.resolve() / "Scarb.toml"
        assert [d.name for d in descriptor.path_dependencies] == ["utils"]

    def test_member_directory_with_own_version_keeps_workspace(self, resolver, workspace_project) -> None:
        descriptor = resolver.resolve(workspace_project / "packages" / "nft")
        assert descriptor.package_name == "nft"
        assert descriptor.package_version == "0.3.0"
        assert descriptor.workspace_root == workspace_project.resolve()

    def test_member_directory_dojo_version_from_workspace(self, resolver, tmp_path) -> None:
        write(tmp_path, "Scarb.toml", """\
            [workspace]
            members = ["game"]

            [workspace.dependencies]
            dojo = "1.7.1"
            """)
        write(tmp_path, "game/Scarb.toml", """\
            [package]
            name = "game"
            version = "0.1.0"

            [dependencies]
            dojo.workspace = true
            """)
        descriptor = resolver.resolve(tmp_path / "game")
        assert descriptor.build_tool is BuildTool.dojo
        assert descriptor.dojo_version == "1.7.1"

    def test_unlisted_package_stays_single(self, resolver, tmp_path) -> None:
        write(tmp_path, "Scarb.toml", '[workspace]\nmembers = ["other"]\n')
        write(tmp_path, "other/Scarb.toml", '[package]\nname = "other"\nversion = "0.1.0"\n')
        write(tmp_path, "pkg/Scarb.toml", '[package]\nname = "pkg"\nversion = "0.1.0"\n')
        descriptor = resolver.resolve(tmp_path / "pkg")
        assert descriptor.package_name == "pkg"
        assert not descriptor.is_workspace

    def test_no_members(self, resolver, tmp_path) -> None:
        write(tmp_path, "Scarb.toml", '[workspace]\nmembers = ["missing/*"]\n')
        with pytest.raises(ManifestError, match="no members"):
            resolver.resolve(tmp_path)


# ---------------------------------------------------------------------------
# 3. Path dependencies
# ---------------------------------------------------------------------------
class TestPathDependencyResolution:

    def test_base_dir_covers_dependencies_outside_root(self, resolver, tmp_path) -> None:
        app = tmp_path / "app"
        write(app, "Scarb.toml", """\
            [package]
            name = "app"
            version = "0.1.0"

            [dependencies]
            shared = { path = "../shared" }
            """)
        write(tmp_path, "shared/Scarb.toml", '[package]\nname = "shared"\nversion = "0.1.0"\n')
        descriptor = resolver.resolve(app)
        assert descriptor.base_dir == tmp_path.resolve()
        assert descriptor.relative(descriptor.package_root) == "app"

    def test_cycle_terminates(self, resolver, tmp_path) -> None:
        write(tmp_path, "a/Scarb.toml", """\
            [package]
            name = "a"
            version = "0.1.0"

            [dependencies]
            b = { path = "../b" }
            """)
        write(tmp_path, "b/Scarb.toml", """\
            [package]
            name = "b"
            version = "0.1.0"

            [dependencies]
            a = { path = "../a" }
            """)
        descriptor = resolver.resolve(tmp_path / "a")
        assert [d.name for d in descriptor.path_dependencies] == ["b"]

    def test_missing_directory(self, resolver, tmp_path) -> None:
        write(tmp_path, "Scarb.toml", """\
            [package]
            name = "a"
            version = "0.1.0"

            [dependencies]
            gone = { path = "../gone" }
            """)
        with pytest.raises(DependencyPathError, match="missing directory"):
            resolver.resolve(tmp_path)

    def test_directory_without_manifest(self, resolver, tmp_path) -> None:
        write(tmp_path, "Scarb.toml", """\
            [package]
            name = "a"
            version = "0.1.0"

            [dependencies]
            empty = { path = "empty" }
            """)
        (tmp_path / "empty").mkdir()
        with pytest.raises(DependencyPathError, match="has no Scarb.toml"):
            resolver.resolve(tmp_path)


# ---------------------------------------------------------------------------
# 4. Build tool detection
# ---------------------------------------------------------------------------
class TestBuildToolDetection:

    def test_auto_detects_dojo(self, resolver, tmp_path) -> None:
        descriptor = resolver.resolve(_dojo_project(tmp_path))
        assert descriptor.build_tool is BuildTool.dojo
        assert descriptor.dojo_version == "v1.0.0"

    def test_explicit_scarb_overrides(self, resolver, tmp_path) -> None:
        descriptor = resolver.resolve(_dojo_project(tmp_path), build_tool=BuildTool.scarb)
        assert descriptor.build_tool is BuildTool.scarb
        assert descriptor.dojo_version is None

    def test_dojo_requires_dependency(self, resolver, simple_project) -> None:
        with pytest.raises(InvalidProjectTypeError):
            resolver.resolve(simple_project, build_tool=BuildTool.dojo)

    def test_dojo_version_from_workspace(self, resolver, tmp_path) -> None:
        write(tmp_path, "Scarb.toml", """\
            [workspace]
            members = ["game"]

            [workspace.dependencies]
            dojo = "1.7.1"
            """)
        write(tmp_path, "game/Scarb.toml", """\
            [package]
            name = "game"
            version = "0.1.0"

            [dependencies]
            dojo.workspace = true
            """)
        descriptor = resolver.resolve(tmp_path)
        assert descriptor.build_tool is BuildTool.dojo
        assert descriptor.dojo_version == "1.7.1"

    def test_unknown_dojo_version_still_dojo(self, resolver, tmp_path) -> None:
        descriptor = resolver.resolve(_dojo_project(tmp_path, 'dojo = { git = "https://x" }'))
        assert descriptor.build_tool is BuildTool.dojo
        assert descriptor.dojo_version is None

    def test_build_tool_command(self) -> None:
        assert BuildTool.dojo.command == "sozo"
        assert BuildTool.scarb.command == "scarb"


# ---------------------------------------------------------------------------
# 5. Toolchain detection
# ---------------------------------------------------------------------------
class TestToolchain:

    def test_parse_version_output(self) -> None:
        output = (
            "scarb 2.8.4 (e4d6fbb1f 2024-10-14)\n"
            "cairo: 2.8.4 (https://crates.io/crates/cairo-lang-compiler/2.8.4)\n"
            "sierra: 1.6.0\n"
        )
        versions = parse_scarb_version_output(output)
        assert versions.scarb == "2.8.4"
        assert versions.cairo == "2.8.4"

    def test_parse_garbage(self) -> None:
        with pytest.raises(ToolchainError):
            parse_scarb_version_output("command not found")

    def test_explicit_versions_skip_probe(self) -> None:
        with patch("voyager.project.toolchain.subprocess.run") as run:
            versions = detect_toolchain("2.9.0", "2.9.1")
        run.assert_not_called()
        assert (versions.scarb, versions.cairo) == ("2.9.0", "2.9.1")

    def test_probe_scarb(self) -> None:
        settings = MagicMock(scarb_version=None, cairo_version=None)
        completed = MagicMock(stdout="scarb 2.6.3 (abc 2024-01-01)\ncairo: 2.6.3 (x)\n")
        with patch("voyager.project.toolchain.get_settings", return_value=settings), \
                patch("voyager.project.toolchain.subprocess.run", return_value=completed):
            versions = detect_toolchain()
        assert versions.scarb == "2.6.3"

    def test_scarb_missing(self) -> None:
        settings = MagicMock(scarb_version=None, cairo_version=None)
        with patch("voyager.project.toolchain.get_settings", return_value=settings), \
                patch("voyager.project.toolchain.subprocess.run", side_effect=FileNotFoundError):
            with pytest.raises(ToolchainError, match="not found"):
                detect_toolchain()

    def test_scarb_fails(self) -> None:
        settings = MagicMock(scarb_version=None, cairo_version=None)
        error = subprocess.CalledProcessError(1, ["scarb", "--version"])
        with patch("voyager.project.toolchain.get_settings", return_value=settings), \
                patch("voyager.project.toolchain.subprocess.run", side_effect=error):
            with pytest.raises(ToolchainError, match="failed"):
                detect_toolchain()

    def test_resolver_detects_lazily(self, simple_project) -> None:
        resolver = ProjectResolver()
        with patch("voyager.project.resolver.detect_toolchain") as detect:
            detect.return_value = MagicMock(scarb="2.7.0", cairo="2.7.0")
            resolver.resolve(simple_project)
            resolver.resolve(simple_project)
        detect.assert_called_once()
