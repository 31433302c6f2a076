"""Scarb.toml parsing.

Turns a package or workspace manifest into a ``PackageManifest`` and
provides the small helpers the resolver and payload builder need:
dependency version extraction, path dependency lookup, and the
dev-dependency filter applied to transmitted manifest copies.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from voyager.project.models import PackageManifest, WorkspaceSection
from voyager.utils import ManifestError

logger = logging.getLogger(__name__)

MANIFEST_NAME = "Scarb.toml"
LOCK_FILE_NAME = "Scarb.lock"
DEV_DEPENDENCIES_HEADER = "[dev-dependencies]"
DEV_DEPENDENCIES_PLACEHOLDER = "# [dev-dependencies] section removed for remote compilation"


def read_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file, raising ManifestError on any failure."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        raise ManifestError(
            f"Manifest not found: {path}",
            suggestions=["Check that the path points at a Scarb project"],
        ) from None
    except OSError as e:
        raise ManifestError(f"Cannot read manifest {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ManifestError(
            f"Manifest {path} is not valid UTF-8: {e}",
            suggestions=["Save Scarb.toml with UTF-8 encoding"],
        ) from e
    except tomllib.TOMLDecodeError as e:
        raise ManifestError(
            f"Cannot parse manifest {path}: {e}",
            suggestions=["Check that Scarb.toml is valid TOML", "Run 'scarb metadata' to validate it"],
        ) from e


def parse_manifest(path: str | Path) -> PackageManifest:
    """Parse a Scarb.toml into a PackageManifest.

    Args:
        path: Path to the manifest file, or to the directory holding it.

    Raises:
        ManifestError: if the file is missing, unreadable, not TOML, or
            declares neither ``[package]`` nor ``[workspace]``.
    """
    path = Path(path)
    if path.is_dir():
        path = path / MANIFEST_NAME
    path = path.resolve()
    data = read_toml(path)

    package = data.get("package")
    workspace = data.get("workspace")
    if not isinstance(package, dict) and not isinstance(workspace, dict):
        raise ManifestError(
            f"Manifest {path} has neither a [package] nor a [workspace] section"
        )

    package = package if isinstance(package, dict) else {}
    name = package.get("name")
    if package and not isinstance(name, str):
        raise ManifestError(f"Manifest {path} [package] section is missing 'name'")

    try:
        return PackageManifest(
            path=path,
            name=name,
            version=_scalar(package.get("version")),
            license=_scalar(package.get("license")),
            license_file=_scalar(package.get("license-file")),
            readme=_scalar(package.get("readme")),
            cairo_version=_scalar(package.get("cairo-version")),
            dependencies=_table(data.get("dependencies")),
            dev_dependencies=_table(data.get("dev-dependencies")),
            workspace=WorkspaceSection(
                members=list(workspace.get("members", [])),
                package=_table(workspace.get("package")),
                dependencies=_table(workspace.get("dependencies")),
            ) if isinstance(workspace, dict) else None,
            is_cairo_plugin=isinstance(data.get("cairo-plugin"), dict),
        )
    except ValidationError as e:
        raise ManifestError(f"Malformed manifest {path}: {e}") from e


def _scalar(value: Any) -> Optional[str]:
    # `version.workspace = true` parses to a dict; inherited values are
    # filled in by the resolver, so keep the marker as None here.
    if isinstance(value, str):
        return value
    return None


def _table(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def dependency_version(dependencies: dict[str, Any], name: str) -> Optional[str]:
    """Version of a dependency in one of the accepted declaration shapes.

    Accepted, in order: ``name = "1.7.1"``, ``name = { tag = "v0.7.0" }``,
    ``name = { version = "2.0.0" }``.
    """
    dep = dependencies.get(name)
    if dep is None:
        return None
    if isinstance(dep, str):
        return dep
    if isinstance(dep, dict):
        if dep.get("workspace") is True:
            return None
        tag = dep.get("tag")
        if isinstance(tag, str):
            return tag
        if tag is not None:
            logger.warning("Dependency %s has a non-string tag: %r", name, tag)
        version = dep.get("version")
        if isinstance(version, str):
            return version
        if version is not None:
            logger.warning("Dependency %s has a non-string version: %r", name, version)
    logger.warning(
        "Dependency %s found but no recognized version format "
        "(expected string, 'tag' or 'version' field)", name,
    )
    return None


def path_dependencies(
    manifest: PackageManifest,
    workspace: Optional[PackageManifest] = None,
) -> dict[str, Path]:
    """Path dependencies of a manifest, resolved against the declaring directory.

    ``name.workspace = true`` entries are looked up in the workspace root's
    ``[workspace.dependencies]`` and resolved against the workspace root.
    Dev-dependencies are left out; they are never transmitted.
    """
    shared = workspace.workspace.dependencies if workspace and workspace.workspace else {}
    resolved: dict[str, Path] = {}
    for name, dep in manifest.dependencies.items():
        if not isinstance(dep, dict):
            continue
        if isinstance(dep.get("path"), str):
            resolved[name] = (manifest.root / dep["path"]).resolve()
        elif dep.get("workspace") is True and workspace is not None:
            inherited = shared.get(name)
            if isinstance(inherited, dict) and isinstance(inherited.get("path"), str):
                resolved[name] = (workspace.root / inherited["path"]).resolve()
    return resolved


def strip_dev_dependencies(content: str) -> str:
    """Remove the ``[dev-dependencies]`` section from manifest text.

    The header is replaced by a comment so the transmitted manifest still
    shows that something was removed; a blank line separates it from the
    following section. Lines are re-joined with ``\\n``, dropping any
    trailing newline.
    """
    lines: list[str] = []
    in_dev_deps = False

    for line in content.splitlines():
        stripped = line.lstrip()
        if stripped.startswith(DEV_DEPENDENCIES_HEADER):
            in_dev_deps = True
            lines.append(DEV_DEPENDENCIES_PLACEHOLDER)
            continue

        if stripped.startswith("["):
            if in_dev_deps:
                lines.append("")
            in_dev_deps = False
            lines.append(line)
            continue

        if in_dev_deps:
            continue

        lines.append(line)

    return "\n".join(lines)


def is_manifest_path(path: str) -> bool:
    return path == MANIFEST_NAME or path.endswith("/" + MANIFEST_NAME)
