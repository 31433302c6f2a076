"""Scarb project resolution.

Parses ``Scarb.toml`` manifests, selects the package to verify inside a
workspace, follows path dependencies and detects the build tool.
"""

from voyager.project.manifest import parse_manifest, strip_dev_dependencies
from voyager.project.models import (
    BuildTool,
    FileEntry,
    FileKind,
    PackageManifest,
    ProjectDescriptor,
    ToolchainVersions,
)
from voyager.project.resolver import ProjectResolver

__all__ = [
    "BuildTool",
    "FileEntry",
    "FileKind",
    "PackageManifest",
    "ProjectDescriptor",
    "ProjectResolver",
    "ToolchainVersions",
    "parse_manifest",
    "strip_dev_dependencies",
]
