"""Project resolution: which package is verified, and with what.

``ProjectResolver.resolve`` turns a directory into an immutable
``ProjectDescriptor``:

1. Parse the root ``Scarb.toml``; a ``[workspace]`` table makes it a
   workspace. A package inside a parent workspace resolves as that
   workspace with the package selected; otherwise it is a single package.
2. Select the package (explicit name -> configured default -> the only
   member), failing with the list of available members otherwise.
3. Walk path dependencies recursively, validating every manifest.
4. Detect the build tool (Scarb or Dojo) and the Dojo version.
5. Attach toolchain versions and the license.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from voyager.project.manifest import (
    MANIFEST_NAME,
    dependency_version,
    parse_manifest,
    path_dependencies,
)
from voyager.project.models import BuildTool, PackageManifest, ProjectDescriptor, ToolchainVersions
from voyager.project.toolchain import detect_toolchain
from voyager.utils import (
    AmbiguousPackageError,
    DependencyPathError,
    InvalidProjectTypeError,
    ManifestError,
    PackageNotFoundError,
)

logger = logging.getLogger(__name__)

DOJO_DEPENDENCY = "dojo"


class ProjectResolver:
    """Resolves a project root into a ProjectDescriptor.

    Args:
        toolchain: Fixed toolchain versions. When omitted they are detected
            lazily on the first resolution (settings overrides, then
            ``scarb --version``) and reused afterwards.
    """

    def __init__(self, toolchain: Optional[ToolchainVersions] = None) -> None:
        self._toolchain = toolchain

    @property
    def toolchain(self) -> ToolchainVersions:
        if self._toolchain is None:
            self._toolchain = detect_toolchain()
        return self._toolchain

    def resolve(
        self,
        root: str | Path,
        package: Optional[str] = None,
        default_package: Optional[str] = None,
        build_tool: BuildTool = BuildTool.auto,
    ) -> ProjectDescriptor:
        root = Path(root).resolve()
        if root.is_file():
            root = root.parent
        root_manifest = parse_manifest(root / MANIFEST_NAME)
        enclosing = None if root_manifest.is_workspace else self.find_enclosing_workspace(root_manifest)

        if root_manifest.is_workspace:
            members = self.workspace_members(root_manifest)
            selected = self._select_member(members, package, default_package)
            workspace_manifest: Optional[PackageManifest] = root_manifest
            logger.info(
                "Workspace at %s: selected package '%s' of %d",
                root, selected.name, len(members),
            )
        elif enclosing is not None:
            workspace_manifest, members = enclosing
            selected = self._select_member(members, package or root_manifest.name, None)
            root = workspace_manifest.root
            logger.info(
                "Package directory belongs to workspace at %s: selected package '%s'",
                root, selected.name,
            )
        else:
            members = {root_manifest.name: root_manifest}
            wanted = package or default_package
            if wanted and wanted != root_manifest.name:
                raise PackageNotFoundError(wanted, [root_manifest.name])
            selected = root_manifest
            workspace_manifest = None
            logger.info("Single package project '%s' at %s", selected.name, root)

        dependencies = self.resolve_path_dependencies(selected, workspace_manifest)
        tool, dojo_version = self._detect_build_tool(selected, workspace_manifest, build_tool)

        version = selected.version or _inherited(workspace_manifest, "version")
        if not version:
            raise ManifestError(
                f"Package '{selected.name}' in {selected.path} has no version",
                suggestions=["Add 'version = \"0.1.0\"' to the [package] section"],
            )
        license = selected.license or _inherited(workspace_manifest, "license")

        roots = [root, selected.root, *(dep.root for dep in dependencies)]
        base_dir = Path(os.path.commonpath([str(p) for p in roots]))

        toolchain = self.toolchain
        return ProjectDescriptor(
            root=root,
            package_name=selected.name,
            package_version=version,
            manifest=selected,
            workspace_manifest=workspace_manifest,
            members=tuple(members),
            path_dependencies=tuple(dependencies),
            license=license,
            cairo_version=toolchain.cairo,
            scarb_version=toolchain.scarb,
            dojo_version=dojo_version,
            build_tool=tool,
            base_dir=base_dir,
        )

    # -- members ----------------------------------------------------------

    def workspace_members(self, root_manifest: PackageManifest) -> dict[str, PackageManifest]:
        """Name -> manifest for every workspace member, in discovery order."""
        members: dict[str, PackageManifest] = {}
        if root_manifest.has_package:
            members[root_manifest.name] = root_manifest

        for pattern in root_manifest.workspace.members:
            matches = sorted(p for p in root_manifest.root.glob(pattern) if p.is_dir())
            if not matches:
                logger.warning("Workspace member pattern '%s' matched nothing", pattern)
            for directory in matches:
                manifest_path = directory / MANIFEST_NAME
                if not manifest_path.is_file():
                    logger.debug("Skipping %s: no %s", directory, MANIFEST_NAME)
                    continue
                member = parse_manifest(manifest_path)
                if not member.has_package:
                    raise ManifestError(f"Workspace member {manifest_path} has no [package] section")
                members.setdefault(member.name, member)
        return members

    def find_enclosing_workspace(
        self, manifest: PackageManifest,
    ) -> Optional[tuple[PackageManifest, dict[str, PackageManifest]]]:
        """Nearest parent workspace listing manifest as a member, with its members.

        Parent manifests that are not workspaces, or whose members do not
        include this package, are skipped.
        """
        for directory in manifest.root.parents:
            candidate = directory / MANIFEST_NAME
            if not candidate.is_file():
                continue
            parent = parse_manifest(candidate)
            if not parent.is_workspace:
                continue
            members = self.workspace_members(parent)
            if any(member.path == manifest.path for member in members.values()):
                return parent, members
            logger.debug("Workspace at %s does not list %s as a member", directory, manifest.root)
        return None

    def _select_member(
        self,
        members: dict[str, PackageManifest],
        package: Optional[str],
        default_package: Optional[str],
    ) -> PackageManifest:
        if not members:
            raise ManifestError(
                "Workspace has no members",
                suggestions=["Check the 'members' list of [workspace] in Scarb.toml"],
            )

        for wanted in (package, default_package):
            if wanted:
                if wanted not in members:
                    raise PackageNotFoundError(wanted, list(members))
                return members[wanted]

        if len(members) == 1:
            return next(iter(members.values()))
        raise AmbiguousPackageError(list(members))

    # -- dependencies -----------------------------------------------------

    def resolve_path_dependencies(
        self,
        manifest: PackageManifest,
        workspace_manifest: Optional[PackageManifest] = None,
    ) -> list[PackageManifest]:
        """All transitive path dependencies of manifest, excluding itself.

        Each canonical manifest path is visited once, so dependency cycles
        terminate.
        """
        visited = {manifest.path}
        resolved: list[PackageManifest] = []
        queue = [manifest]

        while queue:
            current = queue.pop(0)
            for name, directory in path_dependencies(current, workspace_manifest).items():
                manifest_path = (directory / MANIFEST_NAME).resolve()
                if manifest_path in visited:
                    continue
                visited.add(manifest_path)

                if not directory.is_dir():
                    raise DependencyPathError(
                        f"Path dependency '{name}' of {current.path} points to "
                        f"missing directory {directory}"
                    )
                if not manifest_path.is_file():
                    raise DependencyPathError(
                        f"Path dependency '{name}' at {directory} has no {MANIFEST_NAME}"
                    )
                try:
                    dep = parse_manifest(manifest_path)
                except ManifestError as e:
                    raise DependencyPathError(
                        f"Path dependency '{name}' has an invalid manifest: {e.message}"
                    ) from e
                if not dep.has_package:
                    raise DependencyPathError(
                        f"Path dependency '{name}' at {directory} is not a package"
                    )
                if dep.name != name:
                    logger.warning(
                        "Dependency '%s' at %s declares package name '%s'",
                        name, directory, dep.name,
                    )
                logger.debug("Resolved path dependency %s -> %s", name, directory)
                resolved.append(dep)
                queue.append(dep)
        return resolved

    # -- build tool -------------------------------------------------------

    def _detect_build_tool(
        self,
        manifest: PackageManifest,
        workspace_manifest: Optional[PackageManifest],
        requested: BuildTool,
    ) -> tuple[BuildTool, Optional[str]]:
        has_dojo = has_dojo_dependency(manifest, workspace_manifest)

        if requested is BuildTool.scarb:
            return BuildTool.scarb, None
        if requested is BuildTool.dojo and not has_dojo:
            raise InvalidProjectTypeError(
                f"Package '{manifest.name}' was declared a Dojo project but has no "
                f"'{DOJO_DEPENDENCY}' dependency",
                suggestions=[
                    "Add dojo to [dependencies] in Scarb.toml",
                    "Use --project-type scarb or --project-type auto",
                ],
            )
        if not has_dojo:
            return BuildTool.scarb, None

        version = extract_dojo_version(manifest, workspace_manifest)
        if version is None:
            logger.warning(
                "Dojo project detected but the dojo version could not be determined; "
                "continuing without it"
            )
        else:
            logger.info("Detected Dojo project (dojo %s)", version)
        return BuildTool.dojo, version


def has_dojo_dependency(
    manifest: PackageManifest,
    workspace_manifest: Optional[PackageManifest] = None,
) -> bool:
    if DOJO_DEPENDENCY in manifest.dependencies:
        return True
    if workspace_manifest is None:
        return False
    shared = workspace_manifest.workspace.dependencies if workspace_manifest.workspace else {}
    return DOJO_DEPENDENCY in shared or DOJO_DEPENDENCY in workspace_manifest.dependencies


def extract_dojo_version(
    manifest: PackageManifest,
    workspace_manifest: Optional[PackageManifest] = None,
) -> Optional[str]:
    """Dojo version from the package manifest, then the workspace root."""
    version = dependency_version(manifest.dependencies, DOJO_DEPENDENCY)
    if version is not None:
        return version
    if workspace_manifest is None or workspace_manifest.path == manifest.path:
        return None

    if workspace_manifest.workspace:
        version = dependency_version(workspace_manifest.workspace.dependencies, DOJO_DEPENDENCY)
        if version is not None:
            return version
    return dependency_version(workspace_manifest.dependencies, DOJO_DEPENDENCY)


def _inherited(workspace_manifest: Optional[PackageManifest], key: str) -> Optional[str]:
    if workspace_manifest is None or workspace_manifest.workspace is None:
        return None
    value = workspace_manifest.workspace.package.get(key)
    return value if isinstance(value, str) else None
