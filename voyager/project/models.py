"""Pydantic v2 models for resolved projects and collected files."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class BuildTool(str, Enum):
    """Build tool the remote service compiles the project with.

    scarb: regular Scarb project (``scarb build``).
    dojo: Dojo project (``sozo build``).
    auto: detect from the manifests; never stored on a resolved descriptor.
    """
    scarb = "scarb"
    dojo = "dojo"
    auto = "auto"

    @property
    def command(self) -> str:
        return "sozo" if self is BuildTool.dojo else "scarb"


class FileKind(str, Enum):
    source = "source"
    test_source = "test_source"
    manifest = "manifest"
    lock = "lock"
    doc = "doc"
    companion = "companion"


class WorkspaceSection(BaseModel):
    """The ``[workspace]`` table of a root manifest."""

    members: list[str] = Field(default_factory=list)
    package: dict[str, Any] = Field(default_factory=dict)
    dependencies: dict[str, Any] = Field(default_factory=dict)


class PackageManifest(BaseModel):
    """Structured view of one ``Scarb.toml``."""

    model_config = ConfigDict(frozen=True)

    path: Path
    name: Optional[str] = None
    version: Optional[str] = None
    license: Optional[str] = None
    license_file: Optional[str] = None
    readme: Optional[str] = None
    cairo_version: Optional[str] = None
    dependencies: dict[str, Any] = Field(default_factory=dict)
    dev_dependencies: dict[str, Any] = Field(default_factory=dict)
    workspace: Optional[WorkspaceSection] = None
    is_cairo_plugin: bool = False

    @property
    def root(self) -> Path:
        return self.path.parent

    @property
    def is_workspace(self) -> bool:
        return self.workspace is not None

    @property
    def has_package(self) -> bool:
        return self.name is not None

    @property
    def source_dir(self) -> Path:
        return self.root / "src"


class ToolchainVersions(BaseModel):
    model_config = ConfigDict(frozen=True)

    scarb: str
    cairo: str


class ProjectDescriptor(BaseModel):
    """Everything known about the package being verified.

    Built once per invocation by ``ProjectResolver`` and never mutated.
    """

    model_config = ConfigDict(frozen=True)

    root: Path
    package_name: str
    package_version: str
    manifest: PackageManifest
    workspace_manifest: Optional[PackageManifest] = None
    members: tuple[str, ...] = ()
    path_dependencies: tuple[PackageManifest, ...] = ()
    license: Optional[str] = None
    cairo_version: str
    scarb_version: str
    dojo_version: Optional[str] = None
    build_tool: BuildTool = BuildTool.scarb
    base_dir: Path

    @property
    def package_root(self) -> Path:
        return self.manifest.root

    @property
    def manifest_path(self) -> Path:
        return self.manifest.path

    @property
    def workspace_manifest_path(self) -> Optional[Path]:
        return self.workspace_manifest.path if self.workspace_manifest else None

    @property
    def workspace_root(self) -> Optional[Path]:
        return self.workspace_manifest.root if self.workspace_manifest else None

    @property
    def is_workspace(self) -> bool:
        return self.workspace_manifest is not None

    @property
    def is_cairo_plugin(self) -> bool:
        return self.manifest.is_cairo_plugin

    @property
    def packages(self) -> tuple[PackageManifest, ...]:
        """Selected package followed by its path dependencies."""
        return (self.manifest, *self.path_dependencies)

    def relative(self, path: Path) -> str:
        """POSIX path of ``path`` relative to the descriptor base dir."""
        return path.resolve().relative_to(self.base_dir).as_posix()


class FileEntry(BaseModel):
    """One file that will be sent for verification."""

    model_config = ConfigDict(frozen=True)

    path: str
    source: Path
    content: bytes = Field(repr=False)
    kind: FileKind = FileKind.source

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def stem(self) -> str:
        return self.name.split(".", 1)[0]
