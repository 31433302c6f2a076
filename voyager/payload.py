"""Verification request assembly.

``PayloadBuilder.build`` combines a resolved project, its collected files
and the contract identity into an immutable ``VerificationRequest``.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from voyager.project.manifest import is_manifest_path, strip_dev_dependencies
from voyager.project.models import BuildTool, FileEntry, ProjectDescriptor

logger = logging.getLogger(__name__)

DEFAULT_LICENSE = "NONE"
PROJECT_DIR_PATH = "."


class VerificationRequest(BaseModel):
    """Everything sent to the verification service for one contract."""

    model_config = ConfigDict(frozen=True)

    class_hash: Optional[str] = None
    contract_name: str
    contract_file: str
    package_name: str
    package_version: str
    cairo_version: str
    scarb_version: str
    license: str = DEFAULT_LICENSE
    build_tool: BuildTool = BuildTool.scarb
    dojo_version: Optional[str] = None
    project_dir_path: str = PROJECT_DIR_PATH
    files: dict[str, bytes] = Field(default_factory=dict, repr=False)

    @property
    def file_paths(self) -> list[str]:
        return list(self.files)

    @property
    def total_size(self) -> int:
        return sum(len(content) for content in self.files.values())

    def to_payload(self) -> dict[str, Any]:
        """JSON body for ``POST /class-verify/{class_hash}``."""
        return {
            **self._metadata(),
            "files": {
                path: base64.b64encode(content).decode("ascii")
                for path, content in self.files.items()
            },
        }

    def preview(self) -> dict[str, Any]:
        """Dry-run rendering: the payload without file contents."""
        return {
            **self._metadata(),
            "class_hash": self.class_hash,
            "file_count": len(self.files),
            "total_size": self.total_size,
            "files": self.file_paths,
        }

    def _metadata(self) -> dict[str, Any]:
        return {
            "name": self.contract_name,
            "version": self.package_version,
            "package_name": self.package_name,
            "contract_file": self.contract_file,
            "project_dir_path": self.project_dir_path,
            "cairo_version": self.cairo_version,
            "scarb_version": self.scarb_version,
            "license": self.license,
            "build_tool": self.build_tool.command,
            "dojo_version": self.dojo_version,
        }


class PayloadBuilder:
    """Builds VerificationRequests; stateless."""

    def build(
        self,
        descriptor: ProjectDescriptor,
        files: Sequence[FileEntry],
        contract_name: str,
        contract_file: str,
        class_hash: Optional[str] = None,
        license: Optional[str] = None,
    ) -> VerificationRequest:
        contents: dict[str, bytes] = {}
        for entry in files:
            content = entry.content
            if is_manifest_path(entry.path):
                content = self.filter_manifest(entry.path, content)
            contents[entry.path] = content

        return VerificationRequest(
            class_hash=class_hash,
            contract_name=contract_name,
            contract_file=contract_file,
            package_name=descriptor.package_name,
            package_version=descriptor.package_version,
            cairo_version=descriptor.cairo_version,
            scarb_version=descriptor.scarb_version,
            license=license or descriptor.license or DEFAULT_LICENSE,
            build_tool=descriptor.build_tool,
            dojo_version=descriptor.dojo_version,
            files=contents,
        )

    @staticmethod
    def filter_manifest(path: str, content: bytes) -> bytes:
        """Strip ``[dev-dependencies]`` from a transmitted manifest copy."""
        filtered = strip_dev_dependencies(content.decode("utf-8")).encode("utf-8")
        if len(filtered) != len(content):
            logger.warning(
                "Filtered dev-dependencies from %s (size: %d -> %d bytes)",
                path, len(content), len(filtered),
            )
        return filtered
