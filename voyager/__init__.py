"""
Voyager verifier - source verification client for Starknet contracts

Resolves a Scarb project, collects its sources, submits them to the Voyager
verification service and tracks the resulting jobs.
"""

__version__ = "0.1.0"
__author__ = "Voyager Team"

from voyager.jobs.status import JobStatus
from voyager.project.models import BuildTool, FileEntry, FileKind, ProjectDescriptor
from voyager.utils import VoyagerError

__all__ = [
    "BuildTool",
    "FileEntry",
    "FileKind",
    "JobStatus",
    "ProjectDescriptor",
    "VoyagerError",
]
