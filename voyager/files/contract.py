"""Locate the source file that declares the contract being verified."""

from __future__ import annotations

import logging
import re
from typing import Optional, Sequence

from voyager.files.collector import source_entries
from voyager.project.models import FileEntry, ProjectDescriptor
from voyager.utils import NoSourceFilesError

logger = logging.getLogger(__name__)

# `#[starknet::contract]` (optionally with arguments) followed by
# `[pub[(crate)]] mod Name`; blank lines and `//` comments may sit between.
_CONTRACT_DECLARATION = (
    r"#\[\s*starknet::contract\s*(?:\([^)]*\))?\s*\]"
    r"(?:\s|//[^\n]*(?:\n|$))*"
    r"(?:pub\s*(?:\([^)]*\)\s*)?)?"
    r"mod\s+{name}\b"
)


def contract_pattern(contract_name: str) -> re.Pattern[str]:
    return re.compile(
        _CONTRACT_DECLARATION.format(name=re.escape(contract_name)),
        re.IGNORECASE,
    )


def declares_contract(content: str, contract_name: str) -> bool:
    """True if content declares a Starknet contract module named contract_name."""
    return contract_pattern(contract_name).search(content) is not None


def find_contract_file(
    descriptor: ProjectDescriptor,
    files: Sequence[FileEntry],
    contract_name: str,
) -> FileEntry:
    """Pick the entry file for the request.

    Searches the selected package's sources for the contract declaration;
    falls back to a file named after the contract, then ``contract.cairo``,
    ``src/lib.cairo``, ``main.cairo`` and finally the first source file.

    Raises:
        NoSourceFilesError: if there are no Cairo sources at all.
    """
    prefix = _package_prefix(descriptor)
    candidates = sorted(source_entries(files, prefix), key=lambda f: f.path)
    if not candidates:
        candidates = sorted(source_entries(files), key=lambda f: f.path)
    if not candidates:
        raise NoSourceFilesError(
            f"No Cairo source files found for package '{descriptor.package_name}'",
            suggestions=[
                "Check that the package has a src/ directory with .cairo files",
                "Use --test-files if the contract lives in a test module",
            ],
        )

    pattern = contract_pattern(contract_name)
    for entry in candidates:
        if pattern.search(entry.content.decode("utf-8", errors="replace")):
            logger.info("Contract '%s' declared in %s", contract_name, entry.path)
            return entry

    lowered = contract_name.lower()
    found = (
        _first(candidates, lambda f: f.stem.lower() == lowered)
        or _first(candidates, lambda f: f.stem.lower() == "contract")
        or _first(candidates, lambda f: f.path == f"{prefix}src/lib.cairo")
        or _first(candidates, lambda f: f.stem.lower() == "main")
        or candidates[0]
    )
    logger.warning(
        "No '#[starknet::contract] mod %s' declaration found; using %s as contract file",
        contract_name, found.path,
    )
    return found


def _package_prefix(descriptor: ProjectDescriptor) -> str:
    relative = descriptor.relative(descriptor.package_root)
    return "" if relative == "." else f"{relative}/"


def _first(entries: Sequence[FileEntry], predicate) -> Optional[FileEntry]:
    return next((entry for entry in entries if predicate(entry)), None)
