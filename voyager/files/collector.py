"""File collection for verification payloads.

Walks each package's ``src`` directory, classifies files, applies the
test / lock-file inclusion rules and validates every candidate against
the type allow-list and the per-file size limit.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional, Sequence

from voyager.project.manifest import LOCK_FILE_NAME
from voyager.project.models import FileEntry, FileKind, PackageManifest, ProjectDescriptor
from voyager.utils import CollectionError, FileTooLargeError, InvalidFileTypeError

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 20 * 1024 * 1024

ALLOWED_EXTENSIONS = ("cairo", "toml", "lock", "md", "txt", "json")
ALLOWED_EXTENSIONLESS = ("LICENSE", "README", "CHANGELOG", "NOTICE", "AUTHORS", "CONTRIBUTORS")
COMPANION_EXTENSIONS = ("rs", "toml", "lock")

TEST_SEGMENTS = frozenset({"test", "tests"})

CARGO_MANIFEST = "Cargo.toml"
CARGO_LOCK = "Cargo.lock"


def is_test_path(relative: str | PurePosixPath) -> bool:
    """True if a source-dir-relative path belongs to tests.

    Any directory segment, or the file stem, named ``test`` or ``tests``
    (case-insensitive) marks a test file: ``tests/foo.cairo``,
    ``a/test/b.cairo`` and ``tests.cairo`` all count.
    """
    parts = PurePosixPath(relative).parts
    if not parts:
        return False
    *dirs, name = parts
    if any(d.lower() in TEST_SEGMENTS for d in dirs):
        return True
    return name.split(".", 1)[0].lower() in TEST_SEGMENTS


def validate_file_type(path: Path, allowed: Sequence[str] = ALLOWED_EXTENSIONS) -> None:
    """Raise InvalidFileTypeError unless path has an allow-listed type."""
    extension = path.suffix.lstrip(".")
    if extension:
        if extension in allowed:
            return
    elif path.name in ALLOWED_EXTENSIONLESS:
        return
    raise InvalidFileTypeError(path, [*allowed, *ALLOWED_EXTENSIONLESS])


def validate_file_size(path: Path, size: int, limit: int = MAX_FILE_SIZE) -> None:
    if size > limit:
        raise FileTooLargeError(path, size, limit)


class FileCollector:
    """Collects the files of a resolved project.

    Args:
        max_file_size: Per-file limit in bytes (20 MiB).
    """

    def __init__(self, max_file_size: int = MAX_FILE_SIZE) -> None:
        self.max_file_size = max_file_size

    def collect(
        self,
        descriptor: ProjectDescriptor,
        include_tests: bool = False,
        include_lock_file: bool = False,
    ) -> list[FileEntry]:
        """Return the files to transmit, sorted by relative path.

        Raises:
            InvalidFileTypeError: a candidate has a type outside the allow-list.
            FileTooLargeError: a candidate exceeds ``max_file_size``.
            CollectionError: a candidate cannot be read.
        """
        entries: dict[str, FileEntry] = {}

        for package in descriptor.packages:
            for path, kind in self._package_sources(package, include_tests):
                self._add(entries, descriptor, path, kind)
            self._add(entries, descriptor, package.path, FileKind.manifest)
            if package.is_cairo_plugin:
                for path in self._companion_files(package):
                    self._add(entries, descriptor, path, FileKind.companion, COMPANION_EXTENSIONS)

        if descriptor.workspace_manifest is not None:
            self._add(entries, descriptor, descriptor.workspace_manifest.path, FileKind.manifest)

        for path in self._doc_files(descriptor.manifest):
            self._add(entries, descriptor, path, FileKind.doc)

        if include_lock_file:
            lock_path = descriptor.root / LOCK_FILE_NAME
            if lock_path.is_file():
                logger.debug("Including lock file %s", lock_path)
                self._add(entries, descriptor, lock_path, FileKind.lock)
            else:
                logger.warning("Lock file requested but %s not found", lock_path)

        files = [entries[key] for key in sorted(entries)]
        logger.info(
            "Collected %d files for package '%s' (%d bytes)",
            len(files), descriptor.package_name, sum(f.size for f in files),
        )
        return files

    # -- candidates -------------------------------------------------------

    def _package_sources(
        self, package: PackageManifest, include_tests: bool
    ) -> Iterable[tuple[Path, FileKind]]:
        src = package.source_dir
        if not src.is_dir():
            logger.warning("Package '%s' has no src directory at %s", package.name, src)
            return
        for path in sorted(src.rglob("*.cairo")):
            if not path.is_file():
                continue
            relative = path.relative_to(src).as_posix()
            if is_test_path(relative):
                if not include_tests:
                    logger.debug("Skipping test file %s", path)
                    continue
                yield path, FileKind.test_source
            else:
                yield path, FileKind.source

    def _companion_files(self, package: PackageManifest) -> Iterable[Path]:
        cargo_manifest = package.root / CARGO_MANIFEST
        if not cargo_manifest.is_file():
            logger.warning(
                "Cairo plugin package '%s' has no %s; skipping companion sources",
                package.name, CARGO_MANIFEST,
            )
            return
        yield cargo_manifest
        cargo_lock = package.root / CARGO_LOCK
        if cargo_lock.is_file():
            yield cargo_lock
        if package.source_dir.is_dir():
            yield from (p for p in sorted(package.source_dir.rglob("*.rs")) if p.is_file())

    def _doc_files(self, package: PackageManifest) -> Iterable[Path]:
        for declared in (package.readme, package.license_file):
            if not declared:
                continue
            path = (package.root / declared).resolve()
            if path.is_file():
                yield path
            else:
                logger.warning("Declared file %s of package '%s' not found", declared, package.name)

    # -- validation -------------------------------------------------------

    def _add(
        self,
        entries: dict[str, FileEntry],
        descriptor: ProjectDescriptor,
        path: Path,
        kind: FileKind,
        allowed: Sequence[str] = ALLOWED_EXTENSIONS,
    ) -> None:
        path = path.resolve()
        try:
            relative = descriptor.relative(path)
        except ValueError:
            logger.warning("Skipping %s: outside project directory %s", path, descriptor.base_dir)
            return
        if relative in entries:
            return

        entries[relative] = self.read_entry(path, relative, kind, allowed)
        logger.debug("Collected %s (%s, %d bytes)", relative, kind.value, entries[relative].size)

    def read_entry(
        self,
        path: Path,
        relative: str,
        kind: FileKind = FileKind.source,
        allowed: Sequence[str] = ALLOWED_EXTENSIONS,
    ) -> FileEntry:
        """Validate and read one file."""
        validate_file_type(path, allowed)
        try:
            size = path.stat().st_size
        except OSError as e:
            raise CollectionError(f"Cannot access {path}: {e}") from e
        validate_file_size(path, size, self.max_file_size)

        try:
            content = path.read_bytes()
        except OSError as e:
            raise CollectionError(f"Cannot read {path}: {e}") from e
        # File may have grown between stat and read.
        validate_file_size(path, len(content), self.max_file_size)
        return FileEntry(path=relative, source=path, content=content, kind=kind)


def source_entries(files: Iterable[FileEntry], package_prefix: Optional[str] = None) -> list[FileEntry]:
    """Cairo source entries, optionally restricted to one package directory."""
    selected = [f for f in files if f.kind in (FileKind.source, FileKind.test_source)]
    if package_prefix:
        selected = [f for f in selected if f.path.startswith(package_prefix)]
    return selected
