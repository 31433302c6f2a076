"""Single-contract verification: resolve, collect, build, submit.

``Verifier.prepare`` runs everything that does not touch the network and
is what dry-run mode shows; ``Verifier.submit`` sends the prepared
request and records the new job.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from voyager.files.collector import FileCollector
from voyager.files.contract import find_contract_file
from voyager.history.models import JobRecord
from voyager.history.store import HistoryStore
from voyager.jobs.status import JobStatus
from voyager.payload import PayloadBuilder, VerificationRequest
from voyager.project.manifest import LOCK_FILE_NAME
from voyager.project.models import BuildTool, FileEntry, ProjectDescriptor
from voyager.project.resolver import ProjectResolver
from voyager.utils import HistoryError, normalize_class_hash

logger = logging.getLogger(__name__)


class VerifyOptions(BaseModel):
    """Fully merged options for one verification run."""

    model_config = ConfigDict(frozen=True)

    package: Optional[str] = None
    default_package: Optional[str] = None
    license: Optional[str] = None
    include_tests: bool = False
    include_lock_file: bool = False
    build_tool: BuildTool = BuildTool.auto
    dry_run: bool = False
    reuse_last_build: bool = False


class VerificationTarget(BaseModel):
    """What to verify: a deployed class and the project that produced it."""

    model_config = ConfigDict(frozen=True)

    root: Path
    class_hash: str
    contract_name: str
    package: Optional[str] = None


class PreparedVerification(BaseModel):
    """Resolved project, collected files and the request built from them."""

    model_config = ConfigDict(frozen=True)

    target: VerificationTarget
    descriptor: ProjectDescriptor
    files: tuple[FileEntry, ...]
    request: VerificationRequest
    reused_build: bool = False

    @property
    def file_paths(self) -> list[str]:
        return [f.path for f in self.files]

    def preview(self) -> dict:
        return self.request.preview()


class _BuildCache(BaseModel):
    key: tuple
    fingerprint: tuple
    descriptor: ProjectDescriptor
    files: tuple[FileEntry, ...]


class Verifier:
    """Glue between resolution, collection, payload building and submission.

    Args:
        client: ``VoyagerClient`` (or anything with ``submit(request) -> str``).
        history: Store the submitted job is recorded in; optional.
        resolver, collector, builder: Injected for tests; defaults otherwise.
        network: Network label for history records; defaults to the
            client's network.
    """

    def __init__(
        self,
        client,
        history: Optional[HistoryStore] = None,
        resolver: Optional[ProjectResolver] = None,
        collector: Optional[FileCollector] = None,
        builder: Optional[PayloadBuilder] = None,
        network: Optional[str] = None,
    ) -> None:
        self.client = client
        self.history = history
        self.resolver = resolver or ProjectResolver()
        self.collector = collector or FileCollector()
        self.builder = builder or PayloadBuilder()
        self.network = network or getattr(client, "network", "custom")
        self._cache: Optional[_BuildCache] = None

    def prepare(self, target: VerificationTarget, options: VerifyOptions) -> PreparedVerification:
        """Resolve, collect and build the request. Never touches the network."""
        class_hash = normalize_class_hash(target.class_hash)
        package = target.package or options.package
        key = (
            str(Path(target.root).resolve()), package, options.default_package,
            options.build_tool, options.include_tests, options.include_lock_file,
        )

        reused = False
        if options.reuse_last_build and self._cache is not None and self._cache.key == key:
            if _fingerprint(self._cache.descriptor) == self._cache.fingerprint:
                logger.info("Source tree unchanged; reusing previous build for %s", target.contract_name)
                descriptor, files = self._cache.descriptor, list(self._cache.files)
                reused = True

        if not reused:
            descriptor = self.resolver.resolve(
                target.root,
                package=package,
                default_package=options.default_package,
                build_tool=options.build_tool,
            )
            include_tests = options.include_tests
            if descriptor.build_tool is BuildTool.dojo and not include_tests:
                logger.info("Dojo project: including test files")
                include_tests = True
            files = self.collector.collect(
                descriptor,
                include_tests=include_tests,
                include_lock_file=options.include_lock_file,
            )
            if options.reuse_last_build:
                self._cache = _BuildCache(
                    key=key,
                    fingerprint=_fingerprint(descriptor),
                    descriptor=descriptor,
                    files=tuple(files),
                )

        entry = find_contract_file(descriptor, files, target.contract_name)
        request = self.builder.build(
            descriptor,
            files,
            contract_name=target.contract_name,
            contract_file=entry.path,
            class_hash=class_hash,
            license=options.license,
        )
        return PreparedVerification(
            target=target,
            descriptor=descriptor,
            files=tuple(files),
            request=request,
            reused_build=reused,
        )

    def submit(
        self, target: VerificationTarget, options: VerifyOptions
    ) -> Union[JobRecord, PreparedVerification]:
        """Submit one contract; dry-run returns the prepared preview instead."""
        prepared = self.prepare(target, options)
        if options.dry_run:
            logger.info("Dry run, not submitting: %s", json.dumps(prepared.preview(), indent=2))
            return prepared

        job_id = self.client.submit(prepared.request)
        descriptor = prepared.descriptor
        record = JobRecord(
            job_id=job_id,
            class_hash=prepared.request.class_hash,
            contract_name=target.contract_name,
            network=self.network,
            status=JobStatus.SUBMITTED,
            package_name=descriptor.package_name,
            scarb_version=descriptor.scarb_version,
            cairo_version=descriptor.cairo_version,
            dojo_version=descriptor.dojo_version,
        )
        return self.record(record)

    def record(self, record: JobRecord) -> JobRecord:
        """Persist a record; history failures are logged, never raised."""
        if self.history is None:
            return record
        try:
            return self.history.upsert(record)
        except HistoryError as e:
            logger.warning("Could not save job %s to history: %s", record.job_id, e)
            return record


def _fingerprint(descriptor: ProjectDescriptor) -> tuple:
    """Stat snapshot of everything collection reads."""
    paths: set[Path] = set()
    for package in descriptor.packages:
        paths.add(package.path)
        if package.source_dir.is_dir():
            paths.update(p for p in package.source_dir.rglob("*") if p.is_file())
    if descriptor.workspace_manifest is not None:
        paths.add(descriptor.workspace_manifest.path)
    paths.add(descriptor.root / LOCK_FILE_NAME)

    snapshot = []
    for path in sorted(paths):
        try:
            stat = path.stat()
        except FileNotFoundError:
            continue
        snapshot.append((str(path), stat.st_mtime_ns, stat.st_size))
    return tuple(snapshot)
