"""
Utility functions for the Voyager verifier

Provides logging setup, the exception hierarchy and small shared helpers
"""

import difflib
import logging
import re
from pathlib import Path
from typing import Iterable, Optional, Sequence


# ═══════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging for the verifier"""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get logger instance for module"""
    return logging.getLogger(name)


# ═══════════════════════════════════════════════════════════════════
# STRING HELPERS
# ═══════════════════════════════════════════════════════════════════

_CLASS_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def closest_match(target: str, candidates: Iterable[str], cutoff: float = 0.6) -> Optional[str]:
    """Return the candidate closest to target, if it is close enough to suggest"""
    matches = difflib.get_close_matches(target, list(candidates), n=1, cutoff=cutoff)
    return matches[0] if matches else None


def short_hash(value: str, head: int = 10, tail: int = 6) -> str:
    """Shorten a long hex hash for display: 0x12345678...abcdef"""
    if len(value) <= head + tail + 3:
        return value
    return f"{value[:head]}...{value[-tail:]}"


def normalize_class_hash(value: str) -> str:
    """Validate a Starknet class hash (0x-prefixed, up to 64 hex digits)"""
    candidate = value.strip()
    if not _CLASS_HASH_RE.match(candidate):
        raise ConfigurationError(
            f"Invalid class hash '{value}'",
            suggestions=["Class hashes look like 0x044dc2b3... (up to 64 hex digits)"],
        )
    return candidate.lower()


# ═══════════════════════════════════════════════════════════════════
# EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════

class VoyagerError(Exception):
    """Base exception for the verifier"""

    code: Optional[str] = None

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        suggestions: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.suggestions = list(suggestions)

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}" if self.code else self.message
        if self.suggestions:
            bullets = "\n".join(f"  • {s}" for s in self.suggestions)
            text = f"{text}\n\nSuggestions:\n{bullets}"
        return text


class ConfigurationError(VoyagerError):
    """Invalid or conflicting configuration"""
    code = "E030"


# -- Project resolution ---------------------------------------------------

class ResolutionError(VoyagerError):
    """The project or package to verify could not be resolved"""
    code = "E001"


class ManifestError(ResolutionError):
    """A Scarb.toml manifest is missing, unreadable or malformed"""
    code = "E010"


class PackageNotFoundError(ResolutionError):
    """Requested package is not part of the project"""
    code = "E001"

    def __init__(self, package: str, available: Sequence[str]) -> None:
        self.package = package
        self.available = list(available)

        if self.available:
            listing = "\n".join(f"  • {name}" for name in self.available)
            message = (
                f"Package '{package}' not found in workspace.\n\n"
                f"Available packages in this workspace:\n{listing}"
            )
            suggestion = closest_match(package, self.available)
            if suggestion:
                message += f"\n\nDid you mean '{suggestion}'?"
        else:
            message = f"Package '{package}' not found. No packages are available in this project."

        super().__init__(
            message,
            suggestions=[
                "Use --package <name> to specify a package",
                "Check spelling of the package name",
                "Check [workspace] default-package in .voyager.toml",
            ],
        )


class AmbiguousPackageError(ResolutionError):
    """Workspace has several members and none was selected"""
    code = "E011"

    def __init__(self, available: Sequence[str]) -> None:
        self.available = list(available)
        listing = "\n".join(f"  • {name}" for name in self.available)
        super().__init__(
            f"Workspace has {len(self.available)} packages; select one to verify.\n\n"
            f"Available packages in this workspace:\n{listing}",
            suggestions=[
                "Use --package <name> to specify a package",
                "Set [workspace] default-package in .voyager.toml",
            ],
        )


class DependencyPathError(ResolutionError):
    """A path dependency does not point at a valid Scarb package"""
    code = "E012"


class InvalidProjectTypeError(ResolutionError):
    """Requested build tool does not match the project"""
    code = "E013"


class ToolchainError(ResolutionError):
    """Scarb / Cairo versions could not be determined"""
    code = "E014"


# -- File collection ------------------------------------------------------

class CollectionError(VoyagerError):
    """Project files could not be collected"""
    code = "E020"


class InvalidFileTypeError(CollectionError):
    """File type is not accepted by the verification service"""
    code = "E021"

    def __init__(self, path: Path, allowed: Sequence[str]) -> None:
        self.path = path
        extension = path.suffix.lstrip(".") or "<none>"
        super().__init__(
            f"File '{path}' has unsupported type '{extension}'",
            suggestions=[
                f"Allowed extensions: {', '.join(allowed)}",
                "Remove the file from the source directory",
            ],
        )


class FileTooLargeError(CollectionError):
    """File exceeds the per-file size limit"""
    code = "E022"

    def __init__(self, path: Path, size: int, limit: int) -> None:
        self.path = path
        self.size = size
        self.limit = limit
        super().__init__(
            f"File '{path}' is {size} bytes, exceeding the {limit} byte limit "
            f"({limit // (1024 * 1024)} MiB)",
            suggestions=["Reduce the file size or remove it from the project"],
        )


class NoSourceFilesError(CollectionError):
    """No Cairo source file is available to use as the contract file"""
    code = "E023"


# -- Submission -----------------------------------------------------------

class SubmissionError(VoyagerError):
    """Talking to the verification service failed"""
    code = "E002"


class RequestFailure(SubmissionError):
    """HTTP request returned a non-success status"""
    code = "E002"

    def __init__(self, url: str, status_code: int, body: str = "") -> None:
        self.url = url
        self.status_code = status_code
        self.body = body
        message = f"HTTP request failed: {url} returned status {status_code}"
        if body:
            message += f"\n\nServer response: {body}"
        super().__init__(message, suggestions=_status_suggestions(status_code, url))


class PayloadTooLargeError(RequestFailure):
    code = "E003"

    def __init__(self, url: str) -> None:
        super().__init__(
            url, 413, "Request payload too large. Maximum allowed size is 10MB."
        )


class RateLimitedError(RequestFailure):
    code = "E004"

    def __init__(self, url: str, retry_after: Optional[str] = None) -> None:
        self.retry_after = retry_after
        body = "Rate limit exceeded"
        if retry_after:
            body += f"; retry after {retry_after} seconds"
        super().__init__(url, 429, body)


class ApiConnectionError(SubmissionError):
    """Service unreachable after retries"""
    code = "E005"


class JobNotFoundError(SubmissionError):
    code = "E006"

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(
            f"Verification job '{job_id}' not found",
            suggestions=[
                "Check the job id",
                "Make sure the same network is used as for submission",
            ],
        )


# -- Job outcome ----------------------------------------------------------

class PollingTimeout(VoyagerError):
    """Local watch gave up; the remote job may still complete"""
    code = "E007"

    def __init__(self, job_id: str, attempts: int) -> None:
        self.job_id = job_id
        self.attempts = attempts
        super().__init__(
            f"Job {job_id} did not finish after {attempts} status checks",
            suggestions=[f"Check again later with: voyager status {job_id}"],
        )


class TerminalFailure(VoyagerError):
    """Remote service reported a terminal failure"""

    def __init__(self, job_id: str, message: str) -> None:
        self.job_id = job_id
        super().__init__(message)


class CompilationFailure(TerminalFailure):
    code = "E008"


class VerificationFailure(TerminalFailure):
    code = "E009"


class HistoryError(VoyagerError):
    """Local history database could not be accessed"""
    code = "E040"


def _status_suggestions(status_code: int, url: str) -> list[str]:
    if status_code == 400:
        return [
            "Check that all required parameters are provided",
            "Verify the request format is correct",
        ]
    if status_code in (401, 403):
        return ["Check that you have permission for this operation"]
    if status_code == 404:
        return [f"Check that the URL is correct: {url}", "Verify the resource exists"]
    if status_code == 413:
        return ["Remove unnecessary files from the project", "Run without --test-files"]
    if status_code == 429:
        return ["Wait before submitting again", "Use --batch-delay for batch submissions"]
    if status_code >= 500:
        return ["The verification service is having problems; try again later"]
    return []
