"""
Terminal rendering for the Voyager CLI

All rich output lives here; the core modules only return data.
"""

import json
import time
from typing import Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from voyager.api.models import VerificationJob
from voyager.history.models import HistoryStats, JobRecord
from voyager.jobs.batch import BatchItemResult, BatchItemState, BatchProgress, BatchVerificationSummary
from voyager.jobs.progress import estimate_remaining, format_duration, progress_bar, progress_percentage
from voyager.jobs.status import JobStatus
from voyager.utils import VoyagerError, short_hash
from voyager.verification import PreparedVerification

console = Console()

STATUS_STYLES = {
    JobStatus.SUBMITTED: "cyan",
    JobStatus.PROCESSING: "yellow",
    JobStatus.COMPILED: "blue",
    JobStatus.SUCCESS: "green",
    JobStatus.FAIL: "red",
    JobStatus.COMPILE_FAILED: "red",
    JobStatus.UNKNOWN: "dim",
}


def styled_status(status: JobStatus) -> str:
    style = STATUS_STYLES[status]
    return f"[{style}]{status.label}[/{style}]"


# ═══════════════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════════════

def print_error(error: VoyagerError) -> None:
    code = f"[{error.code}] " if error.code else ""
    console.print(f"\n[red]✗ Error: {escape(code)}{escape(error.message)}[/red]", highlight=False)
    if error.suggestions:
        console.print("\n[bold yellow]Suggestions:[/bold yellow]")
        for suggestion in error.suggestions:
            console.print(f"  • {escape(suggestion)}", highlight=False)


# ═══════════════════════════════════════════════════════════════════
# VERIFY
# ═══════════════════════════════════════════════════════════════════

def render_preview(prepared: PreparedVerification) -> None:
    """Dry-run output: request metadata and the file list."""
    request = prepared.request
    table = Table(title="Verification Request (dry run)")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("Contract", request.contract_name)
    table.add_row("Class hash", request.class_hash or "-")
    table.add_row("Package", f"{request.package_name} {request.package_version}")
    table.add_row("Contract file", request.contract_file)
    table.add_row("Build tool", request.build_tool.command)
    if request.dojo_version:
        table.add_row("Dojo version", request.dojo_version)
    table.add_row("Scarb / Cairo", f"{request.scarb_version} / {request.cairo_version}")
    table.add_row("License", request.license)
    table.add_row("Files", f"{len(request.files)} ({request.total_size} bytes)")
    console.print(table)

    console.print("\n[bold]Files to submit:[/bold]")
    for path in request.file_paths:
        console.print(f"  • {path}", highlight=False)
    if prepared.reused_build:
        console.print("[dim]Reused previous build (source tree unchanged)[/dim]")


def render_submitted(record: JobRecord) -> None:
    console.print(f"\n[green]✓ Submitted[/green] - Job ID: [bold]{record.job_id}[/bold]")
    console.print(f"  Check status with: voyager status {record.job_id}", highlight=False)


class JobStatusPrinter:
    """Poller observer printing one line per status change."""

    def __init__(self, average: Optional[float] = None) -> None:
        self.average = average
        self._last: Optional[JobStatus] = None

    def __call__(self, job: VerificationJob) -> None:
        if job.status is self._last:
            return
        self._last = job.status
        line = f"  {progress_bar(job.status)} {progress_percentage(job.status):>3}%  {styled_status(job.status)}"
        elapsed = _elapsed(job)
        remaining = estimate_remaining(job.status, elapsed or 0.0, self.average)
        if remaining is not None and not job.status.is_terminal:
            line += f"  [dim](~{format_duration(remaining)} remaining)[/dim]"
        console.print(line)


def _elapsed(job: VerificationJob) -> Optional[float]:
    if job.created_timestamp is None:
        return None
    end = job.updated_timestamp if job.is_terminal and job.updated_timestamp else time.time()
    return max(0.0, end - job.created_timestamp)


# ═══════════════════════════════════════════════════════════════════
# STATUS
# ═══════════════════════════════════════════════════════════════════

def job_to_dict(job: VerificationJob) -> dict:
    data = job.model_dump(mode="json")
    data["status"] = job.status.label
    data["status_code"] = job.status.value
    data["progress"] = progress_percentage(job.status)
    data["elapsed_seconds"] = _elapsed(job)
    return data


def render_job(job: VerificationJob, output_format: str = "text", average: Optional[float] = None) -> None:
    if output_format == "json":
        console.print_json(json.dumps(job_to_dict(job)))
        return

    if output_format == "table":
        table = Table(title=f"Job {job.job_id}")
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for key, value in job_to_dict(job).items():
            table.add_row(key, "-" if value is None else str(value))
        console.print(table)
        return

    console.print(f"\n[bold]Job:[/bold] {job.job_id}")
    console.print(f"Status: {styled_status(job.status)}")
    if job.name:
        console.print(f"Contract: {job.name}", highlight=False)
    if job.class_hash:
        console.print(f"Class hash: {job.class_hash}", highlight=False)
    console.print(f"Progress: {progress_bar(job.status)} {progress_percentage(job.status)}%")
    elapsed = _elapsed(job)
    if elapsed is not None:
        console.print(f"Elapsed: {format_duration(elapsed)}")
        remaining = estimate_remaining(job.status, elapsed, average)
        if remaining is not None:
            console.print(f"Estimated remaining: {format_duration(remaining)}")
    if job.status.is_failure:
        console.print(f"\n[red]{escape(job.error_text())}[/red]", highlight=False)
    elif job.status is JobStatus.SUCCESS:
        console.print("\n[green]✓ Contract verified[/green]")


# ═══════════════════════════════════════════════════════════════════
# BATCH
# ═══════════════════════════════════════════════════════════════════

def render_batch_item(index: int, total: int, result: BatchItemResult) -> None:
    prefix = f"[bold cyan][{index + 1}/{total}][/bold cyan] {result.item.contract_name}"
    if result.state is BatchItemState.SUBMITTED:
        console.print(f"{prefix}: [green]✓ Submitted[/green] - Job ID: {result.job_id}")
    elif result.state is BatchItemState.FAILED:
        console.print(f"{prefix}: [red]✗ Failed: {escape(result.error or '')}[/red]", highlight=False)
    elif result.state is BatchItemState.SKIPPED:
        console.print(f"{prefix}: [dim]skipped[/dim]")
    else:
        console.print(f"{prefix}: [blue]dry run ({len(result.files)} files)[/blue]")


def render_batch_progress(progress: BatchProgress) -> None:
    console.print(
        f"  [green]✓ {progress.succeeded} Succeeded[/green] | "
        f"[yellow]⏳ {progress.pending} Pending[/yellow] | "
        f"[red]✗ {progress.failed} Failed[/red]"
    )


def render_batch_summary(summary: BatchVerificationSummary) -> None:
    table = Table(title="Batch Verification Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", style="magenta")
    table.add_row("Total contracts", str(summary.total))
    table.add_row("Submitted", str(summary.submitted))
    table.add_row("Succeeded", str(summary.succeeded))
    table.add_row("Failed", str(summary.failed))
    table.add_row("Pending", str(summary.pending))
    if summary.skipped:
        table.add_row("Skipped", str(summary.skipped))
    if summary.previewed:
        table.add_row("Dry run", str(summary.previewed))
    console.print(table)

    details = Table(title="Contract Details")
    details.add_column("Contract", style="bold")
    details.add_column("Class hash")
    details.add_column("Result")
    details.add_column("Job ID")
    for result in summary.items:
        if result.record is not None:
            outcome = styled_status(result.record.status)
            if result.poll_error:
                outcome += f" [dim](last check failed: {escape(result.poll_error)})[/dim]"
        elif result.state is BatchItemState.FAILED:
            outcome = f"[red]Failed: {escape(result.error or '')}[/red]"
        else:
            outcome = result.state.value
        details.add_row(
            result.item.contract_name,
            short_hash(result.item.class_hash),
            outcome,
            result.job_id or "-",
        )
    console.print(details)


# ═══════════════════════════════════════════════════════════════════
# HISTORY
# ═══════════════════════════════════════════════════════════════════

def render_history(records: Iterable[JobRecord]) -> None:
    table = Table(title="Verification History")
    table.add_column("Job ID", style="cyan")
    table.add_column("Contract")
    table.add_column("Class hash")
    table.add_column("Network")
    table.add_column("Status")
    table.add_column("Submitted")
    for record in records:
        table.add_row(
            record.job_id,
            record.contract_name,
            short_hash(record.class_hash),
            record.network,
            styled_status(record.status),
            record.submitted_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


def render_stats(stats: HistoryStats, average: Optional[float] = None) -> None:
    table = Table(title="Verification Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Total", str(stats.total))
    table.add_row("Succeeded", str(stats.succeeded))
    table.add_row("Failed", str(stats.failed))
    table.add_row("Pending", str(stats.pending))
    for label, count in sorted(stats.by_status.items()):
        table.add_row(f"  {label}", str(count))
    table.add_row("Average duration", format_duration(average))
    console.print(table)
