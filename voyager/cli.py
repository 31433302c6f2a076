"""
Voyager CLI - verify Starknet contract classes against their Scarb sources

Merges command-line options with .voyager.toml and settings, then hands
fully-resolved options to the core.
"""
import functools
import sys
from pathlib import Path
from typing import Optional

import click

from voyager import __version__
from voyager.api.client import VoyagerClient
from voyager.config import NETWORK_URLS, FileConfig, load_config, network_name, resolve_api_url
from voyager.history.store import HistoryStore, InMemoryHistoryStore, open_history_store
from voyager.jobs.batch import (
    BatchItem,
    BatchOptions,
    BatchOrchestrator,
    validate_batch_request,
)
from voyager.jobs.poller import JobPoller
from voyager.jobs.status import JobStatus
from voyager.output import (
    JobStatusPrinter,
    console,
    print_error,
    render_batch_item,
    render_batch_progress,
    render_batch_summary,
    render_history,
    render_job,
    render_preview,
    render_stats,
    render_submitted,
)
from voyager.project.models import BuildTool
from voyager.settings import get_settings
from voyager.utils import ConfigurationError, PollingTimeout, VoyagerError, get_logger, setup_logging
from voyager.verification import PreparedVerification, VerificationTarget, Verifier, VerifyOptions

logger = get_logger(__name__)


def handle_errors(func):
    """Print VoyagerErrors with suggestions and exit 1; timeouts exit 0."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PollingTimeout as e:
            console.print(f"\n[yellow]⏳ {e.message}[/yellow]", highlight=False)
            for suggestion in e.suggestions:
                console.print(f"  • {suggestion}", highlight=False)
        except VoyagerError as e:
            print_error(e)
            sys.exit(1)

    return wrapper


def _pick(cli_value, file_value, default=None):
    if cli_value is not None:
        return cli_value
    if file_value is not None:
        return file_value
    return default


def _build_tool(value: str) -> BuildTool:
    try:
        return BuildTool(value.lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown project type '{value}'",
            suggestions=[f"Valid project types: {', '.join(t.value for t in BuildTool)}"],
        ) from None


def _api_url(network: Optional[str], url: Optional[str], config: Optional[FileConfig]) -> Optional[str]:
    """CLI network/url if given, else the config file's."""
    if network or url:
        return resolve_api_url(network, url)
    if config is not None:
        return config.network_url()
    return None


def _require_api_url(api_url: Optional[str]) -> str:
    if api_url is None:
        raise ConfigurationError(
            "No network selected",
            suggestions=[
                f"Use --network ({', '.join(NETWORK_URLS)}) or --url <api-url>",
                "Or set 'network' in the [voyager] section of .voyager.toml",
            ],
        )
    return api_url


def _client(api_url: str) -> VoyagerClient:
    cfg = get_settings()
    return VoyagerClient(
        api_url,
        timeout=cfg.api_timeout,
        max_retries=cfg.api_max_retries,
        retry_delay=cfg.api_retry_delay,
    )


def _history() -> HistoryStore:
    cfg = get_settings()
    return open_history_store(cfg.history_db, enabled=cfg.history_enabled)


def _poller(client: VoyagerClient, history: HistoryStore) -> JobPoller:
    cfg = get_settings()
    return JobPoller(
        client,
        history=history,
        interval=cfg.poll_interval,
        max_attempts=cfg.poll_max_attempts,
        network=client.network,
    )


def _average(history: HistoryStore) -> Optional[float]:
    try:
        return history.average_duration()
    except VoyagerError as e:
        logger.warning("Could not compute average duration: %s", e)
        return None


def network_options(func):
    func = click.option('--url', help='Custom verification API base URL')(func)
    func = click.option(
        '--network', type=click.Choice(list(NETWORK_URLS), case_sensitive=False),
        help='Network to use',
    )(func)
    return func


# ═══════════════════════════════════════════════════════════════════
# MAIN CLI GROUP
# ═══════════════════════════════════════════════════════════════════

@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx, verbose):
    """
    Voyager - Starknet contract class verification

    Submits Scarb project sources to the Voyager verification service
    and tracks the resulting jobs.
    """
    cfg = get_settings()
    setup_logging("DEBUG" if verbose else cfg.log_level, cfg.log_file)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


# ═══════════════════════════════════════════════════════════════════
# VERIFY
# ═══════════════════════════════════════════════════════════════════

@main.command()
@click.argument('path', type=click.Path(exists=True, file_okay=False, path_type=Path), default='.')
@network_options
@click.option('--class-hash', help='Class hash of the declared contract class')
@click.option('--contract-name', help='Name of the contract module')
@click.option('--package', help='Workspace package to verify')
@click.option('--license', 'license_', help='SPDX license identifier')
@click.option('--lock-file/--no-lock-file', default=None, help='Include Scarb.lock')
@click.option('--test-files/--no-test-files', default=None, help='Include test files from src/')
@click.option('--project-type', type=click.Choice([t.value for t in BuildTool]), default=None,
              help='Build tool: scarb, dojo or auto-detect')
@click.option('--dry-run', is_flag=True, help='Show what would be submitted without submitting')
@click.option('--watch/--no-watch', default=None, help='Wait for the verification result')
@click.option('--fail-fast', is_flag=True, help='Stop a batch at the first failure')
@click.option('--batch-delay', type=float, default=None, help='Seconds between batch submissions')
@click.option('--reuse-build', is_flag=True, help='Reuse collected files across batch items if unchanged')
@click.option('--verbose', is_flag=True, help='Enable debug logging')
@handle_errors
def verify(path, network, url, class_hash, contract_name, package, license_, lock_file,
           test_files, project_type, dry_run, watch, fail_fast, batch_delay, reuse_build, verbose):
    """Verify a contract class (or the [[contracts]] batch) from PATH"""
    config = load_config(path)
    section = config.voyager if config else None

    if verbose or (section and section.verbose):
        setup_logging("DEBUG", get_settings().log_file)

    items = [BatchItem(**c.model_dump()) for c in config.contracts] if config else []
    validate_batch_request(items, class_hash, contract_name)

    api_url = _api_url(network, url, config)
    if not dry_run:
        api_url = _require_api_url(api_url)

    options = VerifyOptions(
        package=package,
        default_package=config.workspace.default_package if config else None,
        license=_pick(license_, section.license if section else None),
        include_tests=_pick(test_files, section.test_files if section else None, False),
        include_lock_file=_pick(lock_file, section.lock_file if section else None, False),
        build_tool=_build_tool(_pick(project_type, section.project_type if section else None, "auto")),
        dry_run=dry_run,
        reuse_last_build=reuse_build,
    )
    watch = _pick(watch, section.watch if section else None, False)

    if dry_run:
        client, history = None, InMemoryHistoryStore()
    else:
        client, history = _client(api_url), _history()
    verifier = Verifier(
        client,
        history=history,
        network=network_name(api_url) if api_url else "custom",
    )

    if items:
        _verify_batch(verifier, client, history, path, items, options, fail_fast, batch_delay, watch)
        return

    if not class_hash or not contract_name:
        raise ConfigurationError(
            "Both --class-hash and --contract-name are required",
            suggestions=["Or list contracts under [[contracts]] in .voyager.toml for batch mode"],
        )

    target = VerificationTarget(root=path, class_hash=class_hash, contract_name=contract_name)
    with console.status("[bold green]Preparing verification..."):
        outcome = verifier.submit(target, options)

    if isinstance(outcome, PreparedVerification):
        render_preview(outcome)
        console.print("\n[green]✓ Dry run complete - nothing was submitted[/green]")
        return

    render_submitted(outcome)
    if watch:
        console.print("\n[bold blue]Watching verification job...[/bold blue]")
        result = _poller(client, history).watch(
            outcome.job_id, observer=JobStatusPrinter(_average(history)),
        )
        if result.job is not None:
            render_job(result.job)
        result.raise_for_status()


def _verify_batch(verifier, client, history, path, items, options, fail_fast, batch_delay, watch):
    cfg = get_settings()
    console.print(f"\n[bold blue]Batch verification of {len(items)} contracts[/bold blue]")
    orchestrator = BatchOrchestrator(
        verifier,
        client,
        history=history,
        interval=cfg.poll_interval,
        max_attempts=cfg.poll_max_attempts,
    )
    batch_options = BatchOptions(
        root=path,
        verify=options,
        fail_fast=fail_fast,
        inter_item_delay=batch_delay or 0.0,
        watch=watch,
    )
    summary = orchestrator.run(
        items,
        batch_options,
        on_item=lambda index, result: render_batch_item(index, len(items), result),
        on_progress=render_batch_progress,
    )
    render_batch_summary(summary)
    if summary.failed:
        sys.exit(1)


# ═══════════════════════════════════════════════════════════════════
# STATUS / CHECK
# ═══════════════════════════════════════════════════════════════════

@main.command()
@click.argument('job_id')
@network_options
@click.option('--format', 'output_format', type=click.Choice(['text', 'json', 'table']),
              default=None, help='Output format (default: text)')
@click.option('--no-wait', is_flag=True, help='Fetch the status once instead of waiting')
@handle_errors
def status(job_id, network, url, output_format, no_wait):
    """Show the status of a verification job"""
    config = load_config()
    client = _client(_require_api_url(_api_url(network, url, config)))
    history = _history()
    file_format = config.voyager.format if config else None
    output_format = _pick(output_format, file_format, 'text')
    if output_format not in ('text', 'json', 'table'):
        raise ConfigurationError(
            f"Unknown output format '{output_format}'",
            suggestions=["Valid formats: text, json, table"],
        )

    if no_wait:
        job = client.get_job(job_id)
        render_job(job, output_format, _average(history))
        return

    observer = JobStatusPrinter(_average(history)) if output_format == 'text' else None
    result = _poller(client, history).watch(job_id, observer=observer)
    if result.job is not None:
        render_job(result.job, output_format, _average(history))
    result.raise_for_status()


@main.command()
@click.argument('class_hash')
@network_options
@handle_errors
def check(class_hash, network, url):
    """Check whether a class is already verified"""
    client = _client(_require_api_url(_api_url(network, url, load_config())))
    with console.status("[bold green]Checking class..."):
        verified = client.is_class_verified(class_hash)
    if verified:
        console.print(f"[green]✓ Class {class_hash} is verified[/green]")
    else:
        console.print(f"[yellow]Class {class_hash} is not verified[/yellow]")


# ═══════════════════════════════════════════════════════════════════
# HISTORY
# ═══════════════════════════════════════════════════════════════════

@main.group()
def history():
    """Inspect and manage local verification history"""


@history.command('list')
@click.option('--status', 'status_filter',
              type=click.Choice([s.label for s in JobStatus], case_sensitive=False),
              help='Only show jobs with this status')
@click.option('--network', help='Only show jobs on this network')
@click.option('--limit', type=int, default=20, show_default=True, help='Maximum jobs to show')
@handle_errors
def history_list(status_filter, network, limit):
    """List recent verification jobs"""
    store = _history()
    records = store.list(
        status=JobStatus.parse(status_filter) if status_filter else None,
        network=network,
        limit=limit,
    )
    if not records:
        console.print("[yellow]No verification history[/yellow]")
        return
    render_history(records)


@history.command('status')
@click.argument('job_id')
@handle_errors
def history_status(job_id):
    """Show the locally recorded state of a job"""
    record = _history().get(job_id)
    if record is None:
        console.print(f"[yellow]Job {job_id} not found in history[/yellow]")
        sys.exit(1)
    render_history([record])
    if record.error_message:
        console.print(f"\n[red]{record.error_message}[/red]", highlight=False)


@history.command('recheck')
@network_options
@handle_errors
def history_recheck(network, url):
    """Refresh every pending job in history"""
    store = _history()
    pending = [r for r in store.list() if r.status.is_pending or r.status is JobStatus.UNKNOWN]
    if not pending:
        console.print("[green]✓ No pending jobs[/green]")
        return

    override = resolve_api_url(network, url) if (network or url) else None
    clients: dict[str, VoyagerClient] = {}
    updated = []
    for record in pending:
        api_url = override or NETWORK_URLS.get(record.network)
        if api_url is None:
            console.print(f"[yellow]Skipping {record.job_id}: unknown network '{record.network}' "
                          f"(use --url)[/yellow]", highlight=False)
            continue
        if api_url not in clients:
            clients[api_url] = _client(api_url)
        client = clients[api_url]
        poller = JobPoller(client, history=store, max_attempts=1, network=record.network)
        try:
            result = poller.watch(record.job_id)
        except VoyagerError as e:
            console.print(f"[red]✗ {record.job_id}: {e.message}[/red]", highlight=False)
            continue
        updated.append(store.get(record.job_id) or record)
        logger.debug("Rechecked %s: %s", record.job_id, result.status.label)

    if updated:
        render_history(updated)


@history.command('clean')
@click.option('--older-than', type=int, help='Delete jobs older than this many days')
@click.option('--all', 'delete_all', is_flag=True, help='Delete all history')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@handle_errors
def history_clean(older_than, delete_all, yes):
    """Delete old verification records"""
    if delete_all == (older_than is not None):
        raise ConfigurationError("Use exactly one of --older-than DAYS or --all")
    store = _history()
    if delete_all:
        if not yes:
            click.confirm("Delete all verification history?", abort=True)
        count = store.delete_all()
    else:
        count = store.delete_older_than(older_than)
    console.print(f"[green]✓ Deleted {count} records[/green]")


@history.command('stats')
@handle_errors
def history_stats():
    """Show verification statistics"""
    store = _history()
    render_stats(store.statistics(), _average(store))


if __name__ == '__main__':
    main()
