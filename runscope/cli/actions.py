"""
Run actions from the command line: rerun, cancel and workflow dispatch.
"""

import json
from typing import Optional, Tuple

import click
from rich.console import Console

from runscope.client import GitHubClient
from runscope.config import Source
from runscope.errors import RunscopeError, error_hint
from runscope.logging import EXIT_FAILURE, EXIT_SUCCESS, get_logger, log_extra
from runscope.models import Run

logger = get_logger(__name__)
console = Console()


def _context(ctx) -> Tuple[GitHubClient, Source]:
    from runscope.cli.main import resolve_sources

    settings = ctx.obj["SETTINGS"]
    client = GitHubClient.from_settings(settings)
    sources = resolve_sources(
        settings, client, repo=ctx.obj.get("REPO"), repos=ctx.obj.get("REPOS"), branch=ctx.obj.get("BRANCH")
    )
    if len(sources) != 1:
        raise click.UsageError("run actions need exactly one repository (use --repo owner/name)")
    return client, sources[0]


def _target_run(client: GitHubClient, source: Source, run_id: Optional[int]) -> Run:
    if run_id is not None:
        return client.fetch_run(source, run_id)
    return client.fetch_latest_run(source, branch=source.branch)


def _report(ctx, ok: bool, message: str, **payload) -> None:
    if ctx.obj.get("JSON"):
        click.echo(json.dumps({"success": ok, "message": message, **payload}))
    elif ok:
        console.print(f"[green]✓[/green] {message}")
    else:
        click.echo(f"✗ {message}", err=True)
    ctx.exit(EXIT_SUCCESS if ok else EXIT_FAILURE)


def _fail(ctx, exc: RunscopeError, action: str) -> None:
    logger.error("run_action_failed", extra=log_extra(command=action, error=str(exc)))
    if not ctx.obj.get("JSON"):
        click.echo(f"  {error_hint(exc)}", err=True)
    _report(ctx, False, f"Error: {exc}")


@click.command()
@click.argument("run_id", type=int, required=False)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def retry(ctx, run_id, yes):
    """Re-run a completed run (default: the latest run)."""
    try:
        client, source = _context(ctx)
        run = _target_run(client, source, run_id)
        if not run.is_completed():
            _report(ctx, False, f"Run #{run.run_number} is still {run.status}", run_id=run.id)
        if not yes:
            click.confirm(f"Re-run {source.slug} {run.name} #{run.run_number}?", abort=True)
        client.rerun(source, run.id)
    except RunscopeError as exc:
        _fail(ctx, exc, "retry")
    _report(ctx, True, f"Rerun requested for run #{run.run_number}", run_id=run.id)


@click.command()
@click.argument("run_id", type=int, required=False)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def cancel(ctx, run_id, yes):
    """Cancel a queued or running run (default: the latest run)."""
    try:
        client, source = _context(ctx)
        run = _target_run(client, source, run_id)
        if run.is_completed():
            _report(ctx, False, f"Run #{run.run_number} already completed", run_id=run.id)
        if not yes:
            click.confirm(f"Cancel {source.slug} {run.name} #{run.run_number}?", abort=True)
        client.cancel(source, run.id)
    except RunscopeError as exc:
        _fail(ctx, exc, "cancel")
    _report(ctx, True, f"Cancel requested for run #{run.run_number}", run_id=run.id)


@click.command()
@click.argument("workflow")
@click.option("--ref", help="Git ref to run on (default: the selected branch)")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def dispatch(ctx, workflow, ref, yes):
    """Trigger a workflow_dispatch event for WORKFLOW (file name or id)."""
    try:
        client, source = _context(ctx)
        ref = ref or source.branch
        if not ref:
            raise click.UsageError("no ref to dispatch on; pass --ref or --branch")
        if not yes:
            click.confirm(f"Dispatch {workflow} on {source.slug}@{ref}?", abort=True)
        client.dispatch(source, workflow, ref)
    except RunscopeError as exc:
        _fail(ctx, exc, "dispatch")
    _report(ctx, True, f"Dispatched {workflow} on {ref}", workflow=workflow, ref=ref)
