"""
Runscope CLI

Click entry point. Without a subcommand it opens the interactive monitor;
``--plain``/``--json`` print the latest run once and exit with its status.
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from rich.console import Console
from rich.table import Table

from runscope.client import GitHubClient
from runscope.config import Settings, Source, load_config, load_sources_file, parse_source, parse_sources
from runscope.errors import ConfigError, RunscopeError, error_hint
from runscope.logging import EXIT_NO_RUN, get_logger, init_cli_logging, log_extra
from runscope.models import Job, Run, exit_code_for, format_duration

logger = get_logger(__name__)
console = Console()


def build_settings(
    poll: Optional[float] = None,
    notify: bool = False,
    hook: Optional[str] = None,
    config_file: Optional[str] = None,
    log_level: Optional[str] = None,
) -> Settings:
    """Environment settings with command-line overrides applied."""
    settings = load_config()
    updates: Dict[str, Any] = {}
    if poll is not None:
        updates["poll_interval"] = poll
    if notify:
        updates["notify"] = True
    if hook:
        updates["hook"] = hook
    if config_file:
        updates["config_file"] = Path(config_file).expanduser()
    if log_level:
        updates["log_level"] = log_level
    return settings.model_copy(update=updates)


def resolve_sources(
    settings: Settings,
    client: GitHubClient,
    repo: Optional[str] = None,
    repos: Optional[str] = None,
    branch: Optional[str] = None,
) -> List[Source]:
    """
    Work out which repositories to monitor.

    ``--repos`` wins over ``--repo``, which wins over the YAML file. A single
    repository without an explicit branch is pinned to its default branch.

    Raises:
        ConfigError: If no repository is given anywhere.
    """
    if repos:
        sources = parse_sources(repos)
    elif repo:
        sources = [parse_source(repo)]
    else:
        sources = load_sources_file(settings.config_file)
    if not sources:
        raise ConfigError(
            f"no repository given: use --repo owner/name, --repos a/b,c/d or list them in {settings.config_file}"
        )
    if branch:
        sources = [source.with_branch(branch) for source in sources]
    elif len(sources) == 1 and not sources[0].branch:
        default_branch = client.get_repository(sources[0]).default_branch
        sources = [sources[0].with_branch(default_branch)]
    return sources


def run_payload(source: Source, run: Optional[Run], jobs: List[Job], error: Optional[str] = None) -> Dict[str, Any]:
    return {
        "repository": source.slug,
        "branch": source.branch or (run.head_branch if run else None),
        "run": run.model_dump(mode="json") if run else None,
        "jobs": [job.model_dump(mode="json", exclude={"steps"}) for job in jobs],
        "error": error,
    }


def print_run(source: Source, run: Run, jobs: List[Job]) -> None:
    console.print(f"[bold]{source.slug}[/bold] {run.name} #{run.run_number} ({run.head_branch})")
    status = run.conclusion or run.status
    style = "green" if run.is_success() else "red" if run.is_failure() else "yellow"
    console.print(f"  Status: [{style}]{status}[/{style}]  {run.html_url}")
    table = Table(title="Jobs")
    table.add_column("Job", style="cyan")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    for job in jobs:
        table.add_row(job.name, job.conclusion or job.status, format_duration(job.duration()))
    console.print(table)


def show_latest(client: GitHubClient, sources: List[Source], json_output: bool) -> int:
    """Print the latest run of every source; the exit code reflects the worst outcome."""
    payloads: List[Dict[str, Any]] = []
    codes: List[int] = []
    for source in sources:
        try:
            run = client.fetch_latest_run(source, branch=source.branch)
            jobs = client.fetch_jobs(source, run.id)
        except RunscopeError as exc:
            logger.warning("latest_run_failed", extra=log_extra(repo=source.slug, error=str(exc)))
            codes.append(EXIT_NO_RUN)
            payloads.append(run_payload(source, None, [], error=str(exc)))
            if not json_output:
                click.echo(f"✗ {source.slug}: {exc}", err=True)
                click.echo(f"  {error_hint(exc)}", err=True)
            continue
        codes.append(exit_code_for(run))
        payloads.append(run_payload(source, run, jobs))
        if not json_output:
            print_run(source, run, jobs)

    if json_output:
        click.echo(json.dumps(payloads[0] if len(payloads) == 1 else payloads, indent=2))
    return max(codes) if codes else EXIT_NO_RUN


@click.group(invoke_without_command=True)
@click.option("--repo", help="Repository to monitor (owner/name)")
@click.option("--repos", help="Comma separated repositories (owner/a,owner/b)")
@click.option("--branch", "-b", help="Branch to follow (default: the repository's default branch)")
@click.option("--watch", "-w", is_flag=True, help="Start in watch mode")
@click.option("--poll", type=float, help="Watch polling interval in seconds")
@click.option("--notify", is_flag=True, help="Desktop notification when a watched run completes")
@click.option("--hook", help="Executable run when a watched run completes")
@click.option("--plain", is_flag=True, help="Print the latest run and exit")
@click.option("--json", "json_output", is_flag=True, help="Print the latest run as JSON and exit")
@click.option("--config", "config_file", help="YAML file listing repositories (default: runscope.yml)")
@click.option("--log-level", help="Log level (DEBUG, INFO, ...)")
@click.pass_context
def cli(ctx, repo, repos, branch, watch, poll, notify, hook, plain, json_output, config_file, log_level):
    """runscope - GitHub Actions monitor for the terminal."""
    ctx.ensure_object(dict)
    settings = build_settings(poll=poll, notify=notify, hook=hook, config_file=config_file, log_level=log_level)
    ctx.obj["SETTINGS"] = settings
    ctx.obj["JSON"] = json_output
    ctx.obj["REPO"] = repo
    ctx.obj["REPOS"] = repos
    ctx.obj["BRANCH"] = branch

    interactive = ctx.invoked_subcommand is None and not plain and not json_output
    if not interactive:
        init_cli_logging(settings.log_level, json_output=settings.log_json, log_file=settings.log_file)
    if ctx.invoked_subcommand is not None:
        return

    client = GitHubClient.from_settings(settings)
    try:
        sources = resolve_sources(settings, client, repo=repo, repos=repos, branch=branch)
    except RunscopeError as exc:
        logger.error("source_resolution_failed", extra=log_extra(error=str(exc)))
        if json_output:
            click.echo(json.dumps({"error": str(exc)}))
        else:
            click.echo(f"✗ Error: {exc}", err=True)
            click.echo(f"  {error_hint(exc)}", err=True)
        ctx.exit(EXIT_NO_RUN)

    if not interactive:
        ctx.exit(show_latest(client, sources, json_output))

    from runscope.tui.app import run_tui

    ctx.exit(run_tui(settings, sources, watch=watch, client=client))


from runscope.cli.actions import cancel, dispatch, retry  # noqa: E402

cli.add_command(retry)
cli.add_command(cancel)
cli.add_command(dispatch)


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    sys.exit(main())
