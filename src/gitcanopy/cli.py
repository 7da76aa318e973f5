"""Command-line interface for GitCanopy."""

import asyncio
import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.table import Table

from gitcanopy.execution import GitCanopyError
from gitcanopy.layout import LayoutWorker, calculate_layout
from gitcanopy.models import CanopySettings, CommitFilter
from gitcanopy.service import RepositoryService
from gitcanopy.watcher import RepositoryEvent, RepositoryWatcher

app = typer.Typer(
    name="gitcanopy",
    help="GitCanopy - Inspect repository history as a laid-out commit graph",
    add_completion=False,
)
console = Console()


def configure_logging(level: str) -> None:
    """Route structlog output through a level filter."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
    )


def _service(verbose: bool) -> RepositoryService:
    settings = CanopySettings()
    configure_logging("DEBUG" if verbose else settings.log_level)
    return RepositoryService(settings)


def _fail(e: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {e}")
    raise typer.Exit(1)


def _format_time(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


@app.command()
def info(
    repo_path: Path = typer.Argument(Path("."), help="Path to Git repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Show repository state."""
    service = _service(verbose)
    try:
        repo = asyncio.run(service.get_repository(repo_path))
    except GitCanopyError as e:
        _fail(e)

    console.print(f"\n[bold]{repo.name}[/bold] [dim]{repo.path}[/dim]")
    console.print(f"[cyan]Branch:[/cyan] {repo.current_branch}")
    console.print(f"[cyan]HEAD:[/cyan] {repo.head_commit or '-'}")
    console.print(f"[cyan]Branches:[/cyan] {len(repo.branches)}")
    if repo.is_detached:
        console.print("[yellow]HEAD is detached[/yellow]")
    if repo.is_rebasing:
        console.print("[yellow]Rebase in progress[/yellow]")
    if repo.is_merging:
        console.print("[yellow]Merge in progress[/yellow]")


@app.command()
def log(
    repo_path: Path = typer.Argument(Path("."), help="Path to Git repository"),
    max_count: int = typer.Option(20, "--max", "-n", help="Maximum commits to show"),
    skip: int = typer.Option(0, "--skip", help="Commits to skip"),
    author: Optional[str] = typer.Option(None, "--author", help="Filter by author"),
    grep: Optional[str] = typer.Option(None, "--grep", help="Filter by message (case-insensitive)"),
    path: Optional[str] = typer.Option(None, "--path", help="Only commits touching this path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """List commits across all refs, newest first."""
    service = _service(verbose)
    filters = CommitFilter(author=author, query=grep, path=path)
    result = asyncio.run(service.read_commits(repo_path, limit=max_count, offset=skip, filters=filters))
    if result.error:
        _fail(Exception(result.error))

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Hash", style="cyan", width=8)
    table.add_column("Branch", style="green")
    table.add_column("Type", style="yellow")
    table.add_column("Author", style="green")
    table.add_column("Date", style="blue")
    table.add_column("Message", style="white")

    for commit in result.data:
        message = commit.short_message
        if commit.tags:
            message = f"{message} [dim]({', '.join(commit.tags)})[/dim]"
        table.add_row(
            commit.short_hash,
            commit.branch_name or "",
            commit.type,
            commit.author.name[:20],
            _format_time(commit.timestamp),
            message,
        )

    console.print(table)


@app.command()
def branches(
    repo_path: Path = typer.Argument(Path("."), help="Path to Git repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """List local and remote branches."""
    service = _service(verbose)
    result = asyncio.run(service.read_branches(repo_path))
    if result.error:
        _fail(Exception(result.error))

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("", width=1)
    table.add_column("Name")
    table.add_column("Type", style="yellow")
    table.add_column("Commit", style="cyan", width=8)
    table.add_column("Upstream", style="dim")

    for branch in result.data:
        table.add_row(
            "*" if branch.is_head else "",
            f"[{branch.color}]{branch.name}[/{branch.color}]",
            branch.type,
            branch.object_name[:7],
            branch.upstream or "",
        )

    console.print(table)


@app.command()
def show(
    commit_hash: str = typer.Argument(..., help="Commit to show"),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help="Path to Git repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Show a single commit with file changes."""
    service = _service(verbose)
    try:
        commit = asyncio.run(service.get_commit_details(repo_path, commit_hash))
    except (GitCanopyError, ValueError) as e:
        _fail(e)

    console.print("\n[bold]Commit Information[/bold]")
    console.print(f"[cyan]Hash:[/cyan] {commit.hash}")
    console.print(f"[cyan]Author:[/cyan] {commit.author.name} <{commit.author.email}>")
    console.print(f"[cyan]Date:[/cyan] {_format_time(commit.timestamp)}")
    console.print(f"[cyan]Type:[/cyan] {commit.type}")
    if commit.parents_details:
        console.print(f"[cyan]Parents:[/cyan] {' '.join(p.short_hash for p in commit.parents_details)}")
    if commit.branches:
        console.print(f"[cyan]Branches:[/cyan] {', '.join(commit.branches)}")
    if commit.tags:
        console.print(f"[cyan]Tags:[/cyan] {', '.join(commit.tags)}")
    console.print(f"\n{commit.message.rstrip()}\n")

    if commit.file_changes:
        for change in commit.file_changes:
            rename = f" [dim](from {change.previous_path})[/dim]" if change.previous_path else ""
            console.print(
                f"  [yellow]{change.status}[/yellow] {change.path}{rename} "
                f"[green]+{change.additions}[/green] [red]-{change.deletions}[/red]"
            )
    if commit.stats:
        console.print(
            f"\n{len(commit.file_changes or [])} files, "
            f"[green]+{commit.stats.additions}[/green] [red]-{commit.stats.deletions}[/red]"
        )


@app.command()
def diff(
    commit_hash: str = typer.Argument(..., help="Commit to diff against its first parent"),
    file_path: str = typer.Argument(..., help="File within the commit"),
    repo_path: Path = typer.Option(Path("."), "--repo", "-r", help="Path to Git repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Show the diff of one file in one commit."""
    service = _service(verbose)
    try:
        result = asyncio.run(service.get_diff(repo_path, commit_hash, file_path))
    except GitCanopyError as e:
        _fail(e)

    if result.kind != "text":
        console.print(f"[yellow]{result.content}[/yellow]")
        return
    console.print(result.content, markup=False, highlight=False)


@app.command()
def status(
    repo_path: Path = typer.Argument(Path("."), help="Path to Git repository"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Show working tree status."""
    service = _service(verbose)
    result = asyncio.run(service.read_status(repo_path))
    if result.error:
        _fail(Exception(result.error))

    tree = result.data
    header = f"[bold]On branch {tree.branch or '(unknown)'}[/bold]"
    if tree.upstream:
        header += f" [dim]-> {tree.upstream} (ahead {tree.ahead}, behind {tree.behind})[/dim]"
    console.print(header)

    if not tree.files:
        console.print("[green]Working tree clean[/green]")
        return
    for entry in tree.files:
        marker = "[green]staged[/green]  " if entry.staged else "[red]unstaged[/red]"
        console.print(f"  {marker} {entry.status:<11} {entry.path}")


@app.command()
def graph(
    repo_path: Path = typer.Argument(Path("."), help="Path to Git repository"),
    max_count: int = typer.Option(100, "--max", "-n", help="Maximum commits to lay out"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Lay out the commit graph and dump it as JSON."""
    service = _service(verbose)

    async def build():
        commits, branch_list, head = await asyncio.gather(
            service.get_commits(repo_path, limit=max_count),
            service.get_branches(repo_path),
            service.get_current_head(repo_path),
        )
        return calculate_layout(
            commits,
            branch_list,
            head_commit_hash=head or None,
            lane_width=service.settings.lane_width,
            row_height=service.settings.row_height,
        )

    data = asyncio.run(build())
    payload = data.model_dump(mode="json")

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w") as f:
            json.dump(payload, f, indent=2)
        console.print(
            f"[bold green]✓[/bold green] {len(data.nodes)} nodes, {len(data.edges)} edges saved to {output}"
        )
    else:
        console.print_json(data=payload)


@app.command()
def watch(
    repo_path: Path = typer.Argument(Path("."), help="Path to Git repository"),
    relayout: bool = typer.Option(False, "--layout", "-l", help="Re-run the layout on every change"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """Print debounced repository change events until interrupted."""
    from gitcanopy.sync import RefreshCoordinator

    service = _service(verbose)
    watcher = RepositoryWatcher(service.settings)

    def on_event(event: RepositoryEvent) -> None:
        console.print(f"[dim]{time.strftime('%H:%M:%S')}[/dim] [cyan]{event.type.value}[/cyan]")

    def on_layout(data) -> None:
        console.print(f"  [green]layout[/green] {len(data.nodes)} nodes, {len(data.lane_segments)} lanes")

    async def run() -> None:
        with LayoutWorker(service.settings) as worker:
            coordinator = RefreshCoordinator(
                service,
                worker,
                watcher,
                on_layout=on_layout if relayout else None,
                on_event=on_event,
            )
            await coordinator.open(repo_path)
            console.print(f"[bold green]Watching[/bold green] {coordinator.repo_path} (Ctrl+C to stop)")
            try:
                while True:
                    await asyncio.sleep(1)
            finally:
                await coordinator.close()
                watcher.unwatch_all()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")
    except GitCanopyError as e:
        _fail(e)


@app.command()
def version() -> None:
    """Show version information."""
    from gitcanopy import __version__

    console.print(f"[bold]GitCanopy[/bold] version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
