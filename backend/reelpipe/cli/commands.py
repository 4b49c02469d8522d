"""CLI commands for reelpipe using Typer and Rich.

Commands:
- run: Run the full reel pipeline once
- list: List all executions in a table
- status: Show one execution task by task
- compose: Build one clip from an image and a narration in the blob store
- merge: Concatenate clips from the blob store into one video
- serve: Start the API server (and the scheduler when enabled)
"""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from reelpipe import validate_dependencies
from reelpipe.bootstrap import ReelServices, build_services
from reelpipe.config import Settings, load_settings
from reelpipe.errors import PipelineFailed, ReelpipeError, RunDeadlineExceeded
from reelpipe.orchestrator.pipeline import run_reel_pipeline
from reelpipe.schemas.execution import Execution, TaskStatus
from reelpipe.services.composer import VideoOptions
from reelpipe.services.probe import Resolution

app = typer.Typer(name="reelpipe", help="AI short-video (reel) generation pipeline")
console = Console()

_STATUS_COLORS = {
    TaskStatus.PENDING: "dim",
    TaskStatus.IN_PROGRESS: "yellow",
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _require_ffmpeg(settings: Settings) -> None:
    # Fail-fast dependency validation
    try:
        validate_dependencies(settings.media.ffmpeg_path, settings.media.ffprobe_path)
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(code=1)


async def _with_services(settings: Settings, fn, progress_callback=None):
    services = build_services(settings, progress_callback=progress_callback)
    try:
        await services.init()
        return await fn(services)
    finally:
        await services.aclose()


def _execution_state(execution: Execution) -> str:
    if execution.end_time is not None:
        return "[green]completed[/green]"
    if execution.failed_index is not None:
        return "[red]failed[/red]"
    return "[yellow]running[/yellow]"


@app.command()
def run():
    """Run the reel pipeline once and print the resulting execution."""
    settings = load_settings()
    _require_ffmpeg(settings)

    async def _run(services: ReelServices) -> Execution:
        return await run_reel_pipeline(services)

    try:
        with console.status("[bold green]Starting pipeline...") as status:
            def callback_wrapper(msg: str):
                status.update(f"[bold green]{msg}")

            execution = asyncio.run(_with_services(settings, _run, callback_wrapper))
    except PipelineFailed as e:
        console.print()
        console.print(f"[red]✗ Pipeline failed:[/red] {e}")
        _print_execution(e.execution)
        raise typer.Exit(code=1)
    except RunDeadlineExceeded as e:
        console.print()
        console.print(f"[red]✗ {e}[/red]")
        if e.execution is not None:
            _print_execution(e.execution)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print()
        console.print("[yellow]Pipeline interrupted; the execution record keeps its last persisted state.[/yellow]")
        raise typer.Exit(code=130)

    console.print(f"[green]✓[/green] Reel generated!")
    _print_execution(execution)


@app.command(name="list")
def list_executions():
    """List all persisted executions."""
    settings = load_settings()

    async def _list(services: ReelServices) -> list[Execution]:
        return await services.store.list_all()

    executions = asyncio.run(_with_services(settings, _list))
    if not executions:
        console.print("[yellow]No executions found[/yellow]")
        return

    table = Table(title="Executions")
    table.add_column("ID", style="cyan")
    table.add_column("State")
    table.add_column("Started")
    table.add_column("Finished")
    table.add_column("Steps done", justify="right")

    for execution in sorted(executions, key=lambda e: e.start_time, reverse=True):
        done = sum(1 for t in execution.tasks if t.status == TaskStatus.COMPLETED)
        table.add_row(
            execution.id,
            _execution_state(execution),
            execution.start_time.strftime("%Y-%m-%d %H:%M:%S"),
            execution.end_time.strftime("%Y-%m-%d %H:%M:%S") if execution.end_time else "-",
            f"{done}/{len(execution.tasks)}",
        )
    console.print(table)


@app.command()
def status(
    execution_id: str = typer.Argument(..., help="Execution id"),
    show_stack: bool = typer.Option(False, "--stack", help="Print the failing step's stack trace"),
):
    """Show one execution task by task."""
    settings = load_settings()

    async def _get(services: ReelServices) -> Optional[Execution]:
        return await services.store.get(execution_id)

    execution = asyncio.run(_with_services(settings, _get))
    if execution is None:
        console.print(f"[red]Error:[/red] Execution not found: {execution_id}")
        raise typer.Exit(code=1)

    _print_execution(execution, show_stack=show_stack)


def _print_execution(execution: Execution, show_stack: bool = False) -> None:
    info_lines = [
        f"[bold]ID:[/bold] {execution.id}",
        f"[bold]State:[/bold] {_execution_state(execution)}",
        f"[bold]Started:[/bold] {execution.start_time.isoformat()}",
    ]
    if execution.end_time:
        duration = (execution.end_time - execution.start_time).total_seconds()
        info_lines.append(f"[bold]Finished:[/bold] {execution.end_time.isoformat()} ({duration:.1f}s)")

    for index, task in enumerate(execution.tasks):
        color = _STATUS_COLORS[task.status]
        line = f"  {index}. {task.name}: [{color}]{task.status.value}[/{color}]"
        if task.result is not None:
            line += f" [dim]({task.result.type} {task.result.id})[/dim]"
        info_lines.append(line)
        if task.error is not None:
            info_lines.append(f"     [red]{task.error.message}[/red]")
            if show_stack and task.error.stack:
                info_lines.append(f"[dim]{task.error.stack}[/dim]")

    console.print(Panel("\n".join(info_lines), title="[bold]Execution[/bold]", border_style="blue"))


@app.command()
def compose(
    image_key: str = typer.Argument(..., help="Blob key of the still image"),
    audio_key: str = typer.Argument(..., help="Blob key of the narration audio"),
    output_key: str = typer.Argument(..., help="Blob key for the composed video"),
    duration: Optional[float] = typer.Option(None, "--duration", "-d", help="Override the probed audio duration"),
    width: Optional[int] = typer.Option(None, "--width", help="Output width (needs --height)"),
    height: Optional[int] = typer.Option(None, "--height", help="Output height (needs --width)"),
):
    """Compose one zooming clip from an image and a narration."""
    settings = load_settings()
    _require_ffmpeg(settings)

    if (width is None) != (height is None):
        console.print("[red]Error:[/red] --width and --height must be given together")
        raise typer.Exit(code=1)
    resolution = Resolution(width, height) if width is not None else None
    options = VideoOptions(resolution=resolution, duration=duration)

    async def _compose(services: ReelServices) -> str:
        return await services.composer.compose(image_key, audio_key, output_key, options)

    try:
        key = asyncio.run(_with_services(settings, _compose))
    except ReelpipeError as e:
        console.print(f"[red]✗ Composition failed:[/red] {e}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Composed {key}")


@app.command()
def merge(
    output_key: str = typer.Argument(..., help="Blob key for the merged video"),
    video_keys: list[str] = typer.Argument(..., help="Clip blob keys, in playback order"),
):
    """Concatenate clips back to back into one video."""
    settings = load_settings()
    _require_ffmpeg(settings)

    async def _merge(services: ReelServices):
        return await services.composer.merge(video_keys, output_key)

    result = asyncio.run(_with_services(settings, _merge))
    if not result.ok:
        console.print(f"[red]✗ Merge failed:[/red] {result.error}")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Merged {len(video_keys)} clips into {result.output_key}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    schedule: Optional[bool] = typer.Option(None, "--schedule/--no-schedule", help="Override schedule.enabled"),
):
    """Start the API server."""
    import uvicorn

    from reelpipe.api.app import create_app

    settings = load_settings()
    if schedule is not None:
        settings.schedule.enabled = schedule

    uvicorn.run(
        create_app(settings),
        host=host or settings.server.host,
        port=port or settings.server.port,
        reload=False,
    )


if __name__ == "__main__":
    app()
