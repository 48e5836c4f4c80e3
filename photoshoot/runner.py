"""CLI runner for the commercial photoshoot generator.

Usage:
    python -m photoshoot.runner generate -d "A leather handbag" -p product.png -n 3
    python -m photoshoot.runner describe product.png
    python -m photoshoot.runner history
    python -m photoshoot.runner regenerate <entry_id> 2 --style cinematic
    python -m photoshoot.runner animate <entry_id> 1 --aspect-ratio 9:16
    python -m photoshoot.runner export <entry_id> --zip
    python -m photoshoot.runner set-key <api_key>
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

import click
import yaml
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from photoshoot.models import (
    ASPECT_RATIOS,
    MAX_COUNT,
    MAX_DELAY,
    MIN_COUNT,
    MIN_DELAY,
    STYLES,
    VIDEO_ASPECT_RATIOS,
    BatchParameters,
    HistoryEntry,
    MediaFile,
    PhotoState,
    TrackedItem,
    VideoState,
)

console = Console()

# Default paths
_DEFAULT_CONFIG = "config.yaml"

_STATE_STYLES = {
    "loading": "[yellow]LOADING[/yellow]",
    "success": "[green]DONE[/green]",
    "error": "[red]FAILED[/red]",
    "idle": "[dim]-[/dim]",
}


def _setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet down httpx unless debugging
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def _load_config(config_path: str) -> dict:
    """Load config; the default config.yaml may be absent, an explicit path may not."""
    from photoshoot.auth import load_config

    try:
        return load_config(None if config_path == _DEFAULT_CONFIG else config_path)
    except FileNotFoundError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)
    except (ValueError, yaml.YAMLError) as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        sys.exit(1)


def _run(coro: Awaitable[Any], interrupted: str = "Interrupted.") -> Any:
    """Run a coroutine, mapping known failures to exit codes."""
    from photoshoot.errors import CredentialsError, PhotoshootError

    try:
        return asyncio.run(coro)
    except FileNotFoundError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)
    except CredentialsError as exc:
        console.print(f"[red]Authentication error: {exc}[/red]")
        console.print("[yellow]Run 'photoshoot set-key <API_KEY>' to configure your key.[/yellow]")
        sys.exit(1)
    except PhotoshootError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)
    except ValueError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print(f"\n[yellow]{interrupted}[/yellow]")
        sys.exit(130)


async def _with_studio(config_path: str, action: Callable[..., Awaitable[Any]]) -> Any:
    """Build the client, history store and studio, then run ``action``."""
    from photoshoot.auth import get_credentials, resolve_output_paths
    from photoshoot.client import GeminiClient
    from photoshoot.history import HistoryStore
    from photoshoot.studio import PhotoStudio

    config = _load_config(config_path)
    paths = resolve_output_paths(config)
    history = HistoryStore(paths["history_file"])

    async with GeminiClient.from_config(config, get_credentials(config)) as client:
        studio = PhotoStudio(
            client,
            history=history,
            poll_interval=float(config["polling"]["interval_seconds"]),
        )
        try:
            return await action(studio, history, paths)
        finally:
            await studio.close()


def _load_history(config_path: str):
    from photoshoot.auth import resolve_output_paths
    from photoshoot.history import HistoryStore

    config = _load_config(config_path)
    paths = resolve_output_paths(config)
    return HistoryStore(paths["history_file"]), paths


def _get_entry(history, entry_id: int) -> HistoryEntry:
    entry = history.get(entry_id)
    if entry is None:
        console.print(f"[red]No history entry {entry_id}.[/red]")
        sys.exit(1)
    return entry


def _item_at(items: list[TrackedItem], position: int) -> TrackedItem:
    if not 1 <= position <= len(items):
        console.print(f"[red]Position must be between 1 and {len(items)}.[/red]")
        sys.exit(1)
    return items[position - 1]


def _items_table(items: list[TrackedItem], title: str) -> Table:
    table = Table(title=title, show_lines=True)
    table.add_column("#", justify="right")
    table.add_column("Pose", style="cyan", max_width=50)
    table.add_column("Style")
    table.add_column("Photo", justify="center")
    table.add_column("Video", justify="center")
    table.add_column("Error", max_width=40)

    for index, item in enumerate(items, start=1):
        error = item.photo_error or item.video_error or ""
        table.add_row(
            str(index),
            item.pose,
            item.style,
            _STATE_STYLES[item.photo_state.value],
            _STATE_STYLES[item.video_state.value],
            error,
        )
    return table


def _write_media(media: MediaFile, directory: Path, stem: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{stem}.{media.extension}"
    path.write_bytes(media.data)
    return path


@click.group()
@click.option("--config", "-c", default=_DEFAULT_CONFIG, help="Path to config.yaml")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config: str, verbose: bool) -> None:
    """Commercial photoshoot generator."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    _setup_logging(verbose)


@cli.command("generate")
@click.option("--description", "-d", default="", help="Product description")
@click.option("--product", "-p", type=click.Path(exists=True, dir_okay=False), help="Product reference image")
@click.option("--model", "-m", type=click.Path(exists=True, dir_okay=False), help="Model reference image")
@click.option("--count", "-n", type=click.IntRange(MIN_COUNT, MAX_COUNT), default=None, help="Number of photos")
@click.option("--delay", type=click.FloatRange(MIN_DELAY, MAX_DELAY), default=None, help="Seconds between photos")
@click.option("--style", type=click.Choice(STYLES), default=None, help="Photo style")
@click.option("--aspect-ratio", "-a", type=click.Choice(ASPECT_RATIOS), default=None, help="Photo aspect ratio")
@click.option("--export", "export_dir", type=click.Path(file_okay=False), default=None,
              help="Also save successful photos into this directory")
@click.pass_context
def cmd_generate(
    ctx: click.Context,
    description: str,
    product: str | None,
    model: str | None,
    count: int | None,
    delay: float | None,
    style: str | None,
    aspect_ratio: str | None,
    export_dir: str | None,
) -> None:
    """Plan poses and generate a batch of photos."""
    from photoshoot.exporter import export_items

    config_path = ctx.obj["config"]
    defaults = _load_config(config_path)["generation"]
    params = BatchParameters(
        product_image=MediaFile.from_path(product) if product else None,
        model_image=MediaFile.from_path(model) if model else None,
        description=description,
        count=count if count is not None else int(defaults["count"]),
        delay=delay if delay is not None else float(defaults["delay"]),
        style=style or defaults["style"],
        aspect_ratio=aspect_ratio or defaults["aspect_ratio"],
    )

    async def action(studio, history, paths):
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            bar = progress.add_task("Planning poses...", total=None)

            def on_item(item: TrackedItem) -> None:
                if item.photo_state is PhotoState.LOADING:
                    progress.update(bar, total=len(studio.tracker), description="Generating photos...")
                    return
                progress.update(bar, advance=1)
                if item.photo_state is PhotoState.SUCCESS:
                    console.print(f"  [green]Done:[/green] {item.pose}")
                else:
                    console.print(f"  [red]Failed:[/red] {item.pose}: {item.photo_error}")

            unsubscribe = studio.subscribe(on_item)
            try:
                batch = await studio.run_batch(params)
            finally:
                unsubscribe()

        console.print()
        console.print(_items_table(batch.items, "Photos"))
        if export_dir and batch.succeeded:
            written = export_items(batch.items, export_dir)
            console.print(f"[green]Saved {len(written)} file(s) to {export_dir}[/green]")
        console.print(
            f"\n[bold]Batch complete: {len(batch.succeeded)}/{len(batch.items)} photo(s) generated.[/bold]"
        )

    console.print("[bold]Starting photoshoot...[/bold]")
    _run(_with_studio(config_path, action))


@cli.command("describe")
@click.argument("product", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def cmd_describe(ctx: click.Context, product: str) -> None:
    """Suggest a product description from an image."""

    async def action(studio, history, paths):
        text = await studio.describe(MediaFile.from_path(product))
        console.print(text)

    _run(_with_studio(ctx.obj["config"], action))


@cli.command("regenerate")
@click.argument("entry_id", type=int)
@click.argument("position", type=int)
@click.option("--style", type=click.Choice(STYLES), default=None, help="New style")
@click.option("--pose", default=None, help="New pose description")
@click.option("--output", "-o", type=click.Path(file_okay=False), default=None, help="Output directory")
@click.pass_context
def cmd_regenerate(
    ctx: click.Context,
    entry_id: int,
    position: int,
    style: str | None,
    pose: str | None,
    output: str | None,
) -> None:
    """Redo one photo of a past batch with a new style or pose."""

    async def action(studio, history, paths):
        entry = _get_entry(history, entry_id)
        item = _item_at(studio.load_entry(entry), position)
        new_style = style or item.style
        new_pose = pose or item.pose
        if new_style == item.style and new_pose == item.pose:
            console.print("[yellow]Style and pose unchanged; nothing to do.[/yellow]")
            return

        with console.status("[bold]Regenerating photo...[/bold]"):
            updated = await studio.regenerate(item.id, new_style, new_pose)

        if updated.photo_state is PhotoState.SUCCESS:
            out_dir = Path(output) if output else paths["exports_dir"]
            path = _write_media(updated.photo_result, out_dir, f"photo-{entry_id}-{position}-{updated.id}")
            console.print(f"[green]Saved -> {path}[/green]")
        else:
            console.print(f"[red]Regeneration failed: {updated.photo_error}[/red]")
            sys.exit(1)

    _run(_with_studio(ctx.obj["config"], action))


@cli.command("animate")
@click.argument("entry_id", type=int)
@click.argument("position", type=int)
@click.option("--aspect-ratio", "-a", type=click.Choice(VIDEO_ASPECT_RATIOS), default="9:16",
              help="Video aspect ratio")
@click.option("--output", "-o", type=click.Path(file_okay=False), default=None, help="Output directory")
@click.pass_context
def cmd_animate(
    ctx: click.Context,
    entry_id: int,
    position: int,
    aspect_ratio: str,
    output: str | None,
) -> None:
    """Turn one photo of a past batch into a short video."""

    async def action(studio, history, paths):
        entry = _get_entry(history, entry_id)
        item = _item_at(studio.load_entry(entry), position)
        if item.photo_state is not PhotoState.SUCCESS:
            console.print(f"[red]Photo {position} was not generated successfully; nothing to animate.[/red]")
            sys.exit(1)

        with console.status("[bold]Generating video (this can take a few minutes)...[/bold]"):
            updated = await studio.animate(item.id, aspect_ratio)

        if updated is not None and updated.video_state is VideoState.SUCCESS:
            out_dir = Path(output) if output else paths["exports_dir"]
            path = _write_media(updated.video_result, out_dir, f"video-{entry_id}-{position}-{updated.id}")
            console.print(f"[green]Saved -> {path}[/green]")
        else:
            error = updated.video_error if updated is not None else "cancelled"
            console.print(f"[red]Video generation failed: {error}[/red]")
            sys.exit(1)

    _run(_with_studio(ctx.obj["config"], action), interrupted="Interrupted. Video generation cancelled.")


@cli.command("history")
@click.pass_context
def cmd_history(ctx: click.Context) -> None:
    """List past batches, newest first."""
    history, _ = _load_history(ctx.obj["config"])
    entries = history.list()
    if not entries:
        console.print("[yellow]No history yet. Run 'generate' first.[/yellow]")
        return

    table = Table(title="History", show_lines=True)
    table.add_column("ID", style="cyan")
    table.add_column("Date")
    table.add_column("Description", max_width=40)
    table.add_column("Style")
    table.add_column("Photos", justify="center")

    for entry in entries:
        done = sum(1 for item in entry.items if item.photo_state is PhotoState.SUCCESS)
        table.add_row(
            str(entry.id),
            entry.date,
            entry.params.description or "[dim](images only)[/dim]",
            entry.params.style,
            f"{done}/{len(entry.items)}",
        )
    console.print(table)


@cli.command("show")
@click.argument("entry_id", type=int)
@click.pass_context
def cmd_show(ctx: click.Context, entry_id: int) -> None:
    """Show the photos of one past batch."""
    history, _ = _load_history(ctx.obj["config"])
    entry = _get_entry(history, entry_id)
    console.print(_items_table(entry.items, f"Batch {entry.id} ({entry.date})"))


@cli.command("history-remove")
@click.argument("entry_id", type=int)
@click.confirmation_option(prompt="Are you sure you want to delete this history item?")
@click.pass_context
def cmd_history_remove(ctx: click.Context, entry_id: int) -> None:
    """Delete one history entry."""
    history, _ = _load_history(ctx.obj["config"])
    if history.remove(entry_id):
        console.print(f"[green]Removed entry {entry_id}.[/green]")
    else:
        console.print(f"[yellow]No history entry {entry_id}.[/yellow]")


@cli.command("history-clear")
@click.confirmation_option(
    prompt="Are you sure you want to clear your entire generation history? This cannot be undone."
)
@click.pass_context
def cmd_history_clear(ctx: click.Context) -> None:
    """Delete all history entries."""
    history, _ = _load_history(ctx.obj["config"])
    history.clear()
    console.print("[green]History cleared.[/green]")


@cli.command("export")
@click.argument("entry_id", type=int)
@click.option("--zip", "as_zip", is_flag=True, help="Pack the files into a zip archive")
@click.option("--output", "-o", type=click.Path(), default=None, help="Output directory or archive path")
@click.pass_context
def cmd_export(ctx: click.Context, entry_id: int, as_zip: bool, output: str | None) -> None:
    """Save the successful photos of a past batch."""
    from photoshoot.exporter import export_items, export_zip

    history, paths = _load_history(ctx.obj["config"])
    entry = _get_entry(history, entry_id)
    try:
        if as_zip:
            archive = Path(output) if output else paths["exports_dir"] / f"photoshoot-{entry.id}.zip"
            export_zip(entry.items, archive)
            console.print(f"[green]Saved -> {archive}[/green]")
        else:
            out_dir = Path(output) if output else paths["exports_dir"] / str(entry.id)
            written = export_items(entry.items, out_dir)
            console.print(f"[green]Saved {len(written)} file(s) to {out_dir}[/green]")
    except ValueError as exc:
        console.print(f"[yellow]{exc}[/yellow]")
        sys.exit(1)


@cli.command("set-key")
@click.argument("api_key")
@click.pass_context
def cmd_set_key(ctx: click.Context, api_key: str) -> None:
    """Store the Gemini API key in config.yaml."""
    from photoshoot.auth import save_api_key

    try:
        path = save_api_key(api_key, ctx.obj["config"])
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)
    console.print(f"[green]API key saved to {path}.[/green]")


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
