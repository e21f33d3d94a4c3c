"""
Typer CLI application with Rich integration.

Commands:
    serve     — Run the HTTP API
    fetch     — Resolve one model name end to end
    check     — Structural (and optionally vision) check on a local image
    config    — Show current configuration
    cache     — Cache management (stats, clear)
    clean     — Remove intermediate artifacts
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich import box
from rich.prompt import Confirm
from rich.table import Table
from rich.text import Text

from cli.console import console
from cli.display import show_banner, show_check, show_config_table, show_result

app = typer.Typer(
    name="shoeimg",
    help="👟 Shoe Image API — find, validate and publish product photos",
    rich_markup_mode="rich",
    add_completion=True,
    no_args_is_help=False,
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  SERVE COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port", min=1, max=65535),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """
    🌐 Run the HTTP API.

    [dim]Examples:[/dim]
        shoeimg serve
        shoeimg serve --port 8080 -v
    """
    import uvicorn

    from api.app import create_app
    from config.settings import cfg
    from utils.log_config import setup_root

    show_banner()
    cfg.paths.ensure()
    setup_root(cfg.paths.log_file, verbose=verbose or cfg.verbose)

    bind_host = host or cfg.server.host
    bind_port = port or cfg.server.port
    console.print(f"[info]Listening on[/] http://{bind_host}:{bind_port}\n")

    uvicorn.run(create_app(cfg), host=bind_host, port=bind_port, log_config=None)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  FETCH COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def fetch(
    model: str = typer.Argument(..., help="Shoe model name, e.g. 'Xero Shoes HFS II'"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """
    👟 Resolve one model name to a published image.
    """
    from config.settings import cfg
    from core.pipeline import ShoeImagePipeline
    from utils.exceptions import ImageNotFoundError
    from utils.log_config import setup_root
    from utils.text_cleaner import is_valid_query

    if not is_valid_query(model):
        console.print("[error]Model name must not be blank[/]")
        raise typer.Exit(code=2)

    show_banner()
    cfg.paths.ensure()
    setup_root(cfg.paths.log_file, verbose=verbose or cfg.verbose)

    async def _run():
        pipeline = ShoeImagePipeline(cfg)
        try:
            return await pipeline.resolve(model)
        finally:
            await pipeline.close()

    with console.status(f"Resolving [query]{model}[/]...", spinner="dots"):
        result = asyncio.run(_run())

    show_result(result)
    try:
        result.raise_for_outcome()
    except ImageNotFoundError:
        raise typer.Exit(code=1)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  CHECK COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def check(
    image_path: Path = typer.Argument(..., help="Path to image file", exists=True, dir_okay=False),
    model: Optional[str] = typer.Option(
        None, "--model", "-m",
        help="Also ask the vision model whether this is MODEL",
    ),
) -> None:
    """
    🔍 Run the validators on a local image.

    [dim]Example: shoeimg check shoe.jpg --model "Vivobarefoot Primus Lite III"[/dim]
    """
    from config.settings import cfg
    from imaging.validator import StructuralValidator
    from imaging.verifier import SemanticVerifier
    from utils.exceptions import SemanticUnavailableError

    show_banner()
    data = image_path.read_bytes()
    console.print(f"[info]Image:[/] {image_path} ({len(data) // 1024} KB)\n")

    validator = StructuralValidator(cfg.structural)
    ratio = validator.white_ratio(data)
    passed = ratio is not None and ratio > cfg.structural.min_white_ratio

    verdict = None
    if model:
        with console.status("Asking the vision model...", spinner="dots"):
            try:
                verdict = asyncio.run(SemanticVerifier(cfg.semantic).classify(data, model))
            except SemanticUnavailableError as exc:
                show_check(ratio, passed)
                console.print(f"[error]Vision model unavailable:[/] {exc}")
                raise typer.Exit(code=1)

    show_check(ratio, passed, verdict)
    if model and verdict is None:
        console.print("[error]❌ Vision model rejected the image[/]\n")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  CONFIG COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def config() -> None:
    """
    ⚙️  Show current configuration from settings.py.
    """
    from config.settings import cfg

    show_banner()

    show_config_table({
        "Images Dir": str(cfg.paths.images_dir),
        "Index File": str(cfg.paths.index_file),
        "Log File": str(cfg.paths.log_file),
        "Verbose": cfg.verbose,
        "Source Priority": cfg.search.priority,
        "Max Candidates": cfg.search.max_candidates,
        "Headless Browser": cfg.browser.headless,
        "Download Retries": cfg.download.max_retries,
        "Download Timeout": f"{cfg.download.timeout}s",
        "Gemini Model": cfg.semantic.model_name,
        "Gemini Key Set": bool(cfg.semantic.api_key),
        "Gemini Timeout": f"{cfg.semantic.timeout}s",
        "Gemini Retries": cfg.semantic.max_retries,
        "Bypass On Failure": cfg.semantic.bypass_on_failure,
        "Save Intermediate": cfg.pipeline.save_intermediate,
        "Workers": cfg.pipeline.max_workers,
        "Listen": f"{cfg.server.host}:{cfg.server.port}",
    })

    checks = [
        ("Images Dir", cfg.paths.images_dir),
        ("Index File", cfg.paths.index_file),
    ]

    table = Table(title="📁 File Status", box=box.SIMPLE)
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Path", style="muted")

    for name, path in checks:
        exists = path.exists()
        status_str = "✅ Found" if exists else "❌ Missing"
        style = "green" if exists else "red"
        table.add_row(name, Text(status_str, style=style), str(path))

    console.print(table)
    console.print()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  CACHE COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command("cache")
def cache_cmd(
    clear: bool = typer.Option(False, "--clear", help="Clear the image cache"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """
    💾 Show cache statistics, optionally clear it.
    """
    from config.settings import cfg
    from imaging.cache import ImageCache

    show_banner()
    ic = ImageCache(cfg.paths.images_dir, cfg.paths.index_file)
    stats = ic.stats()

    table = Table(title="💾 Cache Statistics", box=box.ROUNDED, border_style="cyan")
    table.add_column("Metric", style="stat_key")
    table.add_column("Value", style="stat_val")
    table.add_row("Indexed models", str(stats["entries"]))
    table.add_row("Files present", str(stats["live"]))
    table.add_row("Cache size", f"{stats['total_mb']:.1f} MB")
    console.print(table)

    if clear:
        if yes or Confirm.ask("[warning]Clear the entire cache?[/]", default=False):
            removed = ic.clear()
            console.print(f"[success]Cache cleared ({removed} files)[/]")
        else:
            console.print("[muted]Cancelled[/]")
    console.print()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  CLEAN COMMAND
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.command()
def clean() -> None:
    """
    🧹 Delete intermediate artifacts (raw downloads, rejected images, ...).
    """
    from config.settings import cfg
    from imaging.cache import ImageCache

    show_banner()
    removed = ImageCache(cfg.paths.images_dir, cfg.paths.index_file).clear_intermediate()
    if removed:
        console.print(f"  [success]✅ Cleaned:[/] {removed} intermediate file(s)")
    else:
        console.print("[muted]Nothing to clean[/]")
    console.print()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  DEFAULT (no command)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@app.callback(invoke_without_command=True)
def default(ctx: typer.Context) -> None:
    """
    👟 Shoe Image API.

    Run [bold]shoeimg serve[/bold] to start the HTTP API.
    Run [bold]shoeimg --help[/bold] to see all commands.
    """
    load_dotenv()
    if ctx.invoked_subcommand is None:
        show_banner()
        console.print("Available commands:\n")
        console.print("  [bold cyan]serve[/]    Run the HTTP API")
        console.print("  [bold cyan]fetch[/]    Resolve one model name")
        console.print("  [bold cyan]check[/]    Validate a local image")
        console.print("  [bold cyan]config[/]   Show current configuration")
        console.print("  [bold cyan]cache[/]    Manage image cache")
        console.print("  [bold cyan]clean[/]    Remove intermediate artifacts")
        console.print()
        console.print("[muted]Run 'python main.py serve --help' for detailed options[/]")
        console.print()
