"""Filebot CLI using Typer."""

import logging
import os
from pathlib import Path

import typer
from dotenv import load_dotenv

from filebot import __version__
from filebot.cli.attachments import attachments_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

app = typer.Typer(
    name="filebot",
    help="Filebot - extracts text from project attachments into object storage",
    add_completion=False,
)
app.add_typer(attachments_app, name="attachments")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Logging level"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def version() -> None:
    """Show the Filebot version."""
    typer.echo(f"Filebot v{__version__}")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    from filebot.ingestion.config import get_default_config

    config = get_default_config()

    typer.echo("Filebot Configuration")
    typer.echo("=" * 40)

    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    typer.echo(f"  Config file: {config.config_path or 'Not found (using defaults)'}")
    typer.echo(f"  Storage backend: {config.storage.backend}")
    if config.storage.backend == "local":
        typer.echo(f"  Local storage path: {config.storage.local_path}")
    typer.echo(f"  Extraction endpoint: {config.extraction.endpoint}")
    typer.echo(f"  Max fetch size: {config.read.max_fetch_size_bytes} bytes")
    typer.echo(f"  Working area base: {config.workspace.base_path}")
    typer.echo(
        f"  Redis: {os.environ.get('REDIS_HOST', 'localhost')}:{os.environ.get('REDIS_PORT', '6379')}"
    )


if __name__ == "__main__":
    app()
