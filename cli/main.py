"""readvault CLI: run and inspect snapshots from the terminal.

Usage:
    python cli/main.py --help

Commands:
    check-url  → static URL safety verdict
    snapshot   → run the full pipeline (optionally store the blob)
    show       → print a stored snapshot
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from readvault.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import json
from typing import Optional

import typer

from readvault.config import settings
from readvault.logging_setup import configure_logging

app = typer.Typer(
    name="readvault",
    help="readvault snapshot CLI.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    configure_logging("DEBUG" if verbose else None)


# ---------------------------------------------------------------------------
# Safety
# ---------------------------------------------------------------------------
@app.command("check-url")
def check_url_cmd(url: str = typer.Argument(..., help="URL to validate.")) -> None:
    """Print whether *url* may be fetched; exit 1 when it is blocked."""
    from readvault.snapshot.safety import check_url

    verdict = check_url(url)
    if verdict.safe:
        typer.echo(f"[check-url] safe: {url}")
        return
    typer.echo(f"[check-url] blocked ({verdict.reason.value}): {verdict.message}")
    raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
@app.command("snapshot")
def snapshot_cmd(
    url: str = typer.Argument(..., help="URL to snapshot."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
    space: Optional[str] = typer.Option(None, "--space", help="Space id to store under."),
    save: Optional[str] = typer.Option(None, "--save", help="Save id to store under."),
) -> None:
    """Run the snapshot pipeline for *url*."""
    from readvault.snapshot import ProcessFailure, process_snapshot
    from readvault.storage import write_snapshot

    if (space is None) != (save is None):
        typer.echo("[snapshot] --space and --save must be given together.")
        raise typer.Exit(2)

    if not as_json:
        typer.echo(f"[snapshot] Processing {url!r} …")
    result = process_snapshot(url)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    if isinstance(result, ProcessFailure):
        if not as_json:
            typer.echo(f"[snapshot] Failed ({result.reason.value}): {result.message}")
        raise typer.Exit(1)

    meta = result.metadata
    if not as_json:
        typer.echo(f"[snapshot] Title  : {result.content.title or '(none)'}")
        typer.echo(f"[snapshot] Site   : {meta.site_name or '(unknown)'}")
        typer.echo(f"[snapshot] Words  : {meta.word_count}")
        typer.echo(f"[snapshot] SHA256 : {meta.content_sha256}")

    if space is not None and save is not None:
        settings.ensure_workspace()
        try:
            path = write_snapshot(space, save, result.content)
        except ValueError as exc:
            typer.echo(f"[snapshot] {exc}")
            raise typer.Exit(2)
        if not as_json:
            typer.echo(f"[snapshot] Stored : {path}")


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
@app.command("show")
def show_cmd(
    space: str = typer.Option(..., "--space", help="Space id."),
    save: str = typer.Option(..., "--save", help="Save id."),
    html: bool = typer.Option(False, "--html", help="Print sanitized HTML instead of text."),
) -> None:
    """Print a stored snapshot."""
    from readvault.storage import read_snapshot

    try:
        content = read_snapshot(space, save)
    except ValueError as exc:  # bad id or corrupt blob
        typer.echo(f"[show] {exc}")
        raise typer.Exit(1)
    if content is None:
        typer.echo(f"[show] No snapshot stored for {space}/{save}.")
        raise typer.Exit(1)

    typer.echo(content.title or "(untitled)")
    if content.site_name:
        typer.echo(content.site_name)
    typer.echo("=" * 72)
    typer.echo(content.content if html else content.text_content)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
