"""
Human-readable and JSON output formatting.

Centralizes all CLI output formatting so CLI commands stay thin and focused.
"""
from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..errors import PlatformNotFound
from ..models import Manifest, SignatureResult
from ..reference import Reference

_console = Console(soft_wrap=True)
_err_console = Console(stderr=True, soft_wrap=True)


def manifest_summary(ref: Reference, manifest: Manifest) -> dict:
    """JSON-serializable description of a resolved manifest."""
    summary = {
        "reference": str(ref),
        "digest": str(manifest.digest),
        "mediaType": manifest.media_type,
        "size": len(manifest.raw),
    }
    if manifest.platform_manifests is not None:
        summary["manifests"] = [
            {"platform": str(entry.platform), "digest": str(entry.digest)}
            for entry in manifest.platform_manifests
        ]
    return summary


def print_manifest(ref: Reference, manifest: Manifest, as_json: bool = False) -> None:
    """
    Print a resolved manifest.

    Args:
        ref: Reference the user asked for
        manifest: Resolved manifest
        as_json: Emit a single JSON object instead of text
    """
    if as_json:
        typer.echo(json.dumps(manifest_summary(ref, manifest), indent=2))
        return

    _console.print(f"[bold]Reference:[/] {ref}")
    _console.print(f"[bold]Digest:[/] {manifest.digest}")
    _console.print(f"[bold]Media type:[/] [dim]{manifest.media_type}[/]")
    _console.print(f"[bold]Size:[/] {_format_bytes(len(manifest.raw))}")

    if manifest.platform_manifests:
        table = Table(title="Platforms")
        table.add_column("Platform", style="cyan")
        table.add_column("Digest", style="yellow", overflow="fold")
        for entry in manifest.platform_manifests:
            table.add_row(str(entry.platform), str(entry.digest))
        _console.print(table)


def print_signature(result: SignatureResult, as_json: bool = False) -> None:
    """Print the outcome of a signature lookup."""
    if as_json:
        payload = {
            "reference": str(result.reference),
            "found": result.found,
            "digest": str(result.manifest.digest) if result.manifest else None,
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    if result.manifest is None:
        _console.print(f"[yellow]No signature found[/] at {result.reference}")
        return

    _console.print(f"[bold]Signature:[/] {result.reference}")
    _console.print(f"[bold]Digest:[/] {result.manifest.digest}")
    _console.print(f"[bold]Media type:[/] [dim]{result.manifest.media_type}[/]")


def print_ping(registry: str, available: bool) -> None:
    if available:
        _console.print(f"[green]{registry}[/] serves the registry API")
    else:
        _console.print(f"[red]{registry}[/] does not serve the registry API")


def print_error(exc: BaseException) -> None:
    """
    Report a failed command on stderr, naming the stage that failed.

    Args:
        exc: Exception raised by the command
    """
    stage = getattr(exc, "stage", None)
    prefix = f"Error ({stage})" if stage else "Error"
    _err_console.print(f"[red]{prefix}:[/] {escape(str(exc))}", highlight=False)

    if isinstance(exc, PlatformNotFound) and exc.available:
        _err_console.print(f"Available platforms: {', '.join(exc.available)}", highlight=False)


def _format_bytes(size_bytes: int) -> str:
    """Format byte count in human-readable form."""
    size = float(size_bytes)
    for unit in ["B", "KB", "MB"]:
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
