"""
docker-registry-client CLI

Implements 3 CLI verbs over the Operations facade:
- resolve: Resolve an image reference to its platform manifest
- signature: Locate the cosign signature manifest of an image
- ping: Check that a host serves the Distribution API
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import typer

from .cli_context import CLIContext
from .models import Platform
from .operations import NO_SIGNATURE_EXIT_CODE, Operations, run_and_exit
from .operations.printers import print_manifest, print_ping, print_signature
from .reference import parse_reference

T = TypeVar("T")

app = typer.Typer(name="docker-registry-client", help="Read-only OCI registry client")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", envvar="DRC_LOG_LEVEL",
                                  help="Logging level (DEBUG, INFO, WARNING, ERROR)"),
) -> None:
    """Fetch and resolve image manifests from OCI registries."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run(action: Callable[[Operations], Awaitable[T]]) -> T:
    """Run one async operation against a fresh CLI context."""
    async def _with_context() -> T:
        context = CLIContext.from_env()
        try:
            return await action(Operations(context))
        finally:
            await context.aclose()

    return asyncio.run(_with_context())


def _parse_platform(platform: Optional[str]) -> Optional[Platform]:
    return Platform.parse(platform) if platform else None


@app.command()
def resolve(
    reference: str = typer.Argument(..., help="Image reference (registry/repository[:tag|@digest])"),
    platform: Optional[str] = typer.Option(None, "--platform", help="Target platform os/arch[/variant]"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON output"),
) -> None:
    """Resolve an image reference to its platform manifest."""

    def _resolve() -> None:
        ref = parse_reference(reference)
        target = _parse_platform(platform)
        manifest = _run(lambda ops: ops.resolve(ref, target))
        print_manifest(ref, manifest, as_json=as_json)

    run_and_exit(_resolve)


@app.command()
def signature(
    reference: str = typer.Argument(..., help="Image reference (registry/repository[:tag|@digest])"),
    platform: Optional[str] = typer.Option(None, "--platform", help="Target platform os/arch[/variant]"),
    as_json: bool = typer.Option(False, "--json", help="Print JSON output"),
) -> None:
    """Locate the cosign signature manifest of an image."""

    def _signature():
        ref = parse_reference(reference)
        target = _parse_platform(platform)
        return _run(lambda ops: ops.signature(ref, target))

    result = run_and_exit(_signature)
    print_signature(result, as_json=as_json)
    if not result.found:
        raise typer.Exit(code=NO_SIGNATURE_EXIT_CODE)


@app.command()
def ping(
    registry: str = typer.Argument(..., help="Registry host with optional port"),
) -> None:
    """Check that a registry serves the Distribution API."""
    available = run_and_exit(lambda: _run(lambda ops: ops.ping(registry)))
    print_ping(registry, available)
    if not available:
        raise typer.Exit(code=3)


if __name__ == "__main__":
    app()
