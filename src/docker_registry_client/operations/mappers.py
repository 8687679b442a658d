"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and CLI command wrappers
to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

from .printers import print_error

T = TypeVar('T')

# Exit code mapping by exception class name
EXIT_CODES = {
    "NotFound": 1,
    "InvalidReference": 2,
    "ValueError": 2,
    "TransportError": 3,
    "DigestMismatch": 4,
    "UnsupportedMediaType": 5,
    "PlatformNotFound": 5,
    "CacheError": 6,
}

# Signature lookup succeeded but the image is unsigned
NO_SIGNATURE_EXIT_CODE = 10


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns exit codes:
    - 0: Success
    - 1: Manifest not found (NotFound)
    - 2: Invalid input (InvalidReference, ValueError)
    - 3: Transport failure (TransportError) or unknown error
    - 4: Content digest mismatch (DigestMismatch)
    - 5: Unsupported media type or no matching platform
    - 6: Cache backend failure (CacheError)
    - 10: No signature found (signature command only)

    Args:
        exc: Exception to map

    Returns:
        Exit code (1-6, with 3 as fallback for unknown exceptions)
    """
    return EXIT_CODES.get(type(exc).__name__, 3)


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exceptions to appropriate
    exit codes using typer.Exit, after reporting the failing stage on stderr.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except Exception as e:
        print_error(e)
        raise typer.Exit(code=exit_code_for(e)) from e
