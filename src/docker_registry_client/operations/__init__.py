"""
Operations package - Application service layer between CLI and resolver.

This package provides the Operations facade that orchestrates CLI commands,
centralizes error mapping, and handles output formatting while keeping
CLI commands thin and testable.
"""
from .facade import Operations
from .mappers import EXIT_CODES, NO_SIGNATURE_EXIT_CODE, exit_code_for, run_and_exit

__all__ = ["Operations", "EXIT_CODES", "NO_SIGNATURE_EXIT_CODE", "exit_code_for", "run_and_exit"]
