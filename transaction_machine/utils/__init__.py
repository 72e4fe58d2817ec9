"""
Utilities package for the transaction machine.

Exports shared logging helpers. Keep this package lightweight and free of
domain-specific logic.
"""

from transaction_machine.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
