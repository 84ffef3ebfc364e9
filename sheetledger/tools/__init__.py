"""
Operator tools for sheetledger.

- admin_cli: Run engine operations from the command line
"""

from .admin_cli import build_parser, run

__all__ = ["build_parser", "run"]
