"""CLI tools for shellguard."""

from .main import build_parser, main, shellguard_cli

__all__ = ["build_parser", "main", "shellguard_cli"]
