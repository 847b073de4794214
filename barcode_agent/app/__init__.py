"""Application entrypoints for the barcode agent."""

from .main import build_controller, main, parse_args, run

__all__ = ["build_controller", "main", "parse_args", "run"]
