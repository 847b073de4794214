"""Device-side agent bridging a USB barcode scanner to the inventory backend."""

from __future__ import annotations

from importlib import metadata

from .app.main import main, run

try:
    __version__ = metadata.version("barcode-agent")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


__all__ = ["__version__", "main", "run"]
