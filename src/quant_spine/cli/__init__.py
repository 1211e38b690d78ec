"""Command-line interface (``quantspine``)."""

from quant_spine.cli.app import app

__all__ = ["app"]
