"""Command line interface for the demo stack."""

from .__main__ import cli

__all__ = ["cli"]
