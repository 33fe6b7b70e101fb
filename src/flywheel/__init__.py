"""Flywheel: epoch-based conversion of protocol revenue into treasury actions."""

__version__ = "0.1.0"
