"""Timet: command-line time tracking with object-storage sync."""

__version__ = "1.0.0"
