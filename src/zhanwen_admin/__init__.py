"""Zhanwen admin backend: AI provider fleet management and reading dispatch."""

__version__ = "0.1.0"
