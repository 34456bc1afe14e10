"""Dispatch engine services."""
