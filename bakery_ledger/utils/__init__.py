"""Utility modules: configuration, constants and helpers."""
