"""Automatic browser tab grouping by domain and custom rules."""

__version__ = "0.1.0"
