"""Compliance review of study proposals against a reference corpus."""

__version__ = "0.1.0"
