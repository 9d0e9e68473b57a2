"""
Core package init for the 1:N identification conformance harness.

Makes the `identharness` modules importable without requiring an editable install.
"""

__version__ = "0.1.0"

__all__ = [
    "config",
    "errors",
    "gallery",
    "interface",
    "io_utils",
    "partition",
    "pool",
    "reference",
    "results",
    "search",
    "stages",
    "templates",
    "types",
]
