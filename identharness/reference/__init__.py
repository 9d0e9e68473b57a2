"""Reference engines bundled with the harness."""

from identharness.reference.cosine_impl import CosineImplementation
from identharness.reference.null_impl import NullImplementation

__all__ = ["CosineImplementation", "NullImplementation"]
