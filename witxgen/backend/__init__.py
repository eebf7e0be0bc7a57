"""Backend package - renders a Document as Kotlin source."""

from .kotlin import KotlinBackend, emit_kotlin

__all__ = ["KotlinBackend", "emit_kotlin"]
