"""Generation-time errors raised by the middleend and backend."""

from __future__ import annotations


class GenerationError(Exception):
    """Base for errors that abort code generation."""


class UnsupportedShape(GenerationError, NotImplementedError):
    """A type shape or instruction the generator deliberately does not model.

    Raised instead of emitting approximate marshalling code.
    """


class NamingError(GenerationError):
    """An interface name is not already in the target naming convention."""
