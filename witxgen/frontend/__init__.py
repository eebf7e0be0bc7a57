"""Frontend package - reads witx source into a Document."""

from .load import LoadError, Loader, load, load_str
from .parse import ParseError, Parser
from .tokens import TokenizeError, tokenize

__all__ = [
    "LoadError",
    "Loader",
    "ParseError",
    "Parser",
    "TokenizeError",
    "load",
    "load_str",
    "tokenize",
]
