"""Load witx files into a single Document, following `use` includes."""

from __future__ import annotations

import os

from witxgen.witx import Document
from .parse import ParseError, Parser
from .tokens import TokenizeError, tokenize


class LoadError(Exception):
    """A witx file could not be read or parsed."""

    def __init__(self, path: str, msg: str):
        self.path: str = path
        self.msg: str = msg
        super().__init__(path + ": " + msg)


class Loader:
    """Parses files into one shared Document, each file at most once."""

    def __init__(self) -> None:
        self.doc: Document = Document()
        self._seen: set[str] = set()

    def load_file(self, path: str) -> None:
        key = os.path.realpath(path)
        if key in self._seen:
            return
        self._seen.add(key)
        try:
            with open(path, "rb") as f:
                raw = f.read()
        except OSError:
            raise LoadError(path, "cannot open file")
        try:
            source = raw.decode("utf-8")
        except ValueError:
            raise LoadError(path, "invalid utf-8")
        base = os.path.dirname(path)

        def use(rel: str) -> None:
            self.load_file(os.path.join(base, rel))

        self.load_source(source, path, use)

    def load_source(self, source: str, path: str = "<input>", use=None) -> None:
        try:
            tokens = tokenize(source)
            Parser(tokens, self.doc, use).parse_document()
        except (TokenizeError, ParseError) as e:
            raise LoadError(path, str(e.line) + ":" + str(e.col) + ": " + e.msg)


def load(paths: list[str]) -> Document:
    """Load one or more witx files into a Document. Raises LoadError."""
    loader = Loader()
    for path in paths:
        loader.load_file(path)
    return loader.doc


def load_str(source: str) -> Document:
    """Load a single witx source string (no `use` support)."""
    loader = Loader()
    loader.load_source(source)
    return loader.doc
