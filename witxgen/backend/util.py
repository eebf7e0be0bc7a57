"""Shared utilities for backend code emitters."""

from __future__ import annotations

import re


def to_snake(name: str) -> str:
    """Convert camelCase/PascalCase to snake_case."""
    if name.startswith("_"):
        name = name[1:]
    if "_" in name or name.islower():
        return name.lower()
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def to_camel(name: str) -> str:
    """Convert snake_case to camelCase, preserving leading underscores."""
    prefix = ""
    if name.startswith("_"):
        prefix = "_"
        name = name[1:]
    if "_" not in name:
        return prefix + (name[0].lower() + name[1:] if name else name)
    parts = name.split("_")
    return prefix + parts[0].lower() + "".join(p.capitalize() for p in parts[1:])


def to_pascal(name: str) -> str:
    """Convert snake_case to PascalCase."""
    if name.startswith("_"):
        name = name[1:]
    parts = name.split("_")
    return "".join(p.capitalize() for p in parts)


def to_screaming_snake(name: str) -> str:
    """Convert to SCREAMING_SNAKE_CASE."""
    return to_snake(name).upper()


def is_snake(name: str) -> bool:
    """True if name is already lower snake_case."""
    return re.fullmatch(r"[a-z0-9]+(_[a-z0-9]+)*", name) is not None


def kdoc(docs: str, tags: list[tuple[str, str]] | None = None) -> list[str]:
    """Render docs and `@tag text` pairs as KDoc comment lines (empty if no text)."""
    body: list[str] = []
    if docs.strip():
        body.extend(docs.rstrip().split("\n"))
    if tags:
        if body:
            body.append("")
        for tag, text in tags:
            lines = text.rstrip().split("\n")
            body.append("@" + tag + " " + lines[0])
            for rest in lines[1:]:
                body.append("  " + rest)
    if not body:
        return []
    out = ["/**"]
    for line in body:
        line = line.replace("*/", "*&#47;")
        out.append((" * " + line).rstrip())
    out.append(" */")
    return out


class Emitter:
    """Base class for code emitters with indentation tracking."""

    def __init__(self, indent_str: str = "    ") -> None:
        self.indent: int = 0
        self.lines: list[str] = []
        self._indent_str = indent_str

    def line(self, text: str = "") -> None:
        """Emit a line with current indentation."""
        if text:
            self.lines.append(self._indent_str * self.indent + text)
        else:
            self.lines.append("")

    def block(self, text: str) -> None:
        """Emit multi-line text, indenting each line at the current level."""
        for part in text.split("\n"):
            self.line(part)

    def output(self) -> str:
        """Return the accumulated output as a string."""
        return "\n".join(self.lines)
