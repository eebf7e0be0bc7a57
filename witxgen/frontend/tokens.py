"""witx tokenizer - lexes s-expression source into a flat token list."""

from __future__ import annotations


# Token type constants
TK_LPAREN = "LPAREN"
TK_RPAREN = "RPAREN"
TK_ID = "ID"
TK_KEYWORD = "KEYWORD"
TK_STRING = "STRING"
TK_INT = "INT"
TK_DOC = "DOC"
TK_EOF = "EOF"

ESCAPE_MAP: dict[str, str] = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "\\": "\\",
    '"': '"',
    "'": "'",
}


class TokenizeError(Exception):
    """Error during tokenization."""

    def __init__(self, msg: str, line: int, col: int):
        self.msg: str = msg
        self.line: int = line
        self.col: int = col
        super().__init__(msg + " at line " + str(line) + " col " + str(col))


class Token:
    """A token with type, value, and position."""

    def __init__(self, type_: str, value: str, line: int, col: int):
        self.type: str = type_
        self.value: str = value
        self.line: int = line
        self.col: int = col

    def __repr__(self) -> str:
        return (
            "Token("
            + self.type
            + ", "
            + repr(self.value)
            + ", "
            + str(self.line)
            + ", "
            + str(self.col)
            + ")"
        )


def _is_digit(c: str) -> bool:
    return c >= "0" and c <= "9"


def _is_idchar(c: str) -> bool:
    """Characters allowed in `$ids` and keyword atoms."""
    if (c >= "a" and c <= "z") or (c >= "A" and c <= "Z") or _is_digit(c):
        return True
    return c in "!#$%&'*+-./:<=>?@\\^_`|~"


def _is_int(text: str) -> bool:
    body = text[1:] if text.startswith("-") else text
    if body.startswith("0x") or body.startswith("0X"):
        digits = body[2:].replace("_", "")
        return len(digits) > 0 and all(c in "0123456789abcdefABCDEF" for c in digits)
    digits = body.replace("_", "")
    return len(digits) > 0 and all(_is_digit(c) for c in digits)


def tokenize(source: str) -> list[Token]:
    """Tokenize witx source into a flat list ending with TK_EOF."""
    tokens: list[Token] = []
    pos = 0
    line = 1
    col = 1
    length = len(source)

    while pos < length:
        c = source[pos]

        # Newlines
        if c == "\n":
            pos += 1
            line += 1
            col = 1
            continue

        # Whitespace
        if c == " " or c == "\t" or c == "\r":
            pos += 1
            col += 1
            continue

        start_line = line
        start_col = col

        # Doc comment ;;; or line comment ;;
        if c == ";" and pos + 1 < length and source[pos + 1] == ";":
            end = pos
            while end < length and source[end] != "\n":
                end += 1
            text = source[pos:end]
            if text.startswith(";;;"):
                body = text[3:]
                if body.startswith(" "):
                    body = body[1:]
                tokens.append(Token(TK_DOC, body, start_line, start_col))
            col += end - pos
            pos = end
            continue

        # Block comment (; ... ;), nestable
        if c == "(" and pos + 1 < length and source[pos + 1] == ";":
            depth = 1
            pos += 2
            col += 2
            while pos < length and depth > 0:
                if source[pos] == "\n":
                    line += 1
                    col = 1
                    pos += 1
                    continue
                if source.startswith("(;", pos):
                    depth += 1
                    pos += 2
                    col += 2
                    continue
                if source.startswith(";)", pos):
                    depth -= 1
                    pos += 2
                    col += 2
                    continue
                pos += 1
                col += 1
            if depth > 0:
                raise TokenizeError("unterminated block comment", start_line, start_col)
            continue

        if c == "(":
            tokens.append(Token(TK_LPAREN, "(", start_line, start_col))
            pos += 1
            col += 1
            continue

        if c == ")":
            tokens.append(Token(TK_RPAREN, ")", start_line, start_col))
            pos += 1
            col += 1
            continue

        # String literal: "..."
        if c == '"':
            pos += 1
            col += 1
            chars: list[str] = []
            while pos < length and source[pos] != '"':
                if source[pos] == "\n":
                    raise TokenizeError(
                        "unterminated string literal", start_line, start_col
                    )
                if source[pos] == "\\":
                    if pos + 1 >= length or source[pos + 1] not in ESCAPE_MAP:
                        raise TokenizeError("invalid escape in string", line, col)
                    chars.append(ESCAPE_MAP[source[pos + 1]])
                    pos += 2
                    col += 2
                    continue
                chars.append(source[pos])
                pos += 1
                col += 1
            if pos >= length:
                raise TokenizeError("unterminated string literal", start_line, start_col)
            pos += 1  # skip closing "
            col += 1
            tokens.append(Token(TK_STRING, "".join(chars), start_line, start_col))
            continue

        # $id, integer, or keyword atom
        if _is_idchar(c):
            end = pos
            while end < length and _is_idchar(source[end]):
                end += 1
            text = source[pos:end]
            col += end - pos
            pos = end
            if text.startswith("$"):
                if len(text) == 1:
                    raise TokenizeError("empty identifier", start_line, start_col)
                tokens.append(Token(TK_ID, text[1:], start_line, start_col))
            elif _is_int(text):
                tokens.append(Token(TK_INT, text, start_line, start_col))
            else:
                tokens.append(Token(TK_KEYWORD, text, start_line, start_col))
            continue

        raise TokenizeError("unexpected character: " + repr(c), start_line, start_col)

    tokens.append(Token(TK_EOF, "", line, col))
    return tokens
