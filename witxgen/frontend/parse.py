"""witx parser - recursive descent, one method per grammar production.

Builds the `Document` directly. Names resolve against declarations seen so
far, so every reference points at an earlier `typename` and cycles cannot
be expressed.
"""

from __future__ import annotations

from typing import Callable

from witxgen.witx import (
    INT_REPRS,
    BuiltinType,
    Case,
    Constant,
    ConstPointer,
    Document,
    Handle,
    InterfaceFunc,
    InterfaceFuncParam,
    List,
    Module,
    NamedRef,
    NamedType,
    Pointer,
    Record,
    RecordMember,
    Type,
    TypeRef,
    ValueRef,
    Variant,
)
from .tokens import (
    TK_DOC,
    TK_EOF,
    TK_ID,
    TK_INT,
    TK_KEYWORD,
    TK_LPAREN,
    TK_RPAREN,
    TK_STRING,
    Token,
)

BUILTIN_ATOMS: set[str] = {
    "u8",
    "u16",
    "u32",
    "u64",
    "s8",
    "s16",
    "s32",
    "s64",
    "f32",
    "f64",
    "char",
}


class ParseError(Exception):
    """Parse error with location info."""

    def __init__(self, msg: str, line: int, col: int):
        self.msg: str = msg
        self.line: int = line
        self.col: int = col
        super().__init__(msg + " at line " + str(line) + " col " + str(col))


def parse_int(text: str) -> int:
    """Parse a witx integer literal (decimal or 0x hex, `_` separators)."""
    negative = text.startswith("-")
    body = text[1:] if negative else text
    body = body.replace("_", "")
    if body.startswith("0x") or body.startswith("0X"):
        value = int(body[2:], 16)
    else:
        value = int(body, 10)
    return -value if negative else value


class Parser:
    """Recursive descent parser for witx documents."""

    def __init__(
        self,
        tokens: list[Token],
        doc: Document | None = None,
        use: Callable[[str], None] | None = None,
    ):
        self.tokens: list[Token] = tokens
        self.pos: int = 0
        self.doc: Document = doc if doc is not None else Document()
        self._use = use
        self._doc_lines: list[str] = []

    # ── Helpers ──────────────────────────────────────────────

    def _skip_docs(self) -> None:
        while self.tokens[self.pos].type == TK_DOC:
            self._doc_lines.append(self.tokens[self.pos].value)
            self.pos += 1

    def take_docs(self) -> str:
        """Return and clear the doc comment lines preceding the current token."""
        self._skip_docs()
        docs = "\n".join(self._doc_lines)
        self._doc_lines = []
        return docs

    def current(self) -> Token:
        self._skip_docs()
        return self.tokens[self.pos]

    def peek(self, offset: int) -> Token:
        self._skip_docs()
        idx = self.pos
        seen = 0
        while idx < len(self.tokens) - 1:
            if self.tokens[idx].type != TK_DOC:
                if seen == offset:
                    return self.tokens[idx]
                seen += 1
            idx += 1
        return self.tokens[len(self.tokens) - 1]

    def advance(self) -> Token:
        tok = self.current()
        self.pos += 1
        return tok

    def at(self, value: str) -> bool:
        tok = self.current()
        return tok.type == TK_KEYWORD and tok.value == value

    def at_type(self, type_: str) -> bool:
        return self.current().type == type_

    def at_form(self, keyword: str) -> bool:
        """True if the next tokens open `(keyword ...`."""
        next_tok = self.peek(1)
        return (
            self.at_type(TK_LPAREN)
            and next_tok.type == TK_KEYWORD
            and next_tok.value == keyword
        )

    def at_witx(self, keyword: str) -> bool:
        """True if the next tokens open `(@witx keyword ...`."""
        return (
            self.at_type(TK_LPAREN)
            and self.peek(1).value == "@witx"
            and self.peek(2).value == keyword
        )

    def expect(self, value: str) -> Token:
        tok = self.current()
        if tok.type != TK_KEYWORD or tok.value != value:
            raise self.error("expected '" + value + "', got " + _describe(tok))
        return self.advance()

    def expect_type(self, type_: str, what: str) -> Token:
        tok = self.current()
        if tok.type != type_:
            raise self.error("expected " + what + ", got " + _describe(tok))
        return self.advance()

    def lparen(self) -> None:
        self.expect_type(TK_LPAREN, "'('")

    def rparen(self) -> None:
        self.expect_type(TK_RPAREN, "')'")
        self._doc_lines = []

    def error(self, msg: str) -> ParseError:
        tok = self.current()
        return ParseError(msg, tok.line, tok.col)

    def lookup(self, tok: Token) -> NamedType:
        nt = self.doc.typename(tok.value)
        if nt is None:
            raise ParseError("unknown type $" + tok.value, tok.line, tok.col)
        return nt

    # ── Top Level ────────────────────────────────────────────

    def parse_document(self) -> Document:
        while not self.at_type(TK_EOF):
            self.parse_decl()
        return self.doc

    def parse_decl(self) -> None:
        docs = self.take_docs()
        if self.at_form("typename"):
            self.parse_typename(docs)
        elif self.at_form("module"):
            self.parse_module(docs)
        elif self.at_form("use"):
            self.parse_use()
        elif self.at_witx("const"):
            self.parse_const(docs)
        else:
            raise self.error("expected declaration (typename, module, use, @witx const)")

    def parse_typename(self, docs: str) -> None:
        self.lparen()
        self.expect("typename")
        name_tok = self.expect_type(TK_ID, "type name")
        if self.doc.typename(name_tok.value) is not None:
            raise ParseError(
                "duplicate type $" + name_tok.value, name_tok.line, name_tok.col
            )
        tref = self.parse_type()
        self.rparen()
        self.doc.typenames.append(NamedType(name_tok.value, tref, docs))

    def parse_use(self) -> None:
        self.lparen()
        self.expect("use")
        path_tok = self.expect_type(TK_STRING, "file path")
        self.rparen()
        if self._use is None:
            raise ParseError(
                "use is not available without a file loader",
                path_tok.line,
                path_tok.col,
            )
        self._use(path_tok.value)

    def parse_const(self, docs: str) -> None:
        self.lparen()
        self.expect("@witx")
        self.expect("const")
        ty_tok = self.expect_type(TK_ID, "constant type")
        self.lookup(ty_tok)
        name_tok = self.expect_type(TK_ID, "constant name")
        value_tok = self.expect_type(TK_INT, "integer value")
        self.rparen()
        self.doc.constants.append(
            Constant(ty_tok.value, name_tok.value, parse_int(value_tok.value), docs)
        )

    # ── Modules ──────────────────────────────────────────────

    def parse_module(self, docs: str) -> None:
        self.lparen()
        self.expect("module")
        name_tok = self.expect_type(TK_ID, "module name")
        if self.doc.module(name_tok.value) is not None:
            raise ParseError(
                "duplicate module $" + name_tok.value, name_tok.line, name_tok.col
            )
        module = Module(name_tok.value, [], docs)
        while not self.at_type(TK_RPAREN):
            item_docs = self.take_docs()
            if self.at_form("import"):
                self.parse_import()
            elif self.at_form("@interface"):
                func = self.parse_func(item_docs)
                if module.func(func.name) is not None:
                    raise self.error("duplicate function " + func.name)
                module.funcs.append(func)
            else:
                raise self.error("expected import or @interface func")
        self.rparen()
        self.doc.modules.append(module)

    def parse_import(self) -> None:
        self.lparen()
        self.expect("import")
        self.expect_type(TK_STRING, "import name")
        self.lparen()
        self.expect("memory")
        self.rparen()
        self.rparen()

    def parse_func(self, docs: str) -> InterfaceFunc:
        self.lparen()
        self.expect("@interface")
        self.expect("func")
        self.lparen()
        self.expect("export")
        name_tok = self.expect_type(TK_STRING, "export name")
        self.rparen()
        func = InterfaceFunc(name_tok.value, [], [], False, docs)
        while not self.at_type(TK_RPAREN):
            item_docs = self.take_docs()
            if self.at_form("param"):
                func.params.append(self.parse_param("param", item_docs))
            elif self.at_form("result"):
                func.results.append(self.parse_param("result", item_docs))
            elif self.at_witx("noreturn"):
                self.lparen()
                self.expect("@witx")
                self.expect("noreturn")
                self.rparen()
                func.noreturn = True
            else:
                raise self.error("expected param, result, or (@witx noreturn)")
        self.rparen()
        if func.noreturn and len(func.results) > 0:
            raise ParseError(
                "noreturn function " + func.name + " declares results",
                name_tok.line,
                name_tok.col,
            )
        return func

    def parse_param(self, keyword: str, docs: str) -> InterfaceFuncParam:
        self.lparen()
        self.expect(keyword)
        name_tok = self.expect_type(TK_ID, keyword + " name")
        tref = self.parse_type()
        self.rparen()
        return InterfaceFuncParam(name_tok.value, tref, docs)

    # ── Types ────────────────────────────────────────────────

    def parse_type(self) -> TypeRef:
        tok = self.current()
        if tok.type == TK_ID:
            self.advance()
            return NamedRef(self.lookup(tok))
        if tok.type == TK_KEYWORD:
            self.advance()
            if tok.value in BUILTIN_ATOMS:
                return ValueRef(BuiltinType(tok.value))
            if tok.value == "string":
                return ValueRef(List(ValueRef(BuiltinType("char"))))
            if tok.value == "bool":
                return ValueRef(Variant([Case("false"), Case("true")]))
            raise ParseError("unknown type " + tok.value, tok.line, tok.col)
        if tok.type == TK_LPAREN:
            return ValueRef(self.parse_type_form())
        raise self.error("expected type, got " + _describe(tok))

    def parse_type_form(self) -> Type:
        self.lparen()
        head = self.current()
        if head.type != TK_KEYWORD:
            raise self.error("expected type constructor, got " + _describe(head))
        self.advance()
        if head.value == "record":
            result = self.parse_record()
        elif head.value == "flags":
            result = self.parse_flags()
        elif head.value == "enum":
            result = self.parse_enum()
        elif head.value == "variant":
            result = self.parse_variant()
        elif head.value == "union":
            result = self.parse_union()
        elif head.value == "expected":
            result = self.parse_expected()
        elif head.value == "tuple":
            result = self.parse_tuple()
        elif head.value == "list":
            result = List(self.parse_type())
        elif head.value == "handle":
            result = Handle()
        elif head.value == "@witx":
            result = self.parse_witx_type()
        else:
            raise ParseError(
                "unknown type constructor " + head.value, head.line, head.col
            )
        self.rparen()
        return result

    def parse_witx_type(self) -> Type:
        tok = self.expect_type(TK_KEYWORD, "@witx type annotation")
        if tok.value == "pointer":
            return Pointer(self.parse_type())
        if tok.value == "const_pointer":
            return ConstPointer(self.parse_type())
        if tok.value == "usize":
            return BuiltinType("u32", lang_ptr_size=True)
        if tok.value == "char8":
            return BuiltinType("u8", lang_c_char=True)
        raise ParseError("unknown @witx type " + tok.value, tok.line, tok.col)

    def parse_repr(self, keyword: str) -> str | None:
        """Parse an optional `(@witx <keyword> uN)` annotation."""
        if not self.at_witx(keyword):
            return None
        self.lparen()
        self.expect("@witx")
        self.expect(keyword)
        tok = self.expect_type(TK_KEYWORD, "integer representation")
        if tok.value not in INT_REPRS:
            raise ParseError(
                "invalid integer representation " + tok.value, tok.line, tok.col
            )
        self.rparen()
        return tok.value

    def parse_record(self) -> Record:
        members: list[RecordMember] = []
        while not self.at_type(TK_RPAREN):
            docs = self.take_docs()
            self.lparen()
            self.expect("field")
            name_tok = self.expect_type(TK_ID, "field name")
            tref = self.parse_type()
            self.rparen()
            members.append(RecordMember(name_tok.value, tref, docs))
        return Record(members)

    def parse_flags(self) -> Record:
        repr_ = self.parse_repr("repr")
        members: list[RecordMember] = []
        while not self.at_type(TK_RPAREN):
            docs = self.take_docs()
            name_tok = self.expect_type(TK_ID, "flag name")
            members.append(
                RecordMember(name_tok.value, ValueRef(BuiltinType("u8")), docs)
            )
        return Record(members, bitflags=True, repr=repr_)

    def parse_enum(self) -> Variant:
        tag = self.parse_repr("tag")
        cases: list[Case] = []
        while not self.at_type(TK_RPAREN):
            docs = self.take_docs()
            name_tok = self.expect_type(TK_ID, "enum case name")
            cases.append(Case(name_tok.value, None, docs))
        return Variant(cases, tag)

    def parse_variant(self) -> Variant:
        tag = self.parse_repr("tag")
        cases: list[Case] = []
        while not self.at_type(TK_RPAREN):
            docs = self.take_docs()
            self.lparen()
            self.expect("case")
            name_tok = self.expect_type(TK_ID, "case name")
            tref: TypeRef | None = None
            if not self.at_type(TK_RPAREN):
                tref = self.parse_type()
            self.rparen()
            cases.append(Case(name_tok.value, tref, docs))
        return Variant(cases, tag)

    def parse_union(self) -> Variant:
        tag_type: NamedType | None = None
        if self.at_witx("tag"):
            self.lparen()
            self.expect("@witx")
            self.expect("tag")
            tag_tok = self.expect_type(TK_ID, "tag type")
            tag_type = self.lookup(tag_tok)
            self.rparen()
        payloads: list[TypeRef] = []
        while not self.at_type(TK_RPAREN):
            payloads.append(self.parse_type())
        if tag_type is None:
            return Variant([Case(str(i), t) for i, t in enumerate(payloads)])
        tag = tag_type.type_()
        if not isinstance(tag, Variant) or not tag.is_enum_like():
            raise self.error("union tag $" + tag_type.name + " is not an enum")
        if len(tag.cases) != len(payloads):
            raise self.error(
                "union tag $" + tag_type.name + " has " + str(len(tag.cases))
                + " cases but the union has " + str(len(payloads)) + " types"
            )
        cases = [
            Case(tag.cases[i].name, payloads[i], tag.cases[i].docs)
            for i in range(len(payloads))
        ]
        return Variant(cases, tag.tag_repr)

    def parse_expected(self) -> Variant:
        ok: TypeRef | None = None
        if not self.at_form("error") and not self.at_type(TK_RPAREN):
            ok = self.parse_type()
        err: TypeRef | None = None
        if self.at_form("error"):
            self.lparen()
            self.expect("error")
            err = self.parse_type()
            self.rparen()
        return Variant([Case("ok", ok), Case("err", err)])

    def parse_tuple(self) -> Record:
        members: list[RecordMember] = []
        while not self.at_type(TK_RPAREN):
            members.append(RecordMember(str(len(members)), self.parse_type()))
        return Record(members)


def _describe(tok: Token) -> str:
    if tok.type == TK_EOF:
        return "end of input"
    if tok.type == TK_ID:
        return "'$" + tok.value + "'"
    if tok.type == TK_STRING:
        return '"' + tok.value + '"'
    return "'" + tok.value + "'"
