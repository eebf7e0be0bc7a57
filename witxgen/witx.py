"""witx document model - the typed interface description.

This module defines the types, functions and constants a witx document
declares. The frontend builds a `Document` once per run; nothing after the
frontend mutates it.

Architecture:
    .witx -> Frontend (tokenize, parse, load) -> [Document] -> Middleend (layout, abi) -> Backend -> Kotlin
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


IntRepr = Literal["u8", "u16", "u32", "u64"]
"""Integer representation used for variant tags and bitflags.

| Repr | Bytes | Kotlin |
|------|-------|--------|
| u8   | 1     | Byte   |
| u16  | 2     | Short  |
| u32  | 4     | Int    |
| u64  | 8     | Long   |
"""

INT_REPRS: list[str] = ["u8", "u16", "u32", "u64"]

BuiltinKind = Literal[
    "u8", "u16", "u32", "u64", "s8", "s16", "s32", "s64", "f32", "f64", "char"
]


# ============================================================
# TYPES
# ============================================================


@dataclass
class Type:
    """Base for all witx types. Abstract."""

    def kind(self) -> str:
        return type(self).__name__.lower()


@dataclass
class BuiltinType(Type):
    """Scalar builtin.

    `lang_c_char` marks `(@witx char8)` (a u8 meant as a C char) and
    `lang_ptr_size` marks `(@witx usize)` (a u32 meant as a pointer-sized int).
    """

    name: BuiltinKind
    lang_c_char: bool = False
    lang_ptr_size: bool = False


@dataclass
class RecordMember:
    name: str
    tref: TypeRef
    docs: str = ""


@dataclass
class Record(Type):
    """Ordered product of named members.

    `bitflags` is True for `(flags ...)`; `repr` holds an explicit
    `(@witx repr uN)` annotation when one was given.
    """

    members: list[RecordMember] = field(default_factory=list)
    bitflags: bool = False
    repr: IntRepr | None = None

    def is_tuple(self) -> bool:
        """Members named "0", "1", ... in order, as `(tuple ...)` produces."""
        if self.bitflags or len(self.members) == 0:
            return False
        i = 0
        while i < len(self.members):
            if self.members[i].name != str(i):
                return False
            i += 1
        return True

    def is_bitflags(self) -> bool:
        return self.bitflags


@dataclass
class Case:
    name: str
    tref: TypeRef | None = None
    docs: str = ""


@dataclass
class Variant(Type):
    """Tagged union. `tag_repr` holds an explicit `(@witx tag uN)` annotation."""

    cases: list[Case] = field(default_factory=list)
    tag_repr: IntRepr | None = None

    def is_enum_like(self) -> bool:
        """No case carries a payload."""
        return all(c.tref is None for c in self.cases)

    def is_bool(self) -> bool:
        return (
            len(self.cases) == 2
            and self.cases[0].name == "false"
            and self.cases[1].name == "true"
            and self.cases[0].tref is None
            and self.cases[1].tref is None
        )

    def as_expected(self) -> tuple[TypeRef | None, TypeRef | None] | None:
        """Return (ok, err) payloads when this is an `ok`/`err` result variant."""
        if len(self.cases) != 2:
            return None
        if self.cases[0].name != "ok" or self.cases[1].name != "err":
            return None
        return (self.cases[0].tref, self.cases[1].tref)


@dataclass
class Handle(Type):
    """Opaque integer handle (a file descriptor, for instance)."""


@dataclass
class List(Type):
    element: TypeRef

    def is_string(self) -> bool:
        elem = self.element.type_()
        return isinstance(elem, BuiltinType) and elem.name == "char"


@dataclass
class Pointer(Type):
    pointee: TypeRef


@dataclass
class ConstPointer(Type):
    pointee: TypeRef


# ============================================================
# TYPE REFERENCES
# ============================================================


@dataclass
class TypeRef:
    """Either a reference to a named type or an inline type. Abstract."""

    def type_(self) -> Type:
        raise NotImplementedError

    def name(self) -> str | None:
        return None


@dataclass
class NamedRef(TypeRef):
    named: NamedType

    def type_(self) -> Type:
        return self.named.type_()

    def name(self) -> str | None:
        return self.named.name


@dataclass
class ValueRef(TypeRef):
    value: Type

    def type_(self) -> Type:
        return self.value


@dataclass
class NamedType:
    """A `(typename $name ...)` declaration. Always acyclic."""

    name: str
    tref: TypeRef
    docs: str = ""

    def type_(self) -> Type:
        return self.tref.type_()


# ============================================================
# FUNCTIONS, MODULES, CONSTANTS
# ============================================================


@dataclass
class InterfaceFuncParam:
    name: str
    tref: TypeRef
    docs: str = ""


@dataclass
class InterfaceFunc:
    """An `(@interface func (export "name") ...)` declaration.

    Invariants:
    - len(results) <= 1
    - noreturn implies results == []
    """

    name: str
    params: list[InterfaceFuncParam] = field(default_factory=list)
    results: list[InterfaceFuncParam] = field(default_factory=list)
    noreturn: bool = False
    docs: str = ""


@dataclass
class Module:
    name: str
    funcs: list[InterfaceFunc] = field(default_factory=list)
    docs: str = ""

    def func(self, name: str) -> InterfaceFunc | None:
        for f in self.funcs:
            if f.name == name:
                return f
        return None


@dataclass
class Constant:
    """`(@witx const $ty $name value)`; `ty` names the owning type."""

    ty: str
    name: str
    value: int
    docs: str = ""


@dataclass
class Document:
    """Everything loaded from one or more witx files, in declaration order."""

    typenames: list[NamedType] = field(default_factory=list)
    modules: list[Module] = field(default_factory=list)
    constants: list[Constant] = field(default_factory=list)

    def typename(self, name: str) -> NamedType | None:
        for nt in self.typenames:
            if nt.name == name:
                return nt
        return None

    def module(self, name: str) -> Module | None:
        for m in self.modules:
            if m.name == name:
                return m
        return None


# ============================================================
# SAFETY
#
# A type is unsafe when it transitively contains a raw pointer. Unsafe
# declarations are emitted as internal, `__unsafe__`-prefixed bindings.
# ============================================================


def is_safe(item: Type | TypeRef | NamedType | InterfaceFuncParam | InterfaceFunc) -> bool:
    """Safety classification for types, references, params and functions."""
    if isinstance(item, InterfaceFunc):
        return all(is_safe(p) for p in item.params) and all(
            is_safe(r) for r in item.results
        )
    if isinstance(item, (InterfaceFuncParam, NamedType)):
        return is_safe(item.tref)
    if isinstance(item, TypeRef):
        return is_safe(item.type_())
    if isinstance(item, Record):
        return all(is_safe(m.tref) for m in item.members)
    if isinstance(item, Variant):
        return all(c.tref is None or is_safe(c.tref) for c in item.cases)
    if isinstance(item, List):
        return is_safe(item.element)
    if isinstance(item, (Pointer, ConstPointer)):
        return False
    return True
