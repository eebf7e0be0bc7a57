"""Kotlin type rendering: type expressions and top-level type declarations.

| witx                  | Kotlin reference        | Kotlin declaration                  |
|-----------------------|-------------------------|-------------------------------------|
| u8 s8 char8           | Byte                    | typealias                           |
| u16 s16               | Short                   | typealias                           |
| u32 s32 usize         | Int                     | typealias                           |
| u64 s64               | Long                    | typealias                           |
| f32 f64               | Float Double            | typealias                           |
| string                | String                  | typealias                           |
| (list T)              | List<T>                 | typealias                           |
| (@witx pointer T)     | Pointer/*<T>*/          | internal typealias __unsafe__Name   |
| (handle)              | Name                    | typealias Name = Int                |
| (flags ...)           | Name                    | typealias + object of bit constants |
| (enum ...)            | Name                    | enum class                          |
| (variant ...)         | Name                    | sealed class                        |
| (record ...)          | Name                    | data class                          |
| (tuple A B)           | Pair<A, B>              | typealias                           |
| bool                  | Boolean                 | typealias                           |
| (expected T (error E))| T (E is thrown)         | not supported                       |
"""

from __future__ import annotations

from witxgen.errors import UnsupportedShape
from witxgen.middleend.layout import flags_repr
from witxgen.witx import (
    BuiltinType,
    Case,
    ConstPointer,
    Handle,
    List,
    NamedRef,
    NamedType,
    Pointer,
    Record,
    TypeRef,
    ValueRef,
    Variant,
    is_safe,
)
from .util import kdoc, to_pascal, to_screaming_snake

UNSAFE_PREFIX = "__unsafe__"

# Kotlin hard keywords; soft keywords are valid identifiers
KOTLIN_RESERVED = frozenset(
    {
        "as",
        "break",
        "class",
        "continue",
        "do",
        "else",
        "false",
        "for",
        "fun",
        "if",
        "in",
        "interface",
        "is",
        "null",
        "object",
        "package",
        "return",
        "super",
        "this",
        "throw",
        "true",
        "try",
        "typealias",
        "typeof",
        "val",
        "var",
        "when",
        "while",
    }
)

BUILTIN_KOTLIN: dict[str, str] = {
    "u8": "Byte",
    "s8": "Byte",
    "u16": "Short",
    "s16": "Short",
    "u32": "Int",
    "s32": "Int",
    "u64": "Long",
    "s64": "Long",
    "f32": "Float",
    "f64": "Double",
}

REPR_KOTLIN: dict[str, str] = {
    "u8": "Byte",
    "u16": "Short",
    "u32": "Int",
    "u64": "Long",
}

WASM_KOTLIN: dict[str, str] = {
    "i32": "Int",
    "i64": "Long",
    "f32": "Float",
    "f64": "Double",
}


def kotlin_ident(name: str) -> str:
    """Escape a witx identifier for use as a Kotlin identifier."""
    if name in KOTLIN_RESERVED:
        return "`" + name + "`"
    return name


def declared_name(nt: NamedType) -> str:
    """Kotlin name of a named type, prefixed when it is unsafe."""
    name = to_pascal(nt.name)
    if not is_safe(nt):
        return UNSAFE_PREFIX + name
    return name


def enum_case_name(name: str) -> str:
    """Enum constant name; digit-leading names get a `_` prefix."""
    shouty = to_screaming_snake(name)
    if shouty[:1].isdigit():
        return "_" + shouty
    return shouty


def case_class_name(case: Case) -> str:
    """Sealed subclass name for a variant case."""
    name = to_pascal(case.name)
    if name[:1].isdigit() or name == "":
        return "_" + case.name
    return name


def flags_object_name(nt: NamedType) -> str:
    return to_screaming_snake(nt.name)


def builtin_type(ty: BuiltinType) -> str:
    if ty.name == "char":
        raise UnsupportedShape("char values are not supported outside strings")
    return BUILTIN_KOTLIN[ty.name]


def render_tref(tref: TypeRef) -> str:
    """Kotlin type expression for a type reference."""
    if isinstance(tref, NamedRef):
        return declared_name(tref.named)
    assert isinstance(tref, ValueRef)
    ty = tref.value
    if isinstance(ty, BuiltinType):
        return builtin_type(ty)
    if isinstance(ty, List):
        if ty.is_string():
            return "String"
        return "List<" + render_tref(ty.element) + ">"
    if isinstance(ty, (Pointer, ConstPointer)):
        return "Pointer/*<" + render_tref(ty.pointee) + ">*/"
    if isinstance(ty, Handle):
        return "Int"
    if isinstance(ty, Variant):
        if ty.is_bool():
            return "Boolean"
        expected = ty.as_expected()
        if expected is None:
            raise UnsupportedShape("reference to an anonymous variant")
        ok = expected[0]
        return render_tref(ok) if ok is not None else "Unit"
    if isinstance(ty, Record) and ty.is_tuple():
        if len(ty.members) != 2:
            raise UnsupportedShape(
                "tuple of " + str(len(ty.members)) + " elements"
            )
        return (
            "Pair<" + render_tref(ty.members[0].tref) + ", "
            + render_tref(ty.members[1].tref) + ">"
        )
    raise UnsupportedShape("reference to an anonymous " + ty.kind())


def render_declaration(nt: NamedType) -> list[str]:
    """Declaration lines for a top-level named type (docs included)."""
    lines = kdoc(nt.docs)
    ty = nt.type_()
    if isinstance(nt.tref, ValueRef) and isinstance(ty, Record):
        if ty.is_bitflags():
            lines.extend(_render_flags(nt, ty))
        elif ty.is_tuple():
            lines.extend(_render_alias(nt, render_tref(nt.tref)))
        else:
            lines.extend(_render_record(nt, ty))
    elif isinstance(nt.tref, ValueRef) and isinstance(ty, Variant):
        lines.extend(_render_variant(nt, ty))
    elif isinstance(nt.tref, ValueRef) and isinstance(ty, Handle):
        lines.append("typealias " + declared_name(nt) + " = Int")
    else:
        lines.extend(_render_alias(nt, render_tref(nt.tref)))
    return lines


def _visibility(nt: NamedType) -> str:
    return "" if is_safe(nt) else "internal "


def _render_alias(nt: NamedType, target: str) -> list[str]:
    return [_visibility(nt) + "typealias " + declared_name(nt) + " = " + target]


def _render_flags(nt: NamedType, record: Record) -> list[str]:
    name = declared_name(nt)
    repr_ = flags_repr(record)
    kotlin = REPR_KOTLIN[repr_]
    lines = ["typealias " + name + " = " + kotlin]
    lines.append("object " + flags_object_name(nt) + " {")
    for i, member in enumerate(record.members):
        for doc_line in kdoc(member.docs):
            lines.append("    " + doc_line)
        if kotlin == "Long":
            value = "1L shl " + str(i)
        elif kotlin == "Int":
            value = "1 shl " + str(i)
        else:
            value = "(1 shl " + str(i) + ").to" + kotlin + "()"
        lines.append(
            "    const val " + to_screaming_snake(member.name) + ": " + name
            + " = " + value
        )
    lines.append("}")
    return lines


def _render_record(nt: NamedType, record: Record) -> list[str]:
    lines = [_visibility(nt) + "data class " + declared_name(nt) + "("]
    for member in record.members:
        for doc_line in kdoc(member.docs):
            lines.append("    " + doc_line)
        lines.append(
            "    var " + kotlin_ident(member.name) + ": " + render_tref(member.tref) + ","
        )
    lines.append(")")
    return lines


def _render_variant(nt: NamedType, variant: Variant) -> list[str]:
    name = declared_name(nt)
    if variant.is_bool():
        return ["typealias " + name + " = Boolean"]
    if variant.as_expected() is not None:
        raise UnsupportedShape("named result variant $" + nt.name)
    if variant.is_enum_like():
        lines = [_visibility(nt) + "enum class " + name + " {"]
        for case in variant.cases:
            for doc_line in kdoc(case.docs):
                lines.append("    " + doc_line)
            lines.append("    " + enum_case_name(case.name) + ",")
        lines.append("}")
        return lines
    lines = [_visibility(nt) + "sealed class " + name + " {"]
    for case in variant.cases:
        for doc_line in kdoc(case.docs):
            lines.append("    " + doc_line)
        if case.tref is None:
            lines.append("    object " + case_class_name(case) + " : " + name + "()")
        else:
            lines.append(
                "    data class " + case_class_name(case) + "(var value: "
                + render_tref(case.tref) + ") : " + name + "()"
            )
    lines.append("}")
    return lines
