"""Kotlin load/store code for values in linear memory.

`emit_load` renders an expression reading a value at `base + offset`;
`emit_store` renders the statements writing one. Both recurse through the
same shape classification so the two directions cannot disagree about how
a type is encoded.

Generated code relies on runtime primitives taking an `Int` address:
loadByte/loadShort/loadInt/loadLong/loadFloat/loadDouble and the matching
store functions.
"""

from __future__ import annotations

from witxgen.errors import UnsupportedShape
from witxgen.middleend.layout import flags_repr, layout, tag_repr
from witxgen.witx import (
    BuiltinType,
    ConstPointer,
    Handle,
    List,
    NamedRef,
    Pointer,
    Record,
    Type,
    TypeRef,
    Variant,
)
from .kotlin_types import (
    REPR_KOTLIN,
    builtin_type,
    case_class_name,
    declared_name,
    kotlin_ident,
)


def shape(ty: Type) -> str:
    """Encoding class of a type in memory."""
    if isinstance(ty, BuiltinType):
        return "builtin"
    if isinstance(ty, Handle):
        return "handle"
    if isinstance(ty, (Pointer, ConstPointer)):
        return "pointer"
    if isinstance(ty, Record):
        if ty.is_bitflags():
            return "bitflags"
        if ty.is_tuple():
            return "tuple"
        return "record"
    if isinstance(ty, Variant):
        if ty.is_bool():
            return "bool"
        if ty.is_enum_like():
            return "enum"
        return "variant"
    if isinstance(ty, List):
        return "list"
    raise UnsupportedShape("memory access for " + ty.kind())


def can_store(tref: TypeRef) -> bool:
    """False when `emit_store` would reject some part of the value."""
    ty = tref.type_()
    kind = shape(ty)
    if kind in ("tuple", "record"):
        assert isinstance(ty, Record)
        return all(can_store(m.tref) for m in ty.members)
    return kind not in ("variant", "list")


def address(base: str, offset: int) -> str:
    if offset == 0:
        return base
    return base + " + " + str(offset)


def _load_fn(kotlin: str) -> str:
    return "load" + kotlin


def _store_fn(kotlin: str) -> str:
    return "store" + kotlin


def load_int(repr_: str, addr: str) -> str:
    return _load_fn(REPR_KOTLIN[repr_]) + "(" + addr + ")"


def store_int(repr_: str, value: str, addr: str) -> str:
    return _store_fn(REPR_KOTLIN[repr_]) + "(" + addr + ", " + value + ")"


def load_tag(repr_: str, addr: str) -> str:
    """Tag value as a non-negative Kotlin Int."""
    raw = load_int(repr_, addr)
    if repr_ == "u8":
        return raw + ".toUByte().toInt()"
    if repr_ == "u16":
        return raw + ".toUShort().toInt()"
    if repr_ == "u64":
        return raw + ".toInt()"
    return raw


def _ordinal_as(repr_: str, value: str) -> str:
    kotlin = REPR_KOTLIN[repr_]
    if kotlin == "Int":
        return value + ".ordinal"
    return value + ".ordinal.to" + kotlin + "()"


def _type_name(tref: TypeRef, what: str) -> str:
    if not isinstance(tref, NamedRef):
        raise UnsupportedShape("memory access for an anonymous " + what)
    return declared_name(tref.named)


def emit_load(tref: TypeRef, base: str, offset: int = 0) -> str:
    """Expression reading a `tref` value stored at `base + offset`."""
    ty = tref.type_()
    kind = shape(ty)
    addr = address(base, offset)
    if kind == "builtin":
        assert isinstance(ty, BuiltinType)
        return _load_fn(builtin_type(ty)) + "(" + addr + ")"
    if kind == "handle":
        return load_int("u32", addr)
    if kind == "pointer":
        return "Pointer(" + load_int("u32", addr) + ".toUInt())"
    if kind == "bitflags":
        assert isinstance(ty, Record)
        return load_int(flags_repr(ty), addr)
    if kind == "tuple":
        assert isinstance(ty, Record)
        if len(ty.members) != 2:
            raise UnsupportedShape("tuple of " + str(len(ty.members)) + " elements")
        offsets = layout(ty).offsets
        first = emit_load(ty.members[0].tref, base, offset + offsets[0])
        second = emit_load(ty.members[1].tref, base, offset + offsets[1])
        return "Pair(" + first + ", " + second + ")"
    if kind == "record":
        assert isinstance(ty, Record)
        name = _type_name(tref, "record")
        offsets = layout(ty).offsets
        args = [
            emit_load(m.tref, base, offset + offsets[i])
            for i, m in enumerate(ty.members)
        ]
        return name + "(" + ", ".join(args) + ")"
    if kind == "bool":
        assert isinstance(ty, Variant)
        return "(" + load_tag(tag_repr(ty), addr) + " != 0)"
    if kind == "enum":
        assert isinstance(ty, Variant)
        name = _type_name(tref, "enum")
        return name + ".values()[" + load_tag(tag_repr(ty), addr) + "]"
    if kind == "variant":
        assert isinstance(ty, Variant)
        return _load_variant(tref, ty, base, offset)
    raise UnsupportedShape("loading a list nested inside a composite type")


def _load_variant(tref: TypeRef, variant: Variant, base: str, offset: int) -> str:
    name = _type_name(tref, "variant")
    vl = layout(variant)
    assert vl.tag is not None and vl.payload_offset is not None
    arms: list[str] = []
    for i, case in enumerate(variant.cases):
        ctor = name + "." + case_class_name(case)
        if case.tref is not None:
            payload = emit_load(case.tref, base, offset + vl.payload_offset)
            ctor = ctor + "(" + payload + ")"
        arms.append(str(i) + " -> " + ctor)
    arms.append('else -> error("invalid ' + name + ' tag")')
    return (
        "when (" + load_tag(vl.tag, address(base, offset)) + ") { "
        + "; ".join(arms) + " }"
    )


def emit_store(tref: TypeRef, value: str, base: str, offset: int = 0) -> list[str]:
    """Statements writing the `tref` value `value` at `base + offset`."""
    ty = tref.type_()
    kind = shape(ty)
    addr = address(base, offset)
    if kind == "builtin":
        assert isinstance(ty, BuiltinType)
        return [_store_fn(builtin_type(ty)) + "(" + addr + ", " + value + ")"]
    if kind == "handle":
        return [store_int("u32", value, addr)]
    if kind == "pointer":
        return [store_int("u32", value + ".address.toInt()", addr)]
    if kind == "bitflags":
        assert isinstance(ty, Record)
        return [store_int(flags_repr(ty), value, addr)]
    if kind == "tuple":
        assert isinstance(ty, Record)
        if len(ty.members) != 2:
            raise UnsupportedShape("tuple of " + str(len(ty.members)) + " elements")
        offsets = layout(ty).offsets
        out = emit_store(ty.members[0].tref, value + ".first", base, offset + offsets[0])
        out.extend(
            emit_store(ty.members[1].tref, value + ".second", base, offset + offsets[1])
        )
        return out
    if kind == "record":
        assert isinstance(ty, Record)
        offsets = layout(ty).offsets
        stmts: list[str] = []
        for i, member in enumerate(ty.members):
            member_value = value + "." + kotlin_ident(member.name)
            stmts.extend(emit_store(member.tref, member_value, base, offset + offsets[i]))
        return stmts
    if kind == "bool":
        assert isinstance(ty, Variant)
        repr_ = tag_repr(ty)
        flag = "(if (" + value + ") 1 else 0)"
        if REPR_KOTLIN[repr_] != "Int":
            flag = flag + ".to" + REPR_KOTLIN[repr_] + "()"
        return [store_int(repr_, flag, addr)]
    if kind == "enum":
        assert isinstance(ty, Variant)
        repr_ = tag_repr(ty)
        return [store_int(repr_, _ordinal_as(repr_, value), addr)]
    if kind == "variant":
        raise UnsupportedShape("storing a variant with payloads")
    raise UnsupportedShape("storing a list nested inside a composite type")

