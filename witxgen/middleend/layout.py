"""Memory layout: size, alignment, member offsets, tags.

Models a 32-bit linear memory. Pointers, handles and usize occupy four
bytes. Records are laid out in declaration order with natural alignment;
variants are a tag followed by a single payload slot shared by all cases.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from witxgen.errors import UnsupportedShape
from witxgen.witx import (
    INT_REPRS,
    BuiltinType,
    ConstPointer,
    Handle,
    List,
    Pointer,
    Record,
    Type,
    TypeRef,
    Variant,
)

_REPR_SIZE: dict[str, int] = {"u8": 1, "u16": 2, "u32": 4, "u64": 8}

_BUILTIN_SIZE: dict[str, int] = {
    "u8": 1,
    "s8": 1,
    "u16": 2,
    "s16": 2,
    "u32": 4,
    "s32": 4,
    "char": 4,
    "f32": 4,
    "u64": 8,
    "s64": 8,
    "f64": 8,
}

POINTER_SIZE = 4


@dataclass
class Layout:
    """Computed layout of one type.

    Invariants:
    - align is a power of two and size % align == 0
    - offsets[i] % align_of(member i) == 0 for records
    - payload_offset is set only for variants
    """

    size: int
    align: int
    offsets: list[int] = field(default_factory=list)
    tag: str | None = None
    payload_offset: int | None = None


def align_to(n: int, align: int) -> int:
    return (n + align - 1) // align * align


def smallest_repr(bits: int) -> str:
    """Smallest integer repr with at least `bits` bits."""
    for repr_ in INT_REPRS:
        if _REPR_SIZE[repr_] * 8 >= bits:
            return repr_
    raise UnsupportedShape("no integer representation holds " + str(bits) + " bits")


def flags_repr(record: Record) -> str:
    """Backing integer of a bitflags record: one bit per member."""
    needed = smallest_repr(max(len(record.members), 1))
    if record.repr is None:
        return needed
    if _REPR_SIZE[record.repr] < _REPR_SIZE[needed]:
        raise UnsupportedShape(
            "flags repr " + record.repr + " cannot hold "
            + str(len(record.members)) + " flags"
        )
    return record.repr


def tag_repr(variant: Variant) -> str:
    """Tag integer of a variant: wide enough to number every case."""
    n = len(variant.cases)
    needed = "u8"
    if n > 1 << 16:
        needed = "u32"
    elif n > 1 << 8:
        needed = "u16"
    if variant.tag_repr is None:
        return needed
    if _REPR_SIZE[variant.tag_repr] < _REPR_SIZE[needed]:
        raise UnsupportedShape(
            "tag repr " + variant.tag_repr + " cannot number "
            + str(n) + " cases"
        )
    return variant.tag_repr


def layout_ref(tref: TypeRef) -> Layout:
    return layout(tref.type_())


def size_of(tref: TypeRef) -> int:
    return layout_ref(tref).size


def layout(ty: Type) -> Layout:
    """Compute size, alignment and offsets for a type."""
    if isinstance(ty, BuiltinType):
        size = _BUILTIN_SIZE[ty.name]
        return Layout(size, size)
    if isinstance(ty, (Handle, Pointer, ConstPointer)):
        return Layout(POINTER_SIZE, POINTER_SIZE)
    if isinstance(ty, Record):
        if ty.is_bitflags():
            size = _REPR_SIZE[flags_repr(ty)]
            return Layout(size, size)
        return _record_layout(ty)
    if isinstance(ty, Variant):
        return _variant_layout(ty)
    if isinstance(ty, List):
        raise UnsupportedShape("layout of a list nested inside a composite type")
    raise UnsupportedShape("layout of " + ty.kind())


def _record_layout(record: Record) -> Layout:
    offsets: list[int] = []
    offset = 0
    align = 1
    for member in record.members:
        ml = layout_ref(member.tref)
        offset = align_to(offset, ml.align)
        offsets.append(offset)
        offset += ml.size
        align = max(align, ml.align)
    return Layout(align_to(offset, align), align, offsets)


def _variant_layout(variant: Variant) -> Layout:
    tag = tag_repr(variant)
    tag_size = _REPR_SIZE[tag]
    payload_align = 1
    payload_size = 0
    for case in variant.cases:
        if case.tref is None:
            continue
        cl = layout_ref(case.tref)
        payload_align = max(payload_align, cl.align)
        payload_size = max(payload_size, cl.size)
    payload_offset = align_to(tag_size, payload_align)
    align = max(tag_size, payload_align)
    size = align_to(payload_offset + payload_size, align)
    return Layout(size, align, [], tag, payload_offset)
