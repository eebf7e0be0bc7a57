"""Kotlin rendering of the ABI instruction stream.

`KotlinBindgen` is the visitor the ABI `Generator` drives for one wrapper
function. Operands are Kotlin source fragments, not values: each names the
expression that will compute the value when the wrapper runs. Statements
accumulate in `src`; `push_block`/`finish_block` divert them into a nested
buffer so the ok and err arms of a result lift can be captured as single
expressions.

Instructions outside the wrapper-calls-import direction are rejected with
UnsupportedShape rather than approximated.
"""

from __future__ import annotations

from witxgen.errors import GenerationError, UnsupportedShape
from witxgen.middleend.abi import (
    AddrOf,
    CallInterface,
    CallWasm,
    Cast,
    EnumLift,
    EnumLower,
    GetArg,
    Instruction,
    ListFromPointerLength,
    ListPointerLength,
    Load,
    ResultLift,
    ResultLower,
    Return,
    ReturnPointerGet,
    ReuseReturn,
    Store,
    TupleLift,
    TupleLower,
    VariantPayload,
)
from witxgen.middleend.layout import flags_repr, size_of, tag_repr
from witxgen.witx import InterfaceFuncParam, List, Record, TypeRef, Variant
from .kotlin_memory import emit_load
from .kotlin_types import REPR_KOTLIN, declared_name, kotlin_ident
from .util import to_camel

ERROR_CLASS = "WasiError"

# Casts whose Kotlin source and target types are fixed: op -> (from, to)
_FIXED_CASTS: dict[str, tuple[str, str]] = {
    "I32FromU8": ("Byte", "Int"),
    "I32FromS8": ("Byte", "Int"),
    "I32FromChar8": ("Byte", "Int"),
    "I32FromU16": ("Short", "Int"),
    "I32FromS16": ("Short", "Int"),
    "I32FromU32": ("Int", "Int"),
    "I32FromS32": ("Int", "Int"),
    "I32FromUsize": ("Int", "Int"),
    "I64FromU64": ("Long", "Long"),
    "I64FromS64": ("Long", "Long"),
    "F32FromIf32": ("Float", "Float"),
    "F64FromIf64": ("Double", "Double"),
    "I32FromHandle": ("Int", "Int"),
    "U8FromI32": ("Int", "Byte"),
    "S8FromI32": ("Int", "Byte"),
    "Char8FromI32": ("Int", "Byte"),
    "U16FromI32": ("Int", "Short"),
    "S16FromI32": ("Int", "Short"),
    "U32FromI32": ("Int", "Int"),
    "S32FromI32": ("Int", "Int"),
    "UsizeFromI32": ("Int", "Int"),
    "U64FromI64": ("Long", "Long"),
    "S64FromI64": ("Long", "Long"),
    "If32FromF32": ("Float", "Float"),
    "If64FromF64": ("Double", "Double"),
    "HandleFromI32": ("Int", "Int"),
}

# Unsigned narrow values widen without sign extension
_ZERO_EXTEND: dict[str, str] = {
    "I32FromU8": ".toUByte().toInt()",
    "I32FromChar8": ".toUByte().toInt()",
    "I32FromU16": ".toUShort().toInt()",
}


def _postfix(expr: str) -> str:
    """Parenthesize expr if a postfix call could bind to part of it."""
    if " " in expr or "\n" in expr:
        return "(" + expr + ")"
    return expr


def _indent(lines: list[str]) -> list[str]:
    return [("    " + line) if line else line for line in lines]


class KotlinBindgen:
    """Renders one wrapper body from the instruction stream."""

    def __init__(self, params: list[InterfaceFuncParam], raw_name: str) -> None:
        self.src: list[str] = []
        self.params = params
        self.raw_name = raw_name
        self.block_storage: list[list[str]] = []
        self.blocks: list[str] = []
        self._ret: str | None = None
        self._taken: set[str] = {kotlin_ident(p.name) for p in params}

    def _fresh(self, base: str) -> str:
        name = base
        n = 0
        while name in self._taken:
            n += 1
            name = base + str(n)
        self._taken.add(name)
        return name

    # ── Bindgen protocol ─────────────────────────────────────

    def push_block(self) -> None:
        self.block_storage.append(self.src)
        self.src = []

    def finish_block(self, operand: object | None) -> None:
        body = self.src
        self.src = self.block_storage.pop()
        if operand is None:
            if body:
                raise GenerationError("block without a value emitted statements")
            self.blocks.append("Unit")
            return
        if not body:
            self.blocks.append(str(operand))
            return
        lines = ["run {"] + _indent(body) + _indent(str(operand).split("\n")) + ["}"]
        self.blocks.append("\n".join(lines))

    def allocate_space(self, n: int, ty: TypeRef) -> None:
        self.src.append(
            "val rp" + str(n) + " = allocator.allocate(" + str(size_of(ty))
            + ").address.toInt()"
        )
        self._taken.add("rp" + str(n))

    def emit(self, inst: Instruction, operands: list, results: list) -> None:
        if isinstance(inst, GetArg):
            results.append(kotlin_ident(self.params[inst.nth].name))
        elif isinstance(inst, Cast):
            results.append(self._emit_Cast(inst, operands.pop()))
        elif isinstance(inst, EnumLower):
            results.append(self._emit_EnumLower(inst, operands.pop()))
        elif isinstance(inst, EnumLift):
            results.append(self._emit_EnumLift(inst, operands.pop()))
        elif isinstance(inst, ListPointerLength):
            self._emit_ListPointerLength(inst, operands.pop(), results)
        elif isinstance(inst, ReturnPointerGet):
            results.append("rp" + str(inst.n))
        elif isinstance(inst, Load):
            results.append(emit_load(inst.ty, operands.pop()))
        elif isinstance(inst, ReuseReturn):
            if self._ret is None:
                raise GenerationError("ReuseReturn before CallWasm")
            results.append(self._ret)
        elif isinstance(inst, TupleLift):
            if len(operands) != 2:
                raise UnsupportedShape("lifting a tuple of " + str(len(operands)) + " values")
            results.append("Pair(" + ", ".join(operands) + ")")
        elif isinstance(inst, ResultLift):
            results.append(self._emit_ResultLift(operands.pop()))
        elif isinstance(inst, CallWasm):
            self._emit_CallWasm(inst, operands, results)
        elif isinstance(inst, Return):
            self._emit_Return(inst, operands)
        elif isinstance(
            inst,
            (
                AddrOf,
                Store,
                ListFromPointerLength,
                CallInterface,
                ResultLower,
                TupleLower,
                VariantPayload,
            ),
        ):
            raise UnsupportedShape(inst.name() + " is not supported")
        else:
            raise UnsupportedShape("unknown instruction " + inst.name())

    # ── instructions ─────────────────────────────────────────

    def _emit_Cast(self, inst: Cast, operand: str) -> str:
        op = inst.op
        if op in ("I32FromChar", "CharFromI32"):
            raise UnsupportedShape(op + " is not supported")
        if op in ("I32FromPointer", "I32FromConstPointer"):
            return _postfix(operand) + ".address.toInt()"
        if op in ("PointerFromI32", "ConstPointerFromI32"):
            return "Pointer(" + _postfix(operand) + ".toUInt())"
        if op in _ZERO_EXTEND:
            return _postfix(operand) + _ZERO_EXTEND[op]
        if op in _FIXED_CASTS:
            src, dst = _FIXED_CASTS[op]
        else:
            assert inst.ty is not None
            ty = inst.ty.type_()
            assert isinstance(ty, Record)
            flags = REPR_KOTLIN[flags_repr(ty)]
            if op == "I32FromBitflags":
                if flags == "Byte":
                    return _postfix(operand) + ".toUByte().toInt()"
                if flags == "Short":
                    return _postfix(operand) + ".toUShort().toInt()"
                src, dst = flags, "Int"
            elif op == "I64FromBitflags":
                src, dst = flags, "Long"
            elif op == "BitflagsFromI32":
                src, dst = "Int", flags
            else:
                src, dst = "Long", flags
        if src == dst:
            return operand
        return _postfix(operand) + ".to" + dst + "()"

    def _emit_EnumLower(self, inst: EnumLower, operand: str) -> str:
        ty = inst.ty.type_()
        assert isinstance(ty, Variant)
        if ty.is_bool():
            return "(if (" + operand + ") 1 else 0)"
        ordinal = _postfix(operand) + ".ordinal"
        if tag_repr(ty) == "u64":
            return ordinal + ".toLong()"
        return ordinal

    def _emit_EnumLift(self, inst: EnumLift, operand: str) -> str:
        ty = inst.ty.type_()
        assert isinstance(ty, Variant)
        if ty.is_bool():
            return "(" + operand + " != 0)"
        index = operand
        if tag_repr(ty) == "u64":
            index = _postfix(operand) + ".toInt()"
        return declared_name_of(inst.ty) + ".values()[" + index + "]"

    def _emit_ListPointerLength(self, inst: ListPointerLength, operand: str, results: list) -> None:
        ty = inst.ty.type_()
        assert isinstance(ty, List)
        if ty.is_string():
            base = operand if operand.isidentifier() else "string"
            data = self._fresh(to_camel(base) + "Bytes")
            self.src.append("val " + data + " = " + _postfix(operand) + ".encodeToByteArray()")
            results.append("allocator.writeToLinearMemory(" + data + ").address.toInt()")
            results.append(data + ".size")
            return
        results.append("allocator.writeToLinearMemory(" + operand + ").address.toInt()")
        results.append(_postfix(operand) + ".size")

    def _emit_ResultLift(self, discriminant: str) -> str:
        if len(self.blocks) < 2:
            raise GenerationError("ResultLift needs two finished blocks")
        err = self.blocks.pop()
        ok = self.blocks.pop()
        lines = ["if (" + discriminant + " == 0) {"]
        lines.extend(_indent(ok.split("\n")))
        lines.append("} else {")
        lines.extend(_indent(("throw " + ERROR_CLASS + "(" + err + ")").split("\n")))
        lines.append("}")
        return "\n".join(lines)

    def _emit_CallWasm(self, inst: CallWasm, operands: list, results: list) -> None:
        call = self.raw_name + "(" + ", ".join(operands) + ")"
        if len(inst.results) > 1:
            raise UnsupportedShape("raw call with more than one result")
        if len(inst.results) == 1:
            self._ret = self._fresh("ret")
            self.src.append("val " + self._ret + " = " + call)
            results.append(self._ret)
        else:
            self.src.append(call)

    def _emit_Return(self, inst: Return, operands: list) -> None:
        if inst.amt == 0:
            self.src.append("return")
        elif inst.amt == 1:
            self.src.extend(("return " + operands[0]).split("\n"))
        else:
            raise UnsupportedShape("returning " + str(inst.amt) + " values")


def declared_name_of(tref: TypeRef) -> str:
    """Kotlin name of the enum a tag lifts into."""
    named = getattr(tref, "named", None)
    if named is None:
        raise UnsupportedShape("lifting into an anonymous enum")
    return declared_name(named)
