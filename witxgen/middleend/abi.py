"""ABI instruction stream for calling a raw wasm import from a wrapper.

For each interface function the `Generator` lowers every parameter to core
wasm values, reserves return pointers for out-parameters, calls the raw
import, and lifts the result back. It does not render anything itself: it
drives a `Bindgen` visitor with one `emit` per instruction, moving operands
between its stack and the visitor. Operands are opaque to the generator.

Instructions carry fixed arities. The generator hands the visitor exactly
`operands_len()` operands and requires exactly `results_len()` results back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Protocol

from witxgen.errors import GenerationError, UnsupportedShape
from witxgen.middleend.layout import flags_repr, tag_repr
from witxgen.witx import (
    BuiltinType,
    ConstPointer,
    Handle,
    InterfaceFunc,
    List,
    Module,
    Pointer,
    Record,
    TypeRef,
    Variant,
)

WasmType = Literal["i32", "i64", "f32", "f64"]

CastOp = Literal[
    # lowering: interface value -> core wasm value
    "I32FromU8",
    "I32FromS8",
    "I32FromChar8",
    "I32FromU16",
    "I32FromS16",
    "I32FromU32",
    "I32FromS32",
    "I32FromUsize",
    "I32FromChar",
    "I64FromU64",
    "I64FromS64",
    "F32FromIf32",
    "F64FromIf64",
    "I32FromHandle",
    "I32FromPointer",
    "I32FromConstPointer",
    "I32FromBitflags",
    "I64FromBitflags",
    # lifting: core wasm value -> interface value
    "U8FromI32",
    "S8FromI32",
    "Char8FromI32",
    "U16FromI32",
    "S16FromI32",
    "U32FromI32",
    "S32FromI32",
    "UsizeFromI32",
    "CharFromI32",
    "U64FromI64",
    "S64FromI64",
    "If32FromF32",
    "If64FromF64",
    "HandleFromI32",
    "PointerFromI32",
    "ConstPointerFromI32",
    "BitflagsFromI32",
    "BitflagsFromI64",
]


# ============================================================
# INSTRUCTIONS
# ============================================================


@dataclass
class Instruction:
    """Base for all ABI instructions. Abstract."""

    def operands_len(self) -> int:
        return 0

    def results_len(self) -> int:
        return 0

    def name(self) -> str:
        return type(self).__name__


@dataclass
class GetArg(Instruction):
    """Push the nth declared parameter."""

    nth: int

    def results_len(self) -> int:
        return 1


@dataclass
class AddrOf(Instruction):
    """Take the address of a composite passed by pointer."""

    def operands_len(self) -> int:
        return 1

    def results_len(self) -> int:
        return 1


@dataclass
class Cast(Instruction):
    """Scalar conversion between an interface type and its core wasm carrier.

    `ty` is set for handle, pointer and bitflags conversions.
    """

    op: CastOp
    ty: TypeRef | None = None

    def operands_len(self) -> int:
        return 1

    def results_len(self) -> int:
        return 1

    def name(self) -> str:
        return self.op


@dataclass
class EnumLower(Instruction):
    """Enum value -> ordinal."""

    ty: TypeRef

    def operands_len(self) -> int:
        return 1

    def results_len(self) -> int:
        return 1


@dataclass
class EnumLift(Instruction):
    """Ordinal -> enum value."""

    ty: TypeRef

    def operands_len(self) -> int:
        return 1

    def results_len(self) -> int:
        return 1


@dataclass
class ListPointerLength(Instruction):
    """List -> (pointer, length) of a copy in linear memory."""

    ty: TypeRef

    def operands_len(self) -> int:
        return 1

    def results_len(self) -> int:
        return 2


@dataclass
class ListFromPointerLength(Instruction):
    ty: TypeRef

    def operands_len(self) -> int:
        return 2

    def results_len(self) -> int:
        return 1


@dataclass
class ReturnPointerGet(Instruction):
    """Push the nth return pointer reserved with `allocate_space`."""

    n: int

    def results_len(self) -> int:
        return 1


@dataclass
class Load(Instruction):
    """Read a typed value from the address operand."""

    ty: TypeRef

    def operands_len(self) -> int:
        return 1

    def results_len(self) -> int:
        return 1


@dataclass
class Store(Instruction):
    ty: TypeRef

    def operands_len(self) -> int:
        return 2


@dataclass
class TupleLower(Instruction):
    amt: int

    def operands_len(self) -> int:
        return 1

    def results_len(self) -> int:
        return self.amt


@dataclass
class TupleLift(Instruction):
    amt: int

    def operands_len(self) -> int:
        return self.amt

    def results_len(self) -> int:
        return 1


@dataclass
class ResultLower(Instruction):
    ok: TypeRef | None
    err: TypeRef | None

    def operands_len(self) -> int:
        return 1

    def results_len(self) -> int:
        return 1


@dataclass
class ResultLift(Instruction):
    """Discriminant + two finished blocks (ok, then err) -> value or raise."""

    def operands_len(self) -> int:
        return 1

    def results_len(self) -> int:
        return 1


@dataclass
class VariantPayload(Instruction):
    def results_len(self) -> int:
        return 1


@dataclass
class ReuseReturn(Instruction):
    """Push the raw call's return value again."""

    def results_len(self) -> int:
        return 1


@dataclass
class CallWasm(Instruction):
    module: str
    func: str
    params: list[str] = field(default_factory=list)
    results: list[str] = field(default_factory=list)

    def operands_len(self) -> int:
        return len(self.params)

    def results_len(self) -> int:
        return len(self.results)


@dataclass
class CallInterface(Instruction):
    module: str
    func: InterfaceFunc

    def operands_len(self) -> int:
        return len(self.func.params)

    def results_len(self) -> int:
        return len(self.func.results)


@dataclass
class Return(Instruction):
    amt: int

    def operands_len(self) -> int:
        return self.amt


# ============================================================
# VISITOR
# ============================================================


class Bindgen(Protocol):
    """Visitor driven by the Generator, once per instruction."""

    def push_block(self) -> None: ...

    def finish_block(self, operand: object | None) -> None: ...

    def allocate_space(self, n: int, ty: TypeRef) -> None: ...

    def emit(
        self, inst: Instruction, operands: list[object], results: list[object]
    ) -> None: ...


# ============================================================
# WASM SIGNATURE
# ============================================================


def _flat_param(tref: TypeRef) -> list[str]:
    ty = tref.type_()
    if isinstance(ty, BuiltinType):
        if ty.name in ("u64", "s64"):
            return ["i64"]
        if ty.name == "f32":
            return ["f32"]
        if ty.name == "f64":
            return ["f64"]
        return ["i32"]
    if isinstance(ty, List):
        return ["i32", "i32"]
    if isinstance(ty, Record) and ty.is_bitflags():
        return ["i64"] if flags_repr(ty) == "u64" else ["i32"]
    if isinstance(ty, Variant) and ty.is_enum_like():
        return ["i64"] if tag_repr(ty) == "u64" else ["i32"]
    # handles, pointers, and composites passed by address
    return ["i32"]


def _ok_values(ok: TypeRef) -> list[TypeRef]:
    """Success payloads written through return pointers, one per tuple member."""
    ty = ok.type_()
    if isinstance(ty, Record) and ty.is_tuple():
        return [m.tref for m in ty.members]
    return [ok]


def wasm_signature(func: InterfaceFunc) -> tuple[list[str], list[str]]:
    """Flattened core wasm (params, results) of the raw import."""
    if len(func.results) > 1:
        raise UnsupportedShape("function " + func.name + " returns more than one value")
    params: list[str] = []
    for p in func.params:
        params.extend(_flat_param(p.tref))
    results: list[str] = []
    if len(func.results) == 0:
        return (params, results)
    tref = func.results[0].tref
    ty = tref.type_()
    if isinstance(ty, Variant) and ty.as_expected() is not None:
        ok, err = ty.as_expected()
        if err is None:
            raise UnsupportedShape("result of " + func.name + " has no error type")
        if ok is not None:
            params.extend("i32" for _ in _ok_values(ok))
        err_flat = _flat_param(err)
        if len(err_flat) != 1 or not _is_scalar(err):
            raise UnsupportedShape("error type of " + func.name + " is not a scalar")
        results.extend(err_flat)
        return (params, results)
    if not _is_scalar(tref):
        raise UnsupportedShape(
            "result of " + func.name + " is a " + ty.kind() + ", not a scalar"
        )
    results.extend(_flat_param(tref))
    return (params, results)


def _is_scalar(tref: TypeRef) -> bool:
    ty = tref.type_()
    if isinstance(ty, (BuiltinType, Handle, Pointer, ConstPointer)):
        return True
    if isinstance(ty, Record):
        return ty.is_bitflags()
    if isinstance(ty, Variant):
        return ty.is_enum_like()
    return False


# ============================================================
# GENERATOR
# ============================================================

_LOWER_BUILTIN: dict[str, str] = {
    "u8": "I32FromU8",
    "s8": "I32FromS8",
    "u16": "I32FromU16",
    "s16": "I32FromS16",
    "u32": "I32FromU32",
    "s32": "I32FromS32",
    "u64": "I64FromU64",
    "s64": "I64FromS64",
    "f32": "F32FromIf32",
    "f64": "F64FromIf64",
    "char": "I32FromChar",
}

_LIFT_BUILTIN: dict[str, str] = {
    "u8": "U8FromI32",
    "s8": "S8FromI32",
    "u16": "U16FromI32",
    "s16": "S16FromI32",
    "u32": "U32FromI32",
    "s32": "S32FromI32",
    "u64": "U64FromI64",
    "s64": "S64FromI64",
    "f32": "If32FromF32",
    "f64": "If64FromF64",
    "char": "CharFromI32",
}


class Generator:
    """Produces the instruction stream of one function into a Bindgen."""

    def __init__(self, bindgen: Bindgen) -> None:
        self.bindgen = bindgen
        self.stack: list[object] = []

    def emit(self, inst: Instruction) -> None:
        n = inst.operands_len()
        if len(self.stack) < n:
            raise GenerationError(
                inst.name() + " needs " + str(n) + " operands, stack has "
                + str(len(self.stack))
            )
        operands = self.stack[len(self.stack) - n :]
        del self.stack[len(self.stack) - n :]
        results: list[object] = []
        self.bindgen.emit(inst, operands, results)
        if len(results) != inst.results_len():
            raise GenerationError(
                inst.name() + " expected " + str(inst.results_len())
                + " results, got " + str(len(results))
            )
        self.stack.extend(results)

    def call_wasm(self, module: Module, func: InterfaceFunc) -> None:
        params, results = wasm_signature(func)
        for nth, param in enumerate(func.params):
            self.emit(GetArg(nth))
            self.lower(param.tref)
        if len(func.results) > 0:
            self.prep_return_pointers(func.results[0].tref)
        self.emit(CallWasm(module.name, func.name, params, results))
        if len(func.results) > 0:
            self.lift(func.results[0].tref, True)
        self.emit(Return(len(func.results)))
        if len(self.stack) != 0:
            raise GenerationError(
                str(len(self.stack)) + " operands left after " + func.name
            )

    def prep_return_pointers(self, tref: TypeRef) -> None:
        ty = tref.type_()
        if not isinstance(ty, Variant):
            return
        expected = ty.as_expected()
        if expected is None or expected[0] is None:
            return
        for n, value in enumerate(_ok_values(expected[0])):
            self.bindgen.allocate_space(n, value)
            self.emit(ReturnPointerGet(n))

    def lower(self, tref: TypeRef) -> None:
        ty = tref.type_()
        if isinstance(ty, BuiltinType):
            if ty.lang_c_char:
                self.emit(Cast("I32FromChar8"))
            elif ty.lang_ptr_size:
                self.emit(Cast("I32FromUsize"))
            else:
                self.emit(Cast(_LOWER_BUILTIN[ty.name]))
        elif isinstance(ty, Handle):
            self.emit(Cast("I32FromHandle", tref))
        elif isinstance(ty, Pointer):
            self.emit(Cast("I32FromPointer", tref))
        elif isinstance(ty, ConstPointer):
            self.emit(Cast("I32FromConstPointer", tref))
        elif isinstance(ty, Record):
            if ty.is_bitflags():
                if flags_repr(ty) == "u64":
                    self.emit(Cast("I64FromBitflags", tref))
                else:
                    self.emit(Cast("I32FromBitflags", tref))
            else:
                self.emit(AddrOf())
        elif isinstance(ty, Variant):
            expected = ty.as_expected()
            if ty.is_enum_like():
                self.emit(EnumLower(tref))
            elif expected is not None:
                self.emit(ResultLower(expected[0], expected[1]))
            else:
                self.emit(AddrOf())
        elif isinstance(ty, List):
            self.emit(ListPointerLength(tref))
        else:
            raise UnsupportedShape("lowering " + ty.kind())

    def lift(self, tref: TypeRef, is_return: bool) -> None:
        ty = tref.type_()
        if isinstance(ty, BuiltinType):
            if ty.lang_c_char:
                self.emit(Cast("Char8FromI32"))
            elif ty.lang_ptr_size:
                self.emit(Cast("UsizeFromI32"))
            else:
                self.emit(Cast(_LIFT_BUILTIN[ty.name]))
        elif isinstance(ty, Handle):
            self.emit(Cast("HandleFromI32", tref))
        elif isinstance(ty, Pointer):
            self.emit(Cast("PointerFromI32", tref))
        elif isinstance(ty, ConstPointer):
            self.emit(Cast("ConstPointerFromI32", tref))
        elif isinstance(ty, Record):
            if not ty.is_bitflags():
                raise UnsupportedShape("lifting a record that is not bitflags")
            if flags_repr(ty) == "u64":
                self.emit(Cast("BitflagsFromI64", tref))
            else:
                self.emit(Cast("BitflagsFromI32", tref))
        elif isinstance(ty, Variant):
            expected = ty.as_expected()
            if ty.is_enum_like():
                self.emit(EnumLift(tref))
            elif expected is not None and is_return:
                self._lift_result(expected[0], expected[1])
            else:
                raise UnsupportedShape("lifting a variant with payloads")
        else:
            raise UnsupportedShape("lifting " + ty.kind())

    def _lift_result(self, ok: TypeRef | None, err: TypeRef | None) -> None:
        self.bindgen.push_block()
        if ok is not None:
            values = _ok_values(ok)
            for n, value in enumerate(values):
                self.emit(ReturnPointerGet(n))
                self.emit(Load(value))
            ok_ty = ok.type_()
            if isinstance(ok_ty, Record) and ok_ty.is_tuple():
                self.emit(TupleLift(len(values)))
        self._finish_block(ok is not None)
        self.bindgen.push_block()
        if err is not None:
            self.emit(ReuseReturn())
            self.lift(err, False)
        self._finish_block(err is not None)
        self.emit(ResultLift())

    def _finish_block(self, has_value: bool) -> None:
        operand = self.stack.pop() if has_value else None
        self.bindgen.finish_block(operand)


def call_wasm(module: Module, func: InterfaceFunc, bindgen: Bindgen) -> None:
    """Drive `bindgen` through the wrapper-side instruction stream of `func`."""
    Generator(bindgen).call_wasm(module, func)


# ============================================================
# LISTING
# ============================================================


def format_instruction(inst: Instruction) -> str:
    """One-line rendering of an instruction for `--stop-at abi` dumps."""
    if isinstance(inst, GetArg):
        return "GetArg " + str(inst.nth)
    if isinstance(inst, ReturnPointerGet):
        return "ReturnPointerGet " + str(inst.n)
    if isinstance(inst, (TupleLift, TupleLower)):
        return inst.name() + " " + str(inst.amt)
    if isinstance(inst, Return):
        return "Return " + str(inst.amt)
    if isinstance(inst, CallWasm):
        return (
            "CallWasm " + inst.module + "." + inst.func
            + " (" + ", ".join(inst.params) + ") -> (" + ", ".join(inst.results) + ")"
        )
    ty = getattr(inst, "ty", None)
    if isinstance(ty, TypeRef):
        name = ty.name()
        return inst.name() + " " + ("$" + name if name is not None else ty.type_().kind())
    return inst.name()


class ListingBindgen:
    """Bindgen that records the instruction stream as text lines."""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self._depth = 0
        self._next = 0

    def push_block(self) -> None:
        self.lines.append("  " * self._depth + "block {")
        self._depth += 1

    def finish_block(self, operand: object | None) -> None:
        self._depth -= 1
        tail = " -> " + str(operand) if operand is not None else ""
        self.lines.append("  " * self._depth + "}" + tail)

    def allocate_space(self, n: int, ty: TypeRef) -> None:
        self.lines.append("  " * self._depth + "AllocateSpace " + str(n))

    def emit(self, inst: Instruction, operands: list[object], results: list[object]) -> None:
        for _ in range(inst.results_len()):
            results.append("v" + str(self._next))
            self._next += 1
        text = format_instruction(inst)
        if operands:
            text += " [" + ", ".join(str(o) for o in operands) + "]"
        if results:
            text += " => " + ", ".join(str(r) for r in results)
        self.lines.append("  " * self._depth + text)
