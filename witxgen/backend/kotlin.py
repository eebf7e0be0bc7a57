"""KotlinBackend: witx Document -> Kotlin/Wasm WASI bindings.

The unit is emitted in a fixed order: header, named types (records followed
by their load/store helpers), each module's wrappers then its raw imports,
and finally constants. Unhandled shapes raise UnsupportedShape so gaps are
obvious.
"""

from __future__ import annotations

from typing import Literal

from witxgen.errors import GenerationError, NamingError, UnsupportedShape
from witxgen.middleend.abi import call_wasm, wasm_signature
from witxgen.middleend.layout import size_of
from witxgen.witx import (
    BuiltinType,
    Constant,
    Document,
    Handle,
    InterfaceFunc,
    Module,
    NamedRef,
    NamedType,
    Record,
    ValueRef,
    is_safe,
)
from .kotlin_bindgen import KotlinBindgen
from .kotlin_memory import can_store, emit_load, emit_store
from .kotlin_types import (
    UNSAFE_PREFIX,
    WASM_KOTLIN,
    declared_name,
    kotlin_ident,
    render_declaration,
    render_tref,
)
from .util import Emitter, is_snake, kdoc, to_pascal, to_screaming_snake, to_snake

Naming = Literal["flat", "prefixed"]

RAW_PREFIX = "_raw_wasm__"

HEADER = """\
// This file is automatically generated, DO NOT EDIT
//
// To regenerate this file run the `witxgen` command"""


class KotlinBackend(Emitter):
    """Emit Kotlin bindings from a witx Document."""

    def __init__(self, naming: Naming = "flat", package: str = "kotlinx.wasi") -> None:
        super().__init__()
        if naming not in ("flat", "prefixed"):
            raise GenerationError(f"unknown naming mode: {naming}")
        self.naming = naming
        self.package = package

    def emit(self, doc: Document) -> str:
        self.lines = []
        self.indent = 0
        self.block(HEADER)
        self.line(f"package {self.package}")
        self.line()
        self.line("import kotlin.wasm.unsafe.*")
        self.line("import kotlin.wasm.WasmImport")
        self.line()
        for nt in doc.typenames:
            self._emit_typename(nt)
        for module in doc.modules:
            self._emit_module(module)
        for const in doc.constants:
            self._emit_constant(doc, const)
        return self.output() + "\n"

    # ── names ────────────────────────────────────────────────

    def _base_name(self, module: Module, func: InterfaceFunc) -> str:
        if not is_snake(func.name):
            raise NamingError(f"function name {func.name!r} is not snake_case")
        if self.naming == "prefixed":
            return to_snake(module.name) + "_" + func.name
        return func.name

    def _wrapper_name(self, module: Module, func: InterfaceFunc) -> str:
        name = self._base_name(module, func)
        if not is_safe(func):
            return UNSAFE_PREFIX + name
        return kotlin_ident(name)

    def _raw_name(self, module: Module, func: InterfaceFunc) -> str:
        return RAW_PREFIX + self._base_name(module, func)

    # ── types ────────────────────────────────────────────────

    def _emit_typename(self, nt: NamedType) -> None:
        for text in render_declaration(nt):
            self.line(text)
        ty = nt.type_()
        if (
            isinstance(nt.tref, ValueRef)
            and isinstance(ty, Record)
            and not ty.is_bitflags()
            and not ty.is_tuple()
        ):
            self._emit_record_helpers(nt)
        self.line()

    def _emit_record_helpers(self, nt: NamedType) -> None:
        name = declared_name(nt)
        tref = NamedRef(nt)
        self.line()
        self.line(f"internal fun __load_{name}(ptr: Int): {name} {{")
        self.indent += 1
        self.block("return " + emit_load(tref, "ptr"))
        self.indent -= 1
        self.line("}")
        if not can_store(tref):
            return
        self.line()
        self.line(f"internal fun __store_{name}(x: {name}, ptr: Int) {{")
        self.indent += 1
        for stmt in emit_store(tref, "x", "ptr"):
            self.line(stmt)
        self.indent -= 1
        self.line("}")

    # ── modules ──────────────────────────────────────────────

    def _emit_module(self, module: Module) -> None:
        for func in module.funcs:
            self._emit_wrapper(module, func)
            self.line()
        for func in module.funcs:
            self._emit_raw_import(module, func)
            self.line()

    def _emit_wrapper(self, module: Module, func: InterfaceFunc) -> None:
        tags: list[tuple[str, str]] = []
        for p in func.params:
            if p.docs.strip():
                tags.append(("param", kotlin_ident(p.name) + " " + p.docs.strip()))
        for r in func.results:
            if r.docs.strip():
                tags.append(("return", r.docs.strip()))
        for text in kdoc(func.docs, tags):
            self.line(text)
        safe = is_safe(func)
        params = [f"{kotlin_ident(p.name)}: {render_tref(p.tref)}" for p in func.params]
        if not safe:
            params.insert(0, "allocator: MemoryAllocator")
        signature = f"fun {self._wrapper_name(module, func)}({', '.join(params)})"
        if not safe:
            signature = "internal " + signature
        if len(func.results) > 1:
            raise GenerationError(f"function {func.name} has more than one result")
        if func.results:
            signature += ": " + render_tref(func.results[0].tref)
        bindgen = KotlinBindgen(func.params, self._raw_name(module, func))
        call_wasm(module, func, bindgen)
        self.line(signature + " {")
        self.indent += 1
        if safe:
            opener = "withScopedMemoryAllocator { allocator ->"
            if func.results:
                opener = "return " + opener
            self.line(opener)
            self.indent += 1
        for stmt in bindgen.src:
            self.block(stmt)
        if safe:
            self.indent -= 1
            self.line("}")
        self.indent -= 1
        self.line("}")

    def _emit_raw_import(self, module: Module, func: InterfaceFunc) -> None:
        params, results = wasm_signature(func)
        args = ", ".join(f"arg{i}: {WASM_KOTLIN[p]}" for i, p in enumerate(params))
        self.line(f'@WasmImport("{module.name}", "{func.name}")')
        text = f"private external fun {self._raw_name(module, func)}({args})"
        if results:
            text += ": " + WASM_KOTLIN[results[0]]
        self.line(text)

    # ── constants ────────────────────────────────────────────

    def _emit_constant(self, doc: Document, const: Constant) -> None:
        owner = doc.typename(const.ty)
        ty_name = declared_name(owner) if owner is not None else to_pascal(const.ty)
        name = to_screaming_snake(const.ty) + "_" + to_screaming_snake(const.name)
        value = const.value
        if owner is not None:
            if not is_integral(owner.type_()):
                raise UnsupportedShape(
                    f"constant ${const.ty}.{const.name} has non-integer type ${const.ty}"
                )
            bits = size_of(NamedRef(owner)) * 8
            if not -(1 << (bits - 1)) <= value < 1 << bits:
                raise GenerationError(
                    f"constant ${const.ty}.{const.name} = {value} does not fit in {bits} bits"
                )
            value = to_signed(value, bits)
        for text in kdoc(const.docs):
            self.line(text)
        self.line(f"const val {name}: {ty_name} = {value}")


def is_integral(ty: object) -> bool:
    if isinstance(ty, BuiltinType):
        return ty.name not in ("f32", "f64", "char")
    if isinstance(ty, Handle):
        return True
    return isinstance(ty, Record) and ty.is_bitflags()


def to_signed(value: int, bits: int) -> int:
    """Reinterpret an unsigned constant in the signed Kotlin type of the same width."""
    value &= (1 << bits) - 1
    if value >= 1 << (bits - 1):
        return value - (1 << bits)
    return value


def emit_kotlin(doc: Document, naming: Naming = "flat", package: str = "kotlinx.wasi") -> str:
    """Render a whole Kotlin compilation unit for `doc`."""
    return KotlinBackend(naming, package).emit(doc)
