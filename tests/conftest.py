"""Pytest configuration for witxgen test suite."""

import struct
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add project root to path for witxgen imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from witxgen.backend.kotlin_memory import emit_load, emit_store  # noqa: E402
from witxgen.backend.kotlin_types import declared_name, enum_case_name, kotlin_ident  # noqa: E402
from witxgen.witx import Document, Record, TypeRef, Variant  # noqa: E402

WITX_DIR = Path(__file__).parent / "witx"


def _wrap(value: int, bits: int) -> int:
    value &= (1 << bits) - 1
    if value >= 1 << (bits - 1):
        return value - (1 << bits)
    return value


class KNum:
    """A Kotlin integer value: Python int plus the conversions generated code calls."""

    def __init__(self, value: int, bits: int):
        self.value = _wrap(value, bits)
        self.bits = bits

    def toByte(self) -> "KNum":
        return KNum(self.value, 8)

    def toShort(self) -> "KNum":
        return KNum(self.value, 16)

    def toInt(self) -> "KNum":
        return KNum(self.value, 32)

    def toLong(self) -> "KNum":
        return KNum(self.value, 64)

    def toUByte(self) -> "KNum":
        return KNum(self.value & 0xFF, 32)

    def toUShort(self) -> "KNum":
        return KNum(self.value & 0xFFFF, 32)

    def __index__(self) -> int:
        return self.value

    def __int__(self) -> int:
        return self.value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, KNum):
            return self.value == other.value
        return self.value == other

    def __ne__(self, other: object) -> bool:
        return not self.__eq__(other)

    __hash__ = None

    def __repr__(self) -> str:
        return "KNum(" + str(self.value) + ", " + str(self.bits) + ")"


class KotlinEnum:
    """Stand-in for a generated `enum class`: ordered cases with ordinals."""

    def __init__(self, name: str, cases: list[str]):
        self.name = name
        self._cases = [
            SimpleNamespace(name=case, ordinal=KNum(i, 32)) for i, case in enumerate(cases)
        ]
        for case in self._cases:
            setattr(self, case.name, case)

    def values(self) -> list[SimpleNamespace]:
        return self._cases


class LinearMemory:
    """Little-endian byte buffer exposing the runtime load/store primitives."""

    def __init__(self, size: int = 256):
        self.data = bytearray(size)

    def _load(self, fmt: str, addr: int) -> int:
        return struct.unpack_from("<" + fmt, self.data, int(addr))[0]

    def _store(self, fmt: str, addr: int, bits: int, value: object) -> None:
        struct.pack_into("<" + fmt, self.data, int(addr), _wrap(int(value), bits))

    def primitives(self) -> dict[str, object]:
        return {
            "loadByte": lambda a: KNum(self._load("b", a), 8),
            "loadShort": lambda a: KNum(self._load("h", a), 16),
            "loadInt": lambda a: KNum(self._load("i", a), 32),
            "loadLong": lambda a: KNum(self._load("q", a), 64),
            "loadFloat": lambda a: self._load("f", a),
            "loadDouble": lambda a: self._load("d", a),
            "storeByte": lambda a, v: self._store("b", a, 8, v),
            "storeShort": lambda a, v: self._store("h", a, 16, v),
            "storeInt": lambda a, v: self._store("i", a, 32, v),
            "storeLong": lambda a, v: self._store("q", a, 64, v),
            "storeFloat": lambda a, v: struct.pack_into("<f", self.data, int(a), v),
            "storeDouble": lambda a, v: struct.pack_into("<d", self.data, int(a), v),
        }


class KotlinEval:
    """Evaluates generated load/store code against a simulated linear memory.

    Generated access code for records, bitflags, enums and scalars is also
    valid Python once the runtime primitives, record constructors and enum
    classes are bound in the namespace.
    """

    def __init__(self, doc: Document):
        self.memory = LinearMemory()
        self.ns: dict[str, object] = dict(self.memory.primitives())
        for nt in doc.typenames:
            ty = nt.type_()
            name = declared_name(nt)
            if isinstance(ty, Record) and not ty.is_bitflags() and not ty.is_tuple():
                self.ns[name] = _record_factory([kotlin_ident(m.name) for m in ty.members])
            elif isinstance(ty, Variant) and ty.is_enum_like() and not ty.is_bool():
                self.ns[name] = KotlinEnum(name, [enum_case_name(c.name) for c in ty.cases])

    def enum(self, name: str) -> KotlinEnum:
        return self.ns[name]

    def record(self, name: str, *args: object) -> SimpleNamespace:
        return self.ns[name](*args)

    def load(self, tref: TypeRef, ptr: int) -> object:
        return eval(emit_load(tref, "ptr"), dict(self.ns, ptr=ptr))

    def store(self, tref: TypeRef, value: object, ptr: int) -> None:
        env = dict(self.ns, ptr=ptr, x=value)
        for stmt in emit_store(tref, "x", "ptr"):
            eval(stmt, env)


def _record_factory(fields: list[str]):
    def make(*args: object) -> SimpleNamespace:
        assert len(args) == len(fields)
        return SimpleNamespace(**dict(zip(fields, args)))

    return make


@pytest.fixture
def kotlin_eval():
    """Build a KotlinEval for a loaded Document."""
    return KotlinEval


@pytest.fixture
def witx_dir() -> Path:
    return WITX_DIR
