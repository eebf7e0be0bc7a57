"""KotlinBindgen: instruction stream to Kotlin statements."""

import pytest

from witxgen.backend.kotlin_bindgen import KotlinBindgen
from witxgen.errors import GenerationError, UnsupportedShape
from witxgen.frontend import load_str
from witxgen.middleend.abi import (
    AddrOf,
    Cast,
    CallWasm,
    ResultLift,
    Store,
    TupleLift,
    call_wasm,
)
from witxgen.witx import BuiltinType, ValueRef

TYPES = """
(typename $errno (enum (@witx tag u16) $success $badf))
(typename $fd (handle))
(typename $size u32)
(typename $flags16 (flags (@witx repr u16) $a $b))
(typename $flags8 (flags $lo $hi))
(typename $point (record (field $x u32) (field $y u32)))
"""


def _body(func_src: str, raw: str = "_raw_wasm__f") -> list[str]:
    doc = load_str(TYPES + "(module $m " + func_src + ")")
    module = doc.modules[0]
    func = module.funcs[0]
    bindgen = KotlinBindgen(func.params, raw)
    call_wasm(module, func, bindgen)
    return bindgen.src


def _bare() -> KotlinBindgen:
    return KotlinBindgen([], "_raw_wasm__f")


def test_result_lift_both_arms():
    src = _body(
        '(@interface func (export "f") (param $fd $fd) (result $e (expected $size (error $errno))))'
    )
    assert src == [
        "val rp0 = allocator.allocate(4).address.toInt()",
        "val ret = _raw_wasm__f(fd, rp0)",
        "return if (ret == 0) {",
        "    loadInt(rp0)",
        "} else {",
        "    throw WasiError(Errno.values()[ret])",
        "}",
    ]


def test_result_without_ok_is_unit():
    src = _body('(@interface func (export "f") (result $e (expected (error $errno))))')
    assert src == [
        "val ret = _raw_wasm__f()",
        "return if (ret == 0) {",
        "    Unit",
        "} else {",
        "    throw WasiError(Errno.values()[ret])",
        "}",
    ]


def test_tuple_ok_is_pair():
    src = _body(
        '(@interface func (export "f") (result $e (expected (tuple $size $size) (error $errno))))'
    )
    assert src[:3] == [
        "val rp0 = allocator.allocate(4).address.toInt()",
        "val rp1 = allocator.allocate(4).address.toInt()",
        "val ret = _raw_wasm__f(rp0, rp1)",
    ]
    assert "    Pair(loadInt(rp0), loadInt(rp1))" in src


def test_string_param_encodes_once():
    src = _body('(@interface func (export "f") (param $path string))')
    assert src == [
        "val pathBytes = path.encodeToByteArray()",
        "_raw_wasm__f(allocator.writeToLinearMemory(pathBytes).address.toInt(), pathBytes.size)",
        "return",
    ]


def test_byte_list_param():
    src = _body('(@interface func (export "f") (param $buf (list u8)) (result $n $size))')
    assert src == [
        "val ret = _raw_wasm__f(allocator.writeToLinearMemory(buf).address.toInt(), buf.size)",
        "return ret",
    ]


def test_scalar_casts():
    src = _body(
        '(@interface func (export "f") (param $a u8) (param $b u16) (param $c s8)'
        " (param $d $flags16) (param $e u64) (param $p (@witx pointer u8)))"
    )
    assert src[0] == (
        "_raw_wasm__f(a.toUByte().toInt(), b.toUShort().toInt(), c.toInt(),"
        " d.toUShort().toInt(), e, p.address.toInt())"
    )


def test_bool_round_trip():
    src = _body('(@interface func (export "f") (param $on bool) (result $r bool))')
    assert src == [
        "val ret = _raw_wasm__f((if (on) 1 else 0))",
        "return (ret != 0)",
    ]


def test_enum_param_and_result():
    src = _body('(@interface func (export "f") (param $e $errno) (result $r $errno))')
    assert src == [
        "val ret = _raw_wasm__f(e.ordinal)",
        "return Errno.values()[ret]",
    ]


def test_narrow_results_cast_down():
    src = _body('(@interface func (export "f") (result $r u16))')
    assert src[-1] == "return ret.toShort()"


def test_fresh_names_avoid_params():
    src = _body('(@interface func (export "f") (param $ret u32) (result $r u32))')
    assert src == [
        "val ret1 = _raw_wasm__f(ret)",
        "return ret1",
    ]


def test_blocks_pop_err_then_ok():
    bg = _bare()
    bg.push_block()
    bg.finish_block("okValue")
    bg.push_block()
    bg.finish_block("errValue")
    results = []
    bg.emit(ResultLift(), ["r"], results)
    assert results[0].split("\n") == [
        "if (r == 0) {",
        "    okValue",
        "} else {",
        "    throw WasiError(errValue)",
        "}",
    ]


def test_block_with_statements_becomes_run():
    bg = _bare()
    bg.push_block()
    bg.src.append("val tmp = 1")
    bg.finish_block("tmp")
    assert bg.blocks == ["run {\n    val tmp = 1\n    tmp\n}"]
    assert bg.src == []


def test_empty_block_without_value_is_unit():
    bg = _bare()
    bg.push_block()
    bg.finish_block(None)
    assert bg.blocks == ["Unit"]


def test_block_without_value_rejects_statements():
    bg = _bare()
    bg.push_block()
    bg.src.append("sideEffect()")
    with pytest.raises(GenerationError):
        bg.finish_block(None)


def test_result_lift_needs_two_blocks():
    bg = _bare()
    with pytest.raises(GenerationError):
        bg.emit(ResultLift(), ["r"], [])


def test_cast_identity_and_narrowing():
    bg = _bare()
    results = []
    bg.emit(Cast("I32FromU32"), ["x"], results)
    bg.emit(Cast("U8FromI32"), ["y"], results)
    bg.emit(Cast("S16FromI32"), ["a + b"], results)
    assert results == ["x", "y.toByte()", "(a + b).toShort()"]


@pytest.mark.parametrize(
    "inst,operands",
    [
        (AddrOf(), ["x"]),
        (Store(ValueRef(BuiltinType("u32"))), ["x", "p"]),
        (Cast("I32FromChar"), ["c"]),
        (TupleLift(3), ["a", "b", "c"]),
        (CallWasm("m", "f", [], ["i32", "i32"]), []),
    ],
)
def test_unsupported_instructions(inst, operands):
    with pytest.raises(UnsupportedShape):
        _bare().emit(inst, operands, [])


def test_record_param_is_unsupported():
    with pytest.raises(UnsupportedShape):
        _body('(@interface func (export "f") (param $p $point))')


def test_string_buffer_name_avoids_params():
    src = _body('(@interface func (export "f") (param $file_path string) (param $filePathBytes u32))')
    assert src[0] == "val filePathBytes1 = file_path.encodeToByteArray()"


def test_narrow_flags_widen_without_sign_extension():
    src = _body('(@interface func (export "f") (param $small $flags8) (result $r $flags8))')
    assert src == [
        "val ret = _raw_wasm__f(small.toUByte().toInt())",
        "return ret.toByte()",
    ]
