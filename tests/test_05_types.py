"""Kotlin type references and top-level declarations."""

import pytest

from witxgen.backend.kotlin_types import (
    declared_name,
    enum_case_name,
    kotlin_ident,
    render_declaration,
    render_tref,
)
from witxgen.errors import UnsupportedShape
from witxgen.frontend import load_str


def _decl(source: str, name: str) -> list[str]:
    doc = load_str(source)
    return render_declaration(doc.typename(name))


def _tref(source: str, name: str) -> str:
    doc = load_str(source)
    return render_tref(doc.typename(name).tref)


def test_builtin_aliases():
    assert _decl("(typename $size u32)", "size") == ["typealias Size = Int"]
    assert _decl("(typename $ts u64)", "ts") == ["typealias Ts = Long"]
    assert _decl("(typename $c (@witx char8))", "c") == ["typealias C = Byte"]
    assert _decl("(typename $n (@witx usize))", "n") == ["typealias N = Int"]


@pytest.mark.parametrize(
    "source,expected",
    [
        ("string", "String"),
        ("bool", "Boolean"),
        ("(list u16)", "List<Short>"),
        ("(tuple u8 f64)", "Pair<Byte, Double>"),
        ("(handle)", "Int"),
        ("(@witx const_pointer u8)", "Pointer/*<Byte>*/"),
        ("(expected u64 (error u16))", "Long"),
        ("(expected (error u16))", "Unit"),
    ],
)
def test_anonymous_references(source, expected):
    assert _tref("(typename $t " + source + ")", "t") == expected


def test_named_reference_uses_declared_name():
    doc = load_str("(typename $file_size u64)\n(typename $t (list $file_size))")
    assert render_tref(doc.typename("t").tref) == "List<FileSize>"


def test_anonymous_variant_reference_fails():
    with pytest.raises(UnsupportedShape):
        _tref("(typename $t (variant (case $a u8) (case $b)))", "t")


def test_anonymous_record_reference_fails():
    doc = load_str("(typename $r (record (field $inner (record (field $a u8)))))")
    member = doc.typename("r").type_().members[0]
    with pytest.raises(UnsupportedShape):
        render_tref(member.tref)


def test_char_outside_string_fails():
    with pytest.raises(UnsupportedShape):
        _tref("(typename $t char)", "t")


@pytest.mark.parametrize(
    "count,kotlin",
    [(3, "Byte"), (8, "Byte"), (9, "Short"), (20, "Int"), (40, "Long")],
)
def test_flags_constants_are_single_bits(count, kotlin):
    names = " ".join("$f" + str(i) for i in range(count))
    lines = _decl("(typename $opts (flags " + names + "))", "opts")
    assert lines[0] == "typealias Opts = " + kotlin
    assert lines[1] == "object OPTS {"
    assert lines[-1] == "}"
    consts = lines[2:-1]
    assert len(consts) == count
    for i, text in enumerate(consts):
        if kotlin == "Long":
            value = "1L shl " + str(i)
        elif kotlin == "Int":
            value = "1 shl " + str(i)
        else:
            value = "(1 shl " + str(i) + ").to" + kotlin + "()"
        assert text == "    const val F" + str(i) + ": Opts = " + value


def test_flags_explicit_repr_widens():
    lines = _decl("(typename $fdflags (flags (@witx repr u16) $append $dsync))", "fdflags")
    assert lines == [
        "typealias Fdflags = Short",
        "object FDFLAGS {",
        "    const val APPEND: Fdflags = (1 shl 0).toShort()",
        "    const val DSYNC: Fdflags = (1 shl 1).toShort()",
        "}",
    ]


def test_enum_class():
    source = """
    ;;; Status codes.
    (typename $status
      (enum (@witx tag u16)
        ;;; All good.
        $ok
        $not_found
        $2big))
    """
    assert _decl(source, "status") == [
        "/**",
        " * Status codes.",
        " */",
        "enum class Status {",
        "    /**",
        "     * All good.",
        "     */",
        "    OK,",
        "    NOT_FOUND,",
        "    _2BIG,",
        "}",
    ]


def test_enum_case_names():
    assert enum_case_name("regular_file") == "REGULAR_FILE"
    assert enum_case_name("2big") == "_2BIG"


def test_record_data_class():
    source = "(typename $stat (record (field $dev u64) (field $in u32) (field $name string)))"
    assert _decl(source, "stat") == [
        "data class Stat(",
        "    var dev: Long,",
        "    var `in`: Int,",
        "    var name: String,",
        ")",
    ]


def test_unsafe_record_is_internal():
    doc = load_str("(typename $iovec (record (field $buf (@witx pointer u8)) (field $len u32)))")
    nt = doc.typename("iovec")
    assert declared_name(nt) == "__unsafe__Iovec"
    assert render_declaration(nt)[0] == "internal data class __unsafe__Iovec("


def test_unsafe_alias_is_internal():
    doc = load_str(
        "(typename $iovec (record (field $buf (@witx pointer u8))))\n"
        "(typename $iovec_array (list $iovec))"
    )
    assert render_declaration(doc.typename("iovec_array")) == [
        "internal typealias __unsafe__IovecArray = List<__unsafe__Iovec>"
    ]


def test_sealed_class():
    source = """
    (typename $event (variant (@witx tag u8)
      (case $clock u64)
      (case $none)
      (case $fd_read u32)))
    """
    assert _decl(source, "event") == [
        "sealed class Event {",
        "    data class Clock(var value: Long) : Event()",
        "    object None : Event()",
        "    data class FdRead(var value: Int) : Event()",
        "}",
    ]


def test_handle_declaration():
    assert _decl(";;; A descriptor.\n(typename $fd (handle))", "fd") == [
        "/**",
        " * A descriptor.",
        " */",
        "typealias Fd = Int",
    ]


def test_tuple_and_bool_declarations():
    assert _decl("(typename $span (tuple u32 u32))", "span") == ["typealias Span = Pair<Int, Int>"]
    assert _decl("(typename $yes bool)", "yes") == ["typealias Yes = Boolean"]


def test_named_expected_fails():
    with pytest.raises(UnsupportedShape):
        _decl("(typename $res (expected u32 (error u16)))", "res")


def test_kotlin_ident_escapes_keywords():
    assert kotlin_ident("fun") == "`fun`"
    assert kotlin_ident("value") == "value"


def test_casing_helpers():
    from witxgen.backend.util import is_snake, to_camel, to_pascal, to_screaming_snake, to_snake

    assert to_pascal("prestat_dir") == "PrestatDir"
    assert to_screaming_snake("fd_datasync") == "FD_DATASYNC"
    assert to_snake("wasiEphemeral") == "wasi_ephemeral"
    assert to_camel("file_path") == "filePath"
    assert is_snake("fd_close")
    assert not is_snake("fdClose")
