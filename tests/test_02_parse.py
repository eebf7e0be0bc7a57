"""Pytest-based witx loader tests.

Test cases live in 02_parse/*.tests files. Expected is `ok` or
`error: <substring of the LoadError message>`.
"""

from pathlib import Path

import pytest

from witxgen.frontend import LoadError, load, load_str
from witxgen.frontend.parse import parse_int
from witxgen.frontend.tokens import TK_DOC, TK_ID, TK_INT, TK_KEYWORD, tokenize
from witxgen.witx import (
    BuiltinType,
    ConstPointer,
    Handle,
    List,
    NamedRef,
    Pointer,
    Record,
    Variant,
    is_safe,
)

PARSE_DIR = Path(__file__).parent / "02_parse"
WITX_DIR = Path(__file__).parent / "witx"


def parse_test_file(path: Path) -> list[tuple[str, str, str]]:
    """Parse .tests file into (name, input, expected) tuples."""
    lines = path.read_text().split("\n")
    result: list[tuple[str, str, str]] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("=== "):
            test_name = line[4:].strip()
            i += 1
            input_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                input_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            expected_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                expected_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            test_input = "\n".join(input_lines)
            expected = "\n".join(expected_lines).strip()
            result.append((test_name, test_input, expected))
        else:
            i += 1
    return result


def discover_parse_tests() -> list[tuple[str, str, str]]:
    """Find all parse tests, returns (test_id, input, expected)."""
    results = []
    for test_file in sorted(PARSE_DIR.glob("*.tests")):
        for name, input_code, expected in parse_test_file(test_file):
            results.append((f"{test_file.stem}/{name}", input_code, expected))
    return results


def pytest_generate_tests(metafunc):
    """Parametrize tests over parse test files."""
    if "parse_input" in metafunc.fixturenames:
        params = [
            pytest.param(input_code, expected, id=test_id)
            for test_id, input_code, expected in discover_parse_tests()
        ]
        metafunc.parametrize("parse_input,parse_expected", params)


def test_parse(parse_input: str, parse_expected: str):
    """Verify the loader accepts or rejects the input as expected."""
    try:
        load_str(parse_input)
        parse_error = None
    except LoadError as e:
        parse_error = e
    if parse_expected == "ok":
        if parse_error is not None:
            pytest.fail(f"Expected ok, got load error: {parse_error}")
    elif parse_expected.startswith("error:"):
        expected_msg = parse_expected[6:].strip()
        if parse_error is None:
            pytest.fail(f"Expected error containing '{expected_msg}', but loading succeeded")
        assert expected_msg in str(parse_error)
    else:
        pytest.fail(f"Unknown expected format: {parse_expected}")


def test_tokenize_kinds():
    tokens = tokenize(';;; docs here\n(typename $fd (handle)) ;; trailing\n(; block (; nested ;) ;) 0x10')
    kinds = [(t.type, t.value) for t in tokens[:-1]]
    assert kinds[0] == (TK_DOC, "docs here")
    assert (TK_ID, "fd") in kinds
    assert (TK_KEYWORD, "handle") in kinds
    assert kinds[-1] == (TK_INT, "0x10")


def test_parse_int():
    assert parse_int("42") == 42
    assert parse_int("0xff") == 255
    assert parse_int("-1") == -1
    assert parse_int("1_000") == 1000


def test_docs_attach_to_declarations():
    doc = load_str(
        """
        ;;; Error codes.
        ;;; Second line.
        (typename $errno (enum $success ;;; Bad fd.
                                $badf))
        """
    )
    errno = doc.typename("errno")
    assert errno is not None
    assert errno.docs == "Error codes.\nSecond line."
    ty = errno.type_()
    assert isinstance(ty, Variant)
    assert ty.cases[0].docs == ""
    assert ty.cases[1].docs == "Bad fd."


def test_builtin_sugar():
    doc = load_str(
        """
        (typename $name string)
        (typename $flag bool)
        (typename $len (@witx usize))
        (typename $c (@witx char8))
        """
    )
    name = doc.typename("name").type_()
    assert isinstance(name, List) and name.is_string()
    flag = doc.typename("flag").type_()
    assert isinstance(flag, Variant) and flag.is_bool() and flag.is_enum_like()
    length = doc.typename("len").type_()
    assert isinstance(length, BuiltinType) and length.name == "u32" and length.lang_ptr_size
    c = doc.typename("c").type_()
    assert isinstance(c, BuiltinType) and c.name == "u8" and c.lang_c_char


def test_compound_shapes():
    doc = load_str(
        """
        (typename $fd (handle))
        (typename $pair (tuple u32 u64))
        (typename $flags (flags (@witx repr u16) $a $b))
        (typename $result (expected $pair (error u16)))
        (typename $buf (@witx pointer u8))
        (typename $cbuf (@witx const_pointer u8))
        """
    )
    assert isinstance(doc.typename("fd").type_(), Handle)
    pair = doc.typename("pair").type_()
    assert isinstance(pair, Record) and pair.is_tuple() and not pair.is_bitflags()
    flags = doc.typename("flags").type_()
    assert isinstance(flags, Record) and flags.is_bitflags() and flags.repr == "u16"
    assert [m.name for m in flags.members] == ["a", "b"]
    result = doc.typename("result").type_()
    assert isinstance(result, Variant)
    ok, err = result.as_expected()
    assert isinstance(ok, NamedRef) and ok.named.name == "pair"
    assert isinstance(err.type_(), BuiltinType)
    assert isinstance(doc.typename("buf").type_(), Pointer)
    assert isinstance(doc.typename("cbuf").type_(), ConstPointer)


def test_union_takes_case_names_from_tag():
    doc = load_str(
        """
        (typename $kind (enum (@witx tag u8) $dir $file))
        (typename $u (union (@witx tag $kind) u32 u64))
        """
    )
    u = doc.typename("u").type_()
    assert isinstance(u, Variant)
    assert [c.name for c in u.cases] == ["dir", "file"]
    assert u.tag_repr == "u8"
    assert not u.is_enum_like()


def test_module_functions():
    doc = load_str(
        """
        (module $wasi
          (import "memory" (memory))
          ;;; Exit.
          (@interface func (export "proc_exit")
            (param $rval u32)
            (@witx noreturn))
          (@interface func (export "random_get")
            (param $buf (@witx pointer u8))
            (param $len u32)
            ;;; Error code.
            (result $error (expected (error u16)))))
        """
    )
    module = doc.module("wasi")
    assert module is not None
    proc_exit = module.func("proc_exit")
    assert proc_exit.noreturn and proc_exit.docs == "Exit."
    assert proc_exit.results == []
    random_get = module.func("random_get")
    assert [p.name for p in random_get.params] == ["buf", "len"]
    assert random_get.results[0].docs == "Error code."
    assert is_safe(proc_exit)
    assert not is_safe(random_get)


def test_constants():
    doc = load_str(
        """
        (typename $clockid u32)
        (@witx const $clockid $realtime 0)
        (@witx const $clockid $monotonic 0x1)
        """
    )
    assert [(c.ty, c.name, c.value) for c in doc.constants] == [
        ("clockid", "realtime", 0),
        ("clockid", "monotonic", 1),
    ]


def test_load_follows_use():
    doc = load([str(WITX_DIR / "wasi_sample.witx")])
    assert doc.typename("errno") is not None
    assert doc.module("wasi_snapshot_preview1") is not None
    # the included file is read once even when named again
    doc = load([str(WITX_DIR / "wasi_sample.witx"), str(WITX_DIR / "typenames.witx")])
    assert len([nt for nt in doc.typenames if nt.name == "errno"]) == 1


def test_load_error_names_file():
    with pytest.raises(LoadError) as exc:
        load([str(WITX_DIR / "missing.witx")])
    assert exc.value.path.endswith("missing.witx")
