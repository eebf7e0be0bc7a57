"""Command-line entry point: witx files in, Kotlin bindings out."""

from __future__ import annotations

import sys

from .errors import GenerationError
from .frontend.load import LoadError, load, load_str
from .middleend.abi import ListingBindgen, call_wasm
from .backend.kotlin import emit_kotlin
from .witx import (
    BuiltinType,
    ConstPointer,
    Document,
    Handle,
    List,
    NamedRef,
    Pointer,
    Record,
    Type,
    TypeRef,
    Variant,
)

PHASES: list[str] = ["load", "abi"]

NAMING_MODES: list[str] = ["flat", "prefixed"]

USAGE: str = """\
witxgen [OPTIONS] INPUT... [-o OUTPUT]

Reads witx interface descriptions (stdin when no INPUT is given) and
writes Kotlin/Wasm WASI bindings.

Options:
  --naming MODE       Wrapper naming: flat (default) or prefixed, which
                      prefixes each function with its module name
  --package NAME      Kotlin package of the generated file (default kotlinx.wasi)
  --stop-at PHASE     Stop after phase: load (JSON document dump),
                      abi (instruction listing per function)
  -o, --output FILE   Write output to FILE instead of stdout
  --help              Show this help message
"""


def read_stdin() -> tuple[str, int]:
    """Read witx source from stdin. Returns (source, exit_code)."""
    raw = sys.stdin.buffer.read()
    try:
        source = raw.decode("utf-8")
    except ValueError:
        print("error: invalid utf-8 in input", file=sys.stderr)
        return ("", 1)
    return (source, 0)


def write_output(output: str, output_file: str | None) -> int:
    """Write output to file or stdout. Returns 0 on success, 1 on error."""
    if output_file is not None:
        try:
            with open(output_file, "w") as f:
                f.write(output)
        except OSError:
            print("error: cannot write '" + output_file + "'", file=sys.stderr)
            return 1
        return 0
    sys.stdout.write(output)
    return 0


# --- JSON serialization (no json module) ---


def _json_escape(s: str) -> str:
    """Escape a string for JSON output."""
    result: list[str] = []
    for c in s:
        if c == "\\":
            result.append("\\\\")
        elif c == '"':
            result.append('\\"')
        elif c == "\n":
            result.append("\\n")
        elif c == "\r":
            result.append("\\r")
        elif c == "\t":
            result.append("\\t")
        else:
            result.append(c)
    return "".join(result)


def _to_json(obj: object, indent: int, level: int) -> str:
    """Recursively serialize an object to JSON string."""
    if obj is None:
        return "null"
    if isinstance(obj, bool):
        return "true" if obj else "false"
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, str):
        return '"' + _json_escape(obj) + '"'
    pad = " " * (indent * (level + 1))
    pad_close = " " * (indent * level)
    if isinstance(obj, list):
        if len(obj) == 0:
            return "[]"
        parts = [pad + _to_json(item, indent, level + 1) for item in obj]
        return "[\n" + ",\n".join(parts) + "\n" + pad_close + "]"
    if isinstance(obj, dict):
        if len(obj) == 0:
            return "{}"
        parts = []
        for k, v in obj.items():
            key_str = '"' + _json_escape(str(k)) + '"'
            parts.append(pad + key_str + ": " + _to_json(v, indent, level + 1))
        return "{\n" + ",\n".join(parts) + "\n" + pad_close + "}"
    return '"<unserializable>"'


def to_json(obj: object) -> str:
    """Serialize object to pretty-printed JSON."""
    return _to_json(obj, 2, 0)


# --- Document serialization ---


def _tref_to_dict(tref: TypeRef) -> object:
    if isinstance(tref, NamedRef):
        return {"ref": tref.named.name}
    return _type_to_dict(tref.type_())


def _type_to_dict(ty: Type) -> dict[str, object]:
    d: dict[str, object] = {"kind": ty.kind()}
    if isinstance(ty, BuiltinType):
        d["name"] = ty.name
        if ty.lang_c_char:
            d["char8"] = True
        if ty.lang_ptr_size:
            d["usize"] = True
    elif isinstance(ty, Record):
        if ty.bitflags:
            d["bitflags"] = True
        if ty.repr is not None:
            d["repr"] = ty.repr
        d["members"] = [
            {"name": m.name, "type": _tref_to_dict(m.tref)} for m in ty.members
        ]
    elif isinstance(ty, Variant):
        if ty.tag_repr is not None:
            d["tag"] = ty.tag_repr
        cases: list[object] = []
        for c in ty.cases:
            case: dict[str, object] = {"name": c.name}
            if c.tref is not None:
                case["type"] = _tref_to_dict(c.tref)
            cases.append(case)
        d["cases"] = cases
    elif isinstance(ty, List):
        d["element"] = _tref_to_dict(ty.element)
    elif isinstance(ty, (Pointer, ConstPointer)):
        d["pointee"] = _tref_to_dict(ty.pointee)
    else:
        assert isinstance(ty, Handle)
    return d


def _params_to_list(params: list) -> list[object]:
    return [{"name": p.name, "type": _tref_to_dict(p.tref)} for p in params]


def doc_to_dict(doc: Document) -> dict[str, object]:
    """Convert a loaded Document to a serializable dict."""
    typenames = [{"name": nt.name, "type": _tref_to_dict(nt.tref)} for nt in doc.typenames]
    modules: list[object] = []
    for m in doc.modules:
        funcs: list[object] = []
        for f in m.funcs:
            fd: dict[str, object] = {
                "name": f.name,
                "params": _params_to_list(f.params),
                "results": _params_to_list(f.results),
            }
            if f.noreturn:
                fd["noreturn"] = True
            funcs.append(fd)
        modules.append({"name": m.name, "funcs": funcs})
    constants = [
        {"type": c.ty, "name": c.name, "value": c.value} for c in doc.constants
    ]
    return {"typenames": typenames, "modules": modules, "constants": constants}


def abi_listing(doc: Document) -> str:
    """Instruction stream of every function, one block per function."""
    out: list[str] = []
    for m in doc.modules:
        for f in m.funcs:
            bindgen = ListingBindgen()
            call_wasm(m, f, bindgen)
            out.append(m.name + "." + f.name + ":")
            out.extend("  " + text for text in bindgen.lines)
            out.append("")
    return "\n".join(out)


# --- Pipeline ---


def run_pipeline(
    inputs: list[str], source: str | None, naming: str, package: str, stop_at: str | None
) -> tuple[int, str]:
    """Load, analyze and emit. Returns (exit_code, output)."""
    try:
        if source is not None:
            doc = load_str(source)
        else:
            doc = load(inputs)
    except LoadError as e:
        print("error: " + str(e), file=sys.stderr)
        return (1, "")
    if stop_at == "load":
        return (0, to_json(doc_to_dict(doc)) + "\n")
    try:
        if stop_at == "abi":
            return (0, abi_listing(doc))
        return (0, emit_kotlin(doc, naming, package))
    except GenerationError as e:
        print("error: " + str(e), file=sys.stderr)
        return (1, "")


def parse_args() -> tuple[str, str, str | None, list[str], str | None]:
    """Parse command-line arguments. Returns (naming, package, stop_at, inputs, output_file)."""
    args = sys.argv[1:]
    naming = "flat"
    package = "kotlinx.wasi"
    stop_at: str | None = None
    inputs: list[str] = []
    output_file: str | None = None
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--help" or arg == "-h":
            print(USAGE, end="")
            sys.exit(0)
        elif arg in ("--naming", "--package", "--stop-at", "-o", "--output"):
            if i + 1 >= len(args):
                print("error: " + arg + " requires an argument", file=sys.stderr)
                sys.exit(2)
            value = args[i + 1]
            if arg == "--naming":
                naming = value
            elif arg == "--package":
                package = value
            elif arg == "--stop-at":
                stop_at = value
            else:
                output_file = value
            i += 2
        elif arg.startswith("-"):
            print("error: unknown flag '" + arg + "'", file=sys.stderr)
            sys.exit(2)
        else:
            inputs.append(arg)
            i += 1
    if stop_at is not None and stop_at not in PHASES:
        print("error: unknown phase '" + stop_at + "'", file=sys.stderr)
        sys.exit(2)
    if naming not in NAMING_MODES:
        print("error: unknown naming mode '" + naming + "'", file=sys.stderr)
        sys.exit(2)
    return (naming, package, stop_at, inputs, output_file)


def main() -> int:
    """Main entry point."""
    naming, package, stop_at, inputs, output_file = parse_args()
    source: str | None = None
    if len(inputs) == 0:
        source, err = read_stdin()
        if err != 0:
            return err
        if len(source.strip()) == 0:
            print("error: no input provided", file=sys.stderr)
            return 2
    exit_code, output = run_pipeline(inputs, source, naming, package, stop_at)
    if exit_code != 0:
        return exit_code
    return write_output(output, output_file)


if __name__ == "__main__":
    sys.exit(main())
