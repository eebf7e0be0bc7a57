"""Middleend - read-only analyses over the Document (layout, ABI streams)."""

from .abi import Bindgen, Generator, ListingBindgen, call_wasm, wasm_signature
from .layout import Layout, align_to, flags_repr, layout, layout_ref, tag_repr

__all__ = [
    "Bindgen",
    "Generator",
    "Layout",
    "ListingBindgen",
    "align_to",
    "call_wasm",
    "flags_repr",
    "layout",
    "layout_ref",
    "tag_repr",
    "wasm_signature",
]
