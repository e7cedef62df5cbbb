# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Helpers for turning SVD names and values into Rust source fragments.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional

from .errors import CodeGenError

# Strict, reserved and edition dependent keywords.
RUST_KEYWORDS = frozenset(
    (
        "abstract", "as", "async", "await", "become", "box", "break", "const", "continue",
        "crate", "do", "dyn", "else", "enum", "extern", "false", "final", "fn", "for", "gen",
        "if", "impl", "in", "let", "loop", "macro", "match", "mod", "move", "mut", "override",
        "priv", "pub", "ref", "return", "self", "Self", "static", "struct", "super", "trait",
        "true", "try", "type", "typeof", "unsafe", "unsized", "use", "virtual", "where",
        "while", "yield",
    )
)

# Keywords that cannot be used as raw identifiers.
_NON_RAW_KEYWORDS = frozenset(("crate", "self", "Self", "super"))

# Method names of register values that field accessors must not shadow.
RESERVED_FIELD_NAMES = frozenset(
    ("get", "set", "get_raw", "set_raw", "new", "from_raw", "mask", "offset", "default", "clone")
)

_INVALID_CHARS = re.compile(r"[^0-9A-Za-z_]")

_INTEGER_TYPES = {8: "u8", 16: "u16", 32: "u32", 64: "u64"}


def sanitize(name: str) -> str:
    """
    Turn a concrete SVD name into a string of identifier characters.
    Array brackets are dropped and other separators become underscores, e.g. 'CH[0].CTRL'
    becomes 'CH0_CTRL'.
    """
    name = name.replace("[", "").replace("]", "")
    return _INVALID_CHARS.sub("_", name)


def escape(identifier: str) -> str:
    """Make an identifier valid in Rust, escaping keywords and leading digits."""
    if not identifier:
        return "_"

    if identifier[0].isdigit():
        return f"_{identifier}"

    if identifier in RUST_KEYWORDS:
        if identifier in _NON_RAW_KEYWORDS:
            return f"{identifier}_"
        return f"r#{identifier}"

    return identifier


def snake_name(name: str) -> str:
    """Function or module name, e.g. 'bitfield_reg' for 'BITFIELD_REG'."""
    return escape(sanitize(name).lower())


def camel_name(name: str) -> str:
    """Type name, e.g. 'BitfieldReg' for 'BITFIELD_REG' and 'Sr' for 'SR'."""
    parts: List[str] = []
    for part in sanitize(name).split("_"):
        if not part:
            continue
        if part.upper() == part:
            parts.append(part.capitalize())
        else:
            parts.append(part[0].upper() + part[1:])

    return escape("".join(parts) or "_")


def constant_name(name: str) -> str:
    """Constant name, e.g. 'NO_MATCH'."""
    return escape(sanitize(name).upper())


def field_accessor_name(name: str) -> str:
    """Accessor method name of a field, avoiding the methods of the register value type."""
    ident = snake_name(name)
    if ident in RESERVED_FIELD_NAMES:
        return f"{ident}_"
    return ident


def spec_name(type_name: str) -> str:
    """Name of the marker type describing a register or enumerated field."""
    return f"{type_name.replace('r#', '')}_SPEC"


def crate_name(name: str) -> str:
    """Cargo package name derived from a device name."""
    crate = re.sub(r"[^0-9a-z_-]", "_", name.strip().lower())
    return crate or "pac"


def integer_type(size: int) -> str:
    """Unsigned integer type holding a register of the given size."""
    try:
        return _INTEGER_TYPES[size]
    except KeyError as e:
        raise CodeGenError(f"No native integer type for {size} bits") from e


def field_value_type(width: int) -> str:
    """Smallest type holding a field value of the given width."""
    if width == 1:
        return "bool"
    for size in sorted(_INTEGER_TYPES):
        if width <= size:
            return _INTEGER_TYPES[size]
    raise CodeGenError(f"No native integer type for a {width} bit field")


def field_raw_type(width: int) -> str:
    """Smallest unsigned integer type holding a field value of the given width."""
    for size in sorted(_INTEGER_TYPES):
        if width <= size:
            return _INTEGER_TYPES[size]
    raise CodeGenError(f"No native integer type for a {width} bit field")


def hex_literal(value: int) -> str:
    return f"0x{value:x}"


def doc_lines(text: Optional[str]) -> List[str]:
    """
    Split a SVD description into lines for a Rust doc comment.
    Whitespace runs inside a paragraph are collapsed, blank lines separate paragraphs.
    Non-empty lines start with a space so that they can be appended to '///' directly.
    """
    if not text:
        return []

    lines: List[str] = []
    for paragraph in re.split(r"\n\s*\n", text.strip()):
        if lines:
            lines.append("")
        lines.append(" " + " ".join(paragraph.split()))

    return lines


class IdentifierScope:
    """Set of identifiers emitted into the same Rust namespace."""

    def __init__(self, scope: str) -> None:
        self._scope = scope
        self._owners: Dict[str, str] = {}

    def add(self, identifier: str, owner: str) -> str:
        """
        Register an identifier.

        :param identifier: Rust identifier.
        :param owner: Name of the SVD element the identifier was derived from.
        :raises CodeGenError: If the identifier was already derived from another element.
        :return: The identifier.
        """
        previous = self._owners.setdefault(identifier, owner)
        if previous != owner:
            raise CodeGenError(
                f"'{previous}' and '{owner}' both map to the identifier '{identifier}' "
                f"in {self._scope}"
            )
        return identifier
