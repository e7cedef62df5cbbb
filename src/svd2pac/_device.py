# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Various internal functionality used by the device module.
"""

from __future__ import annotations

import re
from collections import defaultdict, deque
from types import MappingProxyType
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Sequence

# Placeholder that is replaced by the index of each element of a dim array.
DIM_PLACEHOLDER = "%s"

# Suffix that marks an array whose elements are grouped into a single indexable array.
LIST_DIM_SUFFIX = "[%s]"

_LETTER_RANGE = re.compile(r"^([A-Z])\s*-\s*([A-Z])$")
_NUMBER_RANGE = re.compile(r"^([0-9]+)\s*-\s*([0-9]+)$")
_INDEX_ITEM = re.compile(r"^[_0-9A-Za-z]+$")


class DerivationCycleError(ValueError):
    """Raised when the 'derivedFrom' graph is not a forest."""

    def __init__(self, indices: Sequence[int]) -> None:
        self.indices: Sequence[int] = indices
        super().__init__(f"Cycle in 'derivedFrom' graph involving elements {indices}")


def topo_sort_derived(parents: Sequence[Optional[int]]) -> List[int]:
    """
    Topologically sort elements based on their 'derivedFrom' parent using Kahn's algorithm.
    The returned list has the property that the element at index i does not derive from
    any of the elements at indices 0..(i - 1).
    Ties are broken by declaration order so the result is deterministic.

    :param parents: For each element, the index of the element it derives from or None.

    :raises DerivationCycleError: If the derivation graph contains a cycle.
    :return: Element indices topologically sorted.
    """

    sorted_indices: List[int] = []
    no_dep: Deque[int] = deque()
    dep_graph: Dict[int, List[int]] = defaultdict(list)

    for i, parent in enumerate(parents):
        if parent is not None:
            dep_graph[parent].append(i)
        else:
            no_dep.append(i)

    while no_dep:
        i = no_dep.popleft()
        sorted_indices.append(i)
        # Each element has a maximum of one in-edge since it can only derive from one
        # element. Therefore, once it is encountered here it has no remaining dependencies.
        no_dep.extend(dep_graph.pop(i, ()))

    if dep_graph:
        remaining = sorted(i for children in dep_graph.values() for i in children)
        raise DerivationCycleError(remaining)

    return sorted_indices


def parse_dim_index(text: Optional[str], length: int) -> List[str]:
    """
    Get the index strings of a dim array.

    :param text: Contents of the dimIndex element, if any. Can be a comma separated list,
                 a numeric range such as '0-3' or a letter range such as 'A-D'.
    :param length: Value of the dim element.

    :raises ValueError: If the index is malformed or does not match the array length.
    :return: One index string per array element.
    """

    if length <= 0:
        raise ValueError(f"Array length must be positive, got {length}")

    if text is None:
        return [str(i) for i in range(length)]

    text = text.strip()

    if (match := _LETTER_RANGE.match(text)) is not None:
        start, end = ord(match.group(1)), ord(match.group(2))
        indices = [chr(c) for c in range(start, end + 1)]
    elif (match := _NUMBER_RANGE.match(text)) is not None:
        start, end = int(match.group(1)), int(match.group(2))
        indices = [str(i) for i in range(start, end + 1)]
    else:
        indices = [item.strip() for item in text.split(",")]
        for item in indices:
            if not _INDEX_ITEM.match(item):
                raise ValueError(f"Invalid dimIndex entry '{item}' in '{text}'")

    if len(indices) != length:
        raise ValueError(
            f"dimIndex '{text}' has {len(indices)} entries, expected {length}"
        )

    if len(set(indices)) != len(indices):
        raise ValueError(f"dimIndex '{text}' contains duplicate entries")

    return indices


def is_list_style(name: str) -> bool:
    """True if the name of a dim element describes an indexable array, e.g. 'CH[%s]'."""
    return name.endswith(LIST_DIM_SUFFIX)


def dim_template_name(name: str) -> str:
    """
    Name of a dim element with the index placeholder removed, e.g. 'CH' for 'CH[%s]' and
    'UART' for 'UART%s'.
    """
    return strip_suffix(name, LIST_DIM_SUFFIX).replace(DIM_PLACEHOLDER, "")


def expand_dim_names(name: str, indices: Iterable[str]) -> List[str]:
    """
    Get the concrete element names of a dim array.
    A name without a placeholder is treated as list-style, with the index appended.

    :param name: Name of the dim element.
    :param indices: Index strings of the array.
    :return: One name per element.
    """

    indices = list(indices)

    if is_list_style(name):
        base = strip_suffix(name, LIST_DIM_SUFFIX)
        return [f"{base}[{k}]" for k in range(len(indices))]

    if DIM_PLACEHOLDER in name:
        return [name.replace(DIM_PLACEHOLDER, idx) for idx in indices]

    return [f"{name}[{k}]" for k in range(len(indices))]


def svd_element_repr(
    klass: type,
    name: str,
    /,
    *,
    address: Optional[int] = None,
    length: Optional[int] = None,
    kv_props: Mapping[Any, Any] = MappingProxyType({}),
) -> str:
    """
    Common pretty print function for model elements.

    :param klass: Class of the element.
    :param name: Name of the element.
    :param address: Address of the element.
    :param length: Length of the element.
    :param kv_props: Additional keyword arguments to include in the pretty print.

    :return: Pretty printed string representing the element.
    """

    address_str: str = f" @ 0x{address:08x}" if address is not None else ""
    length_str: str = f"<{length}>" if length is not None else ""

    if kv_props:
        props_str = f" ({', '.join(f'{k}: {v!s}' for k, v in kv_props.items())})"
    else:
        props_str = ""

    return f"[{name}{length_str}{address_str}{props_str} {{{klass.__name__}}}]"


def strip_suffix(word: str, suffix: str) -> str:
    """
    Remove the given suffix from the word, if present.

    :param word: String to strip prefixes and suffixes from.
    :param suffix: Suffix to strip.

    :return: word without the suffix.
    """

    if word.endswith(suffix):
        word = word[: -len(suffix)]

    return word
