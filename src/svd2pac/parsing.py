# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from time import perf_counter_ns
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Optional,
    Set,
    Tuple,
    Type,
    Union,
)

import lxml.etree as ET
from lxml import objectify

import svd2pac

from . import bindings
from .errors import SvdParseError

if TYPE_CHECKING:
    from ._bindings import SvdElement

# Children of the root element that must be present for the document to be usable at all.
_MANDATORY_DEVICE_TAGS = ("name", "peripherals")


def parse(source: Union[str, Path, bytes]) -> bindings.DeviceElement:
    """
    Parse a SVD document into a tree of raw element bindings.
    Only well-formedness and the presence of the tags that the format grammar requires are
    checked here; attribute level checks are done by the validation module.

    :param source: Path to the SVD file, or the SVD document contents.

    :raises SvdParseError: If the file cannot be read, the XML is malformed or mandatory
                           tags are missing.

    :return: Root device element of the document.
    """

    t_parse_start = perf_counter_ns()

    # Note: remove comments as otherwise these are present as nodes in the returned XML tree
    xml_parser = objectify.makeparser(remove_comments=True)
    class_lookup = _TwoLevelTagLookup(bindings.BINDINGS)
    xml_parser.set_element_class_lookup(class_lookup)

    try:
        if isinstance(source, bytes):
            root = objectify.fromstring(source, parser=xml_parser)
            origin = "<bytes>"
        else:
            svd_file = Path(source)
            with open(svd_file, "rb") as f:
                root = objectify.parse(f, parser=xml_parser).getroot()
            origin = str(svd_file)
    except OSError as e:
        raise SvdParseError(f"Unable to read SVD file {source}: {e}") from e
    except ET.XMLSyntaxError as e:
        raise SvdParseError(f"Malformed SVD document: {e}") from e

    if root.tag != bindings.DeviceElement.TAG:
        raise SvdParseError(
            f"Expected root element '{bindings.DeviceElement.TAG}', got '{root.tag}'"
        )

    for tag in _MANDATORY_DEVICE_TAGS:
        if root.find(tag) is None:
            raise SvdParseError(f"Missing mandatory element 'device/{tag}'")

    if not (root.findtext("name") or "").strip():
        raise SvdParseError("Mandatory element 'device/name' is empty")

    t_parse = (perf_counter_ns() - t_parse_start) / 1_000_000
    svd2pac.log.debug(f"Parsed {origin} in {t_parse:.1f} ms")

    return root


class _TwoLevelTagLookup(ET.ElementNamespaceClassLookup):
    """
    XML element class lookup that uses two levels of tag names to map an XML element to a Python
    class.

    Element classes that can be uniquely identified by tag only are stored in the first level.
    This level uses the lxml ElementNamespaceClassLookup which is faster than the second level.
    The remaining element classes are assumed to be uniquely identified by a combination of
    the parent tag and the tag itself, and are stored in the second level.
    The second level uses the lxml PythonElementClassLookup which is slower.
    For example the 'value' tag is an integer inside 'interrupt' but a raw string inside
    'enumeratedValue', where it may contain don't-care bits.
    """

    def __init__(self, element_classes: List[Type[SvdElement]]):
        """
        :param element_classes: lxml element classes to add to the lookup table.
        """
        super().__init__()

        tag_classes: Dict[str, Set[type]] = defaultdict(set)
        two_tag_classes: Dict[Tuple[Optional[str], str], Set[type]] = defaultdict(set)

        for element_class in element_classes:
            tag = element_class.TAG
            tag_classes[tag].add(element_class)
            for prop in bindings.get_binding_elem_props(element_class).values():
                tag_classes[prop.name].add(prop.element_class)
                two_tag_classes[(tag, prop.name)].add(prop.element_class)

        one_tag: Set[str] = set()
        namespace = self.get_namespace(None)  # None is the empty namespace

        for tag, classes in tag_classes.items():
            if len(classes) == 1:
                # namespace is a decorator, so the syntax here is a little odd
                element_class = next(iter(classes))
                namespace(tag)(element_class)
                one_tag.add(tag)

        two_tag_lookup: Dict[Tuple[Optional[str], str], type] = {}

        for (parent_tag, field_name), classes in two_tag_classes.items():
            if field_name in one_tag:
                continue

            if len(classes) != 1:
                raise RuntimeError(
                    f"Multiple classes for ({parent_tag}, {field_name}): {classes}. "
                    "This should never happen, and likely indicates a bug in the way element "
                    "class lookup is implemented."
                )

            two_tag_lookup[(parent_tag, field_name)] = next(iter(classes))

        fallback_lookup = _SecondLevelTagLookup(two_tag_lookup)
        self.set_fallback(fallback_lookup)


class _SecondLevelTagLookup(ET.PythonElementClassLookup):
    """XML element class lookup table that uses two levels of tags to look up the class"""

    def __init__(
        self,
        lookup_table: Dict[
            Tuple[Optional[str], str], Type[objectify.ObjectifiedElement]
        ],
    ):
        """
        :param lookup_table: Lookup table mapping a tuple of (parent tag, tag) to an element class.
        """
        super().__init__(fallback=objectify.ObjectifyElementClassLookup())
        self._lookup_table = lookup_table

    def lookup(
        self, _document: Any, element: Any
    ) -> Optional[Type[objectify.ObjectifiedElement]]:
        """Look up the Element class for the given XML element"""
        if (parent := element.getparent()) is not None:
            parent_tag = parent.tag
        else:
            parent_tag = None
        return self._lookup_table.get((parent_tag, element.tag))
