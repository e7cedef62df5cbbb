# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Various internal functionality used by the bindings module.
"""

from __future__ import annotations

import enum
import inspect
import typing
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Iterable,
    List,
    Literal,
    Mapping,
    Optional,
    Type,
    TypeVar,
    Union,
    overload,
)

from lxml import objectify
from typing_extensions import Self


class CaseInsensitiveStrEnum(enum.Enum):
    """String enum class that can be constructed from a case-insensitive string."""

    @classmethod
    def _missing_(cls, value: object) -> Optional[Self]:
        """Handler for string values with mismatched case."""
        if not isinstance(value, str):
            return None

        value_lower = value.strip().lower()
        for member in cls:
            if member.value.lower() == value_lower:
                return member

        return None


def to_int(number: str) -> int:
    """
    Convert a string representation of an integer following the SVD format to its corresponding
    integer representation.

    :param number: String representation of the integer.

    :raises ValueError: If the string is not a valid SVD integer, including binary patterns
                        containing don't-care bits.
    :return: Decoded integer.
    """
    number = number.strip()
    if number[:2] in ("0x", "0X"):
        return int(number[2:], base=16)
    if number.startswith("#"):
        return int(number[1:], base=2)
    return int(number, base=10)


def is_dont_care(number: str) -> bool:
    """True if the string is an SVD binary pattern with don't-care ('x') bits, e.g. '#1x0'."""
    number = number.strip()
    return number.startswith("#") and "x" in number[1:].lower()


class SvdElement(objectify.ObjectifiedElement):
    """Base class for all the SVD element classes."""

    TAG: str

    def __repr__(self) -> str:
        """
        A more informative string representation than the default one from lxml.
        This is mostly useful for the exception tracebacks that occur on parsing errors.
        """
        return self._repr()

    def _repr(
        self,
        props: Mapping[Any, Any] = MappingProxyType({}),
    ) -> str:
        props = dict(props)
        props_str = f" {props}" if props else ""
        line_str = f" (line {self.sourceline})" if self.sourceline is not None else ""

        return f"[{self.tag}{props_str}]{line_str}"

    @property
    def svd_path(self) -> str:
        """
        Slash separated path of the element in the document, using element names where
        available, e.g. 'device/peripherals/TIMER/registers/SR'.
        """
        parts: List[str] = []
        node: Optional[objectify.ObjectifiedElement] = self

        while node is not None:
            name_node = node.find("name")
            if name_node is not None and name_node.text and node.getparent() is not None:
                parts.append(name_node.text.strip())
            else:
                parts.append(str(node.tag))
            node = node.getparent()

        return "/".join(reversed(parts))


class SvdIntElement(objectify.IntElement):
    """
    Element containing an SVD integer value.
    This class uses a custom parser to convert the value to an integer.
    """

    def _init(self) -> None:
        self._setValueParser(to_int)


class _Missing:
    ...


# Sentinel value used to indicate that a default value is missing.
MISSING = _Missing()


O = TypeVar("O", bound=objectify.ObjectifiedElement)
T = TypeVar("T")


class Elem(Generic[T]):
    """Data descriptor class used to access a XML element."""

    def __init__(
        self,
        name: str,
        element_class: Type[objectify.ObjectifiedElement],
        /,
        *,
        default: Union[T, _Missing] = MISSING,
    ) -> None:
        """
        Create a data descriptor object that extracts an element from an XML node.

        :param name: Name of the element.
        :param element_class: Class to use for the extracted element.
        :param default: Default value to return if the element is not found.
        """
        self.name: str = name
        self.element_class: Type[objectify.ObjectifiedElement] = element_class
        self.default: Union[T, _Missing] = default

    @overload
    def __get__(self, node: Literal[None], owner: Optional[Type] = None) -> Self:
        ...

    @overload
    def __get__(self, node: O, owner: Optional[Type] = None) -> T:
        ...

    def __get__(self, node: Optional[O], owner: Any = None) -> Union[T, Self]:
        """
        Get the element value from the given node.

        :raises AttributeError: If the element is missing and has no default.
        :raises ValueError: If the element text cannot be converted to the element type.
        """
        if node is None:
            # Accessed through the class object, return the descriptor itself.
            return self

        try:
            svd_obj = node.__getattr__(self.name)
        except AttributeError:
            if not isinstance(self.default, _Missing):
                return self.default
            raise

        if issubclass(self.element_class, objectify.ObjectifiedDataElement):
            return svd_obj.pyval  # type: ignore
        else:
            return svd_obj  # type: ignore


class Attr(Generic[T]):
    """Data descriptor used to access a XML attribute."""

    def __init__(
        self,
        name: str,
        /,
        *,
        converter: Optional[Callable[[str], T]] = None,
        default: Union[T, _Missing] = MISSING,
    ) -> None:
        """
        Create a data descriptor object that extracts an attribute from an XML node.

        :param name: Name of the attribute.
        :param converter: Optional callable that converts the attribute value from a string to
                          another type.
        :param default: Default value to return if the attribute is not found.
        """
        self.name: str = name
        self.converter: Optional[Callable[[str], T]] = converter
        self.default: Union[T, _Missing] = default

    @overload
    def __get__(self, node: Literal[None], owner: Optional[Type] = None) -> Self:
        ...

    @overload
    def __get__(self, node: O, owner: Optional[Type] = None) -> T:
        ...

    def __get__(self, node: Optional[O], owner: Any = None) -> Union[T, Self]:
        """Get the attribute value from the given node."""
        if node is None:
            return self

        value = node.get(self.name)

        if value is None:
            if not isinstance(self.default, _Missing):
                return self.default
            raise AttributeError(f"Attribute {self.name} was not found")

        if self.converter is None:
            return value.strip()  # type: ignore

        try:
            return self.converter(value)
        except Exception as e:
            raise ValueError(f"Error converting attribute {self.name}") from e


C = TypeVar("C", bound=SvdElement)


class BindingRegistry:
    """Simple container for XML binding classes."""

    def __init__(self) -> None:
        self._element_classes: List[Type[SvdElement]] = []

    def add(
        self,
        element_class: Type[C],
        /,
    ) -> Type[C]:
        """
        Add a class to the binding registry.
        This is intended to be used as a class decorator.
        """
        elem_props: Dict[str, Elem] = {}

        for name, prop in inspect.getmembers(element_class):
            if isinstance(prop, Elem):
                elem_props[name] = prop

        setattr(element_class, "_xml_elem_props", elem_props)

        self._element_classes.append(element_class)

        return element_class

    @property
    def bindings(self) -> List[Type[SvdElement]]:
        """Get the list of registered bindings."""
        return self._element_classes


def get_binding_elem_props(
    klass: Type[objectify.ObjectifiedElement],
) -> Mapping[str, Elem]:
    """Get the XML element properties of a binding class."""
    try:
        return klass._xml_elem_props  # type: ignore
    except AttributeError as e:
        raise ValueError(f"Class {klass} is not a binding") from e


def make_enum_wrapper(
    enum_cls: Type[CaseInsensitiveStrEnum],
) -> Type[SvdElement]:
    """
    Factory for creating lxml.objectify.ObjectifiedDataElement wrappers around
    CaseInsensitiveStrEnum subclasses.
    """

    class EnumWrapper(SvdElement, objectify.ObjectifiedDataElement):
        @property
        def pyval(self) -> CaseInsensitiveStrEnum:
            return enum_cls((self.text or "").strip())

        def __repr__(self) -> str:
            return super()._repr(props={"text": self.text})

    return EnumWrapper


def iter_element_children(
    element: Optional[objectify.ObjectifiedElement], *tags: str
) -> Iterable[objectify.ObjectifiedElement]:
    """
    Iterate over the children of an lxml element, optionally filtered by tag.
    If the element is None, an empty iterator is returned.
    """
    if element is None:
        return iter(())

    child_iter = element.iterchildren(*tags)  # type: ignore
    return typing.cast(Iterable[objectify.ObjectifiedElement], child_iter)


def read_lenient(node: objectify.ObjectifiedElement, prop: str, default: Any = None) -> Any:
    """
    Read a binding property, substituting the default if the underlying element is missing or
    malformed. The validator is responsible for reporting such elements.
    """
    try:
        value = getattr(node, prop)
    except (AttributeError, ValueError):
        return default

    return default if value is None else value
