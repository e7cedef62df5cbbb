# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
"Low-level" read-only Python representation of the subset of the SVD format that is used for
generating peripheral access crates. Each type of element in the SVD XML tree is represented by a
class in this module. The class properties correspond more or less directly to the XML
elements/attributes, with some abstractions and simplifications added for convenience.

Elements that are documented limitations of the generator (resetMask, protection,
writeConstraint, modifiedWriteValues, readAction, headerEnumName) are intentionally not bound.
They are accepted in the document but never read.

Based on CMSIS-SVD schema v1.3.9.
"""

from __future__ import annotations

import enum
import re
import typing
from dataclasses import dataclass
from typing import Iterator, NamedTuple, Optional, Union

from lxml import objectify
from lxml.objectify import BoolElement

from ._bindings import (
    Attr,
    BindingRegistry,
    CaseInsensitiveStrEnum,
    Elem,
    SvdElement,
    SvdIntElement,
    get_binding_elem_props,
    iter_element_children,
    make_enum_wrapper,
    to_int,
)

# Container for classes that represent non-leaf elements in the SVD XML tree.
BINDING_REGISTRY = BindingRegistry()

# Alias for the BINDING_REGISTRY.add for convenience.
binding = BINDING_REGISTRY.add

# Alias for the BINDING_REGISTRY.bindings for convenience.
BINDINGS = BINDING_REGISTRY.bindings

# Utility function for the parse module
get_binding_elem_props = get_binding_elem_props

# Tags that are accepted in the document but whose semantics are not implemented.
IGNORED_TAGS = (
    "resetMask",
    "protection",
    "writeConstraint",
    "modifiedWriteValues",
    "readAction",
    "headerEnumName",
)


class SvdStringElement(objectify.StringElement):
    """Element containing an SVD string. Leading and trailing whitespace is removed."""

    @property
    def pyval(self) -> str:
        return (self.text or "").strip()


@enum.unique
class Access(CaseInsensitiveStrEnum):
    """
    Access rights for a given register or field.
    See "accessType" in the SVD schema.
    """

    # Read access is permitted. Write operations have an undefined result.
    READ_ONLY = "read-only"
    # Write access is permitted. Read operations have an undefined result.
    WRITE_ONLY = "write-only"
    # Read and write accesses are permitted.
    READ_WRITE = "read-write"
    # Only the first write after reset has an effect. Read operations have an undefined results.
    WRITE_ONCE = "writeOnce"
    # Only the first write after reset has an effect. Read access is permitted.
    READ_WRITE_ONCE = "read-writeOnce"

    def normalized(self) -> Access:
        """
        Map the access to one of read-only, write-only and read-write.
        The write-once variants are indistinguishable from their plain counterparts at the
        accessor level.
        """
        if self is Access.WRITE_ONCE:
            return Access.WRITE_ONLY
        if self is Access.READ_WRITE_ONCE:
            return Access.READ_WRITE
        return self


AccessElement = make_enum_wrapper(Access)


@binding
class Cpu(SvdElement):
    """Description of the device processor."""

    TAG: str = "cpu"

    # CPU name, e.g. "CM4".
    name: Elem[str] = Elem("name", SvdStringElement)

    # True if the CPU has a memory protection unit (MPU).
    has_mpu: Elem[Optional[bool]] = Elem("mpuPresent", BoolElement, default=None)

    # True if the CPU has a floating point unit (FPU).
    has_fpu: Elem[Optional[bool]] = Elem("fpuPresent", BoolElement, default=None)

    # Bit width of interrupt priority levels in the Nested Vectored Interrupt Controller (NVIC).
    num_nvic_priority_bits: Elem[Optional[int]] = Elem(
        "nvicPrioBits", SvdIntElement, default=None
    )

    # True if the CPU has a vendor-specific SysTick Timer.
    has_vendor_systick: Elem[Optional[bool]] = Elem(
        "vendorSystickConfig", BoolElement, default=None
    )

    # Maximum interrupt number in the CPU plus one.
    num_interrupts: Elem[Optional[int]] = Elem(
        "deviceNumInterrupts", SvdIntElement, default=None
    )


class DerivedMixin(objectify.ObjectifiedElement):
    """Common functionality for elements that contain a SVD 'derivedFrom' attribute."""

    # Name of the element that this element is derived from.
    derived_from: Attr[Optional[str]] = Attr("derivedFrom", default=None)

    @property
    def is_derived(self) -> bool:
        """Return True if the element is derived from another element."""
        return self.derived_from is not None


@binding
class EnumeratedValue(SvdElement):
    """Value definition for a field."""

    TAG: str = "enumeratedValue"

    # Name of the enumerated value.
    name: Elem[str] = Elem("name", SvdStringElement)

    # Description of the enumerated value.
    description: Elem[Optional[str]] = Elem(
        "description", SvdStringElement, default=None
    )

    # Raw value text. Kept as a string since it may be a pattern with don't-care bits.
    value: Elem[Optional[str]] = Elem("value", SvdStringElement, default=None)

    # True if the enumerated value is the default value of the field.
    is_default: Elem[bool] = Elem("isDefault", BoolElement, default=False)

    def __repr__(self) -> str:
        return super()._repr(props={"name": self.findtext("name")})


@binding
class Enumeration(SvdElement, DerivedMixin):
    """Container for enumerated values."""

    TAG: str = "enumeratedValues"

    # Name of the enumeration.
    name: Elem[Optional[str]] = Elem("name", SvdStringElement, default=None)

    @property
    def enums(self) -> Iterator[EnumeratedValue]:
        """Iterate over all enumerated values."""
        it = iter_element_children(self, EnumeratedValue.TAG)
        return typing.cast(Iterator[EnumeratedValue], it)

    # (internal) Enumerated values
    _enumerated_values: Elem[EnumeratedValue] = Elem("enumeratedValue", EnumeratedValue)


@binding
class Interrupt(SvdElement):
    """Peripheral interrupt description."""

    TAG: str = "interrupt"

    # Name of the interrupt.
    name: Elem[str] = Elem("name", SvdStringElement)

    # Description of the interrupt.
    description: Elem[Optional[str]] = Elem(
        "description", SvdStringElement, default=None
    )

    # Interrupt number.
    value: Elem[int] = Elem("value", SvdIntElement)


class BitRange(NamedTuple):
    """Bit range of a field."""

    # Bit offset of the field.
    offset: int

    # Bit width of the field.
    width: int


_BIT_RANGE_PATTERN = re.compile(r"^\[\s*(\w+)\s*:\s*(\w+)\s*\]$")


@dataclass(frozen=True)
class RawDimensions:
    """Dimensions of a repeated SVD element, as written in the document."""

    # Number of times the element is repeated.
    length: int

    # Address (or bit, for fields) increment between each element.
    step: int

    # Unparsed dimIndex text, if any.
    index_text: Optional[str]


class DimElementGroupMixin(objectify.ObjectifiedElement):
    """Common functionality for elements that contain a SVD 'dimElementGroup'."""

    @property
    def dimensions(self) -> Optional[RawDimensions]:
        """
        Get the dimensions of the element, if it is repeated.

        :raises ValueError: If 'dim' is given without 'dimIncrement'.
        """
        if self._dim is None:
            return None

        if self._dim_increment is None:
            raise ValueError("'dim' given without 'dimIncrement'")

        return RawDimensions(
            length=self._dim,
            step=self._dim_increment,
            index_text=self._dim_index,
        )

    _dim: Elem[Optional[int]] = Elem("dim", SvdIntElement, default=None)
    _dim_increment: Elem[Optional[int]] = Elem(
        "dimIncrement", SvdIntElement, default=None
    )
    _dim_index: Elem[Optional[str]] = Elem("dimIndex", SvdStringElement, default=None)


@binding
class FieldElement(SvdElement, DimElementGroupMixin, DerivedMixin):
    """SVD field element."""

    TAG: str = "field"

    # Name of the field.
    name: Elem[str] = Elem("name", SvdStringElement)

    # Description of the field.
    description: Elem[Optional[str]] = Elem(
        "description", SvdStringElement, default=None
    )

    # Access rights of the field.
    access: Elem[Optional[Access]] = Elem("access", AccessElement, default=None)

    @property
    def enumerations(self) -> Iterator[Enumeration]:
        """Iterator over the enumerated value containers of the field (one per usage)."""
        it = iter_element_children(self, Enumeration.TAG)
        return typing.cast(Iterator[Enumeration], it)

    @property
    def bit_range(self) -> Optional[BitRange]:
        """
        Bit range of the field, in any of the three styles permitted by the SVD format.

        :raises ValueError: If the bit range is given but malformed.
        :return: Tuple of the field's bit offset and bit width, or None if not specified.
        """

        if self._lsb is not None and self._msb is not None:
            return BitRange(offset=self._lsb, width=self._msb - self._lsb + 1)

        if self._bit_offset is not None:
            if self._bit_width is None:
                raise ValueError("'bitOffset' given without 'bitWidth'")
            return BitRange(offset=self._bit_offset, width=self._bit_width)

        if self._bit_range is not None:
            match = _BIT_RANGE_PATTERN.match(self._bit_range)
            if match is None:
                raise ValueError(f"Malformed bit range: {self._bit_range}")
            msb, lsb = to_int(match.group(1)), to_int(match.group(2))
            return BitRange(offset=lsb, width=msb - lsb + 1)

        return None

    # (internal) Least significant bit of the field, if specified in the bitRangeLsbMsbStyle style.
    _lsb: Elem[Optional[int]] = Elem("lsb", SvdIntElement, default=None)

    # (internal) Most significant bit of the field, if specified in the bitRangeLsbMsbStyle style.
    _msb: Elem[Optional[int]] = Elem("msb", SvdIntElement, default=None)

    # (internal) Bit offset of the field, if specified in the bitRangeOffsetWidthStyle style.
    _bit_offset: Elem[Optional[int]] = Elem("bitOffset", SvdIntElement, default=None)

    # (internal) Bit width of the field, if specified in the bitRangeOffsetWidthStyle style.
    _bit_width: Elem[Optional[int]] = Elem("bitWidth", SvdIntElement, default=None)

    # (internal) Bit range of the field, given in the form "[msb:lsb]", if specified in the
    # bitRangePattern style.
    _bit_range: Elem[Optional[str]] = Elem("bitRange", SvdStringElement, default=None)

    # (internal) Enumerated value containers.
    _enumerations: Elem[Optional[Enumeration]] = Elem(
        "enumeratedValues", Enumeration, default=None
    )

    def __repr__(self) -> str:
        return super()._repr(props={"name": self.findtext("name")})


@binding
class FieldsElement(SvdElement):
    """Container for SVD field elements."""

    TAG: str = "fields"

    # Field elements.
    field: Elem[FieldElement] = Elem("field", FieldElement)


@dataclass
class RegisterProperties:
    """Common SVD device/peripheral/cluster/register level properties."""

    # Size of the register in bits.
    size: Optional[int]

    # Access rights of the register.
    access: Optional[Access]

    # Reset value of the register.
    reset_value: Optional[int]


class RegisterPropertiesGroupMixin(objectify.ObjectifiedElement):
    """Common functionality for elements that contain a SVD 'registerPropertiesGroup'."""

    @property
    def register_properties(self) -> RegisterProperties:
        """Register properties specified in the element itself."""
        return self.get_register_properties()

    def get_register_properties(
        self, base_props: Optional[RegisterProperties] = None
    ) -> RegisterProperties:
        """
        Get the register properties of the element, optionally inheriting from a
        base set of properties. Malformed properties are treated as missing.
        """
        own = RegisterProperties(
            size=_try_get(self, "_size"),
            access=_try_get(self, "_access"),
            reset_value=_try_get(self, "_reset_value"),
        )

        if base_props is None:
            return own

        return RegisterProperties(
            size=own.size if own.size is not None else base_props.size,
            access=own.access if own.access is not None else base_props.access,
            reset_value=(
                own.reset_value
                if own.reset_value is not None
                else base_props.reset_value
            ),
        )

    _size: Elem[Optional[int]] = Elem("size", SvdIntElement, default=None)
    _access: Elem[Optional[Access]] = Elem("access", AccessElement, default=None)
    _reset_value: Elem[Optional[int]] = Elem("resetValue", SvdIntElement, default=None)


def _try_get(node: objectify.ObjectifiedElement, prop: str) -> typing.Any:
    try:
        return getattr(node, prop)
    except ValueError:
        return None


@binding
class RegisterElement(
    SvdElement,
    DimElementGroupMixin,
    RegisterPropertiesGroupMixin,
    DerivedMixin,
):
    """SVD register element."""

    TAG: str = "register"

    # Name of the register.
    name: Elem[str] = Elem("name", SvdStringElement)

    # Description of the register.
    description: Elem[Optional[str]] = Elem(
        "description", SvdStringElement, default=None
    )

    # Alternate group of the register.
    alternate_group: Elem[Optional[str]] = Elem(
        "alternateGroup", SvdStringElement, default=None
    )

    # Name of a different register that corresponds to this register.
    alternate_register: Elem[Optional[str]] = Elem(
        "alternateRegister", SvdStringElement, default=None
    )

    # Address offset of the register, relative to the parent element.
    offset: Elem[Optional[int]] = Elem("addressOffset", SvdIntElement, default=None)

    @property
    def fields(self) -> Iterator[FieldElement]:
        """Iterator over the fields of the register."""
        it = iter_element_children(self._fields, FieldElement.TAG)
        return typing.cast(Iterator[FieldElement], it)

    # (internal) Fields of the register.
    _fields: Elem[Optional[FieldsElement]] = Elem("fields", FieldsElement, default=None)

    def __repr__(self) -> str:
        return super()._repr(props={"name": self.findtext("name")})


@binding
class ClusterElement(
    SvdElement,
    DimElementGroupMixin,
    RegisterPropertiesGroupMixin,
    DerivedMixin,
):
    """SVD cluster element."""

    TAG: str = "cluster"

    # Name of the cluster.
    name: Elem[str] = Elem("name", SvdStringElement)

    # Description of the cluster.
    description: Elem[Optional[str]] = Elem(
        "description", SvdStringElement, default=None
    )

    # Name of a different cluster that corresponds to this cluster.
    alternate_cluster: Elem[Optional[str]] = Elem(
        "alternateCluster", SvdStringElement, default=None
    )

    # Address offset of the cluster, relative to the parent element.
    offset: Elem[Optional[int]] = Elem("addressOffset", SvdIntElement, default=None)

    @property
    def registers(self) -> Iterator[Union[RegisterElement, ClusterElement]]:
        """Iterator over the registers and clusters that are direct children of this cluster."""
        it = iter_element_children(self, RegisterElement.TAG, ClusterElement.TAG)
        return typing.cast(Iterator[Union[RegisterElement, ClusterElement]], it)

    # (internal) Register elements in the cluster.
    _register: Elem[Optional[RegisterElement]] = Elem(
        "register", RegisterElement, default=None
    )

    def __repr__(self) -> str:
        return super()._repr(props={"name": self.findtext("name")})


@binding
class RegistersElement(SvdElement):
    """Container for SVD register/cluster elements."""

    TAG: str = "registers"

    # Cluster elements in the container.
    cluster: Elem[Optional[ClusterElement]] = Elem(
        "cluster", ClusterElement, default=None
    )

    # Register elements in the container.
    register: Elem[Optional[RegisterElement]] = Elem(
        "register", RegisterElement, default=None
    )


@binding
class PeripheralElement(
    SvdElement,
    DimElementGroupMixin,
    RegisterPropertiesGroupMixin,
    DerivedMixin,
):
    """SVD peripheral element."""

    TAG: str = "peripheral"

    # Name of the peripheral.
    name: Elem[str] = Elem("name", SvdStringElement)

    # Description of the peripheral.
    description: Elem[Optional[str]] = Elem(
        "description", SvdStringElement, default=None
    )

    # Base address of the peripheral.
    base_address: Elem[int] = Elem("baseAddress", SvdIntElement)

    # Name of a different peripheral that corresponds to this peripheral.
    alternate_peripheral: Elem[Optional[str]] = Elem(
        "alternatePeripheral", SvdStringElement, default=None
    )

    # Name of the group that the peripheral belongs to.
    group_name: Elem[Optional[str]] = Elem("groupName", SvdStringElement, default=None)

    @property
    def interrupts(self) -> Iterator[Interrupt]:
        """Iterator over the interrupts of the peripheral."""
        it = iter_element_children(self, Interrupt.TAG)
        return typing.cast(Iterator[Interrupt], it)

    @property
    def registers(self) -> Iterator[Union[RegisterElement, ClusterElement]]:
        """Iterator over the registers and clusters that are direct children of this peripheral."""
        it = iter_element_children(
            self._registers, RegisterElement.TAG, ClusterElement.TAG
        )
        return typing.cast(Iterator[Union[RegisterElement, ClusterElement]], it)

    # (internal) Interrupt elements in the peripheral.
    _interrupts: Elem[Optional[Interrupt]] = Elem("interrupt", Interrupt, default=None)

    # (internal) Register/cluster container.
    _registers: Elem[Optional[RegistersElement]] = Elem(
        "registers", RegistersElement, default=None
    )

    def __repr__(self) -> str:
        props = {"name": self.findtext("name")}

        if (derived_from := self.get("derivedFrom")) is not None:
            props["derived_from"] = derived_from

        return super()._repr(props=props)


@binding
class PeripheralsElement(SvdElement):
    """Container for SVD peripheral elements."""

    TAG: str = "peripherals"

    # Peripheral elements in the container.
    peripheral: Elem[Optional[PeripheralElement]] = Elem(
        "peripheral", PeripheralElement, default=None
    )


@binding
class DeviceElement(SvdElement, RegisterPropertiesGroupMixin):
    """SVD device element."""

    TAG: str = "device"

    # Name of the device.
    name: Elem[str] = Elem("name", SvdStringElement)

    # Version of the device.
    version: Elem[str] = Elem("version", SvdStringElement)

    # Full device vendor name.
    vendor: Elem[Optional[str]] = Elem("vendor", SvdStringElement, default=None)

    # Description of the device.
    description: Elem[str] = Elem("description", SvdStringElement)

    # The license to use for the generated package.
    license_text: Elem[Optional[str]] = Elem(
        "licenseText", SvdStringElement, default=None
    )

    # Description of the device processor.
    cpu: Elem[Optional[Cpu]] = Elem("cpu", Cpu, default=None)

    # Number of data bits selected by each address.
    address_unit_bits: Elem[int] = Elem("addressUnitBits", SvdIntElement)

    # Width of the maximum data transfer supported by the device.
    width: Elem[int] = Elem("width", SvdIntElement)

    @property
    def peripherals(self) -> Iterator[PeripheralElement]:
        """Iterate over all peripherals in the device"""
        it = iter_element_children(self._peripherals, PeripheralElement.TAG)
        return typing.cast(Iterator[PeripheralElement], it)

    # (internal) Peripheral elements in the device.
    _peripherals: Elem[PeripheralsElement] = Elem(
        "peripherals",
        PeripheralsElement,
    )
