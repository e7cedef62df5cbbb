# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
High level representation of a SVD device.

The model is built once from the raw element tree, after validation, and is immutable
afterwards. 'derivedFrom' inheritance is resolved by copying the register set of the parent
peripheral and overlaying the registers declared by the derived peripheral itself. Arrays are
expanded into concrete elements, and clusters are flattened into registers with dotted names.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import (
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

import svd2pac

from . import bindings
from ._bindings import is_dont_care, read_lenient, to_int
from ._device import (
    DIM_PLACEHOLDER,
    DerivationCycleError,
    dim_template_name,
    expand_dim_names,
    is_list_style,
    parse_dim_index,
    svd_element_repr,
    topo_sort_derived,
)
from .bindings import Access
from .errors import SvdModelBuildError
from .options import Options, ValidationLevel
from .validation import (
    DEFAULT_ADDRESS_UNIT_BITS,
    DEFAULT_REGISTER_ACCESS,
    DEFAULT_REGISTER_SIZE,
    DEFAULT_RESET_VALUE,
    DEFAULT_WIDTH,
)


@dataclass(frozen=True)
class ArrayMember:
    """Position of an element within a list-style ('NAME[%s]') array."""

    # Name of the array, without the index placeholder.
    group: str

    # Index of the element in the array.
    index: int

    # Number of elements in the array.
    length: int

    # Address (or bit offset, for fields) increment between elements.
    step: int


@dataclass(frozen=True)
class EnumeratedValue:
    """Named value of a field."""

    name: str
    value: int
    description: Optional[str] = None


@dataclass(frozen=True)
class Field:
    """Bit field of a register."""

    name: str

    # Position of the least significant bit of the field. None if not given in the document.
    offset: Optional[int]

    # Number of bits in the field. None if not given in the document.
    width: Optional[int]

    access: Access
    description: Optional[str] = None
    enumerated_values: Tuple[EnumeratedValue, ...] = ()
    array: Optional[ArrayMember] = None

    def __repr__(self) -> str:
        return svd_element_repr(
            self.__class__,
            self.name,
            kv_props={"offset": self.offset, "width": self.width},
        )


@dataclass(frozen=True)
class Register(Mapping[str, Field]):
    """Concrete register of a peripheral. Mapping from field name to field."""

    name: str

    # Offset of the register from the base address of its peripheral.
    offset: Optional[int]

    size: int
    access: Access
    reset_value: int
    description: Optional[str] = None
    fields: Tuple[Field, ...] = ()
    array: Optional[ArrayMember] = None

    # Name of the register or group this register is an intentional alias of.
    alias_of: Optional[str] = None

    @property
    def is_alias(self) -> bool:
        return self.alias_of is not None

    @cached_property
    def _field_map(self) -> Mapping[str, Field]:
        return {f.name: f for f in self.fields}

    def __getitem__(self, name: str) -> Field:
        return self._field_map[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._field_map)

    def __len__(self) -> int:
        return len(self.fields)

    def __repr__(self) -> str:
        return svd_element_repr(
            self.__class__, self.name, length=len(self), kv_props={"offset": self.offset}
        )


@dataclass(frozen=True)
class Interrupt:
    """Interrupt of a peripheral."""

    name: str
    value: int
    description: Optional[str] = None


@dataclass(frozen=True)
class Cpu:
    """Description of the device processor."""

    name: Optional[str] = None
    nvic_priority_bits: Optional[int] = None
    has_fpu: bool = False
    has_mpu: bool = False
    has_vendor_systick: bool = False
    num_interrupts: Optional[int] = None


@dataclass(frozen=True)
class Peripheral(Mapping[str, Register]):
    """Concrete peripheral instance. Mapping from register name to register."""

    name: str
    base_address: Optional[int]

    # Name shared by all peripherals with an identical register set, e.g. all members of an
    # array or peripherals derived from the same parent without additional registers.
    type_name: str

    registers: Tuple[Register, ...] = ()
    description: Optional[str] = None
    group_name: Optional[str] = None
    interrupts: Tuple[Interrupt, ...] = ()
    array: Optional[ArrayMember] = None
    derived_from: Optional[str] = None

    # Name of the peripheral this peripheral is an intentional alias of.
    alias_of: Optional[str] = None

    @property
    def is_alias(self) -> bool:
        return self.alias_of is not None

    @cached_property
    def _register_map(self) -> Mapping[str, Register]:
        return {r.name: r for r in self.registers}

    def __getitem__(self, name: str) -> Register:
        return self._register_map[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._register_map)

    def __len__(self) -> int:
        return len(self.registers)

    def __repr__(self) -> str:
        return svd_element_repr(
            self.__class__, self.name, address=self.base_address, length=len(self)
        )


@dataclass(frozen=True)
class Device(Mapping[str, Peripheral]):
    """Representation of a SVD device. Mapping from peripheral name to peripheral."""

    name: str
    peripherals: Tuple[Peripheral, ...] = ()
    version: Optional[str] = None
    description: Optional[str] = None
    vendor: Optional[str] = None
    license_text: Optional[str] = None
    cpu: Optional[Cpu] = None
    address_unit_bits: int = DEFAULT_ADDRESS_UNIT_BITS
    width: int = DEFAULT_WIDTH
    default_size: int = DEFAULT_REGISTER_SIZE
    default_access: Access = DEFAULT_REGISTER_ACCESS
    default_reset_value: int = DEFAULT_RESET_VALUE

    @cached_property
    def _peripheral_map(self) -> Mapping[str, Peripheral]:
        return {p.name: p for p in self.peripherals}

    @cached_property
    def interrupts(self) -> Tuple[Interrupt, ...]:
        """All interrupts of the device, sorted by interrupt number, without duplicates."""
        seen: Dict[str, Interrupt] = {}
        for peripheral in self.peripherals:
            for interrupt in peripheral.interrupts:
                seen.setdefault(interrupt.name, interrupt)
        return tuple(sorted(seen.values(), key=lambda i: (i.value, i.name)))

    def __getitem__(self, name: str) -> Peripheral:
        return self._peripheral_map[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._peripheral_map)

    def __len__(self) -> int:
        return len(self.peripherals)

    def __repr__(self) -> str:
        return svd_element_repr(self.__class__, self.name, length=len(self))


def build_device(
    device: bindings.DeviceElement, options: Options = Options()
) -> Device:
    """
    Build the immutable device model from a validated SVD element tree.

    :param device: Root element returned by the parser.
    :param options: Generation options.

    :raises SvdModelBuildError: If the model cannot be built unambiguously.
    :return: Device model.
    """
    model = _ModelBuilder(device, options).build()
    svd2pac.log.info(
        f"Built device model for {model.name} with {len(model)} peripheral(s)"
    )
    return model


class _Instance(NamedTuple):
    """One concrete element of a (possibly repeated) SVD element."""

    name: str
    delta: int
    array: Optional[ArrayMember]


class _PeripheralTemplate(NamedTuple):
    """Resolved content of a peripheral element, shared by all its instances."""

    registers: Tuple[Register, ...]
    props: bindings.RegisterProperties
    description: Optional[str]
    group_name: Optional[str]
    type_name: str
    array_type: bool


class _ModelBuilder:
    def __init__(self, device: bindings.DeviceElement, options: Options) -> None:
        self._device = device
        self._options = options

        props = device.register_properties
        self._default_size: int = (
            props.size if props.size is not None else DEFAULT_REGISTER_SIZE
        )
        self._default_access: Access = (
            props.access if props.access is not None else DEFAULT_REGISTER_ACCESS
        )
        self._default_reset_value: int = (
            props.reset_value if props.reset_value is not None else DEFAULT_RESET_VALUE
        )
        self._device_props = bindings.RegisterProperties(
            size=self._default_size,
            access=self._default_access,
            reset_value=self._default_reset_value,
        )

    def build(self) -> Device:
        device = self._device

        address_unit_bits = read_lenient(
            device, "address_unit_bits", DEFAULT_ADDRESS_UNIT_BITS
        )
        if address_unit_bits != 8:
            raise SvdModelBuildError(
                [device], "Only byte-addressable devices (addressUnitBits = 8) are supported"
            )

        return Device(
            name=device.name,
            peripherals=self._build_peripherals(list(device.peripherals)),
            version=read_lenient(device, "version"),
            description=read_lenient(device, "description"),
            vendor=read_lenient(device, "vendor"),
            license_text=read_lenient(device, "license_text"),
            cpu=self._build_cpu(read_lenient(device, "cpu")),
            address_unit_bits=address_unit_bits,
            width=read_lenient(device, "width", DEFAULT_WIDTH),
            default_size=self._default_size,
            default_access=self._default_access.normalized(),
            default_reset_value=self._default_reset_value,
        )

    def _build_cpu(self, cpu: Optional[bindings.Cpu]) -> Optional[Cpu]:
        if cpu is None:
            return None

        return Cpu(
            name=read_lenient(cpu, "name"),
            nvic_priority_bits=read_lenient(cpu, "num_nvic_priority_bits"),
            has_fpu=read_lenient(cpu, "has_fpu", False),
            has_mpu=read_lenient(cpu, "has_mpu", False),
            has_vendor_systick=read_lenient(cpu, "has_vendor_systick", False),
            num_interrupts=read_lenient(cpu, "num_interrupts"),
        )

    def _build_peripherals(
        self, elements: List[bindings.PeripheralElement]
    ) -> Tuple[Peripheral, ...]:
        parents = self._resolve_parents(elements)

        try:
            order = topo_sort_derived(parents)
        except DerivationCycleError as e:
            raise SvdModelBuildError(
                [elements[i] for i in e.indices], "Cycle in 'derivedFrom' attributes"
            ) from e

        # Resolve all templates before expanding, so that derivation does not depend on the
        # order of declaration.
        templates: Dict[int, _PeripheralTemplate] = {}
        for i in order:
            parent = parents[i]
            templates[i] = self._build_peripheral_template(
                elements[i], templates[parent] if parent is not None else None
            )

        _assign_type_names(templates)

        peripherals: List[Peripheral] = []
        for i, element in enumerate(elements):
            peripherals.extend(self._expand_peripheral(element, templates[i]))

        _check_unique(peripherals, "peripheral")

        # An interrupt name must always refer to the same interrupt number.
        interrupt_values: Dict[str, Tuple[int, Peripheral]] = {}
        for peripheral in peripherals:
            for interrupt in peripheral.interrupts:
                value, owner = interrupt_values.setdefault(
                    interrupt.name, (interrupt.value, peripheral)
                )
                if value != interrupt.value:
                    raise SvdModelBuildError(
                        [owner, peripheral],
                        f"Interrupt {interrupt.name} is declared with different numbers "
                        f"({value} and {interrupt.value})",
                    )

        return tuple(peripherals)

    def _resolve_parents(
        self, elements: Sequence[bindings.PeripheralElement]
    ) -> List[Optional[int]]:
        """Find the index of the parent of each peripheral, by any of the names it is known by."""
        index: Dict[str, int] = {}
        aliases: Dict[str, int] = {}

        for i, element in enumerate(elements):
            name = read_lenient(element, "name", "")
            index.setdefault(name, i)
            aliases.setdefault(dim_template_name(name), i)

            dimensions = _read_dimensions(element)
            if dimensions is not None:
                try:
                    indices = parse_dim_index(dimensions.index_text, dimensions.length)
                except ValueError:
                    # Reported when the peripheral itself is expanded
                    continue
                for instance_name in expand_dim_names(name, indices):
                    aliases.setdefault(instance_name, i)

        parents: List[Optional[int]] = []
        for element in elements:
            derived_from = element.derived_from
            if derived_from is None:
                parents.append(None)
                continue

            parent = index.get(derived_from, aliases.get(derived_from))
            if parent is None:
                raise SvdModelBuildError(
                    [element],
                    f"Peripheral is derived from '{derived_from}', which does not exist",
                )
            parents.append(parent)

        return parents

    def _build_peripheral_template(
        self,
        element: bindings.PeripheralElement,
        parent: Optional[_PeripheralTemplate],
    ) -> _PeripheralTemplate:
        base_props = parent.props if parent is not None else self._device_props
        props = element.get_register_properties(base_props)
        name = read_lenient(element, "name", "")
        alias = read_lenient(element, "alternate_peripheral") is not None

        own_registers = self._build_registers(
            element.registers, props, prefix="", base_offset=0, alias=alias
        )

        if parent is None:
            registers = own_registers
        else:
            # Copy the parent registers, then let registers with the same name override them.
            own_by_name = {r.name: r for r in own_registers}
            registers = [own_by_name.pop(r.name, r) for r in parent.registers]
            registers.extend(r for r in own_registers if r.name in own_by_name)

        _check_unique(registers, f"register in peripheral {name}")

        if _read_dimensions(element) is not None:
            type_name = dim_template_name(name)
            array_type = True
        elif parent is not None and not own_registers:
            type_name = parent.type_name
            array_type = parent.array_type
        else:
            type_name = name
            array_type = False

        description = read_lenient(element, "description")
        group_name = read_lenient(element, "group_name")
        if parent is not None:
            description = description or parent.description
            group_name = group_name or parent.group_name

        return _PeripheralTemplate(
            registers=tuple(registers),
            props=props,
            description=description,
            group_name=group_name,
            type_name=type_name,
            array_type=array_type,
        )

    def _expand_peripheral(
        self, element: bindings.PeripheralElement, template: _PeripheralTemplate
    ) -> Iterator[Peripheral]:
        base_address = read_lenient(element, "base_address")
        interrupts = tuple(self._build_interrupts(element))

        for instance in _instances(element, read_lenient(element, "name", "")):
            yield Peripheral(
                name=instance.name,
                base_address=(
                    base_address + instance.delta if base_address is not None else None
                ),
                type_name=template.type_name,
                registers=template.registers,
                description=template.description,
                group_name=template.group_name,
                interrupts=interrupts,
                array=instance.array,
                derived_from=element.derived_from,
                alias_of=read_lenient(element, "alternate_peripheral"),
            )

    def _build_interrupts(
        self, element: bindings.PeripheralElement
    ) -> Iterator[Interrupt]:
        for interrupt in element.interrupts:
            name = read_lenient(interrupt, "name")
            value = read_lenient(interrupt, "value")
            if not name or value is None:
                continue
            yield Interrupt(
                name=name,
                value=value,
                description=read_lenient(interrupt, "description"),
            )

    def _build_registers(
        self,
        nodes: Iterable[Union[bindings.RegisterElement, bindings.ClusterElement]],
        base_props: bindings.RegisterProperties,
        prefix: str,
        base_offset: Optional[int],
        alias: bool,
    ) -> List[Register]:
        registers: List[Register] = []

        for node in nodes:
            name = read_lenient(node, "name", "")
            if node.is_derived:
                svd2pac.log.warning(
                    f"{node.svd_path}: 'derivedFrom' on {node.tag} elements is not "
                    "supported and is ignored"
                )

            offset = read_lenient(node, "offset")
            if offset is not None and base_offset is not None:
                offset = base_offset + offset
            else:
                offset = None

            props = node.get_register_properties(base_props)

            if isinstance(node, bindings.ClusterElement):
                cluster_alias = alias or read_lenient(node, "alternate_cluster") is not None
                for instance in _instances(node, name):
                    registers.extend(
                        self._build_registers(
                            node.registers,
                            props,
                            prefix=f"{prefix}{instance.name}.",
                            base_offset=(
                                offset + instance.delta if offset is not None else None
                            ),
                            alias=cluster_alias,
                        )
                    )
                continue

            alias_of = read_lenient(node, "alternate_register") or read_lenient(
                node, "alternate_group"
            )
            if alias_of is None and alias:
                alias_of = prefix.rstrip(".") or name

            access = props.access if props.access is not None else DEFAULT_REGISTER_ACCESS
            fields = tuple(self._build_fields(node, access.normalized()))
            _check_unique(fields, f"field in register {prefix}{name}")

            for instance in _instances(node, name, prefix=prefix):
                registers.append(
                    Register(
                        name=f"{prefix}{instance.name}",
                        offset=offset + instance.delta if offset is not None else None,
                        size=props.size if props.size is not None else DEFAULT_REGISTER_SIZE,
                        access=access.normalized(),
                        reset_value=(
                            props.reset_value
                            if props.reset_value is not None
                            else DEFAULT_RESET_VALUE
                        ),
                        description=read_lenient(node, "description"),
                        fields=fields,
                        array=instance.array,
                        alias_of=alias_of,
                    )
                )

        return registers

    def _build_fields(
        self, register: bindings.RegisterElement, register_access: Access
    ) -> Iterator[Field]:
        for element in register.fields:
            name = read_lenient(element, "name", "")
            if element.is_derived:
                svd2pac.log.warning(
                    f"{element.svd_path}: 'derivedFrom' on field elements is not supported "
                    "and is ignored"
                )

            bit_range = read_lenient(element, "bit_range")
            access = read_lenient(element, "access")
            access = access.normalized() if access is not None else register_access
            width = bit_range.width if bit_range is not None else None
            enumerated_values = self._build_enumerated_values(element, width)

            for instance in _instances(element, name):
                yield Field(
                    name=instance.name,
                    offset=(
                        bit_range.offset + instance.delta if bit_range is not None else None
                    ),
                    width=width,
                    access=access,
                    description=read_lenient(element, "description"),
                    enumerated_values=enumerated_values,
                    array=instance.array,
                )

    def _build_enumerated_values(
        self, element: bindings.FieldElement, width: Optional[int]
    ) -> Tuple[EnumeratedValue, ...]:
        values: Dict[str, EnumeratedValue] = {}

        for enumeration in element.enumerations:
            if enumeration.is_derived:
                svd2pac.log.warning(
                    f"{enumeration.svd_path}: 'derivedFrom' on enumeratedValues elements "
                    "is not supported and is ignored"
                )

            for enum_element in enumeration.enums:
                enum_value = self._build_enumerated_value(enum_element)
                if enum_value is None:
                    continue

                if width is not None and not 0 <= enum_value.value < (1 << width):
                    raise SvdModelBuildError(
                        [enum_element],
                        f"Enumerated value {enum_value.name} = {enum_value.value} does not "
                        f"fit in the {width} bit field {read_lenient(element, 'name')}",
                    )

                existing = values.setdefault(enum_value.name, enum_value)
                if existing.value != enum_value.value:
                    raise SvdModelBuildError(
                        [enum_element],
                        f"Enumerated value {enum_value.name} is declared with different "
                        f"values ({existing.value} and {enum_value.value})",
                    )

        return tuple(values.values())

    def _build_enumerated_value(
        self, element: bindings.EnumeratedValue
    ) -> Optional[EnumeratedValue]:
        """Build an enumerated value, or return None if it is unsupported or incomplete."""
        if read_lenient(element, "is_default", False):
            return None

        name = read_lenient(element, "name")
        raw_value = read_lenient(element, "value")

        if not name or not raw_value or is_dont_care(raw_value):
            self._log_dropped(element)
            return None

        try:
            value = to_int(raw_value)
        except ValueError:
            self._log_dropped(element)
            return None

        return EnumeratedValue(
            name=name, value=value, description=read_lenient(element, "description")
        )

    def _log_dropped(self, element: bindings.EnumeratedValue) -> None:
        # The validator has already reported the problem at the other levels.
        if self._options.validation_level is ValidationLevel.DISABLED:
            svd2pac.log.debug(f"{element.svd_path}: enumerated value dropped")


def _read_dimensions(node: bindings.DimElementGroupMixin) -> Optional[bindings.RawDimensions]:
    try:
        return node.dimensions
    except ValueError:
        return None


def _instances(
    node: bindings.DimElementGroupMixin, name: str, prefix: str = ""
) -> List[_Instance]:
    """
    Expand a possibly repeated element into its concrete instances, in index order.

    :param node: Element to expand.
    :param name: Name of the element, possibly containing an index placeholder.
    :param prefix: Prefix of the array group name, used for registers in clusters.
    :raises SvdModelBuildError: If the dim index is malformed.
    """
    dimensions = _read_dimensions(node)
    if dimensions is None:
        return [_Instance(name=name, delta=0, array=None)]

    try:
        indices = parse_dim_index(dimensions.index_text, dimensions.length)
    except ValueError as e:
        raise SvdModelBuildError([node], f"Invalid array: {e}") from e

    names = expand_dim_names(name, indices)
    list_style = is_list_style(name) or DIM_PLACEHOLDER not in name
    group = f"{prefix}{dim_template_name(name)}"

    return [
        _Instance(
            name=instance_name,
            delta=k * dimensions.step,
            array=(
                ArrayMember(
                    group=group, index=k, length=dimensions.length, step=dimensions.step
                )
                if list_style
                else None
            ),
        )
        for k, instance_name in enumerate(names)
    ]


def _check_unique(
    elements: Sequence[Union[Peripheral, Register, Field]], kind: str
) -> None:
    seen: Dict[str, Union[Peripheral, Register, Field]] = {}
    for element in elements:
        previous = seen.setdefault(element.name, element)
        if previous is not element:
            raise SvdModelBuildError(
                [previous, element], f"Duplicate {kind} name {element.name}"
            )


def _assign_type_names(templates: Dict[int, _PeripheralTemplate]) -> None:
    """
    Make peripheral type names unique, in place.

    Templates requesting the same type name share it only if their registers are equal.
    Otherwise, the array template is renamed with an '_ARRAY' suffix, so that a plain
    peripheral such as 'TIMER' keeps its name next to an array such as 'TIMER%s'.

    :param templates: Peripheral templates by declaration index.
    """
    claims: List[Tuple[str, Tuple[Register, ...], str]] = []
    taken: Set[str] = set()

    for i in sorted(templates, key=lambda i: (templates[i].array_type, i)):
        template = templates[i]
        requested = template.type_name

        for claimed, registers, final in claims:
            if claimed == requested and registers == template.registers:
                break
        else:
            final = requested
            if final in taken:
                final = f"{requested}_ARRAY"
                suffix = 2
                while final in taken:
                    final = f"{requested}_ARRAY{suffix}"
                    suffix += 1
                svd2pac.log.info(
                    f"Peripheral type {requested} is already taken, using {final}"
                )
            claims.append((requested, template.registers, final))
            taken.add(final)

        templates[i] = template._replace(type_name=final)
