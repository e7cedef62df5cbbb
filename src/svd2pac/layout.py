# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Address and bit level layout of a device model.

For every concrete register the absolute address is computed, and for every field the
right-aligned mask and the bit offset. The layout is checked for overlapping fields and for
registers or peripherals that collide without being declared as aliases.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from functools import cached_property
from typing import Callable, Dict, Iterator, List, Mapping, Sequence, Tuple

import numpy as np

import svd2pac

from .bindings import Access
from .device import Device, Field, Peripheral, Register
from .errors import SvdLayoutError
from .validation import NATIVE_REGISTER_SIZES


@dataclass(frozen=True)
class FieldLayout:
    """Bit position of a field within its register."""

    name: str

    # Position of the least significant bit of the field.
    offset: int

    width: int

    # Mask of the field value, aligned to bit 0 regardless of the field offset.
    mask: int

    access: Access

    field: Field

    def extract(self, raw: int) -> int:
        """Extract the field value from a raw register value."""
        return (raw >> self.offset) & self.mask

    def insert(self, raw: int, value: int) -> int:
        """Return the raw register value with the field set to value, other bits unchanged."""
        return (raw & ~(self.mask << self.offset)) | ((value & self.mask) << self.offset)


@dataclass(frozen=True)
class RegisterLayout:
    """Absolute location of a concrete register."""

    peripheral: Peripheral
    register: Register
    address: int
    fields: Tuple[FieldLayout, ...]

    @property
    def name(self) -> str:
        """Fully qualified register name, e.g. 'TIMER.SR'."""
        return f"{self.peripheral.name}.{self.register.name}"

    @property
    def size(self) -> int:
        return self.register.size

    @property
    def access(self) -> Access:
        return self.register.access

    @property
    def reset_value(self) -> int:
        return self.register.reset_value

    @property
    def byte_size(self) -> int:
        return self.register.size // 8

    @property
    def is_alias(self) -> bool:
        return self.register.is_alias or self.peripheral.is_alias


@dataclass(frozen=True)
class PeripheralLayout:
    """Registers of a concrete peripheral, with their absolute addresses."""

    peripheral: Peripheral
    base_address: int
    registers: Tuple[RegisterLayout, ...]

    @property
    def name(self) -> str:
        return self.peripheral.name


@dataclass(frozen=True)
class DeviceLayout:
    """Layout of all concrete registers of a device, in declaration order."""

    device: Device
    peripherals: Tuple[PeripheralLayout, ...]

    @property
    def registers(self) -> Iterator[RegisterLayout]:
        for peripheral in self.peripherals:
            yield from peripheral.registers

    @cached_property
    def _names_by_address(self) -> Mapping[int, Tuple[str, ...]]:
        names: Dict[int, List[str]] = defaultdict(list)
        for register in self.registers:
            names[register.address].append(register.name)
        return {address: tuple(sorted(names[address])) for address in sorted(names)}

    def names_by_address(self) -> Mapping[int, Tuple[str, ...]]:
        """
        Map from absolute address to the fully qualified names of all registers at that
        address, sorted by address. Aliased addresses map to more than one name.
        """
        return self._names_by_address


def analyze(device: Device) -> DeviceLayout:
    """
    Compute the layout of a device.

    :param device: Device model.

    :raises SvdLayoutError: If an address cannot be computed, a field does not fit in its
                            register, two fields of a register overlap, or two non-aliased
                            peripherals or registers collide.
    :return: Device layout.
    """
    peripherals = tuple(_analyze_peripheral(p) for p in device.peripherals)

    _check_collisions(
        peripherals,
        starts=[p.base_address for p in peripherals],
        ends=[p.base_address + 1 for p in peripherals],
        aliased=lambda p: p.peripheral.is_alias,
        describe=lambda p: p.name,
        explanation="Peripherals share the same base address",
    )

    registers = [r for p in peripherals for r in p.registers]
    _check_collisions(
        registers,
        starts=[r.address for r in registers],
        ends=[r.address + r.byte_size for r in registers],
        aliased=lambda r: r.is_alias,
        describe=lambda r: f"{r.name} @ 0x{r.address:x}",
        explanation="Registers overlap without being declared as alternates",
    )

    layout = DeviceLayout(device=device, peripherals=peripherals)
    svd2pac.log.info(f"Computed layout of {len(registers)} register(s)")

    return layout


def _analyze_peripheral(peripheral: Peripheral) -> PeripheralLayout:
    if peripheral.base_address is None:
        raise SvdLayoutError(
            [peripheral.name], "Address cannot be computed: base address is missing"
        )

    base_address: int = peripheral.base_address
    registers = tuple(
        _analyze_register(peripheral, base_address, register)
        for register in peripheral.registers
    )

    return PeripheralLayout(
        peripheral=peripheral,
        base_address=base_address,
        registers=registers,
    )


def _analyze_register(
    peripheral: Peripheral, base_address: int, register: Register
) -> RegisterLayout:
    qualified_name = f"{peripheral.name}.{register.name}"

    if register.offset is None:
        raise SvdLayoutError(
            [qualified_name], "Address cannot be computed: address offset is missing"
        )

    if register.size not in NATIVE_REGISTER_SIZES:
        raise SvdLayoutError(
            [qualified_name],
            f"Register size {register.size} is not one of {NATIVE_REGISTER_SIZES}",
        )

    if not 0 <= register.reset_value < (1 << register.size):
        raise SvdLayoutError(
            [qualified_name],
            f"Reset value 0x{register.reset_value:x} does not fit in {register.size} bits",
        )

    fields: List[FieldLayout] = []
    for field in register.fields:
        if field.offset is None or field.width is None:
            raise SvdLayoutError(
                [f"{qualified_name}.{field.name}"], "Field bit range is missing"
            )

        if field.width <= 0 or field.offset < 0:
            raise SvdLayoutError(
                [f"{qualified_name}.{field.name}"],
                f"Invalid bit range (offset {field.offset}, width {field.width})",
            )

        if field.offset + field.width > register.size:
            raise SvdLayoutError(
                [f"{qualified_name}.{field.name}"],
                f"Field bits [{field.offset + field.width - 1}:{field.offset}] exceed the "
                f"{register.size} bit register",
            )

        fields.append(
            FieldLayout(
                name=field.name,
                offset=field.offset,
                width=field.width,
                mask=(1 << field.width) - 1,
                access=field.access,
                field=field,
            )
        )

    _check_collisions(
        fields,
        starts=[f.offset for f in fields],
        ends=[f.offset + f.width for f in fields],
        aliased=lambda f: False,
        describe=lambda f: f"{qualified_name}.{f.name}",
        explanation="Fields have overlapping bit ranges",
    )

    return RegisterLayout(
        peripheral=peripheral,
        register=register,
        address=base_address + register.offset,
        fields=tuple(fields),
    )


def _check_collisions(
    items: Sequence,
    starts: Sequence[int],
    ends: Sequence[int],
    aliased: Callable[[object], bool],
    describe: Callable[[object], str],
    explanation: str,
) -> None:
    """
    Check that no two of the half-open ranges [start, end) intersect, unless one of the items
    involved is an alias.

    :raises SvdLayoutError: On the first intersection between two non-aliased items.
    """
    if len(items) < 2:
        return

    start_arr = np.array(starts, dtype=np.uint64)
    end_arr = np.array(ends, dtype=np.uint64)

    order = np.argsort(start_arr, kind="stable")
    sorted_starts = start_arr[order]
    sorted_ends = end_arr[order]

    # A range intersects an earlier one iff it starts before the furthest end seen so far.
    furthest_end = np.maximum.accumulate(sorted_ends)
    candidates = np.nonzero(sorted_starts[1:] < furthest_end[:-1])[0] + 1

    for pos in candidates:
        item = items[order[pos]]
        earlier = order[:pos][sorted_ends[:pos] > sorted_starts[pos]]
        for other_idx in earlier:
            other = items[other_idx]
            if aliased(item) or aliased(other):
                continue
            raise SvdLayoutError([describe(other), describe(item)], explanation)
