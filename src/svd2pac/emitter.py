# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Rendering of a device layout into the sources of a Rust peripheral access crate.

The layout is first turned into plain view objects holding every identifier and literal of
the generated code, then the views are rendered with the jinja2 templates in the templates
directory. The templates contain no naming or arithmetic logic of their own.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import Any, Dict, List, Optional, Tuple

import jinja2

import svd2pac

from . import phf
from .bindings import Access
from .device import ArrayMember
from .errors import CodeGenError
from .layout import DeviceLayout, FieldLayout, PeripheralLayout, RegisterLayout
from .options import Options
from .rust import (
    IdentifierScope,
    camel_name,
    constant_name,
    crate_name,
    doc_lines,
    field_accessor_name,
    field_raw_type,
    field_value_type,
    hex_literal,
    integer_type,
    snake_name,
    spec_name,
)
from .targets import TargetStrategy, strategy_for

# Modules of the crate root that are not peripheral modules.
_RESERVED_MODULES = ("common", "tracing", "reg_name", "interrupt_handlers")

# Types and constants of the crate root that are not peripheral types or instances.
_RESERVED_ROOT_NAMES = (
    "Peripherals",
    "CorePeripherals",
    "Interrupt",
    "Vector",
    "NVIC_PRIO_BITS",
    "__INTERRUPTS",
)

_ACCESS_MARKERS = {
    Access.READ_ONLY: "R",
    Access.WRITE_ONLY: "W",
    Access.READ_WRITE: "RW",
}


@dataclass(frozen=True)
class EnumConstant:
    """Named value of an enumerated field."""

    name: str
    value: str
    doc: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FieldView:
    """Accessor of a field, or of all fields of a field array."""

    accessor: str

    # Generic arguments of common::RegisterField.
    generic_args: str

    # True for field arrays, whose accessor takes an index.
    indexed: bool = False
    dim: int = 1
    doc: Tuple[str, ...] = ()

    # Only set for fields with enumerated values.
    enum_spec: Optional[str] = None
    enum_type: Optional[str] = None
    enum_raw_type: Optional[str] = None
    enum_constants: Tuple[EnumConstant, ...] = ()

    @property
    def has_enum(self) -> bool:
        return self.enum_type is not None


@dataclass(frozen=True)
class RegisterView:
    """Accessor and value type of a register, or of all registers of a register array."""

    accessor: str
    type_name: str
    spec: str

    # Module holding the enumerated value types of the register fields.
    module: str

    access: str
    data_type: str

    # Offsets from the peripheral base address, one per array element.
    offsets: Tuple[str, ...]

    reset_value: str
    is_array: bool = False
    doc: Tuple[str, ...] = ()
    fields: Tuple[FieldView, ...] = ()

    @property
    def enum_fields(self) -> Tuple[FieldView, ...]:
        return tuple(f for f in self.fields if f.has_enum)


@dataclass(frozen=True)
class PeripheralTypeView:
    """Peripheral type, shared by all peripherals with the same register set."""

    module: str
    type_name: str
    registers: Tuple[RegisterView, ...]
    doc: Tuple[str, ...] = ()


@dataclass(frozen=True)
class InstanceView:
    """Constant pointing to one peripheral, or to all peripherals of a peripheral array."""

    name: str
    module: str
    type_name: str
    addresses: Tuple[str, ...]
    is_array: bool = False
    doc: Tuple[str, ...] = ()


def emit(
    layout: DeviceLayout, options: Options = Options(), license_text: Optional[str] = None
) -> Dict[str, str]:
    """
    Render the sources of the crate.

    :param layout: Layout of the device.
    :param options: Generation options.
    :param license_text: License placed in the header of every source. Defaults to the
                         license of the device.

    :raises CodeGenError: If two elements map to the same identifier, the perfect hash of the
                          register names cannot be built or a template cannot be rendered.
    :return: Map from path relative to the crate root to file contents, sorted by path.
    """
    return Emitter(layout, options, license_text).emit()


class Emitter:
    """Renders the sources and manifest of the crate for one device layout."""

    def __init__(
        self,
        layout: DeviceLayout,
        options: Options = Options(),
        license_text: Optional[str] = None,
    ) -> None:
        self._layout = layout
        self._options = options
        self._strategy: TargetStrategy = strategy_for(options.target)
        self._license_text = (
            license_text if license_text is not None else layout.device.license_text
        )
        self._env = _make_environment()

    @property
    def crate_name(self) -> str:
        return self._options.package_name or crate_name(self._layout.device.name)

    @cached_property
    def header(self) -> str:
        """Comment placed at the top of every generated Rust source."""
        lines = [
            f"// Generated by svd2pac {svd2pac.__version__} from the description of "
            f"{self._layout.device.name}. Do not edit."
        ]
        if self._license_text:
            lines.append("//")
            lines.extend(
                f"// {line}".rstrip() for line in self._license_text.strip().splitlines()
            )
        return "\n".join(lines)

    def emit(self) -> Dict[str, str]:
        """Render all sources of the crate."""
        files: Dict[str, str] = {}
        device = self._layout.device
        common_vars = {
            "header": self.header,
            "strategy": self._strategy,
            "tracing": self._options.tracing,
        }
        target_vars = self._strategy.context(device)

        files["src/common.rs"] = self._render("common.rs.jinja", **common_vars)

        for ptype in self._peripheral_types:
            files[f"src/{ptype.module}.rs"] = self._render(
                "peripheral.rs.jinja", header=self.header, ptype=ptype
            )
            svd2pac.log.debug(f"Rendered peripheral module {ptype.module}")

        files["src/lib.rs"] = self._render(
            "lib.rs.jinja",
            device_doc=doc_lines(device.description)
            or doc_lines(f"Peripheral access API for {device.name}"),
            peripheral_types=self._peripheral_types,
            instances=self._instances,
            **common_vars,
            **target_vars,
        )

        if self._options.tracing:
            files["src/tracing.rs"] = self._render("tracing.rs.jinja", header=self.header)
            files["src/reg_name.rs"] = self._render(
                "reg_name.rs.jinja", header=self.header, **self._reg_name_vars()
            )

        for path, template in self._strategy.extra_files:
            files[path] = self._render(template, header=self.header, **target_vars)

        svd2pac.log.info(
            f"Rendered {len(files)} source file(s) for target {self._options.target.value}"
        )

        return dict(sorted(files.items()))

    def manifest(self, has_license: bool) -> str:
        """
        Render the Cargo.toml of the crate.

        :param has_license: Whether a LICENSE.txt file is written next to the manifest.
        :return: Manifest contents.
        """
        description = self._layout.device.description
        if description:
            description = " ".join(description.split())
            description = description.replace("\\", "\\\\").replace('"', '\\"')

        return self._render(
            "Cargo.toml.jinja",
            crate_name=self.crate_name,
            description=description,
            has_license=has_license,
            strategy=self._strategy,
            tracing=self._options.tracing,
            modules=sorted(t.module for t in self._peripheral_types),
        )

    def _render(self, template_name: str, **variables: Any) -> str:
        try:
            template = self._env.get_template(template_name)
            return template.render(**variables)
        except jinja2.TemplateError as e:
            raise CodeGenError(f"Failed to render {template_name}: {e}") from e

    @cached_property
    def _type_members(self) -> Dict[str, List[PeripheralLayout]]:
        """Concrete peripherals grouped by peripheral type, in declaration order."""
        groups: Dict[str, List[PeripheralLayout]] = {}
        for peripheral in self._layout.peripherals:
            groups.setdefault(peripheral.peripheral.type_name, []).append(peripheral)

        for type_name, members in groups.items():
            first = members[0]
            for other in members[1:]:
                if other.peripheral.registers != first.peripheral.registers:
                    raise CodeGenError(
                        f"Peripherals {first.name} and {other.name} share the type "
                        f"'{type_name}' but have different registers"
                    )

        return groups

    @cached_property
    def _root_scopes(self) -> Tuple[IdentifierScope, IdentifierScope]:
        modules = IdentifierScope("crate root modules")
        for name in _RESERVED_MODULES:
            modules.add(name, name)

        names = IdentifierScope("crate root")
        for name in _RESERVED_ROOT_NAMES:
            names.add(name, name)

        return modules, names

    @cached_property
    def _peripheral_types(self) -> Tuple[PeripheralTypeView, ...]:
        modules, names = self._root_scopes
        types: List[PeripheralTypeView] = []

        for type_name, members in self._type_members.items():
            first = members[0]
            types.append(
                PeripheralTypeView(
                    module=modules.add(snake_name(type_name), type_name),
                    type_name=names.add(camel_name(type_name), type_name),
                    registers=self._register_views(first),
                    doc=tuple(doc_lines(first.peripheral.description)),
                )
            )

        return tuple(types)

    @cached_property
    def _instances(self) -> Tuple[InstanceView, ...]:
        _, names = self._root_scopes
        type_views = {
            type_name: view
            for type_name, view in zip(self._type_members, self._peripheral_types)
        }

        # Peripheral arrays become a single constant.
        grouped: Dict[str, List[PeripheralLayout]] = {}
        for peripheral in self._layout.peripherals:
            array = peripheral.peripheral.array
            key = array.group if array is not None else peripheral.name
            grouped.setdefault(key, []).append(peripheral)

        instances: List[InstanceView] = []
        for key, members in grouped.items():
            first = members[0]
            view = type_views[first.peripheral.type_name]
            instances.append(
                InstanceView(
                    name=names.add(constant_name(key), key),
                    module=view.module,
                    type_name=view.type_name,
                    addresses=tuple(hex_literal(p.base_address) for p in members),
                    is_array=first.peripheral.array is not None,
                    doc=tuple(doc_lines(first.peripheral.description)),
                )
            )

        return tuple(instances)

    def _register_views(self, peripheral: PeripheralLayout) -> Tuple[RegisterView, ...]:
        scope = IdentifierScope(f"peripheral module {peripheral.peripheral.type_name}")
        accessors = IdentifierScope(f"peripheral type {peripheral.peripheral.type_name}")

        # Register arrays become a single accessor.
        grouped: Dict[str, List[RegisterLayout]] = {}
        for register in peripheral.registers:
            array = register.register.array
            key = array.group if array is not None else register.register.name
            grouped.setdefault(key, []).append(register)

        views: List[RegisterView] = []
        for key, members in grouped.items():
            first = members[0]
            type_name = scope.add(camel_name(key), key)
            module = scope.add(snake_name(key), key)
            spec = scope.add(spec_name(type_name), key)

            views.append(
                RegisterView(
                    accessor=accessors.add(snake_name(key), key),
                    type_name=type_name,
                    spec=spec,
                    module=module,
                    access=_ACCESS_MARKERS[first.access.normalized()],
                    data_type=integer_type(first.size),
                    offsets=tuple(
                        hex_literal(r.address - peripheral.base_address) for r in members
                    ),
                    reset_value=hex_literal(first.reset_value),
                    is_array=first.register.array is not None,
                    doc=tuple(doc_lines(first.register.description)),
                    fields=self._field_views(first, spec, module),
                )
            )

        return tuple(views)

    def _field_views(
        self, register: RegisterLayout, register_spec: str, register_module: str
    ) -> Tuple[FieldView, ...]:
        accessors = IdentifierScope(f"register {register.name}")
        enum_types = IdentifierScope(f"module {register_module}")

        grouped: Dict[str, List[FieldLayout]] = {}
        for field in register.fields:
            array = field.field.array
            key = array.group if array is not None else field.name
            grouped.setdefault(key, []).append(field)

        views: List[FieldView] = []
        for key, members in grouped.items():
            first = members[0]
            array: Optional[ArrayMember] = first.field.array

            enum_type = enum_spec = None
            constants: Tuple[EnumConstant, ...] = ()
            if first.field.enumerated_values:
                enum_type = enum_types.add(camel_name(key), key)
                enum_spec = enum_types.add(spec_name(enum_type), key)
                constant_scope = IdentifierScope(f"enumerated field {register.name}.{key}")
                constants = tuple(
                    EnumConstant(
                        name=constant_scope.add(constant_name(value.name), value.name),
                        value=hex_literal(value.value),
                        doc=tuple(doc_lines(value.description)),
                    )
                    for value in first.field.enumerated_values
                )
                value_type = f"self::{register_module}::{enum_type}"
            else:
                value_type = field_value_type(first.width)

            dim = array.length if array is not None else 1
            dim_increment = array.step if array is not None else 0
            generic_args = ",".join(
                (
                    str(first.offset),
                    hex_literal(first.mask),
                    str(dim),
                    str(dim_increment),
                    value_type,
                    register_spec,
                    f"crate::common::{_ACCESS_MARKERS[first.access.normalized()]}",
                )
            )

            views.append(
                FieldView(
                    accessor=accessors.add(field_accessor_name(key), key),
                    generic_args=generic_args,
                    indexed=array is not None,
                    dim=dim,
                    doc=tuple(doc_lines(first.field.description)),
                    enum_spec=enum_spec,
                    enum_type=enum_type,
                    enum_raw_type=(
                        field_raw_type(first.width) if enum_type is not None else None
                    ),
                    enum_constants=constants,
                )
            )

        return tuple(views)

    def _reg_name_vars(self) -> Dict[str, Any]:
        names_by_address = self._layout.names_by_address()
        table = phf.build(names_by_address)
        svd2pac.log.debug(
            f"Built register name map with {len(table)} address(es) and "
            f"{len(table.displacements)} bucket(s)"
        )

        return {
            "gamma": hex_literal(phf.GAMMA),
            "mix1": hex_literal(phf.MIX1),
            "mix2": hex_literal(phf.MIX2),
            "displacements": table.displacements,
            "keys": [hex_literal(key) for key in table.keys],
            "values": [[_rust_string(name) for name in names] for names in table.values],
        }


def _rust_string(text: str) -> str:
    """Contents of a Rust string literal holding text."""
    return text.replace("\\", "\\\\").replace('"', '\\"')


def _make_environment() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.PackageLoader("svd2pac", "templates"),
        undefined=jinja2.StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        autoescape=False,
    )
