# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Checks of the raw SVD element tree against the supported subset of the SVD format.

Checks are applied according to a ValidationLevel:

* DISABLED: no attribute level checks.
* WEAK: missing or malformed optional properties are reported as warnings, and the device
  model builder substitutes defaults. Problems that make the layout impossible to compute
  are still fatal.
* STRICT: every problem is fatal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Set, Union

import svd2pac

from . import bindings
from ._bindings import is_dont_care, read_lenient, to_int
from ._device import DIM_PLACEHOLDER, is_list_style, parse_dim_index
from .errors import SvdValidationError
from .options import ValidationLevel

# Register property defaults used when neither the register nor any of its parents
# specify the property.
DEFAULT_REGISTER_SIZE = 32
DEFAULT_REGISTER_ACCESS = bindings.Access.READ_WRITE
DEFAULT_RESET_VALUE = 0

# Device level defaults.
DEFAULT_ADDRESS_UNIT_BITS = 8
DEFAULT_WIDTH = 32

# Register sizes that can be mapped to a native integer type.
NATIVE_REGISTER_SIZES = (8, 16, 32, 64)

_IDENTIFIER = re.compile(r"^(?:[_A-Za-z]|%s)(?:[_A-Za-z0-9]|%s)*(?:\[%s\])?$")


@dataclass(frozen=True)
class ValidationIssue:
    """A problem that was tolerated at the active validation level."""

    # Slash separated path of the offending element.
    path: str

    # Description of the violated rule.
    rule: str

    # What is used in place of the offending value.
    substitution: Optional[str] = None

    def __str__(self) -> str:
        suffix = f" (using {self.substitution})" if self.substitution else ""
        return f"{self.path}: {self.rule}{suffix}"


@dataclass
class ValidationReport:
    """Outcome of a successful validation."""

    level: ValidationLevel
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.issues)

    def __iter__(self) -> Iterator[ValidationIssue]:
        return iter(self.issues)

    def __len__(self) -> int:
        return len(self.issues)


def validate(
    device: bindings.DeviceElement, level: ValidationLevel
) -> ValidationReport:
    """
    Validate a parsed SVD document.

    :param device: Root element returned by the parser.
    :param level: Validation level to apply.

    :raises SvdValidationError: On the first violation that is fatal at the given level.
    :return: Report containing the tolerated violations.
    """
    validator = _Validator(level)
    validator.check_ignored_tags(device)

    if level is ValidationLevel.DISABLED:
        svd2pac.log.debug("SVD validation disabled")
        return validator.report

    validator.check_device(device)

    svd2pac.log.info(
        f"SVD validation ({level.value}) passed with {len(validator.report)} warning(s)"
    )

    return validator.report


RegisterLike = Union[bindings.RegisterElement, bindings.ClusterElement]


class _Validator:
    def __init__(self, level: ValidationLevel) -> None:
        self._level = level
        self.report = ValidationReport(level)

    @property
    def _strict(self) -> bool:
        return self._level is ValidationLevel.STRICT

    def _fatal(self, path: str, rule: str) -> None:
        raise SvdValidationError(path, rule)

    def _fail_or_warn(self, path: str, rule: str, substitution: Optional[str]) -> None:
        """Fail at STRICT level, record a warning otherwise."""
        if self._strict:
            raise SvdValidationError(path, rule)

        issue = ValidationIssue(path, rule, substitution)
        self.report.issues.append(issue)
        svd2pac.log.warning(f"SVD warning: {issue}")

    def check_ignored_tags(self, device: bindings.DeviceElement) -> None:
        seen: Set[str] = set()
        for element in device.iter(*bindings.IGNORED_TAGS):
            if element.tag not in seen:
                seen.add(element.tag)
                svd2pac.log.debug(
                    f"Element '{element.tag}' is not supported and is ignored "
                    f"(first occurrence on line {element.sourceline})"
                )

    def check_device(self, device: bindings.DeviceElement) -> None:
        path = "device"

        self._check_name(device, path)

        if not read_lenient(device, "version"):
            self._fail_or_warn(f"{path}/version", "device version is missing", None)

        if not read_lenient(device, "description"):
            self._fail_or_warn(
                f"{path}/description", "device description is missing", None
            )

        if read_lenient(device, "address_unit_bits") is None:
            self._fail_or_warn(
                f"{path}/addressUnitBits",
                "addressUnitBits is missing or malformed",
                str(DEFAULT_ADDRESS_UNIT_BITS),
            )

        if read_lenient(device, "width") is None:
            self._fail_or_warn(
                f"{path}/width", "width is missing or malformed", str(DEFAULT_WIDTH)
            )

        self._check_register_properties(device, path)
        device_props = device.register_properties

        for peripheral in device.peripherals:
            self._check_peripheral(peripheral, device_props)

    def _check_peripheral(
        self,
        peripheral: bindings.PeripheralElement,
        base_props: bindings.RegisterProperties,
    ) -> None:
        path = peripheral.svd_path

        if not read_lenient(peripheral, "name"):
            self._fatal(path, "peripheral name is missing")

        self._check_name(peripheral, path)

        try:
            peripheral.base_address
        except AttributeError:
            self._fatal(f"{path}/baseAddress", "peripheral baseAddress is missing")
        except ValueError:
            self._fatal(f"{path}/baseAddress", "peripheral baseAddress is malformed")

        self._check_dim(peripheral, path)
        self._check_register_properties(peripheral, path)
        props = peripheral.get_register_properties(base_props)

        for interrupt in peripheral.interrupts:
            if not read_lenient(interrupt, "name") or read_lenient(interrupt, "value") is None:
                self._fail_or_warn(
                    interrupt.svd_path,
                    "interrupt requires a name and a numeric value",
                    "interrupt ignored",
                )

        for child in peripheral.registers:
            self._check_register_like(child, props)

    def _check_register_like(
        self, node: RegisterLike, base_props: bindings.RegisterProperties
    ) -> None:
        path = node.svd_path
        kind = "cluster" if isinstance(node, bindings.ClusterElement) else "register"

        if not read_lenient(node, "name"):
            self._fatal(path, f"{kind} name is missing")

        self._check_name(node, path)

        try:
            if node.offset is None:
                self._fatal(f"{path}/addressOffset", f"{kind} addressOffset is missing")
        except ValueError:
            self._fatal(f"{path}/addressOffset", f"{kind} addressOffset is malformed")

        self._check_dim(node, path)
        self._check_register_properties(node, path)
        props = node.get_register_properties(base_props)

        if isinstance(node, bindings.ClusterElement):
            for child in node.registers:
                self._check_register_like(child, props)
            return

        if props.size is None:
            self._fail_or_warn(
                f"{path}/size", "register size is not specified", str(DEFAULT_REGISTER_SIZE)
            )
        elif props.size not in NATIVE_REGISTER_SIZES:
            self._fatal(
                f"{path}/size",
                f"register size {props.size} is not one of {NATIVE_REGISTER_SIZES}",
            )

        if props.access is None:
            self._fail_or_warn(
                f"{path}/access",
                "register access is not specified",
                DEFAULT_REGISTER_ACCESS.value,
            )

        if props.reset_value is None:
            self._fail_or_warn(
                f"{path}/resetValue",
                "register resetValue is not specified",
                str(DEFAULT_RESET_VALUE),
            )

        for field_element in node.fields:
            self._check_field(field_element)

    def _check_field(self, field_element: bindings.FieldElement) -> None:
        path = field_element.svd_path

        if not read_lenient(field_element, "name"):
            self._fatal(path, "field name is missing")

        self._check_name(field_element, path)

        try:
            bit_range = field_element.bit_range
        except ValueError as e:
            self._fatal(path, f"field bit range is malformed: {e}")
        else:
            if bit_range is None:
                self._fatal(path, "field bit range is missing")

        try:
            field_element.access
        except ValueError:
            self._fail_or_warn(
                f"{path}/access", "field access is malformed", "register access"
            )

        self._check_dim(field_element, path)

        for enumeration in field_element.enumerations:
            for enum_value in enumeration.enums:
                self._check_enumerated_value(enum_value)

    def _check_enumerated_value(self, enum_value: bindings.EnumeratedValue) -> None:
        path = enum_value.svd_path

        if read_lenient(enum_value, "is_default", False):
            svd2pac.log.debug(f"{path}: 'isDefault' enumerated values are not supported")
            return

        name = read_lenient(enum_value, "name")
        value = read_lenient(enum_value, "value")

        if not name or not value:
            self._fail_or_warn(
                path, "enumerated value requires a name and a value", "value dropped"
            )
            return

        if is_dont_care(value):
            svd2pac.log.debug(f"{path}: don't-care value '{value}' is not supported")
            return

        try:
            to_int(value)
        except ValueError:
            self._fail_or_warn(
                f"{path}/value", f"enumerated value '{value}' is malformed", "value dropped"
            )

        self._check_name(enum_value, path)

    def _check_name(self, node: bindings.SvdElement, path: str) -> None:
        if not self._strict:
            return

        name = read_lenient(node, "name")
        if name and not _IDENTIFIER.match(name):
            self._fatal(f"{path}/name", f"'{name}' is not a valid identifier")

    def _check_register_properties(self, node: bindings.SvdElement, path: str) -> None:
        """Report register properties that are present but malformed."""
        for prop, tag in (("_size", "size"), ("_access", "access"), ("_reset_value", "resetValue")):
            try:
                getattr(node, prop)
            except ValueError:
                text = node.findtext(tag)
                self._fail_or_warn(
                    f"{path}/{tag}", f"{tag} value '{text}' is malformed", "inherited value"
                )

    def _check_dim(
        self,
        node: Union[bindings.PeripheralElement, RegisterLike, bindings.FieldElement],
        path: str,
    ) -> None:
        try:
            dimensions = node.dimensions
        except ValueError as e:
            self._fatal(f"{path}/dim", str(e))
            return

        if dimensions is None:
            return

        try:
            parse_dim_index(dimensions.index_text, dimensions.length)
        except ValueError as e:
            self._fatal(f"{path}/dimIndex", str(e))

        name = read_lenient(node, "name", "")
        if DIM_PLACEHOLDER not in name and not is_list_style(name):
            self._fail_or_warn(
                f"{path}/name",
                f"name '{name}' of an array element does not contain '%s'",
                "index appended",
            )
