# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

import svd2pac
from svd2pac import Options, ValidationLevel

DATA_DIR = Path(__file__).parent / "data"

DEVICE_TEMPLATE = """\
<?xml version="1.0" encoding="utf-8"?>
<device schemaVersion="1.3">
  <name>TESTDEV</name>
  <version>1.0</version>
  <description>Test device</description>
  <addressUnitBits>8</addressUnitBits>
  <width>32</width>
  {device_props}
  <peripherals>
{peripherals}
  </peripherals>
</device>
"""

DEFAULT_DEVICE_PROPS = """\
<size>32</size>
  <access>read-write</access>
  <resetValue>0</resetValue>"""


SvdBuilder = Callable[..., bytes]


def build_svd(peripherals: str, device_props: str = DEFAULT_DEVICE_PROPS) -> bytes:
    """Wrap peripheral elements in a minimal, otherwise strictly valid device document."""
    return DEVICE_TEMPLATE.format(
        peripherals=peripherals, device_props=device_props
    ).encode("utf-8")


def build_peripheral(
    name: str, base_address: int, registers: str = "", extra: str = ""
) -> str:
    """Peripheral element with the given register elements."""
    registers_xml = f"<registers>{registers}</registers>" if registers else ""
    return (
        f"<peripheral>"
        f"<name>{name}</name>"
        f"<baseAddress>0x{base_address:x}</baseAddress>"
        f"{extra}"
        f"{registers_xml}"
        f"</peripheral>"
    )


def build_register(name: str, offset: int, fields: str = "", extra: str = "") -> str:
    """Register element with the given field elements."""
    fields_xml = f"<fields>{fields}</fields>" if fields else ""
    return (
        f"<register>"
        f"<name>{name}</name>"
        f"<addressOffset>0x{offset:x}</addressOffset>"
        f"{extra}"
        f"{fields_xml}"
        f"</register>"
    )


def build_field(name: str, offset: int, width: int, extra: str = "") -> str:
    return (
        f"<field>"
        f"<name>{name}</name>"
        f"<bitOffset>{offset}</bitOffset>"
        f"<bitWidth>{width}</bitWidth>"
        f"{extra}"
        f"</field>"
    )


def build_enum(*values: tuple) -> str:
    """enumeratedValues element from (name, value) pairs."""
    items = "".join(
        f"<enumeratedValue><name>{name}</name><value>{value}</value></enumeratedValue>"
        for name, value in values
    )
    return f"<enumeratedValues>{items}</enumeratedValues>"


def build_model(
    svd: bytes, level: ValidationLevel = ValidationLevel.WEAK
) -> svd2pac.Device:
    """Run the parser, validator and model builder on an in-memory document."""
    element = svd2pac.parse(svd)
    svd2pac.validate(element, level)
    return svd2pac.build_device(element, Options(validation_level=level))


@pytest.fixture
def data_dir() -> Path:
    return DATA_DIR


@pytest.fixture
def example_svd(data_dir: Path) -> Path:
    return data_dir / "example.svd"


@pytest.fixture
def example_layout(example_svd: Path) -> svd2pac.DeviceLayout:
    element = svd2pac.parse(example_svd)
    svd2pac.validate(element, ValidationLevel.STRICT)
    return svd2pac.analyze(svd2pac.build_device(element))
