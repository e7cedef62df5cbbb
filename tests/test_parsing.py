# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from pathlib import Path

import pytest

import svd2pac
from svd2pac import SvdParseError
from svd2pac._bindings import is_dont_care, to_int

from conftest import build_field, build_peripheral, build_register, build_svd


def test_parse_file(example_svd: Path):
    device = svd2pac.parse(example_svd)

    assert device.name == "EXAMPLE"
    assert device.version == "1.2"
    assert device.cpu.name == "CM4"
    assert device.cpu.num_nvic_priority_bits == 3
    assert device.cpu.has_fpu is True

    names = [p.name for p in device.peripherals]
    assert names == ["TIMER0", "TIMER1", "UART[%s]"]


def test_parse_path_as_string(example_svd: Path):
    device = svd2pac.parse(str(example_svd))
    assert device.name == "EXAMPLE"


def test_missing_file(tmp_path: Path):
    with pytest.raises(SvdParseError):
        svd2pac.parse(tmp_path / "missing.svd")


def test_malformed_xml():
    with pytest.raises(SvdParseError, match="Malformed"):
        svd2pac.parse(b"<device><name>X</name><peripherals></device>")


def test_wrong_root():
    with pytest.raises(SvdParseError, match="root element"):
        svd2pac.parse(b"<peripheral><name>X</name></peripheral>")


@pytest.mark.parametrize(
    "document",
    [
        b"<device><peripherals/></device>",
        b"<device><name>X</name></device>",
        b"<device><name>  </name><peripherals/></device>",
    ],
)
def test_missing_mandatory_tags(document: bytes):
    with pytest.raises(SvdParseError):
        svd2pac.parse(document)


def test_value_binding_depends_on_parent():
    svd = build_svd(
        build_peripheral(
            "TIMER",
            0x1000,
            registers=build_register(
                "SR",
                0x0,
                fields=build_field(
                    "RUN",
                    0,
                    2,
                    extra=(
                        "<enumeratedValues><enumeratedValue><name>X</name>"
                        "<value>#1x</value></enumeratedValue></enumeratedValues>"
                    ),
                ),
            ),
            extra="<interrupt><name>TIMER</name><value>0x10</value></interrupt>",
        )
    )
    device = svd2pac.parse(svd)
    peripheral = next(device.peripherals)

    # Interrupt numbers are integers, enumerated values are kept as raw text
    assert next(peripheral.interrupts).value == 16
    register = next(peripheral.registers)
    field = next(register.fields)
    enum_value = next(next(field.enumerations).enums)
    assert enum_value.value == "#1x"


@pytest.mark.parametrize(
    "extra, expected",
    [
        ("<bitOffset>4</bitOffset><bitWidth>3</bitWidth>", (4, 3)),
        ("<lsb>4</lsb><msb>6</msb>", (4, 3)),
        ("<bitRange>[6:4]</bitRange>", (4, 3)),
    ],
)
def test_bit_range_styles(extra: str, expected: tuple):
    svd = build_svd(
        build_peripheral(
            "P",
            0x1000,
            registers=build_register("R", 0, fields=f"<field><name>F</name>{extra}</field>"),
        )
    )
    device = svd2pac.parse(svd)
    register = next(next(device.peripherals).registers)
    field = next(register.fields)

    assert tuple(field.bit_range) == expected


@pytest.mark.parametrize(
    "text, value",
    [("16", 16), (" 0x10 ", 16), ("0X1f", 31), ("#101", 5)],
)
def test_svd_integers(text: str, value: int):
    assert to_int(text) == value


def test_dont_care_pattern():
    assert is_dont_care("#1x0")
    assert not is_dont_care("#100")
    assert not is_dont_care("0x10")
    with pytest.raises(ValueError):
        to_int("#1x0")
