# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from pathlib import Path

import pytest

import svd2pac
from svd2pac import Access, SvdValidationError, ValidationLevel

from conftest import (
    build_enum,
    build_field,
    build_model,
    build_peripheral,
    build_register,
    build_svd,
)

# Register without its own access, in a device that does not specify one either.
NO_ACCESS_SVD = build_svd(
    build_peripheral(
        "TIMER",
        0x40000000,
        registers=build_register("SR", 0x0, fields=build_field("RUN", 0, 1)),
    ),
    device_props="<size>32</size><resetValue>0</resetValue>",
)


def test_example_is_strictly_valid(example_svd: Path):
    report = svd2pac.validate(svd2pac.parse(example_svd), ValidationLevel.STRICT)
    assert not report.has_warnings
    assert len(report) == 0


def test_missing_access_weak_falls_back_to_default():
    report = svd2pac.validate(svd2pac.parse(NO_ACCESS_SVD), ValidationLevel.WEAK)

    assert report.has_warnings
    [issue] = list(report)
    assert issue.path == "device/peripherals/TIMER/registers/SR/access"
    assert issue.substitution == "read-write"

    device = build_model(NO_ACCESS_SVD, ValidationLevel.WEAK)
    assert device["TIMER"]["SR"].access is Access.READ_WRITE


def test_missing_access_strict_fails():
    with pytest.raises(SvdValidationError) as exc_info:
        svd2pac.validate(svd2pac.parse(NO_ACCESS_SVD), ValidationLevel.STRICT)

    assert exc_info.value.path == "device/peripherals/TIMER/registers/SR/access"


def test_disabled_reports_nothing():
    report = svd2pac.validate(svd2pac.parse(NO_ACCESS_SVD), ValidationLevel.DISABLED)
    assert not report.has_warnings


def test_missing_device_version():
    svd = build_svd(build_peripheral("P", 0x1000)).replace(
        b"<version>1.0</version>", b""
    )

    report = svd2pac.validate(svd2pac.parse(svd), ValidationLevel.WEAK)
    assert [i.path for i in report] == ["device/version"]

    with pytest.raises(SvdValidationError):
        svd2pac.validate(svd2pac.parse(svd), ValidationLevel.STRICT)


@pytest.mark.parametrize("level", [ValidationLevel.WEAK, ValidationLevel.STRICT])
def test_missing_base_address_is_always_fatal(level: ValidationLevel):
    svd = build_svd("<peripheral><name>P</name></peripheral>")
    with pytest.raises(SvdValidationError, match="baseAddress"):
        svd2pac.validate(svd2pac.parse(svd), level)


@pytest.mark.parametrize("level", [ValidationLevel.WEAK, ValidationLevel.STRICT])
def test_unsupported_register_size_is_always_fatal(level: ValidationLevel):
    svd = build_svd(
        build_peripheral("P", 0x1000, registers=build_register("R", 0, extra="<size>24</size>"))
    )
    with pytest.raises(SvdValidationError, match="size"):
        svd2pac.validate(svd2pac.parse(svd), level)


@pytest.mark.parametrize("level", [ValidationLevel.WEAK, ValidationLevel.STRICT])
def test_dim_without_increment_is_always_fatal(level: ValidationLevel):
    svd = build_svd(
        build_peripheral("P", 0x1000, registers=build_register("R%s", 0, extra="<dim>2</dim>"))
    )
    with pytest.raises(SvdValidationError, match="dimIncrement"):
        svd2pac.validate(svd2pac.parse(svd), level)


def test_malformed_dim_index_is_fatal():
    svd = build_svd(
        build_peripheral(
            "P",
            0x1000,
            registers=build_register(
                "R%s",
                0,
                extra="<dim>3</dim><dimIncrement>4</dimIncrement><dimIndex>0-1</dimIndex>",
            ),
        )
    )
    with pytest.raises(SvdValidationError, match="dimIndex"):
        svd2pac.validate(svd2pac.parse(svd), ValidationLevel.WEAK)


def test_field_without_bit_range_is_fatal():
    svd = build_svd(
        build_peripheral(
            "P", 0x1000, registers=build_register("R", 0, fields="<field><name>F</name></field>")
        )
    )
    with pytest.raises(SvdValidationError, match="bit range"):
        svd2pac.validate(svd2pac.parse(svd), ValidationLevel.WEAK)


def test_invalid_identifier_only_fails_strict():
    svd = build_svd(build_peripheral("P", 0x1000, registers=build_register("R-1", 0)))

    report = svd2pac.validate(svd2pac.parse(svd), ValidationLevel.WEAK)
    assert not report.has_warnings

    with pytest.raises(SvdValidationError, match="identifier"):
        svd2pac.validate(svd2pac.parse(svd), ValidationLevel.STRICT)


def test_enumerated_value_without_value():
    svd = build_svd(
        build_peripheral(
            "P",
            0x1000,
            registers=build_register(
                "R",
                0,
                fields=build_field(
                    "F",
                    0,
                    2,
                    extra=(
                        "<enumeratedValues>"
                        "<enumeratedValue><name>A</name><value>1</value></enumeratedValue>"
                        "<enumeratedValue><name>B</name></enumeratedValue>"
                        "</enumeratedValues>"
                    ),
                ),
            ),
        )
    )

    report = svd2pac.validate(svd2pac.parse(svd), ValidationLevel.WEAK)
    assert [i.substitution for i in report] == ["value dropped"]

    device = build_model(svd, ValidationLevel.WEAK)
    assert [v.name for v in device["P"]["R"]["F"].enumerated_values] == ["A"]

    with pytest.raises(SvdValidationError):
        svd2pac.validate(svd2pac.parse(svd), ValidationLevel.STRICT)


def test_default_and_dont_care_values_are_ignored(caplog: pytest.LogCaptureFixture):
    svd = build_svd(
        build_peripheral(
            "P",
            0x1000,
            registers=build_register(
                "R",
                0,
                fields=build_field(
                    "F",
                    0,
                    3,
                    extra=(
                        "<enumeratedValues>"
                        "<enumeratedValue><name>A</name><value>#1x0</value></enumeratedValue>"
                        "<enumeratedValue><name>B</name><isDefault>true</isDefault>"
                        "</enumeratedValue>"
                        "<enumeratedValue><name>C</name><value>3</value></enumeratedValue>"
                        "</enumeratedValues>"
                    ),
                ),
            ),
        )
    )

    with caplog.at_level(logging.DEBUG, logger="svd2pac"):
        report = svd2pac.validate(svd2pac.parse(svd), ValidationLevel.STRICT)

    assert not report.has_warnings
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    device = build_model(svd, ValidationLevel.STRICT)
    assert [v.name for v in device["P"]["R"]["F"].enumerated_values] == ["C"]


def test_ignored_tags_are_accepted(caplog: pytest.LogCaptureFixture):
    svd = build_svd(
        build_peripheral(
            "P",
            0x1000,
            registers=build_register(
                "R",
                0,
                extra="<resetMask>0xFFFFFFFF</resetMask><readAction>clear</readAction>",
                fields=build_field(
                    "F", 0, 1, extra="<modifiedWriteValues>oneToClear</modifiedWriteValues>"
                ),
            ),
        )
    )

    with caplog.at_level(logging.DEBUG, logger="svd2pac"):
        report = svd2pac.validate(svd2pac.parse(svd), ValidationLevel.STRICT)

    assert not report.has_warnings
    messages = "\n".join(r.getMessage() for r in caplog.records)
    assert "resetMask" in messages
    assert "modifiedWriteValues" in messages


def test_array_name_without_placeholder():
    svd = build_svd(
        build_peripheral(
            "P",
            0x1000,
            registers=build_register("R", 0, extra="<dim>2</dim><dimIncrement>4</dimIncrement>"),
        )
    )

    report = svd2pac.validate(svd2pac.parse(svd), ValidationLevel.WEAK)
    assert [i.substitution for i in report] == ["index appended"]

    device = build_model(svd, ValidationLevel.WEAK)
    assert list(device["P"]) == ["R[0]", "R[1]"]

    with pytest.raises(SvdValidationError):
        svd2pac.validate(svd2pac.parse(svd), ValidationLevel.STRICT)


def test_enum_helper_values_build():
    svd = build_svd(
        build_peripheral(
            "P",
            0x1000,
            registers=build_register(
                "R", 0, fields=build_field("F", 0, 2, extra=build_enum(("A", 0), ("B", "0x3")))
            ),
        )
    )
    device = build_model(svd, ValidationLevel.STRICT)
    assert [(v.name, v.value) for v in device["P"]["R"]["F"].enumerated_values] == [
        ("A", 0),
        ("B", 3),
    ]
