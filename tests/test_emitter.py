# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from pathlib import Path

import pytest

import svd2pac
from svd2pac import CodeGenError, Options, Target, phf
from svd2pac.emitter import Emitter
from svd2pac.rust import camel_name, field_accessor_name, sanitize, snake_name

from conftest import build_field, build_model, build_peripheral, build_register, build_svd


def emit(layout: svd2pac.DeviceLayout, **kwargs) -> dict:
    return svd2pac.emit(layout, Options(**kwargs))


def test_generic_files(example_layout: svd2pac.DeviceLayout):
    files = emit(example_layout)

    assert list(files) == ["src/common.rs", "src/lib.rs", "src/timer0.rs", "src/uart.rs"]
    assert "modify_atomic" not in files["src/common.rs"]
    assert "__INTERRUPTS" not in files["src/lib.rs"]
    assert "NVIC_PRIO_BITS" not in files["src/lib.rs"]
    assert "pub mod tracing;" not in files["src/lib.rs"]


def test_header(example_layout: svd2pac.DeviceLayout):
    files = emit(example_layout)

    for path, content in files.items():
        assert content.startswith("// Generated by svd2pac"), path
        assert "// Copyright (c) Example Semiconductor\n// All rights reserved." in content


def test_license_override(example_layout: svd2pac.DeviceLayout):
    files = svd2pac.emit(example_layout, Options(), license_text="SPDX-License-Identifier: MIT")
    assert "// SPDX-License-Identifier: MIT" in files["src/lib.rs"]
    assert "Example Semiconductor" not in files["src/lib.rs"]


def test_lib_instances(example_layout: svd2pac.DeviceLayout):
    lib = emit(example_layout)["src/lib.rs"]

    assert '#[cfg(feature = "timer0")]\npub mod timer0;' in lib
    assert "pub struct Timer0 {" in lib
    assert "pub struct Uart {" in lib
    # Peripherals derived without changes share the type of their parent
    assert "pub struct Timer1" not in lib
    assert (
        "pub const TIMER1: self::Timer0 = self::Timer0 {\n    ptr: 0x40001000usize as _,\n};"
        in lib
    )
    assert "pub const UART: [self::Uart; 2] = [" in lib
    assert "ptr: 0x40011000usize as _," in lib


def test_register_accessors(example_layout: svd2pac.DeviceLayout):
    timer = emit(example_layout)["src/timer0.rs"]

    assert "impl super::Timer0 {" in timer
    assert (
        "pub const fn sr(&self) -> crate::common::Reg<self::Sr_SPEC, crate::common::R> {"
        in timer
    )
    assert (
        "pub const fn sr_clear(&self) -> "
        "crate::common::Reg<self::SrClear_SPEC, crate::common::W> {" in timer
    )
    assert "from_ptr(self.ptr.add(0x4usize))" in timer
    assert "pub const fn ch1_data(&self)" in timer
    assert "from_ptr(self.ptr.add(0x54usize))" in timer
    # Non list-style arrays become separate registers
    assert "pub const fn evta(&self)" in timer
    assert "pub const fn evtb(&self)" in timer


def test_register_array(example_layout: svd2pac.DeviceLayout):
    timer = emit(example_layout)["src/timer0.rs"]

    assert (
        "pub const fn cc(&self) -> "
        "[crate::common::Reg<self::Cc_SPEC, crate::common::RW>; 4] {" in timer
    )
    for offset in ("0x10", "0x14", "0x18", "0x1c"):
        assert (
            f"crate::common::Reg::<self::Cc_SPEC, crate::common::RW>::from_ptr("
            f"self.ptr.add({offset}usize))," in timer
        )
    assert "type DataType = u16;" in timer


def test_field_accessors(example_layout: svd2pac.DeviceLayout):
    timer = emit(example_layout)["src/timer0.rs"]

    assert (
        "pub fn en(self) -> "
        "crate::common::RegisterField<0,0x1,1,0,bool,Ctrl_SPEC,crate::common::RW> {" in timer
    )
    assert (
        "pub fn mode(self) -> "
        "crate::common::RegisterField<1,0x7,1,0,self::ctrl::Mode,Ctrl_SPEC,crate::common::RW> {"
        in timer
    )
    assert (
        "pub fn prescale(self) -> "
        "crate::common::RegisterField<8,0xff,1,0,u8,Ctrl_SPEC,crate::common::RW> {" in timer
    )
    # Field access defaults to the register access
    assert (
        "crate::common::RegisterField<0,0x1,1,0,self::sr::Run,Sr_SPEC,crate::common::R>" in timer
    )


def test_field_array(example_layout: svd2pac.DeviceLayout):
    timer = emit(example_layout)["src/timer0.rs"]

    assert (
        "pub fn flag(self, index: u8) -> "
        "crate::common::RegisterField<0,0x1,4,2,bool,Evta_SPEC,crate::common::RW> {" in timer
    )
    assert "assert!(index < 4);" in timer


def test_enumerated_values(example_layout: svd2pac.DeviceLayout):
    timer = emit(example_layout)["src/timer0.rs"]

    assert "pub mod sr {" in timer
    assert "pub type Run = crate::common::EnumBitfieldStruct<u8, Run_SPEC>;" in timer
    assert "pub const STOPPED: Self = Self::new(0x0);" in timer
    assert "pub const RUNNING: Self = Self::new(0x1);" in timer
    assert "/// Stop at the first overflow\n        pub const ONESHOT: Self = Self::new(0x1);" in timer
    assert "RESERVED" not in timer


def test_reset_values(example_layout: svd2pac.DeviceLayout):
    timer = emit(example_layout)["src/timer0.rs"]

    assert "fn default() -> Sr {\n        Sr::from_raw(0x1)\n    }" in timer
    assert "fn default() -> Ctrl {\n        Ctrl::from_raw(0x0)\n    }" in timer


def test_register_without_fields(example_layout: svd2pac.DeviceLayout):
    uart = emit(example_layout)["src/uart.rs"]

    assert "pub fn set(self, value: u8) -> Self {" in uart
    assert "pub fn get(&self) -> u32 {" in uart


def test_aurix(example_layout: svd2pac.DeviceLayout):
    files = emit(example_layout, target=Target.AURIX)

    common = files["src/common.rs"]
    assert "pub unsafe fn modify_atomic(" in common
    assert "__ldmst" in common
    assert "other bus masters are stalled" in common
    assert "__INTERRUPTS" not in files["src/lib.rs"]


def test_cortex_m(example_layout: svd2pac.DeviceLayout):
    files = emit(example_layout, target=Target.CORTEX_M)

    assert list(files) == [
        "build.rs",
        "device.x",
        "src/common.rs",
        "src/lib.rs",
        "src/timer0.rs",
        "src/uart.rs",
    ]

    lib = files["src/lib.rs"]
    assert "pub const NVIC_PRIO_BITS: u8 = 3;" in lib
    assert (
        "pub use cortex_m::peripheral::{CBP, CPUID, DCB, DWT, FPB, FPU, ITM, MPU, NVIC, SCB, "
        "SYST, TPIU};" in lib
    )
    assert "    TIMER0 = 8,\n" in lib
    assert "    TIMER1 = 9,\n" in lib
    assert "pub static __INTERRUPTS: [Vector; 10] = [" in lib
    assert lib.count("Vector { _reserved: 0 },") == 8
    assert "Vector { _handler: interrupt_handlers::TIMER1 }," in lib
    assert '#[cfg(feature = "rt")]\npub use self::Interrupt as interrupt;' in lib
    assert "Some(Self::steal())" in lib
    assert "pub TIMER0: self::Timer0," in lib
    assert "pub UART: [self::Uart; 2]," in lib
    assert "modify_atomic" not in files["src/common.rs"]

    assert files["device.x"] == (
        "PROVIDE(TIMER0 = DefaultHandler);\nPROVIDE(TIMER1 = DefaultHandler);\n"
    )
    assert 'include_bytes!("device.x")' in files["build.rs"]


def test_tracing(example_layout: svd2pac.DeviceLayout):
    files = emit(example_layout, tracing=True)

    assert "src/tracing.rs" in files
    assert "src/reg_name.rs" in files

    lib = files["src/lib.rs"]
    assert '#[cfg(feature = "tracing")]\npub mod tracing;' in lib
    assert '#[cfg(feature = "tracing")]\npub mod reg_name;' in lib

    tracing = files["src/tracing.rs"]
    assert "pub trait RegisterAccess" in tracing
    assert "pub fn set_register_access(" in tracing
    assert "pub mod insanely_unsafe" in tracing
    assert "fn read_write_only(&self)" in tracing
    assert "fn write_read_only(&self, value: RegValueT<T>)" in tracing

    assert "crate::tracing::read(" in files["src/common.rs"]


def test_tracing_name_map_contains_aliases(example_layout: svd2pac.DeviceLayout):
    reg_name = emit(example_layout, tracing=True)["src/reg_name.rs"]

    assert '&["TIMER0.SR", "TIMER0.SR_CLEAR"],' in reg_name
    assert '&["UART[1].STATUS"],' in reg_name
    assert f"const GAMMA: u64 = 0x{phf.GAMMA:x};" in reg_name

    # The emitted table is the one built from the layout
    table = phf.build(example_layout.names_by_address())
    assert table.get(0x40000004) == ("TIMER0.SR", "TIMER0.SR_CLEAR")
    keys_section = reg_name.split("static KEYS")[1].split("];")[0]
    assert [line.strip().rstrip(",") for line in keys_section.splitlines()[1:] if line.strip()] == [
        f"0x{key:x}" for key in table.keys
    ]


def test_idempotent(example_svd: Path):
    def run() -> dict:
        element = svd2pac.parse(example_svd)
        svd2pac.validate(element, svd2pac.ValidationLevel.WEAK)
        layout = svd2pac.analyze(svd2pac.build_device(element))
        return emit(layout, target=Target.CORTEX_M, tracing=True)

    assert run() == run()


def test_manifest(example_layout: svd2pac.DeviceLayout):
    manifest = Emitter(example_layout, Options(target=Target.CORTEX_M, tracing=True)).manifest(
        has_license=True
    )

    assert 'name = "example"' in manifest
    assert 'license-file = "LICENSE.txt"' in manifest
    assert 'description = "Example device used by the test suite"' in manifest
    assert 'cortex-m = "0.7"' in manifest
    assert 'cortex-m-rt = { version = "0.7", optional = true }' in manifest
    assert 'rt = ["cortex-m-rt/device"]' in manifest
    assert "tracing = []" in manifest
    assert 'all = ["timer0", "uart"]' in manifest
    assert "\ntimer0 = []\n" in manifest
    assert "\nuart = []\n" in manifest


def test_manifest_package_name(example_layout: svd2pac.DeviceLayout):
    manifest = Emitter(example_layout, Options(package_name="my-pac")).manifest(
        has_license=False
    )

    assert 'name = "my-pac"' in manifest
    assert "license-file" not in manifest
    assert "[dependencies]\n\n[features]" in manifest
    assert "tracing" not in manifest


def test_keyword_names_are_escaped():
    svd = build_svd(
        build_peripheral(
            "P",
            0x1000,
            registers=build_register(
                "MATCH",
                0,
                fields=build_field("SELF", 0, 1) + build_field("GET", 1, 1),
            ),
        )
    )
    files = svd2pac.emit(svd2pac.analyze(build_model(svd)))
    module = files["src/p.rs"]

    assert "pub const fn r#match(&self)" in module
    assert "pub type Match = crate::common::RegValueT<Match_SPEC>;" in module
    assert "pub fn self_(self)" in module
    assert "pub fn get_(self)" in module


def test_interrupt_handler_collision():
    svd = build_svd(
        build_peripheral(
            "A", 0x1000, extra="<interrupt><name>UART-0</name><value>1</value></interrupt>"
        )
        + build_peripheral(
            "B", 0x2000, extra="<interrupt><name>UART_0</name><value>2</value></interrupt>"
        )
    )
    layout = svd2pac.analyze(build_model(svd))

    with pytest.raises(CodeGenError, match="UART_0"):
        emit(layout, target=Target.CORTEX_M)

    # Handler names are only emitted for Cortex-M
    emit(layout)


def test_no_interrupts_cortex_m():
    svd = build_svd(build_peripheral("P", 0x1000, registers=build_register("R", 0)))
    lib = emit(svd2pac.analyze(build_model(svd)), target=Target.CORTEX_M)["src/lib.rs"]

    assert "pub enum Interrupt" not in lib
    assert "pub use self::Interrupt as interrupt;" not in lib
    assert "pub static __INTERRUPTS: [Vector; 0] = [" in lib


def test_peripheral_and_array_with_same_type_name():
    svd = build_svd(
        build_peripheral("TIMER", 0x1000, registers=build_register("CTRL", 0))
        + build_peripheral(
            "TIMER%s",
            0x2000,
            registers=build_register("CTRL", 0) + build_register("CNT", 4),
            extra="<dim>2</dim><dimIncrement>0x100</dimIncrement>",
        )
    )
    files = emit(svd2pac.analyze(build_model(svd)))

    assert "src/timer.rs" in files
    assert "src/timer_array.rs" in files
    lib = files["src/lib.rs"]
    assert "pub const TIMER: self::Timer = self::Timer {" in lib
    assert "pub const TIMER0: self::TimerArray = self::TimerArray {" in lib
    assert "pub const TIMER1: self::TimerArray = self::TimerArray {" in lib
    assert "pub const fn cnt(" in files["src/timer_array.rs"]
    assert "pub const fn cnt(" not in files["src/timer.rs"]


def test_identifier_collision():
    svd = build_svd(
        build_peripheral(
            "P", 0x1000, registers=build_register("FOO", 0) + build_register("foo", 4)
        )
    )
    layout = svd2pac.analyze(build_model(svd))

    with pytest.raises(CodeGenError, match="Foo"):
        svd2pac.emit(layout)


def test_reserved_module_name():
    svd = build_svd(build_peripheral("COMMON", 0x1000, registers=build_register("R", 0)))
    layout = svd2pac.analyze(build_model(svd))

    with pytest.raises(CodeGenError, match="common"):
        svd2pac.emit(layout)


@pytest.mark.parametrize(
    "name, snake, camel",
    [
        ("BITFIELD_REG", "bitfield_reg", "BitfieldReg"),
        ("SR", "sr", "Sr"),
        ("CH[0].CTRL", "ch0_ctrl", "Ch0Ctrl"),
        ("type", "r#type", "Type"),
        ("self", "self_", "Self_"),
        ("3DES", "_3des", "_3des"),
    ],
)
def test_naming(name: str, snake: str, camel: str):
    assert snake_name(name) == snake
    assert camel_name(name) == camel


def test_sanitize_and_reserved_fields():
    assert sanitize("CH[0].CTRL") == "CH0_CTRL"
    assert field_accessor_name("SET") == "set_"
    assert field_accessor_name("MODE") == "mode"
