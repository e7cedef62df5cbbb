# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Target specific parts of code generation.

Each target is a TargetStrategy value that only selects extra emission steps. The register
accessors themselves are the same for every target.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import svd2pac

from .device import Cpu, Device
from .options import Target
from .rust import IdentifierScope, constant_name, doc_lines

# Cortex-M cores that lack the cache, flash patch, ITM and TPIU blocks.
_BASELINE_CORES = frozenset(("CM0", "CM0PLUS", "CM0+", "CM1", "CM23"))


@dataclass(frozen=True)
class CargoDependency:
    """Dependency added to the generated Cargo.toml."""

    name: str
    version: str
    optional: bool = False


@dataclass(frozen=True)
class TargetStrategy:
    """Extra emission steps of a target."""

    target: Target

    # Emit Reg::modify_atomic, backed by the bus locking ldmst instruction.
    atomic_modify: bool = False

    # Emit the interrupt enum and vector table, NVIC_PRIO_BITS, the core peripheral
    # re-exports and the Peripherals singleton.
    interrupt_table: bool = False

    # Crate dependencies of the generated code.
    dependencies: Tuple[CargoDependency, ...] = ()

    # Cargo features and the features they enable.
    features: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()

    # Additional files, as pairs of (output path, template name).
    extra_files: Tuple[Tuple[str, str], ...] = ()

    # Builds the template variables used by the extra emission steps.
    context_builder: Optional[Callable[[Device], Dict[str, Any]]] = None

    def context(self, device: Device) -> Dict[str, Any]:
        if self.context_builder is None:
            return {}
        return self.context_builder(device)


@dataclass(frozen=True)
class VectorEntry:
    """Slot of the Cortex-M interrupt vector table."""

    value: int

    # Handler name, None for reserved slots.
    name: Optional[str]

    doc: Tuple[str, ...] = ()


def core_peripherals(cpu: Optional[Cpu]) -> List[str]:
    """Core peripherals exposed by the cortex-m crate for the given CPU."""
    names = ["CPUID", "DCB", "DWT", "MPU", "NVIC", "SCB", "SYST"]

    cpu_name = (cpu.name or "").upper() if cpu is not None else ""
    if cpu_name not in _BASELINE_CORES:
        names.extend(("CBP", "FPB", "ITM", "TPIU"))

    if cpu is not None and cpu.has_fpu:
        names.append("FPU")

    return sorted(names)


def interrupt_vector(device: Device) -> List[VectorEntry]:
    """
    Build the interrupt vector table of the device.
    When several interrupts share a number, the first one in (number, name) order is used.

    :raises CodeGenError: If two interrupts map to the same handler name.
    """
    handlers: Dict[int, VectorEntry] = {}
    names = IdentifierScope("interrupt handlers")

    for interrupt in device.interrupts:
        existing = handlers.get(interrupt.value)
        if existing is not None:
            svd2pac.log.warning(
                f"Interrupts {existing.name} and {interrupt.name} share number "
                f"{interrupt.value}, using {existing.name}"
            )
            continue
        handlers[interrupt.value] = VectorEntry(
            value=interrupt.value,
            name=names.add(constant_name(interrupt.name), interrupt.name),
            doc=tuple(doc_lines(interrupt.description)),
        )

    length = max(handlers, default=-1) + 1
    if device.cpu is not None and device.cpu.num_interrupts is not None:
        length = max(length, device.cpu.num_interrupts)

    return [handlers.get(i, VectorEntry(value=i, name=None)) for i in range(length)]


def _cortex_m_context(device: Device) -> Dict[str, Any]:
    nvic_priority_bits = device.cpu.nvic_priority_bits if device.cpu is not None else None
    if nvic_priority_bits is None:
        svd2pac.log.warning(
            "Number of NVIC priority bits is not specified, NVIC_PRIO_BITS is not emitted"
        )

    vector = interrupt_vector(device)

    return {
        "core_peripherals": core_peripherals(device.cpu),
        "nvic_priority_bits": nvic_priority_bits,
        "vector": vector,
        "handlers": [entry for entry in vector if entry.name is not None],
    }


GENERIC = TargetStrategy(target=Target.GENERIC)

AURIX = TargetStrategy(target=Target.AURIX, atomic_modify=True)

CORTEX_M = TargetStrategy(
    target=Target.CORTEX_M,
    interrupt_table=True,
    dependencies=(
        CargoDependency("cortex-m", "0.7"),
        CargoDependency("cortex-m-rt", "0.7", optional=True),
    ),
    features=(("rt", ("cortex-m-rt/device",)),),
    extra_files=(("build.rs", "build.rs.jinja"), ("device.x", "device.x.jinja")),
    context_builder=_cortex_m_context,
)

STRATEGIES: Dict[Target, TargetStrategy] = {
    Target.GENERIC: GENERIC,
    Target.AURIX: AURIX,
    Target.CORTEX_M: CORTEX_M,
}


def strategy_for(target: Target) -> TargetStrategy:
    """Get the emission strategy of a target."""
    return STRATEGIES[target]
