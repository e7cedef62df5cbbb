# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Settings for a single generation run.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ._bindings import CaseInsensitiveStrEnum


@enum.unique
class ValidationLevel(CaseInsensitiveStrEnum):
    """How strictly the SVD document is checked before the device model is built."""

    # Structural parse success is sufficient.
    DISABLED = "disabled"
    # Missing optional properties fall back to defaults with a warning.
    WEAK = "weak"
    # Every required property must be present and well-formed.
    STRICT = "strict"


@enum.unique
class Target(CaseInsensitiveStrEnum):
    """Architecture the generated crate is intended for."""

    # Only generic access to registers.
    GENERIC = "generic"
    # Generic access plus atomic read-modify-store of register values.
    AURIX = "aurix"
    # Interrupt vector table and NVIC priority bits, compatible with cortex-m-rt.
    CORTEX_M = "cortex-m"


@dataclass(frozen=True)
class Options:
    """Options to configure one generation run."""

    # Strictness of the checks performed on the SVD document.
    validation_level: ValidationLevel = ValidationLevel.WEAK

    # Target architecture of the generated crate.
    target: Target = Target.GENERIC

    # Emit the tracing interface (access indirection, insanely_unsafe, register name map).
    tracing: bool = False

    # Crate name to use instead of the one derived from the device name.
    package_name: Optional[str] = None

    # File whose contents are used as the crate license instead of the SVD licenseText.
    license_file: Optional[Path] = None

    # Run rustfmt on the generated sources.
    run_formatter: bool = True
