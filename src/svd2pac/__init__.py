# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from .bindings import Access
from .errors import (
    Svd2PacError,
    SvdParseError,
    SvdValidationError,
    SvdModelBuildError,
    SvdLayoutError,
    CodeGenError,
)
from .options import (
    Options,
    Target,
    ValidationLevel,
)
from .parsing import parse
from .validation import (
    ValidationIssue,
    ValidationReport,
    validate,
)
from .device import (
    ArrayMember,
    Cpu,
    Device,
    EnumeratedValue,
    Field,
    Interrupt,
    Peripheral,
    Register,
    build_device,
)
from .layout import (
    DeviceLayout,
    FieldLayout,
    PeripheralLayout,
    RegisterLayout,
    analyze,
)
from .emitter import emit
from .package import GeneratedPackage, generate_package

import importlib.metadata
import logging

__version__ = importlib.metadata.version("svd2pac")


def _init_logger() -> logging.Logger:
    formatter = logging.Formatter("{message}", style="{")
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    logger = logging.getLogger("svd2pac")
    logger.setLevel(logging.ERROR)
    logger.addHandler(handler)

    return logger


# logging.Logger instance used for log output from svd2pac
log = _init_logger()

__all__ = [
    # from bindings
    "Access",
    # from errors
    "Svd2PacError",
    "SvdParseError",
    "SvdValidationError",
    "SvdModelBuildError",
    "SvdLayoutError",
    "CodeGenError",
    # from options
    "Options",
    "Target",
    "ValidationLevel",
    # from parsing
    "parse",
    # from validation
    "ValidationIssue",
    "ValidationReport",
    "validate",
    # from device
    "ArrayMember",
    "Cpu",
    "Device",
    "EnumeratedValue",
    "Field",
    "Interrupt",
    "Peripheral",
    "Register",
    "build_device",
    # from layout
    "DeviceLayout",
    "FieldLayout",
    "PeripheralLayout",
    "RegisterLayout",
    "analyze",
    # from emitter
    "emit",
    # from package
    "GeneratedPackage",
    "generate_package",
    # other
    "log",
    "__version__",
]
