# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from typing import Any, Iterable


class Svd2PacError(Exception):
    """Base class for errors raised by the library."""

    ...


class SvdParseError(Svd2PacError):
    """Raised when the SVD document is not well-formed or lacks mandatory elements."""

    ...


class SvdValidationError(Svd2PacError, ValueError):
    """Raised when an SVD element violates a rule of the active validation level."""

    def __init__(self, path: str, rule: str) -> None:
        self.path: str = path
        self.rule: str = rule

        super().__init__(f"Validation failed at '{path}': {rule}")


class SvdModelBuildError(Svd2PacError, ValueError):
    """
    Raised when the device model cannot be built unambiguously, e.g. because of an unresolved
    'derivedFrom' reference or duplicate names after array expansion.
    """

    def __init__(self, elements: Iterable[Any], explanation: str) -> None:
        elements_str = "\n".join(f"  * {e!s}" for e in elements)
        if elements_str:
            message = f"Invalid SVD element(s):\n{elements_str}\n{explanation}"
        else:
            message = explanation

        super().__init__(message)


class SvdLayoutError(Svd2PacError, ValueError):
    """Raised when the address or bit level layout of the device is inconsistent."""

    def __init__(self, elements: Iterable[Any], explanation: str) -> None:
        elements_str = ", ".join(f"{e!s}" for e in elements)
        if elements_str:
            message = f"{explanation} ({elements_str})"
        else:
            message = explanation

        super().__init__(message)


class CodeGenError(Svd2PacError, RuntimeError):
    """
    Raised when rendering of the generated sources fails.
    This indicates a bug in the generator rather than a problem with the input document.
    """

    ...
