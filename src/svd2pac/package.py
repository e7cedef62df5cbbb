# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Assembly of the generated crate on disk.

All pipeline stages run in memory before anything is written, so a failing stage never
leaves a partially generated crate behind.
"""

from __future__ import annotations

import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

import svd2pac

from .device import build_device
from .emitter import Emitter
from .errors import Svd2PacError
from .layout import analyze
from .options import Options
from .parsing import parse
from .validation import ValidationReport, validate

MANIFEST_PATH = "Cargo.toml"
LICENSE_PATH = "LICENSE.txt"


@dataclass(frozen=True)
class GeneratedPackage:
    """Result of a successful generation run."""

    # Root directory of the crate.
    root: Path

    crate_name: str

    # Paths of all written files, relative to the root.
    files: List[str]

    report: ValidationReport

    # Whether the sources were formatted with rustfmt.
    formatted: bool


def generate_package(
    svd_path: Union[str, Path],
    destination: Union[str, Path],
    options: Options = Options(),
) -> GeneratedPackage:
    """
    Generate a peripheral access crate from a SVD file.

    :param svd_path: Path to the SVD file.
    :param destination: Directory to create the crate in. Created if it does not exist.
    :param options: Generation options.

    :raises Svd2PacError: If any stage of the generation fails. No file is written then.
    :return: Description of the generated crate.
    """
    destination = Path(destination)

    device_element = parse(Path(svd_path))
    report = validate(device_element, options.validation_level)
    device = build_device(device_element, options)
    layout = analyze(device)

    license_text = _read_license(options.license_file) or device.license_text

    emitter = Emitter(layout, options, license_text=license_text)
    files: Dict[str, str] = dict(emitter.emit())
    files[MANIFEST_PATH] = emitter.manifest(has_license=license_text is not None)
    if license_text is not None:
        files[LICENSE_PATH] = license_text.strip() + "\n"

    _write_files(destination, files)
    svd2pac.log.info(f"Wrote {len(files)} file(s) to {destination}")

    formatted = False
    if options.run_formatter:
        formatted = _run_rustfmt(
            destination, [p for p in files if p.endswith(".rs") and p.startswith("src/")]
        )

    return GeneratedPackage(
        root=destination,
        crate_name=emitter.crate_name,
        files=sorted(files),
        report=report,
        formatted=formatted,
    )


def _read_license(license_file: Optional[Path]) -> Optional[str]:
    if license_file is None:
        return None

    try:
        return Path(license_file).read_text(encoding="utf-8")
    except OSError as e:
        raise Svd2PacError(f"Failed to read license file {license_file}: {e}") from e


def _write_files(root: Path, files: Dict[str, str]) -> None:
    try:
        for path, content in files.items():
            target = root / path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
    except OSError as e:
        raise Svd2PacError(f"Failed to write the generated package to {root}: {e}") from e


def _run_rustfmt(root: Path, sources: List[str]) -> bool:
    """
    Format the generated sources in place.
    A missing or failing formatter only produces a warning, the unformatted sources are valid.

    :return: True if the sources were formatted.
    """
    rustfmt = shutil.which("rustfmt")
    if rustfmt is None:
        svd2pac.log.warning("rustfmt not found, the generated sources are not formatted")
        return False

    t_start = time.perf_counter()
    try:
        subprocess.run(
            [rustfmt, "--edition", "2021", *sources],
            cwd=root,
            check=True,
            capture_output=True,
            text=True,
        )
    except subprocess.CalledProcessError as e:
        svd2pac.log.warning(f"rustfmt failed, the sources are left unformatted:\n{e.stderr}")
        return False
    except OSError as e:
        svd2pac.log.warning(f"Failed to run rustfmt: {e}")
        return False

    svd2pac.log.debug(f"rustfmt took {time.perf_counter() - t_start:.3f} s")
    return True
