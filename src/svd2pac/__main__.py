# Copyright (c) 2024 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from textwrap import dedent
from typing import List, Optional

import svd2pac
from svd2pac import Options, Svd2PacError, Target, ValidationLevel


def cli(argv: Optional[List[str]] = None) -> int:
    top = argparse.ArgumentParser(
        prog="svd2pac",
        description=dedent(
            """\
            Generate a Rust peripheral access crate from a System View Description (SVD) file.
            """
        ),
        allow_abbrev=False,
    )
    top.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help=(
            "Output verbose logs. Can be given multiple times to increase the verbosity. "
            "By default only warnings and errors are output."
        ),
    )
    top.add_argument(
        "--target",
        choices=[t.value for t in Target],
        default=Target.GENERIC.value,
        help="Architecture the generated crate is intended for.",
    )
    top.add_argument(
        "--svd-validation-level",
        choices=[v.value for v in ValidationLevel],
        default=ValidationLevel.WEAK.value,
        help="How strictly the SVD file is checked before generation.",
    )
    top.add_argument(
        "--tracing",
        action="store_true",
        help=(
            "Emit the tracing interface, which routes all register accesses through a "
            "replaceable implementation."
        ),
    )
    top.add_argument(
        "--package-name",
        metavar="NAME",
        help="Name of the generated crate. By default it is derived from the device name.",
    )
    top.add_argument(
        "--license-file",
        type=Path,
        metavar="FILE",
        help="File whose contents are used as the crate license instead of the SVD licenseText.",
    )
    top.add_argument(
        "--disable-rust-fmt",
        action="store_true",
        help="Do not run rustfmt on the generated sources.",
    )
    top.add_argument("svd_file", type=Path, metavar="SVD", help="Path to the device SVD file.")
    top.add_argument(
        "destination", type=Path, metavar="DEST", help="Directory to generate the crate in."
    )

    args = top.parse_args(argv)

    log_level = {
        0: logging.WARNING,
        1: logging.INFO,
    }.get(args.verbose, logging.DEBUG)
    svd2pac.log.setLevel(log_level)

    options = Options(
        validation_level=ValidationLevel(args.svd_validation_level),
        target=Target(args.target),
        tracing=args.tracing,
        package_name=args.package_name,
        license_file=args.license_file,
        run_formatter=not args.disable_rust_fmt,
    )

    try:
        package = svd2pac.generate_package(args.svd_file, args.destination, options)
    except Svd2PacError as e:
        svd2pac.log.error(f"{e.__class__.__name__}: {e}")
        return 1

    if package.report.has_warnings:
        svd2pac.log.warning(
            f"{len(package.report)} validation warning(s), defaults were substituted"
        )
    svd2pac.log.info(f"Generated crate {package.crate_name} in {package.root}")

    return 0


def main() -> None:
    sys.exit(cli())


# Entry point when running with python -m svd2pac
if __name__ == "__main__":
    main()
