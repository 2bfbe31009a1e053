import argparse

from pathlib import Path
import sys

import pytest

# Test suites shipped with the package, by name
SUITES = {
    "all": "unit",
    "codec": "unit/codec",
    "format": "unit/format",
}


def batchwire_testing():
    """
    Console script entry point for the bundled codec and format tests.
    """
    parser = argparse.ArgumentParser(description="Run pytest on the batchwire codec.")

    parser.add_argument(
        "suite",
        nargs="?",
        default="all",
        choices=sorted(SUITES),
        help="Which suite to run: message/schema/batch codecs, file/stream formats, or both.",
    )
    parser.add_argument(
        "-k",
        "--keyword",
        help="Only run tests matching keyword expression (same as pytest -k).",
    )
    parser.add_argument(
        "-x", "--exitfirst", action="store_true", help="Stop at the first failure."
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Quiet mode.")
    parser.add_argument("-vv", action="store_true", help="Very-verbose")
    parser.add_argument(
        "-l",
        "--log",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Enable logging with level, e.g. 'debug' shows dictionary replacements.",
    )

    args = parser.parse_args()

    testing_dir = Path(__file__).resolve().parent
    # conftest.py lives above the suite directories
    pytest_args = [str(testing_dir / SUITES[args.suite]), "--confcutdir", str(testing_dir)]

    if args.keyword:
        pytest_args += ["-k", args.keyword]
    if args.exitfirst:
        pytest_args.append("-x")

    if not args.quiet:
        pytest_args.append("-v")
    if args.vv:
        pytest_args.append("-vv")
    if args.log:
        pytest_args += ["--log-cli-level", args.log.upper()]

    sys.exit(pytest.main(pytest_args))


if __name__ == "__main__":
    batchwire_testing()
