"""Checks for ``rke2 certificate rotate``.

Rotation moves the old certificates into a ``tls-<timestamp>`` directory next
to ``tls``. CA material is not rotated, so exactly the files below must be
reported identical between the live and the backup directory.
"""
import logging
import re
from collections import Counter
from typing import Iterable, List, Optional

from .errors import AssertionMismatch, ParseError

logger = logging.getLogger("rke2.certs")

EXPECTED_IDENTICAL_FILES = frozenset([
    "client-ca.crt",
    "client-ca.key",
    "client-ca.nochain.crt",
    "peer-ca.crt",
    "peer-ca.key",
    "server-ca.crt",
    "server-ca.key",
    "request-header-ca.crt",
    "request-header-ca.key",
    "server-ca.nochain.crt",
    "service.current.key",
    "service.key",
])

_ROTATED_DIR = re.compile(r"tls-[0-9]+")


def list_tls_dirs_cmd(server_dir: str) -> str:
    # Newest first
    return f"sudo ls -lt {server_dir}/ | grep tls"


def find_rotated_dir(listing: str) -> str:
    """Return the newest ``tls-<timestamp>`` name from an ``ls -lt`` listing."""
    match = _ROTATED_DIR.search(listing)
    if match is None:
        raise ParseError("no rotated tls-<timestamp> directory in listing", listing.strip())
    return match.group(0)


def identical_files_cmd(server_dir: str, rotated_dir: str) -> str:
    return (
        f"sudo diff -sr {server_dir}/tls/ {server_dir}/{rotated_dir}/ "
        "| grep -i identical | cut -f4 -d ' ' | xargs basename -a"
    )


def parse_identical_files(output: str) -> List[str]:
    """Split ``basename -a`` output into file names.

    Blank entries (the trailing newline) are dropped. Duplicates are kept so
    that callers can see them.
    """
    return [line.strip() for line in output.splitlines() if line.strip()]


def duplicate_files(files: Iterable[str]) -> List[str]:
    return sorted(name for name, count in Counter(files).items() if count > 1)


def verify_identical_files(files: Iterable[str], expected: Optional[Iterable[str]] = None) -> None:
    """Check the reported identical files against the expected set.

    Comparison ignores order and repetition.

    Raises:
        AssertionMismatch: Listing missing and unexpected files
    """
    files = [f for f in files if f]
    expected = EXPECTED_IDENTICAL_FILES if expected is None else frozenset(f for f in expected if f)
    dupes = duplicate_files(files)
    if dupes:
        logger.warning(f"Files reported more than once: {', '.join(dupes)}")

    actual = set(files)
    missing = sorted(expected - actual)
    unexpected = sorted(actual - expected)
    if missing or unexpected:
        raise AssertionMismatch(
            "rotated certificate set does not match: "
            f"missing={missing} unexpected={unexpected}"
        )
