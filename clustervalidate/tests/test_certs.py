import pytest

from clustervalidate.modules.rke2.certs import (
    EXPECTED_IDENTICAL_FILES,
    duplicate_files,
    find_rotated_dir,
    identical_files_cmd,
    parse_identical_files,
    verify_identical_files,
)
from clustervalidate.modules.rke2.errors import AssertionMismatch, ParseError

LISTING = """\
drwx------ 6 root root 4096 Oct 19 10:42 tls-1760870520
drwx------ 6 root root 4096 Oct 19 10:42 tls
drwx------ 6 root root 4096 Oct 19 09:10 tls-1760865000
"""

# What the rotation check printed on a real run: a few names twice and a trailing blank.
OBSERVED = [
    "client-ca.crt", "client-ca.key", "client-ca.nochain.crt", "peer-ca.crt", "peer-ca.key",
    "server-ca.crt", "server-ca.key", "request-header-ca.crt", "request-header-ca.key",
    "server-ca.crt", "server-ca.key", "server-ca.nochain.crt", "service.current.key",
    "service.key", "",
]


def test_find_rotated_dir_takes_newest():
    assert find_rotated_dir(LISTING) == "tls-1760870520"


def test_find_rotated_dir_without_backup():
    with pytest.raises(ParseError):
        find_rotated_dir("drwx------ 6 root root 4096 Oct 19 10:42 tls\n")


def test_identical_files_cmd():
    cmd = identical_files_cmd("/var/lib/rancher/rke2/server", "tls-1760870520")
    assert "diff -sr /var/lib/rancher/rke2/server/tls/ /var/lib/rancher/rke2/server/tls-1760870520/" in cmd
    assert cmd.endswith("xargs basename -a")


def test_parse_drops_trailing_blank():
    assert parse_identical_files("a.crt\nb.key\n") == ["a.crt", "b.key"]
    assert parse_identical_files("") == []


def test_matching_fixture_passes_in_any_order():
    verify_identical_files(["a.crt", "b.key"], expected=["a.crt", "b.key"])
    verify_identical_files(["b.key", "a.crt"], expected=["a.crt", "b.key"])


@pytest.mark.parametrize("expected", [
    ["a.crt", "c.key"],
    ["a.crt"],
    ["a.crt", "b.key", "c.key"],
])
def test_mismatching_fixture_fails(expected):
    with pytest.raises(AssertionMismatch):
        verify_identical_files(["a.crt", "b.key"], expected=expected)


def test_mismatch_lists_missing_and_unexpected():
    with pytest.raises(AssertionMismatch) as excinfo:
        verify_identical_files(["a.crt", "b.key"], expected=["a.crt", "c.key"])
    assert "missing=['c.key']" in str(excinfo.value)
    assert "unexpected=['b.key']" in str(excinfo.value)


def test_expected_set_has_twelve_distinct_files():
    assert len(EXPECTED_IDENTICAL_FILES) == 12
    assert "" not in EXPECTED_IDENTICAL_FILES


def test_observed_list_with_duplicates_and_blank_matches_set():
    assert duplicate_files(OBSERVED) == ["server-ca.crt", "server-ca.key"]
    verify_identical_files(OBSERVED)


def test_rotated_ca_is_reported():
    files = sorted(EXPECTED_IDENTICAL_FILES - {"server-ca.key"})
    with pytest.raises(AssertionMismatch, match="server-ca.key"):
        verify_identical_files(files)
