"""Kubernetes versions for which sample metric data exists."""

from __future__ import annotations

from bisect import bisect_left
from typing import NewType

Version = NewType("Version", str)

TESTDATA_124 = Version("1_24")
TESTDATA_125 = Version("1_25")
TESTDATA_126 = Version("1_26")
TESTDATA_127 = Version("1_27")
TESTDATA_128 = Version("1_28")

# Kept sorted, newest last.
_ALL_VERSIONS = (TESTDATA_124, TESTDATA_125, TESTDATA_126, TESTDATA_127, TESTDATA_128)


def all_versions() -> list[Version]:
    """Every known version, oldest first."""
    return list(_ALL_VERSIONS)


def latest_version() -> Version:
    """The newest known version."""
    return _ALL_VERSIONS[-1]


def is_below(a: str, b: str) -> bool:
    """Whether ``a`` comes before ``b`` among the known versions."""
    return bisect_left(_ALL_VERSIONS, a) < bisect_left(_ALL_VERSIONS, b)