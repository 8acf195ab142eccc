import pytest

from kubescrape.versions import TESTDATA_124, TESTDATA_128, all_versions, is_below, latest_version


def test_all_versions_sorted_and_complete():
    versions = all_versions()
    assert versions == sorted(versions)
    assert versions[0] == "1_24"
    assert "1_26" in versions


def test_all_versions_returns_fresh_list():
    versions = all_versions()
    versions.clear()
    fresh = all_versions()
    assert len(fresh) == 5
    assert fresh[0] == "1_24"
    assert fresh[-1] == "1_28"


def test_latest_version_is_last():
    assert latest_version() == all_versions()[-1]
    assert latest_version() == "1_28"


def test_is_below_older_than_newer():
    assert is_below(TESTDATA_124, TESTDATA_128)
    assert not is_below(TESTDATA_128, TESTDATA_124)


@pytest.mark.parametrize("version", all_versions())
def test_is_below_is_irreflexive(version):
    assert not is_below(version, version)


def test_is_below_consecutive_pairs():
    versions = all_versions()
    for older, newer in zip(versions, versions[1:]):
        assert is_below(older, newer)
        assert not is_below(newer, older)