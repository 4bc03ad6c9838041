# SPDX-License-Identifier: MIT
"""Tests for version parsing and ordering."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from pubmirror_api.semver import (
    InvalidVersionError,
    Version,
    compare_versions,
    is_valid_semver,
    parse_version,
    primary_version,
    priority_key,
    version_key,
)


class TestParseVersion:
    def test_basic(self):
        assert parse_version("1.2.3") == Version(1, 2, 3)

    def test_prerelease_and_build(self):
        v = parse_version("2.0.0-dev.1+4")
        assert v.prerelease == "dev.1"
        assert v.build == "4"
        assert v.is_prerelease
        assert str(v) == "2.0.0-dev.1+4"

    @pytest.mark.parametrize("value", ["", "1.0", "1.0.0.0", "v1.0.0", "01.0.0", "1.0.0-"])
    def test_invalid(self, value):
        with pytest.raises(InvalidVersionError):
            parse_version(value)
        assert not is_valid_semver(value)

    def test_non_string(self):
        with pytest.raises(InvalidVersionError, match="string"):
            parse_version(100)  # type: ignore[arg-type]


class TestOrdering:
    def test_semver_precedence(self):
        versions = ["1.0.0", "1.0.0-alpha.1", "1.0.0-alpha", "1.0.0-beta", "0.9.9", "1.0.0-alpha.beta"]

        assert sorted(versions, key=version_key) == [
            "0.9.9",
            "1.0.0-alpha",
            "1.0.0-alpha.1",
            "1.0.0-alpha.beta",
            "1.0.0-beta",
            "1.0.0",
        ]

    def test_build_metadata_is_ignored(self):
        assert compare_versions("1.0.0+1", "1.0.0+2") == 0
        assert compare_versions("1.0.1", "1.0.0") == 1
        assert compare_versions("1.0.0-rc.1", "1.0.0") == -1

    def test_priority_ranks_stable_above_prerelease(self):
        versions = ["3.0.0-dev", "1.0.0", "1.2.0", "2.0.0-beta"]

        assert sorted(versions, key=priority_key) == ["2.0.0-beta", "3.0.0-dev", "1.0.0", "1.2.0"]

    def test_invalid_versions_rank_lowest(self):
        assert sorted(["1.0.0", "latest", "0.0.1-dev"], key=priority_key) == [
            "latest",
            "0.0.1-dev",
            "1.0.0",
        ]

    def test_primary_version(self):
        assert primary_version(["1.0.0", "2.0.0-dev", "1.5.0"]) == "1.5.0"
        assert primary_version(["2.0.0-dev", "2.0.0-beta"]) == "2.0.0-dev"
        assert primary_version([]) is None


versions = st.builds(
    lambda major, minor, patch, pre: f"{major}.{minor}.{patch}" + (f"-{pre}" if pre else ""),
    st.integers(0, 20),
    st.integers(0, 20),
    st.integers(0, 20),
    st.one_of(st.none(), st.sampled_from(["alpha", "beta.2", "dev.10", "rc.1", "0"])),
)


@given(versions)
def test_parse_roundtrips(value):
    assert str(parse_version(value)) == value


@given(versions, versions)
def test_compare_is_antisymmetric(a, b):
    assert compare_versions(a, b) == -compare_versions(b, a)


@given(st.lists(versions, min_size=1))
def test_primary_is_stable_when_any_stable(values):
    primary = primary_version(values)
    stable = [v for v in values if "-" not in v]
    if stable:
        assert primary == max(stable, key=version_key)
    else:
        assert primary == max(values, key=version_key)
