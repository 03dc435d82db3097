"""Tests for identifier filtering."""

import pytest

from tagstream.exceptions import ConfigError
from tagstream.listing.filters import IdentifierFilter, combine_filters
from tagstream.models.resources import ResourceItem


def item(identifier):
    return ResourceItem(identifier=identifier)


class TestIdentifierFilter:
    """Tests for IdentifierFilter."""

    def test_no_patterns_accepts_all(self):
        keep = IdentifierFilter()
        assert keep(item("anything"))
        assert not keep

    def test_include_patterns(self):
        """Test that only identifiers matching an include pattern pass."""
        keep = IdentifierFilter(include_patterns=["/aws/lambda/*", "/ecs/*"])
        assert keep(item("/aws/lambda/handler"))
        assert keep(item("/ecs/web"))
        assert not keep(item("/aws/rds/instance"))

    def test_exclude_patterns(self):
        keep = IdentifierFilter(exclude_patterns=["*-test", "tmp-*"])
        assert keep(item("prod-db"))
        assert not keep(item("db-test"))
        assert not keep(item("tmp-scratch"))

    def test_exclude_wins_over_include(self):
        keep = IdentifierFilter(include_patterns=["/aws/lambda/*"], exclude_patterns=["/aws/lambda/test-*"])
        assert keep(item("/aws/lambda/prod-api"))
        assert not keep(item("/aws/lambda/test-api"))

    def test_case_sensitive(self):
        keep = IdentifierFilter(include_patterns=["Prod-*"])
        assert not keep(item("prod-db"))

    def test_empty_pattern_rejected(self):
        with pytest.raises(ConfigError):
            IdentifierFilter(include_patterns=[""])


class TestCombineFilters:
    """Tests for combine_filters()."""

    def test_nothing_active(self):
        assert combine_filters(None, IdentifierFilter()) is None

    def test_single_filter_returned_as_is(self):
        keep = IdentifierFilter(include_patterns=["a*"])
        assert combine_filters(None, keep) is keep

    def test_and_logic(self):
        keep = combine_filters(
            IdentifierFilter(include_patterns=["web-*"]),
            lambda i: i.identifier.endswith("-1"),
        )
        assert keep(item("web-1"))
        assert not keep(item("web-2"))
        assert not keep(item("db-1"))

    def test_not_callable_rejected(self):
        with pytest.raises(ConfigError):
            combine_filters("web-*")
