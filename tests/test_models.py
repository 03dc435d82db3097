"""Tests for result, event and statistics models."""

import json
import logging

import pytest

from tagstream.exceptions import UpstreamListError
from tagstream.models.events import EventType, ListingEvent, ListingStats, LoggingEventSink, emit_safely
from tagstream.models.resources import EnrichedResult, ResourceItem


class TestResourceItem:
    """Tests for ResourceItem."""

    def test_name_falls_back_to_identifier(self):
        assert ResourceItem(identifier="log-1").name == "log-1"
        assert ResourceItem(identifier="log-1", display_name="App logs").name == "App logs"

    def test_attributes_ignored_for_equality(self):
        """Test that items compare and hash by identity fields only."""
        a = ResourceItem(identifier="x", attributes={"size": 1})
        b = ResourceItem(identifier="x", attributes={"size": 2})
        assert a == b
        assert len({a, b}) == 1


class TestEnrichedResult:
    """Tests for EnrichedResult."""

    def test_to_dict(self):
        result = EnrichedResult(
            item=ResourceItem(identifier="log-1", attributes={"retention": 30}),
            tags={"env": "prod"},
        )
        data = result.to_dict()
        assert data == {
            "identifier": "log-1",
            "name": "log-1",
            "attributes": {"retention": 30},
            "tags": {"env": "prod"},
        }
        json.dumps(data)

    def test_detail_included_when_present(self):
        result = EnrichedResult(item=ResourceItem(identifier="a"), detail={"k": "v"})
        assert result.to_dict()["detail"] == {"k": "v"}

    def test_failure(self):
        result = EnrichedResult.failure(UpstreamListError("listing resources: boom", page=3))
        assert result.is_error
        assert result.item is None
        assert result.to_dict() == {"error": "listing resources: boom", "error_type": "UpstreamListError"}

    def test_empty_result_not_serializable(self):
        """Test that a result with neither item nor error refuses to serialize."""
        with pytest.raises(ValueError):
            EnrichedResult().to_dict()

    def test_default_tags_independent(self):
        a, b = EnrichedResult(), EnrichedResult()
        a.tags["x"] = "1"
        assert b.tags == {}


class TestEvents:
    """Tests for events and sinks."""

    def test_event_flags(self):
        assert ListingEvent(type=EventType.FAILED).is_error
        assert ListingEvent(type=EventType.ENRICHMENT_DEGRADED).is_warning
        assert not ListingEvent(type=EventType.PAGE_FETCHED).is_warning

    def test_timestamp_is_utc(self):
        event = ListingEvent(type=EventType.STARTED)
        assert event.timestamp.utcoffset().total_seconds() == 0

    def test_emit_safely_swallows_sink_errors(self):
        def broken(event):
            raise RuntimeError("sink down")

        emit_safely(broken, ListingEvent(type=EventType.STARTED))
        emit_safely(None, ListingEvent(type=EventType.STARTED))

    def test_logging_sink_levels(self, caplog):
        caplog.set_level(logging.DEBUG, logger="test.events")
        sink = LoggingEventSink("test.events")

        sink(ListingEvent(type=EventType.ENRICHMENT_DEGRADED, message="tags missing", error="throttled"))
        sink(ListingEvent(type=EventType.COMPLETED))

        assert caplog.records[0].levelno == logging.WARNING
        assert caplog.records[0].getMessage() == "tags missing: throttled"
        assert caplog.records[1].levelno == logging.INFO
        assert caplog.records[1].getMessage() == "completed"


class TestListingStats:
    """Tests for ListingStats."""

    def test_rate(self):
        stats = ListingStats(items_emitted=100, duration_seconds=4.0)
        assert stats.rate_per_second == 25.0

    def test_rate_without_duration(self):
        assert ListingStats(items_emitted=10).rate_per_second == 0.0

    def test_to_dict(self):
        data = ListingStats(pages_fetched=2, items_emitted=80, duration_seconds=1.234).to_dict()
        assert data["pages_fetched"] == 2
        assert data["duration_seconds"] == 1.23
        assert data["rate_per_second"] == 64.8
