"""Tests for the composed enrichment stream."""

import asyncio
from contextlib import aclosing

import pytest
from conftest import FakeDetailApi, FakeListingApi, FakeTaggingApi, make_items

from tagstream.exceptions import CancellationError, ConfigError, UpstreamListError
from tagstream.listing.session import ListingSession
from tagstream.listing.stream import StreamEmitter
from tagstream.models.config import TagstreamConfig
from tagstream.models.events import EventType


def tags_for(items):
    return {item.identifier: {"Name": item.name} for item in items}


def make_session(limiter, items, *, tags=None, detail=None, sink=None, **listing_kwargs):
    return ListingSession(
        listing_api=FakeListingApi(items, **listing_kwargs),
        rate_limiter=limiter,
        tagging_api=FakeTaggingApi(tags_for(items) if tags is None else tags),
        detail_api=detail,
        sink=sink,
    )


async def drain(emitter):
    async with aclosing(emitter.stream()) as results:
        return [result async for result in results]


class TestStreamSetup:
    """Tests for construction-time validation."""

    def test_negative_limit(self, limiter):
        session = make_session(limiter, [])
        with pytest.raises(ConfigError):
            StreamEmitter(session, TagstreamConfig(), limit=-1)

    def test_page_size_over_ceiling(self, limiter):
        """Test that an invalid page size fails before any call."""
        session = make_session(limiter, make_items(3))
        config = TagstreamConfig(listing={"page_size": 500})
        with pytest.raises(ConfigError):
            StreamEmitter(session, config)
        assert session.listing_api.calls == []

    def test_enrichment_requires_tagging_api(self, limiter):
        session = ListingSession(listing_api=FakeListingApi([]), rate_limiter=limiter)
        with pytest.raises(ConfigError):
            StreamEmitter(session, TagstreamConfig())

    def test_detail_requires_detail_api(self, limiter):
        session = make_session(limiter, [])
        with pytest.raises(ConfigError):
            StreamEmitter(session, TagstreamConfig(detail={"enabled": True}))

    def test_bad_pattern(self, limiter):
        session = make_session(limiter, [])
        with pytest.raises(ConfigError):
            StreamEmitter(session, TagstreamConfig(listing={"include_patterns": [""]}))


class TestStream:
    """Tests for the default per-page stream."""

    @pytest.mark.asyncio
    async def test_every_item_with_its_tags(self, limiter):
        """Test that each item is emitted once with exactly its tags."""
        items = make_items(120)
        session = make_session(limiter, items)

        results = await drain(StreamEmitter(session, TagstreamConfig()))

        assert [r.item for r in results] == items
        assert all(r.tags == {"Name": r.item.name} for r in results)
        assert session.stats.items_emitted == 120
        assert session.stats.items_tagged == 120
        assert session.stats.pages_fetched == 3

    @pytest.mark.asyncio
    async def test_untagged_items_get_empty_tags(self, limiter):
        """Test that items absent from the tag map carry an empty dict."""
        items = make_items(5)
        session = make_session(limiter, items, tags={items[0].identifier: {"a": "1"}})

        results = await drain(StreamEmitter(session, TagstreamConfig()))

        assert results[0].tags == {"a": "1"}
        assert all(r.tags == {} for r in results[1:])
        assert session.stats.items_tagged == 1

    @pytest.mark.asyncio
    async def test_enrichment_disabled(self, limiter):
        """Test that no tag lookups happen when enrichment is off."""
        items = make_items(5)
        session = make_session(limiter, items)

        results = await drain(StreamEmitter(session, TagstreamConfig(enrichment={"enabled": False})))

        assert len(results) == 5
        assert session.tagging_api.calls == []

    @pytest.mark.asyncio
    async def test_per_page_interleaving(self, limiter):
        """Test that page N is enriched before page N+1 is requested."""
        items = make_items(100)
        session = make_session(limiter, items)
        emitter = StreamEmitter(session, TagstreamConfig())

        async with aclosing(emitter.stream()) as results:
            first = await results.__anext__()

        assert first.item == items[0]
        assert len(session.listing_api.calls) == 1
        assert len(session.tagging_api.calls) == 1

    @pytest.mark.asyncio
    async def test_scope_all_collects_first(self, limiter):
        """Test that the all scope lists everything before one enrichment pass."""
        items = make_items(120)
        session = make_session(limiter, items)
        emitter = StreamEmitter(session, TagstreamConfig(enrichment={"scope": "all"}))

        async with aclosing(emitter.stream()) as results:
            await results.__anext__()

        assert len(session.listing_api.calls) == 3
        assert [len(ids) for ids, _ in session.tagging_api.calls] == [100, 20]

    @pytest.mark.asyncio
    async def test_filters_applied(self, limiter):
        """Test that configured patterns and a caller filter are combined."""
        items = make_items(10, prefix="web") + make_items(10, prefix="db")
        session = make_session(limiter, items)
        config = TagstreamConfig(listing={"include_patterns": ["web-*"]})

        emitter = StreamEmitter(session, config, item_filter=lambda item: item.identifier.endswith(("0", "2")))
        results = await drain(emitter)

        assert {r.item.identifier for r in results} == {"web-0000", "web-0002"}

    @pytest.mark.asyncio
    async def test_empty_listing(self, limiter, sink):
        session = make_session(limiter, [], sink=sink)
        assert await drain(StreamEmitter(session, TagstreamConfig())) == []
        assert session.tagging_api.calls == []
        assert sink.types()[-1] == EventType.COMPLETED


class TestEarlyTermination:
    """Tests for consumer-driven stopping."""

    @pytest.mark.asyncio
    async def test_take_three_fetches_one_page(self, limiter, sink):
        """Test that taking 3 items with page size 50 lists a single page."""
        items = make_items(500)
        session = make_session(limiter, items, sink=sink, max_page_size=50)
        emitter = StreamEmitter(session, TagstreamConfig())

        taken = []
        async with aclosing(emitter.stream()) as results:
            async for result in results:
                taken.append(result)
                if len(taken) == 3:
                    break

        assert len(taken) == 3
        assert len(session.listing_api.calls) == 1
        assert limiter.get_stats()["list"]["acquires"] == 1
        assert sink.types()[-1] == EventType.STOPPED

    @pytest.mark.asyncio
    async def test_limit(self, limiter):
        """Test that a limit stops the stream and further listing."""
        items = make_items(500)
        session = make_session(limiter, items)

        results = await drain(StreamEmitter(session, TagstreamConfig(), limit=60))

        assert len(results) == 60
        assert len(session.listing_api.calls) == 2

    @pytest.mark.asyncio
    async def test_limit_zero(self, limiter):
        """Test that a zero limit makes no upstream calls."""
        session = make_session(limiter, make_items(5))
        assert await drain(StreamEmitter(session, TagstreamConfig(listing={"limit": 0}))) == []
        assert session.listing_api.calls == []

    @pytest.mark.asyncio
    async def test_session_cancel(self, limiter, sink):
        """Test that cancelling the session raises at the next suspension point."""
        session = make_session(limiter, make_items(500), sink=sink, delay=0.01)
        emitter = StreamEmitter(session, TagstreamConfig())

        received = []
        with pytest.raises(CancellationError):
            async with aclosing(emitter.stream()) as results:
                async for result in results:
                    received.append(result)
                    session.cancel()

        assert len(received) == 1
        assert len(session.listing_api.calls) == 1
        assert sink.types()[-1] == EventType.CANCELLED

    @pytest.mark.asyncio
    async def test_single_use(self, limiter):
        session = make_session(limiter, make_items(2))
        emitter = StreamEmitter(session, TagstreamConfig())
        await drain(emitter)
        with pytest.raises(RuntimeError):
            await drain(emitter)


class TestFailures:
    """Tests for hard and soft failures."""

    @pytest.mark.asyncio
    async def test_listing_failure_is_terminal_result(self, limiter, sink):
        """Test that items before a listing failure stay valid and the error comes last."""
        items = make_items(120)
        session = make_session(limiter, items, sink=sink, fail_on_page=2)

        results = await drain(StreamEmitter(session, TagstreamConfig()))

        assert len(results) == 51
        assert all(not r.is_error for r in results[:50])
        assert results[-1].is_error
        assert isinstance(results[-1].error, UpstreamListError)
        assert EventType.FAILED in sink.types()

    @pytest.mark.asyncio
    async def test_degraded_enrichment_still_emits_everything(self, limiter):
        """Test that 120 items with the second tag batch failing emit 100 tagged and 20 untagged."""
        items = make_items(120)
        session = ListingSession(
            listing_api=FakeListingApi(items, max_page_size=50),
            rate_limiter=limiter,
            tagging_api=FakeTaggingApi(tags_for(items), fail_calls=[2]),
        )
        config = TagstreamConfig(enrichment={"scope": "all", "batch_size": 100})

        results = await drain(StreamEmitter(session, config))

        assert len(results) == 120
        assert not any(r.is_error for r in results)
        assert sum(1 for r in results if r.tags) == 100
        assert sum(1 for r in results if not r.tags) == 20
        assert session.stats.degraded_batches == 1


class TestDetailStream:
    """Tests for the detail-fetching stream."""

    @pytest.mark.asyncio
    async def test_not_found_items_skipped(self, limiter, sink):
        """Test that 10 items with one missing emit 9 results and no error."""
        items = make_items(10)
        session = make_session(limiter, items, sink=sink, detail=FakeDetailApi(missing=[items[4].identifier]))
        config = TagstreamConfig(detail={"enabled": True, "concurrency": 10})

        results = await drain(StreamEmitter(session, config))

        emitted = {r.item.identifier for r in results}
        assert emitted == {i.identifier for i in items} - {items[4].identifier}
        assert not any(r.is_error for r in results)
        assert all(r.detail is not None for r in results)
        assert all(r.tags == {"Name": r.item.name} for r in results)
        assert session.stats.details_dropped == 1
        assert EventType.DETAIL_DROPPED not in sink.types()

    @pytest.mark.asyncio
    async def test_failed_detail_dropped_with_event(self, limiter, sink):
        """Test that an unexpected detail failure drops the item and reports it."""
        items = make_items(4)
        session = make_session(limiter, items, sink=sink, detail=FakeDetailApi(failing=[items[0].identifier]))
        config = TagstreamConfig(detail={"enabled": True})

        results = await drain(StreamEmitter(session, config))

        assert len(results) == 3
        assert EventType.DETAIL_DROPPED in sink.types()

    @pytest.mark.asyncio
    async def test_early_stop_leaves_no_tasks(self, limiter):
        """Test that breaking out of a detail stream releases every task."""
        items = make_items(50)
        detail = FakeDetailApi(delay=0.02)
        session = make_session(limiter, items, detail=detail)
        config = TagstreamConfig(detail={"enabled": True, "concurrency": 5})

        async with aclosing(StreamEmitter(session, config).stream()) as results:
            async for _ in results:
                break

        current = asyncio.current_task()
        assert {t for t in asyncio.all_tasks() if t is not current and not t.done()} == set()
        assert detail.in_flight == 0
        assert len(detail.calls) < 50
