import threading

import pytest

from mulinker_app.cache import MatchCache, MemoryBackend
from mulinker_app.enrichment.driver import EnrichmentDriver
from mulinker_app.errors import CacheUnavailableError, EnrichmentCancelled
from mulinker_app.matching.models import MatchKind, MatchResult, Subscription
from mulinker_app.matching.resolver import MatchResolver


TITLES = ["One Piece", "Blue Box", "Attack on Titan", "Unknown Series", "Blue Box"]


def make_driver(client, cache, concurrency=2):
    return EnrichmentDriver(MatchResolver(client, cache), concurrency=concurrency)


def test_concurrency_must_be_positive(make_search_client, memory_cache):
    with pytest.raises(ValueError):
        make_driver(make_search_client(), memory_cache, concurrency=0)


@pytest.mark.asyncio
async def test_output_preserves_input_order(make_search_client, memory_cache, catalog):
    driver = make_driver(make_search_client(catalog), memory_cache)
    records = [Subscription(title) for title in TITLES]

    enriched = await driver.run(records)

    assert [r.title for r in enriched] == TITLES
    assert all(r.is_enriched for r in enriched)
    kinds = [r.match.kind for r in enriched]
    assert kinds == [MatchKind.EXACT, MatchKind.FUZZY, MatchKind.NONE, MatchKind.NONE, MatchKind.FUZZY]


@pytest.mark.asyncio
async def test_progress_is_reported_per_record(make_search_client, memory_cache, catalog):
    driver = make_driver(make_search_client(catalog), memory_cache)
    progress = []

    await driver.run([Subscription(t) for t in TITLES], lambda current, total: progress.append((current, total)))

    assert progress == [(i, len(TITLES)) for i in range(1, len(TITLES) + 1)]


@pytest.mark.asyncio
async def test_concurrency_is_bounded(make_search_client, memory_cache):
    client = make_search_client({}, delay=0.02)
    driver = make_driver(client, memory_cache, concurrency=2)

    await driver.run([Subscription(f"Series {i}") for i in range(5)])

    assert len(client.calls) == 5
    assert client.max_in_flight == 2


@pytest.mark.asyncio
async def test_already_enriched_records_are_skipped(make_search_client, memory_cache, catalog):
    client = make_search_client(catalog)
    driver = make_driver(client, memory_cache)
    done = Subscription("Blue Box").with_match(MatchResult.unmatched("Blue Box"))
    progress = []

    enriched = await driver.run(
        [done, Subscription("One Piece")],
        lambda current, total: progress.append(current),
    )

    assert client.calls == ["One Piece"]
    assert enriched[0] is done
    assert progress == [1, 2]


@pytest.mark.asyncio
async def test_rerun_makes_no_requests(make_search_client, memory_cache, catalog):
    client = make_search_client(catalog)
    driver = make_driver(client, memory_cache)

    first = await driver.run([Subscription(t) for t in TITLES])
    calls_after_first = len(client.calls)
    second = await driver.run(first)

    assert second == first
    assert len(client.calls) == calls_after_first


@pytest.mark.asyncio
async def test_fresh_records_reuse_cache(make_search_client, memory_cache, catalog):
    client = make_search_client(catalog)
    driver = make_driver(client, memory_cache)

    await driver.run([Subscription("One Piece"), Subscription("Attack on Titan")])
    client.calls.clear()
    await driver.run([Subscription("One Piece"), Subscription("Attack on Titan")])

    # only the unmatched title goes back to the catalog
    assert client.calls == ["Attack on Titan"]


@pytest.mark.asyncio
async def test_single_failure_does_not_abort_batch(make_search_client, memory_cache, catalog):
    client = make_search_client(catalog, failures={"Blue Box"})
    driver = make_driver(client, memory_cache)

    enriched = await driver.run([Subscription("Blue Box"), Subscription("One Piece")])

    assert enriched[0].match == MatchResult.unmatched("Blue Box")
    assert enriched[1].match.kind == MatchKind.EXACT


@pytest.mark.asyncio
async def test_cancel_stops_before_next_batch(make_search_client, memory_cache, catalog):
    client = make_search_client(catalog)
    driver = make_driver(client, memory_cache, concurrency=1)
    cancel_event = threading.Event()

    def on_progress(current, total):
        if current == 1:
            cancel_event.set()

    with pytest.raises(EnrichmentCancelled):
        await driver.run([Subscription(t) for t in TITLES], on_progress, cancel_event)

    assert client.calls == ["One Piece"]
    assert memory_cache.get("onepiece") is not None


@pytest.mark.asyncio
async def test_unavailable_cache_fails_fast(make_search_client):
    class DownBackend(MemoryBackend):
        def ping(self):
            return False

    client = make_search_client({})
    driver = make_driver(client, MatchCache(DownBackend()))

    with pytest.raises(CacheUnavailableError):
        await driver.run([Subscription("One Piece")])
    assert client.calls == []
