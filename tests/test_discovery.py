import pytest
from fakes import FakePlacesClient, place_payload

from restaurant_ingest.core.throttle import RetryExecutor, RetryExhaustedError
from restaurant_ingest.models import SearchLocation
from restaurant_ingest.pipeline import discovery

NORTH = SearchLocation("North Loop", 30.32, -97.72)
SOUTH = SearchLocation("South Congress", 30.25, -97.75)


def place(place_id, name=None):
    return {"id": place_id, "displayName": {"text": name or f"Place {place_id}"}}


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr(discovery.time, "sleep", lambda seconds: recorded.append(seconds))
    return recorded


def test_build_query_uses_location_name():
    assert discovery.build_query(NORTH) == "restaurants in North Loop"


def test_discover_dedupes_across_overlapping_locations(sleeps):
    places = FakePlacesClient(
        pages={
            "North Loop": [[place("a"), place("b")], [place("c")]],
            "South Congress": [[place("b"), place("d")]],
        }
    )
    finder = discovery.PlaceDiscovery(places, RetryExecutor(0, 0), page_delay=2.0)

    candidates = finder.discover([NORTH, SOUTH], target=10)

    assert [c.external_id for c in candidates] == ["a", "b", "c", "d"]
    assert candidates[0].display_name == "Place a"
    assert places.search_calls == [
        ("restaurants in North Loop", "North Loop", None),
        ("restaurants in North Loop", "North Loop", "1"),
        ("restaurants in South Congress", "South Congress", None),
    ]
    assert sleeps == [2.0]


def test_discover_stops_at_target(sleeps):
    places = FakePlacesClient(
        pages={"North Loop": [[place("a"), place("b"), place("c")], [place("d")]], "South Congress": [[place("e")]]}
    )
    finder = discovery.PlaceDiscovery(places, RetryExecutor(0, 0))

    candidates = finder.discover([NORTH, SOUTH], target=2)

    assert [c.external_id for c in candidates] == ["a", "b"]
    assert len(places.search_calls) == 1
    assert sleeps == []


def test_discover_skips_results_without_id(sleeps):
    places = FakePlacesClient(pages={"North Loop": [[{"displayName": {"text": "Ghost"}}, place("a")]]})

    candidates = discovery.PlaceDiscovery(places, RetryExecutor(0, 0)).discover([NORTH], target=5)

    assert [c.external_id for c in candidates] == ["a"]


def test_discover_moves_on_when_a_query_exhausts_retries(sleeps, caplog):
    places = FakePlacesClient(pages={"South Congress": [[place("z")]]})
    original = places.search_text

    def failing_search(query, location, page_token=None, max_results=20):
        if location.name == "North Loop":
            raise RuntimeError("503 backend error")
        return original(query, location, page_token, max_results)

    places.search_text = failing_search
    finder = discovery.PlaceDiscovery(places, RetryExecutor(2, 1.0))

    with caplog.at_level("ERROR"):
        candidates = finder.discover([NORTH, SOUTH], target=5)

    assert [c.external_id for c in candidates] == ["z"]
    assert "Discovery failed for North Loop" in caplog.text


def test_discover_with_non_positive_target_returns_nothing():
    places = FakePlacesClient(pages={"North Loop": [[place("a")]]})

    assert discovery.PlaceDiscovery(places, RetryExecutor(0, 0)).discover([NORTH], target=0) == []
    assert places.search_calls == []


def test_detail_fetcher_parses_payload():
    places = FakePlacesClient(details={"pid": place_payload("pid", name="Casa Roma")})

    record = discovery.PlaceDetailFetcher(places, RetryExecutor(0, 0)).fetch("pid")

    assert record.external_id == "pid"
    assert record.name == "Casa Roma"
    assert len(record.photos) == 3


def test_detail_fetcher_raises_after_retries(monkeypatch):
    monkeypatch.setattr("time.sleep", lambda _: None)
    places = FakePlacesClient()

    with pytest.raises(RetryExhaustedError) as excinfo:
        discovery.PlaceDetailFetcher(places, RetryExecutor(3, 1.0)).fetch("missing")

    assert excinfo.value.context == "details missing"
    assert places.detail_calls == ["missing"] * 4
