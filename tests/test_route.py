import datetime as dt

import pytest

from stopsense.core.route import BeyondRoute, Route, RouteMatcher, build_route
from stopsense.core.stop_gate import GateDecision
from stopsense.data.lines import Station, StationCatalog

T0 = dt.datetime(2024, 1, 1, 7, 0, 0)


def _decision(ordinal, confirmed: bool = True) -> GateDecision:
    return GateDecision(
        confirmed=confirmed,
        ordinal=ordinal,
        started_at=T0,
        decided_at=T0 + dt.timedelta(seconds=20),
        duration=dt.timedelta(seconds=20),
    )


def _five_station_route() -> Route:
    stations = [Station(id=f"s{i}", name=f"Station {i}", line="test") for i in range(5)]
    return Route(line_id="test", stations=stations)


def test_build_route_forward_direction() -> None:
    catalog = StationCatalog.default()
    route = build_route(catalog, "bts_silom", "silom_siam", "silom_surasak")

    assert [s.name for s in route.stations] == [
        "Siam",
        "Ratchadamri",
        "Sala Daeng",
        "Chong Nonsi",
        "Saint Louis",
        "Surasak",
    ]
    assert route.origin.id == "silom_siam"
    assert route.direction is not None and route.direction.label == "Bang Wa"


def test_build_route_reverses_when_origin_after_destination() -> None:
    catalog = StationCatalog.default()
    route = build_route(catalog, "arl", "arl_suvarnabhumi", "arl_makkasan")

    assert route.stations[0].name == "Suvarnabhumi"
    assert route.stations[-1].name == "Makkasan"
    assert len(route) == 6
    assert route.direction.label == "Phaya Thai"


def test_build_route_empty_for_same_or_unknown_stations() -> None:
    catalog = StationCatalog.default()

    assert not build_route(catalog, "arl", "arl_makkasan", "arl_makkasan")
    assert not build_route(catalog, "arl", "arl_makkasan", "silom_siam")
    assert not build_route(catalog, "unknown", "a", "b")


def test_events_assigned_in_route_order() -> None:
    matcher = RouteMatcher(_five_station_route())

    assigned = [matcher.assign(ordinal) for ordinal in range(3)]

    assert [station.name for station in assigned] == ["Station 1", "Station 2", "Station 3"]
    assert matcher.expected_stops == 4


def test_events_past_route_map_to_placeholder() -> None:
    matcher = RouteMatcher(_five_station_route())

    assert matcher.assign(3).name == "Station 4"
    beyond = matcher.assign(5)
    assert isinstance(beyond, BeyondRoute)
    assert beyond.label == "Stop #7 (beyond route)"
    assert isinstance(matcher.assign(4), BeyondRoute)


def test_to_event_annotates_station_and_placeholder() -> None:
    matcher = RouteMatcher(_five_station_route())

    event = matcher.to_event(_decision(0))
    assert event.station.name == "Station 1"
    assert event.label == "Station 1"
    assert not event.beyond_route

    beyond = matcher.to_event(_decision(9))
    assert beyond.station is None
    assert beyond.beyond_route
    assert beyond.label.endswith("(beyond route)")


def test_to_event_rejects_ignored_decision() -> None:
    matcher = RouteMatcher(_five_station_route())

    with pytest.raises(ValueError):
        matcher.to_event(_decision(None, confirmed=False))


def test_next_station_tracks_confirmed_count() -> None:
    matcher = RouteMatcher(_five_station_route())

    assert matcher.next_station(0).name == "Station 1"
    assert matcher.next_station(4) is None


def test_catalog_lookup() -> None:
    catalog = StationCatalog.default()

    assert {line.id for line in catalog.lines()} == {"mrt_blue", "bts_sukhumvit", "bts_silom", "arl"}
    assert catalog.get_station("arl_phaya_thai").name == "Phaya Thai"
    assert catalog.get_station("suk_phaya_thai").line == "bts_sukhumvit"
    assert catalog.get_station("missing") is None
    assert catalog.direction_towards("bts_silom", "silom_siam", "silom_siam") is None
