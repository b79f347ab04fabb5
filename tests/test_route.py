"""Tests for event normalization, route building, position resolving and delays."""

import unittest
from datetime import datetime
import sys
from pathlib import Path

# Add src to path so we can import taglage
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from taglage.models import Activity, Route, StationEvent, ViaLocation
from taglage.normalizer import normalize_events
from taglage.route_builder import build_route
from taglage.position import resolve_position
from taglage.delay import DelayStatus, NO_INFO, delay_minutes, delay_status, route_delays

ARR = Activity.ARRIVAL
DEP = Activity.DEPARTURE


def t(hour, minute, second=0):
    return datetime(2024, 1, 1, hour, minute, second)


def event(signature, activity, scheduled, actual=None, track=None, via_from=(), via_to=(), train="100"):
    return StationEvent(
        train_id=train,
        station_signature=signature,
        activity=activity,
        scheduled_time=scheduled,
        actual_time=actual,
        track=track,
        via_from=tuple(ViaLocation(s, o) for s, o in via_from),
        via_to=tuple(ViaLocation(s, o) for s, o in via_to),
    )


def route_of(events):
    return resolve_position(build_route(normalize_events(events)))


class TestEventNormalizer(unittest.TestCase):
    """Test merging of raw announcements per station."""

    def test_merges_arrival_and_departure(self):
        aggregates = normalize_events([
            event("A", ARR, t(10, 0), t(10, 1)),
            event("A", DEP, t(10, 2), t(10, 3), track="2"),
        ])

        self.assertEqual(list(aggregates), ["A"])
        a = aggregates["A"]
        self.assertTrue(a.arrived)
        self.assertTrue(a.departed)
        self.assertEqual(a.arrival_actual, t(10, 1))
        self.assertEqual(a.departure_actual, t(10, 3))
        self.assertEqual(a.track, "2")
        self.assertEqual(a.scheduled_time, t(10, 0))

    def test_arrival_does_not_set_track(self):
        aggregates = normalize_events([event("B", ARR, t(10, 30), t(10, 31), track="5")])
        self.assertIsNone(aggregates["B"].track)
        self.assertFalse(aggregates["B"].departed)

    def test_revision_without_actual_keeps_known_actual(self):
        aggregates = normalize_events([
            event("A", DEP, t(10, 0), t(10, 3)),
            event("A", DEP, t(10, 0)),
        ])
        self.assertEqual(aggregates["A"].departure_actual, t(10, 3))

    def test_later_revision_replaces_actual(self):
        aggregates = normalize_events([
            event("A", DEP, t(10, 0), t(10, 3)),
            event("A", DEP, t(10, 0), t(10, 4), track="3"),
        ])
        self.assertEqual(aggregates["A"].departure_actual, t(10, 4))
        self.assertEqual(aggregates["A"].track, "3")

    def test_via_hints_are_unioned(self):
        aggregates = normalize_events([
            event("B", ARR, t(10, 30), via_from=[("X", 0)]),
            event("B", DEP, t(10, 32), via_from=[("X", 0), ("Y", 1)], via_to=[("Z", 0)]),
        ])
        b = aggregates["B"]
        self.assertEqual([v.signature for v in b.via_from], ["X", "Y"])
        self.assertEqual([v.signature for v in b.via_to], ["Z"])

    def test_future_station_is_retained(self):
        aggregates = normalize_events([event("C", ARR, t(11, 0))])
        self.assertIn("C", aggregates)
        self.assertFalse(aggregates["C"].arrived)
        self.assertFalse(aggregates["C"].departed)

    def test_insertion_order_preserved(self):
        aggregates = normalize_events([
            event("C", ARR, t(11, 0)),
            event("A", DEP, t(10, 0)),
            event("B", ARR, t(10, 30)),
        ])
        self.assertEqual(list(aggregates), ["C", "A", "B"])


class TestRouteBuilder(unittest.TestCase):
    """Test ordering and via-station placement."""

    def test_empty_input_gives_empty_route(self):
        route = build_route({})
        self.assertTrue(route.is_empty)
        self.assertEqual(route.current_index, -1)

    def test_sorted_by_scheduled_time(self):
        route = build_route(normalize_events([
            event("C", ARR, t(11, 0)),
            event("A", DEP, t(10, 0)),
            event("B", ARR, t(10, 30)),
        ]))
        self.assertEqual(route.signatures, ["A", "B", "C"])

    def test_via_stations_adjacent_to_parent(self):
        route = build_route(normalize_events([
            event("A", DEP, t(10, 0), via_to=[("V2", 1), ("V1", 0)]),
            event("B", ARR, t(10, 30), via_from=[("W", 0)]),
        ]))
        self.assertEqual(route.signatures, ["A", "V1", "V2", "W", "B"])
        self.assertEqual(
            [n.is_announced for n in route],
            [True, False, False, False, True],
        )

    def test_via_nodes_carry_no_times(self):
        route = build_route(normalize_events([
            event("A", DEP, t(10, 0), t(10, 0), via_to=[("V", 0)]),
        ]))
        via = route[1]
        self.assertIsNone(via.scheduled_time)
        self.assertIsNone(via.actual_time)
        self.assertFalse(via.touched)

    def test_via_hint_for_announced_station_is_skipped(self):
        route = build_route(normalize_events([
            event("A", DEP, t(10, 0), via_to=[("B", 0), ("X", 1)]),
            event("B", ARR, t(10, 30)),
        ]))
        self.assertEqual(route.signatures, ["A", "X", "B"])
        self.assertTrue(route[2].is_announced)

    def test_duplicate_via_kept_at_first_position(self):
        route = build_route(normalize_events([
            event("A", DEP, t(10, 0), via_to=[("X", 0)]),
            event("B", ARR, t(10, 30), via_from=[("X", 0), ("Y", 1)]),
        ]))
        self.assertEqual(route.signatures, ["A", "X", "Y", "B"])

    def test_equal_times_keep_vias_with_their_parent(self):
        route = build_route(normalize_events([
            event("A", DEP, t(10, 0), via_to=[("X", 0)]),
            event("B", DEP, t(10, 0), via_from=[("Y", 0)]),
        ]))
        self.assertEqual(route.signatures, ["A", "X", "Y", "B"])

    def test_signatures_unique_and_times_ordered(self):
        events = [
            event("D", ARR, t(11, 30), via_from=[("B", 0), ("Q", 1)]),
            event("A", DEP, t(10, 0), via_to=[("P", 0), ("Q", 1)]),
            event("B", ARR, t(10, 20), via_from=[("P", 0)]),
            event("B", DEP, t(10, 22), via_to=[("R", 0)]),
            event("C", ARR, t(11, 0), via_from=[("R", 0), ("S", 1)]),
        ]
        route = build_route(normalize_events(events))

        self.assertEqual(len(route.signatures), len(set(route.signatures)))
        times = [n.scheduled_time for n in route if n.is_announced]
        self.assertEqual(times, sorted(times))
        self.assertEqual(route.signatures, ["A", "P", "Q", "B", "R", "S", "C", "D"])


class TestPositionResolver(unittest.TestCase):
    """Test current position and in-transit marking."""

    def test_departed_first_station(self):
        route = route_of([
            event("A", DEP, t(10, 0), t(10, 0)),
            event("B", ARR, t(10, 30)),
        ])

        self.assertEqual(route.signatures, ["A", "B"])
        self.assertEqual(route.current_index, 0)
        self.assertTrue(route[0].departed)
        self.assertTrue(route[0].train_between_here_and_next)
        self.assertFalse(route[0].is_current)
        self.assertFalse(route[1].arrived)
        self.assertFalse(route[1].in_transit_zone)
        self.assertFalse(route[1].is_current)

    def test_at_station_after_arrival(self):
        route = route_of([
            event("A", DEP, t(10, 0), t(10, 0)),
            event("B", ARR, t(10, 30), t(10, 31)),
            event("B", DEP, t(10, 32)),
            event("C", ARR, t(11, 0)),
        ])
        self.assertEqual(route.current_index, 1)
        self.assertTrue(route[1].is_current)
        self.assertFalse(route[0].train_between_here_and_next)

    def test_in_transit_zone_stops_at_next_announced(self):
        route = route_of([
            event("A", DEP, t(10, 0), t(10, 0), via_to=[("V1", 0), ("V2", 1)]),
            event("B", ARR, t(10, 30), via_to=[("V3", 0)]),
        ])
        self.assertEqual(route.signatures, ["A", "V1", "V2", "B", "V3"])
        self.assertEqual(
            [n.in_transit_zone for n in route],
            [False, True, True, False, False],
        )
        self.assertTrue(route[0].train_between_here_and_next)

    def test_latest_touched_station_wins(self):
        route = route_of([
            event("A", DEP, t(10, 0), t(10, 0)),
            event("B", DEP, t(10, 30), t(10, 31), via_to=[("V", 0)]),
            event("C", ARR, t(11, 0)),
        ])
        self.assertEqual(route.current_index, 1)
        self.assertTrue(route[1].train_between_here_and_next)
        self.assertTrue(route[2].in_transit_zone)
        self.assertFalse(route[0].train_between_here_and_next)

    def test_departed_last_node_is_current(self):
        route = route_of([event("A", DEP, t(10, 0), t(10, 0))])
        self.assertEqual(route.current_index, 0)
        self.assertTrue(route[0].is_current)
        self.assertFalse(route[0].train_between_here_and_next)

    def test_not_started(self):
        route = route_of([
            event("A", DEP, t(10, 0), via_to=[("V", 0)]),
            event("B", ARR, t(10, 30)),
        ])
        self.assertEqual(route.current_index, -1)
        self.assertIsNone(route.current_node)
        self.assertFalse(any(n.is_current or n.in_transit_zone or n.train_between_here_and_next for n in route))

    def test_single_current_marker(self):
        route = route_of([
            event("A", ARR, t(9, 58), t(9, 58)),
            event("A", DEP, t(10, 0), t(10, 1), via_to=[("V", 0)]),
            event("B", ARR, t(10, 30), t(10, 29)),
            event("B", DEP, t(10, 32)),
            event("C", ARR, t(11, 0)),
        ])
        self.assertLessEqual(sum(n.is_current for n in route), 1)
        self.assertEqual(sum(n.train_between_here_and_next for n in route), 0)
        self.assertFalse(any(n.in_transit_zone for n in route))
        self.assertEqual(route.current_node.signature, "B")

    def test_resolving_twice_is_stable(self):
        route = route_of([
            event("A", DEP, t(10, 0), t(10, 0), via_to=[("V", 0)]),
            event("B", ARR, t(10, 30)),
        ])
        self.assertEqual(resolve_position(route), route)

    def test_empty_route(self):
        self.assertEqual(resolve_position(Route()).current_index, -1)


class TestDelayCalculator(unittest.TestCase):
    """Test delay minutes and status."""

    def test_delay_from_strings(self):
        self.assertEqual(delay_minutes("2024-01-01T10:00:00", "2024-01-01T10:05:00"), 5)

    def test_on_time(self):
        self.assertEqual(delay_minutes(t(10, 0), t(10, 0)), 0)
        self.assertEqual(delay_status(0), DelayStatus.ON_TIME)

    def test_no_info(self):
        self.assertIs(delay_minutes(t(10, 0), None), NO_INFO)
        self.assertIs(delay_minutes(None, t(10, 0)), NO_INFO)
        self.assertEqual(delay_status(None), DelayStatus.NO_INFO)

    def test_early_and_late(self):
        self.assertEqual(delay_minutes(t(10, 0), t(9, 58)), -2)
        self.assertEqual(delay_status(-2), DelayStatus.EARLY)
        self.assertEqual(delay_status(3), DelayStatus.DELAYED)

    def test_rounding(self):
        self.assertEqual(delay_minutes(t(10, 0), t(10, 0, 30)), 1)
        self.assertEqual(delay_minutes(t(10, 0), t(10, 0, 29)), 0)

    def test_timezone_offsets(self):
        self.assertEqual(
            delay_minutes("2024-01-01T10:00:00.000+01:00", "2024-01-01T09:07:00Z"),
            7,
        )

    def test_route_delays(self):
        route = route_of([
            event("A", DEP, t(10, 0), t(10, 2)),
            event("B", ARR, t(10, 30), t(10, 29), via_from=[("V", 0)]),
            event("C", ARR, t(11, 0)),
        ])
        self.assertEqual(route_delays(route), {"A": 2, "B": -1})


if __name__ == "__main__":
    unittest.main()
