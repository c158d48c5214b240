import random

import pytest

from zonefabric.host import Host, PowerState
from zonefabric.locations import Location
from zonefabric.policies import (
    MISSING_LATENCY,
    RankingContext,
    SelectionPolicy,
    UnknownPolicyError,
    rank_zones,
)
from zonefabric.repository import DataObject, Repository
from zonefabric.zone import AvailabilityZone


def _zone(name: str, lat: float = 0.0, lon: float = 0.0, capacity: int = 1000, running: bool = True):
    repo = Repository(f"{name} Repo", capacity)
    state = PowerState.RUNNING if running else PowerState.OFF
    host = Host(f"{name} Host", repo, Location(name, lat, lon), state=state)
    return AvailabilityZone(name, repo, host, Location(name, lat, lon))


def _names(zones):
    return [zone.name for zone in zones]


def test_nearest_prefers_zone_at_requester_location():
    zones = [_zone("far", 50, 50), _zone("origin", 0, 0), _zone("mid", 10, 10)]
    ranked = rank_zones(SelectionPolicy.NEAREST, zones, RankingContext(latitude=0.0, longitude=0.0))
    assert _names(ranked) == ["origin", "mid", "far"]
    assert ranked[0].distance_to(0.0, 0.0) == pytest.approx(0.0)


def test_nearest_output_is_sorted_by_distance():
    zones = [_zone(f"z{i}", lat, lon) for i, (lat, lon) in enumerate([(40, -70), (-33, 151), (48, 2), (35, 139)])]
    ranked = rank_zones(SelectionPolicy.NEAREST, zones, RankingContext(latitude=46.25, longitude=20.14))
    distances = [zone.distance_to(46.25, 20.14) for zone in ranked]
    assert distances == sorted(distances)


def test_lowest_latency_ranks_missing_entries_last():
    zones = [_zone("ZoneA"), _zone("ZoneB"), _zone("ZoneC")]
    zones[0].repository.add_latency("UserRepo1", 50)
    zones[2].repository.add_latency("UserRepo1", 20)
    zones[1].repository.add_latency("SomeOtherRepo", 1)

    ranked = rank_zones(
        SelectionPolicy.LOWEST_LATENCY, zones, RankingContext(target_repository="UserRepo1")
    )
    assert _names(ranked) == ["ZoneC", "ZoneA", "ZoneB"]


def test_lowest_latency_sentinel_beats_no_real_value():
    zones = [_zone("slow"), _zone("unknown")]
    zones[0].repository.add_latency("target", MISSING_LATENCY - 1)
    ranked = rank_zones(SelectionPolicy.LOWEST_LATENCY, zones, RankingContext(target_repository="target"))
    assert _names(ranked) == ["slow", "unknown"]


def test_least_loaded_sorts_ascending_by_free_fraction():
    # Literal ordering: the zone with the smallest free fraction (fullest) comes first.
    zones = [_zone("empty"), _zone("half"), _zone("full")]
    zones[1].repository.register_object(DataObject("h", 500))
    zones[2].repository.register_object(DataObject("f", 900))

    ranked = rank_zones(SelectionPolicy.LEAST_LOADED, zones, RankingContext())
    assert _names(ranked) == ["full", "half", "empty"]
    assert [zone.load() for zone in ranked] == pytest.approx([0.1, 0.5, 1.0])


def test_most_recently_used_defaults_missing_usage_to_zero():
    zones = [_zone("a"), _zone("never"), _zone("c")]
    usage = {zones[0]: 5, zones[2]: 9}
    ranked = rank_zones(SelectionPolicy.MOST_RECENTLY_USED, zones, RankingContext(last_usage=usage))
    assert _names(ranked) == ["c", "a", "never"]


def test_random_is_a_permutation_driven_by_context_rng():
    zones = [_zone(name) for name in "abcdef"]
    first = rank_zones(SelectionPolicy.RANDOM, zones, RankingContext(rng=random.Random(3)))
    second = rank_zones(SelectionPolicy.RANDOM, zones, RankingContext(rng=random.Random(3)))
    assert _names(first) == _names(second)
    assert sorted(_names(first)) == list("abcdef")


@pytest.mark.parametrize("policy", list(SelectionPolicy))
def test_unavailable_zones_never_ranked(policy):
    zones = [_zone("up", 1, 1), _zone("down", 0, 0, running=False), _zone("booting", 2, 2)]
    zones[2].host = Host("booting Host", zones[2].repository, state=PowerState.SWITCHING_ON)
    for zone in zones:
        zone.repository.add_latency("target", 10)
    context = RankingContext(target_repository="target", last_usage={zone: 1 for zone in zones})

    ranked = rank_zones(policy, zones, context)
    assert _names(ranked) == ["up"]


def test_availability_is_reevaluated_each_call():
    zones = [_zone("a", 0, 0), _zone("b", 5, 5)]
    context = RankingContext()
    assert _names(rank_zones(SelectionPolicy.NEAREST, zones, context)) == ["a", "b"]
    zones[0].host.switch_off()
    assert _names(rank_zones(SelectionPolicy.NEAREST, zones, context)) == ["b"]


def test_unknown_policy_fails_fast():
    with pytest.raises(UnknownPolicyError):
        rank_zones("closest", [_zone("a")], RankingContext())
    with pytest.raises(UnknownPolicyError):
        SelectionPolicy.parse("closest")


def test_policy_parse_accepts_names_and_values():
    assert SelectionPolicy.parse("lowest-latency") is SelectionPolicy.LOWEST_LATENCY
    assert SelectionPolicy.parse("MOST_RECENTLY_USED") is SelectionPolicy.MOST_RECENTLY_USED
    assert SelectionPolicy.parse(SelectionPolicy.RANDOM) is SelectionPolicy.RANDOM
