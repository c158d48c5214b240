import random

import pytest

from zonefabric.host import Host, PowerState
from zonefabric.locations import Location
from zonefabric.policies import SelectionPolicy, UnknownPolicyError
from zonefabric.region import Region
from zonefabric.repository import DataObject, Repository, TransferEngine
from zonefabric.simulator import Simulator
from zonefabric.statistics import NO_AVAILABLE_ZONE, FailureKind
from zonefabric.zone import AvailabilityZone


def _build_region(policy: SelectionPolicy = SelectionPolicy.NEAREST):
    sim = Simulator()
    zones = []
    for index, (lat, lon) in enumerate([(0.0, 0.0), (10.0, 10.0), (50.0, 50.0)]):
        location = Location(f"City{index}", lat, lon)
        repo = Repository(f"Repo{index}", 1_000_000)
        host = Host(f"Host{index}", repo, location, state=PowerState.RUNNING)
        zones.append(AvailabilityZone(f"zone-{index}", repo, host, location))
    region = Region(zones, policy, sim, TransferEngine(sim), rng=random.Random(5))
    user = Host("user", Repository("UserRepo", 1_000_000), Location("Origin", 0.0, 0.0), state=PowerState.RUNNING)
    return sim, region, user


def _write_everywhere(sim, region, user, object_id="obj", size=3250):
    data = DataObject(object_id, size)
    user.local_disk.register_object(data)
    region.handle_write_request(user, data)
    sim.run()
    return data


def test_region_requires_zones_and_attaches_them():
    with pytest.raises(ValueError):
        Region([], SelectionPolicy.NEAREST, Simulator())
    sim, region, _ = _build_region()
    assert all(zone.region is region for zone in region.zones)
    assert region.zone_last_usage == {zone: 0 for zone in region.zones}
    assert region.get_zone("zone-1") is region.zones[1]
    assert region.get_zone("nope") is None


def test_region_accepts_policy_names():
    sim = Simulator()
    repo = Repository("r", 10)
    zone = AvailabilityZone("z", repo, Host("h", repo, state=PowerState.RUNNING), Location("c", 0, 0))
    assert Region([zone], "lowest_latency", sim).policy is SelectionPolicy.LOWEST_LATENCY


def test_read_with_no_available_zone_returns_current_tick():
    sim, region, user = _build_region()
    for zone in region.zones:
        zone.host.switch_off()
    sim.schedule_at(9, lambda: None)
    sim.run()

    assert region.handle_read_request(user, DataObject("obj", 10)) == 9
    assert region.statistics.read_failures_per_zone[NO_AVAILABLE_ZONE] == 1
    assert region.statistics.read_failures_per_requester["Origin"] == 1
    assert region.statistics.failures_per_kind["read"][FailureKind.NO_AVAILABLE_ZONE] == 1


def test_write_with_no_available_zone_returns_current_tick():
    sim, region, user = _build_region()
    for zone in region.zones:
        zone.host.switch_off()
    data = DataObject("obj", 10)
    user.local_disk.register_object(data)

    assert region.handle_write_request(user, data) == 0
    assert sim.pending == 0
    assert region.statistics.write_failures_per_zone[NO_AVAILABLE_ZONE] == 1


def test_read_returns_zone_estimate_from_nearest_zone():
    sim, region, user = _build_region()
    data = _write_everywhere(sim, region, user)

    estimate = region.handle_read_request(user, data)
    assert estimate == sim.now + 1
    sim.run()
    assert region.statistics.reads_requester_to_zone[("Origin", "zone-0")] == 1


def test_read_policy_overrides_region_policy():
    sim, region, user = _build_region()
    data = _write_everywhere(sim, region, user)
    region.zones[2].repository.add_latency("UserRepo", 1)
    region.zones[0].repository.add_latency("UserRepo", 100)

    region.handle_read_request(user, data, SelectionPolicy.LOWEST_LATENCY)
    sim.run()
    assert region.statistics.reads_requester_to_zone[("Origin", "zone-2")] == 1


def test_read_policy_accepts_policy_names():
    sim, region, user = _build_region()
    data = _write_everywhere(sim, region, user)
    region.zones[2].repository.add_latency("UserRepo", 1)
    region.zones[0].repository.add_latency("UserRepo", 100)

    region.handle_read_request(user, data, "lowest-latency")
    sim.run()
    assert region.statistics.reads_requester_to_zone[("Origin", "zone-2")] == 1
    with pytest.raises(UnknownPolicyError):
        region.handle_read_request(user, data, "closest")


def test_read_does_not_fall_back_to_next_ranked_zone():
    sim, region, user = _build_region()
    data = DataObject("only-far", 100)
    region.zones[2].repository.register_object(data)

    assert region.handle_read_request(user, data) == sim.now
    sim.run()
    assert user.local_disk.lookup("only-far") is None
    assert region.statistics.read_failures_per_zone["zone-0"] == 1
    assert region.statistics.total_reads == 0


def test_global_availability_is_polled_and_deduplicated():
    sim, region, user = _build_region()
    data = DataObject("obj", 3250)
    user.local_disk.register_object(data)

    region.handle_write_request(user, data)
    assert not region.is_data_available_in_all_zones(data)
    assert region.available_objects == []
    assert [zone.name for zone in region.zones_missing_data("obj")] == ["zone-1", "zone-2"]

    assert region.wait_for_global_availability(data)
    assert region.is_data_available_in_all_zones(data)
    assert region.is_data_available_in_all_zones(data)
    assert region.available_objects == [data]
    assert region.zones_missing_data("obj") == []


def test_global_availability_requires_every_zone_even_unavailable_ones():
    sim, region, user = _build_region()
    region.zones[2].host.switch_off()
    data = DataObject("obj", 3250)
    user.local_disk.register_object(data)

    region.handle_write_request(user, data)
    assert region.wait_for_global_availability(data) is False
    assert region.available_objects == []


def test_most_recently_used_follows_completion_callbacks():
    sim, region, user = _build_region(SelectionPolicy.MOST_RECENTLY_USED)
    region.update_zone_usage(region.zones[1], 3)
    data = DataObject("obj", 3250)
    user.local_disk.register_object(data)

    assert region.rank_zones(user)[0] is region.zones[1]
    region.handle_write_request(user, data)
    assert region.zone_last_usage[region.zones[1]] == 1

    sim.run()
    latest = max(region.zone_last_usage.values())
    assert region.rank_zones(user)[0].name in {
        zone.name for zone, tick in region.zone_last_usage.items() if tick == latest
    }


def test_statistics_totals_match_per_zone_counts():
    sim, region, user = _build_region(SelectionPolicy.RANDOM)
    for index in range(4):
        data = _write_everywhere(sim, region, user, object_id=f"obj-{index}")
        region.handle_read_request(user, data)
        sim.run()

    stats = region.statistics
    assert stats.total_writes == sum(stats.write_requests_per_zone.values()) == 12
    assert stats.total_reads == sum(stats.read_requests_per_zone.values()) == 4
    assert sum(stats.reads_requester_to_zone.values()) == stats.total_reads
