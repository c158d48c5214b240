from __future__ import annotations

import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .config import SimulationConfig
from .host import Host, PowerState
from .locations import GeoCatalog, Location
from .policies import SelectionPolicy
from .region import Region
from .repository import DataObject, Repository, TransferEngine
from .simulator import Simulator
from .zone import AvailabilityZone

logger = logging.getLogger(__name__)

FIXED_ZONE_CITIES = ("Budapest", "Paris", "London", "New York", "Tokyo")
SZEGED = Location("Szeged", 46.2530, 20.1414)
SMALL_REPOSITORY_BYTES = 10_000_000


@dataclass
class ScenarioResult:
    scenario: str
    region: Region
    user_policy: SelectionPolicy
    zone_policy: SelectionPolicy
    notes: List[str] = field(default_factory=list)

    @property
    def report(self) -> str:
        return self.region.statistics.render_report(self.user_policy, self.zone_policy)

    def summary(self) -> Dict[str, Any]:
        return {
            "scenario": self.scenario,
            "finished_at": self.region.simulator.now,
            "zone_policy": self.zone_policy.value,
            "user_policy": self.user_policy.value,
            "zones": {
                zone.name: {"available": zone.is_available(), "load": round(zone.load(), 6)}
                for zone in self.region.zones
            },
            "globally_available": [obj.object_id for obj in self.region.available_objects],
            "notes": list(self.notes),
            "statistics": self.region.statistics.snapshot(),
        }


def _boot(simulator: Simulator, host: Host) -> Host:
    host.turn_on(simulator)
    simulator.run_until(lambda: host.power_state() is PowerState.RUNNING)
    return host


def build_zone(
    simulator: Simulator,
    location: Location,
    config: SimulationConfig,
    *,
    name: Optional[str] = None,
    repository_name: Optional[str] = None,
    capacity_bytes: Optional[int] = None,
) -> AvailabilityZone:
    """Create a zone whose host is switched on and running."""
    name = name or location.city
    repo_cfg = config.repository
    repository = Repository(
        repository_name or f"{name} Repo",
        capacity_bytes or repo_cfg.capacity_bytes,
        inbound_bandwidth=repo_cfg.inbound_bandwidth,
        outbound_bandwidth=repo_cfg.outbound_bandwidth,
    )
    host = Host(
        f"{name} Host",
        repository,
        location,
        boot_ticks=config.host.boot_ticks,
        shutdown_ticks=config.host.shutdown_ticks,
    )
    _boot(simulator, host)
    return AvailabilityZone(name, repository, host, location)


def build_user(simulator: Simulator, index: int, location: Location, config: SimulationConfig) -> Host:
    repo_cfg = config.repository
    repository = Repository(
        f"UserRepo{index}",
        repo_cfg.capacity_bytes,
        inbound_bandwidth=repo_cfg.inbound_bandwidth,
        outbound_bandwidth=repo_cfg.outbound_bandwidth,
    )
    return _boot(simulator, Host(f"User{index}", repository, location, boot_ticks=config.host.boot_ticks))


def assign_latencies(repositories: Iterable[Repository], rng: random.Random, low: int, high: int) -> None:
    """Give every ordered pair of distinct repositories a random latency in [low, high]."""
    repos = list(repositories)
    for repo in repos:
        for other in repos:
            if other is not repo:
                repo.add_latency(other.name, rng.randint(low, high))


def _unique_name(city: str, taken: Dict[str, int]) -> str:
    count = taken.get(city, 0)
    taken[city] = count + 1
    return city if count == 0 else f"{city} #{count + 1}"


def _setup(config: SimulationConfig) -> Tuple[random.Random, Simulator, TransferEngine]:
    rng = random.Random(config.seed)
    simulator = Simulator()
    engine = TransferEngine(simulator, default_latency=config.transfer.default_latency)
    return rng, simulator, engine


def _policies(
    config: SimulationConfig,
    zone_default: SelectionPolicy,
    user_default: SelectionPolicy,
) -> Tuple[SelectionPolicy, SelectionPolicy]:
    """Configured zone and user policies, falling back to the scenario's own."""
    workload = config.workload
    zone_policy = zone_default if workload.zone_policy is None else workload.zone_policy
    user_policy = user_default if workload.user_policy is None else workload.user_policy
    return zone_policy, user_policy


def run_multi_user(config: SimulationConfig) -> ScenarioResult:
    """Random zones and users; write-then-read rounds, then reads after a zone outage."""
    rng, simulator, engine = _setup(config)
    workload = config.workload
    zone_policy, user_policy = _policies(config, SelectionPolicy.NEAREST, SelectionPolicy.LOWEST_LATENCY)
    catalog = GeoCatalog()

    names: Dict[str, int] = {}
    zones = []
    for _ in range(workload.zone_count):
        location = catalog.random_location(rng)
        zones.append(build_zone(simulator, location, config, name=_unique_name(location.city, names)))
    users = [
        build_user(simulator, index, catalog.random_location(rng), config)
        for index in range(1, workload.user_count + 1)
    ]

    region = Region(zones, zone_policy, simulator, engine, rng=rng)
    assign_latencies(
        [zone.repository for zone in zones] + [user.local_disk for user in users],
        rng,
        config.transfer.min_latency,
        config.transfer.max_latency,
    )
    files = [
        DataObject(f"File{index}", rng.randint(workload.min_file_size, workload.max_file_size))
        for index in range(1, workload.file_count + 1)
    ]
    result = ScenarioResult("multi_user", region, user_policy, zone_policy)

    for _ in range(workload.rounds):
        user = rng.choice(users)
        to_write = rng.choice(files)
        if not user.local_disk.register_object(to_write):
            logger.warning("Failed to register object %s in %s", to_write.object_id, user.label)
            continue
        region.handle_write_request(user, to_write)
        if not region.wait_for_global_availability(to_write):
            result.notes.append(f"{to_write.object_id} never reached every zone")

        available = region.available_objects
        if not available:
            continue
        to_read = rng.choice(available)
        read_done = region.handle_read_request(user, to_read, user_policy)
        simulator.run_until(lambda: simulator.now >= read_done)

    victim = rng.choice(zones)
    victim.host.switch_off(simulator)
    engine.cancel_transfers(victim.repository)
    result.notes.append(f"{victim.name} switched off")
    logger.info("%s zone has been made unavailable", victim.name)

    for _ in range(workload.outage_reads):
        available = region.available_objects
        if not available:
            break
        user = rng.choice(users)
        region.handle_read_request(user, rng.choice(available), user_policy)
        simulator.run()

    return result


def _fixed_zones(simulator: Simulator, config: SimulationConfig) -> List[AvailabilityZone]:
    catalog = GeoCatalog()
    zones = []
    for index, city in enumerate(FIXED_ZONE_CITIES, start=1):
        zones.append(
            build_zone(
                simulator,
                catalog.lookup(city),
                config,
                repository_name=f"AZ{index}Repo",
                capacity_bytes=SMALL_REPOSITORY_BYTES,
            )
        )
    return zones


def _served_by(before: Counter, after: Counter) -> Optional[str]:
    """Name of the zone whose request count grew between two snapshots."""
    grown = [zone for zone, count in after.items() if count > before.get(zone, 0)]
    return grown[0] if grown else None


def run_disable_closest(config: SimulationConfig) -> ScenarioResult:
    """Read from the best-ranked zone, switch it off, read again from the next one."""
    rng, simulator, engine = _setup(config)
    zone_policy, user_policy = _policies(config, SelectionPolicy.NEAREST, SelectionPolicy.NEAREST)
    zones = _fixed_zones(simulator, config)
    region = Region(zones, zone_policy, simulator, engine, rng=rng)
    stats = region.statistics
    user = build_user(simulator, 1, SZEGED, config)
    result = ScenarioResult("disable_closest", region, user_policy, zone_policy)

    sample = DataObject("SampleFile", 10_240)
    user.local_disk.register_object(sample)
    region.handle_write_request(user, sample)
    region.wait_for_global_availability(sample)

    before = Counter(stats.read_requests_per_zone)
    done = region.handle_read_request(user, sample, user_policy)
    simulator.run_until(lambda: simulator.now >= done)
    served = _served_by(before, stats.read_requests_per_zone)
    result.notes.append(f"first read served by {served or 'no zone'}")

    if served is not None:
        first = region.get_zone(served)
    else:
        first = region.rank_zones(user, SelectionPolicy.NEAREST)[0]
    first.host.switch_off(simulator)
    logger.info("%s zone has been made unavailable", first.name)

    before = Counter(stats.read_requests_per_zone)
    region.handle_read_request(user, sample, user_policy)
    simulator.run()
    served = _served_by(before, stats.read_requests_per_zone)
    result.notes.append(f"second read served by {served or 'no zone'}")
    return result


def run_least_loaded(config: SimulationConfig) -> ScenarioResult:
    """Write and read one object with zones filled to different levels."""
    rng, simulator, engine = _setup(config)
    zone_policy, user_policy = _policies(config, SelectionPolicy.LEAST_LOADED, SelectionPolicy.LEAST_LOADED)
    zones = _fixed_zones(simulator, config)
    for index, zone in enumerate(zones):
        filler = DataObject(f"filler-{zone.name}", (index + 1) * 1_000_000)
        zone.repository.register_object(filler)
    region = Region(zones, zone_policy, simulator, engine, rng=rng)
    stats = region.statistics
    user = build_user(simulator, 1, SZEGED, config)
    result = ScenarioResult("least_loaded", region, user_policy, zone_policy)

    sample = DataObject("SampleFile", 1_024_000)
    user.local_disk.register_object(sample)
    _log_loads(zones, "before write")
    before = Counter(stats.write_requests_per_zone)
    region.handle_write_request(user, sample)
    result.notes.append(f"write target {_served_by(before, stats.write_requests_per_zone) or 'no zone'}")
    region.wait_for_global_availability(sample)

    _log_loads(zones, "before read")
    before = Counter(stats.read_requests_per_zone)
    region.handle_read_request(user, sample, user_policy)
    simulator.run()
    result.notes.append(f"read source {_served_by(before, stats.read_requests_per_zone) or 'no zone'}")
    return result


def _log_loads(zones: Iterable[AvailabilityZone], stage: str) -> None:
    for zone in zones:
        logger.info("%s load %s: %.4f", zone.name, stage, zone.load())


SCENARIOS: Dict[str, Callable[[SimulationConfig], ScenarioResult]] = {
    "multi_user": run_multi_user,
    "disable_closest": run_disable_closest,
    "least_loaded": run_least_loaded,
}


def run_scenario(name: str, config: Optional[SimulationConfig] = None) -> ScenarioResult:
    try:
        runner = SCENARIOS[name]
    except KeyError:
        raise KeyError(f"Unknown scenario '{name}'") from None
    return runner(config or SimulationConfig.default())
