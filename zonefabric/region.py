"""Region: owns a zone set, picks zones for requests and tracks zone usage."""

from __future__ import annotations

import logging
import random
from typing import Dict, List, Optional, Sequence

from .host import Host
from .policies import RankingContext, SelectionPolicy, rank_zones
from .repository import DataObject, TransferEngine
from .simulator import Simulator
from .statistics import NO_AVAILABLE_ZONE, FailureKind, StatisticsCollector
from .zone import AvailabilityZone

logger = logging.getLogger(__name__)


class Region:
    def __init__(
        self,
        zones: Sequence[AvailabilityZone],
        policy: SelectionPolicy,
        simulator: Simulator,
        engine: Optional[TransferEngine] = None,
        *,
        statistics: Optional[StatisticsCollector] = None,
        rng: Optional[random.Random] = None,
    ):
        if not zones:
            raise ValueError("A region needs at least one availability zone")
        self.zones: List[AvailabilityZone] = list(zones)
        self.policy = SelectionPolicy.parse(policy)
        self.simulator = simulator
        self.engine = engine or TransferEngine(simulator)
        self.statistics = statistics or StatisticsCollector()
        self.rng = rng or random.Random()
        self.zone_last_usage: Dict[AvailabilityZone, int] = {zone: 0 for zone in self.zones}
        self._available_objects: List[DataObject] = []
        for zone in self.zones:
            zone.attach_region(self)

    @property
    def available_objects(self) -> List[DataObject]:
        """Objects confirmed present in every zone."""
        return list(self._available_objects)

    def get_zone(self, name: str) -> Optional[AvailabilityZone]:
        return next((zone for zone in self.zones if zone.name == name), None)

    def rank_zones(self, requester: Host, policy: Optional[SelectionPolicy] = None) -> List[AvailabilityZone]:
        policy = self.policy if policy is None else SelectionPolicy.parse(policy)
        location = requester.location
        context = RankingContext(
            latitude=location.latitude if location is not None else 0.0,
            longitude=location.longitude if location is not None else 0.0,
            target_repository=requester.local_disk.name,
            last_usage=self.zone_last_usage,
            rng=self.rng,
        )
        return rank_zones(policy, self.zones, context)

    def handle_read_request(
        self,
        requester: Host,
        data: DataObject,
        policy: Optional[SelectionPolicy] = None,
    ) -> int:
        """Read ``data`` from the best-ranked zone; returns the estimated completion tick."""
        start_time = self.simulator.now
        ranked = self.rank_zones(requester, policy)
        if not ranked:
            logger.warning("Read request for %s failed: no available zones", data.object_id)
            self.statistics.log_read_failure(
                requester.label, NO_AVAILABLE_ZONE, data.object_id, FailureKind.NO_AVAILABLE_ZONE
            )
            return start_time

        selected = ranked[0]
        logger.info("User from %s is reading data from zone located in %s", requester.label, selected.location.city)
        return selected.read(data, requester, start_time)

    def handle_write_request(self, requester: Host, data: DataObject) -> int:
        """Write ``data`` to the best-ranked zone and propagate it to the rest."""
        start_time = self.simulator.now
        ranked = self.rank_zones(requester)
        if not ranked:
            logger.warning("Write request for %s failed: no available zones", data.object_id)
            self.statistics.log_write_failure(
                requester.label, NO_AVAILABLE_ZONE, data.object_id, FailureKind.NO_AVAILABLE_ZONE
            )
            return start_time
        return ranked[0].write(data, requester, self.zones, start_time)

    def zones_missing_data(self, object_id: str) -> List[AvailabilityZone]:
        return [zone for zone in self.zones if zone.is_available() and not zone.holds(object_id)]

    def is_data_available_in_all_zones(self, data: DataObject) -> bool:
        if any(not zone.holds(data.object_id) for zone in self.zones):
            return False
        if all(obj.object_id != data.object_id for obj in self._available_objects):
            logger.info("Data %s is available in all zones", data.object_id)
            self._available_objects.append(data)
        return True

    def wait_for_global_availability(self, data: DataObject) -> bool:
        """Advance the clock until ``data`` is in every zone or nothing is left to run."""
        return self.simulator.run_until(lambda: self.is_data_available_in_all_zones(data))

    def update_zone_usage(self, zone: AvailabilityZone, tick: int) -> None:
        self.zone_last_usage[zone] = tick
