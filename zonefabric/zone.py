from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Sequence

from .host import Host, PowerState
from .locations import Location
from .repository import DataObject, Repository, Transfer
from .statistics import FailureKind

if TYPE_CHECKING:  # pragma: no cover
    from .region import Region

logger = logging.getLogger(__name__)


class AvailabilityZone:
    """Independently failable storage unit: one repository, one host, one location."""

    def __init__(self, name: str, repository: Repository, host: Host, location: Location):
        self.name = name
        self.repository = repository
        self.host = host
        self.location = location
        self.region: Optional["Region"] = None

    def __repr__(self) -> str:
        return f"AvailabilityZone({self.name!r}, {self.location.city})"

    def attach_region(self, region: "Region") -> None:
        self.region = region

    def is_available(self) -> bool:
        return self.host.power_state() is PowerState.RUNNING

    def load(self) -> float:
        """Free fraction of the repository (1.0 means empty)."""
        return self.repository.free_capacity() / self.repository.total_capacity()

    def distance_to(self, latitude: float, longitude: float) -> float:
        return self.location.distance_to(latitude, longitude)

    def latency_to(self, repository_name: str) -> Optional[int]:
        return self.repository.latency_to(repository_name)

    def holds(self, object_id: str) -> bool:
        return self.repository.lookup(object_id) is not None

    def _region(self) -> "Region":
        if self.region is None:
            raise RuntimeError(f"Zone {self.name} is not attached to a region")
        return self.region

    # Reads --------------------------------------------------------------
    def read(self, data: DataObject, requester: Host, start_time: int) -> int:
        """Start delivering ``data`` to the requester and return its estimated completion tick.

        Any failure returns the current tick; no other zone is tried.
        """
        region = self._region()
        simulator = region.simulator
        statistics = region.statistics

        if not self.holds(data.object_id):
            logger.warning("Data %s not found in repository %s", data.object_id, self.repository.name)
            statistics.log_read_failure(requester.label, self.name, data.object_id, FailureKind.OBJECT_NOT_FOUND)
            return simulator.now

        user_repo = requester.local_disk
        stale = user_repo.lookup(data.object_id)
        if stale is not None:
            logger.info("Removing existing data %s from user repository at %s", data.object_id, requester.label)
            user_repo.deregister_object(stale)

        if user_repo.free_capacity() < data.size:
            logger.warning("Not enough space in %s to download %s", user_repo.name, data.object_id)
            statistics.log_read_failure(requester.label, self.name, data.object_id, FailureKind.CAPACITY_EXCEEDED)
            return simulator.now

        transfer = region.engine.request_transfer(data.object_id, self.repository, user_repo)
        if transfer is None:
            statistics.log_read_failure(requester.label, self.name, data.object_id, FailureKind.TRANSFER_REJECTED)
            return simulator.now

        logger.info("Initiating download of %s from repository %s", data.object_id, self.repository.name)

        def _on_read_done(done: Transfer) -> None:
            if done.completed:
                elapsed = done.resolved_at - start_time
                logger.info(
                    "Download of %s from %s to %s completed in %d ticks",
                    data.object_id,
                    self.location.city,
                    requester.label,
                    elapsed,
                )
                region.update_zone_usage(self, done.resolved_at)
                statistics.log_read(requester.label, self.name, elapsed)
            else:
                statistics.log_read_failure(
                    requester.label, self.name, data.object_id, FailureKind.TRANSFER_CANCELLED
                )

        transfer.add_done_callback(_on_read_done)
        return simulator.now + transfer.completion_distance

    # Writes -------------------------------------------------------------
    def write(
        self,
        data: DataObject,
        source: Host,
        zones: Sequence["AvailabilityZone"],
        start_time: int,
    ) -> int:
        """Write ``data`` from ``source`` into this zone, then copy it to the other zones.

        The clock is advanced until the primary copy is observed here.
        Propagation is not waited on. Returns the primary completion tick, or
        ``start_time`` when the primary write fails.
        """
        region = self._region()
        simulator = region.simulator
        statistics = region.statistics
        logger.info("Handling write request for data %s in zone %s", data.object_id, self.name)

        if self.repository.free_capacity() < data.size:
            logger.warning("Write to zone %s failed: not enough space for %s", self.name, data.object_id)
            statistics.log_write_failure(source.label, self.name, data.object_id, FailureKind.CAPACITY_EXCEEDED)
            return start_time

        transfer = region.engine.request_transfer(data.object_id, source.local_disk, self.repository)
        if transfer is None:
            statistics.log_write_failure(source.label, self.name, data.object_id, FailureKind.TRANSFER_REJECTED)
            return start_time

        def _on_primary_done(done: Transfer) -> None:
            if done.completed:
                logger.info("Data %s written to zone %s at tick %d", data.object_id, self.name, done.resolved_at)
                region.update_zone_usage(self, done.resolved_at)
                statistics.log_write(self.name, done.resolved_at - start_time)
            else:
                statistics.log_write_failure(
                    source.label, self.name, data.object_id, FailureKind.TRANSFER_CANCELLED
                )

        transfer.add_done_callback(_on_primary_done)
        completion_time = start_time + transfer.completion_distance

        confirmed = simulator.run_until(
            lambda: transfer.cancelled
            or (simulator.now >= completion_time and self.holds(data.object_id))
        )
        if transfer.cancelled:
            return start_time
        if not confirmed:
            statistics.log_write_failure(
                source.label, self.name, data.object_id, FailureKind.PRIMARY_NOT_CONFIRMED
            )
            return start_time

        logger.info("Initial write to zone %s completed, starting propagation", self.name)
        self.propagate(data, zones)
        return completion_time

    def propagate(self, data: DataObject, zones: Sequence["AvailabilityZone"]) -> int:
        """Request a copy of ``data`` into every other available zone missing it.

        Returns the number of copies started. Failures are logged per zone and
        never stop the loop.
        """
        region = self._region()
        statistics = region.statistics
        start_time = region.simulator.now
        started = 0

        for zone in zones:
            if zone is self:
                continue
            if not zone.is_available():
                logger.info("Skipping unavailable zone %s", zone.name)
                continue
            if zone.holds(data.object_id):
                continue
            if region.engine.inbound(data.object_id, zone.repository) is not None:
                logger.info("Copy of %s already on its way to zone %s", data.object_id, zone.name)
                continue
            if zone.repository.free_capacity() < data.size:
                statistics.log_write_failure(self.name, zone.name, data.object_id, FailureKind.CAPACITY_EXCEEDED)
                continue

            transfer = region.engine.request_transfer(data.object_id, self.repository, zone.repository)
            if transfer is None:
                statistics.log_write_failure(self.name, zone.name, data.object_id, FailureKind.TRANSFER_REJECTED)
                continue

            logger.info("Initiating propagation of %s to zone %s", data.object_id, zone.name)
            transfer.add_done_callback(self._replica_callback(zone, data, start_time))
            started += 1
        return started

    def _replica_callback(self, zone: "AvailabilityZone", data: DataObject, start_time: int):
        region = self._region()

        def _on_replica_done(done: Transfer) -> None:
            if done.completed:
                logger.info(
                    "Data %s propagated to zone %s at tick %d", data.object_id, zone.name, done.resolved_at
                )
                region.update_zone_usage(zone, done.resolved_at)
                region.statistics.log_write(zone.name, done.resolved_at - start_time, replica=True)
            else:
                region.statistics.log_write_failure(
                    self.name, zone.name, data.object_id, FailureKind.TRANSFER_CANCELLED
                )

        return _on_replica_done
