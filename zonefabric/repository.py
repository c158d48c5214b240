"""Capacity-bounded repositories and the transfer engine moving objects between them."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Dict, List, Optional

from .simulator import Simulator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataObject:
    object_id: str
    size: int  # in bytes


class Repository:
    def __init__(
        self,
        name: str,
        capacity_bytes: int,
        *,
        inbound_bandwidth: int = 3250,
        outbound_bandwidth: int = 3250,
        latencies: Optional[Dict[str, int]] = None,
    ):
        if capacity_bytes <= 0:
            raise ValueError("capacity_bytes must be positive")
        if inbound_bandwidth <= 0 or outbound_bandwidth <= 0:
            raise ValueError("bandwidth must be positive")

        self.name = name
        self.capacity_bytes = capacity_bytes
        self.inbound_bandwidth = inbound_bandwidth  # bytes per tick
        self.outbound_bandwidth = outbound_bandwidth
        self.latencies: Dict[str, int] = dict(latencies or {})
        self._objects: Dict[str, DataObject] = {}
        self._used_bytes = 0
        self._reserved_bytes = 0

    def __repr__(self) -> str:
        return f"Repository({self.name!r}, free={self.free_capacity()}/{self.capacity_bytes})"

    @property
    def used_bytes(self) -> int:
        return self._used_bytes

    @property
    def reserved_bytes(self) -> int:
        return self._reserved_bytes

    def free_capacity(self) -> int:
        return self.capacity_bytes - self._used_bytes - self._reserved_bytes

    def total_capacity(self) -> int:
        return self.capacity_bytes

    def lookup(self, object_id: str) -> Optional[DataObject]:
        return self._objects.get(object_id)

    def register_object(self, obj: DataObject) -> bool:
        """Store ``obj`` if the id is new and enough unreserved space remains."""
        if obj.object_id in self._objects:
            return False
        if obj.size > self.free_capacity():
            return False
        self._objects[obj.object_id] = obj
        self._used_bytes += obj.size
        return True

    def deregister_object(self, obj: DataObject) -> bool:
        stored = self._objects.pop(obj.object_id, None)
        if stored is None:
            return False
        self._used_bytes -= stored.size
        return True

    def reserve(self, size: int) -> bool:
        if size > self.free_capacity():
            return False
        self._reserved_bytes += size
        return True

    def release(self, size: int) -> None:
        self._reserved_bytes = max(0, self._reserved_bytes - size)

    def add_latency(self, repository_name: str, ticks: int) -> None:
        self.latencies[repository_name] = max(0, int(ticks))

    def latency_to(self, repository_name: str) -> Optional[int]:
        return self.latencies.get(repository_name)


class TransferStatus(Enum):
    IN_PROGRESS = auto()
    COMPLETED = auto()
    CANCELLED = auto()


@dataclass(eq=False)
class Transfer:
    """Handle for one in-flight object delivery, resolved as completed or cancelled."""

    obj: DataObject
    source: Repository
    destination: Repository
    created_at: int
    completion_distance: int
    status: TransferStatus = TransferStatus.IN_PROGRESS
    resolved_at: Optional[int] = None
    _callbacks: List[Callable[["Transfer"], None]] = field(default_factory=list, repr=False)

    @property
    def done(self) -> bool:
        return self.status is not TransferStatus.IN_PROGRESS

    @property
    def completed(self) -> bool:
        return self.status is TransferStatus.COMPLETED

    @property
    def cancelled(self) -> bool:
        return self.status is TransferStatus.CANCELLED

    def add_done_callback(self, callback: Callable[["Transfer"], None]) -> None:
        if self.done:
            callback(self)
            return
        self._callbacks.append(callback)

    def _resolve(self, status: TransferStatus, tick: int) -> None:
        self.status = status
        self.resolved_at = tick
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)


class TransferEngine:
    """Schedules bandwidth- and latency-bound deliveries on a simulator clock."""

    def __init__(self, simulator: Simulator, default_latency: int = 0):
        self.simulator = simulator
        self.default_latency = default_latency
        self._in_flight: List[Transfer] = []

    @property
    def in_flight(self) -> List[Transfer]:
        return list(self._in_flight)

    def inbound(self, object_id: str, destination: Repository) -> Optional[Transfer]:
        """Return the in-flight delivery of ``object_id`` into ``destination``, if any."""
        for transfer in self._in_flight:
            if transfer.destination is destination and transfer.obj.object_id == object_id:
                return transfer
        return None

    def estimate_duration(self, size: int, source: Repository, destination: Repository) -> int:
        latency = source.latency_to(destination.name)
        if latency is None:
            latency = self.default_latency
        bandwidth = min(source.outbound_bandwidth, destination.inbound_bandwidth)
        return max(1, latency + math.ceil(size / bandwidth))

    def request_transfer(
        self,
        object_id: str,
        source: Repository,
        destination: Repository,
    ) -> Optional[Transfer]:
        """Start copying ``object_id`` from ``source`` to ``destination``.

        Returns None when the request is rejected outright: the source does
        not hold the object, the destination already does, or the destination
        cannot reserve room for it.
        """
        obj = source.lookup(object_id)
        if obj is None:
            logger.debug("Rejecting transfer of %s: not held by %s", object_id, source.name)
            return None
        if destination.lookup(object_id) is not None:
            logger.debug("Rejecting transfer of %s: already held by %s", object_id, destination.name)
            return None
        if not destination.reserve(obj.size):
            logger.debug("Rejecting transfer of %s: %s lacks free space", object_id, destination.name)
            return None

        duration = self.estimate_duration(obj.size, source, destination)
        transfer = Transfer(
            obj=obj,
            source=source,
            destination=destination,
            created_at=self.simulator.now,
            completion_distance=duration,
        )
        self._in_flight.append(transfer)
        self.simulator.schedule_in(duration, self._complete, transfer)
        return transfer

    def cancel(self, transfer: Transfer) -> bool:
        if transfer.done:
            return False
        self._in_flight.remove(transfer)
        transfer.destination.release(transfer.obj.size)
        transfer._resolve(TransferStatus.CANCELLED, self.simulator.now)
        return True

    def cancel_transfers(self, repository: Repository) -> int:
        """Cancel every in-flight transfer reading from or writing to ``repository``."""
        touching = [t for t in self._in_flight if repository in (t.source, t.destination)]
        for transfer in touching:
            self.cancel(transfer)
        return len(touching)

    def _complete(self, transfer: Transfer) -> None:
        if transfer.done:
            return
        self._in_flight.remove(transfer)
        destination = transfer.destination
        destination.release(transfer.obj.size)
        if destination.lookup(transfer.obj.object_id) == transfer.obj:
            # an earlier delivery of the same object landed first
            transfer._resolve(TransferStatus.COMPLETED, self.simulator.now)
            return
        if not destination.register_object(transfer.obj):
            logger.warning(
                "Delivery of %s into %s could not be registered", transfer.obj.object_id, destination.name
            )
            transfer._resolve(TransferStatus.CANCELLED, self.simulator.now)
            return
        transfer._resolve(TransferStatus.COMPLETED, self.simulator.now)
