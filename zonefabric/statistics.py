"""Request counters, timings and failure breakdowns for a region."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from enum import Enum
from typing import Any, DefaultDict, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

NO_AVAILABLE_ZONE = "NO AVAILABLE ZONE"


class FailureKind(Enum):
    NO_AVAILABLE_ZONE = "no_available_zone"
    OBJECT_NOT_FOUND = "object_not_found"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    TRANSFER_REJECTED = "transfer_rejected"
    TRANSFER_CANCELLED = "transfer_cancelled"
    PRIMARY_NOT_CONFIRMED = "primary_not_confirmed"


class StatisticsCollector:
    """Accumulates per-zone and per-requester counts until reported.

    Times are simulated ticks. Writes count both primary writes and the
    propagated copies a zone received; the latter are also tracked as replica
    writes.
    """

    def __init__(self) -> None:
        self.write_requests_per_zone: Counter[str] = Counter()
        self.replica_writes_per_zone: Counter[str] = Counter()
        self.read_requests_per_zone: Counter[str] = Counter()
        self.total_write_time_per_zone: Counter[str] = Counter()
        self.total_read_time_per_zone: Counter[str] = Counter()
        self.reads_requester_to_zone: Counter[Tuple[str, str]] = Counter()

        self.read_failures_per_zone: Counter[str] = Counter()
        self.read_failures_per_requester: Counter[str] = Counter()
        self.write_failures_per_zone: Counter[str] = Counter()
        self.write_failures_per_requester: Counter[str] = Counter()
        self.failures_per_kind: DefaultDict[str, Counter[FailureKind]] = defaultdict(Counter)

    @property
    def total_writes(self) -> int:
        return sum(self.write_requests_per_zone.values())

    @property
    def total_reads(self) -> int:
        return sum(self.read_requests_per_zone.values())

    @property
    def total_write_time(self) -> int:
        return sum(self.total_write_time_per_zone.values())

    @property
    def total_read_time(self) -> int:
        return sum(self.total_read_time_per_zone.values())

    @property
    def total_read_failures(self) -> int:
        return sum(self.read_failures_per_zone.values())

    @property
    def total_write_failures(self) -> int:
        return sum(self.write_failures_per_zone.values())

    def log_write(self, zone_name: str, time_taken: int, *, replica: bool = False) -> None:
        self.write_requests_per_zone[zone_name] += 1
        self.total_write_time_per_zone[zone_name] += time_taken
        if replica:
            self.replica_writes_per_zone[zone_name] += 1

    def log_read(self, requester: str, zone_name: str, time_taken: int) -> None:
        self.read_requests_per_zone[zone_name] += 1
        self.total_read_time_per_zone[zone_name] += time_taken
        self.reads_requester_to_zone[(requester, zone_name)] += 1

    def log_read_failure(
        self,
        requester: str,
        zone_name: str,
        object_id: str,
        kind: FailureKind,
    ) -> None:
        self.read_failures_per_requester[requester] += 1
        self.read_failures_per_zone[zone_name] += 1
        self.failures_per_kind["read"][kind] += 1
        logger.warning("Read of %s by %s from %s failed: %s", object_id, requester, zone_name, kind.value)

    def log_write_failure(
        self,
        requester: str,
        zone_name: str,
        object_id: str,
        kind: FailureKind,
    ) -> None:
        self.write_failures_per_requester[requester] += 1
        self.write_failures_per_zone[zone_name] += 1
        self.failures_per_kind["write"][kind] += 1
        logger.warning("Write of %s from %s to %s failed: %s", object_id, requester, zone_name, kind.value)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "total_writes": self.total_writes,
            "total_reads": self.total_reads,
            "total_write_failures": self.total_write_failures,
            "total_read_failures": self.total_read_failures,
            "average_write_time": _average(self.total_write_time, self.total_writes),
            "average_read_time": _average(self.total_read_time, self.total_reads),
            "writes_per_zone": dict(self.write_requests_per_zone),
            "replica_writes_per_zone": dict(self.replica_writes_per_zone),
            "write_time_per_zone": dict(self.total_write_time_per_zone),
            "reads_per_zone": dict(self.read_requests_per_zone),
            "read_time_per_zone": dict(self.total_read_time_per_zone),
            "reads_requester_to_zone": {
                f"{requester} -> {zone}": count for (requester, zone), count in self.reads_requester_to_zone.items()
            },
            "read_failures_per_requester": dict(self.read_failures_per_requester),
            "read_failures_per_zone": dict(self.read_failures_per_zone),
            "write_failures_per_requester": dict(self.write_failures_per_requester),
            "write_failures_per_zone": dict(self.write_failures_per_zone),
            "failures_per_kind": {
                path: {kind.value: count for kind, count in counts.items()}
                for path, counts in self.failures_per_kind.items()
            },
        }

    def render_report(self, user_policy: Optional[object] = None, zone_policy: Optional[object] = None) -> str:
        """Human-readable summary; the policies only label the output."""
        lines: List[str] = ["========== Simulation Statistics =========="]
        lines.append(f"Zone write policy: {_policy_label(zone_policy)}")
        lines.append(f"User read policy: {_policy_label(user_policy)}")
        lines.append(f"Total Writes: {self.total_writes}")
        lines.append(f"Total Reads: {self.total_reads}")
        lines.append(f"Total Write Failures: {self.total_write_failures}")
        lines.append(f"Total Read Failures: {self.total_read_failures}")
        lines.append(f"Average Write Time: {_average(self.total_write_time, self.total_writes)} simulated ticks")
        lines.append(f"Average Read Time: {_average(self.total_read_time, self.total_reads)} simulated ticks")

        lines.append("")
        lines.append("Write Requests per Zone:")
        for zone, count in sorted(self.write_requests_per_zone.items()):
            lines.append(
                f"  {zone}: {count} requests ({self.replica_writes_per_zone[zone]} replicas), "
                f"Total Time: {self.total_write_time_per_zone[zone]} simulated ticks"
            )

        lines.append("")
        lines.append("Read Requests per Zone:")
        for zone, count in sorted(self.read_requests_per_zone.items()):
            lines.append(
                f"  {zone}: {count} requests, Total Time: {self.total_read_time_per_zone[zone]} simulated ticks"
            )

        lines.append("")
        lines.append("Read Requests per User -> Zone:")
        for (requester, zone), count in sorted(self.reads_requester_to_zone.items()):
            lines.append(f"  {requester} -> {zone}: {count} requests")

        _append_failures(lines, "Read Failures per User:", self.read_failures_per_requester)
        _append_failures(lines, "Read Failures per Zone:", self.read_failures_per_zone)
        _append_failures(lines, "Write Failures per Source:", self.write_failures_per_requester)
        _append_failures(lines, "Write Failures per Zone:", self.write_failures_per_zone)
        return "\n".join(lines)


def _average(total: int, count: int) -> int:
    return total // count if count else 0


def _policy_label(policy: Optional[object]) -> str:
    if policy is None:
        return "n/a"
    return getattr(policy, "name", str(policy))


def _append_failures(lines: List[str], title: str, counts: Counter) -> None:
    lines.append("")
    lines.append(title)
    for key, count in sorted(counts.items()):
        lines.append(f"  {key}: {count} failures")
