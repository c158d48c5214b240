"""Zone ranking policies.

Every policy drops zones whose host is not running and orders the rest
best-first. Availability is evaluated on each call.
"""

from __future__ import annotations

import random
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .zone import AvailabilityZone

MISSING_LATENCY = sys.maxsize


class UnknownPolicyError(ValueError):
    """Raised when asked to rank zones with a policy that has no ranking function."""


class SelectionPolicy(Enum):
    NEAREST = "nearest"
    LEAST_LOADED = "least_loaded"
    RANDOM = "random"
    MOST_RECENTLY_USED = "most_recently_used"
    LOWEST_LATENCY = "lowest_latency"

    @classmethod
    def parse(cls, value: "str | SelectionPolicy") -> "SelectionPolicy":
        if isinstance(value, SelectionPolicy):
            return value
        normalized = str(value).strip().lower().replace("-", "_")
        for policy in cls:
            if normalized in (policy.value, policy.name.lower()):
                return policy
        raise UnknownPolicyError(f"Unknown selection policy '{value}'")


@dataclass
class RankingContext:
    """Inputs a ranking function may consult for one request."""

    latitude: float = 0.0
    longitude: float = 0.0
    target_repository: Optional[str] = None
    last_usage: Mapping["AvailabilityZone", int] = field(default_factory=dict)
    rng: random.Random = field(default_factory=random.Random)


def _available(zones: Sequence["AvailabilityZone"]) -> List["AvailabilityZone"]:
    return [zone for zone in zones if zone.is_available()]


def rank_nearest(zones: Sequence["AvailabilityZone"], context: RankingContext) -> List["AvailabilityZone"]:
    return sorted(
        _available(zones),
        key=lambda zone: zone.distance_to(context.latitude, context.longitude),
    )


def rank_least_loaded(zones: Sequence["AvailabilityZone"], context: RankingContext) -> List["AvailabilityZone"]:
    # load() is the free-space fraction, so this puts the fullest zone first
    return sorted(_available(zones), key=lambda zone: zone.load())


def rank_random(zones: Sequence["AvailabilityZone"], context: RankingContext) -> List["AvailabilityZone"]:
    candidates = _available(zones)
    context.rng.shuffle(candidates)
    return candidates


def rank_most_recently_used(
    zones: Sequence["AvailabilityZone"], context: RankingContext
) -> List["AvailabilityZone"]:
    return sorted(
        _available(zones),
        key=lambda zone: context.last_usage.get(zone, 0),
        reverse=True,
    )


def rank_lowest_latency(zones: Sequence["AvailabilityZone"], context: RankingContext) -> List["AvailabilityZone"]:
    def _latency(zone: "AvailabilityZone") -> int:
        if context.target_repository is None:
            return MISSING_LATENCY
        latency = zone.latency_to(context.target_repository)
        return MISSING_LATENCY if latency is None else latency

    return sorted(_available(zones), key=_latency)


RankingFunction = Callable[[Sequence["AvailabilityZone"], RankingContext], List["AvailabilityZone"]]

_RANKERS: Dict[SelectionPolicy, RankingFunction] = {
    SelectionPolicy.NEAREST: rank_nearest,
    SelectionPolicy.LEAST_LOADED: rank_least_loaded,
    SelectionPolicy.RANDOM: rank_random,
    SelectionPolicy.MOST_RECENTLY_USED: rank_most_recently_used,
    SelectionPolicy.LOWEST_LATENCY: rank_lowest_latency,
}


def rank_zones(
    policy: SelectionPolicy,
    zones: Sequence["AvailabilityZone"],
    context: RankingContext,
) -> List["AvailabilityZone"]:
    try:
        ranker = _RANKERS[policy]
    except (KeyError, TypeError):
        raise UnknownPolicyError(f"No ranking function for policy {policy!r}") from None
    return ranker(zones, context)
