"""Availability-zone storage fabric: zone selection and redundant propagation on a simulated clock."""

from .config import SimulationConfig  # noqa: F401
from .region import Region  # noqa: F401
from .zone import AvailabilityZone  # noqa: F401
