"""Configuration primitives for zone fabric simulations."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .policies import SelectionPolicy


LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigError(ValueError):
    """Raised when a configuration file cannot be read or fails validation."""


@dataclass
class RepositoryConfig:
    capacity_bytes: int = 4_294_967_296
    inbound_bandwidth: int = 3250  # bytes per tick
    outbound_bandwidth: int = 3250


@dataclass
class HostConfig:
    boot_ticks: int = 0
    shutdown_ticks: int = 0


@dataclass
class TransferConfig:
    default_latency: int = 0
    min_latency: int = 30
    max_latency: int = 300


@dataclass
class WorkloadConfig:
    zone_count: int = 10
    user_count: int = 10
    file_count: int = 100
    rounds: int = 10
    outage_reads: int = 10
    min_file_size: int = 1_000
    max_file_size: int = 10_999
    # None leaves the choice to the scenario being run
    zone_policy: Optional[SelectionPolicy] = None
    user_policy: Optional[SelectionPolicy] = None


@dataclass
class ObservabilityConfig:
    log_level: str = "INFO"
    log_format: str = "[%(asctime)s] %(levelname)s %(message)s"


@dataclass
class SimulationConfig:
    repository: RepositoryConfig
    host: HostConfig
    transfer: TransferConfig
    workload: WorkloadConfig
    observability: ObservabilityConfig
    seed: Optional[int] = 12345

    @staticmethod
    def default() -> "SimulationConfig":
        return SimulationConfig(
            repository=RepositoryConfig(),
            host=HostConfig(),
            transfer=TransferConfig(),
            workload=WorkloadConfig(),
            observability=ObservabilityConfig(),
        )


class _RepositoryOverrides(BaseModel):
    capacity_bytes: Optional[int] = Field(default=None, ge=1)
    inbound_bandwidth: Optional[int] = Field(default=None, ge=1)
    outbound_bandwidth: Optional[int] = Field(default=None, ge=1)


class _HostOverrides(BaseModel):
    boot_ticks: Optional[int] = Field(default=None, ge=0)
    shutdown_ticks: Optional[int] = Field(default=None, ge=0)


class _TransferOverrides(BaseModel):
    default_latency: Optional[int] = Field(default=None, ge=0)
    min_latency: Optional[int] = Field(default=None, ge=0)
    max_latency: Optional[int] = Field(default=None, ge=0)


class _WorkloadOverrides(BaseModel):
    zone_count: Optional[int] = Field(default=None, ge=1)
    user_count: Optional[int] = Field(default=None, ge=1)
    file_count: Optional[int] = Field(default=None, ge=1)
    rounds: Optional[int] = Field(default=None, ge=0)
    outage_reads: Optional[int] = Field(default=None, ge=0)
    min_file_size: Optional[int] = Field(default=None, ge=1)
    max_file_size: Optional[int] = Field(default=None, ge=1)
    zone_policy: Optional[SelectionPolicy] = None
    user_policy: Optional[SelectionPolicy] = None

    @field_validator("zone_policy", "user_policy", mode="before")
    @classmethod
    def _parse_policy(cls, value):
        if value is None:
            return None
        return SelectionPolicy.parse(value)


class _ObservabilityOverrides(BaseModel):
    log_level: Optional[str] = None
    log_format: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value):
        if value is None:
            return None
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level


class ConfigOverrides(BaseModel):
    """Schema of a JSON overrides file; every field is optional."""

    seed: Optional[int] = None
    repository: _RepositoryOverrides = Field(default_factory=_RepositoryOverrides)
    host: _HostOverrides = Field(default_factory=_HostOverrides)
    transfer: _TransferOverrides = Field(default_factory=_TransferOverrides)
    workload: _WorkloadOverrides = Field(default_factory=_WorkloadOverrides)
    observability: _ObservabilityOverrides = Field(default_factory=_ObservabilityOverrides)

    def apply(self, base: SimulationConfig) -> SimulationConfig:
        config = replace(
            base,
            repository=replace(base.repository, **_set_fields(self.repository)),
            host=replace(base.host, **_set_fields(self.host)),
            transfer=replace(base.transfer, **_set_fields(self.transfer)),
            workload=replace(base.workload, **_set_fields(self.workload)),
            observability=replace(base.observability, **_set_fields(self.observability)),
        )
        if "seed" in self.model_fields_set:
            config.seed = self.seed
        _check_ranges(config)
        return config


def _set_fields(model: BaseModel) -> dict:
    return model.model_dump(exclude_none=True)


def _check_ranges(config: SimulationConfig) -> None:
    if config.transfer.min_latency > config.transfer.max_latency:
        raise ConfigError("transfer.min_latency must not exceed transfer.max_latency")
    if config.workload.min_file_size > config.workload.max_file_size:
        raise ConfigError("workload.min_file_size must not exceed workload.max_file_size")


def load_config(path: Union[str, Path], base: Optional[SimulationConfig] = None) -> SimulationConfig:
    """Merge a JSON overrides file into ``base`` (defaults when omitted)."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read config file {path}: {exc}") from exc
    try:
        overrides = ConfigOverrides.model_validate(json.loads(raw))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
    except ValidationError as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc
    return overrides.apply(base or SimulationConfig.default())
