"""
Dynaconf-powered configuration loader with Pydantic validation.

The exporter is configured by a single YAML file describing the bus connection,
the metric name prefix, and one entry per monitored group address. Keys are
matched case-insensitively and without underscores, so ``metricsPrefix``,
``MetricsPrefix`` and ``metrics_prefix`` are all accepted.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any

from dynaconf import Dynaconf
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from xknx.exceptions import CouldNotParseAddress
from xknx.telegram import GroupAddress

from .contracts import MetricType

_METRIC_NAME = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")


def _canonical(key: Any) -> str:
    return str(key).replace("_", "").replace("-", "").lower()


def _section(raw: dict[str, Any], key: str) -> Any:
    """Case-insensitive dictionary lookup helper."""
    wanted = _canonical(key)
    for candidate, value in raw.items():
        if _canonical(candidate) == wanted:
            return value
    return None


def _normalise_keys(model: type[BaseModel], data: Any) -> Any:
    """Map loosely spelled keys onto the model's field names."""
    if not isinstance(data, dict):
        return data
    fields = {_canonical(name): name for name in model.model_fields}
    return {fields.get(_canonical(key), key): value for key, value in data.items()}


class ConfigError(RuntimeError):
    """Raised when configuration files are missing or invalid."""


class ConnectionType(str, Enum):
    """Supported KNXnet/IP connection modes."""

    TUNNEL = "Tunnel"
    ROUTER = "Router"


class ConnectionSettings(BaseModel):
    """Where and how to reach the KNX bus."""

    model_config = ConfigDict(extra="ignore")

    type: ConnectionType = Field(default=ConnectionType.TUNNEL)
    endpoint: str = Field(description="host[:port] of the gateway or multicast group.")

    @model_validator(mode="before")
    @classmethod
    def _keys(cls, data: Any) -> Any:
        return _normalise_keys(cls, data)

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            for member in ConnectionType:
                if member.value.lower() == value.strip().lower():
                    return member
            raise ValueError("invalid connection type. must be either Tunnel or Router")
        return value


class AddressConfig(BaseModel):
    """Export settings for one group address."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    export: bool = Field(default=False)
    name: str
    metric_type: str = Field(default="gauge")
    dpt: str = Field(description="Datapoint type identifier such as 9.001 or 'temperature'.")
    comment: str = Field(default="")
    with_timestamp: bool = Field(default=False)

    @model_validator(mode="before")
    @classmethod
    def _keys(cls, data: Any) -> Any:
        return _normalise_keys(cls, data)

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        if not _METRIC_NAME.match(value):
            raise ValueError(f"metric name {value!r} is not a valid Prometheus name")
        return value

    @field_validator("dpt", mode="before")
    @classmethod
    def _dpt_as_text(cls, value: Any) -> Any:
        if isinstance(value, float):
            raise ValueError(f"dpt {value!r} was parsed as a number; quote it, e.g. \"9.001\"")
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("comment", mode="before")
    @classmethod
    def _comment_default(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def kind(self) -> MetricType | None:
        return MetricType.parse(self.metric_type)


class HttpSettings(BaseModel):
    """Bind address of the metrics and health endpoints."""

    model_config = ConfigDict(extra="ignore")

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)
    serve_http: bool = Field(default=True)

    @model_validator(mode="before")
    @classmethod
    def _keys(cls, data: Any) -> Any:
        return _normalise_keys(cls, data)


class ExporterSettings(BaseModel):
    """Validated top-level configuration."""

    model_config = ConfigDict(extra="ignore")

    connection: ConnectionSettings
    metrics_prefix: str = Field(default="knx_")
    http: HttpSettings = Field(default_factory=HttpSettings)
    address_configs: dict[str, AddressConfig] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _keys(cls, data: Any) -> Any:
        return _normalise_keys(cls, data)

    @field_validator("metrics_prefix", mode="before")
    @classmethod
    def _prefix_default(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("address_configs", mode="before")
    @classmethod
    def _canonical_addresses(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        result: dict[str, Any] = {}
        for raw_address, entry in value.items():
            try:
                address = str(GroupAddress(str(raw_address)))
            except CouldNotParseAddress as exc:
                raise ValueError(f"invalid group address {raw_address!r}") from exc
            if address in result:
                raise ValueError(f"group address {address} configured more than once")
            result[address] = entry
        return result

    def name_for(self, address_config: AddressConfig) -> str:
        """Full exported metric name for an address entry."""
        return self.metrics_prefix + address_config.name

    def lookup(self, destination: str) -> AddressConfig | None:
        return self.address_configs.get(destination)


class ConfigService:
    """
    Runtime facade for loading and validating the exporter configuration.
    """

    def __init__(
        self,
        *,
        config_file: str | Path,
        settings: Dynaconf | None = None,
    ) -> None:
        self._config_file = Path(config_file)
        if settings is None and not self._config_file.exists():
            raise ConfigError(f"Configuration file {self._config_file} does not exist.")

        self._settings = settings or Dynaconf(
            envvar_prefix="KNX_EXPORTER",
            settings_files=[str(self._config_file)],
            environments=False,
        )
        self._snapshot = self._build_settings()

    @property
    def settings(self) -> ExporterSettings:
        """Latest validated configuration."""
        return self._snapshot

    @property
    def config_file(self) -> Path:
        return self._config_file

    def refresh(self) -> ExporterSettings:
        """Reload the configuration file and re-validate it."""
        self._settings.reload()
        self._snapshot = self._build_settings()
        return self._snapshot

    def _build_settings(self) -> ExporterSettings:
        data = self._extract_settings_data(self._settings.as_dict())
        try:
            return ExporterSettings.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(f"Configuration validation failed: {exc}") from exc

    @staticmethod
    def _extract_settings_data(raw: dict[str, Any]) -> dict[str, Any]:
        data: dict[str, Any] = {
            "connection": _section(raw, "connection"),
            "metrics_prefix": _section(raw, "metrics_prefix"),
            "http": _section(raw, "http"),
            "address_configs": _section(raw, "address_configs"),
        }
        return {key: value for key, value in data.items() if value is not None}


__all__ = [
    "AddressConfig",
    "ConfigError",
    "ConfigService",
    "ConnectionSettings",
    "ConnectionType",
    "ExporterSettings",
    "HttpSettings",
]
