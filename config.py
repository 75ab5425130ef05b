"""
config.py

Responsibility: Loads the YAML configuration file, applies IPFAILOVER_*
environment overrides and validates the result into typed pydantic models.
Does NOT: build providers, start services, or configure logging.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import re
import sys
import tempfile
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)

from exceptions import ConfigurationError
from services.ip_service import DEFAULT_ENDPOINTS

logger = logging.getLogger(__name__)

ENV_PREFIX = "IPFAILOVER_"

PROVIDER_NAMES = ("cloudflare", "cpanel", "route53", "namecheap", "hetzner")

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")

_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class StateFailureStrategy(str, Enum):
    """What the decision engine does when the state store cannot be used."""

    FAIL_FAST = "fail_fast"
    CONTINUE_WITH_WARNING = "continue_with_warning"
    IMMEDIATE_FAILOVER = "immediate_failover"


def parse_duration(value: Any) -> float:
    """
    Converts a duration into seconds.

    Accepts plain numbers (seconds) and strings such as "30s", "5m",
    "1h30m" or "250ms".

    Raises:
        ValueError: If the value cannot be parsed.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration: {value!r}")

    text = value.strip().lower()
    try:
        return float(text)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


def default_state_file() -> Path:
    """
    Returns <user config dir>/ipfailover/state.json, falling back to the
    temp directory when no config directory can be determined.
    """
    base: str | None
    if sys.platform.startswith("win"):
        base = os.environ.get("APPDATA")
    elif sys.platform == "darwin":
        home = os.environ.get("HOME")
        base = os.path.join(home, "Library", "Application Support") if home else None
    else:
        base = os.environ.get("XDG_CONFIG_HOME")
        if not base:
            home = os.environ.get("HOME")
            base = os.path.join(home, ".config") if home else None

    if not base:
        base = tempfile.gettempdir()
    return Path(base) / "ipfailover" / "state.json"


# ---------------------------------------------------------------------------
# Provider blocks
# ---------------------------------------------------------------------------


class _ProviderSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    # String fields allowed to be empty
    optional_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _require_values(self) -> _ProviderSettings:
        for field_name, value in self:
            if field_name in self.optional_fields:
                continue
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if isinstance(value, str) and not value.strip():
                raise ValueError(f"{field_name} is required")
        return self


class CloudflareSettings(_ProviderSettings):
    # NOTE: without a zone_id the zone is looked up by domain name.
    optional_fields: ClassVar[frozenset[str]] = frozenset({"zone_id"})

    api_token: SecretStr
    zone_id: str = ""
    proxied: bool = False


class CPanelSettings(_ProviderSettings):
    base_url: str
    username: str
    api_token: SecretStr
    zone: str


class Route53Settings(_ProviderSettings):
    access_key_id: SecretStr
    secret_access_key: SecretStr
    region: str
    hosted_zone_id: str


class NamecheapSettings(_ProviderSettings):
    api_user: str
    api_token: SecretStr
    username: str
    client_ip: str
    domain: str
    sandbox: bool = False


class HetznerSettings(_ProviderSettings):
    api_token: SecretStr
    zone_id: str


# ---------------------------------------------------------------------------
# Record and application config
# ---------------------------------------------------------------------------


class DnsRecordConfig(BaseModel):
    """One managed DNS record and the provider that hosts it."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    provider: str
    ttl: int = Field(gt=0)
    metadata: dict[str, str] = Field(default_factory=dict)

    cloudflare: CloudflareSettings | None = None
    cpanel: CPanelSettings | None = None
    route53: Route53Settings | None = None
    namecheap: NamecheapSettings | None = None
    hetzner: HetznerSettings | None = None

    @field_validator("name")
    @classmethod
    def _normalise_name(cls, value: str) -> str:
        return value.strip().rstrip(".").lower()

    @field_validator("type")
    @classmethod
    def _normalise_type(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("provider")
    @classmethod
    def _check_provider(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in PROVIDER_NAMES:
            raise ValueError(f"unsupported provider: {value}")
        return value

    @model_validator(mode="after")
    def _check_provider_block(self) -> DnsRecordConfig:
        if getattr(self, self.provider) is None:
            raise ValueError(f"{self.provider} configuration is required for {self.provider} provider")
        return self

    @property
    def settings(self) -> _ProviderSettings | None:
        """The provider block named by self.provider."""
        return getattr(self, self.provider, None)


class HealthSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    fail_on_corrupt_state: bool = False


class AppConfig(BaseModel):
    """Validated application configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    poll_interval: float = Field(default=30.0, gt=0)
    check_endpoints: list[str] = Field(default_factory=lambda: list(DEFAULT_ENDPOINTS), min_length=1)
    primary_ip: str
    secondary_ip: str
    failover_retries: int = Field(default=3, ge=0)
    state_failure_strategy: StateFailureStrategy = StateFailureStrategy.CONTINUE_WITH_WARNING
    state_file: Path = Field(default_factory=default_state_file)

    probe_port: int = Field(default=80, gt=0, lt=65536)
    probe_timeout: float = Field(default=3.0, gt=0)
    check_timeout: float = Field(default=10.0, gt=0)
    provider_timeout: float = Field(default=30.0, gt=0)

    listen_host: str = "0.0.0.0"
    listen_port: int = Field(default=8080, ge=0, lt=65536)
    log_level: Literal["debug", "info", "warn", "warning", "error"] = "info"

    health: HealthSettings = Field(default_factory=HealthSettings)
    dns: list[DnsRecordConfig] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _map_metrics_addr(cls, data: Any) -> Any:
        # "metrics_addr: host:port" is accepted as an alias of listen_host/listen_port.
        if not isinstance(data, dict) or "metrics_addr" not in data:
            return data
        data = dict(data)
        addr = str(data.pop("metrics_addr") or "")
        host, _, port = addr.rpartition(":")
        if port:
            data.setdefault("listen_port", port)
        if host:
            data.setdefault("listen_host", host.strip("[]"))
        return data

    @field_validator("poll_interval", "probe_timeout", "check_timeout", "provider_timeout", mode="before")
    @classmethod
    def _parse_durations(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("primary_ip", "secondary_ip")
    @classmethod
    def _check_ip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be specified")
        ipaddress.ip_address(value)
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _lower_level(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("state_file", mode="before")
    @classmethod
    def _expand_state_file(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value.strip():
                raise ValueError("state_file must be specified")
            return Path(value).expanduser()
        return value


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

# Top-level keys that can be overridden from the environment
_ENV_KEYS = (
    "poll_interval",
    "check_endpoints",
    "primary_ip",
    "secondary_ip",
    "failover_retries",
    "state_failure_strategy",
    "state_file",
    "probe_port",
    "probe_timeout",
    "check_timeout",
    "provider_timeout",
    "listen_host",
    "listen_port",
    "log_level",
)


def load_config(path: Path | str, environ: Mapping[str, str] | None = None) -> AppConfig:
    """
    Reads, overrides and validates the configuration file.

    Args:
        path: Path to the YAML configuration file.
        environ: Environment to read IPFAILOVER_* overrides from;
                 defaults to os.environ.

    Returns:
        The validated AppConfig.

    Raises:
        ConfigurationError: If the file is missing, not valid YAML, or
                            fails validation.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError("config", str(path), "config file not found") from exc
    except OSError as exc:
        raise ConfigurationError("config", str(path), f"failed to read config file: {exc}") from exc

    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError("config", str(path), f"invalid YAML syntax: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError("config", type(raw).__name__, "top level must be a mapping")

    raw = apply_env_overrides(raw, os.environ if environ is None else environ)
    config = parse_config(raw)

    logger.info(
        "Loaded config from %s: %d DNS record(s), poll interval %.0fs.",
        path,
        len(config.dns),
        config.poll_interval,
    )
    return config


def parse_config(raw: Mapping[str, Any]) -> AppConfig:
    """
    Validates an already-parsed configuration mapping.

    Raises:
        ConfigurationError: On the first validation problem found.
    """
    try:
        return AppConfig.model_validate(dict(raw))
    except ValidationError as exc:
        first = exc.errors()[0]
        field_path = ".".join(str(part) for part in first["loc"]) or "config"
        value = first.get("input")
        if isinstance(value, dict):
            value = "{...}"
        raise ConfigurationError(field_path, value, first["msg"]) from exc


def apply_env_overrides(raw: Mapping[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """
    Returns a copy of raw with IPFAILOVER_<KEY> environment values applied.

    check_endpoints is read as a comma-separated list.
    """
    merged = dict(raw)
    for key in _ENV_KEYS:
        env_name = f"{ENV_PREFIX}{key.upper()}"
        if env_name not in environ:
            continue
        value: Any = environ[env_name]
        if key == "check_endpoints":
            value = [item.strip() for item in value.split(",") if item.strip()]
        merged[key] = value
        logger.debug("Config key %s overridden from %s.", key, env_name)
    return merged
