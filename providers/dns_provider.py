"""
providers/dns_provider.py

Responsibility: Defines the DNSProvider Protocol and the DnsRecord value object.
Does NOT: make HTTP calls, touch the state file, or implement any provider logic.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Protocol, runtime_checkable

from exceptions import InvalidRecordError

# ---------------------------------------------------------------------------
# Value object: desired and observed records share one shape
# ---------------------------------------------------------------------------


@dataclass
class DnsRecord:
    """
    A DNS record as desired by configuration or as observed at a provider.

    A desired record is built fresh for every reconciliation and has an
    empty id. An observed record is returned by DNSProvider.get_record();
    its id and raw payload are only valid for the call that fetched it and
    must never be cached across cycles.
    """

    # Fully-qualified DNS name, e.g. "home.example.com"
    name: str

    # Record type, e.g. "A" or "AAAA"
    type: str

    # Record content; for A/AAAA records the address
    value: str

    # TTL in seconds
    ttl: int

    # Name of the provider this record belongs to, e.g. "cloudflare"
    provider: str = ""

    # Provider-specific attributes (proxied flag, routing hints, ...)
    metadata: dict[str, str] = field(default_factory=dict)

    # Provider-assigned opaque identifier; empty for desired records
    id: str = ""

    # Provider payload the record was parsed from; used to preserve
    # routing attributes this application does not manage
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def key(self) -> str:
        """Stable identity used for per-record applied state."""
        return record_key(self.provider, self.name, self.type)

    def with_value(self, value: str) -> DnsRecord:
        return replace(self, value=value, metadata=dict(self.metadata))


def record_key(provider: str, name: str, record_type: str) -> str:
    return f"{provider}:{name}:{record_type.upper()}"


def require_type(name: str, record_type: str) -> str:
    """
    Rejects lookups that do not name a record type.

    Returns:
        The record type upper-cased.

    Raises:
        InvalidRecordError: If record_type is empty.
    """
    if not record_type or not record_type.strip():
        raise InvalidRecordError(f"record type is required for lookup of {name!r}")
    return record_type.strip().upper()


# ---------------------------------------------------------------------------
# Abstract interface: all DNS providers must implement this contract
# ---------------------------------------------------------------------------


@runtime_checkable
class DNSProvider(Protocol):
    """
    Abstract protocol for DNS record management.

    Each configured provider (Cloudflare, Route53, cPanel, Namecheap,
    Hetzner) satisfies this interface. ReconcileService depends on this
    abstraction only; adding a new provider means implementing this
    protocol, with no change to the reconciler or the update cycle.

    Implementations raise DnsProviderError for every remote failure and
    never retry internally.
    """

    @property
    def name(self) -> str:
        """Provider name, e.g. "cloudflare"."""
        ...

    async def get_record(self, record_name: str, record_type: str) -> DnsRecord | None:
        """
        Fetches the record matching name and type exactly.

        Args:
            record_name: The fully-qualified DNS name to look up.
            record_type: The record type; must not be empty.

        Returns:
            The observed DnsRecord, or None if no such record exists.

        Raises:
            InvalidRecordError: If record_type is empty.
            DnsProviderError: If the API call fails.
        """
        ...

    async def create_record(self, desired: DnsRecord) -> None:
        """
        Creates a new record with the desired name, type, value and TTL.

        Raises:
            DnsProviderError: If the API call fails.
        """
        ...

    async def update_record(self, existing: DnsRecord, desired: DnsRecord) -> None:
        """
        Sets value and TTL of an existing record to the desired ones.

        Provider-side routing attributes carried by existing (proxy flags,
        weights, health checks, geo/failover routing) must be preserved.

        Raises:
            DnsProviderError: If the API call fails.
        """
        ...

    async def delete_record(self, existing: DnsRecord) -> None:
        """
        Deletes the given observed record.

        Raises:
            DnsProviderError: If the API call fails.
        """
        ...

    async def list_records(self) -> list[DnsRecord]:
        """
        Returns every record in the configured zone.

        Raises:
            DnsProviderError: If the API call fails.
        """
        ...

    async def validate(self) -> None:
        """
        Checks credentials and reachability once at startup.

        Raises:
            DnsProviderError: If the provider cannot be used.
        """
        ...
