"""
providers/hetzner_client.py

Responsibility: Implements the DNSProvider protocol using the Hetzner DNS API.
Does NOT: read configuration, decide failover, or touch the state file.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exceptions import DnsProviderError
from providers.dns_provider import DnsRecord, require_type
from providers.domains import absolute_name, relative_name
from providers.http_transport import json_body, send

logger = logging.getLogger(__name__)

_HETZNER_BASE = "https://dns.hetzner.com/api/v1"


class HetznerClient:
    """
    Implements DNSProvider for Hetzner DNS.

    Hetzner stores record names relative to the zone ("www", "@" for the
    apex); this client converts to and from fully-qualified names so the
    rest of the application only ever sees FQDNs.

    Collaborators:
        - httpx.AsyncClient: injected HTTP client; must be kept alive externally
    """

    name = "hetzner"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_token: str,
        zone_id: str,
        zone_name: str,
    ) -> None:
        """
        Args:
            http_client: A long-lived httpx.AsyncClient instance.
            api_token: Hetzner DNS API token.
            zone_id: Hetzner zone identifier.
            zone_name: The zone's domain, e.g. "example.com".
        """
        self._client = http_client
        self._zone_id = zone_id
        self._zone_name = zone_name
        self._headers = {
            "Auth-API-Token": api_token,
            "Content-Type": "application/json",
        }

    # ---------------------------------------------------------------------------
    # DNSProvider implementation
    # ---------------------------------------------------------------------------

    async def get_record(self, record_name: str, record_type: str) -> DnsRecord | None:
        record_type = require_type(record_name, record_type)
        host = relative_name(record_name, self._zone_name)

        for raw in await self._fetch_records():
            if raw.get("name", "").lower() == host and raw.get("type") == record_type:
                return self._parse_record(raw)
        return None

    async def update_record(self, existing: DnsRecord, desired: DnsRecord) -> None:
        url = f"{_HETZNER_BASE}/records/{existing.id}"
        payload: dict[str, Any] = {
            "zone_id": existing.raw.get("zone_id", self._zone_id),
            "type": desired.type,
            "name": existing.raw.get("name", relative_name(desired.name, self._zone_name)),
            "value": desired.value,
            "ttl": desired.ttl,
        }

        await send(self._client, self.name, "PUT", url, headers=self._headers, json=payload)
        logger.info("Hetzner record %s updated to %s.", desired.name, desired.value)

    async def create_record(self, desired: DnsRecord) -> None:
        url = f"{_HETZNER_BASE}/records"
        payload: dict[str, Any] = {
            "zone_id": self._zone_id,
            "type": desired.type,
            "name": relative_name(desired.name, self._zone_name),
            "value": desired.value,
            "ttl": desired.ttl,
        }

        response = await send(self._client, self.name, "POST", url, headers=self._headers, json=payload)
        record = (json_body(response, self.name) or {}).get("record") or {}
        logger.info("Hetzner record %s created (id=%s).", desired.name, record.get("id", "?"))

    async def delete_record(self, existing: DnsRecord) -> None:
        url = f"{_HETZNER_BASE}/records/{existing.id}"

        await send(self._client, self.name, "DELETE", url, headers=self._headers)
        logger.info("Hetzner record %s (%s) deleted.", existing.name, existing.id)

    async def list_records(self) -> list[DnsRecord]:
        return [self._parse_record(raw) for raw in await self._fetch_records()]

    async def validate(self) -> None:
        records = await self.list_records()
        logger.info("Hetzner provider validated (%d record(s) in zone).", len(records))

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _fetch_records(self) -> list[dict[str, Any]]:
        url = f"{_HETZNER_BASE}/records"
        response = await send(
            self._client, self.name, "GET", url, headers=self._headers, params={"zone_id": self._zone_id}
        )
        body = json_body(response, self.name)
        if not isinstance(body, dict) or not isinstance(body.get("records", []), list):
            raise DnsProviderError("Hetzner API returned an unexpected payload", provider=self.name)
        return body.get("records") or []

    def _parse_record(self, raw: dict[str, Any]) -> DnsRecord:
        return DnsRecord(
            id=raw["id"],
            name=absolute_name(raw.get("name", "@"), self._zone_name),
            type=raw.get("type", ""),
            value=raw.get("value", ""),
            ttl=int(raw.get("ttl") or 0),
            provider=self.name,
            metadata={"zone_id": raw.get("zone_id", self._zone_id)},
            raw=raw,
        )
