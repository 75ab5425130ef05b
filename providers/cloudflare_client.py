"""
providers/cloudflare_client.py

Responsibility: Implements the DNSProvider protocol using the Cloudflare REST API.
All Cloudflare HTTP calls are concentrated here; no other file may call the
Cloudflare API directly.
Does NOT: read configuration, decide failover, or touch the state file.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from exceptions import DnsProviderError
from providers.dns_provider import DnsRecord, require_type
from providers.http_transport import json_body, send

logger = logging.getLogger(__name__)

_CLOUDFLARE_BASE = "https://api.cloudflare.com/client/v4"

# Maximum page size accepted by the dns_records endpoint
_PER_PAGE = 100


class CloudflareClient:
    """
    Implements DNSProvider for the Cloudflare DNS REST API (v4).

    All outbound Cloudflare requests go through the injected httpx.AsyncClient,
    making this class fully testable without real network calls (use respx.mock).

    When no zone_id is configured the zone is resolved once by name (the
    registered domain of the managed record) and remembered for the lifetime
    of the client.

    Collaborators:
        - httpx.AsyncClient: injected HTTP client; must be kept alive externally
        - DNSProvider: this class satisfies the protocol contract
    """

    name = "cloudflare"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_token: str,
        zone_id: str = "",
        zone_name: str = "",
        proxied: bool = False,
    ) -> None:
        """
        Initialises the client with an HTTP client and a Cloudflare API token.

        Args:
            http_client: A long-lived httpx.AsyncClient instance.
            api_token: A Cloudflare API token with DNS edit permissions.
            zone_id: The Cloudflare zone ID; looked up by zone_name when empty.
            zone_name: Registered domain used for the zone lookup.
            proxied: Proxy flag applied to newly created records.
        """
        if not zone_id and not zone_name:
            raise ValueError("either zone_id or zone_name is required")
        self._client = http_client
        self._zone_id = zone_id
        self._zone_name = zone_name
        self._proxied = proxied
        self._headers = {
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        }

    # ---------------------------------------------------------------------------
    # DNSProvider implementation
    # ---------------------------------------------------------------------------

    async def get_record(self, record_name: str, record_type: str) -> DnsRecord | None:
        """
        Fetches a single record by name and type within the zone.

        Args:
            record_name: The fully-qualified DNS name to look up.
            record_type: The record type, e.g. "A".

        Returns:
            A DnsRecord if the record exists, or None if not found.

        Raises:
            InvalidRecordError: If record_type is empty.
            DnsProviderError: If the Cloudflare API returns an error.
        """
        record_type = require_type(record_name, record_type)
        zone_id = await self._resolve_zone_id()
        url = f"{_CLOUDFLARE_BASE}/zones/{zone_id}/dns_records"

        results = await self._paginate(url, {"name": record_name, "type": record_type})

        for raw in results:
            if raw.get("name", "").lower() == record_name.lower() and raw.get("type") == record_type:
                return self._parse_record(raw)
        return None

    async def update_record(self, existing: DnsRecord, desired: DnsRecord) -> None:
        """
        Overwrites content and TTL of an existing record.

        The proxied flag is taken from the existing record so a record that
        was put behind the Cloudflare proxy by hand stays proxied.

        Raises:
            DnsProviderError: If the Cloudflare API returns an error.
        """
        zone_id = await self._resolve_zone_id()
        url = f"{_CLOUDFLARE_BASE}/zones/{zone_id}/dns_records/{existing.id}"
        payload: dict[str, Any] = {
            "type": desired.type,
            "name": desired.name,
            "content": desired.value,
            "ttl": desired.ttl,
            "proxied": existing.raw.get("proxied", self._proxied),
        }

        await self._request("PUT", url, json=payload)
        logger.info("Cloudflare record %s updated to %s.", desired.name, desired.value)

    async def create_record(self, desired: DnsRecord) -> None:
        """
        Creates a new record in the zone.

        Raises:
            DnsProviderError: If the Cloudflare API returns an error.
        """
        zone_id = await self._resolve_zone_id()
        url = f"{_CLOUDFLARE_BASE}/zones/{zone_id}/dns_records"
        payload: dict[str, Any] = {
            "type": desired.type,
            "name": desired.name,
            "content": desired.value,
            "ttl": desired.ttl,
            "proxied": self._proxied,
        }

        await self._request("POST", url, json=payload)
        logger.info("Cloudflare record %s created with %s.", desired.name, desired.value)

    async def delete_record(self, existing: DnsRecord) -> None:
        """
        Deletes a DNS record from the zone.

        Raises:
            DnsProviderError: If the Cloudflare API returns an error.
        """
        zone_id = await self._resolve_zone_id()
        url = f"{_CLOUDFLARE_BASE}/zones/{zone_id}/dns_records/{existing.id}"

        await self._request("DELETE", url)
        logger.info("Cloudflare record %s (%s) deleted.", existing.name, existing.id)

    async def list_records(self) -> list[DnsRecord]:
        """
        Returns every record in the zone, following pagination.

        Raises:
            DnsProviderError: If the Cloudflare API returns an error.
        """
        zone_id = await self._resolve_zone_id()
        url = f"{_CLOUDFLARE_BASE}/zones/{zone_id}/dns_records"

        return [self._parse_record(raw) for raw in await self._paginate(url, {})]

    async def validate(self) -> None:
        """Checks the token and zone by listing records once."""
        records = await self.list_records()
        logger.info("Cloudflare provider validated (%d record(s) in zone).", len(records))

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _resolve_zone_id(self) -> str:
        if self._zone_id:
            return self._zone_id

        url = f"{_CLOUDFLARE_BASE}/zones"
        body = await self._request("GET", url, params={"name": self._zone_name})
        zones = body.get("result") or []
        if not zones:
            raise DnsProviderError(
                f"Cloudflare zone {self._zone_name!r} not found for this token",
                provider=self.name,
            )

        self._zone_id = zones[0]["id"]
        logger.info("Resolved Cloudflare zone %s to id %s.", self._zone_name, self._zone_id)
        return self._zone_id

    async def _paginate(self, url: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        page = 1

        while True:
            body = await self._request(
                "GET", url, params={**params, "page": page, "per_page": _PER_PAGE}
            )
            batch = body.get("result") or []
            results.extend(batch)

            total_pages = (body.get("result_info") or {}).get("total_pages", 1)
            if len(batch) < _PER_PAGE or page >= total_pages:
                return results
            page += 1

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Sends an authenticated HTTP request to the Cloudflare API.

        Returns:
            The parsed JSON response body as a dict.

        Raises:
            DnsProviderError: If the HTTP call fails or the API returns
                              success=false in the response body.
        """
        response = await send(
            self._client, self.name, method, url, headers=self._headers, params=params, json=json
        )
        body: dict[str, Any] = json_body(response, self.name)

        # NOTE: Cloudflare wraps all responses in {"success": bool, "result": ...}
        if not body.get("success", False):
            errors = body.get("errors", [])
            raise DnsProviderError(
                f"Cloudflare API returned success=false for {method} {url}. Errors: {errors}",
                provider=self.name,
            )

        return body

    def _parse_record(self, raw: dict[str, Any]) -> DnsRecord:
        return DnsRecord(
            id=raw["id"],
            name=raw["name"],
            type=raw.get("type", "A"),
            value=raw.get("content", ""),
            ttl=raw.get("ttl", 1),
            provider=self.name,
            metadata={"proxied": str(raw.get("proxied", False)).lower()},
            raw=raw,
        )
