"""
providers/cpanel_client.py

Responsibility: Implements the DNSProvider protocol using the cPanel UAPI
DnsLookup endpoints.
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


def _normalise(name: str) -> str:
    return name.strip().rstrip(".").lower()


class CPanelClient:
    """
    Implements DNSProvider for a cPanel account.

    cPanel addresses records by their line number in the zone file; the line
    is read fresh on every lookup and only used by the call that read it.

    Collaborators:
        - httpx.AsyncClient: injected HTTP client; must be kept alive externally
    """

    name = "cpanel"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        username: str,
        api_token: str,
        zone: str,
    ) -> None:
        """
        Args:
            http_client: A long-lived httpx.AsyncClient instance.
            base_url: cPanel base URL, e.g. "https://cpanel.example.com:2083".
            username: cPanel account user.
            api_token: cPanel API token, sent with Basic auth.
            zone: The zone (domain) that holds the records.
        """
        self._client = http_client
        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(username, api_token)
        self._zone = zone

    # ---------------------------------------------------------------------------
    # DNSProvider implementation
    # ---------------------------------------------------------------------------

    async def get_record(self, record_name: str, record_type: str) -> DnsRecord | None:
        record_type = require_type(record_name, record_type)
        wanted = _normalise(record_name)

        for raw in await self._fetch_records():
            if _normalise(raw.get("name", "")) == wanted and raw.get("type") == record_type:
                return self._parse_record(raw)
        return None

    async def update_record(self, existing: DnsRecord, desired: DnsRecord) -> None:
        await self._execute(
            "update_dns_record",
            {
                "domain": self._zone,
                "line": existing.raw.get("line"),
                "type": desired.type,
                "name": existing.raw.get("name", desired.name),
                "data": desired.value,
                "ttl": desired.ttl,
            },
        )
        logger.info("cPanel record %s updated to %s.", desired.name, desired.value)

    async def create_record(self, desired: DnsRecord) -> None:
        await self._execute(
            "add_dns_record",
            {
                "domain": self._zone,
                "type": desired.type,
                "name": desired.name,
                "data": desired.value,
                "ttl": desired.ttl,
            },
        )
        logger.info("cPanel record %s created with %s.", desired.name, desired.value)

    async def delete_record(self, existing: DnsRecord) -> None:
        await self._execute(
            "delete_dns_record",
            {"domain": self._zone, "line": existing.raw.get("line")},
        )
        logger.info("cPanel record %s (line %s) deleted.", existing.name, existing.raw.get("line"))

    async def list_records(self) -> list[DnsRecord]:
        return [self._parse_record(raw) for raw in await self._fetch_records()]

    async def validate(self) -> None:
        records = await self.list_records()
        logger.info("cPanel provider validated (%d record(s) in zone).", len(records))

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _fetch_records(self) -> list[dict[str, Any]]:
        url = f"{self._base_url}/execute/DnsLookup/get_dns_records"
        response = await send(
            self._client, self.name, "GET", url, auth=self._auth, params={"domain": self._zone}
        )
        result = self._check_result(json_body(response, self.name), "get_dns_records")
        return result.get("data") or []

    async def _execute(self, function: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/execute/DnsLookup/{function}"
        response = await send(self._client, self.name, "POST", url, auth=self._auth, json=payload)
        return self._check_result(json_body(response, self.name), function)

    def _check_result(self, body: Any, function: str) -> dict[str, Any]:
        result = body.get("result") if isinstance(body, dict) else None
        if not isinstance(result, dict):
            raise DnsProviderError(f"cPanel {function} returned an unexpected payload", provider=self.name)

        # NOTE: UAPI answers HTTP 200 even on failure; meta.result == 1 is success.
        code = (result.get("meta") or {}).get("result")
        if code != 1:
            raise DnsProviderError(
                f"cPanel API error in {function}: result code {code}, errors {result.get('errors')}",
                provider=self.name,
            )
        return result

    def _parse_record(self, raw: dict[str, Any]) -> DnsRecord:
        return DnsRecord(
            id=str(raw.get("id") or raw.get("line", "")),
            name=_normalise(raw.get("name", "")),
            type=raw.get("type", ""),
            value=raw.get("data", ""),
            ttl=int(raw.get("ttl") or 0),
            provider=self.name,
            metadata={"line": str(raw.get("line", ""))},
            raw=raw,
        )
