"""
providers/namecheap_client.py

Responsibility: Implements the DNSProvider protocol using the Namecheap XML API
(domains.dns.getHosts / domains.dns.setHosts).
Does NOT: read configuration, decide failover, or touch the state file.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Callable
from typing import Any

import httpx

from exceptions import DnsProviderError
from providers.dns_provider import DnsRecord, require_type
from providers.domains import absolute_name, relative_name, split_name
from providers.http_transport import send

logger = logging.getLogger(__name__)

_PRODUCTION_URL = "https://api.namecheap.com/xml.response"
_SANDBOX_URL = "https://api.sandbox.namecheap.com/xml.response"

# Host attributes re-sent verbatim by setHosts
_HOST_FIELDS = ("HostName", "RecordType", "Address", "MXPref", "TTL")


class NamecheapClient:
    """
    Implements DNSProvider for domains using Namecheap BasicDNS.

    Namecheap has no per-record write endpoint: setHosts replaces the whole
    host list of the domain. Every write therefore reads the current list,
    changes exactly one entry, and sends the full list back so the other
    hosts survive unchanged.

    Collaborators:
        - httpx.AsyncClient: injected HTTP client; must be kept alive externally
    """

    name = "namecheap"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_user: str,
        api_token: str,
        username: str,
        client_ip: str,
        domain: str,
        sandbox: bool = False,
    ) -> None:
        """
        Args:
            http_client: A long-lived httpx.AsyncClient instance.
            api_user: Namecheap API user.
            api_token: Namecheap API key.
            username: Account the domain belongs to; usually equal to api_user.
            client_ip: Whitelisted IP the API calls are made from.
            domain: The domain whose hosts are managed, e.g. "example.com".
            sandbox: Use the Namecheap sandbox endpoint.
        """
        parts = split_name(domain)
        if not parts.sld or not parts.tld:
            raise ValueError(f"cannot split {domain!r} into SLD and TLD")

        self._client = http_client
        self._url = _SANDBOX_URL if sandbox else _PRODUCTION_URL
        self._domain = parts.registered_domain
        self._auth_params = {
            "ApiUser": api_user,
            "ApiKey": api_token,
            "UserName": username,
            "ClientIp": client_ip,
            "SLD": parts.sld,
            "TLD": parts.tld,
        }

    # ---------------------------------------------------------------------------
    # DNSProvider implementation
    # ---------------------------------------------------------------------------

    async def get_record(self, record_name: str, record_type: str) -> DnsRecord | None:
        record_type = require_type(record_name, record_type)
        host = relative_name(record_name, self._domain)

        for raw in await self._get_hosts():
            if raw["Name"].lower() == host and raw["Type"] == record_type:
                return self._parse_record(raw)
        return None

    async def update_record(self, existing: DnsRecord, desired: DnsRecord) -> None:
        def mutate(hosts: list[dict[str, str]]) -> None:
            for host in hosts:
                if host["HostId"] == existing.id:
                    host["Address"] = desired.value
                    host["TTL"] = str(desired.ttl)
                    return
            raise DnsProviderError(
                f"Namecheap host {existing.id} for {existing.name} disappeared before update",
                provider=self.name,
            )

        await self._replace_hosts(mutate)
        logger.info("Namecheap record %s updated to %s.", desired.name, desired.value)

    async def create_record(self, desired: DnsRecord) -> None:
        def mutate(hosts: list[dict[str, str]]) -> None:
            hosts.append(
                {
                    "HostId": "",
                    "Name": relative_name(desired.name, self._domain),
                    "Type": desired.type,
                    "Address": desired.value,
                    "MXPref": "10",
                    "TTL": str(desired.ttl),
                }
            )

        await self._replace_hosts(mutate)
        logger.info("Namecheap record %s created with %s.", desired.name, desired.value)

    async def delete_record(self, existing: DnsRecord) -> None:
        def mutate(hosts: list[dict[str, str]]) -> None:
            hosts[:] = [h for h in hosts if h["HostId"] != existing.id]

        await self._replace_hosts(mutate)
        logger.info("Namecheap record %s (%s) deleted.", existing.name, existing.id)

    async def list_records(self) -> list[DnsRecord]:
        return [self._parse_record(raw) for raw in await self._get_hosts()]

    async def validate(self) -> None:
        records = await self.list_records()
        logger.info("Namecheap provider validated (%d host(s) on %s).", len(records), self._domain)

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _get_hosts(self) -> list[dict[str, str]]:
        root = await self._call("namecheap.domains.dns.getHosts", {})
        return [
            {
                "HostId": el.get("HostId", ""),
                "Name": el.get("Name", "@"),
                "Type": el.get("Type", ""),
                "Address": el.get("Address", ""),
                "MXPref": el.get("MXPref", "10"),
                "TTL": el.get("TTL", "1800"),
            }
            for el in root.iterfind(".//{*}DomainDNSGetHostsResult/{*}host")
        ]

    async def _replace_hosts(self, mutate: Callable[[list[dict[str, str]]], None]) -> None:
        hosts = await self._get_hosts()
        mutate(hosts)

        params: dict[str, str] = {}
        for index, host in enumerate(hosts, start=1):
            values = (host["Name"], host["Type"], host["Address"], host["MXPref"], host["TTL"])
            for field_name, value in zip(_HOST_FIELDS, values):
                params[f"{field_name}{index}"] = value

        root = await self._call("namecheap.domains.dns.setHosts", params)
        result = root.find(".//{*}DomainDNSSetHostsResult")
        if result is None or result.get("IsSuccess", "").lower() != "true":
            raise DnsProviderError("Namecheap setHosts did not report success", provider=self.name)

    async def _call(self, command: str, params: dict[str, str]) -> ET.Element:
        data: dict[str, Any] = {**self._auth_params, "Command": command, **params}
        # NOTE: setHosts can exceed URL length limits, so everything is form-encoded.
        response = await send(self._client, self.name, "POST", self._url, data=data)

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as exc:
            raise DnsProviderError(f"Namecheap returned invalid XML: {exc}", provider=self.name) from exc

        if root.get("Status", "").upper() != "OK":
            error = root.find(".//{*}Errors/{*}Error")
            number = error.get("Number", "?") if error is not None else "?"
            text = (error.text or "").strip() if error is not None else "unknown error"
            raise DnsProviderError(f"Namecheap API error {number}: {text}", provider=self.name)

        return root

    def _parse_record(self, raw: dict[str, str]) -> DnsRecord:
        return DnsRecord(
            id=raw["HostId"],
            name=absolute_name(raw["Name"], self._domain),
            type=raw["Type"],
            value=raw["Address"],
            ttl=int(raw["TTL"] or 0),
            provider=self.name,
            metadata={"mx_pref": raw["MXPref"]},
            raw=dict(raw),
        )
