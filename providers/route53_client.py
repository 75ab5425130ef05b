"""
providers/route53_client.py

Responsibility: Implements the DNSProvider protocol for AWS Route53 via boto3.
boto3 is blocking, so every API call runs in a worker thread.
Does NOT: read configuration, decide failover, or touch the state file.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from exceptions import DnsProviderError, ErrorKind
from providers.dns_provider import DnsRecord, require_type

logger = logging.getLogger(__name__)

# Routing attributes carried over from the existing record set on UPSERT
_PRESERVED_ATTRIBUTES = (
    "SetIdentifier",
    "Weight",
    "HealthCheckId",
    "TrafficPolicyInstanceId",
    "Region",
    "Failover",
    "GeoLocation",
    "MultiValueAnswer",
)


def _fqdn(name: str) -> str:
    return name.strip().rstrip(".").lower() + "."


class Route53Client:
    """
    Implements DNSProvider for a Route53 hosted zone.

    Collaborators:
        - boto3 route53 client: created from static credentials, or injected
          (tests wrap an injected client in botocore.stub.Stubber)
    """

    name = "route53"

    def __init__(
        self,
        hosted_zone_id: str,
        access_key_id: str = "",
        secret_access_key: str = "",
        region: str = "us-east-1",
        request_timeout: float = 30.0,
        client: Any = None,
    ) -> None:
        """
        Args:
            hosted_zone_id: Route53 hosted zone ID, e.g. "Z123EXAMPLE".
            access_key_id: AWS access key ID.
            secret_access_key: AWS secret access key.
            region: AWS region used for the client.
            request_timeout: botocore connect/read timeout in seconds.
            client: Pre-built boto3 route53 client; skips client creation.
        """
        self._zone_id = hosted_zone_id
        self._client = client or boto3.client(
            "route53",
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
            config=BotoConfig(
                connect_timeout=request_timeout,
                read_timeout=request_timeout,
                retries={"max_attempts": 1},
            ),
        )

    # ---------------------------------------------------------------------------
    # DNSProvider implementation
    # ---------------------------------------------------------------------------

    async def get_record(self, record_name: str, record_type: str) -> DnsRecord | None:
        record_type = require_type(record_name, record_type)
        wanted = _fqdn(record_name)

        # NOTE: record sets are sorted by name then type, so starting the
        # listing at (name, type) returns the matching set first if it exists.
        response = await self._call(
            "list_resource_record_sets",
            HostedZoneId=self._zone_id,
            StartRecordName=wanted,
            StartRecordType=record_type,
            MaxItems="1",
        )
        for record_set in response.get("ResourceRecordSets", []):
            if _fqdn(record_set.get("Name", "")) == wanted and record_set.get("Type") == record_type:
                return self._parse_record(record_set)
        return None

    async def update_record(self, existing: DnsRecord, desired: DnsRecord) -> None:
        record_set: dict[str, Any] = {
            "Name": _fqdn(desired.name),
            "Type": desired.type,
            "TTL": desired.ttl,
            "ResourceRecords": [{"Value": desired.value}],
        }
        for attribute in _PRESERVED_ATTRIBUTES:
            if attribute in existing.raw:
                record_set[attribute] = existing.raw[attribute]

        await self._change("UPSERT", record_set)
        logger.info("Route53 record %s updated to %s.", desired.name, desired.value)

    async def create_record(self, desired: DnsRecord) -> None:
        record_set: dict[str, Any] = {
            "Name": _fqdn(desired.name),
            "Type": desired.type,
            "TTL": desired.ttl,
            "ResourceRecords": [{"Value": desired.value}],
        }

        await self._change("CREATE", record_set)
        logger.info("Route53 record %s created with %s.", desired.name, desired.value)

    async def delete_record(self, existing: DnsRecord) -> None:
        # Route53 only deletes a record set that matches exactly what is stored.
        await self._change("DELETE", dict(existing.raw))
        logger.info("Route53 record %s deleted.", existing.name)

    async def list_records(self) -> list[DnsRecord]:
        records: list[DnsRecord] = []
        params: dict[str, Any] = {"HostedZoneId": self._zone_id}

        while True:
            response = await self._call("list_resource_record_sets", **params)
            records.extend(self._parse_record(rs) for rs in response.get("ResourceRecordSets", []))

            if not response.get("IsTruncated"):
                return records
            params["StartRecordName"] = response["NextRecordName"]
            params["StartRecordType"] = response["NextRecordType"]
            if response.get("NextRecordIdentifier"):
                params["StartRecordIdentifier"] = response["NextRecordIdentifier"]
            else:
                params.pop("StartRecordIdentifier", None)

    async def validate(self) -> None:
        response = await self._call("get_hosted_zone", Id=self._zone_id)
        zone_name = response.get("HostedZone", {}).get("Name", self._zone_id)
        logger.info("Route53 provider validated (hosted zone %s).", zone_name)

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _change(self, action: str, record_set: dict[str, Any]) -> None:
        await self._call(
            "change_resource_record_sets",
            HostedZoneId=self._zone_id,
            ChangeBatch={"Changes": [{"Action": action, "ResourceRecordSet": record_set}]},
        )

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        method = getattr(self._client, operation)
        logger.debug("Route53 %s %s", operation, kwargs.get("HostedZoneId", kwargs.get("Id", "")))
        try:
            return await asyncio.to_thread(method, **kwargs)
        except ClientError as exc:
            error = exc.response.get("Error", {})
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            raise DnsProviderError(
                f"Route53 {operation} failed: {error.get('Code', 'Unknown')}: {error.get('Message', '')}",
                provider=self.name,
                status_code=status,
            ) from exc
        except BotoCoreError as exc:
            raise DnsProviderError(
                f"Network error calling Route53 {operation}: {exc}",
                provider=self.name,
                kind=ErrorKind.NETWORK,
            ) from exc

    def _parse_record(self, record_set: dict[str, Any]) -> DnsRecord:
        values = record_set.get("ResourceRecords") or []
        metadata = {
            attribute: str(record_set[attribute])
            for attribute in ("SetIdentifier", "Weight", "Failover", "Region")
            if attribute in record_set
        }
        return DnsRecord(
            id=record_set.get("SetIdentifier", record_set.get("Name", "")),
            name=record_set.get("Name", "").rstrip("."),
            type=record_set.get("Type", ""),
            value=values[0].get("Value", "") if values else "",
            ttl=int(record_set.get("TTL", 0)),
            provider=self.name,
            metadata=metadata,
            raw=record_set,
        )
