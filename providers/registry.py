"""
providers/registry.py

Responsibility: Turns the configured DNS records into an explicit list of
(record, provider) bindings, constructing each provider client once.
Does NOT: call any provider API; validation happens in the application lifespan.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable
from dataclasses import dataclass

import httpx

from config import (
    AppConfig,
    CloudflareSettings,
    CPanelSettings,
    DnsRecordConfig,
    HetznerSettings,
    NamecheapSettings,
    Route53Settings,
)
from exceptions import ConfigurationError
from providers.cloudflare_client import CloudflareClient
from providers.cpanel_client import CPanelClient
from providers.dns_provider import DNSProvider, DnsRecord, record_key
from providers.domains import split_name
from providers.hetzner_client import HetznerClient
from providers.namecheap_client import NamecheapClient
from providers.route53_client import Route53Client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordBinding:
    """A configured record together with the provider that hosts it."""

    record: DnsRecordConfig
    provider: DNSProvider

    @property
    def key(self) -> str:
        return record_key(self.provider.name, self.record.name, self.record.type)

    def desired(self, address: str) -> DnsRecord:
        """Builds a fresh desired record pointing at address."""
        return DnsRecord(
            name=self.record.name,
            type=self.record.type,
            value=address,
            ttl=self.record.ttl,
            provider=self.provider.name,
            metadata=dict(self.record.metadata),
        )


def build_bindings(config: AppConfig, http_client: httpx.AsyncClient) -> list[RecordBinding]:
    """
    Builds one binding per configured DNS record.

    Records that share identical provider settings (and zone) share one
    provider instance.

    Args:
        config: The validated application config.
        http_client: The shared httpx.AsyncClient for HTTP-based providers.

    Returns:
        Bindings in configuration order.

    Raises:
        ConfigurationError: If a record names an unsupported provider or its
                            provider cannot be constructed.
    """
    providers: dict[Hashable, DNSProvider] = {}
    bindings: list[RecordBinding] = []

    for index, record in enumerate(config.dns):
        cache_key = (record.provider, record.settings, _zone_of(record))
        provider = providers.get(cache_key)
        if provider is None:
            provider = _create_provider(index, record, http_client, config.provider_timeout)
            providers[cache_key] = provider
        bindings.append(RecordBinding(record=record, provider=provider))

    logger.info(
        "Built %d record binding(s) across %d provider instance(s).",
        len(bindings),
        len(providers),
    )
    return bindings


def unique_providers(bindings: list[RecordBinding]) -> list[DNSProvider]:
    """Returns each distinct provider instance once, in binding order."""
    seen: dict[int, DNSProvider] = {}
    for binding in bindings:
        seen.setdefault(id(binding.provider), binding.provider)
    return list(seen.values())


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _zone_of(record: DnsRecordConfig) -> str:
    return split_name(record.name).registered_domain


def _create_provider(
    index: int,
    record: DnsRecordConfig,
    http_client: httpx.AsyncClient,
    provider_timeout: float,
) -> DNSProvider:
    settings = record.settings
    field_path = f"dns.{index}.{record.provider}"

    try:
        if isinstance(settings, CloudflareSettings):
            return CloudflareClient(
                http_client=http_client,
                api_token=settings.api_token.get_secret_value(),
                zone_id=settings.zone_id,
                zone_name=_zone_of(record),
                proxied=settings.proxied,
            )
        if isinstance(settings, HetznerSettings):
            return HetznerClient(
                http_client=http_client,
                api_token=settings.api_token.get_secret_value(),
                zone_id=settings.zone_id,
                zone_name=_zone_of(record),
            )
        if isinstance(settings, CPanelSettings):
            return CPanelClient(
                http_client=http_client,
                base_url=settings.base_url,
                username=settings.username,
                api_token=settings.api_token.get_secret_value(),
                zone=settings.zone,
            )
        if isinstance(settings, NamecheapSettings):
            return NamecheapClient(
                http_client=http_client,
                api_user=settings.api_user,
                api_token=settings.api_token.get_secret_value(),
                username=settings.username,
                client_ip=settings.client_ip,
                domain=settings.domain,
                sandbox=settings.sandbox,
            )
        if isinstance(settings, Route53Settings):
            return Route53Client(
                hosted_zone_id=settings.hosted_zone_id,
                access_key_id=settings.access_key_id.get_secret_value(),
                secret_access_key=settings.secret_access_key.get_secret_value(),
                region=settings.region,
                request_timeout=provider_timeout,
            )
    except ValueError as exc:
        raise ConfigurationError(field_path, record.name, str(exc)) from exc

    raise ConfigurationError(f"dns.{index}.provider", record.provider, "unsupported provider")
