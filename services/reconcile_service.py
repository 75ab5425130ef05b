"""
services/reconcile_service.py

Responsibility: Converges a single DNS record at a single provider to a
desired value using only the DNSProvider primitives (find, create, update,
delete).
Does NOT: retry, aggregate errors across records, or touch the state file.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from exceptions import DnsProviderError, ErrorKind, InvalidRecordError
from providers.dns_provider import DNSProvider, DnsRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReconcileService:
    """
    Provider-agnostic record reconciler.

    reconcile() is idempotent: running it twice with the same desired record
    leaves the provider in the same state. Every provider failure is
    re-raised as DnsProviderError bound to (provider, record).

    Collaborators:
        - DNSProvider: any implementation of the protocol
    """

    def __init__(self, default_timeout: float | None = None) -> None:
        """
        Args:
            default_timeout: Deadline in seconds for one whole reconcile or
                remove exchange when the caller does not pass one.
        """
        self._default_timeout = default_timeout

    # ---------------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------------

    async def reconcile(
        self,
        provider: DNSProvider,
        desired: DnsRecord,
        timeout: float | None = None,
    ) -> None:
        """
        Makes the provider hold exactly the desired value for (name, type).

        An existing record is updated in place, even when it already holds
        the desired value; a missing one is created.

        Args:
            provider: The provider hosting the record.
            desired: Name, type, value and TTL to converge to.
            timeout: Overall deadline in seconds for the exchange.

        Raises:
            InvalidRecordError: If desired.type is empty.
            DnsProviderError: If any provider call fails or the deadline expires.
        """
        if not desired.type or not desired.type.strip():
            raise InvalidRecordError(f"record type is required to reconcile {desired.name!r}")

        async def exchange() -> None:
            existing = await provider.get_record(desired.name, desired.type)
            if existing is not None:
                logger.debug(
                    "Updating %s %s at %s: %s -> %s",
                    desired.type, desired.name, provider.name, existing.value, desired.value,
                )
                await provider.update_record(existing, desired)
            else:
                logger.debug("Creating %s %s at %s -> %s", desired.type, desired.name, provider.name, desired.value)
                await provider.create_record(desired)

        await self._run(provider.name, desired.name, exchange(), timeout)
        logger.info("Reconciled %s %s at %s to %s.", desired.type, desired.name, provider.name, desired.value)

    async def remove(
        self,
        provider: DNSProvider,
        name: str,
        record_type: str,
        timeout: float | None = None,
    ) -> bool:
        """
        Deletes the record (name, type) if it exists.

        Returns:
            True if a record was deleted, False if none existed.

        Raises:
            InvalidRecordError: If record_type is empty.
            DnsProviderError: If any provider call fails or the deadline expires.
        """
        if not record_type or not record_type.strip():
            raise InvalidRecordError(f"record type is required to remove {name!r}")

        async def exchange() -> bool:
            existing = await provider.get_record(name, record_type)
            if existing is None:
                logger.info("Record %s %s not present at %s; nothing to remove.", record_type, name, provider.name)
                return False
            await provider.delete_record(existing)
            return True

        return await self._run(provider.name, name, exchange(), timeout)

    # ---------------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------------

    async def _run(
        self,
        provider_name: str,
        record_name: str,
        coro: Awaitable[T],
        timeout: float | None,
    ) -> T:
        deadline = timeout if timeout is not None else self._default_timeout
        try:
            async with asyncio.timeout(deadline):
                return await coro
        except TimeoutError as exc:
            raise DnsProviderError(
                f"operation exceeded deadline of {deadline}s",
                provider=provider_name,
                record=record_name,
                kind=ErrorKind.TIMEOUT,
            ) from exc
        except DnsProviderError as exc:
            raise exc.with_context(provider_name, record_name)
        except InvalidRecordError:
            raise
        except Exception as exc:
            # Malformed provider payloads surface as KeyError/ValueError and the like.
            raise DnsProviderError(
                f"unexpected {type(exc).__name__}: {exc}",
                provider=provider_name,
                record=record_name,
                kind=ErrorKind.PROVIDER,
            ) from exc
