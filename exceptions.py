"""
exceptions.py

Responsibility: Defines all custom exception classes used across the application
and the single retry-classification policy applied to them.
Does NOT: contain business logic, logging, or HTTP handling.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Coarse error categories understood by classify_retryable()."""

    HTTP = "http"
    NETWORK = "network"
    TIMEOUT = "timeout"
    PROVIDER = "provider"
    IP_CHECK = "ip_check"
    CONFIGURATION = "configuration"
    STATE = "state"
    INVALID_RECORD = "invalid_record"


# HTTP statuses below 500 that are still worth another attempt next cycle
_RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


def classify_retryable(kind: ErrorKind | str, status_code: int | None = None) -> bool:
    """
    Decides whether an error of the given kind is worth retrying.

    This is the only place retry policy lives; providers and the update
    cycle must not re-implement it.

    Args:
        kind: The ErrorKind (or its string value) of the failure.
        status_code: The HTTP status returned by the remote side, if any.

    Returns:
        True if a later attempt may succeed, False if the error is terminal.
    """
    kind = ErrorKind(kind)

    if kind is ErrorKind.HTTP:
        if status_code is None:
            return False
        return status_code >= 500 or status_code in _RETRYABLE_CLIENT_STATUSES

    if kind is ErrorKind.PROVIDER:
        # NOTE: provider operations are upserts/finds, so an unclassified
        # provider failure is safe to try again.
        if status_code is None:
            return True
        return status_code >= 500 or status_code in _RETRYABLE_CLIENT_STATUSES

    return kind in (ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.IP_CHECK)


def is_retryable(exc: BaseException) -> bool:
    """
    Maps an exception onto classify_retryable().

    Args:
        exc: Any exception raised during a cycle.

    Returns:
        True if the failure is retryable under the central policy.
    """
    if isinstance(exc, IpFailoverError):
        return classify_retryable(exc.kind, getattr(exc, "status_code", None))
    if isinstance(exc, TimeoutError):
        return True
    return False


class IpFailoverError(Exception):
    """Base class for every error raised by this application."""

    kind: ErrorKind = ErrorKind.PROVIDER


class IpFetchError(IpFailoverError):
    """
    Raised by IpService when the public IP address cannot be determined.

    This may occur due to network connectivity issues or an unexpected
    response from every configured upstream endpoint.
    """

    kind = ErrorKind.IP_CHECK


class DnsProviderError(IpFailoverError):
    """
    Raised by any DNSProvider implementation when a DNS API call fails.

    Carries the provider and record name so the update cycle can aggregate
    and report failures per (provider, record) pair.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        record: str = "",
        status_code: int | None = None,
        kind: ErrorKind = ErrorKind.PROVIDER,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.record = record
        self.status_code = status_code
        self.kind = kind

    def __str__(self) -> str:
        if self.provider or self.record:
            return f"DNS provider {self.provider} failed for record {self.record}: {self.message}"
        return self.message

    def with_context(self, provider: str, record: str) -> DnsProviderError:
        """
        Returns a copy of this error bound to a provider and record name.

        Args:
            provider: Provider name, e.g. "cloudflare".
            record: Record name, e.g. "home.example.com".

        Returns:
            A new DnsProviderError chained to this one.
        """
        if self.provider == provider and self.record == record:
            return self
        err = DnsProviderError(
            self.message,
            provider=provider,
            record=record,
            status_code=self.status_code,
            kind=self.kind,
        )
        err.__cause__ = self.__cause__ or self
        return err


@dataclass
class RecordFailure:
    """One failed (provider, record) reconciliation inside a cycle."""

    provider: str
    record: str
    message: str
    retryable: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "record": self.record,
            "message": self.message,
            "retryable": self.retryable,
        }


class ReconcileAggregateError(IpFailoverError):
    """
    Collects every per-record failure of a single update cycle.

    Raised (or attached to the cycle report) once per cycle instead of
    aborting on the first failing provider.
    """

    def __init__(self, failures: list[RecordFailure]) -> None:
        self.failures = list(failures)
        names = ", ".join(f"{f.provider}:{f.record}" for f in self.failures)
        super().__init__(f"{len(self.failures)} DNS record(s) failed to reconcile: {names}")

    @property
    def retryable(self) -> bool:
        return any(f.retryable for f in self.failures)


class StateStoreError(IpFailoverError):
    """
    Raised by StateRepository when the state document cannot be read or written.
    """

    kind = ErrorKind.STATE

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"state operation {operation} failed: {message}")
        self.operation = operation


class StateCorruptedError(StateStoreError):
    """
    Raised on pure-read paths when the state document exists but cannot be
    parsed. Lets health checks tell "never run" apart from "corrupted".
    """


class ConfigurationError(IpFailoverError):
    """
    Raised when the configuration file is missing, malformed, or invalid.

    Only ever fatal at startup.
    """

    kind = ErrorKind.CONFIGURATION

    def __init__(self, field: str, value: Any, message: str) -> None:
        super().__init__(f"configuration error for field {field} (value: {value!r}): {message}")
        self.field = field
        self.value = value


class InvalidRecordError(IpFailoverError, ValueError):
    """
    Raised when a caller asks for a record lookup without a record type.
    """

    kind = ErrorKind.INVALID_RECORD
