"""
providers/domains.py

Responsibility: Splits fully-qualified record names into subdomain, second
level domain and public suffix using the bundled Public Suffix List snapshot.
Does NOT: fetch the suffix list over the network or call any DNS API.
"""

from __future__ import annotations

from dataclasses import dataclass

import tldextract

# NOTE: suffix_list_urls=() keeps tldextract on its bundled snapshot so
# startup never blocks on a download.
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=(), cache_dir=None)


@dataclass(frozen=True)
class DomainParts:
    subdomain: str
    sld: str
    tld: str

    @property
    def registered_domain(self) -> str:
        if not self.sld or not self.tld:
            return ""
        return f"{self.sld}.{self.tld}"

    @property
    def host(self) -> str:
        """Host label relative to the registered domain; "@" for the apex."""
        return self.subdomain or "@"


def split_name(record_name: str) -> DomainParts:
    """
    Splits a record name, e.g. "home.example.co.uk" into
    DomainParts(subdomain="home", sld="example", tld="co.uk").
    """
    extracted = _EXTRACT(record_name.strip().rstrip("."))
    return DomainParts(
        subdomain=extracted.subdomain,
        sld=extracted.domain,
        tld=extracted.suffix,
    )


def relative_name(record_name: str, zone: str) -> str:
    """
    Returns record_name relative to zone, "@" for the zone apex.

    Names outside the zone are returned unchanged.
    """
    name = record_name.strip().rstrip(".").lower()
    zone = zone.strip().rstrip(".").lower()
    if not zone or name == zone:
        return "@"
    suffix = f".{zone}"
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return name


def absolute_name(host: str, zone: str) -> str:
    """Inverse of relative_name()."""
    zone = zone.strip().rstrip(".").lower()
    if host in ("", "@"):
        return zone
    return f"{host.lower()}.{zone}"
