"""
tests/unit/test_namecheap_client.py

Unit tests for providers/namecheap_client.py.
Namecheap speaks form-encoded POST in, XML out; respx answers per Command.
"""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from exceptions import DnsProviderError
from providers.dns_provider import DnsRecord
from providers.namecheap_client import NamecheapClient

_URL = "https://api.namecheap.com/xml.response"
_SANDBOX_URL = "https://api.sandbox.namecheap.com/xml.response"

_HOSTS_XML = """<?xml version="1.0" encoding="utf-8"?>
<ApiResponse Status="OK" xmlns="http://api.namecheap.com/xml.response">
  <Errors />
  <CommandResponse Type="namecheap.domains.dns.getHosts">
    <DomainDNSGetHostsResult Domain="example.com" IsUsingOurDNS="true">
      <host HostId="11" Name="@" Type="A" Address="1.1.1.1" MXPref="10" TTL="1800" />
      <host HostId="12" Name="home" Type="A" Address="1.2.3.4" MXPref="10" TTL="300" />
      <host HostId="13" Name="mail" Type="MX" Address="mx.example.com." MXPref="5" TTL="1800" />
    </DomainDNSGetHostsResult>
  </CommandResponse>
</ApiResponse>"""

_SET_OK_XML = """<?xml version="1.0" encoding="utf-8"?>
<ApiResponse Status="OK" xmlns="http://api.namecheap.com/xml.response">
  <Errors />
  <CommandResponse Type="namecheap.domains.dns.setHosts">
    <DomainDNSSetHostsResult Domain="example.com" IsSuccess="true" />
  </CommandResponse>
</ApiResponse>"""

_ERROR_XML = """<?xml version="1.0" encoding="utf-8"?>
<ApiResponse Status="ERROR" xmlns="http://api.namecheap.com/xml.response">
  <Errors><Error Number="1011102">API Key is invalid or API access has not been enabled</Error></Errors>
</ApiResponse>"""


class _Namecheap:
    """respx side effect that records every form body and answers by Command."""

    def __init__(self, set_xml=_SET_OK_XML):
        self.forms: list[dict[str, str]] = []
        self._set_xml = set_xml

    def __call__(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.forms.append(form)
        if form["Command"] == "namecheap.domains.dns.getHosts":
            return httpx.Response(200, text=_HOSTS_XML)
        return httpx.Response(200, text=self._set_xml)

    @property
    def set_form(self) -> dict[str, str]:
        return [f for f in self.forms if f["Command"] == "namecheap.domains.dns.setHosts"][-1]


def _client(http_client, sandbox=False):
    return NamecheapClient(
        http_client,
        api_user="ncuser",
        api_token="nc-key",
        username="ncuser",
        client_ip="192.0.2.1",
        domain="example.com",
        sandbox=sandbox,
    )


@pytest.mark.asyncio
async def test_get_record_and_auth_params(mock_http, http_client):
    api = _Namecheap()
    mock_http.post(_URL).mock(side_effect=api)

    record = await _client(http_client).get_record("home.example.com", "A")

    assert record.id == "12"
    assert record.name == "home.example.com"
    assert record.value == "1.2.3.4"
    assert record.ttl == 300
    form = api.forms[0]
    assert form["ApiUser"] == "ncuser"
    assert form["ApiKey"] == "nc-key"
    assert form["ClientIp"] == "192.0.2.1"
    assert form["SLD"] == "example"
    assert form["TLD"] == "com"


@pytest.mark.asyncio
async def test_get_record_apex(mock_http, http_client):
    mock_http.post(_URL).mock(side_effect=_Namecheap())

    record = await _client(http_client).get_record("example.com", "A")

    assert record.id == "11"


@pytest.mark.asyncio
async def test_update_resends_every_host(mock_http, http_client):
    api = _Namecheap()
    mock_http.post(_URL).mock(side_effect=api)
    client = _client(http_client)
    existing = await client.get_record("home.example.com", "A")

    await client.update_record(existing, DnsRecord("home.example.com", "A", "5.6.7.8", 60))

    form = api.set_form
    assert form["HostName1"] == "@" and form["Address1"] == "1.1.1.1"
    assert form["HostName2"] == "home" and form["Address2"] == "5.6.7.8" and form["TTL2"] == "60"
    assert form["HostName3"] == "mail" and form["RecordType3"] == "MX" and form["MXPref3"] == "5"
    assert "HostName4" not in form


@pytest.mark.asyncio
async def test_create_appends_host(mock_http, http_client):
    api = _Namecheap()
    mock_http.post(_URL).mock(side_effect=api)

    await _client(http_client).create_record(DnsRecord("vpn.example.com", "A", "5.6.7.8", 300))

    form = api.set_form
    assert form["HostName4"] == "vpn"
    assert form["Address4"] == "5.6.7.8"
    assert form["RecordType4"] == "A"


@pytest.mark.asyncio
async def test_delete_drops_host(mock_http, http_client):
    api = _Namecheap()
    mock_http.post(_URL).mock(side_effect=api)

    await _client(http_client).delete_record(DnsRecord("home.example.com", "A", "1.2.3.4", 300, id="12"))

    form = api.set_form
    assert [form[f"HostName{i}"] for i in (1, 2)] == ["@", "mail"]
    assert "HostName3" not in form


@pytest.mark.asyncio
async def test_update_of_vanished_host_raises(mock_http, http_client):
    mock_http.post(_URL).mock(side_effect=_Namecheap())

    with pytest.raises(DnsProviderError, match="disappeared"):
        await _client(http_client).update_record(
            DnsRecord("old.example.com", "A", "1.2.3.4", 300, id="99"),
            DnsRecord("old.example.com", "A", "5.6.7.8", 300),
        )


@pytest.mark.asyncio
async def test_set_hosts_without_success_raises(mock_http, http_client):
    mock_http.post(_URL).mock(side_effect=_Namecheap(set_xml=_SET_OK_XML.replace('"true"', '"false"')))

    with pytest.raises(DnsProviderError, match="did not report success"):
        await _client(http_client).create_record(DnsRecord("vpn.example.com", "A", "5.6.7.8", 300))


@pytest.mark.asyncio
async def test_api_error_status_raises(mock_http, http_client):
    mock_http.post(_URL).mock(return_value=httpx.Response(200, text=_ERROR_XML))

    with pytest.raises(DnsProviderError, match="1011102"):
        await _client(http_client).validate()


@pytest.mark.asyncio
async def test_invalid_xml_raises(mock_http, http_client):
    mock_http.post(_URL).mock(return_value=httpx.Response(200, text="not xml"))

    with pytest.raises(DnsProviderError, match="invalid XML"):
        await _client(http_client).list_records()


@pytest.mark.asyncio
async def test_sandbox_endpoint(mock_http, http_client):
    route = mock_http.post(_SANDBOX_URL).mock(side_effect=_Namecheap())

    await _client(http_client, sandbox=True).list_records()

    assert route.called


@pytest.mark.asyncio
async def test_unsplittable_domain_rejected(http_client):
    with pytest.raises(ValueError):
        NamecheapClient(http_client, "u", "k", "u", "192.0.2.1", "localhost")
